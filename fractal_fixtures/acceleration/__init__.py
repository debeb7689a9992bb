"""Rendering backends: tile thread pool and the optional Numba kernel."""

import importlib.util


def is_numba_available() -> bool:
    """Check if the Numba backend can be imported."""
    return importlib.util.find_spec("numba") is not None
