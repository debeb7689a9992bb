"""
Numba JIT compilation backend for escape-time rendering.

The kernel is compiled with ``nogil=True`` so the tile thread pool runs
tiles concurrently. Install with the ``jit`` extra.
"""

import numpy as np
import logging

import numba
from numba import njit

from ..core.math_functions import ESCAPE_RADIUS_SQ, NEVER_ESCAPED

logger = logging.getLogger(__name__)
logger.debug(f"Numba available: {numba.__version__}")


@njit(nogil=True, cache=True)
def mandelbrot_kernel(c_real, c_imag, max_iter, escape_radius_sq, never_escaped):
    """
    JIT-compiled Mandelbrot escape-time kernel.

    Args:
        c_real: Real components of c values
        c_imag: Imaginary components of c values
        max_iter: Iteration budget
        escape_radius_sq: Squared escape radius
        never_escaped: Value recorded for bounded points

    Returns:
        int32 array of escape values
    """
    height, width = c_real.shape
    values = np.empty((height, width), dtype=np.int32)

    for i in range(height):
        for j in range(width):
            cr = c_real[i, j]
            ci = c_imag[i, j]
            zr = 0.0
            zi = 0.0
            value = never_escaped

            for n in range(1, max_iter):
                # z = z^2 + c
                new_zr = zr * zr - zi * zi + cr
                zi = zr * zi + zi * zr + ci
                zr = new_zr

                if zr * zr + zi * zi > escape_radius_sq:
                    value = n
                    break

            values[i, j] = value

    return values


class NumbaAccelerator:
    """Numba-accelerated escape-time backend."""

    def __init__(self, escape_radius_sq: float = ESCAPE_RADIUS_SQ):
        self.escape_radius_sq = escape_radius_sq

    def mandelbrot_iteration(self, c: np.ndarray, max_iter: int) -> np.ndarray:
        """
        Accelerated escape-time computation.

        Args:
            c: Complex parameter array
            max_iter: Iteration budget

        Returns:
            int32 escape values shaped like c
        """
        c_real = np.ascontiguousarray(c.real, dtype=np.float64)
        c_imag = np.ascontiguousarray(c.imag, dtype=np.float64)
        return mandelbrot_kernel(c_real, c_imag, max_iter, self.escape_radius_sq, NEVER_ESCAPED)


_numba_accelerator = None


def get_numba_accelerator() -> NumbaAccelerator:
    """Get the global Numba accelerator instance."""
    global _numba_accelerator
    if _numba_accelerator is None:
        _numba_accelerator = NumbaAccelerator()
    return _numba_accelerator
