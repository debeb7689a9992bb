"""Open generated images in the platform's default viewer."""

import logging
from pathlib import Path

import click

logger = logging.getLogger(__name__)


def preview_image(path: Path) -> bool:
    """
    Launch the default viewer for an image without waiting for it.

    Preview is best effort: a missing viewer is logged, never raised.

    Returns:
        True if a viewer was launched
    """
    path = Path(path)
    if not path.is_file():
        logger.warning(f"Cannot preview missing file: {path}")
        return False

    try:
        status = click.launch(str(path), wait=False)
    except OSError as e:
        logger.warning(f"Could not open preview for {path}: {e}")
        return False

    if status != 0:
        logger.warning(f"Viewer exited with status {status} for {path}")
        return False
    return True
