"""
Tile-parallel rendering backend.

This module splits the output grid into tiles and renders them on a thread
pool. Every pixel is independent, so each tile writes to its own slice of
the shared output array and no locking is needed. NumPy releases the GIL
inside its array kernels and the Numba kernel is compiled ``nogil``, so
threads give real parallelism without the pickling cost of processes.
"""

import numpy as np
from typing import List, Optional, Callable
import logging
import os
import time
from dataclasses import dataclass
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..core.math_functions import ComplexPlane

logger = logging.getLogger(__name__)

# kernel(c, max_iter) -> int32 escape values shaped like c
EscapeKernel = Callable[[np.ndarray, int], np.ndarray]


@dataclass
class TileSpec:
    """Specification for a single tile in parallel rendering."""
    tile_id: int
    x_start: int
    x_end: int
    y_start: int
    y_end: int

    @property
    def width(self) -> int:
        return self.x_end - self.x_start

    @property
    def height(self) -> int:
        return self.y_end - self.y_start


def create_tile_grid(width: int, height: int, tile_size: int = 256) -> List[TileSpec]:
    """
    Create a grid of tiles covering the image exactly once.

    Args:
        width: Total image width
        height: Total image height
        tile_size: Target tile size (pixels)

    Returns:
        List of TileSpec objects
    """
    if tile_size <= 0:
        raise ValueError("tile_size must be positive")

    tiles = []
    tile_id = 0

    for y in range(0, height, tile_size):
        for x in range(0, width, tile_size):
            tiles.append(TileSpec(
                tile_id=tile_id,
                x_start=x,
                x_end=min(x + tile_size, width),
                y_start=y,
                y_end=min(y + tile_size, height),
            ))
            tile_id += 1

    logger.debug(f"Created {len(tiles)} tiles of target size {tile_size}x{tile_size}")
    return tiles


def render_tile(kernel: EscapeKernel, plane: ComplexPlane, tile: TileSpec,
                max_iter: int, out: np.ndarray) -> int:
    """Render one tile into its slice of ``out``; returns the tile id."""
    c = plane.create_complex_array(tile.x_start, tile.x_end, tile.y_start, tile.y_end)
    out[tile.y_start:tile.y_end, tile.x_start:tile.x_end] = kernel(c, max_iter)
    return tile.tile_id


class TileAccelerator:
    """Thread-pool based tile rendering."""

    def __init__(self, num_threads: Optional[int] = None, tile_size: int = 256):
        """
        Initialize tile accelerator.

        Args:
            num_threads: Number of worker threads (None for optimal count)
            tile_size: Size of tiles for parallel processing
        """
        if tile_size < 16:
            raise ValueError("tile_size must be >= 16")

        self.num_threads = max(1, num_threads) if num_threads else get_optimal_thread_count()
        self.tile_size = tile_size

    def render(self, kernel: EscapeKernel, plane: ComplexPlane, max_iter: int) -> np.ndarray:
        """
        Render the whole plane tile by tile.

        Args:
            kernel: Escape-time kernel applied to each tile
            plane: Complex plane specification
            max_iter: Iteration budget

        Returns:
            (height, width) int32 array of escape values
        """
        start_time = time.time()
        tiles = create_tile_grid(plane.width, plane.height, self.tile_size)
        out = np.empty((plane.height, plane.width), dtype=np.int32)

        if self.num_threads == 1 or len(tiles) == 1:
            for tile in tiles:
                render_tile(kernel, plane, tile, max_iter, out)
        else:
            with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
                futures = [executor.submit(render_tile, kernel, plane, tile, max_iter, out)
                           for tile in tiles]
                for future in as_completed(futures):
                    # Re-raises kernel errors; a missing tile would corrupt the raster
                    future.result()

        logger.debug(f"Rendered {len(tiles)} tiles on {self.num_threads} threads "
                     f"in {time.time() - start_time:.2f}s")
        return out


def get_optimal_thread_count() -> int:
    """Get optimal number of render threads, leaving one core for the system."""
    return max(1, (os.cpu_count() or 1) - 1)
