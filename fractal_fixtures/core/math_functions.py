"""
Core mathematical functions for escape-time rendering.

This module provides the viewport and raster data types together with the
vectorized Mandelbrot escape-time iteration used by the default renderer.
"""

import numpy as np
from typing import Tuple, Optional
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)

# Divergence threshold |z|^2 > 4, shared by every render so scores compare.
ESCAPE_RADIUS_SQ = 4.0

# Recorded for pixels that did not diverge within max_iterations.
NEVER_ESCAPED = -1

MIN_ITERATIONS = 16
MAX_ITERATIONS = 100_000


@dataclass(frozen=True)
class Viewport:
    """Region of the complex plane and iteration budget for one candidate image."""

    center: complex
    half_width: float
    max_iterations: int

    def __post_init__(self):
        """Validate viewport parameters."""
        if not self.half_width > 0:
            raise ValueError(f"half_width must be positive, got {self.half_width}")
        if not MIN_ITERATIONS <= self.max_iterations <= MAX_ITERATIONS:
            raise ValueError(
                f"max_iterations must be in [{MIN_ITERATIONS}, {MAX_ITERATIONS}], "
                f"got {self.max_iterations}"
            )

    def plane(self, width: int, height: int) -> 'ComplexPlane':
        """
        Build the pixel grid for this viewport.

        The vertical extent is scaled by the aspect ratio so pixels are square.

        Args:
            width, height: Image resolution in pixels

        Returns:
            ComplexPlane covering the viewport
        """
        if width <= 0 or height <= 0:
            raise ValueError("Width and height must be positive")
        half_height = self.half_width * height / width
        return ComplexPlane(
            self.center.real - self.half_width, self.center.real + self.half_width,
            self.center.imag - half_height, self.center.imag + half_height,
            width, height
        )

    def to_dict(self):
        """Convert viewport to a JSON-friendly dictionary."""
        return {
            'center_real': self.center.real,
            'center_imag': self.center.imag,
            'half_width': self.half_width,
            'max_iterations': self.max_iterations,
        }


class ComplexPlane:
    """Represents a complex plane region with coordinate mapping utilities."""

    def __init__(self, xmin: float, xmax: float, ymin: float, ymax: float,
                 width: int, height: int):
        """
        Initialize complex plane bounds and resolution.

        Args:
            xmin, xmax: Real axis bounds
            ymin, ymax: Imaginary axis bounds
            width, height: Image resolution in pixels
        """
        if xmin >= xmax or ymin >= ymax:
            raise ValueError("Invalid bounds: min values must be less than max values")
        if width <= 0 or height <= 0:
            raise ValueError("Width and height must be positive")

        self.xmin = xmin
        self.xmax = xmax
        self.ymin = ymin
        self.ymax = ymax
        self.width = width
        self.height = height

        self.x_scale = (xmax - xmin) / width
        self.y_scale = (ymax - ymin) / height

    def create_complex_array(self, x_start: int = 0, x_end: Optional[int] = None,
                             y_start: int = 0, y_end: Optional[int] = None) -> np.ndarray:
        """
        Create complex coordinates for a rectangular block of pixels.

        Coordinates are computed from absolute pixel indices, so a block taken
        from a tile holds exactly the values of the same block of the full plane.

        Args:
            x_start, x_end: Column range (defaults to the full width)
            y_start, y_end: Row range (defaults to the full height)

        Returns:
            2D complex128 array of shape (rows, columns)
        """
        x_end = self.width if x_end is None else x_end
        y_end = self.height if y_end is None else y_end

        x = self.xmin + np.arange(x_start, x_end, dtype=np.float64) * self.x_scale
        y = self.ymin + np.arange(y_start, y_end, dtype=np.float64) * self.y_scale
        real, imag = np.meshgrid(x, y)
        return real + 1j * imag

    def pixel_to_complex(self, px: int, py: int) -> complex:
        """Convert pixel coordinates to complex number."""
        return complex(self.xmin + px * self.x_scale, self.ymin + py * self.y_scale)


class Raster:
    """Per-pixel escape values of one render; read-only after construction."""

    def __init__(self, values: np.ndarray, max_iterations: int):
        """
        Initialize raster.

        Args:
            values: (height, width) integer array of escape iterations or NEVER_ESCAPED
            max_iterations: Iteration budget the values were produced with
        """
        if values.ndim != 2:
            raise ValueError(f"Raster values must be 2D, got shape {values.shape}")

        self.values = np.array(values, dtype=np.int32, copy=True)
        self.values.setflags(write=False)
        self.max_iterations = max_iterations

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def height(self) -> int:
        return self.values.shape[0]

    @property
    def width(self) -> int:
        return self.values.shape[1]

    @property
    def escaped(self) -> np.ndarray:
        """Boolean mask of pixels that diverged."""
        return self.values != NEVER_ESCAPED


class EscapeTimeIterator:
    """Vectorized Mandelbrot escape-time iteration."""

    def __init__(self, max_iter: int, escape_radius_sq: float = ESCAPE_RADIUS_SQ):
        """
        Initialize iterator.

        Args:
            max_iter: Iteration budget; a pixel still bounded after
                max_iter - 1 steps records NEVER_ESCAPED
            escape_radius_sq: Squared divergence threshold
        """
        if max_iter <= 0:
            raise ValueError("max_iter must be positive")

        self.max_iter = max_iter
        self.escape_radius_sq = escape_radius_sq

    def mandelbrot_iteration(self, c: np.ndarray) -> np.ndarray:
        """
        Compute escape values for z_{n+1} = z_n^2 + c starting at z_0 = 0.

        A pixel diverging at step n (|z_n|^2 > threshold) records n, so
        diverged values lie in [1, max_iter - 1].

        Args:
            c: Complex parameter array

        Returns:
            int32 array shaped like c
        """
        values = np.full(c.shape, NEVER_ESCAPED, dtype=np.int32)
        flat_values = values.reshape(-1)

        # Only still-bounded points are carried between steps
        active_c = np.ascontiguousarray(c, dtype=np.complex128).reshape(-1)
        index = np.arange(active_c.size)
        z = np.zeros_like(active_c)

        for n in range(1, self.max_iter):
            z = z * z + active_c
            magnitude_sq = z.real * z.real + z.imag * z.imag
            diverged = magnitude_sq > self.escape_radius_sq

            if np.any(diverged):
                flat_values[index[diverged]] = n
                keep = ~diverged
                z = z[keep]
                active_c = active_c[keep]
                index = index[keep]

                if index.size == 0:
                    break

        return values
