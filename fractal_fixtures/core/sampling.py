"""
Randomized viewport sampling.

Draws candidate viewports from configured ranges. The default ranges sit
above the main cardioid of the Mandelbrot set, where a useful share of draws
lands on boundary detail rather than deep interior or exterior.
"""

import numpy as np
from typing import Tuple
from dataclasses import dataclass, field
import logging

from .math_functions import Viewport, MIN_ITERATIONS, MAX_ITERATIONS
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ParameterRanges:
    """Sampling ranges for viewports and image dimensions."""

    # Half-open float ranges [low, high)
    center_real: Tuple[float, float] = (-0.5, 0.5)
    center_imag: Tuple[float, float] = (0.6, 0.9)
    half_width: Tuple[float, float] = (0.02, 0.4)

    # Inclusive integer ranges
    max_iterations: Tuple[int, int] = (400, 1199)
    width: Tuple[int, int] = (3000, 5000)
    height: Tuple[int, int] = (2000, 3500)

    def validate(self) -> None:
        """Validate ranges; raises ConfigurationError on the first problem."""
        for name in ('center_real', 'center_imag', 'half_width'):
            low, high = self._pair(name)
            if not np.isfinite(low) or not np.isfinite(high):
                raise ConfigurationError(f"{name} range must be finite, got ({low}, {high})")
            if low > high:
                raise ConfigurationError(f"{name} range is inverted: ({low}, {high})")

        if self.half_width[0] <= 0:
            raise ConfigurationError("half_width range must be strictly positive")

        low, high = self._pair('max_iterations')
        if low > high:
            raise ConfigurationError(f"max_iterations range is inverted: ({low}, {high})")
        if low < MIN_ITERATIONS or high > MAX_ITERATIONS:
            raise ConfigurationError(
                f"max_iterations range must lie within [{MIN_ITERATIONS}, {MAX_ITERATIONS}]"
            )

        for name in ('width', 'height'):
            low, high = self._pair(name)
            if low <= 0 or low > high:
                raise ConfigurationError(f"{name} range must be positive and ordered, got ({low}, {high})")

    def _pair(self, name: str):
        value = getattr(self, name)
        if len(value) != 2:
            raise ConfigurationError(f"{name} must be a (low, high) pair, got {value!r}")
        return value[0], value[1]

    def to_dict(self):
        return {k: list(v) for k, v in self.__dict__.items()}


class ParameterSampler:
    """Draws viewports from ParameterRanges using an explicit generator."""

    def __init__(self, ranges: ParameterRanges, rng: np.random.Generator):
        """
        Initialize sampler.

        Args:
            ranges: Validated sampling ranges
            rng: Generator owned by the calling job
        """
        self.ranges = ranges
        self.rng = rng

    def sample(self) -> Viewport:
        """Draw a fresh candidate viewport."""
        r = self.ranges
        center = complex(self._uniform(r.center_real), self._uniform(r.center_imag))
        half_width = self._uniform(r.half_width)
        max_iterations = self._integer(r.max_iterations)

        viewport = Viewport(center=center, half_width=half_width, max_iterations=max_iterations)
        logger.debug(f"Sampled viewport: center={center:.6f}, half_width={half_width:.5f}, "
                     f"max_iterations={max_iterations}")
        return viewport

    def sample_dimensions(self) -> Tuple[int, int]:
        """Draw image (width, height) for one job."""
        return self._integer(self.ranges.width), self._integer(self.ranges.height)

    def _uniform(self, bounds: Tuple[float, float]) -> float:
        low, high = bounds
        if low == high:
            return float(low)
        return float(self.rng.uniform(low, high))

    def _integer(self, bounds: Tuple[int, int]) -> int:
        low, high = bounds
        return int(self.rng.integers(low, high, endpoint=True))
