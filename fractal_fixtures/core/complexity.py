"""
Complexity scoring for rendered rasters.

A pixel counts as "fractal" when its escape-time (iterations survived before
divergence) lies strictly between 0 and the iteration cap: it neither
diverges immediately nor stays bounded. The fraction of such pixels is a
cheap proxy for how much boundary structure an image carries.
"""

import numpy as np
from dataclasses import dataclass
import logging

from .math_functions import Raster, NEVER_ESCAPED
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcceptanceBand:
    """Inclusive acceptance window for the fractal pixel ratio."""

    min_ratio: float
    max_ratio: float

    def validate(self) -> None:
        if not 0.0 <= self.min_ratio <= self.max_ratio <= 1.0:
            raise ConfigurationError(
                f"acceptance band must satisfy 0 <= min <= max <= 1, "
                f"got [{self.min_ratio}, {self.max_ratio}]"
            )


def boundary_mask(raster: Raster) -> np.ndarray:
    """Boolean mask of pixels in the boundary region."""
    values = raster.values
    return (values != NEVER_ESCAPED) & (values > 1) & (values < raster.max_iterations)


def score(raster: Raster) -> float:
    """
    Compute the fractal pixel ratio of a raster.

    Args:
        raster: Rendered raster

    Returns:
        Fraction in [0, 1]
    """
    total = raster.values.size
    if total == 0:
        return 0.0
    return float(np.count_nonzero(boundary_mask(raster))) / total


def accepts(ratio: float, band: AcceptanceBand) -> bool:
    """
    Check whether a score falls inside the acceptance band.

    A zero score (no boundary pixels at all) is rejected even when the band
    starts at 0.
    """
    return ratio > 0.0 and band.min_ratio <= ratio <= band.max_ratio
