"""
Synthetic fractal test fixtures.

This library renders randomized Mandelbrot viewports, keeps only images whose
boundary complexity falls inside an acceptance band, pads the encoded files
with random bytes into a target size window without affecting decoding, and
uploads the results to DigitalOcean Spaces with a CSV ledger of their URLs.

Example usage:
    >>> from fractal_fixtures import FixtureGenerator, GenerationConfig
    >>> config = GenerationConfig(seed=7, job_workers=2)
    >>> summary = FixtureGenerator(config).run(count=4)
    >>> summary.exit_code
    0
"""

__version__ = "1.0.0"
__author__ = "Fractal Fixtures Team"

from fractal_fixtures.core.math_functions import Viewport, Raster, ComplexPlane, EscapeTimeIterator
from fractal_fixtures.core.sampling import ParameterRanges, ParameterSampler
from fractal_fixtures.core.complexity import AcceptanceBand, score, accepts
from fractal_fixtures.core.synthesis import SynthesisLoop, SynthesisState
from fractal_fixtures.rendering.coloring import ColoringEngine, Palette
from fractal_fixtures.rendering.image_output import get_codec, verify_trailing_tolerance
from fractal_fixtures.rendering.inflation import SizeInflator, InflatedArtifact
from fractal_fixtures.io.config import ConfigManager, GenerationConfig, StorageConfig

# Main API classes
from fractal_fixtures.api import FractalRenderer, FixtureGenerator, RunSummary, JobResult

__all__ = [
    "FixtureGenerator",
    "FractalRenderer",
    "RunSummary",
    "JobResult",
    "GenerationConfig",
    "StorageConfig",
    "ConfigManager",
    "Viewport",
    "Raster",
    "ComplexPlane",
    "EscapeTimeIterator",
    "ParameterRanges",
    "ParameterSampler",
    "AcceptanceBand",
    "score",
    "accepts",
    "SynthesisLoop",
    "SynthesisState",
    "ColoringEngine",
    "Palette",
    "get_codec",
    "verify_trailing_tolerance",
    "SizeInflator",
    "InflatedArtifact",
]
