"""Shared fixtures for the fractal-fixtures test suite."""
import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fractal_fixtures.core.sampling import ParameterRanges
from fractal_fixtures.io.config import GenerationConfig


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def whole_set_ranges():
    """Degenerate ranges that always frame the whole Mandelbrot set at low resolution."""
    return ParameterRanges(
        center_real=(-0.5, -0.5),
        center_imag=(0.0, 0.0),
        half_width=(1.5, 1.5),
        max_iterations=(32, 32),
        width=(64, 64),
        height=(48, 48),
    )


@pytest.fixture
def small_config(tmp_path, whole_set_ranges):
    """Fast generation config: tiny images, wide band, small size window."""
    return GenerationConfig(
        ranges=whole_set_ranges,
        min_ratio=0.05,
        max_ratio=0.95,
        max_attempts=5,
        target_min_bytes=5_000,
        target_max_bytes=8_000,
        palette='mono',
        job_workers=1,
        render_threads=1,
        tile_size=16,
        output_dir=str(tmp_path / 'images'),
        seed=7,
    )


@pytest.fixture
def noise_image():
    """Incompressible RGB image factory."""
    def make(width, height, seed=0):
        return np.random.default_rng(seed).integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return make
