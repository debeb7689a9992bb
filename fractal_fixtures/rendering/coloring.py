"""
Escape-time coloring and palette management.

Maps a raster's escape values onto a palette; pixels that never escaped get
the inside color.
"""

import numpy as np
from typing import Dict, List, Tuple, Union, Optional
from dataclasses import dataclass
import logging

from ..core.math_functions import Raster

logger = logging.getLogger(__name__)


@dataclass
class ColorRGB:
    """RGB color representation."""
    r: float
    g: float
    b: float

    def __post_init__(self):
        """Validate RGB values."""
        for component in [self.r, self.g, self.b]:
            if not 0 <= component <= 1:
                raise ValueError("RGB components must be between 0 and 1")

    def to_tuple(self) -> Tuple[float, float, float]:
        """Convert to RGB tuple."""
        return (self.r, self.g, self.b)


class Palette:
    """Color palette with piecewise-linear interpolation."""

    def __init__(self, colors: List[Union[ColorRGB, Tuple[float, float, float]]],
                 name: str = "Custom"):
        """
        Initialize color palette.

        Args:
            colors: List of colors in the palette
            name: Human-readable name for the palette
        """
        self.name = name
        self.colors = []

        for color in colors:
            if isinstance(color, ColorRGB):
                self.colors.append(color)
            elif isinstance(color, (tuple, list)) and len(color) == 3:
                self.colors.append(ColorRGB(*color))
            else:
                raise ValueError(f"Invalid color format: {color}")

        if len(self.colors) < 2:
            raise ValueError("Palette must contain at least 2 colors")

    def interpolate(self, t: np.ndarray) -> np.ndarray:
        """
        Interpolate colors at positions t (0-1).

        Args:
            t: Array of palette positions

        Returns:
            Float RGB array with a trailing channel axis
        """
        t = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
        stops = np.linspace(0.0, 1.0, len(self.colors))
        table = np.array([c.to_tuple() for c in self.colors])

        rgb = np.empty(t.shape + (3,), dtype=np.float64)
        for channel in range(3):
            rgb[..., channel] = np.interp(t, stops, table[:, channel])
        return rgb


class EscapeTimeColoring:
    """Basic escape-time coloring algorithm."""

    def apply(self, raster: Raster, palette: Palette,
              inside_color: Optional[ColorRGB] = None) -> np.ndarray:
        """
        Apply escape-time coloring.

        Args:
            raster: Rendered raster
            palette: Color palette
            inside_color: Color for points that didn't escape

        Returns:
            uint8 RGB image array (height, width, 3)
        """
        if inside_color is None:
            inside_color = ColorRGB(0, 0, 0)

        normalized = raster.values.astype(np.float64) / raster.max_iterations
        rgb_image = palette.interpolate(normalized)

        mask = ~raster.escaped
        if np.any(mask):
            rgb_image[mask] = inside_color.to_tuple()

        return np.round(rgb_image * 255).astype(np.uint8)


class ColoringEngine:
    """Palette registry and entry point for coloring rasters."""

    def __init__(self):
        self.algorithm = EscapeTimeColoring()
        self.palettes = self._create_builtin_palettes()

    def _create_builtin_palettes(self) -> Dict[str, Palette]:
        """Create built-in color palettes."""
        palettes = {}

        # Two-tone: bounded points black, everything else white
        palettes['mono'] = Palette([
            ColorRGB(1, 1, 1),
            ColorRGB(1, 1, 1),
        ], name="Mono")

        palettes['hot'] = Palette([
            ColorRGB(0, 0, 0),      # Black
            ColorRGB(1, 0, 0),      # Red
            ColorRGB(1, 1, 0),      # Yellow
            ColorRGB(1, 1, 1),      # White
        ], name="Hot")

        palettes['gray'] = Palette([
            ColorRGB(0, 0, 0),
            ColorRGB(1, 1, 1),
        ], name="Grayscale")

        palettes['fire'] = Palette([
            ColorRGB(0, 0, 0),          # Black
            ColorRGB(0.5, 0, 0),        # Dark red
            ColorRGB(1, 0, 0),          # Red
            ColorRGB(1, 0.5, 0),        # Orange
            ColorRGB(1, 1, 0),          # Yellow
            ColorRGB(1, 1, 1),          # White
        ], name="Fire")

        palettes['ocean'] = Palette([
            ColorRGB(0, 0, 0.2),        # Deep blue
            ColorRGB(0, 0, 0.8),        # Blue
            ColorRGB(0, 0.5, 1),        # Light blue
            ColorRGB(0, 1, 1),          # Cyan
            ColorRGB(0.5, 1, 1),        # Light cyan
            ColorRGB(1, 1, 1),          # White
        ], name="Ocean")

        palettes['rainbow'] = Palette([
            ColorRGB(1, 0, 0),
            ColorRGB(1, 0.5, 0),
            ColorRGB(1, 1, 0),
            ColorRGB(0, 1, 0),
            ColorRGB(0, 1, 1),
            ColorRGB(0, 0, 1),
            ColorRGB(0.5, 0, 1),
        ], name="Rainbow")

        return palettes

    def add_palette(self, name: str, palette: Palette) -> None:
        self.palettes[name] = palette

    def get_palette(self, name: str) -> Palette:
        if name not in self.palettes:
            available = ', '.join(self.palettes.keys())
            raise ValueError(f"Unknown palette '{name}'. Available: {available}")
        return self.palettes[name]

    def render_color_image(self, raster: Raster, palette: str = 'hot',
                           inside_color: Optional[ColorRGB] = None) -> np.ndarray:
        """Color a raster with a named palette."""
        return self.algorithm.apply(raster, self.get_palette(palette), inside_color)

    def list_palettes(self) -> List[str]:
        return list(self.palettes.keys())
