"""Visualization helpers shared by the analysis subpackages.

Provides plot styling, colour palettes, and figure saving.
"""

from .style import (
    BACKGROUND_COLOR,
    UNASSIGNED_COLORS,
    facet_grid_shape,
    get_color_palette,
    save_figure,
    set_publication_style,
)

__all__ = [
    "BACKGROUND_COLOR",
    "UNASSIGNED_COLORS",
    "facet_grid_shape",
    "get_color_palette",
    "save_figure",
    "set_publication_style",
]
