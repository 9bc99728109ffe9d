"""Shared plot styling for openscpca-tools figures.

Provides:
- A seaborn theme shared by all figures
- Label -> colour mapping with stable colours for "Unknown"/NA labels
- Figure saving with consistent settings
"""

from pathlib import Path
from typing import Dict, List, Optional, Union
import logging

logger = logging.getLogger(__name__)

# Colours reserved for labels that mean "no assignment"
UNASSIGNED_COLORS: Dict[str, str] = {
    "Unknown": "#7f8c8d",
    "Unclassified": "#95a5a6",
    "NA": "#bdc3c7",
}

BACKGROUND_COLOR = "#d5d8dc"


def set_publication_style(font_scale: float = 0.9) -> None:
    """Apply the seaborn whitegrid theme used by every report figure."""
    import seaborn as sns

    sns.set_theme(
        style="whitegrid",
        font_scale=font_scale,
        rc={
            "axes.spines.top": False,
            "axes.spines.right": False,
            "legend.frameon": False,
            "savefig.bbox": "tight",
        },
    )


def get_color_palette(
    labels: List[str],
    palette: str = "tab20",
    default_color: str = "#bdc3c7",
) -> Dict[str, str]:
    """Map labels to hex colours.

    Labels in ``UNASSIGNED_COLORS`` always get their reserved grey; the
    remaining labels take colours from a seaborn palette in order.

    Args:
        labels: Labels to colour, in display order
        palette: Seaborn/matplotlib palette name
        default_color: Colour used if the palette runs out

    Returns:
        Dict mapping labels to hex colours
    """
    import seaborn as sns

    assigned = [label for label in labels if label not in UNASSIGNED_COLORS]
    colors = sns.color_palette(palette, n_colors=max(len(assigned), 1)).as_hex()

    mapping = {}
    idx = 0
    for label in labels:
        if label in UNASSIGNED_COLORS:
            mapping[label] = UNASSIGNED_COLORS[label]
        elif idx < len(colors):
            mapping[label] = colors[idx]
            idx += 1
        else:
            mapping[label] = default_color
    return mapping


def save_figure(
    fig,
    output_path: Union[str, Path],
    dpi: int = 200,
    close: bool = True,
) -> Path:
    """Write fig to output_path in the format given by its suffix."""
    import matplotlib.pyplot as plt

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fig.savefig(output_path, dpi=dpi, bbox_inches="tight", facecolor="white")
    finally:
        if close:
            plt.close(fig)

    logger.debug("Saved figure to %s", output_path)
    return output_path


def facet_grid_shape(n_panels: int, ncols: Optional[int] = None) -> tuple:
    """Return (nrows, ncols) for laying out n_panels subplots."""
    if n_panels < 1:
        raise ValueError("n_panels must be at least 1")
    if ncols is None:
        ncols = min(n_panels, 4)
    ncols = max(1, min(ncols, n_panels))
    nrows = -(-n_panels // ncols)
    return nrows, ncols
