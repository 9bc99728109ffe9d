"""Jaccard similarity heatmaps."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from openscpca_tools.viz.style import save_figure, set_publication_style

logger = logging.getLogger(__name__)


def _auto_figsize(matrix: pd.DataFrame) -> Tuple[float, float]:
    n_rows, n_cols = matrix.shape
    return (max(4.0, 0.6 * n_cols + 2.5), max(3.0, 0.45 * n_rows + 1.5))


def plot_jaccard_heatmap(
    matrix: pd.DataFrame,
    output_path: Optional[Union[str, Path]] = None,
    title: Optional[str] = None,
    cmap: str = "viridis",
    annotate: bool = True,
    fmt: str = ".2f",
    figsize: Optional[Tuple[float, float]] = None,
    dpi: int = 200,
    ax=None,
    cbar: bool = True,
):
    """Plot a Jaccard similarity matrix as a heatmap.

    The colour scale is fixed to [0, 1] so heatmaps from different label
    comparisons can be read side by side.

    Parameters
    ----------
    matrix : pd.DataFrame
        Jaccard matrix (rows: labeling A, columns: labeling B)
    output_path : Path, optional
        Where to save the figure; the figure is returned open when None
        and no axis is given
    title : str, optional
        Plot title
    cmap : str
        Colormap name
    annotate : bool
        Write values into cells
    fmt : str
        Annotation number format
    figsize : Tuple[float, float], optional
        Figure size; derived from the matrix shape when None
    dpi : int
        Figure resolution
    ax : matplotlib.axes.Axes, optional
        Draw into this axis instead of a new figure
    cbar : bool
        Draw a colour bar

    Returns
    -------
    Path or matplotlib.axes.Axes
        The saved path when ``output_path`` is given, otherwise the axis.

    Raises
    ------
    ValueError
        If the matrix is empty.
    """
    if matrix.empty:
        raise ValueError("Cannot plot an empty Jaccard matrix")

    set_publication_style()

    own_figure = ax is None
    if own_figure:
        fig, ax = plt.subplots(figsize=figsize or _auto_figsize(matrix))
    else:
        fig = ax.figure

    sns.heatmap(
        matrix,
        ax=ax,
        vmin=0.0,
        vmax=1.0,
        cmap=cmap,
        annot=annotate,
        fmt=fmt,
        annot_kws={"fontsize": 7},
        linewidths=0.5,
        linecolor="white",
        square=False,
        cbar=cbar,
        cbar_kws={"label": "Jaccard index"} if cbar else None,
    )

    ax.set_ylabel(matrix.index.name or "")
    ax.set_xlabel(matrix.columns.name or "")
    if title:
        ax.set_title(title)
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    plt.setp(ax.get_yticklabels(), rotation=0)

    if output_path is not None and own_figure:
        return save_figure(fig, output_path, dpi=dpi)
    return ax


def plot_jaccard_heatmaps(
    matrices: Dict[str, pd.DataFrame],
    output_path: Union[str, Path],
    cmap: str = "viridis",
    annotate: bool = True,
    dpi: int = 200,
) -> Path:
    """Plot several Jaccard matrices that share row labels side by side.

    Used to compare one labeling against several references. Only the
    last panel gets a colour bar, and row labels are only drawn once.

    Parameters
    ----------
    matrices : Dict[str, pd.DataFrame]
        Panel title -> Jaccard matrix
    output_path : Path
        Where to save the figure
    """
    if not matrices:
        raise ValueError("No Jaccard matrices to plot")

    set_publication_style()

    widths = [max(1, m.shape[1]) for m in matrices.values()]
    height = max(m.shape[0] for m in matrices.values())
    fig, axes = plt.subplots(
        1,
        len(matrices),
        figsize=(0.6 * sum(widths) + 3.0, 0.45 * height + 2.0),
        gridspec_kw={"width_ratios": widths},
        squeeze=False,
    )

    n_panels = len(matrices)
    for idx, (name, matrix) in enumerate(matrices.items()):
        ax = axes[0, idx]
        plot_jaccard_heatmap(
            matrix,
            title=name,
            cmap=cmap,
            annotate=annotate,
            ax=ax,
            cbar=idx == n_panels - 1,
        )
        if idx > 0:
            ax.set_ylabel("")
            ax.set_yticklabels([])

    fig.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)
