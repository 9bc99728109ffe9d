"""UMAP helpers: compute when missing, and faceted plots.

A faceted UMAP draws one panel per value of a label column; each panel
highlights that value's cells on top of all other cells drawn in grey, so
the location of every group can be read against the whole embedding.
"""

from pathlib import Path
from typing import Optional, Union
import logging

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from openscpca_tools.io.tables import require_columns
from openscpca_tools.viz.style import (
    BACKGROUND_COLOR,
    facet_grid_shape,
    get_color_palette,
    save_figure,
    set_publication_style,
)

logger = logging.getLogger(__name__)


def compute_umap_if_missing(
    adata,
    n_pcs: int = 30,
    n_neighbors: int = 15,
    min_dist: float = 0.5,
    random_state: int = 2025,
) -> bool:
    """Compute ``X_umap`` with scanpy if it is not already present.

    PCA is computed from ``X`` first when ``X_pca`` is missing. ``X`` is
    expected to hold normalized, log-transformed expression.

    Args:
        adata: AnnData object
        n_pcs: Number of principal components
        n_neighbors: Number of neighbors for the kNN graph
        min_dist: Minimum distance for UMAP
        random_state: Random seed

    Returns:
        True if UMAP was computed, False if already present
    """
    import scanpy as sc

    if "X_umap" in adata.obsm:
        logger.info("UMAP already present in adata.obsm")
        return False

    n_comps = max(1, min(n_pcs, adata.n_obs - 1, adata.n_vars - 1))
    if "X_pca" not in adata.obsm:
        logger.info("Computing PCA with %d components...", n_comps)
        sc.pp.pca(adata, n_comps=n_comps, random_state=random_state)

    logger.info("Computing neighbors graph and UMAP for %d cells...", adata.n_obs)
    sc.pp.neighbors(
        adata,
        n_neighbors=min(n_neighbors, adata.n_obs - 1),
        n_pcs=min(n_comps, adata.obsm["X_pca"].shape[1]),
        random_state=random_state,
    )
    sc.tl.umap(adata, min_dist=min_dist, random_state=random_state)
    return True


def plot_faceted_umap(
    adata,
    facet_by: str,
    output_path: Union[str, Path],
    color_by: Optional[str] = None,
    ncols: Optional[int] = None,
    point_size: float = 2.0,
    alpha: float = 0.8,
    max_facets: int = 30,
    dpi: int = 200,
) -> Path:
    """Plot one UMAP panel per value of ``facet_by``.

    Args:
        adata: AnnData with ``X_umap``
        facet_by: ``obs`` column whose values define panels
        output_path: Path to save figure
        color_by: ``obs`` column colouring highlighted cells; each facet gets
            its own colour when None
        ncols: Panels per row
        point_size: Size of scatter points
        alpha: Transparency of highlighted cells
        max_facets: Only the most frequent values get a panel
        dpi: Figure resolution

    Returns:
        Path to saved figure

    Raises:
        KeyError: If ``X_umap`` or a column is missing.
    """
    if "X_umap" not in adata.obsm:
        raise KeyError("X_umap not found in adata.obsm; run compute_umap_if_missing first")
    columns = [facet_by] + ([color_by] if color_by else [])
    require_columns(adata.obs, columns, where="adata.obs")

    set_publication_style()

    coords = np.asarray(adata.obsm["X_umap"])[:, :2]
    facets = adata.obs[facet_by].astype(object).fillna("NA").astype(str).to_numpy()
    counts = pd.Series(facets).value_counts()
    facet_values = counts.index[:max_facets].tolist()
    if len(counts) > max_facets:
        logger.warning(
            "Showing the %d most frequent of %d '%s' values",
            max_facets, len(counts), facet_by,
        )

    if color_by:
        colors_col = adata.obs[color_by].astype(object).fillna("NA").astype(str).to_numpy()
        color_values = sorted(pd.unique(colors_col))
    else:
        colors_col = facets
        color_values = facet_values
    palette = get_color_palette(color_values)

    nrows, ncols = facet_grid_shape(len(facet_values), ncols)
    fig, axes = plt.subplots(
        nrows, ncols, figsize=(3.2 * ncols, 3.0 * nrows), squeeze=False,
        sharex=True, sharey=True,
    )

    for ax, value in zip(axes.flat, facet_values):
        mask = facets == value
        ax.scatter(
            coords[~mask, 0], coords[~mask, 1],
            c=BACKGROUND_COLOR, s=point_size, alpha=0.5, rasterized=True,
        )
        for color_value in color_values:
            sub = mask & (colors_col == color_value)
            if sub.any():
                ax.scatter(
                    coords[sub, 0], coords[sub, 1],
                    c=palette[color_value], s=point_size, alpha=alpha,
                    label=color_value, rasterized=True,
                )
        ax.set_title(f"{value} (n={int(mask.sum()):,})", fontsize=9)
        ax.set_xticks([])
        ax.set_yticks([])
        ax.grid(False)

    for ax in list(axes.flat)[len(facet_values):]:
        ax.set_visible(False)

    for ax in axes[-1]:
        ax.set_xlabel("UMAP1")
    for ax in axes[:, 0]:
        ax.set_ylabel("UMAP2")

    if color_by:
        handles = [
            plt.Line2D([], [], marker="o", linestyle="", color=palette[v], label=v)
            for v in color_values
        ]
        fig.legend(
            handles=handles,
            title=color_by,
            loc="center left",
            bbox_to_anchor=(1.0, 0.5),
            frameon=False,
        )

    fig.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)
