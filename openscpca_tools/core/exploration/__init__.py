"""Exploratory plotting module.

Provides marker-gene dot plots and faceted UMAPs for comparing cell groups.

Example Usage
-------------
    >>> from openscpca_tools.core.exploration import (
    ...     dotplot_table,
    ...     plot_marker_dotplot,
    ...     plot_faceted_umap,
    ... )
    >>> table = dotplot_table(adata, {"T cells": ["CD3E", "CD3D"]}, groupby="leiden")
    >>> plot_marker_dotplot(table, "plots/markers_dotplot.png")
    >>> plot_faceted_umap(adata, facet_by="consensus", output_path="plots/umap.png")
"""

from .dotplot import dotplot_table, load_marker_genes, plot_marker_dotplot
from .umap import compute_umap_if_missing, plot_faceted_umap

__all__ = [
    "dotplot_table",
    "load_marker_genes",
    "plot_marker_dotplot",
    "compute_umap_if_missing",
    "plot_faceted_umap",
]
