"""Marker-gene dot plots.

A dot plot summarizes marker expression per cell group: dot size is the
fraction of cells in the group expressing the gene and dot colour is the
mean expression, scaled per gene across groups.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import yaml
from scipy import sparse

from openscpca_tools.io.tables import read_table, require_columns
from openscpca_tools.viz.style import save_figure, set_publication_style

logger = logging.getLogger(__name__)

GeneSets = Union[Sequence[str], Dict[str, Sequence[str]]]


def _as_gene_sets(genes: GeneSets) -> Dict[str, List[str]]:
    if isinstance(genes, dict):
        return {str(name): [str(g) for g in members] for name, members in genes.items()}
    return {"markers": [str(g) for g in genes]}


def load_marker_genes(path: Union[str, Path]) -> Dict[str, List[str]]:
    """Read marker genes from YAML or a table.

    YAML files map gene-set names to gene lists. Tables need a ``gene``
    column and may group genes with a ``gene_set`` column.
    """
    path = Path(path)
    if path.suffix.lower() in (".yaml", ".yml"):
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data, list):
            return _as_gene_sets(data)
        if not isinstance(data, dict):
            raise ValueError(f"Marker file {path} must hold a mapping or a list of genes")
        return _as_gene_sets(data)

    table = read_table(path, dtype=str)
    require_columns(table, ["gene"], where=str(path))
    if "gene_set" not in table.columns:
        return _as_gene_sets(table["gene"].dropna().tolist())
    gene_sets: Dict[str, List[str]] = {}
    for set_name, gene in table[["gene_set", "gene"]].dropna().itertuples(index=False):
        gene_sets.setdefault(set_name, []).append(gene)
    return gene_sets


def dotplot_table(
    adata,
    genes: GeneSets,
    groupby: str,
    layer: Optional[str] = None,
    expression_cutoff: float = 0.0,
) -> pd.DataFrame:
    """Compute dot-plot statistics per group and gene.

    Parameters
    ----------
    adata : AnnData
        Cells with expression values
    genes : list or dict
        Marker genes, or gene-set name -> genes for a faceted plot
    groupby : str
        ``obs`` column defining groups
    layer : str, optional
        Expression layer; ``X`` when None
    expression_cutoff : float
        A cell expresses a gene when its value is above this cutoff

    Returns
    -------
    pd.DataFrame
        Columns ``gene_set``, ``gene``, ``group``, ``n_cells``,
        ``mean_expression``, ``fraction_expressing``, ``scaled_expression``.

    Raises
    ------
    KeyError
        If ``groupby`` is not an ``obs`` column.
    ValueError
        If none of the genes are present.
    """
    require_columns(adata.obs, [groupby], where="adata.obs")
    gene_sets = _as_gene_sets(genes)
    var_names = pd.Index(adata.var_names.astype(str))

    present = {}
    for name, members in gene_sets.items():
        found = [g for g in members if g in var_names]
        missing = [g for g in members if g not in var_names]
        if missing:
            logger.warning("Gene set '%s': %d genes not found: %s", name, len(missing), missing)
        if found:
            present[name] = found
    if not present:
        raise ValueError("None of the requested genes are present in the AnnData object")

    matrix = adata.X if layer is None else adata.layers[layer]
    groups = adata.obs[groupby].astype(object).fillna("NA").astype(str)
    group_order = (
        list(adata.obs[groupby].cat.categories.astype(str))
        if isinstance(adata.obs[groupby].dtype, pd.CategoricalDtype)
        else sorted(groups.unique())
    )
    group_order = [g for g in group_order if g in set(groups)]
    if "NA" in set(groups) and "NA" not in group_order:
        group_order.append("NA")

    records = []
    for set_name, members in present.items():
        idx = var_names.get_indexer(members)
        values = matrix[:, idx]
        values = values.toarray() if sparse.issparse(values) else np.asarray(values)
        for group in group_order:
            mask = (groups == group).to_numpy()
            group_values = values[mask]
            means = group_values.mean(axis=0)
            fractions = (group_values > expression_cutoff).mean(axis=0)
            for gene, mean, frac in zip(members, means, fractions):
                records.append({
                    "gene_set": set_name,
                    "gene": gene,
                    "group": group,
                    "n_cells": int(mask.sum()),
                    "mean_expression": float(mean),
                    "fraction_expressing": float(frac),
                })

    table = pd.DataFrame.from_records(records)
    gene_range = table.groupby("gene")["mean_expression"].agg(["min", "max"])
    lo = table["gene"].map(gene_range["min"])
    hi = table["gene"].map(gene_range["max"])
    span = (hi - lo).replace(0, np.nan)
    table["scaled_expression"] = ((table["mean_expression"] - lo) / span).fillna(0.0)
    table["group"] = pd.Categorical(table["group"], categories=group_order)
    return table


def plot_marker_dotplot(
    table: pd.DataFrame,
    output_path: Union[str, Path],
    color: str = "scaled_expression",
    cmap: str = "Reds",
    max_dot_size: float = 200.0,
    title: Optional[str] = None,
    dpi: int = 200,
) -> Path:
    """Draw a dot plot, one panel per gene set.

    Parameters
    ----------
    table : pd.DataFrame
        Output of :func:`dotplot_table`
    output_path : Path
        Where to save the figure
    color : str
        Column used for dot colour
    cmap : str
        Colormap name
    max_dot_size : float
        Marker area for a fraction of 1.0
    title : str, optional
        Figure title
    dpi : int
        Figure resolution

    Returns
    -------
    Path
        Saved figure path
    """
    require_columns(table, ["gene_set", "gene", "group", "fraction_expressing", color], where="dot plot table")
    if table.empty:
        raise ValueError("Cannot plot an empty dot plot table")

    set_publication_style()

    gene_sets = list(dict.fromkeys(table["gene_set"]))
    groups = (
        list(table["group"].cat.categories)
        if isinstance(table["group"].dtype, pd.CategoricalDtype)
        else sorted(table["group"].unique())
    )
    widths = [table.loc[table["gene_set"] == s, "gene"].nunique() for s in gene_sets]
    vmax = float(table[color].max()) or 1.0

    fig, axes = plt.subplots(
        1,
        len(gene_sets),
        figsize=(0.45 * sum(widths) + 2.5 + 0.5 * len(gene_sets), 0.4 * len(groups) + 2.0),
        gridspec_kw={"width_ratios": widths},
        sharey=True,
        squeeze=False,
    )

    y_pos = {g: i for i, g in enumerate(groups)}
    scatter = None
    for ax, set_name in zip(axes[0], gene_sets):
        subset = table[table["gene_set"] == set_name]
        genes = list(dict.fromkeys(subset["gene"]))
        x_pos = {g: i for i, g in enumerate(genes)}
        scatter = ax.scatter(
            subset["gene"].map(x_pos),
            subset["group"].astype(str).map(y_pos),
            s=subset["fraction_expressing"] * max_dot_size,
            c=subset[color],
            cmap=cmap,
            vmin=0.0,
            vmax=vmax,
            edgecolors="grey",
            linewidths=0.3,
        )
        ax.set_xticks(range(len(genes)))
        ax.set_xticklabels(genes, rotation=90)
        ax.set_xlim(-0.6, len(genes) - 0.4)
        if len(gene_sets) > 1:
            ax.set_title(set_name)
        ax.grid(False)

    axes[0, 0].set_yticks(range(len(groups)))
    axes[0, 0].set_yticklabels(groups)
    axes[0, 0].set_ylim(-0.6, len(groups) - 0.4)

    cbar = fig.colorbar(scatter, ax=axes[0].tolist(), shrink=0.6, pad=0.02)
    cbar.set_label(color.replace("_", " "))

    for frac in (0.25, 0.5, 1.0):
        axes[0, -1].scatter([], [], s=frac * max_dot_size, c="grey", label=f"{int(frac * 100)}%")
    axes[0, -1].legend(
        title="Fraction expressing",
        loc="upper left",
        bbox_to_anchor=(1.25, 1.0),
        frameon=False,
    )

    if title:
        fig.suptitle(title)
    return save_figure(fig, output_path, dpi=dpi)
