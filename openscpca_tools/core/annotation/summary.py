"""Turn a cell x label score table into a lightweight annotation table.

For every cell:

- ``labels``: the best-scoring reference label
- ``delta_next``: best score minus second-best score
- ``pruned_labels``: ``labels``, or NA when the assignment looks unreliable

An assignment is pruned when the gap between the cell's best score and its
median score is a low outlier among cells given the same label (more than
``nmads`` MADs below that label's median gap), or when ``delta_next`` or
the gap fall below fixed minimums.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from openscpca_tools.utils.stats import lower_mad_outliers

logger = logging.getLogger(__name__)

ANNOTATION_COLUMNS = ["barcodes", "labels", "delta_next", "pruned_labels"]


def compute_deltas(scores: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Best label index, delta_next and delta_med for every cell.

    ``delta_next`` is NaN when there is only one label.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray, np.ndarray]
        (best_idx, delta_next, delta_med)
    """
    values = scores.to_numpy(dtype=float)
    n_cells, n_labels = values.shape
    best_idx = values.argmax(axis=1)
    best = values[np.arange(n_cells), best_idx]

    if n_labels > 1:
        second = np.partition(values, n_labels - 2, axis=1)[:, n_labels - 2]
        delta_next = best - second
    else:
        delta_next = np.full(n_cells, np.nan)

    delta_med = best - np.median(values, axis=1)
    return best_idx, delta_next, delta_med


def prune_assignments(
    labels: pd.Series,
    delta_med: np.ndarray,
    delta_next: np.ndarray,
    nmads: float = 3.0,
    min_diff_med: Optional[float] = None,
    min_diff_next: float = 0.0,
) -> np.ndarray:
    """Boolean mask of assignments to prune.

    Parameters
    ----------
    labels : pd.Series
        Assigned label per cell
    delta_med : np.ndarray
        Best score minus median score per cell
    delta_next : np.ndarray
        Best score minus second-best score per cell
    nmads : float
        MAD threshold for the per-label outlier test
    min_diff_med : float, optional
        Prune when delta_med is below this value
    min_diff_next : float
        Prune when delta_next is below this value (NaN never prunes)
    """
    prune = np.zeros(len(labels), dtype=bool)
    label_values = labels.to_numpy()

    for label in pd.unique(label_values):
        mask = label_values == label
        prune[mask] |= lower_mad_outliers(delta_med[mask], nmads=nmads)

    if min_diff_med is not None:
        prune |= delta_med < min_diff_med
    with np.errstate(invalid="ignore"):
        prune |= np.nan_to_num(delta_next, nan=np.inf) < min_diff_next
    return prune


def summarize_scores(
    scores: pd.DataFrame,
    nmads: float = 3.0,
    min_diff_med: Optional[float] = None,
    min_diff_next: float = 0.0,
) -> pd.DataFrame:
    """Build the lightweight annotation table from a score table.

    Parameters
    ----------
    scores : pd.DataFrame
        Cells x labels scores, indexed by barcode
    nmads, min_diff_med, min_diff_next
        Pruning thresholds, see :func:`prune_assignments`

    Returns
    -------
    pd.DataFrame
        Columns ``barcodes``, ``labels``, ``delta_next``, ``pruned_labels``.

    Raises
    ------
    ValueError
        If the score table has no labels.
    """
    if scores.shape[1] == 0:
        raise ValueError("Score table has no label columns")
    if scores.empty:
        return pd.DataFrame(columns=ANNOTATION_COLUMNS)

    best_idx, delta_next, delta_med = compute_deltas(scores)
    labels = pd.Series(scores.columns[best_idx].to_numpy(), index=scores.index)

    prune = prune_assignments(
        labels,
        delta_med,
        delta_next,
        nmads=nmads,
        min_diff_med=min_diff_med,
        min_diff_next=min_diff_next,
    )

    pruned = labels.astype(object).copy()
    pruned.loc[prune] = np.nan

    logger.info(
        "Assigned %d cells to %d labels; pruned %d (%.1f%%)",
        len(labels), labels.nunique(), int(prune.sum()), 100.0 * prune.mean(),
    )

    return pd.DataFrame({
        "barcodes": scores.index.astype(str),
        "labels": labels.to_numpy(),
        "delta_next": delta_next,
        "pruned_labels": pruned.to_numpy(),
    })


def label_summary(table: pd.DataFrame) -> pd.DataFrame:
    """Cells per label before and after pruning.

    Returns
    -------
    pd.DataFrame
        Columns ``label``, ``n_cells``, ``n_pruned``, ``median_delta_next``.
    """
    grouped = table.groupby("labels", sort=True)
    summary = pd.DataFrame({
        "n_cells": grouped.size(),
        "n_pruned": grouped["pruned_labels"].apply(lambda s: int(s.isna().sum())),
        "median_delta_next": grouped["delta_next"].median(),
    })
    return summary.rename_axis("label").reset_index()
