"""Jaccard similarity between two categorical labelings.

For a label ``a`` of labeling A and a label ``b`` of labeling B, with
``A_a`` the set of cells labeled ``a`` and ``B_b`` the set labeled ``b``::

    J(a, b) = |A_a & B_b| / |A_a | B_b|

Both labelings must annotate the same cells, so the whole matrix follows
from the contingency table: the intersection is the cell count and the
union is row total + column total - count.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import pandas as pd

from openscpca_tools.io.tables import require_columns

logger = logging.getLogger(__name__)


def _ordered_labels(values: pd.Series, na_label: Optional[str]) -> List[str]:
    """Sorted unique labels with the NA label, if present, last."""
    labels = sorted(values.unique(), key=str)
    if na_label is not None and na_label in labels:
        labels.remove(na_label)
        labels.append(na_label)
    return labels


def prepare_labels(
    df: pd.DataFrame,
    label_a: str,
    label_b: str,
    na_label: str = "Unknown",
    drop_na: bool = False,
    min_cells: int = 0,
) -> pd.DataFrame:
    """Return a two-column string table ready for comparison.

    Parameters
    ----------
    df : pd.DataFrame
        Cell table (e.g. ``adata.obs``) with both label columns.
    label_a, label_b : str
        Label columns to compare. They may be the same column.
    na_label : str
        Replacement for missing labels when ``drop_na`` is False.
    drop_na : bool
        Drop cells missing either label.
    min_cells : int
        Drop cells whose label (in either column) has fewer cells.

    Returns
    -------
    pd.DataFrame
        Columns ``label_a`` and ``label_b`` holding strings.

    Raises
    ------
    KeyError
        If a label column is missing.
    ValueError
        If no cells remain.
    """
    require_columns(df, [label_a, label_b], where="cell table")
    if df.empty:
        raise ValueError("Cannot compare labelings of an empty cell table")

    labels = pd.DataFrame(
        {
            "label_a": df[label_a].astype(object),
            "label_b": df[label_b].astype(object),
        },
        index=df.index,
    )

    if drop_na:
        before = len(labels)
        labels = labels.dropna()
        if len(labels) < before:
            logger.info("Dropped %d cells with missing labels", before - len(labels))
    else:
        labels = labels.fillna(na_label)
    labels = labels.astype(str)

    if min_cells > 0:
        for col in ("label_a", "label_b"):
            counts = labels[col].value_counts()
            rare = counts[counts < min_cells].index
            if len(rare):
                logger.info(
                    "Dropping %d %s labels with fewer than %d cells: %s",
                    len(rare), col, min_cells, list(rare),
                )
                labels = labels[~labels[col].isin(rare)]

    if labels.empty:
        raise ValueError("No cells left to compare after filtering labels")
    return labels


def contingency_table(
    df: pd.DataFrame,
    label_a: str,
    label_b: str,
    na_label: str = "Unknown",
    drop_na: bool = False,
    min_cells: int = 0,
) -> pd.DataFrame:
    """Count cells for every pair of labels.

    Returns
    -------
    pd.DataFrame
        Rows are labels of ``label_a``, columns labels of ``label_b``.
        The axis names are the source column names.
    """
    labels = prepare_labels(df, label_a, label_b, na_label, drop_na, min_cells)

    counts = pd.crosstab(labels["label_a"].to_numpy(), labels["label_b"].to_numpy())
    rows = _ordered_labels(labels["label_a"], na_label)
    cols = _ordered_labels(labels["label_b"], na_label)
    counts = counts.reindex(index=rows, columns=cols, fill_value=0)
    counts.index.name = label_a
    counts.columns.name = label_b
    return counts


def jaccard_from_counts(counts: pd.DataFrame) -> pd.DataFrame:
    """Convert a contingency table into a Jaccard similarity matrix."""
    values = counts.to_numpy(dtype=float)
    row_totals = values.sum(axis=1, keepdims=True)
    col_totals = values.sum(axis=0, keepdims=True)
    union = row_totals + col_totals - values

    with np.errstate(divide="ignore", invalid="ignore"):
        jaccard = np.where(union > 0, values / union, 0.0)

    return pd.DataFrame(jaccard, index=counts.index.copy(), columns=counts.columns.copy())


def compute_jaccard_matrix(
    df: pd.DataFrame,
    label_a: str,
    label_b: str,
    na_label: str = "Unknown",
    drop_na: bool = False,
    min_cells: int = 0,
) -> pd.DataFrame:
    """Compute the Jaccard similarity matrix between two labelings.

    Parameters
    ----------
    df : pd.DataFrame
        Cell table with both label columns.
    label_a : str
        Labeling shown on the rows.
    label_b : str
        Labeling shown on the columns.
    na_label, drop_na, min_cells
        See :func:`prepare_labels`.

    Returns
    -------
    pd.DataFrame
        Values in [0, 1].

    Examples
    --------
    >>> obs = pd.DataFrame({"a": ["T", "T", "B"], "b": ["x", "x", "y"]})
    >>> float(compute_jaccard_matrix(obs, "a", "b").loc["T", "x"])
    1.0
    """
    counts = contingency_table(df, label_a, label_b, na_label, drop_na, min_cells)
    return jaccard_from_counts(counts)


def jaccard_long_table(matrix: pd.DataFrame) -> pd.DataFrame:
    """Reshape a Jaccard matrix to one row per label pair.

    Returns
    -------
    pd.DataFrame
        Columns ``label_a``, ``label_b``, ``jaccard``, sorted by descending
        similarity.
    """
    long = (
        matrix.rename_axis(index="label_a", columns="label_b")
        .stack()
        .rename("jaccard")
        .reset_index()
    )
    return long.sort_values(
        ["jaccard", "label_a", "label_b"], ascending=[False, True, True]
    ).reset_index(drop=True)


def best_matches(matrix: pd.DataFrame) -> pd.DataFrame:
    """Find the best-matching column label for every row label.

    Ties go to the first column in matrix order.

    Returns
    -------
    pd.DataFrame
        Indexed by row label, with ``best_match`` and ``jaccard`` columns.
    """
    if matrix.empty:
        return pd.DataFrame(columns=["best_match", "jaccard"])

    values = matrix.to_numpy()
    best_idx = values.argmax(axis=1)
    result = pd.DataFrame(
        {
            "best_match": matrix.columns[best_idx].to_numpy(),
            "jaccard": values[np.arange(len(values)), best_idx],
        },
        index=matrix.index.copy(),
    )
    return result
