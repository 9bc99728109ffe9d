"""Consensus labels across harmonized labelings."""

from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np
import pandas as pd

from openscpca_tools.io.tables import require_columns

from .mapping import DEFAULT_UNKNOWN_LABEL

logger = logging.getLogger(__name__)

CONSENSUS_STRATEGIES = ("all", "majority")


def consensus_labels(
    df: pd.DataFrame,
    columns: Sequence[str],
    unknown_label: str = DEFAULT_UNKNOWN_LABEL,
    strategy: str = "all",
) -> pd.Series:
    """Combine harmonized label columns into one consensus label per cell.

    Parameters
    ----------
    df : pd.DataFrame
        Cell table with harmonized label columns
    columns : Sequence[str]
        Harmonized label columns (at least two)
    unknown_label : str
        Label for cells without consensus. Cells where any input is missing
        count that input as ``unknown_label``.
    strategy : str
        ``all``: every column must carry the same known label.
        ``majority``: a known label carried by more than half the columns.

    Returns
    -------
    pd.Series
        Consensus label per cell, named ``consensus``.

    Raises
    ------
    ValueError
        If fewer than two columns are given or the strategy is unknown.
    """
    columns = list(columns)
    if len(columns) < 2:
        raise ValueError("Consensus needs at least two label columns")
    if strategy not in CONSENSUS_STRATEGIES:
        raise ValueError(f"Unknown consensus strategy '{strategy}', expected one of {CONSENSUS_STRATEGIES}")
    require_columns(df, columns, where="cell table")

    labels = df[columns].astype(object).fillna(unknown_label).astype(str).to_numpy()
    n_cols = labels.shape[1]

    if strategy == "all":
        first = labels[:, 0]
        agree = (labels == first[:, None]).all(axis=1) & (first != unknown_label)
        consensus = np.where(agree, first, unknown_label)
    else:
        consensus = np.empty(labels.shape[0], dtype=object)
        for i, row in enumerate(labels):
            known = row[row != unknown_label]
            consensus[i] = unknown_label
            if known.size == 0:
                continue
            values, counts = np.unique(known, return_counts=True)
            top = counts.argmax()
            if counts[top] * 2 > n_cols and (counts == counts[top]).sum() == 1:
                consensus[i] = values[top]

    result = pd.Series(consensus, index=df.index, name="consensus").astype(str)
    n_known = int((result != unknown_label).sum())
    logger.info(
        "Consensus (%s) assigned %d/%d cells (%.1f%%)",
        strategy, n_known, len(result), 100.0 * n_known / max(len(result), 1),
    )
    return result


def consensus_reference(
    df: pd.DataFrame,
    columns: List[str],
    unknown_label: str = DEFAULT_UNKNOWN_LABEL,
    strategy: str = "all",
) -> pd.DataFrame:
    """Table of every observed label combination and its consensus.

    Useful as a lookup to review which combinations produced which
    consensus label.

    Returns
    -------
    pd.DataFrame
        One row per distinct combination of ``columns`` with ``consensus``
        and ``n_cells``, sorted by descending ``n_cells``.
    """
    require_columns(df, columns, where="cell table")
    combos = df[columns].astype(object).fillna(unknown_label).astype(str)
    combos["consensus"] = consensus_labels(combos, columns, unknown_label, strategy).to_numpy()
    table = (
        combos.groupby(columns + ["consensus"])
        .size()
        .rename("n_cells")
        .reset_index()
    )
    return table.sort_values(["n_cells"] + columns, ascending=[False] + [True] * len(columns)).reset_index(drop=True)


def agreement_rate(
    df: pd.DataFrame,
    column_a: str,
    column_b: str,
    unknown_label: str = DEFAULT_UNKNOWN_LABEL,
) -> float:
    """Fraction of cells with a known label in both columns that agree.

    Returns NaN when no cell has a known label in both columns.
    """
    require_columns(df, [column_a, column_b], where="cell table")
    a = df[column_a].astype(object).fillna(unknown_label).astype(str)
    b = df[column_b].astype(object).fillna(unknown_label).astype(str)
    known = (a != unknown_label) & (b != unknown_label)
    if not known.any():
        return float("nan")
    return float((a[known] == b[known]).mean())
