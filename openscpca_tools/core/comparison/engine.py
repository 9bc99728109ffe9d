"""Label comparison engine.

This module provides the LabelComparisonEngine class that compares two
cell-type labelings of the same cells.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import pandas as pd

from .config import ComparisonConfig
from .jaccard import (
    best_matches,
    contingency_table,
    jaccard_from_counts,
    jaccard_long_table,
)

logger = logging.getLogger(__name__)


@dataclass
class ComparisonResult:
    """Result of comparing two labelings.

    Attributes
    ----------
    counts : pd.DataFrame
        Cell counts per (label_a, label_b) pair
    jaccard : pd.DataFrame
        Jaccard similarity matrix
    long : pd.DataFrame
        One row per label pair, sorted by similarity
    best : pd.DataFrame
        Best-matching label_b for each label_a
    config : ComparisonConfig
        Configuration used
    provenance : Dict[str, Any]
        Execution provenance
    """

    counts: pd.DataFrame
    jaccard: pd.DataFrame
    long: pd.DataFrame
    best: pd.DataFrame
    config: ComparisonConfig = field(default_factory=ComparisonConfig)
    provenance: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_cells(self) -> int:
        return int(self.counts.to_numpy().sum())

    def summary(self) -> Dict[str, Any]:
        """Headline numbers for the comparison."""
        return {
            "label_a": self.config.label_a,
            "label_b": self.config.label_b,
            "n_cells": self.n_cells,
            "n_labels_a": int(self.jaccard.shape[0]),
            "n_labels_b": int(self.jaccard.shape[1]),
            "mean_best_jaccard": float(self.best["jaccard"].mean()) if len(self.best) else 0.0,
            "best_matches": {
                str(label): {"label": str(row.best_match), "jaccard": round(float(row.jaccard), 4)}
                for label, row in self.best.iterrows()
            },
        }


class LabelComparisonEngine:
    """Compare two categorical labelings of the same cells.

    Parameters
    ----------
    config : ComparisonConfig, optional
        Configuration. Uses defaults if not provided.

    Example
    -------
    >>> engine = LabelComparisonEngine.from_columns("singler_celltype", "leiden")
    >>> result = engine.run(adata.obs)
    >>> export_comparison(result, "results/")
    """

    def __init__(self, config: Optional[ComparisonConfig] = None):
        self.config = config or ComparisonConfig()

    @classmethod
    def from_columns(cls, label_a: str, label_b: str, **kwargs) -> "LabelComparisonEngine":
        return cls(ComparisonConfig(label_a=label_a, label_b=label_b, **kwargs))

    def run(self, cells: pd.DataFrame) -> ComparisonResult:
        """Compare the configured label columns of a cell table.

        Parameters
        ----------
        cells : pd.DataFrame
            Cell table, e.g. ``adata.obs``

        Returns
        -------
        ComparisonResult
        """
        cfg = self.config
        logger.info("Comparing labelings '%s' and '%s'", cfg.label_a, cfg.label_b)

        counts = contingency_table(
            cells,
            cfg.label_a,
            cfg.label_b,
            na_label=cfg.na_label,
            drop_na=cfg.drop_na,
            min_cells=cfg.min_cells,
        )
        jaccard = jaccard_from_counts(counts)

        logger.info(
            "Compared %d cells: %d x %d labels",
            int(counts.to_numpy().sum()), jaccard.shape[0], jaccard.shape[1],
        )

        return ComparisonResult(
            counts=counts,
            jaccard=jaccard,
            long=jaccard_long_table(jaccard),
            best=best_matches(jaccard),
            config=cfg,
            provenance={
                "timestamp": datetime.now().isoformat(),
                "n_input_cells": int(len(cells)),
                "config": cfg.to_dict(),
            },
        )

    def run_many(self, cells: pd.DataFrame, references: list) -> Dict[str, ComparisonResult]:
        """Compare ``label_a`` against several label columns.

        Returns
        -------
        Dict[str, ComparisonResult]
            Reference column -> comparison result
        """
        results = {}
        for reference in references:
            engine = LabelComparisonEngine(
                ComparisonConfig(
                    label_a=self.config.label_a,
                    label_b=reference,
                    na_label=self.config.na_label,
                    drop_na=self.config.drop_na,
                    min_cells=self.config.min_cells,
                    heatmap=self.config.heatmap,
                )
            )
            results[reference] = engine.run(cells)
        return results
