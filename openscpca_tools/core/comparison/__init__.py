"""Label comparison module.

Compares two categorical cell-type labelings of the same cells with
Jaccard similarity and renders the result as a heatmap.

Example Usage
-------------
    >>> from openscpca_tools.core.comparison import (
    ...     LabelComparisonEngine,
    ...     export_comparison,
    ... )
    >>> engine = LabelComparisonEngine.from_columns("singler_celltype", "cellassign_celltype")
    >>> result = engine.run(adata.obs)
    >>> export_comparison(result, "results/comparison")
"""

from .config import ComparisonConfig, HeatmapConfig
from .jaccard import (
    best_matches,
    compute_jaccard_matrix,
    contingency_table,
    jaccard_from_counts,
    jaccard_long_table,
    prepare_labels,
)
from .heatmap import plot_jaccard_heatmap, plot_jaccard_heatmaps
from .engine import ComparisonResult, LabelComparisonEngine
from .export import export_comparison, export_comparisons

__all__ = [
    # Config
    "ComparisonConfig",
    "HeatmapConfig",
    # Jaccard
    "best_matches",
    "compute_jaccard_matrix",
    "contingency_table",
    "jaccard_from_counts",
    "jaccard_long_table",
    "prepare_labels",
    # Plots
    "plot_jaccard_heatmap",
    "plot_jaccard_heatmaps",
    # Engine
    "ComparisonResult",
    "LabelComparisonEngine",
    # Export
    "export_comparison",
    "export_comparisons",
]
