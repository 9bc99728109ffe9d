"""openscpca-tools: shared helpers for OpenScPCA analysis modules.

This package collects the logic that analysis modules over Single-cell
Pediatric Cancer Atlas (ScPCA) data keep re-implementing:

- Comparing two cell-type labelings with Jaccard similarity heatmaps
- Harmonizing module-specific labels into a shared vocabulary
- Scoring cells against reference profiles and exporting light annotations
- Simulating small AnnData test datasets from real libraries
- Marker-gene dot plots and faceted UMAPs
- Downloading data releases and running a module against test data

Example usage:
    >>> from openscpca_tools.core.comparison import LabelComparisonEngine
    >>>
    >>> engine = LabelComparisonEngine.from_columns("singler_label", "cellassign_label")
    >>> result = engine.run(adata.obs)
    >>> result.jaccard.round(2)
"""

__version__ = "0.1.0"
