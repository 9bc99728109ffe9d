"""Label harmonization module.

Maps labels produced by different annotation methods onto a shared
vocabulary and combines harmonized labelings into consensus labels.

Example Usage
-------------
    >>> from openscpca_tools.core.harmonization import (
    ...     HarmonizationMap,
    ...     harmonize_labels,
    ...     consensus_labels,
    ... )
    >>> hmap = HarmonizationMap.load("label_map.tsv")
    >>> obs = harmonize_labels(adata.obs, "singler_celltype", hmap)
    >>> obs = harmonize_labels(obs, "cellassign_celltype", hmap)
    >>> obs["consensus"] = consensus_labels(
    ...     obs, ["singler_celltype_harmonized", "cellassign_celltype_harmonized"]
    ... )
"""

from .mapping import (
    DEFAULT_UNKNOWN_LABEL,
    HarmonizationMap,
    harmonize_labels,
    normalize_label,
    summarize_harmonization,
)
from .consensus import (
    CONSENSUS_STRATEGIES,
    agreement_rate,
    consensus_labels,
    consensus_reference,
)

__all__ = [
    # Mapping
    "DEFAULT_UNKNOWN_LABEL",
    "HarmonizationMap",
    "harmonize_labels",
    "normalize_label",
    "summarize_harmonization",
    # Consensus
    "CONSENSUS_STRATEGIES",
    "agreement_rate",
    "consensus_labels",
    "consensus_reference",
]
