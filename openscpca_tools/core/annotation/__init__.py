"""Reference-based annotation module.

Scores query cells against reference label profiles and exports a
lightweight annotation table with the best label, the gap to the next
label (``delta_next``) and a pruned label that is NA for unreliable
assignments.

Example Usage
-------------
    >>> from openscpca_tools.core.annotation import (
    ...     AnnotationConfig,
    ...     AnnotationEngine,
    ...     export_annotations,
    ...     load_reference_profiles,
    ... )
    >>> profiles = load_reference_profiles("reference_profiles.tsv")
    >>> engine = AnnotationEngine(AnnotationConfig(threads=4, seed=2025))
    >>> result = engine.run(adata, profiles)
    >>> export_annotations(result, "annotations.tsv", scores_path="scores.tsv.gz")
"""

from .config import AnnotationConfig, SCORING_METHODS
from .genes import convert_ids_to_symbols
from .scoring import build_reference_profiles, load_reference_profiles, score_cells
from .summary import (
    ANNOTATION_COLUMNS,
    compute_deltas,
    label_summary,
    prune_assignments,
    summarize_scores,
)
from .engine import AnnotationEngine, AnnotationResult
from .export import export_annotations

__all__ = [
    # Config
    "AnnotationConfig",
    "SCORING_METHODS",
    # Genes
    "convert_ids_to_symbols",
    # Scoring
    "build_reference_profiles",
    "load_reference_profiles",
    "score_cells",
    # Summary
    "ANNOTATION_COLUMNS",
    "compute_deltas",
    "label_summary",
    "prune_assignments",
    "summarize_scores",
    # Engine
    "AnnotationEngine",
    "AnnotationResult",
    # Export
    "export_annotations",
]
