"""Export functions for annotation results."""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from openscpca_tools.io.tables import write_table

from .engine import AnnotationResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def export_annotations(
    result: AnnotationResult,
    output_tsv: PathLike,
    scores_path: Optional[PathLike] = None,
    summary_json: Optional[PathLike] = None,
) -> Dict[str, Path]:
    """Write annotation outputs.

    Parameters
    ----------
    result : AnnotationResult
        Annotation result
    output_tsv : PathLike
        Lightweight table with barcodes, labels, delta_next, pruned_labels
    scores_path : PathLike, optional
        Full cells x labels score table (``.tsv.gz`` recommended)
    summary_json : PathLike, optional
        Per-label counts and run provenance

    Returns
    -------
    Dict[str, Path]
        Output name -> path
    """
    paths = {"annotations": write_table(result.table, output_tsv)}

    if scores_path is not None:
        paths["scores"] = write_table(
            result.scores, scores_path, index=True, index_label="barcodes"
        )

    if summary_json is not None:
        summary_json = Path(summary_json)
        summary_json.parent.mkdir(parents=True, exist_ok=True)
        record = {
            "n_cells": int(len(result.table)),
            "n_pruned": result.n_pruned,
            "labels": json.loads(result.label_summary().to_json(orient="records")),
            "provenance": result.provenance,
        }
        with open(summary_json, "w") as f:
            json.dump(record, f, indent=2, default=str)
        paths["summary"] = summary_json

    logger.info("Exported annotations for %d cells to %s", len(result.table), output_tsv)
    return paths
