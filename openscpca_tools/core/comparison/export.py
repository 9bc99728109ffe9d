"""Export functions for label comparison results."""

import json
import logging
from pathlib import Path
from typing import Dict

from openscpca_tools.io.tables import ensure_output_dir, write_table

from .engine import ComparisonResult
from .heatmap import plot_jaccard_heatmap, plot_jaccard_heatmaps

logger = logging.getLogger(__name__)


def export_comparison(
    result: ComparisonResult,
    output_dir: Path,
    prefix: str = "",
    plot: bool = True,
) -> Dict[str, Path]:
    """Write comparison tables, summary JSON and heatmap.

    Parameters
    ----------
    result : ComparisonResult
        Comparison result
    output_dir : Path
        Output directory
    prefix : str
        File prefix
    plot : bool
        Also render the Jaccard heatmap

    Returns
    -------
    Dict[str, Path]
        Output name -> file path
    """
    output_dir = ensure_output_dir(output_dir)
    stem = f"{prefix}_" if prefix else ""

    paths = {
        "jaccard": write_table(
            result.jaccard, output_dir / f"{stem}jaccard_matrix.tsv", index=True
        ),
        "counts": write_table(
            result.counts, output_dir / f"{stem}label_counts.tsv", index=True
        ),
        "long": write_table(result.long, output_dir / f"{stem}jaccard_long.tsv"),
    }

    summary_path = output_dir / f"{stem}comparison_summary.json"
    with open(summary_path, "w") as f:
        json.dump({**result.summary(), "provenance": result.provenance}, f, indent=2, default=str)
    paths["summary"] = summary_path

    if plot:
        hm = result.config.heatmap
        paths["heatmap"] = plot_jaccard_heatmap(
            result.jaccard,
            output_path=output_dir / f"{stem}jaccard_heatmap.{hm.file_format}",
            title=f"{result.config.label_a} vs {result.config.label_b}",
            cmap=hm.cmap,
            annotate=hm.annotate,
            fmt=hm.fmt,
            figsize=hm.figsize,
            dpi=hm.dpi,
        )

    logger.info("Exported comparison outputs to %s", output_dir)
    return paths


def export_comparisons(
    results: Dict[str, ComparisonResult],
    output_dir: Path,
    plot: bool = True,
) -> Dict[str, Dict[str, Path]]:
    """Export several comparisons plus one combined heatmap."""
    output_dir = ensure_output_dir(output_dir)
    paths = {
        name: export_comparison(result, output_dir, prefix=name, plot=False)
        for name, result in results.items()
    }
    if plot and results:
        file_format = next(iter(results.values())).config.heatmap.file_format
        combined = plot_jaccard_heatmaps(
            {name: result.jaccard for name, result in results.items()},
            output_dir / f"jaccard_heatmaps.{file_format}",
        )
        paths["combined"] = {"heatmap": combined}
    return paths
