"""CLI entry point for the annotation module.

Usage:
    python -m openscpca_tools.core.annotation --help

Example:
    python -m openscpca_tools.core.annotation \\
        --input data/current/SCPCP000004/SCPCS000101/SCPCL000118_processed_rna.h5ad \\
        --reference references/reference_profiles.tsv \\
        --output-tsv results/SCPCL000118_annotations.tsv \\
        --output-scores results/SCPCL000118_scores.tsv.gz \\
        --threads 4 \\
        --seed 2025
"""

import argparse
import logging
import sys
from pathlib import Path

from openscpca_tools.core.annotation.config import AnnotationConfig
from openscpca_tools.core.annotation.engine import AnnotationEngine
from openscpca_tools.core.annotation.export import export_annotations
from openscpca_tools.core.annotation.scoring import load_reference_profiles
from openscpca_tools.io.logging import close_logger, get_logger, log_json, log_yaml
from openscpca_tools.io.tables import read_adata, require_file

DEFAULT_LOG_DIR = Path("logs")
LOG_FILENAME = "annotation.log"
RUNS_FILENAME = "annotation_runs.jsonl"


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Annotate an AnnData object against reference profiles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--input",
        type=Path,
        required=True,
        help="Input AnnData (.h5ad) to annotate",
    )
    parser.add_argument(
        "--reference",
        type=Path,
        required=True,
        help="Genes x labels reference profile table (TSV/CSV)",
    )
    parser.add_argument(
        "--output-tsv",
        type=Path,
        required=True,
        help="Output TSV with barcodes, labels, delta_next and pruned_labels",
    )
    parser.add_argument(
        "--output-scores",
        type=Path,
        help="Optional output table with the full score matrix",
    )
    parser.add_argument(
        "--output-summary",
        type=Path,
        help="Optional JSON summary of label counts and run settings",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML configuration; command-line values take precedence",
    )
    parser.add_argument(
        "--threads",
        type=int,
        default=None,
        help="Number of worker processes (default: 4)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed (default: 2025)",
    )
    parser.add_argument(
        "--symbol-column",
        type=str,
        default=None,
        help="adata.var column with gene symbols (default: gene_symbol)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=DEFAULT_LOG_DIR,
        help=f"Directory for log files (default: {DEFAULT_LOG_DIR})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AnnotationConfig:
    """Merge YAML configuration with command-line overrides."""
    config = AnnotationConfig.from_yaml(args.config) if args.config else AnnotationConfig()
    overrides = {
        "threads": args.threads,
        "seed": args.seed,
        "symbol_column": args.symbol_column,
    }
    data = config.to_dict()
    data.update({k: v for k, v in overrides.items() if v is not None})
    return AnnotationConfig.from_dict(data)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logger, log_path = get_logger(
        name="annotation",
        log_path=Path(args.log_dir) / LOG_FILENAME,
        level=log_level,
        console=True,
    )
    logger.info("Log file: %s", log_path)

    require_file(args.input, "Input AnnData file")
    require_file(args.reference, "Reference profile file")
    config = build_config(args)
    log_yaml(log_path, {"annotation_config": config.to_dict()}, logger=logger)

    adata = read_adata(args.input)
    profiles = load_reference_profiles(args.reference)

    engine = AnnotationEngine(config)
    result = engine.run(adata, profiles)
    export_annotations(
        result,
        output_tsv=args.output_tsv,
        scores_path=args.output_scores,
        summary_json=args.output_summary,
    )

    logger.info(
        "Annotated %d cells (%d pruned); wrote %s",
        len(result.table), result.n_pruned, args.output_tsv,
    )
    log_json(
        Path(args.log_dir) / RUNS_FILENAME,
        {
            "input": args.input,
            "reference": args.reference,
            "output_tsv": args.output_tsv,
            "n_cells": len(result.table),
            "n_pruned": result.n_pruned,
            "seed": config.seed,
        },
    )
    close_logger(logger)
    return 0


if __name__ == "__main__":
    sys.exit(main())
