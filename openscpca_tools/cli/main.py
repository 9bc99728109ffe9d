"""Command-line interface for openscpca-tools.

Provides CLI commands for the analysis modules, data download and module runs.
"""

import functools
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from openscpca_tools import __version__


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("openscpca_tools")


def reports_errors(func):
    """Turn input and data errors into a clean CLI error and non-zero exit."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from openscpca_tools.data import DownloadError

        try:
            return func(*args, **kwargs)
        except KeyError as e:
            raise click.ClickException(str(e.args[0]) if e.args else repr(e)) from e
        except (FileNotFoundError, ValueError, DownloadError) as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def load_cells(path: str, barcode_column: str, columns: Tuple[str, ...] = ()):
    """Cell table from an H5AD (its ``obs``) or a TSV/CSV file."""
    from openscpca_tools.io import read_adata, read_cell_table, require_columns

    if Path(path).suffix.lower() == ".h5ad":
        obs = read_adata(path).obs
        require_columns(obs, list(columns), where=f"{path} obs")
        return obs
    return read_cell_table(path, barcode_column=barcode_column, label_columns=list(columns))


@click.group()
@click.version_option(version=__version__, prog_name="openscpca")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """openscpca: analysis tools for pediatric-cancer single-cell data.

    Examples:

        # Compare two labelings of the same cells
        openscpca compare -i cells.tsv --label-a singler_celltype --label-b cluster -o results/

        # Annotate cells against reference profiles
        openscpca classify -i SCPCL000118_processed_rna.h5ad -r profiles.tsv --output-tsv out.tsv

        # Download test data and run a module locally
        openscpca download --test-data --format AnnData
        openscpca run-module --config module.yaml
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Cell table (TSV/CSV) or AnnData file (.h5ad)")
@click.option("--label-a", required=True, help="First label column (rows of the matrix)")
@click.option("--label-b", required=True, multiple=True,
              help="Label column(s) to compare against; repeat for several")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Comparison configuration file (YAML)")
@click.option("--barcode-column", default="barcodes", help="Barcode column of a cell table")
@click.option("--na-label", default=None, help="Label for cells with no annotation")
@click.option("--drop-na", is_flag=True, help="Drop cells missing either label")
@click.option("--min-cells", type=int, default=None, help="Drop labels with fewer cells")
@click.option("--prefix", default="", help="Output file prefix")
@click.option("--no-plot", is_flag=True, help="Skip heatmap rendering")
@click.pass_context
@reports_errors
def compare(
    ctx: click.Context,
    input_path: str,
    label_a: str,
    label_b: Tuple[str, ...],
    output_path: str,
    config: Optional[str],
    barcode_column: str,
    na_label: Optional[str],
    drop_na: bool,
    min_cells: Optional[int],
    prefix: str,
    no_plot: bool,
) -> None:
    """Compare labelings with a Jaccard similarity matrix and heatmap."""
    logger = ctx.obj["logger"]

    from openscpca_tools.core.comparison import (
        ComparisonConfig,
        LabelComparisonEngine,
        export_comparison,
        export_comparisons,
    )

    cfg = ComparisonConfig.from_yaml(Path(config)) if config else ComparisonConfig()
    cfg.label_a = label_a
    cfg.label_b = label_b[0]
    if na_label is not None:
        cfg.na_label = na_label
    if drop_na:
        cfg.drop_na = True
    if min_cells is not None:
        cfg.min_cells = min_cells

    cells = load_cells(input_path, barcode_column, (label_a,) + tuple(label_b))
    logger.info("Loaded %d cells from %s", len(cells), input_path)

    engine = LabelComparisonEngine(cfg)
    if len(label_b) == 1:
        result = engine.run(cells)
        paths = export_comparison(result, Path(output_path), prefix=prefix, plot=not no_plot)
        click.echo(
            f"Compared {result.n_cells} cells: "
            f"{result.jaccard.shape[0]} x {result.jaccard.shape[1]} labels"
        )
        click.echo(f"Jaccard matrix saved to: {paths['jaccard']}")
    else:
        results = engine.run_many(cells, list(label_b))
        export_comparisons(results, Path(output_path), plot=not no_plot)
        click.echo(f"Compared {label_a} against {len(results)} labelings")
        click.echo(f"Outputs saved to: {output_path}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Cell table (TSV/CSV) or AnnData file (.h5ad)")
@click.option("--map", "-m", "map_paths", required=True, multiple=True, type=click.Path(exists=True),
              help="Harmonization map (YAML or TSV); give one per column or one for all")
@click.option("--column", "columns", required=True, multiple=True,
              help="Label column to harmonize; repeat for several")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output cell table (TSV)")
@click.option("--barcode-column", default="barcodes", help="Barcode column of a cell table")
@click.option("--consensus/--no-consensus", default=False,
              help="Add a consensus column across harmonized columns")
@click.option("--strategy", type=click.Choice(["all", "majority"]), default="all",
              help="Consensus strategy")
@click.option("--summary", "summary_path", type=click.Path(),
              help="Optional TSV counting original -> harmonized label pairs")
@click.pass_context
@reports_errors
def harmonize(
    ctx: click.Context,
    input_path: str,
    map_paths: Tuple[str, ...],
    columns: Tuple[str, ...],
    output_path: str,
    barcode_column: str,
    consensus: bool,
    strategy: str,
    summary_path: Optional[str],
) -> None:
    """Map label columns onto a shared vocabulary."""
    import pandas as pd

    from openscpca_tools.core.harmonization import (
        HarmonizationMap,
        consensus_labels,
        harmonize_labels,
        summarize_harmonization,
    )
    from openscpca_tools.io import write_table

    logger = ctx.obj["logger"]

    if len(map_paths) not in (1, len(columns)):
        raise click.BadParameter(
            f"Give one --map for all columns or one per column ({len(columns)})",
            param_hint="--map",
        )
    maps = [HarmonizationMap.load(p) for p in map_paths]
    if len(maps) == 1:
        maps = maps * len(columns)

    cells = load_cells(input_path, barcode_column, columns)
    harmonized_columns = []
    summaries = []
    for column, hmap in zip(columns, maps):
        cells = harmonize_labels(cells, column, hmap)
        harmonized_columns.append(f"{column}_harmonized")
        summary = summarize_harmonization(cells, column, f"{column}_harmonized")
        summary.insert(0, "column", column)
        summaries.append(summary)
        logger.info("Harmonized %s with %s", column, hmap.name or "map")

    if consensus:
        cells["consensus"] = consensus_labels(
            cells, harmonized_columns, unknown_label=maps[0].unknown_label, strategy=strategy
        )

    write_table(cells, output_path, index=True, index_label=barcode_column)
    if summary_path:
        write_table(pd.concat(summaries, ignore_index=True), summary_path)

    click.echo(f"Harmonized {len(columns)} column(s) for {len(cells)} cells")
    click.echo(f"Output saved to: {output_path}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Input AnnData file (.h5ad)")
@click.option("--reference", "-r", required=True, type=click.Path(exists=True),
              help="Genes x labels reference profile table (TSV/CSV)")
@click.option("--output-tsv", required=True, type=click.Path(),
              help="Output TSV with barcodes, labels, delta_next and pruned_labels")
@click.option("--output-scores", type=click.Path(), help="Optional full score table")
@click.option("--output-summary", type=click.Path(), help="Optional JSON summary")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Annotation configuration file (YAML)")
@click.option("--threads", type=int, default=None, help="Number of worker processes")
@click.option("--seed", type=int, default=None, help="Random seed")
@click.option("--symbol-column", default=None, help="adata.var column with gene symbols")
@click.pass_context
@reports_errors
def classify(
    ctx: click.Context,
    input_path: str,
    reference: str,
    output_tsv: str,
    output_scores: Optional[str],
    output_summary: Optional[str],
    config: Optional[str],
    threads: Optional[int],
    seed: Optional[int],
    symbol_column: Optional[str],
) -> None:
    """Annotate cells against reference profiles."""
    logger = ctx.obj["logger"]

    from openscpca_tools.core.annotation import (
        AnnotationConfig,
        AnnotationEngine,
        export_annotations,
        load_reference_profiles,
    )
    from openscpca_tools.io import read_adata

    cfg = AnnotationConfig.from_yaml(Path(config)) if config else AnnotationConfig()
    overrides = {"threads": threads, "seed": seed, "symbol_column": symbol_column}
    data = cfg.to_dict()
    data.update({k: v for k, v in overrides.items() if v is not None})
    cfg = AnnotationConfig.from_dict(data)

    adata = read_adata(input_path)
    logger.info("Loaded %d cells, %d genes", adata.n_obs, adata.n_vars)
    profiles = load_reference_profiles(reference)

    result = AnnotationEngine(cfg).run(adata, profiles)
    export_annotations(
        result,
        output_tsv=Path(output_tsv),
        scores_path=Path(output_scores) if output_scores else None,
        summary_json=Path(output_summary) if output_summary else None,
    )

    click.echo(f"Annotated {len(result.table)} cells ({result.n_pruned} pruned)")
    click.echo(f"Annotations saved to: {output_tsv}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Source AnnData file (.h5ad) with raw counts")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output AnnData file (.h5ad)")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Simulation configuration file (YAML)")
@click.option("--n-cells", type=int, default=None, help="Number of simulated cells")
@click.option("--seed", type=int, default=None, help="Random seed")
@click.option("--label-column", "label_columns", multiple=True,
              help="obs column to carry over; repeat for several")
@click.option("--permute-labels", is_flag=True, help="Sample label columns independently")
@click.option("--layer", default=None, help="Layer with raw counts (default: X)")
@click.pass_context
@reports_errors
def simulate(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    config: Optional[str],
    n_cells: Optional[int],
    seed: Optional[int],
    label_columns: Tuple[str, ...],
    permute_labels: bool,
    layer: Optional[str],
) -> None:
    """Simulate a test dataset shaped like a real library."""
    from openscpca_tools.core.simulation import (
        SimulationConfig,
        simulate_adata,
        simulation_summary,
    )
    from openscpca_tools.io import read_adata

    cfg = SimulationConfig.from_yaml(Path(config)) if config else SimulationConfig()
    if n_cells is not None:
        cfg.n_cells = n_cells
    if seed is not None:
        cfg.seed = seed
    if label_columns:
        cfg.label_columns = list(label_columns)
    if permute_labels:
        cfg.permute_labels = True
    if layer is not None:
        cfg.layer = layer
    if cfg.n_cells < 1:
        raise click.BadParameter("must be at least 1", param_hint="--n-cells")

    sim = simulate_adata(read_adata(input_path), cfg)
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    sim.write_h5ad(out)

    summary = simulation_summary(sim)
    click.echo(f"Simulated {summary['n_cells']} cells x {summary['n_genes']} genes")
    click.echo(f"Output saved to: {out}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Input AnnData file (.h5ad)")
@click.option("--groupby", "-g", required=True, help="obs column defining groups")
@click.option("--genes", default=None, help="Comma-separated marker genes")
@click.option("--markers", type=click.Path(exists=True),
              help="Marker file: YAML gene sets or a table with gene[,gene_set] columns")
@click.option("--layer", default=None, help="Expression layer (default: X)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output figure path")
@click.option("--table", "table_path", type=click.Path(), help="Optional TSV of dot statistics")
@click.option("--title", default=None, help="Figure title")
@click.pass_context
@reports_errors
def dotplot(
    ctx: click.Context,
    input_path: str,
    groupby: str,
    genes: Optional[str],
    markers: Optional[str],
    layer: Optional[str],
    output_path: str,
    table_path: Optional[str],
    title: Optional[str],
) -> None:
    """Plot marker-gene expression per group as a dot plot."""
    from openscpca_tools.core.exploration import (
        dotplot_table,
        load_marker_genes,
        plot_marker_dotplot,
    )
    from openscpca_tools.io import read_adata, write_table

    if bool(genes) == bool(markers):
        raise click.UsageError("Give exactly one of --genes or --markers")
    gene_sets = (
        load_marker_genes(markers)
        if markers
        else [g.strip() for g in genes.split(",") if g.strip()]
    )

    adata = read_adata(input_path)
    table = dotplot_table(adata, gene_sets, groupby=groupby, layer=layer)
    if table_path:
        write_table(table, table_path)
    path = plot_marker_dotplot(table, output_path, title=title)
    click.echo(f"Dot plot saved to: {path}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Input AnnData file (.h5ad)")
@click.option("--facet-by", required=True, help="obs column with one panel per value")
@click.option("--color-by", default=None, help="obs column colouring highlighted cells")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output figure path")
@click.option("--ncols", type=int, default=None, help="Panels per row")
@click.option("--compute-umap", is_flag=True, help="Compute UMAP if X_umap is missing")
@click.pass_context
@reports_errors
def umap(
    ctx: click.Context,
    input_path: str,
    facet_by: str,
    color_by: Optional[str],
    output_path: str,
    ncols: Optional[int],
    compute_umap: bool,
) -> None:
    """Plot a faceted UMAP, one panel per label."""
    from openscpca_tools.core.exploration import compute_umap_if_missing, plot_faceted_umap
    from openscpca_tools.io import read_adata

    adata = read_adata(input_path)
    if compute_umap:
        compute_umap_if_missing(adata)
    path = plot_faceted_umap(
        adata, facet_by=facet_by, color_by=color_by, output_path=output_path, ncols=ncols
    )
    click.echo(f"UMAP saved to: {path}")


@cli.command()
@click.option("--data-dir", type=click.Path(), default="data", help="Local data directory")
@click.option("--release", default=None, help="Release date (default: latest)")
@click.option("--format", "formats", type=click.Choice(["SCE", "AnnData"], case_sensitive=False),
              multiple=True, default=("SCE",), help="File format; repeat for both")
@click.option("--process-stage", "process_stages", multiple=True, default=("processed",),
              type=click.Choice(["unfiltered", "filtered", "processed"]),
              help="Library stage; repeat for several")
@click.option("--project", "projects", multiple=True, help="Project id; repeat for several")
@click.option("--test-data", is_flag=True, help="Download simulated test data")
@click.option("--metadata-only", is_flag=True, help="Only download metadata")
@click.option("--dryrun", is_flag=True, help="Show what would be downloaded")
@click.option("--profile", default=None, help="AWS CLI profile")
@click.pass_context
@reports_errors
def download(
    ctx: click.Context,
    data_dir: str,
    release: Optional[str],
    formats: Tuple[str, ...],
    process_stages: Tuple[str, ...],
    projects: Tuple[str, ...],
    test_data: bool,
    metadata_only: bool,
    dryrun: bool,
    profile: Optional[str],
) -> None:
    """Download a data release with the AWS CLI."""
    from openscpca_tools.data import DownloadOptions, download_data

    options = DownloadOptions(
        data_dir=Path(data_dir),
        release=release,
        formats=list(formats),
        process_stages=list(process_stages),
        projects=list(projects),
        test_data=test_data,
        metadata_only=metadata_only,
        dryrun=dryrun,
        profile=profile,
    )
    destination = download_data(options)
    click.echo(f"Data synced to: {destination}")


@cli.command("run-module")
@click.option("--config", "-c", required=True, type=click.Path(exists=True),
              help="Module run configuration file (YAML)")
@click.option("--start-step", help="Step to start from")
@click.option("--end-step", help="Step to end at")
@click.option("--dry-run", is_flag=True, help="Show execution plan without running")
@click.option("--force", is_flag=True, help="Ignore checkpoint and re-run all steps")
@click.option("--log-dir", type=click.Path(), default="logs", help="Directory for run logs")
@click.pass_context
@reports_errors
def run_module(
    ctx: click.Context,
    config: str,
    start_step: Optional[str],
    end_step: Optional[str],
    dry_run: bool,
    force: bool,
    log_dir: str,
) -> None:
    """Run an analysis module's steps locally."""
    from openscpca_tools.pipeline import ModuleConfig, ModuleRunner, RunLogger

    module_config = ModuleConfig(config)
    module_config.load()
    module_config.parse_steps()

    valid, errors = module_config.validate_dependencies()
    if not valid:
        for error in errors:
            click.echo(f"Error: {error}", err=True)
        sys.exit(1)

    log_level = "DEBUG" if ctx.obj.get("debug") else "INFO"
    run_logger = RunLogger(log_dir, log_level=log_level)
    run_logger.setup()
    try:
        exit_code = ModuleRunner(module_config, run_logger).run(
            start_step=start_step,
            end_step=end_step,
            dry_run=dry_run,
            force=force,
        )
    finally:
        run_logger.close()

    if exit_code == 0:
        click.echo("Module run completed successfully")
    else:
        click.echo(f"Module run failed with exit code {exit_code}", err=True)
        sys.exit(exit_code)


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
