"""Table and AnnData I/O for openscpca-tools.

Cell tables are flat TSV/CSV files with one row per cell barcode. The
delimiter is chosen from the file suffix so module outputs written as
``.tsv``, ``.tsv.gz`` or ``.csv`` can be read back without extra flags.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_BARCODE_COLUMN = "barcodes"


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at path if it does not exist and return it."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def _delimiter_for(path: Path) -> str:
    suffixes = [s.lower() for s in path.suffixes]
    if ".csv" in suffixes:
        return ","
    return "\t"


def require_file(path: PathLike, description: str = "Input file") -> Path:
    """Return path as a Path, raising FileNotFoundError if it is missing."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"{description} does not exist: {file_path}")
    return file_path


def require_columns(df: pd.DataFrame, columns: Iterable[str], where: str = "table") -> None:
    """Raise KeyError naming every column of ``columns`` missing from df.

    Parameters
    ----------
    df : pd.DataFrame
        Table to check.
    columns : Iterable[str]
        Required column names.
    where : str
        Description of the table used in the error message.
    """
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise KeyError(f"Columns {missing} not found in {where}")


def read_table(path: PathLike, **kwargs) -> pd.DataFrame:
    """Read a TSV or CSV table, choosing the delimiter from the suffix."""
    table_path = require_file(path, "Table")
    return pd.read_csv(table_path, sep=_delimiter_for(table_path), **kwargs)


def read_cell_table(
    path: PathLike,
    barcode_column: str = DEFAULT_BARCODE_COLUMN,
    label_columns: Optional[List[str]] = None,
) -> pd.DataFrame:
    """Read a cell-level annotation table indexed by barcode.

    Parameters
    ----------
    path : PathLike
        TSV/CSV file with one row per cell.
    barcode_column : str
        Column holding cell barcodes; becomes the index.
    label_columns : List[str], optional
        Columns that must be present. They are read as strings so that
        numeric cluster ids are treated as categories.

    Returns
    -------
    pd.DataFrame
        Cell table indexed by barcode.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    KeyError
        If the barcode column or any label column is missing.
    ValueError
        If the table is empty or barcodes are duplicated.
    """
    dtype = {col: str for col in (label_columns or [])}
    df = read_table(path, dtype=dtype)
    if df.empty:
        raise ValueError(f"Cell table {path} is empty")

    require_columns(df, [barcode_column] + list(label_columns or []), where=str(path))

    if df[barcode_column].duplicated().any():
        n_dup = int(df[barcode_column].duplicated().sum())
        raise ValueError(f"Cell table {path} has {n_dup} duplicated barcodes")

    df[barcode_column] = df[barcode_column].astype(str)
    return df.set_index(barcode_column)


def write_table(
    df: pd.DataFrame,
    path: PathLike,
    *,
    index: bool = False,
    index_label: Optional[str] = None,
) -> Path:
    """Write a DataFrame as TSV (or CSV for ``.csv`` paths), creating parents.

    Missing values are written as ``NA`` so R-side readers pick them up.
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(
        output_path,
        sep=_delimiter_for(output_path),
        index=index,
        index_label=index_label,
        na_rep="NA",
    )
    logger.debug("Wrote %d rows to %s", len(df), output_path)
    return output_path


def read_adata(path: PathLike):
    """Read an H5AD file into an AnnData object.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    import anndata as ad

    h5ad_path = require_file(path, "AnnData file")
    adata = ad.read_h5ad(h5ad_path)
    logger.info("Loaded %s: %d cells, %d genes", h5ad_path.name, adata.n_obs, adata.n_vars)
    return adata
