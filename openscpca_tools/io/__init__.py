"""I/O utilities for openscpca-tools.

Provides logging, TSV/CSV table I/O, and AnnData loading.
"""

from .logging import close_logger, get_logger, get_timestamped_log_path, log_json, log_yaml
from .tables import (
    DEFAULT_BARCODE_COLUMN,
    ensure_output_dir,
    read_adata,
    read_cell_table,
    read_table,
    require_columns,
    require_file,
    write_table,
)

__all__ = [
    # Logging
    "close_logger",
    "get_logger",
    "get_timestamped_log_path",
    "log_json",
    "log_yaml",
    # Tables
    "DEFAULT_BARCODE_COLUMN",
    "ensure_output_dir",
    "read_adata",
    "read_cell_table",
    "read_table",
    "require_columns",
    "require_file",
    "write_table",
]
