"""Command-line interface for openscpca-tools.

Example Usage
-------------
    # From command line:
    openscpca --help
    openscpca compare -i cells.tsv --label-a singler_celltype --label-b cluster -o results/
    openscpca classify -i library.h5ad -r profiles.tsv --output-tsv annotations.tsv
    openscpca run-module --config module.yaml
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
