"""Test fixtures for openscpca-tools.

Provides mock data generators and test utilities.
"""

from .mock_adata import (
    DEFAULT_CELL_TYPES,
    create_cell_table,
    create_mock_adata,
    create_reference_profiles,
)

__all__ = [
    "DEFAULT_CELL_TYPES",
    "create_cell_table",
    "create_mock_adata",
    "create_reference_profiles",
]
