"""Utility functions for openscpca-tools.

Provides robust statistics used across modules.
"""

from .stats import (
    lower_mad_outliers,
    scaled_mad,
)

__all__ = [
    "lower_mad_outliers",
    "scaled_mad",
]
