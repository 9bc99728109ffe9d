"""Robust statistics used for annotation quality checks.

The MAD here follows the R ``mad()`` convention (scaled by 1.4826) so
thresholds expressed as "number of MADs" match values used by R modules.
"""

from __future__ import annotations

from typing import Iterable, Union

import numpy as np
from scipy.stats import median_abs_deviation

ArrayLike = Union[Iterable[float], np.ndarray]


def _to_clean_array(values: ArrayLike) -> np.ndarray:
    """Convert input to a float array containing only finite values."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return arr
    return arr[np.isfinite(arr)]


def scaled_mad(values: ArrayLike) -> float:
    """Median absolute deviation scaled to be comparable to a standard deviation.

    Returns NaN for empty input.
    """
    arr = _to_clean_array(values)
    if arr.size == 0:
        return float("nan")
    return float(median_abs_deviation(arr, scale="normal"))


def lower_mad_outliers(values: ArrayLike, nmads: float = 3.0) -> np.ndarray:
    """Flag values more than ``nmads`` scaled MADs below the median.

    Only the lower tail is tested. Non-finite values are never flagged. With a
    MAD of zero the threshold is the median itself, so any value strictly
    below it is flagged.

    Parameters
    ----------
    values : ArrayLike
        Input values.
    nmads : float
        Number of MADs below the median beyond which a value is an outlier.

    Returns
    -------
    np.ndarray
        Boolean mask, True for outliers.
    """
    arr = np.asarray(list(values), dtype=float)
    flags = np.zeros(arr.shape, dtype=bool)
    mask = np.isfinite(arr)
    if not mask.any():
        return flags

    clean = arr[mask]
    threshold = np.median(clean) - nmads * scaled_mad(clean)
    flags[mask] = clean < threshold
    return flags
