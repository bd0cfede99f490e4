"""
Statistical kernels for pathway-specific empirical adjustment.
"""

from typing import Dict, Optional, Tuple

import numba as nb
import numpy as np
import polars as pl
from statsmodels.stats.multitest import multipletests


#  Core numba-optimised functions for the per-pathway inner loops

@nb.njit
def _count_greater_equal(observed_stat, null_stats):
    """Count null statistics that are greater than or equal to the observed one."""
    count = 0
    for i in range(len(null_stats)):
        if null_stats[i] >= observed_stat:
            count += 1
    return count

@nb.njit
def _mean(arr):
    """Calculate mean of array using Numba"""
    if len(arr) == 0:
        return np.nan
    return np.sum(arr) / len(arr)

@nb.njit
def _sample_sd(arr):
    """Sample standard deviation (N-1 divisor); NaN below two observations"""
    n = len(arr)
    if n < 2:
        return np.nan
    mean = np.sum(arr) / n
    sq_diff = 0.0
    for i in range(n):
        diff = arr[i] - mean
        sq_diff += diff * diff
    return np.sqrt(sq_diff / (n - 1))


def _as_float_array(values) -> np.ndarray:
    return np.ascontiguousarray(values, dtype=np.float64)


def count_greater_equal(observed_stat: float, null_stats) -> int:
    """
    Count how many null statistics are >= the observed statistic.

    Ties count against the observed statistic, so coarse-grained tools that
    report the same score for real and random runs are treated conservatively.

    Args:
        observed_stat: Statistic from the real run
        null_stats: Statistics of the same pathway across random runs

    Returns:
        Number of null statistics greater than or equal to ``observed_stat``
    """
    return int(_count_greater_equal(float(observed_stat), _as_float_array(null_stats)))


def empirical_pvalue(observed_stat: float, null_stats) -> float:
    """
    Permutation p-value ``(1 + c) / (K + 1)``.

    ``c`` is the inclusive exceedance count and ``K`` the number of null
    observations, so the smallest attainable value is ``1 / (K + 1)``.

    Args:
        observed_stat: Statistic from the real run
        null_stats: Null distribution for the pathway

    Returns:
        Empirical p-value in ``[1 / (K + 1), 1]``
    """
    n_null = len(null_stats)
    if n_null == 0:
        raise ValueError("Null statistics array cannot be empty")

    exceedances = count_greater_equal(observed_stat, null_stats)
    return (1 + exceedances) / (n_null + 1)


def null_moments(null_stats) -> Tuple[float, float]:
    """
    Mean and sample standard deviation of a null distribution.

    Returns:
        Tuple of (mean, sd); sd is NaN when fewer than two observations exist
    """
    arr = _as_float_array(null_stats)
    return float(_mean(arr)), float(_sample_sd(arr))


def standardised_effect(observed_stat: float, null_mean: float, null_sd: float) -> Optional[float]:
    """
    Z-score of the observed statistic against its null.

    Returns:
        ``(observed - mean) / sd``, or None when the null has no spread
    """
    # NaN compares False, so a single-observation null also lands here
    if not null_sd > 0:
        return None
    return float((observed_stat - null_mean) / null_sd)


def benjamini_hochberg(p_values) -> np.ndarray:
    """
    Benjamini-Hochberg adjusted p-values.

    Args:
        p_values: Array of p-values, in any order

    Returns:
        Adjusted values in the input order, clipped to [0, 1]
    """
    p_values = _as_float_array(p_values)
    if len(p_values) == 0:
        return np.array([], dtype=np.float64)

    _, pvals_corrected, _, _ = multipletests(p_values, method='fdr_bh')
    return np.clip(pvals_corrected, 0.0, 1.0)


def summarise_adjusted(adjusted: pl.DataFrame, alpha: float = 0.05) -> Dict[str, object]:
    """
    Informational counters for an adjusted table.

    Args:
        adjusted: Table with ``empirical_p`` and ``fdr`` columns
        alpha: Significance threshold for the counts

    Returns:
        Dictionary with pathway count, minimum empirical p and threshold counts
    """
    if adjusted.height == 0:
        return {
            'n_pathways': 0,
            'min_empirical_p': None,
            'n_empirical_p_below_alpha': 0,
            'n_fdr_below_alpha': 0,
        }

    return {
        'n_pathways': adjusted.height,
        'min_empirical_p': float(adjusted['empirical_p'].min()),
        'n_empirical_p_below_alpha': int((adjusted['empirical_p'] < alpha).sum()),
        'n_fdr_below_alpha': int((adjusted['fdr'] < alpha).sum()),
    }
