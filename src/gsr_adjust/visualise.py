"""
Diagnostic plots for empirically adjusted enrichment results.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import polars as pl
import matplotlib.pyplot as plt


def _safe_name(pathway_id: str) -> str:
    return re.sub(r'[^A-Za-z0-9._-]+', '_', str(pathway_id))


def plot_null_distribution(
    null_stats,
    real_stat: float,
    pathway_id: str,
    output_path: Union[str, Path],
    empirical_p: Optional[float] = None,
    bins: int = 30
) -> Path:
    """
    Histogram of a pathway's null statistics with the real statistic marked.

    Args:
        null_stats: Statistics of the pathway across random runs
        real_stat: Statistic of the pathway in the real run
        pathway_id: Pathway identifier used in the title and file name
        output_path: Directory to save the plot in
        empirical_p: Optional empirical p-value shown in the title
        bins: Number of histogram bins

    Returns:
        Path of the saved PNG
    """
    null_stats = np.asarray(null_stats, dtype=float)
    if len(null_stats) == 0:
        raise ValueError("Input data cannot be empty")

    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    plt.figure(figsize=(8, 5))
    plt.hist(null_stats, bins=bins, color="grey", alpha=0.7, label=f"Random runs (K={len(null_stats)})")
    plt.axvline(real_stat, color="red", linestyle="--", label=f"Real stat = {real_stat:.3g}")

    title = f"Null distribution: {pathway_id}"
    if empirical_p is not None:
        title += f" (empirical p = {empirical_p:.3g})"
    plt.title(title)
    plt.xlabel("stat")
    plt.ylabel("Frequency")
    plt.legend()
    plt.tight_layout()

    plot_file = output_path / f"null_{_safe_name(pathway_id)}.png"
    plt.savefig(plot_file, bbox_inches="tight")
    plt.close()
    return plot_file


def plot_empirical_pvalues(
    adjusted: pl.DataFrame,
    output_path: Union[str, Path],
    alpha: float = 0.05,
    bins: int = 20
) -> Path:
    """
    Histogram of empirical p-values with the significance threshold marked.

    A roughly flat histogram indicates a well-calibrated null.

    Returns:
        Path of the saved PNG
    """
    if adjusted.height == 0:
        raise ValueError("Input data cannot be empty")

    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    plt.figure(figsize=(8, 5))
    plt.hist(adjusted["empirical_p"].to_numpy(), bins=bins, range=(0, 1), color="steelblue", alpha=0.8)
    plt.axvline(alpha, color="red", linestyle="--", label=f"alpha = {alpha}")
    plt.title(f"Empirical p-values ({adjusted.height} pathways)")
    plt.xlabel("Empirical p-value")
    plt.ylabel("Frequency")
    plt.legend()
    plt.grid(True, linestyle="--", alpha=0.7)
    plt.tight_layout()

    plot_file = output_path / "empirical_pvalues.png"
    plt.savefig(plot_file, bbox_inches="tight")
    plt.close()
    return plot_file


def create_diagnostic_plots(
    adjusted: pl.DataFrame,
    nulls: Dict[str, np.ndarray],
    output_path: Union[str, Path],
    top_n: int = 10,
    alpha: float = 0.05
) -> List[Path]:
    """
    P-value histogram plus null-distribution plots for the top pathways.

    Args:
        adjusted: Adjusted table sorted by empirical p-value
        nulls: Mapping of pathway_id to null statistics
        output_path: Directory to save plots in
        top_n: Number of most significant pathways to plot
        alpha: Threshold marked on the p-value histogram

    Returns:
        Paths of every plot written
    """
    if adjusted.height == 0:
        return []

    plot_files = [plot_empirical_pvalues(adjusted, output_path, alpha=alpha)]
    for row in adjusted.head(top_n).iter_rows(named=True):
        null_stats = nulls.get(row["pathway_id"])
        if null_stats is None or len(null_stats) == 0:
            continue
        plot_files.append(plot_null_distribution(
            null_stats,
            row["stat"],
            row["pathway_id"],
            output_path,
            empirical_p=row["empirical_p"],
        ))
    return plot_files
