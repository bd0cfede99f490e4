"""
Empirical adjustment of enrichment results against pathway-specific nulls.

Each real pathway is compared only with the randomized versions of itself:
the random runs are pooled, grouped by ``pathway_id`` and every real
statistic is scored against its own group. Non-fatal conditions are
collected as ``Diagnostic`` events and returned with the adjusted table.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import polars as pl
from tqdm.auto import tqdm

from .schema import check_required_columns
from .stats import (
    benjamini_hochberg,
    empirical_pvalue,
    null_moments,
    standardised_effect,
    summarise_adjusted,
)

logger = logging.getLogger(__name__)

REAL_RUN_ID = 'real'

OUTPUT_COLUMNS = [
    'pathway_id', 'pathway_size', 'stat', 'empirical_p', 'fdr', 'z_score',
    'null_mean', 'null_sd', 'n_random_obs', 'tool_name',
]
PASSTHROUGH_COLUMNS = ['p', 'effect', 'se', 'tool_version', 'run_id']

DEFAULT_MIN_RANDOM_RUNS = 100
DEFAULT_MIN_NULL_OBSERVATIONS = 10

INSUFFICIENT_NULL = 'InsufficientNullWarning'
PATHWAY_DROPPED = 'PathwayDroppedWarning'
UNDEFINED_Z_SCORE = 'UndefinedZScoreWarning'
RUN_ID_MISMATCH = 'RunIdMismatchWarning'


class NoNullDataError(ValueError):
    """No random observations are available to build a null distribution."""


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal condition raised while adjusting."""

    kind: str
    message: str
    pathway_id: Optional[str] = None


@dataclass
class AdjustmentSummary:
    """Informational counters for one adjustment run."""

    n_pathways: int
    min_empirical_p: Optional[float]
    n_empirical_p_below_alpha: int
    n_fdr_below_alpha: int
    n_random_runs: int
    n_random_observations: int
    n_dropped: int
    alpha: float = 0.05

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class AdjustmentResult:
    """Adjusted table together with its summary and diagnostics."""

    table: pl.DataFrame
    summary: AdjustmentSummary
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def diagnostics_of(self, kind: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]

    def diagnostics_frame(self) -> pl.DataFrame:
        """Diagnostics as a table with ``kind``, ``pathway_id`` and ``message``."""
        return pl.DataFrame(
            {
                'kind': [d.kind for d in self.diagnostics],
                'pathway_id': [d.pathway_id for d in self.diagnostics],
                'message': [d.message for d in self.diagnostics],
            },
            schema={'kind': pl.Utf8, 'pathway_id': pl.Utf8, 'message': pl.Utf8},
        )


def _record(diagnostics: List[Diagnostic], kind: str, message: str,
            pathway_id: Optional[str] = None) -> None:
    logger.warning(message)
    diagnostics.append(Diagnostic(kind=kind, message=message, pathway_id=pathway_id))


def merge_random_tables(
    random_tables: Union[pl.DataFrame, Sequence[pl.DataFrame]]
) -> pl.DataFrame:
    """
    Merge random result tables into one pool of random observations.

    Rows labelled ``real`` are removed from the pool.

    Args:
        random_tables: One pre-merged table or a sequence of tables

    Returns:
        Pooled random results

    Raises:
        SchemaError: If any table lacks a required column
        NoNullDataError: If no tables are given or nothing remains after filtering
    """
    if isinstance(random_tables, pl.DataFrame):
        tables = [random_tables]
    else:
        tables = list(random_tables)

    if not tables:
        raise NoNullDataError(
            "No random result tables supplied; an empirical null cannot be built"
        )

    for i, table in enumerate(tables, start=1):
        check_required_columns(table, label=f"random results table {i}")

    pool = pl.concat(tables, how='diagonal_relaxed')
    pool = pool.with_columns(
        pl.col('pathway_id').cast(pl.Utf8),
        pl.col('run_id').cast(pl.Utf8),
        pl.col('stat').cast(pl.Float64, strict=False).fill_nan(None),
    ).filter(pl.col('run_id') != REAL_RUN_ID)

    if pool.height == 0:
        raise NoNullDataError(
            f"Random result tables contain no rows after removing run_id='{REAL_RUN_ID}'"
        )
    if pool['stat'].null_count() == pool.height:
        raise NoNullDataError("Random result tables contain no non-missing stat values")

    return pool


def build_null_distributions(pool: pl.DataFrame) -> Dict[str, np.ndarray]:
    """
    Group pooled random statistics by pathway.

    Missing statistics are ignored; the remaining values keep pool order.

    Args:
        pool: Pooled random results

    Returns:
        Mapping of pathway_id to its array of null statistics
    """
    grouped = (
        pool.select(
            pl.col('pathway_id').cast(pl.Utf8),
            pl.col('stat').cast(pl.Float64, strict=False).fill_nan(None),
        )
        .drop_nulls()
        .group_by('pathway_id', maintain_order=True)
        .agg(pl.col('stat'))
    )
    return {
        pathway_id: np.asarray(stats, dtype=np.float64)
        for pathway_id, stats in grouped.iter_rows()
    }


def adjust_pathways(
    real: pl.DataFrame,
    random_tables: Union[pl.DataFrame, Sequence[pl.DataFrame]],
    min_random_runs: int = DEFAULT_MIN_RANDOM_RUNS,
    min_null_observations: int = DEFAULT_MIN_NULL_OBSERVATIONS,
    alpha: float = 0.05,
    show_progress: bool = False
) -> AdjustmentResult:
    """
    Compute empirical p-values, z-scores and FDR for every real pathway.

    For pathway P with real statistic s and null N_P of size K:
    ``empirical_p = (1 + #{x in N_P : x >= s}) / (K + 1)`` and
    ``z_score = (s - mean(N_P)) / sd(N_P)`` when ``sd(N_P) > 0``.

    Args:
        real: Result table of the real run
        random_tables: Result tables of the random runs, or one merged pool
        min_random_runs: Distinct random runs below which a warning is raised
        min_null_observations: Per-pathway null size below which a warning is raised
        alpha: Threshold used by the summary counters
        show_progress: Display a progress bar over pathways

    Returns:
        AdjustmentResult with the table sorted by ``empirical_p``

    Raises:
        SchemaError: If the real or any random table lacks a required column
        NoNullDataError: If there are no random observations at all
    """
    check_required_columns(real, label='real results')
    pool = merge_random_tables(random_tables)
    diagnostics: List[Diagnostic] = []

    n_random_runs = pool['run_id'].n_unique()
    logger.info(f"Loaded {pool.height} pathway results from {n_random_runs} random runs")
    if n_random_runs < min_random_runs:
        _record(
            diagnostics, INSUFFICIENT_NULL,
            f"Only {n_random_runs} random runs found. "
            f"Recommend at least {min_random_runs} for stable empirical p-values."
        )

    nulls = build_null_distributions(pool)

    real = real.with_columns(pl.col('pathway_id').cast(pl.Utf8))
    is_real = pl.col('run_id').cast(pl.Utf8) == REAL_RUN_ID
    n_mismatched = real.height - real.filter(is_real).height
    if n_mismatched:
        _record(
            diagnostics, RUN_ID_MISMATCH,
            f"Expected run_id='{REAL_RUN_ID}' for all rows in real results; "
            f"excluding {n_mismatched} rows with another run_id"
        )
        real = real.filter(is_real)

    kept = np.zeros(real.height, dtype=bool)
    empirical_ps, z_scores, null_means, null_sds, n_obs = [], [], [], [], []
    n_dropped = 0

    rows = tqdm(
        real.select(
            pl.col('pathway_id'), pl.col('stat').cast(pl.Float64, strict=False)
        ).iter_rows(),
        total=real.height,
        desc="Adjusting pathways",
        disable=not show_progress,
    )
    for row_idx, (pathway_id, real_stat) in enumerate(rows):
        if real_stat is None or np.isnan(real_stat):
            n_dropped += 1
            _record(
                diagnostics, PATHWAY_DROPPED,
                f"Missing real stat for pathway: {pathway_id}", pathway_id
            )
            continue

        null_stats = nulls.get(pathway_id)
        if null_stats is None or len(null_stats) == 0:
            n_dropped += 1
            _record(
                diagnostics, PATHWAY_DROPPED,
                f"No random results found for pathway: {pathway_id}", pathway_id
            )
            continue

        n_null = len(null_stats)
        if n_null < min_null_observations:
            _record(
                diagnostics, INSUFFICIENT_NULL,
                f"Only {n_null} random results for pathway: {pathway_id}", pathway_id
            )

        null_mean, null_sd = null_moments(null_stats)
        z_score = standardised_effect(real_stat, null_mean, null_sd)
        if z_score is None:
            _record(
                diagnostics, UNDEFINED_Z_SCORE,
                f"Null distribution has no spread for pathway: {pathway_id}; z_score left unset",
                pathway_id
            )

        kept[row_idx] = True
        empirical_ps.append(empirical_pvalue(real_stat, null_stats))
        z_scores.append(z_score)
        null_means.append(null_mean)
        null_sds.append(None if np.isnan(null_sd) else null_sd)
        n_obs.append(n_null)

    adjusted = (
        real.filter(pl.Series(kept))
        .with_columns(
            pl.Series('empirical_p', empirical_ps, dtype=pl.Float64),
            pl.Series('z_score', z_scores, dtype=pl.Float64),
            pl.Series('null_mean', null_means, dtype=pl.Float64),
            pl.Series('null_sd', null_sds, dtype=pl.Float64),
            pl.Series('n_random_obs', n_obs, dtype=pl.Int64),
        )
        .sort('empirical_p', maintain_order=True)
    )
    adjusted = adjusted.with_columns(
        pl.Series('fdr', benjamini_hochberg(adjusted['empirical_p'].to_numpy()), dtype=pl.Float64)
    )

    columns = OUTPUT_COLUMNS + [col for col in PASSTHROUGH_COLUMNS if col in adjusted.columns]
    adjusted = adjusted.select(columns)
    logger.info(f"Successfully calculated empirical statistics for {adjusted.height} pathways")

    counters = summarise_adjusted(adjusted, alpha=alpha)
    summary = AdjustmentSummary(
        n_random_runs=n_random_runs,
        n_random_observations=int(sum(len(v) for v in nulls.values())),
        n_dropped=n_dropped,
        alpha=alpha,
        **counters,
    )
    return AdjustmentResult(table=adjusted, summary=summary, diagnostics=diagnostics)


def format_summary(summary: AdjustmentSummary) -> str:
    """Summary block reported after an adjustment run."""
    min_p = 'NA' if summary.min_empirical_p is None else f"{summary.min_empirical_p:.6g}"
    return "\n".join([
        "Summary Statistics",
        f"Total pathways analyzed: {summary.n_pathways}",
        f"Min empirical p-value: {min_p}",
        f"Pathways with p < {summary.alpha}: {summary.n_empirical_p_below_alpha}",
        f"Pathways with FDR < {summary.alpha}: {summary.n_fdr_below_alpha}",
        f"Random runs: {summary.n_random_runs}",
        f"Pathways dropped: {summary.n_dropped}",
    ])
