"""Tests for the empirical adjustment engine."""

import math

import numpy as np
import polars as pl
import pytest

from gsr_adjust.adjust import (
    INSUFFICIENT_NULL,
    OUTPUT_COLUMNS,
    PATHWAY_DROPPED,
    RUN_ID_MISMATCH,
    UNDEFINED_Z_SCORE,
    NoNullDataError,
    adjust_pathways,
    build_null_distributions,
    format_summary,
    merge_random_tables,
)
from gsr_adjust.schema import MISSING_COLUMNS, SchemaError


@pytest.fixture
def random_pool(make_table):
    """Three random runs for GO:1 with stats 1.0, 3.0 and 1.5."""
    return [
        make_table('random1', {'GO:1': 1.0}),
        make_table('random2', {'GO:1': 3.0}),
        make_table('random3', {'GO:1': 1.5}),
    ]


def test_worked_example(make_table, random_pool):
    """Real stat 2.0 against null [1.0, 3.0, 1.5]."""
    result = adjust_pathways(make_table('real', {'GO:1': 2.0}), random_pool)
    row = result.table.row(0, named=True)

    assert result.table.height == 1
    assert row['pathway_id'] == 'GO:1'
    assert row['stat'] == 2.0
    assert row['empirical_p'] == pytest.approx(0.5)
    assert row['null_mean'] == pytest.approx(1.8333333, rel=1e-6)
    assert row['null_sd'] == pytest.approx(1.040833, rel=1e-5)
    assert row['z_score'] == pytest.approx(0.160, abs=1e-3)
    assert row['n_random_obs'] == 3
    assert row['fdr'] == pytest.approx(0.5)
    assert row['tool_name'] == 'magma'


def test_output_columns(make_table, random_pool):
    """Core columns come first, followed by optional columns of the real table."""
    real = make_table('real', {'GO:1': 2.0}, p=[0.01], effect=[0.3], tool_version=['1.10'])
    result = adjust_pathways(real, random_pool)

    assert result.table.columns == OUTPUT_COLUMNS + ['p', 'effect', 'tool_version', 'run_id']
    assert result.table['p'].to_list() == [0.01]


def test_pathway_absent_from_random_runs_is_dropped(make_table, random_pool):
    """A real pathway with no null observations is excluded, others survive."""
    real = make_table('real', {'GO:1': 2.0, 'GO:2': 5.0})
    result = adjust_pathways(real, random_pool)

    assert result.table['pathway_id'].to_list() == ['GO:1']
    dropped = result.diagnostics_of(PATHWAY_DROPPED)
    assert len(dropped) == 1
    assert dropped[0].pathway_id == 'GO:2'
    assert result.summary.n_dropped == 1
    assert result.summary.n_pathways == 1


def test_constant_null_leaves_z_score_unset(make_table):
    """Zero-variance null: z_score unset, empirical_p still computed."""
    pool = [make_table(f'random{k}', {'GO:1': 2.0}) for k in range(1, 4)]
    result = adjust_pathways(make_table('real', {'GO:1': 2.0}), pool)
    row = result.table.row(0, named=True)

    assert row['null_sd'] == 0.0
    assert row['z_score'] is None
    # Ties count against the real statistic
    assert row['empirical_p'] == pytest.approx(1.0)
    undefined = result.diagnostics_of(UNDEFINED_Z_SCORE)
    assert [d.pathway_id for d in undefined] == ['GO:1']


def test_single_observation_null(make_table):
    """One null observation gives a p-value but no spread."""
    result = adjust_pathways(
        make_table('real', {'GO:1': 2.0}),
        [make_table('random1', {'GO:1': 1.0})],
    )
    row = result.table.row(0, named=True)

    assert row['empirical_p'] == pytest.approx(0.5)
    assert row['null_sd'] is None
    assert row['z_score'] is None


def test_no_random_tables_is_fatal(make_table):
    """The method is undefined without null observations."""
    with pytest.raises(NoNullDataError):
        adjust_pathways(make_table('real', {'GO:1': 2.0}), [])


def test_pool_of_only_real_rows_is_fatal(make_table):
    """Rows labelled real are removed from the pool before use."""
    with pytest.raises(NoNullDataError):
        adjust_pathways(
            make_table('real', {'GO:1': 2.0}),
            [make_table('real', {'GO:1': 1.0})],
        )


def test_missing_columns_abort(make_table, random_pool):
    """Missing required columns on either input are fatal."""
    with pytest.raises(SchemaError) as excinfo:
        adjust_pathways(make_table('real', {'GO:1': 2.0}).drop('tool_name'), random_pool)
    assert excinfo.value.kind == MISSING_COLUMNS
    assert excinfo.value.missing_columns == ['tool_name']

    broken_pool = random_pool + [make_table('random4', {'GO:1': 1.0}).drop('stat')]
    with pytest.raises(SchemaError) as excinfo:
        adjust_pathways(make_table('real', {'GO:1': 2.0}), broken_pool)
    assert excinfo.value.missing_columns == ['stat']


def test_real_rows_in_random_pool_are_ignored(make_table, random_pool):
    """Stray real rows in the random pool do not enter the null."""
    pool = random_pool + [make_table('real', {'GO:1': 100.0})]
    result = adjust_pathways(make_table('real', {'GO:1': 2.0}), pool)

    assert result.table['n_random_obs'].to_list() == [3]
    assert result.table['empirical_p'].to_list() == pytest.approx([0.5])
    assert result.summary.n_random_runs == 3


def test_missing_null_values_are_ignored(make_table, random_pool):
    """NA stats in random tables do not count as null observations."""
    pool = random_pool + [make_table('random4', {'GO:1': None})]
    result = adjust_pathways(make_table('real', {'GO:1': 2.0}), pool)

    assert result.table['n_random_obs'].to_list() == [3]
    assert result.table['empirical_p'].to_list() == pytest.approx([0.5])


def test_non_real_rows_in_real_table(make_table, random_pool):
    """Rows of the real table not labelled real are excluded with a warning."""
    real = pl.concat([
        make_table('real', {'GO:1': 2.0}),
        make_table('random9', {'GO:2': 2.0}),
    ])
    result = adjust_pathways(real, random_pool)

    assert result.table['pathway_id'].to_list() == ['GO:1']
    assert len(result.diagnostics_of(RUN_ID_MISMATCH)) == 1


def test_insufficient_null_warnings(make_table, random_pool):
    """Few random runs and small per-pathway nulls are warnings only."""
    result = adjust_pathways(make_table('real', {'GO:1': 2.0}), random_pool)
    insufficient = result.diagnostics_of(INSUFFICIENT_NULL)

    assert len(insufficient) == 2
    assert insufficient[0].pathway_id is None
    assert 'Only 3 random runs found' in insufficient[0].message
    assert insufficient[1].pathway_id == 'GO:1'

    result = adjust_pathways(
        make_table('real', {'GO:1': 2.0}), random_pool,
        min_random_runs=3, min_null_observations=3,
    )
    assert result.diagnostics == []


def test_sorted_by_empirical_p_with_monotone_fdr(make_table):
    """Output is sorted by empirical_p, FDR >= p and non-decreasing."""
    rng = np.random.default_rng(11)
    pathways = [f'PW{i:02d}' for i in range(30)]
    pool = [
        make_table(f'random{k}', {pid: float(rng.normal()) for pid in pathways})
        for k in range(1, 51)
    ]
    real = make_table('real', {pid: float(rng.normal(loc=i / 10)) for i, pid in enumerate(pathways)})
    table = adjust_pathways(real, pool).table

    p = table['empirical_p'].to_numpy()
    fdr = table['fdr'].to_numpy()
    k = table['n_random_obs'].to_numpy()
    assert table.height == 30
    assert np.all(np.diff(p) >= 0)
    assert np.all(fdr >= p)
    assert np.all(np.diff(fdr) >= 0)
    assert np.all((p >= 1 / (k + 1)) & (p <= 1))


def test_ties_keep_input_order(make_table):
    """Pathways with equal p-values keep their real-table order."""
    pool = [make_table(f'random{k}', {'B': 0.0, 'A': 0.0, 'C': 0.0}) for k in range(1, 4)]
    real = make_table('real', {'B': 1.0, 'A': 1.0, 'C': -1.0})
    table = adjust_pathways(real, pool).table

    assert table['pathway_id'].to_list() == ['B', 'A', 'C']


def test_feeding_output_back_reproduces_pvalues(make_table):
    """Adjusting the adjusted output again yields identical empirical p-values."""
    rng = np.random.default_rng(5)
    pathways = [f'GO:{i}' for i in range(10)]
    pool = [
        make_table(f'random{k}', {pid: float(rng.gamma(2.0)) for pid in pathways})
        for k in range(1, 21)
    ]
    real = make_table('real', {pid: float(rng.gamma(2.5)) for pid in pathways})
    first = adjust_pathways(real, pool).table

    again = adjust_pathways(
        first.select(['pathway_id', 'pathway_size', 'stat', 'tool_name', 'run_id']),
        pool,
    ).table

    assert again['pathway_id'].to_list() == first['pathway_id'].to_list()
    assert again['empirical_p'].to_list() == first['empirical_p'].to_list()


def test_merged_pool_accepted(make_table, random_pool):
    """A single pre-merged pool gives the same result as separate tables."""
    merged = pl.concat(random_pool)
    separate = adjust_pathways(make_table('real', {'GO:1': 2.0}), random_pool).table
    pooled = adjust_pathways(make_table('real', {'GO:1': 2.0}), merged).table

    assert pooled.equals(separate)


def test_build_null_distributions(make_table):
    """Nulls are grouped by pathway in pool order."""
    pool = merge_random_tables([
        make_table('random1', {'GO:1': 1.0, 'GO:2': 5.0}),
        make_table('random2', {'GO:1': 2.0}),
        make_table('random3', {'GO:2': None, 'GO:1': 3.0}),
    ])
    nulls = build_null_distributions(pool)

    assert set(nulls) == {'GO:1', 'GO:2'}
    assert nulls['GO:1'].tolist() == [1.0, 2.0, 3.0]
    assert nulls['GO:2'].tolist() == [5.0]


def test_summary_and_diagnostics_frame(make_table, random_pool):
    """Summary counters and the diagnostics table."""
    real = make_table('real', {'GO:1': 2.0, 'GO:2': 1.0})
    result = adjust_pathways(real, random_pool, alpha=0.05)

    assert result.summary.n_pathways == 1
    assert result.summary.min_empirical_p == pytest.approx(0.5)
    assert result.summary.n_empirical_p_below_alpha == 0
    assert result.summary.n_fdr_below_alpha == 0
    assert result.summary.n_random_observations == 3

    frame = result.diagnostics_frame()
    assert frame.columns == ['kind', 'pathway_id', 'message']
    assert frame.height == len(result.diagnostics)

    text = format_summary(result.summary)
    assert 'Total pathways analyzed: 1' in text
    assert 'Min empirical p-value: 0.5' in text


def test_missing_real_stat_drops_pathway(make_table, random_pool):
    """A real pathway without a statistic cannot be compared."""
    real = make_table('real', {'GO:1': None})
    result = adjust_pathways(real, random_pool)

    assert result.table.height == 0
    assert result.summary.min_empirical_p is None
    assert len(result.diagnostics_of(PATHWAY_DROPPED)) == 1
