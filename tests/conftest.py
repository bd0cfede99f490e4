"""Shared fixtures for the test suite."""

import os

os.environ.setdefault("MPLBACKEND", "Agg")

import polars as pl
import pytest


def build_table(run_id, stats, tool_name="magma", sizes=None, **extra):
    """Build a standardized result table from a pathway_id -> stat mapping."""
    ids = list(stats)
    data = {
        "pathway_id": ids,
        "pathway_size": [(sizes or {}).get(pid, 10) for pid in ids],
        "stat": [stats[pid] for pid in ids],
        "tool_name": [tool_name] * len(ids),
        "run_id": [run_id] * len(ids),
    }
    data.update(extra)
    return pl.DataFrame(data, schema_overrides={"stat": pl.Float64})


@pytest.fixture
def make_table():
    """Factory for standardized result tables."""
    return build_table


@pytest.fixture
def write_table(tmp_path):
    """Write a table as tab-delimited text under tmp_path and return its path."""
    def _write(table, name, subdir=None):
        directory = tmp_path / subdir if subdir else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        table.write_csv(path, separator="\t")
        return path
    return _write
