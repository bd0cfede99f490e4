"""
Reading, discovering, standardizing and writing enrichment result tables.
"""

from typing import Dict, List, Optional, Sequence, Union
from pathlib import Path
import logging

import polars as pl

logger = logging.getLogger(__name__)

# Columns that must stay textual even when every value looks numeric
TEXT_COLUMNS = ('pathway_id', 'tool_name', 'run_id', 'tool_version', 'timestamp')
NULL_VALUES = ['NA', 'NaN', '']
DEFAULT_RANDOM_PATTERN = '*_standardized.tsv'

# MAGMA gene-set analysis output (.gsa.out) -> standardized schema
MAGMA_COLUMN_MAP = {
    'FULL_NAME': 'pathway_id',
    'NGENES': 'pathway_size',
    'BETA': ['stat', 'effect'],
    'P': 'p',
    'SE': 'se',
}


def _read_header(file_path: Path) -> List[str]:
    with open(file_path, 'r', encoding='utf-8-sig') as f:
        header = f.readline().rstrip('\r\n')
    return header.split('\t') if header else []


def load_result_table(file_path: Union[str, Path]) -> pl.DataFrame:
    """
    Load a standardized result table.

    Args:
        file_path: Path to a tab-delimited, UTF-8 file with a header row

    Returns:
        DataFrame with identifier columns kept as text
    """
    file_path = Path(file_path)
    header = _read_header(file_path)
    overrides = {col: pl.Utf8 for col in TEXT_COLUMNS if col in header}

    return pl.read_csv(
        file_path,
        separator='\t',
        has_header=True,
        schema_overrides=overrides,
        null_values=NULL_VALUES,
        infer_schema_length=None,
    )


def read_manifest(manifest_path: Union[str, Path]) -> List[Path]:
    """
    Read a manifest listing one random result file per line.

    Blank lines and lines starting with ``#`` are ignored. Relative paths are
    resolved against the manifest's own directory.

    Args:
        manifest_path: Path to the manifest file

    Returns:
        List of result file paths in manifest order
    """
    manifest_path = Path(manifest_path)
    base_dir = manifest_path.parent
    paths = []
    with open(manifest_path, 'r', encoding='utf-8') as f:
        for line in f:
            entry = line.strip()
            if not entry or entry.startswith('#'):
                continue
            path = Path(entry)
            if not path.is_absolute():
                path = base_dir / path
            paths.append(path)
    return paths


def discover_random_tables(
    random_dir: Optional[Union[str, Path]] = None,
    manifest: Optional[Union[str, Path]] = None,
    pattern: str = DEFAULT_RANDOM_PATTERN
) -> List[Path]:
    """
    Locate the random result tables for one adjustment run.

    An explicit manifest takes precedence over a directory listing.

    Args:
        random_dir: Directory searched recursively for ``pattern``
        manifest: File listing the random result tables
        pattern: Glob pattern for the directory listing

    Returns:
        Sorted (directory) or manifest-ordered list of file paths

    Raises:
        ValueError: If neither source is given
        FileNotFoundError: If the directory or a manifest entry is absent
    """
    if manifest is not None:
        paths = read_manifest(manifest)
        missing = [str(p) for p in paths if not p.is_file()]
        if missing:
            raise FileNotFoundError(
                f"Manifest {manifest} lists {len(missing)} missing files: {', '.join(missing[:5])}"
            )
        logger.info(f"Found {len(paths)} random result files in manifest {manifest}")
        return paths

    if random_dir is None:
        raise ValueError("Either a random results directory or a manifest is required")

    random_dir = Path(random_dir)
    if not random_dir.is_dir():
        raise FileNotFoundError(f"Random results directory not found: {random_dir}")

    paths = sorted(p for p in random_dir.rglob(pattern) if p.is_file())
    logger.info(f"Found {len(paths)} random result files in {random_dir} matching {pattern}")
    return paths


def load_random_tables(paths: Sequence[Union[str, Path]]) -> List[pl.DataFrame]:
    """
    Load random result tables, skipping files that cannot be read.

    Args:
        paths: Result file paths

    Returns:
        List of loaded tables, in input order
    """
    tables = []
    for path in paths:
        try:
            tables.append(load_result_table(path))
        except (OSError, UnicodeDecodeError, pl.exceptions.PolarsError) as e:
            logger.warning(f"Error reading file {path}: {e}")
    logger.debug(f"Loaded {len(tables)}/{len(paths)} random result tables")
    return tables


def standardise_results(
    raw: pl.DataFrame,
    column_map: Dict[str, Union[str, List[str]]],
    tool_name: str,
    run_id: str,
    tool_version: Optional[str] = None,
    invert_stat: bool = False
) -> pl.DataFrame:
    """
    Convert a tool's raw output into the standardized result schema.

    Args:
        raw: Tool output table
        column_map: Source column -> schema column (or list of schema columns)
        tool_name: Tool identifier stamped on every row
        run_id: ``real`` or ``random<k>``
        tool_version: Optional tool version stamped on every row
        invert_stat: Negate ``stat`` for tools where lower means more enriched

    Returns:
        DataFrame with schema columns in their standard order
    """
    missing = [col for col in column_map if col not in raw.columns]
    if missing:
        raise ValueError(f"Missing columns in {tool_name} output: {', '.join(missing)}")

    exprs = []
    for source, targets in column_map.items():
        if isinstance(targets, str):
            targets = [targets]
        for target in targets:
            expr = pl.col(source)
            if target == 'stat' and invert_stat:
                expr = -expr
            exprs.append(expr.alias(target))

    standardised = raw.select(exprs).with_columns(
        pl.col('pathway_id').cast(pl.Utf8),
        pl.lit(tool_name).alias('tool_name'),
        pl.lit(run_id).alias('run_id'),
    )
    if tool_version is not None:
        standardised = standardised.with_columns(pl.lit(tool_version).alias('tool_version'))

    order = ['pathway_id', 'pathway_size', 'stat', 'p', 'effect', 'se',
             'tool_name', 'tool_version', 'run_id']
    ordered = [col for col in order if col in standardised.columns]
    extra = [col for col in standardised.columns if col not in ordered]
    return standardised.select(ordered + extra)


def write_adjusted_table(df: pl.DataFrame, file_path: Union[str, Path]) -> Path:
    """
    Write an adjusted result table as tab-delimited text.

    Missing values are written as ``NA``.
    """
    file_path = Path(file_path)
    df.write_csv(file_path, separator='\t', null_value='NA')
    return file_path
