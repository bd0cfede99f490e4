"""
Validation of standardized enrichment result tables.

Every table produced by an enrichment adapter must carry the columns below
before it can be used as the real run or as part of the random pool. The
checks are read-only and accumulate every violation so a single pass reports
everything that is wrong with a table.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

import polars as pl

REQUIRED_COLUMNS = ('pathway_id', 'pathway_size', 'stat', 'tool_name', 'run_id')
OPTIONAL_COLUMNS = ('p', 'effect', 'se', 'tool_version', 'seed', 'timestamp')
RECOMMENDED_COLUMNS = ('p', 'effect')

COLUMN_DESCRIPTIONS = {
    'pathway_id': 'Unique pathway identifier (text)',
    'pathway_size': 'Number of genes in pathway (integer >= 1)',
    'stat': 'Primary test statistic, higher = more enriched (numeric)',
    'tool_name': 'Tool identifier (text)',
    'run_id': "'real' or 'random1', 'random2', etc. (text)",
}

MISSING_COLUMNS = 'MissingColumns'
VALIDATION_FAILED = 'ValidationFailed'

# Violation messages are only expanded with examples up to this many keys
_MAX_EXAMPLES = 5


class SchemaError(ValueError):
    """Structural or type violation in a result table.

    Attributes:
        kind: ``MissingColumns`` or ``ValidationFailed``
        missing_columns: Required columns absent from the table
        violations: Every violation found, in check order
    """

    def __init__(self, kind: str, violations: Sequence[str],
                 missing_columns: Optional[Sequence[str]] = None,
                 label: Optional[str] = None):
        self.kind = kind
        self.violations = list(violations)
        self.missing_columns = list(missing_columns or [])
        self.label = label
        prefix = f"{label}: " if label else ""
        super().__init__(f"{prefix}{kind}: " + "; ".join(self.violations))


@dataclass
class ValidationSummary:
    """Counts describing a table that passed validation."""

    n_rows: int
    n_pathways: int
    run_ids: List[str]
    tool_names: List[str]
    optional_present: List[str] = field(default_factory=list)
    recommended_missing: List[str] = field(default_factory=list)


def _is_textual(dtype) -> bool:
    return dtype == pl.Utf8 or dtype == pl.Categorical or dtype == pl.Enum


def _is_numeric(dtype) -> bool:
    return dtype.is_numeric()


def _missing_mask(series: pl.Series) -> pl.Series:
    mask = series.is_null()
    if series.dtype.is_float():
        mask = mask | series.is_nan().fill_null(True)
    return mask


def check_required_columns(df: pl.DataFrame, label: Optional[str] = None) -> None:
    """
    Fail if any required column is absent.

    Args:
        df: Result table
        label: Optional name of the table used in the error message

    Raises:
        SchemaError: kind ``MissingColumns``, listing every missing column
    """
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise SchemaError(
            MISSING_COLUMNS,
            [f"Missing required columns: {', '.join(missing)}"],
            missing_columns=missing,
            label=label,
        )


def collect_violations(df: pl.DataFrame) -> List[str]:
    """Run every type and value check and return the violations found."""
    errors = []
    schema = df.schema

    if not _is_textual(schema['pathway_id']):
        errors.append(f"pathway_id must be character type (found {schema['pathway_id']})")

    duplicates = (
        df.group_by(['run_id', 'pathway_id'], maintain_order=True)
        .len()
        .filter(pl.col('len') > 1)
    )
    if duplicates.height > 0:
        examples = ', '.join(
            f"{row['run_id']}/{row['pathway_id']}"
            for row in duplicates.head(_MAX_EXAMPLES).iter_rows(named=True)
        )
        errors.append(
            f"Duplicate pathway_id found within run_id: {duplicates.height} duplicates "
            f"(e.g. {examples})"
        )

    if not _is_numeric(schema['pathway_size']):
        errors.append(f"pathway_size must be numeric (found {schema['pathway_size']})")
    else:
        sizes = df['pathway_size']
        n_small = int((sizes < 1).sum())
        if n_small:
            errors.append(f"pathway_size must be >= 1 ({n_small} rows below 1)")
        n_missing = int(_missing_mask(sizes).sum())
        if n_missing:
            errors.append(f"pathway_size contains missing values ({n_missing} rows)")

    if not _is_numeric(schema['stat']):
        errors.append(f"stat must be numeric (found {schema['stat']})")
    if df.height == 0 or bool(_missing_mask(df['stat']).all()):
        errors.append("stat column is all NA")

    for col in ('tool_name', 'run_id'):
        if not _is_textual(schema[col]):
            errors.append(f"{col} must be character type (found {schema[col]})")
        values = df[col].cast(pl.Utf8)
        n_empty = int((values.is_null() | (values.str.strip_chars() == '')).sum())
        if n_empty:
            errors.append(f"{col} contains empty values ({n_empty} rows)")

    if 'p' in df.columns:
        if not _is_numeric(schema['p']):
            errors.append(f"p must be numeric (found {schema['p']})")
        else:
            n_out = int(((df['p'] < 0) | (df['p'] > 1)).sum())
            if n_out:
                errors.append(f"p-values must be between 0 and 1 ({n_out} rows outside)")

    return errors


def validate_result_table(df: pl.DataFrame, label: Optional[str] = None) -> ValidationSummary:
    """
    Validate a result table against the standardized contract.

    Args:
        df: Result table
        label: Optional name of the table (e.g. its file path) for messages

    Returns:
        Summary of rows, pathways and runs in the table

    Raises:
        SchemaError: ``MissingColumns`` if required columns are absent,
            otherwise ``ValidationFailed`` with every violation found
    """
    check_required_columns(df, label=label)

    errors = collect_violations(df)
    if errors:
        raise SchemaError(VALIDATION_FAILED, errors, label=label)

    return ValidationSummary(
        n_rows=df.height,
        n_pathways=df['pathway_id'].n_unique(),
        run_ids=df['run_id'].cast(pl.Utf8).unique(maintain_order=True).to_list(),
        tool_names=df['tool_name'].cast(pl.Utf8).unique(maintain_order=True).to_list(),
        optional_present=[col for col in OPTIONAL_COLUMNS if col in df.columns],
        recommended_missing=[col for col in RECOMMENDED_COLUMNS if col not in df.columns],
    )


def validate_result_file(path: Union[str, Path]) -> ValidationSummary:
    """
    Load a tab-delimited result file and validate it.

    Raises:
        SchemaError: If the file is absent, unreadable, or fails validation
    """
    from .data import load_result_table

    path = Path(path)
    if not path.is_file():
        raise SchemaError(VALIDATION_FAILED, [f"File does not exist: {path}"], label=str(path))
    try:
        df = load_result_table(path)
    except (OSError, UnicodeDecodeError, pl.exceptions.PolarsError) as e:
        raise SchemaError(
            VALIDATION_FAILED, [f"Could not read file as TSV: {e}"], label=str(path)
        ) from e

    return validate_result_table(df, label=str(path))


def format_validation_report(summary: ValidationSummary, label: Optional[str] = None) -> str:
    """Human-readable report for a table that passed validation."""
    lines = ["VALIDATION PASSED"]
    if label:
        lines.append(f"File: {label}")
    lines.append(f"Rows: {summary.n_rows}")
    lines.append(f"Pathways: {summary.n_pathways}")
    lines.append(f"Run(s): {', '.join(summary.run_ids)}")
    if summary.tool_names:
        lines.append(f"Tool: {summary.tool_names[0]}")
    if summary.optional_present:
        lines.append(f"Optional columns present: {', '.join(summary.optional_present)}")
    if summary.recommended_missing:
        lines.append(
            f"Recommended columns missing: {', '.join(summary.recommended_missing)} "
            "(not required, but helpful for interpretation)"
        )
    return "\n".join(lines)


def format_schema_error(error: SchemaError) -> str:
    """Human-readable report listing every violation of a failed table."""
    lines = ["VALIDATION FAILED"]
    if error.label:
        lines.append(f"File: {error.label}")
    lines.append("Errors found:")
    lines.extend(f"  - {violation}" for violation in error.violations)
    if error.kind == MISSING_COLUMNS:
        lines.append("Required columns:")
        lines.extend(f"  - {col}: {desc}" for col, desc in COLUMN_DESCRIPTIONS.items())
    return "\n".join(lines)
