"""
GSR-Adjust
==========

Pathway-specific empirical significance for gene-set enrichment results.
"""

from .adjust import (
    AdjustmentResult as AdjustmentResult,
    AdjustmentSummary as AdjustmentSummary,
    Diagnostic as Diagnostic,
    NoNullDataError as NoNullDataError,
    adjust_pathways as adjust_pathways,
    build_null_distributions as build_null_distributions,
    merge_random_tables as merge_random_tables,
)
from .config import AdjustmentConfig
from .data import (
    discover_random_tables as discover_random_tables,
    load_random_tables as load_random_tables,
    load_result_table as load_result_table,
    standardise_results as standardise_results,
    write_adjusted_table as write_adjusted_table,
)
from .pipeline import EmpiricalAdjustmentPipeline
from .schema import (
    SchemaError as SchemaError,
    ValidationSummary as ValidationSummary,
    validate_result_file as validate_result_file,
    validate_result_table as validate_result_table,
)
from .stats import (
    benjamini_hochberg as benjamini_hochberg,
    empirical_pvalue as empirical_pvalue,
)
from .utils import setup_logging as setup_logging, ensure_dir as ensure_dir

__version__ = "0.1.0"

__all__ = [
    "AdjustmentConfig",
    "AdjustmentResult",
    "AdjustmentSummary",
    "Diagnostic",
    "EmpiricalAdjustmentPipeline",
    "NoNullDataError",
    "SchemaError",
    "ValidationSummary",
    "adjust_pathways",
    "benjamini_hochberg",
    "build_null_distributions",
    "discover_random_tables",
    "empirical_pvalue",
    "ensure_dir",
    "load_random_tables",
    "load_result_table",
    "merge_random_tables",
    "setup_logging",
    "standardise_results",
    "validate_result_file",
    "validate_result_table",
    "write_adjusted_table",
]
