#!/usr/bin/env python3
"""
Command line interface for GSR empirical adjustment.

    gsr-adjust validate results_standardized.tsv [...]
    gsr-adjust adjust config.toml [overrides]
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import polars as pl
import tomli

from .config import AdjustmentConfig
from .pipeline import EmpiricalAdjustmentPipeline
from .schema import (
    SchemaError,
    format_schema_error,
    format_validation_report,
    validate_result_file,
)
from .utils import setup_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="gsr-adjust",
        description="Pathway-specific empirical adjustment of gene-set enrichment results"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser(
        "validate",
        help="Check result tables against the standardized schema"
    )
    validate_parser.add_argument(
        "files",
        nargs="+",
        type=str,
        help="Tab-delimited result table(s) to validate"
    )

    adjust_parser = subparsers.add_parser(
        "adjust",
        help="Compute empirical p-values, z-scores and FDR"
    )
    adjust_parser.add_argument(
        "config_file",
        type=str,
        help="Path to TOML configuration file"
    )

    input_group = adjust_parser.add_argument_group("Input overrides")
    input_group.add_argument(
        "--real-results",
        type=str,
        help="Override real results file"
    )
    input_group.add_argument(
        "--random-dir",
        type=str,
        help="Override directory searched for random results"
    )
    input_group.add_argument(
        "--manifest",
        type=str,
        help="Override manifest listing random result files"
    )
    input_group.add_argument(
        "--random-pattern",
        type=str,
        help="Override glob pattern for random result files"
    )

    output_group = adjust_parser.add_argument_group("Output overrides")
    output_group.add_argument(
        "--output-dir",
        type=str,
        help="Override output directory"
    )
    output_group.add_argument(
        "--tool-name",
        type=str,
        help="Override tool name used for output file names"
    )
    output_group.add_argument(
        "--save-plots",
        action="store_true",
        help="Save diagnostic plots"
    )

    analysis_group = adjust_parser.add_argument_group("Analysis parameter overrides")
    analysis_group.add_argument(
        "--min-random-runs",
        type=int,
        help="Override number of random runs below which a warning is raised"
    )
    analysis_group.add_argument(
        "--min-null-observations",
        type=int,
        help="Override per-pathway null size below which a warning is raised"
    )
    analysis_group.add_argument(
        "--alpha",
        type=float,
        help="Override significance threshold used in the summary"
    )
    analysis_group.add_argument(
        "--no-validate",
        action="store_true",
        help="Skip full schema validation of the inputs"
    )
    analysis_group.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar"
    )

    adjust_parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    return parser.parse_args(argv)


def update_config(config: dict, args: argparse.Namespace) -> dict:
    """Update configuration with command line overrides."""
    config.setdefault('input', {})
    config.setdefault('output', {})
    config.setdefault('analysis', {})

    if args.real_results:
        config['input']['real_results'] = args.real_results
    if args.random_dir:
        config['input']['random_dir'] = args.random_dir
    if args.manifest:
        config['input']['manifest'] = args.manifest
    if args.random_pattern:
        config['input']['random_pattern'] = args.random_pattern

    if args.output_dir:
        config['output']['directory'] = args.output_dir
    if args.tool_name:
        config['output']['tool_name'] = args.tool_name
    if args.save_plots:
        config['output']['save_plots'] = True

    if args.min_random_runs is not None:
        config['analysis']['min_random_runs'] = args.min_random_runs
    if args.min_null_observations is not None:
        config['analysis']['min_null_observations'] = args.min_null_observations
    if args.alpha is not None:
        config['analysis']['alpha'] = args.alpha
    if args.no_validate:
        config['analysis']['validate_inputs'] = False
    if args.no_progress:
        config['analysis']['show_progress'] = False

    return config


def run_validate(files: List[str]) -> int:
    """Validate each file and print a pass/fail report; 1 if any file fails."""
    failed = 0
    for file_path in files:
        try:
            summary = validate_result_file(file_path)
        except SchemaError as e:
            failed += 1
            print(format_schema_error(e))
        else:
            print(format_validation_report(summary, label=file_path))
        print()
    return 1 if failed else 0


def run_adjust(args: argparse.Namespace) -> int:
    """Run the adjustment pipeline described by a configuration file."""
    try:
        with open(args.config_file, 'rb') as f:
            config = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        print(f"Error loading configuration file: {str(e)}")
        return 1

    config = update_config(config, args)

    output_dir = Path(config['output'].get('directory', 'results'))
    setup_logging(output_dir / 'logs', level=args.log_level)

    logging.info("Starting GSR empirical adjustment")
    logging.info(f"Using configuration file: {args.config_file}")

    try:
        pipeline = EmpiricalAdjustmentPipeline(AdjustmentConfig.from_dict(config))
        pipeline.run()
    except (ValueError, OSError, pl.exceptions.PolarsError) as e:
        logging.error(f"Adjustment failed: {str(e)}")
        return 1

    logging.info(f"SUCCESS! Adjusted results written to: {pipeline.config.get_output_path()}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = parse_args(argv)
    if args.command == "validate":
        return run_validate(args.files)
    return run_adjust(args)


if __name__ == "__main__":
    sys.exit(main())
