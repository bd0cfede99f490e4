"""Pipeline running empirical adjustment for one real table and its random pool."""

import json
import logging
import time
from collections import Counter
from pathlib import Path
from typing import Dict, Optional, Union

from .adjust import (
    AdjustmentResult,
    NoNullDataError,
    adjust_pathways,
    build_null_distributions,
    format_summary,
    merge_random_tables,
)
from .config import AdjustmentConfig
from .data import (
    discover_random_tables,
    load_random_tables,
    load_result_table,
    write_adjusted_table,
)
from .schema import ValidationSummary, validate_result_table
from .utils import ensure_dir
from .visualise import create_diagnostic_plots


class EmpiricalAdjustmentPipeline:
    """Main class for running pathway-specific empirical adjustment."""

    def __init__(self, config: Union[str, Path, AdjustmentConfig]):
        """Initialise the pipeline with a configuration.

        Args:
            config: Path to the TOML configuration file, or a loaded configuration
        """
        if isinstance(config, AdjustmentConfig):
            self.config = config
        else:
            self.config = AdjustmentConfig(config)
        self.logger = logging.getLogger(__name__)
        self.result: Optional[AdjustmentResult] = None
        self._load_input_data()

    def _load_input_data(self):
        """Load the real table and every random table."""
        self.logger.debug("Starting to load input data files")

        real_file = self.config.real_results
        if not real_file.is_file():
            error_msg = f"Input file not found: {real_file} (specified as real_results)"
            self.logger.error(error_msg)
            raise FileNotFoundError(error_msg)

        self.real_df = load_result_table(real_file)
        self.logger.info(f"Loaded {self.real_df.height} pathways from real results {real_file}")

        self.random_files = discover_random_tables(
            random_dir=self.config.random_dir,
            manifest=self.config.manifest,
            pattern=self.config.random_pattern,
        )
        if not self.random_files:
            source = self.config.manifest or self.config.random_dir
            raise NoNullDataError(
                f"No random result files found in: {source}. "
                f"Expected files matching pattern: {self.config.random_pattern}"
            )

        self.random_tables = load_random_tables(self.random_files)
        if not self.random_tables:
            raise NoNullDataError(
                f"None of the {len(self.random_files)} random result files could be read"
            )
        self.logger.info(f"Loaded {len(self.random_tables)} random result tables")
        self.logger.debug("Finished loading input data files")

    def validate_inputs(self) -> Dict[str, ValidationSummary]:
        """Validate the real table and every random table.

        Returns:
            Validation summary per input file

        Raises:
            SchemaError: For the first table that violates the schema
        """
        summaries = {
            str(self.config.real_results): validate_result_table(
                self.real_df, label=str(self.config.real_results)
            )
        }
        # load_random_tables may have skipped unreadable files, so labels are
        # only exact when every file was loaded
        labels = [str(p) for p in self.random_files]
        if len(labels) != len(self.random_tables):
            labels = [f"random results table {i}" for i in range(1, len(self.random_tables) + 1)]
        for label, table in zip(labels, self.random_tables):
            summaries[label] = validate_result_table(table, label=label)

        self.logger.info(f"Validated {len(summaries)} result tables")
        return summaries

    def run(self) -> AdjustmentResult:
        """Run the empirical adjustment and save its outputs."""
        self.logger.info("Starting GSR empirical adjustment")
        start_time = time.time()

        if self.config.validate_inputs:
            self.logger.info("Step 1: Validating input tables")
            self.validate_inputs()

        self.logger.info("Step 2: Calculating pathway-specific empirical statistics")
        self.result = adjust_pathways(
            self.real_df,
            self.random_tables,
            min_random_runs=self.config.min_random_runs,
            min_null_observations=self.config.min_null_observations,
            alpha=self.config.alpha,
            show_progress=self.config.show_progress,
        )

        for line in format_summary(self.result.summary).splitlines():
            self.logger.info(line)
        if self.result.diagnostics:
            counts = Counter(d.kind for d in self.result.diagnostics)
            self.logger.info("Diagnostics: " + ", ".join(f"{k}={v}" for k, v in sorted(counts.items())))

        self.logger.info("Step 3: Saving results")
        self.save_results()

        elapsed_time = time.time() - start_time
        self.logger.info(f"Adjustment completed in {elapsed_time:.2f} seconds")
        return self.result

    def save_results(self, output_dir: Optional[Union[str, Path]] = None) -> Dict[str, Path]:
        """Save the adjusted table, diagnostics, summary and configuration.

        Args:
            output_dir: Optional output directory path. If not provided,
                        uses the directory from the configuration.

        Returns:
            Mapping of artifact name to written path
        """
        if self.result is None:
            self.logger.warning("No results to save. Run the pipeline first.")
            return {}

        output_path = ensure_dir(Path(output_dir) if output_dir else self.config.get_output_path())
        tool_name = self.config.tool_name
        written = {}

        adjusted_file = output_path / f"{tool_name}_adjusted.tsv"
        written['adjusted'] = write_adjusted_table(self.result.table, adjusted_file)
        self.logger.info(f"Adjusted results written to: {adjusted_file}")

        diagnostics_file = output_path / f"{tool_name}_diagnostics.tsv"
        self.result.diagnostics_frame().write_csv(diagnostics_file, separator='\t')
        written['diagnostics'] = diagnostics_file

        summary_file = output_path / f"{tool_name}_summary.json"
        with open(summary_file, 'w') as f:
            json.dump({
                'summary': self.result.summary.to_dict(),
                'diagnostics': dict(Counter(d.kind for d in self.result.diagnostics)),
                'inputs': {
                    'real_results': str(self.config.real_results),
                    'random_files': len(self.random_files),
                    'random_tables_loaded': len(self.random_tables),
                },
                'completed': time.strftime('%Y-%m-%d %H:%M:%S'),
            }, f, indent=2)
        written['summary'] = summary_file

        config_file = output_path / 'adjustment_config.toml'
        self.config.save_config(config_file)
        written['config'] = config_file

        if self.config.save_plots:
            nulls = build_null_distributions(merge_random_tables(self.random_tables))
            plot_files = create_diagnostic_plots(
                self.result.table,
                nulls,
                ensure_dir(output_path / 'plots'),
                top_n=self.config.top_n_plots,
                alpha=self.config.alpha,
            )
            self.logger.info(f"Saved {len(plot_files)} diagnostic plots")
            if plot_files:
                written['plots'] = output_path / 'plots'

        return written
