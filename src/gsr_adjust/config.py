"""Configuration handling for the empirical adjustment pipeline."""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import tomli
import tomli_w

from .adjust import DEFAULT_MIN_NULL_OBSERVATIONS, DEFAULT_MIN_RANDOM_RUNS
from .data import DEFAULT_RANDOM_PATTERN


class AdjustmentConfig:
    """Configuration class for the empirical adjustment pipeline."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialise the configuration from a TOML file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config_path = config_path

        try:
            with open(config_path, "rb") as f:
                self.config = tomli.load(f)
        except FileNotFoundError:
            raise ValueError(f"Error loading configuration file: {config_path} does not exist")
        except tomli.TOMLDecodeError as e:
            raise ValueError(f"Error loading configuration file: {str(e)}")

        self._parse()

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "AdjustmentConfig":
        """Build a configuration from an already parsed dictionary."""
        instance = cls.__new__(cls)
        instance.config_path = None
        instance.config = config
        instance._parse()
        return instance

    def _parse(self) -> None:
        required_sections = ['input', 'output']
        missing_sections = [section for section in required_sections if section not in self.config]
        if missing_sections:
            raise ValueError(f"Missing required sections in configuration: {', '.join(missing_sections)}")

        self.input_files = self.config.get("input", {})
        if 'real_results' not in self.input_files:
            raise ValueError("Missing required input in configuration: real_results")
        if 'random_dir' not in self.input_files and 'manifest' not in self.input_files:
            raise ValueError("Configuration must set either input.random_dir or input.manifest")

        self.output_config = self.config.get("output", {})
        if 'directory' not in self.output_config:
            raise ValueError("Missing required output setting in configuration: directory")

        self.analysis_params = self.config.get("analysis", {})

        self.real_results = Path(self.input_files['real_results'])
        self.random_dir = self._optional_path(self.input_files.get('random_dir'))
        self.manifest = self._optional_path(self.input_files.get('manifest'))
        self.random_pattern = self.input_files.get('random_pattern', DEFAULT_RANDOM_PATTERN)

        self.tool_name = self.output_config.get('tool_name', 'tool')
        self.save_plots = bool(self.output_config.get('save_plots', False))
        self.top_n_plots = int(self.output_config.get('top_n_plots', 10))

        self.min_random_runs = int(self.analysis_params.get('min_random_runs', DEFAULT_MIN_RANDOM_RUNS))
        self.min_null_observations = int(
            self.analysis_params.get('min_null_observations', DEFAULT_MIN_NULL_OBSERVATIONS)
        )
        self.alpha = float(self.analysis_params.get('alpha', 0.05))
        if not 0 < self.alpha < 1:
            raise ValueError(f"analysis.alpha must lie strictly between 0 and 1, got {self.alpha}")
        self.validate_inputs = bool(self.analysis_params.get('validate_inputs', True))
        self.show_progress = bool(self.analysis_params.get('show_progress', True))

    @staticmethod
    def _optional_path(value: Optional[str]) -> Optional[Path]:
        return Path(value) if value else None

    def get_output_path(self, subdir: Optional[str] = None) -> Path:
        """Get the path to the output directory or a subdirectory within it.

        Args:
            subdir: Optional subdirectory name within the output directory

        Returns:
            Path object for the requested directory
        """
        base_path = Path(self.output_config['directory'])
        if subdir:
            return base_path / subdir
        return base_path

    def save_config(self, output_path: Union[str, Path]) -> None:
        """Save the configuration to a TOML file.

        Args:
            output_path: Path to save the configuration file
        """
        with open(output_path, "wb") as f:
            tomli_w.dump(self.config, f)
