"""
Configuration Sources - Load configuration from various sources.

This module provides implementations for loading configuration from environment
variables, JSON/YAML configuration files and built-in defaults. Every source
returns a flat dict of dotted keys ("section.field").
"""
import os
import json
import yaml
from typing import Dict, Any, Iterable
from pathlib import Path

from interfaces.configuration_interface import (
    IConfigurationSource, ConfigurationSource, ConfigurationError
)


# Sections whose names contain an underscore; matched before the first-underscore split
KNOWN_SECTIONS = ("robot_api", "workflow", "database", "system")


class EnvironmentConfigurationSource(IConfigurationSource):
    """
    Configuration source that loads from environment variables.

    Environment variable naming convention:
    - FLEET_<SECTION>_<KEY> (e.g., FLEET_WORKFLOW_ARRIVAL_TIMEOUT_SECONDS)
    - FLEET_ROBOT_API_<KEY> for the robot API section
    """

    def __init__(self, prefix: str = "FLEET_", sections: Iterable[str] = KNOWN_SECTIONS):
        """
        Initialize environment configuration source.

        Args:
            prefix: Environment variable prefix
            sections: Section names recognised ahead of the generic split
        """
        self.prefix = prefix
        # Longest first so "robot_api" wins over a hypothetical "robot"
        self.sections = sorted(sections, key=len, reverse=True)

    def load_configuration(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Returns:
            Dict[str, Any]: Configuration data

        Raises:
            ConfigurationError: If loading fails
        """
        try:
            config = {}

            for key, value in os.environ.items():
                if key.startswith(self.prefix):
                    # FLEET_WORKFLOW_POLL_INTERVAL_SECONDS -> workflow.poll_interval_seconds
                    config_key = self._convert_env_key_to_config_key(key)
                    config[config_key] = self._parse_env_value(value)

            return config

        except Exception as e:
            raise ConfigurationError(f"Failed to load environment configuration: {e}")

    def get_source_type(self) -> ConfigurationSource:
        """Get the source type."""
        return ConfigurationSource.ENVIRONMENT

    def is_available(self) -> bool:
        """Check if source is available."""
        return True

    def _convert_env_key_to_config_key(self, env_key: str) -> str:
        """
        Convert environment variable key to configuration key.

        Args:
            env_key: Environment variable key (e.g., FLEET_ROBOT_API_BASE_URL)

        Returns:
            str: Configuration key (e.g., robot_api.base_url)
        """
        key = env_key[len(self.prefix):].lower()

        for section in self.sections:
            if key.startswith(section + "_"):
                return f"{section}.{key[len(section) + 1:]}"

        parts = key.split('_')
        if len(parts) >= 2:
            return f"{parts[0]}.{'_'.join(parts[1:])}"
        return key

    def _parse_env_value(self, value: str) -> Any:
        """
        Parse environment variable value to appropriate type.

        Args:
            value: Environment variable value

        Returns:
            Any: Parsed value
        """
        # JSON covers numbers, booleans, null, lists and objects
        try:
            return json.loads(value)
        except (json.JSONDecodeError, ValueError):
            pass

        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        return value


class FileConfigurationSource(IConfigurationSource):
    """
    Configuration source that loads from configuration files.

    Supports JSON and YAML formats. Nested sections are flattened, so
    ``workflow: {poll_interval_seconds: 2}`` becomes ``workflow.poll_interval_seconds``.
    """

    def __init__(self, file_path: str, file_format: str = "auto"):
        """
        Initialize file configuration source.

        Args:
            file_path: Path to configuration file
            file_format: File format ("json", "yaml", or "auto")
        """
        self.file_path = Path(file_path)
        self.file_format = file_format

    def load_configuration(self) -> Dict[str, Any]:
        """
        Load configuration from file.

        Returns:
            Dict[str, Any]: Flattened configuration data

        Raises:
            ConfigurationError: If loading fails
        """
        if not self.file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.file_path}")

        format_type = self._determine_format()
        try:
            if format_type == "json":
                data = self._load_json()
            elif format_type == "yaml":
                data = self._load_yaml()
            else:
                raise ConfigurationError(f"Unsupported file format: {format_type}")
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load file configuration: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {self.file_path}")
        return self._flatten(data)

    def get_source_type(self) -> ConfigurationSource:
        """Get the source type."""
        return ConfigurationSource.FILE

    def is_available(self) -> bool:
        """Check if source is available."""
        return self.file_path.exists()

    def _determine_format(self) -> str:
        """
        Determine file format based on extension.

        Returns:
            str: File format ("json" or "yaml")
        """
        if self.file_format != "auto":
            return self.file_format

        suffix = self.file_path.suffix.lower()
        if suffix == ".json":
            return "json"
        # YAML is a superset of JSON, so it is the safe fallback
        return "yaml"

    def _load_json(self) -> Any:
        with open(self.file_path, 'r') as f:
            return json.load(f)

    def _load_yaml(self) -> Any:
        with open(self.file_path, 'r') as f:
            return yaml.safe_load(f)

    def _flatten(self, data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
        flat = {}
        for key, value in data.items():
            full_key = f"{prefix}{key}"
            if isinstance(value, dict) and not prefix:
                flat.update(self._flatten(value, prefix=f"{full_key}."))
            else:
                flat[full_key] = value
        return flat


class DefaultConfigurationSource(IConfigurationSource):
    """
    Configuration source that provides default values.

    This source provides sensible defaults for all configuration parameters.
    """

    def __init__(self):
        self._defaults = self._create_default_configuration()

    def load_configuration(self) -> Dict[str, Any]:
        """
        Load default configuration.

        Returns:
            Dict[str, Any]: Default configuration data
        """
        return self._defaults.copy()

    def get_source_type(self) -> ConfigurationSource:
        """Get the source type."""
        return ConfigurationSource.DEFAULT

    def is_available(self) -> bool:
        """Check if source is available."""
        return True

    def _create_default_configuration(self) -> Dict[str, Any]:
        """
        Create default configuration values.

        Returns:
            Dict[str, Any]: Default configuration
        """
        return {
            # Workflow configuration
            "workflow.load_settle_seconds": 2.0,     # no load sensing on the robot
            "workflow.unload_settle_seconds": 2.0,
            "workflow.undock_settle_seconds": 5.0,
            "workflow.arrival_timeout_seconds": 600.0,
            "workflow.poll_interval_seconds": 1.0,
            "workflow.max_poll_interval_seconds": 10.0,
            "workflow.poll_backoff_factor": 2.0,
            "workflow.driver_workers": 4,
            "workflow.docking_marker": "_load",
            "workflow.docking_replacement": "_load_docking",

            # Robot API configuration
            "robot_api.base_url": "http://localhost:8090",
            "robot_api.app_code": None,
            "robot_api.timeout": 10.0,
            "robot_api.creator": "robot-platform",
            "robot_api.move_accuracy": 0.2,  # meters

            # Database configuration (uses environment variables with fallbacks)
            "database.host": os.getenv("FLEET_DB_HOST", "localhost"),
            "database.port": int(os.getenv("FLEET_DB_PORT", "5432")),
            "database.database": os.getenv("FLEET_DB_NAME", "fleet_workflow"),
            "database.user": os.getenv("FLEET_DB_USER", "postgres"),
            "database.password": os.getenv("FLEET_DB_PASSWORD"),
            "database.pool_size": int(os.getenv("FLEET_DB_POOL_SIZE", "10")),
            "database.connect_timeout": int(os.getenv("FLEET_DB_CONNECT_TIMEOUT", "10")),
            "database.application_name": os.getenv("FLEET_DB_APP_NAME", "fleet_workflow"),

            # System configuration
            "system.log_level": "INFO",
            "system.log_file": None,
            "system.log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "system.kpi_backend": "log",
        }
