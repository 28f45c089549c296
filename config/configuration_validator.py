"""
Configuration Validator Implementation - Rule-based configuration validation.

Every section is checked against a list of ValidationRule entries followed by
cross-field checks; errors are returned as "Section.field: message" strings.
"""
from typing import Callable, List
from dataclasses import dataclass
from urllib.parse import urlparse

from interfaces.configuration_interface import (
    IConfigurationValidator, WorkflowConfig, RobotApiConfig, DatabaseConfig, SystemConfig
)


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
VALID_KPI_BACKENDS = {"log", "database"}


@dataclass
class ValidationRule:
    """A validation rule with condition and error message."""
    condition: Callable
    error_message: str
    field_name: str


class ConfigurationValidatorImpl(IConfigurationValidator):
    """Validates every configuration section of the fleet workflow engine."""

    def __init__(self):
        self._workflow_rules = self._create_workflow_validation_rules()
        self._robot_api_rules = self._create_robot_api_validation_rules()
        self._database_rules = self._create_database_validation_rules()
        self._system_rules = self._create_system_validation_rules()

    def validate_workflow_config(self, config: WorkflowConfig) -> List[str]:
        """
        Validate workflow configuration.

        Args:
            config: Workflow configuration to validate

        Returns:
            List[str]: List of validation errors
        """
        errors = self._apply_rules("Workflow", self._workflow_rules, config)

        # Cross-field validation
        if config.max_poll_interval_seconds < config.poll_interval_seconds:
            errors.append("Workflow.max_poll_interval_seconds: Max poll interval must be >= poll interval")

        if config.docking_marker and config.docking_marker == config.docking_replacement:
            errors.append("Workflow.docking_replacement: Replacement must differ from marker")

        return errors

    def validate_robot_api_config(self, config: RobotApiConfig) -> List[str]:
        errors = self._apply_rules("RobotApi", self._robot_api_rules, config)

        parsed = urlparse(config.base_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            errors.append("RobotApi.base_url: Base URL must be an http(s) URL with a host")

        return errors

    def validate_database_config(self, config: DatabaseConfig) -> List[str]:
        """
        Validate database configuration.

        Args:
            config: Database configuration to validate

        Returns:
            List[str]: List of validation errors
        """
        errors = self._apply_rules("Database", self._database_rules, config)

        # Cross-field validation
        if config.port < 1 or config.port > 65535:
            errors.append("Database.port: Port must be between 1 and 65535")

        if config.pool_size < 1:
            errors.append("Database.pool_size: Pool size must be at least 1")

        if config.connect_timeout < 1:
            errors.append("Database.connect_timeout: Connect timeout must be at least 1 second")

        return errors

    def validate_system_config(self, config: SystemConfig) -> List[str]:
        return self._apply_rules("System", self._system_rules, config)

    def _apply_rules(self, section: str, rules: List[ValidationRule], config) -> List[str]:
        errors = []
        for rule in rules:
            try:
                ok = rule.condition(config)
            except (TypeError, ValueError, AttributeError):
                ok = False
            if not ok:
                errors.append(f"{section}.{rule.field_name}: {rule.error_message}")
        return errors

    def _create_workflow_validation_rules(self) -> List[ValidationRule]:
        """Create validation rules for workflow configuration."""
        return [
            ValidationRule(
                lambda c: c.load_settle_seconds >= 0,
                "Load settle delay cannot be negative",
                "load_settle_seconds"
            ),
            ValidationRule(
                lambda c: c.unload_settle_seconds >= 0,
                "Unload settle delay cannot be negative",
                "unload_settle_seconds"
            ),
            ValidationRule(
                lambda c: c.undock_settle_seconds >= 0,
                "Undock settle delay cannot be negative",
                "undock_settle_seconds"
            ),
            ValidationRule(
                lambda c: c.arrival_timeout_seconds > 0,
                "Arrival timeout must be positive",
                "arrival_timeout_seconds"
            ),
            ValidationRule(
                lambda c: c.poll_interval_seconds > 0,
                "Poll interval must be positive",
                "poll_interval_seconds"
            ),
            ValidationRule(
                lambda c: c.poll_backoff_factor >= 1.0,
                "Backoff factor must be at least 1.0",
                "poll_backoff_factor"
            ),
            ValidationRule(
                lambda c: c.driver_workers >= 1,
                "Driver needs at least one worker",
                "driver_workers"
            ),
            ValidationRule(
                lambda c: c.docking_marker and len(c.docking_marker.strip()) > 0,
                "Docking marker cannot be empty",
                "docking_marker"
            ),
            ValidationRule(
                lambda c: c.docking_replacement and len(c.docking_replacement.strip()) > 0,
                "Docking replacement cannot be empty",
                "docking_replacement"
            ),
        ]

    def _create_robot_api_validation_rules(self) -> List[ValidationRule]:
        """Create validation rules for robot API configuration."""
        return [
            ValidationRule(
                lambda c: c.timeout > 0,
                "Timeout must be positive",
                "timeout"
            ),
            ValidationRule(
                lambda c: c.creator and len(c.creator.strip()) > 0,
                "Creator cannot be empty",
                "creator"
            ),
            ValidationRule(
                lambda c: c.move_accuracy > 0,
                "Move accuracy must be positive",
                "move_accuracy"
            ),
        ]

    def _create_database_validation_rules(self) -> List[ValidationRule]:
        """Create validation rules for database configuration."""
        return [
            ValidationRule(
                lambda c: c.host and len(c.host.strip()) > 0,
                "Database host cannot be empty",
                "host"
            ),
            ValidationRule(
                lambda c: c.database and len(c.database.strip()) > 0,
                "Database name cannot be empty",
                "database"
            ),
            ValidationRule(
                lambda c: c.user and len(c.user.strip()) > 0,
                "Database user cannot be empty",
                "user"
            ),
            ValidationRule(
                lambda c: c.application_name and len(c.application_name.strip()) > 0,
                "Application name cannot be empty",
                "application_name"
            ),
        ]

    def _create_system_validation_rules(self) -> List[ValidationRule]:
        """Create validation rules for system configuration."""
        return [
            ValidationRule(
                lambda c: c.log_level and c.log_level.upper() in VALID_LOG_LEVELS,
                f"Log level must be one of {sorted(VALID_LOG_LEVELS)}",
                "log_level"
            ),
            ValidationRule(
                lambda c: c.log_format and len(c.log_format.strip()) > 0,
                "Log format cannot be empty",
                "log_format"
            ),
            ValidationRule(
                lambda c: c.kpi_backend in VALID_KPI_BACKENDS,
                f"KPI backend must be one of {sorted(VALID_KPI_BACKENDS)}",
                "kpi_backend"
            ),
        ]
