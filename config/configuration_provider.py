"""
Configuration Provider Implementation - Centralized configuration composition root.

This provider loads, merges, and validates configuration from all sources (env, file, defaults),
providing type-safe access to the workflow, robot API, database and system sections and
supporting runtime overrides and reloads.
"""
import logging
import threading
from typing import Dict, Any, Optional, List

from interfaces.configuration_interface import (
    IBusinessConfigurationProvider, IConfigurationSource, IConfigurationValidator,
    WorkflowConfig, RobotApiConfig, DatabaseConfig, SystemConfig,
    ConfigurationSource, ConfigurationValue, ConfigurationError
)
from config.configuration_sources import (
    EnvironmentConfigurationSource, FileConfigurationSource, DefaultConfigurationSource
)
from config.configuration_validator import ConfigurationValidatorImpl


logger = logging.getLogger(__name__)


class ConfigurationProvider(IBusinessConfigurationProvider):
    """
    Centralized configuration provider that merges all sources and validates configuration.
    Thread-safe and supports reloads; runtime overrides survive a reload.
    """
    def __init__(self,
                 config_file: Optional[str] = None,
                 config_file_format: str = "auto",
                 env_prefix: str = "FLEET_",
                 validator: Optional[IConfigurationValidator] = None):
        self._lock = threading.RLock()
        self._sources: List[IConfigurationSource] = []
        self._config: Dict[str, Any] = {}
        self._origins: Dict[str, ConfigurationSource] = {}
        self._overrides: Dict[str, Any] = {}
        self._validator = validator or ConfigurationValidatorImpl()
        self._errors: List[str] = []
        self._init_sources(config_file, config_file_format, env_prefix)
        self.reload()

    def _init_sources(self, config_file, config_file_format, env_prefix):
        # Order: env > file > defaults
        self._sources = [
            EnvironmentConfigurationSource(prefix=env_prefix)
        ]
        if config_file:
            self._sources.append(FileConfigurationSource(config_file, config_file_format))
        self._sources.append(DefaultConfigurationSource())

    def reload(self) -> None:
        """Reload configuration from all sources and validate."""
        with self._lock:
            merged = {}
            origins = {}
            for source in reversed(self._sources):  # Defaults first, env last
                try:
                    conf = source.load_configuration()
                except ConfigurationError as e:
                    logger.warning(f"Skipping configuration source {source.get_source_type().value}: {e}")
                    continue
                merged.update(conf)
                for key in conf:
                    origins[key] = source.get_source_type()
            self._config = merged
            self._origins = origins
            self._errors = self.validate()
            if self._errors:
                logger.warning(f"Configuration has {len(self._errors)} validation error(s): {self._errors}")

    def validate(self) -> List[str]:
        """Validate all configuration sections and return errors."""
        errors = []
        try:
            errors.extend(self._validator.validate_workflow_config(self.get_workflow_config()))
            errors.extend(self._validator.validate_robot_api_config(self.get_robot_api_config()))
            errors.extend(self._validator.validate_database_config(self.get_database_config()))
            errors.extend(self._validator.validate_system_config(self.get_system_config()))
        except (TypeError, ValueError) as e:
            errors.append(f"Validation error: {e}")
        return errors

    def _merged(self) -> Dict[str, Any]:
        return {**self._config, **self._overrides}

    def get_workflow_config(self) -> WorkflowConfig:
        c = self._merged()
        return WorkflowConfig(
            load_settle_seconds=float(c.get("workflow.load_settle_seconds", 2.0)),
            unload_settle_seconds=float(c.get("workflow.unload_settle_seconds", 2.0)),
            undock_settle_seconds=float(c.get("workflow.undock_settle_seconds", 5.0)),
            arrival_timeout_seconds=float(c.get("workflow.arrival_timeout_seconds", 600.0)),
            poll_interval_seconds=float(c.get("workflow.poll_interval_seconds", 1.0)),
            max_poll_interval_seconds=float(c.get("workflow.max_poll_interval_seconds", 10.0)),
            poll_backoff_factor=float(c.get("workflow.poll_backoff_factor", 2.0)),
            driver_workers=int(c.get("workflow.driver_workers", 4)),
            docking_marker=c.get("workflow.docking_marker", "_load"),
            docking_replacement=c.get("workflow.docking_replacement", "_load_docking"),
        )

    def get_robot_api_config(self) -> RobotApiConfig:
        c = self._merged()
        app_code = c.get("robot_api.app_code")
        return RobotApiConfig(
            base_url=c.get("robot_api.base_url", "http://localhost:8090"),
            app_code=str(app_code) if app_code is not None else None,
            timeout=float(c.get("robot_api.timeout", 10.0)),
            creator=c.get("robot_api.creator", "robot-platform"),
            move_accuracy=float(c.get("robot_api.move_accuracy", 0.2)),
        )

    def get_database_config(self) -> DatabaseConfig:
        c = self._merged()
        return DatabaseConfig(
            host=c.get("database.host", "localhost"),
            port=int(c.get("database.port", 5432)),
            database=c.get("database.database", "fleet_workflow"),
            user=c.get("database.user", "postgres"),
            password=c.get("database.password"),
            pool_size=int(c.get("database.pool_size", 10)),
            connect_timeout=int(c.get("database.connect_timeout", 10)),
            application_name=c.get("database.application_name", "fleet_workflow"),
        )

    def get_system_config(self) -> SystemConfig:
        c = self._merged()
        return SystemConfig(
            log_level=str(c.get("system.log_level", "INFO")).upper(),
            log_file=c.get("system.log_file"),
            log_format=c.get("system.log_format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            kpi_backend=c.get("system.kpi_backend", "log"),
        )

    def get_value(self, key: str, default: Any = None) -> ConfigurationValue:
        with self._lock:
            if key in self._overrides:
                value, source = self._overrides[key], ConfigurationSource.OVERRIDE
            elif key in self._config:
                value, source = self._config[key], self._origins.get(key, ConfigurationSource.DEFAULT)
            else:
                value, source = default, ConfigurationSource.DEFAULT
        return ConfigurationValue(
            value=value,
            source=source,
            key=key,
            description=f"Config value for {key}",
            validation_errors=[e for e in self._errors if self._error_matches(e, key)]
        )

    def set_value(self, key: str, value: Any) -> None:
        with self._lock:
            self._overrides[key] = value
            self._errors = self.validate()

    @property
    def errors(self) -> List[str]:
        return self._errors.copy()

    @staticmethod
    def _error_matches(error: str, key: str) -> bool:
        # "Workflow.poll_interval_seconds: ..." belongs to "workflow.poll_interval_seconds"
        field = key.split(".", 1)[-1]
        return error.split(":", 1)[0].endswith(f".{field}")
