"""
Configuration Management Interface - Centralized fleet workflow configuration.

This module provides interfaces for managing all configuration parameters of the
workflow engine, the robot API client and the task store, with each section
exposed as a typed dataclass.
"""
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
from dataclasses import dataclass
from enum import Enum


class ConfigurationSource(Enum):
    """Configuration source types."""
    ENVIRONMENT = "environment"
    FILE = "file"
    DEFAULT = "default"
    OVERRIDE = "override"


@dataclass
class ConfigurationValue:
    """A configuration value with metadata."""
    value: Any
    source: ConfigurationSource
    key: str
    description: str
    validation_errors: Optional[List[str]] = None

    def __post_init__(self):
        if self.validation_errors is None:
            self.validation_errors = []


@dataclass
class WorkflowConfig:
    """Dropoff workflow execution parameters."""
    # Simulated confirmation delays (no load sensing on the robot)
    load_settle_seconds: float
    unload_settle_seconds: float
    # Wait after undocking from the charger before the first move
    undock_settle_seconds: float

    # Arrival polling
    arrival_timeout_seconds: float
    poll_interval_seconds: float
    max_poll_interval_seconds: float
    poll_backoff_factor: float

    # Driver loop
    driver_workers: int

    # Docking id naming convention (001_load -> 001_load_docking)
    docking_marker: str
    docking_replacement: str


@dataclass
class RobotApiConfig:
    """Robot onboard HTTP API connection parameters."""
    base_url: str
    app_code: Optional[str]
    timeout: float  # seconds
    creator: str
    move_accuracy: float  # meters


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    host: str
    port: int
    database: str
    user: str
    password: Optional[str]
    pool_size: int
    connect_timeout: int
    application_name: str


@dataclass
class SystemConfig:
    """System-wide configuration."""
    log_level: str
    log_file: Optional[str]
    log_format: str
    kpi_backend: str  # "log" or "database"


class ConfigurationError(Exception):
    """Raised when configuration operations fail."""
    pass


class IBusinessConfigurationProvider(ABC):
    """
    Interface for configuration providers.

    Responsibilities:
    - Provide typed configuration sections
    - Load configuration from various sources
    - Validate configuration values
    - Support runtime overrides and reloading
    """

    @abstractmethod
    def get_workflow_config(self) -> WorkflowConfig:
        """Get workflow execution configuration."""
        pass

    @abstractmethod
    def get_robot_api_config(self) -> RobotApiConfig:
        """Get robot API client configuration."""
        pass

    @abstractmethod
    def get_database_config(self) -> DatabaseConfig:
        """Get database configuration."""
        pass

    @abstractmethod
    def get_system_config(self) -> SystemConfig:
        """Get system-wide configuration."""
        pass

    @abstractmethod
    def get_value(self, key: str, default: Any = None) -> ConfigurationValue:
        """
        Get a single configuration value with metadata.

        Args:
            key: Dotted configuration key (e.g. "workflow.poll_interval_seconds")
            default: Value returned when the key is unknown

        Returns:
            ConfigurationValue: Value and the source it came from
        """
        pass

    @abstractmethod
    def set_value(self, key: str, value: Any) -> None:
        """Set a runtime override (survives reload)."""
        pass

    @abstractmethod
    def reload(self) -> None:
        """Reload configuration from all sources and revalidate."""
        pass

    @property
    @abstractmethod
    def errors(self) -> List[str]:
        """Validation errors of the current configuration."""
        pass


class IConfigurationValidator(ABC):
    """
    Interface for configuration validation.

    Each method returns a list of human-readable errors; an empty list means valid.
    """

    @abstractmethod
    def validate_workflow_config(self, config: WorkflowConfig) -> List[str]:
        pass

    @abstractmethod
    def validate_robot_api_config(self, config: RobotApiConfig) -> List[str]:
        pass

    @abstractmethod
    def validate_database_config(self, config: DatabaseConfig) -> List[str]:
        pass

    @abstractmethod
    def validate_system_config(self, config: SystemConfig) -> List[str]:
        pass


class IConfigurationSource(ABC):
    """
    Interface for configuration sources.

    Responsibilities:
    - Load configuration from specific sources
    - Support different data formats
    - Handle source-specific errors
    """

    @abstractmethod
    def load_configuration(self) -> Dict[str, Any]:
        """
        Load configuration data as a flat dict of dotted keys.

        Raises:
            ConfigurationError: If loading fails
        """
        pass

    @abstractmethod
    def get_source_type(self) -> ConfigurationSource:
        """Get the source type."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if source is available."""
        pass
