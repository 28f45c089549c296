"""
Core interfaces for the fleet delivery workflow engine.

This module defines the value types and interfaces that components must
implement to ensure proper decoupling and testability.
"""

# Robot motion interfaces
from .robot_motion_client_interface import (
    IRobotMotionClient, MotionPhase, MotionState, MoveCommand
)

# Task and workflow interfaces
from .task_workflow_interface import (
    Task, TaskStatus, WorkflowStep, Waypoint, ErrorDetails, ErrorCode, PointClassification,
    STEP_ORDER, MOTION_STEPS, PAYLOAD_STEPS,
    WorkflowError, ValidationError, UnresolvedReferenceError, MotionCommandError,
    ArrivalTimeoutError, InvalidTransitionError,
    IArrivalPoller, IWorkflowGenerator, IStepExecutor, ICancellationController,
    waypoints_from_dicts,
)

# Persistence interfaces
from .task_store_interface import ITaskStore, TaskStoreError, TaskNotFoundError

# Configuration interfaces
from .configuration_interface import (
    IBusinessConfigurationProvider, IConfigurationValidator, IConfigurationSource,
    WorkflowConfig, RobotApiConfig, DatabaseConfig, SystemConfig, ConfigurationError
)
