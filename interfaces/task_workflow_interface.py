"""
Interface for the delivery task workflow - task records, workflow steps and the
components that drive a single robot through the dropoff route.

Route topology (fixed):
    init -> to_dropoff -> at_dropoff -> to_shelf -> at_shelf -> to_charger -> done
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Iterable

from .robot_motion_client_interface import MotionState


class TaskStatus(Enum):
    """Task lifecycle status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class WorkflowStep(Enum):
    """Position of a task on the dropoff route."""
    INIT = "init"
    TO_DROPOFF = "to_dropoff"
    AT_DROPOFF = "at_dropoff"
    TO_SHELF = "to_shelf"
    AT_SHELF = "at_shelf"
    TO_CHARGER = "to_charger"
    DONE = "done"


# Explicit step ordering (the only forward path a task may take)
STEP_ORDER = [
    WorkflowStep.INIT,
    WorkflowStep.TO_DROPOFF,
    WorkflowStep.AT_DROPOFF,
    WorkflowStep.TO_SHELF,
    WorkflowStep.AT_SHELF,
    WorkflowStep.TO_CHARGER,
    WorkflowStep.DONE,
]

# Steps waiting on an outstanding motion command
MOTION_STEPS = frozenset({WorkflowStep.TO_DROPOFF, WorkflowStep.TO_SHELF, WorkflowStep.TO_CHARGER})

# Steps during which the robot holds the bin between pickup and shelf placement
PAYLOAD_STEPS = frozenset({WorkflowStep.AT_DROPOFF, WorkflowStep.TO_SHELF, WorkflowStep.AT_SHELF})


class ErrorCode:
    """Error codes recorded in ErrorDetails.code."""
    CANCELLED = 0
    INVALID_TASK_CONFIGURATION = "INVALID_TASK_CONFIGURATION"
    UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"
    MOTION_COMMAND_FAILED = "MOTION_COMMAND_FAILED"
    ARRIVAL_TIMEOUT = "ARRIVAL_TIMEOUT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    TASK_EXECUTION_FAILED = "TASK_EXECUTION_FAILED"


class WorkflowError(Exception):
    """Base class for workflow failures. Carries the code stored in ErrorDetails."""
    code = ErrorCode.TASK_EXECUTION_FAILED

    def __init__(self, message: str, code: Optional[Any] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(WorkflowError):
    """Required input missing at generation time. The task is never created."""
    code = ErrorCode.INVALID_TASK_CONFIGURATION


class UnresolvedReferenceError(WorkflowError):
    """A docking id cannot be derived or a waypoint is absent when a step needs it."""
    code = ErrorCode.UNRESOLVED_REFERENCE


class MotionCommandError(WorkflowError):
    """The robot rejected or could not execute a move, cancel or status call."""
    code = ErrorCode.MOTION_COMMAND_FAILED


class ArrivalTimeoutError(WorkflowError):
    """The robot did not report arrival within the configured bound."""
    code = ErrorCode.ARRIVAL_TIMEOUT


class InvalidTransitionError(WorkflowError):
    """A step or status change outside the allowed graph was attempted."""
    code = ErrorCode.INVALID_TRANSITION


@dataclass(frozen=True)
class Waypoint:
    """
    A named point of interest on the robot's map.

    Wire shape: {poiId, name, type, x, y, yaw, areaId}
    """
    poi_id: str
    name: str = ""
    type: str = ""
    x: float = 0.0
    y: float = 0.0
    yaw: float = 0.0
    area_id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Waypoint':
        return cls(
            poi_id=str(data.get("poiId") or data.get("poi_id") or ""),
            name=str(data.get("name") or ""),
            type=str(data.get("type") or ""),
            x=float(data.get("x") or 0.0),
            y=float(data.get("y") or 0.0),
            yaw=float(data.get("yaw") or 0.0),
            area_id=str(data.get("areaId") or data.get("area_id") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poiId": self.poi_id,
            "name": self.name,
            "type": self.type,
            "x": self.x,
            "y": self.y,
            "yaw": self.yaw,
            "areaId": self.area_id,
        }


@dataclass(frozen=True)
class ErrorDetails:
    """Why and where a task stopped. Present only on failed/cancelled tasks."""
    message: str
    code: Any
    step: WorkflowStep

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "step": self.step.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorDetails':
        return cls(message=data["message"], code=data.get("code"), step=WorkflowStep(data["step"]))


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Task:
    """
    Dropoff delivery task driven through the workflow.

    Steps never mutate a Task in place; every transition produces a new value
    with dataclasses.replace so the caller's copy stays untouched.
    """
    task_id: str
    robot_id: str
    dropoff_point: Waypoint
    shelf_point: Waypoint
    return_point: Waypoint
    status: TaskStatus = TaskStatus.PENDING
    current_step: WorkflowStep = WorkflowStep.INIT
    current_move_task_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error_details: Optional[ErrorDetails] = None
    name: str = ""
    priority: str = "normal"
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_payload_bearing(self) -> bool:
        return self.current_step in PAYLOAD_STEPS

    @property
    def is_in_motion(self) -> bool:
        return self.current_step in MOTION_STEPS

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase record shape used by the stores."""
        return {
            "taskId": self.task_id,
            "robotId": self.robot_id,
            "name": self.name,
            "priority": self.priority,
            "status": self.status.value,
            "currentStep": self.current_step.value,
            "dropoffPoint": self.dropoff_point.to_dict(),
            "shelfPoint": self.shelf_point.to_dict(),
            "returnPoint": self.return_point.to_dict(),
            "currentMoveTaskId": self.current_move_task_id,
            "metadata": dict(self.metadata),
            "errorDetails": self.error_details.to_dict() if self.error_details else None,
            "createdAt": _format_datetime(self.created_at),
            "startedAt": _format_datetime(self.started_at),
            "completedAt": _format_datetime(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Task':
        error_details = data.get("errorDetails")
        return cls(
            task_id=data["taskId"],
            robot_id=data["robotId"],
            name=data.get("name") or "",
            priority=data.get("priority") or "normal",
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            current_step=WorkflowStep(data.get("currentStep", WorkflowStep.INIT.value)),
            dropoff_point=Waypoint.from_dict(data["dropoffPoint"]),
            shelf_point=Waypoint.from_dict(data["shelfPoint"]),
            return_point=Waypoint.from_dict(data["returnPoint"]),
            current_move_task_id=data.get("currentMoveTaskId"),
            metadata=dict(data.get("metadata") or {}),
            error_details=ErrorDetails.from_dict(error_details) if error_details else None,
            created_at=_parse_datetime(data.get("createdAt")),
            started_at=_parse_datetime(data.get("startedAt")),
            completed_at=_parse_datetime(data.get("completedAt")),
        )


@dataclass
class PointClassification:
    """Waypoints grouped by semantic role."""
    dropoff: List[Waypoint] = field(default_factory=list)
    pickup: List[Waypoint] = field(default_factory=list)
    shelf: List[Waypoint] = field(default_factory=list)
    charger: List[Waypoint] = field(default_factory=list)


class IArrivalPoller(ABC):
    """Decides whether an in-flight move command has completed."""

    @abstractmethod
    def has_arrived(self, motion_state: MotionState, expected_command_id: Optional[str]) -> bool:
        """
        Check reported motion state against the command the task is waiting on.

        Args:
            motion_state: State most recently reported by the robot
            expected_command_id: Command id recorded on the task

        Returns:
            bool: True if the move is considered finished
        """
        pass


class IWorkflowGenerator(ABC):
    """Builds and persists new dropoff tasks."""

    @abstractmethod
    def generate(self, robot_id: str, dropoff_point: Optional[Waypoint],
                 shelf_point: Optional[Waypoint], return_point: Optional[Waypoint],
                 options: Optional[Dict[str, Any]] = None) -> Task:
        """
        Create a pending task at the init step and store it.

        Args:
            robot_id: Robot assigned to the task
            dropoff_point: Where the bin is collected
            shelf_point: Where the bin is stored
            return_point: Charger the robot returns to
            options: priority, origin, originator_id, docking_point, task_id

        Returns:
            Task: The stored record (store-assigned fields are authoritative)

        Raises:
            ValidationError: If any required input is missing
            UnresolvedReferenceError: If the dropoff docking id cannot be derived
        """
        pass


class IStepExecutor(ABC):
    """
    Workflow state machine. Performs the action of the task's current step.

    **Thread Safety**: Not internally serialized. Callers must guarantee at most
    one in-flight call per task id (see WorkflowEngine).
    """

    @abstractmethod
    def advance(self, task: Task) -> Task:
        """
        Perform the current step and return the updated task.

        Never raises for step failures: they are captured into error_details and
        the task is persisted as failed.

        Args:
            task: Task to advance

        Returns:
            Task: Updated (or unchanged) task
        """
        pass

    @abstractmethod
    def pause(self, task: Task) -> Task:
        """Move an in-progress task to paused."""
        pass

    @abstractmethod
    def resume(self, task: Task) -> Task:
        """Move a paused task back to in-progress."""
        pass


class ICancellationController(ABC):
    """Terminal cancellation that keeps a carried payload retrievable."""

    @abstractmethod
    def cancel(self, task: Task) -> Task:
        """
        Cancel a task, rerouting a payload-bearing robot to the shelf first.

        Reroute and motion-cancel failures are logged and recorded but never
        prevent the task from reaching the cancelled state.

        Args:
            task: Task to cancel

        Returns:
            Task: The persisted cancelled task (or the task unchanged if already terminal)
        """
        pass


def waypoints_from_dicts(items: Iterable[Dict[str, Any]]) -> List[Waypoint]:
    """Convenience for callers holding wire-shaped point dictionaries."""
    return [Waypoint.from_dict(item) for item in items]
