from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Optional


# Event types emitted by the workflow engine
TASK_CREATED = "task_created"
STEP_ADVANCED = "step_advanced"
TASK_COMPLETED = "task_completed"
TASK_FAILED = "task_failed"
TASK_CANCELLED = "task_cancelled"
CANCEL_REROUTE_ISSUED = "cancel_reroute_issued"
CANCEL_REROUTE_FAILED = "cancel_reroute_failed"
MOTION_CANCEL_FAILED = "motion_cancel_failed"


@dataclass(frozen=True)
class WorkflowEvent:
    """
    A single observable workflow event.

    event_data is persisted as JSON; keep values JSON-serialisable.
    """
    event_type: str
    robot_id: str
    task_id: Optional[str] = None
    event_data: Dict[str, Any] = field(default_factory=dict)


class IKpiRecorder(ABC):
    """
    Interface for recording workflow events.

    Implementations must be thread-safe and must not block the step executor or
    the cancellation controller. Persisting work should be offloaded to a
    background worker where applicable.
    """

    @abstractmethod
    def record_event(self, event: WorkflowEvent) -> None:
        """
        Record a workflow event.

        Implementations must not raise to callers on persistence errors; they
        must log failures and return without blocking.
        """
        pass

    @abstractmethod
    def flush(self) -> None:
        """
        Best-effort flush of any buffered events.

        Intended for shutdown hooks or test scenarios.
        """
        pass


class LoggingKpiRecorder(IKpiRecorder):
    """Writes one structured log line per event. Nothing is buffered."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self._logger = logger or logging.getLogger("kpi.workflow")
        self._level = level

    def record_event(self, event: WorkflowEvent) -> None:
        level = logging.WARNING if event.event_type in (CANCEL_REROUTE_FAILED, MOTION_CANCEL_FAILED) else self._level
        self._logger.log(
            level,
            f"[KPI] {event.event_type} robot={event.robot_id} task={event.task_id} "
            f"data={json.dumps(event.event_data, default=str, sort_keys=True)}"
        )

    def flush(self) -> None:
        pass


class NullKpiRecorder(IKpiRecorder):
    """Discards every event."""

    def record_event(self, event: WorkflowEvent) -> None:
        pass

    def flush(self) -> None:
        pass
