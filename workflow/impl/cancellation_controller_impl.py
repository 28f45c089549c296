"""
Cancellation Controller Implementation - terminal cancellation with payload safety.

A robot holding a bin (at_dropoff, to_shelf, at_shelf) must not be abandoned
mid-route: before the task is marked cancelled, the robot is sent to the
shelf docking point so the bin ends up somewhere retrievable. Both the
motion-command cancel and the safety reroute are best-effort; their failures
are logged, recorded on the task metadata and emitted as KPI events, but the
task always reaches the cancelled state. A task whose route already reached
done is completed instead.
"""
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, Callable

from interfaces.configuration_interface import IBusinessConfigurationProvider
from interfaces.robot_motion_client_interface import (
    IRobotMotionClient, MotionClientSource, resolve_motion_client
)
from interfaces.task_store_interface import ITaskStore
from interfaces.task_workflow_interface import (
    ICancellationController, Task, TaskStatus, WorkflowStep, ErrorDetails, ErrorCode
)
from kpi.kpi_recorder_interface import (
    IKpiRecorder, NullKpiRecorder, WorkflowEvent,
    TASK_CANCELLED, TASK_COMPLETED, CANCEL_REROUTE_ISSUED, CANCEL_REROUTE_FAILED, MOTION_CANCEL_FAILED
)
from workflow.docking import derive_docking_id, DEFAULT_MARKER, DEFAULT_REPLACEMENT
from workflow.transitions import validate_status_transition


CANCEL_MESSAGE = "Task canceled by user or system"


class CancellationControllerImpl(ICancellationController):
    """Cancels dropoff tasks, rerouting payload-bearing robots to the shelf first."""

    def __init__(self,
                 motion_client: MotionClientSource,
                 task_store: ITaskStore,
                 config_provider: Optional[IBusinessConfigurationProvider] = None,
                 kpi_recorder: Optional[IKpiRecorder] = None,
                 clock: Callable[[], float] = time.time):
        self.motion_client = motion_client
        self.task_store = task_store
        self.kpi_recorder = kpi_recorder or NullKpiRecorder()
        self._clock = clock

        if config_provider:
            workflow_config = config_provider.get_workflow_config()
            self._docking_marker = workflow_config.docking_marker
            self._docking_replacement = workflow_config.docking_replacement
        else:
            self._docking_marker = DEFAULT_MARKER
            self._docking_replacement = DEFAULT_REPLACEMENT

    def cancel(self, task: Task) -> Task:
        logger = logging.getLogger(f"CancellationController.{task.robot_id}")

        if task.status.is_terminal:
            logger.info(f"Task {task.task_id} already {task.status.value}; cancel ignored")
            return task
        if task.current_step == WorkflowStep.DONE:
            return self._complete(task, logger)
        validate_status_transition(task.status, TaskStatus.CANCELLED)

        logger.info(f"Canceling dropoff task {task.task_id} at step {task.current_step.value}")
        metadata = dict(task.metadata)

        # 1. Best-effort cancel of the outstanding move
        if task.current_move_task_id:
            try:
                self._client_for(task).cancel_command(task.current_move_task_id)
                logger.info(f"Canceled move command {task.current_move_task_id}")
            except Exception as e:
                logger.warning(f"Error canceling move command {task.current_move_task_id}: {e}")
                self._record(task, MOTION_CANCEL_FAILED, {
                    "commandId": task.current_move_task_id, "error": str(e)
                })

        # 2. Payload safety reroute
        if task.is_payload_bearing:
            self._reroute_to_shelf(task, metadata, logger)

        # 3. Terminal state
        cancelled = replace(
            task,
            status=TaskStatus.CANCELLED,
            current_move_task_id=None,
            metadata=metadata,
            error_details=ErrorDetails(message=CANCEL_MESSAGE, code=ErrorCode.CANCELLED, step=task.current_step),
        )

        stored = self.task_store.replace(cancelled)
        self._record(task, TASK_CANCELLED, {
            "step": task.current_step.value,
            "payloadBearing": task.is_payload_bearing,
            "rerouteCommandId": metadata.get("cancelRerouteCommandId"),
        })
        return stored

    def _complete(self, task: Task, logger: logging.Logger) -> Task:
        logger.info(f"Task {task.task_id} already finished its route; completing instead of canceling")
        completed_at = task.completed_at or datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        stored = self.task_store.replace(replace(
            task, status=TaskStatus.COMPLETED, current_move_task_id=None, completed_at=completed_at
        ))
        duration = (completed_at - task.started_at).total_seconds() if task.started_at else None
        self._record(task, TASK_COMPLETED, {"durationSeconds": duration})
        return stored

    def _reroute_to_shelf(self, task: Task, metadata: dict, logger: logging.Logger) -> None:
        logger.info(f"Robot {task.robot_id} is carrying a bin, directing to shelf for safe dropoff")
        try:
            shelf_docking_id = metadata.get("shelfDockingId") or derive_docking_id(
                metadata.get("shelfId") or task.shelf_point.poi_id,
                self._docking_marker, self._docking_replacement
            )
            command = self._client_for(task).create_move_command(shelf_docking_id)
        except Exception as e:
            logger.error(f"Safety reroute to shelf failed for task {task.task_id}: {e}")
            metadata["cancelRerouteError"] = str(e)
            self._record(task, CANCEL_REROUTE_FAILED, {"step": task.current_step.value, "error": str(e)})
            return

        logger.info(f"Robot {task.robot_id} sent to shelf docking point {shelf_docking_id} (command {command.command_id})")
        metadata["cancelRerouteCommandId"] = command.command_id
        metadata["shelfDockingId"] = shelf_docking_id
        metadata["cancelReroutedAt"] = self._clock()
        self._record(task, CANCEL_REROUTE_ISSUED, {
            "step": task.current_step.value, "target": shelf_docking_id, "commandId": command.command_id
        })

    def _record(self, task: Task, event_type: str, data: dict) -> None:
        self.kpi_recorder.record_event(WorkflowEvent(
            event_type=event_type, robot_id=task.robot_id, task_id=task.task_id, event_data=data
        ))

    def _client_for(self, task: Task) -> IRobotMotionClient:
        return resolve_motion_client(self.motion_client, task.robot_id)
