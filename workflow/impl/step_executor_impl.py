"""
StepExecutor Implementation - the dropoff workflow state machine.

Each call to advance() performs the action of the task's current step and
persists the result:

    init        -> undock if charging, move to dropoff docking -> to_dropoff
    to_dropoff  -> poll arrival                               -> at_dropoff
    at_dropoff  -> settle (bin loaded), move to shelf docking -> to_shelf
    to_shelf    -> poll arrival                               -> at_shelf
    at_shelf    -> settle (bin placed), move to charger       -> to_charger
    to_charger  -> poll arrival                               -> done
    done        -> mark completed

Polls that observe no arrival return the task unchanged and write nothing,
so repeated calls without new motion state are side-effect free. Any error
raised by a step is captured into ErrorDetails and the task is stored as
failed; nothing but store errors escapes advance().
"""
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, Callable, Dict, Any

from interfaces.configuration_interface import IBusinessConfigurationProvider
from interfaces.robot_motion_client_interface import (
    IRobotMotionClient, MotionClientSource, resolve_motion_client
)
from interfaces.task_store_interface import ITaskStore
from interfaces.task_workflow_interface import (
    IStepExecutor, IArrivalPoller, Task, TaskStatus, WorkflowStep, ErrorDetails, ErrorCode,
    WorkflowError, UnresolvedReferenceError, ArrivalTimeoutError, MotionCommandError,
    InvalidTransitionError
)
from kpi.kpi_recorder_interface import (
    IKpiRecorder, NullKpiRecorder, WorkflowEvent,
    STEP_ADVANCED, TASK_COMPLETED, TASK_FAILED
)
from workflow.docking import derive_docking_id, DEFAULT_MARKER, DEFAULT_REPLACEMENT
from workflow.impl.arrival_poller_impl import ArrivalPollerImpl
from workflow.transitions import next_step, validate_step_transition, validate_status_transition


MOVE_ISSUED_AT = "moveIssuedAt"


class StepExecutorImpl(IStepExecutor):
    """
    Workflow state machine for dropoff tasks.

    Threading Model:
    - advance()/pause()/resume(): one in-flight call per task id (WorkflowEngine
      holds the per-task lock); different tasks may run in parallel.
    - The only blocking points are the motion client call and the settle delay.
    """

    def __init__(self,
                 motion_client: MotionClientSource,
                 task_store: ITaskStore,
                 arrival_poller: Optional[IArrivalPoller] = None,
                 config_provider: Optional[IBusinessConfigurationProvider] = None,
                 kpi_recorder: Optional[IKpiRecorder] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time):
        """
        Initialize StepExecutor with required dependencies.

        Args:
            motion_client: Robot motion client, or a callable mapping robot_id to one
            task_store: Persistence for updated tasks
            arrival_poller: Arrival heuristic (defaults to ArrivalPollerImpl)
            config_provider: Source of workflow timing and docking parameters
            kpi_recorder: Receives step/completion/failure events
            sleep: Blocking delay used for the settle steps
            clock: Epoch-seconds clock used for timestamps and arrival timeouts
        """
        self.motion_client = motion_client
        self.task_store = task_store
        self.arrival_poller = arrival_poller or ArrivalPollerImpl()
        self.kpi_recorder = kpi_recorder or NullKpiRecorder()
        self._sleep = sleep
        self._clock = clock

        if config_provider:
            workflow_config = config_provider.get_workflow_config()
            self._load_settle_seconds = workflow_config.load_settle_seconds
            self._unload_settle_seconds = workflow_config.unload_settle_seconds
            self._undock_settle_seconds = workflow_config.undock_settle_seconds
            self._arrival_timeout = workflow_config.arrival_timeout_seconds
            self._docking_marker = workflow_config.docking_marker
            self._docking_replacement = workflow_config.docking_replacement
        else:
            self._load_settle_seconds = 2.0  # no load sensing; simulated confirmation
            self._unload_settle_seconds = 2.0
            self._undock_settle_seconds = 5.0
            self._arrival_timeout = 600.0
            self._docking_marker = DEFAULT_MARKER
            self._docking_replacement = DEFAULT_REPLACEMENT

        self._handlers: Dict[WorkflowStep, Callable[[Task], Task]] = {
            WorkflowStep.INIT: self._handle_init,
            WorkflowStep.TO_DROPOFF: self._handle_travel,
            WorkflowStep.AT_DROPOFF: self._handle_at_dropoff,
            WorkflowStep.TO_SHELF: self._handle_travel,
            WorkflowStep.AT_SHELF: self._handle_at_shelf,
            WorkflowStep.TO_CHARGER: self._handle_travel,
            WorkflowStep.DONE: self._handle_done,
        }

    # --- IStepExecutor ---

    def advance(self, task: Task) -> Task:
        logger = self._logger_for(task)

        if task.status.is_terminal:
            logger.debug(f"Task {task.task_id} is {task.status.value}; nothing to do")
            return task
        if task.status == TaskStatus.PAUSED:
            logger.debug(f"Task {task.task_id} is paused; skipping step {task.current_step.value}")
            return task

        try:
            updated = self._handlers[task.current_step](task)
            if updated == task:
                return task
            validate_step_transition(task.current_step, updated.current_step)
            validate_status_transition(task.status, updated.status)
        except Exception as e:
            return self._fail(task, e)

        stored = self.task_store.replace(updated)
        self._record_progress(task, stored)
        return stored

    def pause(self, task: Task) -> Task:
        if task.status == TaskStatus.PAUSED:
            return task
        validate_status_transition(task.status, TaskStatus.PAUSED)

        stored = self.task_store.replace(replace(task, status=TaskStatus.PAUSED))
        self._logger_for(task).info(f"Task {task.task_id} paused at step {task.current_step.value}")
        return stored

    def resume(self, task: Task) -> Task:
        if task.status == TaskStatus.IN_PROGRESS:
            return task
        if task.status != TaskStatus.PAUSED:
            raise InvalidTransitionError(f"Only paused tasks can be resumed (task is {task.status.value})")

        metadata = dict(task.metadata)
        if task.is_in_motion:
            # Time spent paused does not count against the arrival timeout
            metadata[MOVE_ISSUED_AT] = self._clock()
        stored = self.task_store.replace(replace(task, status=TaskStatus.IN_PROGRESS, metadata=metadata))
        self._logger_for(task).info(f"Task {task.task_id} resumed at step {task.current_step.value}")
        return stored

    # --- Step handlers ---

    def _handle_init(self, task: Task) -> Task:
        docking_id = task.metadata.get("dropoffDockingId")
        if not docking_id:
            if not task.dropoff_point:
                raise UnresolvedReferenceError("Task missing dropoff point data")
            docking_id = derive_docking_id(
                task.dropoff_point.poi_id, self._docking_marker, self._docking_replacement
            )

        self._undock_if_charging(task)
        self._logger_for(task).info(f"Robot {task.robot_id} moving to dropoff docking point ({docking_id})")
        command_id = self._issue_move(task, docking_id)

        return replace(
            task,
            status=TaskStatus.IN_PROGRESS,
            current_step=WorkflowStep.TO_DROPOFF,
            current_move_task_id=command_id,
            started_at=task.started_at or self._now(),
            metadata={**task.metadata, "dropoffDockingId": docking_id, MOVE_ISSUED_AT: self._clock()},
        )

    def _handle_travel(self, task: Task) -> Task:
        logger = self._logger_for(task)
        if not task.current_move_task_id:
            raise UnresolvedReferenceError(
                f"Step {task.current_step.value} has no outstanding move command to wait for"
            )

        state = self._client_for(task).get_motion_state()
        if self.arrival_poller.has_arrived(state, task.current_move_task_id):
            arrived_at = next_step(task.current_step)
            logger.info(f"Robot {task.robot_id} arrived; {task.current_step.value} -> {arrived_at.value}")
            metadata = dict(task.metadata)
            metadata.pop(MOVE_ISSUED_AT, None)
            return replace(task, current_step=arrived_at, current_move_task_id=None, metadata=metadata)

        issued_at = task.metadata.get(MOVE_ISSUED_AT)
        if issued_at is not None:
            waited = self._clock() - float(issued_at)
            if waited > self._arrival_timeout:
                raise ArrivalTimeoutError(
                    f"Robot {task.robot_id} did not arrive within {self._arrival_timeout:.0f}s "
                    f"(command {task.current_move_task_id}, waited {waited:.0f}s)"
                )

        logger.debug(f"Robot {task.robot_id} still {state.phase.value} during {task.current_step.value}")
        return task

    def _handle_at_dropoff(self, task: Task) -> Task:
        logger = self._logger_for(task)
        logger.info(f"Robot {task.robot_id} at dropoff point, waiting {self._load_settle_seconds}s for bin placement")
        self._sleep(self._load_settle_seconds)

        shelf_id = task.metadata.get("shelfId") or (task.shelf_point.poi_id if task.shelf_point else "")
        shelf_docking_id = derive_docking_id(shelf_id, self._docking_marker, self._docking_replacement)

        command_id = self._issue_move(task, shelf_docking_id)
        logger.info(f"Robot {task.robot_id} picked up bin, moving to shelf docking point ({shelf_docking_id})")

        return replace(
            task,
            current_step=WorkflowStep.TO_SHELF,
            current_move_task_id=command_id,
            metadata={
                **task.metadata,
                "shelfDockingId": shelf_docking_id,
                "payloadLoaded": True,
                MOVE_ISSUED_AT: self._clock(),
            },
        )

    def _handle_at_shelf(self, task: Task) -> Task:
        logger = self._logger_for(task)
        logger.info(f"Robot {task.robot_id} at shelf, waiting {self._unload_settle_seconds}s for bin placement")
        self._sleep(self._unload_settle_seconds)

        charger_id = task.return_point.poi_id if task.return_point else ""
        if not charger_id:
            raise UnresolvedReferenceError("Charger point ID not found")

        command_id = self._issue_move(task, charger_id)
        logger.info(f"Robot {task.robot_id} placed bin on shelf, returning to charger ({charger_id})")

        return replace(
            task,
            current_step=WorkflowStep.TO_CHARGER,
            current_move_task_id=command_id,
            metadata={**task.metadata, "payloadLoaded": False, MOVE_ISSUED_AT: self._clock()},
        )

    def _handle_done(self, task: Task) -> Task:
        self._logger_for(task).info(f"Dropoff task {task.task_id} is complete")
        return replace(task, status=TaskStatus.COMPLETED, completed_at=self._now())

    # --- Helpers ---

    def _undock_if_charging(self, task: Task) -> None:
        """Best-effort: a failed check or undock is logged and the move goes ahead."""
        logger = self._logger_for(task)
        client = self._client_for(task)
        try:
            if not client.is_charging():
                logger.debug(f"Robot {task.robot_id} is not charging, proceeding with movement")
                return
            logger.info(f"Robot {task.robot_id} is charging, undocking before the first move")
            client.undock()
        except Exception as e:
            logger.warning(f"Could not check charging state or undock robot {task.robot_id}: {e}")
            return
        self._sleep(self._undock_settle_seconds)

    def _issue_move(self, task: Task, target_point_id: str) -> str:
        command = self._client_for(task).create_move_command(target_point_id)
        if not command or not command.command_id:
            raise MotionCommandError(f"Robot {task.robot_id} returned no command id for move to {target_point_id}")
        return command.command_id

    def _fail(self, task: Task, error: Exception) -> Task:
        logger = self._logger_for(task)
        code = error.code if isinstance(error, WorkflowError) else ErrorCode.TASK_EXECUTION_FAILED
        logger.error(
            f"Task {task.task_id} failed at step {task.current_step.value}: {error}",
            exc_info=not isinstance(error, WorkflowError)
        )

        if isinstance(error, ArrivalTimeoutError) and task.current_move_task_id:
            self._cancel_quietly(task, task.current_move_task_id)

        failed = replace(
            task,
            status=TaskStatus.FAILED,
            error_details=ErrorDetails(message=str(error), code=code, step=task.current_step),
        )
        try:
            stored = self.task_store.replace(failed)
        except Exception:
            logger.error(f"Could not persist failure of task {task.task_id}", exc_info=True)
            raise

        self.kpi_recorder.record_event(WorkflowEvent(
            event_type=TASK_FAILED,
            robot_id=task.robot_id,
            task_id=task.task_id,
            event_data={"step": task.current_step.value, "code": code, "message": str(error)},
        ))
        return stored

    def _cancel_quietly(self, task: Task, command_id: str) -> None:
        try:
            self._client_for(task).cancel_command(command_id)
        except Exception as e:
            self._logger_for(task).warning(f"Could not cancel timed-out command {command_id}: {e}")

    def _record_progress(self, before: Task, after: Task) -> None:
        data: Dict[str, Any] = {"from": before.current_step.value, "to": after.current_step.value}
        if after.current_move_task_id:
            data["commandId"] = after.current_move_task_id

        if after.current_step != before.current_step:
            self.kpi_recorder.record_event(WorkflowEvent(
                event_type=STEP_ADVANCED, robot_id=after.robot_id, task_id=after.task_id, event_data=data
            ))
        if after.status == TaskStatus.COMPLETED and before.status != TaskStatus.COMPLETED:
            duration = None
            if after.started_at and after.completed_at:
                duration = (after.completed_at - after.started_at).total_seconds()
            self.kpi_recorder.record_event(WorkflowEvent(
                event_type=TASK_COMPLETED, robot_id=after.robot_id, task_id=after.task_id,
                event_data={"durationSeconds": duration},
            ))

    def _client_for(self, task: Task) -> IRobotMotionClient:
        return resolve_motion_client(self.motion_client, task.robot_id)

    def _logger_for(self, task: Task) -> logging.Logger:
        return logging.getLogger(f"StepExecutor.{task.robot_id}")

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)
