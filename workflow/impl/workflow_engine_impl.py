"""
Workflow Engine Implementation - per-task serialization facade.

Exposes generate/advance/cancel/pause/resume/classify to the surrounding
system and guarantees at most one in-flight state-changing call per task id.
Calls for different task ids run in parallel.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterable, Optional, Any, Callable

from interfaces.configuration_interface import IBusinessConfigurationProvider
from interfaces.robot_motion_client_interface import MotionClientSource
from interfaces.task_store_interface import ITaskStore, TaskNotFoundError
from interfaces.task_workflow_interface import (
    Task, Waypoint, PointClassification,
    IWorkflowGenerator, IStepExecutor, ICancellationController
)
from kpi.kpi_recorder_interface import IKpiRecorder, NullKpiRecorder
from workflow.point_classifier import classify as classify_points
from workflow.impl.arrival_poller_impl import ArrivalPollerImpl
from workflow.impl.cancellation_controller_impl import CancellationControllerImpl
from workflow.impl.step_executor_impl import StepExecutorImpl
from workflow.impl.workflow_generator_impl import WorkflowGeneratorImpl


logger = logging.getLogger(__name__)


class WorkflowEngine:
    """
    Entry point for the dropoff workflow.

    Every task-mutating call runs under the task id's lock and works on the
    latest stored record, never on the caller's copy. A task object passed in
    only names the task: advancing a stale copy cannot issue a second move,
    and cancelling one still cancels the move issued last.
    """

    def __init__(self,
                 task_store: ITaskStore,
                 generator: IWorkflowGenerator,
                 step_executor: IStepExecutor,
                 cancellation_controller: ICancellationController):
        self.task_store = task_store
        self.generator = generator
        self.step_executor = step_executor
        self.cancellation_controller = cancellation_controller

        self._registry_lock = threading.Lock()
        self._task_locks: Dict[str, threading.Lock] = {}

    @classmethod
    def create(cls,
               motion_client: MotionClientSource,
               task_store: ITaskStore,
               config_provider: Optional[IBusinessConfigurationProvider] = None,
               kpi_recorder: Optional[IKpiRecorder] = None,
               sleep: Callable[[float], None] = time.sleep,
               clock: Callable[[], float] = time.time) -> 'WorkflowEngine':
        """Wire the default generator, executor and cancellation controller."""
        kpi_recorder = kpi_recorder or NullKpiRecorder()
        return cls(
            task_store=task_store,
            generator=WorkflowGeneratorImpl(task_store, config_provider, kpi_recorder),
            step_executor=StepExecutorImpl(
                motion_client, task_store,
                arrival_poller=ArrivalPollerImpl(),
                config_provider=config_provider,
                kpi_recorder=kpi_recorder,
                sleep=sleep,
                clock=clock,
            ),
            cancellation_controller=CancellationControllerImpl(
                motion_client, task_store, config_provider, kpi_recorder, clock=clock
            ),
        )

    # --- Creation-time operations ---

    def generate(self, robot_id: str, dropoff_point: Optional[Waypoint],
                 shelf_point: Optional[Waypoint], return_point: Optional[Waypoint],
                 options: Optional[Dict[str, Any]] = None) -> Task:
        return self.generator.generate(robot_id, dropoff_point, shelf_point, return_point, options)

    def classify(self, points: Iterable[Waypoint]) -> PointClassification:
        return classify_points(points)

    # --- Task-mutating operations ---

    def advance(self, task: Task) -> Task:
        return self.advance_by_id(task.task_id)

    def cancel(self, task: Task) -> Task:
        return self.cancel_by_id(task.task_id)

    def pause(self, task: Task) -> Task:
        return self.pause_by_id(task.task_id)

    def resume(self, task: Task) -> Task:
        return self.resume_by_id(task.task_id)

    def advance_by_id(self, task_id: str) -> Task:
        with self._task_lock(task_id):
            return self.step_executor.advance(self._load(task_id))

    def cancel_by_id(self, task_id: str) -> Task:
        with self._task_lock(task_id):
            return self.cancellation_controller.cancel(self._load(task_id))

    def pause_by_id(self, task_id: str) -> Task:
        with self._task_lock(task_id):
            return self.step_executor.pause(self._load(task_id))

    def resume_by_id(self, task_id: str) -> Task:
        with self._task_lock(task_id):
            return self.step_executor.resume(self._load(task_id))

    def forget(self, task_id: str) -> None:
        """Drop the lock of a task that will not be touched again."""
        with self._registry_lock:
            self._task_locks.pop(task_id, None)

    # --- Internal ---

    def _load(self, task_id: str) -> Task:
        task = self.task_store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    @contextmanager
    def _task_lock(self, task_id: str):
        with self._registry_lock:
            lock = self._task_locks.get(task_id)
            if lock is None:
                lock = threading.Lock()
                self._task_locks[task_id] = lock
        if not lock.acquire(blocking=False):
            logger.debug(f"Waiting for in-flight call on task {task_id}")
            lock.acquire()
        try:
            yield
        finally:
            lock.release()
