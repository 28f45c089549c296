"""
Workflow Driver - background loop that keeps active tasks moving.

Every tick the driver lists active tasks from the store and advances the ones
that are due, in parallel on a thread pool. A task whose advance produced no
change is polled again after an exponentially growing delay (bounded by
max_poll_interval_seconds); any change resets it to the base interval.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass
from typing import Dict, Optional, Callable, List

from interfaces.configuration_interface import IBusinessConfigurationProvider
from interfaces.task_store_interface import ITaskStore, TaskStoreError
from interfaces.task_workflow_interface import Task, TaskStatus
from workflow.impl.workflow_engine_impl import WorkflowEngine


logger = logging.getLogger(__name__)

# Lower bound on the loop wait so in-flight tasks never cause a busy spin
MIN_LOOP_WAIT = 0.01


@dataclass
class _PollState:
    """Backoff bookkeeping for one task."""
    delay: float
    next_poll_at: float = 0.0


class WorkflowDriver:
    """
    Polls the task store and advances due tasks.

    Threading Model:
    - start()/stop(): any thread
    - The loop thread only schedules work; advances run on the pool. A task is
      never submitted again while its previous advance is still running.
    """

    def __init__(self,
                 engine: WorkflowEngine,
                 task_store: ITaskStore,
                 config_provider: Optional[IBusinessConfigurationProvider] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.task_store = task_store
        self._clock = clock

        if config_provider:
            workflow_config = config_provider.get_workflow_config()
            self._poll_interval = workflow_config.poll_interval_seconds
            self._max_poll_interval = workflow_config.max_poll_interval_seconds
            self._backoff_factor = workflow_config.poll_backoff_factor
            self._workers = workflow_config.driver_workers
        else:
            self._poll_interval = 1.0
            self._max_poll_interval = 10.0
            self._backoff_factor = 2.0
            self._workers = 4

        self._poll_states: Dict[str, _PollState] = {}
        self._in_flight: Dict[str, Future] = {}
        self._state_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    # --- Lifecycle ---

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="WorkflowWorker")
        self._thread = threading.Thread(target=self._run, name="WorkflowDriver", daemon=True)
        self._thread.start()
        logger.info(f"Workflow driver started ({self._workers} workers, poll {self._poll_interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None
        with self._state_lock:
            self._in_flight.clear()
        logger.info("Workflow driver stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_until_idle(self, timeout: Optional[float] = None) -> List[Task]:
        """
        Drive tasks synchronously in the calling thread until none can make progress.

        Returns:
            List[Task]: Tasks still active on return (paused ones, or all of them on timeout)
        """
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            active = self.task_store.list_active()
            if all(t.status == TaskStatus.PAUSED for t in active):
                return active
            if deadline is not None and self._clock() >= deadline:
                return active
            for task in active:
                if self._is_due(task.task_id):
                    self._advance_one(task.task_id)
            self._stop_event.wait(self._sleep_until_next_due())

    # --- Loop ---

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except TaskStoreError as e:
                logger.error(f"Could not list active tasks: {e}")
            self._stop_event.wait(self._sleep_until_next_due())

    def tick(self) -> int:
        """Submit every due task to the pool. Returns the number submitted."""
        active = self.task_store.list_active()
        active_ids = {t.task_id for t in active}
        submitted = 0

        with self._state_lock:
            # Forget tasks that finished or disappeared
            for task_id in set(self._poll_states) | set(self._in_flight):
                if task_id not in active_ids:
                    self._poll_states.pop(task_id, None)
                    self._in_flight.pop(task_id, None)
                    self.engine.forget(task_id)

        for task in active:
            with self._state_lock:
                running = self._in_flight.get(task.task_id)
                if running is not None and not running.done():
                    continue
            if not self._is_due(task.task_id):
                continue
            future = self._executor.submit(self._advance_one, task.task_id)
            with self._state_lock:
                self._in_flight[task.task_id] = future
            submitted += 1
        return submitted

    def _advance_one(self, task_id: str) -> None:
        try:
            before = self.task_store.get(task_id)
            if before is None:
                return
            after = self.engine.advance_by_id(task_id)
        except Exception:
            # One task's store failure must not stop the others
            logger.error(f"Advancing task {task_id} failed", exc_info=True)
            self._backoff(task_id)
            return

        if after == before:
            self._backoff(task_id)
        else:
            self._reset(task_id)
            if after.status.is_terminal:
                logger.info(f"Task {task_id} finished with status {after.status.value}")

    # --- Backoff ---

    def _state_for(self, task_id: str) -> _PollState:
        state = self._poll_states.get(task_id)
        if state is None:
            state = _PollState(delay=self._poll_interval)
            self._poll_states[task_id] = state
        return state

    def _is_due(self, task_id: str) -> bool:
        with self._state_lock:
            return self._clock() >= self._state_for(task_id).next_poll_at

    def _backoff(self, task_id: str) -> None:
        with self._state_lock:
            state = self._state_for(task_id)
            state.next_poll_at = self._clock() + state.delay
            state.delay = min(state.delay * self._backoff_factor, self._max_poll_interval)

    def _reset(self, task_id: str) -> None:
        with self._state_lock:
            state = self._state_for(task_id)
            state.delay = self._poll_interval
            state.next_poll_at = self._clock()

    def next_delay(self, task_id: str) -> float:
        """Current backoff delay of a task (base interval when unknown)."""
        with self._state_lock:
            state = self._poll_states.get(task_id)
            return state.delay if state else self._poll_interval

    def _sleep_until_next_due(self) -> float:
        with self._state_lock:
            if not self._poll_states:
                return self._poll_interval
            soonest = min(s.next_poll_at for s in self._poll_states.values())
        return max(MIN_LOOP_WAIT, min(soonest - self._clock(), self._poll_interval))
