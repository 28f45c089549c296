"""
In-memory Task Store - process-local persistence for tests, demos and the CLI.

Records are stored as deep copies so callers can never mutate stored state
through a returned Task.
"""
import copy
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from threading import RLock
from typing import Dict, List, Optional

from interfaces.task_store_interface import ITaskStore, TaskNotFoundError, TaskStoreError
from interfaces.task_workflow_interface import Task


logger = logging.getLogger(__name__)

TASK_ID_PREFIX = "dropoff-"


def new_task_id() -> str:
    return f"{TASK_ID_PREFIX}{uuid.uuid4()}"


class InMemoryTaskStore(ITaskStore):
    """Dict-backed ITaskStore guarded by an RLock."""

    def __init__(self):
        self._lock = RLock()
        self._tasks: Dict[str, Task] = {}

    def create(self, task: Task) -> Task:
        with self._lock:
            task_id = task.task_id or new_task_id()
            if task_id in self._tasks:
                raise TaskStoreError(f"Task already exists: {task_id}")
            stored = replace(task, task_id=task_id, created_at=task.created_at or datetime.now(timezone.utc))
            self._tasks[task_id] = copy.deepcopy(stored)
            logger.debug(f"Stored task {task_id}")
            return copy.deepcopy(stored)

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task is not None else None

    def replace(self, task: Task) -> Task:
        with self._lock:
            if task.task_id not in self._tasks:
                raise TaskNotFoundError(task.task_id)
            self._tasks[task.task_id] = copy.deepcopy(task)
            return copy.deepcopy(task)

    def list_active(self) -> List[Task]:
        with self._lock:
            active = [t for t in self._tasks.values() if not t.status.is_terminal]
            active.sort(key=lambda t: t.created_at or datetime.min.replace(tzinfo=timezone.utc))
            return [copy.deepcopy(t) for t in active]

    def list_all(self) -> List[Task]:
        with self._lock:
            return [copy.deepcopy(t) for t in self._tasks.values()]
