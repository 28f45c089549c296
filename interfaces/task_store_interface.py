"""
Task Store Interface

Persistence boundary for workflow tasks. Keeps the workflow engine independent
of storage specifics; read-modify-write consistency per task id is the
store's responsibility.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from .task_workflow_interface import Task


class TaskStoreError(Exception):
    """Raised when a store operation fails."""
    pass


class TaskNotFoundError(TaskStoreError):
    """Raised when a task id is not present in the store."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class ITaskStore(ABC):
    """Abstraction for workflow task persistence."""

    @abstractmethod
    def create(self, task: Task) -> Task:
        """
        Insert a new task. Assigns task_id when empty and created_at.
        Returns the stored record.
        """

    @abstractmethod
    def get(self, task_id: str) -> Optional[Task]:
        """Get a task by id; returns None if not present."""

    @abstractmethod
    def replace(self, task: Task) -> Task:
        """
        Full-record update keyed by task_id.

        Raises:
            TaskNotFoundError: If the task does not already exist
        """

    @abstractmethod
    def list_active(self) -> List[Task]:
        """List tasks whose status is not terminal, oldest first."""
