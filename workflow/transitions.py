"""
Transition validation for task steps and statuses.

The step graph is a single forward path (see STEP_ORDER); the status graph
is monotonic except for the in_progress <-> paused loop.
"""
from typing import Dict, FrozenSet

from interfaces.task_workflow_interface import (
    InvalidTransitionError, STEP_ORDER, TaskStatus, WorkflowStep
)


_NEXT_STEP: Dict[WorkflowStep, WorkflowStep] = {
    current: nxt for current, nxt in zip(STEP_ORDER, STEP_ORDER[1:])
}

_STATUS_EDGES: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED, TaskStatus.FAILED}),
    TaskStatus.IN_PROGRESS: frozenset({
        TaskStatus.PAUSED, TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED
    }),
    TaskStatus.PAUSED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def next_step(current: WorkflowStep) -> WorkflowStep:
    """Successor on the route; DONE has none."""
    try:
        return _NEXT_STEP[current]
    except KeyError:
        raise InvalidTransitionError(f"Step {current.value} has no successor")


def validate_step_transition(current: WorkflowStep, nxt: WorkflowStep) -> None:
    """
    Raises:
        InvalidTransitionError: Unless nxt is current or its direct successor
    """
    if nxt == current or _NEXT_STEP.get(current) == nxt:
        return
    raise InvalidTransitionError(f"Illegal step transition {current.value} -> {nxt.value}")


def validate_status_transition(current: TaskStatus, nxt: TaskStatus) -> None:
    """
    Raises:
        InvalidTransitionError: If the edge is not in the status graph; terminal
        states accept no transition, not even to themselves
    """
    if current.is_terminal:
        raise InvalidTransitionError(f"Task is already {current.value}; cannot move to {nxt.value}")
    if nxt == current or nxt in _STATUS_EDGES[current]:
        return
    raise InvalidTransitionError(f"Illegal status transition {current.value} -> {nxt.value}")
