"""
Workflow implementation modules.

Contains concrete implementations of the workflow interfaces:
- ArrivalPollerImpl: move completion heuristic
- WorkflowGeneratorImpl: task creation
- StepExecutorImpl: the step state machine
- CancellationControllerImpl: cancellation with payload safety reroute
- WorkflowEngine: per-task serialization facade
"""

from .arrival_poller_impl import ArrivalPollerImpl
from .workflow_generator_impl import WorkflowGeneratorImpl
from .step_executor_impl import StepExecutorImpl
from .cancellation_controller_impl import CancellationControllerImpl
from .workflow_engine_impl import WorkflowEngine

__all__ = [
    'ArrivalPollerImpl',
    'WorkflowGeneratorImpl',
    'StepExecutorImpl',
    'CancellationControllerImpl',
    'WorkflowEngine',
]
