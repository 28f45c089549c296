import unittest

from interfaces.task_workflow_interface import (
    ErrorCode, InvalidTransitionError, STEP_ORDER, TaskStatus, UnresolvedReferenceError, WorkflowStep
)
from workflow.docking import derive_docking_id
from workflow.transitions import next_step, validate_status_transition, validate_step_transition


class TestDerivedDockingId(unittest.TestCase):
    def test_replaces_marker(self):
        self.assertEqual(derive_docking_id("001_load"), "001_load_docking")
        self.assertEqual(derive_docking_id("115_load"), "115_load_docking")

    def test_only_first_occurrence(self):
        self.assertEqual(derive_docking_id("a_load_load"), "a_load_docking_load")

    def test_already_docking(self):
        self.assertEqual(derive_docking_id("001_load_docking"), "001_load_docking")

    def test_missing_marker(self):
        with self.assertRaises(UnresolvedReferenceError) as ctx:
            derive_docking_id("CHG1")
        self.assertEqual(ctx.exception.code, ErrorCode.UNRESOLVED_REFERENCE)

    def test_empty(self):
        with self.assertRaises(UnresolvedReferenceError):
            derive_docking_id("")

    def test_custom_convention(self):
        self.assertEqual(derive_docking_id("7-pick", "-pick", "-pick-dock"), "7-pick-dock")


class TestStepTransitions(unittest.TestCase):
    def test_forward_edges(self):
        for current, nxt in zip(STEP_ORDER, STEP_ORDER[1:]):
            validate_step_transition(current, nxt)
            self.assertEqual(next_step(current), nxt)

    def test_stay_put(self):
        for step in STEP_ORDER:
            validate_step_transition(step, step)

    def test_skip_and_reverse_rejected(self):
        with self.assertRaises(InvalidTransitionError):
            validate_step_transition(WorkflowStep.INIT, WorkflowStep.AT_DROPOFF)
        with self.assertRaises(InvalidTransitionError):
            validate_step_transition(WorkflowStep.TO_SHELF, WorkflowStep.AT_DROPOFF)

    def test_done_has_no_successor(self):
        with self.assertRaises(InvalidTransitionError):
            next_step(WorkflowStep.DONE)


class TestStatusTransitions(unittest.TestCase):
    def test_allowed(self):
        validate_status_transition(TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
        validate_status_transition(TaskStatus.IN_PROGRESS, TaskStatus.PAUSED)
        validate_status_transition(TaskStatus.PAUSED, TaskStatus.IN_PROGRESS)
        validate_status_transition(TaskStatus.PAUSED, TaskStatus.CANCELLED)
        validate_status_transition(TaskStatus.IN_PROGRESS, TaskStatus.IN_PROGRESS)

    def test_rejected(self):
        with self.assertRaises(InvalidTransitionError):
            validate_status_transition(TaskStatus.PENDING, TaskStatus.PAUSED)
        with self.assertRaises(InvalidTransitionError):
            validate_status_transition(TaskStatus.PENDING, TaskStatus.COMPLETED)

    def test_terminal_accepts_nothing(self):
        for terminal in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED):
            with self.assertRaises(InvalidTransitionError):
                validate_status_transition(terminal, TaskStatus.IN_PROGRESS)
            with self.assertRaises(InvalidTransitionError):
                validate_status_transition(terminal, terminal)


if __name__ == '__main__':
    unittest.main()
