import unittest
from dataclasses import replace
from unittest.mock import Mock

from fleet.impl.task_store_memory_impl import InMemoryTaskStore
from interfaces.task_workflow_interface import (
    ErrorCode, PAYLOAD_STEPS, STEP_ORDER, TaskStatus, WorkflowStep
)
from kpi.kpi_recorder_interface import (
    CANCEL_REROUTE_FAILED, CANCEL_REROUTE_ISSUED, MOTION_CANCEL_FAILED, TASK_CANCELLED, TASK_COMPLETED
)
from workflow.impl.cancellation_controller_impl import CANCEL_MESSAGE, CancellationControllerImpl
from workflow.impl.step_executor_impl import StepExecutorImpl
from workflow.impl.workflow_generator_impl import WorkflowGeneratorImpl
from tests.fakes import FakeRobotMotionClient, make_points, unreachable


class TestCancellationController(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryTaskStore()
        self.client = FakeRobotMotionClient()
        self.kpi = Mock()
        self.executor = StepExecutorImpl(self.client, self.store, sleep=Mock())
        self.controller = CancellationControllerImpl(self.client, self.store, kpi_recorder=self.kpi)
        points = make_points()
        self.task = WorkflowGeneratorImpl(self.store).generate(
            "R1", points["dropoff"], points["shelf"], points["charger"]
        )

    def task_at(self, step):
        task = self.task
        while task.current_step != step:
            task = self.executor.advance(task)
        return task

    def event_types(self):
        return [c[0][0].event_type for c in self.kpi.record_event.call_args_list]

    def test_cancel_from_every_step_before_done(self):
        for step in STEP_ORDER:
            if step == WorkflowStep.DONE:
                continue
            with self.subTest(step=step):
                self.setUp()
                task = self.task_at(step)
                cancelled = self.controller.cancel(task)
                self.assertEqual(cancelled.status, TaskStatus.CANCELLED)
                self.assertEqual(cancelled.current_step, step)
                self.assertIsNone(cancelled.current_move_task_id)
                self.assertEqual(cancelled.error_details.message, CANCEL_MESSAGE)
                self.assertEqual(cancelled.error_details.code, ErrorCode.CANCELLED)
                self.assertEqual(cancelled.error_details.step, step)
                self.assertEqual(self.store.get(task.task_id).status, TaskStatus.CANCELLED)
                self.assertEqual(self.event_types()[-1], TASK_CANCELLED)

    def test_outstanding_move_cancelled(self):
        task = self.task_at(WorkflowStep.TO_DROPOFF)
        self.controller.cancel(task)
        self.assertEqual(self.client.cancelled, ["cmd-1"])
        self.assertEqual(self.client.moves, ["001_load_docking"])

    def test_reroute_while_payload_bearing(self):
        for step in PAYLOAD_STEPS:
            with self.subTest(step=step):
                self.setUp()
                task = self.task_at(step)
                moves_before = len(self.client.moves)
                cancelled = self.controller.cancel(task)
                self.assertEqual(self.client.moves[moves_before:], ["115_load_docking"])
                self.assertEqual(cancelled.metadata["cancelRerouteCommandId"], self.client.last_command_id)
                self.assertIn(CANCEL_REROUTE_ISSUED, self.event_types())

    def test_no_reroute_outside_payload_window(self):
        for step in (WorkflowStep.INIT, WorkflowStep.TO_DROPOFF, WorkflowStep.TO_CHARGER, WorkflowStep.DONE):
            with self.subTest(step=step):
                self.setUp()
                task = self.task_at(step)
                moves_before = len(self.client.moves)
                cancelled = self.controller.cancel(task)
                self.assertEqual(len(self.client.moves), moves_before)
                self.assertNotIn("cancelRerouteCommandId", cancelled.metadata)

    def test_at_dropoff_reroute_derives_shelf_docking(self):
        task = self.task_at(WorkflowStep.AT_DROPOFF)
        self.assertNotIn("shelfDockingId", task.metadata)
        cancelled = self.controller.cancel(task)
        self.assertEqual(cancelled.metadata["shelfDockingId"], "115_load_docking")

    def test_motion_cancel_failure_is_best_effort(self):
        task = self.task_at(WorkflowStep.TO_SHELF)
        self.client.fail_cancel = unreachable()
        cancelled = self.controller.cancel(task)
        self.assertEqual(cancelled.status, TaskStatus.CANCELLED)
        self.assertIn(MOTION_CANCEL_FAILED, self.event_types())
        self.assertIn("cancelRerouteCommandId", cancelled.metadata)

    def test_reroute_failure_is_best_effort(self):
        task = self.task_at(WorkflowStep.AT_SHELF)
        self.client.fail_move_to["115_load_docking"] = unreachable("shelf unreachable")
        cancelled = self.controller.cancel(task)
        self.assertEqual(cancelled.status, TaskStatus.CANCELLED)
        self.assertEqual(cancelled.metadata["cancelRerouteError"], "shelf unreachable")
        self.assertIn(CANCEL_REROUTE_FAILED, self.event_types())

    def test_underivable_reroute_target_is_best_effort(self):
        task = self.task_at(WorkflowStep.AT_DROPOFF)
        task = replace(task, metadata=dict(task.metadata, shelfId="CHG9"))
        cancelled = self.controller.cancel(task)
        self.assertEqual(cancelled.status, TaskStatus.CANCELLED)
        self.assertIn("cancelRerouteError", cancelled.metadata)

    def test_terminal_task_unchanged(self):
        cancelled = self.controller.cancel(self.task_at(WorkflowStep.TO_DROPOFF))
        calls = len(self.kpi.record_event.call_args_list)
        self.assertIs(self.controller.cancel(cancelled), cancelled)
        self.assertEqual(len(self.kpi.record_event.call_args_list), calls)

    def test_completed_task_not_cancelled(self):
        task = self.task
        while task.status != TaskStatus.COMPLETED:
            task = self.executor.advance(task)
        self.assertIs(self.controller.cancel(task), task)

    def test_finished_route_completes_instead_of_cancelling(self):
        task = self.task_at(WorkflowStep.DONE)
        self.assertEqual(task.status, TaskStatus.IN_PROGRESS)
        moves_before = list(self.client.moves)
        result = self.controller.cancel(task)
        self.assertEqual(result.status, TaskStatus.COMPLETED)
        self.assertIsNotNone(result.completed_at)
        self.assertIsNone(result.error_details)
        self.assertEqual(self.client.moves, moves_before)
        self.assertEqual(self.client.cancelled, [])
        self.assertEqual(self.store.get(task.task_id).status, TaskStatus.COMPLETED)
        self.assertEqual(self.event_types(), [TASK_COMPLETED])

    def test_cancel_paused_task(self):
        paused = self.executor.pause(self.task_at(WorkflowStep.TO_SHELF))
        cancelled = self.controller.cancel(paused)
        self.assertEqual(cancelled.status, TaskStatus.CANCELLED)
        self.assertEqual(self.client.moves[-1], "115_load_docking")


if __name__ == '__main__':
    unittest.main()
