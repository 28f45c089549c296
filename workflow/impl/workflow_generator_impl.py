"""
Workflow Generator Implementation - builds and stores new dropoff tasks.
"""
import logging
from typing import Optional, Dict, Any

from interfaces.configuration_interface import IBusinessConfigurationProvider
from interfaces.task_store_interface import ITaskStore
from interfaces.task_workflow_interface import (
    IWorkflowGenerator, Task, TaskStatus, WorkflowStep, Waypoint, ValidationError
)
from kpi.kpi_recorder_interface import IKpiRecorder, NullKpiRecorder, WorkflowEvent, TASK_CREATED
from workflow.docking import derive_docking_id, DEFAULT_MARKER, DEFAULT_REPLACEMENT


WORKFLOW_TYPE = "dropoff"
DEFAULT_PRIORITY = "normal"
DEFAULT_ORIGIN = "api"


class WorkflowGeneratorImpl(IWorkflowGenerator):
    """
    Creates pending dropoff tasks at the init step.

    The dropoff docking id is resolved up front so a task with an unusable
    dropoff point is rejected before it is ever stored.
    """

    def __init__(self,
                 task_store: ITaskStore,
                 config_provider: Optional[IBusinessConfigurationProvider] = None,
                 kpi_recorder: Optional[IKpiRecorder] = None):
        self.task_store = task_store
        self.kpi_recorder = kpi_recorder or NullKpiRecorder()
        self.logger = logging.getLogger(__name__)

        if config_provider:
            workflow_config = config_provider.get_workflow_config()
            self._docking_marker = workflow_config.docking_marker
            self._docking_replacement = workflow_config.docking_replacement
        else:
            self._docking_marker = DEFAULT_MARKER
            self._docking_replacement = DEFAULT_REPLACEMENT

    def generate(self, robot_id: str, dropoff_point: Optional[Waypoint],
                 shelf_point: Optional[Waypoint], return_point: Optional[Waypoint],
                 options: Optional[Dict[str, Any]] = None) -> Task:
        options = options or {}

        if not robot_id:
            raise ValidationError("Robot ID is required")
        if not dropoff_point or not shelf_point or not return_point:
            raise ValidationError("Dropoff, shelf, and return points are required")

        docking_point = options.get("docking_point")
        if isinstance(docking_point, dict):
            docking_point = Waypoint.from_dict(docking_point)
        if docking_point and docking_point.poi_id:
            dropoff_docking_id = docking_point.poi_id
            self.logger.debug(f"Using supplied docking point {dropoff_docking_id}")
        else:
            dropoff_docking_id = derive_docking_id(
                dropoff_point.poi_id, self._docking_marker, self._docking_replacement
            )

        dropoff_name = dropoff_point.name or "dropoff"
        shelf_name = shelf_point.name or "shelf"

        task = Task(
            task_id=options.get("task_id") or "",
            robot_id=robot_id,
            name=f"Dropoff from {dropoff_name} to {shelf_name}",
            priority=options.get("priority") or DEFAULT_PRIORITY,
            status=TaskStatus.PENDING,
            current_step=WorkflowStep.INIT,
            dropoff_point=dropoff_point,
            shelf_point=shelf_point,
            return_point=return_point,
            current_move_task_id=None,
            metadata={
                "workflowType": WORKFLOW_TYPE,
                "dropoffId": dropoff_point.poi_id,
                "dropoffDockingId": dropoff_docking_id,
                "shelfId": shelf_point.poi_id,
                "returnId": return_point.poi_id,
                "requestOrigin": options.get("origin") or DEFAULT_ORIGIN,
                "originatorId": options.get("originator_id"),
            },
        )

        stored = self.task_store.create(task)
        self.logger.info(f"Created dropoff task {stored.task_id} for robot {robot_id}")
        self.kpi_recorder.record_event(WorkflowEvent(
            event_type=TASK_CREATED,
            robot_id=robot_id,
            task_id=stored.task_id,
            event_data={
                "dropoffId": dropoff_point.poi_id,
                "shelfId": shelf_point.poi_id,
                "returnId": return_point.poi_id,
                "priority": stored.priority,
            },
        ))
        return stored
