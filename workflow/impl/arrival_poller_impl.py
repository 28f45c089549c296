"""
Arrival Poller Implementation - best-effort move completion detection.

The robot only exposes its currently active command and a coarse task_state,
so completion is inferred:
- task_state is idle, or
- the active command is no longer ours and the robot is not moving.

Known blind spots: a robot briefly idle between two back-to-back commands
reads as arrived, and a hung command never does (the step executor bounds
the wait with an arrival timeout).
"""
import logging
from typing import Optional

from interfaces.robot_motion_client_interface import MotionState
from interfaces.task_workflow_interface import IArrivalPoller


logger = logging.getLogger(__name__)


class ArrivalPollerImpl(IArrivalPoller):
    """Stateless arrival heuristic over the robot's self-reported motion state."""

    def has_arrived(self, motion_state: MotionState, expected_command_id: Optional[str]) -> bool:
        if motion_state.is_idle:
            return True

        if motion_state.active_command_id != expected_command_id and not motion_state.is_moving:
            logger.debug(
                f"Active command {motion_state.active_command_id} differs from expected "
                f"{expected_command_id} and robot is {motion_state.phase.value}; treating as arrived"
            )
            return True

        return False
