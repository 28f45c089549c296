"""
Interface for the Robot Motion Client - issues and tracks move commands on a
single robot's onboard controller.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union


class MotionPhase(Enum):
    """Motion state as reported by the robot (task_state)."""
    IDLE = "idle"
    MOVING = "moving"
    PAUSED = "paused"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'MotionPhase':
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class MotionState:
    """Robot motion snapshot. Polled, never pushed."""
    active_command_id: Optional[str]
    phase: MotionPhase = MotionPhase.UNKNOWN

    @property
    def is_moving(self) -> bool:
        return self.phase == MotionPhase.MOVING

    @property
    def is_idle(self) -> bool:
        return self.phase == MotionPhase.IDLE


@dataclass(frozen=True)
class MoveCommand:
    """Handle of an issued move command."""
    command_id: str
    target_point_id: str


class IRobotMotionClient(ABC):
    """
    Interface to the robot's motion API.

    Implementations raise MotionCommandError (interfaces.task_workflow_interface)
    for transport and device failures.
    """

    @abstractmethod
    def create_move_command(self, target_point_id: str) -> MoveCommand:
        """
        Send the robot to a point on its current map.

        Args:
            target_point_id: poiId of the target point

        Returns:
            MoveCommand: Handle carrying the device-assigned command id

        Raises:
            MotionCommandError: If the robot is unreachable or the point is unknown
        """
        pass

    @abstractmethod
    def get_motion_state(self) -> MotionState:
        """
        Get the robot's current motion state.

        Raises:
            MotionCommandError: If the robot is unreachable
        """
        pass

    @abstractmethod
    def cancel_command(self, command_id: str) -> None:
        """
        Cancel an outstanding move command. A command the device no longer
        knows about is not an error.

        Raises:
            MotionCommandError: If the robot is unreachable
        """
        pass

    @abstractmethod
    def is_charging(self) -> bool:
        """
        Whether the robot is docked on its charger and drawing power.

        Raises:
            MotionCommandError: If the robot is unreachable
        """
        pass

    @abstractmethod
    def undock(self) -> None:
        """
        Leave the charger. A robot that is not docked treats this as a no-op.

        Raises:
            MotionCommandError: If the robot is unreachable or rejects the request
        """
        pass


# A single client, or a lookup from robot id to that robot's client
MotionClientSource = Union[IRobotMotionClient, Callable[[str], IRobotMotionClient]]


def resolve_motion_client(source: MotionClientSource, robot_id: str) -> IRobotMotionClient:
    """Return the motion client that drives robot_id."""
    if isinstance(source, IRobotMotionClient):
        return source
    return source(robot_id)
