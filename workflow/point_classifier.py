"""
Point Classifier - groups map waypoints into semantic roles by naming convention.

Conventions:
- Dropoff: leading numeric token of the name (before the first "_") in 1-49
- Pickup:  leading numeric token in 50-99
- Shelf:   type contains "rack" or "shelf"
- Charger: type contains "charger", or name contains "Charging"

Roles are not exclusive; a rack named "050_load" is both a pickup and a shelf.
Pure and stateless, safe to call from any thread.
"""
import re
from typing import Iterable, Optional

from interfaces.task_workflow_interface import PointClassification, Waypoint


DROPOFF_RANGE = (1, 49)
PICKUP_RANGE = (50, 99)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def leading_number(name: str) -> Optional[int]:
    """Integer prefix of the first "_"-separated token ("001_load" -> 1), or None."""
    if not name:
        return None
    match = _LEADING_INT.match(name.split("_", 1)[0])
    return int(match.group(1)) if match else None


def _in_range(point: Waypoint, bounds) -> bool:
    number = leading_number(point.name)
    return number is not None and bounds[0] <= number <= bounds[1]


def is_dropoff(point: Waypoint) -> bool:
    return _in_range(point, DROPOFF_RANGE)


def is_pickup(point: Waypoint) -> bool:
    return _in_range(point, PICKUP_RANGE)


def is_shelf(point: Waypoint) -> bool:
    return "rack" in point.type or "shelf" in point.type


def is_charger(point: Waypoint) -> bool:
    return "charger" in point.type or "Charging" in point.name


def classify(points: Optional[Iterable[Waypoint]]) -> PointClassification:
    """
    Classify waypoints into dropoff, pickup, shelf and charger lists.

    Args:
        points: Waypoints to classify (None is treated as empty)

    Returns:
        PointClassification: Matches per role, in input order
    """
    result = PointClassification()
    for point in points or ():
        if is_dropoff(point):
            result.dropoff.append(point)
        if is_pickup(point):
            result.pickup.append(point)
        if is_shelf(point):
            result.shelf.append(point)
        if is_charger(point):
            result.charger.append(point)
    return result


def find_charging_station(points: Optional[Iterable[Waypoint]]) -> Optional[Waypoint]:
    """First charger in input order, or None."""
    for point in points or ():
        if is_charger(point):
            return point
    return None


def select(points: Iterable[Waypoint], poi_id: str) -> Waypoint:
    """
    Find a waypoint by poiId or name.

    Raises:
        KeyError: If no waypoint matches
    """
    for point in points:
        if point.poi_id == poi_id or point.name == poi_id:
            return point
    raise KeyError(poi_id)
