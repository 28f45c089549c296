"""
HTTP Robot Motion Client - drives one robot through its onboard HTTP API.

Endpoints used (robot local API, default port 8090):
- GET  /chassis/current-map           current map id/name
- GET  /maps/{map_id}                 map details; "overlays" is a GeoJSON string
- POST /chassis/moves                 create a move, returns {"id": ...}
- GET  /chassis/                      motion status (task_state, task_id)
- POST /task/v1.1/{id}/cancel         cancel an outstanding command
- POST /services/undock              leave the charger

Moves target coordinates, so point ids are resolved against the current map.
The map is cached per client and refreshed once when a point is missing.
"""
import json
import logging
import threading
from typing import Any, Dict, List, Optional

import httpx

from interfaces.robot_motion_client_interface import (
    IRobotMotionClient, MotionPhase, MotionState, MoveCommand
)
from interfaces.task_workflow_interface import MotionCommandError, Waypoint


# Overlay feature type codes
POINT_TYPE_CODES = {
    "9": "charger",
    "11": "docking",
    "34": "rack",
    "36": "docker",
}

DEFAULT_ROBOT_PORT = 8090


def parse_map_overlays(overlays: Any, map_id: Any = None, map_name: str = "") -> List[Waypoint]:
    """
    Convert a map's GeoJSON overlays into waypoints.

    Args:
        overlays: JSON string (as served by the robot) or already-decoded dict
        map_id: Map id, used to name features that carry no id
        map_name: Map name, used as the waypoint area id

    Returns:
        List[Waypoint]: One waypoint per Point feature

    Raises:
        MotionCommandError: If the overlays cannot be decoded
    """
    if isinstance(overlays, (str, bytes)):
        try:
            overlays = json.loads(overlays)
        except ValueError as e:
            raise MotionCommandError(f"Failed to parse map overlays JSON: {e}")

    features = overlays.get("features") if isinstance(overlays, dict) else None
    if not isinstance(features, list):
        raise MotionCommandError("Invalid overlay format in map data")

    points = []
    for feature in features:
        geometry = feature.get("geometry") or {}
        if geometry.get("type") != "Point":
            continue

        x, y = geometry.get("coordinates", [0.0, 0.0])[:2]
        properties = feature.get("properties") or {}

        point_type = "unknown"
        if properties.get("type") is not None:
            raw_type = str(properties["type"])
            point_type = POINT_TYPE_CODES.get(raw_type, raw_type)
        if properties.get("subtype"):
            point_type = f"{point_type}_{properties['subtype']}"

        poi_id = str(feature.get("id") or f"map_{map_id}_{x}_{y}")
        points.append(Waypoint(
            poi_id=poi_id,
            name=str(properties.get("name") or feature.get("id") or f"Point at ({x}, {y})"),
            type=point_type,
            x=float(x),
            y=float(y),
            yaw=float(properties.get("yaw") or 0.0),
            area_id=map_name or "",
        ))
    return points


class HttpRobotMotionClient(IRobotMotionClient):
    """
    IRobotMotionClient over the robot's local HTTP API using httpx.

    Thread-safe: httpx.Client is safe to share and the map cache is guarded by a lock.
    """

    def __init__(self,
                 base_url: str,
                 app_code: Optional[str] = None,
                 timeout: float = 10.0,
                 creator: str = "robot-platform",
                 move_accuracy: float = 0.2,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Args:
            base_url: e.g. "http://10.0.0.12:8090"
            app_code: Value for the APPCODE header; omitted when None
            timeout: Per-request timeout in seconds
            creator: Creator recorded on every move
            move_accuracy: target_accuracy for moves, in meters
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        headers = {"Content-Type": "application/json"}
        if app_code:
            headers["APPCODE"] = f"APPCODE {app_code}"

        self._http = httpx.Client(base_url=base_url, headers=headers, timeout=timeout, transport=transport)
        self._creator = creator
        self._move_accuracy = move_accuracy
        self._logger = logging.getLogger(f"HttpRobotMotionClient.{base_url}")

        self._map_lock = threading.Lock()
        self._points_by_id: Optional[Dict[str, Waypoint]] = None

    @classmethod
    def from_config(cls, robot_api_config, transport: Optional[httpx.BaseTransport] = None) -> 'HttpRobotMotionClient':
        return cls(
            base_url=robot_api_config.base_url,
            app_code=robot_api_config.app_code,
            timeout=robot_api_config.timeout,
            creator=robot_api_config.creator,
            move_accuracy=robot_api_config.move_accuracy,
            transport=transport,
        )

    # --- IRobotMotionClient ---

    def create_move_command(self, target_point_id: str) -> MoveCommand:
        point = self._resolve_point(target_point_id)
        body = {
            "creator": self._creator,
            "type": "standard",
            "target_x": point.x,
            "target_y": point.y,
            "target_ori": point.yaw,
            "target_accuracy": self._move_accuracy,
        }
        self._logger.info(f"Creating move to {target_point_id} at ({point.x:.2f}, {point.y:.2f})")

        data = self._request("POST", "/chassis/moves", json=body)
        command_id = data.get("id") if isinstance(data, dict) else None
        if command_id is None or command_id == "":
            raise MotionCommandError(f"Move to {target_point_id} returned no command id: {data}")
        return MoveCommand(command_id=str(command_id), target_point_id=target_point_id)

    def get_motion_state(self) -> MotionState:
        data = self._request("GET", "/chassis/")
        if not isinstance(data, dict):
            raise MotionCommandError(f"Unexpected status payload: {data}")
        task_id = data.get("task_id")
        return MotionState(
            active_command_id=str(task_id) if task_id is not None else None,
            phase=MotionPhase.parse(data.get("task_state")),
        )

    def cancel_command(self, command_id: str) -> None:
        try:
            response = self._http.post(f"/task/v1.1/{command_id}/cancel")
        except httpx.HTTPError as e:
            raise MotionCommandError(f"Cancel of command {command_id} failed: {e}")

        if response.status_code == 404:
            self._logger.info(f"Command {command_id} unknown to robot; nothing to cancel")
            return
        self._raise_for_status(response, f"cancel {command_id}")

    def is_charging(self) -> bool:
        data = self._request("GET", "/chassis/")
        if not isinstance(data, dict):
            raise MotionCommandError(f"Unexpected status payload: {data}")
        return data.get("power_supply_status") == "charging" or bool(data.get("is_charging"))

    def undock(self) -> None:
        data = self._request("POST", "/services/undock")
        self._logger.info(f"Undock requested: {data}")

    # --- Map access ---

    def get_map_points(self) -> List[Waypoint]:
        """Read the current map and return its points of interest."""
        current = self._request("GET", "/chassis/current-map")
        map_id = current.get("id") if isinstance(current, dict) else None
        if not map_id:
            raise MotionCommandError("Failed to get current map ID")

        details = self._request("GET", f"/maps/{map_id}")
        if not isinstance(details, dict) or not details.get("overlays"):
            raise MotionCommandError(f"Failed to get overlays for map {map_id}")

        points = parse_map_overlays(details["overlays"], map_id=map_id, map_name=current.get("map_name") or "")
        with self._map_lock:
            self._points_by_id = {p.poi_id: p for p in points}
        self._logger.debug(f"Loaded {len(points)} points from map {map_id}")
        return points

    def close(self) -> None:
        self._http.close()

    # --- Internal ---

    def _resolve_point(self, point_id: str) -> Waypoint:
        with self._map_lock:
            cached = self._points_by_id
        if cached is not None and point_id in cached:
            return cached[point_id]

        # Cache miss: the map may have changed since it was read
        points = {p.poi_id: p for p in self.get_map_points()}
        if point_id not in points:
            raise MotionCommandError(f"Could not find point with ID {point_id} in robot's map")
        return points[point_id]

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise MotionCommandError(f"{method} {path} failed: {e}")
        self._raise_for_status(response, f"{method} {path}")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise MotionCommandError(f"{method} {path} returned invalid JSON: {e}")

    def _raise_for_status(self, response: httpx.Response, what: str) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MotionCommandError(f"{what} rejected with HTTP {response.status_code}: {response.text[:200]}") from e
