import json
import unittest

import httpx

from interfaces.robot_motion_client_interface import MotionPhase
from interfaces.task_workflow_interface import MotionCommandError
from robot.impl.http_motion_client_impl import HttpRobotMotionClient, parse_map_overlays


OVERLAYS = {
    "type": "FeatureCollection",
    "features": [
        {"id": "001_load_docking", "type": "Feature",
         "geometry": {"type": "Point", "coordinates": [1.5, 2.5]},
         "properties": {"name": "001_load_docking", "type": "11", "yaw": 1.57}},
        {"id": "115_load", "type": "Feature",
         "geometry": {"type": "Point", "coordinates": [7.0, 8.0]},
         "properties": {"name": "115_load", "type": "34", "subtype": "small"}},
        {"id": "CHG1", "type": "Feature",
         "geometry": {"type": "Point", "coordinates": [0.0, 0.0]},
         "properties": {"name": "Charging Station", "type": "9"}},
        {"id": "wall", "type": "Feature",
         "geometry": {"type": "LineString", "coordinates": [[0, 0], [1, 1]]},
         "properties": {}},
    ],
}


class FakeRobotApi:
    """Minimal robot HTTP API served through httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.map_reads = 0
        self.overlays = OVERLAYS
        self.chassis = {"task_state": "moving", "task_id": 77}
        self.cancel_status = 200
        self.move_response = {"id": 77}
        self.undock_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/chassis/current-map":
            return httpx.Response(200, json={"id": 3, "map_name": "floor1", "uid": "u-3"})
        if path == "/maps/3":
            self.map_reads += 1
            return httpx.Response(200, json={"id": 3, "overlays": json.dumps(self.overlays)})
        if path == "/chassis/moves" and request.method == "POST":
            return httpx.Response(200, json=self.move_response)
        if path == "/chassis/":
            return httpx.Response(200, json=self.chassis)
        if path.startswith("/task/v1.1/") and path.endswith("/cancel"):
            return httpx.Response(self.cancel_status, json={})
        if path == "/services/undock" and request.method == "POST":
            return httpx.Response(self.undock_status, json={"id": 12})
        return httpx.Response(404, json={"error": "not found"})


class TestHttpRobotMotionClient(unittest.TestCase):
    def setUp(self):
        self.api = FakeRobotApi()
        self.client = HttpRobotMotionClient(
            "http://robot:8090", app_code="secret", transport=httpx.MockTransport(self.api)
        )

    def tearDown(self):
        self.client.close()

    def test_map_points(self):
        points = {p.poi_id: p for p in self.client.get_map_points()}
        self.assertEqual(set(points), {"001_load_docking", "115_load", "CHG1"})
        self.assertEqual(points["001_load_docking"].type, "docking")
        self.assertEqual(points["115_load"].type, "rack_small")
        self.assertEqual(points["CHG1"].type, "charger")
        self.assertEqual(points["001_load_docking"].yaw, 1.57)
        self.assertEqual(points["CHG1"].area_id, "floor1")

    def test_create_move_command(self):
        command = self.client.create_move_command("001_load_docking")
        self.assertEqual(command.command_id, "77")
        self.assertEqual(command.target_point_id, "001_load_docking")

        move = [r for r in self.api.requests if r.url.path == "/chassis/moves"][0]
        body = json.loads(move.content)
        self.assertEqual(body["type"], "standard")
        self.assertEqual(body["target_x"], 1.5)
        self.assertEqual(body["target_y"], 2.5)
        self.assertEqual(body["target_ori"], 1.57)
        self.assertEqual(body["target_accuracy"], 0.2)
        self.assertEqual(move.headers["APPCODE"], "APPCODE secret")

    def test_map_cached_between_moves(self):
        self.client.create_move_command("001_load_docking")
        self.client.create_move_command("CHG1")
        self.assertEqual(self.api.map_reads, 1)

    def test_unknown_point(self):
        with self.assertRaises(MotionCommandError):
            self.client.create_move_command("999_load_docking")
        self.assertEqual(self.api.map_reads, 1)

    def test_missing_command_id(self):
        self.api.move_response = {"status": "ok"}
        with self.assertRaises(MotionCommandError):
            self.client.create_move_command("CHG1")

    def test_motion_state(self):
        state = self.client.get_motion_state()
        self.assertEqual(state.active_command_id, "77")
        self.assertEqual(state.phase, MotionPhase.MOVING)
        self.api.chassis = {"task_state": "idle", "task_id": None}
        state = self.client.get_motion_state()
        self.assertIsNone(state.active_command_id)
        self.assertTrue(state.is_idle)

    def test_cancel(self):
        self.client.cancel_command("77")
        self.assertEqual(self.api.requests[-1].url.path, "/task/v1.1/77/cancel")

    def test_cancel_unknown_command_is_not_an_error(self):
        self.api.cancel_status = 404
        self.client.cancel_command("77")

    def test_cancel_rejected(self):
        self.api.cancel_status = 500
        with self.assertRaises(MotionCommandError):
            self.client.cancel_command("77")

    def test_is_charging(self):
        self.assertFalse(self.client.is_charging())
        self.api.chassis = {"task_state": "idle", "task_id": None, "power_supply_status": "charging"}
        self.assertTrue(self.client.is_charging())
        self.api.chassis = {"task_state": "idle", "is_charging": True}
        self.assertTrue(self.client.is_charging())

    def test_undock(self):
        self.client.undock()
        request = self.api.requests[-1]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/services/undock")

    def test_undock_rejected(self):
        self.api.undock_status = 500
        with self.assertRaises(MotionCommandError):
            self.client.undock()

    def test_transport_error_wrapped(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = HttpRobotMotionClient("http://robot:8090", transport=httpx.MockTransport(refuse))
        with self.assertRaises(MotionCommandError):
            client.get_motion_state()
        client.close()


class TestParseMapOverlays(unittest.TestCase):
    def test_invalid_json(self):
        with self.assertRaises(MotionCommandError):
            parse_map_overlays("{broken")

    def test_missing_features(self):
        with self.assertRaises(MotionCommandError):
            parse_map_overlays({"type": "FeatureCollection"})

    def test_unknown_type_code_kept(self):
        overlays = {"features": [{"id": "p1", "geometry": {"type": "Point", "coordinates": [1, 2]},
                                  "properties": {"type": "99"}}]}
        self.assertEqual(parse_map_overlays(overlays)[0].type, "99")


if __name__ == '__main__':
    unittest.main()
