import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from fleet import workflow_cli
from tests.fakes import FakeRobotMotionClient, make_points


class FakeHttpClient(FakeRobotMotionClient):
    def get_map_points(self):
        return list(make_points().values())

    def close(self):
        pass


class TestWorkflowCli(unittest.TestCase):
    def setUp(self):
        self._saved_env = {k: v for k, v in os.environ.items() if k.startswith('FLEET_')}
        for k in self._saved_env:
            del os.environ[k]
        os.environ['FLEET_WORKFLOW_LOAD_SETTLE_SECONDS'] = '0'
        os.environ['FLEET_WORKFLOW_UNLOAD_SETTLE_SECONDS'] = '0'
        os.environ['FLEET_WORKFLOW_POLL_INTERVAL_SECONDS'] = '0.01'
        self.client = FakeHttpClient()
        patcher = patch.object(workflow_cli.HttpRobotMotionClient, 'from_config', return_value=self.client)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        for k in [k for k in os.environ if k.startswith('FLEET_')]:
            del os.environ[k]
        os.environ.update(self._saved_env)

    def run_cli(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = workflow_cli.main(list(argv))
        return code, out.getvalue()

    def test_classify_points_file(self):
        points = [p.to_dict() for p in make_points().values()]
        with tempfile.NamedTemporaryFile('w', suffix='.json', delete=False) as f:
            json.dump(points, f)
        self.addCleanup(os.unlink, f.name)

        code, output = self.run_cli('classify', '--points', f.name)
        self.assertEqual(code, 0)
        self.assertIn('dropoff: 001_load', output)
        self.assertIn('charger: CHG1', output)

    def test_dropoff_run_to_completion(self):
        code, output = self.run_cli('dropoff', '--robot-id', 'R1', '--dropoff', '001_load',
                                    '--shelf', '115_load', '--return', 'CHG1', '--run', '--timeout', '10')
        self.assertEqual(code, 0, output)
        self.assertIn('[SUCCESS] Created task', output)
        self.assertIn('status=completed', output)
        self.assertEqual(self.client.moves, ['001_load_docking', '115_load_docking', 'CHG1'])

    def test_dropoff_unknown_point(self):
        code, output = self.run_cli('dropoff', '--robot-id', 'R1', '--dropoff', '404_load',
                                    '--shelf', '115_load', '--return', 'CHG1')
        self.assertEqual(code, 1)
        self.assertIn('[ERROR] Unknown point: 404_load', output)

    def test_cancel_unknown_task(self):
        code, output = self.run_cli('cancel', '--task-id', 'missing')
        self.assertEqual(code, 1)
        self.assertIn('[WARNING] Task not found', output)

    def test_invalid_configuration(self):
        os.environ['FLEET_WORKFLOW_DRIVER_WORKERS'] = '0'
        code, output = self.run_cli('list')
        self.assertEqual(code, 1)
        self.assertIn('driver_workers', output)


if __name__ == '__main__':
    unittest.main()
