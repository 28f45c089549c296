import json
import os
import tempfile
import unittest

from config.configuration_provider import ConfigurationProvider
from config.configuration_sources import EnvironmentConfigurationSource, FileConfigurationSource
from config.configuration_validator import ConfigurationValidatorImpl
from interfaces.configuration_interface import (
    ConfigurationError, ConfigurationSource, RobotApiConfig, SystemConfig, WorkflowConfig
)


class EnvIsolatedTestCase(unittest.TestCase):
    def setUp(self):
        # Clear any environment variables that could interfere
        self._saved_env = {k: v for k, v in os.environ.items() if k.startswith('FLEET_')}
        for k in self._saved_env:
            del os.environ[k]
        self._tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        for k in [k for k in os.environ if k.startswith('FLEET_')]:
            del os.environ[k]
        os.environ.update(self._saved_env)
        self._tmp.cleanup()

    def write(self, name, content):
        path = os.path.join(self._tmp.name, name)
        with open(path, 'w') as f:
            f.write(content)
        return path


class TestConfigurationProvider(EnvIsolatedTestCase):
    def test_default_config_loaded(self):
        provider = ConfigurationProvider()
        workflow = provider.get_workflow_config()
        self.assertEqual(workflow.load_settle_seconds, 2.0)
        self.assertEqual(workflow.arrival_timeout_seconds, 600.0)
        self.assertEqual(workflow.poll_interval_seconds, 1.0)
        self.assertEqual(workflow.max_poll_interval_seconds, 10.0)
        self.assertEqual(workflow.driver_workers, 4)
        self.assertEqual(workflow.docking_replacement, "_load_docking")
        robot_api = provider.get_robot_api_config()
        self.assertEqual(robot_api.base_url, "http://localhost:8090")
        self.assertEqual(robot_api.move_accuracy, 0.2)
        self.assertEqual(provider.get_system_config().kpi_backend, "log")
        self.assertEqual(provider.errors, [])

    def test_env_override(self):
        os.environ['FLEET_WORKFLOW_ARRIVAL_TIMEOUT_SECONDS'] = '60'
        os.environ['FLEET_ROBOT_API_BASE_URL'] = 'http://10.0.0.12:8090'
        os.environ['FLEET_ROBOT_API_APP_CODE'] = 'abc123'
        provider = ConfigurationProvider()
        self.assertEqual(provider.get_workflow_config().arrival_timeout_seconds, 60.0)
        robot_api = provider.get_robot_api_config()
        self.assertEqual(robot_api.base_url, 'http://10.0.0.12:8090')
        self.assertEqual(robot_api.app_code, 'abc123')
        self.assertEqual(provider.get_value('robot_api.base_url').source, ConfigurationSource.ENVIRONMENT)

    def test_yaml_file(self):
        path = self.write('fleet.yaml', "workflow:\n  poll_interval_seconds: 0.5\n  driver_workers: 8\n"
                                        "system:\n  log_level: debug\n")
        provider = ConfigurationProvider(config_file=path)
        self.assertEqual(provider.get_workflow_config().poll_interval_seconds, 0.5)
        self.assertEqual(provider.get_workflow_config().driver_workers, 8)
        self.assertEqual(provider.get_system_config().log_level, 'DEBUG')
        self.assertEqual(provider.get_value('workflow.driver_workers').source, ConfigurationSource.FILE)

    def test_env_beats_file(self):
        path = self.write('fleet.json', json.dumps({"workflow": {"driver_workers": 8}}))
        os.environ['FLEET_WORKFLOW_DRIVER_WORKERS'] = '2'
        provider = ConfigurationProvider(config_file=path)
        self.assertEqual(provider.get_workflow_config().driver_workers, 2)

    def test_missing_file_skipped(self):
        provider = ConfigurationProvider(config_file=os.path.join(self._tmp.name, 'absent.yaml'))
        self.assertEqual(provider.get_workflow_config().driver_workers, 4)

    def test_invalid_config_validation(self):
        os.environ['FLEET_WORKFLOW_POLL_INTERVAL_SECONDS'] = '-1.0'
        provider = ConfigurationProvider()
        self.assertTrue(any('poll_interval_seconds' in e for e in provider.errors))
        value = provider.get_value('workflow.poll_interval_seconds')
        self.assertEqual(value.value, -1.0)
        self.assertTrue(value.validation_errors)

    def test_set_value_and_reload(self):
        provider = ConfigurationProvider()
        provider.set_value('workflow.arrival_timeout_seconds', 30.0)
        self.assertEqual(provider.get_workflow_config().arrival_timeout_seconds, 30.0)
        provider.reload()
        self.assertEqual(provider.get_workflow_config().arrival_timeout_seconds, 30.0)
        self.assertEqual(provider.get_value('workflow.arrival_timeout_seconds').source, ConfigurationSource.OVERRIDE)

    def test_set_invalid_value_reports_error(self):
        provider = ConfigurationProvider()
        provider.set_value('system.kpi_backend', 'kafka')
        self.assertTrue(any('kpi_backend' in e for e in provider.errors))

    def test_get_value_metadata(self):
        provider = ConfigurationProvider()
        val = provider.get_value('workflow.poll_interval_seconds')
        self.assertEqual(val.value, 1.0)
        self.assertEqual(val.key, 'workflow.poll_interval_seconds')
        self.assertIsInstance(val.description, str)
        self.assertEqual(provider.get_value('nope.key', 'x').value, 'x')


class TestConfigurationSources(EnvIsolatedTestCase):
    def test_env_key_mapping(self):
        source = EnvironmentConfigurationSource()
        self.assertEqual(source._convert_env_key_to_config_key('FLEET_ROBOT_API_BASE_URL'), 'robot_api.base_url')
        self.assertEqual(source._convert_env_key_to_config_key('FLEET_WORKFLOW_DRIVER_WORKERS'),
                         'workflow.driver_workers')

    def test_env_value_parsing(self):
        source = EnvironmentConfigurationSource()
        self.assertEqual(source._parse_env_value('2.5'), 2.5)
        self.assertEqual(source._parse_env_value('true'), True)
        self.assertEqual(source._parse_env_value('True'), True)
        self.assertEqual(source._parse_env_value('_load'), '_load')

    def test_file_must_be_mapping(self):
        path = self.write('list.yaml', "- a\n- b\n")
        with self.assertRaises(ConfigurationError):
            FileConfigurationSource(path).load_configuration()

    def test_bad_json(self):
        path = self.write('bad.json', "{not json")
        with self.assertRaises(ConfigurationError):
            FileConfigurationSource(path).load_configuration()


class TestConfigurationValidator(unittest.TestCase):
    def setUp(self):
        self.validator = ConfigurationValidatorImpl()

    def workflow(self, **overrides):
        values = dict(load_settle_seconds=2.0, unload_settle_seconds=2.0, undock_settle_seconds=5.0,
                      arrival_timeout_seconds=600.0, poll_interval_seconds=1.0, max_poll_interval_seconds=10.0,
                      poll_backoff_factor=2.0, driver_workers=4, docking_marker="_load", docking_replacement="_load_docking")
        values.update(overrides)
        return WorkflowConfig(**values)

    def test_valid_workflow(self):
        self.assertEqual(self.validator.validate_workflow_config(self.workflow()), [])

    def test_workflow_errors(self):
        errors = self.validator.validate_workflow_config(self.workflow(
            arrival_timeout_seconds=0, driver_workers=0, max_poll_interval_seconds=0.5,
            docking_replacement="_load"
        ))
        fields = {e.split(':', 1)[0] for e in errors}
        self.assertIn('Workflow.arrival_timeout_seconds', fields)
        self.assertIn('Workflow.driver_workers', fields)
        self.assertIn('Workflow.max_poll_interval_seconds', fields)
        self.assertIn('Workflow.docking_replacement', fields)

    def test_robot_api_url(self):
        good = RobotApiConfig(base_url="http://robot:8090", app_code=None, timeout=10.0,
                              creator="robot-platform", move_accuracy=0.2)
        self.assertEqual(self.validator.validate_robot_api_config(good), [])
        bad = RobotApiConfig(base_url="robot:8090", app_code=None, timeout=10.0,
                             creator="robot-platform", move_accuracy=0.2)
        self.assertTrue(any(e.startswith('RobotApi.base_url') for e in self.validator.validate_robot_api_config(bad)))

    def test_system_log_level(self):
        bad = SystemConfig(log_level="LOUD", log_file=None, log_format="%(message)s", kpi_backend="log")
        self.assertTrue(any('log_level' in e for e in self.validator.validate_system_config(bad)))


if __name__ == '__main__':
    unittest.main()
