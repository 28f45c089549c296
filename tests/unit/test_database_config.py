import os
import unittest
from unittest.mock import patch

from interfaces.configuration_interface import DatabaseConfig
from utils.database_config import DatabaseConfigError, get_database_config, parse_database_url


CLEAN_ENV = {k: v for k, v in os.environ.items() if k != 'DATABASE_URL' and not k.startswith('FLEET_DB_')}


class TestDatabaseConfig(unittest.TestCase):
    def test_parse_url(self):
        config = parse_database_url("postgresql://fleet:pw@db.local:6543/tasks")
        self.assertEqual(config, {'host': 'db.local', 'port': 6543, 'database': 'tasks',
                                  'user': 'fleet', 'password': 'pw'})

    def test_parse_url_defaults(self):
        config = parse_database_url("postgresql://db.local")
        self.assertEqual(config['port'], 5432)
        self.assertEqual(config['database'], 'fleet_workflow')

    def test_invalid_url(self):
        with self.assertRaises(DatabaseConfigError):
            parse_database_url("not a url")

    @patch.dict(os.environ, {**CLEAN_ENV, 'DATABASE_URL': 'postgresql://u:p@h:5433/d'}, clear=True)
    def test_database_url_wins(self):
        self.assertEqual(get_database_config(db_password='ignored')['host'], 'h')

    @patch.dict(os.environ, {**CLEAN_ENV, 'FLEET_DB_HOST': 'envhost', 'FLEET_DB_PASSWORD': 'envpw'}, clear=True)
    def test_individual_variables(self):
        config = get_database_config()
        self.assertEqual(config['host'], 'envhost')
        self.assertEqual(config['password'], 'envpw')
        self.assertEqual(config['database'], 'fleet_workflow')

    @patch.dict(os.environ, CLEAN_ENV, clear=True)
    def test_section_fallback(self):
        section = DatabaseConfig(host='cfg', port=5440, database='cfgdb', user='cfguser', password='cfgpw',
                                 pool_size=5, connect_timeout=10, application_name='fleet_workflow')
        config = get_database_config(section=section)
        self.assertEqual((config['host'], config['port'], config['database']), ('cfg', 5440, 'cfgdb'))

    @patch.dict(os.environ, CLEAN_ENV, clear=True)
    def test_missing_password(self):
        with self.assertRaises(DatabaseConfigError):
            get_database_config()


if __name__ == '__main__':
    unittest.main()
