import json
import os
import tempfile
import unittest
from unittest.mock import patch

from backend.src.config import CONFIG_FILE, DEFAULT_CONFIG, ConfigManager


class TestConfigManager(unittest.TestCase):
    def setUp(self):
        self.data_dir = tempfile.mkdtemp(prefix="gaf-config-test-")
        self.path = os.path.join(self.data_dir, CONFIG_FILE)

    def test_defaults_written_on_first_use(self):
        config = ConfigManager(data_dir=self.data_dir)
        with open(self.path, encoding="utf-8") as f:
            self.assertEqual(json.load(f), DEFAULT_CONFIG)
        self.assertEqual(config.get("request_delay_seconds"), 0.15)
        self.assertEqual(config.get("fetch_max_attempts"), 1)

    def test_missing_keys_back_filled(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"default_weeks_past": 8}, f)

        config = ConfigManager(data_dir=self.data_dir)
        self.assertEqual(config.get("default_weeks_past"), 8)
        with open(self.path, encoding="utf-8") as f:
            stored = json.load(f)
        self.assertEqual(set(stored), set(DEFAULT_CONFIG))

    def test_update_ignores_none(self):
        config = ConfigManager(data_dir=self.data_dir)
        config.update_config(auto_sync_enabled=False, default_weeks_past=None)
        self.assertFalse(config.get("auto_sync_enabled"))
        self.assertEqual(config.get("default_weeks_past"), 4)

    def test_get_default_for_unset_value(self):
        config = ConfigManager(data_dir=self.data_dir)
        self.assertIsNone(config.get("sync_deadline_seconds"))
        self.assertEqual(config.get("sync_deadline_seconds", 120), 120)

    def test_update_status(self):
        config = ConfigManager(data_dir=self.data_dir)
        config.update_status("Syncing", message="auto-sync running")
        self.assertEqual(config.get("status"), "Syncing")
        self.assertEqual(config.get("message"), "auto-sync running")

    def test_corrupt_file_falls_back_to_defaults(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{ this is not json")

        config = ConfigManager(data_dir=self.data_dir)
        self.assertEqual(config.get_config(), DEFAULT_CONFIG)

    def test_service_credentials_from_environment(self):
        with patch.dict(os.environ, {"GARMIN_EMAIL": "svc@example.com", "GARMIN_PASSWORD": "pw"}):
            self.assertEqual(
                ConfigManager.service_credentials(),
                {"email": "svc@example.com", "password": "pw"},
            )

    def test_database_url(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql://db/gaf"}):
            self.assertEqual(ConfigManager.database_url(), "postgresql://db/gaf")
        with patch.dict(os.environ, {"DATABASE_URL": "", "GAF_DATA_DIR": self.data_dir}):
            self.assertEqual(
                ConfigManager.database_url(),
                f"sqlite:///{os.path.join(self.data_dir, 'gaf_database.db')}",
            )


if __name__ == "__main__":
    unittest.main()
