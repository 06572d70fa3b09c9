import unittest
import os
import yaml
from datetime import datetime, timezone
from unittest.mock import patch, mock_open
from core.config_loader import load_config, AppConfig
from core.app_context import AppContext

class TestConfigLoader(unittest.TestCase):

    def setUp(self):
        self.sample_config = {
            "store": {
                "path": "/etc/notify/notifications.yaml",
                "lock_timeout_seconds": 5,
            },
            "evaluation": {"timezone": "Europe/Vienna"},
            "logging": {"level": "DEBUG"},
        }
        self.config_yaml = yaml.dump(self.sample_config)

    def test_load_config_default(self):
        with patch("builtins.open", mock_open(read_data=self.config_yaml)):
            with patch("os.path.exists", return_value=True):
                config = load_config("dummy_path.yaml")
                self.assertIsInstance(config, AppConfig)
                self.assertEqual(config.store.path, "/etc/notify/notifications.yaml")
                self.assertEqual(config.store.lock_timeout_seconds, 5.0)
                self.assertEqual(config.evaluation.timezone, "Europe/Vienna")
                self.assertEqual(config.logging.level, "DEBUG")

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_file_uses_defaults(self):
        with patch("os.path.exists", return_value=False):
            config = load_config("missing.yaml")
            self.assertEqual(config.store.path, "notifications.yaml")
            self.assertIsNone(config.store.lock_path)
            self.assertEqual(config.store.lock_timeout_seconds, 10.0)
            self.assertIsNone(config.evaluation.timezone)
            self.assertEqual(config.logging.level, "INFO")

    def test_empty_file_uses_defaults(self):
        with patch("builtins.open", mock_open(read_data="")):
            with patch("os.path.exists", return_value=True):
                config = load_config("empty.yaml")
                self.assertEqual(config.store.lock_poll_seconds, 0.1)

    def test_env_var_override_store(self):
        env = {
            "NOTIFY_CONFIG_PATH": "/tmp/env-notifications.yaml",
            "NOTIFY_LOCK_PATH": "/tmp/env.lock",
            "NOTIFY_LOCK_TIMEOUT": "2.5",
        }
        with patch("builtins.open", mock_open(read_data=self.config_yaml)):
            with patch("os.path.exists", return_value=True):
                with patch.dict(os.environ, env):
                    config = load_config("dummy_path.yaml")
                    self.assertEqual(config.store.path, "/tmp/env-notifications.yaml")
                    self.assertEqual(config.store.lock_path, "/tmp/env.lock")
                    self.assertEqual(config.store.lock_timeout_seconds, 2.5)

    def test_env_var_override_timezone(self):
        with patch("os.path.exists", return_value=False):
            with patch.dict(os.environ, {"NOTIFY_TIMEZONE": "UTC"}):
                config = load_config("missing.yaml")
                self.assertEqual(config.evaluation.timezone, "UTC")

    def test_invalid_values_rejected(self):
        bad = yaml.dump({"store": {"lock_poll_seconds": 0}, "logging": {"level": "LOUD"}})
        with patch("builtins.open", mock_open(read_data=bad)):
            with patch("os.path.exists", return_value=True):
                with self.assertRaises(Exception):
                    load_config("bad.yaml")


class TestAppContext(unittest.TestCase):

    def test_build_wires_store_and_timezone(self):
        config = AppConfig(**{
            "store": {"path": "/tmp/n.yaml", "lock_timeout_seconds": 3},
            "evaluation": {"timezone": "UTC"},
        })
        ctx = AppContext.build(config)
        self.assertEqual(ctx.store.path, "/tmp/n.yaml")
        self.assertEqual(ctx.store.lock_path, "/tmp/n.yaml.lock")
        self.assertEqual(ctx.store.lock_timeout, 3.0)
        self.assertIs(ctx.service.store, ctx.store)
        self.assertIs(ctx.service.dispatcher, ctx.dispatcher)
        noon = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        self.assertEqual(noon.astimezone(ctx.tz).hour, 12)

    def test_build_without_timezone(self):
        ctx = AppContext.build(AppConfig())
        self.assertIsNone(ctx.tz)
        self.assertIsNone(ctx.service.authorizer)


if __name__ == '__main__':
    unittest.main()
