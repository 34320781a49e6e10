import logging
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pydantic import ValidationError

from oms_mirror.config import YamlConfigLoader
from oms_mirror.config.models import ConfigLoadRequest, LoggingSettings
from oms_mirror.logging import init_logging

_YAML = """
items:
  database_url: https://oms.example-rtdb.firebaseio.com
stock:
  script_url: https://script.example/exec
assets:
  images:
    app-logo: https://cdn.example/logo.png
"""


class YamlConfigLoaderTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.yaml_path = Path(self._tmp.name) / "config.yaml"
        self.yaml_path.write_text(_YAML, encoding="utf-8")

    async def asyncTearDown(self) -> None:
        self._tmp.cleanup()

    async def _load(self):
        return await YamlConfigLoader().load(ConfigLoadRequest(yaml_path=str(self.yaml_path), dotenv_path=None))

    async def test_defaults_fill_missing_sections(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=False):
            config = await self._load()

        self.assertEqual(config.items.metadata_path, "itemData/metadata")
        self.assertEqual(config.store.path, "data/mirror/mirror.sqlite3")
        self.assertEqual(config.assets.images["app-logo"], "https://cdn.example/logo.png")

    async def test_env_overrides_existing_and_absent_sections(self) -> None:
        env = {
            "OMS__ITEMS__AUTH_TOKEN": "secret",
            "OMS__HTTP__TIMEOUT_SECONDS": "5",
        }
        with mock.patch.dict(os.environ, env):
            config = await self._load()

        self.assertEqual(config.items.auth_token, "secret")
        self.assertEqual(config.http.timeout_seconds, 5.0)

    async def test_comparator_defaults_and_override(self) -> None:
        config = await self._load()
        self.assertEqual(config.items.comparator, "changed")
        self.assertEqual(config.stock.comparator, "newer")

        with mock.patch.dict(os.environ, {"OMS__STOCK__COMPARATOR": "changed"}):
            config = await self._load()
        self.assertEqual(config.stock.comparator, "changed")

        with mock.patch.dict(os.environ, {"OMS__STOCK__COMPARATOR": "sometimes"}):
            with self.assertRaises(ValidationError):
                await self._load()

    async def test_unknown_keys_are_rejected(self) -> None:
        with mock.patch.dict(os.environ, {"OMS__STOCK__SHEET": "x"}):
            with self.assertRaises(ValidationError):
                await self._load()

    async def test_missing_config_file(self) -> None:
        request = ConfigLoadRequest(yaml_path=str(Path(self._tmp.name) / "nope" / "config.yaml"), dotenv_path=None)
        with mock.patch("oms_mirror.config.loader._ensure_default_config"):
            with self.assertRaises(FileNotFoundError):
                await YamlConfigLoader().load(request)


class InitLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.root = logging.getLogger()
        self.saved_handlers = list(self.root.handlers)
        self.saved_levels = {
            name: logging.getLogger(name).level for name in (None, "oms_mirror", "aiohttp.access")
        }
        self._tmp = tempfile.TemporaryDirectory()

    def tearDown(self) -> None:
        for handler in list(self.root.handlers):
            self.root.removeHandler(handler)
            if handler not in self.saved_handlers:
                handler.close()
        for handler in self.saved_handlers:
            self.root.addHandler(handler)
        for name, level in self.saved_levels.items():
            logging.getLogger(name).setLevel(level)
        self._tmp.cleanup()

    def test_rejects_unknown_level(self) -> None:
        with self.assertRaises(ValueError):
            init_logging(LoggingSettings(level="chatty"))

    def test_app_and_library_levels_are_separate(self) -> None:
        init_logging(LoggingSettings(level="debug", library_level="error"))

        self.assertEqual(logging.getLogger("oms_mirror").level, logging.DEBUG)
        self.assertEqual(self.root.level, logging.ERROR)
        self.assertEqual(logging.getLogger("aiohttp.access").level, logging.ERROR)
        self.assertTrue(logging.getLogger("oms_mirror.mirror.sync").isEnabledFor(logging.DEBUG))
        self.assertEqual(len(self.root.handlers), 1)

    def test_file_handler_only_when_path_set(self) -> None:
        log_path = Path(self._tmp.name) / "logs" / "mirror.log"
        init_logging(LoggingSettings(file_path=str(log_path)))

        self.assertEqual(logging.getLogger("aiohttp.access").level, logging.WARNING)
        self.assertEqual(len(self.root.handlers), 2)
        self.assertTrue(log_path.parent.is_dir())


if __name__ == "__main__":
    unittest.main()
