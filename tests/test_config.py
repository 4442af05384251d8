import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from bazaarkit.config import Config, apply_env_overrides, config_path, load_config, save_config


class TestConfigFile(unittest.TestCase):
    def test_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "nested" / "config.json"
            cfg = Config(lang="zh_CN", system_id="sys-1", current_theme="midnight", timeout_s=5.0)

            saved = save_config(cfg, path)

            self.assertEqual(saved, path)
            self.assertFalse(path.with_suffix(".json.tmp").exists())
            self.assertEqual(load_config(path), cfg)

    def test_missing_file_and_unknown_keys(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "config.json"
            self.assertEqual(load_config(path), Config())

            path.write_text(json.dumps({"lang": "fr_FR", "token": "ignored"}), encoding="utf-8")
            self.assertEqual(load_config(path).lang, "fr_FR")

    def test_config_path_from_env(self) -> None:
        with patch.dict("os.environ", {"BAZAARKIT_CONFIG_PATH": "/etc/bazaarkit.json"}):
            self.assertEqual(config_path(), Path("/etc/bazaarkit.json"))

    def test_default_paths(self) -> None:
        cfg = Config(workspace_dir="/srv/ws")
        self.assertEqual(cfg.workspace_path, Path("/srv/ws"))
        self.assertEqual(cfg.temp_path, Path("/srv/ws/temp"))
        self.assertEqual(Config(workspace_dir="/srv/ws", temp_dir="/tmp/x").temp_path, Path("/tmp/x"))


class TestEnvOverrides(unittest.TestCase):
    def test_overrides(self) -> None:
        env = {
            "BAZAARKIT_REGISTRY_URL": "https://mirror.test",
            "BAZAARKIT_TIMEOUT_S": "12.5",
            "BAZAARKIT_PROBE_TIMEOUT_S": "soon",
            "UNRELATED": "x",
        }

        cfg = apply_env_overrides(Config(), env)

        self.assertEqual(cfg.registry_url, "https://mirror.test")
        self.assertEqual(cfg.timeout_s, 12.5)
        self.assertEqual(cfg.probe_timeout_s, Config().probe_timeout_s)

    def test_no_overrides_returns_same_object(self) -> None:
        cfg = Config()
        self.assertIs(apply_env_overrides(cfg, {}), cfg)


if __name__ == "__main__":
    unittest.main()
