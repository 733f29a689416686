"""
Tests for configuration loading and validation.
"""

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import yaml

from backup_ops import ConfigMissingOrInvalidError, SystemKind
from settings import (
    Settings,
    create_config_file,
    get_example_config,
)


class SettingsTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.source = Path(self.temp_dir) / "MagicQ"
        (self.source / "show" / "audio").mkdir(parents=True)
        (self.source / "show" / "a.all").write_text("show", encoding="utf-8")
        self.dest = Path(self.temp_dir) / "drive"
        self.config_path = Path(self.temp_dir) / "config.json"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_config(self, data, path=None):
        path = path or self.config_path
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        return path

    def installation(self, name="MagicQ on Pc", **overrides):
        data = {
            "name": name,
            "src": str(self.source),
            "dest": str(self.dest),
            "backup_rel_paths": [
                {
                    "rel_path": "show",
                    "include_subfolders": False,
                    "excluded_files": ["heads.all", "*.sbk"],
                }
            ],
        }
        data.update(overrides)
        return data


class TestSettingsLoading(SettingsTestCase):
    def test_valid_installation(self):
        self.write_config({"local_installations": [self.installation()]})

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertEqual(validated.warnings, [])
        self.assertEqual(len(validated.systems), 1)
        system = validated.systems[0]
        self.assertEqual(system.name, "MagicQ on Pc")
        self.assertEqual(system.kind, SystemKind.LOCAL_INSTALLATION)
        self.assertEqual(system.source_root, self.source)
        self.assertEqual(system.requests[0].excluded_files, ("heads.all", "*.sbk"))

    def test_backslash_paths_are_normalized(self):
        """Windows-style relative paths resolve on every platform."""
        system = self.installation(
            backup_rel_paths=[{"rel_path": "show\\audio", "include_subfolders": False}]
        )
        self.write_config({"local_installations": [system]})

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertEqual(validated.systems[0].requests[0].relative_path, "show/audio")

    def test_missing_rel_path_becomes_a_warning(self):
        broken = self.installation(
            name="Broken",
            backup_rel_paths=[{"rel_path": "nope", "include_subfolders": False}],
        )
        self.write_config({"local_installations": [broken, self.installation()]})

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertEqual([s.name for s in validated.systems], ["MagicQ on Pc"])
        self.assertEqual(len(validated.warnings), 1)
        self.assertIn("does not exist", validated.warning_lines()[0])

    def test_missing_source_folder_becomes_a_warning(self):
        broken = self.installation(src=str(Path(self.temp_dir) / "missing"))
        self.write_config({"local_installations": [broken]})

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertTrue(validated.is_empty())
        self.assertEqual(len(validated.warnings), 1)

    def test_empty_backup_rel_paths_is_rejected(self):
        self.write_config(
            {"local_installations": [self.installation(backup_rel_paths=[])]}
        )

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertTrue(validated.is_empty())

    def test_parent_reference_is_rejected(self):
        system = self.installation(
            backup_rel_paths=[{"rel_path": "../outside", "include_subfolders": True}]
        )
        self.write_config({"local_installations": [system]})

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertTrue(validated.is_empty())
        self.assertIn("must not leave", validated.warning_lines()[0])

    def test_duplicate_names_are_rejected(self):
        self.write_config(
            {"local_installations": [self.installation(), self.installation()]}
        )

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertEqual(len(validated.systems), 1)
        self.assertIn("more than once", validated.warning_lines()[0])

    def test_console_needs_a_mounted_source(self):
        console = {
            "name": "My Mq500M",
            "ip": "192.168.0.51",
            "username": "magicQ",
            "password": "magicQ",
            "dest": str(self.dest),
            "backup_rel_paths": [{"rel_path": "show", "include_subfolders": False}],
        }
        self.write_config({"consoles": [console]})

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertTrue(validated.is_empty())
        self.assertEqual(len(validated.warnings[0].texts()), 2)

    def test_console_with_source(self):
        console = dict(self.installation(name="My Mq80"), ip="10.0.0.2", password="x")
        self.write_config({"consoles": [console]})

        system = Settings(str(self.config_path)).load_validated_systems().systems[0]

        self.assertEqual(system.kind, SystemKind.CONSOLE)
        self.assertEqual(system.ip, "10.0.0.2")
        self.assertNotIn("password", repr(system))

    def test_bad_include_subfolders_type(self):
        system = self.installation(
            backup_rel_paths=[{"rel_path": "show", "include_subfolders": "yes"}]
        )
        self.write_config({"local_installations": [system]})

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertTrue(validated.is_empty())

    def test_wrongly_typed_values_reject_only_their_system(self):
        """A malformed system is skipped with a warning; the others still load."""
        broken = [
            self.installation(name=5),
            self.installation(name="Bad src", src=["x"]),
            self.installation(name="Bad dest", dest=42),
            self.installation(name="Bad paths", backup_rel_paths=7),
        ]
        self.write_config(
            {"local_installations": broken + [self.installation(name="Good")]}
        )

        validated = Settings(str(self.config_path)).load_validated_systems()

        self.assertEqual([s.name for s in validated.systems], ["Good"])
        self.assertEqual(len(validated.warnings), 4)
        for warning in validated.warnings:
            self.assertIsInstance(warning, ConfigMissingOrInvalidError)

    def test_yaml_config(self):
        yaml_path = Path(self.temp_dir) / "config.yaml"
        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                {
                    "local_installations": [self.installation()],
                    "options": {"archive_format": "zstd", "compression_level": 10},
                },
                f,
            )

        settings = Settings(str(yaml_path))

        self.assertEqual(settings.archive_format, "zstd")
        self.assertEqual(settings.compression_level, 10)
        self.assertEqual(len(settings.load_validated_systems().systems), 1)

    def test_default_options(self):
        self.write_config({"local_installations": [self.installation()]})

        settings = Settings(str(self.config_path))

        self.assertEqual(settings.archive_format, "zip")
        self.assertIsNone(settings.compression_level)
        self.assertTrue(settings.verify_after_backup)


class TestSettingsErrors(SettingsTestCase):
    def test_missing_file(self):
        with self.assertRaises(ConfigMissingOrInvalidError) as ctx:
            Settings(str(self.config_path))
        self.assertEqual(len(ctx.exception.texts()), 2)
        self.assertIn("is missing", ctx.exception.texts()[0])

    def test_invalid_json(self):
        self.config_path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(ConfigMissingOrInvalidError) as ctx:
            Settings(str(self.config_path))
        self.assertIn("invalid syntax", ctx.exception.texts()[1])

    def test_top_level_must_be_object(self):
        self.write_config([1, 2, 3])
        with self.assertRaises(ConfigMissingOrInvalidError):
            Settings(str(self.config_path))

    def test_invalid_options(self):
        self.write_config(
            {
                "local_installations": [self.installation()],
                "options": {"archive_format": "zip", "compression_level": 42},
            }
        )
        with self.assertRaises(ConfigMissingOrInvalidError) as ctx:
            Settings(str(self.config_path))
        self.assertIn("out of range", ctx.exception.texts()[1])


class TestExampleConfig(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_example_is_valid_json_with_username(self):
        with patch("settings.getpass.getuser", return_value="alice"):
            example = get_example_config()

        data = json.loads(example)
        self.assertIn("consoles", data)
        self.assertEqual(
            [s["name"] for s in data["local_installations"]], ["MagicQ on Pc", "Capture"]
        )
        self.assertIn("alice", data["local_installations"][0]["src"])
        self.assertNotIn("{your_username}", example)

    def test_create_config_file(self):
        path = os.path.join(self.temp_dir, "config.json")

        message = create_config_file(path)

        self.assertTrue(message.endswith("created!"))
        with open(path, encoding="utf-8") as f:
            self.assertIn("local_installations", json.load(f))

    def test_create_config_file_refuses_overwrite(self):
        path = os.path.join(self.temp_dir, "config.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{}")

        with self.assertRaises(ConfigMissingOrInvalidError):
            create_config_file(path)

        with open(path, encoding="utf-8") as f:
            self.assertEqual(f.read(), "{}")


if __name__ == "__main__":
    unittest.main()
