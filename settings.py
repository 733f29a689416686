import getpass
import json
import os
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

import yaml

from backup_ops.archive_writers import ArchiveWriterFactory
from backup_ops.errors import BackupError, ConfigMissingOrInvalidError
from backup_ops.models import BackupRequest, SystemDefinition, SystemKind
from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)

CONFIG_FILE_NAME = "config.json"

DEFAULT_OPTIONS: Dict[str, Any] = {
    "archive_format": "zip",
    "compression_level": None,
    "verify_after_backup": True,
}

EXAMPLE_CONFIG_TEMPLATE = r"""{
  "consoles": [
    {
      "name": "My Mq500M",
      "ip": "192.168.0.51",
      "username": "magicQ",
      "password": "magicQ",
      "src": "\\\\192.168.0.51\\MagicQ",
      "backup_rel_paths": [
        {
          "rel_path": "show\\audio",
          "include_subfolders": false
        },
        {
          "rel_path": "show\\bitmaps",
          "include_subfolders": false
        },
        {
          "rel_path": "show\\fx",
          "include_subfolders": false
        },
        {
          "excluded_files": [
            "heads.all",
            "*.sbk"
          ],
          "rel_path": "show",
          "include_subfolders": false
        }
      ],
      "dest": "C:\\PathToYourGoogleDriveFolder"
    }
  ],
  "local_installations": [
    {
      "name": "MagicQ on Pc",
      "src": "C:\\Users\\{your_username}\\Documents\\MagicQ",
      "dest": "C:\\PathToYourGoogleDriveFolder",
      "backup_rel_paths": [
        {
          "excluded_files": [
            "heads.all",
            "*.sbk"
          ],
          "rel_path": "show",
          "include_subfolders": false
        },
        {
          "rel_path": "show\\icons\\icon0a00000b.mc2",
          "include_subfolders": true
        }
      ]
    },
    {
      "name": "Capture",
      "src": "D:\\{your_username}\\Documents\\Capture",
      "dest": "C:\\PathToYourGoogleDriveFolder",
      "backup_rel_paths": [
        {
          "rel_path": "",
          "include_subfolders": true
        }
      ]
    }
  ],
  "options": {
    "archive_format": "zip",
    "verify_after_backup": true
  }
}"""


def get_example_config() -> str:
    """Example configuration with the current user's login name filled in."""
    try:
        username = getpass.getuser()
    except (KeyError, OSError):
        username = "your_username"
    return EXAMPLE_CONFIG_TEMPLATE.replace("{your_username}", username)


def create_config_file(config_file: str = CONFIG_FILE_NAME) -> str:
    """
    Write the example configuration to ``config_file``.

    :return: A message naming the created file.
    :raises ConfigMissingOrInvalidError: If the file already exists or cannot be written.
    """
    path = Path(config_file)
    if path.exists():
        raise ConfigMissingOrInvalidError(f"{path} already exists")
    try:
        path.write_text(get_example_config(), encoding="utf-8")
    except OSError as e:
        raise ConfigMissingOrInvalidError([f"Could not create {path}", str(e)]) from e
    return f"{path.resolve()} created!"


class ValidatedSystems(NamedTuple):
    """Systems ready for backup plus one warning per rejected system."""

    systems: List[SystemDefinition]
    warnings: List[BackupError]

    def is_empty(self) -> bool:
        return not self.systems

    def warning_lines(self) -> List[str]:
        lines = []
        for warning in self.warnings:
            lines.extend(warning.texts())
            lines.append("")
        return lines


class Settings:
    """
    Loads the backup configuration (``config.json`` by default).

    JSON is the native format; ``.yml``/``.yaml`` files are read with PyYAML.
    Systems that fail validation are kept out of ``systems`` and reported in
    ``warnings`` instead of aborting the whole load.
    """

    def __init__(self, config_file: str = CONFIG_FILE_NAME) -> None:
        """
        :param config_file: Path to the configuration file.
        :raises ConfigMissingOrInvalidError: If the file is missing or unreadable.
        """
        self.config_file = Path(config_file)
        if not self.config_file.is_file():
            raise ConfigMissingOrInvalidError(
                [
                    f"file {self.config_file} is missing. "
                    "Please add the file before using the application",
                    "Run 'config-example' or 'init-config' for a starting point",
                ]
            )

        self.raw = self._load(self.config_file)
        if not isinstance(self.raw, dict):
            raise ConfigMissingOrInvalidError(
                f"{self.config_file} must contain an object with "
                "'consoles' and/or 'local_installations'"
            )

        options = self.raw.get("options") or {}
        self.archive_format: str = options.get(
            "archive_format", DEFAULT_OPTIONS["archive_format"]
        )
        self.compression_level: Optional[int] = options.get(
            "compression_level", DEFAULT_OPTIONS["compression_level"]
        )
        self.verify_after_backup: bool = options.get(
            "verify_after_backup", DEFAULT_OPTIONS["verify_after_backup"]
        )
        try:
            ArchiveWriterFactory.create_archive_writer(
                self.archive_format, self.compression_level
            )
        except ValueError as e:
            raise ConfigMissingOrInvalidError(
                [f"Invalid options in {self.config_file}", str(e)]
            ) from e

        logger.info("Settings loaded from '%s'.", self.config_file)

    def _load(self, path: Path) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix.lower() in (".yml", ".yaml"):
                    return yaml.safe_load(f) or {}
                return json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigMissingOrInvalidError(
                [f"could not read {path}", f"invalid syntax: {e}"]
            ) from e
        except OSError as e:
            raise ConfigMissingOrInvalidError([f"could not read {path}", str(e)]) from e

    def _parse_request(self, raw: Any, system_name: str) -> BackupRequest:
        if not isinstance(raw, dict) or "rel_path" not in raw:
            raise ConfigMissingOrInvalidError(
                f"Every entry of backup_rel_paths for {system_name} needs a 'rel_path'"
            )
        include_subfolders = raw.get("include_subfolders", False)
        if not isinstance(include_subfolders, bool):
            raise ConfigMissingOrInvalidError(
                f"include_subfolders of '{raw['rel_path']}' for {system_name} "
                "must be true or false"
            )
        excluded = raw.get("excluded_files") or []
        if not isinstance(excluded, list) or not all(
            isinstance(pattern, str) for pattern in excluded
        ):
            raise ConfigMissingOrInvalidError(
                f"excluded_files of '{raw['rel_path']}' for {system_name} "
                "must be a list of file names or *.ext patterns"
            )
        return BackupRequest(
            relative_path=str(raw["rel_path"] or ""),
            include_subfolders=include_subfolders,
            excluded_files=tuple(excluded),
        )

    def _parse_system(self, raw: Any, kind: SystemKind) -> SystemDefinition:
        if not isinstance(raw, dict):
            raise ConfigMissingOrInvalidError(f"Invalid {kind.value} entry: {raw!r}")

        name = raw.get("name")
        if not name:
            raise ConfigMissingOrInvalidError(f"A {kind.value} entry has no name")
        if not isinstance(name, str):
            raise ConfigMissingOrInvalidError(
                f"The name {name!r} of a {kind.value} entry must be a string"
            )

        src = raw.get("src")
        if not src:
            if kind is SystemKind.CONSOLE:
                raise ConfigMissingOrInvalidError(
                    [
                        f"Console {name} has no 'src'",
                        "Mount the console's share and set 'src' to the mounted folder",
                    ]
                )
            raise ConfigMissingOrInvalidError(f"No 'src' specified for {name} system")
        if not isinstance(src, str):
            raise ConfigMissingOrInvalidError(f"'src' of {name} must be a folder path")

        dest = raw.get("dest")
        if not dest:
            raise ConfigMissingOrInvalidError(f"No 'dest' specified for {name} system")
        if not isinstance(dest, str):
            raise ConfigMissingOrInvalidError(f"'dest' of {name} must be a folder path")

        raw_requests = raw.get("backup_rel_paths") or []
        if not isinstance(raw_requests, list):
            raise ConfigMissingOrInvalidError(
                f"'backup_rel_paths' of {name} must be a list"
            )
        requests = [self._parse_request(item, name) for item in raw_requests]

        return SystemDefinition(
            name=name,
            source_root=Path(os.path.expanduser(src)),
            destination_root=Path(os.path.expanduser(dest)),
            requests=requests,
            kind=kind,
            ip=raw.get("ip"),
            username=raw.get("username"),
            password=raw.get("password"),
        )

    @staticmethod
    def validate(system: SystemDefinition) -> None:
        """
        Check that the source folder and every requested path exist.

        :raises ConfigMissingOrInvalidError: With a message to show to the user.
        """
        if not system.source_root.exists():
            raise ConfigMissingOrInvalidError(
                f"{system.source_root} for {system.name} system does not exist"
            )
        if not system.requests:
            raise ConfigMissingOrInvalidError(
                f"No backup folders specified for {system.name} system"
            )
        for request in system.requests:
            problem = request.path_problem()
            if problem:
                raise ConfigMissingOrInvalidError(f"{problem} ({system.name})")
            sub_path = request.resolve(system.source_root)
            if not sub_path.exists():
                raise ConfigMissingOrInvalidError(
                    f"{sub_path} for {system.name} does not exist"
                )

    def load_validated_systems(self) -> ValidatedSystems:
        """Parse and validate all systems, separating valid ones from warnings."""
        systems: List[SystemDefinition] = []
        warnings: List[BackupError] = []
        seen_names = set()

        sections = (
            ("consoles", SystemKind.CONSOLE),
            ("local_installations", SystemKind.LOCAL_INSTALLATION),
        )
        for key, kind in sections:
            entries = self.raw.get(key) or []
            if not isinstance(entries, list):
                warnings.append(ConfigMissingOrInvalidError(f"'{key}' must be a list"))
                continue

            for raw in entries:
                try:
                    system = self._parse_system(raw, kind)
                    if system.name in seen_names:
                        raise ConfigMissingOrInvalidError(
                            f"System name {system.name} is used more than once"
                        )
                    self.validate(system)
                except ConfigMissingOrInvalidError as e:
                    logger.warning("Skipping invalid system: %s", e.lines[0])
                    warnings.append(e)
                    continue
                seen_names.add(system.name)
                systems.append(system)

        logger.debug(
            "%d valid system(s), %d rejected", len(systems), len(warnings)
        )
        return ValidatedSystems(systems, warnings)
