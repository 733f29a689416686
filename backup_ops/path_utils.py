"""
Destination naming for backup archives.

Archives are named ``<system>_backup_<YYYY_MM_DD__HH_MM_SS><ext>``. The
timestamp has second precision, so two runs of the same system within one
second resolve to the same name; the writer then refuses the second run
instead of overwriting the first archive.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)

TIMESTAMP_FORMAT = "%Y_%m_%d__%H_%M_%S"
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class ArchivePathGenerator:
    """Builds unique-per-second archive paths for a system."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.now

    def sanitize_system_name(self, name: str) -> str:
        """Replace characters that cannot appear in a file name."""
        safe_name = _UNSAFE_CHARS.sub("_", name).strip().rstrip(".")
        if safe_name != name:
            logger.debug("System name '%s' written as '%s' in file names", name, safe_name)
        return safe_name or "system"

    def generate_timestamp(self) -> str:
        return self._clock().strftime(TIMESTAMP_FORMAT)

    def archive_file_name(self, system_name: str, extension: str) -> str:
        return (
            f"{self.sanitize_system_name(system_name)}_backup_"
            f"{self.generate_timestamp()}{extension}"
        )

    def generate_archive_path(
        self, system_name: str, destination_root: Path, extension: str = ".zip"
    ) -> Path:
        """Archive path for ``system_name`` inside ``destination_root``."""
        return Path(destination_root) / self.archive_file_name(system_name, extension)


def get_archive_path(
    system_name: str, destination_root: Path, extension: str = ".zip"
) -> Path:
    """Archive path for a run starting now."""
    return ArchivePathGenerator().generate_archive_path(
        system_name, destination_root, extension
    )
