"""
Data model shared by the configuration layer and the archival pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from .path_matcher import ExclusionRule, compile_rules


class SystemKind(Enum):
    """Where a system's files come from."""

    CONSOLE = "console"
    LOCAL_INSTALLATION = "local_installation"


class EntryKind(Enum):
    """Type of a traversal entry."""

    FILE = "file"
    DIRECTORY = "directory"


def normalize_relative_path(raw_path: str) -> str:
    """Turn a configured relative path into a '/'-separated path.

    Configuration files written on Windows use backslashes; ``""`` and ``"."``
    both mean the source root itself. A leading separator is kept so that
    absolute paths can still be rejected during validation.
    """
    text = raw_path.replace("\\", "/")
    joined = "/".join(part for part in text.split("/") if part and part != ".")
    if text.startswith("/"):
        return f"/{joined}"
    return joined


@dataclass(frozen=True)
class BackupRequest:
    """One relative path of a system that should go into the archive."""

    relative_path: str
    include_subfolders: bool = False
    excluded_files: Tuple[str, ...] = ()
    exclusion_rules: Tuple[ExclusionRule, ...] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        object.__setattr__(
            self, "relative_path", normalize_relative_path(self.relative_path)
        )
        object.__setattr__(self, "excluded_files", tuple(self.excluded_files or ()))
        object.__setattr__(
            self, "exclusion_rules", tuple(compile_rules(self.excluded_files))
        )

    def resolve(self, source_root: Path) -> Path:
        """Absolute location of this request under ``source_root``."""
        if not self.relative_path:
            return Path(source_root)
        return Path(source_root).joinpath(*PurePosixPath(self.relative_path).parts)

    def path_problem(self) -> Optional[str]:
        """Describe why the relative path is unusable, or None if it is fine."""
        raw = self.relative_path
        if raw.startswith("/"):
            return f"'{raw}' must be relative to the source folder"
        # Windows drive letters, e.g. "C:/Users"
        if len(raw) > 1 and raw[1] == ":":
            return f"'{raw}' must be relative to the source folder"
        if ".." in PurePosixPath(raw).parts:
            return f"'{raw}' must not leave the source folder"
        return None


@dataclass
class SystemDefinition:
    """A named system with a readable source root and a destination folder."""

    name: str
    source_root: Path
    destination_root: Path
    requests: List[BackupRequest]
    kind: SystemKind = SystemKind.LOCAL_INSTALLATION
    ip: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        self.source_root = Path(self.source_root)
        self.destination_root = Path(self.destination_root)


@dataclass(frozen=True)
class TraversalEntry:
    """A file or directory discovered while walking a request."""

    absolute_path: Path
    relative_path: PurePosixPath
    kind: EntryKind
    request: BackupRequest

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def member_name(self) -> str:
        """Forward-slash archive member name; directories end with '/'."""
        name = self.relative_path.as_posix()
        if self.is_directory:
            return f"{name}/"
        return name


@dataclass
class ArchiveStats:
    """Counters collected while writing one archive."""

    files_written: int = 0
    directories_written: int = 0
    files_skipped: int = 0
    bytes_written: int = 0

    def to_dict(self):
        return {
            "files_written": self.files_written,
            "directories_written": self.directories_written,
            "files_skipped": self.files_skipped,
            "bytes_written": self.bytes_written,
        }


@dataclass
class BackupResult:
    """Outcome of backing up one system."""

    system_name: str
    archive_path: Optional[Path] = None
    stats: Optional[ArchiveStats] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.succeeded:
            return f"{self.system_name} backed up to {self.archive_path}"
        return f"Could not back up {self.system_name}"
