"""
Error types raised by the backup pipeline.

Every error carries an ordered list of plain-text lines so callers can render
multi-cause failures line by line instead of as a single blob.
"""

from typing import Iterable, List, Optional, Union


class BackupError(Exception):
    """Base class for all backup failures."""

    def __init__(self, lines: Union[str, Iterable[str]]):
        if isinstance(lines, str):
            lines = [lines]
        self.lines: List[str] = [str(line) for line in lines]
        super().__init__("\n".join(self.lines))

    def texts(self) -> List[str]:
        """Return a copy of the diagnostic lines."""
        return list(self.lines)

    @classmethod
    def wrap(
        cls, context: str, cause: Union["BackupError", BaseException]
    ) -> "BackupError":
        """Prefix the lines of ``cause`` with a line of context."""
        if isinstance(cause, BackupError):
            cause_lines = cause.texts()
        else:
            cause_lines = [str(cause) or cause.__class__.__name__]
        return cls([context] + cause_lines)


class ConfigMissingOrInvalidError(BackupError):
    """The configuration is missing, malformed, or names a path that does not exist."""


class DestinationConflictError(BackupError):
    """The destination archive already exists or has the wrong extension."""


class SourceMissingError(BackupError):
    """The source root vanished between validation and the backup run."""


class IOFailureError(BackupError):
    """Reading, writing or creating something on disk failed."""

    def __init__(
        self,
        lines: Union[str, Iterable[str]],
        os_error: Optional[OSError] = None,
    ):
        self.os_error = os_error
        if os_error is not None:
            if isinstance(lines, str):
                lines = [lines]
            lines = list(lines) + [str(os_error)]
        super().__init__(lines)


class PathComputationError(BackupError):
    """An entry's absolute path could not be made relative to the source root."""
