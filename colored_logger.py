import logging
import os
import sys
from typing import Iterable, Optional, TextIO

# Custom levels used by the backup pipeline
TRACE_LEVEL = 5
PROGRESS_LEVEL = 22
SUCCESS_LEVEL = 25
NOTICE_LEVEL = 35
FAILURE_LEVEL = 45

logging.addLevelName(TRACE_LEVEL, "TRACE")
logging.addLevelName(PROGRESS_LEVEL, "PROGRESS")
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")
logging.addLevelName(NOTICE_LEVEL, "NOTICE")
logging.addLevelName(FAILURE_LEVEL, "FAILURE")


class ColoredFormatter(logging.Formatter):
    """Formatter that colours whole records by level when writing to a terminal."""

    COLORS = {
        "TRACE": "\033[90m",  # Gray
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[0m",  # Default
        "PROGRESS": "\033[94m",  # Bright Blue
        "SUCCESS": "\033[92m",  # Bright Green
        "WARNING": "\033[33m",  # Yellow
        "NOTICE": "\033[96m",  # Bright Cyan
        "ERROR": "\033[31m",  # Red
        "FAILURE": "\033[91m",  # Bright Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        stream: Optional[TextIO] = None,
    ):
        super().__init__(fmt, datefmt)
        self.stream = stream if stream is not None else sys.stderr

    def _use_colors(self) -> bool:
        if os.environ.get("NO_COLOR"):
            return False
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        if self._use_colors():
            level_color = self.COLORS.get(record.levelname, "")
            return f"{level_color}{message}{self.COLORS['RESET']}"

        return message


def setup_colored_logging(
    level: int = logging.INFO, stream: Optional[TextIO] = None
) -> None:
    """
    Configure the root logger with a single coloured console handler.

    Args:
        level: Logging level (default: logging.INFO)
        stream: Output stream (default: sys.stderr)
    """
    stream = stream if stream is not None else sys.stderr
    formatter = ColoredFormatter(
        fmt="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=stream,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


class EnhancedLogger:
    """Logger wrapper exposing the custom levels as methods."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def trace(self, msg, *args, **kwargs):
        """Very detailed traversal output (gray)."""
        self._logger.log(TRACE_LEVEL, msg, *args, **kwargs)

    def progress(self, msg, *args, **kwargs):
        """Per-entry and percentage updates (bright blue)."""
        self._logger.log(PROGRESS_LEVEL, msg, *args, **kwargs)

    def success(self, msg, *args, **kwargs):
        """Finished backups (bright green)."""
        self._logger.log(SUCCESS_LEVEL, msg, *args, **kwargs)

    def notice(self, msg, *args, **kwargs):
        """Titles and important notices (bright cyan)."""
        self._logger.log(NOTICE_LEVEL, msg, *args, **kwargs)

    def failure(self, msg, *args, **kwargs):
        """A system's backup failed (bright red)."""
        self._logger.log(FAILURE_LEVEL, msg, *args, **kwargs)

    def lines(self, level: int, lines: Iterable[str]) -> None:
        """Log each line of a multi-line diagnostic as its own record."""
        for line in lines:
            self._logger.log(level, "%s", line)

    # Everything else (debug, info, warning, error, ...) goes to the wrapped logger
    def __getattr__(self, name):
        return getattr(self._logger, name)


def get_colored_logger(name: str) -> EnhancedLogger:
    """
    Get an enhanced logger instance with the custom level methods.

    Args:
        name: Logger name (typically __name__)

    Returns:
        EnhancedLogger wrapping logging.getLogger(name)
    """
    return EnhancedLogger(logging.getLogger(name))
