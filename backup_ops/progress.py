"""
Progress reporting for archive runs.

The pipeline only ever hands data to a listener: a task description per
entry and an integer percentage whenever it changes. Listeners are
best-effort; a broken listener never fails a backup.
"""

from typing import Optional, Protocol

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)


class ProgressListener(Protocol):
    """Receives progress notifications from the pipeline."""

    def on_task_update(self, description: str) -> None:
        """Called at least once per processed entry and once at completion."""
        ...

    def on_percentage(self, percentage: int) -> None:
        """Called whenever the integer percentage of processed bytes changes."""
        ...


class LoggingProgressListener:
    """Renders progress through the PROGRESS log level."""

    def __init__(self, log_every_entry: bool = False):
        self.log_every_entry = log_every_entry

    def on_task_update(self, description: str) -> None:
        if self.log_every_entry:
            logger.progress("%s", description)
        else:
            logger.debug("%s", description)

    def on_percentage(self, percentage: int) -> None:
        logger.progress("Processing %d%%...", percentage)


class RecordingProgressListener:
    """Keeps every notification in memory; handy for callers that render later."""

    def __init__(self):
        self.tasks = []
        self.percentages = []

    def on_task_update(self, description: str) -> None:
        self.tasks.append(description)

    def on_percentage(self, percentage: int) -> None:
        self.percentages.append(percentage)


class ProgressTracker:
    """Turns processed bytes into percentage updates and forwards them safely."""

    def __init__(self, listener: Optional[ProgressListener], total_bytes: int = 0):
        self.listener = listener
        self.total_bytes = total_bytes
        self.done_bytes = 0
        self.last_percentage: Optional[int] = None

    @staticmethod
    def compute_percentage(done: int, total: int) -> int:
        """Integer percentage of ``done`` over ``total``; a zero total counts as 1."""
        if total <= 0:
            total = 1
        return min(100, int(done / total * 100))

    def task(self, description: str) -> None:
        """Forward a task description to the listener."""
        self._notify("on_task_update", description)

    def advance(self, num_bytes: int) -> None:
        """Record ``num_bytes`` as processed and report a changed percentage."""
        self.done_bytes += num_bytes
        self._report_percentage()

    def finish(self, description: str) -> None:
        """Report completion: 100% and a final task description."""
        self.done_bytes = max(self.done_bytes, self.total_bytes)
        if self.last_percentage != 100:
            self.last_percentage = 100
            self._notify("on_percentage", 100)
        self.task(description)

    def _report_percentage(self) -> None:
        percentage = self.compute_percentage(self.done_bytes, self.total_bytes)
        if percentage == self.last_percentage:
            return
        self.last_percentage = percentage
        self._notify("on_percentage", percentage)

    def _notify(self, method: str, value) -> None:
        if self.listener is None:
            return
        callback = getattr(self.listener, method, None)
        if callback is None:
            return
        try:
            callback(value)
        except Exception as e:
            logger.debug("Progress listener %s failed: %s", method, e)
