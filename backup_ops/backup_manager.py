"""
Backup orchestration for configured systems.

Ties a system definition to the traversal planner and the archive writer,
names the destination archive, and turns every failure into a structured
BackupError with one line per cause. Systems are backed up independently:
one system failing never stops the others.
"""

import logging
import time
from pathlib import Path
from typing import List, Optional

import psutil

from colored_logger import get_colored_logger

from .archive_verifier import ArchiveVerifier
from .archive_writers import ArchiveWriterFactory
from .errors import BackupError, IOFailureError, SourceMissingError
from .models import BackupResult, SystemDefinition
from .path_utils import ArchivePathGenerator
from .progress import LoggingProgressListener, ProgressListener
from .traversal import TraversalPlanner

logger = get_colored_logger(__name__)


class BackupManager:
    """
    Runs backups of systems into timestamped archives.

    Delegates to:
    - TraversalPlanner: which files and folders go into the archive
    - ArchiveWriterFactory / ArchiveWriter: writing the archive
    - ArchivePathGenerator: the destination file name
    - ArchiveVerifier: optional read-back check of the finished archive
    """

    def __init__(
        self,
        archive_format: str = "zip",
        compression_level: Optional[int] = None,
        verify_after_backup: bool = True,
        listener: Optional[ProgressListener] = None,
        path_generator: Optional[ArchivePathGenerator] = None,
    ):
        """
        Initialize the manager.

        Args:
            archive_format: 'zip' or 'zstd'
            compression_level: Level for the chosen format (None for its default)
            verify_after_backup: Read the archive back after writing it
            listener: Progress listener (defaults to logging progress)
            path_generator: Destination naming (injectable clock for tests)
        """
        self.writer = ArchiveWriterFactory.create_archive_writer(
            archive_format, compression_level
        )
        self.archive_format = archive_format
        self.verify_after_backup = verify_after_backup
        self.listener = listener if listener is not None else LoggingProgressListener()
        self.path_generator = path_generator or ArchivePathGenerator()
        self.verifier = ArchiveVerifier()

    def destination_for(self, system: SystemDefinition) -> Path:
        return self.path_generator.generate_archive_path(
            system.name, system.destination_root, self.writer.extension
        )

    def _check_free_space(self, destination_root: Path, planned_bytes: int) -> None:
        try:
            free = psutil.disk_usage(str(destination_root)).free
        except OSError as e:
            logger.debug("Could not read free space of %s: %s", destination_root, e)
            return
        if planned_bytes > free:
            logger.warning(
                "Backup needs up to %.1f MB but only %.1f MB are free on %s",
                planned_bytes / (1024 * 1024),
                free / (1024 * 1024),
                destination_root,
            )

    def backup(self, system: SystemDefinition) -> BackupResult:
        """
        Back up one system into a new archive.

        Returns:
            BackupResult naming the system and the produced archive

        Raises:
            BackupError (or a subclass) describing why the run failed
        """
        logger.notice("Backing up %s", system.name)
        start_time = time.time()

        destination = self.destination_for(system)

        if not system.source_root.exists():
            raise SourceMissingError(
                f"{system.source_root} for {system.name} does not exist anymore"
            )

        try:
            system.destination_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailureError(
                f"Could not create destination folder {system.destination_root}", e
            ) from e

        logger.info("Calculating folders. Please wait...")
        planner = TraversalPlanner(system.source_root)
        try:
            entries = planner.plan(system.requests)
        except BackupError as e:
            raise e.__class__.wrap(f"Could not scan {system.name}", e) from e

        self._check_free_space(
            system.destination_root, self.writer.planned_bytes(entries)
        )

        stats = self.writer.write(
            system.source_root, entries, destination, self.listener
        )

        if self.verify_after_backup:
            problems = self.verifier.verify_archive_integrity(destination)
            if problems:
                raise IOFailureError(
                    [f"Archive {destination} failed verification"] + problems
                )
            logger.debug("Archive %s verified", destination)

        logger.success(
            "%s backed up to %s (%d files, %.2f MB, %.2f seconds)",
            system.name,
            destination,
            stats.files_written,
            destination.stat().st_size / (1024 * 1024),
            time.time() - start_time,
        )
        return BackupResult(system_name=system.name, archive_path=destination, stats=stats)

    def backup_all(self, systems: List[SystemDefinition]) -> List[BackupResult]:
        """Back up every system; failures are collected, never propagated."""
        results = []
        for system in systems:
            try:
                results.append(self.backup(system))
            except BackupError as e:
                logger.failure("Could not back up %s", system.name)
                logger.lines(logging.ERROR, e.texts())
                results.append(BackupResult(system_name=system.name, error=e))
            except Exception as e:
                logger.failure("Could not back up %s", system.name)
                logger.error("Unexpected error: %s", e)
                logger.debug("Full error details:", exc_info=True)
                error = BackupError.wrap(
                    f"Unexpected error while backing up {system.name}", e
                )
                results.append(BackupResult(system_name=system.name, error=error))
        return results


def summarize_results(results: List[BackupResult]) -> List[str]:
    """Flat list of lines describing successes and failures of a session."""
    lines = []
    for result in results:
        lines.append(result.message)
        if not result.succeeded and isinstance(result.error, BackupError):
            lines.extend(f"  {line}" for line in result.error.texts())
        elif not result.succeeded:
            lines.append(f"  {result.error}")
    return lines
