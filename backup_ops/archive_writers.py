"""
Archive writers for the supported compression formats.

A writer consumes traversal entries and streams them into a single archive:
file entries become compressed members named by their root-relative path,
directory entries become empty members. The archive is built in a
temporary sibling file and renamed into place only once it is complete.
"""

import os
import stat
import tarfile
import time
import zipfile
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Set

import zstandard as zstd

from colored_logger import get_colored_logger

from .errors import DestinationConflictError, IOFailureError, SourceMissingError
from .models import ArchiveStats, TraversalEntry
from .path_matcher import is_excluded
from .progress import ProgressListener, ProgressTracker

logger = get_colored_logger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024
MIN_CHUNK_SIZE = 1024
DIRECTORY_MODE = 0o755
FILE_MODE = 0o644


def _set_compress_level(info: zipfile.ZipInfo, level: int) -> None:
    """Apply a per-member deflate level.

    ``ZipFile.open(info, "w")`` compresses with the level stored on the
    ZipInfo, not the ZipFile's ``compresslevel``. CPython before 3.13 keeps
    it in the private ``ZipInfo._compresslevel``; 3.13 made it the public
    ``compress_level``.
    """
    if hasattr(info, "compress_level"):
        info.compress_level = level
    else:
        info._compresslevel = level


def _zip_date_time(mtime: float) -> tuple:
    """Local modification time clamped to the range a ZIP header can store."""
    date_time = time.localtime(mtime)[:6]
    if date_time[0] < 1980:
        return (1980, 1, 1, 0, 0, 0)
    if date_time[0] > 2107:
        return (2107, 12, 31, 23, 59, 59)
    return date_time


class ArchiveWriter:
    """Shared run logic; subclasses provide the format-specific member handling."""

    format_name = ""
    extension = ""

    def __init__(self, compression_level: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.compression_level = compression_level
        self.chunk_size = max(MIN_CHUNK_SIZE, chunk_size)
        self._buffer: Optional[bytearray] = None
        self._member_names: Set[str] = set()

    # Format hooks

    def _open(self, temp_path: Path) -> None:
        raise NotImplementedError

    def _add_file(self, entry: TraversalEntry, file_stat: os.stat_result) -> int:
        raise NotImplementedError

    def _add_directory(self, entry: TraversalEntry) -> None:
        raise NotImplementedError

    def _close(self) -> None:
        raise NotImplementedError

    def _abort(self) -> None:
        """Release handles after a failure; errors here are secondary."""
        try:
            self._close()
        except (OSError, ValueError, zipfile.BadZipFile, tarfile.TarError) as e:
            logger.debug("Ignoring error while closing failed archive: %s", e)

    # Shared helpers

    def _copy_stream(self, src: BinaryIO, dst: BinaryIO) -> int:
        """Copy ``src`` into ``dst`` through the writer's reusable buffer (ZIP members)."""
        view = memoryview(self._buffer)
        copied = 0
        while True:
            read = src.readinto(self._buffer)
            if not read:
                break
            dst.write(view[:read])
            copied += read
        return copied

    def check_destination(self, source_root: Path, destination: Path) -> None:
        """Validate the run before anything is created on disk."""
        if destination.exists():
            raise DestinationConflictError(f"{destination} already exists!")
        if not destination.name.endswith(self.extension):
            raise DestinationConflictError(
                f"{destination} is not a {self.extension} file!"
            )
        if not source_root.exists():
            raise SourceMissingError(f"{source_root} does not exist")

    @staticmethod
    def planned_bytes(entries: Iterable[TraversalEntry]) -> int:
        """Total size of the files among ``entries`` that will be archived."""
        total = 0
        counted = set()
        for entry in entries:
            if not entry.is_file or entry.member_name in counted:
                continue
            if is_excluded(entry.absolute_path.name, entry.request.exclusion_rules):
                continue
            counted.add(entry.member_name)
            try:
                total += entry.absolute_path.stat().st_size
            except OSError as e:
                logger.debug("Could not stat %s: %s", entry.absolute_path, e)
        return total

    def write(
        self,
        source_root: Path,
        entries: List[TraversalEntry],
        destination: Path,
        listener: Optional[ProgressListener] = None,
    ) -> ArchiveStats:
        """
        Write ``entries`` into a new archive at ``destination``.

        Args:
            source_root: Root every entry is relative to
            entries: Planned traversal entries, in archive order
            destination: Archive path; must not exist and must carry ``extension``
            listener: Optional progress listener

        Returns:
            Counters for the written archive

        Raises:
            DestinationConflictError, SourceMissingError, IOFailureError
        """
        source_root = Path(source_root)
        destination = Path(destination)
        self.check_destination(source_root, destination)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailureError(
                f"Could not create folder {destination.parent}", e
            ) from e

        tracker = ProgressTracker(listener, self.planned_bytes(entries))
        stats = ArchiveStats()
        temp_path = destination.with_name(f"{destination.name}.tmp.{os.getpid()}")
        self._buffer = bytearray(self.chunk_size)
        self._member_names = set()
        opened = False

        try:
            self._open(temp_path)
            opened = True

            for entry in entries:
                self._write_entry(entry, tracker, stats)

            tracker.task("All entries archived...")
            self._close()
            opened = False

            if destination.exists():
                raise DestinationConflictError(f"{destination} already exists!")
            os.replace(temp_path, destination)
        except OSError as e:
            if opened:
                self._abort()
            self._cleanup_temp_file(temp_path)
            raise IOFailureError(f"Could not write {destination}", e) from e
        except Exception:
            if opened:
                self._abort()
            self._cleanup_temp_file(temp_path)
            raise
        finally:
            self._buffer = None
            self._member_names = set()

        tracker.finish(f"Archive {destination.name} complete")
        logger.debug(
            "Wrote %s: %d files, %d folders, %d skipped, %d bytes",
            destination,
            stats.files_written,
            stats.directories_written,
            stats.files_skipped,
            stats.bytes_written,
        )
        return stats

    def _write_entry(
        self, entry: TraversalEntry, tracker: ProgressTracker, stats: ArchiveStats
    ) -> None:
        member_name = entry.member_name
        if member_name in self._member_names:
            # Overlapping requests: the first request that archives a path wins
            tracker.task(f"Already archived {entry.absolute_path}")
            logger.debug("Skipping duplicate member %s", member_name)
            return

        if entry.is_directory:
            tracker.task(f"Archiving {entry.absolute_path}")
            self._add_directory(entry)
            self._member_names.add(member_name)
            stats.directories_written += 1
            return

        if is_excluded(entry.absolute_path.name, entry.request.exclusion_rules):
            tracker.task(f"Skipping excluded file {entry.absolute_path}")
            stats.files_skipped += 1
            return

        tracker.task(f"Archiving {entry.absolute_path}")
        try:
            written = self._add_file(entry, entry.absolute_path.stat())
        except OSError as e:
            raise IOFailureError(f"Could not archive {entry.absolute_path}", e) from e

        self._member_names.add(member_name)
        stats.files_written += 1
        stats.bytes_written += written
        tracker.advance(written)

    @staticmethod
    def _cleanup_temp_file(temp_path: Path) -> None:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError as e:
                logger.warning("Could not remove temporary file %s: %s", temp_path, e)


class ZipArchiveWriter(ArchiveWriter):
    """Writes deflate-compressed ZIP archives."""

    format_name = "zip"
    extension = ".zip"

    def __init__(self, compression_level: int = 6, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__(compression_level, chunk_size)
        self._zipf: Optional[zipfile.ZipFile] = None

    def _open(self, temp_path: Path) -> None:
        self._zipf = zipfile.ZipFile(
            temp_path,
            "w",
            zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level,
            allowZip64=True,
        )

    def _add_file(self, entry: TraversalEntry, file_stat: os.stat_result) -> int:
        info = zipfile.ZipInfo(entry.member_name, _zip_date_time(file_stat.st_mtime))
        info.external_attr = (file_stat.st_mode & 0xFFFF) << 16
        info.compress_type = zipfile.ZIP_DEFLATED
        info.file_size = file_stat.st_size
        _set_compress_level(info, self.compression_level)
        with open(entry.absolute_path, "rb") as src_file:
            with self._zipf.open(info, "w") as dst_file:
                return self._copy_stream(src_file, dst_file)

    def _add_directory(self, entry: TraversalEntry) -> None:
        info = zipfile.ZipInfo(entry.member_name, time.localtime(time.time())[:6])
        info.compress_type = zipfile.ZIP_STORED
        info.external_attr = ((stat.S_IFDIR | DIRECTORY_MODE) << 16) | 0x10
        self._zipf.writestr(info, b"")

    def _close(self) -> None:
        if self._zipf is not None:
            zipf, self._zipf = self._zipf, None
            zipf.close()


class ZstdArchiveWriter(ArchiveWriter):
    """Writes a streamed tar archive inside a zstandard frame."""

    format_name = "zstd"
    extension = ".tar.zst"

    def __init__(self, compression_level: int = 3, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__(compression_level, chunk_size)
        self._raw: Optional[BinaryIO] = None
        self._compressor = None
        self._tar: Optional[tarfile.TarFile] = None

    def _open(self, temp_path: Path) -> None:
        cctx = zstd.ZstdCompressor(
            level=self.compression_level, write_checksum=True
        )
        self._raw = open(temp_path, "wb")
        self._compressor = cctx.stream_writer(self._raw, closefd=False)
        self._tar = tarfile.open(
            fileobj=self._compressor, mode="w|", copybufsize=self.chunk_size
        )

    def _add_file(self, entry: TraversalEntry, file_stat: os.stat_result) -> int:
        # tarfile copies the content itself, in chunks of the writer's chunk size
        info = tarfile.TarInfo(entry.member_name)
        info.size = file_stat.st_size
        info.mtime = int(file_stat.st_mtime)
        info.mode = FILE_MODE
        with open(entry.absolute_path, "rb") as src_file:
            self._tar.addfile(info, src_file)
        return info.size

    def _add_directory(self, entry: TraversalEntry) -> None:
        info = tarfile.TarInfo(entry.member_name.rstrip("/"))
        info.type = tarfile.DIRTYPE
        info.mode = DIRECTORY_MODE
        info.mtime = int(time.time())
        self._tar.addfile(info)

    def _close(self) -> None:
        tar, self._tar = self._tar, None
        compressor, self._compressor = self._compressor, None
        raw, self._raw = self._raw, None
        try:
            if tar is not None:
                tar.close()
            if compressor is not None:
                compressor.close()
        finally:
            if raw is not None:
                raw.close()


class ArchiveWriterFactory:
    """Creates the writer for a configured archive format."""

    DEFAULT_COMPRESSION_LEVEL = {"zip": 6, "zstd": 3}
    COMPRESSION_LEVEL_RANGE = {"zip": (0, 9), "zstd": (1, 22)}

    @classmethod
    def create_archive_writer(
        cls,
        archive_format: str = "zip",
        compression_level: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> ArchiveWriter:
        if archive_format not in cls.DEFAULT_COMPRESSION_LEVEL:
            raise ValueError(f"Unsupported archive format: {archive_format}")

        level = (
            compression_level
            if compression_level is not None
            else cls.DEFAULT_COMPRESSION_LEVEL[archive_format]
        )
        low, high = cls.COMPRESSION_LEVEL_RANGE[archive_format]
        if isinstance(level, bool) or not isinstance(level, int):
            raise ValueError(f"Compression level must be a whole number, got {level!r}")
        if not low <= level <= high:
            raise ValueError(
                f"Compression level {level} out of range {low}-{high} for {archive_format}"
            )

        if archive_format == "zip":
            return ZipArchiveWriter(level, chunk_size)
        return ZstdArchiveWriter(level, chunk_size)

    @staticmethod
    def extension_for(archive_format: str) -> str:
        if archive_format == "zip":
            return ZipArchiveWriter.extension
        if archive_format == "zstd":
            return ZstdArchiveWriter.extension
        raise ValueError(f"Unsupported archive format: {archive_format}")

    @classmethod
    def get_supported_formats(cls) -> List[str]:
        return list(cls.DEFAULT_COMPRESSION_LEVEL)
