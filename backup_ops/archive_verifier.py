"""
Integrity checks and summaries for finished backup archives.
"""

import tarfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, NamedTuple

import zstandard as zstd

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)


class MemberInfo(NamedTuple):
    name: str
    is_dir: bool
    size: int
    compressed_size: int


def member_name_problems(names: List[str]) -> List[str]:
    """Names a cross-platform extractor would mishandle."""
    problems = []
    for name in names:
        if not name or name == "/":
            problems.append("empty member name")
        elif "\\" in name:
            problems.append(f"backslash in member name: {name}")
        elif name.startswith("/") or ".." in name.split("/"):
            problems.append(f"member escapes the archive root: {name}")
    return problems


class ZipArchiveVerifier:
    """Verifies ZIP backups."""

    def list_members(self, archive_path: Path) -> List[MemberInfo]:
        with zipfile.ZipFile(archive_path, "r") as zipf:
            return [
                MemberInfo(i.filename, i.is_dir(), i.file_size, i.compress_size)
                for i in zipf.infolist()
            ]

    def verify_integrity(self, archive_path: Path) -> List[str]:
        """Return a list of problems; empty means the archive is sound."""
        try:
            with zipfile.ZipFile(archive_path, "r") as zipf:
                bad_file = zipf.testzip()
                if bad_file is not None:
                    return [f"CRC check failed for {bad_file}"]
                return member_name_problems(zipf.namelist())
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            return [f"Could not read {archive_path}: {e}"]


class ZstdArchiveVerifier:
    """Verifies zstd-compressed tar backups."""

    def _iter_members(self, archive_path: Path, read_content: bool):
        with open(archive_path, "rb") as f:
            dctx = zstd.ZstdDecompressor()
            with dctx.stream_reader(f) as decompressor:
                with tarfile.open(fileobj=decompressor, mode="r|") as tar:
                    for member in tar:
                        if read_content and member.isfile():
                            data = tar.extractfile(member)
                            if data is not None:
                                while data.read(1024 * 1024):
                                    pass
                        yield member

    def list_members(self, archive_path: Path) -> List[MemberInfo]:
        compressed_total = Path(archive_path).stat().st_size
        members = []
        for member in self._iter_members(archive_path, read_content=False):
            name = f"{member.name}/" if member.isdir() else member.name
            members.append(MemberInfo(name, member.isdir(), member.size, 0))
        if members:
            # tar members carry no per-entry compressed size; report the frame total once
            first = members[0]
            members[0] = first._replace(compressed_size=compressed_total)
        return members

    def verify_integrity(self, archive_path: Path) -> List[str]:
        try:
            names = [
                f"{m.name}/" if m.isdir() else m.name
                for m in self._iter_members(archive_path, read_content=True)
            ]
        except zstd.ZstdError as e:
            return [f"zstd decompression failed for {archive_path}: {e}"]
        except (OSError, tarfile.TarError) as e:
            return [f"Could not read {archive_path}: {e}"]
        return member_name_problems(names)


class ArchiveVerifier:
    """Dispatches to the verifier matching an archive's extension."""

    def __init__(self):
        self.zip_verifier = ZipArchiveVerifier()
        self.zstd_verifier = ZstdArchiveVerifier()

    def _verifier_for(self, archive_path: Path):
        name = Path(archive_path).name
        if name.endswith(".zip"):
            return "zip", self.zip_verifier
        if name.endswith(".tar.zst") or name.endswith(".zst"):
            return "zstd", self.zstd_verifier
        raise ValueError(f"Unknown archive format: {archive_path}")

    def verify_archive_integrity(self, archive_path: Path) -> List[str]:
        """Check every member of the archive; returns the problems found."""
        _, verifier = self._verifier_for(archive_path)
        problems = verifier.verify_integrity(Path(archive_path))
        for problem in problems:
            logger.debug("Integrity problem in %s: %s", archive_path, problem)
        return problems

    def list_members(self, archive_path: Path) -> List[MemberInfo]:
        _, verifier = self._verifier_for(archive_path)
        return verifier.list_members(Path(archive_path))

    def get_archive_info(self, archive_path: Path) -> Dict[str, Any]:
        """Summary of an archive on disk."""
        path = Path(archive_path)
        if not path.exists():
            raise FileNotFoundError(f"Archive not found: {archive_path}")

        archive_format, verifier = self._verifier_for(path)
        file_stat = path.stat()
        members = verifier.list_members(path)
        files = [m for m in members if not m.is_dir]
        uncompressed = sum(m.size for m in files)

        return {
            "path": str(path),
            "format": archive_format,
            "size_bytes": file_stat.st_size,
            "modified_time": datetime.fromtimestamp(file_stat.st_mtime).isoformat(),
            "file_count": len(files),
            "directory_count": len(members) - len(files),
            "uncompressed_size": uncompressed,
            "compression_ratio": (
                (1 - file_stat.st_size / uncompressed) * 100 if uncompressed > 0 else 0
            ),
        }
