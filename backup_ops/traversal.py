"""
Traversal planning for backup requests.

Walks each requested relative path under a source root and yields the files
and directories that belong in the archive, each tagged with its path
relative to the root. Directory trees are expanded with an explicit LIFO
work stack so arbitrarily deep trees never hit the recursion limit.
"""

from pathlib import Path, PurePosixPath
from typing import Iterator, List, Sequence

from colored_logger import get_colored_logger

from .errors import ConfigMissingOrInvalidError, IOFailureError, PathComputationError
from .models import BackupRequest, EntryKind, TraversalEntry

logger = get_colored_logger(__name__)


class TraversalPlanner:
    """Turns (source root, requests) into an ordered stream of traversal entries."""

    def __init__(self, source_root: Path):
        self.source_root = Path(source_root)

    def relative_path_of(self, path: Path) -> PurePosixPath:
        """Strip the source root from ``path``, as a forward-slash path."""
        try:
            relative = path.relative_to(self.source_root)
        except ValueError as e:
            raise PathComputationError(
                [
                    f"{path} is not inside the source folder {self.source_root}",
                    str(e),
                ]
            ) from e
        return PurePosixPath(*relative.parts) if relative.parts else PurePosixPath()

    def _entry(
        self, path: Path, kind: EntryKind, request: BackupRequest
    ) -> TraversalEntry:
        return TraversalEntry(
            absolute_path=path,
            relative_path=self.relative_path_of(path),
            kind=kind,
            request=request,
        )

    def _list_children(self, directory: Path) -> List[Path]:
        try:
            return list(directory.iterdir())
        except OSError as e:
            raise IOFailureError(f"Could not read folder {directory}", e) from e

    def _walk_directory(
        self, root_dir: Path, request: BackupRequest
    ) -> Iterator[TraversalEntry]:
        stack = [root_dir]

        while stack:
            current = stack.pop()
            logger.trace("Scanning %s", current)

            for child in self._list_children(current):
                if child.is_file():
                    yield self._entry(child, EntryKind.FILE, request)
                elif child.is_dir():
                    if not request.include_subfolders:
                        continue
                    entry = self._entry(child, EntryKind.DIRECTORY, request)
                    if entry.relative_path.parts:
                        yield entry
                    if child.is_symlink():
                        logger.debug("Not following linked folder %s", child)
                        continue
                    stack.append(child)
                else:
                    logger.debug("Skipping special file %s", child)

    def iter_request(self, request: BackupRequest) -> Iterator[TraversalEntry]:
        """Lazily yield the entries of a single request."""
        problem = request.path_problem()
        if problem:
            raise ConfigMissingOrInvalidError(problem)

        resolved = request.resolve(self.source_root)
        if not resolved.exists():
            raise ConfigMissingOrInvalidError(
                f"{resolved} does not exist (requested as '{request.relative_path}')"
            )

        if resolved.is_file():
            yield self._entry(resolved, EntryKind.FILE, request)
            return

        yield from self._walk_directory(resolved, request)

    def iter_plan(self, requests: Sequence[BackupRequest]) -> Iterator[TraversalEntry]:
        """Lazily yield entries for all requests, in request order."""
        for request in requests:
            yield from self.iter_request(request)

    def plan(self, requests: Sequence[BackupRequest]) -> List[TraversalEntry]:
        """Materialise the full entry list for ``requests``."""
        entries = list(self.iter_plan(requests))
        logger.debug(
            "Planned %d entries under %s for %d request(s)",
            len(entries),
            self.source_root,
            len(requests),
        )
        return entries


def plan(source_root: Path, requests: Sequence[BackupRequest]) -> List[TraversalEntry]:
    """Convenience wrapper around :class:`TraversalPlanner`."""
    return TraversalPlanner(source_root).plan(requests)
