from .errors import (
    BackupError,
    ConfigMissingOrInvalidError,
    DestinationConflictError,
    SourceMissingError,
    IOFailureError,
    PathComputationError,
)
from .path_matcher import ExclusionRule, compile_rules, is_excluded
from .models import (
    BackupRequest,
    SystemDefinition,
    SystemKind,
    TraversalEntry,
    EntryKind,
    ArchiveStats,
    BackupResult,
)
from .traversal import TraversalPlanner, plan
from .progress import (
    ProgressListener,
    ProgressTracker,
    LoggingProgressListener,
    RecordingProgressListener,
)
from .archive_writers import (
    ArchiveWriter,
    ZipArchiveWriter,
    ZstdArchiveWriter,
    ArchiveWriterFactory,
)
from .archive_verifier import ArchiveVerifier, ZipArchiveVerifier, ZstdArchiveVerifier
from .path_utils import ArchivePathGenerator, get_archive_path

# Orchestration
from .backup_manager import BackupManager, summarize_results

__all__ = [
    # Errors
    "BackupError",
    "ConfigMissingOrInvalidError",
    "DestinationConflictError",
    "SourceMissingError",
    "IOFailureError",
    "PathComputationError",
    # Exclusion rules
    "ExclusionRule",
    "compile_rules",
    "is_excluded",
    # Data model
    "BackupRequest",
    "SystemDefinition",
    "SystemKind",
    "TraversalEntry",
    "EntryKind",
    "ArchiveStats",
    "BackupResult",
    # Traversal
    "TraversalPlanner",
    "plan",
    # Progress
    "ProgressListener",
    "ProgressTracker",
    "LoggingProgressListener",
    "RecordingProgressListener",
    # Archive writing
    "ArchiveWriter",
    "ZipArchiveWriter",
    "ZstdArchiveWriter",
    "ArchiveWriterFactory",
    # Verification
    "ArchiveVerifier",
    "ZipArchiveVerifier",
    "ZstdArchiveVerifier",
    # Naming
    "ArchivePathGenerator",
    "get_archive_path",
    # Orchestration
    "BackupManager",
    "summarize_results",
]
