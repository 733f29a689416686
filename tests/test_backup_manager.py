"""
End-to-end tests for BackupManager: planning, writing, naming and isolation.
"""

import shutil
import tempfile
import unittest
import zipfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from backup_ops import (
    ArchivePathGenerator,
    BackupError,
    BackupManager,
    BackupRequest,
    ConfigMissingOrInvalidError,
    DestinationConflictError,
    IOFailureError,
    RecordingProgressListener,
    SourceMissingError,
    SystemDefinition,
    summarize_results,
)


def fixed_clock():
    return datetime(2024, 1, 31, 20, 15, 0)


class TestBackupManager(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.source = Path(self.temp_dir) / "src"
        self.dest = Path(self.temp_dir) / "dest"
        for rel, content in {
            "show/a.all": "show",
            "show/heads.all": "heads",
            "show/logs/x.log": "log",
            "other/ignored.txt": "not requested",
        }.items():
            path = self.source / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        self.system = SystemDefinition(
            name="Capture",
            source_root=self.source,
            destination_root=self.dest,
            requests=[
                BackupRequest("show", True, ("heads.all",)),
            ],
        )
        self.listener = RecordingProgressListener()
        self.manager = BackupManager(
            listener=self.listener,
            path_generator=ArchivePathGenerator(clock=fixed_clock),
        )

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_backup_writes_expected_members(self):
        """Requested files are archived; exclusions and unrequested paths are not."""
        result = self.manager.backup(self.system)

        self.assertTrue(result.succeeded)
        with zipfile.ZipFile(result.archive_path) as zipf:
            self.assertEqual(
                set(zipf.namelist()),
                {"show/a.all", "show/logs/", "show/logs/x.log"},
            )
            self.assertEqual(zipf.read("show/logs/x.log"), b"log")
        self.assertEqual(result.stats.files_written, 2)
        self.assertEqual(result.stats.files_skipped, 1)

    def test_archive_name_and_location(self):
        result = self.manager.backup(self.system)

        self.assertEqual(
            result.archive_path, self.dest / "Capture_backup_2024_01_31__20_15_00.zip"
        )
        self.assertEqual(
            result.message, f"Capture backed up to {result.archive_path}"
        )

    def test_same_second_run_is_refused(self):
        """A second run within the same second never overwrites the first archive."""
        first = self.manager.backup(self.system)
        original = first.archive_path.read_bytes()

        with self.assertRaises(DestinationConflictError):
            self.manager.backup(self.system)

        self.assertEqual(first.archive_path.read_bytes(), original)

    def test_zstd_format(self):
        manager = BackupManager(
            archive_format="zstd",
            listener=self.listener,
            path_generator=ArchivePathGenerator(clock=fixed_clock),
        )

        result = manager.backup(self.system)

        self.assertTrue(result.archive_path.name.endswith(".tar.zst"))
        names = {m.name for m in manager.verifier.list_members(result.archive_path)}
        self.assertEqual(names, {"show/a.all", "show/logs/", "show/logs/x.log"})

    def test_multiple_requests_share_one_archive(self):
        self.system.requests.append(BackupRequest("other/ignored.txt"))

        result = self.manager.backup(self.system)

        with zipfile.ZipFile(result.archive_path) as zipf:
            self.assertIn("other/ignored.txt", zipf.namelist())

    def test_missing_source_root(self):
        shutil.rmtree(self.source)

        with self.assertRaises(SourceMissingError):
            self.manager.backup(self.system)

    def test_missing_request_path_is_reported_with_context(self):
        self.system.requests.append(BackupRequest("gone"))

        with self.assertRaises(ConfigMissingOrInvalidError) as ctx:
            self.manager.backup(self.system)

        self.assertEqual(ctx.exception.texts()[0], "Could not scan Capture")
        self.assertFalse(any(self.dest.iterdir()))

    def test_failed_verification_is_an_io_failure(self):
        with patch.object(
            self.manager.verifier,
            "verify_archive_integrity",
            return_value=["CRC check failed for show/a.all"],
        ):
            with self.assertRaises(IOFailureError) as ctx:
                self.manager.backup(self.system)

        self.assertIn("CRC check failed for show/a.all", ctx.exception.texts())

    def test_verification_can_be_disabled(self):
        manager = BackupManager(
            verify_after_backup=False,
            listener=self.listener,
            path_generator=ArchivePathGenerator(clock=fixed_clock),
        )
        with patch.object(manager.verifier, "verify_archive_integrity") as verify:
            manager.backup(self.system)
        verify.assert_not_called()

    def test_low_disk_space_only_warns(self):
        usage = type("Usage", (), {"free": 1})()
        with patch("backup_ops.backup_manager.psutil.disk_usage", return_value=usage):
            with self.assertLogs("backup_ops.backup_manager", level="WARNING"):
                result = self.manager.backup(self.system)
        self.assertTrue(result.succeeded)

    def test_progress_reaches_hundred(self):
        self.manager.backup(self.system)
        self.assertEqual(self.listener.percentages[-1], 100)

    def test_backup_all_isolates_failures(self):
        """One failing system does not stop the others."""
        broken = SystemDefinition(
            name="Broken",
            source_root=Path(self.temp_dir) / "missing",
            destination_root=self.dest,
            requests=[BackupRequest("")],
        )
        other = SystemDefinition(
            name="Other",
            source_root=self.source,
            destination_root=self.dest,
            requests=[BackupRequest("other", True)],
        )

        results = self.manager.backup_all([broken, self.system, other])

        self.assertEqual([r.system_name for r in results], ["Broken", "Capture", "Other"])
        self.assertEqual([r.succeeded for r in results], [False, True, True])
        self.assertIsInstance(results[0].error, SourceMissingError)

        lines = summarize_results(results)
        self.assertEqual(lines[0], "Could not back up Broken")
        self.assertTrue(lines[1].startswith("  "))
        self.assertIn("Capture backed up to", "\n".join(lines))

    def test_backup_all_isolates_unexpected_errors(self):
        """Errors outside the BackupError family still fail only their system."""
        odd = SystemDefinition(
            name=5,
            source_root=self.source,
            destination_root=self.dest,
            requests=[BackupRequest("show", True)],
        )

        results = self.manager.backup_all([odd, self.system])

        self.assertEqual([r.succeeded for r in results], [False, True])
        self.assertIsInstance(results[0].error, BackupError)
        self.assertIn("Unexpected error while backing up 5", results[0].error.texts())
        self.assertTrue(results[1].archive_path.is_file())

    def test_overlapping_requests_do_not_duplicate_members(self):
        self.system.requests.append(BackupRequest("show/a.all"))

        result = self.manager.backup(self.system)

        with zipfile.ZipFile(result.archive_path) as zipf:
            self.assertEqual(zipf.namelist().count("show/a.all"), 1)

    def test_invalid_format_is_rejected(self):
        with self.assertRaises(ValueError):
            BackupManager(archive_format="rar")


if __name__ == "__main__":
    unittest.main()
