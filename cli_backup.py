#!/usr/bin/env python3
"""
Show File Backup CLI

Backs up lighting-console show folders and local installations listed in
config.json into timestamped archives.

Usage:
    python3 cli_backup.py list
    python3 cli_backup.py backup --all
    python3 cli_backup.py backup "My Mq80" "Capture"
    python3 cli_backup.py init-config
    python3 cli_backup.py verify /backups/My_Mq80_backup_2024_01_31__20_15_00.zip
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from backup_ops import (
    ArchiveVerifier,
    BackupError,
    BackupManager,
    LoggingProgressListener,
    summarize_results,
)
from colored_logger import get_colored_logger, setup_colored_logging
from settings import (
    CONFIG_FILE_NAME,
    Settings,
    create_config_file,
    get_example_config,
)

logger = get_colored_logger(__name__)


class BackupCLI:
    """Command-line front-end for backing up configured systems."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Back up lighting-console show files into compressed archives",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=f"""
The program can back up:
  - one or more consoles whose show folder is reachable from this computer
  - one or more software installations on this computer (MagicQ, Capture, ...)

Each backup is one archive in the system's destination folder, most likely a
folder synced to the cloud. The systems are listed in {CONFIG_FILE_NAME}.

Examples:
  python3 cli_backup.py list
  python3 cli_backup.py backup --all
  python3 cli_backup.py backup "MagicQ on Pc"
  python3 cli_backup.py info /backups/Capture_backup_2024_01_31__20_15_00.zip --detailed
            """,
        )
        parser.add_argument(
            "--config",
            "-c",
            default=CONFIG_FILE_NAME,
            help=f"Configuration file (default: {CONFIG_FILE_NAME})",
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Show debug output"
        )

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        subparsers.add_parser("list", help="List valid systems and configuration warnings")

        backup_parser = subparsers.add_parser("backup", help="Back up one or more systems")
        backup_parser.add_argument(
            "systems", nargs="*", help="Names of the systems to back up"
        )
        backup_parser.add_argument(
            "--all", "-a", action="store_true", help="Back up all valid systems"
        )
        backup_parser.add_argument(
            "--quiet", "-q", action="store_true", help="Suppress progress output"
        )

        subparsers.add_parser(
            "config-example", help=f"Print an example {CONFIG_FILE_NAME}"
        )
        subparsers.add_parser(
            "config-path", help=f"Show where {CONFIG_FILE_NAME} is expected"
        )
        subparsers.add_parser(
            "init-config", help=f"Create {CONFIG_FILE_NAME} with example data"
        )

        info_parser = subparsers.add_parser("info", help="Show information about an archive")
        info_parser.add_argument("archive_path", help="Path to the archive file")
        info_parser.add_argument(
            "--detailed", action="store_true", help="List every archive member"
        )

        verify_parser = subparsers.add_parser("verify", help="Verify archive integrity")
        verify_parser.add_argument("archive_path", help="Path to the archive file")

        return parser

    def run(self, args: Optional[list] = None) -> int:
        """Run the CLI with the given arguments."""
        parsed_args = self.parser.parse_args(args)

        if parsed_args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        handlers = {
            "list": self._handle_list,
            "backup": self._handle_backup,
            "config-example": self._handle_config_example,
            "config-path": self._handle_config_path,
            "init-config": self._handle_init_config,
            "info": self._handle_info,
            "verify": self._handle_verify,
        }

        try:
            return handlers[parsed_args.command](parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130
        except BackupError as e:
            logger.lines(logging.ERROR, e.texts())
            logger.debug("Full error details:", exc_info=True)
            return 1

    def _load_systems(self, args):
        settings = Settings(args.config)
        validated = settings.load_validated_systems()
        if validated.warnings:
            logger.lines(logging.WARNING, validated.warning_lines())
        return settings, validated

    def _handle_list(self, args) -> int:
        _, validated = self._load_systems(args)
        if validated.is_empty():
            logger.error("No valid systems found for backup in %s", args.config)
            return 1

        logger.notice("Systems available for backup")
        for system in validated.systems:
            logger.info(
                "%s (%s): %s -> %s",
                system.name,
                system.kind.value.replace("_", " "),
                system.source_root,
                system.destination_root,
            )
            for request in system.requests:
                logger.info(
                    "  %s%s%s",
                    request.relative_path or ".",
                    " (with subfolders)" if request.include_subfolders else "",
                    f" excluding {', '.join(request.excluded_files)}"
                    if request.excluded_files
                    else "",
                )
        return 0

    def _select_systems(self, args, validated) -> Optional[List]:
        if args.all or not args.systems:
            if not args.all:
                logger.info("No system named, backing up all systems")
            return list(validated.systems)

        by_name = {system.name: system for system in validated.systems}
        unknown = [name for name in args.systems if name not in by_name]
        if unknown:
            for name in unknown:
                logger.error("Unknown or invalid system: %s", name)
            logger.info("Valid systems: %s", ", ".join(by_name) or "none")
            return None
        return [by_name[name] for name in args.systems]

    def _handle_backup(self, args) -> int:
        settings, validated = self._load_systems(args)
        if validated.is_empty():
            logger.error(
                "No valid systems found for backup in %s. "
                "There may be warnings above to help you find what is wrong",
                args.config,
            )
            return 1

        systems = self._select_systems(args, validated)
        if systems is None:
            return 1

        try:
            manager = BackupManager(
                archive_format=settings.archive_format,
                compression_level=settings.compression_level,
                verify_after_backup=settings.verify_after_backup,
                listener=_SilentListener() if args.quiet else LoggingProgressListener(),
            )
        except ValueError as e:
            logger.error("Invalid archive options: %s", e)
            return 1

        results = manager.backup_all(systems)

        logger.notice("Backup summary")
        for result in results:
            if result.succeeded:
                logger.success("%s", result.message)
        failed = [result for result in results if not result.succeeded]
        if failed:
            logger.lines(logging.ERROR, summarize_results(failed))
            return 1
        return 0

    def _handle_config_example(self, args) -> int:
        logger.notice("Example of %s", CONFIG_FILE_NAME)
        print(get_example_config())
        return 0

    def _handle_config_path(self, args) -> int:
        config_path = Path(args.config)
        if not config_path.is_absolute():
            config_path = Path(os.getcwd()) / config_path
        logger.info("The configuration is read from:")
        logger.success("%s", config_path)
        return 0

    def _handle_init_config(self, args) -> int:
        message = create_config_file(args.config)
        logger.success("%s", message)
        logger.info("Edit the file to describe your consoles and installations")
        return 0

    def _handle_info(self, args) -> int:
        archive_path = Path(args.archive_path)
        if not archive_path.exists():
            logger.error("Archive file does not exist: %s", archive_path)
            return 1

        verifier = ArchiveVerifier()
        try:
            info = verifier.get_archive_info(archive_path)
            members = verifier.list_members(archive_path) if args.detailed else []
        except ValueError as e:
            logger.error("%s", e)
            return 1
        except OSError as e:
            logger.error("Failed to read archive info: %s", e)
            return 1

        logger.info("Archive: %s", info["path"])
        logger.info("Format: %s", info["format"].upper())
        logger.info("Size: %.2f MB (%d bytes)", info["size_bytes"] / (1024 * 1024), info["size_bytes"])
        logger.info("Modified: %s", info["modified_time"])
        logger.info("Files: %d", info["file_count"])
        logger.info("Folders: %d", info["directory_count"])
        logger.info("Uncompressed size: %.2f MB", info["uncompressed_size"] / (1024 * 1024))
        logger.info("Compression ratio: %.1f%%", info["compression_ratio"])

        if args.detailed:
            logger.info("")
            logger.info("Members:")
            for member in sorted(members, key=lambda m: m.name):
                if member.is_dir:
                    logger.info("  %s", member.name)
                else:
                    logger.info("  %s (%.1f KB)", member.name, member.size / 1024)
        return 0

    def _handle_verify(self, args) -> int:
        archive_path = Path(args.archive_path)
        if not archive_path.exists():
            logger.error("Archive file does not exist: %s", archive_path)
            return 1

        logger.info("Verifying archive integrity: %s", archive_path)
        try:
            problems = ArchiveVerifier().verify_archive_integrity(archive_path)
        except ValueError as e:
            logger.error("%s", e)
            return 1

        if problems:
            logger.error("Archive integrity check failed")
            logger.lines(logging.ERROR, problems)
            return 1
        logger.success("Archive integrity check passed")
        return 0


class _SilentListener:
    def on_task_update(self, description: str) -> None:
        pass

    def on_percentage(self, percentage: int) -> None:
        pass


def main():
    """Main entry point for the CLI."""
    setup_colored_logging(level=logging.INFO)

    cli = BackupCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
