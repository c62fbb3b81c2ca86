"""
Sentinela Backup - command line entry point.

Commands:
    backup          Write a local archive into a directory
    restore         Restore from an archive or bare snapshot JSON file
    auto            Run the auto-backup check once (or every --interval seconds)
    list-remote     List archives in the remote backups folder
    restore-remote  Download a remote archive and restore it

Usage:
    sentinela-backup backup --dest /media/usb
    sentinela-backup restore backup_sentinela_2025-03-01T12-00-00-000Z.zip
    sentinela-backup auto --force

Configuration is entirely via environment variables.
See config.py for all available settings.

Exit codes: 0 on success (or nothing to do), 1 on failure.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

import json_log_formatter

from .config import BackupConfig
from .remote.base import CancellationToken
from .scheduler.auto_backup import CycleState
from .service import BackupService

logger = logging.getLogger(__name__)


def setup_logging(config: BackupConfig, verbose: bool = False) -> None:
    """Configure logging based on configuration.

    Args:
        config: Subsystem configuration
        verbose: Force DEBUG level
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)
    if verbose:
        level = logging.DEBUG

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.VerboseJSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sentinela-backup",
        description="Backup, restore and remote replication for the Sentinela tracker",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument(
        "--initiator", default="Sistema", help="Actor name recorded in audit entries"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    backup = sub.add_parser("backup", help="Write a local archive")
    backup.add_argument("--dest", default=".", help="Destination directory")

    restore = sub.add_parser("restore", help="Restore from a file")
    restore.add_argument("path", help="ZIP archive or snapshot JSON file")

    auto = sub.add_parser("auto", help="Run the auto-backup check")
    auto.add_argument("--force", action="store_true", help="Upload even if not due")
    auto.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Keep running, checking every INTERVAL seconds",
    )

    sub.add_parser("list-remote", help="List remote archives")

    restore_remote = sub.add_parser("restore-remote", help="Restore a remote archive")
    restore_remote.add_argument("file_id", help="Remote file id (see list-remote)")

    return parser


async def run_command(
    service: BackupService,
    args: argparse.Namespace,
    cancel: CancellationToken,
) -> int:
    """Execute one CLI command and return the process exit code."""
    if args.command == "backup":
        result = await service.create_local_backup(args.dest, args.initiator)
        if not result.success:
            print(f"Backup failed: {result.error}")
            return 1
        print(f"Backup written: {result.path} ({result.size} bytes)")
        return 0

    if args.command == "restore":
        restored = await service.restore_file(args.path, args.initiator)
        print(restored.message)
        if not restored.success:
            print(f"  Reason: {restored.reason}")
            return 1
        print(f"  Version: {restored.version}")
        return 0

    if args.command == "auto":
        if args.interval:
            await service.start_auto_backup(args.interval, cancel)
            return 0
        if args.force:
            cycle = await service.upload_backup_now(args.initiator, cancel)
        else:
            cycle = await service.run_auto_backup_check(cancel=cancel)
        if cycle.state == CycleState.IDLE:
            print(f"Nothing to do ({cycle.skipped})")
            return 0
        if not cycle.succeeded:
            print(f"Auto backup failed at {cycle.step.value if cycle.step else '?'}: {cycle.error}")
            return 1
        assert cycle.remote_file is not None
        print(f"Uploaded {cycle.remote_file.name} (id {cycle.remote_file.id})")
        return 0

    if args.command == "list-remote":
        listing = await service.list_remote_backups(cancel)
        if not listing.success:
            print(f"Listing failed at {listing.step}: {listing.error}")
            return 1
        for f in listing.files:
            size = f"{f.size} bytes" if f.size is not None else "-"
            print(f"{f.id}\t{f.created_time}\t{size}\t{f.name}")
        return 0

    if args.command == "restore-remote":
        restored = await service.restore_remote_backup(args.file_id, args.initiator, cancel)
        print(restored.message)
        return 0 if restored.success else 1

    raise ValueError(f"Unknown command: {args.command}")


async def _run(config: BackupConfig, args: argparse.Namespace) -> int:
    service = BackupService.from_config(config)
    cancel = CancellationToken()
    loop = asyncio.get_running_loop()

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, cancelling")
        cancel.cancel()
        asyncio.ensure_future(service.stop_auto_backup())

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_signal, sig)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            pass

    try:
        return await run_command(service, args, cancel)
    finally:
        await service.close()


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = BackupConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config, verbose=args.verbose)
    config.log_config()

    sys.exit(asyncio.run(_run(config, args)))


if __name__ == "__main__":
    main()
