#!/usr/bin/env python3
"""Archive every folder of an IMAP account into a local directory tree.

Usage:
    python archive.py <config-file> <base-storage-directory>

The server MUST support IMAPS (TLS from the first byte).

Environment: LOG_LEVEL (default INFO)
"""

from __future__ import annotations

import logging
import os
import sys
import time
from pathlib import Path

from config_loader import load_config
from errors import FatalRunError
from imap_client import ImapMailbox
from sync_imap import SyncReport, sync_mailbox

EXIT_OK = 0
EXIT_FATAL = 255

logger = logging.getLogger("imap-archive")


def configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def print_usage(prog: str = "imap-archive") -> None:
    print(f"Usage: {prog} <config-file> <base-storage-directory>", file=sys.stderr)
    print("  Remote server MUST support IMAPS (secure connection)", file=sys.stderr)


def log_report(report: SyncReport, base_dir: Path, started: float) -> None:
    for folder in report.aborted:
        logger.warning("Folder %s was not archived: %s", folder.folder, folder.error)
    logger.info(
        "%d folders, %d messages written, %d skipped",
        len(report.folders),
        report.written,
        report.skipped,
    )
    logger.info("Total run time %.2f minutes", (time.monotonic() - started) / 60)
    logger.info("Results stored in %s", base_dir.resolve())


def run_archive(config_path: Path, base_dir: Path) -> SyncReport:
    """Load config, connect and archive once. Raises FatalRunError."""
    cfg = load_config(config_path)
    logger.info("Using %s with user %s", cfg.server, cfg.username)
    logger.info("Base directory for local mailbox storage is %s", base_dir.resolve())

    with ImapMailbox(cfg) as client:
        return sync_mailbox(client, base_dir)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        print_usage()
        return EXIT_FATAL

    configure_logging()
    logger.info("Starting")
    started = time.monotonic()
    config_path, base_dir = Path(args[0]), Path(args[1])

    try:
        report = run_archive(config_path, base_dir)
    except FatalRunError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return EXIT_FATAL

    log_report(report, base_dir, started)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
