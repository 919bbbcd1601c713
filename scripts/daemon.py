"""Archive daemon: runs the IMAP archive pass periodically for one account.

Usage:
    python daemon.py <config-file> <base-storage-directory>

Interval comes from SYNC_INTERVAL in the config (default 1h). A fatal error
in any pass stops the daemon; passes are never retried early.
"""

from __future__ import annotations

import logging
import signal
import sys
import time
from pathlib import Path

import schedule

from archive import EXIT_FATAL, EXIT_OK, configure_logging, log_report, print_usage
from config_loader import ArchiveConfig, load_config
from errors import FatalRunError
from imap_client import ImapMailbox
from sync_imap import sync_mailbox

logger = logging.getLogger("imap-archive-daemon")


class ArchiveDaemon:
    """Owns one mailbox connection and re-runs the archive pass on a schedule."""

    def __init__(
        self,
        cfg: ArchiveConfig,
        base_dir: Path,
        scheduler: schedule.Scheduler | None = None,
        client: ImapMailbox | None = None,
    ) -> None:
        self.cfg = cfg
        self.base_dir = base_dir
        self.scheduler = scheduler or schedule.Scheduler()
        self.client = client or ImapMailbox(cfg)
        self.shutdown_requested = False
        self.fatal: FatalRunError | None = None

    def request_shutdown(self, _signum: int = 0, _frame: object = None) -> None:
        logger.info("Shutdown signal received, stopping...")
        self.shutdown_requested = True

    def run_pass(self) -> None:
        started = time.monotonic()
        try:
            report = sync_mailbox(self.client, self.base_dir)
        except FatalRunError as e:
            logger.error("%s: %s", type(e).__name__, e)
            self.fatal = e
            self.shutdown_requested = True
            return
        log_report(report, self.base_dir, started)

    def run(self) -> int:
        interval_sec = self.cfg.interval_seconds
        logger.info("Scheduling archive of %s every %d seconds", self.cfg.server, interval_sec)
        self.scheduler.every(interval_sec).seconds.do(self.run_pass)

        # Run initial pass immediately
        self.run_pass()

        try:
            while not self.shutdown_requested:
                self.scheduler.run_pending()
                time.sleep(1)
        finally:
            self.client.close()

        logger.info("Daemon stopped")
        return EXIT_FATAL if self.fatal is not None else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        print_usage("imap-archive-daemon")
        return EXIT_FATAL

    configure_logging()
    logger.info("Starting archive daemon")
    try:
        cfg = load_config(Path(args[0]))
    except FatalRunError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return EXIT_FATAL

    daemon = ArchiveDaemon(cfg, Path(args[1]))
    signal.signal(signal.SIGTERM, daemon.request_shutdown)
    signal.signal(signal.SIGINT, daemon.request_shutdown)
    return daemon.run()


if __name__ == "__main__":
    raise SystemExit(main())
