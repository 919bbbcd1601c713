"""
IMAP archive sync: mirrors every remote folder into a local directory, one
file per message, resuming from the highest uid already on disk.

The watermark message itself is fetched again on every run and overwritten,
so a file cut short by an interrupted run is always repaired.

Two runs against the same storage directory at once are not supported; the
create-and-truncate step can race. Callers must serialize runs.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path

from eml_utils import encode_filename, set_file_sent_time
from errors import CorruptLocalStateError, MailboxError, MessageSkipped, StorageError
from imap_client import LAST_UID, MailboxClient, MessageHandle, RemoteFolder
from local_state import resolve_watermark

logger = logging.getLogger(__name__)


class MessageOutcome(enum.Enum):
    WRITTEN = "written"
    WRITTEN_WITHOUT_TIMESTAMP = "written_without_timestamp"
    SKIPPED = "skipped"


class FolderStatus(enum.Enum):
    DONE = "done"
    EMPTY = "empty"
    ABORTED = "aborted"


@dataclass
class FolderResult:
    folder: str
    status: FolderStatus = FolderStatus.DONE
    watermark: int = 0
    written: int = 0
    skipped: int = 0
    warnings: int = 0
    error: str | None = None

    def record(self, outcome: MessageOutcome) -> None:
        if outcome is MessageOutcome.SKIPPED:
            self.skipped += 1
            return
        self.written += 1
        if outcome is MessageOutcome.WRITTEN_WITHOUT_TIMESTAMP:
            self.warnings += 1


@dataclass
class SyncReport:
    folders: list[FolderResult] = field(default_factory=list)

    @property
    def written(self) -> int:
        return sum(f.written for f in self.folders)

    @property
    def skipped(self) -> int:
        return sum(f.skipped for f in self.folders)

    @property
    def aborted(self) -> list[FolderResult]:
        return [f for f in self.folders if f.status is FolderStatus.ABORTED]


def fetch_start_uid(watermark: int) -> int:
    """First uid to request: the watermark itself (overlap fetch), never below 1."""
    return max(watermark, 1)


def ensure_local_dir(path: Path) -> None:
    """Create the folder's local directory. Failure is fatal for the run."""
    if path.is_dir():
        return
    logger.info("Creating local folder %s", path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError(f"Failed to create local folder {path}: {e}", path) from e


def write_message(client: MailboxClient, message: MessageHandle, folder_dir: Path) -> MessageOutcome:
    """
    Archive one message into folder_dir.

    Raises MessageSkipped if the uid or subject cannot be read, or if the
    content cannot be fully written (the partial file is left for the next
    run to overwrite). Raises StorageError if the file cannot be created.
    """
    try:
        uid = client.identifier_of(message)
    except MailboxError as e:
        raise MessageSkipped(f"Cannot read uid: {e}") from e
    try:
        subject = client.subject_of(message)
    except MailboxError as e:
        raise MessageSkipped(f"Cannot read subject of uid {uid}: {e}", {"uid": uid}) from e

    filepath = folder_dir / encode_filename(uid, subject)

    try:
        f = open(filepath, "wb")
    except OSError as e:
        raise StorageError(
            f"Unable to create file {filepath} (disk full? too many files in the directory?): {e}",
            filepath,
        ) from e

    logger.debug("Writing %s", filepath)
    with f:
        try:
            f.write(client.raw_content_of(message))
        except (MailboxError, OSError) as e:
            raise MessageSkipped(
                f"{filepath} failed in write, probably download error: {e}", {"uid": uid}
            ) from e

    try:
        sent_at = client.sent_timestamp_of(message)
    except MailboxError as e:
        logger.error("Unable to read sent date for %s, mtime left as is: %s", filepath, e)
        return MessageOutcome.WRITTEN

    if sent_at is None:
        # e.g. calendar items have no Date header
        logger.warning("Uid %d has no sent date; %s keeps its current mtime", uid, filepath.name)
        return MessageOutcome.WRITTEN_WITHOUT_TIMESTAMP

    try:
        set_file_sent_time(filepath, sent_at)
    except (OSError, OverflowError, ValueError) as e:
        logger.error("Failed to set modification time of %s to %s: %s", filepath, sent_at, e)

    return MessageOutcome.WRITTEN


def sync_folder(client: MailboxClient, folder: RemoteFolder, base_dir: Path) -> FolderResult:
    """
    Bring one remote folder's local directory up to date.

    Folder-level problems (unreadable local state, failed fetch) end this
    folder only and are reported in the result. StorageError propagates.
    """
    result = FolderResult(folder=folder.name)
    logger.info("Looking at remote folder %s", folder.name)
    try:
        folder_dir = base_dir / folder.local_path
    except ValueError as e:
        logger.error("%s; skipping", e)
        result.status = FolderStatus.ABORTED
        result.error = str(e)
        return result

    ensure_local_dir(folder_dir)

    try:
        watermark = resolve_watermark(folder_dir)
    except CorruptLocalStateError as e:
        logger.error("%s; skipping folder %s", e, folder.name)
        result.status = FolderStatus.ABORTED
        result.error = str(e)
        return result
    result.watermark = watermark
    logger.debug("Last known local message uid is %d", watermark)

    if watermark == 0:
        try:
            count = client.message_count(folder)
        except MailboxError as e:
            logger.error("Unable to get message count for %s: %s", folder.name, e)
            count = -1
        logger.warning("First time to download anything for %s", folder.name)
        logger.warning("%s has %d messages", folder.name, count)
        if count < 1:
            logger.info("Folder %s is empty so skipping", folder.name)
            result.status = FolderStatus.EMPTY
            return result

    start = fetch_start_uid(watermark)
    try:
        messages = client.fetch_by_uid_range(folder, start, LAST_UID)
    except MailboxError as e:
        logger.error("Fetching uids %d:%s from %s failed: %s", start, LAST_UID, folder.name, e)
        result.status = FolderStatus.ABORTED
        result.error = str(e)
        return result

    logger.info("Saving %d messages from %s", len(messages), folder.name)
    for message in messages:
        try:
            outcome = write_message(client, message, folder_dir)
        except MessageSkipped as e:
            logger.error("Skipping message in %s: %s", folder.name, e)
            outcome = MessageOutcome.SKIPPED
        result.record(outcome)

    logger.info(
        "Folder %s: %d written, %d skipped", folder.name, result.written, result.skipped
    )
    return result


def sync_mailbox(client: MailboxClient, base_dir: Path) -> SyncReport:
    """
    Archive every remote folder under base_dir.

    Local folders that no longer exist remotely are left alone. Only
    FatalRunError subclasses escape.
    """
    report = SyncReport()
    folders = client.list_folders()
    logger.info("Server has %d folders", len(folders))
    for folder in folders:
        report.folders.append(sync_folder(client, folder, base_dir))
    return report
