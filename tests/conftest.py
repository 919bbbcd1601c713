"""Shared fixtures: an in-memory mailbox standing in for the IMAP server."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

from errors import FolderEnumerationError, MailboxError
from imap_client import LAST_UID, MessageHandle, RemoteFolder


@dataclass
class FakeMessage:
    uid: int
    subject: str | None = "Hello"
    raw: bytes = b""
    sent: datetime | None = field(
        default_factory=lambda: datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    )

    def __post_init__(self) -> None:
        if not self.raw:
            self.raw = f"Subject: {self.subject}\r\n\r\nbody of {self.uid}\r\n".encode()


class FakeMailbox:
    """MailboxClient over dicts. Failures are injected per uid or per folder."""

    def __init__(self) -> None:
        self.folders: dict[str, list[FakeMessage]] = {}
        self.flags: dict[str, tuple] = {}
        self.fail_listing = False
        self.fail_fetch: set[str] = set()
        self.fail_count: set[str] = set()
        self.fail_uid: set[int] = set()
        self.fail_subject: set[int] = set()
        self.fail_content: set[int] = set()
        self.fail_sent: set[int] = set()
        self.fetch_calls: list[tuple[str, int, object]] = []
        self.connected = 0

    def add(self, folder: str, *messages: FakeMessage) -> None:
        self.folders.setdefault(folder, []).extend(messages)

    def _message(self, handle: MessageHandle) -> FakeMessage:
        for msg in self.folders[handle.folder.name]:
            if msg.uid == handle.uid:
                return msg
        raise MailboxError(f"uid {handle.uid} vanished")

    def ensure_connected(self) -> None:
        self.connected += 1

    def close(self) -> None:
        self.connected = 0

    def list_folders(self) -> list[RemoteFolder]:
        if self.fail_listing:
            raise FolderEnumerationError("LIST failed")
        return [RemoteFolder(name, "/", self.flags.get(name, ())) for name in self.folders]

    def message_count(self, folder: RemoteFolder) -> int:
        if folder.name in self.fail_count:
            raise MailboxError("STATUS failed")
        return len(self.folders[folder.name])

    def fetch_by_uid_range(self, folder, start, end=LAST_UID):
        self.fetch_calls.append((folder.name, start, end))
        if folder.name in self.fail_fetch:
            raise MailboxError("SEARCH failed")
        msgs = sorted(self.folders[folder.name], key=lambda m: m.uid)
        return [MessageHandle(folder, m.uid) for m in msgs if m.uid >= start]

    def identifier_of(self, message: MessageHandle) -> int:
        if message.uid in self.fail_uid:
            raise MailboxError("no uid")
        return message.uid

    def subject_of(self, message: MessageHandle) -> str | None:
        if message.uid in self.fail_subject:
            raise MailboxError("no envelope")
        return self._message(message).subject

    def sent_timestamp_of(self, message: MessageHandle) -> datetime | None:
        if message.uid in self.fail_sent:
            raise MailboxError("no envelope")
        return self._message(message).sent

    def raw_content_of(self, message: MessageHandle) -> bytes:
        if message.uid in self.fail_content:
            raise MailboxError("connection reset during BODY[]")
        return self._message(message).raw


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def write_config(tmp_path):
    """Write a YAML config and return its path."""

    def _write(text: str, name: str = "account.yml"):
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write
