"""
Mailbox access for the archiver.

The sync engine only talks to the MailboxClient protocol below. ImapMailbox
is the one implementation, built on IMAPClient over implicit TLS (IMAPS).
"""

from __future__ import annotations

import logging
import ssl
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from pathlib import PurePosixPath
from typing import Any, Protocol

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

from config_loader import ArchiveConfig
from errors import AuthenticationFailure, ConnectionFailure, FolderEnumerationError, MailboxError
from folder_mapping import imap_folder_to_path

logger = logging.getLogger(__name__)

# Upper end of a uid range: "the highest uid in the folder", resolved by the server
LAST_UID = "*"


@dataclass(frozen=True)
class RemoteFolder:
    name: str
    delimiter: str | None = "/"
    flags: tuple[Any, ...] = ()

    @property
    def selectable(self) -> bool:
        return not any("noselect" in str(f).lower() for f in self.flags)

    @property
    def local_path(self) -> PurePosixPath:
        return imap_folder_to_path(self.name, self.delimiter)


@dataclass
class MessageHandle:
    """A message in a folder, identified by uid. Envelope is fetched on first use."""

    folder: RemoteFolder
    uid: int
    envelope: Any = field(default=None, repr=False, compare=False)


class MailboxClient(Protocol):
    def ensure_connected(self) -> Any: ...

    def list_folders(self) -> list[RemoteFolder]: ...

    def message_count(self, folder: RemoteFolder) -> int: ...

    def fetch_by_uid_range(
        self, folder: RemoteFolder, start: int, end: int | str = LAST_UID
    ) -> list[MessageHandle]: ...

    def identifier_of(self, message: MessageHandle) -> int: ...

    def subject_of(self, message: MessageHandle) -> str | None: ...

    def sent_timestamp_of(self, message: MessageHandle) -> datetime | None: ...

    def raw_content_of(self, message: MessageHandle) -> bytes: ...


def _decode_subject(raw: bytes | str | None) -> str | None:
    """Decode an RFC 2047 subject; fall back to the undecoded text."""
    if raw is None:
        return None
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        return str(make_header(decode_header(text)))
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        logger.debug("Undecodable subject %r, using it as-is", text)
        return text


class ImapMailbox:
    """
    MailboxClient backed by a single, lazily opened IMAPS connection.

    The connection is opened by the first call that needs it and reused
    afterwards. If a call loses the connection it is discarded and the next
    call reconnects. After IDLE_PROBE_SECONDS without use, a NOOP checks that
    the server has not dropped us.
    """

    IDLE_PROBE_SECONDS = 60.0

    def __init__(self, config: ArchiveConfig) -> None:
        self.config = config
        self._client: IMAPClient | None = None
        self._selected: str | None = None
        self._last_used = 0.0

    def __enter__(self) -> ImapMailbox:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Connection management

    def ensure_connected(self) -> IMAPClient:
        """Return a live client, connecting or reconnecting only when needed."""
        if self._client is not None:
            if time.monotonic() - self._last_used >= self.IDLE_PROBE_SECONDS:
                try:
                    self._client.noop()
                except (IMAPClientError, OSError) as e:
                    logger.info("Connection to %s is gone (%s), reconnecting", self.config.server, e)
                    self._discard()
        if self._client is None:
            self._client = self._connect()
        self._last_used = time.monotonic()
        return self._client

    def _connect(self) -> IMAPClient:
        cfg = self.config
        logger.info("Connecting to %s:%d (SSL=True) as %s", cfg.server, cfg.port, cfg.username)
        try:
            client = IMAPClient(
                cfg.server,
                port=cfg.port,
                ssl=True,
                ssl_context=ssl.create_default_context(),
                timeout=cfg.timeout,
            )
        except (IMAPClientError, OSError) as e:
            raise ConnectionFailure(f"Cannot connect to {cfg.server}:{cfg.port}: {e}") from e

        try:
            client.login(cfg.username, cfg.password)
        except LoginError as e:
            self._shutdown(client)
            raise AuthenticationFailure(f"Login as {cfg.username} rejected by {cfg.server}: {e}") from e
        except (IMAPClientError, OSError) as e:
            self._shutdown(client)
            raise ConnectionFailure(f"Login to {cfg.server} failed: {e}") from e

        logger.info("Logged in successfully to %s", cfg.server)
        return client

    @staticmethod
    def _shutdown(client: IMAPClient) -> None:
        try:
            client.shutdown()
        except OSError as e:
            logger.debug("Ignoring error closing socket: %s", e)

    def _discard(self) -> None:
        if self._client is not None:
            self._shutdown(self._client)
        self._client = None
        self._selected = None

    def close(self) -> None:
        """Log out if connected."""
        if self._client is None:
            return
        try:
            self._client.logout()
        except (IMAPClientError, OSError) as e:
            logger.warning("Error during logout: %s", e)
        finally:
            self._client = None
            self._selected = None

    @contextmanager
    def _protocol(self, action: str) -> Iterator[None]:
        """Translate library errors into MailboxError, dropping dead connections."""
        try:
            yield
        except (IMAPClientAbortError, OSError) as e:
            logger.warning("Connection lost while %s, will reconnect on next call", action)
            self._discard()
            raise MailboxError(f"{action} failed: {e}") from e
        except IMAPClientError as e:
            raise MailboxError(f"{action} failed: {e}") from e

    def _select(self, folder: RemoteFolder) -> IMAPClient:
        client = self.ensure_connected()
        if self._selected != folder.name:
            with self._protocol(f"selecting {folder.name}"):
                client.select_folder(folder.name, readonly=True)
            self._selected = folder.name
        return client

    # Folders

    def list_folders(self) -> list[RemoteFolder]:
        """All folders below the root, recursively, in server order."""
        client = self.ensure_connected()
        try:
            with self._protocol("listing folders"):
                raw_folders = client.list_folders("", "*")
        except MailboxError as e:
            raise FolderEnumerationError(str(e)) from e

        folders = []
        for flags, delimiter, name in raw_folders:
            if not name:
                continue
            if isinstance(delimiter, bytes):
                delimiter = delimiter.decode("ascii")
            folders.append(RemoteFolder(name=name, delimiter=delimiter, flags=tuple(flags)))
        logger.debug("Server reported %d folders", len(folders))
        return folders

    def message_count(self, folder: RemoteFolder) -> int:
        if not folder.selectable:
            return 0
        client = self.ensure_connected()
        with self._protocol(f"counting messages in {folder.name}"):
            status = client.folder_status(folder.name, ["MESSAGES"])
        return int(status[b"MESSAGES"])

    def fetch_by_uid_range(
        self, folder: RemoteFolder, start: int, end: int | str = LAST_UID
    ) -> list[MessageHandle]:
        """
        Handles for every message with start <= uid <= end, ascending.

        IMAP answers "n:*" with the highest uid even when that uid is below n,
        so anything under `start` is dropped here.
        """
        if start < 1:
            raise ValueError("uid ranges start at 1")
        client = self._select(folder)
        with self._protocol(f"searching {folder.name}"):
            uids = client.search(["UID", f"{start}:{end}"])
        upper = None if end == LAST_UID else int(end)
        return [
            MessageHandle(folder, uid)
            for uid in sorted(uids)
            if uid >= start and (upper is None or uid <= upper)
        ]

    # Messages

    def identifier_of(self, message: MessageHandle) -> int:
        self._select(message.folder)
        return message.uid

    def _fetch_one(self, message: MessageHandle, item: str, key: bytes) -> Any:
        client = self._select(message.folder)
        with self._protocol(f"fetching {item} for uid {message.uid} in {message.folder.name}"):
            data = client.fetch([message.uid], [item])
        try:
            return data[message.uid][key]
        except KeyError:
            raise MailboxError(
                f"uid {message.uid} no longer exists in {message.folder.name}"
            ) from None

    def _envelope(self, message: MessageHandle) -> Any:
        if message.envelope is None:
            message.envelope = self._fetch_one(message, "ENVELOPE", b"ENVELOPE")
        return message.envelope

    def subject_of(self, message: MessageHandle) -> str | None:
        return _decode_subject(self._envelope(message).subject)

    def sent_timestamp_of(self, message: MessageHandle) -> datetime | None:
        return self._envelope(message).date

    def raw_content_of(self, message: MessageHandle) -> bytes:
        # PEEK so archiving never marks anything \Seen
        return self._fetch_one(message, "BODY.PEEK[]", b"BODY[]")
