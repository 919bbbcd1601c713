"""
Error classes for the archiver.

Every error carries the scope it aborts, so callers can apply one policy:
RUN errors terminate the process, FOLDER errors abandon the current folder,
MESSAGE errors skip the current message.
"""

from __future__ import annotations

import enum


class Scope(enum.Enum):
    RUN = "run"
    FOLDER = "folder"
    MESSAGE = "message"
    WARNING = "warning"


class ArchiveError(Exception):
    """Base exception for all archiver errors."""

    scope = Scope.RUN

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize archive error.

        Args:
            message: Error message
            details: Optional error details (folder, uid, path, ...)
        """
        super().__init__(message)
        self.details = details or {}


class FatalRunError(ArchiveError):
    """Raised when the run cannot make safe forward progress."""


class ConfigError(FatalRunError):
    """Raised when the configuration file is missing, unreadable or incomplete."""


class ConnectionFailure(FatalRunError):
    """Raised when the TLS connection to the server cannot be established."""


class AuthenticationFailure(ConnectionFailure):
    """Raised when the server rejects the credentials."""


class FolderEnumerationError(FatalRunError):
    """Raised when the remote folder list cannot be retrieved."""


class StorageError(FatalRunError):
    """Raised when a local directory or message file cannot be created."""

    def __init__(self, message: str, path: object = None):
        super().__init__(message, {"path": str(path) if path is not None else None})
        self.path = path


class MailboxError(ArchiveError):
    """Raised on a protocol-level failure talking to an open connection."""

    scope = Scope.FOLDER


class CorruptLocalStateError(ArchiveError):
    """Raised when the newest local filename does not start with a uid."""

    scope = Scope.FOLDER

    def __init__(self, directory: object, filename: str):
        super().__init__(
            f"Cannot recover watermark from {filename!r} in {directory}",
            {"directory": str(directory), "filename": filename},
        )
        self.directory = directory
        self.filename = filename


class MessageSkipped(ArchiveError):
    """Raised inside the sync engine when a single message cannot be archived."""

    scope = Scope.MESSAGE
