"""Shared utilities for archived message files: filename codec and timestamps."""

from __future__ import annotations

import os
import re
from datetime import datetime
from pathlib import Path

UID_WIDTH = 20
SEPARATOR = "_"
SUBJECT_MAX_LEN = 50
MAX_UID = 10**UID_WIDTH - 1

_SUBJECT_DISALLOWED = re.compile(r"[^A-Za-z0-9'!~]")
_UID_PREFIX = re.compile(rf"^([0-9]{{{UID_WIDTH}}})")


def sanitize_subject(subject: str | None) -> str:
    """Keep only [A-Za-z0-9'!~] and cut to SUBJECT_MAX_LEN characters."""
    if not subject:
        return ""
    return _SUBJECT_DISALLOWED.sub("", subject)[:SUBJECT_MAX_LEN]


def encode_filename(uid: int, subject: str | None) -> str:
    """
    Build the local filename for a message.

    00000000000000000042_Weeklystandupnotes

    The uid is zero-padded to a fixed width so that sorting names as strings
    sorts them by uid.
    """
    if not 0 <= uid <= MAX_UID:
        raise ValueError(f"uid {uid} does not fit in {UID_WIDTH} digits")
    return f"{uid:0{UID_WIDTH}d}{SEPARATOR}{sanitize_subject(subject)}"


def decode_uid(name: str) -> int:
    """Parse the uid prefix of a name produced by encode_filename()."""
    m = _UID_PREFIX.match(name)
    if not m:
        raise ValueError(f"{name!r} does not start with a {UID_WIDTH}-digit uid")
    # Explicit base: the leading zeros must never be read as anything but decimal
    return int(m.group(1), 10)


def set_file_sent_time(filepath: Path, sent_at: datetime) -> None:
    """Set file mtime/atime to the message's sent timestamp. Raises OSError."""
    ts = sent_at.timestamp()
    os.utime(filepath, (ts, ts))
