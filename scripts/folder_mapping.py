"""Map IMAP folder names to relative filesystem paths."""

from __future__ import annotations

from pathlib import PurePosixPath

# Segments that would step outside (or stay on) the parent directory
_UNSAFE_SEGMENTS = {".", ".."}


def _safe_part(name: str) -> str:
    """Neutralize a single path segment without otherwise renaming it."""
    name = name.replace("/", "_").replace("\\", "_").replace("\0", "")
    if name in _UNSAFE_SEGMENTS:
        return name.replace(".", "_")
    return name


def imap_folder_to_path(folder_name: str, delimiter: str | None = "/") -> PurePosixPath:
    """
    Map an IMAP folder name to a relative path mirroring its hierarchy.

    INBOX -> INBOX
    [Gmail]/Sent Mail -> [Gmail]/Sent Mail
    INBOX.Lists.python (delimiter ".") -> INBOX/Lists/python
    """
    parts = folder_name.split(delimiter) if delimiter else [folder_name]
    safe_parts = [_safe_part(p) for p in parts if p]
    if not safe_parts:
        raise ValueError(f"Folder name {folder_name!r} has no usable path segments")
    return PurePosixPath(*safe_parts)
