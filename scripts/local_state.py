"""Recover the per-folder sync watermark from the files already on disk."""

from __future__ import annotations

import logging
from pathlib import Path

from eml_utils import decode_uid
from errors import CorruptLocalStateError

logger = logging.getLogger(__name__)


def resolve_watermark(directory: Path) -> int:
    """
    Return the highest uid stored in `directory`, or 0 if it holds no files.

    Only regular files directly inside the directory count. Names are
    zero-padded, so the last name in sorted order carries the highest uid.
    Raises CorruptLocalStateError if that name has no uid prefix.
    """
    names = sorted(p.name for p in directory.iterdir() if p.is_file())
    if not names:
        return 0

    last = names[-1]
    try:
        uid = decode_uid(last)
    except ValueError:
        raise CorruptLocalStateError(directory, last) from None

    logger.debug("Watermark for %s is %d (%s)", directory, uid, last)
    return uid
