#!/usr/bin/env python3
"""List all IMAP folders for an account and where they would be archived."""

from __future__ import annotations

import sys
from pathlib import Path

from config_loader import load_config
from errors import FatalRunError, MailboxError
from imap_client import ImapMailbox


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print("Usage: imap-list-folders <config-file>", file=sys.stderr)
        return 1

    try:
        cfg = load_config(Path(args[0]))
        print(f"Connecting to {cfg.server} as {cfg.username}...")
        with ImapMailbox(cfg) as client:
            folders = client.list_folders()
            print(f"\nFound {len(folders)} folders:\n")
            for folder in folders:
                try:
                    count = str(client.message_count(folder))
                except MailboxError:
                    count = "?"
                flag_str = " ".join(
                    f.decode() if isinstance(f, bytes) else str(f) for f in folder.flags
                )
                print(f"  {folder.name}  ({count} messages) -> {folder.local_path}")
                if flag_str:
                    print(f"    flags: {flag_str}")
    except FatalRunError as e:
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
