"""Load and validate the archiver configuration file."""

from __future__ import annotations

import base64
import binascii
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from errors import ConfigError

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("SERVER", "USERNAME", "PASSWORD")
DEFAULT_PORT = 993
DEFAULT_TIMEOUT = 60.0
DEFAULT_INTERVAL = "1h"


@dataclass(frozen=True)
class ArchiveConfig:
    """Connection settings, built once at startup and passed to whoever needs them."""

    server: str
    username: str
    password: str
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT
    sync_interval: str = DEFAULT_INTERVAL

    def __repr__(self) -> str:
        return (
            f"ArchiveConfig(server={self.server!r}, username={self.username!r}, "
            f"password='[MASKED]', port={self.port}, timeout={self.timeout})"
        )

    @property
    def interval_seconds(self) -> int:
        return parse_interval(self.sync_interval)


def parse_interval(interval_str: str) -> int:
    """
    Parse human-readable interval string to seconds.

    Supports: 30s, 5m, 1h, 1d or combinations like '1h30m'.
    """
    total = 0
    units = {"s": 1, "m": 60, "h": 3600, "d": 86400}
    for match in re.finditer(r"(\d+)\s*([smhd])", interval_str.lower()):
        value = int(match.group(1))
        unit = match.group(2)
        total += value * units[unit]
    return total if total > 0 else 3600  # Default: 1 hour


def decode_password(encoded: str) -> str:
    """Passwords are stored base64-encoded in the config file."""
    try:
        return base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigError(f"PASSWORD is not valid base64: {e}") from e


def _read_xml_properties(filepath: Path) -> dict[str, Any]:
    """Read a Java XML properties file: <properties><entry key="...">v</entry>."""
    root = ET.parse(filepath).getroot()
    if root.tag != "properties":
        raise ConfigError(f"Config {filepath}: root element is <{root.tag}>, expected <properties>")
    return {
        entry.get("key"): (entry.text or "")
        for entry in root.iter("entry")
        if entry.get("key")
    }


def _read_settings(filepath: Path) -> dict[str, Any]:
    try:
        if filepath.suffix.lower() == ".xml":
            return _read_xml_properties(filepath)
        with open(filepath) as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError, ET.ParseError) as e:
        raise ConfigError(f"Failed to parse config {filepath}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config {filepath} is not a key-value mapping")
    return raw


def load_config(filepath: Path) -> ArchiveConfig:
    """Load and validate the config file. Raises ConfigError."""
    settings = _read_settings(filepath)

    for name, value in settings.items():
        if "password" in str(name).lower():
            logger.debug("Config setting: %s ==> [MASKED]", name)
        else:
            logger.debug("Config setting: %s ==> %s", name, value)

    missing = [key for key in REQUIRED_KEYS if not settings.get(key)]
    if missing:
        raise ConfigError(f"Config {filepath}: missing {', '.join(missing)}")

    try:
        port = int(settings.get("PORT", DEFAULT_PORT))
        timeout = float(settings.get("TIMEOUT", DEFAULT_TIMEOUT))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Config {filepath}: {e}") from e

    return ArchiveConfig(
        server=str(settings["SERVER"]).strip(),
        username=str(settings["USERNAME"]).strip(),
        password=decode_password(str(settings["PASSWORD"])),
        port=port,
        timeout=timeout,
        sync_interval=str(settings.get("SYNC_INTERVAL", DEFAULT_INTERVAL)),
    )
