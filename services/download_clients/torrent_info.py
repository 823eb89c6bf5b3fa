"""Info-hash helpers for magnet links and .torrent payloads."""

from __future__ import annotations

import base64
import binascii
import hashlib
import string
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import parse_qs, urlparse


@dataclass(frozen=True)
class MagnetLink:
    info_hash: str
    display_name: Optional[str] = None
    trackers: List[str] = field(default_factory=list)

    @property
    def has_trackers(self) -> bool:
        return bool(self.trackers)


def normalize_info_hash(value: Optional[str]) -> Optional[str]:
    """Return a 40 character lower-case hex hash from hex or base32 input."""
    if not value:
        return None
    trimmed = str(value).strip()
    if not trimmed:
        return None

    candidate = trimmed.lower()
    if len(candidate) == 40 and all(ch in string.hexdigits for ch in candidate):
        return candidate

    if len(trimmed) == 32:
        try:
            return base64.b32decode(trimmed.upper()).hex()
        except (binascii.Error, ValueError):
            return None
    return None


def is_magnet_link(url: Optional[str]) -> bool:
    return bool(url) and url.strip().lower().startswith("magnet:")


def parse_magnet_link(url: str) -> Optional[MagnetLink]:
    """Parse a magnet URI; ``None`` when it carries no BitTorrent info hash."""
    if not is_magnet_link(url):
        return None

    query = urlparse(url.strip()).query
    if not query:
        # urlparse leaves "magnet:?xt=..." in the path on some inputs
        _, _, query = url.partition("?")
    params = parse_qs(query)

    info_hash = None
    for qualifier in params.get("xt", []):
        if qualifier.lower().startswith("urn:btih:"):
            info_hash = normalize_info_hash(qualifier.split(":")[-1])
            if info_hash:
                break
    if not info_hash:
        return None

    trackers = [tracker for tracker in params.get("tr", []) if tracker.strip()]
    display_names = params.get("dn") or [None]
    return MagnetLink(info_hash=info_hash, display_name=display_names[0], trackers=trackers)


def hash_from_torrent_bytes(data: bytes) -> Optional[str]:
    """SHA1 of the bencoded ``info`` dictionary, or ``None`` for invalid data."""
    if not data:
        return None
    info_section = _find_info_section(data)
    if not info_section:
        return None
    return hashlib.sha1(info_section).hexdigest()


def _find_info_section(data: bytes) -> Optional[bytes]:
    # Only the top-level dictionary is inspected; "info" is always a direct key.
    if data[:1] != b"d":
        return None
    try:
        index = 1
        while data[index:index + 1] != b"e":
            key, index = _read_bytes(data, index)
            value_end = _skip_value(data, index)
            if key == b"info":
                return data[index:value_end]
            index = value_end
    except (ValueError, IndexError):
        return None
    return None


def _read_bytes(data: bytes, index: int) -> Tuple[bytes, int]:
    colon = data.index(b":", index)
    digits = data[index:colon]
    if not digits.isdigit():
        raise ValueError("Invalid byte string length")
    length = int(digits)
    start = colon + 1
    end = start + length
    if end > len(data):
        raise ValueError("Truncated byte string")
    return data[start:end], end


def _skip_value(data: bytes, index: int) -> int:
    token = data[index:index + 1]
    if not token:
        raise ValueError("Unexpected end of bencoded data")
    if token == b"i":
        return data.index(b"e", index) + 1
    if token in (b"l", b"d"):
        index += 1
        while data[index:index + 1] != b"e":
            if not data[index:index + 1]:
                raise ValueError("Unterminated container")
            if token == b"d":
                _, index = _read_bytes(data, index)
            index = _skip_value(data, index)
        return index + 1
    _, end = _read_bytes(data, index)
    return end
