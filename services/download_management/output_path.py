"""
Module Name: output_path.py
Description:
    Resolves the importable output location of a finished job from the
    backend's save path and file listing, sanitizes job names used as path
    fragments, and maps backend paths onto paths visible on this host.

Location:
    /services/download_management/output_path.py

"""

import os
import re
import unicodedata
from pathlib import PurePath, PurePosixPath, PureWindowsPath
from typing import Iterable, List, Optional, Sequence

from services.download_clients.models import RemoteFile
from services.download_clients.qbittorrent_settings import PathMapping
from utils.logger import get_module_logger

_LOGGER = get_module_logger("DownloadManagement.OutputPath")

_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:([\\/]|$)")
_SEPARATOR_RUN = re.compile(r"[\\/]+")


def remote_path(value: str) -> PurePath:
    """
    Parse a path as the backend host sees it.

    Drive-letter and UNC paths use Windows semantics, everything else is
    treated as POSIX regardless of the platform running this code.
    """
    text = str(value or "").strip()
    if _DRIVE_PATTERN.match(text) or text.startswith(("\\\\", "//")):
        return PureWindowsPath(text)
    return PurePosixPath(text)


def format_remote_path(path: PurePath) -> str:
    text = str(path)
    # PureWindowsPath keeps a trailing separator on bare UNC shares
    if isinstance(path, PureWindowsPath) and len(text) > 3 and text.endswith("\\"):
        text = text.rstrip("\\")
    return text


def same_remote_path(left: str, right: str) -> bool:
    return remote_path(left) == remote_path(right)


def _segments(relative_name: str) -> List[str]:
    # Kept segments join as children of any base, including drive-letter ones
    return [
        segment
        for segment in _SEPARATOR_RUN.split(relative_name or "")
        if segment and segment not in (".", "..") and not PureWindowsPath(segment).drive
    ]


class JobNameSanitizer:
    """
    Turns a backend job name into a single safe path component.

    Features:
    - Unicode normalization
    - Embedded separators collapse into one ``+`` token
    - Characters illegal on Windows or Linux are dropped
    - ``.``/``..`` and empty names never survive
    """

    ILLEGAL_CHARS = re.compile(r'[\x00-\x1f<>:"|?*]')
    MAX_COMPONENT_LENGTH = 255
    FALLBACK_NAME = "download"

    def __init__(self, replacement: str = "+"):
        self.replacement = replacement

    def sanitize(self, name: str) -> str:
        cleaned = unicodedata.normalize("NFC", str(name or ""))
        cleaned = _SEPARATOR_RUN.sub(self.replacement, cleaned)
        cleaned = self.ILLEGAL_CHARS.sub("", cleaned)
        cleaned = cleaned.strip(" .")

        if not cleaned or set(cleaned) <= {self.replacement, "."}:
            return self.FALLBACK_NAME
        return cleaned[: self.MAX_COMPONENT_LENGTH]


class OutputPathResolver:
    """Computes the one path that represents a job's importable output."""

    def __init__(self, sanitizer: Optional[JobNameSanitizer] = None, *, logger=None):
        self.sanitizer = sanitizer or JobNameSanitizer()
        self.logger = logger or _LOGGER

    def resolve(
        self,
        save_path: str,
        name: str,
        files: Optional[Sequence[RemoteFile]] = None,
        content_path: Optional[str] = None,
    ) -> str:
        """
        Resolve the output path of a job.

        Args:
            save_path: Directory the backend saves the job into
            name: Job display name, used when nothing better is known
            files: Remote file listing, relative to ``save_path``
            content_path: Backend-resolved path, newer APIs only

        Returns:
            Output path in the backend's own path flavour
        """
        base = remote_path(save_path)

        if content_path and not same_remote_path(content_path, save_path):
            return content_path

        if files:
            first = _segments(files[0].name)
            if len(files) == 1 and len(first) == 1:
                return format_remote_path(base / first[0])
            if first:
                # Listings without a common top folder still use the first file's segment.
                if len(files) > 1 and not self._share_first_segment(files, first[0]):
                    self.logger.debug(
                        f"Files of '{name}' have no common top folder, using '{first[0]}'"
                    )
                return format_remote_path(base / first[0])

        return format_remote_path(base / self.sanitizer.sanitize(name))

    def provisional(self, save_path: str, name: str, content_path: Optional[str] = None) -> str:
        """Best guess without a file listing."""
        return self.resolve(save_path, name, files=None, content_path=content_path)

    @staticmethod
    def _share_first_segment(files: Iterable[RemoteFile], segment: str) -> bool:
        for remote_file in files:
            parts = _segments(remote_file.name)
            if not parts or parts[0] != segment or len(parts) == 1:
                return False
        return True


class RemotePathMapper:
    """Rewrites backend paths into paths this host can open."""

    def __init__(self, mappings: Sequence[PathMapping] = (), *, logger=None):
        self.mappings = [m for m in mappings if m.remote and m.local]
        self.logger = logger or _LOGGER

    def __bool__(self) -> bool:
        return bool(self.mappings)

    def to_local(self, path: Optional[str]) -> Optional[str]:
        """Translate a remote path; unmapped paths come back unchanged."""
        if not path:
            return path

        normalized_remote = self._normalize_for_compare(path)
        for mapping in self.mappings:
            remote_base = self._normalize_for_compare(mapping.remote)
            if normalized_remote == remote_base or normalized_remote.startswith(remote_base.rstrip("/") + "/"):
                suffix = normalized_remote[len(remote_base):].lstrip("/")
                local_base = mapping.local.rstrip("/\\") or mapping.local
                if not suffix:
                    return local_base
                separator = "\\" if isinstance(remote_path(local_base), PureWindowsPath) else os.sep
                return local_base + separator + suffix.replace("/", separator)

        return path

    @staticmethod
    def _normalize_for_compare(path: str) -> str:
        if not path:
            return ""
        normalized = path.replace("\\", "/").strip()
        while len(normalized) > 1 and normalized.endswith("/"):
            normalized = normalized[:-1]
        return normalized or "/"
