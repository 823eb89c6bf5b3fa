"""
Module Name: models.py
Description:
    Immutable records exchanged between the download client proxies, the
    state normalizer, the seeding policy evaluator and the reconciliation
    service.

Location:
    /services/download_clients/models.py

"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

# Sentinels used by qBittorrent for per-torrent share limits.
LIMIT_USE_GLOBAL = -2
LIMIT_UNLIMITED = -1


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class LifecycleStatus(Enum):
    """Backend-agnostic job status."""
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    PAUSED = "paused"
    WARNING = "warning"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Lifecycle:
    """A job status plus the reason reported for warnings and failures."""

    status: LifecycleStatus
    reason: Optional[str] = None

    @classmethod
    def queued(cls) -> "Lifecycle":
        return cls(LifecycleStatus.QUEUED)

    @classmethod
    def downloading(cls) -> "Lifecycle":
        return cls(LifecycleStatus.DOWNLOADING)

    @classmethod
    def paused(cls) -> "Lifecycle":
        return cls(LifecycleStatus.PAUSED)

    @classmethod
    def completed(cls) -> "Lifecycle":
        return cls(LifecycleStatus.COMPLETED)

    @classmethod
    def warning(cls, reason: str) -> "Lifecycle":
        return cls(LifecycleStatus.WARNING, reason)

    @classmethod
    def failed(cls, reason: str) -> "Lifecycle":
        return cls(LifecycleStatus.FAILED, reason)

    @property
    def is_completed(self) -> bool:
        return self.status is LifecycleStatus.COMPLETED


class MaxRatioAction(Enum):
    """What qBittorrent does once a torrent reaches its share limit."""
    PAUSE = 0
    REMOVE = 1
    ENABLE_SUPER_SEEDING = 2
    REMOVE_WITH_CONTENT = 3

    @classmethod
    def from_api(cls, value: Any) -> "MaxRatioAction":
        try:
            return cls(_as_int(value))
        except ValueError:
            return cls.PAUSE

    @property
    def removes_torrent(self) -> bool:
        return self in (MaxRatioAction.REMOVE, MaxRatioAction.REMOVE_WITH_CONTENT)


@dataclass(frozen=True)
class RemoteFile:
    """One file of a remote job, relative to the job's save path."""

    name: str
    size: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteFile":
        return cls(name=_as_text(data.get("name")), size=_as_int(data.get("size")))


@dataclass(frozen=True)
class RemoteJob:
    """Snapshot of one job as listed by the backend."""

    hash: str
    name: str
    size: int = 0
    progress: float = 0.0
    eta: int = 0
    state: str = "unknown"
    category: str = ""
    label: str = ""
    save_path: str = ""
    content_path: Optional[str] = None
    ratio: float = 0.0
    ratio_limit: float = LIMIT_USE_GLOBAL
    seeding_time_limit: int = LIMIT_USE_GLOBAL
    inactive_seeding_time_limit: int = LIMIT_USE_GLOBAL
    last_activity: int = 0
    seeding_time: Optional[int] = None

    def __post_init__(self):
        # Backends occasionally report 1.0000001 or negative noise.
        clamped = min(max(float(self.progress), 0.0), 1.0)
        if clamped != self.progress:
            object.__setattr__(self, "progress", clamped)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteJob":
        seeding_time = data.get("seeding_time")
        content_path = data.get("content_path")
        return cls(
            hash=_as_text(data.get("hash")),
            name=_as_text(data.get("name")),
            size=_as_int(data.get("size") or data.get("total_size")),
            progress=_as_float(data.get("progress")),
            eta=_as_int(data.get("eta")),
            state=_as_text(data.get("state")) or "unknown",
            category=_as_text(data.get("category")),
            label=_as_text(data.get("label")),
            save_path=_as_text(data.get("save_path")),
            content_path=str(content_path) if content_path else None,
            ratio=_as_float(data.get("ratio")),
            ratio_limit=_as_float(data.get("ratio_limit"), LIMIT_USE_GLOBAL),
            seeding_time_limit=_as_int(data.get("seeding_time_limit"), LIMIT_USE_GLOBAL),
            inactive_seeding_time_limit=_as_int(
                data.get("inactive_seeding_time_limit"), LIMIT_USE_GLOBAL
            ),
            last_activity=_as_int(data.get("last_activity")),
            seeding_time=_as_int(seeding_time) if seeding_time is not None else None,
        )

    @property
    def effective_category(self) -> str:
        return self.category or self.label


@dataclass(frozen=True)
class JobDetail:
    """Data that needs secondary requests: properties and the file listing."""

    hash: str
    save_path: str = ""
    seeding_time: Optional[int] = None
    files: Tuple[RemoteFile, ...] = ()

    def with_files(self, files: List[RemoteFile]) -> "JobDetail":
        return replace(self, files=tuple(files))


@dataclass(frozen=True)
class GlobalPolicy:
    """Process-wide preferences of the backend relevant to seeding."""

    max_ratio_enabled: bool = False
    max_ratio: float = -1.0
    max_seeding_time_enabled: bool = False
    max_seeding_time: int = -1
    max_inactive_seeding_time_enabled: bool = False
    max_inactive_seeding_time: int = -1
    max_ratio_action: MaxRatioAction = MaxRatioAction.PAUSE
    dht_enabled: bool = True
    save_path: str = ""

    @classmethod
    def from_api(cls, prefs: Dict[str, Any]) -> "GlobalPolicy":
        prefs = prefs or {}
        return cls(
            max_ratio_enabled=bool(prefs.get("max_ratio_enabled", False)),
            max_ratio=_as_float(prefs.get("max_ratio"), -1.0),
            max_seeding_time_enabled=bool(prefs.get("max_seeding_time_enabled", False)),
            max_seeding_time=_as_int(prefs.get("max_seeding_time"), -1),
            max_inactive_seeding_time_enabled=bool(
                prefs.get("max_inactive_seeding_time_enabled", False)
            ),
            max_inactive_seeding_time=_as_int(prefs.get("max_inactive_seeding_time"), -1),
            max_ratio_action=MaxRatioAction.from_api(prefs.get("max_ratio_act")),
            dht_enabled=bool(prefs.get("dht", True)),
            save_path=_as_text(prefs.get("save_path")),
        )


@dataclass(frozen=True)
class CategoryInfo:
    name: str
    save_path: str = ""


@dataclass(frozen=True)
class SeedConfiguration:
    """Share limits requested for a single submission (minutes for times)."""

    ratio: Optional[float] = None
    seed_time: Optional[int] = None
    inactive_seed_time: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.ratio is None and self.seed_time is None and self.inactive_seed_time is None


@dataclass(frozen=True)
class ReleaseInfo:
    """What the caller wants downloaded."""

    title: str
    download_url: str
    info_hash: Optional[str] = None
    is_recent: bool = False
    seed_configuration: Optional[SeedConfiguration] = None


@dataclass(frozen=True)
class DownloadItem:
    """One backend job, fully normalized for the import pipeline."""

    download_id: str
    title: str
    lifecycle: Lifecycle
    client_name: str = "qBittorrent"
    category: str = ""
    total_size: int = 0
    remaining_size: int = 0
    remaining_time: Optional[timedelta] = None
    seed_ratio: float = 0.0
    output_path: Optional[str] = None
    output_path_final: bool = False
    can_be_removed: bool = False
    can_move_files: bool = False

    @property
    def status(self) -> LifecycleStatus:
        return self.lifecycle.status

    @property
    def message(self) -> Optional[str]:
        return self.lifecycle.reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "download_id": self.download_id,
            "title": self.title,
            "client": self.client_name,
            "category": self.category,
            "status": self.lifecycle.status.value,
            "message": self.lifecycle.reason,
            "total_size": self.total_size,
            "remaining_size": self.remaining_size,
            "remaining_seconds": (
                int(self.remaining_time.total_seconds()) if self.remaining_time is not None else None
            ),
            "seed_ratio": self.seed_ratio,
            "output_path": self.output_path,
            "can_be_removed": self.can_be_removed,
            "can_move_files": self.can_move_files,
        }


@dataclass(frozen=True)
class ClientStatus:
    is_localhost: bool
    output_root_folders: List[str] = field(default_factory=list)
