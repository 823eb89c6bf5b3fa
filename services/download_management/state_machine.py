"""
State Machine
=============

Maps backend-native job state tokens onto the internal lifecycle.

qBittorrent flow as seen from the normalizer:
metaDL → queuedDL → downloading ⇄ pausedDL/stalledDL
                        ↓
            uploading/stalledUP/queuedUP → pausedUP/stoppedUP
                        ↓ (share limit reached, backend stopped seeding)
                 eligible for removal

Each backend dialect is a lookup table of ``StateRule`` entries, so
supporting another backend means adding a table rather than branches.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, FrozenSet, Optional

from services.download_clients.models import Lifecycle, LifecycleStatus, RemoteJob
from utils.logger import get_module_logger

# qBittorrent reports 8640000 (100 days) when the ETA is unknown.
ETA_UNKNOWN = 8640000


@dataclass(frozen=True)
class StateRule:
    status: LifecycleStatus
    reason: Optional[str] = None
    # Status to use instead when the backend has DHT switched off
    without_dht: Optional[LifecycleStatus] = None
    without_dht_reason: Optional[str] = None

    def lifecycle(self, dht_enabled: bool = True) -> Lifecycle:
        if not dht_enabled and self.without_dht is not None:
            return Lifecycle(self.without_dht, self.without_dht_reason)
        return Lifecycle(self.status, self.reason)


@dataclass(frozen=True)
class Dialect:
    """State vocabulary of one backend product."""

    name: str
    rules: Dict[str, StateRule]
    # Tokens that mean "not transferring"; at 100% progress they are completed.
    idle_tokens: FrozenSet[str]
    # Tokens meaning the backend finished seeding and stopped the job.
    terminal_paused_tokens: FrozenSet[str]


_QUEUED = StateRule(LifecycleStatus.QUEUED)
_PAUSED = StateRule(LifecycleStatus.PAUSED)
_DOWNLOADING = StateRule(LifecycleStatus.DOWNLOADING)
_COMPLETED = StateRule(LifecycleStatus.COMPLETED)
_METADATA = StateRule(
    LifecycleStatus.QUEUED,
    without_dht=LifecycleStatus.WARNING,
    without_dht_reason="qBittorrent cannot resolve magnet link with DHT disabled",
)

QBITTORRENT_DIALECT = Dialect(
    name="qbittorrent",
    rules={
        "error": StateRule(LifecycleStatus.WARNING, "qBittorrent is reporting an error"),
        "missingFiles": StateRule(LifecycleStatus.WARNING, "The download is missing files"),
        "stalledDL": StateRule(LifecycleStatus.WARNING, "The download is stalled with no connections"),
        "unknown": StateRule(LifecycleStatus.WARNING, "qBittorrent reports an unknown download state"),
        "pausedDL": _PAUSED,
        "stoppedDL": _PAUSED,
        "queuedDL": _QUEUED,
        "checkingDL": _QUEUED,
        "checkingUP": _QUEUED,
        "checkingResumeData": _QUEUED,
        "metaDL": _METADATA,
        "forcedMetaDL": _METADATA,
        "pausedUP": _COMPLETED,
        "stoppedUP": _COMPLETED,
        "queuedUP": _COMPLETED,
        "uploading": _COMPLETED,
        "stalledUP": _COMPLETED,
        "forcedUP": _COMPLETED,
        "downloading": _DOWNLOADING,
        "forcedDL": _DOWNLOADING,
        "allocating": _DOWNLOADING,
        "moving": _DOWNLOADING,
    },
    idle_tokens=frozenset({"pausedDL", "stoppedDL", "queuedDL"}),
    terminal_paused_tokens=frozenset({"pausedUP", "stoppedUP"}),
)

DIALECTS: Dict[str, Dialect] = {
    QBITTORRENT_DIALECT.name: QBITTORRENT_DIALECT,
}


class StateNormalizer:
    """
    Deterministic token → lifecycle mapping for one backend dialect.

    The backend is authoritative: nothing here depends on what a job
    looked like on a previous poll.
    """

    def __init__(self, dialect: str = "qbittorrent", *, logger=None):
        self.logger = logger or get_module_logger("DownloadManagement.StateMachine")
        try:
            self.dialect = DIALECTS[dialect]
        except KeyError:
            raise ValueError(f"Unknown state dialect: {dialect}") from None

    def normalize(self, job: RemoteJob, dht_enabled: bool = True) -> Lifecycle:
        """
        Normalize the job's raw state token.

        Args:
            job: Snapshot from the latest listing
            dht_enabled: Backend DHT preference, needed for metadata tokens

        Returns:
            The lifecycle for this snapshot; never raises for odd tokens
        """
        token = job.state
        dialect = self.dialect

        if job.progress >= 1.0 and token in dialect.idle_tokens:
            return Lifecycle.completed()

        rule = dialect.rules.get(token)
        if rule is None:
            self.logger.error(f"Unknown {dialect.name} state '{token}' for {job.name}")
            return Lifecycle.warning(f"Unknown download state: {token}")

        return rule.lifecycle(dht_enabled)

    def is_terminal_paused(self, token: str) -> bool:
        """Whether the backend stopped the job after it finished seeding."""
        return token in self.dialect.terminal_paused_tokens

    @staticmethod
    def remaining_time(job: RemoteJob, lifecycle: Lifecycle) -> Optional[timedelta]:
        if lifecycle.status is LifecycleStatus.COMPLETED:
            return timedelta(0)
        if lifecycle.status is LifecycleStatus.DOWNLOADING and 0 < job.eta < ETA_UNKNOWN:
            return timedelta(seconds=job.eta)
        return None

    @staticmethod
    def remaining_size(job: RemoteJob) -> int:
        return int(round(job.size * (1.0 - job.progress)))
