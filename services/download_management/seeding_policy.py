"""
Seeding Policy
==============

Decides whether a finished torrent may be removed (and its files moved)
based on share ratio, seeding time and inactivity limits.

Limits come from the job's own overrides when set, otherwise from the
backend's global preferences:
- ``-2`` on the job: inherit the global value when the global limit is enabled
- ``-1`` on the job: unlimited, this dimension never applies
- ``>= 0`` on the job: override for this job only

Thresholds only license removal once the backend itself stopped the job
(``pausedUP``/``stoppedUP``); a torrent still uploading never qualifies.
"""

import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from services.download_clients.models import (
    LIMIT_USE_GLOBAL,
    GlobalPolicy,
    Lifecycle,
    RemoteJob,
)
from utils.logger import get_module_logger

from .state_machine import StateNormalizer

_LOGGER = get_module_logger("DownloadManagement.SeedingPolicy")

RATIO_PRECISION = Decimal("0.01")

RATIO = "ratio"
SEEDING_TIME = "seeding_time"
INACTIVE_SEEDING_TIME = "inactive_seeding_time"


def round_ratio(value: float) -> Decimal:
    """Round a ratio to two decimals, half up."""
    return Decimal(str(value)).quantize(RATIO_PRECISION, rounding=ROUND_HALF_UP)


def ratio_reached(ratio: float, limit: float) -> bool:
    return round_ratio(ratio) >= round_ratio(limit)


def effective_limit(override, global_enabled: bool, global_value):
    """Resolve one dimension's limit; ``None`` means no constraint."""
    if override is not None and override >= 0:
        return override
    if override == LIMIT_USE_GLOBAL and global_enabled and global_value is not None and global_value >= 0:
        return global_value
    return None


@dataclass(frozen=True)
class SeedingDecision:
    can_be_removed: bool = False
    reached_limit: Optional[str] = None

    @property
    def can_move_files(self) -> bool:
        return self.can_be_removed


NOT_REMOVABLE = SeedingDecision()


class SeedingPolicyEvaluator:
    """
    Evaluates share limits for completed jobs.

    Seeding time usually needs a secondary request; it is obtained through
    ``seeding_time_lookup`` only when that dimension is enabled and the
    ratio check did not already decide.
    """

    def __init__(self, normalizer: Optional[StateNormalizer] = None, clock: Callable[[], float] = time.time, *, logger=None):
        self.normalizer = normalizer or StateNormalizer()
        self.clock = clock
        self.logger = logger or _LOGGER

    def evaluate(
        self,
        job: RemoteJob,
        lifecycle: Lifecycle,
        policy: GlobalPolicy,
        seeding_time_lookup: Optional[Callable[[], Optional[int]]] = None,
        now: Optional[float] = None,
    ) -> SeedingDecision:
        if not lifecycle.is_completed or not self.normalizer.is_terminal_paused(job.state):
            return NOT_REMOVABLE

        if self.has_reached_ratio_limit(job, policy):
            return SeedingDecision(True, RATIO)
        if self.has_reached_seeding_time_limit(job, policy, seeding_time_lookup):
            return SeedingDecision(True, SEEDING_TIME)
        if self.has_reached_inactive_seeding_time_limit(job, policy, now):
            return SeedingDecision(True, INACTIVE_SEEDING_TIME)
        return NOT_REMOVABLE

    def has_reached_ratio_limit(self, job: RemoteJob, policy: GlobalPolicy) -> bool:
        limit = effective_limit(job.ratio_limit, policy.max_ratio_enabled, policy.max_ratio)
        if limit is None:
            return False
        return ratio_reached(job.ratio, limit)

    def has_reached_seeding_time_limit(
        self,
        job: RemoteJob,
        policy: GlobalPolicy,
        seeding_time_lookup: Optional[Callable[[], Optional[int]]] = None,
    ) -> bool:
        limit = effective_limit(
            job.seeding_time_limit, policy.max_seeding_time_enabled, policy.max_seeding_time
        )
        if limit is None:
            return False

        seeding_time = job.seeding_time
        if seeding_time is None and seeding_time_lookup is not None:
            seeding_time = seeding_time_lookup()
        if seeding_time is None:
            self.logger.debug(f"No seeding time available for {job.name}")
            return False

        return seeding_time >= limit * 60

    def has_reached_inactive_seeding_time_limit(
        self, job: RemoteJob, policy: GlobalPolicy, now: Optional[float] = None
    ) -> bool:
        limit = effective_limit(
            job.inactive_seeding_time_limit,
            policy.max_inactive_seeding_time_enabled,
            policy.max_inactive_seeding_time,
        )
        if limit is None:
            return False

        current = self.clock() if now is None else now
        inactive_seconds = current - job.last_activity
        return inactive_seconds >= limit * 60
