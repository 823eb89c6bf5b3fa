"""Per-job cache for JobDetail lookups shared by overlapping polls."""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from services.download_clients.models import JobDetail
from utils.logger import get_module_logger

_LOGGER = get_module_logger("DownloadManagement.DetailCache")


@dataclass
class _CacheEntry:
    lock: threading.Lock
    detail: Optional[JobDetail] = None
    state_token: Optional[str] = None
    last_seen: int = 0


class JobDetailCache:
    """
    Job id → JobDetail map with generation-based eviction.

    A short map lock protects the dictionary; each entry carries its own
    lock held while fetching, so fetches for two different jobs never wait
    on each other while two polls asking for the same job fetch only once.

    Every poll calls ``begin_poll()`` then ``end_poll(present_ids)``. An entry
    whose job was missing from ``max_absent_polls`` consecutive listings is
    evicted.
    """

    def __init__(self, max_absent_polls: int = 1, *, logger=None):
        if max_absent_polls < 1:
            raise ValueError("max_absent_polls must be at least 1")
        self.max_absent_polls = max_absent_polls
        self.logger = logger or _LOGGER
        self._entries: Dict[str, _CacheEntry] = {}
        self._map_lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def begin_poll(self) -> int:
        with self._map_lock:
            self._generation += 1
            return self._generation

    def end_poll(self, present_ids: Iterable[str]) -> None:
        """Mark ``present_ids`` as seen and evict long-absent entries."""
        present = {job_id.upper() for job_id in present_ids}
        with self._map_lock:
            generation = self._generation
            for key, entry in list(self._entries.items()):
                if key in present:
                    entry.last_seen = generation
                elif generation - entry.last_seen >= self.max_absent_polls:
                    del self._entries[key]
                    self.logger.debug(f"Evicted cached details for {key}")

    def get_or_fetch(
        self,
        job_id: str,
        state_token: Optional[str],
        fetch: Callable[[], JobDetail],
    ) -> JobDetail:
        """
        Return the cached detail, fetching it at most once per job.

        The detail is fetched again when the job's state token changed since
        the cached fetch; a ``None`` token accepts whatever is cached.
        Exceptions from ``fetch`` propagate and leave the cache untouched.
        """
        entry = self._entry(job_id)
        with entry.lock:
            if entry.detail is not None and state_token in (None, entry.state_token):
                return entry.detail

            detail = fetch()
            entry.detail = detail
            if state_token is not None:
                entry.state_token = state_token
            return detail

    def get(self, job_id: str) -> Optional[JobDetail]:
        with self._map_lock:
            entry = self._entries.get(job_id.upper())
        return entry.detail if entry else None

    def invalidate(self, job_id: str) -> None:
        with self._map_lock:
            self._entries.pop(job_id.upper(), None)

    def clear(self) -> None:
        with self._map_lock:
            self._entries.clear()

    def _entry(self, job_id: str) -> _CacheEntry:
        key = job_id.upper()
        with self._map_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _CacheEntry(lock=threading.Lock(), last_seen=self._generation)
                self._entries[key] = entry
            return entry

    def __contains__(self, job_id: str) -> bool:
        with self._map_lock:
            entry = self._entries.get(job_id.upper())
            return entry is not None and entry.detail is not None

    def __len__(self) -> int:
        with self._map_lock:
            return sum(1 for entry in self._entries.values() if entry.detail is not None)
