import threading
import time
from unittest.mock import MagicMock

import pytest

from services.download_clients.exceptions import ClientConnectionError
from services.download_clients.models import JobDetail
from services.download_management.detail_cache import JobDetailCache

JOB_ID = "CBC2F069FE8BB2F544EAE707D75BCD3DE9DCF951"


@pytest.fixture
def cache(mock_logger):
    return JobDetailCache(logger=mock_logger)


def _fetcher(seeding_time=100):
    return MagicMock(return_value=JobDetail(hash=JOB_ID, save_path="/downloads", seeding_time=seeding_time))


def test_fetches_once_for_same_state(cache):
    fetch = _fetcher()

    first = cache.get_or_fetch(JOB_ID, "pausedUP", fetch)
    second = cache.get_or_fetch(JOB_ID.lower(), "pausedUP", fetch)

    assert first is second
    assert fetch.call_count == 1
    assert JOB_ID.lower() in cache
    assert len(cache) == 1


def test_refetches_when_state_changes(cache):
    fetch = _fetcher()

    cache.get_or_fetch(JOB_ID, "uploading", fetch)
    cache.get_or_fetch(JOB_ID, "pausedUP", fetch)

    assert fetch.call_count == 2


def test_missing_state_accepts_cached_detail(cache):
    fetch = _fetcher()

    cache.get_or_fetch(JOB_ID, "pausedUP", fetch)
    cache.get_or_fetch(JOB_ID, None, fetch)
    cache.get_or_fetch(JOB_ID, "pausedUP", fetch)

    assert fetch.call_count == 1


def test_fetch_errors_propagate_and_are_not_cached(cache):
    failing = MagicMock(side_effect=ClientConnectionError("down"))

    with pytest.raises(ClientConnectionError):
        cache.get_or_fetch(JOB_ID, "pausedUP", failing)

    assert JOB_ID not in cache
    fetch = _fetcher()
    cache.get_or_fetch(JOB_ID, "pausedUP", fetch)
    assert fetch.call_count == 1


def test_entry_evicted_after_absent_poll(cache):
    cache.begin_poll()
    cache.get_or_fetch(JOB_ID, "pausedUP", _fetcher())
    cache.end_poll([JOB_ID])
    assert JOB_ID in cache

    cache.begin_poll()
    cache.end_poll([JOB_ID.lower()])
    assert JOB_ID in cache

    cache.begin_poll()
    cache.end_poll([])
    assert JOB_ID not in cache
    assert cache.get(JOB_ID) is None


def test_longer_absence_window(mock_logger):
    cache = JobDetailCache(max_absent_polls=2, logger=mock_logger)
    cache.begin_poll()
    cache.get_or_fetch(JOB_ID, "pausedUP", _fetcher())
    cache.end_poll([JOB_ID])

    cache.begin_poll()
    cache.end_poll([])
    assert JOB_ID in cache

    cache.begin_poll()
    cache.end_poll([])
    assert JOB_ID not in cache


def test_invalidate_and_clear(cache):
    cache.get_or_fetch(JOB_ID, "pausedUP", _fetcher())
    cache.get_or_fetch("OTHER", "pausedUP", _fetcher())

    cache.invalidate(JOB_ID.lower())
    assert JOB_ID not in cache
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_concurrent_requests_fetch_once(cache):
    calls = []

    def slow_fetch():
        calls.append(1)
        time.sleep(0.05)
        return JobDetail(hash=JOB_ID)

    threads = [
        threading.Thread(target=cache.get_or_fetch, args=(JOB_ID, "pausedUP", slow_fetch))
        for _ in range(5)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1


def test_slow_fetch_does_not_block_other_jobs(cache):
    other_id = "AA" * 20
    fetch_started = threading.Event()
    release_fetch = threading.Event()

    def blocked_fetch():
        fetch_started.set()
        release_fetch.wait(5)
        return JobDetail(hash=JOB_ID)

    slow = threading.Thread(target=cache.get_or_fetch, args=(JOB_ID, "pausedUP", blocked_fetch))
    slow.start()
    try:
        assert fetch_started.wait(5)
        finished = threading.Event()
        results = []

        def fetch_other():
            results.append(cache.get_or_fetch(other_id, "pausedUP", lambda: JobDetail(hash=other_id)))
            finished.set()

        threading.Thread(target=fetch_other).start()

        assert finished.wait(2)
        assert results[0].hash == other_id
        assert JOB_ID not in cache
    finally:
        release_fetch.set()
        slow.join()

    assert JOB_ID in cache


def test_rejects_invalid_window():
    with pytest.raises(ValueError):
        JobDetailCache(max_absent_polls=0)
