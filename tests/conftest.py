"""Shared fixtures: an in-memory proxy and a service wired to it."""

from collections import Counter
from unittest.mock import MagicMock

import pytest

from services.download_clients.base_torrent_client import TorrentClientProxy
from services.download_clients.exceptions import JobNotFoundError
from services.download_clients.models import GlobalPolicy, RemoteJob
from services.download_clients.qbittorrent_settings import QBittorrentSettings
from services.download_management.download_management_service import DownloadManagementService


class FakeProxy(TorrentClientProxy):
    """Records every call; ``failures`` maps a method name to the exception it raises."""

    name = "fake"

    def __init__(self, settings=None, *, jobs=None, details=None, policy=None, categories=None, api_version=(2, 8)):
        super().__init__(settings or QBittorrentSettings(), logger=MagicMock())
        self.jobs = list(jobs or [])
        self.details = {key.upper(): value for key, value in (details or {}).items()}
        self.policy = policy or GlobalPolicy()
        self.categories = dict(categories or {})
        self.api_version = api_version
        self.loaded = True
        self.failures = {}
        self.calls = Counter()
        self.added = []
        self.created_categories = []
        self.category_changes = []
        self.removed = []
        self.closed = False

    def _record(self, name):
        self.calls[name] += 1
        failure = self.failures.get(name)
        if failure is not None:
            raise failure

    def is_api_supported(self):
        self._record("is_api_supported")
        return True

    def get_api_version(self):
        self._record("get_api_version")
        return self.api_version

    def get_version(self):
        self._record("get_version")
        return "v4.6.0"

    def list_jobs(self):
        self._record("list_jobs")
        return list(self.jobs)

    def get_job_properties(self, job_id):
        self._record("get_job_properties")
        detail = self.details.get(job_id.upper())
        if detail is None:
            raise JobNotFoundError(job_id)
        return detail

    def get_job_files(self, job_id):
        self._record("get_job_files")
        detail = self.details.get(job_id.upper())
        if detail is None:
            raise JobNotFoundError(job_id)
        return list(detail.files)

    def is_job_loaded(self, job_id):
        self._record("is_job_loaded")
        return self.loaded

    def get_global_policy(self):
        self._record("get_global_policy")
        return self.policy

    def get_categories(self):
        self._record("get_categories")
        return dict(self.categories)

    def create_category(self, category):
        self._record("create_category")
        self.created_categories.append(category)

    def add_from_url(self, url, seed_config=None):
        self._record("add_from_url")
        self.added.append(("url", url, seed_config))

    def add_from_file(self, filename, data, seed_config=None):
        self._record("add_from_file")
        self.added.append(("file", filename, data))

    def set_top_priority(self, job_id):
        self._record("set_top_priority")

    def set_force_start(self, job_id):
        self._record("set_force_start")

    def set_category(self, job_id, category):
        self._record("set_category")
        self.category_changes.append((job_id, category))

    def remove_job(self, job_id, delete_data=False):
        self._record("remove_job")
        self.removed.append((job_id, delete_data))

    def close(self):
        self.closed = True


def build_job(**overrides):
    values = {
        "hash": "cbc2f069fe8bb2f544eae707d75bcd3de9dcf951",
        "name": "Droned.S01E01.Pilot.1080p.WEB-DL-DRONE",
        "size": 1000,
        "progress": 1.0,
        "eta": 0,
        "state": "pausedUP",
        "category": "tv",
        "save_path": "/downloads/tv",
        "ratio": 0.5,
        "ratio_limit": -2,
        "seeding_time_limit": -2,
        "inactive_seeding_time_limit": -2,
    }
    values.update(overrides)
    return RemoteJob(**values)


@pytest.fixture
def make_job():
    return build_job


@pytest.fixture
def proxy_factory(settings):
    def factory(**kwargs):
        return FakeProxy(kwargs.pop("settings", settings), **kwargs)

    return factory


@pytest.fixture
def settings():
    return QBittorrentSettings(host="127.0.0.1", port=8080, username="admin", password="pass", category="tv")


@pytest.fixture
def fake_proxy(settings):
    return FakeProxy(settings)


@pytest.fixture
def mock_logger():
    return MagicMock()


@pytest.fixture
def make_service(mock_logger):
    def factory(proxy, settings=None, **kwargs):
        selector = MagicMock()
        selector.get_proxy.return_value = proxy
        kwargs.setdefault("fetcher", MagicMock())
        kwargs.setdefault("job_loaded_interval", 0)
        return DownloadManagementService(
            settings or proxy.settings,
            selector=selector,
            sleep=lambda _: None,
            logger=kwargs.pop("logger", mock_logger),
            **kwargs,
        )

    return factory
