"""
Module Name: base_torrent_client.py
Description:
    Abstract proxy contract implemented once per download client API dialect.
    Proxies are plain request/response wrappers: they return backend data as
    RemoteJob/JobDetail/GlobalPolicy records and never touch local state.

Location:
    /services/download_clients/base_torrent_client.py

"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from utils.logger import get_module_logger

from .exceptions import UnsupportedClientError
from .models import CategoryInfo, GlobalPolicy, JobDetail, RemoteFile, RemoteJob, SeedConfiguration
from .qbittorrent_settings import QBittorrentSettings


def parse_api_version(raw_value: str) -> Tuple[int, ...]:
    """Turn "2.8.3" (or a bare "11") into a comparable tuple."""
    parts = []
    for segment in str(raw_value or "").strip().split("."):
        digits = "".join(ch for ch in segment if ch.isdigit())
        if not digits:
            break
        parts.append(int(digits))
    return tuple(parts) or (0,)


def format_api_version(version: Tuple[int, ...]) -> str:
    return ".".join(str(part) for part in version)


class TorrentClientProxy(ABC):
    """
    Abstract base class for download client proxies.

    Every call is a single request/response exchange with the backend.
    Implementations raise the exceptions from ``exceptions.py``:
    ClientConnectionError for transport and authentication problems,
    JobNotFoundError when a job vanished, BackendRefusedError when the
    backend refuses an operation.
    """

    name = "torrent-client"

    def __init__(self, settings: QBittorrentSettings, *, logger=None):
        self.settings = settings
        self.client_type = self.__class__.__name__
        self.logger = logger or get_module_logger("DownloadClients.Proxy")

    # ------------------------------------------------------------------
    # Capability probing
    # ------------------------------------------------------------------
    @abstractmethod
    def is_api_supported(self) -> bool:
        """Whether the backend answers this API dialect at all."""

    @abstractmethod
    def get_api_version(self) -> Tuple[int, ...]:
        pass

    @abstractmethod
    def get_version(self) -> str:
        """Human readable backend application version."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @abstractmethod
    def list_jobs(self) -> List[RemoteJob]:
        """
        List the jobs of the configured category.

        Raises:
            ClientConnectionError: If the backend is unreachable or rejects auth
        """

    @abstractmethod
    def get_job_properties(self, job_id: str) -> JobDetail:
        """
        Fetch save path and seeding time of one job.

        Raises:
            JobNotFoundError: If the job no longer exists
        """

    @abstractmethod
    def get_job_files(self, job_id: str) -> List[RemoteFile]:
        pass

    def get_job_detail(self, job_id: str) -> JobDetail:
        """Properties plus the file listing of one job."""
        detail = self.get_job_properties(job_id)
        return detail.with_files(self.get_job_files(job_id))

    @abstractmethod
    def is_job_loaded(self, job_id: str) -> bool:
        pass

    @abstractmethod
    def get_global_policy(self) -> GlobalPolicy:
        pass

    def get_categories(self) -> Dict[str, CategoryInfo]:
        """Categories with their save paths; empty when the dialect has none."""
        return {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    @abstractmethod
    def add_from_url(self, url: str, seed_config: Optional[SeedConfiguration] = None) -> None:
        pass

    @abstractmethod
    def add_from_file(
        self,
        filename: str,
        data: bytes,
        seed_config: Optional[SeedConfiguration] = None,
    ) -> None:
        pass

    @abstractmethod
    def set_top_priority(self, job_id: str) -> None:
        pass

    @abstractmethod
    def set_force_start(self, job_id: str) -> None:
        pass

    @abstractmethod
    def set_category(self, job_id: str, category: str) -> None:
        pass

    def create_category(self, category: str) -> None:
        raise UnsupportedClientError(f"{self.client_type} does not manage categories")

    @abstractmethod
    def remove_job(self, job_id: str, delete_data: bool = False) -> None:
        pass

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Release any resources held by the proxy."""

    def __repr__(self) -> str:
        return f"{self.client_type}(host={self.settings.host}, port={self.settings.port})"
