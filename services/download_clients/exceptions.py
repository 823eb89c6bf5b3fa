"""
Module Name: exceptions.py
Description:
    Error taxonomy shared by the download client proxies and the
    reconciliation service.

Location:
    /services/download_clients/exceptions.py

"""

from typing import Optional


class DownloadClientError(RuntimeError):
    """Base download client error."""


class ClientConnectionError(DownloadClientError, ConnectionError):
    """Raised when the backend cannot be reached or times out.

    Retrying is left to the caller's own policy.
    """


class ClientAuthenticationError(ClientConnectionError):
    """Raised when the backend rejects the configured credentials."""


class JobNotFoundError(DownloadClientError):
    """Raised when a job disappeared between a listing and a detail request."""

    def __init__(self, job_id: str, message: Optional[str] = None):
        super().__init__(message or f"Job {job_id} not found on the download client")
        self.job_id = job_id


class BackendRefusedError(DownloadClientError):
    """Raised when the backend refuses an operation (HTTP 403/409)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnsupportedClientError(DownloadClientError):
    """Raised when the backend API version is too old to be used."""


class ReleaseDownloadError(DownloadClientError):
    """Raised when a release could not be handed to the download client."""

    def __init__(self, title: str, message: str):
        super().__init__(f"{title}: {message}" if title else message)
        self.title = title
        self.reason = message


class ReleaseRejectedError(ReleaseDownloadError):
    """Raised when a release is refused before it reaches the backend."""
