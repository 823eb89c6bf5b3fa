"""Redirect-aware HTTP fetch of .torrent files for release submission."""

from dataclasses import dataclass, field
from typing import Dict, Optional

import requests
from requests.exceptions import RequestException, Timeout

from services.download_clients.exceptions import ClientConnectionError
from utils.logger import get_module_logger

_LOGGER = get_module_logger("DownloadManagement.ReleaseFetcher")


@dataclass(frozen=True)
class ReleaseResponse:
    url: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400 and bool(self.location)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def location(self) -> Optional[str]:
        for name, value in self.headers.items():
            if name.lower() == "location":
                return value
        return None


class ReleaseFetcher:
    """
    Issues one GET per call and never follows redirects itself.

    Indexers commonly answer a .torrent URL with a redirect to a magnet URI,
    which has to be submitted differently, so the caller inspects every 3xx.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30.0, *, logger=None):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logger or _LOGGER

    def get(self, url: str) -> ReleaseResponse:
        try:
            response = self.session.get(url, timeout=self.timeout, allow_redirects=False)
        except Timeout as exc:
            raise ClientConnectionError(f"Timed out fetching {url}") from exc
        except RequestException as exc:
            raise ClientConnectionError(f"Failed to fetch {url}: {exc}") from exc

        self.logger.debug(f"GET {url} -> {response.status_code}")
        return ReleaseResponse(
            url=url,
            status_code=response.status_code,
            headers=dict(response.headers),
            content=response.content or b"",
        )

    def close(self) -> None:
        self.session.close()
