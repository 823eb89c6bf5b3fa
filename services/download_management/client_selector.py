"""
Client Selector
===============

Picks the qBittorrent proxy matching the Web API dialect the backend speaks.

Probing order:
- Web API v2 (``/api/v2/app/webapiVersion``), qBittorrent 4.1 and later
- Legacy Web API (``/version/api``), qBittorrent 3.2 to 4.0

The chosen proxy is cached per credential set so a poll loop does not
re-probe every cycle. Callers that need a fresh answer (connection tests)
pass ``force=True``.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from services.download_clients.base_torrent_client import TorrentClientProxy
from services.download_clients.exceptions import ClientConnectionError
from services.download_clients.qbittorrent_client import QBittorrentProxyV2
from services.download_clients.qbittorrent_legacy_client import QBittorrentProxyV1
from services.download_clients.qbittorrent_settings import QBittorrentSettings
from utils.logger import get_module_logger


class QBittorrentProxySelector:
    """
    Selects and caches the proxy for each qBittorrent credential set.

    Selection criteria:
    1. Newest API dialect the backend answers
    2. Cached result unless forced or older than ``cache_ttl`` seconds
    """

    DEFAULT_PROXY_CLASSES = (QBittorrentProxyV2, QBittorrentProxyV1)

    def __init__(
        self,
        proxy_classes: Optional[Sequence[type]] = None,
        session_factory: Optional[Callable[[], Any]] = None,
        cache_ttl: Optional[float] = 600.0,
        *,
        logger=None,
    ):
        self.logger = logger or get_module_logger("DownloadManagement.ClientSelector")
        self._proxy_classes = tuple(proxy_classes or self.DEFAULT_PROXY_CLASSES)
        self._session_factory = session_factory
        self._cache_ttl = cache_ttl
        self._lock = threading.Lock()
        self._proxy_cache: Dict[Tuple[Any, ...], Tuple[TorrentClientProxy, float]] = {}

    def get_proxy(self, settings: QBittorrentSettings, force: bool = False) -> TorrentClientProxy:
        """
        Return the proxy for ``settings``, probing the backend when needed.

        Raises:
            ClientConnectionError: If no supported API dialect answers
        """
        key = settings.cache_key
        with self._lock:
            cached = self._proxy_cache.get(key)
            if cached and not force and not self._is_expired(cached[1]):
                return cached[0]

        proxy = self._probe(settings)

        with self._lock:
            previous = self._proxy_cache.get(key)
            self._proxy_cache[key] = (proxy, time.monotonic())

        if previous and previous[0] is not proxy:
            previous[0].close()
        return proxy

    def invalidate(self, settings: Optional[QBittorrentSettings] = None) -> None:
        """Forget one cached proxy, or all of them."""
        with self._lock:
            if settings is None:
                dropped = list(self._proxy_cache.values())
                self._proxy_cache.clear()
            else:
                entry = self._proxy_cache.pop(settings.cache_key, None)
                dropped = [entry] if entry else []

        for proxy, _ in dropped:
            proxy.close()

    def _is_expired(self, created_at: float) -> bool:
        if self._cache_ttl is None:
            return False
        return time.monotonic() - created_at > self._cache_ttl

    def _probe(self, settings: QBittorrentSettings) -> TorrentClientProxy:
        for proxy_class in self._proxy_classes:
            session = self._session_factory() if self._session_factory else None
            proxy = proxy_class(settings, session=session)
            if proxy.is_api_supported():
                self.logger.debug(f"Selected {proxy.client_type} for {settings.base_url}")
                return proxy
            proxy.close()

        raise ClientConnectionError(
            f"No supported qBittorrent Web API found at {settings.base_url}"
        )
