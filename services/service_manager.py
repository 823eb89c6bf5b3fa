"""
Module Name: service_manager.py
Description:
    Builds the configuration, reconciliation service and poll loop from the
    active configuration, once per process.

Location:
    /services/service_manager.py

"""

import threading
from typing import Any, Dict, Optional

from utils.logger import get_module_logger


_LOGGER = get_module_logger("Service.Manager")


class ServiceManager:
    """
    Lazily creates and caches service instances.
    Each service is initialized once and access is thread-safe.
    """

    def __init__(self, config_file: Optional[str] = None, *, logger=None):
        self._services: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self.config_file = config_file
        self.logger = logger or _LOGGER

    def _log_initialized(self, service_name: str):
        self.logger.debug("Service initialized", extra={"service": service_name})

    def get_config_service(self):
        """Get or create ConfigService instance"""
        with self._lock:
            if 'config' not in self._services:
                from services.config import get_config_service
                self._services['config'] = get_config_service(self.config_file)
                self._log_initialized("config")
        return self._services['config']

    def get_download_service(self):
        """Get or create DownloadManagementService instance"""
        with self._lock:
            if 'download' not in self._services:
                from services.download_management import (
                    DownloadManagementService,
                    JobDetailCache,
                    QBittorrentProxySelector,
                )

                config_service = self.get_config_service()
                settings = config_service.get_qbittorrent_settings()
                self._services['download'] = DownloadManagementService(
                    settings,
                    selector=QBittorrentProxySelector(cache_ttl=config_service.get_proxy_cache_ttl()),
                    detail_cache=JobDetailCache(config_service.get_detail_cache_absent_polls()),
                )
                self._log_initialized("download")
        return self._services['download']

    def get_download_monitor(self, callback=None, interval: Optional[float] = None):
        """Get or create DownloadMonitor instance"""
        with self._lock:
            if 'monitor' not in self._services:
                from services.download_management import DownloadMonitor

                if interval is None:
                    interval = self.get_config_service().get_monitor_interval()
                self._services['monitor'] = DownloadMonitor(
                    self.get_download_service(), callback=callback, interval=interval
                )
                self._log_initialized("monitor")
        return self._services['monitor']

    def shutdown(self):
        """Stop the poll loop and release HTTP sessions."""
        with self._lock:
            monitor = self._services.pop('monitor', None)
            download = self._services.pop('download', None)
        if monitor:
            monitor.stop()
        if download:
            download.close()
