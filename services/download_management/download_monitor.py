"""
Download Monitor
================

Polls a DownloadManagementService on a fixed interval and hands every
poll's items to a callback (usually the import pipeline).

Features:
- Daemon thread with a configurable interval
- Connection failures only skip the current cycle
- ``poll_once()`` for callers that schedule polls themselves
"""

import threading
from typing import Callable, List, Optional

from services.download_clients.exceptions import ClientConnectionError
from services.download_clients.models import DownloadItem
from utils.logger import get_module_logger

logger = get_module_logger("DownloadManagement.DownloadMonitor")

ItemsCallback = Callable[[List[DownloadItem]], None]


class DownloadMonitor:
    """Runs ``service.get_items()`` every ``interval`` seconds."""

    ERROR_BACKOFF_SECONDS = 5.0

    def __init__(self, service, callback: Optional[ItemsCallback] = None, interval: float = 60.0):
        self.logger = logger
        self.service = service
        self.callback = callback
        self.interval = interval
        self.last_items: List[DownloadItem] = []
        self.consecutive_failures = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        with self._lock:
            if self.running:
                self.logger.debug("Download monitor thread already running")
                return

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._monitor_loop,
                name="DownloadMonitor",
                daemon=True
            )
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the monitoring thread."""
        self.logger.debug("Stopping download monitor thread...")
        self._stop_event.set()
        with self._lock:
            if self._thread:
                self._thread.join(timeout=timeout)
                self._thread = None

    def poll_once(self) -> Optional[List[DownloadItem]]:
        """
        Run one poll cycle.

        Returns:
            The polled items, or None when the backend was unreachable
        """
        try:
            items = self.service.get_items()
        except ClientConnectionError as exc:
            self.consecutive_failures += 1
            self.logger.warning(
                f"Download client unreachable ({self.consecutive_failures} consecutive failures): {exc}"
            )
            return None

        self.consecutive_failures = 0
        self.last_items = items
        if self.callback:
            self.callback(items)
        return items

    def _monitor_loop(self) -> None:
        self.logger.debug("Download monitor thread started")

        while not self._stop_event.is_set():
            delay = self.interval
            try:
                self.poll_once()
            except Exception:
                self.logger.exception("Error in download monitor loop")
                delay = max(self.interval, self.ERROR_BACKOFF_SECONDS)
            self._stop_event.wait(delay)

        self.logger.debug("Download monitor thread stopped")
