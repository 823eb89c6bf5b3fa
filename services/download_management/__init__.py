"""
Download Management Module
==========================

Reconciles a qBittorrent instance with the import pipeline.

Architecture:
- Main service coordinates polls, submissions and connection tests
- Helper modules handle specific concerns (state, output paths, seeding
  limits, detail caching, proxy selection, interval polling)
- The backend is the source of truth; nothing is persisted locally
"""

from .client_selector import QBittorrentProxySelector
from .detail_cache import JobDetailCache
from .download_management_service import DownloadManagementService
from .download_monitor import DownloadMonitor
from .output_path import JobNameSanitizer, OutputPathResolver, RemotePathMapper
from .release_fetcher import ReleaseFetcher
from .seeding_policy import SeedingDecision, SeedingPolicyEvaluator
from .state_machine import DIALECTS, StateNormalizer

__all__ = [
    'DownloadManagementService',
    'DownloadMonitor',
    'QBittorrentProxySelector',
    'JobDetailCache',
    'JobNameSanitizer',
    'OutputPathResolver',
    'RemotePathMapper',
    'ReleaseFetcher',
    'SeedingDecision',
    'SeedingPolicyEvaluator',
    'StateNormalizer',
    'DIALECTS',
]
