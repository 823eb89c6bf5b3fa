"""
Download Clients Module
=======================

Proxies for the qBittorrent Web API (v2 and legacy v1) plus the records
they exchange with the reconciliation layer.
"""

from .base_torrent_client import TorrentClientProxy, format_api_version, parse_api_version
from .exceptions import (
    BackendRefusedError,
    ClientAuthenticationError,
    ClientConnectionError,
    DownloadClientError,
    JobNotFoundError,
    ReleaseDownloadError,
    ReleaseRejectedError,
    UnsupportedClientError,
)
from .models import (
    ClientStatus,
    DownloadItem,
    GlobalPolicy,
    JobDetail,
    Lifecycle,
    LifecycleStatus,
    MaxRatioAction,
    ReleaseInfo,
    RemoteFile,
    RemoteJob,
    SeedConfiguration,
)
from .qbittorrent_client import QBittorrentProxyBase, QBittorrentProxyV2
from .qbittorrent_legacy_client import QBittorrentProxyV1
from .qbittorrent_settings import (
    ContentLayout,
    InitialState,
    PathMapping,
    QBittorrentSettings,
    QueuePriority,
)

__all__ = [
    'TorrentClientProxy',
    'QBittorrentProxyBase',
    'QBittorrentProxyV1',
    'QBittorrentProxyV2',
    'QBittorrentSettings',
    'PathMapping',
    'QueuePriority',
    'InitialState',
    'ContentLayout',
    'ClientStatus',
    'DownloadItem',
    'GlobalPolicy',
    'JobDetail',
    'Lifecycle',
    'LifecycleStatus',
    'MaxRatioAction',
    'ReleaseInfo',
    'RemoteFile',
    'RemoteJob',
    'SeedConfiguration',
    'DownloadClientError',
    'ClientConnectionError',
    'ClientAuthenticationError',
    'JobNotFoundError',
    'BackendRefusedError',
    'UnsupportedClientError',
    'ReleaseDownloadError',
    'ReleaseRejectedError',
    'parse_api_version',
    'format_api_version',
]
