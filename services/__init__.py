# Services package for seedwarden
# Download client proxies, reconciliation and configuration live in subdirectories

from .config import ConfigService
from .download_management import DownloadManagementService, DownloadMonitor

# Import service manager
from .service_manager import ServiceManager

__all__ = [
    # Core services
    'ConfigService',
    'DownloadManagementService',
    'DownloadMonitor',

    # Service manager
    'ServiceManager',
]
