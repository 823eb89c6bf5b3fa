import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('true', '1', 'yes', 'on')


class Config:
    # INI file holding the [qbittorrent] and [monitor] sections
    CONFIG_FILE = os.environ.get('SEEDWARDEN_CONFIG_FILE') or 'config/seedwarden.ini'

    # Logging configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = os.environ.get('LOG_FILE') or 'seedwarden.log'
    LOG_BACKEND = (os.environ.get('LOG_BACKEND') or 'logging').lower()  # 'logging' or 'loguru'
    LOG_SERIALIZE = _env_bool('LOG_SERIALIZE')  # JSON lines in the log file (loguru backend)

    # Monitor settings
    MONITOR_INTERVAL = float(os.environ.get('MONITOR_INTERVAL') or 0) or None

    # Environment overrides for the [qbittorrent] section (empty = use the file)
    QBITTORRENT_OVERRIDES = {
        'qb_host': os.environ.get('QBITTORRENT_HOST', ''),
        'qb_port': os.environ.get('QBITTORRENT_PORT', ''),
        'qb_username': os.environ.get('QBITTORRENT_USERNAME', ''),
        'qb_password': os.environ.get('QBITTORRENT_PASSWORD', ''),
        'category': os.environ.get('QBITTORRENT_CATEGORY', ''),
        'qb_use_ssl': 'true' if _env_bool('QBITTORRENT_USE_SSL') else '',
    }

    @classmethod
    def qbittorrent_overrides(cls):
        """Overrides that are actually set."""
        return {key: value for key, value in cls.QBITTORRENT_OVERRIDES.items() if value}
