import configparser
import logging
import os
import re
import threading
from typing import Any, Dict, List, Optional

from services.download_clients.qbittorrent_settings import QBittorrentSettings

from .defaults import ConfigDefaults
from .validation import ConfigValidation

_PATH_MAPPING_OPTION = re.compile(r"path_mapping_(\d+)_(qb_path|host_path|remote|local)")


class ConfigService:
    """Read-only configuration service layering an INI file over built-in defaults"""

    def __init__(self, config_file: str = "config/seedwarden.ini", overrides: Optional[Dict[str, Dict[str, str]]] = None):
        self.config_file = config_file
        self.overrides = overrides or {}
        self.logger = logging.getLogger("ConfigService.Management")

        self.defaults = ConfigDefaults(self.config_file)
        self.validation = ConfigValidation()

    def load_config(self) -> configparser.ConfigParser:
        """Load configuration from disk, falling back to defaults for anything missing."""
        parser = configparser.ConfigParser(interpolation=None)
        try:
            with open(self.config_file, "r", encoding="utf-8") as config_handle:
                parser.read_file(config_handle)
        except (configparser.DuplicateSectionError, configparser.DuplicateOptionError) as duplicate_error:
            self.logger.warning(
                "Duplicate entry detected in %s: %s. Later values win.",
                self.config_file,
                duplicate_error,
            )
            parser = self._read_lenient()
        except FileNotFoundError:
            self.logger.warning("Configuration file %s not found, using defaults", self.config_file)

        self.defaults.apply_defaults(parser)

        for section, values in self.overrides.items():
            for key, value in values.items():
                if value is None or value == "":
                    continue
                parser.set(section, key, str(value))
        return parser

    def _read_lenient(self) -> configparser.ConfigParser:
        parser = configparser.ConfigParser(strict=False, interpolation=None)
        with open(self.config_file, "r", encoding="utf-8") as config_handle:
            parser.read_file(config_handle)
        return parser

    def get_config_value(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a specific configuration value."""
        config = self.load_config()
        return config.get(section.lower(), key.lower(), fallback=fallback)

    def get_config_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a configuration value as boolean."""
        value = self.get_config_value(section, key)
        if value is None:
            return fallback
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_config_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get a configuration value as integer."""
        value = self.get_config_value(section, key)
        if value is None:
            return fallback
        try:
            return int(value)
        except ValueError:
            return fallback

    def get_config_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        value = self.get_config_value(section, key)
        if value is None:
            return fallback
        try:
            return float(value)
        except ValueError:
            return fallback

    def list_config(self) -> Dict[str, Dict[str, str]]:
        """Get all configuration as a dictionary."""
        config = self.load_config()
        return {section: dict(config.items(section)) for section in config.sections()}

    def validate(self) -> List[str]:
        """Problems found in the qBittorrent and monitor sections."""
        config = self.list_config()
        return (
            self.validation.validate_qbittorrent(config.get('qbittorrent', {}))
            + self.validation.validate_monitor(config.get('monitor', {}))
        )

    # qBittorrent helpers
    def get_qbittorrent_config(self) -> Dict[str, Any]:
        """Translate the [qbittorrent] section into QBittorrentSettings fields."""
        config = self.load_config()
        section = config['qbittorrent']

        def _get(option: str, fallback: str = "") -> str:
            return section.get(option, fallback).strip()

        def _get_bool(option: str, fallback: bool = False) -> bool:
            try:
                return section.getboolean(option, fallback=fallback)
            except ValueError:
                return fallback

        password = _get("qb_password")
        if password.startswith('"') and password.endswith('"'):
            password = password[1:-1]

        return {
            "host": _get("qb_host", "localhost"),
            "port": _get("qb_port", "8080"),
            "use_ssl": _get_bool("qb_use_ssl"),
            "url_base": _get("qb_url_base"),
            "username": _get("qb_username"),
            "password": password,
            "timeout": _get("qb_timeout", "15"),
            "verify_cert": _get_bool("qb_verify_cert", True),
            "category": _get("category"),
            "imported_category": _get("imported_category"),
            "recent_priority": _get("recent_priority", "last"),
            "older_priority": _get("older_priority", "last"),
            "initial_state": _get("initial_state", "start"),
            "sequential_order": _get_bool("sequential_order"),
            "first_and_last": _get_bool("first_and_last"),
            "content_layout": _get("content_layout", "default"),
            "path_mappings": self._parse_path_mappings(section),
        }

    @staticmethod
    def _parse_path_mappings(section) -> List[Dict[str, str]]:
        mapping_buckets: Dict[int, Dict[str, str]] = {}
        for option, value in section.items():
            match = _PATH_MAPPING_OPTION.match(option.lower())
            if not match:
                continue

            index = int(match.group(1))
            bucket = mapping_buckets.setdefault(index, {"remote": "", "local": ""})
            trimmed_value = str(value or "").strip()

            if match.group(2) in {"qb_path", "remote"}:
                bucket["remote"] = trimmed_value
            else:
                bucket["local"] = trimmed_value

        path_mappings = [
            mapping
            for _, mapping in sorted(mapping_buckets.items(), key=lambda item: item[0])
            if mapping["remote"] or mapping["local"]
        ]

        if not path_mappings:
            # Compact form: path_mappings = /remote|/local; /remote2|/local2
            for entry in str(section.get("path_mappings", "")).split(';'):
                if '|' not in entry:
                    continue
                remote, local = entry.split('|', 1)
                if remote.strip() or local.strip():
                    path_mappings.append({"remote": remote.strip(), "local": local.strip()})

        return path_mappings

    def get_qbittorrent_settings(self) -> QBittorrentSettings:
        return QBittorrentSettings.from_dict(self.get_qbittorrent_config())

    # Monitor helpers
    def get_monitor_interval(self) -> float:
        return self.get_config_float('monitor', 'interval', 60.0)

    def get_detail_cache_absent_polls(self) -> int:
        return max(self.get_config_int('monitor', 'detail_cache_absent_polls', 1), 1)

    def get_proxy_cache_ttl(self) -> Optional[float]:
        ttl = self.get_config_float('monitor', 'proxy_cache_ttl', 600.0)
        return ttl if ttl > 0 else None

    def write_default_config(self) -> bool:
        if os.path.exists(self.config_file):
            self.logger.info("Configuration file %s already exists", self.config_file)
            return False
        return self.defaults.generate_default_config(self.config_file)


_config_service: Optional[ConfigService] = None
_config_lock = threading.Lock()


def get_config_service(config_file: Optional[str] = None) -> ConfigService:
    """Shared ConfigService built from the environment (``config.config.Config``)."""
    global _config_service
    with _config_lock:
        if _config_service is None or (config_file and config_file != _config_service.config_file):
            from config.config import Config

            _config_service = ConfigService(
                config_file or Config.CONFIG_FILE,
                overrides={'qbittorrent': Config.qbittorrent_overrides()},
            )
        return _config_service


def reset_config_service() -> None:
    global _config_service
    with _config_lock:
        _config_service = None
