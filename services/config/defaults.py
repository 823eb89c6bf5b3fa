import configparser
import logging
import os
from typing import Dict


class ConfigDefaults:
    """Handles default configuration for seedwarden"""

    def __init__(self, config_file: str = ""):
        self.config_file = config_file
        self.logger = logging.getLogger("ConfigService.Defaults")

    def apply_defaults(self, config: configparser.ConfigParser) -> configparser.ConfigParser:
        """Add every default section/option missing from ``config``."""
        for section, values in self.default_sections().items():
            if not config.has_section(section):
                config.add_section(section)
            for key, value in values.items():
                if not config.has_option(section, key):
                    config.set(section, key, value)
        return config

    def default_sections(self) -> Dict[str, Dict[str, str]]:
        config = configparser.ConfigParser()
        self._add_qbittorrent_config(config)
        self._add_monitor_config(config)
        return {section: dict(config.items(section)) for section in config.sections()}

    def generate_default_config(self, config_file: str = "") -> bool:
        """Write a complete default configuration file."""
        target = config_file or self.config_file
        if not target:
            self.logger.error("No configuration file path given")
            return False

        config = configparser.ConfigParser()
        self._add_qbittorrent_config(config)
        self._add_monitor_config(config)

        directory = os.path.dirname(os.path.abspath(target))
        try:
            os.makedirs(directory, exist_ok=True)
            with open(target, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            self.logger.error(f"Failed to create default configuration: {e}")
            return False

        self.logger.info(f"Default configuration created at {target}")
        return True

    def _add_qbittorrent_config(self, config: configparser.ConfigParser):
        """Add qBittorrent configuration section."""
        config["qbittorrent"] = {
            "qb_host": "localhost",
            "qb_port": "8080",
            "qb_use_ssl": "false",
            "qb_url_base": "",
            "qb_username": "",
            "qb_password": "",
            "qb_timeout": "15",
            "qb_verify_cert": "true",
            "category": "seedwarden",
            "imported_category": "",
            "recent_priority": "last",
            "older_priority": "last",
            "initial_state": "start",
            "sequential_order": "false",
            "first_and_last": "false",
            "content_layout": "default",
        }

    def _add_monitor_config(self, config: configparser.ConfigParser):
        """Add poll loop configuration section."""
        config["monitor"] = {
            "interval": "60",
            "detail_cache_absent_polls": "1",
            "proxy_cache_ttl": "600",
        }
