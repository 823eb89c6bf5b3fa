import logging
from typing import Dict, List


class ConfigValidation:
    """Handles configuration validation for the qBittorrent and monitor sections"""

    VALID_PRIORITIES = ("last", "first")
    VALID_INITIAL_STATES = ("start", "force_start", "pause")
    VALID_CONTENT_LAYOUTS = ("default", "original", "subfolder")

    def __init__(self):
        self.logger = logging.getLogger("ConfigService.Validation")

    def validate_config(self, config: Dict[str, Dict[str, str]]) -> Dict[str, bool]:
        """Validate configuration sections and return status."""
        return {
            'qbittorrent': not self.validate_qbittorrent(config.get('qbittorrent', {})),
            'monitor': not self.validate_monitor(config.get('monitor', {})),
        }

    def validate_qbittorrent(self, qb_config: Dict[str, str]) -> List[str]:
        """Return a list of problems with the qBittorrent section."""
        problems: List[str] = []

        host = qb_config.get('qb_host', '')
        port = qb_config.get('qb_port', '')
        username = qb_config.get('qb_username', '')
        password = qb_config.get('qb_password', '')

        if not host:
            problems.append("qBittorrent host not configured")

        try:
            port_int = int(port)
            if port_int < 1 or port_int > 65535:
                problems.append(f"Invalid qBittorrent port: {port}")
        except ValueError:
            problems.append(f"Invalid qBittorrent port format: {port}")

        if bool(username) != bool(password):
            problems.append("qBittorrent username and password must be set together")

        for key, allowed in (
            ('recent_priority', self.VALID_PRIORITIES),
            ('older_priority', self.VALID_PRIORITIES),
            ('initial_state', self.VALID_INITIAL_STATES),
            ('content_layout', self.VALID_CONTENT_LAYOUTS),
        ):
            value = qb_config.get(key, allowed[0]).strip().lower()
            if value not in allowed:
                problems.append(f"Invalid {key}: {value} (expected one of {', '.join(allowed)})")

        timeout = qb_config.get('qb_timeout', '15')
        try:
            if float(timeout) <= 0:
                problems.append(f"qBittorrent timeout must be positive: {timeout}")
        except ValueError:
            problems.append(f"Invalid qBittorrent timeout format: {timeout}")

        category = qb_config.get('category', '')
        imported = qb_config.get('imported_category', '')
        if imported and imported == category:
            problems.append("imported_category must differ from category")

        for problem in problems:
            self.logger.warning(problem)
        if not problems:
            self.logger.debug("qBittorrent configuration validation passed")
        return problems

    def validate_monitor(self, monitor_config: Dict[str, str]) -> List[str]:
        problems: List[str] = []

        interval = monitor_config.get('interval', '60')
        try:
            if float(interval) <= 0:
                problems.append(f"Monitor interval must be positive: {interval}")
        except ValueError:
            problems.append(f"Invalid monitor interval format: {interval}")

        absent_polls = monitor_config.get('detail_cache_absent_polls', '1')
        try:
            if int(absent_polls) < 1:
                problems.append(f"detail_cache_absent_polls must be at least 1: {absent_polls}")
        except ValueError:
            problems.append(f"Invalid detail_cache_absent_polls format: {absent_polls}")

        for problem in problems:
            self.logger.warning(problem)
        return problems
