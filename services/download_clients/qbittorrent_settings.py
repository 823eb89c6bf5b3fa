"""Connection and behaviour settings for a qBittorrent instance."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple
from urllib.parse import urlparse

LOCALHOST_NAMES = {"127.0.0.1", "localhost", "::1"}


class QueuePriority(Enum):
    LAST = "last"
    FIRST = "first"


class InitialState(Enum):
    START = "start"
    FORCE_START = "force_start"
    PAUSE = "pause"


class ContentLayout(Enum):
    DEFAULT = "default"
    ORIGINAL = "original"
    SUBFOLDER = "subfolder"


def _coerce_enum(enum_cls, value: Any, default):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


@dataclass(frozen=True)
class PathMapping:
    """Maps a path as the backend sees it onto the path this host sees."""

    remote: str
    local: str


@dataclass(frozen=True)
class QBittorrentSettings:
    host: str = "localhost"
    port: int = 8080
    use_ssl: bool = False
    url_base: str = ""
    username: str = ""
    password: str = ""
    category: str = ""
    imported_category: str = ""
    recent_priority: QueuePriority = QueuePriority.LAST
    older_priority: QueuePriority = QueuePriority.LAST
    initial_state: InitialState = InitialState.START
    sequential_order: bool = False
    first_and_last: bool = False
    content_layout: ContentLayout = ContentLayout.DEFAULT
    timeout: float = 15.0
    verify_cert: bool = True
    path_mappings: Tuple[PathMapping, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "QBittorrentSettings":
        mappings: List[PathMapping] = []
        for entry in config.get("path_mappings") or []:
            if isinstance(entry, PathMapping):
                mappings.append(entry)
            elif entry.get("remote") or entry.get("local"):
                mappings.append(PathMapping(str(entry.get("remote", "")), str(entry.get("local", ""))))

        return cls(
            host=str(config.get("host") or "localhost").strip(),
            port=int(config.get("port") or 8080),
            use_ssl=bool(config.get("use_ssl", False)),
            url_base=str(config.get("url_base") or "").strip(),
            username=str(config.get("username") or ""),
            password=str(config.get("password") or ""),
            category=str(config.get("category") or "").strip(),
            imported_category=str(config.get("imported_category") or "").strip(),
            recent_priority=_coerce_enum(QueuePriority, config.get("recent_priority"), QueuePriority.LAST),
            older_priority=_coerce_enum(QueuePriority, config.get("older_priority"), QueuePriority.LAST),
            initial_state=_coerce_enum(InitialState, config.get("initial_state"), InitialState.START),
            sequential_order=bool(config.get("sequential_order", False)),
            first_and_last=bool(config.get("first_and_last", False)),
            content_layout=_coerce_enum(ContentLayout, config.get("content_layout"), ContentLayout.DEFAULT),
            timeout=float(config.get("timeout") or 15.0),
            verify_cert=bool(config.get("verify_cert", True)),
            path_mappings=tuple(mappings),
        )

    @property
    def base_url(self) -> str:
        host = self.host
        scheme = "https" if self.use_ssl else "http"

        if host.startswith(("http://", "https://")):
            parsed = urlparse(host)
            base = f"{parsed.scheme}://{parsed.netloc or parsed.path}"
            if parsed.path and parsed.netloc and parsed.path not in {"", "/"}:
                base = f"{base}{parsed.path.rstrip('/')}"
        elif ":" in host and not host.startswith("["):
            if host.count(":") > 1:
                base = f"{scheme}://[{host}]:{self.port}"
            else:
                base = f"{scheme}://{host}"
        else:
            base = f"{scheme}://{host}:{self.port}"

        if self.url_base:
            base = f"{base}/{self.url_base.strip('/')}"
        return base.rstrip("/")

    @property
    def is_localhost(self) -> bool:
        return self.host.strip("[]").lower() in LOCALHOST_NAMES

    @property
    def cache_key(self) -> Tuple[Any, ...]:
        """Identity of a credential set, used to cache probed proxies."""
        return (self.host, self.port, self.url_base, self.use_ssl, self.username, self.password)

    def priority_for(self, is_recent: bool) -> QueuePriority:
        return self.recent_priority if is_recent else self.older_priority
