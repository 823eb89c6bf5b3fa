"""qBittorrent Web API v2 proxy for the download subsystem."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests import Response, Session
from requests.exceptions import RequestException, Timeout

from .base_torrent_client import TorrentClientProxy, parse_api_version
from .exceptions import (
	BackendRefusedError,
	ClientAuthenticationError,
	ClientConnectionError,
	DownloadClientError,
	JobNotFoundError,
)
from .models import (
	CategoryInfo,
	GlobalPolicy,
	JobDetail,
	RemoteFile,
	RemoteJob,
	SeedConfiguration,
)
from .qbittorrent_settings import ContentLayout, InitialState, QBittorrentSettings
from utils.logger import get_module_logger


class QBittorrentProxyBase(TorrentClientProxy):
	"""Session, cookie authentication and error translation shared by both API dialects."""

	name = "qBittorrent"
	LOGIN_CACHE_SECONDS = 30
	LOGIN_ENDPOINT = "login"
	LOGOUT_ENDPOINT = ""

	def __init__(self, settings: QBittorrentSettings, session: Optional[Session] = None, *, logger=None):
		super().__init__(settings, logger=logger or get_module_logger("DownloadClients.QBittorrent"))
		self._session: Session = session or self._create_session()
		self._authenticated = False
		self._last_login = 0.0
		self._api_version: Optional[Tuple[int, ...]] = None

	@property
	def session(self) -> Session:
		return self._session

	# ------------------------------------------------------------------
	# Internal helpers
	# ------------------------------------------------------------------
	def _create_session(self) -> Session:
		session = requests.Session()
		session.verify = self.settings.verify_cert
		session.headers.update(
			{
				"User-Agent": "Seedwarden-QBittorrentProxy/1.0",
				"Accept": "application/json, text/plain, */*",
			}
		)
		return session

	def _url(self, endpoint: str) -> str:
		return f"{self.settings.base_url}/{endpoint.lstrip('/')}"

	def _send(self, method: str, endpoint: str, **kwargs: Any) -> Response:
		url = self._url(endpoint)
		try:
			return self._session.request(
				method, url, timeout=self.settings.timeout, allow_redirects=False, **kwargs
			)
		except Timeout as exc:
			raise ClientConnectionError(
				f"HTTP {method} {endpoint} timed out after {self.settings.timeout}s"
			) from exc
		except RequestException as exc:
			raise ClientConnectionError(f"HTTP {method} {endpoint} failed: {exc}") from exc

	def _login(self, force: bool = False) -> None:
		if not self.settings.username or not self.settings.password:
			# qBittorrent may whitelist this host; nothing to send.
			if force:
				raise ClientAuthenticationError(
					"qBittorrent requires authentication but no credentials are configured"
				)
			return

		now = time.time()
		if not force and self._authenticated and now - self._last_login < self.LOGIN_CACHE_SECONDS:
			return

		response = self._send(
			"POST",
			self.LOGIN_ENDPOINT,
			data={"username": self.settings.username, "password": self.settings.password},
		)

		if response.status_code == 403:
			raise ClientAuthenticationError("qBittorrent refused the login; the IP may be banned")
		if response.status_code != 200 or response.text.strip().lower() not in {"ok", "ok."}:
			raise ClientAuthenticationError(
				f"Login failed: {response.status_code} {response.text.strip()}"
			)

		self._authenticated = True
		self._last_login = now
		self.logger.debug("Authenticated with qBittorrent at %s", self.settings.base_url)

	def _request(self, method: str, endpoint: str, job_id: Optional[str] = None, **kwargs: Any) -> Response:
		self._login()
		response = self._send(method, endpoint, **kwargs)

		if response.status_code == 403:
			self.logger.debug("Session cookie expired, re-authenticating")
			self._authenticated = False
			self._login(force=True)
			response = self._send(method, endpoint, **kwargs)

		if response.status_code == 403:
			raise BackendRefusedError(f"qBittorrent refused {method} {endpoint}", status_code=403)
		if response.status_code == 404 and job_id:
			raise JobNotFoundError(job_id)
		if response.status_code == 409:
			raise BackendRefusedError(
				f"qBittorrent rejected {method} {endpoint}: {response.text.strip()}", status_code=409
			)
		if response.status_code >= 400:
			raise DownloadClientError(
				f"HTTP {method} {endpoint} failed: {response.status_code} {response.text.strip()}"
			)
		return response

	def _request_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None, job_id: Optional[str] = None) -> Any:
		response = self._request("GET", endpoint, job_id=job_id, params=params)
		try:
			return response.json()
		except ValueError as exc:
			raise DownloadClientError(f"Invalid JSON response from {endpoint}: {exc}") from exc

	def _request_text(self, endpoint: str) -> str:
		return self._request("GET", endpoint).text

	def _post(self, endpoint: str, data: Dict[str, Any], job_id: Optional[str] = None, **kwargs: Any) -> Response:
		return self._request("POST", endpoint, job_id=job_id, data=data, **kwargs)

	@staticmethod
	def _validate_add_response(response: Response, source: str) -> None:
		text = (response.text or "").strip().lower()
		if text not in {"ok", "ok."}:
			raise DownloadClientError(
				f"qBittorrent failed to add torrent from {source}: {response.text.strip()}"
			)

	@staticmethod
	def _seed_payload(seed_config: Optional[SeedConfiguration]) -> Dict[str, Any]:
		payload: Dict[str, Any] = {}
		if seed_config is None:
			return payload
		if seed_config.ratio is not None:
			payload["ratioLimit"] = seed_config.ratio
		if seed_config.seed_time is not None:
			payload["seedingTimeLimit"] = seed_config.seed_time
		if seed_config.inactive_seed_time is not None:
			payload["inactiveSeedingTimeLimit"] = seed_config.inactive_seed_time
		return payload

	def close(self) -> None:
		try:
			if self._authenticated and self.LOGOUT_ENDPOINT:
				self._send("POST", self.LOGOUT_ENDPOINT)
		except ClientConnectionError:
			self.logger.debug("Logout request failed; closing session anyway")
		finally:
			self._session.close()
			self._authenticated = False


class QBittorrentProxyV2(QBittorrentProxyBase):
	"""Thin wrapper around the qBittorrent Web API v2 (qBittorrent 4.1 and later)."""

	LOGIN_ENDPOINT = "api/v2/auth/login"
	LOGOUT_ENDPOINT = "api/v2/auth/logout"
	CATEGORY_API_VERSION = (2, 1, 1)
	CONTENT_LAYOUT_API_VERSION = (2, 7)

	def is_api_supported(self) -> bool:
		# Answered without authentication: 403 still proves the endpoint exists.
		response = self._send("GET", "api/v2/app/webapiVersion")
		return response.status_code != 404

	def get_api_version(self) -> Tuple[int, ...]:
		if self._api_version is None:
			self._api_version = parse_api_version(self._request_text("api/v2/app/webapiVersion"))
		return self._api_version

	def get_version(self) -> str:
		return self._request_text("api/v2/app/version").strip()

	def list_jobs(self) -> List[RemoteJob]:
		params: Dict[str, Any] = {}
		if self.settings.category:
			params["category"] = self.settings.category
		torrents = self._request_json("api/v2/torrents/info", params=params or None) or []
		return [RemoteJob.from_api(item) for item in torrents]

	def get_job_properties(self, job_id: str) -> JobDetail:
		props = self._request_json("api/v2/torrents/properties", params={"hash": job_id.lower()}, job_id=job_id) or {}
		seeding_time = props.get("seeding_time")
		return JobDetail(
			hash=job_id,
			save_path=str(props.get("save_path") or ""),
			seeding_time=int(seeding_time) if seeding_time is not None else None,
		)

	def get_job_files(self, job_id: str) -> List[RemoteFile]:
		files = self._request_json("api/v2/torrents/files", params={"hash": job_id.lower()}, job_id=job_id) or []
		return [RemoteFile.from_api(item) for item in files]

	def is_job_loaded(self, job_id: str) -> bool:
		torrents = self._request_json("api/v2/torrents/info", params={"hashes": job_id.lower()}) or []
		return any(str(item.get("hash", "")).lower() == job_id.lower() for item in torrents)

	def get_global_policy(self) -> GlobalPolicy:
		return GlobalPolicy.from_api(self._request_json("api/v2/app/preferences") or {})

	def get_categories(self) -> Dict[str, CategoryInfo]:
		if self.get_api_version() < self.CATEGORY_API_VERSION:
			return {}
		raw = self._request_json("api/v2/torrents/categories") or {}
		return {
			name: CategoryInfo(name=name, save_path=str(entry.get("savePath") or ""))
			for name, entry in raw.items()
		}

	def create_category(self, category: str) -> None:
		self._post("api/v2/torrents/createCategory", {"category": category})

	def add_from_url(self, url: str, seed_config: Optional[SeedConfiguration] = None) -> None:
		payload = self._build_add_payload(seed_config)
		payload["urls"] = url
		response = self._post("api/v2/torrents/add", payload)
		self._validate_add_response(response, "url")

	def add_from_file(self, filename: str, data: bytes, seed_config: Optional[SeedConfiguration] = None) -> None:
		payload = self._build_add_payload(seed_config)
		files = {"torrents": (filename, data, "application/x-bittorrent")}
		response = self._post("api/v2/torrents/add", payload, files=files)
		self._validate_add_response(response, "file")

	def set_top_priority(self, job_id: str) -> None:
		self._post("api/v2/torrents/topPrio", {"hashes": job_id.lower()}, job_id=job_id)

	def set_force_start(self, job_id: str) -> None:
		self._post("api/v2/torrents/setForceStart", {"hashes": job_id.lower(), "value": "true"}, job_id=job_id)

	def set_category(self, job_id: str, category: str) -> None:
		self._post("api/v2/torrents/setCategory", {"hashes": job_id.lower(), "category": category}, job_id=job_id)

	def remove_job(self, job_id: str, delete_data: bool = False) -> None:
		data = {"hashes": job_id.lower(), "deleteFiles": "true" if delete_data else "false"}
		self._post("api/v2/torrents/delete", data, job_id=job_id)

	def _build_add_payload(self, seed_config: Optional[SeedConfiguration]) -> Dict[str, Any]:
		settings = self.settings
		payload: Dict[str, Any] = {}

		if settings.category:
			payload["category"] = settings.category
		if settings.initial_state is InitialState.PAUSE:
			# "paused" before qBittorrent 5, "stopped" afterwards
			payload["paused"] = "true"
			payload["stopped"] = "true"
		if settings.sequential_order:
			payload["sequentialDownload"] = "true"
		if settings.first_and_last:
			payload["firstLastPiecePrio"] = "true"

		if settings.content_layout is not ContentLayout.DEFAULT:
			if self.get_api_version() >= self.CONTENT_LAYOUT_API_VERSION:
				payload["contentLayout"] = settings.content_layout.value.capitalize()
			else:
				payload["root_folder"] = "true" if settings.content_layout is ContentLayout.SUBFOLDER else "false"

		payload.update(self._seed_payload(seed_config))
		return payload
