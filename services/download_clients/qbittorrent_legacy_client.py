"""Legacy qBittorrent Web API (v1, qBittorrent 3.2 to 4.0) proxy."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .base_torrent_client import parse_api_version
from .models import GlobalPolicy, JobDetail, RemoteFile, RemoteJob, SeedConfiguration
from .qbittorrent_client import QBittorrentProxyBase
from .qbittorrent_settings import InitialState


class QBittorrentProxyV1(QBittorrentProxyBase):
	"""
	Speaks the pre-4.1 API: ``/query``, ``/command`` and a bare ``/login``.

	The legacy API reports its version as a single integer, exposed here
	as ``(1, n)`` so it compares below every v2 version. It has no
	category management; ``get_categories`` therefore stays empty.
	"""

	LOGIN_ENDPOINT = "login"
	# v1 API 10 renamed the "label" filter to "category"
	CATEGORY_FILTER_API_VERSION = (1, 10)

	def is_api_supported(self) -> bool:
		response = self._send("GET", "version/api")
		return response.status_code != 404

	def get_api_version(self) -> Tuple[int, ...]:
		if self._api_version is None:
			raw = self._request_text("version/api").strip()
			self._api_version = (1,) + parse_api_version(raw)[:1]
		return self._api_version

	def get_version(self) -> str:
		return self._request_text("version/qbittorrent").strip()

	def list_jobs(self) -> List[RemoteJob]:
		params: Dict[str, Any] = {}
		if self.settings.category:
			key = "category" if self.get_api_version() >= self.CATEGORY_FILTER_API_VERSION else "label"
			params[key] = self.settings.category
		torrents = self._request_json("query/torrents", params=params or None) or []
		return [RemoteJob.from_api(item) for item in torrents]

	def get_job_properties(self, job_id: str) -> JobDetail:
		props = self._request_json(f"query/propertiesGeneral/{job_id.lower()}", job_id=job_id) or {}
		seeding_time = props.get("seeding_time")
		return JobDetail(
			hash=job_id,
			save_path=str(props.get("save_path") or ""),
			seeding_time=int(seeding_time) if seeding_time is not None else None,
		)

	def get_job_files(self, job_id: str) -> List[RemoteFile]:
		files = self._request_json(f"query/propertiesFiles/{job_id.lower()}", job_id=job_id) or []
		return [RemoteFile.from_api(item) for item in files]

	def is_job_loaded(self, job_id: str) -> bool:
		torrents = self._request_json("query/torrents") or []
		return any(str(item.get("hash", "")).lower() == job_id.lower() for item in torrents)

	def get_global_policy(self) -> GlobalPolicy:
		return GlobalPolicy.from_api(self._request_json("query/preferences") or {})

	def add_from_url(self, url: str, seed_config: Optional[SeedConfiguration] = None) -> None:
		payload = self._build_add_payload()
		payload["urls"] = url
		response = self._post("command/download", payload)
		self._validate_legacy_response(response, "url")
		self._warn_ignored_seed_config(seed_config)

	def add_from_file(self, filename: str, data: bytes, seed_config: Optional[SeedConfiguration] = None) -> None:
		payload = self._build_add_payload()
		files = {"torrents": (filename, data, "application/x-bittorrent")}
		response = self._post("command/upload", payload, files=files)
		self._validate_legacy_response(response, "file")
		self._warn_ignored_seed_config(seed_config)

	def set_top_priority(self, job_id: str) -> None:
		self._post("command/topPrio", {"hashes": job_id.lower()}, job_id=job_id)

	def set_force_start(self, job_id: str) -> None:
		self._post("command/setForceStart", {"hashes": job_id.lower(), "value": "true"}, job_id=job_id)

	def set_category(self, job_id: str, category: str) -> None:
		self._post("command/setCategory", {"hashes": job_id.lower(), "category": category}, job_id=job_id)

	def remove_job(self, job_id: str, delete_data: bool = False) -> None:
		endpoint = "command/deletePerm" if delete_data else "command/delete"
		self._post(endpoint, {"hashes": job_id.lower()}, job_id=job_id)

	def _build_add_payload(self) -> Dict[str, Any]:
		settings = self.settings
		payload: Dict[str, Any] = {}
		if settings.category:
			payload["category"] = settings.category
		if settings.initial_state is InitialState.PAUSE:
			payload["paused"] = "true"
		return payload

	@staticmethod
	def _validate_legacy_response(response, source: str) -> None:
		# v1 answers an empty body on success; "Fails." otherwise
		text = (response.text or "").strip().lower()
		if text.startswith("fail"):
			QBittorrentProxyBase._validate_add_response(response, source)

	def _warn_ignored_seed_config(self, seed_config: Optional[SeedConfiguration]) -> None:
		if seed_config is not None and not seed_config.is_empty:
			self.logger.debug("Legacy qBittorrent API ignores per-torrent share limits")
