"""
Download Management Service
===========================

Reconciles one qBittorrent instance with the import pipeline:
list jobs → normalize state → evaluate seeding policy → report items
submit release → wait for job → raise priority / force start

Features:
- Per-poll global preferences, never reused across polls
- Cached job details shared by overlapping polls
- Per-job failure isolation during a poll
- Magnet and .torrent submission with redirect-to-magnet handling
- Non-fatal secondary calls (priority, force start, post-import category)
- Connection test with forced capability probing
"""

import time
from dataclasses import replace
from typing import Callable, List, Optional
from urllib.parse import urljoin

from services.download_clients.base_torrent_client import TorrentClientProxy, format_api_version
from services.download_clients.exceptions import (
    BackendRefusedError,
    ClientAuthenticationError,
    ClientConnectionError,
    DownloadClientError,
    JobNotFoundError,
    ReleaseDownloadError,
    ReleaseRejectedError,
    UnsupportedClientError,
)
from services.download_clients.models import (
    ClientStatus,
    DownloadItem,
    GlobalPolicy,
    JobDetail,
    ReleaseInfo,
    RemoteJob,
)
from services.download_clients.qbittorrent_settings import (
    InitialState,
    QBittorrentSettings,
    QueuePriority,
)
from services.download_clients.torrent_info import (
    hash_from_torrent_bytes,
    is_magnet_link,
    normalize_info_hash,
    parse_magnet_link,
)
from utils.logger import get_module_logger

from .client_selector import QBittorrentProxySelector
from .detail_cache import JobDetailCache
from .output_path import (
    OutputPathResolver,
    RemotePathMapper,
    format_remote_path,
    remote_path,
    same_remote_path,
)
from .release_fetcher import ReleaseFetcher
from .seeding_policy import NOT_REMOVABLE, SeedingDecision, SeedingPolicyEvaluator
from .state_machine import StateNormalizer

_LOGGER = get_module_logger("DownloadManagementService")


class DownloadManagementService:
    """
    Orchestrates polls, imports and submissions for one backend instance.

    Coordinates:
    - Proxy selection (API version probing, cached per credential set)
    - State normalization and remaining time/size
    - Output path resolution and remote path mapping
    - Seeding policy evaluation with lazily fetched job details
    """

    MIN_API_VERSION = (1, 5)
    CATEGORY_API_VERSION = (1, 6)
    CATEGORY_MANAGEMENT_API_VERSION = (2, 0)
    MAX_REDIRECTS = 5
    JOB_LOADED_ATTEMPTS = 10
    JOB_LOADED_INTERVAL = 0.5

    def __init__(
        self,
        settings: QBittorrentSettings,
        selector: Optional[QBittorrentProxySelector] = None,
        fetcher: Optional[ReleaseFetcher] = None,
        detail_cache: Optional[JobDetailCache] = None,
        normalizer: Optional[StateNormalizer] = None,
        resolver: Optional[OutputPathResolver] = None,
        evaluator: Optional[SeedingPolicyEvaluator] = None,
        job_loaded_attempts: Optional[int] = None,
        job_loaded_interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        *,
        logger=None,
    ):
        self.settings = settings
        self.logger = logger or _LOGGER
        self.selector = selector or QBittorrentProxySelector()
        self.fetcher = fetcher or ReleaseFetcher(timeout=settings.timeout)
        self.detail_cache = detail_cache or JobDetailCache()
        self.normalizer = normalizer or StateNormalizer()
        self.resolver = resolver or OutputPathResolver()
        self.evaluator = evaluator or SeedingPolicyEvaluator(self.normalizer)
        self.path_mapper = RemotePathMapper(settings.path_mappings)
        self.job_loaded_attempts = (
            self.JOB_LOADED_ATTEMPTS if job_loaded_attempts is None else job_loaded_attempts
        )
        self.job_loaded_interval = (
            self.JOB_LOADED_INTERVAL if job_loaded_interval is None else job_loaded_interval
        )
        self._sleep = sleep
        self.last_error: Optional[str] = None

    @property
    def name(self) -> str:
        return "qBittorrent"

    def _get_proxy(self, force: bool = False) -> TorrentClientProxy:
        return self.selector.get_proxy(self.settings, force=force)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    def get_items(self) -> List[DownloadItem]:
        """
        Run one poll and return one item per backend job.

        Raises:
            ClientConnectionError: If the listing itself fails
        """
        proxy = self._get_proxy()
        policy = proxy.get_global_policy()
        jobs = proxy.list_jobs()

        self.detail_cache.begin_poll()
        present: List[str] = []
        items: List[DownloadItem] = []
        try:
            for job in jobs:
                try:
                    item = self._build_item(proxy, job, policy)
                except JobNotFoundError:
                    self.logger.debug(f"Job {job.hash} vanished during the poll, skipping")
                    self.detail_cache.invalidate(job.hash)
                    continue
                present.append(job.hash)
                items.append(item)
        finally:
            self.detail_cache.end_poll(present)

        return items

    def _build_item(self, proxy: TorrentClientProxy, job: RemoteJob, policy: GlobalPolicy) -> DownloadItem:
        lifecycle = self.normalizer.normalize(job, dht_enabled=policy.dht_enabled)
        if not lifecycle.is_completed:
            self.detail_cache.invalidate(job.hash)

        decision = self._evaluate_seeding(proxy, job, lifecycle, policy)
        output_path, output_path_final = self._provisional_output_path(job)

        return DownloadItem(
            download_id=job.hash.upper(),
            title=job.name,
            lifecycle=lifecycle,
            client_name=self.name,
            category=job.effective_category,
            total_size=job.size,
            remaining_size=self.normalizer.remaining_size(job),
            remaining_time=self.normalizer.remaining_time(job, lifecycle),
            seed_ratio=job.ratio,
            output_path=output_path,
            output_path_final=output_path_final,
            can_be_removed=decision.can_be_removed,
            can_move_files=decision.can_move_files,
        )

    def _evaluate_seeding(self, proxy, job, lifecycle, policy) -> SeedingDecision:
        def seeding_time_lookup() -> Optional[int]:
            return self._get_job_detail(proxy, job.hash, job.state).seeding_time

        try:
            decision = self.evaluator.evaluate(job, lifecycle, policy, seeding_time_lookup)
        except JobNotFoundError:
            raise
        except DownloadClientError as exc:
            self.logger.warning(f"Unable to read seeding details for {job.name}: {exc}")
            return NOT_REMOVABLE

        if decision.can_be_removed:
            self.logger.debug(f"{job.name} reached its {decision.reached_limit} limit")
        return decision

    def _get_job_detail(self, proxy: TorrentClientProxy, job_id: str, state_token: Optional[str] = None) -> JobDetail:
        return self.detail_cache.get_or_fetch(
            job_id, state_token, lambda: proxy.get_job_detail(job_id)
        )

    def _provisional_output_path(self, job: RemoteJob):
        if job.content_path and not same_remote_path(job.content_path, job.save_path):
            return self.path_mapper.to_local(job.content_path), True
        if not job.save_path:
            return None, False
        provisional = self.resolver.provisional(job.save_path, job.name)
        return self.path_mapper.to_local(provisional), False

    def get_import_item(self, item: DownloadItem) -> DownloadItem:
        """
        Resolve the final output path of one item from its file listing.

        Raises:
            JobNotFoundError: If the job no longer exists
        """
        if item.output_path_final:
            return item

        proxy = self._get_proxy()
        detail = self._get_job_detail(proxy, item.download_id)
        output_path = self.resolver.resolve(detail.save_path, item.title, detail.files)
        return replace(item, output_path=self.path_mapper.to_local(output_path), output_path_final=True)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def download(self, release: ReleaseInfo) -> str:
        """
        Hand a release to qBittorrent.

        Returns:
            Upper-case info hash of the new job

        Raises:
            ReleaseRejectedError: Trackerless magnet while DHT is disabled
            ReleaseDownloadError: Fetching or submitting the release failed
        """
        proxy = self._get_proxy()
        if is_magnet_link(release.download_url):
            return self._add_magnet(proxy, release, release.download_url)
        return self._add_from_url(proxy, release, release.download_url)

    def _add_magnet(self, proxy: TorrentClientProxy, release: ReleaseInfo, magnet_url: str) -> str:
        magnet = parse_magnet_link(magnet_url)
        if magnet is None:
            raise ReleaseDownloadError(release.title, "Magnet link does not contain a BitTorrent info hash")

        policy = proxy.get_global_policy()
        if not policy.dht_enabled and not magnet.has_trackers:
            raise ReleaseRejectedError(
                release.title, "Magnet links without trackers are not supported if DHT is disabled"
            )

        try:
            proxy.add_from_url(magnet_url, release.seed_configuration)
        except DownloadClientError as exc:
            raise ReleaseDownloadError(release.title, f"qBittorrent refused the magnet link: {exc}") from exc

        return self._after_submit(proxy, release, magnet.info_hash)

    def _add_from_url(self, proxy: TorrentClientProxy, release: ReleaseInfo, url: str) -> str:
        current = url
        for _ in range(self.MAX_REDIRECTS + 1):
            try:
                response = self.fetcher.get(current)
            except ClientConnectionError as exc:
                raise ReleaseDownloadError(release.title, f"Downloading torrent file failed: {exc}") from exc

            if response.is_redirect:
                location = response.location.strip()
                if is_magnet_link(location):
                    self.logger.debug(f"{current} redirected to a magnet link")
                    return self._add_magnet(proxy, release, location)
                current = urljoin(current, location)
                self.logger.debug(f"Following redirect for torrent payload: {current}")
                continue

            if not response.is_success:
                raise ReleaseDownloadError(
                    release.title, f"Downloading torrent file failed with HTTP {response.status_code}"
                )

            body = response.content.strip()
            if body[:7].lower() == b"magnet:":
                return self._add_magnet(proxy, release, body.decode("utf-8", "replace"))
            return self._add_torrent_file(proxy, release, response.content)

        raise ReleaseDownloadError(release.title, f"Too many redirects fetching {url}")

    def _add_torrent_file(self, proxy: TorrentClientProxy, release: ReleaseInfo, content: bytes) -> str:
        info_hash = hash_from_torrent_bytes(content)
        if not info_hash:
            raise ReleaseDownloadError(release.title, "Downloaded file is not a valid torrent")

        filename = f"{self.resolver.sanitizer.sanitize(release.title)}.torrent"
        try:
            proxy.add_from_file(filename, content, release.seed_configuration)
        except DownloadClientError as exc:
            raise ReleaseDownloadError(release.title, f"qBittorrent refused the torrent file: {exc}") from exc

        return self._after_submit(proxy, release, info_hash)

    def _after_submit(self, proxy: TorrentClientProxy, release: ReleaseInfo, info_hash: str) -> str:
        job_id = info_hash.upper()
        expected = normalize_info_hash(release.info_hash)
        if expected and expected != info_hash.lower():
            self.logger.warning(
                f"{release.title}: indexer reported info hash {expected.upper()}, release resolved to {job_id}"
            )

        if not self._wait_for_job(proxy, job_id):
            self.logger.debug(f"{release.title} not visible in qBittorrent yet, skipping follow-up calls")
            return job_id

        if self.settings.priority_for(release.is_recent) is QueuePriority.FIRST:
            self._try_secondary(
                lambda: proxy.set_top_priority(job_id),
                f"Failed to set the torrent priority for {release.title}",
            )

        if self.settings.initial_state is InitialState.FORCE_START:
            self._try_secondary(
                lambda: proxy.set_force_start(job_id),
                f"Failed to force start {release.title}",
            )

        return job_id

    def _wait_for_job(self, proxy: TorrentClientProxy, job_id: str) -> bool:
        for attempt in range(max(self.job_loaded_attempts, 1)):
            try:
                if proxy.is_job_loaded(job_id):
                    return True
            except ClientConnectionError as exc:
                self.logger.debug(f"Checking whether {job_id} is loaded failed: {exc}")
            if attempt + 1 < self.job_loaded_attempts and self.job_loaded_interval > 0:
                self._sleep(self.job_loaded_interval)
        return False

    def _try_secondary(self, call: Callable[[], None], message: str) -> bool:
        try:
            call()
        except DownloadClientError as exc:
            self.logger.warning(f"{message}: {exc}")
            return False
        return True

    # ------------------------------------------------------------------
    # Post-import housekeeping
    # ------------------------------------------------------------------
    def remove_item(self, download_id: str, delete_data: bool = False) -> None:
        proxy = self._get_proxy()
        try:
            proxy.remove_job(download_id, delete_data)
        except JobNotFoundError:
            self.logger.debug(f"{download_id} already removed from qBittorrent")
        finally:
            self.detail_cache.invalidate(download_id)

    def mark_item_as_imported(self, item: DownloadItem) -> None:
        category = self.settings.imported_category
        if not category:
            return

        proxy = self._get_proxy()
        self._try_secondary(
            lambda: proxy.set_category(item.download_id, category),
            f"Failed to set post-import category '{category}' for {item.title}",
        )

    # ------------------------------------------------------------------
    # Status and health
    # ------------------------------------------------------------------
    def get_status(self) -> ClientStatus:
        proxy = self._get_proxy()
        policy = proxy.get_global_policy()
        output_root = policy.save_path

        if self.settings.category:
            category = proxy.get_categories().get(self.settings.category)
            if category and category.save_path:
                category_path = remote_path(category.save_path)
                if category_path.is_absolute() or not output_root:
                    output_root = format_remote_path(category_path)
                else:
                    output_root = format_remote_path(remote_path(output_root) / category_path)

        folders = [self.path_mapper.to_local(output_root)] if output_root else []
        return ClientStatus(is_localhost=self.settings.is_localhost, output_root_folders=folders)

    def test(self) -> bool:
        """Force a fresh probe and verify the backend is usable; see ``last_error``."""
        self.last_error = None
        try:
            proxy = self._get_proxy(force=True)
            self._test_connection(proxy)
            self._test_categories(proxy)
            proxy.list_jobs()
            version = proxy.get_version()
        except ClientAuthenticationError as exc:
            self.last_error = f"Authentication failure: {exc}"
        except ClientConnectionError as exc:
            self.last_error = f"Unable to connect to qBittorrent: {exc}"
        except DownloadClientError as exc:
            self.last_error = str(exc)

        if self.last_error:
            self.logger.error(f"qBittorrent test failed: {self.last_error}")
            return False

        self.logger.info(f"qBittorrent {version} test succeeded for {self.settings.base_url}")
        return True

    def _test_connection(self, proxy: TorrentClientProxy) -> None:
        version = proxy.get_api_version()
        if version < self.MIN_API_VERSION:
            raise UnsupportedClientError(
                f"qBittorrent API {format_api_version(version)} is too old, "
                f"{format_api_version(self.MIN_API_VERSION)} or later is required"
            )
        if self.settings.category and version < self.CATEGORY_API_VERSION:
            raise UnsupportedClientError(
                f"qBittorrent API {format_api_version(version)} does not support categories, "
                f"{format_api_version(self.CATEGORY_API_VERSION)} or later is required"
            )

        policy = proxy.get_global_policy()
        if policy.max_ratio_action.removes_torrent and (
            policy.max_ratio_enabled or policy.max_seeding_time_enabled
        ):
            raise UnsupportedClientError(
                "qBittorrent is configured to remove torrents when they reach their share limit"
            )

    def _test_categories(self, proxy: TorrentClientProxy) -> None:
        if proxy.get_api_version() < self.CATEGORY_MANAGEMENT_API_VERSION:
            return

        wanted = [c for c in (self.settings.category, self.settings.imported_category) if c]
        if not wanted:
            return

        existing = proxy.get_categories()
        for category in wanted:
            if category in existing:
                continue
            try:
                proxy.create_category(category)
            except BackendRefusedError as exc:
                # 409: the category exists but this API version cannot list it
                if exc.status_code != 409:
                    raise
            else:
                self.logger.info(f"Created qBittorrent category '{category}'")

    def close(self) -> None:
        self.selector.invalidate(self.settings)
        self.fetcher.close()
