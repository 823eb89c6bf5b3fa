import hashlib
from unittest.mock import MagicMock

import pytest

from services.download_clients.exceptions import (
    BackendRefusedError,
    ClientAuthenticationError,
    ClientConnectionError,
    DownloadClientError,
    JobNotFoundError,
    ReleaseDownloadError,
    ReleaseRejectedError,
)
from services.download_clients.models import (
    CategoryInfo,
    GlobalPolicy,
    JobDetail,
    LifecycleStatus,
    MaxRatioAction,
    ReleaseInfo,
    RemoteFile,
)
from services.download_clients.qbittorrent_settings import (
    InitialState,
    PathMapping,
    QBittorrentSettings,
    QueuePriority,
)
from services.download_management.release_fetcher import ReleaseResponse

HASH = "CBC2F069FE8BB2F544EAE707D75BCD3DE9DCF951"
BASE32_HASH = "ZPBPA2P6ROZPKRHK44D5OW6NHXU5Z6KR"
TRACKERLESS_MAGNET = f"magnet:?xt=urn:btih:{BASE32_HASH}&dn=Droned"
TRACKED_MAGNET = f"magnet:?xt=urn:btih:{BASE32_HASH}&tr=udp://tracker.example.com:80&dn=Droned"
TORRENT_INFO = b"d6:lengthi1000e4:name6:Dronede"
TORRENT_FILE = b"d8:announce19:http://tracker.test4:info" + TORRENT_INFO + b"e"


def _release(url, **overrides):
    values = {"title": "Droned.S01E01", "download_url": url}
    values.update(overrides)
    return ReleaseInfo(**values)


# ----------------------------------------------------------------------
# Polling
# ----------------------------------------------------------------------
def test_items_are_normalized(proxy_factory, make_service, make_job):
    proxy = proxy_factory(jobs=[
        make_job(state="downloading", progress=0.5, eta=60, content_path=None),
        make_job(hash="aa" * 20, name="Done", state="uploading", progress=1.0, content_path="/downloads/tv/Done.mkv"),
    ])
    service = make_service(proxy)

    downloading, uploading = service.get_items()

    assert downloading.download_id == HASH
    assert downloading.status is LifecycleStatus.DOWNLOADING
    assert downloading.remaining_size == 500
    assert downloading.remaining_time.total_seconds() == 60
    assert downloading.output_path == "/downloads/tv/Droned.S01E01.Pilot.1080p.WEB-DL-DRONE"
    assert not downloading.output_path_final

    assert uploading.download_id == "AA" * 20
    assert uploading.status is LifecycleStatus.COMPLETED
    assert uploading.output_path == "/downloads/tv/Done.mkv"
    assert uploading.output_path_final
    assert not uploading.can_be_removed


def test_detail_fetched_once_across_polls(proxy_factory, make_service, make_job):
    job = make_job(state="pausedUP", ratio_limit=-1, seeding_time_limit=20)
    proxy = proxy_factory(
        jobs=[job],
        details={HASH: JobDetail(hash=HASH, save_path="/downloads/tv", seeding_time=1200)},
    )
    service = make_service(proxy)

    first = service.get_items()
    second = service.get_items()

    assert first[0].can_be_removed and second[0].can_be_removed
    assert proxy.calls["get_job_properties"] == 1
    assert proxy.calls["get_global_policy"] == 2


def test_detail_refetched_after_job_leaves_listing(proxy_factory, make_service, make_job):
    job = make_job(state="pausedUP", ratio_limit=-1, seeding_time_limit=20)
    proxy = proxy_factory(
        jobs=[job],
        details={HASH: JobDetail(hash=HASH, seeding_time=10)},
    )
    service = make_service(proxy)

    service.get_items()
    proxy.jobs = []
    service.get_items()
    proxy.jobs = [job]
    service.get_items()

    assert proxy.calls["get_job_properties"] == 2


def test_vanished_job_is_skipped(proxy_factory, make_service, make_job):
    gone = make_job(hash="bb" * 20, state="pausedUP", ratio_limit=-1, seeding_time_limit=20)
    kept = make_job(state="downloading", progress=0.1)
    proxy = proxy_factory(jobs=[gone, kept])
    service = make_service(proxy)

    items = service.get_items()

    assert [item.download_id for item in items] == [HASH]


def test_seeding_detail_failure_is_not_fatal(proxy_factory, make_service, make_job, mock_logger):
    job = make_job(state="pausedUP", ratio_limit=-1, seeding_time_limit=20)
    proxy = proxy_factory(jobs=[job], details={HASH: JobDetail(hash=HASH, seeding_time=5000)})
    proxy.failures["get_job_properties"] = ClientConnectionError("timeout")
    service = make_service(proxy)

    items = service.get_items()

    assert len(items) == 1
    assert not items[0].can_be_removed
    mock_logger.warning.assert_called_once()


def test_backend_error_on_one_job_keeps_the_rest(proxy_factory, make_service, make_job, mock_logger):
    seeding = make_job(hash="bb" * 20, name="Seeded", state="pausedUP", ratio_limit=-1, seeding_time_limit=20)
    downloading = make_job(state="downloading", progress=0.1)
    proxy = proxy_factory(jobs=[seeding, downloading])
    proxy.failures["get_job_properties"] = DownloadClientError("qBittorrent properties failed: 500")
    service = make_service(proxy)

    items = service.get_items()

    assert [item.download_id for item in items] == ["BB" * 20, HASH]
    assert not items[0].can_be_removed
    mock_logger.warning.assert_called_once()


def test_listing_failure_propagates(proxy_factory, make_service):
    proxy = proxy_factory()
    proxy.failures["list_jobs"] = ClientConnectionError("down")
    service = make_service(proxy)

    with pytest.raises(ClientConnectionError):
        service.get_items()


def test_import_item_resolves_from_files(proxy_factory, make_service, make_job):
    settings = QBittorrentSettings(category="tv", path_mappings=(PathMapping("/downloads", "/mnt/downloads"),))
    job = make_job(state="pausedUP", content_path=None)
    proxy = proxy_factory(
        settings=settings,
        jobs=[job],
        details={HASH: JobDetail(
            hash=HASH,
            save_path="/downloads/tv",
            files=(RemoteFile("Droned.S01/E01.mkv"), RemoteFile("Droned.S01/E02.mkv")),
        )},
    )
    service = make_service(proxy)
    item = service.get_items()[0]

    import_item = service.get_import_item(item)

    assert import_item.output_path_final
    assert import_item.output_path.replace("\\", "/") == "/mnt/downloads/tv/Droned.S01"


def test_import_item_with_final_path_skips_lookup(proxy_factory, make_service, make_job):
    proxy = proxy_factory(jobs=[make_job(content_path="/downloads/tv/Droned.mkv")])
    service = make_service(proxy)
    item = service.get_items()[0]

    assert service.get_import_item(item) is item
    assert proxy.calls["get_job_files"] == 0


# ----------------------------------------------------------------------
# Submission
# ----------------------------------------------------------------------
def test_trackerless_magnet_rejected_without_dht(proxy_factory, make_service):
    proxy = proxy_factory(policy=GlobalPolicy(dht_enabled=False))
    service = make_service(proxy)

    with pytest.raises(ReleaseRejectedError) as excinfo:
        service.download(_release(TRACKERLESS_MAGNET))

    assert "Magnet links without trackers are not supported if DHT is disabled" in str(excinfo.value)
    assert proxy.calls["add_from_url"] == 0


def test_magnet_with_tracker_accepted_without_dht(proxy_factory, make_service):
    proxy = proxy_factory(policy=GlobalPolicy(dht_enabled=False))
    service = make_service(proxy)

    download_id = service.download(_release(TRACKED_MAGNET))

    assert download_id == HASH
    assert proxy.added == [("url", TRACKED_MAGNET, None)]


def test_indexer_hash_mismatch_is_logged(proxy_factory, make_service, mock_logger):
    proxy = proxy_factory()
    service = make_service(proxy)

    download_id = service.download(_release(TRACKED_MAGNET, info_hash="aa" * 20))

    assert download_id == HASH
    mock_logger.warning.assert_called_once()
    assert "AA" * 20 in mock_logger.warning.call_args.args[0]


def test_indexer_hash_in_base32_matches(proxy_factory, make_service, mock_logger):
    proxy = proxy_factory()
    service = make_service(proxy)

    assert service.download(_release(TRACKED_MAGNET, info_hash=BASE32_HASH)) == HASH
    mock_logger.warning.assert_not_called()


def test_trackerless_magnet_accepted_with_dht(proxy_factory, make_service):
    proxy = proxy_factory(policy=GlobalPolicy(dht_enabled=True))
    service = make_service(proxy)

    assert service.download(_release(TRACKERLESS_MAGNET)) == HASH


def test_priority_failure_keeps_download_id(proxy_factory, make_service, mock_logger):
    settings = QBittorrentSettings(recent_priority=QueuePriority.FIRST)
    proxy = proxy_factory(settings=settings)
    proxy.failures["set_top_priority"] = BackendRefusedError("queueing disabled", status_code=409)
    service = make_service(proxy)

    download_id = service.download(_release(TRACKED_MAGNET, is_recent=True))

    assert download_id == HASH
    assert mock_logger.warning.call_count == 1


def test_older_priority_used_for_old_releases(proxy_factory, make_service):
    settings = QBittorrentSettings(recent_priority=QueuePriority.FIRST, older_priority=QueuePriority.LAST)
    proxy = proxy_factory(settings=settings)
    service = make_service(proxy)

    service.download(_release(TRACKED_MAGNET, is_recent=False))

    assert proxy.calls["set_top_priority"] == 0


def test_force_start_after_submission(proxy_factory, make_service):
    proxy = proxy_factory(settings=QBittorrentSettings(initial_state=InitialState.FORCE_START))
    service = make_service(proxy)

    service.download(_release(TRACKED_MAGNET))

    assert proxy.calls["set_force_start"] == 1


def test_follow_up_skipped_when_job_never_appears(proxy_factory, make_service):
    proxy = proxy_factory(settings=QBittorrentSettings(initial_state=InitialState.FORCE_START))
    proxy.loaded = False
    service = make_service(proxy, job_loaded_attempts=3)

    assert service.download(_release(TRACKED_MAGNET)) == HASH
    assert proxy.calls["is_job_loaded"] == 3
    assert proxy.calls["set_force_start"] == 0


def test_torrent_file_submission(proxy_factory, make_service):
    proxy = proxy_factory()
    fetcher = MagicMock()
    fetcher.get.return_value = ReleaseResponse("http://indexer/1.torrent", 200, {}, TORRENT_FILE)
    service = make_service(proxy, fetcher=fetcher)

    download_id = service.download(_release("http://indexer/1.torrent", title="Droned: S01/E01"))

    assert download_id == hashlib.sha1(TORRENT_INFO).hexdigest().upper()
    assert proxy.added == [("file", "Droned S01+E01.torrent", TORRENT_FILE)]


def test_redirect_to_magnet(proxy_factory, make_service):
    proxy = proxy_factory()
    fetcher = MagicMock()
    fetcher.get.return_value = ReleaseResponse(
        "http://indexer/1.torrent", 302, {"Location": TRACKED_MAGNET}
    )
    service = make_service(proxy, fetcher=fetcher)

    assert service.download(_release("http://indexer/1.torrent")) == HASH
    assert proxy.added == [("url", TRACKED_MAGNET, None)]


def test_relative_redirect_is_followed(proxy_factory, make_service):
    proxy = proxy_factory()
    fetcher = MagicMock()
    fetcher.get.side_effect = [
        ReleaseResponse("http://indexer/dl/1", 301, {"location": "/files/1.torrent"}),
        ReleaseResponse("http://indexer/files/1.torrent", 200, {}, TORRENT_FILE),
    ]
    service = make_service(proxy, fetcher=fetcher)

    service.download(_release("http://indexer/dl/1"))

    assert fetcher.get.call_args_list[1].args[0] == "http://indexer/files/1.torrent"
    assert proxy.calls["add_from_file"] == 1


def test_http_error_fetching_torrent(proxy_factory, make_service):
    fetcher = MagicMock()
    fetcher.get.return_value = ReleaseResponse("http://indexer/1.torrent", 404)
    service = make_service(proxy_factory(), fetcher=fetcher)

    with pytest.raises(ReleaseDownloadError):
        service.download(_release("http://indexer/1.torrent"))


def test_invalid_torrent_payload(proxy_factory, make_service):
    fetcher = MagicMock()
    fetcher.get.return_value = ReleaseResponse("http://indexer/1.torrent", 200, {}, b"<html>login</html>")
    service = make_service(proxy_factory(), fetcher=fetcher)

    with pytest.raises(ReleaseDownloadError):
        service.download(_release("http://indexer/1.torrent"))


# ----------------------------------------------------------------------
# Housekeeping
# ----------------------------------------------------------------------
def test_remove_missing_job_is_quiet(proxy_factory, make_service):
    proxy = proxy_factory()
    proxy.failures["remove_job"] = JobNotFoundError(HASH)
    service = make_service(proxy)

    service.remove_item(HASH, delete_data=True)

    assert proxy.calls["remove_job"] == 1


def test_mark_imported_sets_category(proxy_factory, make_service, make_job):
    proxy = proxy_factory(
        settings=QBittorrentSettings(category="tv", imported_category="tv-imported"),
        jobs=[make_job(state="downloading", progress=0.2)],
    )
    service = make_service(proxy)
    item = service.get_items()[0]

    service.mark_item_as_imported(item)

    assert proxy.category_changes == [(HASH, "tv-imported")]


def test_mark_imported_failure_is_warning(proxy_factory, make_service, make_job, mock_logger):
    proxy = proxy_factory(
        settings=QBittorrentSettings(imported_category="tv-imported"),
        jobs=[make_job(state="downloading", progress=0.2)],
    )
    proxy.failures["set_category"] = BackendRefusedError("nope", status_code=409)
    service = make_service(proxy)

    service.mark_item_as_imported(service.get_items()[0])

    mock_logger.warning.assert_called_once()


# ----------------------------------------------------------------------
# Status and test
# ----------------------------------------------------------------------
def test_status_with_unc_root_and_relative_category(proxy_factory, make_service):
    proxy = proxy_factory(
        policy=GlobalPolicy(save_path=r"\\server\share"),
        categories={"tv": CategoryInfo("tv", "tv")},
    )
    service = make_service(proxy)

    status = service.get_status()

    assert status.is_localhost
    assert status.output_root_folders == [r"\\server\share\tv"]


def test_status_with_absolute_category(proxy_factory, make_service):
    proxy = proxy_factory(
        policy=GlobalPolicy(save_path="/downloads"),
        categories={"tv": CategoryInfo("tv", "/mnt/tv")},
    )

    assert make_service(proxy).get_status().output_root_folders == ["/mnt/tv"]


def test_status_without_category_path(proxy_factory, make_service):
    proxy = proxy_factory(policy=GlobalPolicy(save_path="/downloads"))

    assert make_service(proxy).get_status().output_root_folders == ["/downloads"]


def test_connection_test_succeeds_and_creates_categories(proxy_factory, make_service):
    settings = QBittorrentSettings(category="tv", imported_category="tv-imported")
    proxy = proxy_factory(settings=settings, categories={"tv": CategoryInfo("tv")})
    service = make_service(proxy)

    assert service.test()
    assert service.last_error is None
    assert proxy.created_categories == ["tv-imported"]
    service.selector.get_proxy.assert_called_with(settings, force=True)


def test_connection_test_reports_backend_version(proxy_factory, make_service, mock_logger):
    proxy = proxy_factory()
    service = make_service(proxy)

    assert service.test()
    assert proxy.calls["get_version"] == 1
    messages = [call.args[0] for call in mock_logger.info.call_args_list]
    assert any("qBittorrent v4.6.0 test succeeded" in message for message in messages)


def test_connection_test_ignores_category_conflict(proxy_factory, make_service):
    proxy = proxy_factory()
    proxy.failures["create_category"] = BackendRefusedError("exists", status_code=409)

    assert make_service(proxy).test()


def test_connection_test_rejects_old_api(proxy_factory, make_service):
    proxy = proxy_factory(api_version=(1, 4))
    service = make_service(proxy)

    assert not service.test()
    assert "too old" in service.last_error


def test_connection_test_requires_category_support(proxy_factory, make_service):
    proxy = proxy_factory(api_version=(1, 5))
    service = make_service(proxy)

    assert not service.test()
    assert "categories" in service.last_error


def test_connection_test_rejects_removal_on_share_limit(proxy_factory, make_service):
    proxy = proxy_factory(policy=GlobalPolicy(max_ratio_enabled=True, max_ratio=1.0, max_ratio_action=MaxRatioAction.REMOVE))
    service = make_service(proxy)

    assert not service.test()
    assert "remove torrents" in service.last_error


def test_connection_test_reports_authentication(proxy_factory, make_service):
    proxy = proxy_factory()
    proxy.failures["get_api_version"] = ClientAuthenticationError("bad password")
    service = make_service(proxy)

    assert not service.test()
    assert service.last_error.startswith("Authentication failure")
