"""
Application Entry Point - Seedwarden

Command line front end for the qBittorrent reconciliation service: lists
normalized download items, resolves import paths, submits releases and runs
the poll loop.

Author: Seedwarden Development Team
"""

import argparse
import json
import logging
import sys
import time

from config.config import Config
from utils.logger import setup_logger

logger = logging.getLogger("Seedwarden")


def _print_json(payload):
    print(json.dumps(payload, indent=2, sort_keys=True))


def _find_item(service, download_id):
    wanted = download_id.upper()
    for item in service.get_items():
        if item.download_id == wanted:
            return item
    return None


def cmd_items(manager, args):
    items = manager.get_download_service().get_items()
    _print_json([item.to_dict() for item in items])
    return 0


def cmd_import_path(manager, args):
    service = manager.get_download_service()
    item = _find_item(service, args.download_id)
    if item is None:
        logger.error(f"No download with id {args.download_id}")
        return 1
    if item.status.value != "completed":
        logger.warning(f"{item.title} is not completed yet ({item.status.value})")

    import_item = service.get_import_item(item)
    _print_json(import_item.to_dict())
    return 0


def cmd_status(manager, args):
    status = manager.get_download_service().get_status()
    _print_json({
        'is_localhost': status.is_localhost,
        'output_root_folders': status.output_root_folders,
    })
    return 0


def cmd_test(manager, args):
    service = manager.get_download_service()
    if service.test():
        print("qBittorrent connection OK")
        return 0
    print(f"qBittorrent connection failed: {service.last_error}", file=sys.stderr)
    return 1


def cmd_download(manager, args):
    from services.download_clients import ReleaseInfo, SeedConfiguration

    seed_configuration = None
    if args.ratio is not None or args.seed_time is not None:
        seed_configuration = SeedConfiguration(ratio=args.ratio, seed_time=args.seed_time)

    release = ReleaseInfo(
        title=args.title,
        download_url=args.url,
        info_hash=args.info_hash,
        is_recent=args.recent,
        seed_configuration=seed_configuration,
    )
    download_id = manager.get_download_service().download(release)
    print(download_id)
    return 0


def cmd_remove(manager, args):
    manager.get_download_service().remove_item(args.download_id, delete_data=args.delete_data)
    return 0


def cmd_watch(manager, args):
    def report(items):
        for item in items:
            logger.info(
                f"{item.download_id} {item.status.value:<11} {item.title}"
                + (" (removable)" if item.can_be_removed else "")
            )

    monitor = manager.get_download_monitor(callback=report, interval=args.interval)
    if args.once:
        return 0 if monitor.poll_once() is not None else 1

    monitor.start()
    try:
        while monitor.running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping download monitor")
    return 0


def cmd_init_config(manager, args):
    config_service = manager.get_config_service()
    if config_service.write_default_config():
        print(f"Wrote default configuration to {config_service.config_file}")
        return 0
    return 1


def build_parser():
    parser = argparse.ArgumentParser(
        prog="seedwarden",
        description="Reconcile qBittorrent downloads with an import pipeline",
    )
    parser.add_argument('--config', default=None, help="INI configuration file")
    parser.add_argument('--log-level', default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('items', help="List normalized download items").set_defaults(func=cmd_items)

    import_parser = subparsers.add_parser('import-path', help="Resolve the final output path of one item")
    import_parser.add_argument('download_id')
    import_parser.set_defaults(func=cmd_import_path)

    subparsers.add_parser('status', help="Show output root folders").set_defaults(func=cmd_status)
    subparsers.add_parser('test', help="Test the qBittorrent connection").set_defaults(func=cmd_test)

    download_parser = subparsers.add_parser('download', help="Submit a magnet link or .torrent URL")
    download_parser.add_argument('title')
    download_parser.add_argument('url')
    download_parser.add_argument('--recent', action='store_true', help="Use the recent priority")
    download_parser.add_argument('--ratio', type=float, default=None, help="Seed ratio limit")
    download_parser.add_argument('--seed-time', type=int, default=None, help="Seed time limit in minutes")
    download_parser.add_argument('--info-hash', default=None, help="Info hash reported by the indexer")
    download_parser.set_defaults(func=cmd_download)

    remove_parser = subparsers.add_parser('remove', help="Remove a job from qBittorrent")
    remove_parser.add_argument('download_id')
    remove_parser.add_argument('--delete-data', action='store_true')
    remove_parser.set_defaults(func=cmd_remove)

    watch_parser = subparsers.add_parser('watch', help="Poll qBittorrent on an interval")
    watch_parser.add_argument('--interval', type=float, default=Config.MONITOR_INTERVAL)
    watch_parser.add_argument('--once', action='store_true', help="Run a single poll")
    watch_parser.set_defaults(func=cmd_watch)

    subparsers.add_parser('init-config', help="Write the default INI file").set_defaults(func=cmd_init_config)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    setup_logger(
        "Seedwarden",
        Config.LOG_FILE,
        level=args.log_level or Config.LOG_LEVEL,
        backend=Config.LOG_BACKEND,
        serialize=Config.LOG_SERIALIZE,
    )

    from services.download_clients.exceptions import DownloadClientError
    from services.service_manager import ServiceManager

    manager = ServiceManager(args.config)
    try:
        return args.func(manager, args)
    except DownloadClientError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        manager.shutdown()


if __name__ == '__main__':
    sys.exit(main())
