from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from oms_mirror.config import YamlConfigLoader
from oms_mirror.config.models import AppConfig, ConfigLoadRequest
from oms_mirror.logging import init_logging
from oms_mirror.mirror.datasets import DATASETS
from oms_mirror.mirror.service import MirrorService
from oms_mirror.mirror.store import close_stores

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oms-mirror", description="Local mirror of order-management master data")
    parser.add_argument(
        "--config",
        default="data/config/config.yaml",
        help="Path to config.yaml (default: data/config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")
    dataset_names = sorted(DATASETS)

    sync_parser = subparsers.add_parser("sync", help="Sync mirrored datasets if stale")
    sync_parser.add_argument("dataset", nargs="?", default="all", choices=[*dataset_names, "all"])

    show_parser = subparsers.add_parser("show", help="Sync a dataset if stale, then print its mirrored records")
    show_parser.add_argument("dataset", choices=dataset_names)
    show_parser.add_argument("--limit", type=int, default=20, help="Maximum records to print (default: 20)")

    force_parser = subparsers.add_parser("force-resync", help="Refetch a dataset regardless of freshness")
    force_parser.add_argument("dataset", choices=dataset_names)

    subparsers.add_parser("assets", help="Warm the cache for every configured image asset")

    return parser


async def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = YamlConfigLoader()
    request = ConfigLoadRequest(
        yaml_path=args.config,
    )
    return await loader.load(request)


async def _sync(service: MirrorService, args: argparse.Namespace) -> None:
    namespaces = sorted(DATASETS) if args.dataset == "all" else [args.dataset]
    for namespace in namespaces:
        result = await service.refresh(namespace)
        notice = result.notice.value if result.notice else "ok"
        print(f"{namespace}: records={len(result.records)} synced={result.synced} status={notice}")


async def _show(service: MirrorService, args: argparse.Namespace) -> None:
    result = await service.refresh(args.dataset)
    for record in result.records[: max(0, args.limit)]:
        print(json.dumps(record, ensure_ascii=False, sort_keys=True))
    if result.notice:
        print(f"({result.notice.value})", file=sys.stderr)


async def _force_resync(service: MirrorService, args: argparse.Namespace) -> None:
    result = await service.force_resync(args.dataset)
    notice = result.notice.value if result.notice else "ok"
    print(f"{args.dataset}: records={len(result.records)} synced={result.synced} status={notice}")


async def _assets(service: MirrorService, config: AppConfig) -> None:
    for asset_id in sorted(config.assets.images):
        result = await service.load_asset(asset_id)
        if result.data is None:
            print(f"{asset_id}: unavailable, falling back to {result.fallback_url}")
        else:
            source = "cache" if result.from_cache else "network"
            print(f"{asset_id}: {len(result.data)} bytes from {source}")


async def _main_async() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    config = await _load_config(args)
    init_logging(config.logging)
    logger.info("Starting mirror command. command=%s", args.command)

    service = MirrorService(config)
    try:
        if args.command == "sync":
            await _sync(service, args)
        elif args.command == "show":
            await _show(service, args)
        elif args.command == "force-resync":
            await _force_resync(service, args)
        elif args.command == "assets":
            await _assets(service, config)
    finally:
        await service.close()
        await close_stores()


def main() -> None:
    try:
        asyncio.run(_main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
