from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

from oms_mirror.config.models import AppConfig
from oms_mirror.mirror.assets import AssetCache
from oms_mirror.mirror.comparators import COMPARATORS
from oms_mirror.mirror.datasets import ITEMS, STOCK, DatasetSpec, stock_key
from oms_mirror.mirror.errors import StorageUnavailable
from oms_mirror.mirror.models import AssetResult, Record, SyncResult
from oms_mirror.mirror.store import MemoryMirrorStore, MirrorStore, open_store
from oms_mirror.mirror.sync import sync_dataset
from oms_mirror.remote.firebase import FirebaseItemSource
from oms_mirror.remote.http import HttpClient
from oms_mirror.remote.interfaces import RemoteSource
from oms_mirror.remote.stock_script import StockScriptSource

logger = logging.getLogger(__name__)


class MirrorService:
    """Entry point for pages that need the mirrored master data."""

    def __init__(
        self,
        config: AppConfig,
        *,
        store: Optional[MirrorStore] = None,
        sources: Optional[Mapping[str, RemoteSource]] = None,
        http: Optional[HttpClient] = None,
    ):
        self._config = config
        self._store = store
        self._http = http or HttpClient(timeout_seconds=config.http.timeout_seconds)
        self._sources: Dict[str, RemoteSource] = dict(sources) if sources is not None else {
            ITEMS.namespace: FirebaseItemSource(config.items, self._http),
            STOCK.namespace: StockScriptSource(config.stock, self._http),
        }
        self._datasets: Dict[str, DatasetSpec] = {
            ITEMS.namespace: replace(ITEMS, comparator=COMPARATORS[config.items.comparator]),
            STOCK.namespace: replace(STOCK, comparator=COMPARATORS[config.stock.comparator]),
        }
        self._assets: Optional[AssetCache] = None
        self._sync_tasks: Dict[str, asyncio.Task] = {}
        self._last_results: Dict[str, SyncResult] = {}
        self._start_lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._start_lock:
            if self._assets is not None:
                return
            if self._store is None:
                try:
                    self._store = await open_store(self._config.store.path)
                except StorageUnavailable as e:
                    logger.warning(
                        "Durable mirror store unavailable; using in-memory storage for this session. error=%s", e
                    )
                    self._store = MemoryMirrorStore()
            self._assets = AssetCache(self._store, self._http)

    @property
    def store(self) -> Optional[MirrorStore]:
        return self._store

    def _dataset(self, namespace: str) -> DatasetSpec:
        dataset = self._datasets.get(namespace)
        if dataset is None or namespace not in self._sources:
            raise ValueError(f"Unknown mirrored dataset: {namespace}")
        return dataset

    def last_result(self, namespace: str) -> Optional[SyncResult]:
        """The outcome of the most recent sync, for surfacing notices."""
        return self._last_results.get(namespace)

    async def refresh(self, namespace: str, *, force: bool = False) -> SyncResult:
        dataset = self._dataset(namespace)
        await self.start()
        assert self._store is not None
        result = await sync_dataset(self._store, dataset, self._sources[namespace], force=force)
        self._last_results[namespace] = result
        if result.notice is not None:
            logger.warning("Mirror notice. namespace=%s notice=%s", namespace, result.notice.value)
        return result

    async def force_resync(self, namespace: str) -> SyncResult:
        return await self.refresh(namespace, force=True)

    async def get_mirrored_data(self, namespace: str) -> list[Record]:
        """Return the local records now and refresh them in the background."""
        self._dataset(namespace)
        await self.start()
        assert self._store is not None
        try:
            records = await self._store.read_dataset(namespace)
        except StorageUnavailable as e:
            logger.warning("Failed to read local mirror dataset. namespace=%s error=%s", namespace, e)
            records = []
        self._schedule_sync(namespace)
        return records

    def _schedule_sync(self, namespace: str) -> None:
        task = self._sync_tasks.get(namespace)
        if task and not task.done():
            return
        task = asyncio.create_task(self.refresh(namespace))
        task.add_done_callback(_log_sync_task_result)
        self._sync_tasks[namespace] = task

    async def wait_for_background_syncs(self) -> None:
        tasks = [task for task in self._sync_tasks.values() if not task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stock_map(self) -> dict[str, Any]:
        """Stock level per normalized style-color-size key."""
        await self.start()
        assert self._store is not None
        try:
            records = await self._store.read_dataset(STOCK.namespace)
        except StorageUnavailable as e:
            logger.warning("Failed to read local stock levels. error=%s", e)
            return {}
        stock: dict[str, Any] = {}
        for record in records:
            if record.get("style") and record.get("color") and record.get("size"):
                stock[stock_key(record["style"], record["color"], record["size"])] = record.get("stock")
        return stock

    async def find_item(self, barcode: str) -> Optional[Record]:
        await self.start()
        assert self._store is not None
        try:
            return await self._store.get_record(ITEMS.namespace, str(barcode).strip())
        except StorageUnavailable as e:
            logger.warning("Failed to look up item. barcode=%s error=%s", barcode, e)
            return None

    async def load_asset(self, asset_id: str, url: Optional[str] = None) -> AssetResult:
        if url is None:
            url = self._config.assets.images.get(asset_id)
        if not url:
            raise ValueError(f"No source URL configured for asset: {asset_id}")
        await self.start()
        assert self._assets is not None
        return await self._assets.load(asset_id, url)

    async def close(self) -> None:
        await self.wait_for_background_syncs()
        await self._http.close()


def _log_sync_task_result(task: asyncio.Task) -> None:
    try:
        task.result()
    except asyncio.CancelledError:
        return
    except Exception:
        logger.exception("Background mirror sync failed.")
