import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fakes import make_items, make_stock

from oms_mirror.mirror.datasets import ITEMS, STOCK
from oms_mirror.mirror.errors import MalformedPayload, StorageUnavailable
from oms_mirror.mirror.models import SyncMarker
from oms_mirror.mirror.store import SqliteMirrorStore, close_stores, open_store


class SqliteMirrorStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "mirror" / "mirror.sqlite3"
        self.store = await open_store(self.db_path)

    async def asyncTearDown(self) -> None:
        await close_stores()
        self._tmp.cleanup()

    async def test_open_store_is_shared_between_concurrent_callers(self) -> None:
        other_path = Path(self._tmp.name) / "other.sqlite3"
        first, second = await asyncio.gather(open_store(other_path), open_store(other_path))
        self.assertIs(first, second)
        self.assertIs(await open_store(self.db_path), self.store)

    async def test_cancelled_open_fails_waiters_with_storage_unavailable(self) -> None:
        gate = asyncio.Event()
        slow_path = Path(self._tmp.name) / "slow.sqlite3"

        async def slow_open(path):
            await gate.wait()

        with mock.patch.object(SqliteMirrorStore, "open", new=slow_open):
            first = asyncio.create_task(open_store(slow_path))
            await asyncio.sleep(0)
            waiter = asyncio.create_task(open_store(slow_path))
            await asyncio.sleep(0)
            first.cancel()

            with self.assertRaises(asyncio.CancelledError):
                await first
            with self.assertRaises(StorageUnavailable):
                await waiter

        reopened = await open_store(slow_path)
        self.assertEqual(await reopened.read_dataset("items"), [])

    async def test_open_store_fails_when_location_is_unusable(self) -> None:
        blocker = Path(self._tmp.name) / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        with self.assertRaises(StorageUnavailable):
            await open_store(blocker / "mirror.sqlite3")

    async def test_empty_namespace_reads_as_empty_list(self) -> None:
        self.assertEqual(await self.store.read_dataset("items"), [])
        self.assertIsNone(await self.store.read_sync_marker("items"))
        self.assertIsNone(await self.store.read_cached_asset("logo"))

    async def test_replace_keeps_payload_order_and_namespaces_apart(self) -> None:
        items = list(reversed(make_items(4)))
        await self.store.replace_dataset("items", items, key=ITEMS.key)
        await self.store.replace_dataset("stock", make_stock(2), key=STOCK.key)

        self.assertEqual(await self.store.read_dataset("items"), items)
        self.assertEqual(len(await self.store.read_dataset("stock")), 2)

        await self.store.replace_dataset("items", make_items(1), key=ITEMS.key)
        self.assertEqual(await self.store.read_dataset("items"), make_items(1))
        self.assertEqual(len(await self.store.read_dataset("stock")), 2)

    async def test_get_record_by_key(self) -> None:
        await self.store.replace_dataset("stock", make_stock(3), key=STOCK.key)
        record = await self.store.get_record("stock", "KT10-NAVYBLUE-31")
        self.assertEqual(record["stock"], 2)
        self.assertIsNone(await self.store.get_record("stock", "missing"))

    async def test_failed_replace_leaves_previous_dataset(self) -> None:
        await self.store.replace_dataset("items", make_items(10), key=ITEMS.key)
        broken = [{"Barcode": "1"}, {"Barcode": "2", "blob": object()}, {"Barcode": "3"}]

        with self.assertRaises(MalformedPayload):
            await self.store.replace_dataset("items", broken, key=ITEMS.key)

        self.assertEqual(await self.store.read_dataset("items"), make_items(10))

    async def test_sync_marker_is_upserted(self) -> None:
        await self.store.write_sync_marker("stock", SyncMarker(freshness_token=100, force_flag=True))
        await self.store.write_sync_marker("stock", SyncMarker(freshness_token=150))

        marker = await self.store.read_sync_marker("stock")
        self.assertEqual(marker.freshness_token, 150)
        self.assertFalse(marker.force_flag)
        self.assertTrue(marker.synced_at)

    async def test_data_survives_reopen(self) -> None:
        await self.store.replace_dataset("items", make_items(2), key=ITEMS.key)
        await self.store.write_sync_marker("items", SyncMarker(freshness_token="2024-01-01"))
        await self.store.write_cached_asset("logo", b"\x89PNG", "https://cdn.example/logo.png")
        await close_stores()

        reopened = await open_store(self.db_path)

        self.assertIsNot(reopened, self.store)
        self.assertEqual(await reopened.read_dataset("items"), make_items(2))
        self.assertEqual((await reopened.read_sync_marker("items")).freshness_token, "2024-01-01")
        asset = await reopened.read_cached_asset("logo")
        self.assertEqual(asset.blob, b"\x89PNG")
        self.assertEqual(asset.source_url, "https://cdn.example/logo.png")

    async def test_records_without_key_are_kept(self) -> None:
        records = [{"style": "", "color": "Red", "size": "M", "stock": 1}, {"style": "A", "color": "B", "size": "C"}]
        await self.store.replace_dataset("stock", records, key=STOCK.key)
        self.assertEqual(await self.store.read_dataset("stock"), records)


if __name__ == "__main__":
    unittest.main()
