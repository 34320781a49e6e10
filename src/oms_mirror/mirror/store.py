from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Sequence, Tuple

from oms_mirror.mirror.errors import MalformedPayload, StorageUnavailable
from oms_mirror.mirror.models import CacheRecord, Record, SyncMarker

logger = logging.getLogger(__name__)

KeyFunc = Callable[[Record], Optional[str]]

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS records (
        namespace TEXT NOT NULL,
        record_key TEXT NOT NULL,
        position INTEGER NOT NULL,
        payload TEXT NOT NULL,
        PRIMARY KEY (namespace, record_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_markers (
        namespace TEXT PRIMARY KEY,
        freshness_token TEXT NOT NULL,
        force_flag INTEGER NOT NULL DEFAULT 0,
        synced_at TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS assets (
        id TEXT PRIMARY KEY,
        blob BLOB NOT NULL,
        source_url TEXT NOT NULL,
        cached_at TEXT NOT NULL DEFAULT ''
    )
    """,
)


def utc_now_text() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def encode_records(records: Sequence[Any], key: Optional[KeyFunc]) -> Iterator[Tuple[str, int, str]]:
    """Yield (record_key, position, payload_json) rows.

    Rows are produced lazily, so a record that fails to encode aborts the write
    scope consuming them.
    """
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise MalformedPayload(f"Record at position {position} is not a mapping: {type(record).__name__}")
        record_key = key(record) if key else None
        if not record_key:
            record_key = f"#{position}"
        try:
            payload = json.dumps(record, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise MalformedPayload(f"Record at position {position} is not serializable: {e}") from e
        yield record_key, position, payload


class MirrorStore:
    """Durable namespace/key-value persistence for mirrored datasets."""

    durable = True

    async def replace_dataset(self, namespace: str, records: Sequence[Record], *, key: Optional[KeyFunc] = None) -> None:
        """Discard every record in namespace and insert records, atomically."""
        raise NotImplementedError

    async def read_dataset(self, namespace: str) -> list[Record]:
        raise NotImplementedError

    async def get_record(self, namespace: str, record_key: str) -> Optional[Record]:
        raise NotImplementedError

    async def read_sync_marker(self, namespace: str) -> Optional[SyncMarker]:
        raise NotImplementedError

    async def write_sync_marker(self, namespace: str, marker: SyncMarker) -> None:
        raise NotImplementedError

    async def read_cached_asset(self, asset_id: str) -> Optional[CacheRecord]:
        raise NotImplementedError

    async def write_cached_asset(self, asset_id: str, blob: bytes, source_url: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class SqliteMirrorStore(MirrorStore):
    def __init__(self, path: Path, connection: sqlite3.Connection):
        self.path = path
        self._conn = connection
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, path: str | Path) -> SqliteMirrorStore:
        db_path = Path(path)
        connection = await asyncio.to_thread(cls._connect, db_path)
        logger.info("Mirror store opened. path=%s", db_path)
        return cls(db_path, connection)

    @staticmethod
    def _connect(path: Path) -> sqlite3.Connection:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), check_same_thread=False)
            with conn:
                for statement in _SCHEMA:
                    conn.execute(statement)
            return conn
        except (OSError, sqlite3.Error) as e:
            raise StorageUnavailable(f"Cannot open mirror store at {path}: {e}") from e

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        async with self._lock:
            try:
                return await asyncio.to_thread(fn, *args)
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Mirror store operation failed: {e}") from e

    async def replace_dataset(self, namespace: str, records: Sequence[Record], *, key: Optional[KeyFunc] = None) -> None:
        if not isinstance(records, (list, tuple)):
            raise MalformedPayload(f"Dataset payload must be a list, got: {type(records).__name__}")
        await self._run(self._replace_sync, namespace, records, key)
        logger.info("Mirror dataset replaced. namespace=%s records=%d", namespace, len(records))

    def _replace_sync(self, namespace: str, records: Sequence[Record], key: Optional[KeyFunc]) -> None:
        rows = ((namespace, k, pos, payload) for k, pos, payload in encode_records(records, key))
        # Either every new row becomes visible or the old dataset stays.
        with self._conn:
            self._conn.execute("DELETE FROM records WHERE namespace = ?", (namespace,))
            self._conn.executemany(
                "INSERT OR REPLACE INTO records (namespace, record_key, position, payload) VALUES (?, ?, ?, ?)",
                rows,
            )

    async def read_dataset(self, namespace: str) -> list[Record]:
        rows = await self._run(self._fetchall, "SELECT payload FROM records WHERE namespace = ? ORDER BY position", (namespace,))
        return [json.loads(row[0]) for row in rows]

    async def get_record(self, namespace: str, record_key: str) -> Optional[Record]:
        rows = await self._run(
            self._fetchall,
            "SELECT payload FROM records WHERE namespace = ? AND record_key = ?",
            (namespace, record_key),
        )
        return json.loads(rows[0][0]) if rows else None

    async def read_sync_marker(self, namespace: str) -> Optional[SyncMarker]:
        rows = await self._run(
            self._fetchall,
            "SELECT freshness_token, force_flag, synced_at FROM sync_markers WHERE namespace = ?",
            (namespace,),
        )
        if not rows:
            return None
        token, force_flag, synced_at = rows[0]
        return SyncMarker(freshness_token=json.loads(token), force_flag=bool(force_flag), synced_at=synced_at)

    async def write_sync_marker(self, namespace: str, marker: SyncMarker) -> None:
        await self._run(
            self._execute,
            "INSERT OR REPLACE INTO sync_markers (namespace, freshness_token, force_flag, synced_at) VALUES (?, ?, ?, ?)",
            (namespace, json.dumps(marker.freshness_token), int(marker.force_flag), marker.synced_at or utc_now_text()),
        )

    async def read_cached_asset(self, asset_id: str) -> Optional[CacheRecord]:
        rows = await self._run(
            self._fetchall,
            "SELECT id, blob, source_url, cached_at FROM assets WHERE id = ?",
            (asset_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return CacheRecord(id=row[0], blob=bytes(row[1]), source_url=row[2], cached_at=row[3])

    async def write_cached_asset(self, asset_id: str, blob: bytes, source_url: str) -> None:
        await self._run(
            self._execute,
            "INSERT OR REPLACE INTO assets (id, blob, source_url, cached_at) VALUES (?, ?, ?, ?)",
            (asset_id, sqlite3.Binary(blob), source_url, utc_now_text()),
        )

    def _fetchall(self, sql: str, params: Iterable[Any]) -> list[tuple]:
        return self._conn.execute(sql, tuple(params)).fetchall()

    def _execute(self, sql: str, params: Iterable[Any]) -> None:
        with self._conn:
            self._conn.execute(sql, tuple(params))

    async def close(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._conn.close)


class MemoryMirrorStore(MirrorStore):
    """Session-only store used when durable storage is unavailable."""

    durable = False

    def __init__(self) -> None:
        self._datasets: Dict[str, Dict[str, Tuple[int, str]]] = {}
        self._markers: Dict[str, SyncMarker] = {}
        self._assets: Dict[str, CacheRecord] = {}

    async def replace_dataset(self, namespace: str, records: Sequence[Record], *, key: Optional[KeyFunc] = None) -> None:
        if not isinstance(records, (list, tuple)):
            raise MalformedPayload(f"Dataset payload must be a list, got: {type(records).__name__}")
        fresh = {k: (pos, payload) for k, pos, payload in encode_records(records, key)}
        self._datasets[namespace] = fresh

    async def read_dataset(self, namespace: str) -> list[Record]:
        rows = sorted(self._datasets.get(namespace, {}).values())
        return [json.loads(payload) for _, payload in rows]

    async def get_record(self, namespace: str, record_key: str) -> Optional[Record]:
        row = self._datasets.get(namespace, {}).get(record_key)
        return json.loads(row[1]) if row else None

    async def read_sync_marker(self, namespace: str) -> Optional[SyncMarker]:
        return self._markers.get(namespace)

    async def write_sync_marker(self, namespace: str, marker: SyncMarker) -> None:
        self._markers[namespace] = SyncMarker(
            freshness_token=marker.freshness_token,
            force_flag=marker.force_flag,
            synced_at=marker.synced_at or utc_now_text(),
        )

    async def read_cached_asset(self, asset_id: str) -> Optional[CacheRecord]:
        return self._assets.get(asset_id)

    async def write_cached_asset(self, asset_id: str, blob: bytes, source_url: str) -> None:
        self._assets[asset_id] = CacheRecord(id=asset_id, blob=bytes(blob), source_url=source_url, cached_at=utc_now_text())


_open_stores: Dict[str, asyncio.Future] = {}


async def open_store(path: str | Path) -> SqliteMirrorStore:
    """Return the process-wide store for path, opening it on first use.

    Concurrent first callers share a single initialization. A failed open is
    forgotten so a later call can retry.
    """
    store_key = str(Path(path).resolve())
    future = _open_stores.get(store_key)
    if future is not None:
        return await future

    future = asyncio.get_running_loop().create_future()
    _open_stores[store_key] = future
    try:
        store = await SqliteMirrorStore.open(store_key)
    except asyncio.CancelledError:
        _open_stores.pop(store_key, None)
        # Waiters degrade as on any other open failure.
        future.set_exception(StorageUnavailable(f"Opening mirror store at {store_key} was cancelled"))
        future.exception()
        raise
    except StorageUnavailable as e:
        _open_stores.pop(store_key, None)
        future.set_exception(e)
        future.exception()
        raise
    future.set_result(store)
    return store


async def close_stores() -> None:
    futures = list(_open_stores.values())
    _open_stores.clear()
    for future in futures:
        if future.done() and not future.cancelled() and future.exception() is None:
            await future.result().close()
