from __future__ import annotations

import logging
from typing import Optional

from oms_mirror.mirror.datasets import DatasetSpec
from oms_mirror.mirror.errors import MalformedPayload, MirrorError, NetworkFailure, StorageUnavailable
from oms_mirror.mirror.models import Notice, Record, RemoteMarker, SyncMarker, SyncResult
from oms_mirror.mirror.store import MirrorStore
from oms_mirror.remote.interfaces import RemoteSource

logger = logging.getLogger(__name__)


async def _read_local(store: MirrorStore, namespace: str) -> list[Record]:
    try:
        return await store.read_dataset(namespace)
    except StorageUnavailable as e:
        logger.warning("Failed to read local mirror dataset. namespace=%s error=%s", namespace, e)
        return []


async def _fallback(store: MirrorStore, namespace: str, error: Exception) -> SyncResult:
    records = await _read_local(store, namespace)
    if not records:
        notice = Notice.NO_DATA
    elif isinstance(error, MalformedPayload):
        notice = Notice.CACHED_MALFORMED
    else:
        notice = Notice.CACHED_NETWORK
    return SyncResult(records=records, synced=False, notice=notice, error=error)


def _as_mirror_error(namespace: str, stage: str, error: Exception) -> MirrorError:
    if isinstance(error, MirrorError):
        logger.warning("Mirror %s failed. namespace=%s error=%s", stage, namespace, error)
        return error
    logger.exception("Unexpected mirror %s error. namespace=%s", stage, namespace)
    return NetworkFailure(f"Unexpected {stage} error: {error}")


async def sync_dataset(
    store: MirrorStore,
    dataset: DatasetSpec,
    source: RemoteSource,
    *,
    force: bool = False,
) -> SyncResult:
    """Bring the local copy of dataset up to date with source and return it.

    The local dataset is replaced as a whole when no marker exists yet, when the
    dataset's comparator reports the remote token as fresher, when the remote
    raises its force flag, or when force is set by the caller. Every remote or
    payload failure degrades to whatever is stored locally.
    """
    namespace = dataset.namespace

    local_marker: Optional[SyncMarker]
    try:
        local_marker = await store.read_sync_marker(namespace)
    except StorageUnavailable as e:
        logger.warning("Failed to read sync marker; treating as absent. namespace=%s error=%s", namespace, e)
        local_marker = None

    remote_marker: RemoteMarker
    try:
        remote_marker = await source.check()
    except Exception as e:
        return await _fallback(store, namespace, _as_mirror_error(namespace, "freshness check", e))

    needs_sync = (
        force
        or local_marker is None
        or remote_marker.force_flag
        or dataset.comparator(local_marker.freshness_token, remote_marker.freshness_token)
    )
    if not needs_sync:
        logger.debug("Mirror dataset up to date. namespace=%s token=%s", namespace, remote_marker.freshness_token)
        return SyncResult(records=await _read_local(store, namespace))

    logger.info(
        "Mirror dataset stale; fetching. namespace=%s local_token=%s remote_token=%s force=%s",
        namespace,
        local_marker.freshness_token if local_marker else None,
        remote_marker.freshness_token,
        force or remote_marker.force_flag,
    )
    try:
        payload = await source.fetch()
        if not payload:
            raise MalformedPayload("Remote reported success but returned no records")
    except Exception as e:
        return await _fallback(store, namespace, _as_mirror_error(namespace, "fetch", e))

    try:
        await store.replace_dataset(namespace, payload, key=dataset.key)
    except StorageUnavailable as e:
        logger.warning("Failed to persist mirror dataset; serving fetched data. namespace=%s error=%s", namespace, e)
        return SyncResult(records=list(payload), synced=False, notice=Notice.NOT_PERSISTED, error=e)
    except MalformedPayload as e:
        return await _fallback(store, namespace, _as_mirror_error(namespace, "replace", e))

    marker_error: Optional[StorageUnavailable] = None
    try:
        await store.write_sync_marker(
            namespace,
            SyncMarker(freshness_token=remote_marker.freshness_token, force_flag=False),
        )
    except StorageUnavailable as e:
        # Next run will refetch; the dataset itself is already consistent.
        logger.warning("Failed to write sync marker. namespace=%s error=%s", namespace, e)
        marker_error = e

    if remote_marker.force_flag:
        try:
            await source.acknowledge_force()
        except Exception as e:
            _as_mirror_error(namespace, "force acknowledgement", e)

    records = await _read_local(store, namespace)
    logger.info("Mirror dataset synced. namespace=%s records=%d", namespace, len(records))
    if marker_error is not None:
        return SyncResult(records=records, synced=True, notice=Notice.NOT_PERSISTED, error=marker_error)
    return SyncResult(records=records, synced=True)
