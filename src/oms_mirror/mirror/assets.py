from __future__ import annotations

import logging
from typing import Optional

from oms_mirror.mirror.errors import MirrorError, StorageUnavailable
from oms_mirror.mirror.models import AssetResult
from oms_mirror.mirror.store import MirrorStore
from oms_mirror.remote.http import HttpClient

logger = logging.getLogger(__name__)


class AssetCache:
    """Binary assets (branding images, logos) cached by id and source URL."""

    def __init__(self, store: Optional[MirrorStore], http: HttpClient):
        self._store = store
        self._http = http
        self._warned_no_store = False

    def _warn_no_store(self) -> None:
        if self._warned_no_store:
            return
        self._warned_no_store = True
        logger.warning("No durable store for assets; every asset will be fetched from the network.")

    async def load(self, asset_id: str, url: str) -> AssetResult:
        store = self._store if self._store is not None and self._store.durable else None
        if store is None:
            self._warn_no_store()
        else:
            try:
                cached = await store.read_cached_asset(asset_id)
            except StorageUnavailable as e:
                logger.warning("Asset cache read failed. asset_id=%s error=%s", asset_id, e)
                cached = None
            if cached is not None and cached.source_url == url:
                logger.debug("assets.cache_hit asset_id=%s", asset_id)
                return AssetResult(asset_id=asset_id, data=cached.blob, from_cache=True)
            if cached is not None:
                logger.info("Asset source changed; refetching. asset_id=%s", asset_id)

        try:
            blob = await self._http.get_bytes(url)
        except MirrorError as e:
            logger.warning("Failed to load asset. asset_id=%s url=%s error=%s", asset_id, url, e)
            return AssetResult(asset_id=asset_id, fallback_url=url, error=e)

        if store is not None:
            try:
                await store.write_cached_asset(asset_id, blob, url)
            except StorageUnavailable as e:
                logger.warning("Asset cache write failed. asset_id=%s error=%s", asset_id, e)
        return AssetResult(asset_id=asset_id, data=blob)
