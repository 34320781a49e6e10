from __future__ import annotations

import logging
from typing import Any, Optional

from oms_mirror.config.models import ItemSourceSettings
from oms_mirror.mirror.errors import MalformedPayload
from oms_mirror.mirror.models import Record, RemoteMarker
from oms_mirror.remote.http import HttpClient
from oms_mirror.remote.interfaces import RemoteSource

logger = logging.getLogger(__name__)


class FirebaseItemSource(RemoteSource):
    """Item catalog published to a realtime database, read over its REST API.

    The metadata document is ``{"uploadDate": str, "manualSync": "Y" | "N"}``;
    the items document is an array of flat item records keyed by ``Barcode``.
    """

    def __init__(self, config: ItemSourceSettings, http: HttpClient):
        self._config = config
        self._http = http

    def _url(self, path: str) -> str:
        return f"{self._config.database_url.rstrip('/')}/{path.strip('/')}.json"

    def _params(self) -> Optional[dict[str, str]]:
        if self._config.auth_token:
            return {"auth": self._config.auth_token}
        return None

    async def check(self) -> RemoteMarker:
        meta = await self._http.get_json(self._url(self._config.metadata_path), params=self._params())
        if not isinstance(meta, dict) or not meta.get("uploadDate"):
            raise MalformedPayload(f"Item metadata missing uploadDate: {meta!r}")
        return RemoteMarker(
            freshness_token=str(meta["uploadDate"]),
            force_flag=str(meta.get("manualSync", "N")).upper() == "Y",
        )

    async def fetch(self) -> list[Record]:
        data: Any = await self._http.get_json(self._url(self._config.items_path), params=self._params())
        if isinstance(data, dict):
            # Sparse arrays come back as objects keyed by index.
            data = list(data.values())
        if not isinstance(data, list):
            raise MalformedPayload(f"Item payload is not an array: {type(data).__name__}")
        items = [item for item in data if item is not None]
        logger.debug("items.fetch_success count=%d", len(items))
        return items

    async def acknowledge_force(self) -> None:
        await self._http.patch_json(
            self._url(self._config.metadata_path),
            {"manualSync": "N"},
            params=self._params(),
        )
        logger.info("Item catalog manual sync acknowledged.")
