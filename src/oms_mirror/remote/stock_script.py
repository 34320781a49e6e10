from __future__ import annotations

import logging
from typing import Optional

from oms_mirror.config.models import StockSourceSettings
from oms_mirror.mirror.errors import MalformedPayload, NetworkFailure
from oms_mirror.mirror.models import Record, RemoteMarker
from oms_mirror.remote.http import HttpClient
from oms_mirror.remote.interfaces import RemoteSource

logger = logging.getLogger(__name__)


class StockScriptSource(RemoteSource):
    """Stock levels served by a spreadsheet web-app script.

    A single GET answers ``{"success": bool, "timestamp": ..., "data": [...]}``, so
    the payload captured by check() is what fetch() hands back.
    """

    def __init__(self, config: StockSourceSettings, http: HttpClient):
        self._config = config
        self._http = http
        self._pending: Optional[list[Record]] = None

    async def _load(self) -> tuple[RemoteMarker, list[Record]]:
        result = await self._http.get_json(self._config.script_url)
        if not isinstance(result, dict):
            raise MalformedPayload(f"Stock response is not an object: {type(result).__name__}")
        if not result.get("success"):
            raise NetworkFailure(f"Stock script reported failure: {result.get('message') or 'unknown error'}")
        timestamp = result.get("timestamp")
        if timestamp is None or timestamp == "":
            raise MalformedPayload("Stock response has no timestamp")
        data = result.get("data")
        if not isinstance(data, list):
            raise MalformedPayload(f"Stock data is not an array: {type(data).__name__}")
        return RemoteMarker(freshness_token=timestamp), data

    async def check(self) -> RemoteMarker:
        self._pending = None
        marker, data = await self._load()
        self._pending = data
        return marker

    async def fetch(self) -> list[Record]:
        if self._pending is None:
            _, data = await self._load()
        else:
            data, self._pending = self._pending, None
        logger.debug("stock.fetch_success count=%d", len(data))
        return data

    async def acknowledge_force(self) -> None:
        return None
