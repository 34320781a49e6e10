from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

import aiohttp

from oms_mirror.mirror.errors import MalformedPayload, NetworkFailure

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin aiohttp wrapper that reports every failure as a mirror error."""

    def __init__(self, *, timeout_seconds: float):
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json_body: Any = None,
    ) -> bytes:
        logger.debug("http.request method=%s url=%s", method, url)
        try:
            async with self._get_session().request(method, url, params=params, json=json_body) as response:
                body = await response.read()
                if response.status < 200 or response.status >= 300:
                    raise NetworkFailure(
                        f"{method} {url} returned status {response.status}",
                        status=response.status,
                    )
                return body
        except asyncio.TimeoutError as e:
            raise NetworkFailure(f"{method} {url} timed out") from e
        except aiohttp.ClientError as e:
            raise NetworkFailure(f"{method} {url} failed: {e}") from e

    async def get_json(self, url: str, *, params: Optional[Mapping[str, str]] = None) -> Any:
        body = await self._request("GET", url, params=params)
        return decode_json(body, url)

    async def get_bytes(self, url: str) -> bytes:
        return await self._request("GET", url)

    async def patch_json(self, url: str, payload: Any, *, params: Optional[Mapping[str, str]] = None) -> Any:
        body = await self._request("PATCH", url, params=params, json_body=payload)
        return decode_json(body, url)


def decode_json(body: bytes, url: str) -> Any:
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayload(f"Response from {url} is not valid JSON: {e}") from e
