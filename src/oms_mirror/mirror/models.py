from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

FreshnessToken = Union[str, int, float]
Record = dict[str, Any]


@dataclass(frozen=True, slots=True)
class SyncMarker:
    """The freshness token last synced for one dataset (the "syncInfo" record)."""

    freshness_token: FreshnessToken
    force_flag: bool = False
    synced_at: str = ""


@dataclass(frozen=True, slots=True)
class RemoteMarker:
    """What a remote source reports about its current snapshot."""

    freshness_token: FreshnessToken
    force_flag: bool = False


@dataclass(frozen=True, slots=True)
class CacheRecord:
    id: str
    blob: bytes
    source_url: str
    cached_at: str = ""


class Notice(str, Enum):
    CACHED_NETWORK = "showing cached data"
    CACHED_MALFORMED = "remote answered with unusable data; showing cached data"
    NO_DATA = "no data available"
    NOT_PERSISTED = "fresh data could not be saved locally; offline copy may be stale"


@dataclass(slots=True)
class SyncResult:
    records: list[Record]
    synced: bool = False
    notice: Optional[Notice] = None
    error: Optional[Exception] = None


@dataclass(slots=True)
class AssetResult:
    asset_id: str
    data: Optional[bytes] = None
    fallback_url: str = ""
    from_cache: bool = False
    error: Optional[Exception] = field(default=None, repr=False)
