from oms_mirror.mirror.errors import MalformedPayload, MirrorError, NetworkFailure, StorageUnavailable
from oms_mirror.mirror.models import CacheRecord, Notice, RemoteMarker, SyncMarker, SyncResult

__all__ = [
    "CacheRecord",
    "MalformedPayload",
    "MirrorError",
    "NetworkFailure",
    "Notice",
    "RemoteMarker",
    "StorageUnavailable",
    "SyncMarker",
    "SyncResult",
]
