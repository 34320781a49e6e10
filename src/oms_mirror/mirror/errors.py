from __future__ import annotations


class MirrorError(Exception):
    """Base class for every failure the mirror layer recovers from."""


class StorageUnavailable(MirrorError):
    """The local durable store could not be opened or written."""


class NetworkFailure(MirrorError):
    """The remote source did not answer usefully (unreachable, timeout, error status)."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedPayload(MirrorError):
    """The remote source answered successfully but the data cannot be used."""
