from __future__ import annotations

from oms_mirror.mirror.models import Record, RemoteMarker


class RemoteSource:
    async def check(self) -> RemoteMarker:
        """Report the freshness of the current remote snapshot.

        Raises NetworkFailure when the source cannot be reached or refuses, and
        MalformedPayload when it answers with something unusable.
        """
        raise NotImplementedError

    async def fetch(self) -> list[Record]:
        """Return the full remote snapshot as a list of flat records."""
        raise NotImplementedError

    async def acknowledge_force(self) -> None:
        """Tell the remote that a forced sync request has been honored."""
        raise NotImplementedError
