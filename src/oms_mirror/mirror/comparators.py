"""Freshness comparison strategies.

A comparator receives the locally synced token and the token the remote reports
and returns True when the local copy must be replaced.
"""

from __future__ import annotations

from typing import Callable, Optional

from oms_mirror.mirror.models import FreshnessToken

Comparator = Callable[[FreshnessToken, FreshnessToken], bool]


def token_changed(local: FreshnessToken, remote: FreshnessToken) -> bool:
    return str(local) != str(remote)


def _as_number(value: FreshnessToken) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def numeric_newer(local: FreshnessToken, remote: FreshnessToken) -> bool:
    local_num = _as_number(local)
    remote_num = _as_number(remote)
    if local_num is not None and remote_num is not None:
        return remote_num > local_num
    # Mixed or non-numeric tokens keep plain string ordering.
    return str(remote) > str(local)


COMPARATORS: dict[str, Comparator] = {
    "changed": token_changed,
    "newer": numeric_newer,
}
