from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from oms_mirror.mirror.comparators import Comparator, numeric_newer, token_changed
from oms_mirror.mirror.models import Record
from oms_mirror.mirror.store import KeyFunc

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


@dataclass(frozen=True, slots=True)
class DatasetSpec:
    """How one mirrored dataset is keyed and judged stale."""

    namespace: str
    key: KeyFunc
    comparator: Comparator


def normalize_key_part(part: Any) -> str:
    if part is None or part == "":
        return ""
    return _NON_ALNUM.sub("", str(part).upper().strip())


def stock_key(style: Any, color: Any, size: Any) -> str:
    return f"{normalize_key_part(style)}-{normalize_key_part(color)}-{normalize_key_part(size)}"


def item_record_key(record: Record) -> Optional[str]:
    barcode = record.get("Barcode")
    if barcode is None or str(barcode).strip() == "":
        return None
    return str(barcode).strip()


def stock_record_key(record: Record) -> Optional[str]:
    if not (record.get("style") and record.get("color") and record.get("size")):
        return None
    return stock_key(record["style"], record["color"], record["size"])


ITEMS = DatasetSpec(namespace="items", key=item_record_key, comparator=token_changed)
STOCK = DatasetSpec(namespace="stock", key=stock_record_key, comparator=numeric_newer)

DATASETS: dict[str, DatasetSpec] = {spec.namespace: spec for spec in (ITEMS, STOCK)}
