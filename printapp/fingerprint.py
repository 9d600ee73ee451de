"""Order fingerprints used to drop rows that were already imported."""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

from printapp.normalize import normalize_item_code, normalize_text, parse_number
from printapp.records import OrderRecord

FINGERPRINT_FIELDS = (
    "order_number",
    "item_code",
    "item_name",
    "quantity",
    "plate_count",
    "customer",
    "doc_type",
    "delivery_date",
    "designer",
    "handler",
    "issuer",
)


def _field(order: OrderRecord | Mapping[str, Any], name: str):
    if isinstance(order, Mapping):
        return order.get(name)
    return getattr(order, name, None)


def fingerprint_payload(order: OrderRecord | Mapping[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for name in FINGERPRINT_FIELDS:
        value = _field(order, name)
        if name == "item_code":
            payload[name] = normalize_item_code(value)
        elif name == "quantity":
            payload[name] = parse_number(value)
        else:
            payload[name] = normalize_text(value)
    return payload


def fingerprint(order: OrderRecord | Mapping[str, Any]) -> str:
    """Return the canonical identity string for ``order``.

    Accepts either an :class:`OrderRecord` or a raw row mapping so persisted
    rows and freshly parsed uploads hash the same way.
    """

    return json.dumps(
        fingerprint_payload(order),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )


def fingerprint_set(orders: Iterable[OrderRecord | Mapping[str, Any]]) -> set[str]:
    return {fingerprint(order) for order in orders}


def is_duplicate(order_fingerprint: str, existing: set[str] | frozenset[str]) -> bool:
    return order_fingerprint in existing


def partition_duplicates(
    incoming: Iterable[OrderRecord],
    existing: set[str] | frozenset[str],
) -> tuple[list[OrderRecord], int]:
    """Split ``incoming`` into new records and a count of dropped duplicates."""

    fresh: list[OrderRecord] = []
    skipped = 0
    for order in incoming:
        if is_duplicate(fingerprint(order), existing):
            skipped += 1
        else:
            fresh.append(order)
    return fresh, skipped
