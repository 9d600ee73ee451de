"""Routing rules applied to every imported or edited order row."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterator

from printapp.constants import (
    ACRYLIC_ITEM_KEYWORDS,
    EXEMPT_DOC_TYPE_KEYWORDS,
    OUTSIDE_PLANT_ITEM_PREFIX,
    OUTSOURCED_DOC_TYPE_KEYWORDS,
    STEADY_STATE_DOC_TYPE_KEYWORDS,
)
from printapp.master_index import MasterIndex
from printapp.normalize import contains_any, normalize_item_code, normalize_text, parse_number
from printapp.records import OrderRecord, OrderStatus

REASON_SEPARATOR = "; "

MISSING_ITEM_CODE = "missing item code"
ITEM_NOT_FOUND = "item not found in master data"
QUANTITY_NOT_POSITIVE = "quantity must be positive"
DELIVERY_DATE_REQUIRED = "delivery date required"
C_PREFIX_DOC_TYPE = "C-prefixed items require outsourced or steady-state doc type"
ACRYLIC_PLATE_COUNT = "acrylic items require plate count"
NO_ROUTE_OPERATIONS = "no route operations"


@dataclass(frozen=True)
class ValidationResult:
    status: str
    reasons: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()
    route_id: str | None = None
    exempt: bool = False

    def __iter__(self) -> Iterator:
        yield self.status
        yield list(self.reasons)

    @property
    def reason(self) -> str:
        return REASON_SEPARATOR.join(self.reasons)

    @property
    def log_msg(self) -> str:
        return REASON_SEPARATOR.join(self.reasons + self.notes)


def is_exempt_doc_type(doc_type: str | None) -> bool:
    return contains_any(doc_type, EXEMPT_DOC_TYPE_KEYWORDS)


def validate(order: OrderRecord, index: MasterIndex) -> ValidationResult:
    """Classify ``order`` against the master data without touching either.

    Every violated rule contributes a reason; the order is only ``OK`` when
    none fire. Exempt doc types skip the content rules entirely.
    """

    doc_type = normalize_text(order.doc_type)
    item_code = normalize_item_code(order.item_code)
    route_id = index.route_for(item_code) if item_code else None

    if is_exempt_doc_type(doc_type):
        return ValidationResult(
            status=OrderStatus.OK,
            notes=(f"[{doc_type}] rules exempted",),
            route_id=route_id,
            exempt=True,
        )

    reasons: list[str] = []
    if not item_code:
        reasons.append(MISSING_ITEM_CODE)
    elif route_id is None:
        reasons.append(f"{ITEM_NOT_FOUND} [{item_code}]")

    if parse_number(order.quantity) <= 0:
        reasons.append(QUANTITY_NOT_POSITIVE)

    if not normalize_text(order.delivery_date):
        reasons.append(DELIVERY_DATE_REQUIRED)

    outside_plant = item_code.startswith(OUTSIDE_PLANT_ITEM_PREFIX)
    if outside_plant and not (
        contains_any(doc_type, OUTSOURCED_DOC_TYPE_KEYWORDS)
        or contains_any(doc_type, STEADY_STATE_DOC_TYPE_KEYWORDS)
    ):
        reasons.append(C_PREFIX_DOC_TYPE)

    if (
        contains_any(order.item_name, ACRYLIC_ITEM_KEYWORDS)
        and not normalize_text(order.plate_count)
        and not outside_plant
    ):
        reasons.append(ACRYLIC_PLATE_COUNT)

    if reasons:
        return ValidationResult(OrderStatus.ERROR, tuple(reasons), route_id=route_id)

    if not index.operations_for(route_id):
        return ValidationResult(
            OrderStatus.MISS_ROUTE,
            notes=(f"{NO_ROUTE_OPERATIONS} [{route_id}]",),
            route_id=route_id,
        )

    return ValidationResult(OrderStatus.OK, route_id=route_id)


def apply_validation(order: OrderRecord, index: MasterIndex) -> OrderRecord:
    """Return a copy of ``order`` carrying its fresh status and messages."""

    result = validate(order, index)
    return replace(
        order,
        status=result.status,
        log_msg=result.log_msg,
        error_reason=result.reason if result.status == OrderStatus.ERROR else "",
    )
