"""Expand orders into per-station operation rows with estimated minutes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Iterator

from printapp.constants import (
    LASER_STATION_KEYWORDS,
    PACKING_STATION_KEYWORDS,
    PRINTING_STATION_KEYWORDS,
    UNKNOWN_STATION,
)
from printapp.master_index import MasterIndex
from printapp.normalize import contains_any, format_number, normalize_item_code, parse_number
from printapp.records import ConvertedOperation, FailedOrder, OrderRecord

logger = logging.getLogger(__name__)

# Every station run is billed at least this many minutes.
MINIMUM_RUN_MINUTES = 20

MISSING_TIME_SEPARATOR = ", "


@dataclass(frozen=True)
class Multiplier:
    value: float
    basis_text: str


@dataclass(frozen=True)
class ConversionResult:
    rows: tuple[ConvertedOperation, ...] = ()
    failure_reason: str | None = None

    def __iter__(self) -> Iterator:
        yield list(self.rows)
        yield self.failure_reason

    @property
    def ok(self) -> bool:
        return self.failure_reason is None


@dataclass
class OrderConversion:
    order: OrderRecord
    rows: list[ConvertedOperation]


@dataclass
class BatchConversion:
    converted: list[OrderConversion] = field(default_factory=list)
    failed: list[FailedOrder] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ConvertedOperation]:
        return [row for conversion in self.converted for row in conversion.rows]

    def summary(self) -> dict[str, int]:
        return {
            "orders_converted": len(self.converted),
            "orders_failed": len(self.failed),
            "operations": len(self.succeeded),
        }


def _quantity_basis(quantity: float) -> Multiplier:
    return Multiplier(quantity, f"quantity ({format_number(quantity)})")


def _plate_first_basis(quantity: float, plates: float) -> Multiplier:
    if plates > 0:
        return Multiplier(plates, f"plate count ({format_number(plates)})")
    return _quantity_basis(quantity)


def select_multiplier(station: str, quantity, plate_count) -> Multiplier:
    """Pick what an operation's standard time is scaled by.

    Packing always scales by quantity. Printing and laser cutting scale by
    plate count when one is given, and every other station follows the same
    plate-count-first rule.
    """

    qty = parse_number(quantity)
    plates = parse_number(plate_count)
    if contains_any(station, PACKING_STATION_KEYWORDS):
        return _quantity_basis(qty)
    if contains_any(station, PRINTING_STATION_KEYWORDS) or contains_any(
        station, LASER_STATION_KEYWORDS
    ):
        return _plate_first_basis(qty, plates)
    return _plate_first_basis(qty, plates)


def operation_minutes(std_time, multiplier: float) -> float:
    raw_time = parse_number(std_time) * multiplier
    if raw_time < MINIMUM_RUN_MINUTES:
        raw_time = MINIMUM_RUN_MINUTES
    rounded = Decimal(str(raw_time)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(rounded)


def convert(order: OrderRecord, index: MasterIndex) -> ConversionResult:
    """Resolve ``order`` into one row per route operation, or explain why not.

    Conversion is all-or-nothing: when any operation lacks a standard time,
    no rows are returned and the reason names every missing operation.
    """

    item_code = normalize_item_code(order.item_code)
    route_id = index.route_for(item_code)
    if not route_id:
        return ConversionResult(failure_reason=f"no matching route for item code {item_code}")

    steps = index.operations_for(route_id)
    if not steps:
        return ConversionResult(
            failure_reason=f"route exists but has no operations [{route_id}]"
        )

    rows: list[ConvertedOperation] = []
    missing: list[str] = []
    for step in steps:
        timing = index.time_for(step.op_name)
        if timing is None:
            missing.append(step.op_name)
            continue
        if missing:
            continue

        station = timing.station or UNKNOWN_STATION
        multiplier = select_multiplier(station, order.quantity, order.plate_count)
        rows.append(
            ConvertedOperation(
                source_order_id=order.id,
                order_number=order.order_number,
                doc_type=order.doc_type,
                item_code=order.item_code,
                item_name=order.item_name,
                quantity=parse_number(order.quantity),
                plate_count=order.plate_count,
                delivery_date=order.delivery_date,
                designer=order.designer,
                customer=order.customer,
                handler=order.handler,
                issuer=order.issuer,
                sequence=step.sequence,
                station=station,
                op_name=step.op_name,
                basis_text=multiplier.basis_text,
                std_time=timing.std_time_min,
                total_time_min=operation_minutes(timing.std_time_min, multiplier.value),
            )
        )

    if missing:
        return ConversionResult(
            failure_reason=f"missing standard time: {MISSING_TIME_SEPARATOR.join(missing)}"
        )
    return ConversionResult(rows=tuple(rows))


def convert_batch(orders: Iterable[OrderRecord], index: MasterIndex) -> BatchConversion:
    batch = BatchConversion()
    for order in orders:
        result = convert(order, index)
        if result.ok:
            batch.converted.append(OrderConversion(order=order, rows=list(result.rows)))
        else:
            batch.failed.append(FailedOrder(order=order, reason=result.failure_reason))

    logger.debug(
        "Converted %s orders into %s operations; %s failed.",
        len(batch.converted),
        len(batch.succeeded),
        len(batch.failed),
    )
    return batch
