"""Typed records passed between the intake, conversion and scheduling steps."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping

from printapp.normalize import normalize_item_code, normalize_text, parse_number


class OrderStatus:
    PENDING = "Pending"
    OK = "OK"
    ERROR = "Error"
    MISS_ROUTE = "Miss_Route"

    ALL_STATUSES = [PENDING, OK, ERROR, MISS_ROUTE]
    LABELS = {
        PENDING: "Pending",
        OK: "OK",
        ERROR: "Needs Correction",
        MISS_ROUTE: "Missing Route",
    }

    # Staging rows are listed errors first, then anything not yet OK.
    SORT_WEIGHTS = {ERROR: 0, PENDING: 1, MISS_ROUTE: 1, OK: 2}


class ConversionStatus:
    PENDING = "pending"
    CONVERTING = "converting"
    SUCCESS = "success"
    FAILED = "failed"

    ALL_STATUSES = [PENDING, CONVERTING, SUCCESS, FAILED]


ORDER_TEXT_FIELDS = (
    "order_number",
    "doc_type",
    "item_name",
    "delivery_date",
    "plate_count",
    "designer",
    "customer",
    "handler",
    "issuer",
)

# Fields an operator may change on a staged or pending order.
EDITABLE_ORDER_FIELDS = ORDER_TEXT_FIELDS + ("item_code", "quantity")


@dataclass(frozen=True)
class OrderRecord:
    order_number: str = ""
    doc_type: str = ""
    item_code: str = ""
    item_name: str = ""
    quantity: float = 0.0
    delivery_date: str = ""
    plate_count: str = ""
    designer: str = ""
    customer: str = ""
    handler: str = ""
    issuer: str = ""
    status: str = OrderStatus.PENDING
    log_msg: str = ""
    error_reason: str = ""
    id: int | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], **overrides) -> "OrderRecord":
        """Build a record from a loose mapping, normalizing every field once."""

        values: dict[str, Any] = {name: normalize_text(data.get(name)) for name in ORDER_TEXT_FIELDS}
        values["item_code"] = normalize_item_code(data.get("item_code"))
        values["quantity"] = parse_number(data.get("quantity"))
        values["status"] = normalize_text(data.get("status")) or OrderStatus.PENDING
        values["log_msg"] = normalize_text(data.get("log_msg"))
        values["error_reason"] = normalize_text(data.get("error_reason"))
        values["id"] = data.get("id")
        values.update(overrides)
        return cls(**values)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "doc_type": self.doc_type,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "delivery_date": self.delivery_date,
            "plate_count": self.plate_count,
            "designer": self.designer,
            "customer": self.customer,
            "handler": self.handler,
            "issuer": self.issuer,
            "status": self.status,
            "log_msg": self.log_msg,
            "error_reason": self.error_reason,
        }


@dataclass(frozen=True)
class ConvertedOperation:
    source_order_id: int | None
    order_number: str
    sequence: int
    station: str
    op_name: str
    basis_text: str
    std_time: float
    total_time_min: float
    doc_type: str = ""
    item_code: str = ""
    item_name: str = ""
    quantity: float = 0.0
    plate_count: str = ""
    delivery_date: str = ""
    designer: str = ""
    customer: str = ""
    handler: str = ""
    issuer: str = ""
    assigned_section: str | None = None
    scheduled_date: date | None = None
    production_machine_id: int | None = None
    id: int | None = None

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_date is not None and self.production_machine_id is not None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_order_id": self.source_order_id,
            "order_number": self.order_number,
            "doc_type": self.doc_type,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "plate_count": self.plate_count,
            "delivery_date": self.delivery_date,
            "designer": self.designer,
            "customer": self.customer,
            "handler": self.handler,
            "issuer": self.issuer,
            "sequence": self.sequence,
            "station": self.station,
            "op_name": self.op_name,
            "basis_text": self.basis_text,
            "std_time": self.std_time,
            "total_time_min": self.total_time_min,
            "assigned_section": self.assigned_section,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "production_machine_id": self.production_machine_id,
        }


@dataclass(frozen=True)
class Machine:
    id: int | None
    name: str
    daily_minutes: float
    category: str = ""
    station_type: str = ""
    section_id: str | None = None
    is_active: bool = True


@dataclass
class FailedOrder:
    order: OrderRecord
    reason: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.order.id,
            "order_number": self.order.order_number,
            "item_code": self.order.item_code,
            "item_name": self.order.item_name,
            "reason": self.reason,
        }
