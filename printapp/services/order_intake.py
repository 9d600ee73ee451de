"""Order upload staging, inline correction and commit to the daily order table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from printapp.extensions import db
from printapp.fingerprint import fingerprint_set, partition_duplicates
from printapp.master_index import MasterIndex
from printapp.models import DailyOrder, OrderImportBatch, StagedOrder, StationTimeSummary
from printapp.records import (
    EDITABLE_ORDER_FIELDS,
    ConversionStatus,
    OrderRecord,
    OrderStatus,
)
from printapp.services.errors import ConflictError, NotFoundError, ServiceError
from printapp.services.master_data import load_master_index
from printapp.utils.tabular_import import read_csv_rows, resolve_columns
from printapp.validation import validate

logger = logging.getLogger(__name__)

ORDER_COLUMN_ALIASES = {
    "order_number": {"工單編號", "order number", "order no", "order_number"},
    "doc_type": {"單據種類", "doc type", "document type", "doc_type"},
    "designer": {"美編", "designer"},
    "customer": {"客戶/供應商名", "客戶", "customer"},
    "handler": {"承辦人", "承辦", "handler"},
    "issuer": {"開單人員", "開單", "issuer"},
    "item_code": {"品項編碼", "item code", "item_code"},
    "item_name": {"品名/規格", "品名", "item name", "item_name"},
    "quantity": {"數量", "quantity", "qty"},
    "delivery_date": {"交付日期", "delivery date", "delivery_date"},
    "plate_count": {"盤數", "plate count", "plates", "plate_count"},
}

RETURNED_FROM_CORRECTION = "returned after correction"

# Fields an operator may fix on an order whose conversion failed.
CONVERSION_FIX_FIELDS = ("item_code", "item_name", "quantity", "plate_count")


class OrderIntakeError(ServiceError):
    pass


class OrderNotFoundError(NotFoundError):
    pass


@dataclass
class OrderImportResult:
    batch: OrderImportBatch
    total_rows: int
    imported_rows: int
    duplicate_rows: int
    error_rows: int
    staged: list[OrderRecord] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        if not self.imported_rows:
            return 0.0
        return round((self.imported_rows - self.error_rows) / self.imported_rows * 100, 1)

    def as_dict(self) -> dict:
        return {
            "batch_id": self.batch.id,
            "total_rows": self.total_rows,
            "imported_rows": self.imported_rows,
            "duplicate_rows": self.duplicate_rows,
            "error_rows": self.error_rows,
            "accuracy": self.accuracy,
        }


@dataclass
class CommitResult:
    committed: int
    flagged: int

    def as_dict(self) -> dict:
        return {"committed": self.committed, "flagged": self.flagged}


def parse_order_rows(csv_text: str) -> list[OrderRecord]:
    """Map an order export onto records.

    Rows carrying neither an order number nor an item code are dropped.
    """

    headers, rows = read_csv_rows(csv_text)
    columns = resolve_columns(headers, ORDER_COLUMN_ALIASES)
    if "order_number" not in columns and "item_code" not in columns:
        raise OrderIntakeError(
            "Order file needs an order number (工單編號) or item code (品項編碼) column."
        )

    records = []
    for row in rows:
        mapped = {name: row.get(header) for name, header in columns.items()}
        record = OrderRecord.from_mapping(mapped)
        if record.order_number or record.item_code:
            records.append(record)
    return records


def _validated(record: OrderRecord, index: MasterIndex) -> tuple[OrderRecord, str | None]:
    result = validate(record, index)
    checked = replace(
        record,
        status=result.status,
        log_msg=result.log_msg,
        error_reason=result.reason if result.status == OrderStatus.ERROR else "",
    )
    return checked, result.route_id


def _existing_fingerprints(order_numbers: set[str]) -> set[str]:
    if not order_numbers:
        return set()
    rows = DailyOrder.query.filter(DailyOrder.order_number.in_(sorted(order_numbers))).all()
    return fingerprint_set(row.to_record() for row in rows)


def import_orders(
    records: list[OrderRecord],
    filename: str | None = None,
    index: MasterIndex | None = None,
) -> OrderImportResult:
    """Stage a fresh upload.

    Rows identical to an order already in the daily table are skipped and
    counted. Survivors are validated and replace the staging area; when every
    row is a duplicate the staging area is left alone.
    """

    index = index or load_master_index()
    order_numbers = {record.order_number for record in records if record.order_number}
    fresh, skipped = partition_duplicates(records, _existing_fingerprints(order_numbers))
    if skipped:
        logger.warning("Skipped %s duplicate order rows from %s", skipped, filename or "upload")

    checked = [_validated(record, index) for record in fresh]
    error_rows = sum(1 for record, _ in checked if record.status == OrderStatus.ERROR)

    batch = OrderImportBatch(
        filename=filename,
        total_rows=len(records),
        imported_rows=len(checked),
        duplicate_rows=skipped,
        error_rows=error_rows,
    )
    try:
        if checked:
            StagedOrder.query.delete()
            for record, route_id in checked:
                db.session.add(StagedOrder.from_record(record, matched_route_id=route_id))
        db.session.add(batch)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Failed to stage order upload %s", filename)
        raise OrderIntakeError(f"Order upload could not be staged: {exc}") from exc

    result = OrderImportResult(
        batch=batch,
        total_rows=len(records),
        imported_rows=len(checked),
        duplicate_rows=skipped,
        error_rows=error_rows,
        staged=[record for record, _ in checked],
    )
    logger.info(
        "Staged %s of %s order rows (%s duplicates, %s errors, accuracy %.1f%%)",
        result.imported_rows,
        result.total_rows,
        result.duplicate_rows,
        result.error_rows,
        result.accuracy,
    )
    return result


def list_staged_orders() -> list[StagedOrder]:
    """Staging rows with errors first, then anything not yet OK."""

    rows = StagedOrder.query.order_by(StagedOrder.id).all()
    return sorted(rows, key=lambda row: (OrderStatus.SORT_WEIGHTS.get(row.status, 1), row.id))


def _get_staged(order_id: int) -> StagedOrder:
    row = db.session.get(StagedOrder, order_id)
    if row is None:
        raise OrderNotFoundError(f"Staged order {order_id} was not found.")
    return row


def _get_daily(order_id: int) -> DailyOrder:
    row = db.session.get(DailyOrder, order_id)
    if row is None:
        raise OrderNotFoundError(f"Order {order_id} was not found.")
    return row


def _merge_changes(record: OrderRecord, changes: dict, allowed) -> OrderRecord:
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise OrderIntakeError("Fields cannot be edited: " + ", ".join(unknown))
    merged = record.as_dict()
    merged.update(changes)
    return OrderRecord.from_mapping(merged)


def update_staged_order(
    order_id: int, changes: dict, index: MasterIndex | None = None
) -> StagedOrder:
    """Apply an inline edit and re-run validation on the edited row."""

    row = _get_staged(order_id)
    record = _merge_changes(row.to_record(), changes, EDITABLE_ORDER_FIELDS)
    record, route_id = _validated(record, index or load_master_index())
    row.apply_record(record)
    row.matched_route_id = route_id
    db.session.commit()
    return row


def delete_staged_order(order_id: int) -> None:
    row = _get_staged(order_id)
    db.session.delete(row)
    db.session.commit()


def clear_staging() -> int:
    removed = StagedOrder.query.delete()
    db.session.commit()
    logger.info("Cleared %s staged orders", removed)
    return removed


def commit_staged_orders() -> CommitResult:
    """Move every staged row into the daily table and empty the staging area.

    Error rows are carried along with their messages so they show up in the
    pending-correction queue.
    """

    staged = StagedOrder.query.order_by(StagedOrder.id).all()
    if not staged:
        return CommitResult(committed=0, flagged=0)

    flagged = 0
    try:
        for row in staged:
            record = row.to_record()
            if record.status == OrderStatus.ERROR:
                flagged += 1
                record = replace(record, error_reason=record.log_msg)
            else:
                record = replace(record, error_reason="")
            db.session.add(
                DailyOrder.from_record(record, conversion_status=ConversionStatus.PENDING)
            )
        StagedOrder.query.delete()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Failed to commit staged orders")
        raise OrderIntakeError(f"Staged orders could not be committed: {exc}") from exc

    result = CommitResult(committed=len(staged) - flagged, flagged=flagged)
    logger.info("Committed %s staged orders (%s flagged for correction)", len(staged), flagged)
    return result


def list_daily_orders(search: str | None = None, limit: int = 500) -> list[DailyOrder]:
    """Committed orders, newest first, optionally filtered by a search term."""

    query = DailyOrder.query
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                DailyOrder.order_number.ilike(pattern),
                DailyOrder.item_code.ilike(pattern),
                DailyOrder.customer.ilike(pattern),
                DailyOrder.doc_type.ilike(pattern),
            )
        )
    return query.order_by(DailyOrder.created_at.desc(), DailyOrder.id.desc()).limit(limit).all()


def list_pending_corrections() -> dict[str, list[DailyOrder]]:
    order_errors = (
        DailyOrder.query.filter(DailyOrder.status == OrderStatus.ERROR)
        .order_by(DailyOrder.created_at.desc(), DailyOrder.id.desc())
        .all()
    )
    conversion_failures = (
        DailyOrder.query.filter(DailyOrder.conversion_status == ConversionStatus.FAILED)
        .order_by(DailyOrder.created_at.desc(), DailyOrder.id.desc())
        .all()
    )
    return {"order_errors": order_errors, "conversion_failures": conversion_failures}


def return_order_to_staging(
    order_id: int, changes: dict | None = None, index: MasterIndex | None = None
) -> StagedOrder:
    """Send a corrected order back through staging.

    The order must pass validation first; it then re-enters staging as
    ``Pending`` and leaves the daily table.
    """

    order = _get_daily(order_id)
    record = _merge_changes(order.to_record(), changes or {}, EDITABLE_ORDER_FIELDS)
    checked, _ = _validated(record, index or load_master_index())
    if checked.status == OrderStatus.ERROR:
        raise OrderIntakeError(f"Order {order.order_number} still has errors: {checked.error_reason}")

    staged_record = replace(
        record,
        status=OrderStatus.PENDING,
        log_msg=RETURNED_FROM_CORRECTION,
        error_reason="",
    )
    staged = StagedOrder.from_record(staged_record)
    try:
        db.session.add(staged)
        StationTimeSummary.query.filter_by(source_order_id=order.id).delete()
        db.session.delete(order)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Failed to return order %s to staging", order_id)
        raise OrderIntakeError(f"Order could not be returned to staging: {exc}") from exc

    logger.info("Returned corrected order %s to staging", record.order_number)
    return staged


def resubmit_conversion(
    order_id: int, changes: dict | None = None, index: MasterIndex | None = None
) -> DailyOrder:
    """Apply fixes to an order whose conversion failed and queue it again.

    The fixed order is validated first; one that still has errors stays in
    the correction queue untouched.
    """

    order = _get_daily(order_id)
    if order.is_converted:
        raise ConflictError(f"Order {order.order_number} is already converted.")

    record = _merge_changes(order.to_record(), changes or {}, CONVERSION_FIX_FIELDS)
    record, _ = _validated(record, index or load_master_index())
    if record.status == OrderStatus.ERROR:
        raise OrderIntakeError(
            f"Order {order.order_number} still has errors: {record.error_reason}"
        )

    order.apply_record(record)
    order.conversion_status = ConversionStatus.PENDING
    order.conversion_note = None
    order.conversion_claimed_at = None
    db.session.commit()
    logger.info("Order %s resubmitted for conversion", order.order_number)
    return order

