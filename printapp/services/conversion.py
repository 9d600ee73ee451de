"""Persist order → station-time conversions with one converter per order."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, or_, update
from sqlalchemy.exc import SQLAlchemyError

from printapp.conversion import BatchConversion, OrderConversion, convert_batch
from printapp.extensions import db
from printapp.master_index import MasterIndex
from printapp.models import DailyOrder, StationTimeSummary
from printapp.records import ConversionStatus, FailedOrder, OrderStatus
from printapp.services.errors import NotFoundError, ServiceError
from printapp.services.master_data import load_master_index

logger = logging.getLogger(__name__)

PARKED_REASON = "order is parked in the correction queue; resubmit it first"


class ConversionError(ServiceError):
    pass


class ConversionOrderNotFoundError(NotFoundError):
    pass


@dataclass
class ConversionPlan:
    """Phase one of a conversion: computed rows, nothing written yet."""

    batch: BatchConversion
    skipped: list[dict] = field(default_factory=list)

    @property
    def succeeded(self) -> list[OrderConversion]:
        return self.batch.converted

    @property
    def failed(self) -> list[FailedOrder]:
        return self.batch.failed


@dataclass
class ApplyOutcome:
    applied: list[int] = field(default_factory=list)
    operations: int = 0
    conflicts: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)


@dataclass
class ConversionRunResult:
    plan: ConversionPlan
    outcome: ApplyOutcome

    def as_dict(self) -> dict:
        return {
            "converted": len(self.outcome.applied),
            "operations": self.outcome.operations,
            "failed": [failure.as_dict() for failure in self.plan.failed],
            "skipped": self.plan.skipped,
            "conflicts": self.outcome.conflicts,
            "errors": self.outcome.errors,
        }


def _claim_timeout() -> timedelta:
    return timedelta(seconds=current_app.config.get("CONVERSION_CLAIM_TIMEOUT", 600))


def list_conversion_candidates(search: str | None = None, limit: int | None = None):
    """Committed orders still waiting for conversion, newest first."""

    if limit is None:
        limit = current_app.config.get("CONVERSION_CANDIDATE_LIMIT", 500)

    query = DailyOrder.query.filter(
        DailyOrder.is_converted.is_(False),
        DailyOrder.conversion_status != ConversionStatus.FAILED,
        DailyOrder.status != OrderStatus.ERROR,
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                DailyOrder.order_number.ilike(pattern),
                DailyOrder.item_code.ilike(pattern),
                DailyOrder.item_name.ilike(pattern),
                DailyOrder.customer.ilike(pattern),
            )
        )
    return (
        query.order_by(DailyOrder.created_at.desc(), DailyOrder.id.desc()).limit(limit).all()
    )


def plan_conversion(order_ids, index: MasterIndex) -> ConversionPlan:
    ids = list(dict.fromkeys(int(order_id) for order_id in order_ids))
    orders = DailyOrder.query.filter(DailyOrder.id.in_(ids)).all() if ids else []
    by_id = {order.id: order for order in orders}

    skipped = []
    eligible = []
    for order_id in ids:
        order = by_id.get(order_id)
        if order is None:
            skipped.append({"id": order_id, "reason": f"order {order_id} not found"})
        elif order.is_converted:
            skipped.append({"id": order_id, "reason": "order is already converted"})
        elif order.status == OrderStatus.ERROR:
            skipped.append({"id": order_id, "reason": "order has unresolved validation errors"})
        elif order.conversion_status == ConversionStatus.FAILED:
            skipped.append({"id": order_id, "reason": PARKED_REASON})
        else:
            eligible.append(order.to_record())

    return ConversionPlan(batch=convert_batch(eligible, index), skipped=skipped)


def _claim(order_id: int, now: datetime) -> bool:
    """Move an order into ``converting`` unless another converter holds it.

    A ``converting`` claim older than the configured timeout is treated as
    abandoned and may be taken over.
    """

    stale_before = now - _claim_timeout()
    statement = (
        update(DailyOrder)
        .where(
            DailyOrder.id == order_id,
            DailyOrder.is_converted.is_(False),
            or_(
                DailyOrder.conversion_status == ConversionStatus.PENDING,
                and_(
                    DailyOrder.conversion_status == ConversionStatus.CONVERTING,
                    or_(
                        DailyOrder.conversion_claimed_at.is_(None),
                        DailyOrder.conversion_claimed_at < stale_before,
                    ),
                ),
            ),
        )
        .values(conversion_status=ConversionStatus.CONVERTING, conversion_claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    claimed = db.session.execute(statement).rowcount == 1
    db.session.commit()
    return claimed


def _release_claim(order_id: int) -> None:
    db.session.execute(
        update(DailyOrder)
        .where(
            DailyOrder.id == order_id,
            DailyOrder.conversion_status == ConversionStatus.CONVERTING,
        )
        .values(conversion_status=ConversionStatus.PENDING, conversion_claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def _apply_one(conversion: OrderConversion) -> int:
    order_id = conversion.order.id
    StationTimeSummary.query.filter_by(source_order_id=order_id).delete(
        synchronize_session=False
    )
    db.session.flush()
    db.session.add_all(StationTimeSummary.from_record(row) for row in conversion.rows)
    db.session.execute(
        update(DailyOrder)
        .where(DailyOrder.id == order_id)
        .values(
            is_converted=True,
            conversion_status=ConversionStatus.SUCCESS,
            conversion_note=None,
            conversion_claimed_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return len(conversion.rows)


def apply_conversion(plan: ConversionPlan) -> ApplyOutcome:
    """Write each successfully planned order independently.

    Old rows are deleted before new ones are inserted so an interrupted write
    leaves the order unconverted and safe to retry.
    """

    outcome = ApplyOutcome()
    for conversion in plan.succeeded:
        order = conversion.order
        if not _claim(order.id, datetime.utcnow()):
            logger.warning("Order %s is being converted elsewhere; skipped", order.order_number)
            outcome.conflicts.append(
                {"id": order.id, "order_number": order.order_number, "reason": "claimed by another converter"}
            )
            continue
        try:
            outcome.operations += _apply_one(conversion)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to save conversion for order %s", order.order_number)
            _release_claim(order.id)
            outcome.errors.append(
                {"id": order.id, "order_number": order.order_number, "reason": str(exc)}
            )
            continue
        outcome.applied.append(order.id)

    db.session.expire_all()
    return outcome


def convert_orders(order_ids, index: MasterIndex | None = None) -> ConversionRunResult:
    plan = plan_conversion(order_ids, index or load_master_index())
    outcome = apply_conversion(plan)
    result = ConversionRunResult(plan=plan, outcome=outcome)
    logger.info(
        "Conversion run: %s converted (%s operations), %s failed, %s conflicts",
        len(outcome.applied),
        outcome.operations,
        len(plan.failed),
        len(outcome.conflicts),
    )
    for failure in plan.failed:
        logger.info("Order %s not converted: %s", failure.order.order_number, failure.reason)
    return result


def route_failures_to_pending(failures) -> int:
    """Park failed orders in the correction queue with their specific reason.

    Accepts :class:`FailedOrder` objects or ``{"id": ..., "reason": ...}`` dicts.
    """

    moved = 0
    for failure in failures:
        if isinstance(failure, FailedOrder):
            order_id, reason = failure.order.id, failure.reason
        else:
            order_id, reason = failure.get("id"), failure.get("reason")
        order = db.session.get(DailyOrder, order_id)
        if order is None or order.is_converted:
            continue
        if not reason:
            raise ConversionError(f"A reason is required to park order {order.order_number}.")
        order.conversion_status = ConversionStatus.FAILED
        order.conversion_note = reason
        order.conversion_claimed_at = None
        moved += 1
    db.session.commit()
    logger.info("Moved %s failed conversions to the correction queue", moved)
    return moved


def revert_conversion(order_id: int) -> int:
    """Undo a conversion: clear the flag first, then remove the operation rows.

    If the delete never happens the order is still offered for conversion,
    and re-converting replaces whatever rows were left behind.
    """

    order = db.session.get(DailyOrder, order_id)
    if order is None:
        raise ConversionOrderNotFoundError(f"Order {order_id} was not found.")

    order.is_converted = False
    order.conversion_status = ConversionStatus.PENDING
    order.conversion_claimed_at = None
    db.session.commit()

    removed = StationTimeSummary.query.filter_by(source_order_id=order_id).delete(
        synchronize_session=False
    )
    db.session.commit()
    logger.info("Reverted conversion of order %s (%s operations removed)", order.order_number, removed)
    return removed
