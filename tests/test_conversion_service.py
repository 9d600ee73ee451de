import os
import sys
from datetime import datetime, timedelta

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from printapp import create_app
from printapp.extensions import db
from printapp.models import (
    DailyOrder,
    ItemRoute,
    OperationTime,
    RouteOperation,
    StationTimeSummary,
)
from printapp.records import ConversionStatus, OrderRecord, OrderStatus
from printapp.services.conversion import (
    PARKED_REASON,
    ConversionOrderNotFoundError,
    convert_orders,
    list_conversion_candidates,
    plan_conversion,
    revert_conversion,
    route_failures_to_pending,
)
from printapp.services.master_data import load_master_index


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        db.session.expire_on_commit = False
        _seed_master()
        yield app
        db.session.remove()
        db.drop_all()


def _seed_master():
    db.session.add_all(
        [
            ItemRoute(item_code="AB-100", route_id="R-PRINT"),
            ItemRoute(item_code="NT-1", route_id="R-NOTIME"),
            RouteOperation(route_id="R-PRINT", sequence=10, op_name="印刷"),
            RouteOperation(route_id="R-PRINT", sequence=20, op_name="裁切"),
            RouteOperation(route_id="R-PRINT", sequence=30, op_name="包裝"),
            RouteOperation(route_id="R-NOTIME", sequence=10, op_name="燙金"),
            OperationTime(op_name="印刷", station="印刷站2F", std_time_min=0.5),
            OperationTime(op_name="裁切", station="後加工站", std_time_min=1),
            OperationTime(op_name="包裝", station="包裝站", std_time_min=0.1),
        ]
    )
    db.session.commit()


def _order(order_number, item_code="AB-100", quantity=100, **extra):
    order = DailyOrder.from_record(
        OrderRecord(
            order_number=order_number,
            item_code=item_code,
            item_name="海報",
            quantity=quantity,
            delivery_date="2026-10-30",
            status=extra.pop("status", OrderStatus.OK),
        ),
        **extra,
    )
    db.session.add(order)
    db.session.commit()
    return order


def _rows(order_id):
    return (
        StationTimeSummary.query.filter_by(source_order_id=order_id)
        .order_by(StationTimeSummary.sequence)
        .all()
    )


def test_convert_writes_one_row_per_route_operation(app):
    with app.app_context():
        order = _order("W001")

        result = convert_orders([order.id]).as_dict()

        assert result["converted"] == 1
        assert result["operations"] == 3
        assert result["failed"] == []
        rows = _rows(order.id)
        assert [(row.sequence, row.op_name, row.total_time_min) for row in rows] == [
            (10, "印刷", 50.0),
            (20, "裁切", 100.0),
            (30, "包裝", 20.0),
        ]
        assert rows[0].basis_text == "quantity (100)"
        assert rows[0].order_number == "W001"

        refreshed = db.session.get(DailyOrder, order.id)
        assert refreshed.is_converted is True
        assert refreshed.conversion_status == ConversionStatus.SUCCESS


def test_plate_count_drives_printing_minutes(app):
    with app.app_context():
        order = _order("W002", plate_count="3")
        convert_orders([order.id])

        printing = _rows(order.id)[0]
        assert printing.basis_text == "plate count (3)"
        assert printing.total_time_min == 20.0


def test_candidates_exclude_converted_failed_and_error_orders(app):
    with app.app_context():
        waiting = _order("W010")
        converted = _order("W011", is_converted=True, conversion_status=ConversionStatus.SUCCESS)
        _order("W012", conversion_status=ConversionStatus.FAILED)
        _order("W013", status=OrderStatus.ERROR)

        candidates = list_conversion_candidates()
        assert [order.order_number for order in candidates] == ["W010"]
        assert list_conversion_candidates(search="w01")[0].id == waiting.id
        assert list_conversion_candidates(search="nothing") == []
        assert converted.id not in [order.id for order in candidates]


def test_plan_skips_unknown_converted_and_error_orders(app):
    with app.app_context():
        ok = _order("W020")
        converted = _order("W021", is_converted=True, conversion_status=ConversionStatus.SUCCESS)
        flagged = _order("W022", status=OrderStatus.ERROR)

        plan = plan_conversion([ok.id, converted.id, flagged.id, 9999], load_master_index())

        assert [conversion.order.id for conversion in plan.succeeded] == [ok.id]
        assert sorted(entry["id"] for entry in plan.skipped) == sorted(
            [converted.id, flagged.id, 9999]
        )
        assert _rows(ok.id) == []


def test_failures_are_reported_and_can_be_parked(app):
    with app.app_context():
        no_route = _order("W030", item_code="ZZ-9")
        no_time = _order("W031", item_code="NT-1")

        result = convert_orders([no_route.id, no_time.id])
        reasons = {entry["id"]: entry["reason"] for entry in result.as_dict()["failed"]}

        assert "no matching route" in reasons[no_route.id]
        assert "燙金" in reasons[no_time.id]
        assert StationTimeSummary.query.count() == 0

        assert route_failures_to_pending(result.plan.failed) == 2
        parked = db.session.get(DailyOrder, no_time.id)
        assert parked.conversion_status == ConversionStatus.FAILED
        assert "燙金" in parked.conversion_note
        assert list_conversion_candidates() == []


def test_route_failures_accepts_dicts(app):
    with app.app_context():
        order = _order("W035", item_code="ZZ-9")

        moved = route_failures_to_pending([{"id": order.id, "reason": "checked by planner"}])

        assert moved == 1
        assert db.session.get(DailyOrder, order.id).conversion_note == "checked by planner"


def test_active_claim_blocks_a_second_converter(app):
    with app.app_context():
        order = _order(
            "W040",
            conversion_status=ConversionStatus.CONVERTING,
            conversion_claimed_at=datetime.utcnow(),
        )

        result = convert_orders([order.id]).as_dict()

        assert result["converted"] == 0
        assert [entry["id"] for entry in result["conflicts"]] == [order.id]
        assert _rows(order.id) == []


def test_stale_claim_is_taken_over(app):
    with app.app_context():
        order = _order(
            "W041",
            conversion_status=ConversionStatus.CONVERTING,
            conversion_claimed_at=datetime.utcnow() - timedelta(hours=2),
        )

        result = convert_orders([order.id]).as_dict()

        assert result["converted"] == 1
        assert len(_rows(order.id)) == 3


def test_revert_then_reconvert_replaces_rows(app):
    with app.app_context():
        order = _order("W050")
        convert_orders([order.id])

        assert revert_conversion(order.id) == 3
        reverted = db.session.get(DailyOrder, order.id)
        assert reverted.is_converted is False
        assert reverted.conversion_status == ConversionStatus.PENDING
        assert _rows(order.id) == []

        convert_orders([order.id])
        assert len(_rows(order.id)) == 3


def test_leftover_rows_are_replaced_on_reconvert(app):
    with app.app_context():
        order = _order("W051")
        db.session.add(
            StationTimeSummary(
                source_order_id=order.id, order_number="W051", sequence=10, op_name="舊工序"
            )
        )
        db.session.commit()

        convert_orders([order.id])

        assert [row.op_name for row in _rows(order.id)] == ["印刷", "裁切", "包裝"]


def test_revert_unknown_order(app):
    with app.app_context():
        with pytest.raises(ConversionOrderNotFoundError):
            revert_conversion(4242)


def test_parked_order_is_skipped_with_its_reason(app):
    with app.app_context():
        order = _order(
            "W060",
            conversion_status=ConversionStatus.FAILED,
            conversion_note="missing standard time: 燙金",
        )

        result = convert_orders([order.id]).as_dict()

        assert result["converted"] == 0
        assert result["conflicts"] == []
        assert result["skipped"] == [{"id": order.id, "reason": PARKED_REASON}]
        assert _rows(order.id) == []
        assert db.session.get(DailyOrder, order.id).conversion_status == ConversionStatus.FAILED
