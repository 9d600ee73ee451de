import io
import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from printapp import create_app
from printapp.extensions import db
from printapp.models import DailyOrder, ItemRoute, OperationTime, RouteOperation, StationTimeSummary

ORDER_CSV = (
    "工單編號,單據種類,品項編碼,品名/規格,數量,交付日期,盤數\n"
    "W001,一般,AB-100,海報,40,2026-10-20,\n"
    "W002,一般,ZZ-9,貼紙,10,2026-10-21,\n"
)


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        db.session.add_all(
            [
                ItemRoute(item_code="AB-100", route_id="R-PRINT"),
                RouteOperation(route_id="R-PRINT", sequence=10, op_name="印刷"),
                RouteOperation(route_id="R-PRINT", sequence=20, op_name="包裝"),
                OperationTime(op_name="印刷", station="印刷站2F", std_time_min=3, setup_min=15),
                OperationTime(op_name="包裝", station="包裝站", std_time_min=0.5),
            ]
        )
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _upload(client, text, filename="orders.csv"):
    return client.post(
        "/orders/upload",
        data={"file": (io.BytesIO(text.encode("utf-8")), filename)},
        content_type="multipart/form-data",
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "OK", "database": True}


def test_order_flow_from_upload_to_schedule(client, app):
    response = _upload(client, ORDER_CSV)
    assert response.status_code == 201
    assert response.get_json()["error_rows"] == 1

    staged = client.get("/orders/staging").get_json()["orders"]
    assert [row["order_number"] for row in staged] == ["W002", "W001"]
    assert staged[0]["status_label"] == "Needs Correction"

    response = client.patch(f"/orders/staging/{staged[0]['id']}", json={"item_code": "AB-100"})
    assert response.get_json()["status"] == "OK"

    assert client.post("/orders/staging/commit").get_json() == {"committed": 2, "flagged": 0}

    candidates = client.get("/conversion/candidates").get_json()["orders"]
    order_ids = [order["id"] for order in candidates]
    assert len(order_ids) == 2

    preview = client.post("/conversion/preview", json={"order_ids": order_ids}).get_json()
    assert preview["summary"]["operations"] == 4

    result = client.post("/conversion/run", json={"order_ids": order_ids}).get_json()
    assert result["converted"] == 2
    assert result["operations"] == 4

    groups = client.get("/operations").get_json()["orders"]
    assert len(groups) == 2
    op_id = groups[0]["operations"][0]["id"]

    assert client.post("/schedule/assign", json={"selections": {str(op_id): "printing"}}).status_code == 200
    machine = client.post("/schedule/machines", json={"name": "Heidelberg", "category": "印刷"}).get_json()
    placed = client.post(
        f"/schedule/operations/{op_id}",
        json={"machine_id": machine["id"], "scheduled_date": "2026-10-19"},
    ).get_json()
    assert placed["capacity"]["operation_count"] == 1

    board = client.get("/schedule/board/printing?start=2026-10-19&weeks=1").get_json()
    assert len(board["days"]) == 5
    assert [op["id"] for op in board["days"][0]["operations"]] == [op_id]


def test_upload_without_file(client):
    response = client.post("/orders/upload", data={}, content_type="multipart/form-data")
    assert response.status_code == 400
    assert response.get_json()["error"] == "No file uploaded."


def test_unsupported_upload_type(client):
    response = _upload(client, ORDER_CSV, filename="orders.pdf")
    assert response.status_code == 400


def test_not_found_errors_are_json(client):
    response = client.patch("/orders/staging/999", json={"item_code": "AB-100"})
    assert response.status_code == 404
    assert "999" in response.get_json()["error"]

    response = client.post("/conversion/999/revert")
    assert response.status_code == 404


def test_conversion_requires_order_ids(client):
    response = client.post("/conversion/run", json={})
    assert response.status_code == 400


def test_resubmit_converted_order_conflicts(client, app):
    with app.app_context():
        order = DailyOrder(order_number="W900", item_code="AB-100", quantity=1, is_converted=True)
        db.session.add(order)
        db.session.commit()
        order_id = order.id

    response = client.post(f"/orders/pending/{order_id}/resubmit", json={})
    assert response.status_code == 409


def test_validate_dry_run(client):
    response = client.post(
        "/orders/validate",
        json={"item_code": "AB-100", "quantity": 0, "delivery_date": ""},
    )
    body = response.get_json()
    assert body["status"] == "Error"
    assert len(body["reasons"]) == 2


def test_master_data_upload_and_summary(client):
    response = client.post(
        "/master-data/upload",
        data={
            "operation_times": (
                io.BytesIO("製程名稱,站點,生產時間\n雷切,雷切站,2\n".encode("utf-8")),
                "times.csv",
            )
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.get_json()["replaced"] == {"operation_times": 1}
    assert client.get("/master-data/summary").get_json() == {
        "item_routes": 1,
        "route_operations": 2,
        "operation_times": 1,
    }


def test_estimate_and_plate_layout(client):
    response = client.post("/master-data/estimate", json={"item_code": "AB-100", "quantity": 40})
    assert response.status_code == 200
    body = response.get_json()
    assert body["route_id"] == "R-PRINT"
    assert body["total_min"] == 155

    response = client.post("/master-data/estimate", json={"item_code": "NOPE", "quantity": 40})
    assert response.status_code == 400

    response = client.post(
        "/master-data/plate-layout",
        json={
            "plate_length": 100,
            "plate_width": 60,
            "product_length": 18,
            "product_width": 32,
            "quantity": 25,
        },
    )
    assert response.get_json()["plates_needed"] == 3


def test_holiday_toggle_and_bad_date(client):
    response = client.post("/schedule/calendar/2026-10-19/toggle", json={})
    assert response.get_json()["is_holiday"] is True

    response = client.get("/schedule/machines/1/capacity?date=2026-10-19")
    assert response.status_code == 404

    response = client.post("/schedule/calendar/someday/toggle", json={})
    assert response.status_code == 400


def test_unassign_route_and_bad_machine_id(client, app):
    with app.app_context():
        order = DailyOrder(order_number="W901", item_code="AB-100", quantity=1, is_converted=True)
        db.session.add(order)
        db.session.commit()
        row = StationTimeSummary(
            source_order_id=order.id, order_number="W901", sequence=10, op_name="印刷",
            assigned_section="printing",
        )
        db.session.add(row)
        db.session.commit()
        op_id = row.id

    assigned = client.get("/schedule/assigned?section_id=printing").get_json()["operations"]
    assert [op["id"] for op in assigned] == [op_id]

    response = client.post(
        f"/schedule/operations/{op_id}",
        json={"machine_id": "press-1", "scheduled_date": "2026-10-19"},
    )
    assert response.status_code == 400

    assert client.post(f"/schedule/operations/{op_id}/unassign").status_code == 200
    assert client.get("/schedule/assigned").get_json()["operations"] == []
