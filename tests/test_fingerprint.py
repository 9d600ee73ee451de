import os
import sys

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from printapp.fingerprint import (
    fingerprint,
    fingerprint_set,
    is_duplicate,
    partition_duplicates,
)
from printapp.records import OrderRecord


def _order(**kwargs):
    data = {
        "order_number": "W-1001",
        "doc_type": "一般單",
        "item_code": "ab-100",
        "item_name": "海報",
        "quantity": "150",
        "delivery_date": "2024-05-01",
        "plate_count": "",
        "designer": "Lin",
        "customer": "Acme",
        "handler": "Chen",
        "issuer": "Wu",
    }
    data.update(kwargs)
    return data


def test_fingerprint_ignores_item_code_case_and_whitespace():
    first = fingerprint(_order(item_code="ab-100"))
    second = fingerprint(_order(item_code="  AB-100 "))
    assert first == second


def test_fingerprint_matches_between_record_and_raw_row():
    raw = _order(quantity="150")
    record = OrderRecord.from_mapping(raw)
    assert fingerprint(record) == fingerprint(raw)


def test_fingerprint_treats_unparsable_quantity_as_zero():
    assert fingerprint(_order(quantity="n/a")) == fingerprint(_order(quantity=0))


def test_fingerprint_differs_when_a_semantic_field_changes():
    assert fingerprint(_order()) != fingerprint(_order(plate_count="3"))
    assert fingerprint(_order()) != fingerprint(_order(customer="Other"))


def test_fingerprint_ignores_status_fields():
    base = OrderRecord.from_mapping(_order())
    flagged = OrderRecord.from_mapping(_order(), status="Error", log_msg="x")
    assert fingerprint(base) == fingerprint(flagged)


def test_partition_duplicates_counts_skipped_rows():
    existing = fingerprint_set([_order()])
    incoming = [
        OrderRecord.from_mapping(_order(item_code="AB-100")),
        OrderRecord.from_mapping(_order(quantity="200")),
    ]

    fresh, skipped = partition_duplicates(incoming, existing)

    assert skipped == 1
    assert [record.quantity for record in fresh] == [200.0]
    assert is_duplicate(fingerprint(incoming[0]), existing)
    assert not is_duplicate(fingerprint(incoming[1]), existing)
