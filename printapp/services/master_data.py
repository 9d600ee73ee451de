"""Load and replace the item → route → operation → time master tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from printapp.constants import UNKNOWN_STATION
from printapp.extensions import db
from printapp.master_index import MasterIndex
from printapp.models import ItemRoute, OperationTime, RouteOperation
from printapp.normalize import normalize_item_code, normalize_text, parse_number
from printapp.sequencing import sequence_for
from printapp.services.errors import ServiceError
from printapp.utils.tabular_import import read_csv_rows, resolve_columns

logger = logging.getLogger(__name__)

# Route sheets list operations in wide columns 工序1 .. 工序20.
MAX_ROUTE_COLUMNS = 20

ITEM_ROUTE_ALIASES = {
    "item_code": {"品項編碼", "item code", "item_code"},
    "route_id": {"途程名稱", "途程", "route", "route id", "route_id"},
}

ROUTE_OPERATION_ALIASES = {
    "route_id": {"途程", "途程名稱", "route", "route id", "route_id"},
}

OPERATION_TIME_ALIASES = {
    "op_name": {"製程名稱", "工序", "operation", "op name", "op_name"},
    "station": {"站點", "station"},
    "std_time_min": {"生產時間", "std time", "std_time_min", "standard time"},
    "setup_min": {"準備時間", "setup", "setup time", "setup_min"},
}


class MasterDataImportError(ServiceError):
    pass


@dataclass
class MasterDataUpload:
    item_routes: list[dict] | None = None
    route_operations: list[dict] | None = None
    operation_times: list[dict] | None = None

    def is_empty(self) -> bool:
        return (
            self.item_routes is None
            and self.route_operations is None
            and self.operation_times is None
        )


@dataclass
class MasterDataOverwriteResult:
    replaced: dict[str, int] = field(default_factory=dict)
    deleted: dict[str, int] = field(default_factory=dict)


def load_master_index() -> MasterIndex:
    """Snapshot the three master tables for one processing session."""

    item_routes = ItemRoute.query.order_by(ItemRoute.id).all()
    route_operations = RouteOperation.query.order_by(
        RouteOperation.route_id, RouteOperation.sequence
    ).all()
    operation_times = OperationTime.query.order_by(OperationTime.id).all()
    index = MasterIndex.build(item_routes, route_operations, operation_times)
    logger.debug("Loaded master index %s", index.counts())
    return index


def parse_item_routes(csv_text: str) -> list[dict]:
    headers, rows = read_csv_rows(csv_text)
    columns = resolve_columns(headers, ITEM_ROUTE_ALIASES)
    missing = set(ITEM_ROUTE_ALIASES) - set(columns)
    if missing:
        raise MasterDataImportError(
            "Item route file is missing required column(s): " + ", ".join(sorted(missing))
        )

    parsed: dict[str, dict] = {}
    for row in rows:
        item_code = normalize_item_code(row.get(columns["item_code"]))
        route_id = normalize_text(row.get(columns["route_id"]))
        if item_code and route_id:
            parsed[item_code] = {"item_code": item_code, "route_id": route_id}
    return list(parsed.values())


def _route_operation_columns(headers: list[str]) -> list[str]:
    by_name = {normalize_text(header).lower(): header for header in headers}
    columns = []
    for position in range(1, MAX_ROUTE_COLUMNS + 1):
        for candidate in (f"工序{position}", f"op{position}", f"op {position}"):
            header = by_name.get(candidate)
            if header is not None:
                columns.append(header)
                break
        else:
            columns.append(None)
    return columns


def parse_route_operations(csv_text: str) -> list[dict]:
    """Flatten wide route rows into one row per operation.

    Column ``工序N`` becomes sequence ``N × 10``; blank cells leave a gap.
    """

    headers, rows = read_csv_rows(csv_text)
    columns = resolve_columns(headers, ROUTE_OPERATION_ALIASES)
    if "route_id" not in columns:
        raise MasterDataImportError("Route operation file is missing the route column.")
    op_columns = _route_operation_columns(headers)
    if not any(op_columns):
        raise MasterDataImportError("Route operation file has no 工序1..工序20 columns.")

    parsed: dict[tuple[str, int], dict] = {}
    for row in rows:
        route_id = normalize_text(row.get(columns["route_id"]))
        if not route_id:
            continue
        for position, header in enumerate(op_columns):
            if header is None:
                continue
            op_name = normalize_text(row.get(header))
            if not op_name:
                continue
            sequence = sequence_for(position)
            parsed[(route_id, sequence)] = {
                "route_id": route_id,
                "sequence": sequence,
                "op_name": op_name,
            }
    return list(parsed.values())


def parse_operation_times(csv_text: str) -> list[dict]:
    """Read op_name → (station, minutes); a repeated op_name keeps the last row."""

    headers, rows = read_csv_rows(csv_text)
    columns = resolve_columns(headers, OPERATION_TIME_ALIASES)
    if "op_name" not in columns:
        raise MasterDataImportError("Operation time file is missing the operation column.")

    parsed: dict[str, dict] = {}
    for row in rows:
        op_name = normalize_text(row.get(columns["op_name"]))
        if not op_name:
            continue
        station = normalize_text(row.get(columns["station"])) if "station" in columns else ""
        std_time = row.get(columns["std_time_min"]) if "std_time_min" in columns else None
        setup = row.get(columns["setup_min"]) if "setup_min" in columns else None
        parsed[op_name] = {
            "op_name": op_name,
            "station": station or UNKNOWN_STATION,
            "std_time_min": parse_number(std_time),
            "setup_min": parse_number(setup),
        }
    return list(parsed.values())


def parse_master_upload(
    item_routes_csv: str | None = None,
    route_operations_csv: str | None = None,
    operation_times_csv: str | None = None,
) -> MasterDataUpload:
    return MasterDataUpload(
        item_routes=parse_item_routes(item_routes_csv) if item_routes_csv is not None else None,
        route_operations=(
            parse_route_operations(route_operations_csv)
            if route_operations_csv is not None
            else None
        ),
        operation_times=(
            parse_operation_times(operation_times_csv)
            if operation_times_csv is not None
            else None
        ),
    )


def overwrite_master_data(
    item_routes_csv: str | None = None,
    route_operations_csv: str | None = None,
    operation_times_csv: str | None = None,
) -> MasterDataOverwriteResult:
    """Replace the supplied master tables wholesale.

    Every file is parsed before anything is deleted. Deletes run child to
    parent and inserts parent to child inside one transaction, so a bad file
    leaves the previous master data in place.
    """

    upload = parse_master_upload(item_routes_csv, route_operations_csv, operation_times_csv)
    if upload.is_empty():
        raise MasterDataImportError("Select at least one master data file to upload.")

    result = MasterDataOverwriteResult()
    try:
        if upload.item_routes is not None:
            result.deleted["item_routes"] = ItemRoute.query.delete()
        if upload.route_operations is not None:
            result.deleted["route_operations"] = RouteOperation.query.delete()
        if upload.operation_times is not None:
            result.deleted["operation_times"] = OperationTime.query.delete()

        if upload.operation_times is not None:
            db.session.add_all(OperationTime(**row) for row in upload.operation_times)
            result.replaced["operation_times"] = len(upload.operation_times)
        if upload.route_operations is not None:
            db.session.add_all(RouteOperation(**row) for row in upload.route_operations)
            result.replaced["route_operations"] = len(upload.route_operations)
        if upload.item_routes is not None:
            db.session.add_all(ItemRoute(**row) for row in upload.item_routes)
            result.replaced["item_routes"] = len(upload.item_routes)

        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Master data overwrite failed")
        raise MasterDataImportError(f"Master data could not be saved: {exc}") from exc

    logger.info("Master data overwritten: replaced=%s deleted=%s", result.replaced, result.deleted)
    return result


def master_data_summary() -> dict[str, int]:
    return {
        "item_routes": ItemRoute.query.count(),
        "route_operations": RouteOperation.query.count(),
        "operation_times": OperationTime.query.count(),
    }
