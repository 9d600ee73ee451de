"""Quick quote estimates for an item before an order exists."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from printapp.constants import LASER_STATION_KEYWORDS, PRINTING_STATION_KEYWORDS
from printapp.master_index import MasterIndex
from printapp.normalize import contains_any, format_number, normalize_item_code, parse_number

# Spacing left between pieces nested on one plate, in the same unit as the dimensions.
DEFAULT_LAYOUT_GAP = 0.2


class EstimationError(ValueError):
    """Raised when an estimate cannot be produced from the given inputs."""


@dataclass(frozen=True)
class PlateLayout:
    per_plate: int
    plates_needed: int
    orientation: str | None
    note: str


@dataclass(frozen=True)
class EstimateLine:
    sequence: int
    op_name: str
    station: str
    setup_min: float
    cycle_min: float
    total_min: int
    formula: str
    is_plate_calc: bool
    missing_time: bool = False


@dataclass
class RouteEstimate:
    item_code: str
    route_id: str
    lines: list[EstimateLine] = field(default_factory=list)

    @property
    def total_min(self) -> int:
        return sum(line.total_min for line in self.lines)

    def as_dict(self) -> dict:
        return {
            "item_code": self.item_code,
            "route_id": self.route_id,
            "total_min": self.total_min,
            "lines": [line.__dict__ for line in self.lines],
        }


def plate_layout(
    plate_length,
    plate_width,
    product_length,
    product_width,
    quantity,
    gap: float = DEFAULT_LAYOUT_GAP,
) -> PlateLayout:
    """Work out how many pieces fit on a plate and how many plates an order needs.

    Both the straight and the rotated nesting are tried; the better one wins.
    """

    dims = [parse_number(v) for v in (plate_length, plate_width, product_length, product_width)]
    if any(value <= 0 for value in dims):
        raise EstimationError("Enter every plate and product dimension.")
    qty = parse_number(quantity)
    if qty <= 0:
        raise EstimationError("Quantity must be greater than zero.")

    p_length, p_width, item_length, item_width = dims
    piece_length = item_length + gap
    piece_width = item_width + gap

    straight = math.floor(p_length / piece_length) * math.floor(p_width / piece_width)
    rotated = math.floor(p_length / piece_width) * math.floor(p_width / piece_length)
    per_plate = max(straight, rotated)
    if per_plate == 0:
        return PlateLayout(0, 0, None, "Product is larger than the plate.")

    orientation = "straight" if straight >= rotated else "rotated"
    return PlateLayout(
        per_plate=per_plate,
        plates_needed=math.ceil(qty / per_plate),
        orientation=orientation,
        note=f"{orientation}: {per_plate} pieces per plate",
    )


def estimate_route(
    item_code,
    index: MasterIndex,
    quantity,
    plate_count=None,
    sheet_mode: bool = False,
) -> RouteEstimate:
    code = normalize_item_code(item_code)
    route_id = index.route_for(code)
    if not route_id:
        raise EstimationError(f"No route is set up for item code {code}.")
    steps = index.operations_for(route_id)
    if not steps:
        raise EstimationError(f"Route {route_id} has no operations.")

    qty = parse_number(quantity)
    if qty <= 0:
        raise EstimationError("Quantity must be greater than zero.")
    plates = parse_number(plate_count)
    if sheet_mode and plates <= 0:
        raise EstimationError("Sheet jobs need a plate count.")

    estimate = RouteEstimate(item_code=code, route_id=route_id)
    for step in steps:
        timing = index.time_for(step.op_name)
        setup = timing.setup_min if timing else 0.0
        cycle = timing.std_time_min if timing else 0.0
        station = timing.station if timing else "Unknown"

        use_plates = sheet_mode and (
            contains_any(station, PRINTING_STATION_KEYWORDS)
            or contains_any(station, LASER_STATION_KEYWORDS)
        )
        if use_plates:
            total = setup + cycle * plates
            formula = f"{format_number(setup)} + ({format_number(cycle)}×{format_number(plates)} plates)"
        else:
            total = setup + cycle * qty
            formula = f"{format_number(setup)} + ({format_number(cycle)}×{format_number(qty)})"

        estimate.lines.append(
            EstimateLine(
                sequence=step.sequence,
                op_name=step.op_name,
                station=station,
                setup_min=setup,
                cycle_min=cycle,
                total_min=math.ceil(round(total, 6)),
                formula=formula,
                is_plate_calc=use_plates,
                missing_time=timing is None,
            )
        )
    return estimate
