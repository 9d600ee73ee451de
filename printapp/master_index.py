"""Read-only snapshot of the item → route → operation → time master data."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from printapp.normalize import normalize_item_code, normalize_text, parse_number


@dataclass(frozen=True)
class RouteStep:
    sequence: int
    op_name: str


@dataclass(frozen=True)
class OperationTiming:
    op_name: str
    station: str
    std_time_min: float
    setup_min: float = 0.0


def _get(row: Any, name: str):
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


@dataclass(frozen=True)
class MasterIndex:
    """Lookup maps built once per processing session.

    The index never changes after :meth:`build`; reload it to pick up master
    data edits made after the session started.
    """

    item_routes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    route_operations: Mapping[str, tuple[RouteStep, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    operation_times: Mapping[str, OperationTiming] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def build(
        cls,
        item_routes: Iterable[Any] = (),
        route_operations: Iterable[Any] = (),
        operation_times: Iterable[Any] = (),
    ) -> "MasterIndex":
        routes: dict[str, str] = {}
        for row in item_routes:
            item_code = normalize_item_code(_get(row, "item_code"))
            route_id = normalize_text(_get(row, "route_id"))
            if item_code and route_id:
                routes[item_code] = route_id

        steps_by_route: dict[str, dict[int, RouteStep]] = {}
        for row in route_operations:
            route_id = normalize_text(_get(row, "route_id"))
            op_name = normalize_text(_get(row, "op_name"))
            if not route_id or not op_name:
                continue
            sequence = int(parse_number(_get(row, "sequence")))
            steps_by_route.setdefault(route_id, {})[sequence] = RouteStep(sequence, op_name)

        ordered_steps = {
            route_id: tuple(steps[seq] for seq in sorted(steps))
            for route_id, steps in steps_by_route.items()
        }

        timings: dict[str, OperationTiming] = {}
        for row in operation_times:
            op_name = normalize_text(_get(row, "op_name"))
            if not op_name:
                continue
            timings[op_name] = OperationTiming(
                op_name=op_name,
                station=normalize_text(_get(row, "station")),
                std_time_min=parse_number(_get(row, "std_time_min")),
                setup_min=parse_number(_get(row, "setup_min")),
            )

        return cls(
            item_routes=MappingProxyType(routes),
            route_operations=MappingProxyType(ordered_steps),
            operation_times=MappingProxyType(timings),
        )

    def route_for(self, item_code) -> str | None:
        return self.item_routes.get(normalize_item_code(item_code))

    def has_item(self, item_code) -> bool:
        return normalize_item_code(item_code) in self.item_routes

    def operations_for(self, route_id: str | None) -> tuple[RouteStep, ...]:
        if not route_id:
            return ()
        return self.route_operations.get(normalize_text(route_id), ())

    def time_for(self, op_name) -> OperationTiming | None:
        return self.operation_times.get(normalize_text(op_name))

    def counts(self) -> dict[str, int]:
        return {
            "item_routes": len(self.item_routes),
            "route_operations": sum(len(steps) for steps in self.route_operations.values()),
            "operation_times": len(self.operation_times),
        }
