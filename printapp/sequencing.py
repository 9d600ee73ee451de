"""Sequence numbering for one order's operation rows.

Sequences are strictly increasing multiples of 10. Inserting a row renumbers
the whole list to 10, 20, 30, ...; deleting a row leaves the gap in place.
"""

from __future__ import annotations

from dataclasses import dataclass, is_dataclass, replace
from typing import Any, Iterable, Mapping, Sequence

SEQUENCE_STEP = 10

START = "start"
END = "end"


class SequenceError(ValueError):
    """Raised when an insertion anchor or target row is not in the list."""


@dataclass(frozen=True)
class SequenceUpdate:
    id: Any
    sequence: int


@dataclass(frozen=True)
class InsertPlan:
    position: int
    new_sequence: int
    updates: tuple[SequenceUpdate, ...]


def _attr(op: Any, name: str):
    if isinstance(op, Mapping):
        return op.get(name)
    return getattr(op, name)


def _with_sequence(op: Any, sequence: int):
    if isinstance(op, Mapping):
        return {**op, "sequence": sequence}
    if is_dataclass(op):
        return replace(op, sequence=sequence)
    op.sequence = sequence
    return op


def sequence_for(position: int) -> int:
    return (position + 1) * SEQUENCE_STEP


def ordered(ops: Iterable[Any]) -> list[Any]:
    """Sort by sequence, breaking ties (left by a failed renumber) on id."""

    def sort_key(op):
        sequence = _attr(op, "sequence")
        op_id = _attr(op, "id")
        return (
            sequence if sequence is not None else 0,
            op_id is None,
            op_id if isinstance(op_id, int) else 0,
        )

    return sorted(ops, key=sort_key)


def insertion_index(ops: Sequence[Any], point) -> int:
    if point == START:
        return 0
    if point == END or point is None:
        return len(ops)
    for index, op in enumerate(ops):
        if _attr(op, "id") == point:
            return index + 1
    raise SequenceError(f"Operation {point} is not part of this order.")


def plan_insert(ops: Iterable[Any], point) -> InsertPlan:
    current = ordered(ops)
    position = insertion_index(current, point)
    updates = []
    for index, op in enumerate(current):
        shifted = index if index < position else index + 1
        updates.append(SequenceUpdate(_attr(op, "id"), sequence_for(shifted)))
    return InsertPlan(
        position=position,
        new_sequence=sequence_for(position),
        updates=tuple(updates),
    )


def reindex_insert(ops: Iterable[Any], point, new_op) -> list[Any]:
    current = ordered(ops)
    plan = plan_insert(current, point)
    renumbered = [
        _with_sequence(op, update.sequence) for op, update in zip(current, plan.updates)
    ]
    renumbered.insert(plan.position, _with_sequence(new_op, plan.new_sequence))
    return renumbered


def reindex_delete(ops: Iterable[Any], op_id) -> list[Any]:
    current = ordered(ops)
    remaining = [op for op in current if _attr(op, "id") != op_id]
    if len(remaining) == len(current):
        raise SequenceError(f"Operation {op_id} is not part of this order.")
    return remaining


def renumber(ops: Iterable[Any]) -> list[SequenceUpdate]:
    """Canonical 10/20/30 numbering; safe to re-run after a partial write."""

    return [
        SequenceUpdate(_attr(op, "id"), sequence_for(index))
        for index, op in enumerate(ordered(ops))
    ]


def is_canonical(ops: Iterable[Any]) -> bool:
    sequences = [_attr(op, "sequence") for op in ordered(ops)]
    return all(
        isinstance(value, int) and value > 0 and value % SEQUENCE_STEP == 0
        for value in sequences
    ) and all(earlier < later for earlier, later in zip(sequences, sequences[1:]))
