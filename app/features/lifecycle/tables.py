# app/features/lifecycle/tables.py
"""
Allowed status transitions per entity.

A status missing from a table's keys accepts no transition at all (an order
in "pending" waits for payment confirmation, which is outside this graph).
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Mapping

from app.core.errors import ConflictError, ValidationError

TransitionTable = Mapping[str, FrozenSet[str]]

QUOTE_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "quoted": frozenset({"accepted", "cancelled"}),
    "accepted": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"received", "cancelled"}),
    "received": frozenset({"inspected", "cancelled"}),
    "inspected": frozenset({"paid", "cancelled"}),
    "paid": frozenset({"cancelled"}),
    "cancelled": frozenset(),
}

BULK_QUOTE_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "estimated": frozenset({"accepted", "cancelled"}),
    "accepted": frozenset({"received", "cancelled"}),
    "received": frozenset({"inspected", "cancelled"}),
    "inspected": frozenset({"paid", "cancelled"}),
    "paid": frozenset(),
    "cancelled": frozenset(),
}

ORDER_STATUSES = frozenset({"pending", "paid", "processing", "shipped", "delivered", "cancelled"})

ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "paid": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"delivered"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}


def allowed_targets(table: TransitionTable, current: str) -> FrozenSet[str]:
    return table.get(current, frozenset())


def check_transition(table: TransitionTable, known: FrozenSet[str], current: str, target: str) -> None:
    if target not in known:
        raise ValidationError(
            code="status",
            message=f"Unknown status {target!r}",
            details={"requested": target, "known": sorted(known)},
        )

    allowed = allowed_targets(table, current)
    if target not in allowed:
        raise ConflictError(
            code="invalid_transition",
            message=f"Cannot move from {current!r} to {target!r}",
            details={"current": current, "requested": target, "allowed": sorted(allowed)},
        )
