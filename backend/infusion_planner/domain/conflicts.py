from __future__ import annotations

from typing import Iterable, Sequence

from ..utils.time import format_clock
from .entities import (
    Conflict,
    ConflictKind,
    EmployeeSnapshot,
    SessionSnapshot,
    end_offset,
    end_with_cooldown,
    required_ingredients,
    start_offset,
)
from .intervals import overlaps


def detect(proposed: SessionSnapshot, committed: Sequence[SessionSnapshot]) -> list[Conflict]:
    """
    Pure validation of a proposed session against the committed sessions of the same day.
    Returns employee conflicts, then room conflicts, then inventory conflicts; the first
    two groups follow the committed sessions' start times. Never mutates anything.
    """
    others = _ordered_others(proposed, committed)
    conflicts: list[Conflict] = []
    conflicts.extend(_employee_conflicts(proposed, others))
    conflicts.extend(_room_conflicts(proposed, others))
    conflicts.extend(check_inventory(proposed))
    return conflicts


def check_daily_load(employee: EmployeeSnapshot, sessions_for_day: Iterable[SessionSnapshot]) -> list[Conflict]:
    count = sum(
        1
        for session in sessions_for_day
        if not session.cancelled and session.employee.employee_id == employee.employee_id
    )
    if count < employee.daily_max_sessions:
        return []
    return [
        Conflict(
            kind=ConflictKind.EMPLOYEE_MAX_SESSIONS_EXCEEDED,
            message=(
                f"Employee {employee.full_name} has reached or exceeded daily maximum of "
                f"{employee.daily_max_sessions} sessions (current: {count})"
            ),
            session_id=None,
            resource_name=employee.full_name,
        )
    ]


def check_inventory(proposed: SessionSnapshot) -> list[Conflict]:
    conflicts: list[Conflict] = []
    for ingredient, required in required_ingredients(proposed.recipe).values():
        if required > ingredient.stock_level:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.INSUFFICIENT_INVENTORY,
                    message=(
                        f"Insufficient inventory for ingredient {ingredient.name}: "
                        f"required {required} ml, available {ingredient.stock_level} ml"
                    ),
                    session_id=None,
                    resource_name=ingredient.name,
                )
            )
    return conflicts


def _ordered_others(proposed: SessionSnapshot, committed: Sequence[SessionSnapshot]) -> list[SessionSnapshot]:
    others = [
        session
        for session in committed
        if not session.cancelled
        and not (proposed.session_id is not None and session.session_id == proposed.session_id)
    ]
    # sorted() is stable, so equal start times keep their incoming order
    return sorted(others, key=start_offset)


def _employee_conflicts(proposed: SessionSnapshot, others: list[SessionSnapshot]) -> list[Conflict]:
    start, end = start_offset(proposed), end_offset(proposed)
    conflicts: list[Conflict] = []
    for existing in others:
        if existing.employee.employee_id != proposed.employee.employee_id:
            continue
        existing_start, existing_end = start_offset(existing), end_offset(existing)
        if not overlaps(existing_start, existing_end, start, end):
            continue
        conflicts.append(
            Conflict(
                kind=ConflictKind.EMPLOYEE_UNAVAILABLE,
                message=(
                    f"Employee {existing.employee.full_name} is already scheduled from "
                    f"{format_clock(existing_start)} to {format_clock(existing_end)}"
                ),
                session_id=existing.session_id,
                resource_name=existing.employee.full_name,
            )
        )
    return conflicts


def _room_conflicts(proposed: SessionSnapshot, others: list[SessionSnapshot]) -> list[Conflict]:
    start, end = start_offset(proposed), end_offset(proposed)
    buffered_end = end_with_cooldown(proposed)
    conflicts: list[Conflict] = []
    for existing in others:
        if existing.room.room_id != proposed.room.room_id:
            continue
        existing_start, existing_end = start_offset(existing), end_offset(existing)
        existing_buffered_end = end_with_cooldown(existing)
        if not overlaps(existing_start, existing_buffered_end, start, buffered_end):
            continue
        room_name = existing.room.name
        if overlaps(existing_start, existing_end, start, end):
            conflicts.append(
                Conflict(
                    kind=ConflictKind.ROOM_OCCUPIED,
                    message=(
                        f"Room {room_name} is occupied from "
                        f"{format_clock(existing_start)} to {format_clock(existing_end)}"
                    ),
                    session_id=existing.session_id,
                    resource_name=room_name,
                )
            )
        else:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.ROOM_COOLDOWN_VIOLATION,
                    message=(
                        f"Room {room_name} requires cool-down until {format_clock(existing_buffered_end)} "
                        f"(previous session ends at {format_clock(existing_end)}, "
                        f"{existing.room.cooldown_minutes} min cool-down required)"
                    ),
                    session_id=existing.session_id,
                    resource_name=room_name,
                )
            )
    return conflicts
