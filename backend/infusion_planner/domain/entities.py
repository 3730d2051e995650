from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from ..models import EmployeeSkill, RoomType
from ..utils.time import since_midnight


class ConflictKind(StrEnum):
    EMPLOYEE_UNAVAILABLE = "EMPLOYEE_UNAVAILABLE"
    EMPLOYEE_MAX_SESSIONS_EXCEEDED = "EMPLOYEE_MAX_SESSIONS_EXCEEDED"
    ROOM_OCCUPIED = "ROOM_OCCUPIED"
    ROOM_COOLDOWN_VIOLATION = "ROOM_COOLDOWN_VIOLATION"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"


class SessionState(StrEnum):
    CREATED = "created"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def session_state(*, confirmed: bool, cancelled: bool) -> SessionState:
    if cancelled:
        return SessionState.CANCELLED
    if confirmed:
        return SessionState.CONFIRMED
    return SessionState.CREATED


@dataclass(frozen=True)
class Conflict:
    kind: ConflictKind
    message: str
    session_id: Optional[int]
    resource_name: str


@dataclass(frozen=True)
class RoomSnapshot:
    room_id: int
    name: str
    cooldown_minutes: int
    room_type: Optional[RoomType] = None


@dataclass(frozen=True)
class EmployeeSnapshot:
    employee_id: int
    full_name: str
    daily_max_sessions: int
    skills: frozenset[EmployeeSkill] = frozenset()


@dataclass(frozen=True)
class IngredientSnapshot:
    ingredient_id: int
    name: str
    stock_level: int
    cost_per_unit: Decimal = Decimal("0")


@dataclass(frozen=True)
class StepSnapshot:
    duration_seconds: int
    heat_intensity: int
    dosage_ml: int = 0
    ingredient: Optional[IngredientSnapshot] = None


@dataclass(frozen=True)
class RecipeSnapshot:
    recipe_id: int
    name: str
    steps: tuple[StepSnapshot, ...] = field(default_factory=tuple)
    theme: Optional[str] = None


@dataclass(frozen=True)
class SessionSnapshot:
    """A session with its referenced catalog entities resolved at read time."""

    session_id: Optional[int]
    room: RoomSnapshot
    employee: EmployeeSnapshot
    recipe: RecipeSnapshot
    start_time: time
    confirmed: bool = False
    cancelled: bool = False


def total_duration(recipe: RecipeSnapshot) -> timedelta:
    return timedelta(seconds=sum(step.duration_seconds for step in recipe.steps))


def total_cost(recipe: RecipeSnapshot) -> Decimal:
    return sum(
        (step.ingredient.cost_per_unit * step.dosage_ml for step in recipe.steps if step.ingredient is not None),
        Decimal("0"),
    )


def required_ingredients(recipe: RecipeSnapshot) -> dict[int, tuple[IngredientSnapshot, int]]:
    """Dosage per ingredient summed across steps, keyed by ingredient id in order of first use."""
    required: dict[int, tuple[IngredientSnapshot, int]] = {}
    for step in recipe.steps:
        if step.ingredient is None:
            continue
        key = step.ingredient.ingredient_id
        ingredient, amount = required.get(key, (step.ingredient, 0))
        required[key] = (ingredient, amount + step.dosage_ml)
    return required


def start_offset(session: SessionSnapshot) -> timedelta:
    return since_midnight(session.start_time)


def end_offset(session: SessionSnapshot) -> timedelta:
    return start_offset(session) + total_duration(session.recipe)


def end_with_cooldown(session: SessionSnapshot) -> timedelta:
    return end_offset(session) + timedelta(minutes=session.room.cooldown_minutes)


def average_intensity(session: SessionSnapshot) -> float:
    steps = session.recipe.steps
    if not steps:
        return 0.0
    return sum(step.heat_intensity for step in steps) / len(steps)
