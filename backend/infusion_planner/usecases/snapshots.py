from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Optional

from ..domain.entities import (
    EmployeeSnapshot,
    IngredientSnapshot,
    RecipeSnapshot,
    RoomSnapshot,
    SessionSnapshot,
    StepSnapshot,
)
from ..domain.errors import NotFoundError
from ..domain.repositories import CatalogRepository
from ..models import InfusionSession


@dataclass(frozen=True)
class SessionDraft:
    """A proposed session: not persisted, references catalog entities by id."""

    schedule_date: date
    room_id: int
    recipe_id: int
    employee_id: int
    start_time: time
    notes: Optional[str] = None


class SnapshotLoader:
    """Resolves id references into frozen snapshots, caching each entity for one unit of work."""

    def __init__(self, catalog: CatalogRepository) -> None:
        self.catalog = catalog
        self._rooms: dict[int, RoomSnapshot] = {}
        self._employees: dict[int, EmployeeSnapshot] = {}
        self._recipes: dict[int, RecipeSnapshot] = {}

    async def room(self, room_id: int) -> RoomSnapshot:
        if room_id not in self._rooms:
            row = await self.catalog.get_room(room_id)
            if row is None:
                raise NotFoundError("room", room_id)
            self._rooms[room_id] = RoomSnapshot(
                room_id=row.id,
                name=row.name,
                cooldown_minutes=row.cooldown_minutes,
                room_type=row.room_type,
            )
        return self._rooms[room_id]

    async def employee(self, employee_id: int) -> EmployeeSnapshot:
        if employee_id not in self._employees:
            row = await self.catalog.get_employee(employee_id)
            if row is None:
                raise NotFoundError("employee", employee_id)
            self._employees[employee_id] = EmployeeSnapshot(
                employee_id=row.id,
                full_name=row.full_name,
                daily_max_sessions=row.daily_max_sessions,
                skills=frozenset(assignment.skill for assignment in row.skills),
            )
        return self._employees[employee_id]

    async def recipe(self, recipe_id: int) -> RecipeSnapshot:
        if recipe_id not in self._recipes:
            row = await self.catalog.get_recipe(recipe_id)
            if row is None:
                raise NotFoundError("recipe", recipe_id)
            ingredients = await self._ingredients(
                step.ingredient_id for step in row.steps if step.ingredient_id is not None
            )
            steps = []
            for step in sorted(row.steps, key=lambda s: s.position):
                ingredient = None
                if step.ingredient_id is not None:
                    if step.ingredient_id not in ingredients:
                        raise NotFoundError("ingredient", step.ingredient_id)
                    ingredient = ingredients[step.ingredient_id]
                steps.append(
                    StepSnapshot(
                        duration_seconds=step.duration_seconds,
                        heat_intensity=step.heat_intensity,
                        dosage_ml=step.dosage_ml,
                        ingredient=ingredient,
                    )
                )
            self._recipes[recipe_id] = RecipeSnapshot(
                recipe_id=row.id,
                name=row.name,
                steps=tuple(steps),
                theme=row.theme,
            )
        return self._recipes[recipe_id]

    async def draft(self, draft: SessionDraft) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=None,
            room=await self.room(draft.room_id),
            employee=await self.employee(draft.employee_id),
            recipe=await self.recipe(draft.recipe_id),
            start_time=draft.start_time,
        )

    async def session(self, row: InfusionSession) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=row.id,
            room=await self.room(row.room_id),
            employee=await self.employee(row.employee_id),
            recipe=await self.recipe(row.recipe_id),
            start_time=row.start_time,
            confirmed=bool(row.confirmed),
            cancelled=bool(row.cancelled),
        )

    async def sessions(self, rows: Iterable[InfusionSession]) -> list[SessionSnapshot]:
        return [await self.session(row) for row in rows]

    async def _ingredients(self, ingredient_ids: Iterable[int]) -> dict[int, IngredientSnapshot]:
        ids = sorted(set(ingredient_ids))
        if not ids:
            return {}
        rows = await self.catalog.get_ingredients(ids)
        return {
            row.id: IngredientSnapshot(
                ingredient_id=row.id,
                name=row.name,
                stock_level=row.stock_level,
                cost_per_unit=row.cost_per_unit,
            )
            for row in rows
        }
