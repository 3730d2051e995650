from __future__ import annotations

from datetime import date, time
from typing import Iterable, Protocol, Sequence

from ..models import Employee, Ingredient, InfusionSession, Recipe, Room, Schedule


class SessionRepository(Protocol):
    async def list_for_date(self, schedule_date: date, include_cancelled: bool = False) -> list[InfusionSession]: ...

    async def get(self, session_id: int) -> tuple[InfusionSession, Schedule] | None: ...

    async def get_for_update(self, session_id: int) -> tuple[InfusionSession, Schedule] | None: ...

    async def add(
        self,
        *,
        schedule: Schedule,
        room_id: int,
        recipe_id: int,
        employee_id: int,
        start_time: time,
        notes: str | None,
    ) -> InfusionSession: ...

    async def save(self, session: InfusionSession) -> InfusionSession: ...

    async def list_for_employee(self, employee_id: int, schedule_date: date) -> list[InfusionSession]: ...

    async def list_for_room(self, room_id: int, schedule_date: date) -> list[InfusionSession]: ...


class IngredientRepository(Protocol):
    async def get(self, ingredient_id: int) -> Ingredient | None: ...

    async def get_many_for_update(self, ingredient_ids: Sequence[int]) -> list[Ingredient]: ...

    async def save(self, ingredient: Ingredient) -> Ingredient: ...


class ScheduleRepository(Protocol):
    async def get_by_date(self, schedule_date: date) -> Schedule | None: ...

    async def find_or_create_for_date(self, schedule_date: date) -> Schedule: ...


class CatalogRepository(Protocol):
    async def get_room(self, room_id: int) -> Room | None: ...

    async def get_employee(self, employee_id: int) -> Employee | None: ...

    async def get_recipe(self, recipe_id: int) -> Recipe | None: ...

    async def get_ingredients(self, ingredient_ids: Iterable[int]) -> list[Ingredient]: ...
