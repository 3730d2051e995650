from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from itertools import count
from typing import Iterable, List, Optional, Sequence, Tuple

import pytest
from infusion_planner.domain.ledger import IngredientLocks, InventoryLedger
from infusion_planner.models import (
    Employee,
    Ingredient,
    InfusionSession,
    Recipe,
    RecipeStep,
    Room,
    RoomType,
    Schedule,
    ScentProfile,
)


@dataclass
class InMemoryStore:
    rooms: dict[int, Room] = field(default_factory=dict)
    employees: dict[int, Employee] = field(default_factory=dict)
    recipes: dict[int, Recipe] = field(default_factory=dict)
    ingredients: dict[int, Ingredient] = field(default_factory=dict)
    schedules: dict[date, Schedule] = field(default_factory=dict)
    sessions: dict[int, InfusionSession] = field(default_factory=dict)
    _ids: "count[int]" = field(default_factory=lambda: count(1))

    def next_id(self) -> int:
        return next(self._ids)

    def schedule_by_id(self, schedule_id: int) -> Schedule:
        return next(s for s in self.schedules.values() if s.id == schedule_id)


class FakeSessionRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.save_calls = 0

    def _rows(self, schedule_date: date, include_cancelled: bool) -> List[InfusionSession]:
        schedule = self.store.schedules.get(schedule_date)
        if schedule is None:
            return []
        rows = [
            s
            for s in self.store.sessions.values()
            if s.schedule_id == schedule.id and (include_cancelled or not s.cancelled)
        ]
        return sorted(rows, key=lambda s: (s.start_time, s.id))

    async def list_for_date(self, schedule_date: date, include_cancelled: bool = False) -> List[InfusionSession]:
        return self._rows(schedule_date, include_cancelled)

    async def get(self, session_id: int) -> Optional[Tuple[InfusionSession, Schedule]]:
        session = self.store.sessions.get(session_id)
        if session is None:
            return None
        return session, self.store.schedule_by_id(session.schedule_id)

    async def get_for_update(self, session_id: int) -> Optional[Tuple[InfusionSession, Schedule]]:
        return await self.get(session_id)

    async def add(
        self,
        *,
        schedule: Schedule,
        room_id: int,
        recipe_id: int,
        employee_id: int,
        start_time: time,
        notes: str | None,
    ) -> InfusionSession:
        now = datetime(2024, 1, 1)
        session = InfusionSession(
            id=self.store.next_id(),
            schedule_id=schedule.id,
            room_id=room_id,
            recipe_id=recipe_id,
            employee_id=employee_id,
            start_time=start_time,
            confirmed=False,
            cancelled=False,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.store.sessions[session.id] = session
        return session

    async def save(self, session: InfusionSession) -> InfusionSession:
        self.save_calls += 1
        return session

    async def list_for_employee(self, employee_id: int, schedule_date: date) -> List[InfusionSession]:
        return [s for s in self._rows(schedule_date, False) if s.employee_id == employee_id]

    async def list_for_room(self, room_id: int, schedule_date: date) -> List[InfusionSession]:
        return [s for s in self._rows(schedule_date, False) if s.room_id == room_id]


class FakeScheduleRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get_by_date(self, schedule_date: date) -> Schedule | None:
        return self.store.schedules.get(schedule_date)

    async def find_or_create_for_date(self, schedule_date: date) -> Schedule:
        if schedule_date not in self.store.schedules:
            self.store.schedules[schedule_date] = Schedule(
                id=self.store.next_id(),
                schedule_date=schedule_date,
                published=False,
            )
        return self.store.schedules[schedule_date]


class FakeCatalog:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get_room(self, room_id: int) -> Room | None:
        return self.store.rooms.get(room_id)

    async def get_employee(self, employee_id: int) -> Employee | None:
        return self.store.employees.get(employee_id)

    async def get_recipe(self, recipe_id: int) -> Recipe | None:
        return self.store.recipes.get(recipe_id)

    async def get_ingredients(self, ingredient_ids: Iterable[int]) -> List[Ingredient]:
        return [self.store.ingredients[i] for i in ingredient_ids if i in self.store.ingredients]


class FakeIngredientRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, ingredient_id: int) -> Ingredient | None:
        return self.store.ingredients.get(ingredient_id)

    async def get_many_for_update(self, ingredient_ids: Sequence[int]) -> List[Ingredient]:
        return [self.store.ingredients[i] for i in sorted(ingredient_ids) if i in self.store.ingredients]

    async def save(self, ingredient: Ingredient) -> Ingredient:
        return ingredient


@dataclass
class Harness:
    store: InMemoryStore
    sessions: FakeSessionRepo
    schedules: FakeScheduleRepo
    catalog: FakeCatalog
    ledger: InventoryLedger

    def stock(self, ingredient_id: int = 1) -> int:
        return self.store.ingredients[ingredient_id].stock_level


def build_harness(*, stock: int = 100, dosage: int = 60, cooldown: int = 15, daily_max: int = 6) -> Harness:
    store = InMemoryStore()
    store.rooms[1] = Room(id=1, name="Finnish Sauna", capacity=10, room_type=RoomType.FINNISH, cooldown_minutes=cooldown)
    store.rooms[2] = Room(id=2, name="Steam Bath", capacity=8, room_type=RoomType.STEAM, cooldown_minutes=0)
    store.employees[1] = Employee(
        id=1, first_name="John", last_name="Doe", certification_level=4, daily_max_sessions=daily_max, active=True
    )
    store.employees[2] = Employee(
        id=2, first_name="Anna", last_name="Berg", certification_level=3, daily_max_sessions=daily_max, active=True
    )
    store.ingredients[1] = Ingredient(
        id=1,
        name="Eucalyptus",
        scent_profile=ScentProfile.HERBAL,
        stock_level=stock,
        cost_per_unit=Decimal("0.15"),
        version=1,
    )
    store.recipes[1] = Recipe(
        id=1,
        name="Classic",
        theme="Nordic Aurora",
        steps=[
            RecipeStep(
                id=1,
                position=0,
                name="Round 1",
                duration_seconds=300,
                heat_intensity=5,
                dosage_ml=dosage,
                ingredient_id=1,
            )
        ],
    )
    return Harness(
        store=store,
        sessions=FakeSessionRepo(store),
        schedules=FakeScheduleRepo(store),
        catalog=FakeCatalog(store),
        ledger=InventoryLedger(FakeIngredientRepo(store), locks=IngredientLocks()),
    )


@pytest.fixture
def harness() -> Harness:
    return build_harness()


@pytest.fixture
def make_harness():
    return build_harness
