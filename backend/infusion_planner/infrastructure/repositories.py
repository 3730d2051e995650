from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, cast

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain.repositories import CatalogRepository, IngredientRepository, ScheduleRepository, SessionRepository
from ..models import Employee, Ingredient, InfusionSession, Recipe, Room, Schedule


class SqlAlchemySessionRepository(SessionRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _for_date(self, schedule_date: date) -> Select[Tuple[InfusionSession]]:
        return (
            select(InfusionSession)
            .join(Schedule, InfusionSession.schedule_id == Schedule.id)
            .where(Schedule.schedule_date == schedule_date)
            .order_by(InfusionSession.start_time, InfusionSession.id)
        )

    async def list_for_date(self, schedule_date: date, include_cancelled: bool = False) -> List[InfusionSession]:
        stmt = self._for_date(schedule_date)
        if not include_cancelled:
            stmt = stmt.where(InfusionSession.cancelled.is_(False))
        return list((await self.session.scalars(stmt)).all())

    async def get(self, session_id: int) -> Optional[Tuple[InfusionSession, Schedule]]:
        stmt: Select[Tuple[InfusionSession, Schedule]] = (
            select(InfusionSession, Schedule)
            .join(Schedule, InfusionSession.schedule_id == Schedule.id)
            .where(InfusionSession.id == session_id)
        )
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[InfusionSession, Schedule]], row)

    async def get_for_update(self, session_id: int) -> Optional[Tuple[InfusionSession, Schedule]]:
        stmt: Select[Tuple[InfusionSession, Schedule]] = (
            select(InfusionSession, Schedule)
            .join(Schedule, InfusionSession.schedule_id == Schedule.id)
            .where(InfusionSession.id == session_id)
            .with_for_update(of=InfusionSession)
        )
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[InfusionSession, Schedule]], row)

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
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        infusion = InfusionSession(
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
        self.session.add(infusion)
        await self.session.flush()
        return infusion

    async def save(self, session: InfusionSession) -> InfusionSession:
        self.session.add(session)
        await self.session.flush()
        return session

    async def list_for_employee(self, employee_id: int, schedule_date: date) -> List[InfusionSession]:
        stmt = self._for_date(schedule_date).where(
            InfusionSession.employee_id == employee_id,
            InfusionSession.cancelled.is_(False),
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_for_room(self, room_id: int, schedule_date: date) -> List[InfusionSession]:
        stmt = self._for_date(schedule_date).where(
            InfusionSession.room_id == room_id,
            InfusionSession.cancelled.is_(False),
        )
        return list((await self.session.scalars(stmt)).all())


class SqlAlchemyScheduleRepository(ScheduleRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_date(self, schedule_date: date) -> Schedule | None:
        result = await self.session.scalar(select(Schedule).where(Schedule.schedule_date == schedule_date))
        return result if isinstance(result, Schedule) else None

    async def find_or_create_for_date(self, schedule_date: date) -> Schedule:
        existing = await self.get_by_date(schedule_date)
        if existing is not None:
            return existing
        schedule = Schedule(schedule_date=schedule_date, published=False)
        self.session.add(schedule)
        await self.session.flush()
        return schedule


class SqlAlchemyIngredientRepository(IngredientRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, ingredient_id: int) -> Ingredient | None:
        result = await self.session.scalar(select(Ingredient).where(Ingredient.id == ingredient_id))
        return result if isinstance(result, Ingredient) else None

    async def get_many_for_update(self, ingredient_ids: Sequence[int]) -> List[Ingredient]:
        # Row locks are taken in id order so concurrent ledgers cannot deadlock.
        stmt = (
            select(Ingredient)
            .where(Ingredient.id.in_(list(ingredient_ids)))
            .order_by(Ingredient.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def save(self, ingredient: Ingredient) -> Ingredient:
        self.session.add(ingredient)
        await self.session.flush()
        return ingredient


class SqlAlchemyCatalogRepository(CatalogRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_room(self, room_id: int) -> Room | None:
        result = await self.session.scalar(select(Room).where(Room.id == room_id))
        return result if isinstance(result, Room) else None

    async def get_employee(self, employee_id: int) -> Employee | None:
        result = await self.session.scalar(select(Employee).where(Employee.id == employee_id))
        return result if isinstance(result, Employee) else None

    async def get_recipe(self, recipe_id: int) -> Recipe | None:
        result = await self.session.scalar(
            select(Recipe).options(selectinload(Recipe.steps)).where(Recipe.id == recipe_id)
        )
        return result if isinstance(result, Recipe) else None

    async def get_ingredients(self, ingredient_ids: Iterable[int]) -> List[Ingredient]:
        stmt = select(Ingredient).where(Ingredient.id.in_(list(ingredient_ids))).order_by(Ingredient.id)
        return list((await self.session.scalars(stmt)).all())
