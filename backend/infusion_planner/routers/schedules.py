from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..deps import get_app_settings, get_now, get_session
from ..domain.entities import session_state
from ..domain.errors import SchedulingError, StockRace
from ..domain.ledger import InventoryLedger
from ..infrastructure.repositories import (
    SqlAlchemyCatalogRepository,
    SqlAlchemyIngredientRepository,
    SqlAlchemyScheduleRepository,
    SqlAlchemySessionRepository,
)
from ..schemas import ConflictRead, ScheduledSessionRead, ScheduleRead, SessionCreate, SessionProposal, SessionRead
from ..usecases import schedules as schedule_usecase
from ..usecases import sessions as session_usecase
from ..usecases.snapshots import SessionDraft
from ..utils.audit_log import emit_audit_log
from .errors import to_http_exception

router = APIRouter(prefix="/schedules", tags=["schedules"])


def _draft(schedule_date: date, payload: SessionProposal) -> SessionDraft:
    return SessionDraft(
        schedule_date=schedule_date,
        room_id=payload.room_id,
        recipe_id=payload.recipe_id,
        employee_id=payload.employee_id,
        start_time=payload.start_time,
        notes=payload.notes,
    )


@router.get("/{schedule_date}", response_model=ScheduleRead)
async def get_schedule(
    schedule_date: date,
    include_cancelled: bool = Query(default=False),
    session: AsyncSession = Depends(get_session),
) -> ScheduleRead:
    try:
        schedule = await schedule_usecase.get_schedule(
            SqlAlchemySessionRepository(session),
            SqlAlchemyScheduleRepository(session),
            SqlAlchemyCatalogRepository(session),
            schedule_date=schedule_date,
            include_cancelled=include_cancelled,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    return ScheduleRead(
        schedule_date=schedule.schedule_date,
        published=schedule.published,
        sessions=[ScheduledSessionRead.from_snapshot(s) for s in schedule.sessions],
    )


@router.get("/{schedule_date}/running", response_model=Optional[ScheduledSessionRead])
async def get_running_session(
    schedule_date: date,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> Optional[ScheduledSessionRead]:
    # Nothing is running on a day other than today
    if schedule_date != now.date():
        return None
    running = await schedule_usecase.find_running_session(
        SqlAlchemySessionRepository(session),
        SqlAlchemyScheduleRepository(session),
        SqlAlchemyCatalogRepository(session),
        schedule_date=schedule_date,
        now=now.time(),
    )
    return ScheduledSessionRead.from_snapshot(running) if running is not None else None


@router.get("/{schedule_date}/upcoming", response_model=List[ScheduledSessionRead])
async def list_upcoming_sessions(
    schedule_date: date,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
    settings: Settings = Depends(get_app_settings),
) -> list[ScheduledSessionRead]:
    # Any other day is read from its start, not from the current clock time
    moment = now.time() if schedule_date == now.date() else datetime.min.time()
    upcoming = await schedule_usecase.list_upcoming_sessions(
        SqlAlchemySessionRepository(session),
        SqlAlchemyScheduleRepository(session),
        SqlAlchemyCatalogRepository(session),
        schedule_date=schedule_date,
        now=moment,
        limit=settings.upcoming_limit,
    )
    return [ScheduledSessionRead.from_snapshot(s) for s in upcoming]


@router.post("/{schedule_date}/sessions/validate", response_model=List[ConflictRead])
async def validate_session(
    schedule_date: date,
    payload: SessionProposal,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> list[ConflictRead]:
    try:
        conflicts = await session_usecase.validate_session(
            SqlAlchemySessionRepository(session),
            SqlAlchemyCatalogRepository(session),
            draft=_draft(schedule_date, payload),
            check_daily_load=settings.enforce_daily_load,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    return [ConflictRead.from_domain(c) for c in conflicts]


@router.post("/{schedule_date}/sessions", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def create_session(
    schedule_date: date,
    payload: SessionCreate,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> SessionRead:
    race: StockRace | None = None
    async with session.begin():
        try:
            infusion, schedule = await session_usecase.create_session(
                SqlAlchemySessionRepository(session),
                SqlAlchemyScheduleRepository(session),
                SqlAlchemyCatalogRepository(session),
                InventoryLedger(SqlAlchemyIngredientRepository(session)),
                draft=_draft(schedule_date, payload),
                confirm_immediately=payload.confirm_immediately,
                check_daily_load=settings.enforce_daily_load,
            )
        except StockRace as exc:
            # The session stays committed as created; only the confirmation failed.
            race = exc
        except SchedulingError as exc:
            raise to_http_exception(exc) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        created = race.session if race is not None else infusion
        try:
            emit_audit_log(
                action="session.created",
                session_id=created.id,
                schedule_date=schedule_date,
                room_id=created.room_id,
                employee_id=created.employee_id,
                recipe_id=created.recipe_id,
                state_from=None,
                state_to=session_state(confirmed=created.confirmed, cancelled=created.cancelled),
            )
        except RuntimeError as exc:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc

    if race is not None:
        raise to_http_exception(race) from race
    return SessionRead.from_db(session=infusion, schedule=schedule)
