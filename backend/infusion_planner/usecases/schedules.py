from datetime import date, time
from typing import Optional

from ..domain.entities import SessionSnapshot
from ..domain.repositories import CatalogRepository, ScheduleRepository, SessionRepository
from ..domain.schedule import DailySchedule
from .snapshots import SnapshotLoader


async def get_schedule(
    session_repo: SessionRepository,
    schedule_repo: ScheduleRepository,
    catalog: CatalogRepository,
    *,
    schedule_date: date,
    include_cancelled: bool = False,
) -> DailySchedule:
    schedule = await schedule_repo.get_by_date(schedule_date)
    if schedule is None:
        return DailySchedule(schedule_date=schedule_date)
    rows = await session_repo.list_for_date(schedule_date, include_cancelled=include_cancelled)
    sessions = await SnapshotLoader(catalog).sessions(rows)
    return DailySchedule.of(
        schedule_date,
        sessions,
        schedule_id=schedule.id,
        published=bool(schedule.published),
    )


async def find_running_session(
    session_repo: SessionRepository,
    schedule_repo: ScheduleRepository,
    catalog: CatalogRepository,
    *,
    schedule_date: date,
    now: time,
) -> Optional[SessionSnapshot]:
    schedule = await get_schedule(session_repo, schedule_repo, catalog, schedule_date=schedule_date)
    return schedule.running_at(now)


async def list_upcoming_sessions(
    session_repo: SessionRepository,
    schedule_repo: ScheduleRepository,
    catalog: CatalogRepository,
    *,
    schedule_date: date,
    now: time,
    limit: int,
) -> list[SessionSnapshot]:
    if limit < 1:
        raise ValueError("limit must be >= 1")
    schedule = await get_schedule(session_repo, schedule_repo, catalog, schedule_date=schedule_date)
    return schedule.upcoming(now, limit)
