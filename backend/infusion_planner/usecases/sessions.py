from dataclasses import replace
from datetime import date, datetime, timezone

from ..domain.conflicts import check_daily_load as daily_load_conflicts
from ..domain.conflicts import check_inventory, detect
from ..domain.entities import Conflict, SessionSnapshot, SessionState, session_state
from ..domain.errors import (
    AlreadyCancelled,
    InsufficientInventory,
    InsufficientStock,
    NotFoundError,
    SchedulingConflict,
    StockRace,
)
from ..domain.ledger import InventoryLedger
from ..domain.repositories import CatalogRepository, ScheduleRepository, SessionRepository
from ..domain.schedule import DailySchedule
from ..models import InfusionSession, Schedule
from ..utils.logging import get_logger
from .snapshots import SessionDraft, SnapshotLoader

logger = get_logger(__name__)


async def validate_session(
    session_repo: SessionRepository,
    catalog: CatalogRepository,
    *,
    draft: SessionDraft,
    check_daily_load: bool = False,
) -> list[Conflict]:
    """Read-only preview of the conflicts a draft would raise on creation."""
    loader = SnapshotLoader(catalog)
    proposed = await loader.draft(draft)
    day = await _load_day(session_repo, loader, draft.schedule_date)
    return _conflicts(proposed, day, check_daily_load=check_daily_load)


async def validate_existing_session(
    session_repo: SessionRepository,
    catalog: CatalogRepository,
    *,
    session_id: int,
) -> list[Conflict]:
    row = await session_repo.get(session_id)
    if row is None:
        raise NotFoundError("session", session_id)
    session, schedule = row
    loader = SnapshotLoader(catalog)
    proposed = await loader.session(session)
    day = await _load_day(session_repo, loader, schedule.schedule_date)
    return detect(proposed, day.active())


async def create_session(
    session_repo: SessionRepository,
    schedule_repo: ScheduleRepository,
    catalog: CatalogRepository,
    ledger: InventoryLedger,
    *,
    draft: SessionDraft,
    confirm_immediately: bool = False,
    check_daily_load: bool = False,
) -> tuple[InfusionSession, Schedule]:
    """
    Validates the draft against the day's committed sessions and persists it as created.
    With confirm_immediately the ledger deduction runs in the same unit of work; if it
    fails the created session stays persisted and StockRace carries it to the caller.
    """
    loader = SnapshotLoader(catalog)
    proposed = await loader.draft(draft)
    day = await _load_day(session_repo, loader, draft.schedule_date)

    conflicts = _conflicts(proposed, day, check_daily_load=check_daily_load)
    if conflicts:
        raise SchedulingConflict(
            "cannot create session due to conflicts: " + "; ".join(c.message for c in conflicts),
            conflicts,
        )

    schedule = await schedule_repo.find_or_create_for_date(draft.schedule_date)
    session = await session_repo.add(
        schedule=schedule,
        room_id=draft.room_id,
        recipe_id=draft.recipe_id,
        employee_id=draft.employee_id,
        start_time=draft.start_time,
        notes=draft.notes,
    )

    if confirm_immediately:
        try:
            await ledger.deduct(replace(proposed, session_id=session.id))
        except InsufficientStock as exc:
            raise StockRace(exc.shortfalls, session=session) from exc
        session.confirmed = True
        session.updated_at = _utc_now_naive()
        session = await session_repo.save(session)
    return session, schedule


async def confirm_session(
    session_repo: SessionRepository,
    catalog: CatalogRepository,
    ledger: InventoryLedger,
    *,
    session_id: int,
) -> tuple[InfusionSession, Schedule, SessionState]:
    row = await session_repo.get_for_update(session_id)
    if row is None:
        raise NotFoundError("session", session_id)
    session, schedule = row
    previous = session_state(confirmed=session.confirmed, cancelled=session.cancelled)
    if previous == SessionState.CANCELLED:
        raise AlreadyCancelled(f"session {session_id} is cancelled")
    # Idempotent: confirming twice never deducts twice
    if previous == SessionState.CONFIRMED:
        logger.warning("Session %s is already confirmed", session_id)
        return session, schedule, previous

    snapshot = await SnapshotLoader(catalog).session(session)
    conflicts = check_inventory(snapshot)
    if conflicts:
        raise InsufficientInventory("cannot confirm session: insufficient inventory", conflicts)
    try:
        await ledger.deduct(snapshot)
    except InsufficientStock as exc:
        raise StockRace(exc.shortfalls, session=session) from exc

    session.confirmed = True
    session.updated_at = _utc_now_naive()
    updated = await session_repo.save(session)
    return updated, schedule, previous


async def cancel_session(
    session_repo: SessionRepository,
    catalog: CatalogRepository,
    ledger: InventoryLedger,
    *,
    session_id: int,
    restore_inventory: bool = True,
) -> tuple[InfusionSession, Schedule, SessionState]:
    row = await session_repo.get_for_update(session_id)
    if row is None:
        raise NotFoundError("session", session_id)
    session, schedule = row
    previous = session_state(confirmed=session.confirmed, cancelled=session.cancelled)
    if previous == SessionState.CANCELLED:
        logger.warning("Session %s is already cancelled", session_id)
        return session, schedule, previous

    # Stock only comes back for a session that actually consumed it
    if restore_inventory and session.confirmed:
        snapshot = await SnapshotLoader(catalog).session(session)
        await ledger.restore(snapshot)

    session.cancelled = True
    session.updated_at = _utc_now_naive()
    updated = await session_repo.save(session)
    return updated, schedule, previous


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def _load_day(session_repo: SessionRepository, loader: SnapshotLoader, schedule_date: date) -> DailySchedule:
    rows = await session_repo.list_for_date(schedule_date)
    return DailySchedule.of(schedule_date, await loader.sessions(rows))


def _conflicts(proposed: SessionSnapshot, day: DailySchedule, *, check_daily_load: bool) -> list[Conflict]:
    conflicts = detect(proposed, day.active())
    if check_daily_load:
        conflicts.extend(daily_load_conflicts(proposed.employee, day.for_employee(proposed.employee.employee_id)))
    return conflicts
