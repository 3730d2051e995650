from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session
from ..domain.entities import SessionState
from ..domain.errors import SchedulingError
from ..domain.ledger import InventoryLedger
from ..infrastructure.repositories import (
    SqlAlchemyCatalogRepository,
    SqlAlchemyIngredientRepository,
    SqlAlchemySessionRepository,
)
from ..schemas import ConflictRead, SessionRead
from ..usecases import sessions as session_usecase
from ..utils.audit_log import emit_audit_log
from .errors import to_http_exception

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/{session_id}/validate", response_model=List[ConflictRead])
async def validate_session(
    session_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[ConflictRead]:
    try:
        conflicts = await session_usecase.validate_existing_session(
            SqlAlchemySessionRepository(session),
            SqlAlchemyCatalogRepository(session),
            session_id=session_id,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    return [ConflictRead.from_domain(c) for c in conflicts]


@router.post("/{session_id}/confirm", response_model=SessionRead)
async def confirm_session(
    session_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> SessionRead:
    async with session.begin():
        try:
            infusion, schedule, previous = await session_usecase.confirm_session(
                SqlAlchemySessionRepository(session),
                SqlAlchemyCatalogRepository(session),
                InventoryLedger(SqlAlchemyIngredientRepository(session)),
                session_id=session_id,
            )
        except SchedulingError as exc:
            raise to_http_exception(exc) from exc

        if previous != SessionState.CONFIRMED:
            try:
                emit_audit_log(
                    action="session.confirmed",
                    session_id=infusion.id,
                    schedule_date=schedule.schedule_date,
                    room_id=infusion.room_id,
                    employee_id=infusion.employee_id,
                    recipe_id=infusion.recipe_id,
                    state_from=previous,
                    state_to=SessionState.CONFIRMED,
                )
            except RuntimeError as exc:
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed"
                ) from exc

    return SessionRead.from_db(session=infusion, schedule=schedule)


@router.post("/{session_id}/cancel", response_model=SessionRead)
async def cancel_session(
    session_id: int = Path(..., ge=1),
    restore_inventory: bool = Query(default=True),
    session: AsyncSession = Depends(get_session),
) -> SessionRead:
    async with session.begin():
        try:
            infusion, schedule, previous = await session_usecase.cancel_session(
                SqlAlchemySessionRepository(session),
                SqlAlchemyCatalogRepository(session),
                InventoryLedger(SqlAlchemyIngredientRepository(session)),
                session_id=session_id,
                restore_inventory=restore_inventory,
            )
        except SchedulingError as exc:
            raise to_http_exception(exc) from exc

        if previous != SessionState.CANCELLED:
            try:
                emit_audit_log(
                    action="session.cancelled",
                    session_id=infusion.id,
                    schedule_date=schedule.schedule_date,
                    room_id=infusion.room_id,
                    employee_id=infusion.employee_id,
                    recipe_id=infusion.recipe_id,
                    state_from=previous,
                    state_to=SessionState.CANCELLED,
                    extra={"inventory_restored": bool(restore_inventory and previous == SessionState.CONFIRMED)},
                )
            except RuntimeError as exc:
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed"
                ) from exc

    return SessionRead.from_db(session=infusion, schedule=schedule)
