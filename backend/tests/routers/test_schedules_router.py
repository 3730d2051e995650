from datetime import date, datetime, time
from typing import Any, cast

import pytest
from fastapi import HTTPException
from infusion_planner.config import Settings
from infusion_planner.domain.entities import (
    Conflict,
    ConflictKind,
    EmployeeSnapshot,
    RecipeSnapshot,
    RoomSnapshot,
    SessionSnapshot,
    StepSnapshot,
)
from infusion_planner.domain.errors import NotFoundError, SchedulingConflict, StockRace, Shortfall
from infusion_planner.domain.schedule import DailySchedule
from infusion_planner.models import EmployeeSkill, InfusionSession, RoomType, Schedule
from infusion_planner.routers import schedules as router
from infusion_planner.schemas import SessionCreate, SessionProposal
from sqlalchemy.ext.asyncio import AsyncSession

DAY = date(2024, 3, 1)


class DummySession:
    def __init__(self) -> None:
        self.exited_with: list[object] = []

    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        self.exited_with.append(exc_type)
        return False

    def begin(self) -> "DummySession":
        return self


def _schedule() -> Schedule:
    return Schedule(id=5, schedule_date=DAY, published=False)


def _infusion(*, confirmed: bool = False) -> InfusionSession:
    stamp = datetime(2024, 2, 1, 8, 0)
    return InfusionSession(
        id=42,
        schedule_id=5,
        room_id=1,
        recipe_id=3,
        employee_id=7,
        start_time=time(10, 0),
        confirmed=confirmed,
        cancelled=False,
        notes=None,
        created_at=stamp,
        updated_at=stamp,
    )


def _snapshot(session_id: int, start: time) -> SessionSnapshot:
    return SessionSnapshot(
        session_id=session_id,
        room=RoomSnapshot(room_id=1, name="Finnish Sauna", cooldown_minutes=15, room_type=RoomType.FINNISH),
        employee=EmployeeSnapshot(
            employee_id=7,
            full_name="John Doe",
            daily_max_sessions=6,
            skills=frozenset({EmployeeSkill.WENIK, EmployeeSkill.AROMATHERAPY}),
        ),
        recipe=RecipeSnapshot(
            recipe_id=3,
            name="Classic",
            theme="Nordic Aurora",
            steps=(
                StepSnapshot(duration_seconds=300, heat_intensity=4),
                StepSnapshot(duration_seconds=600, heat_intensity=8),
            ),
        ),
        start_time=start,
    )


def _patch_repositories(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(router, "SqlAlchemySessionRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyScheduleRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyCatalogRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyIngredientRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "InventoryLedger", lambda repo: repo)  # type: ignore[assignment]


def _payload(**overrides: Any) -> SessionCreate:
    data: dict[str, Any] = {"room_id": 1, "recipe_id": 3, "employee_id": 7, "start_time": time(10, 0)}
    data.update(overrides)
    return SessionCreate(**data)


@pytest.mark.asyncio
async def test_create_session_emits_audit(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()
    infusion = _infusion()
    seen: dict[str, Any] = {}

    async def fake_create(*args: object, **kwargs: Any) -> tuple[InfusionSession, Schedule]:
        seen.update(kwargs)
        return infusion, _schedule()

    calls: list[dict[str, Any]] = []

    def fake_emit(**kwargs: Any) -> None:
        calls.append(kwargs)

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.session_usecase, "create_session", fake_create)
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)

    result = await router.create_session(
        schedule_date=DAY,
        payload=_payload(notes="birch week"),
        session=cast(AsyncSession, session),
        settings=Settings(enforce_daily_load=True),
    )

    assert result.session_id == infusion.id
    assert result.state == "created"
    assert result.model_dump(mode="json")["start_time"] == "10:00"
    assert seen["draft"].schedule_date == DAY
    assert seen["draft"].notes == "birch week"
    assert seen["check_daily_load"] is True
    assert len(calls) == 1
    assert calls[0]["action"] == "session.created"
    assert calls[0]["state_to"] == "created"


@pytest.mark.asyncio
async def test_create_session_conflict_returns_409(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()
    conflict = Conflict(
        kind=ConflictKind.ROOM_COOLDOWN_VIOLATION,
        message="Room Finnish Sauna requires cool-down until 10:20",
        session_id=1,
        resource_name="Finnish Sauna",
    )

    async def fake_create(*args: object, **kwargs: object) -> None:
        raise SchedulingConflict("cannot create session due to conflicts", [conflict])

    def fake_emit(**kwargs: Any) -> None:  # pragma: no cover
        raise AssertionError("no audit record for a rejected session")

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.session_usecase, "create_session", fake_create)
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)

    with pytest.raises(HTTPException) as excinfo:
        await router.create_session(
            schedule_date=DAY,
            payload=_payload(),
            session=cast(AsyncSession, session),
            settings=Settings(),
        )

    assert excinfo.value.status_code == 409
    detail = cast(dict, excinfo.value.detail)
    assert detail["error"] == "validation_failed"
    assert detail["conflicts"][0]["kind"] == "ROOM_COOLDOWN_VIOLATION"
    assert detail["conflicts"][0]["session_id"] == 1


@pytest.mark.asyncio
async def test_create_session_stock_race_commits_created_session(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()
    infusion = _infusion()
    shortfall = Shortfall(ingredient_id=1, ingredient_name="Birch", required=60, available=40)

    async def fake_create(*args: object, **kwargs: object) -> None:
        raise StockRace([shortfall], session=infusion)

    calls: list[dict[str, Any]] = []

    def fake_emit(**kwargs: Any) -> None:
        calls.append(kwargs)

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.session_usecase, "create_session", fake_create)
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)

    with pytest.raises(HTTPException) as excinfo:
        await router.create_session(
            schedule_date=DAY,
            payload=_payload(confirm_immediately=True),
            session=cast(AsyncSession, session),
            settings=Settings(),
        )

    # the transaction block exited cleanly, so the created row is committed
    assert session.exited_with == [None]
    assert excinfo.value.status_code == 409
    detail = cast(dict, excinfo.value.detail)
    assert detail["error"] == "stock_race"
    assert detail["retryable"] is True
    assert detail["session_id"] == infusion.id
    assert [c["state_to"] for c in calls] == ["created"]


@pytest.mark.asyncio
async def test_create_session_unknown_recipe_returns_404(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()

    async def fake_create(*args: object, **kwargs: object) -> None:
        raise NotFoundError("recipe", 3)

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.session_usecase, "create_session", fake_create)

    with pytest.raises(HTTPException) as excinfo:
        await router.create_session(
            schedule_date=DAY,
            payload=_payload(),
            session=cast(AsyncSession, session),
            settings=Settings(),
        )
    assert excinfo.value.status_code == 404
    assert excinfo.value.detail == "recipe not found: 3"


@pytest.mark.asyncio
async def test_create_session_audit_failure_returns_500(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()

    async def fake_create(*args: object, **kwargs: object) -> tuple[InfusionSession, Schedule]:
        return _infusion(), _schedule()

    def fake_emit(**kwargs: Any) -> None:
        raise RuntimeError("fail log")

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.session_usecase, "create_session", fake_create)
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)

    with pytest.raises(HTTPException) as excinfo:
        await router.create_session(
            schedule_date=DAY,
            payload=_payload(),
            session=cast(AsyncSession, session),
            settings=Settings(),
        )
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_validate_session_returns_conflicts(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()
    conflict = Conflict(
        kind=ConflictKind.EMPLOYEE_UNAVAILABLE,
        message="Employee John Doe is already scheduled from 10:00 to 10:05",
        session_id=9,
        resource_name="John Doe",
    )

    async def fake_validate(*args: object, **kwargs: object) -> list[Conflict]:
        return [conflict]

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.session_usecase, "validate_session", fake_validate)

    result = await router.validate_session(
        schedule_date=DAY,
        payload=SessionProposal(room_id=1, recipe_id=3, employee_id=7, start_time=time(10, 2)),
        session=cast(AsyncSession, session),
        settings=Settings(),
    )

    assert [c.kind for c in result] == [ConflictKind.EMPLOYEE_UNAVAILABLE]
    assert result[0].resource_name == "John Doe"


@pytest.mark.asyncio
async def test_get_schedule_renders_derived_fields(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()

    async def fake_get(*args: object, **kwargs: object) -> DailySchedule:
        return DailySchedule.of(DAY, [_snapshot(2, time(14, 0)), _snapshot(1, time(9, 0))], schedule_id=5)

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.schedule_usecase, "get_schedule", fake_get)

    result = await router.get_schedule(
        schedule_date=DAY,
        include_cancelled=False,
        session=cast(AsyncSession, session),
    )

    assert result.schedule_date == DAY
    assert [s.session_id for s in result.sessions] == [1, 2]
    first = result.sessions[0]
    assert (first.start_time, first.end_time) == ("09:00", "09:15")
    assert first.duration_seconds == 900
    assert first.average_intensity == 6.0
    rendered = first.model_dump(mode="json")
    assert rendered["room_type"] == "finnish"
    assert rendered["recipe_theme"] == "Nordic Aurora"
    assert rendered["employee_skills"] == ["aromatherapy", "wenik"]


@pytest.mark.asyncio
async def test_upcoming_uses_clock_only_for_today(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()
    seen: list[dict[str, Any]] = []

    async def fake_upcoming(*args: object, **kwargs: Any) -> list[SessionSnapshot]:
        seen.append(kwargs)
        return [_snapshot(1, time(15, 0))]

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.schedule_usecase, "list_upcoming_sessions", fake_upcoming)

    now = datetime(2024, 3, 1, 12, 30)
    today = await router.list_upcoming_sessions(
        schedule_date=DAY, session=cast(AsyncSession, session), now=now, settings=Settings(upcoming_limit=3)
    )
    await router.list_upcoming_sessions(
        schedule_date=date(2024, 3, 2), session=cast(AsyncSession, session), now=now, settings=Settings()
    )

    assert [s.session_id for s in today] == [1]
    assert seen[0]["now"] == time(12, 30)
    assert seen[0]["limit"] == 3
    assert seen[1]["now"] == time(0, 0)


@pytest.mark.asyncio
async def test_running_session_none_when_idle(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()

    async def fake_running(*args: object, **kwargs: object) -> None:
        return None

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.schedule_usecase, "find_running_session", fake_running)

    result = await router.get_running_session(
        schedule_date=DAY, session=cast(AsyncSession, session), now=datetime(2024, 3, 1, 23, 0)
    )
    assert result is None


@pytest.mark.asyncio
async def test_running_session_only_for_today(monkeypatch: pytest.MonkeyPatch) -> None:
    session = DummySession()
    calls: list[dict[str, Any]] = []

    async def fake_running(*args: object, **kwargs: Any) -> SessionSnapshot:
        calls.append(kwargs)
        return _snapshot(1, time(10, 0))

    _patch_repositories(monkeypatch)
    monkeypatch.setattr(router.schedule_usecase, "find_running_session", fake_running)

    other_day = await router.get_running_session(
        schedule_date=DAY, session=cast(AsyncSession, session), now=datetime(2024, 3, 9, 10, 2)
    )
    today = await router.get_running_session(
        schedule_date=DAY, session=cast(AsyncSession, session), now=datetime(2024, 3, 1, 10, 2)
    )

    assert other_day is None
    assert today is not None and today.session_id == 1
    assert [c["now"] for c in calls] == [time(10, 2)]
