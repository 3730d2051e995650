from datetime import date, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from .domain.entities import (
    Conflict,
    ConflictKind,
    SessionSnapshot,
    SessionState,
    average_intensity,
    end_offset,
    session_state,
    total_cost,
    total_duration,
)
from .models import EmployeeSkill, InfusionSession, RoomType, Schedule
from .utils.time import format_clock


class SessionProposal(BaseModel):
    room_id: int = Field(ge=1)
    recipe_id: int = Field(ge=1)
    employee_id: int = Field(ge=1)
    start_time: time
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("start_time")
    @classmethod
    def _whole_minutes(cls, v: time) -> time:
        if v.second or v.microsecond:
            raise ValueError("start_time must be given in whole minutes")
        return v


class SessionCreate(SessionProposal):
    confirm_immediately: bool = False


class ConflictRead(BaseModel):
    kind: ConflictKind
    message: str
    session_id: Optional[int]
    resource_name: str

    @classmethod
    def from_domain(cls, conflict: Conflict) -> "ConflictRead":
        return cls(
            kind=conflict.kind,
            message=conflict.message,
            session_id=conflict.session_id,
            resource_name=conflict.resource_name,
        )


class SessionRead(BaseModel):
    session_id: int
    schedule_date: date
    room_id: int
    recipe_id: int
    employee_id: int
    start_time: time
    confirmed: bool
    cancelled: bool
    state: SessionState
    notes: Optional[str] = None

    @field_serializer("start_time")
    def _ser_time(self, t: time) -> str:
        return t.strftime("%H:%M")

    @classmethod
    def from_db(cls, *, session: InfusionSession, schedule: Schedule) -> "SessionRead":
        return cls(
            session_id=session.id,
            schedule_date=schedule.schedule_date,
            room_id=session.room_id,
            recipe_id=session.recipe_id,
            employee_id=session.employee_id,
            start_time=session.start_time,
            confirmed=bool(session.confirmed),
            cancelled=bool(session.cancelled),
            state=session_state(confirmed=bool(session.confirmed), cancelled=bool(session.cancelled)),
            notes=session.notes,
        )


class ScheduledSessionRead(BaseModel):
    session_id: int
    room_name: str
    room_type: Optional[RoomType] = None
    recipe_name: str
    recipe_theme: Optional[str] = None
    employee_name: str
    employee_skills: list[EmployeeSkill] = Field(default_factory=list)
    start_time: str
    end_time: str
    duration_seconds: int
    average_intensity: float
    recipe_cost: Decimal
    state: SessionState

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "ScheduledSessionRead":
        return cls(
            session_id=snapshot.session_id or 0,
            room_name=snapshot.room.name,
            room_type=snapshot.room.room_type,
            recipe_name=snapshot.recipe.name,
            recipe_theme=snapshot.recipe.theme,
            employee_name=snapshot.employee.full_name,
            employee_skills=sorted(snapshot.employee.skills),
            start_time=snapshot.start_time.strftime("%H:%M"),
            end_time=format_clock(end_offset(snapshot)),
            duration_seconds=int(total_duration(snapshot.recipe).total_seconds()),
            average_intensity=round(average_intensity(snapshot), 2),
            recipe_cost=total_cost(snapshot.recipe),
            state=session_state(confirmed=snapshot.confirmed, cancelled=snapshot.cancelled),
        )


class ScheduleRead(BaseModel):
    schedule_date: date
    published: bool
    sessions: list[ScheduledSessionRead]
