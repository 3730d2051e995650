from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from typing import Iterable, Optional

from ..utils.time import since_midnight
from .entities import SessionSnapshot, end_offset, start_offset


def _order_key(session: SessionSnapshot) -> tuple:
    return (start_offset(session), session.session_id is None, session.session_id or 0)


@dataclass
class DailySchedule:
    """All sessions of one calendar date, kept ordered by start time."""

    schedule_date: date
    sessions: list[SessionSnapshot] = field(default_factory=list)
    schedule_id: Optional[int] = None
    published: bool = False

    def __post_init__(self) -> None:
        self.sessions = sorted(self.sessions, key=_order_key)

    @classmethod
    def of(cls, schedule_date: date, sessions: Iterable[SessionSnapshot], **kwargs) -> "DailySchedule":
        return cls(schedule_date=schedule_date, sessions=list(sessions), **kwargs)

    def active(self) -> list[SessionSnapshot]:
        return [s for s in self.sessions if not s.cancelled]

    def for_employee(self, employee_id: int) -> list[SessionSnapshot]:
        return [s for s in self.active() if s.employee.employee_id == employee_id]

    def running_at(self, now: time) -> Optional[SessionSnapshot]:
        moment = since_midnight(now)
        for session in self.active():
            if start_offset(session) <= moment < end_offset(session):
                return session
        return None

    def upcoming(self, now: time, limit: int) -> list[SessionSnapshot]:
        moment = since_midnight(now)
        return [s for s in self.active() if start_offset(s) > moment][:limit]
