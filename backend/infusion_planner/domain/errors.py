from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from .entities import Conflict


class SchedulingError(Exception):
    """Base class for every failure the scheduling core reports to its caller."""


class ValidationFailure(SchedulingError):
    def __init__(self, message: str, conflicts: Sequence["Conflict"]) -> None:
        super().__init__(message)
        self.conflicts = list(conflicts)


class SchedulingConflict(ValidationFailure):
    pass


class InsufficientInventory(ValidationFailure):
    pass


class NotFoundError(SchedulingError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(SchedulingError):
    pass


class AlreadyCancelled(InvalidTransition):
    pass


@dataclass(frozen=True)
class Shortfall:
    ingredient_id: int
    ingredient_name: str
    required: int
    available: int

    def describe(self) -> str:
        return (
            f"Insufficient inventory for ingredient {self.ingredient_name}: "
            f"required {self.required} ml, available {self.available} ml"
        )


class InsufficientStock(SchedulingError):
    def __init__(self, shortfalls: Sequence[Shortfall]) -> None:
        super().__init__("; ".join(s.describe() for s in shortfalls))
        self.shortfalls = list(shortfalls)


class StockRace(SchedulingError):
    """Stock ran out between the advisory check and the ledger commit."""

    def __init__(self, shortfalls: Sequence[Shortfall], session: Any = None) -> None:
        super().__init__("stock changed concurrently: " + "; ".join(s.describe() for s in shortfalls))
        self.shortfalls = list(shortfalls)
        self.session = session
