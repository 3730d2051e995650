from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Sequence

from ..models import Ingredient
from ..utils.logging import get_logger
from .entities import SessionSnapshot, required_ingredients
from .errors import InsufficientStock, NotFoundError, Shortfall
from .repositories import IngredientRepository

logger = get_logger(__name__)


class IngredientLocks:
    """One asyncio.Lock per ingredient id, always acquired in ascending id order."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}

    def _lock_for(self, ingredient_id: int) -> asyncio.Lock:
        lock = self._locks.get(ingredient_id)
        if lock is None:
            lock = self._locks[ingredient_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, ingredient_ids: Sequence[int]) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for ingredient_id in sorted(set(ingredient_ids)):
                await stack.enter_async_context(self._lock_for(ingredient_id))
            yield


_default_locks = IngredientLocks()


class InventoryLedger:
    """
    Authoritative stock deduction/restoration for one session's recipe.

    Every ingredient the recipe needs is locked (in-process lock plus the repository's
    row lock) and checked before any stock is written, so a failed deduction leaves
    all stock levels untouched.
    """

    def __init__(self, ingredients: IngredientRepository, locks: IngredientLocks | None = None) -> None:
        self.ingredients = ingredients
        self.locks = locks or _default_locks

    async def deduct(self, session: SessionSnapshot) -> None:
        required = {key: amount for key, (_, amount) in required_ingredients(session.recipe).items()}
        if not required:
            return
        logger.info("Deducting inventory for session %s", session.session_id)
        async with self.locks.hold(list(required)):
            rows = await self._load(required)
            shortfalls = [
                Shortfall(
                    ingredient_id=row.id,
                    ingredient_name=row.name,
                    required=required[row.id],
                    available=row.stock_level,
                )
                for row in rows
                if row.stock_level < required[row.id]
            ]
            if shortfalls:
                raise InsufficientStock(shortfalls)
            for row in rows:
                row.stock_level -= required[row.id]
                row.version += 1
                await self.ingredients.save(row)
                logger.debug("Deducted %s ml of %s (remaining: %s ml)", required[row.id], row.name, row.stock_level)

    async def restore(self, session: SessionSnapshot) -> None:
        required = {key: amount for key, (_, amount) in required_ingredients(session.recipe).items()}
        if not required:
            return
        logger.info("Restoring inventory for cancelled session %s", session.session_id)
        async with self.locks.hold(list(required)):
            rows = await self._load(required)
            for row in rows:
                row.stock_level += required[row.id]
                row.version += 1
                await self.ingredients.save(row)
                logger.debug("Restored %s ml of %s (new stock: %s ml)", required[row.id], row.name, row.stock_level)

    async def _load(self, required: dict[int, int]) -> list[Ingredient]:
        rows = await self.ingredients.get_many_for_update(sorted(required))
        found = {row.id for row in rows}
        for ingredient_id in sorted(required):
            if ingredient_id not in found:
                raise NotFoundError("ingredient", ingredient_id)
        return rows
