from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import date

from lifequest.errors import ValidationError
from lifequest.models import DailyDesire
from lifequest.time_utils import is_fresh_for

logger = logging.getLogger(__name__)

DesireFactory = Callable[[date], Awaitable[DailyDesire]]


def needs_refresh(current: DailyDesire | None, today: date) -> bool:
    return current is None or not is_fresh_for(current.day, today)


def claim(desire: DailyDesire | None, today: date) -> DailyDesire:
    if desire is None or not is_fresh_for(desire.day, today):
        raise ValidationError("no daily desire for today")
    if desire.completed:
        raise ValidationError("today's desire was already claimed")
    return replace(desire, completed=True)


class DailyDesireGate:
    """Generates at most one desire per calendar day, sharing any in-flight request."""

    def __init__(self, factory: DesireFactory) -> None:
        self._factory = factory
        self._pending: dict[date, asyncio.Task[DailyDesire]] = {}

    def is_pending(self, today: date) -> bool:
        return today in self._pending

    async def get(self, current: DailyDesire | None, today: date) -> DailyDesire:
        if current is not None and not needs_refresh(current, today):
            return current

        task = self._pending.get(today)
        if task is None:
            logger.info("generating daily desire day=%s", today.isoformat())
            task = asyncio.ensure_future(self._factory(today))
            self._pending[today] = task
            task.add_done_callback(lambda _t, day=today: self._pending.pop(day, None))
        return await asyncio.shield(task)
