"""EventBus — singleton that fans bot events out to subscribed listeners."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from wabot.events.models import BotEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Fire-and-forget delivery of :class:`BotEvent` to every listener.

    Each publish schedules one task per listener; a failing listener is
    logged and never affects the others or the publisher. Events are not
    queued for listeners that subscribe later.

    Singleton accessed via ``EventBus.get()``.
    """

    _instance: EventBus | None = None

    def __init__(self) -> None:
        self._listeners: list[Callable[[BotEvent], Awaitable[None]]] = []
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def get(cls) -> EventBus:
        """Return the singleton instance, creating it if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton — for tests only."""
        cls._instance = None

    def subscribe(self, listener: Callable[[BotEvent], Awaitable[None]]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[BotEvent], Awaitable[None]]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, event: BotEvent) -> None:
        """Schedule delivery of ``event`` to every current listener."""
        for listener in list(self._listeners):
            task = asyncio.create_task(self._deliver(listener, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(
        self, listener: Callable[[BotEvent], Awaitable[None]], event: BotEvent
    ) -> None:
        try:
            await listener(event)
        except Exception:
            logger.exception("Event listener failed for %s event", event.type.value)

    async def flush(self) -> None:
        """Wait until every scheduled delivery has run."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
