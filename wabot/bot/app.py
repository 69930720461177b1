"""Application wiring: store, event bus, transport, completion, bot and web server."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wabot.bot.orchestrator import WhatsAppBot
from wabot.config import settings
from wabot.events import EventBus
from wabot.llm.client import AnthropicCompletionService
from wabot.storage.store import JsonStore
from wabot.web.server import DashboardServer
from wabot.whatsapp.client import WhatsAppBridgeClient

if TYPE_CHECKING:
    from wabot.llm.client import CompletionService
    from wabot.whatsapp.transport import WhatsAppTransport

logger = logging.getLogger(__name__)


class WhatsAppBotApp:
    """Owns every long-lived component. ``start``/``stop`` are idempotent."""

    def __init__(
        self,
        *,
        transport: WhatsAppTransport | None = None,
        completion: CompletionService | None = None,
        store: JsonStore | None = None,
        events: EventBus | None = None,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self.store = store or JsonStore.get()
        self.events = events or EventBus.get()
        self.transport = transport or WhatsAppBridgeClient()
        self.completion = completion or AnthropicCompletionService()
        self.bot = WhatsAppBot(self.transport, self.completion, self.store, events=self.events)
        self.server = DashboardServer(self.bot, self.store, self.events, host=host, port=port)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.store.load()
        if not self.completion.is_configured():
            logger.warning(
                "ANTHROPIC_API_KEY is empty; AI replies are disabled (commands still work)"
            )
        logger.info("Starting %s (prefix=%r)", settings.bot_name, self.bot.prefix)
        await self.server.start()
        await self.bot.start()

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        logger.info("Shutting down %s", settings.bot_name)
        await self.bot.stop()
        await self.server.stop()
