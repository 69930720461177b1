"""WhatsAppBot — inbound filtering, routing, AI replies and connection lifecycle."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from wabot.bot.commands import AI_COMMAND, CommandContext
from wabot.bot.commands import registry as default_registry
from wabot.bot.memory import ChatMemoryStore
from wabot.bot.persona import resolve_profile
from wabot.bot.queue import MESSAGE_SEPARATOR, AggregationQueue
from wabot.bot.router import Command, classify
from wabot.bot.status import BotStatus, ConnectionState
from wabot.config import settings
from wabot.errors import CompletionError, NotConnectedError, TransportError
from wabot.events import BotEvent, EventBus, EventType
from wabot.llm.client import CompletionOptions
from wabot.llm.prompt import build_system_instruction, build_turns, truncate_reply
from wabot.storage.models import ChatHistoryEntry, MessageRecord

if TYPE_CHECKING:
    from wabot.bot.commands import CommandRegistry
    from wabot.llm.client import CompletionService
    from wabot.storage.store import JsonStore
    from wabot.whatsapp.transport import InboundMessage, WhatsAppTransport

logger = logging.getLogger(__name__)

COMMAND_ERROR_REPLY = "⚠️ Error running that command. Try again later."


class WhatsAppBot:
    """Routes inbound WhatsApp messages and owns the connection state.

    Commands are answered immediately. Freeform text goes through the
    :class:`AggregationQueue`; each flush becomes one completion request
    whose reply is sent back to the sender.

    Failure policy: a failed completion is answered with
    ``completion_fallback_reply``. Without an API key, isolated messages get
    ``ai_disabled_reply`` and combined bursts get no reply.
    """

    def __init__(
        self,
        transport: WhatsAppTransport,
        completion: CompletionService,
        store: JsonStore,
        *,
        memory: ChatMemoryStore | None = None,
        registry: CommandRegistry | None = None,
        events: EventBus | None = None,
        prefix: str | None = None,
        auto_reconnect: bool | None = None,
        reconnect_delay: float | None = None,
        aggregation_window: float | None = None,
        aggregation_max: int | None = None,
    ) -> None:
        self._transport = transport
        self._completion = completion
        self._store = store
        self._memory = memory or ChatMemoryStore()
        self._registry = registry or default_registry
        self._events = events or EventBus.get()
        self._prefix = settings.command_prefix if prefix is None else prefix
        self._auto_reconnect = (
            settings.auto_reconnect if auto_reconnect is None else auto_reconnect
        )
        self._reconnect_delay = (
            settings.reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self._options = CompletionOptions(
            max_tokens=settings.completion_max_tokens,
            temperature=settings.completion_temperature,
        )
        self.status = BotStatus()
        self.queue = AggregationQueue(
            self._on_flush, window=aggregation_window, max_messages=aggregation_max
        )
        self._sender_names: dict[str, str] = {}
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._stopped = False

    @property
    def memory(self) -> ChatMemoryStore:
        return self._memory

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def ai_enabled(self) -> bool:
        return self._completion.is_configured()

    def _spawn(self, coro: Any, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Start the queue reaper and ask the transport to connect."""
        self._stopped = False
        self._set_state(ConnectionState.LOADING)
        self.queue.start()
        try:
            await self._transport.initialize()
        except TransportError:
            logger.exception("WhatsApp transport failed to initialize")
            self.handle_connection_event("disconnected", {"reason": "initialize failed"})

    async def stop(self) -> None:
        """Cancel timers and background work, then release the transport."""
        if self._stopped:
            return
        self._stopped = True
        self._cancel_reconnect()
        await self.queue.stop()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        try:
            await self._transport.destroy()
        except Exception:
            logger.exception("Error destroying WhatsApp transport")
        self._set_state(ConnectionState.DISCONNECTED)

    def handle_connection_event(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Apply a lifecycle event reported by the transport."""
        data = data or {}
        match event:
            case "loading":
                self._set_state(ConnectionState.LOADING)
            case "qr":
                payload = str(data.get("qr", ""))
                self._cancel_reconnect()
                logger.info("QR code received, scan it with your phone")
                self._set_state(ConnectionState.QR, pairing_payload=payload)
                self._events.publish(BotEvent(EventType.QR, {"qr": payload}))
            case "authenticated":
                self._cancel_reconnect()
                logger.info("WhatsApp client authenticated")
                self._set_state(ConnectionState.AUTHENTICATED)
            case "ready":
                self._cancel_reconnect()
                logger.info("WhatsApp client is ready")
                self._set_state(ConnectionState.READY)
            case "auth_failure":
                logger.error("WhatsApp authentication failed: %s", data.get("message", ""))
                self._set_state(ConnectionState.DISCONNECTED)
            case "disconnected":
                logger.warning("WhatsApp client disconnected: %s", data.get("reason", ""))
                self._set_state(ConnectionState.DISCONNECTED)
                if self._auto_reconnect and not self._stopped:
                    self._schedule_reconnect()
            case _:
                logger.warning("Ignoring unknown connection event: %s", event)

    def _set_state(
        self, state: ConnectionState, *, pairing_payload: str | None = None
    ) -> None:
        self.status.state = state
        self.status.pairing_payload = pairing_payload if state is ConnectionState.QR else None
        try:
            self._store.write_status(state.value)
        except OSError:
            logger.exception("Could not persist bot status")
        self._events.publish(BotEvent(EventType.STATUS, self.status.to_dict()))

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self._reconnect_delay, self._begin_reconnect)
        logger.info("Reconnecting in %.0fs", self._reconnect_delay)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _begin_reconnect(self) -> None:
        self._reconnect_handle = None
        self._spawn(self._reconnect(), name="reconnect")

    async def _reconnect(self) -> None:
        if self.status.state is not ConnectionState.DISCONNECTED:
            logger.debug("Skipping reconnect, client is %s", self.status.state.value)
            return
        self._set_state(ConnectionState.LOADING)
        try:
            await self._transport.initialize()
        except TransportError:
            logger.exception("Reconnect attempt failed")
            self._set_state(ConnectionState.DISCONNECTED)

    # -- Inbound ---------------------------------------------------------------

    async def handle_message(self, message: InboundMessage) -> None:
        """Filter, record and route one inbound message."""
        if message.from_me or message.is_status_broadcast:
            return
        sender = message.sender
        if self._store.is_blocked(sender):
            logger.debug("Dropped message from blocked sender %s", sender)
            return

        self._store.append_history(
            sender,
            ChatHistoryEntry(body=message.body, from_me=message.from_me, type=message.type),
        )
        if message.is_group or not message.is_text:
            return
        if not message.body.strip():
            logger.debug("Ignored empty message from %s", sender)
            return

        if message.sender_name:
            self._sender_names[sender] = message.sender_name
        logger.info("Message from %s: %s", sender, message.body[:80])
        self._events.publish(
            BotEvent(EventType.MESSAGE, {"direction": "inbound", **message.to_dict()})
        )

        route = classify(message.body, self._prefix)
        if isinstance(route, Command):
            await self.handle_command(sender, route)
        else:
            self.queue.submit(sender, route.text)

    async def handle_command(self, sender: str, command: Command) -> None:
        """Run a command and reply. Commands never go through the queue."""
        if command.name == AI_COMMAND and command.args:
            prompt = " ".join(command.args)
            reply = await self.generate_reply(sender, prompt)
            if reply:
                await self._reply(sender, reply)
            return

        ctx = CommandContext(
            sender=sender,
            prefix=self._prefix,
            registry=self._registry,
            memory=self._memory,
            status=self.status,
            bot_name=settings.bot_name,
            dashboard_url=f"http://{settings.web_host}:{settings.web_port}",
            ai_enabled=self.ai_enabled,
        )
        try:
            text = await self._registry.execute(command.name, ctx, command.args)
        except Exception:
            logger.exception("Error executing command %s", command.name)
            text = COMMAND_ERROR_REPLY
        await self._reply(sender, text)

    async def _on_flush(self, sender: str, prompt: str) -> None:
        reply = await self.generate_reply(sender, prompt)
        if reply:
            await self._reply(sender, reply)

    # -- Generation ------------------------------------------------------------

    async def generate_reply(self, sender: str, prompt: str) -> str | None:
        """Produce the reply text for a prompt, or None when nothing should be sent."""
        if not self.ai_enabled:
            if MESSAGE_SEPARATOR in prompt:
                return None
            return settings.ai_disabled_message(self._prefix)

        profile = resolve_profile(self._store.profiles, sender)
        if profile is None:
            logger.error("No profile configured; sending fallback to %s", sender)
            return settings.completion_fallback_reply

        turns = build_turns(
            self._memory.history(sender, settings.memory_history_turns), prompt
        )
        try:
            text = await self._completion.generate(
                turns, self._options, system=build_system_instruction(profile)
            )
        except CompletionError as exc:
            logger.warning("Completion failed for %s (%s); sending fallback", sender, exc.kind)
            return settings.completion_fallback_reply

        reply = truncate_reply(text, settings.reply_max_chars)
        if not reply:
            return settings.completion_fallback_reply

        self._memory.record_exchange(sender, prompt, reply)
        self._store.add_message(
            MessageRecord(
                id=time.time_ns() // 1_000_000,
                sender=sender,
                sender_name=self._sender_names.get(sender, sender),
                message=prompt,
                response=reply,
                profile_used=profile.name,
            )
        )
        return reply

    # -- Outbound --------------------------------------------------------------

    async def send(self, sender: str, text: str) -> None:
        """Send text to a chat. Fails fast unless the connection is ready."""
        if not text or not text.strip():
            msg = "Message cannot be empty"
            raise ValueError(msg)
        if not self.status.is_connected:
            msg = f"WhatsApp client not connected (state={self.status.state.value})"
            raise NotConnectedError(msg)

        body = text.strip()
        await self._transport.send_message(sender, body)
        self._events.publish(
            BotEvent(
                EventType.MESSAGE,
                {
                    "direction": "outbound",
                    "id": str(time.time_ns()),
                    "from": "bot",
                    "to": sender,
                    "body": body,
                    "timestamp": datetime.now(UTC).isoformat(),
                    "isFromMe": True,
                    "type": "chat",
                },
            )
        )

    async def _reply(self, sender: str, text: str) -> None:
        try:
            await self.send(sender, text)
        except TransportError as exc:
            logger.error("Reply to %s not delivered: %s", sender, exc)
            self._events.publish(
                BotEvent(EventType.STATUS, {**self.status.to_dict(), "error": str(exc)})
            )
