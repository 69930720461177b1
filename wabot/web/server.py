"""Dashboard and bridge webhook server.

Runs alongside the bot in the same asyncio event loop, using aiohttp's
AppRunner/TCPSite for non-blocking start/stop.

Routes:
    GET  /             live dashboard page
    GET  /api/status   current connection state and counters
    GET  /api/health   liveness check
    GET  /ws           WebSocket push of every bot event
    POST /bridge/events  lifecycle and message events from the WhatsApp bridge
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import aiohttp
from aiohttp import web

from wabot.config import settings
from wabot.events import BotEvent, EventType
from wabot.whatsapp.transport import InboundMessage

if TYPE_CHECKING:
    from wabot.bot.orchestrator import WhatsAppBot
    from wabot.events import EventBus
    from wabot.storage.store import JsonStore

logger = logging.getLogger(__name__)

BOT_KEY: web.AppKey[WhatsAppBot] = web.AppKey("bot")
STORE_KEY: web.AppKey[JsonStore] = web.AppKey("store")
SECRET_KEY: web.AppKey[str] = web.AppKey("bridge_secret")
SOCKETS_KEY: web.AppKey[set[web.WebSocketResponse]] = web.AppKey("sockets")
TASKS_KEY: web.AppKey[set[asyncio.Task]] = web.AppKey("tasks")

DASHBOARD_HTML = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: sans-serif; margin: 2em; max-width: 50em; }}
#status {{ font-weight: bold; }}
#qr {{ white-space: pre-wrap; word-break: break-all; background: #f4f4f4; padding: 1em; }}
#messages li {{ margin: 0.3em 0; }}
.out {{ color: #075e54; }}
</style>
</head>
<body>
<h1>{title}</h1>
<p>Status: <span id="status">loading</span></p>
<div id="qr-box" hidden><p>Scan this pairing code in WhatsApp:</p><div id="qr"></div></div>
<h2>Messages</h2>
<ul id="messages"></ul>
<script>
const ws = new WebSocket(`ws://${{location.host}}/ws`);
const statusEl = document.getElementById("status");
const qrBox = document.getElementById("qr-box");
const messages = document.getElementById("messages");
ws.onmessage = (msg) => {{
  const event = JSON.parse(msg.data);
  if (event.type === "status") {{
    statusEl.textContent = event.data.sessionStatus;
    qrBox.hidden = !event.data.qrCode;
    document.getElementById("qr").textContent = event.data.qrCode || "";
  }} else if (event.type === "qr") {{
    qrBox.hidden = false;
    document.getElementById("qr").textContent = event.data.qr;
  }} else if (event.type === "message") {{
    const li = document.createElement("li");
    const d = event.data;
    li.className = d.isFromMe ? "out" : "in";
    li.textContent = `${{d.isFromMe ? "→ " + d.to : "← " + d.from}}: ${{d.body}}`;
    messages.prepend(li);
  }}
}};
</script>
</body>
</html>
"""


# -- Dashboard -----------------------------------------------------------------


async def _index(request: web.Request) -> web.Response:
    """GET / — the dashboard page."""
    return web.Response(
        text=DASHBOARD_HTML.format(title=settings.bot_name), content_type="text/html"
    )


async def _api_status(request: web.Request) -> web.Response:
    """GET /api/status — connection state plus store counters."""
    bot = request.app[BOT_KEY]
    store = request.app[STORE_KEY]
    active = store.active_profile
    return web.json_response(
        {
            **bot.status.to_dict(),
            "botName": settings.bot_name,
            "aiEnabled": bot.ai_enabled,
            "activeProfile": active.name if active else None,
            "profiles": len(store.profiles),
            "messages": len(store.messages),
            "chats": len(store.chat_history),
        }
    )


async def _api_health(request: web.Request) -> web.Response:
    """GET /api/health — basic liveness check."""
    return web.json_response({"status": "ok"})


async def _websocket(request: web.Request) -> web.WebSocketResponse:
    """GET /ws — push every bot event to the connected dashboard."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    sockets = request.app[SOCKETS_KEY]
    sockets.add(ws)
    logger.debug("Dashboard connected (%d open)", len(sockets))

    bot = request.app[BOT_KEY]
    await ws.send_json(BotEvent(EventType.STATUS, bot.status.to_dict()).to_dict())
    try:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning("Dashboard socket closed with %s", ws.exception())
    finally:
        sockets.discard(ws)
        logger.debug("Dashboard disconnected (%d open)", len(sockets))
    return ws


async def broadcast(app: web.Application, event: BotEvent) -> None:
    """Send one event to every open dashboard socket."""
    payload = event.to_dict()
    for ws in list(app[SOCKETS_KEY]):
        if ws.closed:
            app[SOCKETS_KEY].discard(ws)
            continue
        try:
            await ws.send_json(payload)
        except (ConnectionError, RuntimeError):
            logger.debug("Dropping dashboard socket that failed to receive")
            app[SOCKETS_KEY].discard(ws)


# -- Bridge events ---------------------------------------------------------------


async def _handle_bridge_event(request: web.Request) -> web.Response:
    """POST /bridge/events — route a bridge event to the bot."""
    expected = request.app[SECRET_KEY]
    secret = request.headers.get("X-Bridge-Secret", "")
    if not expected or secret != expected:
        logger.warning("Bridge event rejected: invalid secret")
        return web.json_response({"error": "unauthorized"}, status=401)

    try:
        payload: dict[str, Any] = await request.json()
    except ValueError:
        logger.warning("Bridge event bad request: invalid JSON")
        return web.json_response({"error": "invalid JSON"}, status=400)

    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        return web.json_response({"error": "missing event"}, status=400)
    event = payload["event"]
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        return web.json_response({"error": "data must be an object"}, status=400)

    bot = request.app[BOT_KEY]
    if event == "message":
        message = InboundMessage.from_payload(data)
        task = asyncio.create_task(_run_message_handler(bot, message))
        tasks = request.app[TASKS_KEY]
        tasks.add(task)
        task.add_done_callback(tasks.discard)
    else:
        bot.handle_connection_event(event, data)

    return web.json_response({"ok": True})


async def _run_message_handler(bot: WhatsAppBot, message: InboundMessage) -> None:
    """Execute the message handler with error logging."""
    try:
        await bot.handle_message(message)
    except Exception:
        logger.exception("Message handler failed: from=%s", message.sender)


# -- App -------------------------------------------------------------------------


def create_web_app(
    bot: WhatsAppBot, store: JsonStore, *, bridge_secret: str | None = None
) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[BOT_KEY] = bot
    app[STORE_KEY] = store
    app[SECRET_KEY] = settings.bridge_secret if bridge_secret is None else bridge_secret
    app[SOCKETS_KEY] = set()
    app[TASKS_KEY] = set()

    app.router.add_get("/", _index)
    app.router.add_get("/api/status", _api_status)
    app.router.add_get("/api/health", _api_health)
    app.router.add_get("/ws", _websocket)
    app.router.add_post("/bridge/events", _handle_bridge_event)
    app.on_shutdown.append(_close_sockets)
    return app


async def _close_sockets(app: web.Application) -> None:
    for ws in list(app[SOCKETS_KEY]):
        await ws.close(code=aiohttp.WSCloseCode.GOING_AWAY, message=b"Server shutdown")
    app[SOCKETS_KEY].clear()


class DashboardServer:
    """Manages the aiohttp server lifecycle and the event-bus subscription."""

    def __init__(
        self,
        bot: WhatsAppBot,
        store: JsonStore,
        events: EventBus,
        *,
        host: str | None = None,
        port: int | None = None,
        bridge_secret: str | None = None,
    ) -> None:
        self.host = host or settings.web_host
        self.port = settings.web_port if port is None else port
        self._events = events
        self.app = create_web_app(bot, store, bridge_secret=bridge_secret)
        self._runner: web.AppRunner | None = None

    async def _on_event(self, event: BotEvent) -> None:
        await broadcast(self.app, event)

    async def start(self) -> None:
        """Start listening for dashboard clients and bridge events."""
        if self._runner is not None:
            return
        if not self.app[SECRET_KEY]:
            logger.warning("BRIDGE_SECRET empty; bridge events will be rejected")
        self._events.subscribe(self._on_event)
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Dashboard listening on http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        self._events.unsubscribe(self._on_event)
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Dashboard server stopped")
