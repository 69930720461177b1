"""Tests for the dashboard and bridge webhook server."""

import asyncio

from aiohttp.test_utils import TestClient, TestServer

from wabot.bot.orchestrator import WhatsAppBot
from wabot.events import BotEvent, EventBus, EventType
from wabot.web.server import DashboardServer, broadcast, create_web_app

TEST_SECRET = "bridge-secret-123"
SENDER = "5215512345678@c.us"


# -- Helpers -----------------------------------------------------------------


def _bot(transport, completion, store) -> WhatsAppBot:
    return WhatsAppBot(transport, completion, store, aggregation_window=0.05)


async def _make_client(app):
    """Create a TestClient for the web app."""
    server = TestServer(app)
    client = TestClient(server)
    await client.start_server()
    return client


# -- Dashboard ---------------------------------------------------------------


async def test_health_check(transport, completion, store) -> None:
    client = await _make_client(create_web_app(_bot(transport, completion, store), store))
    try:
        resp = await client.get("/api/health")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ok"
    finally:
        await client.close()


async def test_status_reports_connection_and_counts(transport, completion, store) -> None:
    bot = _bot(transport, completion, store)
    bot.handle_connection_event("qr", {"qr": "2@pairing"})
    client = await _make_client(create_web_app(bot, store))
    try:
        resp = await client.get("/api/status")
        data = await resp.json()
        assert data["isConnected"] is False
        assert data["sessionStatus"] == "qr"
        assert data["qrCode"] == "2@pairing"
        assert data["activeProfile"] == "Default"
        assert data["profiles"] == 1
    finally:
        await client.close()


async def test_status_ai_flag_follows_completion_service(
    transport, completion, store
) -> None:
    """aiEnabled reflects the injected completion service, not the env key."""
    bot = _bot(transport, completion, store)
    client = await _make_client(create_web_app(bot, store))
    try:
        data = await (await client.get("/api/status")).json()
        assert data["aiEnabled"] is True

        completion.configured = False
        data = await (await client.get("/api/status")).json()
        assert data["aiEnabled"] is False
    finally:
        await client.close()


async def test_index_serves_dashboard(transport, completion, store) -> None:
    client = await _make_client(create_web_app(_bot(transport, completion, store), store))
    try:
        resp = await client.get("/")
        assert resp.status == 200
        assert resp.content_type == "text/html"
        assert "/ws" in await resp.text()
    finally:
        await client.close()


# -- WebSocket ---------------------------------------------------------------


async def test_websocket_receives_status_then_events(transport, completion, store) -> None:
    """A new socket gets the current status, then every broadcast event."""
    bot = _bot(transport, completion, store)
    bot.handle_connection_event("ready")
    app = create_web_app(bot, store)
    client = await _make_client(app)
    try:
        ws = await client.ws_connect("/ws")
        first = await ws.receive_json(timeout=2)
        assert first["type"] == "status"
        assert first["data"]["isConnected"] is True

        event = BotEvent(EventType.MESSAGE, {"body": "hola"})
        await broadcast(app, event)
        assert await ws.receive_json(timeout=2) == event.to_dict()
        await ws.close()
    finally:
        await client.close()


# -- Bridge events -----------------------------------------------------------


async def test_bridge_rejects_missing_secret(transport, completion, store) -> None:
    app = create_web_app(_bot(transport, completion, store), store, bridge_secret=TEST_SECRET)
    client = await _make_client(app)
    try:
        resp = await client.post("/bridge/events", json={"event": "ready"})
        assert resp.status == 401
    finally:
        await client.close()


async def test_bridge_rejects_when_secret_unset(transport, completion, store) -> None:
    """An empty configured secret rejects everything."""
    app = create_web_app(_bot(transport, completion, store), store, bridge_secret="")
    client = await _make_client(app)
    try:
        resp = await client.post(
            "/bridge/events", json={"event": "ready"}, headers={"X-Bridge-Secret": ""}
        )
        assert resp.status == 401
    finally:
        await client.close()


async def test_bridge_rejects_bad_json(transport, completion, store) -> None:
    app = create_web_app(_bot(transport, completion, store), store, bridge_secret=TEST_SECRET)
    client = await _make_client(app)
    try:
        resp = await client.post(
            "/bridge/events", data="{nope", headers={"X-Bridge-Secret": TEST_SECRET}
        )
        assert resp.status == 400
        resp = await client.post(
            "/bridge/events", json={"data": {}}, headers={"X-Bridge-Secret": TEST_SECRET}
        )
        assert resp.status == 400
    finally:
        await client.close()


async def test_bridge_rejects_undecodable_body(transport, completion, store) -> None:
    """A body that is not valid UTF-8 is a bad request, not a server error."""
    app = create_web_app(_bot(transport, completion, store), store, bridge_secret=TEST_SECRET)
    client = await _make_client(app)
    try:
        resp = await client.post(
            "/bridge/events", data=b"\xff\xfe{", headers={"X-Bridge-Secret": TEST_SECRET}
        )
        assert resp.status == 400
        assert (await resp.json())["error"] == "invalid JSON"
    finally:
        await client.close()


async def test_bridge_connection_event_updates_status(transport, completion, store) -> None:
    bot = _bot(transport, completion, store)
    app = create_web_app(bot, store, bridge_secret=TEST_SECRET)
    client = await _make_client(app)
    try:
        resp = await client.post(
            "/bridge/events",
            json={"event": "ready", "data": {}},
            headers={"X-Bridge-Secret": TEST_SECRET},
        )
        assert resp.status == 200
        assert bot.status.is_connected
    finally:
        await client.close()


async def test_bridge_message_is_handled_in_background(transport, completion, store) -> None:
    """The bridge gets 200 at once; the reply follows from a background task."""
    bot = _bot(transport, completion, store)
    bot.handle_connection_event("ready")
    app = create_web_app(bot, store, bridge_secret=TEST_SECRET)
    client = await _make_client(app)
    try:
        resp = await client.post(
            "/bridge/events",
            json={
                "event": "message",
                "data": {"id": "m1", "from": SENDER, "body": "!ping", "type": "chat"},
            },
            headers={"X-Bridge-Secret": TEST_SECRET},
        )
        assert resp.status == 200
        await asyncio.sleep(0.05)
        assert transport.sent == [(SENDER, "pong! 🏓")]
    finally:
        await client.close()


# -- Server lifecycle --------------------------------------------------------


async def test_server_subscribes_while_running(transport, completion, store) -> None:
    """The server listens to the event bus only between start and stop."""
    events = EventBus.get()
    server = DashboardServer(
        _bot(transport, completion, store), store, events, host="127.0.0.1", port=0
    )

    await server.start()
    assert events.listener_count == 1
    await server.stop()
    assert events.listener_count == 0
