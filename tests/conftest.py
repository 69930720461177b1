"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from wabot.errors import TransportError
from wabot.events import EventBus
from wabot.storage.store import JsonStore


class FakeTransport:
    """In-memory WhatsAppTransport that records every call."""

    def __init__(self) -> None:
        self.initialized = 0
        self.destroyed = 0
        self.sent: list[tuple[str, str]] = []
        self.chats: list[dict[str, Any]] = []
        self.fail_send = False
        self.fail_initialize = False

    async def initialize(self) -> None:
        self.initialized += 1
        if self.fail_initialize:
            msg = "bridge down"
            raise TransportError(msg)

    async def send_message(self, to: str, text: str) -> None:
        if self.fail_send:
            msg = "send failed"
            raise TransportError(msg)
        self.sent.append((to, text))

    async def list_chats(self) -> list[dict[str, Any]]:
        return list(self.chats)

    async def destroy(self) -> None:
        self.destroyed += 1


class FakeCompletion:
    """CompletionService returning canned replies (or raising ``error``)."""

    def __init__(self, reply: str = "all good", *, configured: bool = True) -> None:
        self.reply = reply
        self.configured = configured
        self.error: Exception | None = None
        self.calls: list[dict[str, Any]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, turns, options, *, system=None) -> str:
        self.calls.append({"turns": list(turns), "options": options, "system": system})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def _reset_event_bus():
    """Give every test a fresh EventBus singleton."""
    EventBus._reset()
    yield
    EventBus._reset()


@pytest.fixture
def store(tmp_path):
    """A loaded JsonStore rooted in a temporary directory."""
    JsonStore._reset()
    s = JsonStore(data_dir=tmp_path / "data")
    s.load()
    JsonStore._instance = s
    yield s
    JsonStore._reset()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()
