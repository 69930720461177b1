"""WhatsApp bridge HTTP client using aiohttp.

The bridge is a sidecar process that owns the WhatsApp Web session (QR
pairing, session persistence). It posts lifecycle and message events to
``/bridge/events`` on our web server and accepts commands here.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from wabot.config import settings
from wabot.errors import TransportError

logger = logging.getLogger(__name__)

# Longer messages are split by WhatsApp clients anyway; keep payloads sane.
MAX_MESSAGE_LENGTH = 4096


class WhatsAppBridgeClient:
    """Talks to the WhatsApp bridge over HTTP."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = (base_url or settings.bridge_url).rstrip("/")
        self._token = settings.bridge_token if token is None else token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        """Return (and lazily create) the shared aiohttp session."""
        if self._session is None or self._session.closed:
            headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
            self._session = aiohttp.ClientSession(headers=headers, timeout=self._timeout)
        return self._session

    async def _request(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> Any:
        session = self._get_session()
        url = f"{self._base_url}{path}"
        try:
            async with session.request(method, url, json=payload) as resp:
                if resp.status >= 300:
                    text = await resp.text()
                    logger.error(
                        "Bridge %s %s failed: status=%d body=%s",
                        method,
                        path,
                        resp.status,
                        text[:200],
                    )
                    msg = f"Bridge returned {resp.status} for {method} {path}"
                    raise TransportError(msg)
                if resp.content_type == "application/json":
                    return await resp.json()
                return None
        except aiohttp.ClientError as exc:
            logger.exception("Bridge %s %s failed (network error)", method, path)
            msg = f"Bridge unreachable: {exc}"
            raise TransportError(msg) from exc

    async def initialize(self) -> None:
        """Ask the bridge to start the WhatsApp session."""
        logger.info("Starting WhatsApp session via bridge at %s", self._base_url)
        await self._request("POST", "/session/start")

    async def send_message(self, to: str, text: str) -> None:
        """Send a text message to a chat id."""
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[: MAX_MESSAGE_LENGTH - 3] + "..."
        await self._request("POST", "/messages", {"to": to, "text": text})
        logger.info("Message sent to %s (%d chars)", to, len(text))

    async def list_chats(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/chats")
        if isinstance(data, dict):
            data = data.get("chats", [])
        return list(data or [])

    async def destroy(self) -> None:
        """Stop the session and close the HTTP session."""
        try:
            await self._request("POST", "/session/stop")
        except TransportError:
            logger.warning("Bridge did not acknowledge session stop")
        finally:
            await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
