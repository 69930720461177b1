"""WhatsAppTransport protocol and the inbound message shape."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

STATUS_BROADCAST = "status@broadcast"
GROUP_SUFFIX = "@g.us"
TEXT_TYPE = "chat"


@dataclass(frozen=True)
class InboundMessage:
    """A message delivered by the WhatsApp bridge.

    Attributes:
        id: Bridge-assigned message id.
        sender: Chat id of the author (the sender key).
        body: Message text.
        from_me: True for messages the paired account sent itself.
        type: WhatsApp message type; ``chat`` for plain text.
        sender_name: Display name pushed by the contact, if any.
    """

    id: str
    sender: str
    body: str
    to: str = ""
    from_me: bool = False
    type: str = TEXT_TYPE
    sender_name: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_group(self) -> bool:
        return self.sender.endswith(GROUP_SUFFIX)

    @property
    def is_status_broadcast(self) -> bool:
        return self.sender == STATUS_BROADCAST

    @property
    def is_text(self) -> bool:
        return self.type == TEXT_TYPE

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> InboundMessage:
        """Build from the bridge's JSON (whatsapp-web.js field names)."""
        raw_id = data.get("id", "")
        if isinstance(raw_id, dict):
            raw_id = raw_id.get("id") or raw_id.get("_serialized", "")
        ts = data.get("timestamp")
        timestamp = (
            datetime.fromtimestamp(int(ts), tz=UTC) if ts else datetime.now(UTC)
        )
        return cls(
            id=str(raw_id),
            sender=str(data.get("from", "")),
            body=str(data.get("body") or ""),
            to=str(data.get("to") or ""),
            from_me=bool(data.get("fromMe", False)),
            type=str(data.get("type") or TEXT_TYPE),
            sender_name=str(data.get("notifyName") or ""),
            timestamp=timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.to,
            "body": self.body,
            "timestamp": self.timestamp.isoformat(),
            "isFromMe": self.from_me,
            "type": self.type,
        }


@runtime_checkable
class WhatsAppTransport(Protocol):
    """Protocol that every WhatsApp transport must satisfy."""

    async def initialize(self) -> None:
        """Start (or restart) the WhatsApp session."""
        ...

    async def send_message(self, to: str, text: str) -> None:
        """Deliver a text message. Raises TransportError on failure."""
        ...

    async def list_chats(self) -> list[dict[str, Any]]:
        """Known chats as ``{"id": ..., "name": ..., "isGroup": ...}`` dicts."""
        ...

    async def destroy(self) -> None:
        """Tear down the session and release resources."""
        ...
