"""BotEvent — what the bot tells its observers (dashboard, logs)."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    QR = "qr"
    STATUS = "status"
    MESSAGE = "message"


@dataclass(frozen=True)
class BotEvent:
    """A single observable event.

    Attributes:
        type: ``qr``, ``status`` or ``message``.
        data: JSON-serialisable payload.
        timestamp: When the event happened (UTC).
    """

    type: EventType
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }
