"""Observable bot events (status, pairing code, message traffic)."""

from wabot.events.bus import EventBus
from wabot.events.models import BotEvent, EventType

__all__ = [
    "BotEvent",
    "EventBus",
    "EventType",
]
