"""Data models for the JSON documents the bot persists."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Tone(StrEnum):
    FRIENDLY = "friendly"
    CASUAL = "casual"
    PROFESSIONAL = "professional"
    PLAYFUL = "playful"
    SERIOUS = "serious"
    NEUTRAL = "neutral"


class Profile(BaseModel):
    """A persona used to shape generated replies."""

    id: int
    name: str
    phone: str = ""
    tone: Tone = Tone.NEUTRAL
    system_instruction: str = ""
    custom_style: str = ""
    active: bool = False
    learn_from_chat: str | None = None


class MessageRecord(BaseModel):
    """One answered message, as shown by ``wabot messages``."""

    id: int
    sender: str
    sender_name: str = ""
    message: str
    response: str
    profile_used: str = ""
    timestamp: str = Field(default_factory=_now)


class ChatHistoryEntry(BaseModel):
    """A raw inbound message kept for style analysis."""

    body: str
    from_me: bool = False
    type: str = "chat"
    timestamp: str = Field(default_factory=_now)


class StatusFile(BaseModel):
    """Last known connection state, written by the running bot process."""

    status: str
    timestamp: str = Field(default_factory=_now)
    pid: int


DEFAULT_PROFILE = Profile(
    id=1,
    name="Default",
    tone=Tone.CASUAL,
    active=True,
    system_instruction=(
        "You are a real person chatting on WhatsApp. You talk naturally and casually, "
        "like anyone your age would. You answer briefly and directly, sometimes with a "
        "single word or expression. If someone asks for the owner, say they are not "
        "around right now. Never reveal that you are an AI."
    ),
    custom_style="Casual and relaxed, short natural replies, everyday slang.",
)
