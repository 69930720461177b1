"""Persona selection and conversation-style analysis."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from wabot.bot.memory import ConversationTurn
from wabot.llm.client import CompletionOptions

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wabot.llm.client import CompletionService
    from wabot.storage.models import ChatHistoryEntry, Profile

logger = logging.getLogger(__name__)

MIN_HISTORY_FOR_ANALYSIS = 5
ANALYSIS_WINDOW = 20

_NON_DIGITS = re.compile(r"\D")


def sanitize_phone(phone: str) -> str:
    """Strip everything but digits: ``"+52 1 55-1234"`` → ``"521551234"``."""
    return _NON_DIGITS.sub("", phone)


def to_chat_id(phone: str) -> str:
    """Turn a phone number or chat id into a WhatsApp chat id."""
    if "@" in phone:
        return phone
    return f"{sanitize_phone(phone)}@c.us"


def _matches(profile: Profile, sender: str) -> bool:
    if not profile.phone:
        return False
    if profile.phone == sender:
        return True
    digits = sanitize_phone(profile.phone)
    return bool(digits) and digits == sanitize_phone(sender.split("@", 1)[0])


def resolve_profile(profiles: Sequence[Profile], sender: str) -> Profile | None:
    """Pick the persona for a sender.

    Order: a profile whose phone matches the sender, then the active
    profile, then the first profile. None when there are no profiles.
    """
    for profile in profiles:
        if _matches(profile, sender):
            return profile
    for profile in profiles:
        if profile.active:
            return profile
    return profiles[0] if profiles else None


async def analyze_style(
    history: Sequence[ChatHistoryEntry],
    service: CompletionService,
    *,
    max_tokens: int = 400,
) -> str | None:
    """Describe a contact's writing style from their recent messages.

    Returns None when there are fewer than ``MIN_HISTORY_FOR_ANALYSIS``
    entries. Completion errors propagate.
    """
    if len(history) < MIN_HISTORY_FOR_ANALYSIS:
        return None

    recent = history[-ANALYSIS_WINDOW:]
    transcript = "\n".join(f"{'Me' if e.from_me else 'Contact'}: {e.body}" for e in recent)
    prompt = (
        "Analyze the following conversation and describe how the person writes "
        "(tone, emoji use, message length, characteristic expressions, etc.):\n\n"
        f"{transcript}\n\n"
        "Describe the style in one concise paragraph that could be used to imitate it."
    )
    logger.info("Analyzing conversation style over %d message(s)", len(recent))
    return await service.generate(
        [ConversationTurn(role="user", text=prompt)],
        CompletionOptions(max_tokens=max_tokens, temperature=0.3),
    )
