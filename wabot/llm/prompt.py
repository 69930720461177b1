"""System instruction assembly and reply post-processing."""

from __future__ import annotations

from typing import TYPE_CHECKING

from wabot.bot.memory import ConversationTurn
from wabot.storage.models import Tone

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wabot.storage.models import Profile

TONE_DIRECTIVES: dict[Tone, str] = {
    Tone.FRIENDLY: "Reply in a friendly, casual and warm way.",
    Tone.CASUAL: (
        "Reply in a very casual, relaxed and natural way. Use short expressions "
        "and slang. Keep replies brief (2-3 lines at most)."
    ),
    Tone.PROFESSIONAL: "Reply in a professional, formal and precise way.",
    Tone.PLAYFUL: "Reply in a playful way, with humor and fitting emojis.",
    Tone.SERIOUS: "Reply in a serious, direct and concise way.",
    Tone.NEUTRAL: "Reply in a helpful and natural way.",
}

FORMATTING_RULES = """IMPORTANT:
- Keep replies EXTREMELY short (1-2 words or one short line at most)
- Prefer natural colloquial fixed expressions over full sentences
- If greeted with "hi" or "hello", answer "hey", "what's up" or "yo"
- If asked how you are, answer "all good", "here we are" or "chilling"
- For farewells use "see ya", "bye" or "later"
- For confirmations use "yep", "ok" or "sure"
- For denials use "nope", "nah" or "no"
- Stay relaxed and casual
- Sometimes answer just "lol" if something is funny"""

# Truncation never cuts back to a word boundary shorter than this.
MIN_WORD_BOUNDARY = 20


def tone_directive(tone: Tone) -> str:
    return TONE_DIRECTIVES.get(tone, TONE_DIRECTIVES[Tone.NEUTRAL])


def build_system_instruction(profile: Profile) -> str:
    """Persona instruction, tone directive, learned style and formatting rules."""
    sections = [
        profile.system_instruction.strip(),
        tone_directive(profile.tone),
        profile.custom_style.strip(),
        FORMATTING_RULES,
    ]
    return "\n\n".join(s for s in sections if s)


def build_turns(history: Sequence[ConversationTurn], prompt: str) -> list[ConversationTurn]:
    """Prior turns followed by the new prompt as the final user turn."""
    return [*history, ConversationTurn(role="user", text=prompt)]


def truncate_reply(text: str, max_chars: int) -> str:
    """Cap a reply at ``max_chars``, backing up to the last space when possible."""
    text = text.strip()
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars].rstrip()
    last_space = cut.rfind(" ")
    if last_space > MIN_WORD_BOUNDARY:
        cut = cut[:last_space]
    return cut.rstrip()
