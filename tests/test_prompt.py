"""Tests for system instruction assembly and reply truncation."""

from wabot.bot.memory import ConversationTurn
from wabot.llm.prompt import (
    FORMATTING_RULES,
    TONE_DIRECTIVES,
    build_system_instruction,
    build_turns,
    truncate_reply,
)
from wabot.storage.models import Profile, Tone


def test_system_instruction_sections_in_order() -> None:
    """Persona, tone, learned style, then the formatting rules."""
    profile = Profile(
        id=1,
        name="Test",
        tone=Tone.PLAYFUL,
        system_instruction="You are Ana.",
        custom_style="Uses lots of emojis.",
    )
    result = build_system_instruction(profile)

    parts = result.split("\n\n")
    assert parts[0] == "You are Ana."
    assert parts[1] == TONE_DIRECTIVES[Tone.PLAYFUL]
    assert parts[2] == "Uses lots of emojis."
    assert result.endswith(FORMATTING_RULES)


def test_system_instruction_skips_empty_sections() -> None:
    """Blank instruction or style leaves no empty paragraphs."""
    profile = Profile(id=1, name="Bare")
    result = build_system_instruction(profile)

    assert result.startswith(TONE_DIRECTIVES[Tone.NEUTRAL])
    assert "\n\n\n" not in result


def test_build_turns_appends_prompt() -> None:
    history = [
        ConversationTurn(role="user", text="hola"),
        ConversationTurn(role="assistant", text="hey"),
    ]
    turns = build_turns(history, "como estas")

    assert turns[:2] == history
    assert turns[-1] == ConversationTurn(role="user", text="como estas")


def test_truncate_short_reply_unchanged() -> None:
    assert truncate_reply("  all good  ", 80) == "all good"


def test_truncate_cuts_at_word_boundary() -> None:
    """Long replies end on a whole word within the limit."""
    text = "this reply keeps going and going well past the limit that we allow for chat"
    result = truncate_reply(text, 40)

    assert len(result) <= 40
    assert text.startswith(result)
    assert text[len(result)] == " "


def test_truncate_hard_cut_without_late_space() -> None:
    """When the last space is too early, cut mid-word at the limit."""
    text = "ab " + "c" * 100
    assert truncate_reply(text, 80) == text[:80]
    assert truncate_reply("x" * 100, 80) == "x" * 80
