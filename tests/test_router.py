"""Tests for command-vs-freeform classification."""

from wabot.bot.router import Command, Freeform, classify


def test_plain_text_is_freeform() -> None:
    """Text without the prefix goes to the AI untouched."""
    assert classify("hola que tal", "!") == Freeform(text="hola que tal")


def test_command_name_is_lowercased() -> None:
    """Command names are case-insensitive."""
    assert classify("!PING", "!") == Command(name="ping")


def test_command_args_split_on_whitespace() -> None:
    """Runs of whitespace separate arguments."""
    result = classify("!ai   how   are you", "!")
    assert result == Command(name="ai", args=("how", "are", "you"))


def test_bare_prefix_is_empty_command() -> None:
    """A lone prefix is a command with an empty name."""
    assert classify("!", "!") == Command(name="")
    assert classify("!   ", "!") == Command(name="")


def test_empty_body_is_empty_command() -> None:
    """Empty or whitespace-only bodies never reach the AI."""
    assert classify("", "!") == Command(name="")
    assert classify("   ", "!") == Command(name="")


def test_prefix_must_lead() -> None:
    """A prefix later in the text does not make a command."""
    assert isinstance(classify("hey !ping", "!"), Freeform)
    assert isinstance(classify(" !ping", "!"), Freeform)


def test_multi_character_prefix() -> None:
    """Prefixes longer than one character work the same way."""
    assert classify("/bot help me", "/bot") == Command(name="help", args=("me",))
    assert isinstance(classify("/bo help", "/bot"), Freeform)
