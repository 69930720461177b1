"""Classify inbound text as a prefixed command or freeform chat."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Command:
    """A prefixed command. An empty ``name`` means nothing followed the prefix."""

    name: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class Freeform:
    """Plain chat text destined for the AI."""

    text: str


def classify(body: str, prefix: str) -> Command | Freeform:
    """Split ``body`` into a :class:`Command` or a :class:`Freeform` message.

    ``"!Echo  a b"`` with prefix ``"!"`` becomes ``Command("echo", ("a", "b"))``.
    Empty bodies and a bare prefix become ``Command("")``.
    """
    if not body or not body.strip():
        return Command(name="")
    if not body.startswith(prefix):
        return Freeform(text=body)

    parts = body[len(prefix) :].split()
    if not parts:
        return Command(name="")
    return Command(name=parts[0].lower(), args=tuple(parts[1:]))
