"""Command registry and the built-in chat commands."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from wabot.bot.memory import ChatMemoryStore
    from wabot.bot.status import BotStatus

logger = logging.getLogger(__name__)

# Command that is routed to the completion service instead of its handler.
AI_COMMAND = "ai"


@dataclass
class CommandContext:
    """Everything a command handler may need about the current chat."""

    sender: str
    prefix: str
    registry: CommandRegistry
    memory: ChatMemoryStore
    status: BotStatus
    bot_name: str = "WhatsApp AI Bot"
    dashboard_url: str = ""
    ai_enabled: bool = False


@dataclass
class CommandDef:
    """Internal representation of a registered command."""

    name: str
    description: str
    handler: Callable[[CommandContext, tuple[str, ...]], Awaitable[str]]
    usage: str = ""


class CommandRegistry:
    """Registry of chat commands keyed by lower-case name.

    Usage::

        registry = CommandRegistry()

        @registry.command("ping", "Check that the bot is alive")
        async def ping(ctx: CommandContext, args: tuple[str, ...]) -> str:
            return "pong! 🏓"
    """

    def __init__(self) -> None:
        self._commands: dict[str, CommandDef] = {}

    def command(
        self, name: str, description: str, *, usage: str = ""
    ) -> Callable[[Callable], Callable]:
        """Decorator to register an async function as a command handler."""

        def decorator(fn: Callable) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Command handler '{name}' must be an async function"
                raise TypeError(msg)
            self.register(CommandDef(name=name, description=description, handler=fn, usage=usage))
            return fn

        return decorator

    def register(self, command: CommandDef) -> None:
        """Register a command. Raises ValueError on a duplicate name."""
        key = command.name.lower()
        if key in self._commands:
            msg = f"Command '{key}' is already registered"
            raise ValueError(msg)
        self._commands[key] = command
        logger.debug("Registered command: %s", key)

    def get(self, name: str) -> CommandDef | None:
        """Look up a command by name."""
        return self._commands.get(name.lower())

    def all(self) -> list[CommandDef]:
        return list(self._commands.values())

    async def execute(self, name: str, ctx: CommandContext, args: tuple[str, ...]) -> str:
        """Run a command handler. Unknown names get the standard hint."""
        command = self.get(name)
        if command is None:
            return unknown_command_reply(name, ctx.prefix)
        logger.info("Command '%s' from %s (args=%s)", command.name, ctx.sender, list(args))
        return await command.handler(ctx, args)


def unknown_command_reply(name: str, prefix: str) -> str:
    """The reply for a command nobody registered."""
    shown = name or "(empty)"
    return f"❓ Unknown command: {shown}. Use {prefix}help to see the available commands."


def _version() -> str:
    try:
        return version("wabot")
    except PackageNotFoundError:
        return "dev"


# -- Built-in commands ---------------------------------------------------------

registry = CommandRegistry()


@registry.command("ping", "Check that the bot is alive")
async def ping(ctx: CommandContext, args: tuple[str, ...]) -> str:
    return "pong! 🏓"


@registry.command("help", "Show this list of commands")
async def help_(ctx: CommandContext, args: tuple[str, ...]) -> str:
    lines = ["🤖 *Available commands:*", ""]
    for command in ctx.registry.all():
        usage = f" {command.usage}" if command.usage else ""
        lines.append(f"{ctx.prefix}{command.name}{usage} - {command.description}")
    lines.append("")
    lines.append(
        "*AI chat:* you can also send any message without a command "
        "and I will answer it with AI."
    )
    return "\n".join(lines)


@registry.command("info", "Show information about the bot")
async def info(ctx: CommandContext, args: tuple[str, ...]) -> str:
    lines = [
        f"🤖 *{ctx.bot_name}*",
        "",
        f"Version: {_version()}",
        f"AI: {'enabled' if ctx.ai_enabled else 'disabled'}",
        "",
        "✅ Status: active",
    ]
    if ctx.dashboard_url:
        lines.append(f"🚀 Dashboard: {ctx.dashboard_url}")
    return "\n".join(lines)


@registry.command(AI_COMMAND, "Chat with the AI", usage="[message]")
async def ai(ctx: CommandContext, args: tuple[str, ...]) -> str:
    # Only reached with no arguments; the orchestrator sends real prompts to the AI.
    return f"Please give me a message for the AI. Example: {ctx.prefix}{AI_COMMAND} how are you?"


@registry.command("clear", "Forget our conversation so far")
async def clear(ctx: CommandContext, args: tuple[str, ...]) -> str:
    count = ctx.memory.clear(ctx.sender)
    return f"Cleared {count} messages. Starting fresh."


@registry.command("status", "Show the bot status")
async def status(ctx: CommandContext, args: tuple[str, ...]) -> str:
    memory = ctx.memory.get(ctx.sender) if ctx.sender in ctx.memory else None
    turns = len(memory.turns) if memory else 0
    lines = [
        f"*{ctx.bot_name} status*",
        f"Connection: {ctx.status.state.value}",
        f"AI: {'enabled' if ctx.ai_enabled else 'disabled'}",
        f"Messages in memory: {turns}",
    ]
    return "\n".join(lines)
