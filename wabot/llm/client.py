"""Async Claude completion service behind a small request/response contract."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import anthropic

from wabot.config import settings
from wabot.errors import CompletionError, CompletionErrorKind, ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wabot.bot.memory import ConversationTurn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionOptions:
    """Generation limits passed to the API."""

    max_tokens: int = 60
    temperature: float = 1.0


@runtime_checkable
class CompletionService(Protocol):
    """Anything that turns an ordered list of turns into reply text."""

    def is_configured(self) -> bool:
        """True when the service has the credentials it needs."""
        ...

    async def generate(
        self,
        turns: Sequence[ConversationTurn],
        options: CompletionOptions,
        *,
        system: str | None = None,
    ) -> str:
        """Return the generated text or raise :class:`CompletionError`."""
        ...


def _to_api_messages(turns: Sequence[ConversationTurn]) -> list[dict[str, str]]:
    """Format turns for the Claude messages API."""
    return [{"role": t.role, "content": t.text} for t in turns]


def _extract_text(content: list[Any]) -> str:
    return "".join(block.text for block in content if block.type == "text").strip()


class AnthropicCompletionService:
    """CompletionService backed by the Anthropic messages API."""

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self._api_key = settings.anthropic_api_key if api_key is None else api_key
        self._model = model or settings.claude_model
        self._client: anthropic.AsyncAnthropic | None = None

    def is_configured(self) -> bool:
        return bool(self._api_key.strip())

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client."""
        if not self.is_configured():
            msg = "ANTHROPIC_API_KEY is not set"
            raise ConfigurationError(msg)
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def generate(
        self,
        turns: Sequence[ConversationTurn],
        options: CompletionOptions,
        *,
        system: str | None = None,
    ) -> str:
        """Single-shot Claude call — no tools, no streaming.

        Maps SDK failures onto :class:`CompletionError` kinds. Never retries.
        """
        client = self._get_client()
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": _to_api_messages(turns),
        }
        if system:
            kwargs["system"] = system

        try:
            response = await client.messages.create(**kwargs)
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
            logger.error("Completion rejected: invalid API key (%s)", exc)
            raise CompletionError(CompletionErrorKind.UNAUTHORIZED, str(exc)) from exc
        except anthropic.RateLimitError as exc:
            logger.warning("Completion rate limited: %s", exc)
            raise CompletionError(CompletionErrorKind.RATE_LIMITED, str(exc)) from exc
        except anthropic.APIError as exc:
            logger.error("Completion service unavailable: %s", exc)
            raise CompletionError(CompletionErrorKind.UNAVAILABLE, str(exc)) from exc

        text = _extract_text(response.content)
        if not text:
            msg = "Empty completion"
            raise CompletionError(CompletionErrorKind.UNAVAILABLE, msg)
        return text
