"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """wabot configuration. All values come from environment variables."""

    # Bot
    bot_name: str = Field(default="WhatsApp AI Bot")
    command_prefix: str = Field(default="!")
    auto_reconnect: bool = Field(default=True)
    reconnect_delay_seconds: float = Field(default=5.0)

    # Anthropic
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-haiku-4-5-20251001")
    completion_max_tokens: int = Field(default=60)
    completion_temperature: float = Field(default=1.0)

    # Replies
    reply_max_chars: int = Field(default=80)
    completion_fallback_reply: str = Field(default="nope, something went wrong lol")
    ai_disabled_reply: str = Field(
        default="🤖 AI is not configured. Use {prefix}ping or {prefix}help to talk to me."
    )

    # Message aggregation
    aggregation_window_seconds: float = Field(default=3.0)
    aggregation_max_messages: int = Field(default=5)
    reaper_interval_seconds: float = Field(default=300.0)
    reaper_stale_seconds: float = Field(default=600.0)

    # Conversation memory
    memory_max_turns: int = Field(default=40)
    memory_history_turns: int = Field(default=10)

    # Persistence
    data_dir: Path = Field(default=Path("data"))
    chat_history_limit: int = Field(default=100)
    message_log_limit: int = Field(default=100)

    # Dashboard / bridge webhook server
    web_host: str = Field(default="localhost")
    web_port: int = Field(default=3000)

    # WhatsApp bridge (sidecar that owns the WhatsApp Web session)
    bridge_url: str = Field(default="http://localhost:3001")
    bridge_token: str = Field(default="")
    bridge_secret: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def ai_enabled(self) -> bool:
        """True when an Anthropic API key is configured."""
        return bool(self.anthropic_api_key.strip())

    def ai_disabled_message(self, prefix: str | None = None) -> str:
        """The not-configured notice with the command prefix filled in."""
        return self.ai_disabled_reply.format(prefix=prefix or self.command_prefix)


settings = Settings()
