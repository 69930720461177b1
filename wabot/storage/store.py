"""JsonStore — profiles, message log, chat history, block list and status file."""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from wabot.config import settings
from wabot.storage.models import (
    DEFAULT_PROFILE,
    ChatHistoryEntry,
    MessageRecord,
    Profile,
    StatusFile,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

PROFILES_FILE = "profiles.json"
MESSAGES_FILE = "messages.json"
CHAT_HISTORY_FILE = "chat-history.json"
BLACKLIST_FILE = "blacklist.json"
STATUS_FILE = "bot-status.json"

_profiles_adapter = TypeAdapter(list[Profile])
_messages_adapter = TypeAdapter(list[MessageRecord])
_history_adapter = TypeAdapter(dict[str, list[ChatHistoryEntry]])
_blacklist_adapter = TypeAdapter(list[str])


class JsonStore:
    """Read-through at ``load()``, write-through after every mutation.

    Singleton accessed via ``JsonStore.get()``.  Pass an explicit *data_dir*
    for test isolation (e.g. ``tmp_path``).

    All methods are synchronous — the documents are small and local.
    """

    _instance: JsonStore | None = None

    def __init__(
        self,
        data_dir: Path | None = None,
        *,
        message_limit: int | None = None,
        history_limit: int | None = None,
    ) -> None:
        self._dir = data_dir or settings.data_dir
        self._message_limit = message_limit or settings.message_log_limit
        self._history_limit = history_limit or settings.chat_history_limit
        self.profiles: list[Profile] = []
        self.messages: list[MessageRecord] = []
        self.chat_history: dict[str, list[ChatHistoryEntry]] = {}
        self.blacklist: list[str] = []

    @classmethod
    def get(cls) -> JsonStore:
        """Return the shared JsonStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def data_dir(self) -> Path:
        return self._dir

    # -- File helpers ----------------------------------------------------------

    def _read(self, filename: str, adapter: TypeAdapter, default: Any) -> Any:
        path = self._dir / filename
        if not path.exists():
            return default
        try:
            return adapter.validate_json(path.read_bytes())
        except (OSError, ValidationError):
            logger.exception("Could not read %s; starting empty", path)
            return default

    def _write(self, filename: str, adapter: TypeAdapter, value: Any) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._dir / filename
        data = adapter.dump_python(value, mode="json")
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    # -- Load ------------------------------------------------------------------

    def load(self) -> None:
        """Read every document from disk, seeding a default profile if needed."""
        if (self._dir / PROFILES_FILE).exists():
            self.profiles = self._read(PROFILES_FILE, _profiles_adapter, [])
        else:
            self.profiles = [DEFAULT_PROFILE.model_copy()]
            self.save_profiles()
        self.messages = self._read(MESSAGES_FILE, _messages_adapter, [])
        self.chat_history = self._read(CHAT_HISTORY_FILE, _history_adapter, {})
        self.blacklist = self._read(BLACKLIST_FILE, _blacklist_adapter, [])
        logger.info(
            "Loaded %d profile(s), %d message(s), %d chat(s), %d blocked",
            len(self.profiles),
            len(self.messages),
            len(self.chat_history),
            len(self.blacklist),
        )

    # -- Profiles --------------------------------------------------------------

    def save_profiles(self) -> None:
        self._write(PROFILES_FILE, _profiles_adapter, self.profiles)

    @property
    def active_profile(self) -> Profile | None:
        for profile in self.profiles:
            if profile.active:
                return profile
        return self.profiles[0] if self.profiles else None

    def find_profile(self, profile_id: int) -> Profile | None:
        return next((p for p in self.profiles if p.id == profile_id), None)

    def next_profile_id(self) -> int:
        return max((p.id for p in self.profiles), default=0) + 1

    def add_profile(self, profile: Profile) -> Profile:
        """Add a profile. An active profile deactivates all others."""
        if profile.active:
            for other in self.profiles:
                other.active = False
        self.profiles.append(profile)
        self.save_profiles()
        return profile

    def activate_profile(self, profile_id: int) -> Profile | None:
        """Make one profile the only active profile."""
        target = self.find_profile(profile_id)
        if target is None:
            return None
        for profile in self.profiles:
            profile.active = profile.id == profile_id
        self.save_profiles()
        return target

    def delete_profile(self, profile_id: int) -> bool:
        """Delete a profile. If it was active, the first remaining one takes over."""
        target = self.find_profile(profile_id)
        if target is None:
            return False
        self.profiles.remove(target)
        if target.active and self.profiles:
            self.profiles[0].active = True
        self.save_profiles()
        return True

    # -- Message log -----------------------------------------------------------

    def add_message(self, record: MessageRecord) -> None:
        """Prepend a record (newest first) and trim to the log limit."""
        self.messages.insert(0, record)
        del self.messages[self._message_limit :]
        self._write(MESSAGES_FILE, _messages_adapter, self.messages)

    def clear_messages(self) -> int:
        count = len(self.messages)
        self.messages = []
        self._write(MESSAGES_FILE, _messages_adapter, self.messages)
        return count

    # -- Chat history ----------------------------------------------------------

    def append_history(self, sender: str, entry: ChatHistoryEntry) -> None:
        entries = self.chat_history.setdefault(sender, [])
        entries.append(entry)
        if len(entries) > self._history_limit:
            self.chat_history[sender] = entries[-self._history_limit :]
        self._write(CHAT_HISTORY_FILE, _history_adapter, self.chat_history)

    def history_for(self, sender: str) -> list[ChatHistoryEntry]:
        return list(self.chat_history.get(sender, []))

    # -- Block list ------------------------------------------------------------

    def is_blocked(self, sender: str) -> bool:
        return sender in self.blacklist

    def block(self, sender: str) -> bool:
        """Add a sender to the block list. Returns False if already present."""
        if sender in self.blacklist:
            return False
        self.blacklist.append(sender)
        self._write(BLACKLIST_FILE, _blacklist_adapter, self.blacklist)
        return True

    def unblock(self, sender: str) -> bool:
        if sender not in self.blacklist:
            return False
        self.blacklist.remove(sender)
        self._write(BLACKLIST_FILE, _blacklist_adapter, self.blacklist)
        return True

    # -- Status file -----------------------------------------------------------

    def write_status(self, status: str) -> None:
        record = StatusFile(status=status, timestamp=datetime.now(UTC).isoformat(), pid=os.getpid())
        self._dir.mkdir(parents=True, exist_ok=True)
        (self._dir / STATUS_FILE).write_text(record.model_dump_json(indent=2), encoding="utf-8")

    def read_status(self) -> StatusFile | None:
        path = self._dir / STATUS_FILE
        if not path.exists():
            return None
        try:
            return StatusFile.model_validate_json(path.read_bytes())
        except (OSError, ValidationError):
            logger.warning("Unreadable status file: %s", path)
            return None
