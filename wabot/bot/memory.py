"""In-memory per-sender conversation memory with a sliding window."""

import logging
from dataclasses import dataclass, field

from wabot.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationTurn:
    """A single conversation turn."""

    role: str  # "user" or "assistant"
    text: str


@dataclass
class ChatMemory:
    """Conversation history for a single sender."""

    turns: list[ConversationTurn] = field(default_factory=list)
    max_turns: int = field(default_factory=lambda: settings.memory_max_turns)

    def add(self, role: str, text: str) -> None:
        """Append a turn and trim to the sliding window."""
        self.turns.append(ConversationTurn(role=role, text=text))
        if len(self.turns) > self.max_turns:
            self.turns = self.turns[-self.max_turns :]

    def recent(self, limit: int) -> list[ConversationTurn]:
        """Return up to ``limit`` of the newest turns, never starting on an assistant turn."""
        if limit <= 0:
            return []
        window = self.turns[-limit:]
        while window and window[0].role == "assistant":
            window = window[1:]
        return list(window)

    def clear(self) -> int:
        """Clear all turns. Returns the count of cleared turns."""
        count = len(self.turns)
        self.turns.clear()
        return count


class ChatMemoryStore:
    """Per-sender table of :class:`ChatMemory`, keyed by sender key."""

    def __init__(self, max_turns: int | None = None) -> None:
        self._max_turns = max_turns or settings.memory_max_turns
        self._memories: dict[str, ChatMemory] = {}

    def get(self, sender: str) -> ChatMemory:
        """Get or create the memory for a sender."""
        if sender not in self._memories:
            self._memories[sender] = ChatMemory(max_turns=self._max_turns)
        return self._memories[sender]

    def history(self, sender: str, limit: int) -> list[ConversationTurn]:
        if sender not in self._memories:
            return []
        return self._memories[sender].recent(limit)

    def record_exchange(self, sender: str, prompt: str, reply: str) -> None:
        """Store a user prompt and the assistant reply it produced."""
        memory = self.get(sender)
        memory.add("user", prompt)
        memory.add("assistant", reply)

    def clear(self, sender: str) -> int:
        memory = self._memories.pop(sender, None)
        if memory is None:
            return 0
        count = memory.clear()
        logger.info("Cleared %d turns for %s", count, sender)
        return count

    def __len__(self) -> int:
        return len(self._memories)

    def __contains__(self, sender: object) -> bool:
        return sender in self._memories
