"""Tests for per-sender conversation memory."""

from wabot.bot.memory import ChatMemory, ChatMemoryStore, ConversationTurn


def test_memory_add_and_recent() -> None:
    """Turns are stored in order."""
    memory = ChatMemory(max_turns=10)
    memory.add("user", "hola")
    memory.add("assistant", "hey")

    assert memory.recent(10) == [
        ConversationTurn(role="user", text="hola"),
        ConversationTurn(role="assistant", text="hey"),
    ]


def test_memory_evicts_oldest_first() -> None:
    """The cap is never exceeded and the oldest turns go first."""
    memory = ChatMemory(max_turns=4)
    for i in range(7):
        memory.add("user", f"msg {i}")

    assert len(memory.turns) == 4
    assert [t.text for t in memory.turns] == ["msg 3", "msg 4", "msg 5", "msg 6"]


def test_recent_never_starts_with_assistant() -> None:
    """A history window that would open on an assistant turn drops it."""
    memory = ChatMemory(max_turns=10)
    memory.add("user", "a")
    memory.add("assistant", "b")
    memory.add("user", "c")
    memory.add("assistant", "d")

    window = memory.recent(3)
    assert [t.text for t in window] == ["c", "d"]
    assert window[0].role == "user"


def test_recent_with_zero_limit() -> None:
    memory = ChatMemory(max_turns=10)
    memory.add("user", "a")
    assert memory.recent(0) == []


def test_store_history_for_unknown_sender() -> None:
    """Unknown senders have no history and no entry is created."""
    store = ChatMemoryStore(max_turns=10)
    assert store.history("nobody@c.us", 10) == []
    assert "nobody@c.us" not in store


def test_store_record_exchange() -> None:
    """An exchange stores the prompt then the reply."""
    store = ChatMemoryStore(max_turns=10)
    store.record_exchange("a@c.us", "como estas", "todo bien")

    history = store.history("a@c.us", 10)
    assert [(t.role, t.text) for t in history] == [
        ("user", "como estas"),
        ("assistant", "todo bien"),
    ]


def test_store_cap_applies_per_sender() -> None:
    """Each sender's memory is capped independently."""
    store = ChatMemoryStore(max_turns=4)
    for i in range(5):
        store.record_exchange("a@c.us", f"q{i}", f"r{i}")
    store.record_exchange("b@c.us", "hi", "hey")

    assert len(store.get("a@c.us").turns) == 4
    assert len(store.get("b@c.us").turns) == 2
    assert len(store) == 2


def test_store_clear() -> None:
    """Clearing returns the turn count and forgets the sender."""
    store = ChatMemoryStore(max_turns=10)
    store.record_exchange("a@c.us", "hola", "hey")

    assert store.clear("a@c.us") == 2
    assert "a@c.us" not in store
    assert store.clear("a@c.us") == 0
