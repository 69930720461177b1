"""Tests for the JSON document store."""

import json

from wabot.storage.models import ChatHistoryEntry, MessageRecord, Profile, Tone
from wabot.storage.store import (
    BLACKLIST_FILE,
    CHAT_HISTORY_FILE,
    MESSAGES_FILE,
    PROFILES_FILE,
    JsonStore,
)

SENDER = "5215512345678@c.us"


# -- Helpers -----------------------------------------------------------------


def _record(i: int) -> MessageRecord:
    return MessageRecord(id=i, sender=SENDER, message=f"q{i}", response=f"r{i}")


# -- Load --------------------------------------------------------------------


def test_load_seeds_default_profile(store: JsonStore) -> None:
    """A fresh data directory gets one active default profile on disk."""
    assert len(store.profiles) == 1
    assert store.active_profile.name == "Default"
    assert store.active_profile.tone is Tone.CASUAL
    assert (store.data_dir / PROFILES_FILE).exists()


def test_load_round_trips_documents(store: JsonStore) -> None:
    """Everything written is read back by a new store."""
    store.add_message(_record(1))
    store.append_history(SENDER, ChatHistoryEntry(body="hola"))
    store.block("123@c.us")

    fresh = JsonStore(data_dir=store.data_dir)
    fresh.load()

    assert fresh.messages[0].message == "q1"
    assert fresh.history_for(SENDER)[0].body == "hola"
    assert fresh.is_blocked("123@c.us")


def test_corrupt_file_treated_as_empty(tmp_path, caplog) -> None:
    """Unreadable documents are logged and start empty."""
    (tmp_path / MESSAGES_FILE).write_text("{not json", encoding="utf-8")
    s = JsonStore(data_dir=tmp_path)
    s.load()

    assert s.messages == []
    assert "Could not read" in caplog.text


def test_files_are_pretty_printed(store: JsonStore) -> None:
    store.block("123@c.us")
    text = (store.data_dir / BLACKLIST_FILE).read_text(encoding="utf-8")
    assert text == json.dumps(["123@c.us"], indent=2)


# -- Profiles ----------------------------------------------------------------


def test_add_active_profile_deactivates_others(store: JsonStore) -> None:
    profile = store.add_profile(
        Profile(id=store.next_profile_id(), name="Work", active=True)
    )

    assert profile.id == 2
    assert store.active_profile is profile
    assert [p.active for p in store.profiles] == [False, True]


def test_activate_profile(store: JsonStore) -> None:
    store.add_profile(Profile(id=2, name="Work"))

    assert store.activate_profile(2).name == "Work"
    assert store.activate_profile(99) is None
    assert store.active_profile.id == 2


def test_delete_active_profile_promotes_first(store: JsonStore) -> None:
    """Deleting the active profile activates the first remaining one."""
    store.add_profile(Profile(id=2, name="Work"))
    store.add_profile(Profile(id=3, name="Friends", active=True))

    assert store.delete_profile(3)
    assert store.active_profile.id == 1
    assert store.profiles[0].active
    assert not store.delete_profile(3)


# -- Message log and history ------------------------------------------------


def test_message_log_newest_first_and_capped(tmp_path) -> None:
    s = JsonStore(data_dir=tmp_path, message_limit=3)
    s.load()
    for i in range(5):
        s.add_message(_record(i))

    assert [m.id for m in s.messages] == [4, 3, 2]
    on_disk = json.loads((tmp_path / MESSAGES_FILE).read_text(encoding="utf-8"))
    assert len(on_disk) == 3


def test_clear_messages(store: JsonStore) -> None:
    store.add_message(_record(1))
    store.add_message(_record(2))
    assert store.clear_messages() == 2
    assert store.messages == []


def test_chat_history_capped_per_sender(tmp_path) -> None:
    s = JsonStore(data_dir=tmp_path, history_limit=3)
    s.load()
    for i in range(5):
        s.append_history(SENDER, ChatHistoryEntry(body=f"m{i}"))

    assert [e.body for e in s.history_for(SENDER)] == ["m2", "m3", "m4"]
    on_disk = json.loads((tmp_path / CHAT_HISTORY_FILE).read_text(encoding="utf-8"))
    assert len(on_disk[SENDER]) == 3


# -- Block list and status ---------------------------------------------------


def test_block_and_unblock(store: JsonStore) -> None:
    assert store.block(SENDER)
    assert not store.block(SENDER)
    assert store.is_blocked(SENDER)
    assert store.unblock(SENDER)
    assert not store.unblock(SENDER)
    assert not store.is_blocked(SENDER)


def test_status_file_round_trip(store: JsonStore) -> None:
    """The status file records the state and this process id."""
    import os

    assert store.read_status() is None
    store.write_status("ready")

    status = store.read_status()
    assert status.status == "ready"
    assert status.pid == os.getpid()
