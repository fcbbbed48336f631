"""
Message store and preferences tests
"""

import pytest

from nico.store.messages import MessageStore
from nico.store.preferences import Preferences
from nico.transport.models import (
    MAX_EPOCH_MILLIS,
    TIME_LABEL_UNKNOWN,
    Direction,
    Message,
    format_time_label,
)


def message(chat: str, body: str, millis: int = 1700000000000, outgoing: bool = False) -> Message:
    return Message(
        chat_name=chat,
        sender="You" if outgoing else "Alex",
        body=body,
        sent_at_epoch_millis=millis,
        direction=Direction.OUTGOING if outgoing else Direction.INCOMING,
    )


@pytest.fixture
def store():
    s = MessageStore(":memory:")
    yield s
    s.close()


class TestMessageStore:

    def test_append_returns_increasing_ids(self, store):
        first = store.append(message("Alex", "one"))
        second = store.append(message("Alex", "two"))
        assert second > first

    def test_list_by_chat_in_insert_order(self, store):
        store.append(message("Alex", "Hey! How's Nico working?"))
        store.append(message("Sarah", "Love the design!"))
        store.append(message("Alex", "It's amazing!", outgoing=True))

        history = store.list_by_chat("Alex")
        assert [m.body for m in history] == ["Hey! How's Nico working?", "It's amazing!"]
        assert [m.direction for m in history] == [Direction.INCOMING, Direction.OUTGOING]
        assert all(m.chat_name == "Alex" for m in history)

    def test_unknown_chat_is_empty(self, store):
        assert store.list_by_chat("nobody") == []

    def test_latest_per_chat(self, store):
        store.append(message("Alex", "first", 1000))
        store.append(message("Sarah", "hello", 2000))
        store.append(message("Alex", "last", 3000))

        summaries = {s.chat_name: s for s in store.list_latest_per_chat()}
        assert set(summaries) == {"Alex", "Sarah"}
        assert summaries["Alex"].last_body == "last"
        assert summaries["Alex"].last_time_label == format_time_label(3000)
        assert summaries["Sarah"].last_body == "hello"

    def test_largest_timestamp_lists(self, store):
        store.append(message("Alex", "far", MAX_EPOCH_MILLIS))
        assert store.list_by_chat("Alex")[0].sent_at_epoch_millis == MAX_EPOCH_MILLIS
        summary = store.list_latest_per_chat()[0]
        assert len(summary.last_time_label) == 5

    def test_undated_timestamp_gets_placeholder(self, store):
        store.append(message("Alex", "odd", 10 ** 15))
        assert store.list_latest_per_chat()[0].last_time_label == TIME_LABEL_UNKNOWN
        assert store.list_by_chat("Alex")[0].time_label == TIME_LABEL_UNKNOWN

    def test_persists_to_disk(self, tmp_path):
        path = tmp_path / "data" / "messages.db"
        s = MessageStore(path)
        s.append(message("Alex", "kept"))
        s.close()

        reopened = MessageStore(path)
        assert [m.body for m in reopened.list_by_chat("Alex")] == ["kept"]
        reopened.close()


class TestPreferences:

    def test_defaults(self, tmp_path):
        prefs = Preferences(tmp_path / "prefs.json")
        assert prefs.device_name is None
        assert prefs.connected_ip is None
        assert prefs.get_saved_device_ip("Manual_Device") is None

    def test_round_trip(self, tmp_path):
        path = tmp_path / "prefs.json"
        prefs = Preferences(path)
        prefs.device_name = "Kitchen"
        prefs.connected_ip = "192.168.1.20"
        prefs.save_device_ip("192.168.1.21", "Manual_Device")

        reloaded = Preferences(path)
        assert reloaded.device_name == "Kitchen"
        assert reloaded.connected_ip == "192.168.1.20"
        assert reloaded.get_saved_device_ip("Manual_Device") == "192.168.1.21"

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text("{not json")
        prefs = Preferences(path)
        assert prefs.device_name is None

    def test_in_memory(self):
        prefs = Preferences()
        prefs.connected_ip = "10.0.0.2"
        assert prefs.connected_ip == "10.0.0.2"
