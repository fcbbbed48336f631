"""
Nico test fixtures
"""

import asyncio
import socket

import pytest_asyncio

from nico.events import ChatListener
from nico.node import NicoNode
from nico.notifications import NotificationSink
from nico.store.messages import MessageStore
from nico.store.preferences import Preferences

LOOPBACK = "127.0.0.1"


class RecordingListener(ChatListener):
    """Collects every event into a queue."""

    def __init__(self) -> None:
        self.events: asyncio.Queue = asyncio.Queue()

    def on_message_received(self, chat_name, sender, body):
        self.events.put_nowait(("message", chat_name, sender, body))

    def on_device_discovered(self, address, name):
        self.events.put_nowait(("device", address, name))

    def on_connection_status_changed(self, connected):
        self.events.put_nowait(("connection", connected))

    async def next(self, timeout: float = 3.0):
        return await asyncio.wait_for(self.events.get(), timeout=timeout)


class RecordingNotifier(NotificationSink):
    def __init__(self) -> None:
        self.notified: list[tuple[str, str]] = []

    def notify_message(self, sender, body):
        self.notified.append((sender, body))


def free_port(kind: int = socket.SOCK_STREAM) -> int:
    """A port nobody is listening on right now."""
    with socket.socket(socket.AF_INET, kind) as sock:
        sock.bind((LOOPBACK, 0))
        return sock.getsockname()[1]


def make_node(tmp_path=None, **kwargs) -> NicoNode:
    prefs = Preferences(tmp_path / "prefs.json") if tmp_path is not None else Preferences()
    options = dict(
        store=MessageStore(":memory:"),
        notifier=RecordingNotifier(),
        preferences=prefs,
        host=LOOPBACK,
        bind_host=LOOPBACK,
        message_port=0,
        discovery_port=0,
        connect_timeout=1.0,
        probe_timeout=0.3,
    )
    options.update(kwargs)
    return NicoNode(**options)


@pytest_asyncio.fixture
async def node_pair():
    """Two started nodes on loopback, A and B."""
    a = make_node()
    b = make_node()
    await a.start_server()
    await b.start_server()
    yield a, b
    await a.stop_server()
    await b.stop_server()
    a.store.close()
    b.store.close()
