"""
End-to-end node tests
"""

import asyncio
import socket

import pytest

from nico.discovery.models import PeerAddress
from nico.errors import EncodeError, TransportError
from nico.notifications import NotificationSink
from nico.transport.models import Direction

from conftest import LOOPBACK, RecordingListener, make_node


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_stop_before_start_and_twice(self):
        node = make_node()
        await node.stop_server()
        await node.stop_server()
        assert not node.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        node = make_node()
        await node.start_server()
        port = node.local_address().port
        await node.start_server()
        assert node.running
        assert node.local_address().port == port
        await node.stop_server()
        await node.stop_server()
        assert not node.running
        assert not node.transport.running
        assert not node.discovery.running

    @pytest.mark.asyncio
    async def test_discovery_bind_failure_rolls_back(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        blocker.bind((LOOPBACK, 0))
        try:
            node = make_node(discovery_port=blocker.getsockname()[1])
            with pytest.raises(TransportError):
                await node.start_server()
            assert not node.running
            assert not node.transport.running
        finally:
            blocker.close()

    @pytest.mark.asyncio
    async def test_stop_drops_directory(self):
        node = make_node()
        await node.start_server()
        node.directory.upsert(PeerAddress(host="10.0.0.5"), "peer")
        await node.stop_server()
        assert node.known_peers() == []

    def test_device_name_defaults_to_ip(self, tmp_path):
        node = make_node(tmp_path)
        assert node.device_name == "Nico-127001"
        node.device_name = "Kitchen"
        assert node.device_name == "Kitchen"


class TestMessaging:

    @pytest.mark.asyncio
    async def test_end_to_end(self, node_pair):
        a, b = node_pair
        listener_b = RecordingListener()
        b.set_listener(listener_b)

        assert await a.send(b.local_address(), "chat1", "alice", "hello") is True

        event = await listener_b.next()
        assert event == ("message", "chat1", "alice", "hello")

        # persisted before the listener hears about it
        incoming = b.store.list_by_chat("chat1")
        assert len(incoming) == 1
        assert incoming[0].direction == Direction.INCOMING
        assert b._notifier.notified == [("alice", "hello")]

        outgoing = a.store.list_by_chat("chat1")
        assert len(outgoing) == 1
        assert outgoing[0].direction == Direction.OUTGOING
        assert outgoing[0].body == "hello"

    @pytest.mark.asyncio
    async def test_send_after_peer_stops_reports_disconnect(self, node_pair):
        a, b = node_pair
        listener_a = RecordingListener()
        a.set_listener(listener_a)
        address = b.local_address()

        await b.stop_server()
        assert await a.send(address, "chat1", "alice", "anyone?") is False

        assert await listener_a.next() == ("connection", False)
        assert a.store.list_by_chat("chat1") == []

    @pytest.mark.asyncio
    async def test_replaced_listener_gets_nothing(self, node_pair):
        a, b = node_pair
        old, new = RecordingListener(), RecordingListener()
        b.set_listener(old)
        assert b.set_listener(new) is old

        await a.send(b.local_address(), "c", "alice", "hi")
        await new.next()
        assert old.events.empty()

    @pytest.mark.asyncio
    async def test_unsendable_fields_raise(self, node_pair):
        a, b = node_pair
        with pytest.raises(EncodeError):
            await a.send(b.local_address(), "bad|chat", "alice", "hi")

    @pytest.mark.asyncio
    async def test_save_local(self):
        node = make_node()
        message = await node.save_local("Offline", "You", "later")
        assert message.direction == Direction.OUTGOING
        history = await node.history("Offline")
        assert [m.body for m in history] == ["later"]
        node.store.close()

    @pytest.mark.asyncio
    async def test_connect_remembers_peer(self, tmp_path):
        a = make_node(tmp_path)
        b = make_node()
        listener_b = RecordingListener()
        b.set_listener(listener_b)
        await b.start_server()
        try:
            assert await a.connect(LOOPBACK, b.local_address().port) is True
            assert a.preferences.connected_ip == LOOPBACK
            assert a.preferences.get_saved_device_ip("Manual_Device") == LOOPBACK
            assert await listener_b.next() == ("message", "Test", "System", "Connection test")
            assert [m.body for m in b.store.list_by_chat("Test")] == ["Connection test"]
        finally:
            await b.stop_server()

    @pytest.mark.asyncio
    async def test_scan_finds_peer(self):
        b = make_node()
        await b.start_server()
        a = make_node(
            host="127.0.0.200",
            discovery_port=b.discovery.port,
            max_concurrent_probes=64,
        )
        listener_a = RecordingListener()
        a.set_listener(listener_a)
        try:
            peers = await a.scan()
        finally:
            await b.stop_server()

        assert [p.display_name for p in peers] == ["Nico-127001"]
        assert a.known_peers() == peers
        event = await listener_a.next()
        assert event[0] == "device"
        assert event[1].host == LOOPBACK

    @pytest.mark.asyncio
    async def test_far_future_timestamp_is_dropped(self, node_pair):
        a, b = node_pair
        listener_b = RecordingListener()
        b.set_listener(listener_b)

        _, writer = await asyncio.open_connection(LOOPBACK, b.local_address().port)
        writer.write(b"evil|mallory|hi|1000000000000000\n")
        writer.write(f"evil|mallory|hi|{2 ** 63}\n".encode())
        await writer.drain()
        writer.close()
        await writer.wait_closed()

        assert await a.send(b.local_address(), "evil", "alice", "still here") is True
        assert await listener_b.next() == ("message", "evil", "alice", "still here")
        assert listener_b.events.empty()

        assert [m.body for m in await b.history("evil")] == ["still here"]
        chats = await b.chats()
        assert [c.chat_name for c in chats] == ["evil"]
        assert b._notifier.notified == [("alice", "still here")]

    @pytest.mark.asyncio
    async def test_base_notification_sink_accepts_messages(self):
        a = make_node()
        b = make_node(notifier=NotificationSink())
        listener_b = RecordingListener()
        b.set_listener(listener_b)
        await b.start_server()
        try:
            assert await a.send(b.local_address(), "c", "alice", "quiet") is True
            assert await listener_b.next() == ("message", "c", "alice", "quiet")
            assert [m.body for m in await b.history("c")] == ["quiet"]
        finally:
            await b.stop_server()
