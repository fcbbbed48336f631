"""
NicoNode — the chat core as seen by the presentation layer.

Owns the message transport, the discovery service and the peer directory,
and moves messages between them and the message store.
"""

import asyncio
import logging

from nico.config import (
    CONNECT_TIMEOUT,
    DISCOVERY_PORT,
    LOCAL_HOST,
    MAX_CONCURRENT_PROBES,
    MESSAGE_PORT,
    PROBE_TIMEOUT,
)
from nico.discovery.directory import PeerDirectory
from nico.discovery.identity import default_device_name, resolve_local_ip
from nico.discovery.models import PeerAddress, PeerRecord
from nico.discovery.service import DiscoveryService
from nico.errors import ConnectError
from nico.events import ChatListener, EventDispatcher, EventType
from nico.notifications import LoggingNotifier, NotificationSink
from nico.store.messages import MessageStore
from nico.store.preferences import Preferences
from nico.transport.manager import MessageTransport
from nico.transport.models import Direction, Message, now_millis

logger = logging.getLogger(__name__)

MANUAL_DEVICE_NAME = "Manual_Device"
TEST_CHAT = "Test"
TEST_SENDER = "System"
TEST_BODY = "Connection test"


class NicoNode:
    """Discovery, messaging and persistence for one device."""

    def __init__(
        self,
        store: MessageStore,
        notifier: NotificationSink | None = None,
        preferences: Preferences | None = None,
        host: str | None = LOCAL_HOST,
        bind_host: str = "0.0.0.0",
        message_port: int = MESSAGE_PORT,
        discovery_port: int = DISCOVERY_PORT,
        connect_timeout: float = CONNECT_TIMEOUT,
        probe_timeout: float = PROBE_TIMEOUT,
        max_concurrent_probes: int = MAX_CONCURRENT_PROBES,
    ) -> None:
        self._store = store
        self._notifier = notifier or LoggingNotifier()
        self._preferences = preferences or Preferences()
        self._host = host
        self._bind_host = bind_host
        self._message_port = message_port
        self._discovery_port = discovery_port

        self._lock = asyncio.Lock()
        self._running = False

        self.dispatcher = EventDispatcher()
        self.directory = PeerDirectory()
        self.transport = MessageTransport(
            on_message=self._on_inbound_message,
            host=bind_host,
            connect_timeout=connect_timeout,
        )
        self.discovery = DiscoveryService(
            directory=self.directory,
            dispatcher=self.dispatcher,
            device_name=lambda: self.device_name,
            local_host=self.local_ip,
            message_port=message_port,
            discovery_port=discovery_port,
            probe_timeout=probe_timeout,
            max_concurrent_probes=max_concurrent_probes,
        )

    # --- Identity ---

    def local_ip(self) -> str:
        if self._host is None:
            self._host = resolve_local_ip()
        return self._host

    def local_address(self) -> PeerAddress:
        return PeerAddress(host=self.local_ip(), port=self.transport.port or self._message_port)

    @property
    def device_name(self) -> str:
        return self._preferences.device_name or default_device_name(self.local_ip())

    @device_name.setter
    def device_name(self, name: str | None) -> None:
        self._preferences.device_name = name

    @property
    def preferences(self) -> Preferences:
        return self._preferences

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def running(self) -> bool:
        return self._running

    # --- Lifecycle ---

    async def start_server(self) -> None:
        """
        Start the message listener and the discovery responder.

        Raises TransportError if either port cannot be bound; nothing is
        left running in that case.
        """
        async with self._lock:
            if self._running:
                return

            self.dispatcher.bind(asyncio.get_running_loop())
            await self.transport.start_listening(self._message_port)
            try:
                await self.discovery.start_responder(self._discovery_port, host=self._bind_host)
            except Exception:
                await self.transport.stop_listening()
                raise

            self._running = True
            logger.info(f"Server started, your IP - {self.local_ip()}")

    async def stop_server(self) -> None:
        """Stop both listeners. Safe to call repeatedly or before start."""
        async with self._lock:
            was_running = self._running
            self._running = False
            await self.discovery.stop_responder()
            await self.transport.stop_listening()
            self.directory.clear()
            if was_running:
                logger.info("Server stopped")

    # --- Presentation interface ---

    def set_listener(self, listener: ChatListener | None) -> ChatListener | None:
        """Register the single event listener, returning the one it replaces."""
        return self.dispatcher.set_listener(listener)

    def known_peers(self) -> list[PeerRecord]:
        return self.directory.all()

    async def scan(self) -> list[PeerRecord]:
        """Discover peers on the local subnet."""
        return await self.discovery.scan()

    async def send(self, address: PeerAddress, chat_name: str, sender: str, body: str) -> bool:
        """
        Send a message; on success record it as outgoing.

        A failed delivery is reported through on_connection_status_changed
        and is not retried. EncodeError propagates for unsendable fields.
        """
        try:
            message = await self.transport.send(address, chat_name, sender, body)
        except ConnectError as e:
            logger.warning(f"Failed to send to {address}: {e}")
            self.dispatcher.dispatch(EventType.CONNECTION_STATUS_CHANGED, False)
            return False

        await asyncio.to_thread(self._store.append, message)
        return True

    async def save_local(self, chat_name: str, sender: str, body: str) -> Message:
        """Offline mode: keep an outgoing message without sending it."""
        message = Message(
            chat_name=chat_name,
            sender=sender,
            body=body,
            sent_at_epoch_millis=now_millis(),
            direction=Direction.OUTGOING,
        )
        await asyncio.to_thread(self._store.append, message)
        logger.info(f"Message saved locally in '{chat_name}'")
        return message

    async def connect(self, host: str, port: int | None = None) -> bool:
        """Check a peer is reachable with a test message and remember it."""
        self._preferences.save_device_ip(host, MANUAL_DEVICE_NAME)
        address = PeerAddress(host=host, port=port or self._message_port)
        connected = await self.send(address, TEST_CHAT, TEST_SENDER, TEST_BODY)
        if connected:
            self._preferences.connected_ip = host
            logger.info(f"Saved connected IP: {host}")
        return connected

    async def history(self, chat_name: str) -> list[Message]:
        return await asyncio.to_thread(self._store.list_by_chat, chat_name)

    async def chats(self):
        return await asyncio.to_thread(self._store.list_latest_per_chat)

    # --- Inbound ---

    async def _on_inbound_message(self, message: Message, peer_ip: str) -> None:
        """Persist, notify, then tell the listener about one received frame."""
        try:
            await asyncio.to_thread(self._store.append, message)
        except Exception as e:
            logger.error(f"Failed to store message from {peer_ip}: {e}")

        try:
            self._notifier.notify_message(message.sender, message.body)
        except Exception as e:
            logger.error(f"Notification error: {e}")

        self.dispatcher.dispatch(
            EventType.MESSAGE_RECEIVED, message.chat_name, message.sender, message.body
        )
