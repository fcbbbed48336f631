"""
Message Transport — listener lifecycle and outbound sends.

Accepts inbound message connections on the well-known message port and
hands every decoded frame to the owner. Sending opens a short-lived
connection per message; retry policy belongs to the caller.
"""

import asyncio
import logging

from nico.config import CONNECT_TIMEOUT, MAX_FRAME_SIZE, SHUTDOWN_GRACE
from nico.discovery.models import PeerAddress
from nico.errors import TransportError, TransportReason
from nico.protocol.codec import encode_message
from nico.transport.models import Direction, Message, now_millis
from nico.transport.service import MessageHandler, send_frame, serve_connection

logger = logging.getLogger(__name__)


class MessageTransport:
    """Owns the TCP message listener."""

    def __init__(
        self,
        on_message: MessageHandler,
        host: str = "0.0.0.0",
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        self._on_message = on_message
        self._host = host
        self._connect_timeout = connect_timeout
        self._server: asyncio.Server | None = None
        self._port = 0

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int:
        """Bound port, or 0 when not listening."""
        return self._port

    async def start_listening(self, port: int) -> None:
        """Start accepting message connections. No-op when already running."""
        if self._server is not None:
            return

        try:
            server = await asyncio.start_server(
                self._handle_incoming_connection,
                self._host,
                port,
                limit=MAX_FRAME_SIZE,
            )
        except OSError as e:
            raise TransportError(TransportReason.PORT_UNAVAILABLE, f"{self._host}:{port}: {e}") from e

        self._server = server
        self._port = server.sockets[0].getsockname()[1]
        logger.info(f"Message listener started on port {self._port}")

    async def stop_listening(self) -> None:
        """Stop accepting connections. Safe to call when not running."""
        server, self._server = self._server, None
        if server is None:
            return

        server.close()
        try:
            await asyncio.wait_for(server.wait_closed(), timeout=SHUTDOWN_GRACE)
        except asyncio.TimeoutError:
            logger.debug("In-flight connections still open after shutdown grace")
        self._port = 0
        logger.info("Message listener stopped")

    async def send(
        self, address: PeerAddress, chat_name: str, sender: str, body: str
    ) -> Message:
        """
        Send one message to `address`.

        Returns the Message as sent. Raises EncodeError for fields the wire
        format cannot carry and ConnectError when delivery fails.
        """
        sent_at = now_millis()
        frame = encode_message(chat_name, sender, body, sent_at)
        await send_frame(address.host, address.port, frame, self._connect_timeout)
        logger.info(f"Message sent to {address} in '{chat_name}'")

        return Message(
            chat_name=chat_name,
            sender=sender,
            body=body,
            sent_at_epoch_millis=sent_at,
            direction=Direction.OUTGOING,
        )

    async def _handle_incoming_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        logger.debug(f"New connection from {peer[0] if peer else 'unknown'}")
        await serve_connection(reader, writer, self._on_message)
