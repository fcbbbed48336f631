"""
TCP message connections.

One frame per outbound connection: connect, write, close. Inbound
connections are read line by line until the peer closes; each line is an
independent frame.
"""

import asyncio
import errno
import logging
from typing import Awaitable, Callable

from nico.errors import ConnectError, ConnectReason, DecodeError
from nico.protocol.codec import decode_message
from nico.transport.models import Message

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Message, str], Awaitable[None]]


def _classify(exc: OSError) -> ConnectReason:
    if isinstance(exc, ConnectionRefusedError):
        return ConnectReason.REFUSED
    if isinstance(exc, TimeoutError) or exc.errno == errno.ETIMEDOUT:
        return ConnectReason.TIMEOUT
    return ConnectReason.UNREACHABLE


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass


async def send_frame(host: str, port: int, frame: bytes, timeout: float) -> None:
    """
    Deliver one encoded frame over a fresh connection.

    Raises ConnectError if the connection cannot be opened or the write
    fails. No acknowledgment is read back.
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        raise ConnectError(ConnectReason.TIMEOUT, f"{host}:{port}") from e
    except OSError as e:
        raise ConnectError(_classify(e), f"{host}:{port}: {e}") from e

    try:
        writer.write(frame)
        await asyncio.wait_for(writer.drain(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ConnectError(ConnectReason.TIMEOUT, f"write to {host}:{port}") from e
    except OSError as e:
        raise ConnectError(_classify(e), f"write to {host}:{port}: {e}") from e
    finally:
        await _close_writer(writer)


async def serve_connection(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    on_message: MessageHandler,
) -> int:
    """
    Read frames from one inbound connection until EOF or the first bad frame.

    Returns the number of frames delivered to `on_message`.
    """
    peer = writer.get_extra_info("peername")
    peer_ip = peer[0] if peer else "unknown"
    delivered = 0

    try:
        while True:
            try:
                line = await reader.readline()
            except ValueError as e:
                # StreamReader reports an over-long line as ValueError
                logger.warning(f"Dropping connection from {peer_ip}: {e}")
                break

            if not line:
                break
            if not line.strip():
                continue

            try:
                message = decode_message(line)
            except DecodeError as e:
                logger.warning(f"Invalid message format from {peer_ip}: {e}")
                break

            logger.info(f"Received message from {peer_ip} in '{message.chat_name}'")
            await on_message(message, peer_ip)
            delivered += 1

    except (ConnectionError, OSError) as e:
        logger.info(f"Client {peer_ip} disconnected: {e}")
    finally:
        await _close_writer(writer)

    return delivered
