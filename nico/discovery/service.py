"""
UDP-based LAN discovery service.

Answers discovery probes from other Nico devices and runs scans that
combine a subnet broadcast with a directed probe of every /24 host.
"""

import asyncio
import logging
import socket
from typing import Callable

from nico.config import (
    DISCOVERY_PORT,
    MAX_CONCURRENT_PROBES,
    MESSAGE_PORT,
    PROBE_TIMEOUT,
)
from nico.discovery.directory import PeerDirectory
from nico.discovery.identity import subnet_broadcast, subnet_candidates
from nico.discovery.models import (
    DiscoveryProbe,
    DiscoveryResponse,
    PeerAddress,
    PeerRecord,
    ProbeResult,
    ScanState,
)
from nico.errors import DecodeError, EncodeError, TransportError, TransportReason
from nico.events import EventDispatcher, EventType
from nico.protocol.codec import decode_datagram, encode_probe, encode_response

logger = logging.getLogger(__name__)

BROADCAST_ADDRESS = "255.255.255.255"


class DiscoveryProtocol(asyncio.DatagramProtocol):
    """asyncio UDP protocol for the discovery responder socket."""

    def __init__(self, service: "DiscoveryService"):
        self.service = service

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        try:
            frame = decode_datagram(data)
        except DecodeError as e:
            logger.debug(f"Ignoring invalid discovery packet from {addr}: {e}")
            return

        if isinstance(frame, DiscoveryProbe):
            if self.service.is_own_address(addr):
                return
            logger.info(f"Discovery request from {addr[0]}")
            self.service.answer_probe(addr)
        elif isinstance(frame, DiscoveryResponse):
            self.service.record_response(addr[0], frame.device_name)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Discovery UDP error: {exc}")


class ProbeProtocol(asyncio.DatagramProtocol):
    """Waits for the first response on a single directed probe's socket."""

    def __init__(self) -> None:
        self.response: asyncio.Future = asyncio.get_running_loop().create_future()

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        if self.response.done():
            return
        try:
            frame = decode_datagram(data)
        except DecodeError as e:
            logger.debug(f"Ignoring invalid probe reply from {addr}: {e}")
            return
        if isinstance(frame, DiscoveryResponse):
            self.response.set_result((addr[0], frame.device_name))

    def error_received(self, exc: Exception) -> None:
        # ICMP port unreachable and friends: nobody is listening there
        if not self.response.done():
            self.response.set_result(None)

    def connection_lost(self, exc: Exception | None) -> None:
        if not self.response.done():
            self.response.set_result(None)


class DiscoveryService:
    """Manages LAN device discovery and the responder socket."""

    def __init__(
        self,
        directory: PeerDirectory,
        dispatcher: EventDispatcher,
        device_name: Callable[[], str],
        local_host: Callable[[], str],
        message_port: int = MESSAGE_PORT,
        discovery_port: int = DISCOVERY_PORT,
        probe_timeout: float = PROBE_TIMEOUT,
        max_concurrent_probes: int = MAX_CONCURRENT_PROBES,
    ) -> None:
        self._directory = directory
        self._dispatcher = dispatcher
        self._device_name = device_name
        self._local_host = local_host
        self._message_port = message_port
        self._discovery_port = discovery_port
        self._probe_timeout = probe_timeout
        self._max_concurrent_probes = max_concurrent_probes

        self._transport: asyncio.DatagramTransport | None = None
        self._port = 0
        self._scan_task: asyncio.Task | None = None
        self._state = ScanState.IDLE

    @property
    def running(self) -> bool:
        return self._transport is not None

    @property
    def port(self) -> int:
        return self._port

    @property
    def state(self) -> ScanState:
        return self._state

    # --- Responder ---

    async def start_responder(self, port: int | None = None, host: str = "0.0.0.0") -> None:
        """Start answering discovery probes on UDP `port` (the discovery port by default)."""
        if self._transport is not None:
            return
        if port is None:
            port = self._discovery_port

        logger.info(f"Starting discovery on UDP port {port}")
        loop = asyncio.get_running_loop()

        # SO_REUSEADDR must be set before binding
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setblocking(False)
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise TransportError(TransportReason.PORT_UNAVAILABLE, f"UDP {host}:{port}: {e}") from e

        transport, _ = await loop.create_datagram_endpoint(
            lambda: DiscoveryProtocol(self),
            sock=sock,
        )
        self._transport = transport
        self._port = sock.getsockname()[1]
        logger.info("Discovery service started")

    async def stop_responder(self) -> None:
        """Close the responder socket. Safe to call when not running."""
        transport, self._transport = self._transport, None
        if transport is None:
            return
        transport.close()
        self._port = 0
        logger.info("Discovery service stopped")

    def is_own_address(self, addr: tuple[str, int]) -> bool:
        """True for datagrams sent from our own responder socket."""
        return addr[1] == self._port and addr[0] in (self._local_host(), "127.0.0.1")

    def answer_probe(self, addr: tuple[str, int]) -> None:
        if self._transport is None:
            return
        try:
            self._transport.sendto(encode_response(self._device_name()), addr)
        except (OSError, EncodeError) as e:
            logger.warning(f"Failed to send discovery response to {addr[0]}: {e}")

    def record_response(self, host: str, name: str) -> None:
        """Upsert a responding peer and tell the listener about it."""
        address = PeerAddress(host=host, port=self._message_port)
        self._directory.upsert(address, name)
        logger.info(f"Discovered device - {name} at {host}")
        self._dispatcher.dispatch(EventType.DEVICE_DISCOVERED, address, name)

    # --- Scanning ---

    async def scan(self) -> list[PeerRecord]:
        """
        Run one discovery cycle and return the peers found.

        A scan requested while another is running waits for that one.
        """
        if self._scan_task is None or self._scan_task.done():
            self._scan_task = asyncio.create_task(self._run_scan())
        return await asyncio.shield(self._scan_task)

    async def _run_scan(self) -> list[PeerRecord]:
        self._state = ScanState.SCANNING
        try:
            local_ip = self._local_host()
            logger.info(f"Starting network discovery from {local_ip}")
            self._directory.clear()

            _, results = await asyncio.gather(
                self._broadcast_probe(local_ip),
                self.sweep(subnet_candidates(local_ip)),
            )
            found = sum(1 for r in results.values() if r == ProbeResult.RESPONDED)
            logger.info(f"Discovery finished: {found} direct replies, {len(self._directory)} peers known")
            return self._directory.all()
        finally:
            self._state = ScanState.IDLE

    async def _broadcast_probe(self, local_ip: str) -> None:
        """Broadcast one probe from the responder socket so replies reach it."""
        if self._transport is None:
            logger.warning("Discovery responder not running, skipping broadcast probe")
            return

        data = encode_probe()
        for bcast_ip in {BROADCAST_ADDRESS, subnet_broadcast(local_ip)}:
            try:
                self._transport.sendto(data, (bcast_ip, self._discovery_port))
            except OSError as e:
                # Some interfaces do not support broadcast
                logger.debug(f"Broadcast to {bcast_ip} failed: {e}")

    async def sweep(self, hosts: list[str], port: int | None = None) -> dict[str, ProbeResult]:
        """Probe every host directly; returns each host's outcome."""
        target_port = port or self._discovery_port
        limit = asyncio.Semaphore(self._max_concurrent_probes)

        async def bounded(host: str) -> ProbeResult:
            async with limit:
                return await self.probe(host, target_port)

        outcomes = await asyncio.gather(*(bounded(h) for h in hosts))
        return dict(zip(hosts, outcomes))

    async def probe(self, host: str, port: int) -> ProbeResult:
        """
        Send one probe to `host` and wait for its reply on the same socket.

        A timeout and an unreachable host look the same: TIMED_OUT.
        """
        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.create_datagram_endpoint(
                ProbeProtocol, local_addr=("0.0.0.0", 0)
            )
        except OSError as e:
            logger.debug(f"Could not open probe socket for {host}: {e}")
            return ProbeResult.TIMED_OUT

        try:
            transport.sendto(encode_probe(), (host, port))
            reply = await asyncio.wait_for(protocol.response, timeout=self._probe_timeout)
        except (asyncio.TimeoutError, OSError):
            return ProbeResult.TIMED_OUT
        finally:
            transport.close()

        if reply is None:
            return ProbeResult.TIMED_OUT

        reply_host, name = reply
        self.record_response(reply_host, name)
        return ProbeResult.RESPONDED
