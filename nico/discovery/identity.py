"""
Local device identity: the address other peers reach us on, and the
name we announce in discovery responses.
"""

import logging
import socket

from nico.config import DEVICE_NAME_PREFIX, FALLBACK_IP

logger = logging.getLogger(__name__)


def resolve_local_ip() -> str:
    """
    Best-effort IPv4 address of the interface used for LAN traffic.

    Connecting a UDP socket sends nothing; it only makes the OS pick the
    outbound interface so we can read its address.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(("8.8.8.8", 80))
        return sock.getsockname()[0]
    except OSError:
        pass
    finally:
        sock.close()

    try:
        ip = socket.gethostbyname(socket.gethostname())
        if not ip.startswith("127."):
            return ip
    except OSError as e:
        logger.debug(f"Hostname resolution failed: {e}")

    logger.warning(f"Could not resolve local IP, falling back to {FALLBACK_IP}")
    return FALLBACK_IP


def default_device_name(ip: str) -> str:
    """Name announced when the user has not picked one, e.g. Nico-19216817."""
    return DEVICE_NAME_PREFIX + ip.replace(".", "")


def subnet_prefix(ip: str) -> str:
    """First three octets of an IPv4 address, with trailing dot."""
    return ip[: ip.rindex(".") + 1]


def subnet_candidates(local_ip: str) -> list[str]:
    """Every .1-.254 host of the local /24 except ourselves."""
    base = subnet_prefix(local_ip)
    return [f"{base}{i}" for i in range(1, 255) if f"{base}{i}" != local_ip]


def subnet_broadcast(local_ip: str) -> str:
    return subnet_prefix(local_ip) + "255"
