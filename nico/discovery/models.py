"""Pydantic models for peer discovery."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from nico.config import MESSAGE_PORT


class PeerAddress(BaseModel):
    """Where a peer's message listener can be reached."""
    model_config = ConfigDict(frozen=True)

    host: str
    port: int = MESSAGE_PORT

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class PeerRecord(BaseModel):
    """A discovered device on the LAN."""
    address: PeerAddress
    display_name: str


class DiscoveryProbe(BaseModel):
    """The probe datagram; carries no payload."""


class DiscoveryResponse(BaseModel):
    """Reply to a probe, naming the responding device."""
    device_name: str


class ProbeResult(str, Enum):
    """Outcome of one directed probe."""
    RESPONDED = "responded"
    TIMED_OUT = "timed_out"


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
