"""Exception types raised by the chat core."""

from enum import Enum


class NicoError(Exception):
    """Base class for all chat core errors."""

    def __init__(self, reason: Enum, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        message = reason.value if not detail else f"{reason.value}: {detail}"
        super().__init__(message)


class EncodeReason(str, Enum):
    INVALID_FIELD = "invalid_field"


class DecodeReason(str, Enum):
    MALFORMED_FRAME = "malformed_frame"
    BAD_TIMESTAMP = "bad_timestamp"


class TransportReason(str, Enum):
    PORT_UNAVAILABLE = "port_unavailable"


class ConnectReason(str, Enum):
    TIMEOUT = "timeout"
    REFUSED = "refused"
    UNREACHABLE = "unreachable"


class EncodeError(NicoError):
    """A field cannot be represented in the wire format."""


class DecodeError(NicoError):
    """An inbound frame or datagram could not be parsed."""


class TransportError(NicoError):
    """A listener could not be started."""


class ConnectError(NicoError):
    """An outbound message connection failed."""
