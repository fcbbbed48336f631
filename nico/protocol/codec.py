"""
Text wire formats for chat messages and discovery datagrams.

Message frame (one per line, UTF-8):

    <chat_name>|<sender>|<body>|<epoch_millis>\\n

The body is the only field allowed to contain ``|``; decoding takes the first
two fields from the left and the timestamp from the right, so any extra
separators stay in the body.

Discovery datagrams are ``NICO_DISCOVERY`` (probe) and
``NICO_RESPONSE|<device name>`` (response).
"""

import re

from nico.discovery.models import DiscoveryProbe, DiscoveryResponse
from nico.errors import DecodeError, DecodeReason, EncodeError, EncodeReason
from nico.transport.models import MAX_EPOCH_MILLIS, Direction, Message

SEPARATOR = "|"
PROBE_TOKEN = "NICO_DISCOVERY"
RESPONSE_TOKEN = "NICO_RESPONSE"

_LINE_BREAKS = ("\n", "\r")
_TIMESTAMP_RE = re.compile(r"[0-9]+")
_TIMESTAMP_DIGITS = len(str(MAX_EPOCH_MILLIS))


def _check_field(name: str, value: str, allow_separator: bool = False) -> None:
    if any(ch in value for ch in _LINE_BREAKS):
        raise EncodeError(EncodeReason.INVALID_FIELD, f"{name} contains a line break")
    if not allow_separator and SEPARATOR in value:
        raise EncodeError(EncodeReason.INVALID_FIELD, f"{name} contains '{SEPARATOR}'")


def _to_text(data: bytes | str) -> str:
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(DecodeReason.MALFORMED_FRAME, "not valid UTF-8") from e


# --- Message frames ---

def encode_message(chat_name: str, sender: str, body: str, epoch_millis: int) -> bytes:
    """Encode one message frame, newline included."""
    _check_field("chat_name", chat_name)
    _check_field("sender", sender)
    _check_field("body", body, allow_separator=True)
    if not 0 <= epoch_millis <= MAX_EPOCH_MILLIS:
        raise EncodeError(EncodeReason.INVALID_FIELD, f"timestamp {epoch_millis} out of range")

    line = SEPARATOR.join((chat_name, sender, body, str(epoch_millis)))
    return (line + "\n").encode("utf-8")


def decode_message(line: bytes | str) -> Message:
    """Decode one frame into an incoming Message."""
    text = _to_text(line).rstrip("\r\n")

    head = text.split(SEPARATOR, 2)
    if len(head) < 3 or SEPARATOR not in head[2]:
        raise DecodeError(DecodeReason.MALFORMED_FRAME, f"expected 4 fields in {text!r}")
    chat_name, sender, rest = head
    body, timestamp = rest.rsplit(SEPARATOR, 1)

    if not _TIMESTAMP_RE.fullmatch(timestamp):
        raise DecodeError(DecodeReason.BAD_TIMESTAMP, f"{timestamp!r} is not a timestamp")
    epoch_millis = int(timestamp) if len(timestamp.lstrip("0")) <= _TIMESTAMP_DIGITS else MAX_EPOCH_MILLIS + 1
    if epoch_millis > MAX_EPOCH_MILLIS:
        raise DecodeError(DecodeReason.BAD_TIMESTAMP, f"{timestamp} is out of range")

    return Message(
        chat_name=chat_name,
        sender=sender,
        body=body,
        sent_at_epoch_millis=epoch_millis,
        direction=Direction.INCOMING,
    )


# --- Discovery datagrams ---

def encode_probe() -> bytes:
    return PROBE_TOKEN.encode("utf-8")


def encode_response(device_name: str) -> bytes:
    _check_field("device_name", device_name)
    return f"{RESPONSE_TOKEN}{SEPARATOR}{device_name}".encode("utf-8")


def decode_datagram(data: bytes | str) -> DiscoveryProbe | DiscoveryResponse | None:
    """
    Classify a discovery datagram.

    Returns None for datagrams that are neither a probe nor a response;
    those are not errors, just traffic to ignore.
    """
    text = _to_text(data).strip()

    if text == PROBE_TOKEN:
        return DiscoveryProbe()
    if text.startswith(RESPONSE_TOKEN):
        rest = text[len(RESPONSE_TOKEN):]
        if not rest.startswith(SEPARATOR):
            raise DecodeError(DecodeReason.MALFORMED_FRAME, f"response without name: {text!r}")
        return DiscoveryResponse(device_name=rest[len(SEPARATOR):])
    return None
