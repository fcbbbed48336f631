"""Pydantic models for chat messages."""

import time
from datetime import datetime
from enum import Enum

from pydantic import BaseModel


# Last millisecond of year 9999; also well inside a signed 64-bit sqlite INTEGER.
MAX_EPOCH_MILLIS = 253_402_300_799_999
TIME_LABEL_UNKNOWN = "--:--"


class Direction(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class Message(BaseModel):
    """One chat message, as stored locally and carried on the wire."""
    chat_name: str
    sender: str
    body: str
    sent_at_epoch_millis: int
    direction: Direction

    @property
    def is_outgoing(self) -> bool:
        return self.direction == Direction.OUTGOING

    @property
    def time_label(self) -> str:
        return format_time_label(self.sent_at_epoch_millis)


class ChatSummary(BaseModel):
    """Latest message of a chat, for the chat list."""
    chat_name: str
    last_body: str
    last_time_label: str


def now_millis() -> int:
    return int(time.time() * 1000)


def format_time_label(epoch_millis: int) -> str:
    """Render a timestamp as local HH:MM, or a placeholder if it has no date."""
    try:
        return datetime.fromtimestamp(epoch_millis / 1000).strftime("%H:%M")
    except (OverflowError, ValueError, OSError):
        return TIME_LABEL_UNKNOWN
