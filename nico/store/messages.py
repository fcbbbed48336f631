"""SQLite-backed message history."""

import logging
import sqlite3
import threading
from pathlib import Path

from nico.transport.models import ChatSummary, Direction, Message, format_time_label

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_name TEXT NOT NULL,
    sender TEXT NOT NULL,
    body TEXT NOT NULL,
    sent_at INTEGER NOT NULL,
    is_outgoing INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_name);
"""


class MessageStore:
    """Chat-scoped append log of messages."""

    def __init__(self, path: Path | str) -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._lock = threading.Lock()
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        logger.info(f"Message store opened at {path}")

    def append(self, message: Message) -> int:
        """Insert a message and return its row id."""
        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO messages (chat_name, sender, body, sent_at, is_outgoing) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    message.chat_name,
                    message.sender,
                    message.body,
                    message.sent_at_epoch_millis,
                    1 if message.is_outgoing else 0,
                ),
            )
            self._conn.commit()
        logger.debug(f"Message saved to '{message.chat_name}' ({message.direction.value})")
        return cursor.lastrowid

    def list_by_chat(self, chat_name: str) -> list[Message]:
        """All messages of a chat, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT sender, body, sent_at, is_outgoing FROM messages "
                "WHERE chat_name = ? ORDER BY id ASC",
                (chat_name,),
            ).fetchall()

        return [
            Message(
                chat_name=chat_name,
                sender=sender,
                body=body,
                sent_at_epoch_millis=sent_at,
                direction=Direction.OUTGOING if is_outgoing else Direction.INCOMING,
            )
            for sender, body, sent_at, is_outgoing in rows
        ]

    def list_latest_per_chat(self) -> list[ChatSummary]:
        """The most recent message of every chat, newest chat first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT chat_name, body, sent_at FROM messages "
                "WHERE id IN (SELECT MAX(id) FROM messages GROUP BY chat_name) "
                "ORDER BY id DESC"
            ).fetchall()

        return [
            ChatSummary(
                chat_name=chat_name,
                last_body=body,
                last_time_label=format_time_label(sent_at),
            )
            for chat_name, body, sent_at in rows
        ]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
