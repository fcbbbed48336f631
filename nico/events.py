"""
Event delivery from the network core to the presentation layer.

Exactly one listener can be registered at a time. Events produced while no
listener is registered are dropped. Delivery always happens on the event loop
the dispatcher is bound to, whichever thread produced the event.
"""

import asyncio
import inspect
import logging
import threading
from enum import Enum

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    MESSAGE_RECEIVED = "on_message_received"
    DEVICE_DISCOVERED = "on_device_discovered"
    CONNECTION_STATUS_CHANGED = "on_connection_status_changed"


class ChatListener:
    """
    Receives core events. Override what you need; handlers may be
    plain methods or coroutines.
    """

    def on_message_received(self, chat_name: str, sender: str, body: str):
        pass

    def on_device_discovered(self, address, name: str):
        pass

    def on_connection_status_changed(self, connected: bool):
        pass


class EventDispatcher:
    """Single-slot listener registry that marshals events onto one loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._listener: ChatListener | None = None
        self._lock = threading.Lock()
        self._loop = loop
        self._pending: set[asyncio.Task] = set()

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Deliver all further events on `loop`."""
        self._loop = loop

    def set_listener(self, listener: ChatListener | None) -> ChatListener | None:
        """Register `listener`, replacing and returning the previous one."""
        with self._lock:
            previous, self._listener = self._listener, listener
        return previous

    def clear_listener(self, listener: ChatListener | None = None) -> None:
        """Unregister. With `listener` given, only if it is still the current one."""
        with self._lock:
            if listener is None or self._listener is listener:
                self._listener = None

    @property
    def listener(self) -> ChatListener | None:
        with self._lock:
            return self._listener

    def dispatch(self, event: EventType, *args) -> None:
        listener = self.listener
        if listener is None:
            logger.debug(f"No listener registered, dropping {event.name}")
            return

        loop = self._loop
        if loop is None or loop.is_closed():
            self._deliver(listener, event, args)
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            loop.call_soon(self._deliver, listener, event, args)
        else:
            loop.call_soon_threadsafe(self._deliver, listener, event, args)

    def _deliver(self, listener: ChatListener, event: EventType, args: tuple) -> None:
        handler = getattr(listener, event.value, None)
        if handler is None:
            return
        try:
            result = handler(*args)
        except Exception as e:
            logger.error(f"Listener failed handling {event.name}: {e}", exc_info=True)
            return

        if inspect.isawaitable(result):
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(f"No running loop for async {event.name} handler, dropping")
                if inspect.iscoroutine(result):
                    result.close()
                return
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Listener coroutine failed: {task.exception()}")
