"""WebSocket handler for real-time chat events."""

import asyncio
import json
import logging

from fastapi import WebSocket

from nico.discovery.models import PeerAddress
from nico.events import ChatListener

logger = logging.getLogger(__name__)


class ConnectionManager(ChatListener):
    """
    Manages WebSocket connections and broadcasts core events to them.

    Registered as the node's listener for the lifetime of the app.
    """

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"WebSocket client connected. Total: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"WebSocket client disconnected. Total: {len(self._connections)}")

    async def broadcast(self, event: str, data: dict) -> None:
        """Broadcast an event to all connected WebSocket clients."""
        message = json.dumps({"event": event, "data": data})
        async with self._lock:
            dead: list[WebSocket] = []
            for ws in self._connections:
                try:
                    await ws.send_text(message)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                self._connections.remove(ws)

    # --- ChatListener ---

    async def on_message_received(self, chat_name: str, sender: str, body: str) -> None:
        await self.broadcast(
            "message_received",
            {"chat_name": chat_name, "sender": sender, "body": body},
        )
        await self.broadcast(
            "notification",
            {"type": "info", "message": f"New message from {sender}"},
        )

    async def on_device_discovered(self, address: PeerAddress, name: str) -> None:
        await self.broadcast(
            "device_discovered",
            {"address": address.model_dump(), "display_name": name},
        )

    async def on_connection_status_changed(self, connected: bool) -> None:
        await self.broadcast("connection_status", {"connected": connected})
        if not connected:
            await self.broadcast(
                "notification",
                {"type": "error", "message": "Connection lost"},
            )
