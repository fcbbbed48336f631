"""REST API routes for Nico."""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from nico.config import MESSAGE_PORT
from nico.discovery.models import PeerAddress
from nico.errors import EncodeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Injected by main.py at startup
_node = None


def init_routes(node) -> None:
    """Inject the node into the routes module."""
    global _node
    _node = node


# --- Device & Discovery ---

@router.get("/device")
async def get_device():
    """This device's address and announced name."""
    return {
        "address": _node.local_address().model_dump(),
        "device_name": _node.device_name,
        "running": _node.running,
    }


@router.get("/devices")
async def list_devices():
    """Return the peers found by the last scan."""
    return {"devices": [p.model_dump() for p in _node.known_peers()]}


@router.post("/scan")
async def scan_network():
    """Run a discovery scan and return what it found."""
    peers = await _node.scan()
    return {"devices": [p.model_dump() for p in peers]}


class ConnectBody(BaseModel):
    ip: str
    port: int | None = None


@router.post("/connect")
async def connect_device(body: ConnectBody):
    ip = body.ip.strip()
    if not ip:
        raise HTTPException(status_code=400, detail="Please enter IP address")

    connected = await _node.connect(ip, body.port)
    return {"connected": connected, "ip": ip}


# --- Chats ---

@router.get("/chats")
async def list_chats():
    """Latest message of every chat."""
    chats = await _node.chats()
    return {"chats": [c.model_dump() for c in chats]}


@router.get("/chats/{chat_name}/messages")
async def list_messages(chat_name: str):
    messages = await _node.history(chat_name)
    return {
        "messages": [
            {**m.model_dump(), "time": m.time_label} for m in messages
        ]
    }


class SendMessageBody(BaseModel):
    body: str
    sender: str = "You"
    ip: str | None = None
    port: int | None = None


@router.post("/chats/{chat_name}/messages")
async def send_message(chat_name: str, body: SendMessageBody):
    """
    Send a message to `ip` (or the connected peer).

    With no peer at all the message is only saved locally.
    """
    text = body.body.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message is empty")

    ip = body.ip or _node.preferences.connected_ip
    try:
        if not ip:
            await _node.save_local(chat_name, body.sender, text)
            return {"status": "saved", "message": "Message saved (offline mode)"}

        address = PeerAddress(host=ip, port=body.port or MESSAGE_PORT)
        sent = await _node.send(address, chat_name, body.sender, text)
    except EncodeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not sent:
        return {"status": "failed", "message": f"Could not reach {ip}"}
    return {"status": "sent", "message": f"Message sent to {ip}"}


# --- Settings ---

class SettingsBody(BaseModel):
    device_name: str | None = None


@router.get("/settings")
async def get_settings():
    return {
        "device_name": _node.device_name,
        "connected_ip": _node.preferences.connected_ip,
    }


@router.put("/settings")
async def update_settings(body: SettingsBody):
    if body.device_name is not None:
        name = body.device_name.strip()
        if "|" in name or "\n" in name:
            raise HTTPException(status_code=400, detail="Device name may not contain '|'")
        _node.device_name = name or None
    return {"status": "updated"}
