"""Nico — LAN chat: peer discovery, messaging transport and local history."""

__version__ = "1.0.0"
