"""In-memory table of peers found by discovery."""

import threading

from nico.discovery.models import PeerAddress, PeerRecord


class PeerDirectory:
    """Maps peer addresses to their last announced display name."""

    def __init__(self) -> None:
        self._peers: dict[PeerAddress, str] = {}
        self._lock = threading.Lock()

    def upsert(self, address: PeerAddress, name: str) -> bool:
        """Record a name for an address. Returns True if the address is new."""
        with self._lock:
            is_new = address not in self._peers
            self._peers[address] = name
        return is_new

    def get(self, address: PeerAddress) -> str | None:
        with self._lock:
            return self._peers.get(address)

    def all(self) -> list[PeerRecord]:
        """Snapshot of every known peer."""
        with self._lock:
            items = list(self._peers.items())
        return [PeerRecord(address=a, display_name=n) for a, n in items]

    def clear(self) -> None:
        with self._lock:
            self._peers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)

    def __contains__(self, address: object) -> bool:
        with self._lock:
            return address in self._peers
