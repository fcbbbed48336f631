"""
Peer directory tests
"""

import threading

from nico.discovery.directory import PeerDirectory
from nico.discovery.models import PeerAddress


class TestPeerDirectory:

    def test_upsert_and_snapshot(self):
        directory = PeerDirectory()
        address = PeerAddress(host="192.168.1.20")
        assert directory.upsert(address, "Nico-192168120") is True

        peers = directory.all()
        assert len(peers) == 1
        assert peers[0].address == address
        assert peers[0].address.port == 8888
        assert peers[0].display_name == "Nico-192168120"

    def test_last_write_wins(self):
        directory = PeerDirectory()
        address = PeerAddress(host="192.168.1.20")
        directory.upsert(address, "old")
        assert directory.upsert(PeerAddress(host="192.168.1.20"), "new") is False

        assert len(directory) == 1
        assert directory.get(address) == "new"

    def test_clear(self):
        directory = PeerDirectory()
        directory.upsert(PeerAddress(host="10.0.0.1"), "a")
        directory.upsert(PeerAddress(host="10.0.0.2"), "b")
        directory.clear()
        assert len(directory) == 0
        assert PeerAddress(host="10.0.0.1") not in directory

    def test_snapshot_is_detached(self):
        directory = PeerDirectory()
        directory.upsert(PeerAddress(host="10.0.0.1"), "a")
        snapshot = directory.all()
        directory.clear()
        assert len(snapshot) == 1

    def test_concurrent_upserts(self):
        directory = PeerDirectory()

        def worker(offset: int):
            for i in range(1, 255):
                directory.upsert(PeerAddress(host=f"10.0.0.{i}"), f"name-{offset}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(directory) == 254
