"""
Peer registry — the persisted set of known peers.

Backed by a Storage collaborator under one well-known key. The whole
list is read, modified and written back on every mutation, so mutations
are serialized through a single asyncio.Lock: two concurrent add() calls
for the same identity can never both insert.

Nothing is cached in memory. A failed write leaves storage, and
therefore the registry, exactly as it was.
"""

from __future__ import annotations

import asyncio
import logging

from peerlink import P2P_PEERS_STORAGE_KEY
from peerlink.p2p.models import Peer
from peerlink.store import Storage, StorageFailure

log = logging.getLogger(__name__)


class PeerRegistry:
    """Known peers, unique by ``public_key_id``, in insertion order.

    Usage:
        registry = PeerRegistry(JSONFileStorage())
        if await registry.add(Peer("ab" * 32, relay_address="relay.example")):
            ...
        await registry.remove("ab" * 32)
    """

    def __init__(self, storage: Storage, key: str = P2P_PEERS_STORAGE_KEY) -> None:
        self.storage = storage
        self.key = key
        self._lock = asyncio.Lock()

    async def _read(self) -> list[Peer]:
        try:
            return list(await self.storage.get(self.key))
        except StorageFailure:
            raise
        except Exception as e:
            raise StorageFailure(f"Reading {self.key} failed: {e}") from e

    async def _write(self, peers: list[Peer]) -> None:
        try:
            await self.storage.set(self.key, peers)
        except StorageFailure:
            raise
        except Exception as e:
            raise StorageFailure(f"Writing {self.key} failed: {e}") from e

    async def list(self) -> list[Peer]:
        return await self._read()

    async def get(self, public_key_id: str) -> Peer | None:
        for peer in await self._read():
            if peer.public_key_id == public_key_id:
                return peer
        return None

    async def contains(self, public_key_id: str) -> bool:
        return await self.get(public_key_id) is not None

    async def add(self, peer: Peer) -> bool:
        """Insert ``peer`` unless its identity is already known.

        Returns True if a record was inserted, False for the no-op.
        """
        async with self._lock:
            peers = await self._read()
            if any(p.public_key_id == peer.public_key_id for p in peers):
                log.debug("Peer %s already known", peer.public_key_id[:12])
                return False
            await self._write(peers + [peer])
        log.info("Peer %s added, now %d peers", peer.public_key_id[:12], len(peers) + 1)
        return True

    async def remove(self, public_key_id: str) -> bool:
        """Delete the record for ``public_key_id``. Returns True if one existed."""
        async with self._lock:
            peers = await self._read()
            remaining = [p for p in peers if p.public_key_id != public_key_id]
            if len(remaining) == len(peers):
                return False
            await self._write(remaining)
        log.info("Peer %s removed, %d peers left", public_key_id[:12], len(remaining))
        return True

    async def clear(self) -> None:
        async with self._lock:
            await self._write([])
        log.info("All peers removed")
