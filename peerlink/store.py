"""
Peer storage — durable key/value persistence for peer lists.

Storage layout:
    ~/.peerlink/<key>.json   — full peer list for one key (JSON array)

Each key holds a whole list; callers always read-modify-write the full value.
File writes are atomic (temp file + os.replace) for crash safety.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

from peerlink import DEFAULT_ROOT
from peerlink.p2p.models import Peer

log = logging.getLogger(__name__)

# Keys become file names, so keep them boring
_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


class StorageFailure(Exception):
    """Persistence was unreachable or rejected the operation."""


class Storage(Protocol):
    """Async key/value interface the peer registry persists through."""

    async def get(self, key: str) -> list[Peer]: ...

    async def set(self, key: str, peers: list[Peer]) -> None: ...


class MemoryStorage:
    """In-process storage. Lists are copied in and out so callers can't alias them."""

    def __init__(self) -> None:
        self._data: dict[str, list[Peer]] = {}

    async def get(self, key: str) -> list[Peer]:
        return list(self._data.get(key, []))

    async def set(self, key: str, peers: list[Peer]) -> None:
        self._data[key] = list(peers)


class JSONFileStorage:
    """File-based storage, one JSON file per key.

    Usage:
        storage = JSONFileStorage()
        await storage.set("transport_p2p_peers", [Peer("ab" * 32)])
        peers = await storage.get("transport_p2p_peers")
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root else DEFAULT_ROOT

    @staticmethod
    def _validate_key(key: str) -> None:
        """Validate key format. Prevents path traversal via key."""
        if not isinstance(key, str) or not _KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")

    def path_for(self, key: str) -> Path:
        self._validate_key(key)
        return self.root / f"{key}.json"

    async def get(self, key: str) -> list[Peer]:
        """Read the peer list stored under ``key``.

        A missing file is an empty list. A corrupt file is logged and read
        as empty, the same way a fresh install would look.
        Raises StorageFailure if the file exists but can't be read.
        """
        path = self.path_for(key)
        if not path.is_file():
            return []
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageFailure(f"Cannot read {path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning("Ignoring corrupt peer file %s: %s", path, e)
            return []
        if not isinstance(data, list):
            log.warning("Ignoring peer file %s: expected a JSON array", path)
            return []

        peers = []
        for entry in data:
            try:
                peers.append(Peer.from_dict(entry))
            except ValueError as e:
                log.warning("Skipping bad peer record in %s: %s", path, e)
        return peers

    async def set(self, key: str, peers: list[Peer]) -> None:
        """Atomically replace the peer list stored under ``key`` (temp + rename)."""
        path = self.path_for(key)
        data = json.dumps([p.to_dict() for p in peers], indent=2)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.root), suffix=".tmp", prefix=f".{key}_"
            )
        except OSError as e:
            raise StorageFailure(f"Cannot write {path}: {e}") from e

        try:
            os.write(fd, data.encode("utf-8"))
            os.fsync(fd)
            os.close(fd)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, str(path))
        except OSError as e:
            try:
                os.close(fd)
            except OSError:
                pass
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise StorageFailure(f"Cannot write {path}: {e}") from e
