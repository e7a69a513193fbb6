"""
P2P data model — peer identities and inbound message provenance.

Peers are persisted as plain JSON objects:
    {"public_key_id": "...", "display_name": "...", "relay_address": "..."}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from peerlink.transport import Origin


@dataclass(frozen=True)
class Peer:
    """A remote counterpart. Replace (remove + add), never mutate."""
    public_key_id: str
    display_name: str = ""
    relay_address: str = ""  # empty when the peer is reachable directly

    def to_dict(self) -> dict[str, str]:
        return {
            "public_key_id": self.public_key_id,
            "display_name": self.display_name,
            "relay_address": self.relay_address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Peer":
        """Build a Peer from its persisted form.

        Raises ValueError if ``public_key_id`` is missing or not a non-empty string.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Peer record must be an object, got {type(data).__name__}")
        public_key_id = data.get("public_key_id")
        if not isinstance(public_key_id, str) or not public_key_id:
            raise ValueError(f"Peer record has no valid public_key_id: {data!r}")
        return cls(
            public_key_id=public_key_id,
            display_name=str(data.get("display_name") or ""),
            relay_address=str(data.get("relay_address") or ""),
        )


@dataclass(frozen=True)
class ConnectionContext:
    origin: Origin
    peer_id: str


@dataclass(frozen=True)
class InboundMessage:
    """A decrypted payload plus the context it arrived with."""
    payload: str
    context: ConnectionContext
