"""
Transport capability interface shared by every transport kind.

A transport is picked at construction time (``P2PTransport`` today) and
driven through the methods below; callers never depend on a base class.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from peerlink.p2p.models import Peer


class TransportType(str, Enum):
    P2P = "p2p"


class TransportState(str, Enum):
    """Connection state. A session only moves forward through these."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Origin(str, Enum):
    """Where an inbound message came from."""
    P2P = "p2p"


@runtime_checkable
class Transport(Protocol):
    transport_type: TransportType

    @property
    def state(self) -> TransportState: ...

    async def connect(self) -> None: ...

    async def reconnect(self) -> None: ...

    async def send(self, payload: str, recipient: str | None = None) -> list[str]: ...

    async def get_peers(self) -> list[Peer]: ...

    async def add_peer(self, peer: Peer) -> bool: ...

    async def remove_peer(self, public_key_id: str) -> bool: ...

    async def remove_all_peers(self) -> None: ...
