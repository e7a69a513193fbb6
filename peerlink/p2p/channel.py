"""
Crypto channel seam — the interface to the encrypted channel client.

The client owns key exchange, encryption and the relay wire protocol.
This module defines what the transport needs from it, the error it
raises, and the subscription handle returned for each peer's inbound
message stream.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterator, Protocol

if TYPE_CHECKING:
    from peerlink.p2p.router import EncryptedMessageRouter

log = logging.getLogger(__name__)


class ChannelFailure(Exception):
    """Error in a channel client operation (start/open/listen/send/unsubscribe)."""

    def __init__(self, message: str, public_key_id: str = "") -> None:
        super().__init__(message)
        self.public_key_id = public_key_id


class ChannelClient(Protocol):
    """Encrypted channel client. Every method is a coroutine."""

    async def start(self) -> None: ...

    async def listen_for_channel_opening(
        self, callback: Callable[[str], Awaitable[None]]
    ) -> None: ...

    async def get_handshake_info(self) -> Any: ...

    async def open_channel(self, public_key_id: str, relay_address: str) -> None: ...

    async def send_message(self, public_key_id: str, payload: str) -> None: ...

    async def listen_for_encrypted_message(
        self, public_key_id: str, callback: Callable[[str], Awaitable[None]]
    ) -> None: ...

    async def unsubscribe_from_encrypted_message(self, public_key_id: str) -> None: ...

    async def unsubscribe_from_encrypted_messages(self) -> None: ...


@contextlib.contextmanager
def channel_errors(action: str, public_key_id: str = "") -> Iterator[None]:
    """Re-raise anything a client call throws as ChannelFailure."""
    try:
        yield
    except ChannelFailure:
        raise
    except Exception as e:
        target = f" for {public_key_id[:12]}" if public_key_id else ""
        raise ChannelFailure(f"{action} failed{target}: {e}", public_key_id) from e


class ChannelSubscription:
    """Handle for one peer's inbound message stream.

    The router hands ``deliver`` to the client as the message callback.
    Once closed, late deliveries are dropped instead of reaching the inbox.
    """

    def __init__(self, public_key_id: str, router: "EncryptedMessageRouter") -> None:
        self.public_key_id = public_key_id
        self._router = router
        self.active = True
        self.delivered = 0

    async def deliver(self, payload: str) -> None:
        if not self.active:
            log.debug("Dropping message for closed channel %s", self.public_key_id[:12])
            return
        self.delivered += 1
        await self._router._enqueue(self.public_key_id, payload)

    async def close(self) -> None:
        await self._router.close_channel(self.public_key_id)

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<ChannelSubscription {self.public_key_id[:12]} {state}>"
