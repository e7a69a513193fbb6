"""
Handshake coordinator — the one-shot "listen for a new peer" subscription.

Pairing works out of band: this node advertises its handshake info
(rendered as a code, link, ...) and the counterpart uses it to open a
channel back to us. The channel client reports each opening through a
single callback, which must be installed at most once per transport.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from peerlink.p2p.channel import ChannelClient, channel_errors

log = logging.getLogger(__name__)


class ChannelHandshakeCoordinator:
    """Owns the channel-opening subscription and this node's advertisement."""

    def __init__(self, client: ChannelClient) -> None:
        self.client = client
        # Set only while holding _guard
        self._listening = False
        self._guard = asyncio.Lock()

    @property
    def is_listening(self) -> bool:
        return self._listening

    async def begin_listening(self, on_new_peer: Callable[[str], Awaitable[None]]) -> bool:
        """Install the channel-opening subscription unless it already exists.

        Returns True if this call installed it. Repeated or concurrent calls
        are silent no-ops. If the client fails, the guard stays clear so a
        later call can try again, and ChannelFailure propagates.
        """
        async with self._guard:
            if self._listening:
                log.debug("Already listening for channel openings")
                return False
            with channel_errors("listen_for_channel_opening"):
                await self.client.listen_for_channel_opening(on_new_peer)
            self._listening = True
        log.info("Listening for channel openings")
        return True

    async def advertise(self) -> Any:
        """Return the client's current handshake info, unmodified."""
        with channel_errors("get_handshake_info"):
            return await self.client.get_handshake_info()
