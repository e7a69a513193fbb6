"""
P2P transport — connection lifecycle for the peer-to-peer transport.

Drives the registry, the handshake coordinator and the message router:

    connect()   DISCONNECTED -> CONNECTING -> CONNECTED
                  start the channel client, then either listen to every
                  known peer or (initiator, no peers yet) start pairing
    reconnect() initiator only: advertise again for a new pairing

Start with:
    transport = P2PTransport.from_config(load_config(), client)
    await transport.connect()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from peerlink import P2P_DEFAULT_NAME, P2P_PEERS_STORAGE_KEY
from peerlink.events import EventBus, EventHandler, TransportEvent, emit_quietly
from peerlink.p2p.channel import ChannelClient, channel_errors
from peerlink.p2p.handshake import ChannelHandshakeCoordinator
from peerlink.p2p.models import InboundMessage, Peer
from peerlink.p2p.registry import PeerRegistry
from peerlink.p2p.router import EncryptedMessageRouter
from peerlink.store import JSONFileStorage, Storage
from peerlink.transport import TransportState, TransportType

log = logging.getLogger(__name__)


class P2PTransport:
    """Peer-to-peer transport over encrypted, relay-bootstrapped channels.

    ``initiator`` is True for the application side, which starts pairings;
    the responding agent only ever reconnects to peers it already knows.
    """

    transport_type = TransportType.P2P

    def __init__(
        self,
        client: ChannelClient,
        storage: Storage,
        events: EventHandler | None = None,
        name: str = P2P_DEFAULT_NAME,
        initiator: bool = True,
        storage_key: str = P2P_PEERS_STORAGE_KEY,
    ) -> None:
        self.name = name
        self.client = client
        self.events = events
        self.initiator = initiator

        self.registry = PeerRegistry(storage, key=storage_key)
        self.handshake = ChannelHandshakeCoordinator(client)
        self.router = EncryptedMessageRouter(client, self.registry)

        self._state = TransportState.DISCONNECTED
        # Resolved by the channel-opening callback after initiate_pairing()
        self._pairing: asyncio.Future[str] | None = None

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        client: ChannelClient,
        storage: Storage | None = None,
        events: EventHandler | None = None,
    ) -> "P2PTransport":
        """Build a transport from a config dict (see peerlink.config)."""
        return cls(
            client,
            storage or JSONFileStorage(config["storage_dir"]),
            events=events if events is not None else EventBus(),
            name=config["name"],
            initiator=config["initiator"],
            storage_key=config["storage_key"],
        )

    @staticmethod
    async def is_available() -> bool:
        return True

    @property
    def state(self) -> TransportState:
        return self._state

    # --- Lifecycle ---

    async def connect(self) -> None:
        """Start the client and reconnect to known peers, or start pairing.

        Only valid from DISCONNECTED; any other state is a logged no-op.
        Individual peers that fail to come up are logged and skipped. If
        startup or pairing fails the state returns to DISCONNECTED and the
        error propagates, so connect() can be retried.
        """
        if self._state is not TransportState.DISCONNECTED:
            log.debug("connect() ignored, transport is %s", self._state.value)
            return

        log.info("Connecting %s", self.name)
        self._state = TransportState.CONNECTING
        try:
            with channel_errors("start"):
                await self.client.start()
            known = await self.registry.list()

            if known:
                log.info("Connecting to %d peers", len(known))
                results = await asyncio.gather(
                    *(self.router.listen(p.public_key_id) for p in known),
                    return_exceptions=True,
                )
                for peer, result in zip(known, results):
                    if isinstance(result, BaseException):
                        log.error("Could not listen to %s: %s", peer.public_key_id[:12], result)
            elif self.initiator:
                await self.initiate_pairing()
        except Exception as e:
            log.error("%s failed to connect: %s", self.name, e)
            self._state = TransportState.DISCONNECTED
            raise

        self._state = TransportState.CONNECTED
        log.info("%s connected", self.name)

    async def reconnect(self) -> None:
        if self.initiator:
            await self.initiate_pairing()

    async def initiate_pairing(self) -> Any:
        """Listen for channel openings (once) and publish our handshake info.

        The advertisement is emitted as P2P_LISTEN_FOR_CHANNEL_OPEN for the
        application to hand to the counterpart out of band, and returned.
        """
        log.info("Waiting for a new peer")
        if self._pairing is None or self._pairing.done():
            self._pairing = asyncio.get_running_loop().create_future()

        await self.handshake.begin_listening(self._on_channel_opening)
        advertisement = await self.handshake.advertise()
        await emit_quietly(self.events, TransportEvent.P2P_LISTEN_FOR_CHANNEL_OPEN, advertisement)
        return advertisement

    async def wait_for_pairing(self, timeout: float | None = None) -> str:
        """Wait until a counterpart opens a channel after initiate_pairing().

        Returns its public key id. Raises asyncio.TimeoutError on timeout.
        """
        if self._pairing is None:
            raise RuntimeError("initiate_pairing() has not been called")
        return await asyncio.wait_for(asyncio.shield(self._pairing), timeout=timeout)

    async def _on_channel_opening(self, public_key_id: str) -> None:
        """Channel-opening callback handed to the client.

        Unknown identities are registered and listened to; known ones are
        left alone. Either way the pairing is reported as a success.
        """
        log.info("Channel opened by %s", public_key_id[:12])
        peer = Peer(public_key_id)
        try:
            if await self.registry.add(peer):
                await self.router.listen(public_key_id)
        except Exception as e:
            log.error("Pairing with %s failed: %s", public_key_id[:12], e)
            return

        await emit_quietly(self.events, TransportEvent.P2P_CHANNEL_CONNECT_SUCCESS, peer)
        if self._pairing is not None and not self._pairing.done():
            self._pairing.set_result(public_key_id)

    # --- Peers ---

    async def get_peers(self) -> list[Peer]:
        peers = await self.registry.list()
        log.debug("%d peers known", len(peers))
        return peers

    async def add_peer(self, peer: Peer) -> bool:
        """Add a peer learned through a side channel and open a channel to it.

        Returns False (and does nothing else) if the peer is already known.
        If opening the channel fails the ChannelFailure propagates and the
        peer stays registered; a repeated add_peer() then returns False, and
        the channel comes up on the next connect().
        """
        if not await self.registry.add(peer):
            return False
        await self.router.open_channel(peer)
        return True

    async def remove_peer(self, public_key_id: str) -> bool:
        removed = await self.registry.remove(public_key_id)
        await self.router.close_channel(public_key_id)
        return removed

    async def remove_all_peers(self) -> None:
        await self.registry.clear()
        await self.router.close_all_channels()

    # --- Messages ---

    async def send(self, payload: str, recipient: str | None = None) -> list[str]:
        return await self.router.send(payload, recipient)

    async def receive(self) -> InboundMessage:
        return await self.router.receive()

    def messages(self) -> AsyncIterator[InboundMessage]:
        return self.router.messages()
