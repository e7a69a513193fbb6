"""
Message router — maps peer identities onto encrypted channel operations.

Outbound:
    send(payload, recipient)  — unicast to one registered peer
    send(payload)             — broadcast to every registered peer, concurrently

Inbound:
    every open channel has a ChannelSubscription; decrypted payloads are
    tagged with a fresh ConnectionContext and queued for the consumer,
    who reads them with receive() or ``async for msg in router.messages()``.

Broadcast waits for every send to settle. Deliveries that succeeded are
kept; the failed recipients are reported together in one
BroadcastPartialFailure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from peerlink.p2p.channel import ChannelClient, ChannelFailure, ChannelSubscription, channel_errors
from peerlink.p2p.models import ConnectionContext, InboundMessage, Peer
from peerlink.p2p.registry import PeerRegistry
from peerlink.transport import Origin

log = logging.getLogger(__name__)


class UnknownRecipient(Exception):
    """Unicast send to an identity that is not in the registry."""

    def __init__(self, public_key_id: str) -> None:
        super().__init__(f"Recipient unknown: {public_key_id[:12]}")
        self.public_key_id = public_key_id


class BroadcastPartialFailure(Exception):
    """Some recipients of a broadcast could not be reached."""

    def __init__(self, failures: dict[str, BaseException], delivered: list[str]) -> None:
        names = ", ".join(pk[:12] for pk in failures)
        super().__init__(
            f"Broadcast failed for {len(failures)} of "
            f"{len(failures) + len(delivered)} peers: {names}"
        )
        self.failures = failures
        self.delivered = delivered

    @property
    def failed(self) -> set[str]:
        return set(self.failures)


class EncryptedMessageRouter:
    """Opens/closes per-peer channels, routes sends, queues inbound messages.

    Usage:
        router = EncryptedMessageRouter(client, registry)
        await router.open_channel(peer)
        await router.send("payload", peer.public_key_id)
        msg = await router.receive()
    """

    def __init__(
        self,
        client: ChannelClient,
        registry: PeerRegistry,
        inbox: asyncio.Queue | None = None,
    ) -> None:
        self.client = client
        self.registry = registry
        self.inbox: asyncio.Queue[InboundMessage] = inbox if inbox is not None else asyncio.Queue()
        # Active inbound subscriptions: public_key_id -> handle
        self._subscriptions: dict[str, ChannelSubscription] = {}

    @property
    def subscriptions(self) -> dict[str, ChannelSubscription]:
        return dict(self._subscriptions)

    def is_listening(self, public_key_id: str) -> bool:
        return public_key_id in self._subscriptions

    # --- Channels ---

    async def open_channel(self, peer: Peer) -> ChannelSubscription:
        """Establish the channel to ``peer`` via its relay, then listen on it."""
        with channel_errors("open_channel", peer.public_key_id):
            await self.client.open_channel(peer.public_key_id, peer.relay_address)
        log.info("Opened channel to %s", peer.public_key_id[:12])
        return await self.listen(peer.public_key_id)

    async def listen(self, public_key_id: str) -> ChannelSubscription:
        """Subscribe to inbound messages from ``public_key_id``.

        One subscription per identity: if one is already active its handle
        is returned and the client is not asked to subscribe again.
        """
        existing = self._subscriptions.get(public_key_id)
        if existing is not None:
            log.debug("Already listening to %s", public_key_id[:12])
            return existing

        subscription = ChannelSubscription(public_key_id, self)
        # Registered before the await so a concurrent listen() sees it
        self._subscriptions[public_key_id] = subscription
        try:
            with channel_errors("listen_for_encrypted_message", public_key_id):
                await self.client.listen_for_encrypted_message(public_key_id, subscription.deliver)
        except ChannelFailure:
            subscription.active = False
            if self._subscriptions.get(public_key_id) is subscription:
                del self._subscriptions[public_key_id]
            raise

        log.debug("Listening to %s", public_key_id[:12])
        return subscription

    async def close_channel(self, public_key_id: str) -> None:
        """Stop listening to ``public_key_id``. No-op without an active subscription.

        The subscription stays recorded until the client has unsubscribed,
        so a failed unsubscribe can be retried and listen() still reuses it.
        """
        subscription = self._subscriptions.get(public_key_id)
        if subscription is None:
            return
        with channel_errors("unsubscribe_from_encrypted_message", public_key_id):
            await self.client.unsubscribe_from_encrypted_message(public_key_id)
        subscription.active = False
        if self._subscriptions.get(public_key_id) is subscription:
            del self._subscriptions[public_key_id]
        log.info(
            "Closed channel to %s (%d messages received)",
            public_key_id[:12], subscription.delivered,
        )

    async def close_all_channels(self) -> None:
        """Stop every inbound subscription with one bulk unsubscribe."""
        closing = dict(self._subscriptions)
        with channel_errors("unsubscribe_from_encrypted_messages"):
            await self.client.unsubscribe_from_encrypted_messages()
        for public_key_id, subscription in closing.items():
            subscription.active = False
            if self._subscriptions.get(public_key_id) is subscription:
                del self._subscriptions[public_key_id]
        log.info("Closed all channels (%d active)", len(closing))

    # --- Outbound ---

    async def send(self, payload: str, recipient: str | None = None) -> list[str]:
        """Send ``payload`` to ``recipient``, or to every known peer if omitted.

        Returns the identities the payload was delivered to.

        Raises:
            UnknownRecipient: ``recipient`` is not registered (nothing was sent).
            ChannelFailure: the unicast send failed.
            BroadcastPartialFailure: one or more broadcast sends failed.
        """
        if recipient is not None:
            if not await self.registry.contains(recipient):
                raise UnknownRecipient(recipient)
            await self._send_one(recipient, payload)
            return [recipient]

        peers = await self.registry.list()
        if not peers:
            log.debug("Broadcast with no known peers")
            return []

        recipients = [p.public_key_id for p in peers]
        results = await asyncio.gather(
            *(self._send_one(pk, payload) for pk in recipients),
            return_exceptions=True,
        )

        delivered = []
        failures: dict[str, BaseException] = {}
        for pk, result in zip(recipients, results):
            if isinstance(result, BaseException):
                log.warning("Broadcast to %s failed: %s", pk[:12], result)
                failures[pk] = result
            else:
                delivered.append(pk)

        if failures:
            raise BroadcastPartialFailure(failures, delivered)
        return delivered

    async def _send_one(self, public_key_id: str, payload: str) -> None:
        with channel_errors("send_message", public_key_id):
            await self.client.send_message(public_key_id, payload)

    # --- Inbound ---

    async def _enqueue(self, public_key_id: str, payload: str) -> None:
        context = ConnectionContext(origin=Origin.P2P, peer_id=public_key_id)
        await self.inbox.put(InboundMessage(payload=payload, context=context))

    async def receive(self) -> InboundMessage:
        """Wait for the next inbound message from any peer."""
        return await self.inbox.get()

    async def messages(self) -> AsyncIterator[InboundMessage]:
        while True:
            yield await self.inbox.get()
