"""
peerlink P2P transport — pairing, peer registry, and encrypted message routing.

Modules:
    models      — Peer, ConnectionContext, InboundMessage
    channel     — Crypto channel client interface, ChannelFailure, subscription handles
    registry    — Persisted peer set with serialized mutation
    handshake   — One-shot channel-opening subscription + handshake advertisement
    router      — Per-peer channels, unicast/broadcast send, inbound queue
    transport   — Connection lifecycle (P2PTransport)
"""

from peerlink import P2P_DEFAULT_NAME, P2P_PEERS_STORAGE_KEY

__all__ = [
    "P2P_DEFAULT_NAME",
    "P2P_PEERS_STORAGE_KEY",
]
