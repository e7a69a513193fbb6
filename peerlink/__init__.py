"""
peerlink — peer-to-peer transport between an initiating app and a responding agent.

Architecture:
    Pairing:   out-of-band handshake advertisement (e.g. a displayed code)
    Channels:  one encrypted channel per paired peer, bootstrapped via a relay
    Peers:     persisted list under a single storage key (~/.peerlink/<key>.json)

The crypto channel, durable storage and event sink are collaborators that
plug into the transport through small async interfaces.
"""

from pathlib import Path

__version__ = "0.1.0"

# Storage
P2P_PEERS_STORAGE_KEY = "transport_p2p_peers"
DEFAULT_ROOT = Path.home() / ".peerlink"
DEFAULT_CONFIG_PATH = DEFAULT_ROOT / "config.toml"

# Transport
P2P_DEFAULT_NAME = "peerlink"
