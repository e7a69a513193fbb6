"""
Transport configuration — TOML file merged over defaults, plus logging setup.

Default location: ~/.peerlink/config.toml

    name = "my-dapp"
    initiator = true
    storage_dir = "/var/lib/my-dapp/peers"
    log_level = "DEBUG"
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from peerlink import DEFAULT_CONFIG_PATH, DEFAULT_ROOT, P2P_DEFAULT_NAME, P2P_PEERS_STORAGE_KEY

log = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "name": P2P_DEFAULT_NAME,
    "initiator": True,  # False on the responding agent
    "storage_dir": str(DEFAULT_ROOT),
    "storage_key": P2P_PEERS_STORAGE_KEY,
    "log_level": "INFO",
}


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load transport config from a TOML file, falling back to defaults."""
    config = dict(DEFAULT_CONFIG)

    path = config_path or DEFAULT_CONFIG_PATH
    if path.is_file():
        try:
            import tomllib
        except ImportError:
            import tomli as tomllib

        try:
            with open(path, "rb") as f:
                file_config = tomllib.load(f)
            config.update({k: v for k, v in file_config.items() if k in DEFAULT_CONFIG})
        except (OSError, tomllib.TOMLDecodeError) as e:
            log.warning("Failed to load config from %s: %s", path, e)

    return config


def configure_logging(level: str | int = "INFO") -> None:
    """Root logging setup for applications embedding the transport."""
    logging.basicConfig(
        level=level.upper() if isinstance(level, str) else level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
