"""
Transport events — fire-and-forget notifications to the application.

The transport reports pairing progress here (e.g. the handshake
advertisement to render as a code). Emission never affects the
operation that triggered it: failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Protocol

log = logging.getLogger(__name__)


class TransportEvent(str, Enum):
    P2P_CHANNEL_CONNECT_SUCCESS = "p2p_channel_connect_success"
    P2P_LISTEN_FOR_CHANNEL_OPEN = "p2p_listen_for_channel_open"


class EventHandler(Protocol):
    async def emit(self, event: TransportEvent, payload: Any = None) -> None: ...


class EventBus:
    """Minimal event handler: callbacks registered per event.

    Usage:
        bus = EventBus()
        bus.on(TransportEvent.P2P_LISTEN_FOR_CHANNEL_OPEN, show_pairing_code)
        transport = P2PTransport(..., events=bus)
    """

    def __init__(self) -> None:
        self._callbacks: dict[TransportEvent, list[Callable[[Any], Any]]] = {}

    def on(self, event: TransportEvent, callback: Callable[[Any], Any]) -> None:
        self._callbacks.setdefault(event, []).append(callback)

    def off(self, event: TransportEvent, callback: Callable[[Any], Any]) -> None:
        try:
            self._callbacks.get(event, []).remove(callback)
        except ValueError:
            pass

    async def emit(self, event: TransportEvent, payload: Any = None) -> None:
        """Call every callback for ``event``; coroutine results are awaited."""
        callbacks = list(self._callbacks.get(event, []))
        if not callbacks:
            log.debug("No listeners for %s", event.value)
            return
        for callback in callbacks:
            result = callback(payload)
            if asyncio.iscoroutine(result):
                await result


async def emit_quietly(handler: EventHandler | None, event: TransportEvent, payload: Any = None) -> None:
    """Emit ``event`` and swallow any failure (logged only)."""
    if handler is None:
        return
    try:
        await handler.emit(event, payload)
    except Exception as e:
        log.warning("Emitting %s failed: %s", event.value, e)
