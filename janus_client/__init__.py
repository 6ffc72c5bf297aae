"""Asyncio client for the Janus WebRTC gateway.

Usage::

    from janus_client import connect
    from janus_client.plugins import EchoTestHandle

    async with connect("ws://localhost:8188") as session:
        echo = await session.attach(EchoTestHandle)
        await echo.configure(audio=True, video=True, jsep=offer)
        event = await echo.next_event(timeout=5.0)

Any transport with ``connect()``, ``close()``, ``send_raw()`` and the
``on_message`` / ``on_close`` callbacks can be handed to :class:`Session`.

Optional extras::

    pip install janus-client[fast]   # orjson codec
"""

from __future__ import annotations

import logging

from ._version import __version__
from .connection import Transport, WebSocketTransport
from .errors import (
    JanusConnectionClosed,
    JanusConnectionError,
    JanusError,
    JanusProtocolError,
    JanusTimeoutError,
    JanusUsageError,
)
from .events import EventEmitter
from .handle import Handle
from .session import Session
from .transactions import Transaction, TransactionRegistry
from .types import (
    ConnectionConfig,
    HandleEvent,
    HandleState,
    JanusEvent,
    SessionConfig,
    SessionState,
)


def connect(
    url: str,
    *,
    config: SessionConfig | None = None,
    connection: ConnectionConfig | None = None,
    logger: logging.Logger | None = None,
) -> Session:
    """Create a session bound to a WebSocket transport.

    Use as an async context manager: entering connects and creates the
    gateway session, leaving destroys it.

    Args:
        url: Gateway WebSocket URL, e.g. ``"ws://localhost:8188"``.
        config: Transaction timeout and keepalive settings.
        connection: WebSocket settings.
        logger: Logger for diagnostics.

    Returns:
        A :class:`Session` in state ``disconnected``.
    """
    transport = WebSocketTransport(url, config=connection, logger=logger)
    return Session(transport, config=config, logger=logger)


__all__ = [
    "__version__",
    "connect",
    "Session",
    "Handle",
    "Transport",
    "WebSocketTransport",
    "Transaction",
    "TransactionRegistry",
    "EventEmitter",
    "JanusEvent",
    "HandleEvent",
    "HandleState",
    "SessionState",
    "SessionConfig",
    "ConnectionConfig",
    "JanusError",
    "JanusProtocolError",
    "JanusTimeoutError",
    "JanusConnectionClosed",
    "JanusConnectionError",
    "JanusUsageError",
]
