# =============================================================================
# Janus Python Client -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import (
    CLOSE_TIMEOUT,
    CONNECTION_TIMEOUT,
    KEEPALIVE_INTERVAL,
    MAX_MESSAGE_SIZE,
    SUBPROTOCOL,
    TRANSACTION_TIMEOUT,
)


class SessionState(str, Enum):
    """Session lifecycle: DISCONNECTED -> CONNECTED -> CLOSING -> DISCONNECTED."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CLOSING = "closing"


class HandleState(str, Enum):
    """Handle lifecycle.

    UNATTACHED -> ATTACHING -> ATTACHED -> DETACHING -> UNATTACHED.
    """

    UNATTACHED = "unattached"
    ATTACHING = "attaching"
    ATTACHED = "attached"
    DETACHING = "detaching"


class HandleEvent(str, Enum):
    """Notifications published by a :class:`~janus_client.handle.Handle`."""

    ATTACHED = "attached"
    DETACHED = "detached"


@dataclass(frozen=True, slots=True)
class JanusEvent:
    """A session-level event.

    Attributes:
        type: The ``janus`` verb, e.g. ``"timeout"``, or a locally
            generated kind such as ``"keepalive_failed"``.
        payload: The raw message (or local details) as a dict.
        session_id: Gateway session the event belongs to, if known.
        sender: Handle id carried by the message, if any.
        error: Exception attached to locally generated health events.
    """

    type: str
    payload: dict[str, Any]
    session_id: int | None = None
    sender: int | None = None
    error: BaseException | None = None

    @classmethod
    def from_message(cls, msg: dict[str, Any]) -> JanusEvent:
        return cls(
            type=str(msg.get("janus", "unknown")),
            payload=msg,
            session_id=msg.get("session_id"),
            sender=msg.get("sender"),
        )


@dataclass
class SessionConfig:
    """Timing knobs for a :class:`~janus_client.session.Session`.

    Attributes:
        transaction_timeout: Seconds to wait for a reply before the
            transaction is rejected with ``JanusTimeoutError``.
        keepalive_interval: Seconds between keepalive requests.
            ``0`` disables keepalive.
        keepalive_timeout: Deadline for a keepalive reply; defaults to
            *transaction_timeout*.
    """

    transaction_timeout: float = TRANSACTION_TIMEOUT
    keepalive_interval: float = KEEPALIVE_INTERVAL
    keepalive_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.transaction_timeout <= 0:
            raise ValueError("transaction_timeout must be positive")
        if self.keepalive_interval < 0:
            raise ValueError("keepalive_interval must not be negative")
        if self.keepalive_timeout is None:
            self.keepalive_timeout = self.transaction_timeout
        elif self.keepalive_timeout <= 0:
            raise ValueError("keepalive_timeout must be positive")


@dataclass
class ConnectionConfig:
    """Configuration for :class:`~janus_client.connection.WebSocketTransport`."""

    connect_timeout: float = CONNECTION_TIMEOUT
    close_timeout: float = CLOSE_TIMEOUT
    max_size: int = MAX_MESSAGE_SIZE
    subprotocol: str = SUBPROTOCOL
    extra_headers: dict[str, str] = field(default_factory=dict)


@dataclass
class SessionStats:
    """Counters for a single session."""

    messages_sent: int = 0
    messages_received: int = 0
    replies_resolved: int = 0
    messages_dropped: int = 0
    handle_events: int = 0
    session_events: int = 0
    keepalives_sent: int = 0
    keepalives_failed: int = 0
