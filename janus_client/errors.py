# =============================================================================
# Janus Python Client -- Error Types
# =============================================================================

from __future__ import annotations

from typing import Any


class JanusError(Exception):
    """Base exception for all Janus client errors."""


class JanusProtocolError(JanusError):
    """The gateway answered a request with ``janus: "error"``.

    Args:
        payload: The full reply as received.
        reason: Overrides the reason taken from the payload, for replies
            that are well-formed but unusable.
    """

    def __init__(self, payload: dict[str, Any], reason: str | None = None) -> None:
        self.payload = payload
        error = payload.get("error") or {}
        self.code: int | None = error.get("code")
        self.reason: str = reason or error.get("reason", "Unknown error")
        super().__init__(f"Gateway error {self.code}: {self.reason}")


class JanusTimeoutError(JanusError, TimeoutError):
    """No reply arrived before the transaction deadline."""

    def __init__(self, transaction: str | None = None, timeout: float = 0.0) -> None:
        self.transaction = transaction
        self.timeout = timeout
        if transaction is None:
            super().__init__(f"Operation timed out after {timeout}s")
        else:
            super().__init__(
                f"Transaction {transaction} timed out after {timeout}s"
            )


class JanusConnectionClosed(JanusError):
    """The session was torn down while a request was outstanding."""


class JanusConnectionError(JanusError):
    """Transport-level failure (could not connect, send failed)."""


class JanusUsageError(JanusError):
    """A precondition was violated; nothing was sent to the gateway."""
