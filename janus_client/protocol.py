# =============================================================================
# Janus Python Client -- Wire Protocol Codec
# =============================================================================
#
# Janus speaks plain JSON objects in both directions:
#
# Outgoing (client -> gateway):
#   {"janus": <verb>, "transaction": <id>, ["session_id", "handle_id", ...]}
#
# Incoming (gateway -> client):
#   replies   -- carry the "transaction" of the request they answer
#   pushes    -- carry "sender" (a handle id) or only "session_id"
# =============================================================================

from __future__ import annotations

import json
import logging

from typing import Any

from ._logging import logger as _default_logger
from .constants import MAX_MESSAGE_SIZE

try:
    import orjson

    def _json_loads(data: str | bytes) -> Any:
        return orjson.loads(data)

    def _json_dumps(obj: Any) -> str:
        return orjson.dumps(obj).decode()

except ImportError:

    def _json_loads(data: str | bytes) -> Any:
        return json.loads(data)

    def _json_dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(",", ":"))


class MessageCodec:
    """Encode and decode Janus wire messages.

    Decoding never raises: anything that is not a JSON object within the
    size limit yields ``None`` and a log line.

    Args:
        max_size: Largest frame accepted by :meth:`decode`, in bytes.
    """

    def __init__(
        self,
        *,
        max_size: int = MAX_MESSAGE_SIZE,
        logger: logging.Logger | None = None,
    ) -> None:
        self._max_size = max_size
        self._logger = logger or _default_logger

    def encode(self, message: dict[str, Any]) -> str:
        """Serialize an outgoing request.

        Raises:
            TypeError: If *message* is not JSON-serializable.
        """
        try:
            return _json_dumps(message)
        except (TypeError, ValueError) as exc:
            raise TypeError(f"Message is not JSON-serializable: {exc}") from exc

    def decode(self, data: str | bytes) -> dict[str, Any] | None:
        """Parse an incoming frame into a message dict."""
        if len(data) > self._max_size:
            self._logger.warning(
                "Dropping oversize frame (%d > %d bytes)", len(data), self._max_size
            )
            return None

        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError:
                self._logger.warning("Dropping binary frame that is not UTF-8")
                return None

        try:
            parsed = _json_loads(data)
        except ValueError as exc:
            self._logger.warning("Dropping malformed JSON frame: %s", exc)
            return None

        if not isinstance(parsed, dict):
            self._logger.warning(
                "Dropping frame that is not a JSON object: %s", type(parsed).__name__
            )
            return None

        return parsed
