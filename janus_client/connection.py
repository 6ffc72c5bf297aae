# =============================================================================
# Janus Python Client -- Transport
# =============================================================================
#
# The Session only needs three coroutines and two callbacks from a
# transport.  WebSocketTransport provides them over the gateway's
# ``janus-protocol`` WebSocket endpoint.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from typing import Any, Callable, Protocol

import websockets
import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.typing import Subprotocol

from ._logging import logger as _default_logger
from .constants import WS_CLOSE_NORMAL
from .errors import JanusConnectionError, JanusTimeoutError
from .types import ConnectionConfig

MessageCallback = Callable[[str | bytes], Any]
CloseCallback = Callable[[int | None, str | None], Any]


class Transport(Protocol):
    """What a :class:`~janus_client.session.Session` needs from a transport.

    ``on_message`` is called once per inbound frame.  ``on_close`` is
    called when the connection ends without a local :meth:`close`.
    """

    on_message: MessageCallback | None
    on_close: CloseCallback | None

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def send_raw(self, data: str) -> None: ...


class WebSocketTransport:
    """Janus WebSocket transport.

    Args:
        url: Gateway WebSocket URL, e.g. ``"ws://localhost:8188"``.
        config: Timeouts, frame size and subprotocol.
        on_message: Inbound frame callback (usually installed by the session).
        on_close: Remote-close callback (usually installed by the session).
    """

    def __init__(
        self,
        url: str,
        *,
        config: ConnectionConfig | None = None,
        on_message: MessageCallback | None = None,
        on_close: CloseCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._url = url
        self._config = config or ConnectionConfig()
        self.on_message = on_message
        self.on_close = on_close
        self._logger = logger or _default_logger

        self._ws: websockets.asyncio.client.ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._closing = False

    # -- Properties -----------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._closing

    # -- Connect / Close ------------------------------------------------------

    async def connect(self) -> None:
        """Open the WebSocket and start the receive loop."""
        if self._ws is not None:
            return

        try:
            self._ws = await asyncio.wait_for(
                websockets.asyncio.client.connect(
                    self._url,
                    subprotocols=[Subprotocol(self._config.subprotocol)],
                    additional_headers=self._config.extra_headers or None,
                    max_size=self._config.max_size,
                    open_timeout=None,  # asyncio.wait_for handles timeout
                    close_timeout=self._config.close_timeout,
                ),
                timeout=self._config.connect_timeout,
            )
        except asyncio.TimeoutError:
            raise JanusTimeoutError(timeout=self._config.connect_timeout) from None
        except Exception as exc:
            raise JanusConnectionError(
                f"Failed to connect to {self._url}: {exc}"
            ) from exc

        self._closing = False
        self._logger.debug("Connected to %s", self._url)
        self._recv_task = asyncio.create_task(self._recv_loop())

    async def close(self) -> None:
        """Close the WebSocket.  Does not fire ``on_close``."""
        self._closing = True
        ws, self._ws = self._ws, None

        if self._recv_task is not None:
            task, self._recv_task = self._recv_task, None
            if task is not asyncio.current_task():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if ws is not None:
            try:
                await ws.close(WS_CLOSE_NORMAL, "Client disconnect")
            except Exception as exc:
                self._logger.debug("Error while closing WebSocket: %s", exc)

    # -- Send -----------------------------------------------------------------

    async def send_raw(self, data: str) -> None:
        """Send one text frame.

        Raises:
            JanusConnectionError: Not connected, or the socket closed.
        """
        if self._ws is None or self._closing:
            raise JanusConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(data)
        except ConnectionClosed as exc:
            raise JanusConnectionError(f"WebSocket closed: {exc}") from exc

    # -- Internal: receive loop -----------------------------------------------

    async def _recv_loop(self) -> None:
        """Read frames until the socket closes."""
        ws = self._ws
        assert ws is not None
        try:
            async for message in ws:
                if self.on_message is not None:
                    self.on_message(message)
        except ConnectionClosedError as exc:
            self._logger.debug("WebSocket closed with error: %s", exc)
        except asyncio.CancelledError:
            return
        except Exception as exc:
            self._logger.warning("Receive loop error: %s", exc)

        self._handle_remote_close(ws.close_code, ws.close_reason)

    def _handle_remote_close(self, code: int | None, reason: str | None) -> None:
        if self._closing:
            return
        self._logger.debug("WebSocket closed: code=%s reason=%s", code, reason)
        self._ws = None
        self._recv_task = None
        if self.on_close is not None:
            self.on_close(code, reason)
