# =============================================================================
# Janus Python Client -- Session
# =============================================================================
#
# Single owner of the transport.  Assigns transaction ids to outgoing
# requests and classifies every inbound message:
#
#   1. reply to a pending transaction  -> TransactionRegistry.resolve
#   2. push addressed to a handle      -> Handle.receive
#   3. anything else                   -> session-level event subscribers
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from typing import TYPE_CHECKING, Any, TypeVar

from ._logging import logger as _default_logger
from .constants import (
    EVENT_KEEPALIVE_FAILED,
    EVENT_TRANSPORT_CLOSED,
    REPLY_ACK,
    REPLY_ERROR,
    REPLY_SUCCESS,
    VERB_CREATE,
    VERB_DESTROY,
    VERB_KEEPALIVE,
)
from .errors import (
    JanusConnectionClosed,
    JanusConnectionError,
    JanusError,
    JanusProtocolError,
    JanusUsageError,
)
from .events import EventEmitter
from .protocol import MessageCodec
from .transactions import TransactionRegistry
from .types import JanusEvent, SessionConfig, SessionState, SessionStats

if TYPE_CHECKING:
    from .connection import Transport
    from .handle import Handle

H = TypeVar("H", bound="Handle")

_REPLY_VERBS = frozenset({REPLY_SUCCESS, REPLY_ACK, REPLY_ERROR})


class Session:
    """One gateway session multiplexed over a single transport.

    Args:
        transport: Object implementing the
            :class:`~janus_client.connection.Transport` contract.  The
            session installs its own ``on_message`` / ``on_close`` callbacks
            on it and owns it from then on.
        config: Timeouts and keepalive cadence.
        session_id: Gateway session id, when re-using one created elsewhere.
        logger: Logger for diagnostics.  Defaults to the library logger.

    Example::

        async with connect("ws://localhost:8188") as session:
            handle = await session.attach(EchoTestHandle)
            await handle.configure(audio=True, video=False)
    """

    def __init__(
        self,
        transport: Transport,
        *,
        config: SessionConfig | None = None,
        session_id: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or _default_logger
        self._config = config or SessionConfig()
        self._transport = transport
        transport.on_message = self.deliver
        transport.on_close = self._on_transport_closed

        self._codec = MessageCodec(logger=self._logger)
        self._transactions = TransactionRegistry(logger=self._logger)
        self._handles: dict[int, Handle] = {}
        self._state = SessionState.DISCONNECTED
        self._session_id = session_id
        self._stats = SessionStats()

        self._keepalive_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._receive_tasks: set[asyncio.Task[Any]] = set()

        self.events: EventEmitter[str, JanusEvent] = EventEmitter(logger=self._logger)

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> Session:
        await self.connect()
        if self._session_id is None:
            try:
                await self.create()
            except BaseException:
                await self.close()
                raise
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._state != SessionState.CONNECTED:
            return
        if self._session_id is not None:
            try:
                await self.destroy()
                return
            except JanusError as err:
                self._logger.warning("Session destroy failed: %s", err)
        await self.close()

    # -- Properties -----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == SessionState.CONNECTED

    @property
    def session_id(self) -> int | None:
        return self._session_id

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def pending_transactions(self) -> int:
        return len(self._transactions)

    @property
    def handles(self) -> dict[int, Handle]:
        """Attached handles by id (a copy)."""
        return dict(self._handles)

    # -- Lifecycle ------------------------------------------------------------

    async def connect(self) -> None:
        """Open the transport and start the keepalive timer."""
        if self._state != SessionState.DISCONNECTED:
            raise JanusUsageError(
                f"Cannot connect a session in state {self._state.value}"
            )

        await self._transport.connect()
        self._set_state(SessionState.CONNECTED)
        self._start_keepalive()

    async def create(self) -> dict[str, Any]:
        """Create the gateway-side session and remember its id."""
        if self._session_id is not None:
            raise JanusUsageError(f"Session {self._session_id} already created")

        reply = await self.send({"janus": VERB_CREATE})
        session_id = (reply.get("data") or {}).get("id")
        if session_id is None:
            raise JanusProtocolError(reply, reason="create reply carried no session id")
        self._session_id = session_id
        self._logger.info("Gateway session %s created", session_id)
        return reply

    async def destroy(self) -> dict[str, Any]:
        """Destroy the gateway-side session, then close the transport."""
        if self._session_id is None:
            raise JanusUsageError("No gateway session to destroy")

        try:
            reply = await self.send({"janus": VERB_DESTROY})
            self._logger.info("Gateway session %s destroyed", self._session_id)
            self._session_id = None
            return reply
        finally:
            await self.close()

    async def close(self) -> None:
        """Reject everything pending, reset handles and close the transport.

        Safe to call more than once.
        """
        if self._state != SessionState.CONNECTED:
            return

        self._set_state(SessionState.CLOSING)
        self._teardown("Session closed")
        try:
            await self._transport.close()
        finally:
            self._set_state(SessionState.DISCONNECTED)

    async def attach(
        self,
        handle_cls: type[H] | None = None,
        *,
        plugin: str | None = None,
        label: str | None = None,
        **kwargs: Any,
    ) -> H:
        """Build a handle, attach it and return it.

        Args:
            handle_cls: :class:`~janus_client.handle.Handle` subclass.
            plugin: Plugin name, when *handle_cls* does not define one.
            label: Human label used in logs.
            **kwargs: Forwarded to the handle constructor.
        """
        if handle_cls is None:
            from .handle import Handle

            handle_cls = Handle  # type: ignore[assignment]
        handle = handle_cls(
            self, plugin=plugin, label=label, logger=self._logger, **kwargs
        )
        await handle.attach()
        return handle

    # -- Send -----------------------------------------------------------------

    async def send(
        self,
        message: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a request and wait for its correlated reply.

        A ``transaction`` is assigned unless the message carries one, and the
        gateway ``session_id`` is stamped once known.

        Args:
            message: JSON-serializable request with a ``janus`` verb.
            timeout: Reply deadline in seconds.  Defaults to
                ``config.transaction_timeout``.

        Returns:
            The reply (``success`` or ``ack``).

        Raises:
            JanusProtocolError: The gateway replied ``error``.
            JanusTimeoutError: No reply before the deadline.
            JanusConnectionClosed: The session is not connected, or was
                closed while waiting.
            JanusConnectionError: The transport failed to write.
        """
        if self._state != SessionState.CONNECTED:
            raise JanusConnectionClosed(
                f"Cannot send on a session in state {self._state.value}"
            )
        if "janus" not in message:
            raise JanusUsageError("Message has no 'janus' verb")

        msg = dict(message)
        if self._session_id is not None and msg["janus"] != VERB_CREATE:
            msg.setdefault("session_id", self._session_id)

        tid, future = self._transactions.register(
            self._config.transaction_timeout if timeout is None else timeout,
            transaction_id=msg.get("transaction"),
            verb=msg["janus"],
        )
        msg["transaction"] = tid

        try:
            encoded = self._codec.encode(msg)
        except TypeError as exc:
            self._transactions.reject(tid, JanusUsageError(str(exc)))
            return await future

        try:
            await self._transport.send_raw(encoded)
        except Exception as exc:
            self._logger.debug("Send of %s failed: %s", tid, exc)
            if not isinstance(exc, JanusError):
                exc = JanusConnectionError(f"Send failed: {exc}")
            self._transactions.reject(tid, exc)
        else:
            self._stats.messages_sent += 1

        return await future

    async def send_for_handle(
        self,
        handle_id: int,
        message: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """:meth:`send` with ``handle_id`` stamped on the message."""
        return await self.send({**message, "handle_id": handle_id}, timeout=timeout)

    # -- Handle table ---------------------------------------------------------

    def register_handle(self, handle: Handle) -> None:
        """Route pushes with ``sender == handle.id`` to *handle*."""
        if handle.id is None:
            raise JanusUsageError("Cannot register a handle without an id")
        existing = self._handles.get(handle.id)
        if existing is not None and existing is not handle:
            raise JanusUsageError(f"Handle id {handle.id} is already registered")
        self._handles[handle.id] = handle
        self._logger.debug("Handle %s (%s) registered", handle.id, handle.label)

    def unregister_handle(self, handle: Handle) -> None:
        if handle.id is not None and self._handles.get(handle.id) is handle:
            del self._handles[handle.id]
            self._logger.debug("Handle %s (%s) unregistered", handle.id, handle.label)

    # -- Receive --------------------------------------------------------------

    def deliver(self, data: str | bytes) -> None:
        """Transport callback: decode one inbound frame and dispatch it."""
        self._stats.messages_received += 1
        msg = self._codec.decode(data)
        if msg is None:
            self._stats.messages_dropped += 1
            return
        try:
            self._dispatch(msg)
        except Exception as exc:
            self._stats.messages_dropped += 1
            self._logger.error("Dispatch error for %s: %s", msg.get("janus"), exc)

    def _dispatch(self, msg: dict[str, Any]) -> None:
        tid = msg.get("transaction")
        if tid is not None and self._transactions.resolve(tid, msg):
            self._stats.replies_resolved += 1
            return

        sender = msg.get("sender")
        if sender is not None:
            handle = self._handles.get(sender)
            if handle is None:
                self._stats.messages_dropped += 1
                self._logger.warning(
                    "Dropping %s for unknown handle %s", msg.get("janus"), sender
                )
                return
            self._stats.handle_events += 1
            self._invoke_receive(handle, msg)
            return

        if tid is not None and msg.get("janus") in _REPLY_VERBS:
            self._stats.messages_dropped += 1
            self._logger.debug("Dropping late reply for transaction %s", tid)
            return

        self._stats.session_events += 1
        event = JanusEvent.from_message(msg)
        if self.events.emit(event.type, event) == 0:
            self._logger.debug("No subscribers for session event %s", event.type)

    def _invoke_receive(self, handle: Handle, msg: dict[str, Any]) -> None:
        try:
            result = handle.receive(msg)
            if asyncio.iscoroutine(result):
                self._fire_task(result, tasks=self._receive_tasks)
        except Exception as exc:
            self._logger.error("Handle %s receive error: %s", handle.id, exc)

    # -- Keepalive ------------------------------------------------------------

    def _start_keepalive(self) -> None:
        if self._config.keepalive_interval <= 0 or self._keepalive_task is not None:
            return
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    def _stop_keepalive(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def _keepalive_loop(self) -> None:
        """Send a keepalive every ``keepalive_interval`` seconds."""
        while True:
            try:
                await asyncio.sleep(self._config.keepalive_interval)
            except asyncio.CancelledError:
                return

            if self._state != SessionState.CONNECTED:
                return
            if self._session_id is None:
                continue
            self._fire_task(self._send_keepalive())

    async def _send_keepalive(self) -> None:
        try:
            await self.send(
                {"janus": VERB_KEEPALIVE}, timeout=self._config.keepalive_timeout
            )
            self._stats.keepalives_sent += 1
        except JanusConnectionClosed:
            return
        except JanusError as exc:
            self._stats.keepalives_failed += 1
            self._logger.warning(
                "Keepalive for session %s failed: %s", self._session_id, exc
            )
            self.events.emit(
                EVENT_KEEPALIVE_FAILED,
                JanusEvent(
                    type=EVENT_KEEPALIVE_FAILED,
                    payload={"session_id": self._session_id},
                    session_id=self._session_id,
                    error=exc,
                ),
            )

    # -- Teardown -------------------------------------------------------------

    def _teardown(self, reason: str) -> None:
        """Stop keepalive, reject pending requests and reset handles.

        Keepalive tasks are cancelled.  ``receive()`` calls already
        dispatched to handles run to completion.
        """
        self._stop_keepalive()
        current = asyncio.current_task()
        for task in self._background_tasks:
            if task is not current:
                task.cancel()
        self._background_tasks.clear()

        rejected = self._transactions.reject_all(
            lambda txn: JanusConnectionClosed(
                f"{reason} while {txn.verb} {txn.id} was pending"
            )
        )
        if rejected:
            self._logger.info("%s: rejected %d pending transactions", reason, rejected)

        handles, self._handles = list(self._handles.values()), {}
        for handle in handles:
            handle._session_closed()

    def _on_transport_closed(self, code: int | None, reason: str | None) -> None:
        """Transport callback: the connection ended without ``close()``."""
        if self._state != SessionState.CONNECTED:
            return
        self._logger.warning("Transport closed (code=%s reason=%s)", code, reason)
        self._set_state(SessionState.CLOSING)
        self._teardown("Transport closed")
        self._set_state(SessionState.DISCONNECTED)
        self.events.emit(
            EVENT_TRANSPORT_CLOSED,
            JanusEvent(
                type=EVENT_TRANSPORT_CLOSED,
                payload={"code": code, "reason": reason},
                session_id=self._session_id,
            ),
        )

    # -- Stats ----------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return session statistics."""
        return {
            "state": self._state.value,
            "session_id": self._session_id,
            "pending_transactions": len(self._transactions),
            "attached_handles": len(self._handles),
            "messages_sent": self._stats.messages_sent,
            "messages_received": self._stats.messages_received,
            "replies_resolved": self._stats.replies_resolved,
            "transactions_timed_out": self._transactions.timed_out,
            "messages_dropped": self._stats.messages_dropped,
            "handle_events": self._stats.handle_events,
            "session_events": self._stats.session_events,
            "keepalives_sent": self._stats.keepalives_sent,
            "keepalives_failed": self._stats.keepalives_failed,
        }

    # -- Internal -------------------------------------------------------------

    def _set_state(self, new_state: SessionState) -> None:
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        self._logger.debug("State: %s -> %s", old.value, new_state.value)

    def _fire_task(
        self, coro: Any, *, tasks: set[asyncio.Task[Any]] | None = None
    ) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        (self._background_tasks if tasks is None else tasks).add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        self._receive_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Background task error: %s", exc)
