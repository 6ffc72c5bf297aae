# =============================================================================
# Janus Python Client -- Plugin Handle
# =============================================================================
#
# Client-side proxy for one attached plugin instance.  Every operation is a
# Session.send stamped with this handle's id; plugin-specific behavior lives
# in subclasses that override receive(), on_attached() and on_detached().
# =============================================================================

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any

from ._logging import logger as _default_logger
from .constants import (
    VERB_ATTACH,
    VERB_DETACH,
    VERB_HANGUP,
    VERB_MESSAGE,
    VERB_TRICKLE,
)
from .errors import JanusConnectionClosed, JanusProtocolError, JanusUsageError
from .events import EventEmitter
from .types import HandleEvent, HandleState

if TYPE_CHECKING:
    from .session import Session


class Handle:
    """Base plugin handle: attach/detach and send/receive plugin traffic.

    Subclass it per plugin, set :attr:`plugin`, and override
    :meth:`receive` to handle pushed events.

    Attributes:
        plugin: Plugin package name, e.g. ``"janus.plugin.echotest"``.
        label: Short name used in log lines.
        id: Gateway handle id; ``None`` while unattached.
        events: Publishes :class:`~janus_client.types.HandleEvent`
            notifications with this handle as payload.

    Args:
        session: Session the handle talks through.  Not owned.
        plugin: Overrides the class-level :attr:`plugin`.
        label: Defaults to the plugin name.
        logger: Logger for diagnostics.  Defaults to the library logger.
    """

    plugin: str = "unset"

    def __init__(
        self,
        session: Session,
        *,
        plugin: str | None = None,
        label: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._session = session
        if plugin is not None:
            self.plugin = plugin
        self.label = label or self.plugin
        self.id: int | None = None
        self._state = HandleState.UNATTACHED
        self._logger = logger or _default_logger
        self.events: EventEmitter[HandleEvent, Handle] = EventEmitter(
            logger=self._logger
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} plugin={self.plugin!r} id={self.id} "
            f"state={self._state.value}>"
        )

    # -- Properties -----------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def attached(self) -> bool:
        return self._state == HandleState.ATTACHED

    # -- Attach / Detach ------------------------------------------------------

    async def attach(self, *, timeout: float | None = None) -> dict[str, Any]:
        """Attach the gateway plugin named by :attr:`plugin`.

        Calls :meth:`on_attached` and publishes ``HandleEvent.ATTACHED``.

        Returns:
            The gateway ``success`` reply.

        Raises:
            JanusUsageError: Already attached or attaching, or no plugin set.
            JanusProtocolError: The gateway refused the attach.
            JanusTimeoutError: No reply in time.
            JanusConnectionClosed: The session closed before the reply
                was processed.
        """
        if self._state != HandleState.UNATTACHED:
            raise JanusUsageError(
                f"Cannot attach {self!r}: state is {self._state.value}"
            )
        if not self.plugin or self.plugin == "unset":
            raise JanusUsageError("Cannot attach a handle without a plugin name")

        self._logger.debug("attach() %s", self.label)
        self._state = HandleState.ATTACHING
        try:
            reply = await self._session.send(
                {"janus": VERB_ATTACH, "plugin": self.plugin}, timeout=timeout
            )
            handle_id = (reply.get("data") or {}).get("id")
            if handle_id is None:
                raise JanusProtocolError(
                    reply, reason="attach reply carried no handle id"
                )
            if not self._session.is_connected:
                raise JanusConnectionClosed(
                    f"Session closed before {self.plugin} attach completed"
                )
        except BaseException:
            if self._state == HandleState.ATTACHING:
                self._state = HandleState.UNATTACHED
            raise

        self.id = handle_id
        self._state = HandleState.ATTACHED
        self._session.register_handle(self)
        self._logger.info("Attached %s as handle %s", self.plugin, handle_id)
        self.on_attached()
        self.events.emit(HandleEvent.ATTACHED, self)
        return reply

    async def detach(self, *, timeout: float | None = None) -> dict[str, Any]:
        """Detach from the gateway plugin.

        Calls :meth:`on_detached` and publishes ``HandleEvent.DETACHED``.
        The gateway additionally pushes ``janus: "detached"``, which arrives
        at :meth:`receive` if it lands before the reply.
        If the session closes first, the teardown notification is the
        only one.

        Raises:
            JanusUsageError: Not attached.
        """
        if self._state != HandleState.ATTACHED:
            raise JanusUsageError(
                f"Cannot detach {self!r}: state is {self._state.value}"
            )

        self._logger.debug("detach() %s", self.label)
        self._state = HandleState.DETACHING
        try:
            reply = await self._send({"janus": VERB_DETACH}, timeout=timeout)
        except BaseException:
            if self._state == HandleState.DETACHING:
                self._state = HandleState.ATTACHED
            raise

        # Session teardown may already have reset the handle.
        if self._state == HandleState.DETACHING:
            self._mark_detached()
        return reply

    # -- Overridable hooks ----------------------------------------------------

    def on_attached(self) -> None:
        """Called once the gateway confirmed the attach."""
        self._logger.debug("on_attached() %s", self.label)

    def on_detached(self) -> None:
        """Called once the handle is no longer attached."""
        self._logger.debug("on_detached() %s", self.label)

    async def receive(self, msg: dict[str, Any]) -> None:
        """Handle a push addressed to this handle.

        Pushes carry ``sender`` and usually ``janus`` set to one of
        ``event``, ``media``, ``webrtcup``, ``slowlink``, ``hangup`` or
        ``detached``.  The base implementation only logs.
        """
        self._logger.debug("%s received %s", self.label, msg.get("janus"))

    # -- Sending --------------------------------------------------------------

    async def send(
        self, obj: dict[str, Any], *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Send a raw request on behalf of this handle.

        Prefer :meth:`send_message`, :meth:`send_trickle` and :meth:`hangup`.

        Raises:
            JanusUsageError: The handle is not attached.
        """
        if self._state != HandleState.ATTACHED:
            raise JanusUsageError(
                f"Cannot send on {self!r}: state is {self._state.value}"
            )
        return await self._send(obj, timeout=timeout)

    async def send_message(
        self,
        body: dict[str, Any] | None = None,
        jsep: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a message to the plugin's ``handle_message``.

        Args:
            body: Plugin request body (required by the gateway, may be empty).
            jsep: Optional session description, e.g.
                ``{"type": "offer", "sdp": "..."}``.
        """
        msg: dict[str, Any] = {"janus": VERB_MESSAGE, "body": body or {}}
        if jsep:
            msg["jsep"] = jsep
        return await self.send(msg, timeout=timeout)

    async def send_jsep(
        self, jsep: dict[str, Any], *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Shorthand for ``send_message({}, jsep)``."""
        return await self.send_message({}, jsep, timeout=timeout)

    async def send_trickle(
        self,
        candidate: dict[str, Any] | list[dict[str, Any]] | None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send trickle ICE candidate(s).

        *candidate* is passed verbatim: one candidate, a list, or ``None``
        for end-of-candidates.
        """
        return await self.send(
            {"janus": VERB_TRICKLE, "candidate": candidate}, timeout=timeout
        )

    async def hangup(self, *, timeout: float | None = None) -> dict[str, Any]:
        """Hang up the PeerConnection; the handle stays attached."""
        return await self.send({"janus": VERB_HANGUP}, timeout=timeout)

    # -- Internal -------------------------------------------------------------

    async def _send(
        self, obj: dict[str, Any], *, timeout: float | None = None
    ) -> dict[str, Any]:
        assert self.id is not None
        return await self._session.send_for_handle(self.id, obj, timeout=timeout)

    def _mark_detached(self) -> None:
        self._session.unregister_handle(self)
        self.id = None
        self._state = HandleState.UNATTACHED
        self._logger.info("Detached %s", self.label)
        self.on_detached()
        self.events.emit(HandleEvent.DETACHED, self)

    def _session_closed(self) -> None:
        """Called by the session on teardown; the gateway handle is gone too."""
        if self._state == HandleState.UNATTACHED:
            return
        was_attached = self._state in (HandleState.ATTACHED, HandleState.DETACHING)
        self.id = None
        self._state = HandleState.UNATTACHED
        if was_attached:
            self.on_detached()
            self.events.emit(HandleEvent.DETACHED, self)
