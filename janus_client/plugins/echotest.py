# =============================================================================
# Janus Python Client -- EchoTest Plugin Handle
# =============================================================================

from __future__ import annotations

import asyncio

from dataclasses import dataclass
from typing import Any

from ..handle import Handle


@dataclass(frozen=True, slots=True)
class EchoTestEvent:
    """A push received by :class:`EchoTestHandle`.

    Attributes:
        janus: Push kind: ``event``, ``webrtcup``, ``media``, ``slowlink``,
            ``hangup`` or ``detached``.
        data: ``plugindata.data`` for plugin events, else the raw message.
        jsep: Session description answer, when the push carries one.
    """

    janus: str
    data: dict[str, Any]
    jsep: dict[str, Any] | None = None

    @property
    def result(self) -> Any:
        return self.data.get("result")


class EchoTestHandle(Handle):
    """Handle for ``janus.plugin.echotest``.

    Pushes are queued and consumed with :meth:`next_event`.

    Example::

        echo = await session.attach(EchoTestHandle)
        await echo.configure(audio=True, video=True, jsep=offer)
        event = await echo.next_event(timeout=5.0)
        answer = event.jsep
    """

    plugin = "janus.plugin.echotest"

    def __init__(self, *args: Any, queue_size: int = 100, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._queue: asyncio.Queue[EchoTestEvent] = asyncio.Queue(maxsize=queue_size)

    async def configure(
        self,
        *,
        audio: bool | None = None,
        video: bool | None = None,
        bitrate: int | None = None,
        record: bool | None = None,
        jsep: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Toggle the echoed media.  Only the given settings are sent."""
        body: dict[str, Any] = {}
        if audio is not None:
            body["audio"] = audio
        if video is not None:
            body["video"] = video
        if bitrate is not None:
            body["bitrate"] = bitrate
        if record is not None:
            body["record"] = record
        return await self.send_message(body, jsep)

    async def receive(self, msg: dict[str, Any]) -> None:
        kind = str(msg.get("janus", "unknown"))
        if kind == "event":
            data = (msg.get("plugindata") or {}).get("data") or {}
            if "error" in data:
                self._logger.warning(
                    "%s plugin error %s: %s",
                    self.label,
                    data.get("error_code"),
                    data["error"],
                )
        else:
            data = msg
        event = EchoTestEvent(janus=kind, data=data, jsep=msg.get("jsep"))

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            # Drop oldest to make room
            try:
                self._queue.get_nowait()
                self._queue.put_nowait(event)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass

    async def next_event(self, timeout: float | None = None) -> EchoTestEvent:
        """Wait for the next push.

        Raises:
            asyncio.TimeoutError: If *timeout* expires.
        """
        if timeout is not None:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        return await self._queue.get()

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()
