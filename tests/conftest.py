"""Shared fixtures: an in-memory transport standing in for the gateway."""

import asyncio
import json
from typing import Any, Callable

import pytest

from janus_client.handle import Handle
from janus_client.session import Session
from janus_client.types import SessionConfig


class FakeTransport:
    """Records outgoing requests; replies come from ``responder`` or by hand.

    ``responder(msg)`` returns the fields of the reply (the transaction is
    filled in) or ``None`` to leave the request unanswered.
    """

    def __init__(self) -> None:
        self.on_message: Callable[[str | bytes], Any] | None = None
        self.on_close: Callable[[int | None, str | None], Any] | None = None
        self.sent: list[dict[str, Any]] = []
        self.connected = False
        self.close_calls = 0
        self.fail_send: Exception | None = None
        self.responder: Callable[[dict[str, Any]], dict[str, Any] | None] | None = None

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False
        self.close_calls += 1

    async def send_raw(self, data: str) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        msg = json.loads(data)
        self.sent.append(msg)
        if self.responder is not None:
            reply = self.responder(msg)
            if reply is not None:
                asyncio.get_running_loop().call_soon(
                    self.push, {"transaction": msg["transaction"], **reply}
                )

    # -- Test helpers ---------------------------------------------------------

    def push(self, msg: dict[str, Any]) -> None:
        assert self.on_message is not None
        self.on_message(json.dumps(msg))

    def reply_to(self, request: dict[str, Any], **fields: Any) -> None:
        self.push({"transaction": request["transaction"], **fields})

    def sent_verbs(self) -> list[str]:
        return [m["janus"] for m in self.sent]


def gateway(handle_id: int = 42, session_id: int = 1234):
    """Responder that answers like a healthy gateway."""

    def respond(msg: dict[str, Any]) -> dict[str, Any] | None:
        verb = msg["janus"]
        if verb == "create":
            return {"janus": "success", "data": {"id": session_id}}
        if verb == "attach":
            return {
                "janus": "success",
                "session_id": msg.get("session_id"),
                "data": {"id": handle_id},
            }
        if verb in ("message", "trickle", "keepalive"):
            return {"janus": "ack", "session_id": msg.get("session_id")}
        return {"janus": "success", "session_id": msg.get("session_id")}

    return respond


class RecordingHandle(Handle):
    """Handle that records hook calls and pushes."""

    plugin = "janus.plugin.recording"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.received: list[dict[str, Any]] = []
        self.attached_calls = 0
        self.detached_calls = 0

    def on_attached(self) -> None:
        self.attached_calls += 1

    def on_detached(self) -> None:
        self.detached_calls += 1

    async def receive(self, msg: dict[str, Any]) -> None:
        self.received.append(msg)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def session(transport):
    """Disconnected session with keepalive off and a 1s deadline."""
    return Session(
        transport,
        config=SessionConfig(transaction_timeout=1.0, keepalive_interval=0),
    )
