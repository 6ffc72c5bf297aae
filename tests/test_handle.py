"""Tests for Handle (attach/detach lifecycle and plugin senders)."""

import asyncio

import pytest

from conftest import RecordingHandle, gateway
from janus_client.errors import (
    JanusConnectionClosed,
    JanusProtocolError,
    JanusTimeoutError,
    JanusUsageError,
)
from janus_client.handle import Handle
from janus_client.types import HandleEvent, HandleState


@pytest.fixture
def handle(session):
    return RecordingHandle(session)


async def attached(session, transport, handle_id=42):
    transport.responder = gateway(handle_id=handle_id)
    await session.connect()
    h = RecordingHandle(session)
    await h.attach()
    return h


class TestAttach:
    @pytest.mark.asyncio
    async def test_attach(self, session, transport, handle):
        transport.responder = gateway(handle_id=42)
        await session.connect()
        notified = []
        handle.events.on(HandleEvent.ATTACHED)(notified.append)

        reply = await handle.attach()

        assert reply["data"]["id"] == 42
        assert handle.attached is True
        assert handle.id == 42
        assert handle.state == HandleState.ATTACHED
        assert notified == [handle]
        assert handle.attached_calls == 1
        assert session.handles == {42: handle}
        assert transport.sent[0]["janus"] == "attach"
        assert transport.sent[0]["plugin"] == "janus.plugin.recording"
        assert "handle_id" not in transport.sent[0]

    @pytest.mark.asyncio
    async def test_attach_twice_is_usage_error(self, session, transport, handle):
        transport.responder = gateway()
        await session.connect()
        await handle.attach()
        with pytest.raises(JanusUsageError):
            await handle.attach()
        assert transport.sent_verbs() == ["attach"]

    @pytest.mark.asyncio
    async def test_attach_without_plugin(self, session, transport):
        await session.connect()
        with pytest.raises(JanusUsageError):
            await Handle(session).attach()
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_plugin_override(self, session, transport):
        transport.responder = gateway()
        await session.connect()
        h = Handle(session, plugin="janus.plugin.videoroom", label="room")
        await h.attach()
        assert transport.sent[0]["plugin"] == "janus.plugin.videoroom"
        assert h.label == "room"

    @pytest.mark.asyncio
    async def test_attach_error_reply(self, session, transport, handle):
        transport.responder = lambda msg: {
            "janus": "error",
            "error": {"code": 460, "reason": "No such plugin"},
        }
        await session.connect()
        notified = []
        handle.events.on_any(notified.append)

        with pytest.raises(JanusProtocolError) as exc_info:
            await handle.attach()

        assert exc_info.value.code == 460
        assert handle.state == HandleState.UNATTACHED
        assert handle.id is None
        assert session.handles == {}
        assert notified == []
        assert handle.attached_calls == 0

    @pytest.mark.asyncio
    async def test_attach_timeout(self, session, transport, handle):
        await session.connect()
        with pytest.raises(JanusTimeoutError):
            await handle.attach(timeout=0.05)
        assert handle.state == HandleState.UNATTACHED

    @pytest.mark.asyncio
    async def test_attach_reply_without_id(self, session, transport, handle):
        transport.responder = lambda msg: {"janus": "success", "data": {}}
        await session.connect()
        with pytest.raises(JanusProtocolError):
            await handle.attach()
        assert handle.state == HandleState.UNATTACHED

    @pytest.mark.asyncio
    async def test_attach_interrupted_by_close(self, session, transport, handle):
        await session.connect()
        task = asyncio.create_task(handle.attach())
        await asyncio.sleep(0)
        assert handle.state == HandleState.ATTACHING
        await session.close()
        with pytest.raises(JanusConnectionClosed):
            await task
        assert handle.state == HandleState.UNATTACHED

    @pytest.mark.asyncio
    async def test_reply_then_remote_close_leaves_unattached(
        self, session, transport, handle
    ):
        await session.connect()
        notified = []
        handle.events.on_any(notified.append)
        task = asyncio.create_task(handle.attach())
        await asyncio.sleep(0)

        transport.reply_to(transport.sent[0], janus="success", data={"id": 7})
        transport.on_close(1006, "abnormal closure")

        with pytest.raises(JanusConnectionClosed):
            await task
        assert handle.attached is False
        assert handle.state == HandleState.UNATTACHED
        assert handle.id is None
        assert session.handles == {}
        assert handle.attached_calls == 0
        assert notified == []


class TestDetach:
    @pytest.mark.asyncio
    async def test_detach(self, session, transport):
        handle = await attached(session, transport, handle_id=42)
        notified = []
        handle.events.on(HandleEvent.DETACHED)(notified.append)

        await handle.detach()

        assert handle.attached is False
        assert handle.id is None
        assert notified == [handle]
        assert handle.detached_calls == 1
        assert session.handles == {}
        assert transport.sent[-1]["janus"] == "detach"
        assert transport.sent[-1]["handle_id"] == 42

    @pytest.mark.asyncio
    async def test_detach_when_unattached(self, session, handle):
        await session.connect()
        with pytest.raises(JanusUsageError):
            await handle.detach()

    @pytest.mark.asyncio
    async def test_detach_error_keeps_attachment(self, session, transport):
        handle = await attached(session, transport)
        transport.responder = lambda msg: {
            "janus": "error",
            "error": {"code": 457, "reason": "No such handle"},
        }
        with pytest.raises(JanusProtocolError):
            await handle.detach()
        assert handle.attached is True
        assert handle.detached_calls == 0

    @pytest.mark.asyncio
    async def test_reply_then_remote_close_notifies_once(self, session, transport):
        handle = await attached(session, transport)
        notified = []
        handle.events.on(HandleEvent.DETACHED)(notified.append)
        transport.responder = None
        task = asyncio.create_task(handle.detach())
        await asyncio.sleep(0)

        transport.reply_to(transport.sent[-1], janus="success")
        transport.on_close(1006, "abnormal closure")

        await task
        assert handle.state == HandleState.UNATTACHED
        assert handle.detached_calls == 1
        assert notified == [handle]

    @pytest.mark.asyncio
    async def test_reattach_after_detach(self, session, transport):
        handle = await attached(session, transport, handle_id=42)
        await handle.detach()
        transport.responder = gateway(handle_id=77)
        await handle.attach()
        assert handle.id == 77
        assert session.handles == {77: handle}


class TestSend:
    @pytest.mark.asyncio
    async def test_send_before_attach(self, session, transport, handle):
        await session.connect()
        with pytest.raises(JanusUsageError):
            await handle.send_message({"audio": True})
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_send_stamps_handle_id(self, session, transport):
        handle = await attached(session, transport, handle_id=42)
        await handle.send({"janus": "message", "body": {"x": 1}})
        assert transport.sent[-1]["handle_id"] == 42
        assert transport.sent[-1]["body"] == {"x": 1}

    @pytest.mark.asyncio
    async def test_send_message_with_jsep(self, session, transport):
        handle = await attached(session, transport)
        jsep = {"type": "offer", "sdp": "v=0"}
        reply = await handle.send_message({"audio": True}, jsep)
        assert reply["janus"] == "ack"
        sent = transport.sent[-1]
        assert sent["janus"] == "message"
        assert sent["body"] == {"audio": True}
        assert sent["jsep"] == jsep

    @pytest.mark.asyncio
    async def test_send_message_defaults(self, session, transport):
        handle = await attached(session, transport)
        await handle.send_message()
        sent = transport.sent[-1]
        assert sent["body"] == {}
        assert "jsep" not in sent

    @pytest.mark.asyncio
    async def test_send_jsep(self, session, transport):
        handle = await attached(session, transport)
        jsep = {"type": "answer", "sdp": "v=0"}
        await handle.send_jsep(jsep)
        sent = transport.sent[-1]
        assert sent["body"] == {}
        assert sent["jsep"] == jsep

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "candidate",
        [
            {"candidate": "candidate:1 1 udp 1 10.0.0.1 5000 typ host", "sdpMid": "0"},
            [
                {"candidate": "a", "sdpMLineIndex": 0},
                {"candidate": "b", "sdpMLineIndex": 1},
            ],
            None,
        ],
    )
    async def test_send_trickle_verbatim(self, session, transport, candidate):
        handle = await attached(session, transport)
        await handle.send_trickle(candidate)
        sent = transport.sent[-1]
        assert sent["janus"] == "trickle"
        assert sent["candidate"] == candidate

    @pytest.mark.asyncio
    async def test_hangup_keeps_attachment(self, session, transport):
        handle = await attached(session, transport)
        await handle.hangup()
        assert transport.sent[-1]["janus"] == "hangup"
        assert handle.attached is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "call",
        [
            lambda h: h.send_jsep({"type": "answer", "sdp": "v=0"}, timeout=0.05),
            lambda h: h.send_trickle(None, timeout=0.05),
            lambda h: h.hangup(timeout=0.05),
        ],
    )
    async def test_helpers_honor_timeout(self, session, transport, call):
        handle = await attached(session, transport)
        transport.responder = None
        with pytest.raises(JanusTimeoutError):
            await call(handle)
        assert session.pending_transactions == 0

    @pytest.mark.asyncio
    async def test_base_receive_is_noop(self, session):
        h = Handle(session, plugin="janus.plugin.echotest")
        assert await h.receive({"janus": "event"}) is None


class TestEvents:
    @pytest.mark.asyncio
    async def test_round_trip_notifications(self, session, transport, handle):
        transport.responder = gateway(handle_id=42)
        await session.connect()
        attached_seen = []
        detached_seen = []
        handle.events.on(HandleEvent.ATTACHED)(attached_seen.append)
        handle.events.on(HandleEvent.DETACHED)(detached_seen.append)

        await handle.attach()
        await handle.detach()
        await session.close()

        assert len(attached_seen) == 1
        assert len(detached_seen) == 1
