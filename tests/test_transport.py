"""Tests for relay transports."""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock, MagicMock

import paho.mqtt.client as mqtt

from conftest import make_event
from playsync.config import MQTTConfig
from playsync.errors import TransportError
from playsync.events import SyncEvent
from playsync.transport import MQTTTransport, WebSocketTransport


class TestWebSocketTransport:
    @pytest.fixture
    def transport(self):
        transport = WebSocketTransport("ws://relay.test/ws")
        received = []
        transport.set_sync_handler(received.append)
        transport.received = received
        return transport

    def test_receive_sync_dispatched(self, transport):
        event = make_event()

        transport.handle_frame(json.dumps({"type": "receive-sync", "event": event}))

        assert transport.received == [event]

    def test_other_frames_ignored(self, transport):
        transport.handle_frame(json.dumps({"type": "joined", "roomId": "room-a"}))
        transport.handle_frame("{broken")
        transport.handle_frame(json.dumps([1, 2]))

        assert transport.received == []

    def test_handler_errors_are_contained(self, transport):
        transport.set_sync_handler(MagicMock(side_effect=RuntimeError("boom")))

        transport.handle_frame(json.dumps({"type": "receive-sync", "event": make_event()}))

    @pytest.mark.asyncio
    async def test_send_without_connection(self, transport):
        with pytest.raises(TransportError):
            await transport.send_sync(SyncEvent.from_dict(make_event()))

    @pytest.mark.asyncio
    async def test_send_sync_frame(self, transport):
        transport._ws = MagicMock()
        transport._ws.send = AsyncMock()
        event = SyncEvent.from_dict(make_event())

        await transport.send_sync(event)

        frame = json.loads(transport._ws.send.await_args.args[0])
        assert frame == {"type": "send-sync", "event": event.to_dict()}

    @pytest.mark.asyncio
    async def test_join_before_connect_is_remembered(self, transport):
        await transport.join("room-a")

        assert transport.room_id == "room-a"
        assert transport.is_connected is False

    @pytest.mark.asyncio
    async def test_join_while_connected_sends_frame(self, transport):
        transport._ws = MagicMock()
        transport._ws.send = AsyncMock()

        await transport.join("room-b")

        frame = json.loads(transport._ws.send.await_args.args[0])
        assert frame == {"type": "join-room", "roomId": "room-b"}


class TestMQTTTransport:
    @pytest.fixture
    def transport(self):
        transport = MQTTTransport(MQTTConfig(topic_prefix="party"), node_name="leader-node")
        transport._client = MagicMock()
        return transport

    def _message(self, topic, payload):
        msg = MagicMock()
        msg.topic = topic
        msg.payload = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        return msg

    def test_room_topic(self, transport):
        assert transport.room_topic("room-a") == "party/rooms/room-a/sync"

    @pytest.mark.asyncio
    async def test_send_requires_connection(self, transport):
        with pytest.raises(TransportError):
            await transport.send_sync(SyncEvent.from_dict(make_event()))

    @pytest.mark.asyncio
    async def test_send_publishes_envelope(self, transport):
        transport._connected = True
        transport._client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
        event = SyncEvent.from_dict(make_event())

        await transport.send_sync(event)

        topic, payload = transport._client.publish.call_args.args
        assert topic == "party/rooms/room-a/sync"
        assert json.loads(payload) == {"sender": "leader-node", "event": event.to_dict()}

    @pytest.mark.asyncio
    async def test_send_failure_raises(self, transport):
        transport._connected = True
        transport._client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)

        with pytest.raises(TransportError):
            await transport.send_sync(SyncEvent.from_dict(make_event()))

    @pytest.mark.asyncio
    async def test_join_switches_subscription(self, transport):
        transport._connected = True

        await transport.join("room-a")
        await transport.join("room-b")

        transport._client.unsubscribe.assert_called_once_with("party/rooms/room-a/sync")
        transport._client.subscribe.assert_called_with("party/rooms/room-b/sync", qos=1)

    @pytest.mark.asyncio
    async def test_own_messages_dropped(self, transport):
        transport._loop = asyncio.get_running_loop()
        received = []
        transport.set_sync_handler(received.append)
        event = make_event()

        transport._handle_message(None, None, self._message(
            "party/rooms/room-a/sync", {"sender": "leader-node", "event": event}
        ))
        transport._handle_message(None, None, self._message(
            "party/rooms/room-a/sync", {"sender": "other-node", "event": event}
        ))
        transport._handle_message(None, None, self._message("party/rooms/room-a/sync", b"\xff"))
        await asyncio.sleep(0)

        assert received == [event]

    def test_connect_resubscribes_room(self, transport):
        transport._room_id = "room-a"
        client = MagicMock()

        transport._handle_connect(client, None, None, 0)

        assert transport.is_connected is True
        client.subscribe.assert_called_once_with("party/rooms/room-a/sync", qos=1)
