"""Shared fixtures for Playsync tests."""

from typing import Any

import pytest

from playsync.events import SyncEvent
from playsync.relay import RoomMember, RoomRelay
from playsync.transport import RelayTransport

T0 = 1_700_000_000_000


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingMember(RoomMember):
    """Relay member that keeps everything delivered to it."""

    def __init__(self, name: str):
        self.name = name
        self.received: list[dict[str, Any]] = []

    @property
    def member_id(self) -> str:
        return self.name

    def deliver(self, event: dict[str, Any]) -> None:
        self.received.append(event)


class LocalTransport(RelayTransport, RoomMember):
    """In-process transport attached directly to a RoomRelay."""

    def __init__(self, relay: RoomRelay, name: str):
        super().__init__()
        self._relay = relay
        self._name = name
        self._connected = False

    @property
    def member_id(self) -> str:
        return self._name

    def deliver(self, event: dict[str, Any]) -> None:
        self._dispatch_sync(event)

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self._connected = True
        if self._room_id:
            await self._relay.join(self, self._room_id)
        return True

    async def join(self, room_id: str) -> None:
        self._room_id = room_id
        if self._connected:
            await self._relay.join(self, room_id)

    async def send_sync(self, event: SyncEvent) -> None:
        await self._relay.publish(self, event.to_dict())

    async def disconnect(self) -> None:
        self._connected = False
        await self._relay.on_disconnect(self)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def relay():
    return RoomRelay()


def make_event(**overrides) -> dict[str, Any]:
    """Build a wire-format sync event."""
    event = {
        "roomId": "room-a",
        "uri": "spotify:track:1",
        "isPlaying": True,
        "position": 10000,
        "timestamp": T0,
    }
    event.update(overrides)
    return event
