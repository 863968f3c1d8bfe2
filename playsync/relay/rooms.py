"""Room membership and fan-out.

The relay never interprets an event beyond reading its ``roomId`` for routing.
Delivery is best-effort and at-most-once: a member that is gone when an event
is published simply misses it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class RoomMember(ABC):
    """A connected participant the relay can deliver events to."""

    @property
    @abstractmethod
    def member_id(self) -> str:
        """Identifier used in logs."""
        pass

    @abstractmethod
    def deliver(self, event: dict[str, Any]) -> None:
        """Queue ``event`` for this member without blocking."""
        pass


class RoomRelay:
    """Tracks which member sits in which room and fans events out.

    Membership changes and fan-out for one room are serialized by that room's
    lock; different rooms never wait on each other.
    """

    def __init__(self):
        self._rooms: dict[str, set[RoomMember]] = {}
        self._member_rooms: dict[RoomMember, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        return self._locks.setdefault(room_id, asyncio.Lock())

    async def join(self, member: RoomMember, room_id: str) -> None:
        """Put ``member`` in ``room_id``, leaving any previous room.

        Joining the same room again is a no-op.
        """
        current = self._member_rooms.get(member)
        if current == room_id:
            return
        if current is not None:
            await self._remove(member, current)

        async with self._lock_for(room_id):
            self._rooms.setdefault(room_id, set()).add(member)
            self._member_rooms[member] = room_id
            count = len(self._rooms[room_id])

        logger.info(f"Member {member.member_id} joined room {room_id} ({count} members)")

    async def leave(self, member: RoomMember) -> None:
        """Remove ``member`` from its room on request."""
        room_id = self._member_rooms.get(member)
        if room_id is None:
            return
        await self._remove(member, room_id)
        logger.info(f"Member {member.member_id} left room {room_id}")

    async def on_disconnect(self, member: RoomMember) -> None:
        """Forget a member whose connection went away."""
        room_id = self._member_rooms.get(member)
        if room_id is None:
            return
        await self._remove(member, room_id)
        logger.info(f"Member {member.member_id} disconnected from room {room_id}")

    async def _remove(self, member: RoomMember, room_id: str) -> None:
        async with self._lock_for(room_id):
            members = self._rooms.get(room_id)
            if members is not None:
                members.discard(member)
                if not members:
                    del self._rooms[room_id]
                    self._locks.pop(room_id, None)
            if self._member_rooms.get(member) == room_id:
                del self._member_rooms[member]

    async def publish(self, sender: RoomMember | None, event: Any) -> int:
        """Deliver ``event`` to every other member of its room.

        Args:
            sender: The publishing member, excluded from delivery.
            event: Decoded event payload. Only ``roomId`` is read.

        Returns:
            Number of members the event was handed to.
        """
        room_id = event.get("roomId") if isinstance(event, dict) else None
        if not isinstance(room_id, str) or not room_id:
            logger.warning("Dropping sync event without a roomId")
            return 0

        if room_id not in self._rooms:
            logger.debug(f"No members in room {room_id}, dropping event")
            return 0

        delivered = 0
        async with self._lock_for(room_id):
            for member in self._rooms.get(room_id, ()):
                if member is sender:
                    continue
                try:
                    member.deliver(event)
                    delivered += 1
                except Exception as e:
                    logger.debug(f"Delivery to {member.member_id} failed: {e}")

        logger.info(
            f"Syncing room {room_id} to {event.get('uri')} @ {event.get('position')}ms "
            f"({delivered} recipients)"
        )
        return delivered

    def room_of(self, member: RoomMember) -> str | None:
        """Room the member is currently in, if any."""
        return self._member_rooms.get(member)

    def members(self, room_id: str) -> list[RoomMember]:
        """Snapshot of a room's members."""
        return list(self._rooms.get(room_id, ()))

    def rooms(self) -> dict[str, int]:
        """Snapshot of room ids with their member counts."""
        return {room_id: len(members) for room_id, members in self._rooms.items()}
