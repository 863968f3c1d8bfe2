"""Room-scoped relay that forwards sync events between agents."""

from .rooms import RoomMember, RoomRelay

__all__ = ["RoomMember", "RoomRelay"]
