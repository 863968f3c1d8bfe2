"""The sync event exchanged between leader and followers."""

import json
import time
from dataclasses import dataclass
from typing import Any

from .errors import EventValidationError

# Wire keys, in the order they are serialized
WIRE_FIELDS = ("roomId", "uri", "isPlaying", "position", "timestamp")


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def _require_str(data: dict, key: str) -> str:
    value = data[key]
    if not isinstance(value, str) or not value:
        raise EventValidationError(f"'{key}' must be a non-empty string")
    return value


def _require_int(data: dict, key: str) -> int:
    value = data[key]
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise EventValidationError(f"'{key}' must be an integer")
    return value


@dataclass(frozen=True)
class SyncEvent:
    """A playback state sample published by the leader of a room.

    ``timestamp_ms`` is the sender's clock at the instant ``position_ms`` was
    sampled, so a receiver can project the position forward by
    ``now - timestamp_ms``.
    """

    room_id: str
    track_uri: str
    is_playing: bool
    position_ms: int
    timestamp_ms: int

    def __post_init__(self) -> None:
        if self.position_ms < 0:
            raise EventValidationError("'position' must be >= 0")

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation."""
        return {
            "roomId": self.room_id,
            "uri": self.track_uri,
            "isPlaying": self.is_playing,
            "position": self.position_ms,
            "timestamp": self.timestamp_ms,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> "SyncEvent":
        """Parse a wire payload.

        Args:
            data: Decoded JSON object.

        Returns:
            The parsed SyncEvent.

        Raises:
            EventValidationError: If a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise EventValidationError("Sync event must be a JSON object")

        missing = [key for key in WIRE_FIELDS if key not in data]
        if missing:
            raise EventValidationError(f"Missing fields: {', '.join(missing)}")

        is_playing = data["isPlaying"]
        if not isinstance(is_playing, bool):
            raise EventValidationError("'isPlaying' must be a boolean")

        return cls(
            room_id=_require_str(data, "roomId"),
            track_uri=_require_str(data, "uri"),
            is_playing=is_playing,
            position_ms=_require_int(data, "position"),
            timestamp_ms=_require_int(data, "timestamp"),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "SyncEvent":
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EventValidationError(f"Invalid JSON: {e}") from e
        return cls.from_dict(data)
