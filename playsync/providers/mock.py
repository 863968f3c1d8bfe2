"""In-memory playback provider for testing and local demos."""

import logging
from typing import Callable

from ..errors import ProviderError
from ..events import now_ms
from .base import Command, PlaybackProvider, PlaybackState

logger = logging.getLogger(__name__)


class MockProvider(PlaybackProvider):
    """Simulated player whose position advances with a clock.

    Every command is recorded in ``commands``. Use ``fail_next`` to make the
    next call raise.
    """

    def __init__(
        self,
        track_uri: str | None = None,
        is_playing: bool = False,
        position_ms: int = 0,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the mock player.

        Args:
            track_uri: Initially loaded item, or None for nothing loaded.
            is_playing: Whether playback is running initially.
            position_ms: Initial position.
            clock: Millisecond clock driving position advance.
        """
        self._clock = clock
        self._track_uri = track_uri
        self._is_playing = is_playing
        self._anchor_position = position_ms
        self._anchor_time = clock()
        self._failures: list[Exception] = []
        self.commands: list[Command] = []

    @property
    def name(self) -> str:
        return "mock"

    def fail_next(self, error: Exception | None = None) -> None:
        """Make the next provider call raise ``error``."""
        self._failures.append(error or ProviderError("Injected failure"))

    def _maybe_fail(self) -> None:
        if self._failures:
            raise self._failures.pop(0)

    def _position(self) -> int:
        if not self._is_playing:
            return self._anchor_position
        return self._anchor_position + (self._clock() - self._anchor_time)

    def _set_position(self, position_ms: int) -> None:
        self._anchor_position = max(0, position_ms)
        self._anchor_time = self._clock()

    def set_state(
        self,
        track_uri: str | None,
        is_playing: bool,
        position_ms: int | None = None,
    ) -> None:
        """Change playback without recording a command.

        Simulates a user acting on the player directly.
        """
        current = self._position()
        self._track_uri = track_uri
        self._is_playing = is_playing
        self._set_position(current if position_ms is None else position_ms)

    async def get_current_playback(self) -> PlaybackState:
        self._maybe_fail()
        return PlaybackState(
            track_uri=self._track_uri,
            is_playing=self._is_playing,
            position_ms=self._position(),
            sampled_at_ms=self._clock(),
            device_id="mock",
        )

    async def start_playback(self, uri: str, position_ms: int) -> None:
        self._maybe_fail()
        self.commands.append(Command("start_playback", uri=uri, position_ms=position_ms))
        self._track_uri = uri
        self._is_playing = True
        self._set_position(position_ms)
        logger.debug(f"Mock start_playback {uri} @ {position_ms}ms")

    async def seek(self, position_ms: int) -> None:
        self._maybe_fail()
        self.commands.append(Command("seek", position_ms=position_ms))
        self._set_position(position_ms)

    async def resume(self) -> None:
        self._maybe_fail()
        self.commands.append(Command("resume"))
        position = self._position()
        self._is_playing = True
        self._set_position(position)

    async def pause(self) -> None:
        self._maybe_fail()
        self.commands.append(Command("pause"))
        position = self._position()
        self._is_playing = False
        self._set_position(position)
