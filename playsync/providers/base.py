"""Base classes for playback providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class PlaybackState:
    """Playback as reported by a provider at one instant."""

    track_uri: str | None  # None when nothing is loaded
    is_playing: bool
    position_ms: int
    sampled_at_ms: int  # Wall clock when the sample was taken
    device_id: str | None = None

    @property
    def has_active_item(self) -> bool:
        return self.track_uri is not None


@dataclass
class Command:
    """A corrective command issued to a provider."""

    name: str  # "start_playback", "seek", "resume", "pause"
    uri: str | None = None
    position_ms: int | None = None


class PlaybackProvider(ABC):
    """Abstract media player the agents talk to.

    Every method may raise a ``ProviderError`` subclass. Callers treat all of
    them as transient.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider name used in logs."""
        pass

    @abstractmethod
    async def get_current_playback(self) -> PlaybackState:
        """Sample the current playback state."""
        pass

    @abstractmethod
    async def start_playback(self, uri: str, position_ms: int) -> None:
        """Start playing ``uri`` at ``position_ms``."""
        pass

    @abstractmethod
    async def seek(self, position_ms: int) -> None:
        """Move the current item to ``position_ms``."""
        pass

    @abstractmethod
    async def resume(self) -> None:
        """Resume the current item."""
        pass

    @abstractmethod
    async def pause(self) -> None:
        """Pause the current item."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None
