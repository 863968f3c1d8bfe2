"""Playback providers that the leader samples and followers command."""

from .base import Command, PlaybackProvider, PlaybackState
from .mock import MockProvider
from .spotify import SpotifyProvider

__all__ = [
    "Command",
    "PlaybackProvider",
    "PlaybackState",
    "MockProvider",
    "SpotifyProvider",
]
