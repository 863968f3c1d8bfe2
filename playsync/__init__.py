"""Playsync: keep playback in step across agents sharing a room."""

__version__ = "0.1.0"
