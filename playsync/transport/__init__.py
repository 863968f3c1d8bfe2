"""Transports that carry sync events between agents and the relay."""

from .base import RelayTransport, SyncHandler
from .mqtt import MQTTTransport
from .websocket import WebSocketTransport

__all__ = [
    "RelayTransport",
    "SyncHandler",
    "MQTTTransport",
    "WebSocketTransport",
]
