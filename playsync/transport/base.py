"""Base class for relay transports."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from ..events import SyncEvent

logger = logging.getLogger(__name__)

SyncHandler = Callable[[Any], None]


class RelayTransport(ABC):
    """Connection from an agent to its room on the relay.

    Received events are handed, still undecoded, to the handler registered
    with ``set_sync_handler``. Validation is the receiver's job.
    """

    def __init__(self):
        self._sync_handler: SyncHandler | None = None
        self._room_id: str | None = None

    def set_sync_handler(self, handler: SyncHandler | None) -> None:
        """Register the callback for incoming sync events."""
        self._sync_handler = handler

    def _dispatch_sync(self, payload: Any) -> None:
        if self._sync_handler is None:
            return
        try:
            self._sync_handler(payload)
        except Exception as e:
            logger.error(f"Sync handler failed: {e}", exc_info=True)

    @property
    def room_id(self) -> str | None:
        return self._room_id

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    async def connect(self) -> bool:
        """Connect to the relay.

        Returns:
            True if the connection was established.
        """
        pass

    @abstractmethod
    async def join(self, room_id: str) -> None:
        """Join ``room_id``, replacing any previous room."""
        pass

    @abstractmethod
    async def send_sync(self, event: SyncEvent) -> None:
        """Publish ``event`` to the other members of its room.

        Raises:
            TransportError: If the event could not be handed to the relay.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass
