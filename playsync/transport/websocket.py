"""WebSocket transport to the Playsync relay server."""

import asyncio
import json
import logging

import websockets

from ..errors import TransportError
from ..events import SyncEvent
from .base import RelayTransport

logger = logging.getLogger(__name__)


class WebSocketTransport(RelayTransport):
    """Keeps a WebSocket open to the relay and rejoins the room on reconnect."""

    def __init__(self, url: str, reconnect_delay_seconds: float = 5.0):
        """Initialize the transport.

        Args:
            url: Relay WebSocket URL, e.g. "ws://localhost:8888/ws".
            reconnect_delay_seconds: Pause before reconnecting after a drop.
        """
        super().__init__()
        self.url = url
        self.reconnect_delay = reconnect_delay_seconds
        self._ws = None
        self._connected = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    async def connect(self, timeout: float = 10.0) -> bool:
        if self._task is None:
            self._running = True
            self._task = asyncio.create_task(self._run_loop())

        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.error(f"Timeout waiting for relay connection at {self.url}")
            return False

    async def _run_loop(self) -> None:
        """Connect, rejoin, and read frames until stopped."""
        while self._running:
            try:
                logger.info(f"Connecting to relay at {self.url}")
                async with websockets.connect(self.url) as ws:
                    self._ws = ws
                    if self._room_id:
                        await ws.send(self._join_frame(self._room_id))
                    self._connected.set()
                    logger.info("Connected to relay")

                    async for raw in ws:
                        self.handle_frame(raw)

            except websockets.exceptions.ConnectionClosed:
                logger.warning(
                    f"Relay connection closed, reconnecting in {self.reconnect_delay}s..."
                )
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.error(
                    f"Error connecting to relay: {e}, retrying in {self.reconnect_delay}s..."
                )
            finally:
                self._ws = None
                self._connected.clear()

            if self._running:
                await asyncio.sleep(self.reconnect_delay)

    @staticmethod
    def _join_frame(room_id: str) -> str:
        return json.dumps({"type": "join-room", "roomId": room_id})

    def handle_frame(self, raw: str | bytes) -> None:
        """Dispatch one frame received from the relay."""
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning(f"Invalid JSON from relay: {raw!r:.100}")
            return

        if not isinstance(message, dict):
            logger.warning("Ignoring non-object frame from relay")
            return

        msg_type = message.get("type")
        if msg_type == "receive-sync":
            self._dispatch_sync(message.get("event"))
        elif msg_type == "joined":
            logger.info(f"Joined room {message.get('roomId')}")
        else:
            logger.debug(f"Ignoring relay frame: {msg_type}")

    async def join(self, room_id: str) -> None:
        self._room_id = room_id
        if self._ws is not None:
            try:
                await self._ws.send(self._join_frame(room_id))
            except websockets.exceptions.ConnectionClosed as e:
                # Rejoined automatically once the connection comes back
                logger.warning(f"Join deferred, relay connection lost: {e}")

    async def send_sync(self, event: SyncEvent) -> None:
        if self._ws is None:
            raise TransportError("Not connected to relay")

        frame = json.dumps({"type": "send-sync", "event": event.to_dict()})
        try:
            await self._ws.send(frame)
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportError(f"Relay connection closed: {e}") from e

    async def disconnect(self) -> None:
        self._running = False
        if self._ws is not None:
            await self._ws.close()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._ws = None
        self._connected.clear()
