"""WebSocket relay server."""

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from .. import __version__
from .rooms import RoomMember, RoomRelay

logger = logging.getLogger(__name__)


class WebSocketMember(RoomMember):
    """A relay member backed by a WebSocket connection.

    Outbound frames go through a queue drained by a single writer task, so
    fan-out never waits on a slow socket and frames keep their order.
    """

    def __init__(self, websocket: WebSocket):
        self._websocket = websocket
        self._id = uuid.uuid4().hex[:8]
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._writer: asyncio.Task | None = None

    @property
    def member_id(self) -> str:
        return self._id

    def start(self) -> None:
        self._writer = asyncio.create_task(self._write_loop())

    def deliver(self, event: dict[str, Any]) -> None:
        self._queue.put_nowait({"type": "receive-sync", "event": event})

    def send_control(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    async def _write_loop(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                break
            try:
                await self._websocket.send_json(message)
            except Exception as e:
                # Socket is gone; the receive side will notice and clean up
                logger.debug(f"Send to {self._id} failed: {e}")
                break

    async def close(self) -> None:
        """Stop the writer task."""
        if self._writer is None:
            return
        self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(self._writer, timeout=1.0)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            self._writer.cancel()
        self._writer = None


async def handle_frame(relay: RoomRelay, member: WebSocketMember, raw: str) -> None:
    """Apply one client frame.

    Args:
        relay: The room relay.
        member: Member that sent the frame.
        raw: Text frame as received.
    """
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring invalid JSON from {member.member_id}")
        return

    if not isinstance(message, dict):
        logger.warning(f"Ignoring non-object frame from {member.member_id}")
        return

    msg_type = message.get("type")

    if msg_type == "join-room":
        room_id = message.get("roomId")
        if not isinstance(room_id, str) or not room_id:
            logger.warning(f"join-room from {member.member_id} without roomId")
            return
        await relay.join(member, room_id)
        member.send_control({"type": "joined", "roomId": room_id})

    elif msg_type == "send-sync":
        await relay.publish(member, message.get("event"))

    elif msg_type == "leave-room":
        await relay.leave(member)
        member.send_control({"type": "left"})

    else:
        logger.warning(f"Unknown frame type from {member.member_id}: {msg_type}")


def create_app(relay: RoomRelay | None = None) -> FastAPI:
    """Create the relay application.

    Args:
        relay: Room relay to serve. A fresh one is created if omitted.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Playsync Relay",
        description="Room-scoped fan-out of playback sync events",
        version=__version__,
    )

    relay = relay or RoomRelay()
    app.state.relay = relay

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/rooms")
    async def rooms():
        return {"rooms": relay.rooms()}

    @app.websocket("/ws")
    async def relay_socket(websocket: WebSocket):
        await websocket.accept()
        member = WebSocketMember(websocket)
        member.start()
        logger.info(f"New client connected: {member.member_id}")

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))

                raw = message.get("text")
                if raw is None and message.get("bytes") is not None:
                    try:
                        raw = message["bytes"].decode("utf-8")
                    except UnicodeDecodeError:
                        logger.warning(f"Ignoring undecodable binary frame from {member.member_id}")
                        continue
                if raw is None:
                    logger.warning(f"Ignoring empty frame from {member.member_id}")
                    continue
                await handle_frame(relay, member, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await relay.on_disconnect(member)
            await member.close()
            logger.info(f"Client disconnected: {member.member_id}")

    return app
