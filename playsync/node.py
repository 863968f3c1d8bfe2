"""Wires provider, transport and agent together for one process."""

import asyncio
import logging
from typing import Callable

from .agents import FollowerAgent, LeaderAgent
from .config import Config
from .events import now_ms
from .providers import MockProvider, PlaybackProvider, SpotifyProvider
from .transport import MQTTTransport, RelayTransport, WebSocketTransport

logger = logging.getLogger(__name__)

ROLES = ("leader", "follower")


def build_provider(config: Config) -> PlaybackProvider:
    """Create the configured playback provider."""
    if config.provider.type == "mock":
        return MockProvider()
    return SpotifyProvider(config.provider.spotify)


def build_transport(config: Config) -> RelayTransport:
    """Create the configured relay transport."""
    if config.relay.transport == "mqtt":
        return MQTTTransport(config.mqtt, node_name=config.node.name)
    return WebSocketTransport(
        config.relay.url,
        reconnect_delay_seconds=config.relay.reconnect_delay_seconds,
    )


class SyncNode:
    """One leader or follower process attached to a room."""

    def __init__(
        self,
        config: Config,
        role: str,
        provider: PlaybackProvider | None = None,
        transport: RelayTransport | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")

        self.config = config
        self.role = role
        self._provider = provider or build_provider(config)
        self._transport = transport or build_transport(config)
        self._stop_event = asyncio.Event()

        self._leader: LeaderAgent | None = None
        self._follower: FollowerAgent | None = None
        if role == "leader":
            self._leader = LeaderAgent(
                self._provider,
                self._transport,
                room_id=config.room.id,
                poll_interval_ms=config.sync.poll_interval_ms,
            )
        else:
            self._follower = FollowerAgent(
                self._provider,
                room_id=config.room.id,
                drift_threshold_ms=config.sync.drift_threshold_ms,
                command_timeout_seconds=config.sync.command_timeout_seconds,
                clock=clock,
            )
            self._transport.set_sync_handler(self._follower.submit)

    async def start(self) -> None:
        """Connect to the relay, join the room and start the agent."""
        logger.info(
            f"Starting {self.role} {self.config.node.name} in room {self.config.room.id} "
            f"(provider={self._provider.name}, transport={self.config.relay.transport})"
        )

        # Join before connecting so the room is (re)joined on every connect
        await self._transport.join(self.config.room.id)
        connected = await self._transport.connect()
        if not connected:
            logger.error("Failed to connect to relay")
            raise RuntimeError("Relay connection failed")

        if self._leader:
            await self._leader.start()
        if self._follower:
            await self._follower.start()

    async def stop(self) -> None:
        """Stop the agent and release connections."""
        logger.info(f"Stopping {self.role}...")
        self._stop_event.set()

        if self._leader:
            await self._leader.stop()
        if self._follower:
            await self._follower.stop()

        await self._transport.disconnect()
        await self._provider.close()
        logger.info(f"{self.role.capitalize()} stopped")

    async def wait(self) -> None:
        """Block until ``stop`` is called."""
        await self._stop_event.wait()


async def run_node(config: Config, role: str) -> None:
    """Run a leader or follower until interrupted.

    Args:
        config: Configuration for the node.
        role: "leader" or "follower".
    """
    node = SyncNode(config, role)

    try:
        await node.start()
        await node.wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        await node.stop()
