"""MQTT transport: an MQTT broker acts as the room relay."""

import asyncio
import json
import logging
from typing import Any

import paho.mqtt.client as mqtt

from ..config import MQTTConfig
from ..errors import TransportError
from ..events import SyncEvent
from .base import RelayTransport

logger = logging.getLogger(__name__)


class MQTTTransport(RelayTransport):
    """Publishes and receives sync events on a per-room MQTT topic.

    Each payload is wrapped as ``{"sender": node_name, "event": {...}}`` and
    messages from this node are dropped on receipt, so the sender never gets
    its own events back.
    """

    def __init__(self, config: MQTTConfig, node_name: str):
        super().__init__()
        self.config = config
        self.node_name = node_name

        # Paho MQTT client
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self._client.on_connect = self._handle_connect
        self._client.on_message = self._handle_message
        self._client.on_disconnect = self._handle_disconnect

        # Connection state
        self._connected = False
        self._loop: asyncio.AbstractEventLoop | None = None

    def room_topic(self, room_id: str) -> str:
        """Topic carrying sync events for ``room_id``."""
        return f"{self.config.topic_prefix}/rooms/{room_id}/sync"

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        """Handle connection to broker."""
        if reason_code == 0:
            self._connected = True
            logger.info(f"Connected to MQTT broker at {self.config.broker}:{self.config.port}")

            # Resubscribe after reconnects
            if self._room_id:
                client.subscribe(self.room_topic(self._room_id), qos=1)
                logger.info(f"Subscribed to room {self._room_id}")
        else:
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")

    def _handle_message(
        self,
        client: mqtt.Client,
        userdata: Any,
        msg: mqtt.MQTTMessage,
    ) -> None:
        """Handle incoming message on the paho network thread."""
        try:
            envelope = json.loads(msg.payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning(f"Ignoring undecodable message on {msg.topic}")
            return

        if not isinstance(envelope, dict):
            logger.warning(f"Ignoring non-object message on {msg.topic}")
            return

        if envelope.get("sender") == self.node_name:
            return

        logger.debug(f"Received sync on {msg.topic}")

        if self._loop:
            self._loop.call_soon_threadsafe(self._dispatch_sync, envelope.get("event"))

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        """Handle disconnection from broker."""
        self._connected = False
        logger.warning(f"Disconnected from MQTT broker: {reason_code}")

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Connect to the MQTT broker.

        Returns:
            True if connection successful.
        """
        self._loop = asyncio.get_running_loop()

        if self.config.username and self.config.password:
            self._client.username_pw_set(self.config.username, self.config.password)

        try:
            self._client.connect(self.config.broker, self.config.port, keepalive=60)
            self._client.loop_start()

            # Wait for connection
            for _ in range(50):  # 5 second timeout
                if self._connected:
                    return True
                await asyncio.sleep(0.1)

            logger.error("Timeout waiting for MQTT connection")
            return False

        except OSError as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return False

    async def join(self, room_id: str) -> None:
        previous = self._room_id
        self._room_id = room_id
        if not self._connected:
            return
        if previous and previous != room_id:
            self._client.unsubscribe(self.room_topic(previous))
        self._client.subscribe(self.room_topic(room_id), qos=1)
        logger.info(f"Subscribed to room {room_id}")

    async def send_sync(self, event: SyncEvent) -> None:
        if not self._connected:
            raise TransportError("Not connected to MQTT broker")

        payload = json.dumps({"sender": self.node_name, "event": event.to_dict()})
        result = self._client.publish(self.room_topic(event.room_id), payload, qos=1)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"MQTT publish failed: rc={result.rc}")

    async def disconnect(self) -> None:
        """Disconnect from the MQTT broker."""
        self._client.loop_stop()
        self._client.disconnect()
        self._connected = False
