"""Configuration loading for Playsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

TRANSPORTS = ("websocket", "mqtt")
PROVIDERS = ("spotify", "mock")


@dataclass
class NodeConfig:
    name: str = "playsync-node"


@dataclass
class RoomConfig:
    id: str = "default-room"


@dataclass
class SyncConfig:
    """Timing knobs for the sync protocol."""

    poll_interval_ms: int = 5000  # Leader sampling cadence
    drift_threshold_ms: int = 2000  # Follower seek hysteresis
    command_timeout_seconds: float = 10.0  # 0 disables the bound


@dataclass
class RelayConfig:
    transport: str = "websocket"  # "websocket" or "mqtt"
    url: str = "ws://localhost:8888/ws"  # Where agents connect
    host: str = "0.0.0.0"  # Where the relay server listens
    port: int = 8888
    reconnect_delay_seconds: float = 5.0


@dataclass
class MQTTConfig:
    broker: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    topic_prefix: str = "playsync"


@dataclass
class SpotifyConfig:
    """Credentials and endpoints for the Spotify Web API."""

    client_id: str = ""
    client_secret: str = ""
    access_token: str = ""
    refresh_token: str = ""
    device_id: str | None = None
    api_base_url: str = "https://api.spotify.com/v1"
    token_url: str = "https://accounts.spotify.com/api/token"
    timeout_seconds: float = 10.0


@dataclass
class ProviderConfig:
    type: str = "spotify"  # "spotify" or "mock"
    spotify: SpotifyConfig = field(default_factory=SpotifyConfig)


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    room: RoomConfig = field(default_factory=RoomConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with PLAYSYNC_ prefix."""
    return os.environ.get(f"PLAYSYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if name := _get_env("NODE_NAME"):
        config.node.name = name
    if room_id := _get_env("ROOM_ID"):
        config.room.id = room_id

    # Sync timing
    if poll := _get_env("POLL_INTERVAL_MS"):
        config.sync.poll_interval_ms = int(poll)
    if threshold := _get_env("DRIFT_THRESHOLD_MS"):
        config.sync.drift_threshold_ms = int(threshold)
    if timeout := _get_env("COMMAND_TIMEOUT_SECONDS"):
        config.sync.command_timeout_seconds = float(timeout)

    # Relay
    if transport := _get_env("RELAY_TRANSPORT"):
        config.relay.transport = transport.lower()
    if url := _get_env("RELAY_URL"):
        config.relay.url = url
    if host := _get_env("RELAY_HOST"):
        config.relay.host = host
    if port := _get_env("RELAY_PORT"):
        config.relay.port = int(port)

    # MQTT
    if broker := _get_env("MQTT_BROKER"):
        config.mqtt.broker = broker
    if port := _get_env("MQTT_PORT"):
        config.mqtt.port = int(port)
    if username := _get_env("MQTT_USERNAME"):
        config.mqtt.username = username
    if password := _get_env("MQTT_PASSWORD"):
        config.mqtt.password = password

    # Provider
    if provider_type := _get_env("PROVIDER"):
        config.provider.type = provider_type.lower()
    spotify = config.provider.spotify
    if client_id := _get_env("SPOTIFY_CLIENT_ID"):
        spotify.client_id = client_id
    if client_secret := _get_env("SPOTIFY_CLIENT_SECRET"):
        spotify.client_secret = client_secret
    if access_token := _get_env("SPOTIFY_ACCESS_TOKEN"):
        spotify.access_token = access_token
    if refresh_token := _get_env("SPOTIFY_REFRESH_TOKEN"):
        spotify.refresh_token = refresh_token
    if device_id := _get_env("SPOTIFY_DEVICE_ID"):
        spotify.device_id = device_id

    return config


def _validate(config: Config) -> None:
    """Reject values the agents cannot run with."""
    if not config.room.id:
        raise ConfigError("room.id must not be empty")
    if config.sync.poll_interval_ms <= 0:
        raise ConfigError("sync.poll_interval_ms must be positive")
    if config.sync.drift_threshold_ms < 0:
        raise ConfigError("sync.drift_threshold_ms must be >= 0")
    if config.sync.command_timeout_seconds < 0:
        raise ConfigError("sync.command_timeout_seconds must be >= 0")
    if config.relay.transport not in TRANSPORTS:
        raise ConfigError(
            f"relay.transport must be one of {', '.join(TRANSPORTS)}, "
            f"got '{config.relay.transport}'"
        )
    if config.provider.type not in PROVIDERS:
        raise ConfigError(
            f"provider.type must be one of {', '.join(PROVIDERS)}, "
            f"got '{config.provider.type}'"
        )


def _parse_spotify(data: dict, default: SpotifyConfig) -> SpotifyConfig:
    """Parse Spotify provider configuration."""
    return SpotifyConfig(
        client_id=data.get("client_id", default.client_id),
        client_secret=data.get("client_secret", default.client_secret),
        access_token=data.get("access_token", default.access_token),
        refresh_token=data.get("refresh_token", default.refresh_token),
        device_id=data.get("device_id", default.device_id),
        api_base_url=data.get("api_base_url", default.api_base_url),
        token_url=data.get("token_url", default.token_url),
        timeout_seconds=data.get("timeout_seconds", default.timeout_seconds),
    )


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ConfigError: If a value is invalid.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "node" in data:
                config.node = NodeConfig(
                    name=data["node"].get("name", config.node.name)
                )

            if "room" in data:
                config.room = RoomConfig(id=str(data["room"].get("id", config.room.id)))

            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    poll_interval_ms=sync_data.get(
                        "poll_interval_ms", config.sync.poll_interval_ms
                    ),
                    drift_threshold_ms=sync_data.get(
                        "drift_threshold_ms", config.sync.drift_threshold_ms
                    ),
                    command_timeout_seconds=sync_data.get(
                        "command_timeout_seconds", config.sync.command_timeout_seconds
                    ),
                )

            if "relay" in data:
                relay_data = data["relay"]
                config.relay = RelayConfig(
                    transport=relay_data.get("transport", config.relay.transport),
                    url=relay_data.get("url", config.relay.url),
                    host=relay_data.get("host", config.relay.host),
                    port=relay_data.get("port", config.relay.port),
                    reconnect_delay_seconds=relay_data.get(
                        "reconnect_delay_seconds", config.relay.reconnect_delay_seconds
                    ),
                )

            if "mqtt" in data:
                mqtt_data = data["mqtt"]
                config.mqtt = MQTTConfig(
                    broker=mqtt_data.get("broker", config.mqtt.broker),
                    port=mqtt_data.get("port", config.mqtt.port),
                    username=mqtt_data.get("username"),
                    password=mqtt_data.get("password"),
                    topic_prefix=mqtt_data.get("topic_prefix", config.mqtt.topic_prefix),
                )

            if "provider" in data:
                provider_data = data["provider"]
                config.provider = ProviderConfig(
                    type=provider_data.get("type", config.provider.type),
                    spotify=_parse_spotify(
                        provider_data.get("spotify") or {}, config.provider.spotify
                    ),
                )

    config = _apply_env_overrides(config)
    _validate(config)

    return config
