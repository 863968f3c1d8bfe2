"""CLI entry point for Playsync."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx

from .config import load_config
from .errors import ConfigError, ProviderError
from .node import build_provider, run_node


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level = getattr(logging, log_level.upper())
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def _load(args: argparse.Namespace):
    config = load_config(args.config)
    if getattr(args, "room", None):
        config.room.id = args.room
    return config


def cmd_relay(args: argparse.Namespace) -> int:
    """Run the relay server."""
    config = _load(args)

    try:
        import uvicorn

        from .relay.server import create_app
    except ImportError as e:
        print(f"Relay dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install playsync[relay]", file=sys.stderr)
        return 1

    host = args.host or config.relay.host
    port = args.port or config.relay.port
    print(f"Starting Playsync relay on ws://{host}:{port}/ws")

    uvicorn.run(
        create_app(),
        host=host,
        port=port,
        log_level="info" if args.verbose else "warning",
    )
    return 0


async def cmd_leader(args: argparse.Namespace) -> int:
    """Run a leader."""
    return await _run_role(args, "leader")


async def cmd_follower(args: argparse.Namespace) -> int:
    """Run a follower."""
    return await _run_role(args, "follower")


async def _run_role(args: argparse.Namespace, role: str) -> int:
    config = _load(args)

    print(f"Starting in {role} mode... joining room {config.room.id}")
    print(f"Relay: {config.relay.transport} ({config.relay.url if config.relay.transport == 'websocket' else config.mqtt.broker})")

    try:
        await run_node(config, role)
    except KeyboardInterrupt:
        print("\nShutting down...")
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def _relay_http_url(ws_url: str) -> str:
    """Map the relay's WebSocket URL to its HTTP base URL."""
    url = ws_url.replace("wss://", "https://", 1).replace("ws://", "http://", 1)
    if url.endswith("/ws"):
        url = url[: -len("/ws")]
    return url.rstrip("/")


async def cmd_status(args: argparse.Namespace) -> int:
    """Check relay and provider status."""
    config = _load(args)

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "node": {"name": config.node.name, "room": config.room.id},
    }

    # Relay
    relay_status = {"transport": config.relay.transport, "reachable": None}
    if config.relay.transport == "websocket":
        base_url = _relay_http_url(config.relay.url)
        relay_status["url"] = base_url
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                health = await client.get(f"{base_url}/health")
                relay_status["reachable"] = health.status_code == 200
                rooms = await client.get(f"{base_url}/rooms")
                if rooms.status_code == 200:
                    relay_status["rooms"] = rooms.json().get("rooms", {})
        except httpx.HTTPError as e:
            relay_status["reachable"] = False
            relay_status["error"] = str(e)
    else:
        relay_status["broker"] = f"{config.mqtt.broker}:{config.mqtt.port}"
    status_data["relay"] = relay_status

    # Provider
    provider = build_provider(config)
    provider_status = {"type": provider.name}
    try:
        state = await provider.get_current_playback()
        provider_status.update(
            reachable=True,
            track_uri=state.track_uri,
            is_playing=state.is_playing,
            position_ms=state.position_ms,
        )
    except ProviderError as e:
        provider_status.update(reachable=False, error=str(e))
    finally:
        await provider.close()
    status_data["provider"] = provider_status

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("Playsync Status Check")
    print("=====================")
    print(f"Node: {config.node.name}")
    print(f"Room: {config.room.id}")
    print()

    print(f"Relay ({relay_status['transport']}):")
    if relay_status["reachable"] is None:
        print(f"  Broker: {relay_status['broker']}")
    elif relay_status["reachable"]:
        print(f"  Status: Reachable ({relay_status['url']})")
        for room_id, count in relay_status.get("rooms", {}).items():
            print(f"    - {room_id}: {count} members")
    else:
        print(f"  Status: Not reachable ({relay_status['url']})")
        print("  Make sure the relay is running: playsync relay")

    print()

    print(f"Provider ({provider_status['type']}):")
    if provider_status["reachable"]:
        if provider_status["track_uri"]:
            state_str = "playing" if provider_status["is_playing"] else "paused"
            print(f"  Now: {provider_status['track_uri']} ({state_str} @ {provider_status['position_ms']}ms)")
        else:
            print("  Now: nothing active")
    else:
        print(f"  Status: Error ({provider_status['error']})")

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="playsync",
        description="Keep playback in sync across players sharing a room",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    relay_parser = subparsers.add_parser("relay", help="Run the relay server")
    relay_parser.add_argument("--host", type=str, default=None, help="Host to bind to")
    relay_parser.add_argument("-p", "--port", type=int, default=None, help="Port to listen on")
    relay_parser.set_defaults(func=cmd_relay)

    for role, func in (("leader", cmd_leader), ("follower", cmd_follower)):
        role_parser = subparsers.add_parser(role, help=f"Run as {role}")
        role_parser.add_argument("--room", type=str, default=None, help="Room to join")
        role_parser.set_defaults(func=func)

    status_parser = subparsers.add_parser("status", help="Check relay and provider status")
    status_parser.add_argument("--room", type=str, default=None, help="Room to report")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.log_json)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if asyncio.iscoroutinefunction(args.func):
            return asyncio.run(args.func(args))
        return args.func(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
