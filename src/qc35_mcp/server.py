"""MCP server entry point for RFCOMM-controlled noise-cancelling headsets.

Exposes tools and resources via the Model Context Protocol using the
official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .client.protocol_client import ProtocolClient
from .client.registry import DeviceRegistry
from .exceptions import HeadsetError
from .protocol.parser import ANC_LEVEL_NAMES

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "qc35",
    instructions="Control RFCOMM-connected noise-cancelling headsets: connection, ANC level and battery.",
)

CONNECT_WAIT = 10.0

LOW_BATTERY_WARN_THRESHOLD = 30
LOW_BATTERY_ERROR_THRESHOLD = 20

_ANC_LEVELS_BY_NAME = {name: level for level, name in ANC_LEVEL_NAMES.items()}


# ─── LOW BATTERY ─────────────────────────────────────────────────────

def check_low_battery(client: ProtocolClient, level: int) -> str | None:
    """Report a low battery once per threshold crossing.

    The client's ``last_low_battery_notification`` remembers the last
    threshold reported; the client resets it to 100 on disconnect.

    Returns:
        "error" or "warning" when a threshold was crossed, else None.
    """
    if (
        level <= LOW_BATTERY_ERROR_THRESHOLD
        and client.last_low_battery_notification > LOW_BATTERY_ERROR_THRESHOLD
    ):
        logger.error(
            "%s has under %d%% battery remaining",
            client.name,
            LOW_BATTERY_ERROR_THRESHOLD,
        )
        client.last_low_battery_notification = LOW_BATTERY_ERROR_THRESHOLD
        return "error"
    if (
        level <= LOW_BATTERY_WARN_THRESHOLD
        and client.last_low_battery_notification > LOW_BATTERY_WARN_THRESHOLD
    ):
        logger.warning(
            "%s has under %d%% battery remaining",
            client.name,
            LOW_BATTERY_WARN_THRESHOLD,
        )
        client.last_low_battery_notification = LOW_BATTERY_WARN_THRESHOLD
        return "warning"
    return None


def _on_battery_updated(device_id: str, level: int) -> None:
    client = _registry.get(device_id)
    if client is not None:
        check_low_battery(client, level)


# Global device registry
_registry = DeviceRegistry(battery_listener=_on_battery_updated)


def _get_client(device_id: str) -> ProtocolClient:
    """Get a registered client, raising if the device is unknown."""
    client = _registry.get(device_id)
    if client is None:
        raise RuntimeError(
            f"Unknown device '{device_id}'. Use the 'add_device' tool first."
        )
    return client


def _parse_anc_level(level: int | str) -> int:
    if isinstance(level, str):
        key = level.strip().lower()
        if key in _ANC_LEVELS_BY_NAME:
            return _ANC_LEVELS_BY_NAME[key]
        if key.isdigit():
            return int(key)
        raise ValueError(
            f"Unknown ANC level '{level}'. Valid: {list(_ANC_LEVELS_BY_NAME)}"
        )
    return level


# ─── DEVICE TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def add_device(
    address: str,
    name: str | None = None,
    device_id: str | None = None,
    connect: bool = True,
) -> dict[str, Any]:
    """Register a paired headset and optionally connect to it.

    Args:
        address: Bluetooth address, e.g. "4C:87:5D:00:11:22".
        name: Optional display name.
        device_id: Optional identity; defaults to the address.
        connect: Open the RFCOMM link right away (default True).
    """
    client = _registry.add(address, name=name, device_id=device_id)
    if connect:
        return _connect_client(client)
    return client.snapshot().to_dict()


@mcp.tool()
def remove_device(device_id: str) -> dict[str, bool]:
    """Disconnect a headset and forget it."""
    return {"removed": _registry.remove(device_id)}


@mcp.tool()
def list_devices() -> dict[str, Any]:
    """List registered headsets with their last known state."""
    return {"devices": [client.snapshot().to_dict() for client in _registry]}


# ─── CONNECTION TOOLS ────────────────────────────────────────────────

def _connect_client(client: ProtocolClient) -> dict[str, Any]:
    if client.connected:
        result = client.snapshot().to_dict()
        result["message"] = "Already connected"
        return result

    client.connect()
    if not client.wait_connected(CONNECT_WAIT):
        error = client.last_error or "Timed out waiting for connection"
        return {"connected": False, "error": str(error)}
    return client.snapshot().to_dict()


@mcp.tool()
def connect(device_id: str) -> dict[str, Any]:
    """Open the RFCOMM link to a registered headset.

    Sends the connect handshake followed by status and battery queries;
    the answers arrive asynchronously, so call get_status afterwards.
    """
    return _connect_client(_get_client(device_id))


@mcp.tool()
def disconnect(device_id: str) -> dict[str, bool]:
    """Close the RFCOMM link to a headset."""
    _get_client(device_id).disconnect()
    return {"disconnected": True}


# ─── CONTROL TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def get_status(device_id: str) -> dict[str, Any]:
    """Return connection, ANC and battery state of a headset."""
    return _get_client(device_id).snapshot().to_dict()


@mcp.tool()
def set_anc_level(device_id: str, level: int | str) -> dict[str, Any]:
    """Set the noise-cancellation level.

    Args:
        device_id: Registered device identity.
        level: 0/"off", 1/"low" or 2/"high".
    """
    client = _get_client(device_id)
    try:
        submitted = client.set_anc_level(_parse_anc_level(level))
    except (HeadsetError, ValueError) as e:
        return {"error": str(e)}

    if not client.connected:
        return {"error": "Device is not connected"}
    return {"submitted": submitted, "level": level}


@mcp.tool()
def refresh_status(device_id: str) -> dict[str, Any]:
    """Ask the headset to re-report its ANC and battery levels."""
    client = _get_client(device_id)
    try:
        client.query_status()
        client.query_battery()
    except HeadsetError as e:
        return {"error": str(e)}
    return {"requested": True}


# ─── RESOURCES ───────────────────────────────────────────────────────

@mcp.resource("headset://devices")
def devices_resource() -> str:
    """Registered headsets and their state as JSON."""
    return json.dumps(
        [client.snapshot().to_dict() for client in _registry], indent=2
    )


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Headset control MCP server")
    parser.add_argument(
        "--device",
        action="append",
        default=[],
        metavar="ADDRESS[=NAME]",
        help="Register (and connect to) a headset at start-up; repeatable",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    """Run the MCP server with stdio transport."""
    args = _parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))

    for entry in args.device:
        address, _, name = entry.partition("=")
        client = _registry.add(address, name=name or None)
        client.connect()

    try:
        mcp.run(transport="stdio")
    finally:
        _registry.close()


if __name__ == "__main__":
    main()
