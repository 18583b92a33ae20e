"""
usb2snes wire requests and reply parsing.

Requests are JSON text frames ``{"Opcode", "Space", "Operands"}``. The
DeviceList reply is a JSON text frame with a ``Results`` list; a GetAddress
reply is a bare binary frame carrying the requested bytes. Binary replies
have no request id, so callers must correlate them by send order.
"""

from __future__ import annotations

import json
from typing import Any

from qusb_stats.addresses import format_address

SPACE_SNES = "SNES"

OP_DEVICE_LIST = "DeviceList"
OP_ATTACH = "Attach"
OP_GET_ADDRESS = "GetAddress"

READ_LENGTH = "1"


class ProtocolError(ValueError):
    """Reply from the server could not be understood."""


class EmptyDeviceListError(ProtocolError):
    """Server answered DeviceList with no devices."""


def build_request(opcode: str, operands: list[str] | None = None) -> dict[str, Any]:
    request: dict[str, Any] = {"Opcode": opcode, "Space": SPACE_SNES}
    if operands is not None:
        request["Operands"] = list(operands)
    return request


def device_list_request() -> dict[str, Any]:
    return build_request(OP_DEVICE_LIST)


def attach_request(device: str) -> dict[str, Any]:
    return build_request(OP_ATTACH, [device])


def get_address_request(address: int) -> dict[str, Any]:
    return build_request(OP_GET_ADDRESS, [format_address(address), READ_LENGTH])


def parse_device_list(raw: str | bytes) -> list[str]:
    """Parse a DeviceList reply into device names.

    Raises ProtocolError when the payload is not a JSON object, and
    EmptyDeviceListError when it lists no devices.
    """
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"Malformed device list: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError(f"Unexpected device list payload: {data!r}")

    results = data.get("Results")
    if results is None:
        raise EmptyDeviceListError("Device list has no Results")
    if not isinstance(results, list):
        raise ProtocolError(f"Results is not a list: {results!r}")
    if not results:
        raise EmptyDeviceListError("No devices attached to server")
    return [str(device) for device in results]
