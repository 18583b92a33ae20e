"""DeviceHandshake - DeviceList -> Attach sequence for one connection."""

from __future__ import annotations

import logging
from typing import Any, Callable

from qusb_stats.protocol import attach_request, device_list_request, parse_device_list

logger = logging.getLogger(__name__)


class DeviceHandshake:
    """Drives device discovery and attach over a send callable."""

    def __init__(self, send: Callable[[dict[str, Any]], bool]) -> None:
        self._send = send
        self.device: str | None = None

    def request_devices(self) -> bool:
        logger.debug("Requesting device list")
        return self._send(device_list_request())

    def accept_device_list(self, raw: str | bytes) -> str:
        """Attach to the first listed device and return its name.

        Raises ProtocolError / EmptyDeviceListError from parsing; nothing is
        sent in that case.
        """
        devices = parse_device_list(raw)
        device = devices[0]
        if len(devices) > 1:
            logger.debug(f"Several devices listed, using first: {devices}")
        self._send(attach_request(device))
        self.device = device
        logger.info(f"🎮 Attaching to device {device}")
        return device
