#!/usr/bin/env python3
"""
Data models for qusb-stats.
"""

from collections import namedtuple
from dataclasses import dataclass
from enum import Enum

from qusb_stats.config import (
    CONNECT_TIMEOUT_S,
    POLL_INTERVAL_MS,
    QUSB_HOST,
    QUSB_PORT,
    RECONNECT_BACKOFF_MS,
    SETTLE_MS,
    STAGGER_MS,
    WATCHDOG_TIMEOUT_MS,
)


# ============================================================================
# Session state
# ============================================================================

class ConnectionPhase(Enum):
    """Phases of one connection lifecycle."""
    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_DEVICE_LIST = "awaiting_device_list"
    ATTACHING = "attaching"
    POLLING = "polling"
    DISCONNECTED = "disconnected"


class SessionStatus(Enum):
    """Status notifications passed to the status callback."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    NO_DEVICE = "no_device"


# ============================================================================
# Configuration
# ============================================================================

@dataclass
class SessionConfig:
    """Connection target and timing, in seconds."""
    host: str = QUSB_HOST
    port: int = QUSB_PORT
    poll_interval_s: float = POLL_INTERVAL_MS / 1000.0
    timeout_s: float = WATCHDOG_TIMEOUT_MS / 1000.0
    stagger_s: float = STAGGER_MS / 1000.0
    settle_s: float = SETTLE_MS / 1000.0
    reconnect_backoff_s: float = RECONNECT_BACKOFF_MS / 1000.0
    connect_timeout_s: float = CONNECT_TIMEOUT_S

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"


# ============================================================================
# Polling
# ============================================================================

PendingRead = namedtuple("PendingRead", ["key", "address"])


@dataclass
class SessionStats:
    connects: int = 0
    disconnects: int = 0
    errors: int = 0
    timeouts: int = 0
    protocol_errors: int = 0
    reconnects: int = 0
    requests_sent: int = 0
    values_received: int = 0
