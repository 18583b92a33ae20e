"""Single-deadline watchdog timer on the asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class WatchdogTimeout(TimeoutError):
    """No progress milestone was reached before the deadline."""

    def __init__(self, reason: str, timeout_s: float) -> None:
        super().__init__(f"{reason}: no progress within {timeout_s:.1f}s")
        self.reason = reason
        self.timeout_s = timeout_s


class Watchdog:
    """At most one outstanding deadline; arming replaces, never stacks."""

    def __init__(self, on_expire: Callable[[WatchdogTimeout], None]) -> None:
        self._on_expire = on_expire
        self._handle: asyncio.TimerHandle | None = None
        self._token = 0
        self.reason: str | None = None
        self.timeout_s: float = 0.0

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def deadline(self) -> float | None:
        """Loop time at which the watchdog fires, or None."""
        if self._handle is None:
            return None
        return self._handle.when()

    def arm(self, timeout_s: float, reason: str) -> None:
        self.cancel()
        self._token += 1
        self.reason = reason
        self.timeout_s = timeout_s
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(timeout_s, self._fire, self._token)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        # Invalidate a callback that is already queued on the loop
        self._token += 1
        self.reason = None

    def _fire(self, token: int) -> None:
        if token != self._token:
            return
        self._handle = None
        timeout = WatchdogTimeout(self.reason or "watchdog", self.timeout_s)
        self.reason = None
        logger.warning(f"⏱️ Watchdog expired ({timeout})")
        self._on_expire(timeout)
