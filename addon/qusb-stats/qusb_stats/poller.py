#!/usr/bin/env python3
"""
Polling - PendingReadQueue, PollScheduler, ResponseCorrelator.

GetAddress replies carry no request id. Correlation relies on the server
answering single-byte reads strictly in the order they were sent, so every
request is queued before it is sent and every reply consumes the oldest
queue entry.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Mapping

from qusb_stats.models import PendingRead

logger = logging.getLogger(__name__)


# ============================================================================
# Pending reads
# ============================================================================

class PendingReadQueue:
    """FIFO of reads awaiting exactly one reply each."""

    def __init__(self) -> None:
        self._items: deque[PendingRead] = deque()
        self.capacity = 0

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def reset(self, capacity: int = 0) -> int:
        """Drop everything (unanswered reads are not retried)."""
        dropped = len(self._items)
        self._items.clear()
        self.capacity = capacity
        return dropped

    def push(self, key: str, address: int) -> bool:
        if len(self._items) >= self.capacity:
            logger.debug(f"Pending queue full, not queuing {key}")
            return False
        self._items.append(PendingRead(key, address))
        return True

    def pop_oldest(self) -> PendingRead | None:
        if not self._items:
            return None
        return self._items.popleft()


# ============================================================================
# Scheduler
# ============================================================================

class PollScheduler:
    """Issues one staggered read per active address on a fixed cadence."""

    def __init__(
        self,
        pending: PendingReadQueue,
        *,
        interval_s: float,
        stagger_s: float,
        table_provider: Callable[[], Mapping[str, int]],
        send_read: Callable[[int], bool],
        is_open: Callable[[], bool],
        on_cycle: Callable[[], None],
    ) -> None:
        self.pending = pending
        self.interval_s = interval_s
        self.stagger_s = stagger_s
        self._table_provider = table_provider
        self._send_read = send_read
        self._is_open = is_open
        self._on_cycle = on_cycle
        self._task: asyncio.Task[Any] | None = None
        self._batch: list[asyncio.TimerHandle] = []
        self._batch_token = 0
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            self._task.cancel()
        logger.info(f"📡 Polling every {self.interval_s * 1000:.0f} ms")
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.discard_inflight()

    def discard_inflight(self) -> None:
        """Cancel not-yet-sent reads of the current cycle and clear the queue."""
        for handle in self._batch:
            handle.cancel()
        self._batch = []
        self._batch_token += 1
        self.pending.reset()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            self.tick()

    def tick(self) -> list[tuple[float, str, int]]:
        """Start one poll cycle; returns the send plan (offset_s, key, address)."""
        if not self._is_open():
            return []
        self._on_cycle()
        table = self._table_provider()
        self.discard_inflight()
        self.pending.reset(capacity=len(table))
        self.cycles += 1

        loop = asyncio.get_running_loop()
        token = self._batch_token
        plan = []
        for index, (key, address) in enumerate(table.items()):
            offset = index * self.stagger_s
            self._batch.append(
                loop.call_later(offset, self._send_one, token, key, address)
            )
            plan.append((offset, key, address))
        return plan

    def _send_one(self, token: int, key: str, address: int) -> None:
        if token != self._batch_token or not self._is_open():
            return
        # Queue before send: a reply must never find its key missing
        self.pending.push(key, address)
        self._send_read(address)


# ============================================================================
# Correlator
# ============================================================================

class ResponseCorrelator:
    """Matches each binary reply to the oldest pending read."""

    def __init__(
        self,
        pending: PendingReadQueue,
        on_value: Callable[[str, int], None],
    ) -> None:
        self.pending = pending
        self._on_value = on_value
        self.dropped = 0

    def accept(self, payload: bytes) -> tuple[str, int] | None:
        if not payload:
            logger.debug("Empty read reply ignored")
            return None
        entry = self.pending.pop_oldest()
        if entry is None:
            self.dropped += 1
            logger.debug(f"Unmatched read reply dropped ({len(payload)} bytes)")
            return None
        value = payload[0]
        logger.debug(f"← {entry.key}@{entry.address:X} = {value}")
        self._on_value(entry.key, value)
        return entry.key, value
