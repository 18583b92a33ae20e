#!/usr/bin/env python3
"""
Session controller - connection lifecycle and polling state machine.

Connect -> DeviceList -> Attach -> settle -> poll, with:
- a watchdog over the handshake and every poll tick (immediate reconnect)
- a fixed backoff reconnect after an unexpected close
- an epoch counter bumped on every teardown; deferred callbacks from an
  older epoch are no-ops
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable

from qusb_stats.addresses import AddressRegistry
from qusb_stats.backoff import FixedBackoff
from qusb_stats.handshake import DeviceHandshake
from qusb_stats.models import ConnectionPhase, SessionConfig, SessionStats, SessionStatus
from qusb_stats.poller import PendingReadQueue, PollScheduler, ResponseCorrelator
from qusb_stats.protocol import EmptyDeviceListError, ProtocolError, get_address_request
from qusb_stats.transport import TransportError, WebSocketTransport
from qusb_stats.watchdog import Watchdog, WatchdogTimeout

logger = logging.getLogger(__name__)

StatusCallback = Callable[[SessionStatus], None]
ValueCallback = Callable[[str, int], None]


class SessionController:
    """Top-level session; the only object external callers talk to."""

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        status_callback: StatusCallback | None = None,
        value_callback: ValueCallback | None = None,
        registry: AddressRegistry | None = None,
        transport_factory: Callable[..., Any] = WebSocketTransport,
    ) -> None:
        self.config = config or SessionConfig()
        self.registry = registry or AddressRegistry()
        self.active = False
        self.phase = ConnectionPhase.IDLE
        self.device_name: str | None = None
        self.current_values: dict[str, int] = {}
        self.stats = SessionStats()

        self._status_callback = status_callback
        self._value_callback = value_callback
        self._transport_factory = transport_factory
        self._transport: Any | None = None
        self._handshake: DeviceHandshake | None = None
        self._epoch = 0
        self._settle_handle: asyncio.TimerHandle | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None

        self._backoff = FixedBackoff(self.config.reconnect_backoff_s)
        self._watchdog = Watchdog(self._on_watchdog_expired)
        self.pending = PendingReadQueue()
        self._poller = PollScheduler(
            self.pending,
            interval_s=self.config.poll_interval_s,
            stagger_s=self.config.stagger_s,
            table_provider=lambda: self.registry.table,
            send_read=self._send_read,
            is_open=self.is_connected,
            on_cycle=self._on_poll_cycle,
        )
        self._correlator = ResponseCorrelator(self.pending, self._deliver_value)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_status_callback(self, callback: StatusCallback | None) -> None:
        self._status_callback = callback

    def set_value_callback(self, callback: ValueCallback | None) -> None:
        self._value_callback = callback

    def set_selection(self, keys: Iterable[str]) -> None:
        """Replace the active address set; applies from the next poll cycle."""
        self.registry.select(keys)
        if self.phase == ConnectionPhase.POLLING:
            # Replies still in flight must not be matched against the new table
            self._poller.discard_inflight()

    def set_host(self, host: str, port: int) -> None:
        """Change the target for the next connection (not the current one)."""
        self.config.host = host
        self.config.port = int(port)
        logger.info(f"Target set to {self.config.url}")

    def start(self) -> None:
        if self.active:
            return
        logger.info(f"▶️ Session start ({self.config.url})")
        self.active = True
        self._connect()

    def stop(self) -> None:
        if self.active:
            logger.info("⏹️ Session stop")
        self.active = False
        self._cancel_reconnect()
        self._teardown()
        self.phase = ConnectionPhase.IDLE

    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_open()

    def get_stats(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "phase": self.phase.value,
            "device": self.device_name,
            "pending_reads": len(self.pending),
            "active_keys": len(self.registry.table),
            "connects": self.stats.connects,
            "disconnects": self.stats.disconnects,
            "errors": self.stats.errors,
            "timeouts": self.stats.timeouts,
            "protocol_errors": self.stats.protocol_errors,
            "reconnects": self.stats.reconnects,
            "requests_sent": self.stats.requests_sent,
            "values_received": self.stats.values_received,
            "responses_dropped": self._correlator.dropped,
        }

    # ------------------------------------------------------------------
    # Connect / teardown
    # ------------------------------------------------------------------

    def _bind(self, callback: Callable[..., None]) -> Callable[..., None]:
        """Wrap a callback so it only runs for the current epoch."""
        epoch = self._epoch

        def _guarded(*args: Any) -> None:
            if epoch != self._epoch or not self.active:
                logger.debug(f"Stale callback {callback.__name__} ignored")
                return
            callback(*args)

        return _guarded

    def _connect(self) -> None:
        if self._transport is not None:
            return
        self._cancel_reconnect()
        self.phase = ConnectionPhase.CONNECTING
        self._transport = self._transport_factory(
            self.config.url,
            on_open=self._bind(self._on_open),
            on_text=self._bind(self._on_text),
            on_binary=self._bind(self._on_binary),
            on_error=self._bind(self._on_error),
            on_close=self._bind(self._on_close),
            connect_timeout_s=self.config.connect_timeout_s,
        )
        self._handshake = DeviceHandshake(self._transport.send)
        self._transport.open()

    def _teardown(self) -> None:
        """Drop the connection and every timer/queue tied to it."""
        self._epoch += 1
        self._watchdog.cancel()
        self._poller.stop()
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None
        self.pending.reset()
        self.current_values.clear()
        self._handshake = None
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
        self.phase = ConnectionPhase.DISCONNECTED

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        if not self.active:
            return
        delay = self._backoff.get_backoff_delay()
        self._backoff.record_failure()
        logger.info(
            f"🔄 Reconnecting in {delay:.1f}s (attempt #{self._backoff.attempts})"
        )
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._reconnect_due)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _reconnect_due(self) -> None:
        self._reconnect_handle = None
        if not self.active:
            return
        self.stats.reconnects += 1
        self._connect()

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def _on_open(self) -> None:
        self.stats.connects += 1
        self._cancel_reconnect()
        self._backoff.reset()
        self.phase = ConnectionPhase.AWAITING_DEVICE_LIST
        self._notify(SessionStatus.CONNECTING)
        self._handshake.request_devices()
        self._watchdog.arm(self.config.timeout_s, "handshake")

    def _on_text(self, data: str) -> None:
        if self.phase == ConnectionPhase.AWAITING_DEVICE_LIST:
            self._handle_device_list(data)
        else:
            logger.debug(f"Ignoring text frame in phase {self.phase.value}")

    def _on_binary(self, data: bytes) -> None:
        if self.phase in (ConnectionPhase.ATTACHING, ConnectionPhase.POLLING):
            self._correlator.accept(data)
        elif self.phase == ConnectionPhase.AWAITING_DEVICE_LIST:
            self._handle_device_list(data)

    def _on_error(self, error: TransportError) -> None:
        self.stats.errors += 1
        logger.error(f"❌ Transport error: {error}")
        self._notify(SessionStatus.ERROR)

    def _on_close(self, code: int | None) -> None:
        self.stats.disconnects += 1
        logger.warning(f"⚠️ Connection closed unexpectedly (code={code})")
        self._teardown()
        self._notify(SessionStatus.DISCONNECTED)
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Handshake / polling
    # ------------------------------------------------------------------

    def _handle_device_list(self, raw: str | bytes) -> None:
        try:
            device = self._handshake.accept_device_list(raw)
        except EmptyDeviceListError as e:
            logger.warning(f"⚠️ {e}")
            self._teardown()
            self._notify(SessionStatus.NO_DEVICE)
            self._schedule_reconnect()
            return
        except ProtocolError as e:
            # Watchdog will force a reconnect
            self.stats.protocol_errors += 1
            logger.warning(f"⚠️ {e}")
            return

        self.device_name = device
        self._watchdog.cancel()
        self.phase = ConnectionPhase.ATTACHING
        self._notify(SessionStatus.CONNECTED)
        loop = asyncio.get_running_loop()
        self._settle_handle = loop.call_later(
            self.config.settle_s, self._bind(self._begin_polling)
        )

    def _begin_polling(self) -> None:
        self._settle_handle = None
        self.phase = ConnectionPhase.POLLING
        self._poller.start()

    def _on_poll_cycle(self) -> None:
        # Re-armed on every tick, so during polling the watchdog only expires
        # once ticks stop sending (socket no longer open but no close seen).
        # A server that stays open but silent keeps being polled.
        self._watchdog.arm(self.config.timeout_s, "poll")

    def _send_read(self, address: int) -> bool:
        if self._transport is None:
            return False
        sent = self._transport.send(get_address_request(address))
        if sent:
            self.stats.requests_sent += 1
        return sent

    def _deliver_value(self, key: str, value: int) -> None:
        self.current_values[key] = value
        self.stats.values_received += 1
        if self._value_callback is None:
            return
        try:
            self._value_callback(key, value)
        except Exception:
            logger.exception(f"Value callback failed for {key}")

    def _on_watchdog_expired(self, timeout: WatchdogTimeout) -> None:
        self.stats.timeouts += 1
        self._teardown()
        self._notify(SessionStatus.DISCONNECTED)
        if self.active:
            logger.info("🔄 Reconnecting now after watchdog expiry")
            self._connect()

    def _notify(self, status: SessionStatus) -> None:
        logger.info(f"Status: {status.value}")
        if self._status_callback is None:
            return
        # Recovery steps follow most notifications and must still run
        try:
            self._status_callback(status)
        except Exception:
            logger.exception(f"Status callback failed for {status.value}")
