#!/usr/bin/env python3
"""
qusb-stats - application entry point.
"""

import asyncio
import logging
import signal
import sys
from contextlib import suppress

from qusb_stats.config import (
    LOG_LEVEL,
    MQTT_AVAILABLE,
    MQTT_HOST,
    MQTT_PORT,
    STATUS_INTERVAL,
    TRACKED_STATS,
    TRACKER_ID,
)
from qusb_stats.models import SessionConfig
from qusb_stats.mqtt_publisher import MQTTPublisher
from qusb_stats.session import SessionController

# Logging setup
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger(__name__)


def log_heartbeat(session: SessionController) -> None:
    """One-line summary of the session counters."""
    s = session.get_stats()
    logger.info(
        "💓 HB: phase=%s device=%s keys=%s pending=%s sent=%s values=%s "
        "dropped=%s connects=%s disconnects=%s timeouts=%s errors=%s",
        s["phase"],
        s["device"] or "n/a",
        s["active_keys"],
        s["pending_reads"],
        s["requests_sent"],
        s["values_received"],
        s["responses_dropped"],
        s["connects"],
        s["disconnects"],
        s["timeouts"],
        s["errors"],
    )


async def heartbeat_loop(session: SessionController) -> None:
    if STATUS_INTERVAL <= 0:
        logger.info("Heartbeat disabled (interval <= 0)")
        return
    while True:
        await asyncio.sleep(STATUS_INTERVAL)
        log_heartbeat(session)


async def main():
    """Main coroutine."""
    logger.info("=" * 60)
    logger.info("qusb-stats - usb2snes stat tracker")
    logger.info("=" * 60)

    config = SessionConfig()
    logger.info("📋 Configuration:")
    logger.info(f"   usb2snes: {config.url}")
    logger.info(f"   Tracked stats: {', '.join(TRACKED_STATS) or '(mandatory only)'}")
    logger.info(f"   Poll interval: {config.poll_interval_s * 1000:.0f} ms")
    logger.info(f"   Watchdog timeout: {config.timeout_s * 1000:.0f} ms")
    logger.info(f"   MQTT: {MQTT_HOST}:{MQTT_PORT} ({'enabled' if MQTT_AVAILABLE else 'disabled'})")

    publisher = MQTTPublisher(TRACKER_ID)
    if not await asyncio.to_thread(publisher.connect):
        logger.warning("MQTT: Initial connect failed, health check will retry")
    await publisher.start_health_check()

    session = SessionController(
        config,
        status_callback=publisher.publish_status,
        value_callback=publisher.publish_value,
    )
    session.set_selection(TRACKED_STATS)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    heartbeat = asyncio.create_task(heartbeat_loop(session))
    session.start()
    try:
        await stop_event.wait()
    finally:
        logger.info("👋 Shutting down...")
        session.stop()
        heartbeat.cancel()
        publisher.disconnect()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
