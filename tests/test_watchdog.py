# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring,protected-access
import asyncio

import pytest

from qusb_stats.watchdog import Watchdog, WatchdogTimeout


@pytest.mark.asyncio
async def test_watchdog_fires_once_with_reason():
    fired = []
    dog = Watchdog(fired.append)
    dog.arm(0.02, "handshake")
    assert dog.armed is True
    assert dog.reason == "handshake"

    await asyncio.sleep(0.08)

    assert len(fired) == 1
    assert isinstance(fired[0], WatchdogTimeout)
    assert isinstance(fired[0], TimeoutError)
    assert fired[0].reason == "handshake"
    assert dog.armed is False


@pytest.mark.asyncio
async def test_watchdog_rearm_replaces_deadline():
    fired = []
    dog = Watchdog(fired.append)
    dog.arm(0.05, "poll")
    first = dog.deadline
    await asyncio.sleep(0.01)
    dog.arm(0.05, "poll")
    assert dog.deadline > first

    await asyncio.sleep(0.12)
    # Only the replacement deadline fired
    assert len(fired) == 1


@pytest.mark.asyncio
async def test_watchdog_repeated_rearm_never_fires():
    fired = []
    dog = Watchdog(fired.append)
    for _ in range(6):
        dog.arm(0.04, "poll")
        await asyncio.sleep(0.01)
    assert fired == []
    dog.cancel()


@pytest.mark.asyncio
async def test_watchdog_cancel():
    fired = []
    dog = Watchdog(fired.append)
    dog.arm(0.02, "handshake")
    dog.cancel()
    assert dog.armed is False
    assert dog.deadline is None
    await asyncio.sleep(0.05)
    assert fired == []


@pytest.mark.asyncio
async def test_watchdog_stale_queued_fire_ignored():
    fired = []
    dog = Watchdog(fired.append)
    dog.arm(10, "poll")
    stale_token = dog._token
    dog.cancel()
    dog._fire(stale_token)
    assert fired == []


def test_watchdog_timeout_message():
    err = WatchdogTimeout("poll", 5.0)
    assert "poll" in str(err)
    assert err.timeout_s == 5.0
