# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring,protected-access
import asyncio
import logging

from qusb_stats import main
from qusb_stats.session import SessionController
from tests.fixtures.dummy import DummyTransportFactory, fast_config


def test_log_heartbeat_reports_session_counters(caplog):
    session = SessionController(fast_config(), transport_factory=DummyTransportFactory())
    with caplog.at_level(logging.INFO, logger="qusb_stats.main"):
        main.log_heartbeat(session)
    assert "phase=idle" in caplog.text
    assert "device=n/a" in caplog.text
    assert "keys=3" in caplog.text


def test_heartbeat_loop_disabled(monkeypatch):
    monkeypatch.setattr(main, "STATUS_INTERVAL", 0)
    session = SessionController(fast_config(), transport_factory=DummyTransportFactory())
    # returns immediately instead of looping
    asyncio.run(asyncio.wait_for(main.heartbeat_loop(session), timeout=1.0))
