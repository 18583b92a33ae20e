# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring,protected-access
import pytest

from qusb_stats import config
from qusb_stats.models import SessionConfig


def test_get_int_env_parsing(monkeypatch):
    monkeypatch.setenv("TEST_INT", "bad")
    assert config._get_int_env("TEST_INT", 5) == 5

    monkeypatch.setenv("TEST_INT", "null")
    assert config._get_int_env("TEST_INT", 5) == 5

    monkeypatch.setenv("TEST_INT", "")
    assert config._get_int_env("TEST_INT", 5) == 5

    monkeypatch.delenv("TEST_INT", raising=False)
    assert config._get_int_env("TEST_INT", 5) == 5

    monkeypatch.setenv("TEST_INT", " 7 ")
    assert config._get_int_env("TEST_INT", 5) == 7


def test_get_float_env_parsing(monkeypatch):
    monkeypatch.setenv("TEST_FLOAT", "bad")
    assert config._get_float_env("TEST_FLOAT", 1.5) == pytest.approx(1.5)

    monkeypatch.setenv("TEST_FLOAT", "null")
    assert config._get_float_env("TEST_FLOAT", 1.5) == pytest.approx(1.5)

    monkeypatch.setenv("TEST_FLOAT", "2.5")
    assert config._get_float_env("TEST_FLOAT", 1.5) == pytest.approx(2.5)


def test_get_list_env(monkeypatch):
    monkeypatch.setenv("TEST_LIST", " deaths, bonks ,,checks ")
    assert config._get_list_env("TEST_LIST") == ["deaths", "bonks", "checks"]

    monkeypatch.delenv("TEST_LIST", raising=False)
    assert config._get_list_env("TEST_LIST") == []


def test_fixed_timing_constants():
    assert config.STAGGER_MS == 10
    assert config.SETTLE_MS == 500
    assert config.RECONNECT_BACKOFF_MS == 2000


def test_session_config_defaults_and_url():
    cfg = SessionConfig(host="localhost", port=23074)
    assert cfg.url == "ws://localhost:23074"
    assert cfg.stagger_s == pytest.approx(0.01)
    assert cfg.settle_s == pytest.approx(0.5)
    assert cfg.reconnect_backoff_s == pytest.approx(2.0)
