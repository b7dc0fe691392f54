from __future__ import annotations

import pytest

from pkgfeed.config import FeedConfig, MqttConfig
from pkgfeed.exceptions import FeedConfigError

_ENV_KEYS = (
    "FEED_CONTEXT_ID",
    "FEED_LOG_PREFIX_WIDTH",
    "FEED_MQTT_HOST",
    "FEED_MQTT_PORT",
    "FEED_MQTT_TOPIC_ROOT",
    "FEED_MQTT_KEEPALIVE",
    "FEED_MQTT_CLIENT_ID",
    "FEED_MQTT_USERNAME",
    "FEED_MQTT_PASSWORD",
    "FEED_MQTT_TLS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_environment() -> None:
    config = FeedConfig.from_env()

    assert config == FeedConfig()
    assert config.context_id is None
    assert config.log_prefix_width == 20
    assert config.mqtt is None


def test_reads_feed_and_mqtt_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FEED_CONTEXT_ID", " alice ")
    monkeypatch.setenv("FEED_LOG_PREFIX_WIDTH", "24")
    monkeypatch.setenv("FEED_MQTT_HOST", "broker.local")
    monkeypatch.setenv("FEED_MQTT_PORT", "8883")
    monkeypatch.setenv("FEED_MQTT_TOPIC_ROOT", "tenants/t1/graph")
    monkeypatch.setenv("FEED_MQTT_USERNAME", "feed")
    monkeypatch.setenv("FEED_MQTT_PASSWORD", "secret")
    monkeypatch.setenv("FEED_MQTT_TLS", "yes")

    config = FeedConfig.from_env()

    assert config.context_id == "alice"
    assert config.log_prefix_width == 24
    assert config.mqtt == MqttConfig(
        host="broker.local",
        port=8883,
        topic_root="tenants/t1/graph",
        username="feed",
        password="secret",
        tls=True,
    )
    assert "secret" not in repr(config.mqtt)


def test_mqtt_disabled_without_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FEED_MQTT_PORT", "8883")

    assert FeedConfig.from_env().mqtt is None


def test_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FEED_CONTEXT_ID", "alice")
    monkeypatch.setenv("FEED_MQTT_HOST", "broker.local")
    monkeypatch.setenv("FEED_LOG_PREFIX_WIDTH", "not-used")

    config = FeedConfig.from_env(context_id="bob", mqtt=None, log_prefix_width=12)

    assert config.context_id == "bob"
    assert config.mqtt is None
    assert config.log_prefix_width == 12


@pytest.mark.parametrize("key", ["FEED_LOG_PREFIX_WIDTH", "FEED_MQTT_PORT", "FEED_MQTT_KEEPALIVE"])
def test_bad_integer_raises(monkeypatch: pytest.MonkeyPatch, key: str) -> None:
    monkeypatch.setenv("FEED_MQTT_HOST", "broker.local")
    monkeypatch.setenv(key, "lots")

    with pytest.raises(FeedConfigError, match=key):
        FeedConfig.from_env()


def test_unknown_tls_value_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FEED_MQTT_HOST", "broker.local")
    monkeypatch.setenv("FEED_MQTT_TLS", "maybe")

    config = FeedConfig.from_env()

    assert config.mqtt is not None
    assert config.mqtt.tls is False
