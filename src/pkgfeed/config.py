"""Feed configuration for pkgfeed."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pkgfeed.exceptions import FeedConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(env_key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise FeedConfigError(f"{env_key} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class MqttConfig:
    """Broker settings for :class:`pkgfeed.graph.mqtt.MqttGraphStore`.

    Parameters
    ----------
    host : str
        Broker hostname.
    port : int
        Broker port.
    topic_root : str
        Topic prefix under which every graph node is published.  The node
        ``pkg/acme/data/1.0`` lives at ``<topic_root>/pkg/acme/data/1.0``.
    keepalive : int
        MQTT keepalive in seconds.
    client_id : str or None
        Client identifier.  A random one is chosen by the broker client
        when omitted.
    username, password : str or None
        Optional broker credentials.
    tls : bool
        Enable TLS with the system trust store.
    """

    host: str
    port: int = 1883
    topic_root: str = "graph"
    keepalive: int = 60
    client_id: str | None = None
    username: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)
    tls: bool = False


@dataclasses.dataclass(frozen=True)
class FeedConfig:
    """Feed configuration.

    Parameters
    ----------
    context_id : str or None
        Identifier of the owning context (user or session).  Used in the
        log prefix and stamped on every emitted event.
    log_prefix_width : int
        Width the ``[f:<context>]`` log prefix is padded to.
    mqtt : MqttConfig or None
        Broker settings when the graph store is replicated over MQTT.
    """

    context_id: str | None = None
    log_prefix_width: int = 20
    mqtt: MqttConfig | None = None

    @classmethod
    def from_env(cls, **overrides: Any) -> FeedConfig:
        """Create configuration from ``FEED_*`` environment variables.

        MQTT settings are only populated when ``FEED_MQTT_HOST`` is set.
        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        context_id = env.get("FEED_CONTEXT_ID")
        if context_id is not None and context_id.strip():
            config_kwargs["context_id"] = context_id.strip()

        width_env = env.get("FEED_LOG_PREFIX_WIDTH")
        if width_env is not None and "log_prefix_width" not in overrides:
            config_kwargs["log_prefix_width"] = _env_int("FEED_LOG_PREFIX_WIDTH", width_env)

        host = env.get("FEED_MQTT_HOST")
        if host and "mqtt" not in overrides:
            mqtt_kwargs: dict[str, Any] = {"host": host.strip()}
            _ENV_MQTT_STR_MAP = {
                "FEED_MQTT_TOPIC_ROOT": "topic_root",
                "FEED_MQTT_CLIENT_ID": "client_id",
                "FEED_MQTT_USERNAME": "username",
                "FEED_MQTT_PASSWORD": "password",
            }
            for env_key, field_name in _ENV_MQTT_STR_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    mqtt_kwargs[field_name] = val

            for env_key, field_name in (("FEED_MQTT_PORT", "port"), ("FEED_MQTT_KEEPALIVE", "keepalive")):
                val = env.get(env_key)
                if val is not None:
                    mqtt_kwargs[field_name] = _env_int(env_key, val)

            mqtt_kwargs["tls"] = _env_bool(env.get("FEED_MQTT_TLS"), False)
            config_kwargs["mqtt"] = MqttConfig(**mqtt_kwargs)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
