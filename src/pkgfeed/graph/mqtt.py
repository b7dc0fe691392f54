"""MQTT-replicated graph store.

Keeps an :class:`InMemoryGraphStore` replica in sync with retained MQTT
messages.  Every graph node maps to one topic below the configured root::

    <topic_root>/pkg/acme/data/1.0/itm42  ->  node pkg/acme/data/1.0/itm42

Payloads are UTF-8 JSON objects holding the node's fields.  An empty
payload or JSON ``null`` tombstones the node.  Messages are applied from
the paho network thread, so listeners fire on that thread; the feed
marshals them onto its own executor.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, cast

import paho.mqtt.client as mqtt

from pkgfeed.config import MqttConfig
from pkgfeed.exceptions import AdapterUnavailableError, FeedError
from pkgfeed.graph.memory import InMemoryGraphStore
from pkgfeed.graph.normalize import join_path, split_path


def topic_for(topic_root: str, path: str) -> str:
    return join_path(topic_root, path)


def path_for(topic_root: str, topic: str) -> str | None:
    """Map a topic back to its node path, or ``None`` if outside the root."""
    root = split_path(topic_root)
    segments = split_path(topic)
    if len(segments) <= len(root) or segments[: len(root)] != root:
        return None
    return "/".join(segments[len(root) :])


def encode_node_payload(value: Mapping[str, Any] | None) -> bytes:
    if value is None:
        return b""
    return json.dumps(dict(value), separators=(",", ":"), sort_keys=True).encode("utf-8")


def decode_node_payload(payload: bytes) -> dict[str, Any] | None:
    """Decode a node payload; ``None`` means tombstone."""
    text = payload.decode("utf-8").strip()
    if not text:
        return None
    parsed = json.loads(text)
    if parsed is None:
        return None
    if not isinstance(parsed, dict):
        raise FeedError("MQTT node payload decoded to non-object JSON")
    return parsed


class MqttGraphStore(InMemoryGraphStore):
    """Graph store replica fed by a threaded paho-mqtt client."""

    def __init__(self, config: MqttConfig, *, logger: logging.Logger | None = None) -> None:
        super().__init__(logger=logger or logging.getLogger(__name__))
        self._config = config
        self._client: mqtt.Client | None = None
        self._connected = False
        self._running = False

    @property
    def is_connected(self) -> bool:
        """Whether the broker session is currently established."""
        return self._connected

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Connect to the broker and start the network loop."""
        self.stop()
        config = self._config
        self._logger.debug(
            "MQTT graph store start requested host=%s port=%s root=%s",
            config.host,
            config.port,
            config.topic_root,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=config.client_id or "",
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        if config.username:
            client.username_pw_set(config.username, config.password)
        if config.tls:
            client.tls_set()

        subscription = topic_for(config.topic_root, "#")

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._connected = True
            self._logger.debug("MQTT connected, subscribing topic=%s", subscription)
            c.subscribe(subscription, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                self.handle_message(msg.topic, msg.payload)
            except Exception:
                self._logger.debug("MQTT node payload failure topic=%s", msg.topic, exc_info=True)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._connected = False
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(config.host, config.port, keepalive=config.keepalive)
        except OSError as exc:
            raise AdapterUnavailableError(f"MQTT broker unreachable at {config.host}:{config.port}") from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected = False

        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Apply one retained node message to the local replica."""
        path = path_for(self._config.topic_root, topic)
        if path is None:
            self._logger.debug("Ignoring MQTT topic outside root: %s", topic)
            return
        super().put(path, decode_node_payload(payload))

    async def once(self, path: str) -> tuple[Any, str]:
        if not self._connected:
            raise AdapterUnavailableError(f"MQTT graph store not connected, cannot read {path}", path=path)
        return await super().once(path)

    def put(self, path: str, value: Mapping[str, Any] | None) -> None:
        super().put(path, value)
        client = self._client
        if client is None:
            self._logger.debug("MQTT put kept local only (not started) path=%s", path)
            return
        info = client.publish(
            topic_for(self._config.topic_root, path),
            encode_node_payload(value),
            qos=1,
            retain=True,
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.debug("MQTT publish queued with rc=%s path=%s", info.rc, path)
