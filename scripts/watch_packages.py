#!/usr/bin/env python3
"""Watch packages on an MQTT-replicated graph store and print feed events.

Broker settings come from ``FEED_MQTT_*`` environment variables (see
:class:`pkgfeed.config.FeedConfig`); ``--host`` overrides the host.

Example::

    FEED_MQTT_HOST=localhost python scripts/watch_packages.py acme@1.0 maps@2.3
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pkgfeed import FeedConfig, FeedEvent, FeedEventType, MqttConfig  # noqa: E402
from pkgfeed.exceptions import AdapterUnavailableError  # noqa: E402
from pkgfeed.facade import watch_packages  # noqa: E402
from pkgfeed.graph.mqtt import MqttGraphStore  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print package/item lifecycle events from an MQTT graph store.",
    )
    parser.add_argument("packages", nargs="+", help="Package identifiers (name@version).")
    parser.add_argument("--host", help="MQTT broker host (overrides FEED_MQTT_HOST).")
    parser.add_argument("--context", help="Context id used in logs and events.")
    parser.add_argument(
        "--connect-wait",
        type=float,
        default=2.0,
        help="Seconds to wait for retained messages before subscribing.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_event(event: FeedEvent) -> None:
    if event.type in (FeedEventType.WATCH, FeedEventType.UNWATCH):
        print(f"[feed] {event.type:<12} {event.package}")
    elif event.type is FeedEventType.RESET:
        print(f"[feed] {event.type}")
    else:
        print(f"[feed] {event.type:<12} {event.package} {event.id} {event.data or ''}")


async def _run(args: argparse.Namespace, config: FeedConfig) -> int:
    assert config.mqtt is not None  # noqa: S101
    store = MqttGraphStore(config.mqtt)
    try:
        store.start()
    except AdapterUnavailableError as exc:
        print(f"[feed] {exc}", file=sys.stderr)
        return 2

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        # Retained messages populate the replica shortly after connecting.
        await asyncio.sleep(args.connect_wait)
        facade = await watch_packages(store, args.packages, config=config, on_event=_print_event)
        try:
            if args.duration > 0:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(stop.wait(), args.duration)
            else:
                await stop.wait()
        finally:
            await facade.stop()
    finally:
        store.stop()
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.context:
        overrides["context_id"] = args.context
    config = FeedConfig.from_env(**overrides)
    if args.host:
        base = config.mqtt or MqttConfig(host=args.host)
        config = dataclasses.replace(config, mqtt=dataclasses.replace(base, host=args.host))
    if config.mqtt is None:
        print("[feed] No broker configured (set FEED_MQTT_HOST or pass --host)", file=sys.stderr)
        return 2

    return asyncio.run(_run(args, config))


if __name__ == "__main__":
    raise SystemExit(_main())
