from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from pkgfeed import FeedConfig, FeedEvent, FeedEventType, FeedFacade, InMemoryGraphStore, watch_packages
from pkgfeed._logging import log_prefix
from pkgfeed.exceptions import FeedError
from pkgfeed.models.item import MarkerItem
from pkgfeed.models.package import PackageRef, PackageWatchState

_ACME = PackageRef(name="acme", version="1.0")


def _seeded_store() -> InMemoryGraphStore:
    store = InMemoryGraphStore()
    store.put("pkg/acme/data/1.0", {"itm42": {"a": 1}})
    return store


@pytest.mark.asyncio
async def test_subscribe_announces_package_and_items() -> None:
    store = _seeded_store()
    events: list[FeedEvent] = []
    async with FeedFacade(store, config=FeedConfig(context_id="alice"), on_event=events.append) as feed:
        feed.add_one_package("acme@1.0")
        await feed.wait_idle()

        store.put("pkg/acme/data/1.0/itm42", {"b": 2})
        await feed.wait_idle()

        store.put("pkg/acme/data/1.0/itm42", None)
        await feed.wait_idle()

    assert [event.type for event in events] == [
        FeedEventType.WATCH,
        FeedEventType.ITEM_WATCH,
        FeedEventType.CHANGE,
        FeedEventType.ITEM_UNWATCH,
    ]
    assert events[0].package == _ACME
    assert events[1].id == "itm42"
    assert events[1].data == {"a": 1}
    assert events[2].data == {"b": 2}
    assert events[3].item is not None
    assert events[3].item.data == {"a": 1, "b": 2}
    assert all(event.context == "alice" for event in events)


@pytest.mark.asyncio
async def test_items_written_after_subscribe_are_announced() -> None:
    store = InMemoryGraphStore()
    store.put("pkg/acme/data/1.0", {})
    async with FeedFacade(store) as feed:
        events: list[FeedEvent] = []
        feed.subscribe(events.append, FeedEventType.ITEM_WATCH)
        feed.add_one_package(_ACME)
        await feed.wait_idle()

        store.put("pkg/acme/data/1.0/itm7", {"g": "u4pruyd", "o": 1, "t": 1700000000})
        await feed.wait_idle()

    assert [event.id for event in events] == ["itm7"]
    assert feed.feed.ordering == ["itm7"]


@pytest.mark.asyncio
async def test_nested_item_fields_survive_replication() -> None:
    store = InMemoryGraphStore()
    store.put("pkg/acme/data/1.0", {})
    events: list[FeedEvent] = []
    async with FeedFacade(store, on_event=events.append) as feed:
        feed.add_one_package(_ACME)
        await feed.wait_idle()

        store.put("pkg/acme/data/1.0/m1", {"g": {"lat": 1.0, "lon": 2.0}, "o": 1, "t": 2})
        await feed.wait_idle()
        store.put("pkg/acme/data/1.0/m1", {"g": {"lat": 3.0}})
        await feed.wait_idle()

    assert [event.type for event in events] == [
        FeedEventType.WATCH,
        FeedEventType.ITEM_WATCH,
        FeedEventType.CHANGE,
    ]
    marker = events[1].item
    assert isinstance(marker, MarkerItem)
    assert events[1].data == {"g": {"lat": 1.0, "lon": 2.0}, "o": 1, "t": 2}
    assert events[2].data == {"g": {"lat": 3.0, "lon": 2.0}}
    assert marker.geo == {"lat": 3.0, "lon": 2.0}

@pytest.mark.asyncio
async def test_invalid_identifier_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    store = _seeded_store()
    events: list[FeedEvent] = []
    async with FeedFacade(store, on_event=events.append) as feed:
        with caplog.at_level(logging.ERROR, logger="pkgfeed.facade"):
            feed.add_one_package("acme")
            feed.remove_one_package("@1.0")
        await feed.wait_idle()

    assert events == []
    assert feed.packages == {}
    assert "invalid identifier provided to add package: acme" in caplog.text
    assert "invalid identifier provided to remove package: @1.0" in caplog.text


@pytest.mark.asyncio
async def test_add_many_keeps_valid_identifiers() -> None:
    store = _seeded_store()
    store.put("pkg/maps/data/2.3", {"m1": {"x": 1}})
    async with FeedFacade(store) as feed:
        feed.subscribe_packages(["acme@1.0", "broken", "maps@2.3", "ghost@0.1"])
        await feed.wait_idle()

        assert feed.packages == {
            _ACME: PackageWatchState.WATCHED,
            PackageRef(name="maps", version="2.3"): PackageWatchState.WATCHED,
            PackageRef(name="ghost", version="0.1"): PackageWatchState.MISSING,
        }
        assert set(feed.active_items) == {"itm42", "m1"}

        feed.unsubscribe_packages(["maps@2.3"])
        feed.remove_all_packages()
        await feed.wait_idle()

        assert feed.registry.watched == []


@pytest.mark.asyncio
async def test_subscribe_filters_and_unsubscribes() -> None:
    store = _seeded_store()
    async with FeedFacade(store) as feed:
        watches: list[FeedEvent] = []
        everything: list[FeedEvent] = []
        unsubscribe = feed.subscribe(watches.append, "watch", FeedEventType.UNWATCH)
        feed.subscribe(everything.append)

        feed.add_one_package(_ACME)
        await feed.wait_idle()
        unsubscribe()
        feed.remove_one_package(_ACME)
        await feed.wait_idle()

    assert [event.type for event in watches] == [FeedEventType.WATCH]
    assert [event.type for event in everything] == [
        FeedEventType.WATCH,
        FeedEventType.ITEM_WATCH,
        FeedEventType.UNWATCH,
    ]


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others() -> None:
    store = _seeded_store()
    events: list[FeedEvent] = []

    def boom(_event: FeedEvent) -> None:
        raise RuntimeError("handler failed")

    async with FeedFacade(store) as feed:
        feed.subscribe(boom)
        feed.subscribe(events.append)
        feed.add_one_package(_ACME)
        await feed.wait_idle()

    assert [event.type for event in events] == [FeedEventType.WATCH, FeedEventType.ITEM_WATCH]


@pytest.mark.asyncio
async def test_callbacks_from_foreign_thread_are_applied_on_loop() -> None:
    store = _seeded_store()
    handler_threads: set[int] = set()
    events: list[FeedEvent] = []

    def record(event: FeedEvent) -> None:
        handler_threads.add(threading.get_ident())
        events.append(event)

    async with FeedFacade(store, on_event=record) as feed:
        feed.add_one_package(_ACME)
        await feed.wait_idle()

        await asyncio.to_thread(store.put, "pkg/acme/data/1.0/itm42", {"a": 5})
        await asyncio.to_thread(store.put, "pkg/acme/data/1.0/itm43", {"c": 1})
        await feed.wait_idle()

    assert handler_threads == {threading.get_ident()}
    assert [event.type for event in events][-2:] == [FeedEventType.CHANGE, FeedEventType.ITEM_WATCH]
    assert feed.active_items["itm42"].data == {"a": 5}


@pytest.mark.asyncio
async def test_topics_are_plain_flags() -> None:
    events: list[FeedEvent] = []
    async with FeedFacade(InMemoryGraphStore(), on_event=events.append) as feed:
        feed.subscribe_topics(["news", "alerts"])
        feed.remove_one_topic("alerts")
        feed.add_one_topic("weather")
        feed.remove_many_topics(["news"])
        await feed.wait_idle()

        assert feed.topics == {"news": False, "alerts": False, "weather": True}

    assert events == []


def test_log_prefix_is_padded() -> None:
    assert log_prefix("alice") == "[f:alice]".ljust(20)
    assert log_prefix(None) == "[no-context]".ljust(20)
    assert log_prefix("a-very-long-context-id") == "[f:a-very-long-context-id]"
    assert FeedFacade(InMemoryGraphStore(), config=FeedConfig(context_id="bob")).log_prefix.startswith("[f:bob]")


@pytest.mark.asyncio
async def test_registry_logs_carry_context_prefix(caplog: pytest.LogCaptureFixture) -> None:
    async with FeedFacade(_seeded_store(), config=FeedConfig(context_id="alice")) as feed:
        with caplog.at_level(logging.INFO, logger="pkgfeed.state.registry"):
            feed.add_one_package(_ACME)
            await feed.wait_idle()

    assert any(record.getMessage().startswith("[f:alice]") for record in caplog.records)
    assert "watch package: acme@1.0" in caplog.text


def test_calls_before_start_raise() -> None:
    feed = FeedFacade(InMemoryGraphStore())

    with pytest.raises(FeedError):
        feed.add_one_package(_ACME)


@pytest.mark.asyncio
async def test_watch_packages_helper_settles_before_returning() -> None:
    events: list[FeedEvent] = []
    feed = await watch_packages(
        _seeded_store(),
        ["acme@1.0"],
        config=FeedConfig(context_id="cli"),
        on_event=events.append,
    )
    try:
        assert [event.type for event in events] == [FeedEventType.WATCH, FeedEventType.ITEM_WATCH]
        assert feed.context_id == "cli"
    finally:
        await feed.stop()
