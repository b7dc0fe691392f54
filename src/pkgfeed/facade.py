"""High-level feed facade.

Composes the package registry and the item feed over one graph store,
serializes every call and callback through a single mailbox, and
re-emits all lifecycle events on one bus stamped with the owning context.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from pkgfeed._bus import EventBus, EventHandler
from pkgfeed._executor import SerialExecutor
from pkgfeed._logging import log_prefix, prefixed_logger
from pkgfeed.config import FeedConfig
from pkgfeed.exceptions import InvalidIdentifierError
from pkgfeed.graph.base import GraphStoreAdapter
from pkgfeed.models.item import Item, Tombstone
from pkgfeed.models.package import PackageRef, PackageWatchState
from pkgfeed.state.events import FeedEvent, FeedEventType
from pkgfeed.state.feed import ItemChangeFeed
from pkgfeed.state.registry import PackageSubscriptionRegistry


class FeedFacade:
    """Package and item feed for one user or session.

    Usage::

        async with FeedFacade(store, config=FeedConfig(context_id="alice")) as feed:
            feed.subscribe(print)
            feed.add_one_package("acme@1.0")
            await feed.wait_idle()

    Every public call returns immediately; effects are observable only
    through emitted events.
    """

    def __init__(
        self,
        adapter: GraphStoreAdapter,
        *,
        config: FeedConfig | None = None,
        on_event: Callable[[FeedEvent], None] | None = None,
    ) -> None:
        self._config = config or FeedConfig()
        self._log_prefix = log_prefix(self._config.context_id, self._config.log_prefix_width)
        self._logger = prefixed_logger(__name__, self._log_prefix)
        self._adapter = adapter
        self._executor = SerialExecutor(
            name=f"feed-{self._config.context_id or 'anonymous'}",
            logger=prefixed_logger("pkgfeed._executor", self._log_prefix),
        )
        self._bus = EventBus(logger=self._logger)
        if on_event is not None:
            self._bus.subscribe(on_event)
        self._topics: dict[str, bool] = {}

        self._registry = PackageSubscriptionRegistry(
            adapter,
            self._executor,
            publish=self._publish,
            on_child=self._forward_child,
            on_rewatch=self._forward_rewatch,
            logger=prefixed_logger("pkgfeed.state.registry", self._log_prefix),
        )
        self._feed = ItemChangeFeed(
            adapter,
            self._executor,
            self._registry,
            publish=self._publish,
            logger=prefixed_logger("pkgfeed.state.feed", self._log_prefix),
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FeedFacade:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def start(self) -> None:
        """Start the mailbox on the running event loop."""
        self._executor.start()

    async def stop(self) -> None:
        await self._executor.stop()

    async def wait_idle(self) -> None:
        """Wait until every queued callback and in-flight read has been handled."""
        await self._executor.join()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def context_id(self) -> str | None:
        return self._config.context_id

    @property
    def log_prefix(self) -> str:
        return self._log_prefix

    @property
    def registry(self) -> PackageSubscriptionRegistry:
        return self._registry

    @property
    def feed(self) -> ItemChangeFeed:
        return self._feed

    @property
    def packages(self) -> dict[PackageRef, PackageWatchState]:
        return self._registry.packages

    @property
    def topics(self) -> dict[str, bool]:
        return dict(self._topics)

    @property
    def active_items(self) -> dict[str, Item]:
        return self._feed.active_items

    @property
    def inactive_items(self) -> dict[str, Tombstone]:
        return self._feed.inactive_items

    def subscribe(self, handler: EventHandler, *types: FeedEventType | str) -> Callable[[], None]:
        """Receive events (optionally only of ``types``); returns an unsubscribe callable."""
        return self._bus.subscribe(handler, *types)

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def add_one_package(self, package_id: PackageRef | str) -> None:
        ref = self._parse(package_id, "add package")
        if ref is not None:
            self._executor.call_soon(self._registry.add_package, ref)

    def add_many_packages(self, package_ids: Iterable[PackageRef | str]) -> None:
        for package_id in package_ids:
            self.add_one_package(package_id)

    def remove_one_package(self, package_id: PackageRef | str) -> None:
        ref = self._parse(package_id, "remove package")
        if ref is not None:
            self._executor.call_soon(self._registry.remove_package, ref)

    def remove_many_packages(self, package_ids: Iterable[PackageRef | str]) -> None:
        for package_id in package_ids:
            self.remove_one_package(package_id)

    def remove_all_packages(self) -> None:
        self._executor.call_soon(self._registry.remove_all)

    subscribe_packages = add_many_packages
    unsubscribe_packages = remove_many_packages

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def add_one_topic(self, name: str) -> None:
        self._logger.info("add topic %s", name)
        self._topics[name] = True

    def remove_one_topic(self, name: str) -> None:
        self._logger.info("remove topic %s", name)
        self._topics[name] = False

    def add_many_topics(self, names: Iterable[str]) -> None:
        for name in names:
            self.add_one_topic(name)

    def remove_many_topics(self, names: Iterable[str]) -> None:
        for name in names:
            self.remove_one_topic(name)

    subscribe_topics = add_many_topics

    # ------------------------------------------------------------------
    # Whole-feed operations
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Hard wipe of package and item state, e.g. on logout."""
        self._executor.call_soon(self._feed.reset)

    def refresh(self) -> None:
        """Re-read every item of the watched packages and reconcile drift."""
        self._executor.call_soon(self._feed.refresh)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _parse(self, package_id: PackageRef | str, action: str) -> PackageRef | None:
        try:
            return PackageRef.parse(package_id)
        except InvalidIdentifierError:
            self._logger.error("invalid identifier provided to %s: %s", action, package_id)
            return None

    def _forward_child(self, item_id: str, package: PackageRef) -> None:
        self._feed.watch_item(item_id, package)

    def _forward_rewatch(self, package: PackageRef) -> None:
        self._feed.resync_package(package)

    def _publish(self, event: FeedEvent) -> None:
        self._bus.publish(event.model_copy(update={"context": self._config.context_id}))


async def watch_packages(
    adapter: GraphStoreAdapter,
    package_ids: Iterable[PackageRef | str],
    *,
    config: FeedConfig | None = None,
    on_event: Callable[[FeedEvent], None] | None = None,
) -> FeedFacade:
    """Start a facade, subscribe ``package_ids`` and wait for the first settle.

    The caller owns the returned facade and must ``await facade.stop()``.
    """
    facade = FeedFacade(adapter, config=config, on_event=on_event)
    facade.start()
    facade.add_many_packages(package_ids)
    await facade.wait_idle()
    return facade

