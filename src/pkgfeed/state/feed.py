"""Per-package item watch lifecycle.

This is the reconciliation core.  For every item id the registry forwards,
the feed registers exactly one value subscription and one field-level
subscription on the item's node, then turns the store's unordered and
possibly redundant notifications into a deduplicated event stream:

- value present, no active entry      -> ``item-watch``
- value present, active entry         -> ignored (adds are never replayed)
- value null, active entry            -> ``item-unwatch`` (tombstoned)
- value null, tombstoned or unknown   -> ignored
- field diff on an active item        -> ``change`` with only that field
- field diff on anything else         -> dropped

Every notification is dropped while the owning package is not watched.
Subscriptions are never torn down; the registration ledger outlives
:meth:`ItemChangeFeed.reset`.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pkgfeed._executor import SerialExecutor
from pkgfeed.exceptions import AdapterUnavailableError
from pkgfeed.graph.base import GraphStoreAdapter
from pkgfeed.graph.normalize import is_metadata_key, strip_metadata
from pkgfeed.models.item import Item, Tombstone
from pkgfeed.models.package import PackageRef
from pkgfeed.state.classifier import build_item
from pkgfeed.state.events import FeedEvent, FeedEventType
from pkgfeed.state.registry import PackageSubscriptionRegistry

_logger = logging.getLogger(__name__)

_MISSING = object()


class ItemChangeFeed:
    """Owns the item map and active ordering of one feed."""

    def __init__(
        self,
        adapter: GraphStoreAdapter,
        executor: SerialExecutor,
        registry: PackageSubscriptionRegistry,
        *,
        publish: Callable[[FeedEvent], None],
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
    ) -> None:
        self._adapter = adapter
        self._executor = executor
        self._registry = registry
        self._publish = publish
        self._logger = logger or _logger
        self._items: dict[str, Item | Tombstone] = {}
        self._order: list[str] = []
        # item id -> owning package, for every id ever subscribed
        self._registrations: dict[str, PackageRef] = {}

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._order)

    def get(self, item_id: str) -> Item | Tombstone | None:
        return self._items.get(item_id)

    @property
    def ordering(self) -> list[str]:
        """Active item ids in watch order."""
        return list(self._order)

    @property
    def active_items(self) -> dict[str, Item]:
        items: dict[str, Item] = {}
        for item_id in self._order:
            entry = self._items[item_id]
            assert isinstance(entry, Item)  # noqa: S101
            items[item_id] = entry
        return items

    @property
    def inactive_items(self) -> dict[str, Tombstone]:
        return {item_id: entry for item_id, entry in self._items.items() if isinstance(entry, Tombstone)}

    def is_registered(self, item_id: str) -> bool:
        return item_id in self._registrations

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    def watch_item(self, item_id: str, package: PackageRef) -> None:
        """Subscribe to an item node, once per item id."""
        if item_id in self._items or item_id in self._registrations:
            return
        self._registrations[item_id] = package

        path = package.item_path(item_id)
        self._adapter.on(path, self._executor.wrap(functools.partial(self._on_value, item_id, package)))
        # Field diffs only count after the add has been observed.
        self._adapter.children(
            path,
            self._executor.wrap(functools.partial(self._on_field, item_id, package)),
            change_only=True,
        )

    def _on_value(self, item_id: str, package: PackageRef, value: Any, _key: str = "") -> None:
        if not self._registry.is_watched(package):
            self._logger.debug("skipping value for unwatched package %s: %s", package, item_id)
            return

        entry = self._items.get(item_id)
        if value is None:
            if not isinstance(entry, Item):
                return
            self._tombstone(entry)
            return

        if isinstance(entry, Item):
            return
        if not isinstance(value, Mapping):
            self._logger.debug("ignoring non-record value for item %s: %r", item_id, value)
            return

        data = strip_metadata(value)
        item = build_item(item_id, package, data)
        self._items[item_id] = item
        if item_id not in self._order:
            self._order.append(item_id)
        self._publish(
            FeedEvent(
                type=FeedEventType.ITEM_WATCH,
                id=item_id,
                package=package,
                data=dict(data),
                item=item,
            )
        )

    def _on_field(self, item_id: str, package: PackageRef, value: Any, key: str) -> None:
        if is_metadata_key(key):
            return
        entry = self._items.get(item_id)
        if not isinstance(entry, Item):
            return
        if not self._registry.is_watched(package):
            return
        if isinstance(value, Mapping):
            value = strip_metadata(value)
        current = entry.data.get(key, _MISSING)
        if current == value or (value is None and current is _MISSING):
            return

        entry.refresh({key: value})
        self._publish(
            FeedEvent(
                type=FeedEventType.CHANGE,
                id=item_id,
                package=package,
                data={key: value},
                item=entry,
            )
        )

    def _tombstone(self, item: Item) -> None:
        self._items[item.id] = Tombstone.of(item)
        if item.id in self._order:
            self._order.remove(item.id)
        self._publish(FeedEvent(type=FeedEventType.ITEM_UNWATCH, id=item.id, package=item.package, item=item))

    # ------------------------------------------------------------------
    # Resync
    # ------------------------------------------------------------------

    def resync_package(self, package: PackageRef) -> None:
        """Re-read every registered item of a package and reconcile it.

        Announces items that are live but not tracked (e.g. after a reset),
        tombstones items that vanished and emits ``change`` for fields that
        drifted while the package was not watched.
        """
        for item_id, owner in list(self._registrations.items()):
            if owner == package:
                self._executor.spawn(self._resync_item(item_id, package))

    def refresh(self) -> None:
        for package in self._registry.watched:
            self.resync_package(package)

    async def _resync_item(self, item_id: str, package: PackageRef) -> None:
        try:
            value, key = await self._adapter.once(package.item_path(item_id))
        except AdapterUnavailableError:
            self._logger.debug("resync read failed for item %s", item_id, exc_info=True)
            return

        entry = self._items.get(item_id)
        if isinstance(entry, Item) and isinstance(value, Mapping):
            fresh = strip_metadata(value)
            for field, field_value in fresh.items():
                self._on_field(item_id, package, field_value, field)
            # Fields deleted while the package was not watched.
            for field in sorted(set(entry.data) - set(fresh)):
                self._on_field(item_id, package, None, field)
            return
        self._on_value(item_id, package, value, key)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Unwatch every package, tear down every tracked item and emit ``reset``."""
        self._registry.remove_all()
        for item_id, entry in list(self._items.items()):
            item = entry.item if isinstance(entry, Tombstone) else entry
            item.active = False
            self._publish(FeedEvent(type=FeedEventType.ITEM_UNWATCH, id=item_id, package=item.package, item=item))
        self._items.clear()
        self._order.clear()
        self._publish(FeedEvent(type=FeedEventType.RESET))
