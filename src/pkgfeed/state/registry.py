"""Package subscription registry.

Tracks which packages are watched and gates all item-level watching.  A
package is only watched once a one-shot read confirms that its versioned
data node exists.

The graph store has no unsubscribe primitive, so removing a package is
purely logical: the registry flips the state and the item feed drops
notifications for packages that are not watched.  The child enumeration
subscription of a package is registered at most once.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pkgfeed._executor import SerialExecutor
from pkgfeed.exceptions import AdapterUnavailableError, InvalidIdentifierError
from pkgfeed.graph.base import GraphStoreAdapter
from pkgfeed.graph.normalize import is_metadata_key
from pkgfeed.models.package import PackageRef, PackageWatchState
from pkgfeed.state.events import FeedEvent, FeedEventType

_logger = logging.getLogger(__name__)


class PackageSubscriptionRegistry:
    """Owns :class:`PackageWatchState` for every package of one feed."""

    def __init__(
        self,
        adapter: GraphStoreAdapter,
        executor: SerialExecutor,
        *,
        publish: Callable[[FeedEvent], None],
        on_child: Callable[[str, PackageRef], None],
        on_rewatch: Callable[[PackageRef], None] | None = None,
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
    ) -> None:
        self._adapter = adapter
        self._executor = executor
        self._publish = publish
        self._on_child = on_child
        self._on_rewatch = on_rewatch
        self._logger = logger or _logger
        self._states: dict[PackageRef, PackageWatchState] = {}
        self._enumerated: set[PackageRef] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, ref: PackageRef | str) -> PackageWatchState:
        return self._states.get(PackageRef.parse(ref), PackageWatchState.UNWATCHED)

    def is_watched(self, ref: PackageRef | str) -> bool:
        return self.state(ref) is PackageWatchState.WATCHED

    @property
    def packages(self) -> dict[PackageRef, PackageWatchState]:
        return dict(self._states)

    @property
    def watched(self) -> list[PackageRef]:
        return [ref for ref, state in self._states.items() if state is PackageWatchState.WATCHED]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_package(self, ref: PackageRef | str) -> asyncio.Task[PackageWatchState] | None:
        """Request a watch on a package.

        Returns the confirmation task, or ``None`` when the package is
        already pending or watched.  The task resolves to the resulting
        state and raises :class:`AdapterUnavailableError` if the store
        cannot be read.
        """
        ref = PackageRef.parse(ref)
        current = self.state(ref)
        if current in (PackageWatchState.PENDING, PackageWatchState.WATCHED):
            self._logger.info("already watching: %s", ref)
            return None

        self._states[ref] = PackageWatchState.PENDING
        return self._executor.spawn(self._confirm(ref))

    def remove_package(self, ref: PackageRef | str) -> None:
        ref = PackageRef.parse(ref)
        current = self.state(ref)
        if current is PackageWatchState.WATCHED:
            self._logger.info("unwatch package: %s", ref)
            self._states[ref] = PackageWatchState.UNWATCHED
            self._publish(FeedEvent(type=FeedEventType.UNWATCH, package=ref))
        elif current is PackageWatchState.PENDING:
            # The in-flight confirmation is discarded when it lands.
            self._logger.info("cancel pending package: %s", ref)
            self._states[ref] = PackageWatchState.UNWATCHED

    def add_many(self, refs: Iterable[PackageRef | str]) -> None:
        for ref in refs:
            try:
                self.add_package(ref)
            except InvalidIdentifierError:
                self._logger.error("invalid identifier provided to add package: %s", ref)

    def remove_many(self, refs: Iterable[PackageRef | str]) -> None:
        for ref in refs:
            try:
                self.remove_package(ref)
            except InvalidIdentifierError:
                self._logger.error("invalid identifier provided to remove package: %s", ref)

    def remove_all(self) -> None:
        for ref in list(self._states):
            self.remove_package(ref)

    # ------------------------------------------------------------------
    # Adapter callbacks
    # ------------------------------------------------------------------

    async def _confirm(self, ref: PackageRef) -> PackageWatchState:
        try:
            value, _key = await self._adapter.once(ref.node_path)
        except AdapterUnavailableError:
            if self._states.get(ref) is PackageWatchState.PENDING:
                self._states[ref] = PackageWatchState.UNWATCHED
            self._logger.warning("graph store unavailable, cannot confirm package: %s", ref)
            raise

        if self._states.get(ref) is not PackageWatchState.PENDING:
            self._logger.debug("discarding stale confirmation: %s", ref)
            return self.state(ref)

        if value is None:
            self._states[ref] = PackageWatchState.MISSING
            self._logger.warning("missing package: %s", ref)
            return PackageWatchState.MISSING

        self._states[ref] = PackageWatchState.WATCHED
        self._logger.info("watch package: %s", ref)
        self._publish(FeedEvent(type=FeedEventType.WATCH, package=ref))

        if ref in self._enumerated:
            if self._on_rewatch is not None:
                self._on_rewatch(ref)
        else:
            self._enumerated.add(ref)
            self._adapter.children(ref.node_path, self._executor.wrap(functools.partial(self._forward_child, ref)))
        return PackageWatchState.WATCHED

    def _forward_child(self, ref: PackageRef, value: Any, key: str) -> None:
        if is_metadata_key(key):
            return
        # Items are child nodes; scalar fields on the package node are not.
        if value is not None and not isinstance(value, Mapping):
            self._logger.debug("ignoring scalar field on package %s: %s", ref, key)
            return
        self._on_child(key, ref)
