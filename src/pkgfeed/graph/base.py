"""Graph store adapter boundary.

The feed consumes the graph store only through these four operations.
Implementations may invoke callbacks from any thread, redundantly, and in
no particular order across nodes; the feed marshals them onto its own
executor.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

NodeCallback = Callable[[Any, str], None]
"""Callback signature ``(value, key)``; ``value`` is ``None`` for absent nodes."""


@runtime_checkable
class GraphStoreAdapter(Protocol):
    async def once(self, path: str) -> tuple[Any, str]:
        """Read the current value of a node.

        Raises :class:`pkgfeed.exceptions.AdapterUnavailableError` when the
        store cannot be reached.
        """
        ...

    def on(self, path: str, callback: NodeCallback) -> None:
        """Subscribe to every value change of a node."""
        ...

    def children(self, path: str, callback: NodeCallback, *, change_only: bool = False) -> None:
        """Subscribe to the children of a node.

        Existing children are enumerated first unless ``change_only`` is
        set; afterwards the callback fires once per mutated child.
        """
        ...

    def put(self, path: str, value: Mapping[str, Any] | None) -> None:
        """Write a node; ``None`` tombstones it."""
        ...
