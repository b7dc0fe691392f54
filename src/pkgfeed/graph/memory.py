"""In-memory graph store.

A process-local node tree implementing :class:`GraphStoreAdapter`.  Each
node holds scalar fields and named child nodes; nested mappings passed to
:meth:`InMemoryGraphStore.put` become child nodes, and a node value embeds
its live children as plain mappings.  Field assignment is last-write-wins
and unchanged values produce no notification.  A changed node is also
reported to its parent's child listeners.

Writes may come from any thread.  Listener callbacks are collected while
the tree lock is held and invoked after it is released, on the writing
thread.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pkgfeed.graph.base import NodeCallback
from pkgfeed.graph.normalize import (
    METADATA_KEY,
    is_metadata_key,
    join_path,
    node_meta,
    path_key,
    split_path,
)

_MISSING = object()

_Notice = tuple[NodeCallback, Any, str]


@dataclass(eq=False)
class _Node:
    path: str
    alive: bool = False
    fields: dict[str, Any] = field(default_factory=dict)
    children: dict[str, _Node] = field(default_factory=dict)
    listeners: list[NodeCallback] = field(default_factory=list)
    child_listeners: list[NodeCallback] = field(default_factory=list)

    def data(self) -> dict[str, Any]:
        """Fields plus live child nodes, nested as plain mappings."""
        data = copy.deepcopy(self.fields)
        for name, child in self.children.items():
            if child.alive:
                data[name] = child.data()
        return data

    def value(self) -> dict[str, Any] | None:
        if not self.alive:
            return None
        return {METADATA_KEY: node_meta(self.path), **self.data()}


class InMemoryGraphStore:
    """Thread-safe in-memory implementation of the graph store adapter."""

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._root = _Node(path="", alive=True)
        self._lock = threading.RLock()
        self._logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Adapter operations
    # ------------------------------------------------------------------

    async def once(self, path: str) -> tuple[Any, str]:
        with self._lock:
            node = self._lookup(path)
            value = node.value() if node is not None else None
        return value, path_key(path)

    def on(self, path: str, callback: NodeCallback) -> None:
        notices: list[_Notice] = []
        with self._lock:
            node = self._lookup(path, create=True)
            assert node is not None  # noqa: S101
            node.listeners.append(callback)
            if node.alive:
                notices.append((callback, node.value(), path_key(path)))
        self._fire(notices)

    def children(self, path: str, callback: NodeCallback, *, change_only: bool = False) -> None:
        notices: list[_Notice] = []
        with self._lock:
            node = self._lookup(path, create=True)
            assert node is not None  # noqa: S101
            node.child_listeners.append(callback)
            if not change_only and node.alive:
                for key, value in node.fields.items():
                    notices.append((callback, copy.deepcopy(value), key))
                for name, child in node.children.items():
                    if child.alive:
                        notices.append((callback, child.value(), name))
        self._fire(notices)

    def put(self, path: str, value: Mapping[str, Any] | None) -> None:
        if value is not None and not isinstance(value, Mapping):
            raise TypeError(f"node values must be mappings or None, got {type(value).__name__}")
        notices: list[_Notice] = []
        with self._lock:
            if value is None:
                self._tombstone(join_path(path), notices)
            else:
                self._merge(join_path(path), value, notices)
        self._fire(notices)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lookup(self, path: str, *, create: bool = False) -> _Node | None:
        node = self._root
        for segment in split_path(path):
            child = node.children.get(segment)
            if child is None:
                if not create:
                    return None
                child = _Node(path=join_path(node.path, segment))
                node.children[segment] = child
            node = child
        return node

    def _parent(self, path: str) -> _Node:
        segments = split_path(path)
        parent = self._lookup("/".join(segments[:-1]), create=True)
        assert parent is not None  # noqa: S101
        return parent

    def _materialize(self, path: str) -> tuple[_Node, list[_Node]]:
        """Resolve a node for writing, reviving it and its ancestors."""
        created: list[_Node] = []
        node = self._root
        for segment in split_path(path):
            child = node.children.get(segment)
            if child is None:
                child = _Node(path=join_path(node.path, segment))
                node.children[segment] = child
            if not child.alive:
                child.alive = True
                created.append(child)
            node = child
        return node, created

    def _merge(self, path: str, patch: Mapping[str, Any], notices: list[_Notice]) -> bool:
        """Merge ``patch`` into the node at ``path``; returns whether it changed."""
        node, created = self._materialize(path)
        changed: list[tuple[str, Any]] = []
        nested = False
        for key, value in patch.items():
            if is_metadata_key(key):
                continue
            if isinstance(value, Mapping):
                node.fields.pop(key, None)
                nested = self._merge(join_path(path, key), value, notices) or nested
                continue
            if value is None:
                if key in node.fields:
                    del node.fields[key]
                    changed.append((key, None))
                else:
                    nested = self._tombstone(join_path(path, key), notices) or nested
                continue
            child = node.children.get(key)
            if child is not None and child.alive:
                self._kill(child, notices)
            if node.fields.get(key, _MISSING) != value:
                node.fields[key] = copy.deepcopy(value)
                changed.append((key, value))

        touched = bool(created or changed or nested)
        if touched:
            self._notify_value(node, notices)
        for key, value in changed:
            self._notify_children(node, value, key, notices)
        # An existing node that changed is a changed child of its parent.
        if touched and node not in created and node is not self._root:
            self._notify_children(self._parent(node.path), node.value(), path_key(node.path), notices)

        # Ancestors first so parents are announced before their children.
        for fresh in created:
            if fresh is not node:
                self._notify_value(fresh, notices)
            self._notify_children(self._parent(fresh.path), fresh.value(), path_key(fresh.path), notices)
        return touched

    def _tombstone(self, path: str, notices: list[_Notice]) -> bool:
        node = self._lookup(path)
        if node is None or not node.alive or node is self._root:
            return False
        self._kill(node, notices)
        self._notify_children(self._parent(path), None, path_key(path), notices)
        return True

    def _kill(self, node: _Node, notices: list[_Notice]) -> None:
        """Tombstone a node and its live descendants, notifying value listeners only."""
        node.alive = False
        node.fields.clear()
        for child in node.children.values():
            if child.alive:
                self._kill(child, notices)
        self._notify_value(node, notices)

    @staticmethod
    def _notify_value(node: _Node, notices: list[_Notice]) -> None:
        value = node.value()
        key = path_key(node.path)
        for callback in node.listeners:
            notices.append((callback, copy.deepcopy(value), key))

    @staticmethod
    def _notify_children(node: _Node, value: Any, key: str, notices: list[_Notice]) -> None:
        for callback in node.child_listeners:
            notices.append((callback, copy.deepcopy(value), key))

    def _fire(self, notices: list[_Notice]) -> None:
        for callback, value, key in notices:
            try:
                callback(value, key)
            except Exception:
                self._logger.debug("graph listener failed for key=%s", key, exc_info=True)
