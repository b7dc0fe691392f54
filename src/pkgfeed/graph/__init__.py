"""Graph store adapters.

The feed only talks to the graph store through :class:`GraphStoreAdapter`.
:class:`InMemoryGraphStore` is a local reference implementation;
:mod:`pkgfeed.graph.mqtt` replicates it over retained MQTT messages.
"""

from pkgfeed.graph.base import GraphStoreAdapter, NodeCallback
from pkgfeed.graph.memory import InMemoryGraphStore

__all__ = ["GraphStoreAdapter", "InMemoryGraphStore", "NodeCallback"]
