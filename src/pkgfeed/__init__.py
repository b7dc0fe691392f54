"""pkgfeed - Reconcile graph store notifications into a package/item event feed."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pkgfeed")
except PackageNotFoundError:
    __version__ = "0+local"
from pkgfeed.config import FeedConfig, MqttConfig
from pkgfeed.exceptions import (
    AdapterUnavailableError,
    FeedConfigError,
    FeedError,
    InvalidIdentifierError,
)
from pkgfeed.facade import FeedFacade, watch_packages
from pkgfeed.graph import GraphStoreAdapter, InMemoryGraphStore
from pkgfeed.models import (
    MARKER_FIELDS,
    Item,
    ItemKind,
    MarkerItem,
    PackageRef,
    PackageWatchState,
    Tombstone,
)
from pkgfeed.state.events import FeedEvent, FeedEventType

__all__ = [
    "__version__",
    "MARKER_FIELDS",
    "AdapterUnavailableError",
    "FeedConfig",
    "FeedConfigError",
    "FeedError",
    "FeedEvent",
    "FeedEventType",
    "FeedFacade",
    "GraphStoreAdapter",
    "InMemoryGraphStore",
    "InvalidIdentifierError",
    "Item",
    "ItemKind",
    "MarkerItem",
    "MqttConfig",
    "PackageRef",
    "PackageWatchState",
    "Tombstone",
    "watch_packages",
]
