"""Value objects for packages and the items inside them."""

from pkgfeed.models.item import MARKER_FIELDS, Item, ItemKind, MarkerItem, Tombstone
from pkgfeed.models.package import PackageRef, PackageWatchState

__all__ = [
    "MARKER_FIELDS",
    "Item",
    "ItemKind",
    "MarkerItem",
    "PackageRef",
    "PackageWatchState",
    "Tombstone",
]
