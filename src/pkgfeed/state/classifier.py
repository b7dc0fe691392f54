"""Structural item classification.

Pure functions: the classification decides which value object is built,
never the feed's control flow.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pkgfeed.models.item import MARKER_FIELDS, Item, ItemKind, MarkerItem
from pkgfeed.models.package import PackageRef


def classify(fields: Mapping[str, Any]) -> ItemKind:
    """Markers carry all of the geo, ordinal and timestamp fields."""
    if all(fields.get(name) is not None for name in MARKER_FIELDS):
        return ItemKind.MARKER
    return ItemKind.GENERIC


def build_item(item_id: str, package: PackageRef, fields: Mapping[str, Any]) -> Item:
    data = dict(fields)
    if classify(data) is ItemKind.MARKER:
        return MarkerItem(id=item_id, package=package, data=data)
    return Item(id=item_id, package=package, data=data)
