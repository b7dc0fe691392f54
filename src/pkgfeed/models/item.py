"""Item value objects tracked by the item feed.

An :class:`Item` is the live, mutable view of one data record inside a
watched package.  Field-level changes are merged into ``data`` in place,
so consumers holding an ``Item`` from an ``item-watch`` event always read
the latest record.

When the record is deleted in the graph store the item is not discarded:
it is wrapped in a :class:`Tombstone` that keeps the last-known ``Item``
for the ``item-unwatch`` payload.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pkgfeed.models.package import PackageRef

#: Field names whose joint presence makes an item a marker.
MARKER_GEO_FIELD = "g"
MARKER_ORDINAL_FIELD = "o"
MARKER_TIMESTAMP_FIELD = "t"
MARKER_FIELDS: tuple[str, str, str] = (MARKER_GEO_FIELD, MARKER_ORDINAL_FIELD, MARKER_TIMESTAMP_FIELD)


class ItemKind(StrEnum):
    MARKER = "marker"
    GENERIC = "generic"


class Item(BaseModel):
    """A data record inside a package."""

    model_config = ConfigDict(extra="forbid")

    id: str
    package: PackageRef
    kind: ItemKind = ItemKind.GENERIC
    data: dict[str, Any] = Field(default_factory=dict)
    active: bool = True

    def refresh(self, patch: Mapping[str, Any]) -> None:
        """Merge a field patch; ``None`` values remove the field."""
        for key, value in patch.items():
            if value is None:
                self.data.pop(key, None)
            else:
                self.data[key] = value


class MarkerItem(Item):
    """Item carrying geo, ordinal and timestamp fields."""

    kind: ItemKind = ItemKind.MARKER

    @property
    def geo(self) -> Any:
        return self.data.get(MARKER_GEO_FIELD)

    @property
    def ordinal(self) -> Any:
        return self.data.get(MARKER_ORDINAL_FIELD)

    @property
    def timestamp(self) -> Any:
        return self.data.get(MARKER_TIMESTAMP_FIELD)


class Tombstone(BaseModel):
    """A logically deleted item, retained with its last-known record."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    package: PackageRef
    item: Item
    removed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def of(cls, item: Item) -> Tombstone:
        item.active = False
        return cls(id=item.id, package=item.package, item=item)
