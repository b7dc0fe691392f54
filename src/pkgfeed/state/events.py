"""Feed lifecycle events.

The registry and the item feed describe every state transition as a
:class:`FeedEvent`.  Only the facade publishes them to consumers, stamped
with the owning context.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pkgfeed.models.item import Item
from pkgfeed.models.package import PackageRef


class FeedEventType(StrEnum):
    WATCH = "watch"
    UNWATCH = "unwatch"
    ITEM_WATCH = "item-watch"
    ITEM_UNWATCH = "item-unwatch"
    CHANGE = "change"
    RESET = "reset"


class FeedEvent(BaseModel):
    """One outward lifecycle event.

    ``item`` is a live reference to the tracked :class:`Item`, not a
    snapshot: later field changes are merged into it and it is flagged
    ``active=False`` when the item is unwatched.  ``data`` is a copy taken
    when the event was emitted.
    """

    model_config = ConfigDict(frozen=True)

    type: FeedEventType
    context: str | None = Field(default=None, description="Owning user/session id")
    package: PackageRef | None = None
    id: str | None = Field(default=None, description="Item id for item-level events")
    data: dict[str, Any] | None = Field(
        default=None,
        description="Full record for item-watch, the single changed field for change",
    )
    item: Item | None = None
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
