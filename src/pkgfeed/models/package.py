"""Package identifiers and watch states."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from pkgfeed.exceptions import InvalidIdentifierError


class PackageWatchState(StrEnum):
    """Lifecycle of one package subscription.

    ``UNWATCHED -> PENDING -> WATCHED | MISSING``; ``WATCHED -> UNWATCHED``
    on removal or reset.  ``MISSING`` stays put until a fresh subscribe.
    """

    UNWATCHED = "unwatched"
    PENDING = "pending"
    WATCHED = "watched"
    MISSING = "missing"


class PackageRef(BaseModel):
    """One watchable package instance, canonical form ``name@version``."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    name: str
    version: str

    @field_validator("name", "version")
    @classmethod
    def _check_segment(cls, value: str) -> str:
        if not value:
            raise ValueError("must be non-empty")
        # Both parts become graph path segments.
        if "@" in value or "/" in value:
            raise ValueError("must not contain '@' or '/'")
        return value

    @classmethod
    def parse(cls, value: Any) -> PackageRef:
        """Parse ``name@version`` (or pass an existing ref through)."""
        if isinstance(value, PackageRef):
            return value
        if not isinstance(value, str):
            raise InvalidIdentifierError(
                f"package identifier must be a string, got {type(value).__name__}",
                identifier=value,
            )
        name, sep, version = value.partition("@")
        if not sep:
            raise InvalidIdentifierError(f"missing '@version' in package identifier: {value!r}", identifier=value)
        try:
            return cls(name=name, version=version)
        except ValidationError as exc:
            raise InvalidIdentifierError(f"invalid package identifier: {value!r}", identifier=value) from exc

    @property
    def id(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def node_path(self) -> str:
        """Graph path of the versioned data node."""
        return f"pkg/{self.name}/data/{self.version}"

    def item_path(self, item_id: str) -> str:
        return f"{self.node_path}/{item_id}"

    def __str__(self) -> str:
        return self.id
