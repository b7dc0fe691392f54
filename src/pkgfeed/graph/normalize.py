"""Graph value helpers.

Node values delivered by adapters carry a ``_`` metadata entry next to
their fields.  Application data never includes it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

METADATA_KEY = "_"
SOUL_KEY = "#"


def split_path(path: str) -> list[str]:
    return [segment for segment in path.strip("/").split("/") if segment]


def join_path(*segments: str) -> str:
    parts: list[str] = []
    for segment in segments:
        parts.extend(split_path(segment))
    return "/".join(parts)


def path_key(path: str) -> str:
    """Last segment of a path (the key callbacks receive)."""
    segments = split_path(path)
    return segments[-1] if segments else ""


def node_meta(path: str) -> dict[str, str]:
    return {SOUL_KEY: path}


def strip_metadata(value: Any) -> dict[str, Any]:
    """Return the application fields of a node value.

    Non-mapping values yield an empty dict.
    """
    if not isinstance(value, Mapping):
        return {}
    return {key: field for key, field in value.items() if key != METADATA_KEY}


def is_metadata_key(key: str) -> bool:
    return key == METADATA_KEY
