"""Context-prefixed loggers.

Every feed instance logs with a fixed-width prefix naming its owning
context, e.g. ``[f:alice]           watch package: acme@1.0``.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any


def log_prefix(context_id: str | None, width: int = 20) -> str:
    label = f"f:{context_id}" if context_id else "no-context"
    return f"[{label}]".ljust(width)


class PrefixedLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that prepends the context log prefix to each message."""

    def __init__(self, logger: logging.Logger, prefix: str) -> None:
        super().__init__(logger, {"log_prefix": prefix})
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"{self.prefix} {msg}", kwargs


def prefixed_logger(name: str, prefix: str) -> PrefixedLogger:
    return PrefixedLogger(logging.getLogger(name), prefix)
