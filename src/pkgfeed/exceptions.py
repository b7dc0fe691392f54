"""Custom exception hierarchy for pkgfeed."""

from __future__ import annotations


class FeedError(Exception):
    """Base exception for all pkgfeed errors."""


class FeedConfigError(FeedError):
    """Invalid or missing configuration."""


class InvalidIdentifierError(FeedError, ValueError):
    """A package identifier could not be split into ``name@version``.

    Raised by :meth:`pkgfeed.models.package.PackageRef.parse` and the
    registry.  The public facade catches it, logs it, and turns the call
    into a no-op.
    """

    def __init__(self, message: str, *, identifier: object = None) -> None:
        self.identifier = identifier
        super().__init__(message)


class AdapterUnavailableError(FeedError):
    """The graph store could not be reached for a one-shot read.

    Only package confirmation reads surface this to callers (as the
    exception of the confirmation task).  Item-level subscriptions have no
    failure channel.
    """

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)
