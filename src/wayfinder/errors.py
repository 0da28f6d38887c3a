"""Wayfinder exception hierarchy.

Shared across the route matcher, navigator and fetchers so every module
raises and catches the same types.

Two of these types double as values: ``HTTPError`` and ``Redirect`` are
frozen dataclasses that loaders and actions may either ``return`` or
``raise``. The navigator turns both forms into the same tagged result.
"""

from dataclasses import dataclass
from typing import Any


class WayfinderError(Exception):
    """Base for all wayfinder-specific errors."""


class ConfigurationError(WayfinderError):
    """Raised when a route tree or navigator setup is invalid.

    Typically raised while building a ``RouteTable``: misplaced splats,
    colliding param names, duplicate route ids, index routes with children.
    """


class NavigationCancelled(WayfinderError):  # noqa: N818
    """Raised by ``CancellationToken.raise_if_cancelled()``.

    Loaders may let it propagate; the result of a cancelled navigation is
    discarded either way.
    """


class AbortedDeferredError(WayfinderError):
    """Rejection reason for deferred keys cancelled before they settled."""


@dataclass(frozen=True, slots=True)
class HTTPError(WayfinderError):
    """A structured, status-carrying route error.

    Raised or returned by loaders and actions, and produced internally for
    unmatched locations (404) and missing actions (405). The navigator
    stores it under the nearest error-boundary route in ``state.errors``.
    """

    status: int
    detail: str = ""
    data: Any = None
    internal: bool = False

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class BadRequest(HTTPError):  # noqa: N818
    """400 — the submission could not be encoded."""

    def __init__(self, detail: str = "Bad Request", *, internal: bool = True) -> None:
        super().__init__(status=400, detail=detail, internal=internal)


class NotFound(HTTPError):  # noqa: N818
    """404 — no route matched the location's pathname."""

    def __init__(self, detail: str = "Not Found", *, internal: bool = True) -> None:
        super().__init__(status=404, detail=detail, internal=internal)


class MethodNotAllowed(HTTPError):  # noqa: N818
    """405 — the submitted route has no action, or the method is unknown."""

    def __init__(self, method: str, detail: str = "", *, internal: bool = True) -> None:
        default_detail = f"Invalid request method {method.upper()!r}"
        super().__init__(status=405, detail=detail or default_detail, internal=internal)


@dataclass(frozen=True, slots=True)
class Redirect(WayfinderError):
    """Control-flow signal that restarts navigation at ``location``.

    ``status`` follows HTTP semantics: 307 and 308 re-submit a mutation to
    the new location with the same method, every other status turns the
    navigation into a plain load.  ``revalidate`` forces every loader of
    the follow-up navigation to run.
    """

    location: str
    status: int = 302
    revalidate: bool = False

    def __str__(self) -> str:
        return f"{self.status} -> {self.location}"


def is_route_error_response(value: object) -> bool:
    """True if *value* is a structured route error rather than an arbitrary exception."""
    return isinstance(value, HTTPError)
