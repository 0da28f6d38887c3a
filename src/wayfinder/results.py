"""Tagged results for loaders and actions.

Every data-function call is normalized into exactly one of::

    Ok(data)        # returned a value (possibly DeferredData)
    Err(error)      # raised, or returned an HTTPError / Err
    Redirect(...)   # returned or raised a Redirect

The navigator branches on the tag instead of on exception types, so
control flow stays explicit. Loaders may still ``raise NotFound()`` or
``raise Redirect("/login")`` when that reads better; the call site
converts both into the same result.
"""

from dataclasses import dataclass
from typing import Any, TypeAlias

from wayfinder.deferred import DeferredData
from wayfinder.errors import HTTPError, Redirect


@dataclass(frozen=True, slots=True)
class Ok:
    """Successful loader/action result."""

    data: Any = None

    @property
    def deferred(self) -> DeferredData | None:
        """The ``DeferredData`` when the loader returned ``defer(...)``."""
        return self.data if isinstance(self.data, DeferredData) else None


@dataclass(frozen=True, slots=True)
class Err:
    """Failed loader/action result.

    ``error`` is either a structured ``HTTPError`` (an expected route error)
    or any other exception (an unexpected failure).
    """

    error: BaseException

    @property
    def unexpected(self) -> bool:
        return not isinstance(self.error, HTTPError)

    @property
    def status(self) -> int:
        """HTTP-style status: the error's own for route errors, 500 otherwise."""
        if isinstance(self.error, HTTPError):
            return self.error.status
        return 500


DataResult: TypeAlias = Ok | Err | Redirect


def redirect(location: str, status: int = 302, *, revalidate: bool = False) -> Redirect:
    """Shortcut for returning a redirect from a loader or action.

    ::

        def load_account(context):
            if context.user is None:
                return redirect("/login")
            return context.user
    """
    return Redirect(location=location, status=status, revalidate=revalidate)


def to_result(value: Any) -> DataResult:
    """Normalize a data function's return value into a tagged result."""
    if isinstance(value, Ok | Err | Redirect):
        return value
    if isinstance(value, HTTPError):
        return Err(value)
    return Ok(value)


def find_redirect(results: list[DataResult]) -> Redirect | None:
    """Return the redirect from the deepest match, if any result is one."""
    for result in reversed(results):
        if isinstance(result, Redirect):
            return result
    return None
