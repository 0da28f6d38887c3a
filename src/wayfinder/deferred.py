"""Deferred loader data — commit eager values now, settle the rest later.

A loader returns ``defer(...)`` with a mix of plain values and
awaitables. The navigator commits the plain values immediately and
replaces each awaitable with a ``PendingValue`` handle that the view
layer can await on its own schedule.

Usage::

    async def load_dashboard(params):
        return defer(
            user=await api.user(params["id"]),   # eager, committed with the navigation
            feed=api.feed(params["id"]),         # pending, settles after commit
        )

    # later, in the view layer
    data = navigator.state.loader_data["dashboard"]
    data["user"]         # available immediately
    await data["feed"]   # waits for the feed

Pending keys run concurrently in the navigator's task group, each in its
own ``anyio.CancelScope`` so a single key can be aborted. When the route
that produced the data is unmatched or reloaded, every unsettled key is
rejected with ``AbortedDeferredError``.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Generator, Mapping
from typing import Any

import anyio
import anyio.abc

from wayfinder.cancellation import CancellationToken
from wayfinder.errors import AbortedDeferredError, ConfigurationError

logger = logging.getLogger("wayfinder.deferred")

_UNSET: Any = object()


# ---------------------------------------------------------------------------
# Pending value handle
# ---------------------------------------------------------------------------


class PendingValue:
    """Awaitable handle for one deferred key.

    ``await handle`` returns the value or raises the error it settled with.
    ``done``, ``value`` and ``error`` allow synchronous inspection.
    """

    __slots__ = ("_error", "_event", "_value", "key")

    def __init__(self, key: str) -> None:
        self.key = key
        self._value: Any = _UNSET
        self._error: BaseException | None = None
        self._event: anyio.Event | None = None

    @property
    def done(self) -> bool:
        return self._value is not _UNSET or self._error is not None

    @property
    def value(self) -> Any:
        """The settled value. Raises ``LookupError`` while still pending."""
        if self._value is _UNSET:
            raise LookupError(f"deferred key {self.key!r} has no value")
        return self._value

    @property
    def error(self) -> BaseException | None:
        return self._error

    def _resolve(self, value: Any) -> None:
        if self.done:
            return
        self._value = value
        if self._event is not None:
            self._event.set()

    def _reject(self, error: BaseException) -> None:
        if self.done:
            return
        self._error = error
        if self._event is not None:
            self._event.set()

    async def settled(self) -> None:
        """Wait until the key resolves or rejects, without raising."""
        if self.done:
            return
        if self._event is None:
            self._event = anyio.Event()
        await self._event.wait()

    async def get(self) -> Any:
        await self.settled()
        if self._error is not None:
            raise self._error
        return self._value

    def __await__(self) -> Generator[Any, None, Any]:
        return self.get().__await__()

    def __repr__(self) -> str:
        if self._error is not None:
            return f"PendingValue({self.key!r}, error={self._error!r})"
        if self._value is not _UNSET:
            return f"PendingValue({self.key!r}, value={self._value!r})"
        return f"PendingValue({self.key!r}, pending)"


# ---------------------------------------------------------------------------
# Deferred data
# ---------------------------------------------------------------------------


class DeferredData:
    """A loader result whose awaitable values settle after commit.

    Created by ``defer()``. The navigator calls ``start()`` with its task
    group once the owning navigation commits, or ``resolve_data()`` when
    the data must be complete before commit (revalidations, fetchers).
    """

    __slots__ = (
        "_aborted",
        "_awaitables",
        "_handles",
        "_scopes",
        "_started",
        "_subscribers",
        "data",
    )

    def __init__(self, mapping: Mapping[str, Any]) -> None:
        if not isinstance(mapping, Mapping):
            raise ConfigurationError(
                f"defer() expects a mapping of values, got {type(mapping).__name__}"
            )
        self.data: dict[str, Any] = {}
        self._awaitables: dict[str, Awaitable[Any]] = {}
        self._handles: dict[str, PendingValue] = {}
        self._scopes: dict[str, anyio.CancelScope] = {}
        self._subscribers: list[Callable[[bool], None]] = []
        self._started = False
        self._aborted = False

        for key, value in mapping.items():
            if isinstance(value, PendingValue):
                # Re-deferring a handle from another DeferredData keeps the handle
                self.data[key] = value
                if not value.done:
                    self._handles[key] = value
                    self._awaitables[key] = value.get()
            elif inspect.isawaitable(value):
                handle = PendingValue(key)
                self.data[key] = handle
                self._handles[key] = handle
                self._awaitables[key] = value
            else:
                self.data[key] = value

    # -- Inspection --

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def done(self) -> bool:
        """True once every pending key resolved or rejected."""
        return all(handle.done for handle in self._handles.values())

    @property
    def pending_keys(self) -> frozenset[str]:
        return frozenset(key for key, handle in self._handles.items() if not handle.done)

    @property
    def unwrapped_data(self) -> dict[str, Any]:
        """Plain values for every key.

        Raises the first settled error, or ``LookupError`` if a key is
        still pending.
        """
        result: dict[str, Any] = {}
        for key, value in self.data.items():
            if isinstance(value, PendingValue):
                if value.error is not None:
                    raise value.error
                result[key] = value.value
            else:
                result[key] = value
        return result

    # -- Settling --

    def start(self, task_group: anyio.abc.TaskGroup) -> None:
        """Begin settling pending keys inside *task_group*. Idempotent."""
        if self._started or self._aborted:
            return
        self._started = True
        for key, awaitable in self._awaitables.items():
            task_group.start_soon(self._settle, key, awaitable, name=f"deferred:{key}")

    async def _settle(self, key: str, awaitable: Awaitable[Any]) -> None:
        handle = self._handles[key]
        if handle.done:
            # Cancelled before the task got to run
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        try:
            with anyio.CancelScope() as scope:
                self._scopes[key] = scope
                try:
                    value = await awaitable
                except Exception as exc:
                    logger.debug("Deferred key %r rejected: %r", key, exc)
                    handle._reject(exc)
                else:
                    handle._resolve(value)
        finally:
            self._scopes.pop(key, None)
            if not handle.done:
                # The surrounding task group was cancelled (navigator shutdown)
                handle._reject(AbortedDeferredError(f"deferred key {key!r} was cancelled"))
            self._notify(self._aborted)

    async def wait(self) -> None:
        """Wait until every pending key settled."""
        for handle in list(self._handles.values()):
            await handle.settled()

    async def resolve_data(self, token: CancellationToken | None = None) -> bool:
        """Settle every key before returning. Returns True if aborted.

        Used where the data must be complete before it is committed. When
        *token* is cancelled first, the remaining keys are aborted.
        """
        if self.done:
            return self._aborted

        async def _cancel_on_signal(signal: CancellationToken) -> None:
            await signal.wait()
            self.cancel()

        async with anyio.create_task_group() as tg:
            if token is not None:
                tg.start_soon(_cancel_on_signal, token)
            self.start(tg)
            await self.wait()
            tg.cancel_scope.cancel()
        return self._aborted

    def cancel(self) -> None:
        """Abort every unsettled key with ``AbortedDeferredError``."""
        if self._aborted or self.done:
            return
        self._aborted = True
        pending = self.pending_keys
        logger.debug("Cancelling deferred keys: %s", ", ".join(sorted(pending)))
        for key in pending:
            self._handles[key]._reject(AbortedDeferredError(f"deferred key {key!r} was cancelled"))
            scope = self._scopes.pop(key, None)
            if scope is not None:
                scope.cancel()
            elif not self._started:
                awaitable = self._awaitables[key]
                if inspect.iscoroutine(awaitable):
                    awaitable.close()
        self._notify(True)

    # -- Subscription --

    def subscribe(self, fn: Callable[[bool], None]) -> Callable[[], None]:
        """Call *fn(aborted)* whenever a key settles or the data is cancelled."""
        self._subscribers.append(fn)

        def unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return unsubscribe

    def _notify(self, aborted: bool) -> None:
        for fn in list(self._subscribers):
            fn(aborted)

    def __repr__(self) -> str:
        return (
            f"DeferredData(keys={list(self.data)!r}, "
            f"pending={sorted(self.pending_keys)!r}, aborted={self._aborted})"
        )


def defer(mapping: Mapping[str, Any] | None = None, /, **values: Any) -> DeferredData:
    """Build ``DeferredData`` from a mapping and/or keyword values.

    ::

        return defer({"critical": rows}, lazy=fetch_more())
    """
    merged: dict[str, Any] = {}
    if mapping is not None:
        if not isinstance(mapping, Mapping):
            raise ConfigurationError(
                f"defer() expects a mapping of values, got {type(mapping).__name__}"
            )
        merged.update(mapping)
    merged.update(values)
    return DeferredData(merged)
