"""Cooperative cancellation tokens.

Every navigation and every fetcher owns one token. Superseding work
triggers the token; loaders and actions receive it as ``signal`` and may
observe it to stop early. Nothing is interrupted preemptively: results
that arrive after cancellation are discarded by sequence-number checks.

Usage inside a loader::

    async def load_report(signal: CancellationToken, params):
        for chunk in chunks(params["id"]):
            signal.raise_if_cancelled()
            await process(chunk)
"""

import anyio

from wayfinder.errors import NavigationCancelled


class CancellationToken:
    """A one-shot cancellation flag that async callers can wait on."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event: anyio.Event | None = None
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Trigger the token. Later calls keep the first reason."""
        if self._reason is not None:
            return
        self._reason = reason
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._reason is not None:
            return
        if self._event is None:
            # Created lazily so tokens can be built outside a running loop
            self._event = anyio.Event()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise NavigationCancelled(self._reason)

    def __repr__(self) -> str:
        state = f"cancelled={self._reason!r}" if self.cancelled else "active"
        return f"CancellationToken({state})"
