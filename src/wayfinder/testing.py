"""Test doubles for loaders and actions.

``ControlledFunction`` stands in for a loader or action whose calls stay
pending until the test settles them, so races between navigations can be
staged deterministically::

    loader = ControlledFunction()
    routes = [Route(path="/", loader=loader)]

    async with Navigator(routes) as navigator, anyio.create_task_group() as tg:
        tg.start_soon(navigator.navigate, "/?page=2")
        call = await loader.next_call()
        call.resolve({"page": 2})
"""

from typing import Any

import anyio

from wayfinder.cancellation import CancellationToken


class ControlledCall:
    """One pending invocation of a ``ControlledFunction``."""

    __slots__ = ("_error", "_event", "_settled", "_value", "kwargs")

    def __init__(self, kwargs: dict[str, Any]) -> None:
        self.kwargs = kwargs
        self._event = anyio.Event()
        self._settled = False
        self._value: Any = None
        self._error: BaseException | None = None

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def params(self) -> dict[str, str]:
        return self.kwargs.get("params", {})

    @property
    def signal(self) -> CancellationToken | None:
        return self.kwargs.get("signal")

    def resolve(self, value: Any = None) -> None:
        self._settle(value, None)

    def reject(self, error: BaseException) -> None:
        self._settle(None, error)

    def _settle(self, value: Any, error: BaseException | None) -> None:
        if self._settled:
            msg = "ControlledCall was already settled"
            raise RuntimeError(msg)
        self._settled = True
        self._value = value
        self._error = error
        self._event.set()

    async def result(self) -> Any:
        await self._event.wait()
        if self._error is not None:
            raise self._error
        return self._value


class ControlledFunction:
    """A loader/action double that records calls and waits to be settled.

    Every call receives all data-function arguments as keywords
    (``params``, ``location``, ``signal``, ``form_data``, ...).
    """

    __test__ = False

    __slots__ = ("_calls", "_handed_out", "_new_call", "name")

    def __init__(self, name: str = "controlled") -> None:
        self.name = name
        self._calls: list[ControlledCall] = []
        self._handed_out = 0
        self._new_call: anyio.Event | None = None

    async def __call__(self, **kwargs: Any) -> Any:
        call = ControlledCall(kwargs)
        self._calls.append(call)
        if self._new_call is not None:
            self._new_call.set()
            self._new_call = None
        return await call.result()

    @property
    def calls(self) -> tuple[ControlledCall, ...]:
        return tuple(self._calls)

    @property
    def call_count(self) -> int:
        return len(self._calls)

    async def next_call(self) -> ControlledCall:
        """Wait for the first call not yet returned by ``next_call()``."""
        while self._handed_out >= len(self._calls):
            if self._new_call is None:
                self._new_call = anyio.Event()
            await self._new_call.wait()
        call = self._calls[self._handed_out]
        self._handed_out += 1
        return call

    def __repr__(self) -> str:
        return f"ControlledFunction({self.name!r}, calls={len(self._calls)})"
