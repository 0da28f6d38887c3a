"""Navigation store — the single owner of the current snapshot.

The navigator is the only writer: it calls ``commit()`` after its
sequence-number checks pass. Readers either register a callback with
``subscribe()`` or iterate ``updates()`` from a task.

Callbacks run synchronously inside ``commit()``, in registration order,
so they observe commits in order and never interleaved. Stream
subscribers get their own bounded ``anyio`` memory stream; a consumer
that falls behind loses updates rather than blocking commits.
"""

import dataclasses
import logging
import threading
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeAlias

import anyio
from anyio.streams.memory import MemoryObjectSendStream

from wayfinder.navigation.state import RouterState

logger = logging.getLogger("wayfinder.store")

StateListener: TypeAlias = Callable[[RouterState], None]


class NavigationStore:
    """Holds the current ``RouterState`` and broadcasts every commit.

    Usage::

        store = NavigationStore(initial_state)
        unsubscribe = store.subscribe(lambda state: print(state.location))

        async for state in store.updates():
            render(state)
    """

    __slots__ = ("_buffer_size", "_closed", "_listeners", "_lock", "_state", "_streams")

    def __init__(self, state: RouterState, *, buffer_size: int = 256) -> None:
        self._state = state
        self._buffer_size = buffer_size
        self._listeners: list[StateListener] = []
        self._streams: set[MemoryObjectSendStream[RouterState]] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def state(self) -> RouterState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with every committed snapshot. Returns an unsubscriber."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def commit(self, **changes: Any) -> RouterState:
        """Replace the snapshot with a copy carrying *changes* and notify.

        Field names are those of ``RouterState``.
        """
        self._state = dataclasses.replace(self._state, **changes)
        self._broadcast(self._state)
        return self._state

    def _broadcast(self, state: RouterState) -> None:
        with self._lock:
            listeners = list(self._listeners)
            streams = set(self._streams)
        for listener in listeners:
            listener(state)
        for stream in streams:
            try:
                stream.send_nowait(state)
            except anyio.WouldBlock:
                logger.warning("Dropping navigation update for a slow subscriber")
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                with self._lock:
                    self._streams.discard(stream)

    async def updates(self) -> AsyncIterator[RouterState]:
        """Yield every snapshot committed after iteration starts.

        The iterator ends when the store is closed.
        """
        if self._closed:
            return
        send, receive = anyio.create_memory_object_stream[RouterState](self._buffer_size)
        with self._lock:
            self._streams.add(send)
        try:
            async with receive:
                async for state in receive:
                    yield state
        finally:
            with self._lock:
                self._streams.discard(send)
            send.close()

    async def wait_for(self, predicate: Callable[[RouterState], bool]) -> RouterState:
        """Return the first snapshot (current one included) satisfying *predicate*."""
        if predicate(self._state):
            return self._state
        event = anyio.Event()
        found: list[RouterState] = []

        def listener(state: RouterState) -> None:
            if not found and predicate(state):
                found.append(state)
                event.set()

        unsubscribe = self.subscribe(listener)
        try:
            await event.wait()
        finally:
            unsubscribe()
        return found[0]

    def close(self) -> None:
        """End every ``updates()`` iterator and drop all listeners."""
        with self._lock:
            self._closed = True
            streams = set(self._streams)
            self._streams.clear()
            self._listeners.clear()
        for stream in streams:
            stream.close()
