"""History sources for the navigator.

The navigator treats history as an abstract collaborator: it pushes and
replaces entries itself after committing, and listens for external
changes (back/forward), which arrive as POP updates.

``MemoryHistory`` keeps the stack in a list. It is the history used for
tests, scripts and non-browser hosts::

    history = MemoryHistory(["/", "/projects", "/projects/7"])
    history.location.pathname   # "/projects/7"
    history.go(-1)              # listeners receive a POP to /projects
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, TypeAlias

from wayfinder.location.path import Location, PathParts, create_location, create_path


class HistoryAction(Enum):
    """How the current location was reached."""

    POP = "POP"
    PUSH = "PUSH"
    REPLACE = "REPLACE"


@dataclass(frozen=True, slots=True)
class HistoryUpdate:
    """Payload delivered to history listeners."""

    action: HistoryAction
    location: Location
    delta: int | None = None


HistoryListener: TypeAlias = Callable[[HistoryUpdate], None]


class History(Protocol):
    """What the navigator needs from a history source.

    ``push``/``replace`` are called by the navigator after a commit and
    must not notify listeners. ``go`` moves through the stack and notifies
    listeners with a POP.
    """

    @property
    def action(self) -> HistoryAction: ...

    @property
    def location(self) -> Location: ...

    def push(self, location: Location) -> None: ...

    def replace(self, location: Location) -> None: ...

    def go(self, delta: int) -> None: ...

    def listen(self, listener: HistoryListener) -> Callable[[], None]: ...

    def create_href(self, to: str | PathParts | Location) -> str: ...


class MemoryHistory:
    """An in-memory history stack."""

    __slots__ = ("_action", "_entries", "_index", "_listeners")

    def __init__(
        self,
        initial_entries: Sequence[str | Location] = ("/",),
        initial_index: int | None = None,
    ) -> None:
        entries = list(initial_entries) or ["/"]
        self._entries: list[Location] = [
            entry
            if isinstance(entry, Location)
            else create_location("/", entry, key="default" if i == 0 else None)
            for i, entry in enumerate(entries)
        ]
        last = len(self._entries) - 1
        self._index = last if initial_index is None else self._clamp(initial_index)
        self._action = HistoryAction.POP
        self._listeners: list[HistoryListener] = []

    def _clamp(self, index: int) -> int:
        return min(max(index, 0), len(self._entries) - 1)

    @property
    def action(self) -> HistoryAction:
        return self._action

    @property
    def location(self) -> Location:
        return self._entries[self._index]

    @property
    def index(self) -> int:
        return self._index

    @property
    def entries(self) -> tuple[Location, ...]:
        return tuple(self._entries)

    def push(self, location: Location | str) -> None:
        """Add *location* after the current entry, dropping forward entries."""
        if isinstance(location, str):
            location = create_location(self.location, location)
        self._action = HistoryAction.PUSH
        self._index += 1
        del self._entries[self._index :]
        self._entries.append(location)

    def replace(self, location: Location | str) -> None:
        if isinstance(location, str):
            location = create_location(self.location, location)
        self._action = HistoryAction.REPLACE
        self._entries[self._index] = location

    def go(self, delta: int) -> None:
        """Move *delta* entries (clamped to the stack) and notify listeners."""
        self._action = HistoryAction.POP
        next_index = self._clamp(self._index + delta)
        actual = next_index - self._index
        self._index = next_index
        update = HistoryUpdate(action=HistoryAction.POP, location=self.location, delta=actual)
        for listener in list(self._listeners):
            listener(update)

    def listen(self, listener: HistoryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unlisten() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unlisten

    def create_href(self, to: str | PathParts | Location) -> str:
        if isinstance(to, str):
            return to
        return create_path(to.pathname or "/", to.search, to.hash)

    def __repr__(self) -> str:
        return f"MemoryHistory(index={self._index}, location={self.location.path!r})"

