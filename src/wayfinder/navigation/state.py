"""Snapshot types — the immutable values the navigator commits.

``RouterState`` is the single authoritative snapshot. Every commit
produces a new instance; subscribers always receive the whole snapshot,
never a diff. The mappings inside a snapshot are fresh per commit and
must be treated as read-only.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from wayfinder.cancellation import CancellationToken
from wayfinder.history import HistoryAction
from wayfinder.location.forms import Submission
from wayfinder.location.path import Location
from wayfinder.routing.route import RouteMatch

NavigationState: TypeAlias = Literal["idle", "loading", "submitting"]
FetcherState: TypeAlias = Literal["idle", "loading", "submitting"]
RevalidationState: TypeAlias = Literal["idle", "loading"]


@dataclass(frozen=True, slots=True)
class Navigation:
    """The in-flight transition, or ``IDLE_NAVIGATION``.

    ``action`` is the history intent (push/replace/pop) the commit will
    apply. ``token`` is the cancellation token handed to the navigation's
    loaders and action.
    """

    state: NavigationState = "idle"
    location: Location | None = None
    submission: Submission | None = None
    action: HistoryAction | None = None
    token: CancellationToken | None = field(default=None, compare=False, repr=False)

    @classmethod
    def loading(
        cls,
        location: Location,
        *,
        submission: Submission | None = None,
        action: HistoryAction | None = None,
        token: CancellationToken | None = None,
    ) -> "Navigation":
        return cls("loading", location, submission, action, token)

    @classmethod
    def submitting(
        cls,
        location: Location,
        submission: Submission,
        *,
        action: HistoryAction | None = None,
        token: CancellationToken | None = None,
    ) -> "Navigation":
        return cls("submitting", location, submission, action, token)

    @property
    def is_idle(self) -> bool:
        return self.state == "idle"


IDLE_NAVIGATION = Navigation()


@dataclass(frozen=True, slots=True)
class Fetcher:
    """State of one keyed fetcher."""

    state: FetcherState = "idle"
    data: Any = None
    error: BaseException | None = None
    submission: Submission | None = None


IDLE_FETCHER = Fetcher()


@dataclass(frozen=True, slots=True)
class RouterState:
    """One committed navigation snapshot.

    Attributes:
        history_action: How ``location`` was reached.
        location: The current location.
        matches: Root-to-leaf matches for ``location``.
        initialized: False until the initial loaders have run.
        navigation: The in-flight navigation, or ``IDLE_NAVIGATION``.
        revalidation: ``"loading"`` while an uninterrupted revalidation runs.
        loader_data: Loader results keyed by route id.
        action_data: The last action's result keyed by route id, if any.
        errors: Route errors keyed by the boundary route id, if any.
        fetchers: Fetcher records keyed by fetcher key.
    """

    history_action: HistoryAction
    location: Location
    matches: tuple[RouteMatch, ...]
    initialized: bool
    navigation: Navigation = IDLE_NAVIGATION
    revalidation: RevalidationState = "idle"
    loader_data: dict[str, Any] = field(default_factory=dict)
    action_data: dict[str, Any] | None = None
    errors: dict[str, BaseException] | None = None
    fetchers: dict[str, Fetcher] = field(default_factory=dict)

    @property
    def idle(self) -> bool:
        """True when no navigation or revalidation is running."""
        return self.navigation.is_idle and self.revalidation == "idle"


@dataclass(frozen=True, slots=True)
class HydrationState:
    """Pre-loaded data for the initial location (e.g. rendered by a server).

    When supplied, the navigator starts initialized and skips the initial load.
    """

    loader_data: dict[str, Any] = field(default_factory=dict)
    action_data: dict[str, Any] | None = None
    errors: dict[str, BaseException] | None = None
