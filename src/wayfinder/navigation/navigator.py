"""Navigator — the navigation state machine.

Accepts navigation intents (``navigate()``, ``submit()``, history POPs,
``revalidate()``), runs the matching actions and loaders, and commits
new ``RouterState`` snapshots to its ``NavigationStore``.

Lifecycle::

    async with Navigator(routes, history=MemoryHistory(["/"])) as navigator:
        await navigator.navigate("/projects/7")
        navigator.state.loader_data["0-1"]

Entering the context starts a task group that hosts POP navigations,
deferred values and background revalidations, and runs the initial
load. Exiting cancels everything still in flight.

Sequencing:
    Every navigation cycle takes the next value of a monotonically
    increasing navigation id and cancels the previous cycle's token.
    After each suspension point the cycle compares its id with the
    current one and silently drops its results if it was superseded.
    Commits happen only on the event loop thread between suspension
    points, so they never interleave.

Redirects:
    A redirect from an action or loader starts the next cycle inside
    the same ``_start_navigation`` loop, without passing through idle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

import anyio
import anyio.abc

from wayfinder.cancellation import CancellationToken
from wayfinder.config import RouterConfig
from wayfinder.deferred import DeferredData
from wayfinder.errors import HTTPError, MethodNotAllowed, NotFound, Redirect
from wayfinder.history import History, HistoryAction, HistoryUpdate, MemoryHistory
from wayfinder.location.forms import URLENCODED, FormData, Submission, normalize_submission
from wayfinder.location.path import (
    Location,
    create_location,
    create_path,
    join_paths,
    parse_path,
    resolve_path,
    resolve_to,
)
from wayfinder.navigation.data import (
    call_data_function,
    find_nearest_boundary,
    get_path_contributing_matches,
    get_target_match,
    merge_loader_data,
    process_loader_data,
    resolve_deferred_result,
    short_circuit_matches,
)
from wayfinder.navigation.fetchers import FetcherManager
from wayfinder.navigation.revalidation import (
    RevalidatingFetcher,
    get_matches_to_load,
    is_new_route_instance,
)
from wayfinder.navigation.state import (
    IDLE_NAVIGATION,
    Fetcher,
    HydrationState,
    Navigation,
    RouterState,
)
from wayfinder.navigation.store import NavigationStore, StateListener
from wayfinder.results import DataResult, Err, Ok, find_redirect
from wayfinder.routing.matcher import RouteTable
from wayfinder.routing.route import Route, RouteMatch

logger = logging.getLogger("wayfinder.navigation")

# Redirect statuses that re-submit a mutation with the same method
PRESERVE_METHOD_STATUSES = frozenset({307, 308})


@dataclass(frozen=True, slots=True)
class _NavigationIntent:
    """Everything needed to start one navigation cycle."""

    history_action: HistoryAction
    location: Location
    submission: Submission | None = None
    pending_error: HTTPError | None = None
    override_navigation: Navigation | None = None
    replace: bool | None = None
    uninterrupted: bool = False
    is_redirect: bool = False


@dataclass(frozen=True, slots=True)
class _ActionOutcome:
    action_data: dict[str, Any]
    errors: dict[str, BaseException] | None = None


@dataclass(slots=True)
class _LoadOutcome:
    loader_data: dict[str, Any]
    errors: dict[str, BaseException] | None
    failed: frozenset[str]
    deferreds: dict[str, DeferredData] = field(default_factory=dict)
    fetchers: dict[str, Fetcher] | None = None


def is_hash_change_only(current: Location, location: Location) -> bool:
    return (
        current.pathname == location.pathname
        and current.search == location.search
        and current.hash != location.hash
    )


class Navigator:
    """Owns a ``NavigationStore`` and sequences every change to it.

    Args:
        routes: The route tree, or an already built ``RouteTable``.
        history: History source. Defaults to ``MemoryHistory(["/"])``.
        config: ``RouterConfig``; defaults apply when omitted.
        hydration_data: Pre-loaded data for the initial location; skips
            the initial load.
        context: Opaque value passed to every loader and action as
            ``context``.
    """

    __slots__ = (
        "_active_deferreds",
        "_cancelled_deferred_routes",
        "_fetchers",
        "_force_revalidation",
        "_load_id",
        "_navigation_id",
        "_pending_action",
        "_pending_is_redirect",
        "_pending_navigation_load_id",
        "_pending_token",
        "_revalidate_on_commit",
        "_revalidation_required",
        "_task_group",
        "_uninterrupted",
        "_unlisten",
        "config",
        "context",
        "history",
        "store",
        "table",
    )

    def __init__(
        self,
        routes: Sequence[Route] | RouteTable,
        *,
        history: History | None = None,
        config: RouterConfig | None = None,
        hydration_data: HydrationState | None = None,
        context: Any = None,
    ) -> None:
        self.config = config or RouterConfig()
        self.table = (
            routes
            if isinstance(routes, RouteTable)
            else RouteTable(routes, case_sensitive=self.config.case_sensitive)
        )
        self.history: History = history if history is not None else MemoryHistory()
        self.context = context

        location = self.history.location
        matches = self.table.match(location, self.config.basename)
        errors: dict[str, BaseException] | None = None
        if matches is None:
            matches, route = short_circuit_matches(self.table.routes)
            errors = {route.id or "": NotFound(f"No route matches URL {location.pathname!r}")}

        hydration = hydration_data
        initialized = hydration is not None or not any(m.route.loader for m in matches)
        self.store = NavigationStore(
            RouterState(
                history_action=self.history.action,
                location=location,
                matches=tuple(matches),
                initialized=initialized,
                loader_data=dict(hydration.loader_data) if hydration else {},
                action_data=hydration.action_data if hydration else None,
                errors=errors or (hydration.errors if hydration else None),
            ),
            buffer_size=self.config.subscriber_buffer,
        )

        self._task_group: anyio.abc.TaskGroup | None = None
        self._unlisten: Callable[[], None] | None = None
        self._navigation_id = 0
        self._load_id = 0
        self._pending_navigation_load_id = -1
        self._pending_token: CancellationToken | None = None
        self._pending_action = HistoryAction.POP
        self._pending_is_redirect = False
        self._uninterrupted = False
        self._revalidation_required = False
        self._force_revalidation = False
        self._revalidate_on_commit = False
        self._cancelled_deferred_routes: list[str] = []
        self._active_deferreds: dict[str, DeferredData] = {}
        self._fetchers = FetcherManager(self)

    # -- Public state --

    @property
    def state(self) -> RouterState:
        return self.store.state

    @property
    def routes(self) -> tuple[Route, ...]:
        return self.table.routes

    @property
    def running(self) -> bool:
        return self._task_group is not None

    @property
    def active_deferreds(self) -> Mapping[str, DeferredData]:
        """Deferred loader data still settling, keyed by route id."""
        return dict(self._active_deferreds)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def create_href(self, to: str) -> str:
        return self.history.create_href(self._resolve_href(to))

    # -- Lifecycle --

    async def __aenter__(self) -> Navigator:
        if self._task_group is not None:
            msg = "Navigator is already running."
            raise RuntimeError(msg)
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None:
        task_group = self._task_group
        self.dispose()
        if task_group is None:
            return None
        task_group.cancel_scope.cancel()
        try:
            return await task_group.__aexit__(exc_type, exc, tb)
        finally:
            self._task_group = None

    def initialize(self) -> None:
        """Listen to history and start the initial load if one is needed."""
        self._unlisten = self.history.listen(self._on_history_update)
        state = self.state
        if not state.initialized:
            self._spawn(
                self._start_navigation,
                _NavigationIntent(HistoryAction.POP, state.location),
                name="initial navigation",
            )

    def dispose(self) -> None:
        """Stop listening and cancel every pending navigation, deferred and fetcher."""
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None
        self._navigation_id += 1
        if self._pending_token is not None:
            self._pending_token.cancel("disposed")
            self._pending_token = None
        self._cancel_active_deferreds()
        self._fetchers.dispose()
        self.store.close()

    def _ensure_running(self) -> None:
        if self._task_group is None:
            msg = (
                "Navigator is not running. "
                "Enter it with 'async with navigator:' before navigating."
            )
            raise RuntimeError(msg)

    def _spawn(self, func: Callable[..., Any], *args: Any, name: str | None = None) -> None:
        self._ensure_running()
        assert self._task_group is not None
        self._task_group.start_soon(func, *args, name=name)

    def _on_history_update(self, update: HistoryUpdate) -> None:
        if self._task_group is None:
            return
        self._spawn(
            self._start_navigation,
            _NavigationIntent(update.action, update.location),
            name=f"history {update.action.value}",
        )

    # -- Intents --

    async def navigate(
        self,
        to: str | int,
        *,
        replace: bool | None = None,
        state: Any = None,
        form_method: str | None = None,
        form_data: FormData | Mapping[str, str | list[str]] | None = None,
        form_enc_type: str | None = None,
        revalidate: bool = False,
    ) -> RouterState:
        """Navigate to *to* and return the snapshot once this navigation settles.

        An ``int`` moves through history (``navigate(-1)`` goes back); the
        resulting POP navigation runs in the background.

        Absolute paths are relative to ``config.basename``; other paths
        resolve against the current location. Passing ``form_data`` makes
        this a submission; GET submissions serialize it into the search.
        ``revalidate=True`` reloads every loader, changed or not.
        """
        self._ensure_running()
        if isinstance(to, int):
            self.history.go(to)
            return self.state

        path, submission, error = normalize_submission(
            self._resolve_href(to),
            form_method=form_method,
            form_data=form_data,
            form_enc_type=form_enc_type,
        )
        current = self.state.location
        location = create_location(current, path, state=state)

        history_action = HistoryAction.PUSH
        if replace is True:
            history_action = HistoryAction.REPLACE
        elif (
            replace is None
            and submission is not None
            and submission.is_mutation
            and submission.action == create_path(current.pathname, current.search)
        ):
            # Submitting to the current location replaces its entry
            history_action = HistoryAction.REPLACE

        if revalidate:
            self._revalidation_required = True

        await self._start_navigation(
            _NavigationIntent(
                history_action,
                location,
                submission=submission,
                pending_error=error,
                replace=replace,
            )
        )
        return self.state

    async def submit(
        self,
        form_data: FormData | Mapping[str, str | list[str]],
        *,
        action: str | None = None,
        method: str = "post",
        enc_type: str = URLENCODED,
        replace: bool | None = None,
        state: Any = None,
    ) -> RouterState:
        """Submit *form_data* to *action* (the current location by default)."""
        if action is None:
            current = self.state.location
            action = self._strip_basename_path(create_path(current.pathname, current.search))
        return await self.navigate(
            action,
            replace=replace,
            state=state,
            form_method=method,
            form_data=form_data,
            form_enc_type=enc_type,
        )

    async def revalidate(self, *, force: bool = False) -> RouterState:
        """Reload the current routes' data.

        From idle this runs an uninterrupted revalidation: ``navigation``
        stays idle, ``revalidation`` is ``"loading"`` and history is left
        alone. During a loading navigation the navigation restarts with
        every loader; during a submission it is folded into the loader
        round after the action. ``force=True`` bypasses every
        ``should_revalidate`` predicate.
        """
        self._ensure_running()
        if force:
            self._force_revalidation = True
        self._interrupt_active_loads()
        self.store.commit(revalidation="loading")

        navigation = self.state.navigation
        if navigation.state == "submitting":
            return self.state

        if navigation.is_idle:
            state = self.state
            intent = _NavigationIntent(state.history_action, state.location, uninterrupted=True)
        else:
            assert navigation.location is not None
            intent = _NavigationIntent(
                self._pending_action,
                navigation.location,
                override_navigation=navigation,
            )
        await self._start_navigation(intent)
        return self.state

    # -- Fetchers --

    async def fetch(
        self,
        key: str,
        route_id: str,
        href: str,
        *,
        form_method: str | None = None,
        form_data: FormData | Mapping[str, str | list[str]] | None = None,
        form_enc_type: str | None = None,
        revalidate: bool = True,
    ) -> Fetcher:
        """Load or submit *href* through fetcher *key* without navigating.

        ``route_id`` is the route that owns the fetcher; its nearest
        boundary receives the fetcher's errors. Returns the fetcher record
        once this fetch settles (or was superseded).
        """
        self._ensure_running()
        await self._fetchers.fetch(
            key,
            route_id,
            href,
            form_method=form_method,
            form_data=form_data,
            form_enc_type=form_enc_type,
            revalidate=revalidate,
        )
        return self.get_fetcher(key)

    def get_fetcher(self, key: str) -> Fetcher:
        return self._fetchers.get(key)

    def delete_fetcher(self, key: str) -> None:
        """Cancel fetcher *key* and remove its record."""
        self._fetchers.delete(key)

    # -- Path helpers --

    def _resolve_href(self, to: str, *, from_route_id: str | None = None) -> str:
        """Absolute paths are relative to the basename; relative paths resolve
        against *from_route_id* when it is matched, else the current location.
        """
        parts = parse_path(to)
        location = self.state.location
        if parts.pathname.startswith("/"):
            return create_path(self._prepend_basename(parts.pathname), parts.search, parts.hash)

        matches = list(self.state.matches)
        index = next((i for i, m in enumerate(matches) if m.id == from_route_id), -1)
        if index < 0:
            pathname = (
                resolve_path(parts.pathname, location.pathname).pathname
                if parts.pathname
                else location.pathname
            )
            return create_path(pathname, parts.search, parts.hash)

        contributing = get_path_contributing_matches(matches[: index + 1])
        resolved = resolve_to(
            parts,
            [m.pathname_base for m in contributing],
            self._strip_basename_path(location.pathname),
        )
        return create_path(self._prepend_basename(resolved.pathname), resolved.search, resolved.hash)

    def _prepend_basename(self, pathname: str) -> str:
        basename = self.config.basename
        if basename == "/":
            return pathname
        return basename if pathname == "/" else join_paths([basename, pathname])

    def _strip_basename_path(self, path: str) -> str:
        basename = self.config.basename
        if basename == "/" or not path.lower().startswith(basename.lower()):
            return path
        return path[len(basename.rstrip("/")) :] or "/"

    def _match(self, location: Location | str) -> list[RouteMatch] | None:
        return self.table.match(location, self.config.basename)

    # -- Navigation cycle --

    async def _start_navigation(self, intent: _NavigationIntent) -> None:
        """Run navigation cycles until one commits, is superseded or stops redirecting."""
        next_intent: _NavigationIntent | None = intent
        while next_intent is not None:
            next_intent = await self._run_navigation(next_intent)

    async def _run_navigation(self, intent: _NavigationIntent) -> _NavigationIntent | None:
        if self._pending_token is not None:
            self._pending_token.cancel("superseded")
            self._fetchers.cancel_revalidations(self._pending_token)
        token = CancellationToken()
        self._pending_token = token
        self._navigation_id += 1
        navigation_id = self._navigation_id
        self._pending_action = intent.history_action
        self._pending_is_redirect = intent.is_redirect
        self._uninterrupted = intent.uninterrupted

        location = intent.location
        submission = intent.submission
        logger.debug(
            "Starting %s navigation #%d to %s",
            intent.history_action.value,
            navigation_id,
            location.path,
        )

        matches = self._match(location)
        if matches is None:
            not_found, route = short_circuit_matches(self.table.routes)
            self._cancel_active_deferreds()
            self._complete_navigation(
                location,
                matches=not_found,
                loader_data={},
                errors={route.id or "": NotFound(f"No route matches URL {location.pathname!r}")},
            )
            return None

        is_mutation = submission is not None and submission.is_mutation
        if (
            self.state.initialized
            and not self._revalidation_required
            and not is_mutation
            and is_hash_change_only(self.state.location, location)
        ):
            self._complete_navigation(location, matches=matches, keep_errors=True)
            return None

        action_outcome: _ActionOutcome | None = None
        loading_navigation = intent.override_navigation
        if intent.pending_error is not None:
            boundary = find_nearest_boundary(matches)
            action_outcome = _ActionOutcome({}, {boundary.id: intent.pending_error})
        elif is_mutation:
            assert submission is not None
            outcome = await self._handle_action(
                navigation_id, token, location, submission, matches, replace=intent.replace
            )
            if outcome is None:
                return None
            if isinstance(outcome, _NavigationIntent):
                return outcome
            action_outcome = outcome
            loading_navigation = Navigation.loading(
                location, submission=submission, action=self._pending_action, token=token
            )

        load = await self._handle_loaders(
            navigation_id,
            token,
            location,
            matches,
            loading_navigation=loading_navigation,
            submission=submission,
            replace=intent.replace,
            action_data=action_outcome.action_data if action_outcome else None,
            pending_errors=action_outcome.errors if action_outcome else None,
        )
        if load is None or isinstance(load, _NavigationIntent):
            return load

        self._complete_navigation(
            location,
            matches=matches,
            loader_data=load.loader_data,
            errors=load.errors,
            action_data=action_outcome.action_data if action_outcome else None,
            fetchers=load.fetchers,
            failed=load.failed,
        )
        self._activate_deferreds(load.deferreds)
        return None

    def _is_stale(self, navigation_id: int) -> bool:
        if navigation_id != self._navigation_id:
            logger.debug("Discarding results of superseded navigation #%d", navigation_id)
            return True
        return False

    async def _handle_action(
        self,
        navigation_id: int,
        token: CancellationToken,
        location: Location,
        submission: Submission,
        matches: list[RouteMatch],
        *,
        replace: bool | None,
    ) -> _ActionOutcome | _NavigationIntent | None:
        self._interrupt_active_loads()
        self.store.commit(
            navigation=Navigation.submitting(
                location, submission, action=self._pending_action, token=token
            )
        )

        action_match = get_target_match(matches, location)
        result: DataResult
        if action_match.route.action is None:
            result = Err(
                MethodNotAllowed(
                    submission.method,
                    f"You made a {submission.method.upper()} request to "
                    f"{location.pathname!r} but did not provide an action "
                    f"for route {action_match.id!r}",
                )
            )
        else:
            result = await call_data_function(
                "action",
                action_match,
                matches,
                location,
                token,
                submission=submission,
                context=self.context,
                basename=self.config.basename,
            )
            if self._is_stale(navigation_id):
                return None

        if isinstance(result, Redirect):
            if replace is None:
                current = self.state.location
                replace = result.location == create_path(current.pathname, current.search)
            return self._redirect_intent(result, submission=submission, replace=replace)

        if isinstance(result, Err):
            boundary = find_nearest_boundary(matches, action_match.id)
            if replace is not True:
                # Failed submissions always get their own entry
                self._pending_action = HistoryAction.PUSH
            return _ActionOutcome({}, {boundary.id: result.error})

        return _ActionOutcome({action_match.id: result.data})

    async def _handle_loaders(
        self,
        navigation_id: int,
        token: CancellationToken,
        location: Location,
        matches: list[RouteMatch],
        *,
        loading_navigation: Navigation | None,
        submission: Submission | None,
        replace: bool | None,
        action_data: dict[str, Any] | None,
        pending_errors: dict[str, BaseException] | None = None,
    ) -> _LoadOutcome | _NavigationIntent | None:
        """Run the loader round of a navigation.

        With *pending_errors* (a failed or missing action) the regular loaders
        are skipped; only fetcher loads and deferred routes above the error
        boundary that the submission interrupted are reloaded.
        """
        if loading_navigation is None:
            loading_navigation = Navigation.loading(
                location, submission=submission, action=self._pending_action, token=token
            )
        active_submission = submission or loading_navigation.submission

        state = self.state
        matches_to_load, revalidating = get_matches_to_load(
            state,
            matches,
            location,
            submission=active_submission,
            revalidation_required=self._revalidation_required,
            force=self._force_revalidation,
            action_result=next(iter(action_data.values()), None) if action_data else None,
            cancelled_deferred_routes=self._cancelled_deferred_routes,
            cancelled_fetcher_loads=self._fetchers.cancelled_loads,
            fetch_load_matches=self._fetchers.load_matches,
            boundary_id=next(iter(pending_errors)) if pending_errors else None,
            interrupted_only=bool(pending_errors),
        )

        matched_ids = {m.id for m in matches}
        loading_ids = {m.id for m in matches_to_load}
        self._cancel_active_deferreds(lambda rid: rid not in matched_ids or rid in loading_ids)

        if not matches_to_load and not revalidating:
            self._complete_navigation(
                location,
                matches=matches,
                loader_data={},
                errors=pending_errors,
                action_data=action_data,
                failed=frozenset(pending_errors or ()),
            )
            return None

        if not self._uninterrupted:
            changes: dict[str, Any] = {"navigation": loading_navigation}
            kept_action_data = action_data if action_data is not None else state.action_data
            if kept_action_data is not None:
                changes["action_data"] = kept_action_data or None
            if revalidating:
                changes["fetchers"] = self._fetchers.mark_revalidating(revalidating)
            self.store.commit(**changes)

        self._load_id += 1
        self._pending_navigation_load_id = self._load_id
        self._fetchers.track_revalidations(revalidating, token)

        loader_results, fetcher_results = await self._call_loaders(
            state.matches, matches, matches_to_load, revalidating, location, token, state.loader_data
        )
        if self._is_stale(navigation_id):
            _cancel_deferred_results(loader_results)
            return None
        self._fetchers.release_revalidations(revalidating, token)

        redirect = find_redirect([*loader_results, *fetcher_results])
        if redirect is not None:
            _cancel_deferred_results(loader_results)
            return self._redirect_intent(redirect, replace=replace)

        processed = process_loader_data(matches, matches_to_load, loader_results, pending_errors)
        fetchers, errors = self._fetchers.apply_revalidation_results(
            matches, revalidating, fetcher_results, processed.errors
        )
        self._fetchers.abort_stale_loads(self._pending_navigation_load_id, fetchers)

        return _LoadOutcome(
            loader_data=processed.loader_data,
            errors=errors,
            failed=processed.failed,
            deferreds=processed.deferreds,
            fetchers=fetchers if fetchers != self.state.fetchers else None,
        )

    async def _call_loaders(
        self,
        current_matches: Sequence[RouteMatch],
        matches: Sequence[RouteMatch],
        matches_to_load: Sequence[RouteMatch],
        revalidating: Sequence[RevalidatingFetcher],
        location: Location,
        token: CancellationToken,
        current_loader_data: Mapping[str, Any],
    ) -> tuple[list[DataResult], list[DataResult]]:
        """Run route loaders and fetcher loaders concurrently.

        Deferred results of revalidating loaders (same route instance, data
        already present) and of fetchers are settled before returning.
        """
        loader_results: list[DataResult] = [Ok() for _ in matches_to_load]
        fetcher_results: list[DataResult] = [Ok() for _ in revalidating]

        async def run_loader(index: int, match: RouteMatch) -> None:
            loader_results[index] = await call_data_function(
                "loader",
                match,
                matches,
                location,
                token,
                context=self.context,
                basename=self.config.basename,
            )

        async def run_fetcher(index: int, fetcher: RevalidatingFetcher) -> None:
            fetch_location = create_location(location, fetcher.href)
            fetcher_results[index] = await call_data_function(
                "loader",
                fetcher.match,
                fetcher.matches,
                fetch_location,
                token,
                context=self.context,
                basename=self.config.basename,
            )

        async with anyio.create_task_group() as tg:
            for i, match in enumerate(matches_to_load):
                tg.start_soon(run_loader, i, match, name=f"loader:{match.id}")
            for i, fetcher in enumerate(revalidating):
                tg.start_soon(run_fetcher, i, fetcher, name=f"fetcher:{fetcher.key}")

        for i, match in enumerate(matches_to_load):
            result = loader_results[i]
            current = next((m for m in current_matches if m.id == match.id), None)
            is_revalidating = (
                current is not None
                and not is_new_route_instance(current, match)
                and match.id in current_loader_data
            )
            if is_revalidating and isinstance(result, Ok) and result.deferred is not None:
                loader_results[i] = await resolve_deferred_result(result, token) or result

        for i, result in enumerate(fetcher_results):
            if isinstance(result, Ok) and result.deferred is not None:
                fetcher_results[i] = await resolve_deferred_result(result, token, unwrap=True) or result

        return loader_results, fetcher_results

    def _redirect_intent(
        self,
        redirect: Redirect,
        *,
        submission: Submission | None = None,
        replace: bool | None = None,
        is_fetch_action_redirect: bool = False,
    ) -> _NavigationIntent:
        """Translate a redirect into the next navigation cycle."""
        if redirect.revalidate:
            self._revalidation_required = True

        state = self.state
        location = create_location(state.location, redirect.location)
        history_action = HistoryAction.REPLACE if replace is True else HistoryAction.PUSH

        if submission is None and state.navigation.submission is not None:
            submission = state.navigation.submission

        logger.debug("Redirect %d to %s", redirect.status, redirect.location)
        if (
            redirect.status in PRESERVE_METHOD_STATUSES
            and submission is not None
            and submission.is_mutation
        ):
            resubmission = Submission(
                method=submission.method,
                action=redirect.location,
                form_data=submission.form_data,
                enc_type=submission.enc_type,
            )
            return _NavigationIntent(
                history_action, location, submission=resubmission, is_redirect=True
            )

        override = Navigation.loading(
            location,
            submission=None if is_fetch_action_redirect else submission,
            action=history_action,
        )
        return _NavigationIntent(
            history_action, location, override_navigation=override, is_redirect=True
        )

    def _complete_navigation(
        self,
        location: Location,
        *,
        matches: Sequence[RouteMatch],
        loader_data: dict[str, Any] | None = None,
        errors: dict[str, BaseException] | None = None,
        keep_errors: bool = False,
        action_data: dict[str, Any] | None = None,
        fetchers: dict[str, Fetcher] | None = None,
        failed: frozenset[str] = frozenset(),
    ) -> None:
        """Commit the settled navigation and reset per-navigation flags.

        ``keep_errors`` leaves the current errors in place (hash-only changes).
        """
        state = self.state
        navigation = state.navigation
        is_action_reload = (
            state.action_data is not None
            and navigation.submission is not None
            and navigation.submission.is_mutation
            and navigation.state == "loading"
            and not self._pending_is_redirect
        )

        if action_data is not None:
            # An empty mapping clears prior action data after an action error
            new_action_data = action_data or None
        elif is_action_reload:
            new_action_data = state.action_data
        else:
            new_action_data = None

        changes: dict[str, Any] = {
            "matches": tuple(matches),
            "action_data": new_action_data,
            "history_action": self._pending_action,
            "location": location,
            "initialized": True,
            "navigation": IDLE_NAVIGATION,
            "revalidation": "idle",
        }
        resolved_errors = state.errors if keep_errors else errors
        if not keep_errors:
            changes["errors"] = errors or None
        if loader_data is not None:
            changes["loader_data"] = merge_loader_data(
                state.loader_data, loader_data, matches, resolved_errors, failed
            )
        next_fetchers = dict(fetchers if fetchers is not None else state.fetchers)
        self._fetchers.mark_redirects_done(next_fetchers)
        if next_fetchers != state.fetchers:
            changes["fetchers"] = next_fetchers

        self.store.commit(**changes)

        if not self._uninterrupted:
            if self._pending_action is HistoryAction.PUSH:
                self.history.push(location)
            elif self._pending_action is HistoryAction.REPLACE:
                self.history.replace(location)

        if self.config.lifecycle_logging:
            logger.info(
                "Navigated to %s (%s%s)",
                location.path,
                self._pending_action.value,
                ", revalidation" if self._uninterrupted else "",
            )

        self._pending_action = HistoryAction.POP
        self._pending_is_redirect = False
        self._pending_token = None
        self._uninterrupted = False
        self._revalidation_required = False
        self._force_revalidation = False
        self._cancelled_deferred_routes = []
        self._fetchers.cancelled_loads.clear()

        if self._revalidate_on_commit:
            self._revalidate_on_commit = False
            self._spawn(self.revalidate, name="revalidate after fetcher action")

    # -- Deferreds and interruption --

    def _activate_deferreds(self, deferreds: Mapping[str, DeferredData]) -> None:
        """Track freshly committed deferreds and start settling them."""
        for route_id, deferred in deferreds.items():
            if deferred.done:
                continue
            self._active_deferreds[route_id] = deferred

            def on_settle(aborted: bool, route_id: str = route_id, deferred: DeferredData = deferred) -> None:
                if (aborted or deferred.done) and self._active_deferreds.get(route_id) is deferred:
                    del self._active_deferreds[route_id]

            deferred.subscribe(on_settle)
            if self._task_group is not None:
                deferred.start(self._task_group)

    def _cancel_active_deferreds(self, predicate: Callable[[str], bool] | None = None) -> list[str]:
        cancelled: list[str] = []
        for route_id, deferred in list(self._active_deferreds.items()):
            if predicate is None or predicate(route_id):
                self._active_deferreds.pop(route_id, None)
                deferred.cancel()
                cancelled.append(route_id)
        return cancelled

    def _interrupt_active_loads(self) -> None:
        """Called before every submission and revalidation."""
        self._revalidation_required = True
        self._cancelled_deferred_routes.extend(self._cancel_active_deferreds())
        self._fetchers.interrupt_loads()

    def schedule_revalidation(self) -> None:
        """Revalidate once the current navigation commits, or now if idle."""
        if self.state.navigation.is_idle and self.state.revalidation == "idle":
            self._spawn(self.revalidate, name="revalidate")
        else:
            self._revalidate_on_commit = True

    def __repr__(self) -> str:
        state = self.state
        return (
            f"Navigator(location={state.location.path!r}, "
            f"navigation={state.navigation.state!r}, running={self.running})"
        )


def _cancel_deferred_results(results: Sequence[DataResult]) -> None:
    for result in results:
        if isinstance(result, Ok) and result.deferred is not None:
            result.deferred.cancel()
