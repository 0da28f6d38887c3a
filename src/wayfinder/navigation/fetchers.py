"""Fetchers — keyed loads and submissions that do not navigate.

The navigator owns one ``FetcherManager``. Fetcher records live in
``RouterState.fetchers``; this module keeps the bookkeeping around
them: in-flight tokens, which loads take part in revalidation, and
which fetchers are waiting on a redirect navigation.

A fetcher submission never cancels the current navigation. Once its
action settles it revalidates the current routes. If a navigation
started or landed in the meantime the fresh data is not committed;
another revalidation runs after that navigation commits instead.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from wayfinder.cancellation import CancellationToken
from wayfinder.errors import BadRequest, MethodNotAllowed, NotFound, Redirect
from wayfinder.location.forms import FormData, Submission, normalize_submission
from wayfinder.location.path import create_location
from wayfinder.navigation.data import (
    call_data_function,
    find_nearest_boundary,
    get_target_match,
    merge_loader_data,
    process_loader_data,
    resolve_deferred_result,
)
from wayfinder.navigation.revalidation import (
    FetchLoadMatch,
    RevalidatingFetcher,
    get_matches_to_load,
)
from wayfinder.navigation.state import IDLE_FETCHER, Fetcher
from wayfinder.results import DataResult, Err, Ok, find_redirect
from wayfinder.routing.route import RouteMatch

if TYPE_CHECKING:
    from wayfinder.navigation.navigator import Navigator

logger = logging.getLogger("wayfinder.fetchers")


class FetcherManager:
    """Runs fetcher loads and submissions for a ``Navigator``."""

    __slots__ = (
        "_navigator",
        "_revalidation_tokens",
        "cancelled_loads",
        "load_matches",
        "redirect_keys",
        "reload_ids",
        "tokens",
    )

    def __init__(self, navigator: Navigator) -> None:
        self._navigator = navigator
        # In-flight token for each fetcher's own load or submission
        self.tokens: dict[str, CancellationToken] = {}
        # Navigation or fetcher-action token a revalidating fetcher runs under
        self._revalidation_tokens: dict[str, CancellationToken] = {}
        # Fetcher loads that take part in revalidation
        self.load_matches: dict[str, FetchLoadMatch] = {}
        # Load id of the revalidation round each submitting fetcher started
        self.reload_ids: dict[str, int] = {}
        # Fetchers whose result was a redirect, until that navigation lands
        self.redirect_keys: set[str] = set()
        # Loads interrupted by a submission; they reload in the next round
        self.cancelled_loads: set[str] = set()

    # -- Records --

    def get(self, key: str) -> Fetcher:
        return self._navigator.state.fetchers.get(key, IDLE_FETCHER)

    def _update(self, key: str, fetcher: Fetcher) -> None:
        fetchers = dict(self._navigator.state.fetchers)
        fetchers[key] = fetcher
        self._navigator.store.commit(fetchers=fetchers)

    def _fail(self, key: str, route_id: str, error: BaseException) -> None:
        """Settle *key* with *error* and surface it at the owner's boundary."""
        state = self._navigator.state
        boundary = find_nearest_boundary(state.matches, route_id)
        fetchers = dict(state.fetchers)
        fetchers[key] = Fetcher(state="idle", error=error)
        errors = dict(state.errors or {})
        errors[boundary.id] = error
        logger.debug("Fetcher %r failed at boundary %r: %r", key, boundary.id, error)
        self._navigator.store.commit(fetchers=fetchers, errors=errors)

    def _begin(self, key: str) -> CancellationToken:
        token = CancellationToken()
        self.tokens[key] = token
        return token

    def _is_current(self, key: str, token: CancellationToken) -> bool:
        if self.tokens.get(key) is token and not token.cancelled:
            return True
        logger.debug("Discarding stale result for fetcher %r", key)
        return False

    # -- Entry point --

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
    ) -> None:
        navigator = self._navigator
        self.abort(key)

        path, submission, error = normalize_submission(
            navigator._resolve_href(href, from_route_id=route_id),
            form_method=form_method,
            form_data=form_data,
            form_enc_type=form_enc_type,
        )
        matches = navigator._match(path)
        if matches is None:
            self._fail(key, route_id, NotFound(f"No route matches URL {path!r}"))
            return
        if error is not None:
            self._fail(key, route_id, error)
            return

        match = get_target_match(matches, path)
        if submission is not None and submission.is_mutation:
            await self._handle_action(key, route_id, path, match, matches, submission)
            return

        self.load_matches[key] = FetchLoadMatch(
            route_id=route_id,
            href=path,
            match=match,
            matches=tuple(matches),
            revalidate=revalidate,
        )
        await self._handle_loader(key, route_id, path, match, matches, submission)

    # -- Loads --

    async def _handle_loader(
        self,
        key: str,
        route_id: str,
        path: str,
        match: RouteMatch,
        matches: Sequence[RouteMatch],
        submission: Submission | None,
    ) -> None:
        navigator = self._navigator
        token = self._begin(key)
        self._update(key, Fetcher(state="loading", data=self.get(key).data, submission=submission))

        if match.route.loader is None:
            self.tokens.pop(key, None)
            self._fail(
                key,
                route_id,
                BadRequest(
                    f"Route {match.id!r} does not have a loader, "
                    f"so there is no way to fetch {path!r}"
                ),
            )
            return

        result: DataResult | None = await call_data_function(
            "loader",
            match,
            matches,
            create_location(navigator.state.location, path),
            token,
            submission=submission,
            context=navigator.context,
            basename=navigator.config.basename,
        )
        if isinstance(result, Ok) and result.deferred is not None:
            result = await resolve_deferred_result(result, token, unwrap=True)
        if result is None or not self._is_current(key, token):
            return
        self.tokens.pop(key, None)

        if isinstance(result, Redirect):
            self.redirect_keys.add(key)
            await navigator._start_navigation(navigator._redirect_intent(result))
            return
        if isinstance(result, Err):
            self._fail(key, route_id, result.error)
            return
        self._update(key, Fetcher(state="idle", data=result.data))

    # -- Submissions --

    async def _handle_action(
        self,
        key: str,
        route_id: str,
        path: str,
        match: RouteMatch,
        matches: Sequence[RouteMatch],
        submission: Submission,
    ) -> None:
        navigator = self._navigator
        navigator._interrupt_active_loads()
        self.load_matches.pop(key, None)

        token = self._begin(key)
        self._update(
            key, Fetcher(state="submitting", data=self.get(key).data, submission=submission)
        )

        if match.route.action is None:
            self.tokens.pop(key, None)
            self._fail(
                key,
                route_id,
                MethodNotAllowed(
                    submission.method,
                    f"You made a {submission.method.upper()} request to {path!r} "
                    f"but did not provide an action for route {match.id!r}",
                ),
            )
            return

        result = await call_data_function(
            "action",
            match,
            matches,
            create_location(navigator.state.location, path),
            token,
            submission=submission,
            context=navigator.context,
            basename=navigator.config.basename,
        )
        if not self._is_current(key, token):
            return

        if isinstance(result, Redirect):
            self.tokens.pop(key, None)
            self.redirect_keys.add(key)
            self._update(key, Fetcher(state="loading", submission=submission))
            intent = navigator._redirect_intent(
                result, submission=submission, is_fetch_action_redirect=True
            )
            await navigator._start_navigation(intent)
            return
        if isinstance(result, Err):
            self.tokens.pop(key, None)
            self._fail(key, route_id, result.error)
            return

        await self._revalidate_after_action(key, token, submission, match, result.data)

    async def _revalidate_after_action(
        self,
        key: str,
        token: CancellationToken,
        submission: Submission,
        match: RouteMatch,
        action_data: Any,
    ) -> None:
        navigator = self._navigator
        state = navigator.state
        location = state.location
        matches = list(state.matches)

        navigator._load_id += 1
        load_id = navigator._load_id
        self.reload_ids[key] = load_id

        matches_to_load, revalidating = get_matches_to_load(
            state,
            matches,
            location,
            submission=submission,
            revalidation_required=navigator._revalidation_required,
            force=navigator._force_revalidation,
            action_result=action_data,
            cancelled_deferred_routes=navigator._cancelled_deferred_routes,
            cancelled_fetcher_loads=self.cancelled_loads,
            fetch_load_matches=self.load_matches,
        )
        revalidating = [rf for rf in revalidating if rf.key != key]

        fetchers = self.mark_revalidating(revalidating)
        fetchers[key] = Fetcher(state="loading", data=action_data, submission=submission)
        navigator.store.commit(fetchers=fetchers)
        self.track_revalidations(revalidating, token)

        loader_results, fetcher_results = await navigator._call_loaders(
            state.matches,
            matches,
            matches_to_load,
            revalidating,
            location,
            token,
            state.loader_data,
        )
        if not self._is_current(key, token):
            return
        self.tokens.pop(key, None)
        self.reload_ids.pop(key, None)
        self.release_revalidations(revalidating, token)

        redirect = find_redirect([*loader_results, *fetcher_results])
        if redirect is not None:
            await navigator._start_navigation(navigator._redirect_intent(redirect))
            return

        processed = process_loader_data(matches, matches_to_load, loader_results)
        fetchers, errors = self.apply_revalidation_results(
            matches, revalidating, fetcher_results, processed.errors
        )
        if key in fetchers:
            fetchers[key] = Fetcher(state="idle", data=action_data)
        self.abort_stale_loads(load_id, fetchers)

        current = navigator.state
        if current.navigation.is_idle and current.location.key == location.key:
            navigator.store.commit(
                errors=errors,
                loader_data=merge_loader_data(
                    current.loader_data,
                    processed.loader_data,
                    matches,
                    errors,
                    processed.failed,
                ),
                fetchers=fetchers,
            )
            navigator._revalidation_required = False
            navigator._activate_deferreds(processed.deferreds)
            return

        # A navigation moved on while the action ran; only fetcher records
        # are published and the routes revalidate against the new location
        for deferred in processed.deferreds.values():
            deferred.cancel()
        navigator.store.commit(fetchers=fetchers)
        navigator.schedule_revalidation()

    # -- Revalidation bookkeeping --

    def mark_revalidating(self, revalidating: Sequence[RevalidatingFetcher]) -> dict[str, Fetcher]:
        """Fetcher records with every revalidating fetcher set to loading."""
        fetchers = dict(self._navigator.state.fetchers)
        for rf in revalidating:
            existing = fetchers.get(rf.key, IDLE_FETCHER)
            fetchers[rf.key] = Fetcher(state="loading", data=existing.data)
        return fetchers

    def track_revalidations(
        self, revalidating: Sequence[RevalidatingFetcher], token: CancellationToken
    ) -> None:
        for rf in revalidating:
            self._revalidation_tokens[rf.key] = token

    def release_revalidations(
        self, revalidating: Sequence[RevalidatingFetcher], token: CancellationToken
    ) -> None:
        for rf in revalidating:
            if self._revalidation_tokens.get(rf.key) is token:
                del self._revalidation_tokens[rf.key]

    def cancel_revalidations(self, token: CancellationToken) -> None:
        """Mark fetchers revalidating under *token* for reload in the next round."""
        for key, revalidation_token in list(self._revalidation_tokens.items()):
            if revalidation_token is token:
                del self._revalidation_tokens[key]
                if key in self.load_matches:
                    self.cancelled_loads.add(key)

    def apply_revalidation_results(
        self,
        matches: Sequence[RouteMatch],
        revalidating: Sequence[RevalidatingFetcher],
        results: Sequence[DataResult],
        errors: dict[str, BaseException] | None,
    ) -> tuple[dict[str, Fetcher], dict[str, BaseException] | None]:
        """Fold fetcher reload results into records and boundary errors.

        Fetchers deleted while reloading are skipped. A failed reload
        settles the fetcher with its error and, unless that boundary
        already holds one, sets the owner's boundary error.
        """
        fetchers = dict(self._navigator.state.fetchers)
        merged = dict(errors or {})
        for rf, result in zip(revalidating, results, strict=True):
            if rf.key not in fetchers:
                continue
            if isinstance(result, Err):
                load = self.load_matches.get(rf.key)
                owner = load.route_id if load is not None else rf.match.id
                boundary = find_nearest_boundary(matches, owner)
                merged.setdefault(boundary.id, result.error)
                fetchers[rf.key] = Fetcher(state="idle", error=result.error)
            elif isinstance(result, Ok):
                fetchers[rf.key] = Fetcher(state="idle", data=result.data)
        return fetchers, merged or None

    def mark_redirects_done(self, fetchers: dict[str, Fetcher]) -> None:
        """Settle fetchers whose redirect navigation just landed."""
        for key in list(self.redirect_keys):
            fetcher = fetchers.get(key)
            if fetcher is None:
                self.redirect_keys.discard(key)
            elif fetcher.state == "loading":
                self.redirect_keys.discard(key)
                fetchers[key] = Fetcher(state="idle", data=fetcher.data)

    def abort_stale_loads(self, landed_id: int, fetchers: dict[str, Fetcher]) -> bool:
        """Abort fetcher-action revalidations older than *landed_id*.

        Returns True if any were aborted.
        """
        stale: list[str] = []
        for key, reload_id in list(self.reload_ids.items()):
            if reload_id >= landed_id:
                continue
            fetcher = fetchers.get(key)
            if fetcher is not None and fetcher.state == "loading":
                self.abort(key)
                del self.reload_ids[key]
                stale.append(key)
        for key in stale:
            fetchers[key] = Fetcher(state="idle", data=fetchers[key].data)
        if stale:
            logger.debug("Aborted stale fetcher revalidations: %s", ", ".join(stale))
        return bool(stale)

    def interrupt_loads(self) -> None:
        """Abort in-flight fetcher loads; they reload in the next round."""
        for key in self.load_matches:
            token = self.tokens.pop(key, None)
            if token is not None:
                token.cancel("interrupted")
                self.cancelled_loads.add(key)

    # -- Teardown --

    def abort(self, key: str) -> None:
        token = self.tokens.pop(key, None)
        if token is not None:
            token.cancel("aborted")

    def delete(self, key: str) -> None:
        self.abort(key)
        self.load_matches.pop(key, None)
        self.reload_ids.pop(key, None)
        self.redirect_keys.discard(key)
        self.cancelled_loads.discard(key)
        self._revalidation_tokens.pop(key, None)
        fetchers = self._navigator.state.fetchers
        if key in fetchers:
            self._navigator.store.commit(
                fetchers={k: v for k, v in fetchers.items() if k != key}
            )

    def dispose(self) -> None:
        for token in self.tokens.values():
            token.cancel("disposed")
        self.tokens.clear()
        self._revalidation_tokens.clear()
        self.load_matches.clear()
        self.reload_ids.clear()
        self.redirect_keys.clear()
        self.cancelled_loads.clear()

    def __len__(self) -> int:
        return len(self._navigator.state.fetchers)
