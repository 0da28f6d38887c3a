"""Revalidation policy — which loaders run on the next data round.

A loader always runs when its route is new to the match chain or has no
data yet. Otherwise it runs when ``default_should_revalidate`` holds:

- the route instance changed (its matched pathname or splat differs),
- the target URL equals the current one (same link clicked twice),
- the search string changed,
- revalidation is required (after a submission, ``revalidate()``,
  a redirect with ``revalidate=True``).

A route's ``should_revalidate`` predicate may override that default in
either direction by returning a bool; any other return value keeps the
default. ``force=True`` is strictly dominant: every loader runs and
predicates are not consulted.
"""

import logging
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from wayfinder.location.forms import Submission
from wayfinder.location.path import Location, parse_path
from wayfinder.navigation.state import RouterState
from wayfinder.routing.route import RouteMatch

logger = logging.getLogger("wayfinder.navigation")


@dataclass(frozen=True, slots=True)
class ShouldRevalidateArgs:
    """Argument passed to a route's ``should_revalidate`` predicate."""

    current_location: Location
    current_params: dict[str, str]
    next_location: Location
    next_params: dict[str, str]
    submission: Submission | None
    action_result: Any
    default_should_revalidate: bool


@dataclass(frozen=True, slots=True)
class FetchLoadMatch:
    """The most recent ``fetch()`` load for one fetcher key.

    ``route_id`` is the route that owns the fetcher; ``match`` is the
    route whose loader the fetch calls.
    """

    route_id: str
    href: str
    match: RouteMatch
    matches: tuple[RouteMatch, ...]
    revalidate: bool = True


@dataclass(frozen=True, slots=True)
class RevalidatingFetcher:
    key: str
    href: str
    match: RouteMatch
    matches: tuple[RouteMatch, ...]


def is_new_loader(
    current_loader_data: Mapping[str, Any],
    current_match: RouteMatch | None,
    match: RouteMatch,
) -> bool:
    """True for net-new routes and re-used routes without data."""
    is_new = current_match is None or match.id != current_match.id
    return is_new or match.id not in current_loader_data


def is_new_route_instance(current_match: RouteMatch, match: RouteMatch) -> bool:
    """True when a re-used route matched a different pathname or splat."""
    current_path = current_match.route.path
    return current_match.pathname != match.pathname or (
        current_path is not None
        and current_path.endswith("*")
        and current_match.params.get("*") != match.params.get("*")
    )


def should_revalidate_loader(
    current_location: Location,
    current_match: RouteMatch,
    submission: Submission | None,
    next_location: Location,
    match: RouteMatch,
    *,
    revalidation_required: bool,
    action_result: Any = None,
    force: bool = False,
) -> bool:
    """Decide whether an already-loaded route's loader runs again."""
    if force:
        return True

    default = (
        is_new_route_instance(current_match, match)
        or (
            current_location.pathname == next_location.pathname
            and current_location.search == next_location.search
        )
        or current_location.search != next_location.search
        or revalidation_required
    )

    predicate = match.route.should_revalidate
    if predicate is not None:
        choice = predicate(
            ShouldRevalidateArgs(
                current_location=current_location,
                current_params=current_match.params,
                next_location=next_location,
                next_params=match.params,
                submission=submission,
                action_result=action_result,
                default_should_revalidate=default,
            )
        )
        if isinstance(choice, bool):
            return choice
    return default


def get_matches_to_load(
    state: RouterState,
    matches: Sequence[RouteMatch],
    location: Location,
    *,
    submission: Submission | None = None,
    revalidation_required: bool = False,
    force: bool = False,
    action_result: Any = None,
    cancelled_deferred_routes: Collection[str] = (),
    cancelled_fetcher_loads: Collection[str] = (),
    fetch_load_matches: Mapping[str, FetchLoadMatch] | None = None,
    boundary_id: str | None = None,
    interrupted_only: bool = False,
) -> tuple[list[RouteMatch], list[RevalidatingFetcher]]:
    """Compute the loaders and fetcher loads for the next data round.

    Fetchers whose load was cancelled by a submission always reload.
    Other loaded fetchers reload when revalidation is required or their
    loader's route is among the routes being loaded, unless the fetch
    opted out with ``revalidate=False``; route predicates still apply.

    With *boundary_id* only routes above that match are candidates. With
    *interrupted_only* the round is limited to work a submission cancelled:
    routes whose deferreds were aborted and interrupted fetcher loads.
    """
    candidates = list(matches)
    if boundary_id is not None:
        index = next((i for i, m in enumerate(matches) if m.id == boundary_id), None)
        if index is not None:
            candidates = candidates[:index]

    to_load: list[RouteMatch] = []
    for i, match in enumerate(candidates):
        if match.route.loader is None:
            continue
        if interrupted_only:
            if match.id in cancelled_deferred_routes:
                to_load.append(match)
            continue
        current_match = state.matches[i] if i < len(state.matches) else None
        if (
            is_new_loader(state.loader_data, current_match, match)
            or match.id in cancelled_deferred_routes
            or should_revalidate_loader(
                state.location,
                current_match,  # type: ignore[arg-type]  # not None unless is_new_loader
                submission,
                location,
                match,
                revalidation_required=revalidation_required,
                action_result=action_result,
                force=force,
            )
        ):
            to_load.append(match)

    loading_ids = {m.id for m in to_load}
    fetchers: list[RevalidatingFetcher] = []
    for key, load in (fetch_load_matches or {}).items():
        if load.match.route.loader is None:
            continue
        revalidating = RevalidatingFetcher(key=key, href=load.href, match=load.match, matches=load.matches)
        if key in cancelled_fetcher_loads:
            fetchers.append(revalidating)
            continue
        if interrupted_only:
            continue
        if not load.revalidate and not force:
            continue
        if not (revalidation_required or force or load.match.id in loading_ids):
            continue
        # Fetchers keep their own href, so URL-based defaults never apply
        parts = parse_path(load.href)
        fetch_location = Location(pathname=parts.pathname or "/", search=parts.search, hash=parts.hash)
        if should_revalidate_loader(
            fetch_location,
            load.match,
            submission,
            fetch_location,
            load.match,
            revalidation_required=True,
            action_result=action_result,
            force=force,
        ):
            fetchers.append(revalidating)

    if to_load or fetchers:
        logger.debug(
            "Revalidation round: loaders=%s fetchers=%s",
            [m.id for m in to_load],
            [f.key for f in fetchers],
        )
    return to_load, fetchers
