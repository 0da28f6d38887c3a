"""Calling loaders and actions, and folding their results into snapshots.

Every call goes through ``call_data_function``, which never raises for
anything a data function does: returned values, raised redirects, raised
route errors and unexpected exceptions all come back as a tagged
``DataResult``.

Data functions ask for what they need by parameter name::

    def load_project(project_id: int, search):     # path param, coerced
        ...

    async def save_project(params, form_data, signal):
        ...

    def load_anything(args: DataFunctionArgs):     # the whole bundle
        ...

Available names: ``args``, ``location``, ``params``, ``signal``,
``submission``, ``context``, ``pathname``, ``search``, ``form_data``,
``match``, plus any path param by its own name.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import urlsplit

from wayfinder._internal.invoke import invoke, resolve_kwargs
from wayfinder.cancellation import CancellationToken
from wayfinder.deferred import DeferredData
from wayfinder.errors import ConfigurationError, HTTPError, NavigationCancelled, Redirect
from wayfinder.location.forms import FormData, Submission
from wayfinder.location.path import Location, create_path, join_paths, resolve_to, strip_basename
from wayfinder.location.query import SearchParams
from wayfinder.results import DataResult, Err, Ok, to_result
from wayfinder.routing.route import Route, RouteMatch

logger = logging.getLogger("wayfinder.navigation")

SHIM_ROUTE_ID = "__shim-error-route__"

_ABSOLUTE_URL = re.compile(r"^[a-z+]+://", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class DataFunctionArgs:
    """Everything a loader or action can receive, as one object."""

    location: Location
    params: dict[str, str]
    signal: CancellationToken
    match: RouteMatch
    submission: Submission | None = None
    context: Any = None

    @property
    def pathname(self) -> str:
        return self.location.pathname

    @property
    def search(self) -> SearchParams:
        return self.location.search_params

    @property
    def form_data(self) -> FormData | None:
        return self.submission.form_data if self.submission is not None else None


# ---------------------------------------------------------------------------
# Match helpers
# ---------------------------------------------------------------------------


def get_path_contributing_matches(matches: Sequence[RouteMatch]) -> list[RouteMatch]:
    """The root match plus every match whose route has a non-empty path."""
    return [m for i, m in enumerate(matches) if i == 0 or m.route.path]


def has_naked_index_query(search: str) -> bool:
    return "" in SearchParams(search).get_list("index")


def get_target_match(matches: Sequence[RouteMatch], location: Location | str) -> RouteMatch:
    """The match a submission or fetch is aimed at.

    The leaf index route when the search carries a bare ``?index``,
    otherwise the deepest match that contributes a path segment.
    """
    if isinstance(location, str):
        search = location[location.find("?") :] if "?" in location else ""
        search = search.split("#", 1)[0]
    else:
        search = location.search
    if matches[-1].route.index and has_naked_index_query(search):
        return matches[-1]
    return get_path_contributing_matches(matches)[-1]


def find_nearest_boundary(matches: Sequence[RouteMatch], route_id: str | None = None) -> RouteMatch:
    """Closest match at or above *route_id* with ``error_boundary``, else the root."""
    if route_id is None:
        eligible = list(matches)
    else:
        index = next((i for i, m in enumerate(matches) if m.id == route_id), -1)
        eligible = list(matches[: index + 1])
    for match in reversed(eligible):
        if match.route.error_boundary:
            return match
    return matches[0]


def short_circuit_matches(routes: Sequence[Route]) -> tuple[list[RouteMatch], Route]:
    """Matches used to render a 404 when nothing matched.

    Prefers a root layout or index route so its boundary renders the
    error; otherwise a shim route stands in.
    """
    route = next(
        (r for r in routes if r.index or not r.path or r.path == "/"),
        Route(id=SHIM_ROUTE_ID),
    )
    return [RouteMatch(route=route, params={}, pathname="", pathname_base="")], route


# ---------------------------------------------------------------------------
# Calling data functions
# ---------------------------------------------------------------------------


def normalize_redirect(
    redirect: Redirect,
    match: RouteMatch,
    matches: Sequence[RouteMatch],
    location: Location,
    basename: str,
) -> Redirect:
    """Resolve a redirect target to an absolute path under *basename*.

    Relative targets resolve against the route hierarchy of *match*.
    Absolute URLs are reduced to their path.
    """
    target = redirect.location
    if _ABSOLUTE_URL.match(target) or target.startswith("//"):
        parts = urlsplit(target)
        query = f"?{parts.query}" if parts.query else ""
        fragment = f"#{parts.fragment}" if parts.fragment else ""
        path = create_path(parts.path or "/", query, fragment)
        return Redirect(location=path, status=redirect.status, revalidate=redirect.revalidate)

    index = next((i for i, m in enumerate(matches) if m is match), len(matches) - 1)
    route_pathnames = [m.pathname_base for m in get_path_contributing_matches(matches[: index + 1])]
    current = strip_basename(location.pathname, basename) or location.pathname
    resolved = resolve_to(target, route_pathnames, current)
    pathname = resolved.pathname
    if basename != "/":
        pathname = basename if pathname == "/" else join_paths([basename, pathname])
    path = create_path(pathname, resolved.search, resolved.hash)
    return Redirect(location=path, status=redirect.status, revalidate=redirect.revalidate)


async def call_data_function(
    kind: Literal["loader", "action"],
    match: RouteMatch,
    matches: Sequence[RouteMatch],
    location: Location,
    signal: CancellationToken,
    *,
    submission: Submission | None = None,
    context: Any = None,
    basename: str = "/",
) -> DataResult:
    """Run the route's loader or action and normalize the outcome."""
    handler = match.route.loader if kind == "loader" else match.route.action
    if handler is None:
        msg = f"Route {match.id!r} has no {kind}"
        raise ConfigurationError(msg)

    args = DataFunctionArgs(
        location=location,
        params=match.params,
        signal=signal,
        match=match,
        submission=submission,
        context=context,
    )
    available: dict[str, Any] = {
        "location": location,
        "params": match.params,
        "signal": signal,
        "submission": submission,
        "context": context,
        "pathname": location.pathname,
        "search": location.search_params,
        "form_data": args.form_data,
        "match": match,
    }

    result: DataResult
    try:
        kwargs = resolve_kwargs(handler, available, match.params, args_object=args)
        value = await invoke(handler, **kwargs)
    except Redirect as exc:
        result = exc
    except HTTPError as exc:
        result = Err(exc)
    except NavigationCancelled as exc:
        logger.debug("%s for route %r observed cancellation: %s", kind, match.id, exc)
        result = Err(exc)
    except Exception as exc:
        logger.error("Unexpected error in %s for route %r", kind, match.id, exc_info=exc)
        result = Err(exc)
    else:
        result = to_result(value)

    if isinstance(result, Redirect):
        return normalize_redirect(result, match, matches, location, basename)
    if kind == "action" and isinstance(result, Ok) and result.deferred is not None:
        result.deferred.cancel()
        error = ConfigurationError(f"defer() is not supported in actions (route {match.id!r})")
        logger.error("%s", error)
        return Err(error)
    return result


async def resolve_deferred_result(
    result: DataResult,
    signal: CancellationToken,
    *,
    unwrap: bool = False,
) -> DataResult | None:
    """Settle a deferred ``Ok`` result completely.

    Returns ``None`` if the deferred was aborted. With *unwrap*, pending
    handles are replaced by plain values and a rejected key turns the
    whole result into an ``Err``.
    """
    if not isinstance(result, Ok) or result.deferred is None:
        return result
    deferred = result.deferred
    if await deferred.resolve_data(signal):
        return None
    if not unwrap:
        return Ok(deferred.data)
    try:
        return Ok(deferred.unwrapped_data)
    except Exception as exc:
        return Err(exc)


# ---------------------------------------------------------------------------
# Folding results into state
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProcessedLoaderData:
    loader_data: dict[str, Any]
    errors: dict[str, BaseException] | None
    deferreds: dict[str, DeferredData]
    failed: frozenset[str]


def process_loader_data(
    matches: Sequence[RouteMatch],
    matches_to_load: Sequence[RouteMatch],
    results: Sequence[DataResult],
    pending_errors: Mapping[str, BaseException] | None = None,
) -> ProcessedLoaderData:
    """Sort loader results into loader data, boundary errors and deferreds.

    Each error is attached to the nearest boundary at or above the route
    that failed. When several errors reach the same boundary the highest
    route's error wins.

    *pending_errors* holds an action error already bound to a boundary.
    The highest failing loader reports that error in place of its own;
    when every loader succeeds it stays at its boundary, whose data is
    dropped.
    """
    pending = dict(pending_errors or {})
    loader_data: dict[str, Any] = {}
    errors: dict[str, BaseException] = {}
    deferreds: dict[str, DeferredData] = {}
    failed: set[str] = set()

    for match, result in zip(matches_to_load, results, strict=True):
        if isinstance(result, Redirect):
            msg = "Redirect results must be handled before processing loader data"
            raise RuntimeError(msg)
        if isinstance(result, Err):
            boundary = find_nearest_boundary(matches, match.id)
            error = result.error
            if pending:
                error = next(iter(pending.values()))
                pending.clear()
            errors.setdefault(boundary.id, error)
            failed.add(match.id)
        elif result.deferred is not None:
            deferreds[match.id] = result.deferred
            loader_data[match.id] = result.deferred.data
        else:
            loader_data[match.id] = result.data

    if pending:
        errors.update(pending)
        failed.update(pending)

    return ProcessedLoaderData(
        loader_data=loader_data,
        errors=errors or None,
        deferreds=deferreds,
        failed=frozenset(failed),
    )


def merge_loader_data(
    current: Mapping[str, Any],
    new: Mapping[str, Any],
    matches: Sequence[RouteMatch],
    errors: Mapping[str, BaseException] | None,
    failed: frozenset[str] = frozenset(),
) -> dict[str, Any]:
    """Combine fresh loader data with data kept from re-used routes.

    Walks the matches root to leaf and stops after the first route that
    holds an error: nothing below an error boundary keeps data. Routes in
    *failed* lose their previous data.
    """
    merged: dict[str, Any] = {}
    for match in matches:
        route_id = match.id
        if route_id in new:
            merged[route_id] = new[route_id]
        elif route_id in current and route_id not in failed and match.route.loader is not None:
            merged[route_id] = current[route_id]
        if errors and route_id in errors:
            break
    return merged
