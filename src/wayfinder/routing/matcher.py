"""Route matcher — flatten, rank and match a route tree.

A ``RouteTable`` is built once from the application's route tree. At
construction it assigns route ids, validates every branch and flattens
the tree into ranked branches (one per concrete leaf path, optional
segments exploded). Matching walks the ranked branches and returns the
first one that consumes the whole pathname.

Usage::

    table = RouteTable([
        Route(path="/", children=[
            Route(index=True),
            Route(path="users/:id"),
        ]),
    ])
    [m.id for m in table.match("/users/7")]   # ["0", "0-1"]
"""

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from wayfinder.errors import ConfigurationError
from wayfinder.location.path import (
    Location,
    decode_path,
    join_paths,
    normalize_pathname,
    parse_path,
    strip_basename,
)
from wayfinder.routing.path import compute_score, explode_optional_segments, match_path, parse_pattern
from wayfinder.routing.route import Route, RouteMatch

logger = logging.getLogger("wayfinder.routing")


@dataclass(frozen=True, slots=True)
class RouteMeta:
    """One level of a flattened branch."""

    relative_path: str
    case_sensitive: bool
    children_index: int
    route: Route


@dataclass(frozen=True, slots=True)
class RouteBranch:
    """A root-to-leaf chain of routes with its joined path and score."""

    path: str
    score: int
    routes_meta: tuple[RouteMeta, ...]


# ---------------------------------------------------------------------------
# Tree preparation
# ---------------------------------------------------------------------------


def assign_route_ids(
    routes: Sequence[Route],
    manifest: dict[str, Route] | None = None,
    parent_path: tuple[int, ...] = (),
) -> tuple[tuple[Route, ...], dict[str, Route]]:
    """Return a copy of the tree where every route has an id.

    Generated ids follow the tree position (``"0"``, ``"0-1"``...). Raises
    ``ConfigurationError`` on id collisions and index routes with children.
    """
    manifest = {} if manifest is None else manifest
    result: list[Route] = []

    for i, route in enumerate(routes):
        tree_path = (*parent_path, i)
        route_id = route.id if route.id is not None else "-".join(str(p) for p in tree_path)

        if route.index and route.children:
            msg = f"Cannot specify children on an index route (route {route_id!r})."
            raise ConfigurationError(msg)
        if route_id in manifest:
            msg = f"Found a route id collision on id {route_id!r}. Route ids must be unique."
            raise ConfigurationError(msg)

        children: tuple[Route, ...] = ()
        manifest[route_id] = route
        if route.children:
            children, _ = assign_route_ids(route.children, manifest, tree_path)

        with_id = dataclasses.replace(route, id=route_id, children=children)
        manifest[route_id] = with_id
        result.append(with_id)

    return tuple(result), manifest


def flatten_routes(
    routes: Sequence[Route],
    *,
    case_sensitive: bool = False,
    branches: list[RouteBranch] | None = None,
    parents_meta: tuple[RouteMeta, ...] = (),
    parent_path: str = "",
) -> list[RouteBranch]:
    """Expand the tree into branches, children before their parents.

    Pathless layout routes contribute to their children's branches but
    never form a branch of their own.
    """
    branches = [] if branches is None else branches

    def flatten_route(route: Route, index: int, relative_path: str | None = None) -> None:
        relative = (route.path or "") if relative_path is None else relative_path
        if relative.startswith("/"):
            if not relative.startswith(parent_path):
                msg = (
                    f"Absolute route path {relative!r} nested under path {parent_path!r} "
                    f"is not valid. An absolute child route path must start with the "
                    f"combined path of all its parent routes."
                )
                raise ConfigurationError(msg)
            relative = relative[len(parent_path) :]

        meta = RouteMeta(
            relative_path=relative,
            case_sensitive=route.case_sensitive or case_sensitive,
            children_index=index,
            route=route,
        )
        path = join_paths([parent_path, relative])
        # Validates splat placement and param collisions across the whole branch
        parse_pattern(path)
        routes_meta = (*parents_meta, meta)

        if route.children:
            flatten_routes(
                route.children,
                case_sensitive=case_sensitive,
                branches=branches,
                parents_meta=routes_meta,
                parent_path=path,
            )

        if route.path is None and not route.index:
            return
        branches.append(RouteBranch(path=path, score=compute_score(path, route.index), routes_meta=routes_meta))

    for i, route in enumerate(routes):
        if not route.path or "?" not in route.path:
            flatten_route(route, i)
        else:
            for exploded in explode_optional_segments(route.path):
                flatten_route(route, i, exploded)

    return branches


def rank_route_branches(branches: list[RouteBranch]) -> list[RouteBranch]:
    """Sort by descending score. The sort is stable, so ties keep declaration order."""
    return sorted(branches, key=lambda branch: -branch.score)


def match_route_branch(branch: RouteBranch, pathname: str) -> list[RouteMatch] | None:
    """Match *pathname* against one branch, level by level."""
    matched_params: dict[str, str] = {}
    matched_pathname = "/"
    levels: list[tuple[Route, str, str]] = []
    last = len(branch.routes_meta) - 1

    for i, meta in enumerate(branch.routes_meta):
        remaining = pathname if matched_pathname == "/" else pathname[len(matched_pathname) :] or "/"
        match = match_path(
            meta.relative_path,
            remaining,
            case_sensitive=meta.case_sensitive,
            end=i == last,
        )
        if match is None:
            return None

        matched_params.update(match.params)
        levels.append((
            meta.route,
            join_paths([matched_pathname, match.pathname]),
            normalize_pathname(join_paths([matched_pathname, match.pathname_base])),
        ))
        if match.pathname_base != "/":
            matched_pathname = join_paths([matched_pathname, match.pathname_base])

    # Every level sees the params bound along the whole branch
    return [
        RouteMatch(route=route, params=dict(matched_params), pathname=matched, pathname_base=base)
        for route, matched, base in levels
    ]


def match_routes(
    branches: Sequence[RouteBranch],
    location: Location | str,
    basename: str = "/",
) -> list[RouteMatch] | None:
    """Return the matches of the first ranked branch that fits, or ``None``."""
    raw = parse_path(location).pathname if isinstance(location, str) else location.pathname
    pathname = strip_basename(raw or "/", basename)
    if pathname is None:
        return None

    decoded = decode_path(pathname)
    for branch in branches:
        matches = match_route_branch(branch, decoded)
        if matches is not None:
            return matches
    return None


# ---------------------------------------------------------------------------
# Route table
# ---------------------------------------------------------------------------


class RouteTable:
    """Compiled, immutable route tree.

    Raises ``ConfigurationError`` at construction for invalid trees.
    """

    __slots__ = ("_branches", "_manifest", "_routes")

    def __init__(self, routes: Sequence[Route], *, case_sensitive: bool = False) -> None:
        if not routes:
            msg = "A route table needs at least one route."
            raise ConfigurationError(msg)
        self._routes, self._manifest = assign_route_ids(routes)
        self._branches = tuple(
            rank_route_branches(flatten_routes(self._routes, case_sensitive=case_sensitive))
        )
        logger.debug(
            "Compiled %d routes into %d branches", len(self._manifest), len(self._branches)
        )

    @property
    def routes(self) -> tuple[Route, ...]:
        """The route tree, with ids assigned."""
        return self._routes

    @property
    def branches(self) -> tuple[RouteBranch, ...]:
        """Flattened branches in match order."""
        return self._branches

    @property
    def manifest(self) -> dict[str, Route]:
        return dict(self._manifest)

    def find(self, route_id: str) -> Route | None:
        return self._manifest.get(route_id)

    def match(self, location: Location | str, basename: str = "/") -> list[RouteMatch] | None:
        """Match a pathname (or location) against the table.

        Returns root-to-leaf matches, or ``None`` when nothing matches.
        """
        return match_routes(self._branches, location, basename)

    def __len__(self) -> int:
        return len(self._manifest)

    def __repr__(self) -> str:
        return f"RouteTable(routes={len(self._manifest)}, branches={len(self._branches)})"
