"""Route definitions, the path pattern compiler and the route matcher."""

from wayfinder.routing.matcher import RouteBranch, RouteTable, flatten_routes, match_routes
from wayfinder.routing.path import (
    PathMatch,
    compile_path,
    compute_score,
    explode_optional_segments,
    generate_path,
    match_path,
    parse_pattern,
)
from wayfinder.routing.route import PathSegment, Route, RouteMatch

__all__ = [
    "PathMatch",
    "PathSegment",
    "Route",
    "RouteBranch",
    "RouteMatch",
    "RouteTable",
    "compile_path",
    "compute_score",
    "explode_optional_segments",
    "flatten_routes",
    "generate_path",
    "match_path",
    "match_routes",
    "parse_pattern",
]
