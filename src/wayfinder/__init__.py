"""Wayfinder — client-side routing and navigation for Python.

Matches URLs against a nested route tree, runs each route's loader and
action, and publishes immutable navigation snapshots to subscribers.

Basic usage::

    from wayfinder import MemoryHistory, Navigator, Route

    routes = [
        Route(path="/", loader=load_root, children=[
            Route(index=True, loader=load_home),
            Route(path="projects/:project_id", loader=load_project),
        ]),
    ]

    async with Navigator(routes, history=MemoryHistory(["/"])) as navigator:
        state = await navigator.navigate("/projects/7")
        state.loader_data

Loaders may return ``defer(...)`` to commit before slow values settle,
``redirect(...)`` to move elsewhere, or raise ``NotFound`` to render the
nearest error boundary.
"""

__version__ = "0.1.0-dev"
__all__ = [
    "BadRequest",
    "CancellationToken",
    "ConfigurationError",
    "DataFunctionArgs",
    "Fetcher",
    "HTTPError",
    "HistoryAction",
    "Location",
    "MemoryHistory",
    "MethodNotAllowed",
    "Navigation",
    "Navigator",
    "NotFound",
    "Redirect",
    "Route",
    "RouteMatch",
    "RouteTable",
    "RouterConfig",
    "RouterState",
    "SearchParams",
    "ShouldRevalidateArgs",
    "WayfinderError",
    "defer",
    "generate_path",
    "is_route_error_response",
    "redirect",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import wayfinder`` fast while providing a clean top-level API.
    """
    if name == "Navigator":
        from wayfinder.navigation.navigator import Navigator

        return Navigator

    if name == "RouterConfig":
        from wayfinder.config import RouterConfig

        return RouterConfig

    if name in ("Route", "RouteMatch"):
        from wayfinder.routing import route as _route

        return getattr(_route, name)

    if name == "RouteTable":
        from wayfinder.routing.matcher import RouteTable

        return RouteTable

    if name == "generate_path":
        from wayfinder.routing.path import generate_path

        return generate_path

    if name in ("HistoryAction", "MemoryHistory"):
        from wayfinder import history as _history

        return getattr(_history, name)

    if name == "Location":
        from wayfinder.location.path import Location

        return Location

    if name == "SearchParams":
        from wayfinder.location.query import SearchParams

        return SearchParams

    if name in ("Fetcher", "Navigation", "RouterState"):
        from wayfinder.navigation import state as _state

        return getattr(_state, name)

    if name == "ShouldRevalidateArgs":
        from wayfinder.navigation.revalidation import ShouldRevalidateArgs

        return ShouldRevalidateArgs

    if name == "DataFunctionArgs":
        from wayfinder.navigation.data import DataFunctionArgs

        return DataFunctionArgs

    if name == "defer":
        from wayfinder.deferred import defer

        return defer

    if name == "redirect":
        from wayfinder.results import redirect

        return redirect

    if name == "CancellationToken":
        from wayfinder.cancellation import CancellationToken

        return CancellationToken

    if name in (
        "BadRequest",
        "ConfigurationError",
        "HTTPError",
        "MethodNotAllowed",
        "NotFound",
        "Redirect",
        "WayfinderError",
        "is_route_error_response",
    ):
        from wayfinder import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
