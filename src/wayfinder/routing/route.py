"""Route, PathSegment and RouteMatch frozen dataclasses."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

SegmentKind: TypeAlias = Literal["static", "dynamic", "optional", "splat"]


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:   ``users``   (kind="static")
    Dynamic:  ``:id``     (kind="dynamic", name="id")
    Optional: ``:lang?``  (kind="optional", name="lang") or ``edit?`` (name=None)
    Splat:    ``*``       (kind="splat", name="*")
    """

    value: str
    kind: SegmentKind = "static"
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route definition.

    ``path`` may be omitted for pathless layout routes and index routes.
    ``loader`` and ``action`` are sync or async callables; see
    ``wayfinder.navigation.data`` for the keyword arguments they can ask for.
    ``id`` is generated from the tree position when not given.

    Usage::

        Route(
            path="/",
            loader=load_root,
            error_boundary=True,
            children=[
                Route(index=True, loader=load_home),
                Route(path="projects/:project_id", loader=load_project, action=save_project),
                Route(path="*", loader=load_not_found),
            ],
        )
    """

    path: str | None = None
    index: bool = False
    children: Sequence["Route"] = ()
    loader: Callable[..., Any] | None = None
    action: Callable[..., Any] | None = None
    error_boundary: bool = False
    should_revalidate: Callable[..., Any] | None = None
    id: str | None = None
    case_sensitive: bool = False
    handle: Any = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """One route bound to concrete params for a resolved pathname.

    ``pathname`` is the portion of the URL this route matched;
    ``pathname_base`` is the same without the splat remainder.
    ``params`` holds every param bound along the whole branch.
    """

    route: Route
    params: dict[str, str]
    pathname: str
    pathname_base: str

    @property
    def id(self) -> str:
        return self.route.id or ""
