"""Path pattern compiler.

Turns route path strings into segment descriptors, regular expressions
and specificity scores. All functions are pure; ``compile_path`` is
cached because the matcher compiles the same patterns on every match.

Pattern syntax::

    /users              static
    /users/:id          dynamic param
    /:lang?/docs        optional segment (params and static segments)
    /files/*            trailing splat, bound as params["*"]
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any
from urllib.parse import unquote

from wayfinder.errors import ConfigurationError
from wayfinder.routing.route import PathSegment

_PARAM_RE = re.compile(r"^:[\w-]+$")
_BRACE_PARAM_RE = re.compile(r"\{([\w-]+)(?::[\w]+)?\}")
_REGEX_SPECIALS = re.compile(r"[\\.*+^$?{}|()\[\]]")
_PARAM_SEGMENT_RE = re.compile(r"/:([\w-]+)")
_TRAILING_SLASH_SPLAT = re.compile(r"/*\*?$")
_KEY_RE = re.compile(r"^:([\w-]+)(\??)$")

# Specificity weights
STATIC_SEGMENT_VALUE = 10
DYNAMIC_SEGMENT_VALUE = 3
INDEX_ROUTE_VALUE = 2
EMPTY_SEGMENT_VALUE = 1
SPLAT_PENALTY = -2


@dataclass(frozen=True, slots=True)
class PathMatch:
    """Result of matching one pattern against a pathname."""

    params: dict[str, str]
    pathname: str
    pathname_base: str
    pattern: str


# ---------------------------------------------------------------------------
# Parsing and validation
# ---------------------------------------------------------------------------


def parse_pattern(path: str) -> tuple[PathSegment, ...]:
    """Parse a route path into segments, validating it.

    Raises ``ConfigurationError`` when a splat is not the final segment,
    when two params share a name, or for ``{id}`` style params.

    Examples::

        "/users/:id"  -> (PathSegment("users"), PathSegment(":id", "dynamic", "id"))
        "/docs/*"     -> (PathSegment("docs"), PathSegment("*", "splat", "*"))
    """
    brace = _BRACE_PARAM_RE.search(path)
    if brace:
        msg = (
            f"Route path {path!r} uses {brace.group(0)!r}. "
            f"Dynamic segments are written as ':{brace.group(1)}'."
        )
        raise ConfigurationError(msg)

    parts = [part for part in path.split("/") if part]
    segments: list[PathSegment] = []
    seen: set[str] = set()

    for i, part in enumerate(parts):
        if "*" in part:
            if part != "*":
                msg = f"Route path {path!r}: a splat must be a whole segment ('/*'), got {part!r}."
                raise ConfigurationError(msg)
            if i != len(parts) - 1:
                msg = f"Route path {path!r}: a splat '*' may only appear as the final segment."
                raise ConfigurationError(msg)
            segments.append(PathSegment(value=part, kind="splat", name="*"))
            continue

        optional = part.endswith("?")
        bare = part.removesuffix("?")
        if bare.startswith(":"):
            name = bare[1:]
            if not _PARAM_RE.match(bare):
                msg = f"Route path {path!r}: invalid param segment {part!r}."
                raise ConfigurationError(msg)
            if name in seen:
                msg = f"Route path {path!r}: duplicate param name {name!r}."
                raise ConfigurationError(msg)
            seen.add(name)
            segments.append(PathSegment(value=part, kind="optional" if optional else "dynamic", name=name))
        elif optional:
            segments.append(PathSegment(value=part, kind="optional"))
        else:
            segments.append(PathSegment(value=part))

    return tuple(segments)


# ---------------------------------------------------------------------------
# Scoring and expansion
# ---------------------------------------------------------------------------


def compute_score(path: str, index: bool = False) -> int:
    """Specificity score for a fully joined route path.

    Each segment adds one point plus its own weight: static 10, dynamic 3,
    empty 1. A splat subtracts two and contributes no weight of its own;
    index routes gain two.
    """
    segments = path.split("/")
    score = len(segments)
    if "*" in segments:
        score += SPLAT_PENALTY
    if index:
        score += INDEX_ROUTE_VALUE

    for segment in segments:
        if segment == "*":
            continue
        if _PARAM_RE.match(segment):
            score += DYNAMIC_SEGMENT_VALUE
        elif segment == "":
            score += EMPTY_SEGMENT_VALUE
        else:
            score += STATIC_SEGMENT_VALUE
    return score


def explode_optional_segments(path: str) -> list[str]:
    """Expand optional segments into every concrete path they allow.

    Variants that keep a segment come before those that drop it::

        "/one/:two?/three/:four?"
        -> ["/one/:two/three/:four", "/one/:two/three",
            "/one/three/:four", "/one/three"]
    """
    segments = path.split("/")
    if not segments:
        return []

    first, rest = segments[0], segments[1:]
    optional = first.endswith("?")
    required = first.removesuffix("?")

    if not rest:
        return [required, ""] if optional else [required]

    rest_exploded = explode_optional_segments("/".join(rest))
    result = [required if sub == "" else f"{required}/{sub}" for sub in rest_exploded]
    if optional:
        result.extend(rest_exploded)

    return ["/" if path.startswith("/") and exploded == "" else exploded for exploded in result]


# ---------------------------------------------------------------------------
# Compilation and matching
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1024)
def compile_path(
    path: str, case_sensitive: bool = False, end: bool = True
) -> tuple[re.Pattern[str], tuple[str, ...]]:
    """Compile a (non-optional) path pattern to a regex and its param names.

    With ``end=False`` the pattern also matches pathnames that continue
    past it at a segment boundary, which is how parent routes match.
    """
    param_names: list[str] = []

    source = _TRAILING_SLASH_SPLAT.sub("", path, count=1)
    source = re.sub(r"^/*", "/", source, count=1)
    source = _REGEX_SPECIALS.sub(lambda m: "\\" + m.group(0), source)

    def _param(m: re.Match[str]) -> str:
        param_names.append(m.group(1))
        return "/([^/]+)"

    source = "^" + _PARAM_SEGMENT_RE.sub(_param, source)

    if path.endswith("*"):
        param_names.append("*")
        source += r"(.*)\Z" if path in ("*", "/*") else r"(?:/(.+)|/*)\Z"
    elif end:
        source += r"/*\Z"
    elif path not in ("", "/"):
        source += r"(?=/|\Z)"

    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(source, flags), tuple(param_names)


def _strip_trailing_slashes(value: str) -> str:
    return re.sub(r"(.)/+$", r"\1", value, count=1)


def match_path(
    pattern: str,
    pathname: str,
    *,
    case_sensitive: bool = False,
    end: bool = True,
) -> PathMatch | None:
    """Match *pathname* against one pattern, binding params.

    Params are URI-component decoded; the splat captures the remainder.
    """
    matcher, param_names = compile_path(pattern, case_sensitive, end)
    match = matcher.match(pathname)
    if match is None:
        return None

    matched = match.group(0)
    pathname_base = _strip_trailing_slashes(matched)
    params: dict[str, str] = {}

    for i, name in enumerate(param_names):
        value = match.group(i + 1) or ""
        if name == "*":
            pathname_base = _strip_trailing_slashes(matched[: len(matched) - len(value)])
        params[name] = unquote(value)

    return PathMatch(params=params, pathname=matched, pathname_base=pathname_base, pattern=pattern)


def generate_path(pattern: str, params: dict[str, Any] | None = None) -> str:
    """Substitute *params* into *pattern*.

    Optional params may be missing; required ones raise ``ValueError``::

        generate_path("/users/:id/*", {"id": 7, "*": "tab/2"})  # "/users/7/tab/2"
    """
    params = params or {}
    path = pattern
    if path.endswith("*") and path != "*" and not path.endswith("/*"):
        path = path[:-1] + "/*"

    prefix = "/" if path.startswith("/") else ""
    raw = re.split(r"/+", path)
    segments: list[str] = []

    for i, segment in enumerate(raw):
        if i == len(raw) - 1 and segment == "*":
            value = params.get("*")
            segments.append("" if value is None else str(value))
            continue
        key_match = _KEY_RE.match(segment)
        if key_match:
            key, optional = key_match.group(1), key_match.group(2)
            value = params.get(key)
            if value is None and not optional:
                raise ValueError(f'Missing ":{key}" param')
            segments.append("" if value is None else str(value))
            continue
        segments.append(segment.removesuffix("?"))

    return prefix + "/".join(s for s in segments if s)
