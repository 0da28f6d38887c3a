"""Locations and URL path helpers.

Pure string functions, no I/O. Everything the navigator needs to turn a
``to`` value into a concrete ``Location``: parsing, joining, relative
resolution, basename handling and decoding.

    >>> parse_path("/users?page=2#top")
    PathParts(pathname='/users', search='?page=2', hash='#top')
    >>> resolve_path("../b", "/a/c").pathname
    '/a/b'
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote

from wayfinder.location.query import SearchParams

_TRAILING_SLASHES = re.compile(r"/+$")
_LEADING_SLASHES = re.compile(r"^/*")
_REPEATED_SLASHES = re.compile(r"/{2,}")


@dataclass(frozen=True, slots=True)
class PathParts:
    """The pieces of a URL path. An empty ``pathname`` means "not given"."""

    pathname: str = ""
    search: str = ""
    hash: str = ""


@dataclass(frozen=True, slots=True)
class Location:
    """One entry in the navigation history.

    ``key`` identifies the history entry; ``state`` is an opaque payload
    supplied with ``navigate(..., state=...)``.
    """

    pathname: str = "/"
    search: str = ""
    hash: str = ""
    state: Any = None
    key: str = "default"

    @property
    def path(self) -> str:
        """``pathname + search + hash`` as one string."""
        return create_path(self.pathname, self.search, self.hash)

    def same_path(self, other: Location | None) -> bool:
        """True if *other* has the same pathname, search and hash."""
        if other is None:
            return False
        return (
            self.pathname == other.pathname
            and self.search == other.search
            and self.hash == other.hash
        )

    @property
    def search_params(self) -> SearchParams:
        return SearchParams(self.search)


def create_key() -> str:
    """A short random key for a new history entry."""
    return uuid.uuid4().hex[:8]


# ---------------------------------------------------------------------------
# Parsing and formatting
# ---------------------------------------------------------------------------


def parse_path(path: str) -> PathParts:
    """Split a URL path into pathname, search and hash."""
    pathname = path
    search = ""
    hash_ = ""

    hash_index = pathname.find("#")
    if hash_index >= 0:
        hash_ = pathname[hash_index:]
        pathname = pathname[:hash_index]

    search_index = pathname.find("?")
    if search_index >= 0:
        search = pathname[search_index:]
        pathname = pathname[:search_index]

    return PathParts(pathname=pathname, search=search, hash=hash_)


def create_path(pathname: str = "/", search: str = "", hash: str = "") -> str:
    """Join pathname, search and hash into a URL path string."""
    if search and search != "?":
        pathname += search if search.startswith("?") else "?" + search
    if hash and hash != "#":
        pathname += hash if hash.startswith("#") else "#" + hash
    return pathname


def create_location(
    current: Location | str,
    to: str | PathParts,
    state: Any = None,
    key: str | None = None,
) -> Location:
    """Build a new ``Location`` for *to*, relative to *current*'s pathname.

    Search and hash are never inherited; the pathname is when *to* has none.
    """
    base = current if isinstance(current, str) else current.pathname
    parts = parse_path(to) if isinstance(to, str) else to
    return Location(
        pathname=parts.pathname or base,
        search=parts.search,
        hash=parts.hash,
        state=state,
        key=key or create_key(),
    )


def decode_path(value: str) -> str:
    """URI-decode each segment while keeping encoded slashes escaped."""
    return "/".join(unquote(segment).replace("/", "%2F") for segment in value.split("/"))


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def join_paths(paths: list[str]) -> str:
    """Join path pieces with ``/`` and collapse repeated slashes."""
    return _REPEATED_SLASHES.sub("/", "/".join(paths))


def normalize_pathname(pathname: str) -> str:
    """Strip trailing slashes and ensure exactly one leading slash."""
    return _LEADING_SLASHES.sub("/", _TRAILING_SLASHES.sub("", pathname), count=1)


def normalize_search(search: str) -> str:
    if not search or search == "?":
        return ""
    return search if search.startswith("?") else "?" + search


def normalize_hash(hash: str) -> str:
    if not hash or hash == "#":
        return ""
    return hash if hash.startswith("#") else "#" + hash


def strip_basename(pathname: str, basename: str) -> str | None:
    """Remove *basename* from the front of *pathname*.

    Returns ``None`` when the pathname lies outside the basename.
    Comparison is case-insensitive.
    """
    if basename == "/":
        return pathname
    if not pathname.lower().startswith(basename.lower()):
        return None

    start = len(basename) - 1 if basename.endswith("/") else len(basename)
    next_char = pathname[start : start + 1]
    if next_char and next_char != "/":
        # "/basename-other" is not inside "/basename"
        return None
    return pathname[start:] or "/"


# ---------------------------------------------------------------------------
# Relative resolution
# ---------------------------------------------------------------------------


def _resolve_pathname(relative: str, from_pathname: str) -> str:
    segments = _TRAILING_SLASHES.sub("", from_pathname).split("/")
    for segment in relative.split("/"):
        if segment == "..":
            if len(segments) > 1:
                segments.pop()
        elif segment != ".":
            segments.append(segment)
    return "/".join(segments) if len(segments) > 1 else "/"


def resolve_path(to: str | PathParts, from_pathname: str = "/") -> PathParts:
    """Resolve *to* against *from_pathname* using ``.`` and ``..`` rules."""
    parts = parse_path(to) if isinstance(to, str) else to
    if not parts.pathname:
        pathname = from_pathname
    elif parts.pathname.startswith("/"):
        pathname = parts.pathname
    else:
        pathname = _resolve_pathname(parts.pathname, from_pathname)

    return PathParts(
        pathname=pathname,
        search=normalize_search(parts.search),
        hash=normalize_hash(parts.hash),
    )


def resolve_to(
    to: str | PathParts,
    route_pathnames: list[str],
    location_pathname: str,
    *,
    is_path_relative: bool = False,
) -> PathParts:
    """Resolve *to* relative to the route hierarchy, not the URL.

    ``..`` climbs one *route* level (one entry of *route_pathnames*),
    which is what a relative redirect from a nested loader expects.
    Search-only and hash-only targets resolve against the current
    location instead.
    """
    parts = parse_path(to) if isinstance(to, str) else to
    is_empty = to == "" or (isinstance(to, PathParts) and parts.pathname == "")
    to_pathname = "/" if is_empty else parts.pathname

    if is_path_relative or (not to_pathname and not is_empty):
        from_pathname = location_pathname
    else:
        index = len(route_pathnames) - 1
        if to_pathname.startswith(".."):
            segments = to_pathname.split("/")
            while segments and segments[0] == "..":
                segments.pop(0)
                index -= 1
            parts = PathParts(pathname="/".join(segments), search=parts.search, hash=parts.hash)
        from_pathname = route_pathnames[index] if index >= 0 else "/"

    if is_empty:
        parts = PathParts(pathname="", search=parts.search, hash=parts.hash)

    resolved = resolve_path(parts, from_pathname)

    has_explicit_slash = bool(to_pathname) and to_pathname != "/" and to_pathname.endswith("/")
    has_current_slash = (is_empty or to_pathname == ".") and location_pathname.endswith("/")
    if not resolved.pathname.endswith("/") and (has_explicit_slash or has_current_slash):
        resolved = PathParts(resolved.pathname + "/", resolved.search, resolved.hash)
    return resolved
