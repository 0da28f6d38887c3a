"""Locations, URL helpers, search parameters and form submissions."""

from wayfinder.location.forms import FormData, Submission, normalize_submission
from wayfinder.location.path import (
    Location,
    PathParts,
    create_key,
    create_location,
    create_path,
    decode_path,
    join_paths,
    normalize_hash,
    normalize_pathname,
    normalize_search,
    parse_path,
    resolve_path,
    resolve_to,
    strip_basename,
)
from wayfinder.location.query import SearchParams

__all__ = [
    "FormData",
    "Location",
    "PathParts",
    "SearchParams",
    "Submission",
    "create_key",
    "create_location",
    "create_path",
    "decode_path",
    "join_paths",
    "normalize_hash",
    "normalize_pathname",
    "normalize_search",
    "normalize_submission",
    "parse_path",
    "resolve_path",
    "resolve_to",
    "strip_basename",
]
