"""Form data and submissions.

``FormData`` is what a form posts; ``Submission`` is the normalized
description of one submission that travels with a navigation or fetcher
(``navigation.submission``) and is handed to actions.

GET submissions never reach an action: their fields are serialized into
the target's search string and the navigation becomes a plain load.
"""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from urllib.parse import urlencode

from wayfinder._internal.multimap import group_pairs, to_pairs
from wayfinder.errors import BadRequest, HTTPError, MethodNotAllowed
from wayfinder.location.path import create_path, parse_path

VALID_METHODS = frozenset({"get", "post", "put", "patch", "delete"})
MUTATION_METHODS = VALID_METHODS - {"get"}

URLENCODED = "application/x-www-form-urlencoded"
MULTIPART = "multipart/form-data"
JSON = "application/json"
TEXT = "text/plain"
ENC_TYPES = frozenset({URLENCODED, MULTIPART, JSON, TEXT})


class FormData(Mapping[str, str]):
    """Immutable submitted form fields.

    Implements ``Mapping[str, str]`` and the ``MultiValueMapping`` protocol.
    Accepts a mapping (list values become repeated fields), another
    ``MultiValueMapping`` such as ``SearchParams``, or an iterable of
    ``(key, value)`` pairs.

    Usage::

        form = FormData({"title": "Hello", "tag": ["a", "b"]})
        form["title"]          # "Hello"
        form.get_list("tag")   # ["a", "b"]
    """

    __slots__ = ("_data", "_pairs")

    def __init__(
        self,
        data: Mapping[str, str | list[str]] | Iterable[tuple[str, str]] | None = None,
    ) -> None:
        pairs = to_pairs(data)
        object.__setattr__(self, "_pairs", tuple(pairs))
        object.__setattr__(self, "_data", group_pairs(pairs))

    def __getitem__(self, key: str) -> str:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FormData):
            return self._pairs == other._pairs
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._pairs)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {v!r}" for k, v in self._pairs)
        return f"FormData({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        return list(self._data.get(key, []))

    def items_all(self) -> Iterator[tuple[str, str]]:
        yield from self._pairs

    def to_search(self) -> str:
        """URL-encode every field, without a leading ``?``."""
        return urlencode(self._pairs)


@dataclass(frozen=True, slots=True)
class Submission:
    """A normalized form submission.

    ``method`` is lowercase. ``action`` is the target path without its hash.
    """

    method: str
    action: str
    form_data: FormData
    enc_type: str = URLENCODED

    @property
    def is_mutation(self) -> bool:
        return self.method in MUTATION_METHODS


def normalize_submission(
    path: str,
    *,
    form_method: str | None = None,
    form_data: FormData | Mapping[str, str | list[str]] | None = None,
    form_enc_type: str | None = None,
) -> tuple[str, Submission | None, HTTPError | None]:
    """Turn navigate/fetch submission options into ``(path, submission, error)``.

    - No ``form_data``: a plain navigation, no submission.
    - Unknown method: a 405 error to commit at the route's boundary.
    - GET: fields are serialized into the search string of *path*.
    - Mutations: *path* is unchanged and the submission carries the fields.
    """
    if form_data is None:
        return path, None, None

    method = (form_method or "get").lower()
    if method not in VALID_METHODS:
        return path, None, MethodNotAllowed(method)

    enc_type = form_enc_type or URLENCODED
    if enc_type not in ENC_TYPES:
        return path, None, BadRequest(f"Unable to encode submission body as {enc_type!r}")

    if not isinstance(form_data, FormData):
        form_data = FormData(form_data)

    parts = parse_path(path)
    submission = Submission(
        method=method,
        action=create_path(parts.pathname or "/", parts.search),
        form_data=form_data,
        enc_type=enc_type,
    )
    if submission.is_mutation:
        return path, submission, None

    search = form_data.to_search()
    return create_path(parts.pathname, f"?{search}" if search else "", parts.hash), submission, None
