"""Multi-value mappings shared by SearchParams and FormData.

Both types keep every ``(key, value)`` pair in order and answer lookups
with the first value. ``to_pairs`` is the one place input shapes are
normalized into those pairs.
"""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MultiValueMapping(Protocol):
    """A read-only string mapping where keys can have multiple values.

    ``__getitem__`` returns the first value for a key.
    ``get_list`` returns all values for a key.
    ``items_all`` yields every ``(key, value)`` pair in order, duplicates included.
    """

    def __getitem__(self, key: str) -> str: ...
    def __contains__(self, key: object) -> bool: ...
    def __iter__(self) -> Iterator[str]: ...
    def __len__(self) -> int: ...
    def get(self, key: str, default: str | None = None) -> str | None: ...
    def get_list(self, key: str) -> list[str]: ...
    def items_all(self) -> Iterator[tuple[str, str]]: ...


def to_pairs(data: Mapping[str, Any] | Iterable[tuple[Any, Any]] | None) -> list[tuple[str, str]]:
    """Flatten *data* into ordered string pairs.

    - another ``MultiValueMapping``: its pairs, repeats kept
    - a plain mapping: list and tuple values become repeated keys
    - an iterable of pairs: taken as is
    """
    if data is None:
        return []
    if isinstance(data, MultiValueMapping):
        return list(data.items_all())
    if isinstance(data, Mapping):
        pairs: list[tuple[str, str]] = []
        for key, value in data.items():
            if isinstance(value, list | tuple):
                pairs.extend((str(key), str(item)) for item in value)
            else:
                pairs.append((str(key), str(value)))
        return pairs
    return [(str(key), str(value)) for key, value in data]


def group_pairs(pairs: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
    """Key -> values, in first-seen key order."""
    grouped: dict[str, list[str]] = {}
    for key, value in pairs:
        grouped.setdefault(key, []).append(value)
    return grouped
