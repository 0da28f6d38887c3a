"""Search string parameters with multi-value support."""

from collections.abc import Iterable, Iterator, Mapping
from urllib.parse import parse_qsl, urlencode

from wayfinder._internal.multimap import group_pairs, to_pairs


class SearchParams(Mapping[str, str]):
    """Immutable parsed search string.

    Attributes:
        _pairs: Every ``(key, value)`` pair in order, duplicates included.
        _data: Field name -> list of values.

    ``__getitem__`` returns the first value for a key.
    ``get_list`` returns all values for a key.
    """

    _pairs: tuple[tuple[str, str], ...]
    _data: dict[str, list[str]]

    __slots__ = ("_data", "_pairs")

    def __init__(self, init: str | Iterable[tuple[str, str]] = "") -> None:
        if isinstance(init, str):
            pairs = parse_qsl(init.removeprefix("?"), keep_blank_values=True)
        else:
            pairs = to_pairs(init)
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
        if isinstance(other, SearchParams):
            return self._pairs == other._pairs
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._pairs)

    def __repr__(self) -> str:
        return f"SearchParams({self.to_string()!r})"

    def __str__(self) -> str:
        return self.to_string()

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

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """Return value as int, or *default* if missing or not numeric."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool | None = None) -> bool | None:
        """Return value as bool (``true``/``1``/``yes``/``on`` -> True)."""
        value = self.get(key)
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def to_string(self) -> str:
        """Encode back to a search string without the leading ``?``."""
        return urlencode(self._pairs)

    @classmethod
    def from_mapping(cls, data: Mapping[str, str | list[str]]) -> "SearchParams":
        return cls(to_pairs(data))
