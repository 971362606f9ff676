"""Case-insensitive multi-valued header collection."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from cmsauth.types import HeaderInput


def _as_text(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return str(value)


def _as_values(value: object) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [_as_text(item) for item in value]
    return [_as_text(value)]


class HeaderSet(Mapping[str, list[str]]):
    """Header name -> ordered values. Names are stored lower-cased.

    Accepts a dict of single values, a dict of value lists, or a list of
    ``(name, value)`` pairs in which repeated names accumulate values.
    """

    def __init__(self, headers: HeaderInput | HeaderSet | None = None):
        self._values: dict[str, list[str]] = {}
        if headers is None:
            return
        if isinstance(headers, Mapping):
            for key, value in headers.items():
                self._values.setdefault(str(key).lower(), []).extend(_as_values(value))
            return

        for entry in headers:
            if len(entry) != 2:
                raise ValueError("Header entries must be [name, value]")
            self._values.setdefault(_as_text(entry[0]).lower(), []).append(_as_text(entry[1]))

    def __getitem__(self, name: str) -> list[str]:
        return self._values[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"HeaderSet({self._values!r})"

    def values_of(self, name: str) -> list[str]:
        return list(self._values.get(name.lower(), []))

    def first(self, name: str) -> str | None:
        values = self._values.get(name.lower())
        if not values:
            return None
        return values[0]

    def to_dict(self) -> dict[str, list[str]]:
        return {name: list(values) for name, values in self._values.items()}


def normalize_headers(headers: HeaderInput | HeaderSet | None) -> HeaderSet:
    if isinstance(headers, HeaderSet):
        return headers
    return HeaderSet(headers)
