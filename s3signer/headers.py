# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Ordered, case-insensitive HTTP header mapping."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, MutableMapping


class HeaderMap(MutableMapping[str, str]):
    """Header mapping that compares names case-insensitively.

    Insertion order is preserved.  Setting a header that already exists
    under a different case replaces the value and keeps the original
    position, but adopts the new spelling of the name.

    Example:
        headers = HeaderMap({"Content-Type": "text/plain"})
        headers["content-type"]  # "text/plain"
    """

    def __init__(
        self,
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
    ) -> None:
        # lower-cased name -> (name as given, value)
        self._items: dict[str, tuple[str, str]] = {}
        if headers is not None:
            self.update(headers)

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __setitem__(self, name: str, value: str) -> None:
        self._items[name.lower()] = (name, str(value))

    def __delitem__(self, name: str) -> None:
        del self._items[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def lower_items(self) -> Iterator[tuple[str, str]]:
        """Yield ``(lower-cased name, value)`` pairs in insertion order."""
        return ((key, value) for key, (_, value) in self._items.items())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        if not isinstance(other, HeaderMap):
            other = HeaderMap(other)
        return dict(self.lower_items()) == dict(other.lower_items())

    def __repr__(self) -> str:
        return f"HeaderMap({dict(self.items())!r})"
