from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import Any, Generic, TypeVar, overload

from .utils import cleaned_identifier

T = TypeVar("T")


class IdentifiedCollection(Sequence[T], Generic[T]):
    """Ordered collection of items or layouts, indexable by position or identifier."""

    def __init__(self, objects: Iterable[T]):
        self._objects = list(objects)
        self._by_identifier: dict[str, T] | None = None

    def __iter__(self) -> Iterator[T]:
        return iter(self._objects)

    def __len__(self) -> int:
        return len(self._objects)

    @overload
    def __getitem__(self, key: int) -> T: ...

    @overload
    def __getitem__(self, key: slice) -> list[T]: ...

    @overload
    def __getitem__(self, key: str) -> T | None: ...

    def __getitem__(self, key):
        if isinstance(key, str):
            return self.find(key)
        return self._objects[key]

    def find(self, identifier: str) -> T | None:
        """Return the object with the given identifier, or None."""
        if self._by_identifier is None:
            self._by_identifier = {}
            for obj in self._objects:
                # First object wins when data sources overlap.
                self._by_identifier.setdefault(obj.identifier, obj)  # type: ignore[attr-defined]
        return self._by_identifier.get(cleaned_identifier(identifier))

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"{type(self).__name__}({len(self._objects)} objects)"


class ItemCollection(IdentifiedCollection):
    """Lightweight helper for working with lists of items in filters and helpers."""

    def with_attribute(self, key: str, value: Any) -> ItemCollection:
        return ItemCollection(i for i in self._objects if i.attributes.get(key) == value)

    def below(self, identifier: str) -> ItemCollection:
        """Items whose identifier starts with ``identifier`` (excluding it)."""
        prefix = cleaned_identifier(identifier)
        return ItemCollection(
            i for i in self._objects if i.identifier.startswith(prefix) and i.identifier != prefix
        )

    def sorted_by(self, key: str, reverse: bool = False) -> ItemCollection:
        """Sort by an attribute; items lacking it sort last."""
        present = [i for i in self._objects if i.attributes.get(key) is not None]
        missing = [i for i in self._objects if i.attributes.get(key) is None]
        present.sort(key=lambda i: i.attributes[key], reverse=reverse)
        return ItemCollection(present + missing)


class LayoutCollection(IdentifiedCollection):
    """Ordered collection of layouts."""
