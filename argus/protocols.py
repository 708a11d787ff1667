"""Protocol definitions for Argus.

This module defines the structural interfaces of the two pluggable
collaborators the compiler depends on: filters and data sources. The
registries check candidates against these protocols, so any object with the
right methods can be plugged in without inheriting from the base classes.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import Item, Layout


@runtime_checkable
class ContentFilter(Protocol):
    """Protocol for filters.

    A filter is a pure text transform plus contextual reads. It must not
    mutate the item, rep or site it can see through its context.
    """

    @abstractmethod
    def run(self, content: Any, params: dict[str, Any]) -> Any:
        """Transform content.

        Args:
            content: Text to transform (a file path for binary reps).
            params: Parameters given in the compilation rule.

        Returns:
            The transformed content.
        """
        ...


@runtime_checkable
class DataSource(Protocol):
    """Protocol for data sources supplying items and layouts."""

    items_root: str
    layouts_root: str

    def use(self) -> None:
        """Open the data source before reading; calls nest."""
        ...

    def unuse(self) -> None:
        """Undo one ``use`` call."""
        ...

    @abstractmethod
    def items(self) -> list[Item]:
        """Return the items of this data source, identifiers relative to its root."""
        ...

    @abstractmethod
    def layouts(self) -> list[Layout]:
        """Return the layouts of this data source, identifiers relative to its root."""
        ...
