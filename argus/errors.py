"""Argus error hierarchy.

All argus-specific errors inherit from ArgusError for easy catching. Every
error in this module is fatal to a build: the compiler never retries and never
writes partial output for the representation that failed.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Item, ItemRep


class ArgusError(Exception):
    """Base error for all argus operations."""


class NoMatchingCompilationRuleFound(ArgusError):
    """No compilation rule applies to an item or one of its reps.

    Attributes:
        item: The item for which no rule was found.
        rep_name: Name of the rep, when the lookup was for a specific rep.
    """

    def __init__(self, item: Item, rep_name: str | None = None):
        self.item = item
        self.rep_name = rep_name
        if rep_name is None:
            message = f"No compilation rules found for item {item.identifier}"
        else:
            message = (
                f"No compilation rule found for rep '{rep_name}' "
                f"of item {item.identifier}"
            )
        super().__init__(message)


class NoMatchingRoutingRuleFound(ArgusError):
    """No routing rule applies to a rep.

    Attributes:
        rep: The rep that could not be routed.
    """

    def __init__(self, rep: ItemRep):
        self.rep = rep
        super().__init__(
            f"No routing rule found for rep '{rep.name}' of item {rep.item.identifier}"
        )


class UnknownLayoutError(ArgusError):
    """An item references a layout that does not exist."""

    def __init__(self, layout_identifier: str, item: Item | None = None):
        self.layout_identifier = layout_identifier
        self.item = item
        where = f" (referenced by {item.identifier})" if item is not None else ""
        super().__init__(f"Unknown layout {layout_identifier}{where}")


class UnknownFilterError(ArgusError):
    """A filter name is not present in the filter registry."""

    def __init__(self, filter_name: str):
        self.filter_name = filter_name
        super().__init__(f"Unknown filter '{filter_name}'")


class CannotDetermineFilterError(ArgusError):
    """A layout has no filter attribute and no layout filter rule applies."""

    def __init__(self, layout_identifier: str, filter_name: str | None = None):
        self.layout_identifier = layout_identifier
        self.filter_name = filter_name
        if filter_name:
            message = (
                f"Cannot determine filter for layout {layout_identifier}: "
                f"'{filter_name}' is not a known filter"
            )
        else:
            message = f"Cannot determine filter for layout {layout_identifier}"
        super().__init__(message)


class RecursiveCompilationError(ArgusError):
    """A dependency cycle was found among reps being compiled.

    Attributes:
        reps: The reps forming the cycle, in the order they were entered. The
            first and last entries are the same rep.
    """

    def __init__(self, reps: Sequence[ItemRep]):
        self.reps = list(reps)
        cycle = " -> ".join(f"{r.item.identifier}[{r.name}]" for r in self.reps)
        super().__init__(f"Recursive compilation detected: {cycle}")


class FilterError(ArgusError):
    """A filter raised while compiling a rep.

    Attributes:
        item_identifier: Identifier of the item being compiled.
        rep_name: Name of the rep being compiled.
        filter_name: Name of the filter that failed.
        original_error: The exception raised by the filter.
    """

    def __init__(
        self,
        item_identifier: str,
        rep_name: str,
        filter_name: str,
        original_error: Exception,
    ):
        self.item_identifier = item_identifier
        self.rep_name = rep_name
        self.filter_name = filter_name
        self.original_error = original_error
        super().__init__(
            f"Filter '{filter_name}' failed on {item_identifier}[{rep_name}]: "
            f"{type(original_error).__name__}: {original_error}"
        )


class UnknownDataSourceError(ArgusError):
    """The site configuration names an unregistered data source type."""

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"Unknown data source '{type_name}'")


class NoRulesFileFoundError(ArgusError):
    """The site directory has no rules file."""

    def __init__(self, site_dir: object):
        self.site_dir = site_dir
        super().__init__(f"No rules file found in {site_dir}")


class RulesFileError(ArgusError):
    """The rules file raised while being executed."""

    def __init__(self, path: object, original_error: Exception):
        self.path = path
        self.original_error = original_error
        super().__init__(
            f"{path}: {type(original_error).__name__}: {original_error}"
        )


class NoConfigFileFoundError(ArgusError):
    """The site directory has no config.yaml."""

    def __init__(self, site_dir: object):
        self.site_dir = site_dir
        super().__init__(f"No config.yaml found in {site_dir}")


class DataNotYetAvailableError(ArgusError):
    """Site data was accessed before it was loaded."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"{kind} are not available until the site data is loaded")


class DataSourceError(ArgusError):
    """A data source could not read an item, layout or metadata file."""

    def __init__(self, path: object, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class CodeSnippetError(ArgusError):
    """A module in the site's ``lib/`` directory raised while being loaded."""

    def __init__(self, filename: str, original_error: Exception):
        self.filename = filename
        self.original_error = original_error
        super().__init__(
            f"{filename}: {type(original_error).__name__}: {original_error}"
        )


class FeedError(ArgusError):
    """An Atom feed cannot be built from the given site, feed item or articles."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot build Atom feed: {reason}")
