"""In-memory data model for Argus.

This module holds the records a build operates on. They are created once per
build, mutated in place while compiling, and discarded at process exit.

Key classes:
- Item: A compilable content unit loaded from a data source.
- Layout: A template applied to a rep's pre-filtered content.
- CodeSnippet: A Python module from the site's ``lib/`` directory.
- Defaults: Site-wide attribute defaults.
- ItemRep: One named, compiled variant of an item.

Attribute lookups for a rep go through a fixed chain of five sources (see
``ItemRep.attribute_named``). A key that is present with a ``None`` value is
an answer, not a miss: it stops the chain. Only absent keys fall through.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .utils import cleaned_identifier

DEFAULT_REP_NAME = "default"

# Level five of the attribute chain.
HARDCODED_DEFAULTS: dict[str, Any] = {
    "layout": "default",
    "filters_pre": [],
    "filters_post": [],
    "extension": "html",
}

# Layout values meaning "do not apply a layout".
NO_LAYOUT_VALUES = (None, "none")

PRE = "pre"
POST = "post"
STAGES = (PRE, POST)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def _attributes_checksum(content: str | Path | None, attributes: Mapping[str, Any]) -> str:
    digest = hashlib.sha1()
    if isinstance(content, Path):
        digest.update(content.read_bytes() if content.exists() else b"")
    elif content is not None:
        digest.update(content.encode("utf-8"))
    digest.update(json.dumps(attributes, sort_keys=True, default=str).encode("utf-8"))
    return digest.hexdigest()


@dataclass(eq=False)
class Item:
    """A content unit.

    Attributes:
        content: Raw text, or the path of the source file for binary items.
        attributes: Arbitrary key/value attributes. ``layout`` and ``reps``
            are reserved.
        identifier: Canonical path-like identifier, e.g. ``/about/``.
        binary: Whether the content is a file handle rather than text.
        mtime: Source modification time, or None when unknown.
        checksum: Checksum of content and metadata as computed now.
        old_checksum: Checksum recorded by the previous build, if any.
        parent: Nearest ancestor by identifier, set on every full load.
        children: Direct descendants by identifier, set on every full load.
        reps: Reps built from the compilation rules.
    """

    content: str | Path | None
    attributes: dict[str, Any]
    identifier: str
    binary: bool = False
    mtime: datetime | None = None
    checksum: str | None = None
    old_checksum: str | None = None
    parent: Item | None = field(default=None, repr=False)
    children: list[Item] = field(default_factory=list, repr=False)
    reps: list[ItemRep] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.identifier = cleaned_identifier(self.identifier)
        self.attributes = dict(self.attributes or {})

    def __getitem__(self, key: str) -> Any:
        return self.attributes.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    @property
    def new_checksum(self) -> str:
        """Checksum of the item as it is now, computed on first access."""
        if self.checksum is None:
            self.checksum = _attributes_checksum(self.content, self.attributes)
        return self.checksum

    @property
    def checksum_changed(self) -> bool:
        """True when the previous build recorded no or a different checksum."""
        return self.old_checksum is None or self.old_checksum != self.new_checksum

    def rep_named(self, name: str) -> ItemRep | None:
        for rep in self.reps:
            if rep.name == name:
                return rep
        return None

    def __repr__(self) -> str:
        return f"<Item {self.identifier}>"


@dataclass(eq=False)
class Layout:
    """A template applied to the pre-filtered content of a rep.

    Attributes:
        content: Template body.
        attributes: Layout attributes; ``filter`` selects the rendering filter.
        identifier: Canonical identifier, e.g. ``/default/``.
        mtime: Source modification time, or None when unknown.
        checksum: Checksum of content and metadata as computed now.
        old_checksum: Checksum recorded by the previous build, if any.
    """

    content: str
    attributes: dict[str, Any]
    identifier: str
    mtime: datetime | None = None
    checksum: str | None = None
    old_checksum: str | None = None

    def __post_init__(self) -> None:
        self.identifier = cleaned_identifier(self.identifier)
        self.attributes = dict(self.attributes or {})

    def __getitem__(self, key: str) -> Any:
        return self.attributes.get(key)

    @property
    def new_checksum(self) -> str:
        if self.checksum is None:
            self.checksum = _attributes_checksum(self.content, self.attributes)
        return self.checksum

    @property
    def checksum_changed(self) -> bool:
        return self.old_checksum is None or self.old_checksum != self.new_checksum

    def __repr__(self) -> str:
        return f"<Layout {self.identifier}>"


@dataclass(eq=False)
class CodeSnippet:
    """A Python module from the site's ``lib/`` directory.

    Code snippets are executed before the rules file so they can register
    filters and define helpers. Any change to any snippet makes every rep
    outdated.
    """

    data: str
    filename: str
    mtime: datetime | None = None
    checksum: str | None = None
    old_checksum: str | None = None

    @property
    def new_checksum(self) -> str:
        if self.checksum is None:
            self.checksum = hashlib.sha1(self.data.encode("utf-8")).hexdigest()
        return self.checksum

    @property
    def checksum_changed(self) -> bool:
        return self.old_checksum is None or self.old_checksum != self.new_checksum


@dataclass(eq=False)
class Defaults:
    """Site-wide attribute defaults (levels three and four of the chain).

    The optional ``reps`` key maps rep names to rep-specific defaults.
    ``filename`` is None when no defaults file exists; such defaults never
    make a rep outdated.
    """

    attributes: dict[str, Any] = field(default_factory=dict)
    filename: str | None = None
    mtime: datetime | None = None
    checksum: str | None = None
    old_checksum: str | None = None

    @property
    def new_checksum(self) -> str:
        if self.checksum is None:
            self.checksum = _attributes_checksum(None, self.attributes)
        return self.checksum

    @property
    def checksum_changed(self) -> bool:
        return self.old_checksum is None or self.old_checksum != self.new_checksum


def _rep_overrides(attributes: Mapping[str, Any], rep_name: str) -> Mapping[str, Any]:
    reps = attributes.get("reps")
    if not isinstance(reps, Mapping):
        return {}
    overrides = reps.get(rep_name)
    return overrides if isinstance(overrides, Mapping) else {}


class ItemRep:
    """One compiled variant of an item.

    A rep's identity is the pair (item identifier, rep name). Content is kept
    in two stages: ``pre`` (after the pre-layout filter chain) and ``post``
    (after layout and post-layout filters). Both are filled by the compiler
    and are only reset together, by a forced recompilation.

    Attributes:
        item: The item this rep belongs to.
        name: Rep name; ``default`` unless a rule names another.
        compiled: Whether the rep has compiled content for this process.
        filtered_pre: Whether the pre-layout filter chain has run.
        filtered_post: Whether the post-layout filter chain has run.
        created: Whether the last write created the output file.
        modified: Whether the last write changed the output file.
        disk_path: Path the rep is written to, or None when not routed.
        web_path: Public path with index filenames stripped, or None.
    """

    def __init__(self, item: Item, name: str = DEFAULT_REP_NAME, defaults: Defaults | None = None):
        self.item = item
        self.name = name
        self.defaults = defaults or Defaults()
        self._content: dict[str, str | Path | None] = {PRE: None, POST: None}
        self.compiled = False
        self.filtered_pre = False
        self.filtered_post = False
        self.created = False
        self.modified = False
        self.routed_path: str | None = None
        self.disk_path: Path | None = None
        self.web_path: str | None = None
        self._lookups: tuple[Callable[[str], Any], ...] = (
            self._from_item_rep,
            self._from_item,
            self._from_defaults_rep,
            self._from_defaults,
            self._from_hardcoded,
        )

    @property
    def identity(self) -> tuple[str, str]:
        return (self.item.identifier, self.name)

    @property
    def binary(self) -> bool:
        return self.item.binary

    @property
    def flagged_modified(self) -> bool:
        """True when the last compilation created or changed the output file."""
        return self.created or self.modified

    def attribute_named(self, key: str) -> Any:
        """Resolve an attribute through the five-level fallback chain.

        Sources, in priority order:

        1. The item's rep-specific overrides (``item.attributes["reps"][name]``).
        2. The item's own attributes.
        3. The defaults' rep-specific overrides.
        4. The defaults' general attributes.
        5. Hardcoded defaults (``layout: "default"`` and friends).

        The first source in which ``key`` is present wins, even when the
        value stored there is None.

        Args:
            key: Attribute name.

        Returns:
            The resolved value, or None if no source has the key.
        """
        for lookup in self._lookups:
            value = lookup(key)
            if value is not MISSING:
                return value
        return None

    def configured_attribute(self, key: str) -> Any:
        """Like ``attribute_named`` without the hardcoded level.

        Returns MISSING when neither the item nor the defaults have ``key``.
        """
        for lookup in self._lookups[:-1]:
            value = lookup(key)
            if value is not MISSING:
                return value
        return MISSING

    def _from_item_rep(self, key: str) -> Any:
        return _rep_overrides(self.item.attributes, self.name).get(key, MISSING)

    def _from_item(self, key: str) -> Any:
        return self.item.attributes.get(key, MISSING)

    def _from_defaults_rep(self, key: str) -> Any:
        return _rep_overrides(self.defaults.attributes, self.name).get(key, MISSING)

    def _from_defaults(self, key: str) -> Any:
        return self.defaults.attributes.get(key, MISSING)

    def _from_hardcoded(self, key: str) -> Any:
        return HARDCODED_DEFAULTS.get(key, MISSING)

    def raw_content(self) -> str | Path | None:
        return self.item.content

    def stored_content(self, stage: str = POST) -> str | Path | None:
        """Return the memoized content for ``stage`` without compiling."""
        return self._content[stage]

    def set_content(self, stage: str, content: str | Path | None) -> None:
        self._content[stage] = content

    def has_content(self, stage: str) -> bool:
        return self._content[stage] is not None

    def reset(self) -> None:
        """Forget compiled content and flags ahead of a forced recompilation."""
        self._content = {PRE: None, POST: None}
        self.compiled = False
        self.filtered_pre = False
        self.filtered_post = False
        self.created = False
        self.modified = False

    def __repr__(self) -> str:
        return f"<ItemRep {self.item.identifier} name={self.name}>"
