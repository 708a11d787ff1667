"""Compilation of item reps.

The compiler takes every rep through its stages::

    uncompiled -> filtering(pre) -> layouting -> filtering(post) -> written

Filters may ask for another item's compiled content, which compiles that
item's rep on demand, re-entrantly. The reps currently being compiled are
kept on an explicit stack; asking for a rep that is already on the stack
raises RecursiveCompilationError instead of recursing forever.

A rep that is not outdated is not recompiled: its output is read back from
disk so its compiled content is still available to other filters. Once a rep
is compiled its content is memoized for the rest of the process unless a
forced recompilation is requested.

Key classes:
- Compiler: Compiles reps and decides outdatedness.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import (
    ArgusError,
    CannotDetermineFilterError,
    FilterError,
    NoMatchingCompilationRuleFound,
    RecursiveCompilationError,
    UnknownLayoutError,
)
from .events import EventChannel
from .filters import FilterContext, FilterRegistry, default_filter_registry
from .models import MISSING, NO_LAYOUT_VALUES, POST, PRE, Item, ItemRep, Layout
from .rules import CompilationPlan, FilterStep
from .utils import cleaned_identifier

if TYPE_CHECKING:
    from .site import Site

logger = logging.getLogger(__name__)


def _mtime_of(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime)


def _newer_than(mtime: datetime | None, reference: datetime) -> bool:
    """Unknown modification times count as newer."""
    return mtime is None or mtime > reference


def _filter_steps_from_attribute(value: Any) -> list[FilterStep]:
    steps = []
    for entry in value or []:
        if isinstance(entry, str):
            steps.append(FilterStep(entry))
        elif isinstance(entry, dict) and "name" in entry:
            steps.append(FilterStep(entry["name"], dict(entry.get("params") or {})))
    return steps


class Compiler:
    """Compiles the reps of a site.

    Attributes:
        site: The site whose reps are compiled.
        filters: Registry used to look up filters.
        events: Channel on which lifecycle events are published.
        stack: Reps currently being compiled, outermost first.
    """

    def __init__(
        self,
        site: Site,
        filters: FilterRegistry | None = None,
        events: EventChannel | None = None,
    ):
        self.site = site
        self.filters = filters or default_filter_registry
        self.events = events or EventChannel()
        self.stack: list[ItemRep] = []
        self._force = False
        self._forced: set[tuple[str, str]] = set()

    def run(self, items: Iterable[Item] | None = None, force: bool = False) -> list[ItemRep]:
        """Compile the reps of ``items`` (default: all site items) in load order.

        Args:
            items: Items to compile; reps of other items are still compiled
                on demand when referenced.
            force: Recompile even reps that are not outdated.

        Returns:
            The reps that were compiled, in order.
        """
        reps = [rep for item in (items if items is not None else self.site.items) for rep in item.reps]
        self.site.output_dir.mkdir(parents=True, exist_ok=True)
        self._force = force
        self._forced.clear()
        try:
            for rep in reps:
                self.compile_rep(rep)
        finally:
            self._force = False
        return reps

    def compile_rep(self, rep: ItemRep, force: bool | None = None) -> None:
        """Compile ``rep`` unless its content is already memoized.

        Args:
            rep: The rep to compile.
            force: Recompile even when not outdated. Defaults to the value
                given to ``run``.

        Raises:
            RecursiveCompilationError: If ``rep`` is already being compiled.
        """
        if rep in self.stack:
            start = self.stack.index(rep)
            raise RecursiveCompilationError(self.stack[start:] + [rep])
        force = self._force if force is None else force
        if rep.compiled and (not force or rep.identity in self._forced):
            return

        self.stack.append(rep)
        self.events.fire("compilation_started", rep)
        try:
            if force:
                self._forced.add(rep.identity)
                rep.reset()
            elif rep.disk_path is not None and not self.outdated(rep):
                self._read_back(rep, rep.disk_path)
                return
            logger.debug("Compiling %s[%s]", rep.item.identifier, rep.name)
            plan = self.plan_for(rep)
            self._filter(rep, PRE, plan)
            self._layout(rep, plan)
            self._filter(rep, POST, plan)
            self._write(rep)
            rep.compiled = True
        finally:
            self.stack.pop()
            self.events.fire("compilation_ended", rep)

    def compiled_content(self, rep: ItemRep, stage: str = POST) -> Any:
        """Return the content of ``rep`` at ``stage``, compiling it first if needed."""
        self.compile_rep(rep)
        if not rep.has_content(stage):
            # Read back from disk only gives the post stage.
            self.compile_rep(rep, force=True)
        return rep.stored_content(stage)

    def outdated(self, rep: ItemRep) -> bool:
        """Decide whether ``rep`` must be recompiled.

        A rep is outdated when its output file is missing, when its item's
        checksum differs from the previous build, when the item, any layout,
        any code snippet or the defaults are newer than the output file, or
        when the configuration or rules changed. Any doubt counts as outdated.
        """
        path = rep.disk_path
        if path is None or not path.exists():
            return True
        item = rep.item
        if item.checksum_changed:
            return True
        output_mtime = _mtime_of(path)
        if _newer_than(item.mtime, output_mtime):
            return True
        if self.site.global_dependencies_changed:
            return True
        for snippet in self.site.code_snippets:
            if snippet.checksum_changed or _newer_than(snippet.mtime, output_mtime):
                return True
        defaults = self.site.defaults
        if defaults.filename is not None:
            if defaults.checksum_changed or _newer_than(defaults.mtime, output_mtime):
                return True
        for layout in self.site.layouts:
            if layout.checksum_changed or _newer_than(layout.mtime, output_mtime):
                return True
        return False

    def plan_for(self, rep: ItemRep) -> CompilationPlan:
        """Run the matching compilation rule for ``rep`` and return its plan.

        Raises:
            NoMatchingCompilationRuleFound: If no rule matches the rep.
        """
        rule = self.site.rule_set.compilation_rule_for(rep)
        if rule is None:
            raise NoMatchingCompilationRuleFound(rep.item, rep.name)
        return rule.apply_to(rep, self.site).plan

    def layout_for(self, rep: ItemRep, plan: CompilationPlan | None = None) -> Layout | None:
        """Resolve the layout of ``rep``; None means no layout.

        A layout is applied only when the rule or a configured attribute
        names one. An item without a ``layout`` attribute keeps its
        pre-layout content.

        Raises:
            UnknownLayoutError: If the named layout does not exist.
        """
        if plan is not None and plan.layout is not MISSING:
            identifier = plan.layout
        else:
            identifier = rep.configured_attribute("layout")
        if identifier is MISSING or identifier in NO_LAYOUT_VALUES:
            return None
        wanted = cleaned_identifier(str(identifier))
        layout = next((c for c in self.site.layouts if c.identifier == wanted), None)
        if layout is None:
            raise UnknownLayoutError(wanted, rep.item)
        return layout

    def filter_for_layout(self, layout: Layout) -> tuple[str, dict[str, Any]]:
        """Resolve the filter name and params used to render ``layout``.

        Raises:
            CannotDetermineFilterError: If neither the layout's ``filter``
                attribute nor a layout filter rule names a registered filter.
        """
        name = layout.attributes.get("filter")
        params: dict[str, Any] = dict(layout.attributes.get("filter_params") or {})
        if not name:
            rule = self.site.rule_set.filter_for_layout(layout)
            if rule is not None:
                name, params = rule.filter_name, dict(rule.params)
        if not name:
            raise CannotDetermineFilterError(layout.identifier)
        if name not in self.filters:
            raise CannotDetermineFilterError(layout.identifier, name)
        return name, params

    def _read_back(self, rep: ItemRep, path: Path) -> None:
        rep.set_content(POST, path if rep.binary else path.read_text(encoding="utf-8"))
        rep.created = False
        rep.modified = False
        rep.compiled = True
        logger.debug("Skipping %s[%s]: up to date", rep.item.identifier, rep.name)
        self.events.fire("rep_skipped", rep)

    def _filter(self, rep: ItemRep, stage: str, plan: CompilationPlan) -> None:
        steps = plan.filters_for(stage)
        if not steps:
            steps = _filter_steps_from_attribute(rep.attribute_named(f"filters_{stage}"))
        content = rep.raw_content() if stage == PRE else rep.stored_content(POST)
        context = FilterContext(self, rep)
        for step in steps:
            content = self._run_filter(rep, step.name, step.params, content, context)
        rep.set_content(stage, content)
        if stage == PRE:
            rep.filtered_pre = True
        else:
            rep.filtered_post = True

    def _layout(self, rep: ItemRep, plan: CompilationPlan) -> None:
        pre_content = rep.stored_content(PRE)
        layout = None if rep.binary else self.layout_for(rep, plan)
        if layout is None:
            rep.set_content(POST, pre_content)
            return
        filter_name, params = self.filter_for_layout(layout)
        context = FilterContext(self, rep, layout=layout, layout_content=pre_content)
        result = self._run_filter(rep, filter_name, params, layout.content, context)
        rep.set_content(POST, result)
        self.events.fire("layout_applied", rep, layout)

    def _run_filter(
        self,
        rep: ItemRep,
        name: str,
        params: dict[str, Any],
        content: Any,
        context: FilterContext,
    ) -> Any:
        instance = self.filters.create(name, context)
        self.events.fire("filtering_started", rep, name)
        try:
            result = instance.run(content, dict(params))
        except ArgusError:
            raise
        except Exception as exc:
            raise FilterError(rep.item.identifier, rep.name, name, exc) from exc
        self.events.fire("filtering_ended", rep, name)
        return result

    def _write(self, rep: ItemRep) -> None:
        path = rep.disk_path
        if path is None:
            logger.debug("Not writing %s[%s]: not routed", rep.item.identifier, rep.name)
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        existed = path.exists()
        content = rep.stored_content(POST)
        if isinstance(content, Path):
            new_bytes = content.read_bytes()
        else:
            new_bytes = ("" if content is None else str(content)).encode("utf-8")
        changed = not existed or path.read_bytes() != new_bytes
        if changed:
            path.write_bytes(new_bytes)
            logger.info("%s %s", "create" if not existed else "update", path)
        rep.created = not existed
        rep.modified = changed
        self.events.fire("rep_written", rep, path, rep.created, rep.modified)
