"""Compilation and routing rules.

Rules are declared in the site's ``rules.py`` through a ``RulesDSL`` instance
injected as the global ``rules``::

    @rules.compile("/blog/*/")
    def blog(ctx):
        ctx.filter("markdown")
        ctx.layout("post")

    @rules.route("/blog/*/")
    def blog_route(ctx):
        return ctx.identifier + "index.html"

Matching is a linear scan in declaration order and the first applicable rule
wins. Rules are never merged.

Key classes:
- Rule: Pattern, rep name and block.
- RuleContext: What a rule block sees; records the compilation plan.
- CompilationPlan: Filters and layout a compile block asked for.
- RuleSet: Ordered rule tables with the lookup operations.
- RulesDSL: Decorators that populate a RuleSet.
"""

from __future__ import annotations

import logging
import re
import types
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import ArgusError, NoRulesFileFoundError, RulesFileError
from .models import DEFAULT_REP_NAME, MISSING, Item, ItemRep, Layout

if TYPE_CHECKING:
    from .site import Site

logger = logging.getLogger(__name__)

RULES_FILENAMES = ("rules.py", "Rules.py", "rules", "Rules")

Pattern = str | re.Pattern


def identifier_to_regex(pattern: Pattern) -> re.Pattern:
    """Convert an identifier glob to an anchored regular expression.

    Leading and trailing slashes are added when missing (no trailing slash is
    added after a final ``*``). ``*`` matches any run of characters, slashes
    included; ``+`` matches one or more characters. Everything else is
    literal. Compiled patterns are returned unchanged.

    Args:
        pattern: Glob string such as ``/blog/*/`` or a compiled regex.

    Returns:
        Compiled regular expression.

    Examples:
        >>> bool(identifier_to_regex("/blog/*/").match("/blog/2024/hello/"))
        True

        >>> bool(identifier_to_regex("about").match("/about/"))
        True
    """
    if isinstance(pattern, re.Pattern):
        return pattern
    glob = pattern
    if not glob.startswith("/"):
        glob = "/" + glob
    if not glob.endswith(("/", "*")):
        glob = glob + "/"
    parts = []
    for char in glob:
        if char == "*":
            parts.append("(.*?)")
        elif char == "+":
            parts.append("(.+?)")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$")


@dataclass
class FilterStep:
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class CompilationPlan:
    """Filters and layout requested by a compile block.

    Attributes:
        pre_filters: Filters run before the layout.
        post_filters: Filters run after the layout.
        layout: Layout identifier, None for "no layout", or MISSING when the
            block left the choice to the item's attributes.
    """

    pre_filters: list[FilterStep] = field(default_factory=list)
    post_filters: list[FilterStep] = field(default_factory=list)
    layout: Any = MISSING

    def filters_for(self, stage: str) -> list[FilterStep]:
        return self.pre_filters if stage == "pre" else self.post_filters


class RuleContext:
    """Object passed to compile and route blocks.

    Exposes the rep being processed and the site collections, and records the
    filter/layout calls a compile block makes.
    """

    def __init__(self, rep: ItemRep, site: Site | None = None):
        self.rep = rep
        self.item: Item = rep.item
        self.site = site
        self.plan = CompilationPlan()
        self.result: Any = None

    @property
    def identifier(self) -> str:
        return self.item.identifier

    @property
    def config(self) -> dict[str, Any]:
        return self.site.config if self.site is not None else {}

    @property
    def items(self) -> list[Item]:
        return list(self.site.items) if self.site is not None else []

    @property
    def layouts(self) -> list[Layout]:
        return list(self.site.layouts) if self.site is not None else []

    def filter(self, name: str, **params: Any) -> None:
        """Queue a filter; before ``layout()`` it runs pre-layout, after it post-layout."""
        step = FilterStep(name, params)
        if self.plan.layout is MISSING:
            self.plan.pre_filters.append(step)
        else:
            self.plan.post_filters.append(step)

    def layout(self, identifier: str | None) -> None:
        """Choose the layout; None disables layouting for this rep."""
        self.plan.layout = identifier


RuleBlock = Callable[[RuleContext], Any]


class Rule:
    """A pattern, a rep name and a block.

    Attributes:
        pattern: Compiled identifier pattern.
        rep_name: Rep the rule applies to.
        block: Callable run with a RuleContext.
    """

    def __init__(self, pattern: Pattern, rep_name: str, block: RuleBlock):
        self.source = pattern if isinstance(pattern, str) else pattern.pattern
        self.pattern = identifier_to_regex(pattern)
        self.rep_name = rep_name
        self.block = block

    def applicable_to(self, item: Item) -> bool:
        """Check whether the rule's pattern matches the item's identifier."""
        return self.pattern.match(item.identifier) is not None

    def matches(self, rep: ItemRep) -> bool:
        return self.rep_name == rep.name and self.applicable_to(rep.item)

    def apply_to(self, rep: ItemRep, site: Site | None = None) -> RuleContext:
        """Run the block for ``rep`` and return the context it populated."""
        context = RuleContext(rep, site)
        context.result = self.block(context)
        return context

    def __repr__(self) -> str:
        return f"<Rule {self.source!r} rep={self.rep_name}>"


@dataclass
class LayoutFilterRule:
    pattern: re.Pattern
    filter_name: str
    params: dict[str, Any] = field(default_factory=dict)

    def applicable_to(self, layout: Layout) -> bool:
        return self.pattern.match(layout.identifier) is not None


class RuleSet:
    """Ordered rule tables."""

    def __init__(self) -> None:
        self.compilation_rules: list[Rule] = []
        self.routing_rules: list[Rule] = []
        self.layout_filter_rules: list[LayoutFilterRule] = []
        self.preprocessor: Callable[[Any], Any] | None = None

    def compilation_rules_for(self, item: Item) -> list[Rule]:
        """All compilation rules applicable to ``item``, regardless of rep name."""
        return [r for r in self.compilation_rules if r.applicable_to(item)]

    def rep_names_for(self, item: Item) -> list[str]:
        """Distinct rep names of the applicable compilation rules, in rule order."""
        names: list[str] = []
        for rule in self.compilation_rules_for(item):
            if rule.rep_name not in names:
                names.append(rule.rep_name)
        return names

    def compilation_rule_for(self, rep: ItemRep) -> Rule | None:
        """First compilation rule matching the rep's item and name, or None."""
        return next((r for r in self.compilation_rules if r.matches(rep)), None)

    def routing_rule_for(self, rep: ItemRep) -> Rule | None:
        """First routing rule matching the rep's item and name, or None."""
        return next((r for r in self.routing_rules if r.matches(rep)), None)

    def filter_for_layout(self, layout: Layout) -> LayoutFilterRule | None:
        return next((r for r in self.layout_filter_rules if r.applicable_to(layout)), None)


class RulesDSL:
    """Decorators exposed to the rules file as ``rules``."""

    def __init__(self, rule_set: RuleSet | None = None):
        self.rule_set = rule_set or RuleSet()

    def compile(self, pattern: Pattern, rep: str = DEFAULT_REP_NAME) -> Callable[[RuleBlock], RuleBlock]:
        """Declare a compilation rule for identifiers matching ``pattern``."""

        def decorator(block: RuleBlock) -> RuleBlock:
            self.rule_set.compilation_rules.append(Rule(pattern, rep, block))
            return block

        return decorator

    def route(self, pattern: Pattern, rep: str = DEFAULT_REP_NAME) -> Callable[[RuleBlock], RuleBlock]:
        """Declare a routing rule; the block returns a path or None."""

        def decorator(block: RuleBlock) -> RuleBlock:
            self.rule_set.routing_rules.append(Rule(pattern, rep, block))
            return block

        return decorator

    def layout_filter(self, pattern: Pattern, filter_name: str, **params: Any) -> None:
        """Render layouts matching ``pattern`` with ``filter_name``."""
        self.rule_set.layout_filter_rules.append(
            LayoutFilterRule(identifier_to_regex(pattern), filter_name, params)
        )

    def preprocess(self, block: Callable[[Any], Any]) -> Callable[[Any], Any]:
        """Register the block run after loading and before reps are built."""
        self.rule_set.preprocessor = block
        return block


def find_rules_file(site_dir: Path) -> Path:
    """Locate the rules file in ``site_dir``.

    Raises:
        NoRulesFileFoundError: If none of the accepted filenames exists.
    """
    for name in RULES_FILENAMES:
        candidate = site_dir / name
        if candidate.is_file():
            return candidate
    raise NoRulesFileFoundError(site_dir)


def load_rules_file(path: Path) -> RuleSet:
    """Execute a rules file and return the rules it declared.

    Args:
        path: Rules file. Files without a ``.py`` suffix are accepted.

    Returns:
        Populated RuleSet.

    Raises:
        RulesFileError: If executing the file raises.
    """
    dsl = RulesDSL()
    module = types.ModuleType(f"_argus_rules_{path.stem.lower()}")
    module.__file__ = str(path)
    module.rules = dsl  # type: ignore[attr-defined]
    try:
        # No bytecode cache is read or written for the rules file
        code = compile(path.read_text(encoding="utf-8"), str(path), "exec")
        exec(code, module.__dict__)
    except ArgusError:
        raise
    except Exception as exc:
        raise RulesFileError(path, exc) from exc
    rule_set = dsl.rule_set
    logger.debug(
        "Loaded %d compilation and %d routing rules from %s",
        len(rule_set.compilation_rules),
        len(rule_set.routing_rules),
        path,
    )
    return rule_set
