"""Filters and the context they run in.

A filter transforms a rep's content: ``run(content, params) -> content``. It
can read the current item, rep, site configuration and all items and layouts
through ``self.context``, but only through read-only views. Asking a view for
another item's compiled content compiles that item on demand.

Key classes:
- FilterContext: Everything a filter may read while it runs.
- ItemView / RepView: Read-only views of items and reps.
- BaseFilter: Base class for filters.
- FilterRegistry: Maps filter names to factories.

Built-in filters: ``markdown`` (mistune), ``jinja`` (Jinja2), ``jsmin``
(rjsmin) and ``relativize_paths``.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import mistune
from jinja2 import BaseLoader, Environment, TemplateNotFound, select_autoescape
from markupsafe import Markup
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound
from rjsmin import jsmin

from .collections import ItemCollection, LayoutCollection
from .errors import NoMatchingCompilationRuleFound, UnknownFilterError
from .html_utils import relativize_css_paths, relativize_html_paths
from .models import DEFAULT_REP_NAME, POST, Item, ItemRep, Layout
from .protocols import ContentFilter

if TYPE_CHECKING:
    from .compiler import Compiler
    from .site import Site


class RepView:
    """Read-only view of a rep, handed to filters and templates."""

    def __init__(self, rep: ItemRep, compiler: Compiler):
        self._rep = rep
        self._compiler = compiler

    @property
    def name(self) -> str:
        return self._rep.name

    @property
    def path(self) -> str | None:
        """Web path, or None when the rep is not routed."""
        return self._rep.web_path

    @property
    def disk_path(self):
        return self._rep.disk_path

    @property
    def binary(self) -> bool:
        return self._rep.binary

    def compiled_content(self, stage: str = POST) -> Any:
        """Return the compiled content for ``stage``, compiling the rep if needed."""
        return self._compiler.compiled_content(self._rep, stage)

    def __repr__(self) -> str:
        return f"<RepView {self._rep.item.identifier} name={self.name}>"


class ItemView:
    """Read-only view of an item.

    Attribute values are reachable by subscription (``item["title"]``), which
    is also what Jinja2 falls back to for ``{{ item.title }}``.

    Args:
        item: The item to expose.
        compiler: Compiler used to satisfy ``compiled_content`` requests.
        content: Overrides ``content``; while laying out, this is the
            pre-layout content of the rep being laid out.
    """

    def __init__(self, item: Item, compiler: Compiler, content: Any = None):
        self._item = item
        self._compiler = compiler
        self._content = content

    @property
    def identifier(self) -> str:
        return self._item.identifier

    @property
    def attributes(self) -> MappingProxyType:
        return MappingProxyType(self._item.attributes)

    @property
    def mtime(self):
        return self._item.mtime

    @property
    def binary(self) -> bool:
        return self._item.binary

    @property
    def content(self) -> Any:
        if self._content is not None:
            return self._content
        return self._item.content

    @property
    def path(self) -> str | None:
        """Web path of the default rep."""
        rep = self._item.rep_named(DEFAULT_REP_NAME)
        return rep.web_path if rep is not None else None

    @property
    def reps(self) -> list[RepView]:
        return [RepView(r, self._compiler) for r in self._item.reps]

    @property
    def parent(self) -> ItemView | None:
        if self._item.parent is None:
            return None
        return ItemView(self._item.parent, self._compiler)

    @property
    def children(self) -> list[ItemView]:
        return [ItemView(c, self._compiler) for c in self._item.children]

    def rep(self, name: str = DEFAULT_REP_NAME) -> RepView | None:
        rep = self._item.rep_named(name)
        return RepView(rep, self._compiler) if rep is not None else None

    def compiled_content(self, rep: str = DEFAULT_REP_NAME, stage: str = POST) -> Any:
        """Return the compiled content of one of this item's reps.

        Raises:
            NoMatchingCompilationRuleFound: If the item has no rep ``rep``.
            RecursiveCompilationError: If the item is already being compiled.
        """
        target = self._item.rep_named(rep)
        if target is None:
            raise NoMatchingCompilationRuleFound(self._item, rep)
        return self._compiler.compiled_content(target, stage)

    def __getitem__(self, key: str) -> Any:
        return self._item.attributes.get(key)

    def get(self, key: str, default: Any = None) -> Any:
        return self._item.attributes.get(key, default)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ItemView):
            return other._item is self._item
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._item.identifier)

    def __repr__(self) -> str:
        return f"<ItemView {self.identifier}>"


class FilterContext:
    """What a filter can see while it runs.

    Attributes:
        rep: The rep being compiled.
        layout: The layout being applied, when running as a layout filter.
        layout_content: Pre-layout content of ``rep`` while laying out.
    """

    def __init__(
        self,
        compiler: Compiler,
        rep: ItemRep,
        layout: Layout | None = None,
        layout_content: Any = None,
    ):
        self._compiler = compiler
        self.rep_record = rep
        self.layout = layout
        self.layout_content = layout_content

    @property
    def site(self) -> Site:
        return self._compiler.site

    @property
    def config(self) -> dict[str, Any]:
        return self._compiler.site.config

    @property
    def item(self) -> ItemView:
        return ItemView(self.rep_record.item, self._compiler, self.layout_content)

    @property
    def rep(self) -> RepView:
        return RepView(self.rep_record, self._compiler)

    @property
    def items(self) -> ItemCollection:
        return ItemCollection(ItemView(i, self._compiler) for i in self._compiler.site.items)

    @property
    def layouts(self) -> LayoutCollection:
        return LayoutCollection(self._compiler.site.layouts)

    def as_dict(self) -> dict[str, Any]:
        """Variables exposed to template filters."""
        variables: dict[str, Any] = {
            "site": self.site,
            "config": self.config,
            "item": self.item,
            "rep": self.rep,
            "items": self.items,
            "layouts": self.layouts,
        }
        if self.layout is not None:
            variables["layout"] = self.layout
            variables["content"] = Markup(self.layout_content or "")
        return variables


class BaseFilter(ABC):
    """Base class for filters.

    Subclasses implement ``run``. The context is None when a filter is used
    outside a compilation (for example in tests).
    """

    def __init__(self, context: FilterContext | None = None):
        self.context = context

    @abstractmethod
    def run(self, content: Any, params: dict[str, Any]) -> Any:
        """Transform content.

        Args:
            content: Input content.
            params: Parameters from the compilation rule.

        Returns:
            Transformed content.
        """
        ...


class FunctionFilter(BaseFilter):
    """Adapts a plain ``fn(content, params, context)`` callable to a filter."""

    def __init__(self, function: Callable[..., Any], context: FilterContext | None = None):
        super().__init__(context)
        self.function = function

    def run(self, content: Any, params: dict[str, Any]) -> Any:
        return self.function(content, params, self.context)


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text."""
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer adding heading anchors and Pygments code highlighting."""

    def __init__(self, highlight_code: bool = True):
        super().__init__(escape=False)
        self.highlight_code = highlight_code
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        base_id = _generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info else None
        if lang and self.highlight_code:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{lang}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MarkdownFilter(BaseFilter):
    """Renders Markdown to HTML with mistune.

    Params:
        plugins: mistune plugin names (default strikethrough, footnotes,
            table, url).
        highlight: Whether fenced code blocks are highlighted with Pygments.
    """

    default_plugins = ("strikethrough", "footnotes", "table", "url")

    def run(self, content: Any, params: dict[str, Any]) -> str:
        renderer = _HighlightRenderer(highlight_code=params.get("highlight", True))
        markdown = mistune.create_markdown(
            renderer=renderer,
            plugins=list(params.get("plugins", self.default_plugins)),
        )
        return markdown(str(content))


class _LayoutLoader(BaseLoader):
    """Jinja2 loader resolving template names to layout identifiers."""

    def __init__(self, context: FilterContext | None):
        self.context = context

    def get_source(self, environment: Environment, template: str):
        layout = None
        if self.context is not None:
            layout = self.context.layouts.find(template)
        if layout is None:
            raise TemplateNotFound(template)
        return layout.content, None, lambda: True


class JinjaFilter(BaseFilter):
    """Renders content as a Jinja2 template.

    Template variables are those of ``FilterContext.as_dict`` plus any
    params other than ``autoescape``. Other layouts can be included by
    identifier: ``{% include "/partials/header/" %}``.
    """

    def run(self, content: Any, params: dict[str, Any]) -> str:
        env = Environment(
            loader=_LayoutLoader(self.context),
            autoescape=select_autoescape(default_for_string=True) if params.get("autoescape") else False,
        )
        template = env.from_string(str(content))
        variables = self.context.as_dict() if self.context is not None else {}
        variables.update({k: v for k, v in params.items() if k != "autoescape"})
        return template.render(**variables)


class JSMinFilter(BaseFilter):
    """Minifies JavaScript with rjsmin."""

    def run(self, content: Any, params: dict[str, Any]) -> str:
        return jsmin(str(content), keep_bang_comments=params.get("keep_bang_comments", False))


class RelativizePathsFilter(BaseFilter):
    """Rewrites root-relative paths to be relative to the rep's web path.

    Params:
        type: ``html`` (``src``/``href`` attributes) or ``css`` (``url()``).
    """

    def run(self, content: Any, params: dict[str, Any]) -> str:
        kind = params.get("type")
        if kind not in ("html", "css"):
            raise ValueError("relativize_paths needs type 'html' or 'css'")
        source = self.context.rep.path if self.context is not None else None
        if source is None:
            raise ValueError("cannot relativize paths for a rep that has no path")
        if kind == "html":
            return relativize_html_paths(str(content), source)
        return relativize_css_paths(str(content), source)


FilterFactory = Callable[[FilterContext | None], ContentFilter]


class FilterRegistry:
    """Registry mapping filter names to factories.

    A factory is called with the FilterContext and returns a filter. Filter
    classes are their own factories; plain functions are wrapped in
    FunctionFilter.
    """

    def __init__(self, include_builtins: bool = True):
        self._factories: dict[str, FilterFactory] = {}
        if include_builtins:
            self.register("markdown", MarkdownFilter)
            self.register("jinja", JinjaFilter)
            self.register("jsmin", JSMinFilter)
            self.register("relativize_paths", RelativizePathsFilter)

    def register(self, name: str, factory: FilterFactory) -> None:
        """Register ``factory`` under ``name``, replacing any previous entry."""
        self._factories[name] = factory

    def filter(self, name: str) -> Callable[[Any], Any]:
        """Decorator registering a filter class or ``fn(content, params, context)``."""

        def decorator(obj: Any) -> Any:
            if isinstance(obj, type):
                self.register(name, obj)
            else:
                self.register(name, lambda context: FunctionFilter(obj, context))
            return obj

        return decorator

    def create(self, name: str, context: FilterContext | None = None) -> ContentFilter:
        """Instantiate the filter registered as ``name``.

        Raises:
            UnknownFilterError: If nothing is registered under ``name``, or
                the factory does not produce a filter.
        """
        factory = self._factories.get(name)
        if factory is None:
            raise UnknownFilterError(name)
        instance = factory(context)
        if not isinstance(instance, ContentFilter):
            raise UnknownFilterError(name)
        return instance

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())


default_filter_registry = FilterRegistry()


def register_filter(name: str) -> Callable[[Any], Any]:
    """Register a filter in the default registry; usable from ``lib/*.py``."""
    return default_filter_registry.filter(name)
