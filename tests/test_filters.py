from types import SimpleNamespace

import pytest

from argus.errors import UnknownFilterError
from argus.filters import (
    BaseFilter,
    FilterRegistry,
    JinjaFilter,
    JSMinFilter,
    MarkdownFilter,
    RelativizePathsFilter,
    default_filter_registry,
)
from argus.models import Item, Layout


def test_markdown_filter_renders_headings_and_code():
    html = MarkdownFilter().run("# Hello World\n\n```python\nx = 1\n```\n", {})

    assert '<h1 id="hello-world">Hello World</h1>' in html
    assert 'class="highlight"' in html


def test_markdown_filter_without_highlighting():
    html = MarkdownFilter().run("```python\nx = 1 < 2\n```\n", {"highlight": False})
    assert '<code class="language-python">x = 1 &lt; 2' in html


def test_jinja_filter_params_and_autoescape():
    assert JinjaFilter().run("Hi {{ name }}", {"name": "<b>"}) == "Hi <b>"
    assert JinjaFilter().run("Hi {{ name }}", {"name": "<b>", "autoescape": True}) == "Hi &lt;b&gt;"


def test_jsmin_filter():
    result = JSMinFilter().run("var  a = 1;\n\n// note\nvar b = 2;", {})

    assert "note" not in result
    assert result.startswith("var a=1;")


def test_relativize_paths_filter():
    context = SimpleNamespace(rep=SimpleNamespace(path="/blog/post/"))

    html = RelativizePathsFilter(context).run('<a href="/about/">a</a>', {"type": "html"})
    css = RelativizePathsFilter(context).run("a { b: url(/x.png) }", {"type": "css"})

    assert html == '<a href="../../about/">a</a>'
    assert css == "a { b: url(../../x.png) }"
    with pytest.raises(ValueError):
        RelativizePathsFilter(context).run("", {"type": "xml"})


def test_relativize_paths_needs_a_routed_rep():
    context = SimpleNamespace(rep=SimpleNamespace(path=None))
    with pytest.raises(ValueError, match="no path"):
        RelativizePathsFilter(context).run("", {"type": "html"})


def test_registry_registers_functions_and_classes():
    registry = FilterRegistry(include_builtins=False)

    @registry.filter("reverse")
    def reverse(content, params, context):
        return content[::-1]

    @registry.filter("suffix")
    class Suffix(BaseFilter):
        def run(self, content, params):
            return content + params["suffix"]

    assert registry.names() == ["reverse", "suffix"]
    assert registry.create("reverse").run("abc", {}) == "cba"
    assert registry.create("suffix").run("a", {"suffix": "!"}) == "a!"
    assert "markdown" not in registry


def test_registry_rejects_unknown_names_and_non_filters():
    registry = FilterRegistry()
    registry.register("broken", lambda context: object())

    with pytest.raises(UnknownFilterError):
        registry.create("nope")
    with pytest.raises(UnknownFilterError):
        registry.create("broken")


def test_default_registry_has_builtins():
    for name in ("markdown", "jinja", "jsmin", "relativize_paths"):
        assert name in default_filter_registry


def test_templates_see_read_only_views(memory_site, filters):
    seen = {}

    @filters.filter("inspect")
    def inspect(content, params, context):
        item = context.item
        seen["title"] = item["title"]
        seen["path"] = context.rep.path
        seen["children"] = [child.identifier for child in item.children]
        with pytest.raises(TypeError):
            item.attributes["title"] = "changed"
        return content

    def declare(rules):
        rules.compile("/")(lambda ctx: ctx.filter("inspect"))
        rules.compile("*")(lambda ctx: None)

    items = [Item("home", {"title": "Home", "layout": None}, "/"), Item("a", {"layout": None}, "/a/")]
    memory_site(items, [], declare).compile()

    assert seen == {"title": "Home", "path": "/", "children": ["/a/"]}


def test_layouts_can_include_other_layouts(memory_site):
    layouts = [
        Layout("{% include '/partials/header/' %}|{{ content }}", {"filter": "jinja"}, "/default/"),
        Layout("<h1>{{ item.title }}</h1>", {}, "/partials/header/"),
    ]
    site = memory_site(
        [Item("body", {"title": "T", "layout": "default"}, "/a/")],
        layouts,
        lambda rules: rules.compile("*")(lambda ctx: None),
    )
    site.compile()

    assert (site.output_dir / "a" / "index.html").read_text() == "<h1>T</h1>|body"
