from datetime import datetime

import pytest

from argus.errors import (
    CannotDetermineFilterError,
    FilterError,
    NoMatchingCompilationRuleFound,
    RecursiveCompilationError,
    UnknownFilterError,
    UnknownLayoutError,
)
from argus.events import EventChannel
from argus.models import Item, Layout

OLD = datetime(2000, 1, 1)


def _no_layout(rules):
    @rules.compile("*")
    def everything(ctx):
        ctx.layout(None)


def _output(site, rel):
    return (site.output_dir / rel).read_text(encoding="utf-8")


def test_layout_wraps_item_content(memory_site):
    items = [Item("X", {"layout": "bar"}, "/foo/")]
    layouts = [Layout("H {{ item.content }} F", {"filter": "jinja"}, "/bar/")]
    site = memory_site(items, layouts, lambda rules: rules.compile("*")(lambda ctx: None))

    site.compile()

    assert _output(site, "foo/index.html") == "H X F"
    rep = items[0].reps[0]
    assert rep.stored_content("pre") == "X"
    assert rep.stored_content("post") == "H X F"


def test_layout_none_copies_pre_content(memory_site):
    items = [Item("plain", {"layout": None}, "/plain/"), Item("other", {"layout": "none"}, "/other/")]
    site = memory_site(items, [], lambda rules: rules.compile("*")(lambda ctx: None))

    site.compile()

    for item in items:
        rep = item.reps[0]
        assert rep.stored_content("post") == rep.stored_content("pre") == item.content


def test_absent_layout_attribute_skips_layout(memory_site):
    items = [Item("X", {}, "/foo/")]
    layouts = [Layout("H {{ content }} F", {"filter": "jinja"}, "/default/")]
    site = memory_site(items, layouts, lambda rules: rules.compile("*")(lambda ctx: None))

    site.compile()

    rep = items[0].reps[0]
    assert rep.attribute_named("layout") == "default"
    assert rep.stored_content("post") == rep.stored_content("pre") == "X"
    assert _output(site, "foo/index.html") == "X"


def test_rule_filters_run_before_and_after_layout(memory_site, filters):
    @filters.filter("upper")
    def upper(content, params, context):
        return content.upper()

    @filters.filter("wrap")
    def wrap(content, params, context):
        return f"{params['left']}{content}{params['right']}"

    def declare(rules):
        @rules.compile("*")
        def block(ctx):
            ctx.filter("upper")
            ctx.layout("/page/")
            ctx.filter("wrap", left="[", right="]")

    layouts = [Layout("<{{ content }}>", {"filter": "jinja"}, "/page/")]
    site = memory_site([Item("hi", {}, "/a/")], layouts, declare)
    site.compile()

    assert _output(site, "a/index.html") == "[<HI>]"


def test_filters_attribute_used_when_rule_declares_none(memory_site, filters):
    @filters.filter("exclaim")
    def exclaim(content, params, context):
        return content + params.get("mark", "!")

    item = Item("hey", {"layout": None, "filters_pre": ["exclaim", {"name": "exclaim", "params": {"mark": "?"}}]}, "/a/")
    site = memory_site([item], [], lambda rules: rules.compile("*")(lambda ctx: None))
    site.compile()

    assert _output(site, "a/index.html") == "hey!?"


def test_binary_item_is_copied_without_layout(memory_site, tmp_path):
    source = tmp_path / "logo.png"
    source.write_bytes(b"\x89PNG\x00\x01")
    item = Item(source, {}, "/logo/", binary=True)

    def declare(rules):
        rules.compile("*")(lambda ctx: None)
        rules.route("*")(lambda ctx: "/logo.png")

    site = memory_site([item], [], declare)
    site.compile()

    assert (site.output_dir / "logo.png").read_bytes() == b"\x89PNG\x00\x01"


def test_second_run_is_idempotent(memory_site):
    def items():
        return [Item("one", {"layout": None}, "/one/", mtime=OLD), Item("two", {"layout": None}, "/two/", mtime=OLD)]

    first = memory_site(items(), [], _no_layout)
    first.compile()
    first.store_checksums()
    before = {p: p.read_text() for p in first.output_dir.rglob("*.html")}

    second = memory_site(items(), [], _no_layout)
    skipped = []
    second.events.subscribe("rep_skipped", skipped.append)
    reps = second.compile()

    assert {p: p.read_text() for p in second.output_dir.rglob("*.html")} == before
    assert len(skipped) == 2
    assert not any(rep.flagged_modified for rep in reps)


def test_forced_compile_rewrites_nothing_when_unchanged(memory_site):
    first = memory_site([Item("one", {"layout": None}, "/one/", mtime=OLD)], [], _no_layout)
    first.compile()
    first.store_checksums()

    second = memory_site([Item("one", {"layout": None}, "/one/", mtime=OLD)], [], _no_layout)
    written = []
    second.events.subscribe("rep_written", lambda rep, path, created, modified: written.append((created, modified)))
    second.compile(force=True)

    assert written == [(False, False)]


def test_missing_output_makes_rep_outdated(memory_site):
    first = memory_site([Item("one", {"layout": None}, "/one/", mtime=OLD)], [], _no_layout)
    first.compile()
    first.store_checksums()

    second = memory_site([Item("one", {"layout": None}, "/one/", mtime=OLD)], [], _no_layout)
    rep = second.items[0].reps[0]
    assert second.compiler.outdated(rep) is False

    rep.disk_path.unlink()
    assert second.compiler.outdated(rep) is True


def test_changed_item_and_unknown_mtime_make_rep_outdated(memory_site):
    first = memory_site([Item("one", {"layout": None}, "/one/", mtime=OLD)], [], _no_layout)
    first.compile()
    first.store_checksums()

    changed = memory_site([Item("uno", {"layout": None}, "/one/", mtime=OLD)], [], _no_layout)
    assert changed.compiler.outdated(changed.items[0].reps[0]) is True

    unknown = memory_site([Item("one", {"layout": None}, "/one/")], [], _no_layout)
    assert unknown.compiler.outdated(unknown.items[0].reps[0]) is True


def test_changed_layout_makes_every_rep_outdated(memory_site):
    def items():
        return [Item("x", {"layout": "/l/"}, "/a/", mtime=OLD), Item("y", {"layout": None}, "/b/", mtime=OLD)]

    def declare(rules):
        rules.compile("*")(lambda ctx: None)

    first = memory_site(items(), [Layout("{{ content }}", {"filter": "jinja"}, "/l/", mtime=OLD)], declare)
    first.compile()
    first.store_checksums()

    second = memory_site(items(), [Layout("<{{ content }}>", {"filter": "jinja"}, "/l/", mtime=OLD)], declare)
    assert all(second.compiler.outdated(item.reps[0]) for item in second.items)


def test_compiled_content_compiles_other_items_on_demand(memory_site, filters):
    @filters.filter("pull")
    def pull(content, params, context):
        other = context.items[params["other"]]
        return content + other.compiled_content(stage=params.get("stage", "post"))

    def declare(rules):
        @rules.compile("/a/")
        def a(ctx):
            ctx.filter("pull", other="/b/")
            ctx.layout(None)

        @rules.compile("/b/")
        def b(ctx):
            ctx.layout("/wrap/")

    layouts = [Layout("({{ content }})", {"filter": "jinja"}, "/wrap/")]
    site = memory_site([Item("A", {}, "/a/"), Item("B", {}, "/b/")], layouts, declare)
    site.compile()

    assert _output(site, "a/index.html") == "A(B)"
    assert site.items[1].reps[0].compiled
    assert _output(site, "b/index.html") == "(B)"


def test_pre_stage_of_another_item(memory_site, filters):
    @filters.filter("pull_pre")
    def pull_pre(content, params, context):
        return context.items["/b/"].compiled_content(stage="pre")

    def declare(rules):
        @rules.compile("/a/")
        def a(ctx):
            ctx.filter("pull_pre")
            ctx.layout(None)

        @rules.compile("/b/")
        def b(ctx):
            ctx.layout("/wrap/")

    layouts = [Layout("({{ content }})", {"filter": "jinja"}, "/wrap/")]
    site = memory_site([Item("A", {}, "/a/"), Item("B", {}, "/b/")], layouts, declare)
    site.compile()

    assert _output(site, "a/index.html") == "B"


def test_mutual_dependency_raises_recursive_compilation_error(memory_site, filters):
    @filters.filter("pull")
    def pull(content, params, context):
        return context.items[params["other"]].compiled_content()

    def declare(rules):
        @rules.compile("/a/")
        def a(ctx):
            ctx.filter("pull", other="/b/")

        @rules.compile("/b/")
        def b(ctx):
            ctx.filter("pull", other="/a/")

    items = [Item("A", {"layout": None}, "/a/"), Item("B", {"layout": None}, "/b/")]
    site = memory_site(items, [], declare)

    with pytest.raises(RecursiveCompilationError) as exc_info:
        site.compile()

    identities = [rep.identity for rep in exc_info.value.reps]
    assert identities == [("/a/", "default"), ("/b/", "default"), ("/a/", "default")]
    assert "/a/[default] -> /b/[default] -> /a/[default]" in str(exc_info.value)
    assert not (site.output_dir / "a" / "index.html").exists()


def test_unrouted_rep_is_compiled_but_not_written(memory_site, filters):
    @filters.filter("pull")
    def pull(content, params, context):
        return context.items["/hidden/"].compiled_content()

    def declare(rules):
        @rules.compile("/shown/")
        def shown(ctx):
            ctx.filter("pull")
            ctx.layout(None)

        rules.compile("*")(lambda ctx: ctx.layout(None))
        rules.route("/hidden/")(lambda ctx: None)
        rules.route("*")(lambda ctx: ctx.identifier + "index.html")

    items = [Item("secret", {}, "/hidden/"), Item("", {}, "/shown/")]
    site = memory_site(items, [], declare)
    site.compile()

    hidden = items[0].reps[0]
    assert hidden.disk_path is None
    assert hidden.web_path is None
    assert not (site.output_dir / "hidden").exists()
    assert _output(site, "shown/index.html") == "secret"


def test_rep_specific_attributes(memory_site):
    def declare(rules):
        rules.compile("*")(lambda ctx: None)
        rules.compile("*", rep="raw")(lambda ctx: None)
        rules.route("*", rep="raw")(lambda ctx: ctx.identifier + "raw.txt")
        rules.route("*")(lambda ctx: ctx.identifier + "index.html")

    item = Item("body", {"layout": "/l/", "reps": {"raw": {"layout": None}}}, "/a/")
    layouts = [Layout("<{{ content }}>", {"filter": "jinja"}, "/l/")]
    site = memory_site([item], layouts, declare)
    site.compile()

    assert [rep.name for rep in item.reps] == ["default", "raw"]
    assert _output(site, "a/index.html") == "<body>"
    assert _output(site, "a/raw.txt") == "body"


def test_layout_filter_rule(memory_site):
    def declare(rules):
        rules.compile("*")(lambda ctx: ctx.layout("/l/"))
        rules.layout_filter("*", "jinja")

    site = memory_site([Item("x", {}, "/a/")], [Layout("[{{ content }}]", {}, "/l/")], declare)
    site.compile()

    assert _output(site, "a/index.html") == "[x]"


def test_layout_without_filter_raises(memory_site):
    site = memory_site(
        [Item("x", {}, "/a/")],
        [Layout("{{ content }}", {}, "/l/")],
        lambda rules: rules.compile("*")(lambda ctx: ctx.layout("/l/")),
    )
    with pytest.raises(CannotDetermineFilterError):
        site.compile()


def test_layout_with_unknown_filter_raises(memory_site):
    site = memory_site(
        [Item("x", {}, "/a/")],
        [Layout("{{ content }}", {"filter": "nope"}, "/l/")],
        lambda rules: rules.compile("*")(lambda ctx: ctx.layout("/l/")),
    )
    with pytest.raises(CannotDetermineFilterError, match="nope"):
        site.compile()


def test_unknown_layout_raises(memory_site):
    site = memory_site([Item("x", {"layout": "missing"}, "/a/")], [], lambda rules: rules.compile("*")(lambda ctx: None))
    with pytest.raises(UnknownLayoutError, match="/missing/"):
        site.compile()


def test_unknown_filter_raises(memory_site):
    site = memory_site(
        [Item("x", {"layout": None}, "/a/")],
        [],
        lambda rules: rules.compile("*")(lambda ctx: ctx.filter("missing")),
    )
    with pytest.raises(UnknownFilterError):
        site.compile()


def test_failing_filter_is_wrapped(memory_site, filters):
    @filters.filter("boom")
    def boom(content, params, context):
        raise ValueError("bad input")

    site = memory_site(
        [Item("x", {"layout": None}, "/a/")],
        [],
        lambda rules: rules.compile("*")(lambda ctx: ctx.filter("boom")),
    )
    with pytest.raises(FilterError) as exc_info:
        site.compile()

    assert exc_info.value.filter_name == "boom"
    assert exc_info.value.item_identifier == "/a/"
    assert isinstance(exc_info.value.__cause__, ValueError)
    assert site.compiler.stack == []


def test_compiled_content_of_missing_rep_raises(memory_site, filters):
    @filters.filter("pull")
    def pull(content, params, context):
        return context.items["/b/"].compiled_content(rep="print")

    site = memory_site(
        [Item("A", {"layout": None}, "/a/"), Item("B", {"layout": None}, "/b/")],
        [],
        lambda rules: rules.compile("*")(lambda ctx: ctx.filter("pull") if ctx.identifier == "/a/" else None),
    )
    with pytest.raises(NoMatchingCompilationRuleFound, match="print"):
        site.compile()


def test_events_are_published(memory_site):
    events = EventChannel()
    seen = []
    for name in ("compilation_started", "compilation_ended", "rep_written"):
        events.subscribe(name, lambda rep, *args, _name=name: seen.append((_name, rep.item.identifier)))

    site = memory_site([Item("x", {"layout": None}, "/a/")], [], _no_layout, events=events)
    site.compile()

    assert seen == [
        ("compilation_started", "/a/"),
        ("rep_written", "/a/"),
        ("compilation_ended", "/a/"),
    ]
    assert site.items[0].reps[0].created is True
    assert site.items[0].reps[0].flagged_modified is True
