import os
from datetime import datetime
from pathlib import Path

import pytest

from argus.checksums import checksum_for
from argus.data_sources import (
    DataSourceRegistry,
    FilesystemDataSource,
    default_data_source_registry,
    extract_frontmatter,
    register_data_source,
)
from argus.errors import DataSourceError, UnknownDataSourceError
from argus.site import DEFAULT_CONFIG


def _write(root, files):
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


def _source(root, **config):
    return FilesystemDataSource(root, dict(DEFAULT_CONFIG), "/", "/", config)


def _by_identifier(objects):
    return {obj.identifier: obj for obj in objects}


def test_extract_frontmatter():
    meta, body = extract_frontmatter("---\ntitle: Hi\ntags: [a, b]\n---\n\nBody\n", Path("x.html"))
    assert meta == {"title": "Hi", "tags": ["a", "b"]}
    assert body == "Body\n"

    assert extract_frontmatter("no meta", Path("x.html")) == ({}, "no meta")


def test_invalid_frontmatter_raises():
    with pytest.raises(DataSourceError, match="x.html"):
        extract_frontmatter("---\ntitle: [unclosed\n---\nBody", Path("x.html"))
    with pytest.raises(DataSourceError, match="mapping"):
        extract_frontmatter("---\n- a\n- b\n---\nBody", Path("x.html"))


def test_items_identifiers_and_metadata(tmp_path):
    _write(
        tmp_path,
        {
            "content/index.html": "---\ntitle: Home\n---\nWelcome",
            "content/about.md": "About us",
            "content/about.yaml": "title: About\n",
            "content/blog/index.md": "Blog",
            "content/blog/post.html.jinja": "Post",
            "content/notes.txt~": "backup",
            "content/draft.html.orig": "backup",
        },
    )

    items = _by_identifier(_source(tmp_path).items())

    assert sorted(items) == ["/", "/about/", "/blog/", "/blog/post/"]
    assert items["/"].content == "Welcome"
    assert items["/"]["title"] == "Home"
    assert items["/about/"].content == "About us"
    assert items["/about/"]["title"] == "About"
    assert items["/about/"]["extension"] == "md"
    assert items["/blog/post/"]["extension"] == "html.jinja"
    assert items["/about/"]["meta_filename"].endswith("about.yaml")


def test_allow_periods_in_identifiers(tmp_path):
    _write(tmp_path, {"content/foo.entry.html": "x"})

    items = _by_identifier(_source(tmp_path, allow_periods_in_identifiers=True).items())

    assert list(items) == ["/foo.entry/"]
    assert items["/foo.entry/"]["extension"] == "html"


def test_binary_items(tmp_path):
    _write(tmp_path, {"content/logo.png": b"\x89PNG", "content/logo.yaml": "alt: Logo\n"})

    item = _source(tmp_path).items()[0]

    assert item.binary is True
    assert item.content == tmp_path / "content" / "logo.png"
    assert item["alt"] == "Logo"


def test_mtime_and_checksum(tmp_path):
    _write(tmp_path, {"content/a.html": "x", "content/a.yaml": "title: A\n"})
    meta = tmp_path / "content" / "a.yaml"
    content = tmp_path / "content" / "a.html"
    newer = datetime(2024, 1, 2).timestamp()
    older = datetime(2024, 1, 1).timestamp()
    os.utime(meta, (newer, newer))
    os.utime(content, (older, older))

    item = _source(tmp_path).items()[0]

    assert item.mtime == datetime(2024, 1, 2)
    assert item.checksum == checksum_for(meta, content)


def test_layouts(tmp_path):
    _write(tmp_path, {"layouts/default.html": "---\nfilter: jinja\n---\n<html>{{ content }}</html>"})

    layout = _source(tmp_path).layouts()[0]

    assert layout.identifier == "/default/"
    assert layout["filter"] == "jinja"
    assert layout.content == "<html>{{ content }}</html>"


def test_two_content_files_with_one_basename_raise(tmp_path):
    _write(tmp_path, {"content/a.html": "x", "content/a.md": "y"})

    with pytest.raises(DataSourceError, match="2 content files"):
        _source(tmp_path).items()


def test_missing_directories_yield_nothing(tmp_path):
    assert _source(tmp_path).items() == []
    assert _source(tmp_path).layouts() == []


def test_create_item_round_trips(tmp_path):
    source = _source(tmp_path)

    path = source.create_item("Hello", {"title": "New"}, "/blog/new/")
    root_path = source.create_item("Root", {}, "/")

    assert path == tmp_path / "content" / "blog" / "new.html"
    assert root_path == tmp_path / "content" / "index.html"
    items = _by_identifier(source.items())
    assert items["/blog/new/"]["title"] == "New"
    assert items["/blog/new/"].content == "Hello"
    assert items["/"].content == "Root"


def test_create_layout(tmp_path):
    path = _source(tmp_path).create_layout("{{ content }}", {"filter": "jinja"}, "/page/")
    assert path == tmp_path / "layouts" / "page.html"
    assert _source(tmp_path).layouts()[0]["filter"] == "jinja"


def test_create_with_period_needs_allow_periods(tmp_path):
    with pytest.raises(DataSourceError, match="period"):
        _source(tmp_path).create_item("x", {}, "/a.b/")

    path = _source(tmp_path, allow_periods_in_identifiers=True).create_item("x", {}, "/a.b/")
    assert path.name == "a.b.html"


def test_setup_creates_directories(tmp_path):
    _source(tmp_path).setup()
    for name in ("content", "layouts", "lib"):
        assert (tmp_path / name).is_dir()


def test_registry(tmp_path):
    registry = DataSourceRegistry()

    @registry.data_source("memory")
    class Memory(FilesystemDataSource):
        pass

    assert isinstance(registry.create("filesystem", tmp_path, {}), FilesystemDataSource)
    assert isinstance(registry.create("memory", tmp_path, {}), Memory)
    assert "filesystem_unified" in registry.names()
    with pytest.raises(UnknownDataSourceError):
        registry.create("couchdb", tmp_path, {})


def test_use_is_reference_counted(tmp_path):
    calls = []

    class Tracking(FilesystemDataSource):
        def up(self):
            calls.append("up")

        def down(self):
            calls.append("down")

    source = Tracking(tmp_path, {})
    source.use()
    source.use()
    source.unuse()
    assert calls == ["up"]
    source.unuse()
    assert calls == ["up", "down"]


def test_registry_rejects_non_data_sources(tmp_path):
    registry = DataSourceRegistry()
    registry.register("broken", lambda *args: object())

    with pytest.raises(UnknownDataSourceError):
        registry.create("broken", tmp_path, {})


def test_register_data_source_uses_default_registry(tmp_path):
    @register_data_source("test_mirror")
    class Mirror(FilesystemDataSource):
        pass

    assert "test_mirror" in default_data_source_registry
    assert isinstance(default_data_source_registry.create("test_mirror", tmp_path, {}), Mirror)


def test_object_without_any_file_raises(tmp_path):
    source = _source(tmp_path)
    with pytest.raises(DataSourceError, match="no meta or content file"):
        source._load_layout("ghost", None, None)
