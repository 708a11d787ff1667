from argus.collections import ItemCollection, LayoutCollection
from argus.models import Item, Layout


def _items():
    return ItemCollection(
        [
            Item("", {"kind": "article", "rank": 2}, "/blog/a/"),
            Item("", {"kind": "page"}, "/blog/"),
            Item("", {"kind": "article", "rank": 1}, "/blog/b/"),
            Item("", {"rank": 3}, "/about/"),
        ]
    )


def test_lookup_by_position_and_identifier():
    items = _items()

    assert len(items) == 4
    assert items[0].identifier == "/blog/a/"
    assert [i.identifier for i in items[1:3]] == ["/blog/", "/blog/b/"]
    assert items["about"].identifier == "/about/"
    assert items.find("/missing/") is None


def test_first_object_wins_on_duplicate_identifiers():
    layouts = LayoutCollection([Layout("one", {}, "/default/"), Layout("two", {}, "/default/")])
    assert layouts["/default/"].content == "one"


def test_filters_and_sorting():
    items = _items()

    assert [i.identifier for i in items.with_attribute("kind", "article")] == ["/blog/a/", "/blog/b/"]
    assert [i.identifier for i in items.below("/blog/")] == ["/blog/a/", "/blog/b/"]
    assert [i.identifier for i in items.sorted_by("rank")] == ["/blog/b/", "/blog/a/", "/about/", "/blog/"]
    assert [i.identifier for i in items.sorted_by("rank", reverse=True)][:3] == ["/about/", "/blog/a/", "/blog/b/"]
