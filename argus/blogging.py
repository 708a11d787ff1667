"""Blogging helpers for filters and templates.

Articles are items whose ``kind`` attribute is ``article``. The helpers take
the FilterContext of the filter calling them, so they can be used from a
custom filter or exposed to templates::

    @register_filter("atom")
    def atom(content, params, context):
        return atom_feed(context, limit=10)

Functions:
    articles: Items of kind ``article``.
    sorted_articles: Articles sorted by ``created_at``, newest first.
    atom_feed: Atom feed for the current item.
    url_for: Absolute URL of an item.
    feed_url: Absolute URL of the feed item.
    atom_tag_for: Stable Atom ``tag:`` URI of an item.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any

from .errors import FeedError
from .html_utils import escape_html, join_root_url

if TYPE_CHECKING:
    from .filters import FilterContext, ItemView

_BASE_URL_RE = re.compile(r"^.+?://([^/]+)(.*)$")


def _as_datetime(value: Any) -> datetime:
    """Interpret a ``created_at`` value (datetime, date or ISO string)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value).strip())


def _iso8601_time(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _base_url(context: FilterContext) -> str:
    base_url = context.config.get("base_url")
    if not base_url:
        raise FeedError("site configuration has no base_url")
    return str(base_url)


def articles(items: Iterable[ItemView]) -> list[ItemView]:
    return [item for item in items if item["kind"] == "article"]


_all_articles = articles


def sorted_articles(items: Iterable[ItemView]) -> list[ItemView]:
    return sorted(
        articles(items),
        key=lambda a: _as_datetime(a["created_at"]),
        reverse=True,
    )


def url_for(context: FilterContext, item: ItemView) -> str | None:
    """Return the absolute URL of ``item``, or None when it has no path.

    The ``custom_path_in_feed`` attribute overrides the item's web path.
    """
    base_url = _base_url(context)
    path = item["custom_path_in_feed"] or item.path
    if path is None:
        return None
    return join_root_url(base_url, path)


def feed_url(context: FilterContext) -> str:
    """Return the URL of the feed: the item's ``feed_url`` or its own path."""
    base_url = _base_url(context)
    item = context.item
    return item["feed_url"] or join_root_url(base_url, item.path or "/")


def atom_tag_for(context: FilterContext, item: ItemView) -> str:
    """Return a ``tag:`` URI identifying ``item`` across URL changes.

    Examples:
        ``tag:example.com,2024-05-01:/blog/hello/``
    """
    match = _BASE_URL_RE.match(_base_url(context))
    if match is None:
        raise FeedError("base_url is not an absolute URL")
    hostname, base_dir = match.groups()
    formatted_date = _as_datetime(item["created_at"]).strftime("%Y-%m-%d")
    return f"tag:{hostname},{formatted_date}:{base_dir}{item.path or item.identifier}"


def _default_content(article: ItemView) -> Any:
    return article.compiled_content(stage="pre")


def _default_excerpt(article: ItemView) -> Any:
    return article["excerpt"]


def atom_feed(
    context: FilterContext,
    limit: int = 5,
    articles: Iterable[ItemView] | None = None,
    content_proc: Callable[[ItemView], Any] | None = None,
    excerpt_proc: Callable[[ItemView], Any] | None = None,
) -> str:
    """Build an Atom feed for the item being compiled.

    The feed item needs ``title``, ``author_name`` and ``author_uri``
    attributes; every article needs ``created_at``.

    Args:
        context: Context of the filter compiling the feed item.
        limit: Maximum number of entries.
        articles: Entries to include (default: all articles of the site).
        content_proc: Returns the HTML content of an entry (default: the
            article's pre-layout compiled content).
        excerpt_proc: Returns the HTML summary of an entry, or None
            (default: the ``excerpt`` attribute).

    Returns:
        The feed as an XML string.

    Raises:
        FeedError: If a required setting or attribute is missing.
    """
    relevant = list(articles) if articles is not None else _all_articles(context.items)
    content_proc = content_proc or _default_content
    excerpt_proc = excerpt_proc or _default_excerpt
    item = context.item

    base_url = _base_url(context)
    for key in ("title", "author_name", "author_uri"):
        if item[key] is None:
            raise FeedError(f"feed item has no {key}")
    if not relevant:
        raise FeedError("no articles")
    if any(a["created_at"] is None for a in relevant):
        raise FeedError("one or more articles lack created_at")

    entries = sorted(relevant, key=lambda a: _as_datetime(a["created_at"]), reverse=True)[:limit]
    root_url = join_root_url(base_url, "/")

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<feed xmlns="http://www.w3.org/2005/Atom">',
        f"  <id>{escape_html(root_url)}</id>",
        f"  <title>{escape_html(str(item['title']))}</title>",
        f"  <updated>{_iso8601_time(_as_datetime(entries[0]['created_at']))}</updated>",
        f'  <link rel="alternate" href="{escape_html(root_url)}"/>',
        f'  <link rel="self" href="{escape_html(feed_url(context))}"/>',
        "  <author>",
        f"    <name>{escape_html(str(item['author_name']))}</name>",
        f"    <uri>{escape_html(str(item['author_uri']))}</uri>",
        "  </author>",
    ]
    for article in entries:
        url = url_for(context, article)
        if url is None:
            continue
        created_at = _as_datetime(article["created_at"])
        updated = article.mtime or created_at
        summary = excerpt_proc(article)
        lines.extend(
            [
                "  <entry>",
                f"    <id>{escape_html(atom_tag_for(context, article))}</id>",
                f'    <title type="html">{escape_html(str(article["title"] or ""))}</title>',
                f"    <published>{_iso8601_time(created_at)}</published>",
                f"    <updated>{_iso8601_time(updated)}</updated>",
                f'    <link rel="alternate" href="{escape_html(url)}"/>',
                f'    <content type="html">{escape_html(str(content_proc(article) or ""))}</content>',
            ]
        )
        if summary is not None:
            lines.append(f'    <summary type="html">{escape_html(str(summary))}</summary>')
        lines.append("  </entry>")
    lines.append("</feed>")
    return "\n".join(lines) + "\n"
