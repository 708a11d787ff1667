"""HTML and CSS path utilities for Argus.

This module provides the string manipulation behind the ``relativize_paths``
filter and the blogging helpers: escaping, joining URLs, and rewriting
root-relative paths into paths relative to the page being compiled.

Functions:
    escape_html: Escape special HTML characters in a string.
    join_root_url: Join a base URL with a path.
    relative_path_to: Path from one web path to another.
    relativize_html_paths: Rewrite root-relative ``src``/``href`` values.
    relativize_css_paths: Rewrite root-relative ``url(...)`` values.
"""

from __future__ import annotations

import posixpath
import re

# href/src attributes holding a root-relative URL
_HTML_ATTR_RE = re.compile(
    r'(?P<prefix>\b(?:src|href)=(?P<quote>["\']?))(?P<url>/[^"\'\s>]*)(?P<suffix>(?P=quote)[\s>/]?)'
)

_CSS_URL_RE = re.compile(r"(?P<prefix>url\((?P<quote>['\"]?))(?P<url>/.+?)(?P<suffix>(?P=quote)\))")


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML and XML.

    Examples:
        >>> escape_html('Tom & "Jerry"')
        'Tom &amp; &quot;Jerry&quot;'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Examples:
        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def relative_path_to(source: str, target: str) -> str:
    """Compute the path from web path ``source`` to web path ``target``.

    When ``source`` ends in a slash it is treated as a directory, otherwise
    its directory is used. A trailing slash on ``target`` is preserved.

    Args:
        source: Web path of the page containing the link.
        target: Root-relative web path being linked to.

    Returns:
        Relative path.

    Examples:
        >>> relative_path_to("/blog/post/", "/style.css")
        '../../style.css'

        >>> relative_path_to("/about.html", "/blog/")
        'blog/'
    """
    start = source if source.endswith("/") else posixpath.dirname(source) or "/"
    relative = posixpath.relpath(target, start)
    if target.endswith("/") and not relative.endswith("/"):
        relative += "/"
    return relative


def relativize_html_paths(html: str, source: str) -> str:
    """Make root-relative ``src`` and ``href`` values relative to ``source``."""

    def repl(match: re.Match) -> str:
        url = match.group("url")
        if url.startswith("//"):
            return match.group(0)
        relative = relative_path_to(source, url)
        return f"{match.group('prefix')}{relative}{match.group('suffix')}"

    return _HTML_ATTR_RE.sub(repl, html)


def relativize_css_paths(css: str, source: str) -> str:
    """Make root-relative ``url(...)`` values relative to ``source``."""

    def repl(match: re.Match) -> str:
        url = match.group("url")
        if url.startswith("//"):
            return match.group(0)
        relative = relative_path_to(source, url)
        return f"{match.group('prefix')}{relative}{match.group('suffix')}"

    return _CSS_URL_RE.sub(repl, css)
