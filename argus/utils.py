"""Utility functions for Argus.

This module contains small helpers shared across the codebase: identifier
normalisation, path handling and string processing.

Key functions:
    cleaned_identifier: Normalise an identifier to the ``/a/b/`` form.
    parent_identifier: Compute the identifier of an item's parent.
    identifier_for_path: Derive an identifier from a content file path.
    titleize: Convert an identifier or filename to a human-readable title.
    ensure_parent_dir: Create the parent directory of a file path.
"""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath

BACKUP_SUFFIXES = ("~", ".orig", ".rej", ".bak")


def cleaned_identifier(identifier: str) -> str:
    """Normalise an identifier so it starts and ends with a single slash.

    Args:
        identifier: Raw identifier such as ``about``, ``/about`` or ``about/``.

    Returns:
        The cleaned identifier, e.g. ``/about/``. The root is ``/``.

    Examples:
        >>> cleaned_identifier("blog/post")
        '/blog/post/'

        >>> cleaned_identifier("")
        '/'
    """
    stripped = identifier.strip("/")
    return f"/{stripped}/" if stripped else "/"


def join_identifiers(root: str, identifier: str) -> str:
    """Mount an identifier below a data source root.

    Args:
        root: Mount point, e.g. ``/`` or ``/docs/``.
        identifier: Identifier relative to the mount point.

    Returns:
        Cleaned combined identifier.
    """
    return cleaned_identifier(f"{root.strip('/')}/{identifier.strip('/')}")


def parent_identifier(identifier: str) -> str | None:
    """Return the identifier of the parent of ``identifier``.

    Args:
        identifier: A cleaned identifier.

    Returns:
        The parent identifier, or None for the root.
    """
    if identifier == "/":
        return None
    return re.sub(r"[^/]+/$", "", identifier)


def identifier_for_path(rel_path: str, allow_periods: bool = False) -> str:
    """Derive an identifier from a path relative to a content directory.

    The extension is removed (all extensions, or only the last one when
    ``allow_periods`` is set) and ``index`` files collapse onto their
    directory.

    Args:
        rel_path: POSIX path such as ``blog/post.md`` or ``about/index.html``.
        allow_periods: Whether periods may appear in identifiers.

    Returns:
        The cleaned identifier, e.g. ``/blog/post/`` or ``/about/``.
    """
    ext_re = r"\.[^/.]+$" if allow_periods else r"\.[^/]+$"
    stem = re.sub(ext_re, "", rel_path)
    path = PurePosixPath(stem)
    if path.name == "index":
        stem = path.parent.as_posix()
        if stem == ".":
            stem = ""
    return cleaned_identifier(stem)


def extension_of(path: str | Path, allow_periods: bool = False) -> str:
    """Return the extension of a filename without the leading period.

    Args:
        path: File name or path.
        allow_periods: When True only the last extension is returned,
            otherwise every extension (``tar.gz``).

    Returns:
        The extension, or an empty string.
    """
    name = PurePosixPath(str(path)).name
    match = re.search(r"\.([^/.]+)$" if allow_periods else r"\.([^/]+)$", name)
    return match.group(1) if match else ""


def is_backup_file(path: Path) -> bool:
    """Check whether a path looks like an editor or patch backup file."""
    return path.name.endswith(BACKUP_SUFFIXES)


def titleize(name: str) -> str:
    """Convert an identifier or filename to a human-readable title.

    Args:
        name: Identifier (``/blog/hello-world/``) or filename.

    Returns:
        Title-cased string.

    Examples:
        >>> titleize("/blog/hello-world/")
        'Hello World'
    """
    base = PurePosixPath(name.strip("/")).name
    base = re.sub(r"\.[^.]+$", "", base)
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Home"


def ensure_parent_dir(path: Path) -> None:
    """Create the parent directory of ``path`` if it does not exist."""
    path.parent.mkdir(parents=True, exist_ok=True)
