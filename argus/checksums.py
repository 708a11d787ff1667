"""Checksum computation and the persisted checksum store.

Checksums decide whether an object changed since the previous build. The
store is read once per process, lazily, and written only when ``store()`` is
called explicitly, so an aborted build leaves the previous table untouched.

Functions:
    checksum_for: Stable digest of one or more files.

Classes:
    ChecksumStore: Flat ``(kind, identifier) -> digest`` table on disk.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

from .utils import ensure_parent_dir

logger = logging.getLogger(__name__)

ITEM = "item"
LAYOUT = "layout"
CODE = "code"
CONFIG = "config"
RULES = "rules"
MISC = "misc"

_CHUNK_SIZE = 2**10


def checksum_for(*paths: str | Path) -> str:
    """Compute a stable digest of the given files.

    Each file is hashed with SHA-1; the hex digests are joined with ``-`` in
    argument order, so the result is order-sensitive.

    Args:
        *paths: Files to hash.

    Returns:
        The joined digest string.
    """
    digests = []
    for path in paths:
        digest = hashlib.sha1()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        digests.append(digest.hexdigest())
    return "-".join(digests)


def _key(kind: str, identifier: str) -> str:
    return f"{kind}:{identifier}"


class ChecksumStore:
    """Persisted checksum table.

    Attributes:
        path: Location of the JSON file backing the store.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._old: dict[str, str] | None = None
        self._new: dict[str, str] = {}

    def _load(self) -> dict[str, str]:
        if self._old is not None:
            return self._old
        self._old = {}
        if not self.path.is_file():
            return self._old
        try:
            with open(self.path, encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable checksum file %s: %s", self.path, exc)
            return self._old
        if isinstance(loaded, dict):
            self._old = {str(k): str(v) for k, v in loaded.items()}
        return self._old

    def old_checksum_for(self, kind: str, identifier: str) -> str | None:
        """Return the digest recorded by the previous build, or None."""
        return self._load().get(_key(kind, identifier))

    def record(self, kind: str, identifier: str, digest: str | None) -> None:
        """Buffer the digest computed during this build."""
        if digest is None:
            return
        self._new[_key(kind, identifier)] = digest

    @property
    def new_checksums(self) -> dict[str, str]:
        return dict(self._new)

    def store(self) -> None:
        """Write all buffered checksums, replacing the previous table."""
        ensure_parent_dir(self.path)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._new, f, indent=2, sort_keys=True)
        logger.debug("Stored %d checksums in %s", len(self._new), self.path)
