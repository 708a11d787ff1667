"""Data sources supplying items and layouts.

A data source is configured per entry of the ``data_sources`` list in
``config.yaml``. Identifiers it returns are relative to its mount points
(``items_root`` and ``layouts_root``); the site prefixes the roots.

Key classes:
- BaseDataSource: Base class with the lifecycle and creation hooks.
- FilesystemDataSource: Items in ``content/``, layouts in ``layouts/``.
- DataSourceRegistry: Maps ``type`` strings to data source classes.

On-disk format of the filesystem data source::

    content/about.html          -> /about/
    content/about.yaml          -> metadata of /about/ (optional)
    content/blog/index.md       -> /blog/
    content/logo.png            -> /logo/ (binary, not in text_extensions)

Metadata may instead be a YAML front-matter block at the top of the file,
between ``---`` lines.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .checksums import checksum_for
from .errors import DataSourceError, UnknownDataSourceError
from .models import Item, Layout
from .protocols import DataSource
from .utils import extension_of, identifier_for_path, is_backup_file

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

META_EXTENSION = "yaml"


def extract_frontmatter(text: str, path: Path) -> tuple[dict[str, Any], str]:
    """Split a YAML front-matter block from file content.

    Args:
        text: Raw file content.
        path: File the content came from, for error messages.

    Returns:
        Tuple of (metadata dict, remaining content). Files without a
        front-matter block yield an empty dict and the unchanged text.

    Raises:
        DataSourceError: If the block is not valid YAML or not a mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    meta = _parse_yaml(match.group(1), path)
    return meta, text[match.end() :].lstrip("\n")


def _parse_yaml(text: str, path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise DataSourceError(path, f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise DataSourceError(path, "metadata must be a mapping")
    return data


def _mtime(path: Path | None) -> datetime | None:
    if path is None:
        return None
    return datetime.fromtimestamp(path.stat().st_mtime)


class BaseDataSource(ABC):
    """Base class for data sources.

    Attributes:
        site_dir: Root directory of the site.
        site_config: Full site configuration.
        items_root: Identifier prefix for items, e.g. ``/``.
        layouts_root: Identifier prefix for layouts.
        config: Data source specific configuration.
    """

    def __init__(
        self,
        site_dir: Path,
        site_config: dict[str, Any],
        items_root: str = "/",
        layouts_root: str = "/",
        config: dict[str, Any] | None = None,
    ):
        self.site_dir = Path(site_dir)
        self.site_config = site_config
        self.items_root = items_root
        self.layouts_root = layouts_root
        self.config = dict(config or {})
        self._references = 0

    def use(self) -> None:
        """Open the data source; nested calls are reference counted."""
        if self._references == 0:
            self.up()
        self._references += 1

    def unuse(self) -> None:
        self._references -= 1
        if self._references == 0:
            self.down()

    def up(self) -> None:
        """Acquire resources needed to read data (connections, handles)."""

    def down(self) -> None:
        """Release what ``up`` acquired."""

    def setup(self) -> None:
        """Create whatever a new, empty site needs for this data source."""

    @abstractmethod
    def items(self) -> list[Item]:
        ...

    @abstractmethod
    def layouts(self) -> list[Layout]:
        ...

    def create_item(
        self, content: str, attributes: dict[str, Any], identifier: str, **params: Any
    ) -> Path:
        raise NotImplementedError(f"{type(self).__name__} cannot create items")

    def create_layout(
        self, content: str, attributes: dict[str, Any], identifier: str, **params: Any
    ) -> Path:
        raise NotImplementedError(f"{type(self).__name__} cannot create layouts")


class FilesystemDataSource(BaseDataSource):
    """Reads items from ``content/`` and layouts from ``layouts/``.

    Config:
        allow_periods_in_identifiers: Strip only the last extension when
            deriving identifiers, so ``foo.entry.html`` becomes
            ``/foo.entry/`` instead of ``/foo/``.
    """

    items_dir = "content"
    layouts_dir = "layouts"

    @property
    def allow_periods(self) -> bool:
        return bool(self.config.get("allow_periods_in_identifiers", False))

    @property
    def text_extensions(self) -> set[str]:
        return set(self.site_config.get("text_extensions") or [])

    def setup(self) -> None:
        for name in (self.items_dir, self.layouts_dir, "lib"):
            (self.site_dir / name).mkdir(parents=True, exist_ok=True)

    def items(self) -> list[Item]:
        return [self._load_item(*entry) for entry in self._split_files(self.items_dir)]

    def layouts(self) -> list[Layout]:
        return [self._load_layout(*entry) for entry in self._split_files(self.layouts_dir)]

    def create_item(
        self, content: str, attributes: dict[str, Any], identifier: str, **params: Any
    ) -> Path:
        return self._create_object(self.items_dir, content, attributes, identifier, **params)

    def create_layout(
        self, content: str, attributes: dict[str, Any], identifier: str, **params: Any
    ) -> Path:
        return self._create_object(self.layouts_dir, content, attributes, identifier, **params)

    def _basename(self, path: Path) -> str:
        ext = extension_of(path, self.allow_periods)
        text = path.as_posix()
        return text[: -(len(ext) + 1)] if ext else text

    def _split_files(self, dir_name: str) -> Iterator[tuple[str, Path | None, Path | None]]:
        """Group files by basename into (relative base, meta file, content file)."""
        root = self.site_dir / dir_name
        if not root.is_dir():
            return
        groups: dict[str, list[Path]] = {}
        for path in sorted(root.rglob("*")):
            if not path.is_file() or is_backup_file(path):
                continue
            groups.setdefault(self._basename(path), []).append(path)
        for base, paths in groups.items():
            meta = [p for p in paths if extension_of(p, self.allow_periods) == META_EXTENSION]
            content = [p for p in paths if extension_of(p, self.allow_periods) != META_EXTENSION]
            if len(meta) > 1:
                raise DataSourceError(base, f"found {len(meta)} meta files; expected 0 or 1")
            if len(content) > 1:
                raise DataSourceError(base, f"found {len(content)} content files; expected 0 or 1")
            yield (
                Path(base).relative_to(root).as_posix(),
                meta[0] if meta else None,
                content[0] if content else None,
            )

    def _is_binary(self, content_path: Path | None) -> bool:
        if content_path is None:
            return False
        return content_path.suffix.lstrip(".") not in self.text_extensions

    def _read(
        self, rel_base: str, meta_path: Path | None, content_path: Path | None
    ) -> tuple[dict[str, Any], str]:
        if meta_path is not None:
            meta = _parse_yaml(meta_path.read_text(encoding="utf-8"), meta_path)
            content = content_path.read_text(encoding="utf-8") if content_path else ""
            return meta, content
        if content_path is None:
            raise DataSourceError(rel_base, "no meta or content file")
        return extract_frontmatter(content_path.read_text(encoding="utf-8"), content_path)

    def _common(
        self, rel_base: str, meta_path: Path | None, content_path: Path | None, meta: dict[str, Any]
    ) -> dict[str, Any]:
        source = content_path or meta_path
        if source is None:
            raise DataSourceError(rel_base, "no meta or content file")
        ext = extension_of(content_path, self.allow_periods) if content_path else ""
        attributes: dict[str, Any] = {
            "filename": str(content_path) if content_path else None,
            "content_filename": str(content_path) if content_path else None,
            "meta_filename": str(meta_path) if meta_path else None,
            "extension": ext or None,
        }
        attributes.update(meta)
        mtimes = [m for m in (_mtime(meta_path), _mtime(content_path)) if m is not None]
        # The meta file names the object when both exist.
        named_by = meta_path or source
        named_ext = extension_of(named_by, self.allow_periods)
        source_rel = f"{rel_base}.{named_ext}" if named_ext else rel_base
        return {
            "attributes": attributes,
            "identifier": identifier_for_path(source_rel, self.allow_periods),
            "mtime": max(mtimes),
            "checksum": checksum_for(*[p for p in (meta_path, content_path) if p is not None]),
        }

    def _load_item(self, rel_base: str, meta_path: Path | None, content_path: Path | None) -> Item:
        binary = self._is_binary(content_path)
        if binary:
            meta = _parse_yaml(meta_path.read_text(encoding="utf-8"), meta_path) if meta_path else {}
            content: str | Path = content_path  # type: ignore[assignment]
        else:
            meta, content = self._read(rel_base, meta_path, content_path)
        fields = self._common(rel_base, meta_path, content_path, meta)
        return Item(content=content, binary=binary, **fields)

    def _load_layout(self, rel_base: str, meta_path: Path | None, content_path: Path | None) -> Layout:
        meta, content = self._read(rel_base, meta_path, content_path)
        return Layout(content=content, **self._common(rel_base, meta_path, content_path, meta))

    def _create_object(
        self,
        dir_name: str,
        content: str,
        attributes: dict[str, Any],
        identifier: str,
        extension: str = ".html",
    ) -> Path:
        if not self.allow_periods and "." in identifier:
            raise DataSourceError(
                identifier,
                "identifier contains a period but allow_periods_in_identifiers is not enabled",
            )
        stem = identifier.strip("/")
        rel = "index" + extension if not stem else stem + extension
        path = self.site_dir / dir_name / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            if attributes:
                f.write("---\n")
                f.write(yaml.safe_dump(attributes, default_flow_style=False, sort_keys=False))
                f.write("---\n\n")
            f.write(content)
        logger.info("create %s", path)
        return path


DataSourceFactory = Callable[..., BaseDataSource]


class DataSourceRegistry:
    """Registry mapping data source type names to classes."""

    def __init__(self, include_builtins: bool = True):
        self._types: dict[str, DataSourceFactory] = {}
        if include_builtins:
            self.register("filesystem", FilesystemDataSource)
            self.register("filesystem_unified", FilesystemDataSource)

    def register(self, name: str, factory: DataSourceFactory) -> None:
        self._types[name] = factory

    def data_source(self, name: str) -> Callable[[type], type]:
        """Decorator registering a data source class under ``name``."""

        def decorator(cls: type) -> type:
            self.register(name, cls)
            return cls

        return decorator

    def create(
        self,
        name: str,
        site_dir: Path,
        site_config: dict[str, Any],
        items_root: str = "/",
        layouts_root: str = "/",
        config: dict[str, Any] | None = None,
    ) -> BaseDataSource:
        """Instantiate the data source registered as ``name``.

        Raises:
            UnknownDataSourceError: If no data source is registered as
                ``name``, or the factory does not produce a data source.
        """
        factory = self._types.get(name)
        if factory is None:
            raise UnknownDataSourceError(name)
        instance = factory(site_dir, site_config, items_root, layouts_root, config)
        if not isinstance(instance, DataSource):
            raise UnknownDataSourceError(name)
        return instance

    def names(self) -> list[str]:
        return sorted(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types


default_data_source_registry = DataSourceRegistry()


def register_data_source(name: str) -> Callable[[type], type]:
    """Register a data source class in the default registry."""
    return default_data_source_registry.data_source(name)
