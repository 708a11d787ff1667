"""Site assembly for Argus.

A Site ties together the configuration, the data sources, the rules, the
checksum store, the router and the compiler. Loading follows a fixed order::

    code snippets -> rules -> defaults -> items -> layouts
      -> parent/child links -> preprocessor -> links again
      -> reps -> routes

Key functions:
- load_config: Loads ``config.yaml`` merged over DEFAULT_CONFIG.

Key classes:
- Site: A loaded site, ready to compile.
"""

from __future__ import annotations

import copy
import importlib.util
import logging
import sys
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .checksums import CODE, CONFIG, ITEM, LAYOUT, MISC, RULES, ChecksumStore, checksum_for
from .compiler import Compiler
from .data_sources import BaseDataSource, DataSourceRegistry, default_data_source_registry
from .errors import (
    ArgusError,
    CodeSnippetError,
    DataNotYetAvailableError,
    DataSourceError,
    NoConfigFileFoundError,
    NoMatchingCompilationRuleFound,
)
from .events import EventChannel
from .filters import FilterRegistry, default_filter_registry
from .models import CodeSnippet, Defaults, Item, ItemRep, Layout
from .router import Router
from .rules import RuleSet, find_rules_file, load_rules_file
from .utils import join_identifiers, parent_identifier

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
DEFAULTS_FILENAME = "defaults.yaml"
LIB_DIR = "lib"

DEFAULT_DATA_SOURCE_CONFIG: dict[str, Any] = {
    "type": "filesystem",
    "items_root": "/",
    "layouts_root": "/",
    "config": {},
}

DEFAULT_CONFIG: dict[str, Any] = {
    "text_extensions": [
        "css", "erb", "haml", "htm", "html", "jinja", "js", "less",
        "markdown", "md", "php", "py", "sass", "txt", "xml",
    ],
    "output_dir": "output",
    "data_sources": [{}],
    "index_filenames": ["index.html"],
    "checksums_file": "tmp/checksums",
    "port": 3000,
    "ws_port": None,
    "base_url": "",
}


def build_config(overrides: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge ``overrides`` over DEFAULT_CONFIG and expand data source entries."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config.update(overrides or {})
    config["data_sources"] = [
        {**DEFAULT_DATA_SOURCE_CONFIG, **(entry or {})}
        for entry in (config.get("data_sources") or [{}])
    ]
    if config.get("ws_port") is None:
        config["ws_port"] = int(config["port"]) + 1
    return config


def load_config(site_dir: Path) -> dict[str, Any]:
    """Load site configuration from config.yaml.

    Args:
        site_dir: Root directory of the site.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        NoConfigFileFoundError: If ``config.yaml`` does not exist.
        DataSourceError: If the file is not a YAML mapping.
    """
    config_path = site_dir / CONFIG_FILENAME
    if not config_path.is_file():
        raise NoConfigFileFoundError(site_dir)
    with open(config_path, encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise DataSourceError(config_path, f"invalid YAML: {exc}") from exc
    if not isinstance(loaded, dict):
        raise DataSourceError(config_path, "configuration must be a mapping")
    return build_config(loaded)


def _file_mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime)


class Site:
    """A site: configuration, data, rules and the machinery to compile them.

    Args:
        dir_or_config: Site directory containing ``config.yaml``, or a
            configuration mapping for a site without a config file.
        site_dir: Directory relative paths resolve against when
            ``dir_or_config`` is a mapping (default: current directory).
        filter_registry: Filters available to rules and layouts.
        data_source_registry: Data source types available to the config.
        events: Channel receiving compiler and router events.
    """

    def __init__(
        self,
        dir_or_config: str | Path | Mapping[str, Any],
        site_dir: str | Path | None = None,
        filter_registry: FilterRegistry | None = None,
        data_source_registry: DataSourceRegistry | None = None,
        events: EventChannel | None = None,
    ):
        if isinstance(dir_or_config, Mapping):
            self.site_dir = Path(site_dir) if site_dir is not None else Path.cwd()
            self.config = build_config(dir_or_config)
            self.config_path: Path | None = None
        else:
            self.site_dir = Path(dir_or_config)
            self.config = load_config(self.site_dir)
            self.config_path = self.site_dir / CONFIG_FILENAME

        self.filters = filter_registry or default_filter_registry
        self.data_source_registry = data_source_registry or default_data_source_registry
        self.events = events or EventChannel()
        self.output_dir = self.site_dir / self.config["output_dir"]
        self.checksums = ChecksumStore(self.site_dir / self.config["checksums_file"])

        self.old_config_checksum: str | None = None
        self.new_config_checksum: str | None = None
        if self.config_path is not None:
            self.new_config_checksum = checksum_for(self.config_path)
            self.old_config_checksum = self.checksums.old_checksum_for(CONFIG, CONFIG_FILENAME)
            self.checksums.record(CONFIG, CONFIG_FILENAME, self.new_config_checksum)

        self.old_rules_checksum: str | None = None
        self.new_rules_checksum: str | None = None
        self.rules_path: Path | None = None

        self._rule_set: RuleSet | None = None
        self._items: list[Item] | None = None
        self._layouts: list[Layout] | None = None
        self._code_snippets: list[CodeSnippet] | None = None
        self.defaults = Defaults()
        self._data_sources: list[BaseDataSource] | None = None
        self._compiler: Compiler | None = None
        self._router: Router | None = None
        self._data_loaded = False

    @property
    def data_sources(self) -> list[BaseDataSource]:
        if self._data_sources is None:
            self._data_sources = [
                self.data_source_registry.create(
                    entry["type"],
                    self.site_dir,
                    self.config,
                    entry["items_root"],
                    entry["layouts_root"],
                    entry.get("config") or {},
                )
                for entry in self.config["data_sources"]
            ]
        return self._data_sources

    @property
    def compiler(self) -> Compiler:
        if self._compiler is None:
            self._compiler = Compiler(self, self.filters, self.events)
        return self._compiler

    @property
    def router(self) -> Router:
        if self._router is None:
            self._router = Router(
                self.rule_set,
                self.output_dir,
                self.config["index_filenames"],
                self.events,
                site=self,
            )
        return self._router

    @property
    def items(self) -> list[Item]:
        if self._items is None:
            raise DataNotYetAvailableError("Items")
        return self._items

    @property
    def layouts(self) -> list[Layout]:
        if self._layouts is None:
            raise DataNotYetAvailableError("Layouts")
        return self._layouts

    @property
    def code_snippets(self) -> list[CodeSnippet]:
        if self._code_snippets is None:
            raise DataNotYetAvailableError("Code snippets")
        return self._code_snippets

    @property
    def rule_set(self) -> RuleSet:
        if self._rule_set is None:
            raise DataNotYetAvailableError("Rules")
        return self._rule_set

    @property
    def config_changed(self) -> bool:
        if self.config_path is None:
            return False
        return self.old_config_checksum != self.new_config_checksum

    @property
    def rules_changed(self) -> bool:
        if self.rules_path is None:
            return False
        return self.old_rules_checksum != self.new_rules_checksum

    @property
    def global_dependencies_changed(self) -> bool:
        """True when the configuration or the rules changed since the last build."""
        return self.config_changed or self.rules_changed

    def load_data(self, force: bool = False) -> None:
        """Load everything needed to compile.

        Args:
            force: Reload even when data was already loaded.
        """
        if self._data_loaded and not force:
            return
        self._load_code_snippets()
        for data_source in self.data_sources:
            data_source.use()
        try:
            self._load_rules()
            self._load_defaults()
            self._load_items()
            self._load_layouts()
        finally:
            for data_source in self.data_sources:
                data_source.unuse()
        self._finish_loading()

    def use(
        self,
        items: Iterable[Item],
        layouts: Iterable[Layout],
        rule_set: RuleSet,
        code_snippets: Iterable[CodeSnippet] = (),
        defaults: Defaults | None = None,
    ) -> None:
        """Install in-memory data instead of loading it from data sources.

        Checksums are still looked up in and recorded to the checksum store,
        so in-memory sites track outdatedness like loaded ones.
        """
        self._rule_set = rule_set
        self._router = None
        self._code_snippets = list(code_snippets)
        self._record_all(CODE, self._code_snippets, key=lambda cs: cs.filename)
        self.defaults = defaults or Defaults()
        self._items = list(items)
        self._record_all(ITEM, self._items)
        self._layouts = list(layouts)
        self._record_all(LAYOUT, self._layouts)
        self._finish_loading()

    def compile(self, items: Iterable[Item] | None = None, force: bool = False) -> list[ItemRep]:
        """Load data if needed and compile every rep (or those of ``items``)."""
        self.load_data()
        return self.compiler.run(items, force=force)

    def store_checksums(self) -> None:
        """Persist the checksums computed during this process."""
        self.checksums.store()

    def _record_all(self, kind: str, objects: Iterable[Any], key=lambda obj: obj.identifier) -> None:
        for obj in objects:
            obj.old_checksum = self.checksums.old_checksum_for(kind, key(obj))
            self.checksums.record(kind, key(obj), obj.new_checksum)

    def _finish_loading(self) -> None:
        self._setup_child_parent_links()
        if self.rule_set.preprocessor is not None:
            self.rule_set.preprocessor(self)
            self._setup_child_parent_links()
        self._build_reps()
        self.router.route_all(rep for item in self.items for rep in item.reps)
        self._data_loaded = True
        logger.debug(
            "Loaded %d items, %d layouts, %d code snippets",
            len(self.items),
            len(self.layouts),
            len(self.code_snippets),
        )

    def _load_code_snippets(self) -> None:
        lib_dir = self.site_dir / LIB_DIR
        paths = sorted(lib_dir.rglob("*.py")) if lib_dir.is_dir() else []
        snippets = []
        for path in paths:
            filename = path.relative_to(self.site_dir).as_posix()
            snippets.append(
                CodeSnippet(
                    data=path.read_text(encoding="utf-8"),
                    filename=filename,
                    mtime=_file_mtime(path),
                    checksum=checksum_for(path),
                )
            )
        self._record_all(CODE, snippets, key=lambda cs: cs.filename)
        for snippet, path in zip(snippets, paths):
            self._exec_code_snippet(snippet, path)
        self._code_snippets = snippets

    def _exec_code_snippet(self, snippet: CodeSnippet, path: Path) -> None:
        module_name = "argus_lib." + snippet.filename[len(LIB_DIR) + 1 : -3].replace("/", ".")
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise CodeSnippetError(snippet.filename, ImportError(f"cannot load {path}"))
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except ArgusError:
            raise
        except Exception as exc:
            sys.modules.pop(module_name, None)
            raise CodeSnippetError(snippet.filename, exc) from exc
        logger.debug("Loaded code snippet %s", snippet.filename)

    def _load_rules(self) -> None:
        self.rules_path = find_rules_file(self.site_dir)
        self.new_rules_checksum = checksum_for(self.rules_path)
        self.old_rules_checksum = self.checksums.old_checksum_for(RULES, self.rules_path.name)
        self.checksums.record(RULES, self.rules_path.name, self.new_rules_checksum)
        self._rule_set = load_rules_file(self.rules_path)
        self._router = None

    def _load_defaults(self) -> None:
        path = self.site_dir / DEFAULTS_FILENAME
        if not path.is_file():
            self.defaults = Defaults()
            return
        with open(path, encoding="utf-8") as f:
            try:
                attributes = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise DataSourceError(path, f"invalid YAML: {exc}") from exc
        if not isinstance(attributes, dict):
            raise DataSourceError(path, "defaults must be a mapping")
        self.defaults = Defaults(
            attributes=attributes,
            filename=DEFAULTS_FILENAME,
            mtime=_file_mtime(path),
            checksum=checksum_for(path),
        )
        self._record_all(MISC, [self.defaults], key=lambda d: "defaults")

    def _load_items(self) -> None:
        items: list[Item] = []
        for data_source in self.data_sources:
            for item in data_source.items():
                item.identifier = join_identifiers(data_source.items_root, item.identifier)
                items.append(item)
        self._record_all(ITEM, items)
        self._items = items

    def _load_layouts(self) -> None:
        layouts: list[Layout] = []
        for data_source in self.data_sources:
            for layout in data_source.layouts():
                layout.identifier = join_identifiers(data_source.layouts_root, layout.identifier)
                layouts.append(layout)
        self._record_all(LAYOUT, layouts)
        self._layouts = layouts

    def _setup_child_parent_links(self) -> None:
        by_identifier: dict[str, Item] = {}
        for item in self.items:
            item.parent = None
            item.children = []
            by_identifier.setdefault(item.identifier, item)
        for item in self.items:
            parent_id = parent_identifier(item.identifier)
            parent = by_identifier.get(parent_id) if parent_id is not None else None
            if parent is None:
                continue
            item.parent = parent
            parent.children.append(item)

    def _build_reps(self) -> None:
        for item in self.items:
            rep_names = self.rule_set.rep_names_for(item)
            if not rep_names:
                raise NoMatchingCompilationRuleFound(item)
            item.reps = [ItemRep(item, name, self.defaults) for name in rep_names]
