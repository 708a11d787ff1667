from pathlib import Path

import pytest

from argus.filters import FilterRegistry
from argus.rules import RulesDSL
from argus.site import Site


def write_files(root: Path, files: dict) -> Path:
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def filters():
    return FilterRegistry()


@pytest.fixture
def memory_site(tmp_path, filters):
    """Build a Site from in-memory items, layouts and a rules callable.

    ``declare_rules`` receives a RulesDSL; when it declares no routing rule a
    catch-all rule routing ``/x/`` to ``/x/index.html`` is added.
    """

    def make(items, layouts=(), declare_rules=None, config=None, events=None):
        dsl = RulesDSL()
        if declare_rules is not None:
            declare_rules(dsl)
        if not dsl.rule_set.routing_rules:
            dsl.route("*")(lambda ctx: ctx.identifier + "index.html")
        site = Site(config or {}, site_dir=tmp_path, filter_registry=filters, events=events)
        site.use(items, layouts, dsl.rule_set)
        return site

    return make


@pytest.fixture
def make_site_dir(tmp_path):
    """Write a site directory; config.yaml and rules.py get defaults unless given."""

    def make(files, config="{}\n", rules=None):
        root = tmp_path / "site"
        defaults = {"config.yaml": config}
        if rules is not None:
            defaults["rules.py"] = rules
        return write_files(root, {**defaults, **files})

    return make
