"""Output path assignment for reps.

The routing rule for a rep returns its path relative to the output
directory, e.g. ``/about/index.html``. From that path the router derives:

- the disk path: ``<output_dir>/about/index.html``
- the web path: ``/about/`` (the first configured index filename found at the
  end of the path is stripped)

A routing rule returning None means the rep is never written; both paths stay
None and the rep can still be referenced by other items' filters.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import NoMatchingRoutingRuleFound
from .events import EventChannel
from .models import ItemRep
from .rules import RuleSet

if TYPE_CHECKING:
    from .site import Site

logger = logging.getLogger(__name__)


class Router:
    """Assigns disk and web paths to reps from routing rules.

    Attributes:
        rule_set: Rules providing the routing rules.
        output_dir: Directory every disk path is placed under.
        index_filenames: Filenames stripped from web paths, in priority order.
        events: Channel on which ``rep_routed``/``rep_unrouted`` are fired.
    """

    def __init__(
        self,
        rule_set: RuleSet,
        output_dir: Path,
        index_filenames: Sequence[str] = ("index.html",),
        events: EventChannel | None = None,
        site: Site | None = None,
    ):
        self.rule_set = rule_set
        self.output_dir = Path(output_dir)
        self.index_filenames = list(index_filenames)
        self.events = events or EventChannel()
        self.site = site

    def basic_path_for(self, rep: ItemRep) -> str | None:
        """Run the routing rule for ``rep`` and return its result.

        Raises:
            NoMatchingRoutingRuleFound: If no routing rule matches the rep.
        """
        rule = self.rule_set.routing_rule_for(rep)
        if rule is None:
            raise NoMatchingRoutingRuleFound(rep)
        result: Any = rule.apply_to(rep, self.site).result
        if result is None:
            return None
        path = str(result)
        return path if path.startswith("/") else "/" + path

    def disk_path_for(self, rep: ItemRep) -> Path | None:
        path = self.basic_path_for(rep)
        return self._disk_path(path) if path is not None else None

    def web_path_for(self, rep: ItemRep) -> str | None:
        path = self.basic_path_for(rep)
        return self._web_path(path) if path is not None else None

    def route(self, rep: ItemRep) -> None:
        """Compute and store the paths of ``rep``."""
        path = self.basic_path_for(rep)
        rep.routed_path = path
        if path is None:
            rep.disk_path = None
            rep.web_path = None
            logger.debug("%s[%s] is not routed", rep.item.identifier, rep.name)
            self.events.fire("rep_unrouted", rep)
            return
        rep.disk_path = self._disk_path(path)
        rep.web_path = self._web_path(path)
        self.events.fire("rep_routed", rep)

    def route_all(self, reps: Iterable[ItemRep]) -> None:
        for rep in reps:
            self.route(rep)

    def _disk_path(self, path: str) -> Path:
        return self.output_dir / path.lstrip("/")

    def _web_path(self, path: str) -> str:
        for index_filename in self.index_filenames:
            if path.endswith(index_filename):
                return path[: -len(index_filename)]
        return path
