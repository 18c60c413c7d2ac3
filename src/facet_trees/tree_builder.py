"""Build hierarchical facet trees from flat ontology facet counts.

A faceted search over an ontology-annotated field returns one count per
ontology identifier, with no notion of hierarchy.  The
:class:`ChildNodeFacetTreeBuilder` turns such a list into a forest that
mirrors the ontology:

1. the ancestors of every facet identifier are discovered by repeatedly
   asking the backend for nodes whose child list contains the identifiers
   found in the previous round, until a round adds nothing new;
2. facet identifiers that have no parent are fetched by their own identifier;
3. nodes that are nobody's child become the roots of the forest;
4. each root is expanded recursively through its resolved children, adding
   the facet counts of every descendant to the node's own count.

Backend failures never abort a build.  They are logged and the affected
lookup simply contributes fewer nodes, so the caller receives a partial
forest instead of an error.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Sequence

from .config import BuilderSettings, OntologyFields
from .facets import AccumulatedEntry, FacetEntry, sort_key
from .ontology import OntologyNode
from .query import build_filter_string
from .search import MATCH_ALL_QUERY, BaseOntologySearch, SearchBackendError

logger = logging.getLogger(__name__)


def _unique_identifiers(identifiers: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for identifier in identifiers:
        if identifier in seen:
            continue
        seen.add(identifier)
        ordered.append(identifier)
    return ordered


def _chunks(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def collect_counts(entries: Iterable[FacetEntry]) -> Dict[str, int]:
    """Map facet identifiers to counts, summing repeated identifiers."""

    counts: Dict[str, int] = {}
    for entry in entries:
        counts[entry.identifier] = counts.get(entry.identifier, 0) + entry.count
    return counts


def find_top_level_nodes(resolved: Mapping[str, OntologyNode]) -> List[str]:
    """Return the identifiers in ``resolved`` that are not a child of another node."""

    top_level: List[str] = []
    for identifier in resolved:
        found = False
        for other in resolved.values():
            if other.identifier != identifier and other.has_child(identifier):
                found = True
                break
        if not found:
            top_level.append(identifier)
    return sorted(top_level)


def build_accumulated_entry_tree(
    node: OntologyNode,
    counts: Mapping[str, int],
    resolved: Mapping[str, OntologyNode],
    *,
    log: logging.Logger | None = None,
    _path: FrozenSet[str] = frozenset(),
    _level: int = 0,
) -> AccumulatedEntry:
    """Recursively build the accumulated entry for ``node`` and its subtree.

    Only children present in ``resolved`` are expanded; anything else was not
    reachable from the original facets and carries no count.  A child already
    on the current path is skipped so cyclic data cannot recurse forever.
    """

    log = log or logger
    path = _path | {node.identifier}
    children: List[AccumulatedEntry] = []
    for child_id in node.child_identifiers:
        child = resolved.get(child_id)
        if child is None:
            continue
        if child_id in path:
            log.warning("Skipping cyclic child %s below %s", child_id, node.identifier)
            continue
        log.debug("[%d] Building entry for child %s", _level, child_id)
        children.append(
            build_accumulated_entry_tree(
                child, counts, resolved, log=log, _path=path, _level=_level + 1
            )
        )

    return AccumulatedEntry.build(
        identifier=node.identifier,
        label=node.label,
        own_count=int(counts.get(node.identifier, 0)),
        children=children,
    )


class ChildNodeFacetTreeBuilder:
    """Facet tree builder for ontologies that store child identifiers per node."""

    def __init__(
        self,
        search: BaseOntologySearch,
        *,
        fields: OntologyFields | None = None,
        settings: BuilderSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.search = search
        self.fields = fields or getattr(search, "fields", None) or OntologyFields()
        self.settings = settings or BuilderSettings()
        self.logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------
    def build_facet_tree(self, entries: Sequence[FacetEntry]) -> List[AccumulatedEntry]:
        """Convert flat facet entries into a forest of accumulated entries."""

        counts = collect_counts(entries)
        resolved = self.resolve_ontology_nodes(counts.keys())
        top_level = find_top_level_nodes(resolved)
        self.logger.debug(
            "Resolved %d ontology nodes for %d facet entries, %d roots",
            len(resolved),
            len(counts),
            len(top_level),
        )

        forest = [
            build_accumulated_entry_tree(resolved[identifier], counts, resolved, log=self.logger)
            for identifier in top_level
        ]
        return sorted(forest, key=sort_key)

    def resolve_ontology_nodes(self, identifiers: Iterable[str]) -> Dict[str, OntologyNode]:
        """Fetch the facet nodes and every ancestor reachable from them."""

        leaf_ids = _unique_identifiers(identifiers)
        resolved = self.lookup_by_child(leaf_ids)

        frontier = list(resolved)
        rounds = 0
        while frontier:
            if rounds >= self.settings.max_depth:
                self.logger.warning(
                    "Stopped climbing the ontology after %d rounds with %d unresolved ancestors",
                    rounds,
                    len(frontier),
                )
                break
            rounds += 1
            found = self.lookup_by_child(frontier)
            frontier = [identifier for identifier in found if identifier not in resolved]
            resolved.update(found)
            self.logger.debug("Round %d added %d ancestors", rounds, len(frontier))

        unresolved = [identifier for identifier in leaf_ids if identifier not in resolved]
        resolved.update(self.lookup_by_identifier(unresolved))
        return resolved

    def lookup_by_child(self, identifiers: Sequence[str]) -> Dict[str, OntologyNode]:
        """Fetch the nodes listing any of ``identifiers`` as a direct child."""

        return self._lookup(self.fields.child_field, identifiers)

    def lookup_by_identifier(self, identifiers: Sequence[str]) -> Dict[str, OntologyNode]:
        """Fetch the nodes for ``identifiers`` themselves."""

        return self._lookup(self.fields.identifier_field, identifiers)

    # ------------------------------------------------------------------
    # Backend helpers
    # ------------------------------------------------------------------
    def _lookup(self, field: str, identifiers: Sequence[str]) -> Dict[str, OntologyNode]:
        nodes: Dict[str, OntologyNode] = {}
        if not identifiers:
            return nodes
        self.logger.debug("Looking up %d entries by %s", len(identifiers), field)
        for chunk in _chunks(list(identifiers), self.settings.max_filter_terms):
            filter_string = build_filter_string(field, chunk)
            for node in self._fetch_all(filter_string, len(chunk)):
                nodes[node.identifier] = node
        return nodes

    def _fetch_all(self, filter_string: str, expected: int) -> List[OntologyNode]:
        limit = self.settings.page_size or expected
        results: List[OntologyNode] = []
        offset = 0
        while True:
            try:
                page = self.search.search_ontology(MATCH_ALL_QUERY, [filter_string], offset, limit)
            except SearchBackendError as exc:
                self.logger.error("Problem getting ontology entries for filter %s: %s", filter_string, exc)
                break
            results.extend(page.results)
            offset += len(page.results)
            if page.exhausted:
                break
        return results


__all__ = [
    "ChildNodeFacetTreeBuilder",
    "build_accumulated_entry_tree",
    "collect_counts",
    "find_top_level_nodes",
]
