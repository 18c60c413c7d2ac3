"""Facet counts and the accumulated trees built from them.

A search backend reports facet counts as a flat list of ``(identifier,
count)`` pairs.  :class:`FacetEntry` holds one such pair, and
:class:`AccumulatedEntry` is a node of the hierarchical forest produced by
:class:`~facet_trees.tree_builder.ChildNodeFacetTreeBuilder`, where each node
carries both its own count and the total accumulated from its descendants.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Sequence, Set, Tuple


@dataclass(frozen=True)
class FacetEntry:
    """A single facet value and the number of documents matching it."""

    identifier: str
    count: int

    def __post_init__(self) -> None:
        count = _parse_count(self.count)
        if count is not self.count:
            object.__setattr__(self, "count", count)

    def to_dict(self) -> Dict[str, Any]:
        return {"identifier": self.identifier, "count": self.count}

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "FacetEntry":
        return FacetEntry(identifier=str(data["identifier"]), count=data.get("count", 0))


def _parse_count(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid facet count: {value!r}")
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid facet count: {value!r}") from exc
    if count != value and not isinstance(value, str):
        raise ValueError(f"Invalid facet count: {value!r}")
    if count < 0:
        raise ValueError(f"Facet counts must be non-negative, got {count}")
    return count


def parse_facet_counts(payload: Any) -> List[FacetEntry]:
    """Convert a facet payload into :class:`FacetEntry` objects.

    Three shapes are accepted:

    * the flat ``[term, count, term, count, ...]`` list Solr returns,
    * a ``{term: count}`` mapping,
    * a sequence of ``{"identifier": ..., "count": ...}`` mappings.
    """

    if isinstance(payload, Mapping):
        return [FacetEntry(identifier=str(key), count=value) for key, value in payload.items()]
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        raise ValueError(f"Unsupported facet payload of type {type(payload).__name__}")

    items = list(payload)
    if items and all(isinstance(item, Mapping) for item in items):
        return [FacetEntry.from_dict(item) for item in items]
    if len(items) % 2:
        raise ValueError("Flat facet lists must alternate terms and counts")
    entries: List[FacetEntry] = []
    for index in range(0, len(items), 2):
        term, count = items[index], items[index + 1]
        if not isinstance(term, str):
            raise ValueError(f"Facet term at position {index} is not a string: {term!r}")
        entries.append(FacetEntry(identifier=term, count=count))
    return entries


def _facet_fields(response: Mapping[str, Any]) -> Mapping[str, Any]:
    facet_counts = response.get("facet_counts")
    if not isinstance(facet_counts, Mapping):
        raise ValueError("Response does not contain facet_counts")
    facet_fields = facet_counts.get("facet_fields")
    if not isinstance(facet_fields, Mapping):
        raise ValueError("Response does not contain facet_fields")
    return facet_fields


def facet_field_names(response: Mapping[str, Any]) -> Set[str]:
    """Return the names of the fields faceted in a Solr response body."""

    return {str(name) for name in _facet_fields(response)}


def extract_facet_entries(response: Mapping[str, Any], field: str) -> List[FacetEntry]:
    """Read the facet counts for ``field`` from a Solr response body."""

    facet_fields = _facet_fields(response)
    if field not in facet_fields:
        raise ValueError(f"Response has no facet counts for field '{field}'")
    return parse_facet_counts(facet_fields[field])


def sort_key(entry: "AccumulatedEntry") -> Tuple[int, str]:
    """Order entries by descending total count, then ascending identifier."""

    return (-entry.total_count, entry.identifier)


@dataclass(frozen=True)
class AccumulatedEntry:
    """A node of a facet tree with counts accumulated from its subtree."""

    identifier: str
    label: str
    own_count: int
    total_count: int
    children: Tuple["AccumulatedEntry", ...] = ()

    @classmethod
    def build(
        cls,
        identifier: str,
        label: str,
        own_count: int,
        children: Sequence["AccumulatedEntry"] = (),
    ) -> "AccumulatedEntry":
        """Create an entry, deriving the total and ordering the children."""

        ordered = tuple(sorted(children, key=sort_key))
        total = own_count + sum(child.total_count for child in ordered)
        return cls(
            identifier=identifier,
            label=label,
            own_count=own_count,
            total_count=total,
            children=ordered,
        )

    @property
    def child_total(self) -> int:
        return self.total_count - self.own_count

    def walk(self, depth: int = 0) -> Iterator[Tuple[int, "AccumulatedEntry"]]:
        """Yield ``(depth, entry)`` pairs in pre-order."""

        yield depth, self
        for child in self.children:
            yield from child.walk(depth + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "label": self.label,
            "count": self.own_count,
            "total": self.total_count,
            "children": [child.to_dict() for child in self.children],
        }


def format_facet_tree(forest: Sequence[AccumulatedEntry]) -> str:
    """Return a human-readable outline of ``forest``."""

    lines = [f"Facet tree ({len(forest)} root{'s' if len(forest) != 1 else ''}):"]
    for root in forest:
        for depth, entry in root.walk():
            indent = "    " * depth
            lines.append(
                f"  {indent}- {entry.label} [{entry.identifier}]: "
                f"{entry.total_count} ({entry.own_count} own)"
            )
    return "\n".join(lines)


__all__ = [
    "AccumulatedEntry",
    "FacetEntry",
    "extract_facet_entries",
    "facet_field_names",
    "format_facet_tree",
    "parse_facet_counts",
    "sort_key",
]
