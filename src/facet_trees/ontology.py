"""Ontology node records returned by the lookup backend."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from .config import OntologyFields


def _as_strings(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)):
        text = value.decode("utf-8") if isinstance(value, bytes) else value
        return (text,) if text else ()
    if isinstance(value, Mapping):
        raise ValueError("Expected a string or a list of strings, got a mapping")
    try:
        items = list(value)
    except TypeError:
        return (str(value),)
    return tuple(str(item) for item in items if item is not None and str(item))


def _unique(values: Tuple[str, ...]) -> Tuple[str, ...]:
    seen: set[str] = set()
    ordered = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return tuple(ordered)


@dataclass(frozen=True)
class OntologyNode:
    """A concept from the ontology together with its direct children."""

    identifier: str
    preferred_label: Tuple[str, ...] = ()
    short_form: Tuple[str, ...] = ()
    child_identifiers: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        if self.preferred_label:
            return self.preferred_label[0]
        if self.short_form:
            return self.short_form[0]
        return self.identifier

    def has_child(self, identifier: str) -> bool:
        return identifier in self.child_identifiers

    def to_dict(self, fields: OntologyFields | None = None) -> Dict[str, Any]:
        names = fields or OntologyFields()
        return {
            names.identifier_field: self.identifier,
            names.label_field: list(self.preferred_label),
            names.short_form_field: list(self.short_form),
            names.child_field: list(self.child_identifiers),
        }

    @staticmethod
    def from_document(data: Mapping[str, Any], fields: OntologyFields | None = None) -> "OntologyNode":
        """Build a node from a backend document using the configured field names."""

        names = fields or OntologyFields()
        identifiers = _as_strings(data.get(names.identifier_field))
        if not identifiers:
            raise ValueError(f"Ontology document has no '{names.identifier_field}' value")
        return OntologyNode(
            identifier=identifiers[0],
            preferred_label=_as_strings(data.get(names.label_field)),
            short_form=_as_strings(data.get(names.short_form_field)),
            child_identifiers=_unique(_as_strings(data.get(names.child_field))),
        )


__all__ = ["OntologyNode"]
