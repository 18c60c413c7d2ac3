"""Lookup clients that fetch ontology nodes from a search backend.

The tree builder only depends on :class:`BaseOntologySearch`: a batched
"find nodes matching these filters" call returning a :class:`ResultsList`.
Two implementations ship with the package:

* :class:`SolrOntologySearch` queries a Solr core holding one document per
  ontology concept over HTTP using ``requests``;
* :class:`StaticOntologySearch` evaluates the same filter expressions against
  an in-memory list of nodes, typically loaded from a JSON or YAML export.
  It is used for offline runs and throughout the test-suite.

Every backend failure surfaces as :class:`SearchBackendError`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Set

import requests
import yaml

from .config import ConfigurationError, OntologyFields
from .ontology import OntologyNode
from .query import parse_filter_string

logger = logging.getLogger(__name__)

MATCH_ALL_QUERY = "*:*"


class SearchBackendError(RuntimeError):
    """Raised when the ontology backend cannot answer a lookup."""


@dataclass
class ResultsList:
    """One page of lookup results."""

    results: List[OntologyNode] = field(default_factory=list)
    total_found: int = 0
    offset: int = 0
    limit: int = 0

    @property
    def exhausted(self) -> bool:
        return not self.results or self.offset + len(self.results) >= self.total_found


class BaseOntologySearch:
    """Interface for ontology lookup backends."""

    schema_name = "ontology"

    def __init__(self, fields: OntologyFields | None = None) -> None:
        self.fields = fields or OntologyFields()

    def search_ontology(
        self, query: str, filters: Sequence[str], offset: int, limit: int
    ) -> ResultsList:
        raise NotImplementedError

    def schema_fields(self) -> Set[str]:
        raise NotImplementedError


class SolrOntologySearch(BaseOntologySearch):
    """Lookup client for a Solr core of ontology documents."""

    def __init__(
        self,
        base_url: str,
        *,
        fields: OntologyFields | None = None,
        timeout: float | None = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(fields)
        if not base_url:
            raise ConfigurationError("A base URL is required for the Solr ontology backend")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.schema_name = self.base_url.rsplit("/", 1)[-1] or "ontology"

    def search_ontology(
        self, query: str, filters: Sequence[str], offset: int, limit: int
    ) -> ResultsList:
        params: List[tuple[str, Any]] = [("q", query or MATCH_ALL_QUERY)]
        params.extend(("fq", item) for item in filters)
        params.extend([("start", offset), ("rows", limit), ("wt", "json")])
        payload = self._get_json(f"{self.base_url}/select", params)

        error = payload.get("error")
        if error:
            message = error.get("msg") if isinstance(error, Mapping) else error
            raise SearchBackendError(f"Solr reported an error: {message}")
        response = payload.get("response")
        if not isinstance(response, Mapping):
            raise SearchBackendError("Solr response is missing the 'response' section")

        try:
            nodes = [OntologyNode.from_document(doc, self.fields) for doc in response.get("docs") or []]
            total = int(response.get("numFound", len(nodes)))
        except (AttributeError, TypeError, ValueError) as exc:
            raise SearchBackendError(f"Malformed Solr response: {exc}") from exc
        return ResultsList(results=nodes, total_found=total, offset=offset, limit=limit)

    def schema_fields(self) -> Set[str]:
        payload = self._get_json(f"{self.base_url}/schema/fields", [("wt", "json")])
        entries = payload.get("fields")
        if not isinstance(entries, list):
            raise SearchBackendError("Solr schema response is missing the 'fields' list")
        return {str(entry["name"]) for entry in entries if isinstance(entry, Mapping) and "name" in entry}

    def _get_json(self, url: str, params: Sequence[tuple[str, Any]]) -> Dict[str, Any]:
        try:
            response = self.session.get(url, params=list(params), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SearchBackendError(f"Request to {url} failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise SearchBackendError(f"Invalid JSON returned by {url}") from exc
        if not isinstance(payload, dict):
            raise SearchBackendError(f"Unexpected payload returned by {url}")
        return payload


class StaticOntologySearch(BaseOntologySearch):
    """Lookup client over an in-memory collection of ontology nodes."""

    schema_name = "static"

    def __init__(
        self,
        nodes: Iterable[OntologyNode],
        *,
        fields: OntologyFields | None = None,
        schema: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fields)
        self._nodes: Dict[str, OntologyNode] = {}
        for node in nodes:
            self._nodes[node.identifier] = node
        self._schema = set(schema) if schema is not None else None

    @classmethod
    def from_records(
        cls, records: Iterable[Mapping[str, Any]], *, fields: OntologyFields | None = None
    ) -> "StaticOntologySearch":
        """Build the backend from raw documents; their keys form the schema."""

        names = fields or OntologyFields()
        nodes: List[OntologyNode] = []
        schema = {names.identifier_field}
        for record in records:
            if not isinstance(record, Mapping):
                raise ValueError(f"Ontology records must be mappings, got {type(record).__name__}")
            nodes.append(OntologyNode.from_document(record, names))
            schema.update(str(key) for key in record)
        return cls(nodes, fields=names, schema=schema)

    @classmethod
    def from_file(cls, path: Path | str, *, fields: OntologyFields | None = None) -> "StaticOntologySearch":
        """Load nodes from a JSON or YAML list (optionally wrapped in ``nodes``)."""

        source = Path(path)
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Unable to read ontology file {source}: {exc}") from exc
        try:
            if source.suffix.lower() in {".yaml", ".yml"}:
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (yaml.YAMLError, ValueError) as exc:
            raise ConfigurationError(f"Invalid ontology file {source}: {exc}") from exc
        if isinstance(data, Mapping):
            data = data.get("nodes")
        if not isinstance(data, list):
            raise ConfigurationError(f"Ontology file {source} must contain a list of nodes")
        try:
            return cls.from_records(data, fields=fields)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid ontology record in {source}: {exc}") from exc

    def search_ontology(
        self, query: str, filters: Sequence[str], offset: int, limit: int
    ) -> ResultsList:
        if query and query != MATCH_ALL_QUERY:
            raise SearchBackendError(f"Unsupported query for static backend: {query!r}")
        predicates = []
        for expression in filters:
            try:
                field_name, identifiers = parse_filter_string(expression)
            except ValueError as exc:
                raise SearchBackendError(str(exc)) from exc
            predicates.append(self._predicate(field_name, set(identifiers)))

        matches = [node for node in self._nodes.values() if all(check(node) for check in predicates)]
        start = max(0, offset)
        page = matches[start : start + max(0, limit)]
        logger.debug("Static lookup matched %d nodes, returning %d", len(matches), len(page))
        return ResultsList(results=page, total_found=len(matches), offset=offset, limit=limit)

    def schema_fields(self) -> Set[str]:
        if self._schema is not None:
            return set(self._schema)
        return {
            self.fields.identifier_field,
            self.fields.child_field,
            self.fields.label_field,
            self.fields.short_form_field,
        }

    def _predicate(self, field_name: str, identifiers: Set[str]):
        if field_name == self.fields.identifier_field:
            return lambda node: node.identifier in identifiers
        if field_name == self.fields.child_field:
            return lambda node: any(child in identifiers for child in node.child_identifiers)
        raise SearchBackendError(f"Static backend cannot filter on field '{field_name}'")


def build_search_client(
    config: Mapping[str, Any] | None,
    *,
    fields: OntologyFields | None = None,
    base_path: Path | None = None,
) -> BaseOntologySearch:
    """Create a lookup client from the ``backend`` configuration section."""

    backend = dict(config or {})
    backend_type = str(backend.get("type", "solr")).strip().lower()
    if backend_type == "solr":
        timeout = backend.get("timeout", 30.0)
        try:
            timeout_value = None if timeout is None else float(timeout)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid backend timeout: {timeout!r}") from exc
        return SolrOntologySearch(str(backend.get("base_url") or ""), fields=fields, timeout=timeout_value)
    if backend_type == "static":
        raw_path = backend.get("path")
        if not raw_path:
            raise ConfigurationError("The static backend requires a 'path' to an ontology file")
        path = Path(str(raw_path))
        if not path.is_absolute() and base_path is not None:
            path = base_path / path
        return StaticOntologySearch.from_file(path, fields=fields)
    raise ConfigurationError(f"Unknown backend type '{backend_type}'")


__all__ = [
    "BaseOntologySearch",
    "MATCH_ALL_QUERY",
    "ResultsList",
    "SearchBackendError",
    "SolrOntologySearch",
    "StaticOntologySearch",
    "build_search_client",
]
