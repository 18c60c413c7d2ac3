"""Hierarchical facet trees built from flat ontology facet counts."""

from .config import (
    BuilderSettings,
    ConfigurationError,
    FacetTreeParameters,
    OntologyFields,
    SchemaError,
    check_fields_in_schema,
    ensure_fields_known,
    load_config,
)
from .facets import (
    AccumulatedEntry,
    FacetEntry,
    extract_facet_entries,
    facet_field_names,
    format_facet_tree,
    parse_facet_counts,
)
from .ontology import OntologyNode
from .query import build_filter_string, parse_filter_string
from .search import (
    BaseOntologySearch,
    ResultsList,
    SearchBackendError,
    SolrOntologySearch,
    StaticOntologySearch,
    build_search_client,
)
from .tree_builder import (
    ChildNodeFacetTreeBuilder,
    build_accumulated_entry_tree,
    find_top_level_nodes,
)

__all__ = [
    "AccumulatedEntry",
    "BaseOntologySearch",
    "BuilderSettings",
    "ChildNodeFacetTreeBuilder",
    "ConfigurationError",
    "FacetEntry",
    "FacetTreeParameters",
    "OntologyFields",
    "OntologyNode",
    "ResultsList",
    "SchemaError",
    "SearchBackendError",
    "SolrOntologySearch",
    "StaticOntologySearch",
    "build_accumulated_entry_tree",
    "build_filter_string",
    "build_search_client",
    "check_fields_in_schema",
    "ensure_fields_known",
    "extract_facet_entries",
    "facet_field_names",
    "find_top_level_nodes",
    "format_facet_tree",
    "load_config",
    "parse_facet_counts",
    "parse_filter_string",
]
