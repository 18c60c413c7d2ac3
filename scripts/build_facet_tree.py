"""Build a hierarchical facet tree from a facet count payload.

The facet payload is read from a JSON file.  It can be a full Solr response
(the counts are taken from ``facet_counts.facet_fields`` for the configured
node field) or any payload accepted by
:func:`facet_trees.facets.parse_facet_counts`.  The ontology backend, field
names and builder limits come from a YAML or JSON configuration file.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Mapping, Sequence

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from facet_trees import (
    BuilderSettings,
    ChildNodeFacetTreeBuilder,
    ConfigurationError,
    FacetEntry,
    FacetTreeParameters,
    OntologyFields,
    SearchBackendError,
    build_search_client,
    check_fields_in_schema,
    ensure_fields_known,
    extract_facet_entries,
    facet_field_names,
    format_facet_tree,
    load_config,
    parse_facet_counts,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", type=Path, required=True, help="YAML or JSON configuration file")
    parser.add_argument("--facets", type=Path, required=True, help="JSON file holding the facet counts")
    parser.add_argument(
        "--format",
        choices=("json", "text"),
        default="json",
        help="Output format (defaults to json)",
    )
    parser.add_argument(
        "--check-schema",
        action="store_true",
        help="Verify the configured ontology fields exist in the backend schema before building",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (default: WARNING).",
    )
    return parser


def load_facet_payload(path: Path) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Unable to read facet payload {path}: {exc}") from exc


def _is_search_response(payload: Any) -> bool:
    return isinstance(payload, Mapping) and "facet_counts" in payload


def check_node_field(payload: Any, node_field: str) -> None:
    """Ensure the node field is one of the fields faceted in ``payload``."""

    if not _is_search_response(payload):
        logger.warning("Facet payload carries no field names; node field %s not checked", node_field)
        return
    try:
        available = facet_field_names(payload)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid facet payload: {exc}") from exc
    ensure_fields_known(available, (node_field,), "facet response")


def facet_entries_from_payload(payload: Any, node_field: str) -> List[FacetEntry]:
    try:
        if _is_search_response(payload):
            return extract_facet_entries(payload, node_field)
        return parse_facet_counts(payload)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid facet payload: {exc}") from exc


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    try:
        config = load_config(args.config)
        params = FacetTreeParameters.from_local_params(config.get("facet"))
        fields = OntologyFields.from_mapping(config.get("fields")).with_label_field(params.label_field)
        settings = BuilderSettings.from_mapping(config.get("builder"))
        search = build_search_client(
            config.get("backend"),
            fields=fields,
            base_path=Path(args.config).resolve().parent,
        )
        payload = load_facet_payload(args.facets)
        if args.check_schema:
            # the label parameter, when set, is the ontology label field
            check_fields_in_schema(
                search, (fields.identifier_field, fields.child_field, fields.label_field)
            )
            check_node_field(payload, params.node_field)
        entries = facet_entries_from_payload(payload, params.node_field)
    except ConfigurationError as exc:
        logger.error("Configuration problem: %s", exc)
        return 2
    except SearchBackendError as exc:
        logger.error("Unable to reach the ontology backend: %s", exc)
        return 1

    builder = ChildNodeFacetTreeBuilder(search, fields=fields, settings=settings)
    forest = builder.build_facet_tree(entries)

    if args.format == "text":
        print(format_facet_tree(forest))
    else:
        print(json.dumps([entry.to_dict() for entry in forest], indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
