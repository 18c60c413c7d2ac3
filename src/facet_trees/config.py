"""Configuration helpers for facet tree building.

Three layers of configuration feed the builder:

* request-scoped facet parameters (:class:`FacetTreeParameters`) naming the
  facet field that holds ontology identifiers and, optionally, the field used
  for labels;
* the ontology backend's field names (:class:`OntologyFields`);
* tuning knobs for the closure resolver (:class:`BuilderSettings`).

Problems are reported as :class:`ConfigurationError` (or its subclass
:class:`SchemaError` when a field is unknown to the backend) before any tree
is built, so callers can surface them without partial results.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping

import yaml

NODE_FIELD_PARAM = "nodeField"
LABEL_FIELD_PARAM = "labelField"
KEY_VALUE_PARAM = "v"


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or malformed."""


class SchemaError(ConfigurationError):
    """Raised when a configured field is not part of the backend schema."""


@dataclass(frozen=True)
class FacetTreeParameters:
    """Facet parameters supplied with a search request."""

    node_field: str
    label_field: str | None = None

    @classmethod
    def from_local_params(cls, params: Mapping[str, Any] | None) -> "FacetTreeParameters":
        """Parse facet parameters, falling back to the key value for the node field."""

        if params is None:
            raise ConfigurationError("Missing facet tree parameters")
        node_field = _clean(params.get(NODE_FIELD_PARAM))
        if node_field is None:
            node_field = _clean(params.get(KEY_VALUE_PARAM))
            if node_field is None:
                raise ConfigurationError(f"No node field defined in {dict(params)}")
        return cls(node_field=node_field, label_field=_clean(params.get(LABEL_FIELD_PARAM)))


@dataclass(frozen=True)
class OntologyFields:
    """Field names used by ontology documents in the lookup backend."""

    identifier_field: str = "uri"
    child_field: str = "child_uris"
    label_field: str = "label"
    short_form_field: str = "short_form"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "OntologyFields":
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigurationError("The 'fields' section must be a mapping")
        defaults = cls()
        values: Dict[str, str] = {}
        for name in ("identifier_field", "child_field", "label_field", "short_form_field"):
            raw = data.get(name, getattr(defaults, name))
            value = _clean(raw)
            if value is None:
                raise ConfigurationError(f"Field name '{name}' must be a non-empty string")
            values[name] = value
        unknown = sorted(set(data) - set(values))
        if unknown:
            raise ConfigurationError(f"Unknown field settings: {', '.join(unknown)}")
        return cls(**values)

    def with_label_field(self, label_field: str | None) -> "OntologyFields":
        if not label_field:
            return self
        return replace(self, label_field=label_field)


@dataclass(frozen=True)
class BuilderSettings:
    """Limits applied while resolving the ancestor closure."""

    max_depth: int = 100
    max_filter_terms: int = 1024
    page_size: int | None = None

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ConfigurationError("max_depth must be >= 1")
        if self.max_filter_terms < 1:
            raise ConfigurationError("max_filter_terms must be >= 1")
        if self.page_size is not None and self.page_size < 1:
            raise ConfigurationError("page_size must be >= 1 when set")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "BuilderSettings":
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigurationError("The 'builder' section must be a mapping")
        defaults = cls()
        page_size = data.get("page_size", defaults.page_size)
        return cls(
            max_depth=_parse_int("max_depth", data.get("max_depth", defaults.max_depth)),
            max_filter_terms=_parse_int(
                "max_filter_terms", data.get("max_filter_terms", defaults.max_filter_terms)
            ),
            page_size=None if page_size is None else _parse_int("page_size", page_size),
        )


def load_config(path: Path | str) -> Dict[str, Any]:
    """Load a YAML or JSON configuration file into a dictionary."""

    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read configuration file {config_path}: {exc}") from exc
    try:
        if config_path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration file {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return data


def check_fields_in_schema(search: Any, fields: Iterable[str]) -> None:
    """Ensure every field in ``fields`` is known to the backend schema."""

    ensure_fields_known(search.schema_fields(), fields, getattr(search, "schema_name", "ontology"))


def ensure_fields_known(available: Iterable[str], fields: Iterable[str], schema_name: str) -> None:
    """Raise :class:`SchemaError` for the first field missing from ``available``."""

    known = set(available)
    for field in fields:
        if field not in known:
            raise SchemaError(f'"{field}" is not in schema {schema_name}')


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


__all__ = [
    "BuilderSettings",
    "ConfigurationError",
    "FacetTreeParameters",
    "KEY_VALUE_PARAM",
    "LABEL_FIELD_PARAM",
    "NODE_FIELD_PARAM",
    "OntologyFields",
    "SchemaError",
    "check_fields_in_schema",
    "ensure_fields_known",
    "load_config",
]
