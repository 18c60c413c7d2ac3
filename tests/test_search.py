from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
import requests

from facet_trees.config import ConfigurationError, OntologyFields
from facet_trees.query import build_filter_string
from facet_trees.search import (
    SearchBackendError,
    SolrOntologySearch,
    StaticOntologySearch,
    build_search_client,
)


class _DummyResponse:
    def __init__(self, payload: Any, *, status_error: Exception | None = None):
        self._payload = payload
        self._status_error = status_error

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self) -> None:
        if self._status_error is not None:
            raise self._status_error


def _records() -> list[dict[str, Any]]:
    return [
        {"uri": "http://x/root", "label": ["Root"], "child_uris": ["http://x/a", "http://x/b"]},
        {"uri": "http://x/a", "label": "A", "short_form": ["X_A"]},
        {"uri": "http://x/b", "short_form": "X_B", "child_uris": ["http://x/c"]},
        {"uri": "http://x/c"},
    ]


def test_solr_search_sends_filters_and_parses_documents() -> None:
    captured: dict[str, Any] = {}

    def fake_get(url, params=None, timeout=None):
        captured["url"] = url
        captured["params"] = params
        captured["timeout"] = timeout
        return _DummyResponse(
            {
                "response": {
                    "numFound": 3,
                    "docs": [
                        {"uri": "http://x/root", "label": ["Root"], "child_uris": ["http://x/a"]},
                    ],
                }
            }
        )

    search = SolrOntologySearch(
        "http://localhost:8983/solr/ontology/",
        timeout=5.0,
        session=SimpleNamespace(get=fake_get),
    )
    fq = build_filter_string("child_uris", ["http://x/a"])
    page = search.search_ontology("*:*", [fq], 0, 1)

    assert captured["url"] == "http://localhost:8983/solr/ontology/select"
    assert ("fq", fq) in captured["params"]
    assert ("q", "*:*") in captured["params"]
    assert ("start", 0) in captured["params"]
    assert ("rows", 1) in captured["params"]
    assert captured["timeout"] == 5.0
    assert page.total_found == 3
    assert page.results[0].identifier == "http://x/root"
    assert page.results[0].child_identifiers == ("http://x/a",)
    assert page.exhausted is False
    assert search.schema_name == "ontology"


def test_solr_search_uses_configured_field_names() -> None:
    fields = OntologyFields(identifier_field="id", child_field="kids", label_field="name", short_form_field="sf")

    def fake_get(url, params=None, timeout=None):
        return _DummyResponse(
            {"response": {"numFound": 1, "docs": [{"id": "n1", "name": "Node", "kids": ["n2"]}]}}
        )

    search = SolrOntologySearch("http://solr/core", fields=fields, session=SimpleNamespace(get=fake_get))
    page = search.search_ontology("*:*", [], 0, 10)

    assert page.results[0].identifier == "n1"
    assert page.results[0].label == "Node"
    assert page.results[0].child_identifiers == ("n2",)


def test_solr_search_wraps_transport_errors() -> None:
    def fake_get(url, params=None, timeout=None):
        raise requests.ConnectionError("connection refused")

    search = SolrOntologySearch("http://solr/core", session=SimpleNamespace(get=fake_get))
    with pytest.raises(SearchBackendError):
        search.search_ontology("*:*", [], 0, 10)


def test_solr_search_wraps_http_status_errors() -> None:
    def fake_get(url, params=None, timeout=None):
        return _DummyResponse({}, status_error=requests.HTTPError("400 Client Error"))

    search = SolrOntologySearch("http://solr/core", session=SimpleNamespace(get=fake_get))
    with pytest.raises(SearchBackendError):
        search.search_ontology("*:*", [], 0, 10)


@pytest.mark.parametrize(
    "payload",
    [
        ValueError("not json"),
        {"error": {"msg": "undefined field"}},
        {"responseHeader": {}},
        {"response": {"numFound": 1, "docs": [{"label": "no identifier"}]}},
    ],
)
def test_solr_search_rejects_bad_payloads(payload: Any) -> None:
    def fake_get(url, params=None, timeout=None):
        return _DummyResponse(payload)

    search = SolrOntologySearch("http://solr/core", session=SimpleNamespace(get=fake_get))
    with pytest.raises(SearchBackendError):
        search.search_ontology("*:*", [], 0, 10)


def test_solr_schema_fields() -> None:
    def fake_get(url, params=None, timeout=None):
        assert url == "http://solr/core/schema/fields"
        return _DummyResponse({"fields": [{"name": "uri"}, {"name": "child_uris"}, {"type": "string"}]})

    search = SolrOntologySearch("http://solr/core", session=SimpleNamespace(get=fake_get))
    assert search.schema_fields() == {"uri", "child_uris"}
    assert search.schema_name == "core"


def test_solr_search_requires_base_url() -> None:
    with pytest.raises(ConfigurationError):
        SolrOntologySearch("", session=SimpleNamespace(get=None))


def test_static_search_filters_by_child_and_identifier() -> None:
    search = StaticOntologySearch.from_records(_records())

    parents = search.search_ontology("*:*", [build_filter_string("child_uris", ["http://x/c", "http://x/a"])], 0, 10)
    direct = search.search_ontology("*:*", [build_filter_string("uri", ["http://x/c"])], 0, 10)

    assert [node.identifier for node in parents.results] == ["http://x/root", "http://x/b"]
    assert parents.total_found == 2
    assert [node.identifier for node in direct.results] == ["http://x/c"]
    assert search.search_ontology("*:*", [], 0, 10).total_found == 4


def test_static_search_pages_results() -> None:
    search = StaticOntologySearch.from_records(_records())
    fq = build_filter_string("uri", ["http://x/a", "http://x/b", "http://x/c"])

    first = search.search_ontology("*:*", [fq], 0, 2)
    second = search.search_ontology("*:*", [fq], 2, 2)

    assert [node.identifier for node in first.results] == ["http://x/a", "http://x/b"]
    assert [node.identifier for node in second.results] == ["http://x/c"]
    assert first.total_found == second.total_found == 3
    assert second.exhausted is True


def test_static_search_rejects_unknown_fields_and_queries() -> None:
    search = StaticOntologySearch.from_records(_records())
    with pytest.raises(SearchBackendError):
        search.search_ontology("*:*", [build_filter_string("synonym", ["x"])], 0, 10)
    with pytest.raises(SearchBackendError):
        search.search_ontology("label:Root", [], 0, 10)
    with pytest.raises(SearchBackendError):
        search.search_ontology("*:*", ["uri:something"], 0, 10)


def test_static_search_loads_json_and_yaml_files(tmp_path: Path) -> None:
    json_path = tmp_path / "ontology.json"
    json_path.write_text(json.dumps({"nodes": _records()}), encoding="utf-8")
    yaml_path = tmp_path / "ontology.yaml"
    yaml_path.write_text(
        "- uri: n1\n  label: [Node one]\n  child_uris: [n2]\n- uri: n2\n",
        encoding="utf-8",
    )

    from_json = StaticOntologySearch.from_file(json_path)
    from_yaml = StaticOntologySearch.from_file(yaml_path)

    assert from_json.search_ontology("*:*", [], 0, 10).total_found == 4
    assert [node.identifier for node in from_yaml.search_ontology("*:*", [], 0, 10).results] == ["n1", "n2"]
    assert from_yaml.schema_fields() == {"uri", "child_uris", "label"}
    assert from_json.schema_fields() == {"uri", "child_uris", "label", "short_form"}


def test_static_search_reports_invalid_files(tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"nodes": {"uri": "x"}}), encoding="utf-8")
    with pytest.raises(ConfigurationError):
        StaticOntologySearch.from_file(bad)
    with pytest.raises(ConfigurationError):
        StaticOntologySearch.from_file(tmp_path / "missing.json")


def test_build_search_client_selects_backend(tmp_path: Path) -> None:
    data_path = tmp_path / "ontology.json"
    data_path.write_text(json.dumps(_records()), encoding="utf-8")

    static = build_search_client({"type": "static", "path": "ontology.json"}, base_path=tmp_path)
    solr = build_search_client({"type": "solr", "base_url": "http://solr/core", "timeout": "12"})

    assert isinstance(static, StaticOntologySearch)
    assert static.search_ontology("*:*", [], 0, 10).total_found == 4
    assert isinstance(solr, SolrOntologySearch)
    assert solr.timeout == 12.0
    with pytest.raises(ConfigurationError):
        build_search_client({"type": "elastic"})
    with pytest.raises(ConfigurationError):
        build_search_client({"type": "static"})
