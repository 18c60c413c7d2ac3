"""Filter expressions used to look up ontology nodes by identifier.

The lookup client receives filters of the form
``field:("id1" OR "id2" OR ... OR "idN")``.  Identifiers are quoted verbatim:
embedded double quotes are not escaped, so callers must only pass identifiers
that are safe inside a quoted term (URIs and CURIEs always are).
"""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple

_FILTER_PATTERN = re.compile(r"^\s*(?P<field>[^\s:()]+):\((?P<body>.*)\)\s*$", flags=re.DOTALL)
_TERM_PATTERN = re.compile(r'"([^"]*)"')
_SEPARATOR = " OR "


def build_filter_string(field: str, identifiers: Iterable[str]) -> str:
    """Build a filter string matching any of ``identifiers`` in ``field``."""

    if not field:
        raise ValueError("A field name is required to build a filter")
    terms = [f'"{identifier}"' for identifier in identifiers]
    if not terms:
        raise ValueError(f"Cannot build a filter on '{field}' without identifiers")
    return f"{field}:({' OR '.join(terms)})"


def parse_filter_string(expression: str) -> Tuple[str, List[str]]:
    """Split a filter produced by :func:`build_filter_string` into its parts."""

    match = _FILTER_PATTERN.match(expression or "")
    if match is None:
        raise ValueError(f"Unsupported filter expression: {expression!r}")
    identifiers: List[str] = []
    for part in match.group("body").split(_SEPARATOR):
        term = _TERM_PATTERN.fullmatch(part.strip())
        if term is None:
            raise ValueError(f"Unsupported filter expression: {expression!r}")
        identifiers.append(term.group(1))
    return match.group("field"), identifiers


__all__ = ["build_filter_string", "parse_filter_string"]
