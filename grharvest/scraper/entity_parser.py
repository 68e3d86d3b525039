"""Book extraction from the Next.js payload embedded in book pages.

The payload carries a normalized Apollo cache under
``props.pageProps.apolloState``: a flat map from ``Type:id`` keys to node
maps, where nodes point at each other with ``{"__ref": "Type:id"}``. The
shape is checked step by step before anything is read, and references are
resolved with plain lookups into that map.
"""
from __future__ import annotations

import html
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from .logging_utils import _scraper_event

ApolloState = Dict[str, Dict[str, Any]]

_BR_PATTERN = re.compile(r"<br\s*/?>", re.I)
_TAG_PATTERN = re.compile(r"<[^>]*>?")


@dataclass
class Book:
    id: str
    title: str
    legacy_id: Optional[int] = None
    title_complete: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = None
    language: Optional[str] = None
    format: Optional[str] = None
    cover_image: Optional[str] = None
    web_url: Optional[str] = None
    average_rating: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Book":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


class _ShapeError(ValueError):
    pass


def _expect_mapping(value: Any, path: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise _ShapeError(f"{path} is not an object")
    return value


def _expect_apollo_state(payload: Any) -> ApolloState:
    root = _expect_mapping(payload, "payload")
    props = _expect_mapping(root.get("props"), "props")
    page_props = _expect_mapping(props.get("pageProps"), "props.pageProps")
    state = _expect_mapping(page_props.get("apolloState"), "props.pageProps.apolloState")

    nodes: ApolloState = {}
    for key, node in state.items():
        # ROOT_QUERY and similar entries are still maps; anything else is
        # not a node and is left out of the adjacency map.
        if isinstance(key, str) and isinstance(node, dict):
            nodes[key] = node
    return nodes


def _ref_key(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        ref = value.get("__ref")
        if isinstance(ref, str) and ref:
            return ref
    return None


def resolve_ref(state: ApolloState, value: Any) -> Optional[Dict[str, Any]]:
    """Return the node a ``{"__ref": ...}`` value points at, if present."""

    key = _ref_key(value)
    if key is None:
        return None
    return state.get(key)


def _find_primary_node(state: ApolloState, type_prefix: str, required: tuple[str, ...]) -> Optional[Dict[str, Any]]:
    for key, node in state.items():
        if not key.startswith(f"{type_prefix}:"):
            continue
        if all(node.get(field) for field in required):
            return node
    return None


def clean_description(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value:
        return None
    text = _BR_PATTERN.sub("\n", value)
    text = _TAG_PATTERN.sub("", text)
    return html.unescape(text).strip() or None


def _get_path(node: Mapping[str, Any], *keys: str) -> Any:
    current: Any = node
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def parse_book_data(payload: Any) -> Optional[Book]:
    """Return the primary ``Book`` in ``payload`` or ``None`` when absent.

    Never raises on malformed input.
    """

    try:
        state = _expect_apollo_state(payload)
    except _ShapeError as exc:
        _scraper_event("parse", phase="book_shape_invalid", error=str(exc))
        return None

    data = _find_primary_node(state, "Book", ("title", "titleComplete"))
    if data is None:
        return None

    author = resolve_ref(state, _get_path(data, "primaryContributorEdge", "node")) or {}
    work = resolve_ref(state, data.get("work")) or {}

    legacy_id = data.get("legacyId")
    return Book(
        id=str(legacy_id) if legacy_id is not None else "",
        title=str(data.get("title") or ""),
        legacy_id=_as_int(work.get("legacyId")),
        title_complete=_as_str(data.get("titleComplete")),
        author=_as_str(author.get("name")),
        description=clean_description(data.get("description")),
        page_count=_as_int(_get_path(data, "details", "numPages")),
        language=_as_str(_get_path(data, "details", "language", "name")),
        format=_as_str(_get_path(data, "details", "format")),
        cover_image=_as_str(data.get("imageUrl")),
        web_url=_as_str(data.get("webUrl")),
        average_rating=_as_float(_get_path(work, "stats", "averageRating")),
    )


__all__ = ["Book", "parse_book_data", "resolve_ref", "clean_description"]
