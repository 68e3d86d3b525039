"""Sort and filter options of the work editions listing."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from . import config
from .errors import InvalidFilter, InvalidInput
from .utils import log_line

# Listing ``<select>`` names keyed by the selection field they constrain.
FILTER_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("sort", "sort"),
    ("format", "filter_by_format"),
    ("language", "filter_by_language"),
)

CONFIRMATION_MARKER: Tuple[str, str] = ("utf8", "✓")


@dataclass(frozen=True)
class FilterOption:
    value: str
    label: str
    selected: bool = False


@dataclass
class EditionsFilters:
    sort: List[FilterOption] = field(default_factory=list)
    format: List[FilterOption] = field(default_factory=list)
    language: List[FilterOption] = field(default_factory=list)

    def options_for(self, name: str) -> List[FilterOption]:
        return getattr(self, name)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EditionsFilters":
        def _options(raw: Any) -> List[FilterOption]:
            if not isinstance(raw, list):
                return []
            return [
                FilterOption(
                    value=str(item.get("value", "")),
                    label=str(item.get("label", "")),
                    selected=bool(item.get("selected", False)),
                )
                for item in raw
                if isinstance(item, dict)
            ]

        return cls(
            sort=_options(data.get("sort")),
            format=_options(data.get("format")),
            language=_options(data.get("language")),
        )


@dataclass(frozen=True)
class FilterSelection:
    # None means the caller left the sort to the listing default.
    sort: Optional[str] = None
    format: Optional[str] = None
    language: Optional[str] = None

    @property
    def effective_sort(self) -> str:
        return (self.sort or "").strip() or config.DEFAULT_SORT

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "sort": self.effective_sort,
            "format": self.format or None,
            "language": self.language or None,
        }


def parse_filter_options(html: str) -> EditionsFilters:
    """Read the sort/format/language dropdowns from an editions page."""

    soup = BeautifulSoup(html, "html5lib")

    def _extract(select_name: str) -> List[FilterOption]:
        select = soup.select_one(f'select[name="{select_name}"]')
        if select is None:
            return []
        options: List[FilterOption] = []
        for opt in select.find_all("option"):
            value = (opt.get("value") or "").strip()
            if not value:
                # Placeholder entries such as "Select format".
                continue
            options.append(
                FilterOption(
                    value=value,
                    label=opt.get_text(strip=True),
                    selected=opt.has_attr("selected"),
                )
            )
        return options

    filters = EditionsFilters(
        **{name: _extract(select_name) for name, select_name in FILTER_FIELDS}
    )
    log_line(
        "[FILTERS] sort=%d format=%d language=%d"
        % (len(filters.sort), len(filters.format), len(filters.language))
    )
    return filters


def validate_filter_selection(filters: EditionsFilters, selection: FilterSelection) -> None:
    """Raise :class:`InvalidFilter` for the first unknown non-empty value."""

    supplied = {
        "sort": selection.sort,
        "format": selection.format,
        "language": selection.language,
    }
    for name, _ in FILTER_FIELDS:
        value = (supplied[name] or "").strip()
        if not value:
            continue
        allowed = [option.value for option in filters.options_for(name)]
        if value not in allowed:
            raise InvalidFilter(name, value, allowed)


def build_listing_query(selection: FilterSelection, page: int = 1) -> List[Tuple[str, str]]:
    """Return the canonical, ordered query parameters of a listing page."""

    params: List[Tuple[str, str]] = [CONFIRMATION_MARKER, ("sort", selection.effective_sort)]
    if selection.format:
        params.append(("filter_by_format", selection.format))
    if selection.language:
        params.append(("filter_by_language", selection.language))
    if page > 1:
        params.append(("page", str(page)))
    return params


def _require_work_id(work_id: Any) -> str:
    value = str(work_id if work_id is not None else "").strip()
    if not value.isdigit():
        raise InvalidInput(f"Invalid work id: {work_id!r}")
    return value


def editions_url(work_id: Any) -> str:
    """Unfiltered listing used for filter discovery."""

    return f"{config.BASE_URL}{config.WORK_EDITIONS_PATH}{_require_work_id(work_id)}"


def listing_url(work_id: Any, selection: FilterSelection, page: int = 1) -> str:
    query = urlencode(build_listing_query(selection, page))
    return f"{editions_url(work_id)}?{query}"


__all__ = [
    "FilterOption",
    "EditionsFilters",
    "FilterSelection",
    "parse_filter_options",
    "validate_filter_selection",
    "build_listing_query",
    "editions_url",
    "listing_url",
]
