"""Row and pagination parsing for the work editions listing.

Each listing entry looks roughly like::

    <div class="elementList">
      <div class="leftAlignedImage"><a href="/book/show/1"><img src="..."></a></div>
      <div class="editionData">
        <div class="dataRow"><a class="bookTitle" href="/book/show/1">Title</a></div>
        <div class="dataRow">Published March 2010 by Tor Books</div>
        <div class="dataRow">Paperback, 541 pages</div>
        <div class="moreDetails">
          <div class="dataRow">
            <div class="dataTitle">ISBN:</div>
            <div class="dataValue">9780765350381 (ISBN10: 0765350386)</div>
          </div>
          ...
"""
from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .errors import ParseFailure
from .utils import absolute_url, collapse_whitespace

_PUBLISHED_BY = re.compile(r"Published\s+(?P<when>.+?)\s+by\s+(?P<who>.+)", re.I)
_PUBLISHED_ONLY = re.compile(r"Published\s+(?P<when>.+)", re.I)
_FIRST_PUBLISHED = re.compile(r"\s*\(first published[^)]*\)\s*$", re.I)
_ISBN13 = re.compile(r"\b(\d{13})\b")
_ISBN10 = re.compile(r"ISBN10:\s*([0-9Xx]{10})")
_LEADING_DECIMAL = re.compile(r"^\s*(\d+(?:\.\d+)?)")
_SHOWING = re.compile(r"Showing\s+([\d,]+)\s*-\s*([\d,]+)\s+of\s+([\d,]+)", re.I)


@dataclass
class Edition:
    title: str
    link: str
    format: Optional[str] = None
    page_count: Optional[int] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    isbn: Optional[str] = None
    isbn10: Optional[str] = None
    asin: Optional[str] = None
    language: Optional[str] = None
    average_rating: Optional[float] = None
    cover_image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Edition":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


@dataclass(frozen=True)
class PaginationState:
    has_next_page: bool
    total_pages: int


def _digits(value: str) -> int:
    return int(value.replace(",", ""))


def parse_basic_info(text: str, edition: Edition) -> None:
    """Fill format and page count from a line like ``Paperback, 541 pages``."""

    for fragment in text.split(","):
        fragment = fragment.strip()
        if not fragment:
            continue
        has_digits = any(ch.isdigit() for ch in fragment)
        if has_digits and "pages" in fragment.lower():
            match = re.search(r"(\d+)", fragment)
            if match:
                edition.page_count = int(match.group(1))
        elif not has_digits and edition.format is None:
            edition.format = fragment


def parse_published(text: str, edition: Edition) -> None:
    text = _FIRST_PUBLISHED.sub("", collapse_whitespace(text))
    match = _PUBLISHED_BY.search(text)
    if match:
        edition.published_date = match.group("when").strip()
        edition.publisher = match.group("who").strip()
        return
    match = _PUBLISHED_ONLY.search(text)
    if match:
        edition.published_date = match.group("when").strip()


def _apply_detail(label: str, value: str, edition: Edition) -> None:
    label = label.lower()
    if "isbn" in label:
        match = _ISBN13.search(value)
        if match:
            edition.isbn = match.group(1)
        match = _ISBN10.search(value)
        if match:
            edition.isbn10 = match.group(1)
    elif "asin" in label:
        edition.asin = value.split()[0] if value else None
    elif "edition language" in label:
        edition.language = value or None
    elif "average rating" in label:
        match = _LEADING_DECIMAL.match(value)
        if match:
            edition.average_rating = float(match.group(1))


def _parse_entry(entry: Tag, base_url: str) -> Optional[Edition]:
    anchor = entry.select_one("a.bookTitle")
    title = collapse_whitespace(anchor.get_text()) if anchor else ""
    if anchor is None or not title:
        return None

    edition = Edition(title=title, link=absolute_url(anchor.get("href") or base_url))

    image = entry.select_one(".leftAlignedImage img")
    if image is not None and image.get("src"):
        edition.cover_image = image.get("src")

    data = entry.select_one(".editionData") or entry
    basic_seen = False
    for row in data.find_all("div", class_="dataRow", recursive=False):
        if row.select_one("a.bookTitle") is not None:
            continue
        text = collapse_whitespace(row.get_text(" "))
        if not text:
            continue
        if text.lower().startswith("published"):
            parse_published(text, edition)
        elif not basic_seen:
            parse_basic_info(text, edition)
            basic_seen = True

    for detail in data.select(".moreDetails .dataRow"):
        label_el = detail.select_one(".dataTitle")
        value_el = detail.select_one(".dataValue")
        if label_el is None or value_el is None:
            continue
        _apply_detail(
            collapse_whitespace(label_el.get_text()),
            collapse_whitespace(value_el.get_text(" ")),
            edition,
        )

    return edition


def parse_edition_rows(html: str, base_url: str = "") -> List[Edition]:
    """Return every titled listing entry on the page, in document order."""

    try:
        soup = BeautifulSoup(html, "html5lib")
        return [
            edition
            for edition in (_parse_entry(entry, base_url) for entry in soup.select(".elementList"))
            if edition is not None
        ]
    except (AttributeError, TypeError, ValueError) as exc:
        raise ParseFailure(f"Unable to parse edition rows: {exc}") from exc


def parse_pagination(html: str, items_per_page: Optional[int] = None) -> PaginationState:
    """Derive the page count as the larger of the link and item-count signals."""

    soup = BeautifulSoup(html, "html5lib")

    max_link = 1
    for node in soup.select(".pagination a, .pagination em.current, .pagination .current"):
        text = node.get_text(strip=True)
        if text.isdigit():
            max_link = max(max_link, int(text))

    estimate = 0
    match = _SHOWING.search(soup.get_text(" "))
    if match:
        first, last, total = (_digits(group) for group in match.groups())
        per_page = items_per_page
        if not per_page and last < total:
            # A short last page says nothing about the page size.
            per_page = last - first + 1
        if per_page and per_page > 0:
            estimate = math.ceil(total / per_page)

    has_next = soup.select_one(".pagination a.next_page, a.next_page[rel=next]") is not None
    return PaginationState(has_next_page=has_next, total_pages=max(1, max_link, estimate))


__all__ = [
    "Edition",
    "PaginationState",
    "parse_basic_info",
    "parse_published",
    "parse_edition_rows",
    "parse_pagination",
]
