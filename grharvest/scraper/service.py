"""Lookups against Goodreads pages built on the fetch orchestrator."""
from __future__ import annotations

import json
from typing import Any, Optional

from playwright.sync_api import Page

from . import config
from .cache_store import ArtifactKind, CacheStore
from .editions import Edition
from .entity_parser import Book, parse_book_data
from .errors import InvalidInput, NavigationError
from .fetcher import CacheHit, FetchOrchestrator, FetchOutcome, NotFound, Ok
from .filters import (
    EditionsFilters,
    FilterSelection,
    editions_url,
    listing_url,
    parse_filter_options,
)
from .harvester import Harvester, HarvestResult
from .logging_utils import EventSink, _scraper_event
from .mentions import Blog, parse_blog_html
from .utils import dump_json, is_valid_book_id, log_line


def _loads(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _is_book_payload(raw: str) -> bool:
    return parse_book_data(_loads(raw)) is not None


def _is_json_object(raw: str) -> bool:
    return isinstance(_loads(raw), dict)


class GoodreadsService:
    def __init__(
        self,
        page: Page,
        cache: Optional[CacheStore] = None,
        *,
        events: Optional[EventSink] = None,
        harvester: Optional[Harvester] = None,
    ) -> None:
        self._emit = events or _scraper_event
        self.cache = cache or CacheStore(events=self._emit)
        self.orchestrator = FetchOrchestrator(page, self.cache, events=self._emit)
        self.harvester = harvester or Harvester(self.orchestrator, self.cache, events=self._emit)

    def _require_success(self, outcome: FetchOutcome, url: str) -> None:
        """Raise for server error pages so nothing derived from them is cached."""

        if isinstance(outcome, Ok) and not outcome.is_success:
            log_line(f"! Unsuccessful HTTP response {outcome.http_status} for {url}")
            self._emit("fetch", phase="unsuccessful", url=url, http_status=outcome.http_status)
            raise NavigationError(
                f"Unsuccessful HTTP response {outcome.http_status} for {url}",
                http_status=outcome.http_status,
            )

    def look_book(self, book_id: str) -> Optional[Book]:
        """Return the book behind ``book_id`` or ``None`` when it does not exist."""

        if not is_valid_book_id(book_id):
            raise InvalidInput(f"Invalid Book ID format: {book_id!r}")

        url = config.book_url(book_id)
        log_line(f"🔎 Looking up book {book_id}...")
        outcome = self.orchestrator.fetch(
            url,
            cache_kind=ArtifactKind.RAW_JSON,
            embedded_script_id=config.EMBEDDED_DATA_SCRIPT_ID,
            accept=_is_book_payload,
        )

        if isinstance(outcome, NotFound):
            return None
        if isinstance(outcome, CacheHit):
            return parse_book_data(_loads(outcome.content))
        self._require_success(outcome, url)

        book = None
        if isinstance(outcome, Ok) and outcome.embedded_json is not None:
            book = parse_book_data(outcome.embedded_json)
        if book is None:
            log_line(f"! Could not extract book data from {url}")
            self._emit("parse", phase="book_missing", url=url)
            return None

        self.cache.put(url, ArtifactKind.DERIVED_JSON, dump_json(book.to_dict()), overwrite=True)
        return book

    def look_blog(self, blog_id: str) -> Optional[Blog]:
        if not is_valid_book_id(blog_id):
            raise InvalidInput(f"Invalid Blog ID format: {blog_id!r}")

        url = config.blog_url(blog_id)
        log_line(f"🔎 Looking up blog {blog_id}...")
        outcome = self.orchestrator.fetch(
            url, cache_kind=ArtifactKind.DERIVED_JSON, accept=_is_json_object
        )

        if isinstance(outcome, NotFound):
            return None
        if isinstance(outcome, CacheHit):
            return Blog.from_dict(_loads(outcome.content))
        self._require_success(outcome, url)

        blog = parse_blog_html(outcome.raw_html, url, blog_id=blog_id)
        if blog is None:
            log_line(f"! Could not parse blog {blog_id}")
            return None

        self.cache.put(url, ArtifactKind.DERIVED_JSON, dump_json(blog.to_dict()), overwrite=True)
        log_line(f"✅ Blog parsed ({len(blog.mentions)} books found).")
        return blog

    def scrape_editions_filters(self, work_id: Any) -> Optional[EditionsFilters]:
        """Discover and cache the listing's sort/format/language options."""

        url = editions_url(work_id)
        outcome = self.orchestrator.fetch(
            url, cache_kind=ArtifactKind.DERIVED_JSON, accept=_is_json_object
        )

        if isinstance(outcome, NotFound):
            return None
        if isinstance(outcome, CacheHit):
            return EditionsFilters.from_dict(_loads(outcome.content))
        self._require_success(outcome, url)

        filters = parse_filter_options(outcome.raw_html)
        self.cache.put(url, ArtifactKind.DERIVED_JSON, dump_json(filters.to_dict()), overwrite=True)
        return filters

    def harvest_editions(self, work_id: Any, selection: FilterSelection) -> Optional[HarvestResult]:
        return self.harvester.harvest(str(work_id), selection)

    def cached_editions(self, work_id: Any, selection: FilterSelection) -> Optional[list[Edition]]:
        """Return the editions stored by the last harvest of this listing."""

        raw = self.cache.get(listing_url(work_id, selection), ArtifactKind.EDITION_LIST)
        if raw is None:
            return None
        data = _loads(raw)
        if not isinstance(data, list):
            return None
        return [Edition.from_dict(item) for item in data if isinstance(item, dict)]


__all__ = ["GoodreadsService"]
