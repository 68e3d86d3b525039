"""Multi-page walk of a filtered editions listing.

Filter discovery must have run for the work first: the cached option set is
what every requested filter value is checked against, and the check happens
before the first listing request. Pages after the first are fetched one at
a time with a randomized pause on every cache miss. A page that cannot be
loaded or parsed is skipped and recorded on the report; a blocked session
stops the walk.
"""
from __future__ import annotations

import json
import random
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from . import config
from .cache_store import ArtifactKind, CacheStore
from .editions import Edition, PaginationState, parse_edition_rows, parse_pagination
from .errors import MissingPrecondition, NavigationError, ParseFailure
from .fetcher import CacheHit, FetchOrchestrator, FetchOutcome, NotFound, Ok
from .filters import (
    EditionsFilters,
    FilterSelection,
    editions_url,
    listing_url,
    validate_filter_selection,
)
from .logging_utils import EventSink, _scraper_event
from .utils import dump_json, log_line


@dataclass
class HarvestReport:
    timestamp: str
    subject_id: str
    applied_filters: Dict[str, Optional[str]]
    total_pages_walked: int
    fetched_page_urls: List[str] = field(default_factory=list)
    total_editions_collected: int = 0
    skipped_page_urls: List[str] = field(default_factory=list)
    incomplete: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HarvestResult:
    listing_url: str
    editions: List[Edition]
    report: HarvestReport


def _page_content(outcome: FetchOutcome) -> Optional[str]:
    if isinstance(outcome, CacheHit):
        return outcome.content
    if isinstance(outcome, Ok) and outcome.is_success:
        return outcome.raw_html
    return None


class Harvester:
    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        cache: CacheStore,
        *,
        events: Optional[EventSink] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.cache = cache
        self._emit = events or _scraper_event
        self._sleep = sleep
        self._rng = rng or random.Random()

    def load_filters(self, work_id: str) -> EditionsFilters:
        """Return the cached option set for ``work_id`` or fail loudly."""

        raw = self.cache.get(editions_url(work_id), ArtifactKind.DERIVED_JSON)
        if raw is None:
            raise MissingPrecondition(
                f"No cached filter options for work {work_id}; run filter discovery first."
            )
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise MissingPrecondition(
                f"Cached filter options for work {work_id} are unreadable: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise MissingPrecondition(f"Cached filter options for work {work_id} are malformed.")
        return EditionsFilters.from_dict(data)

    def throttle_delay(self) -> float:
        return config.PAGE_DELAY_BASE_SECONDS + self._rng.uniform(0, config.PAGE_DELAY_JITTER_SECONDS)

    def harvest(self, work_id: str, selection: FilterSelection) -> Optional[HarvestResult]:
        work_id = str(work_id)
        filters = self.load_filters(work_id)
        validate_filter_selection(filters, selection)

        first_url = listing_url(work_id, selection)
        self._emit("harvest", phase="start", work_id=work_id, url=first_url, **selection.as_dict())

        outcome = self.orchestrator.fetch(first_url, force_raw=True)
        if isinstance(outcome, NotFound):
            log_line(f"[HARVEST] Listing for work {work_id} not found; nothing to harvest.")
            self._emit("harvest", phase="not_found", work_id=work_id, url=first_url)
            return None

        first_html = _page_content(outcome)
        if first_html is None:
            raise NavigationError(
                f"First listing page for work {work_id} did not load",
                http_status=getattr(outcome, "http_status", None),
            )

        editions: List[Edition] = list(parse_edition_rows(first_html, first_url))
        pagination: PaginationState = parse_pagination(first_html)
        fetched: List[str] = [first_url]
        skipped: List[str] = []
        log_line(
            f"[HARVEST] Page 1/{pagination.total_pages}: {len(editions)} editions for work {work_id}"
        )

        for page_number in range(2, pagination.total_pages + 1):
            page_url = listing_url(work_id, selection, page_number)
            rows = self._harvest_page(page_url, page_number, pagination.total_pages)
            if rows is None:
                skipped.append(page_url)
                continue
            fetched.append(page_url)
            editions.extend(rows)

        report = HarvestReport(
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            subject_id=work_id,
            applied_filters=selection.as_dict(),
            total_pages_walked=pagination.total_pages,
            fetched_page_urls=fetched,
            total_editions_collected=len(editions),
            skipped_page_urls=skipped,
            incomplete=bool(skipped),
        )

        self.cache.put(
            first_url,
            ArtifactKind.EDITION_LIST,
            dump_json([edition.to_dict() for edition in editions]),
            overwrite=True,
        )
        self.cache.put(first_url, ArtifactKind.FILTER_META, dump_json(report.to_dict()), overwrite=True)

        self._emit(
            "harvest",
            phase="end",
            work_id=work_id,
            pages=pagination.total_pages,
            fetched=len(fetched),
            skipped=len(skipped),
            editions=len(editions),
        )
        return HarvestResult(listing_url=first_url, editions=editions, report=report)

    def _harvest_page(self, page_url: str, page_number: int, total_pages: int) -> Optional[List[Edition]]:
        """Return the rows of one listing page, or ``None`` when it is skipped."""

        if not self.orchestrator.is_cached(page_url, ArtifactKind.RAW_HTML):
            delay = self.throttle_delay()
            self._emit("harvest", phase="throttle", page=page_number, seconds=round(delay, 2))
            self._sleep(delay)

        try:
            outcome = self.orchestrator.fetch(page_url, force_raw=True)
        except NavigationError as exc:
            self._skip(page_url, page_number, total_pages, str(exc))
            return None

        html = _page_content(outcome)
        if html is None:
            reason = type(outcome).__name__
            if isinstance(outcome, Ok):
                reason = f"HTTP {outcome.http_status}"
            self._skip(page_url, page_number, total_pages, reason)
            return None

        try:
            rows = parse_edition_rows(html, page_url)
        except ParseFailure as exc:
            self._skip(page_url, page_number, total_pages, str(exc))
            return None

        log_line(f"[HARVEST] Page {page_number}/{total_pages}: {len(rows)} editions")
        return rows

    def _skip(self, page_url: str, page_number: int, total_pages: int, reason: str) -> None:
        log_line(f"[HARVEST] Skipping page {page_number}/{total_pages} ({reason}): {page_url}")
        self._emit("harvest", phase="page_skipped", page=page_number, url=page_url, reason=reason)


__all__ = ["Harvester", "HarvestReport", "HarvestResult"]
