import json
import random
from datetime import date
from pathlib import Path
from typing import List

import pytest

from conftest import FakePage, Route
from grharvest.scraper.cache_store import ArtifactKind, CacheStore
from grharvest.scraper.errors import AccessBlocked, InvalidFilter, MissingPrecondition
from grharvest.scraper.fetcher import FetchOrchestrator
from grharvest.scraper.filters import EditionsFilters, FilterOption, FilterSelection, editions_url, listing_url
from grharvest.scraper.harvester import Harvester
from grharvest.scraper.utils import dump_json

WORK_ID = "8134945"
SELECTION = FilterSelection(language="spa")


def _listing_page(titles: List[str], total_pages: int) -> str:
    entries = "".join(
        f'<div class="elementList"><div class="editionData"><div class="dataRow">'
        f'<a class="bookTitle" href="/book/show/{i}">{title}</a></div>'
        f'<div class="dataRow">Paperback, 300 pages</div></div></div>'
        for i, title in enumerate(titles, start=1)
    )
    links = "".join(f'<a href="?page={n}">{n}</a>' for n in range(1, total_pages + 1))
    return f'<html><body>{entries}<div class="pagination">{links}</div></body></html>'


def _filters() -> EditionsFilters:
    return EditionsFilters(
        sort=[FilterOption("num_ratings", "most popular", True)],
        format=[FilterOption("Paperback", "Paperback")],
        language=[FilterOption("eng", "English"), FilterOption("spa", "Spanish")],
    )


class _Setup:
    def __init__(self, tmp_path: Path, routes, recorder=None, *, with_filters: bool = True) -> None:
        self.page = FakePage(routes)
        self.cache = CacheStore(tmp_path / "cache", clock=lambda: date(2024, 3, 1))
        self.orchestrator = FetchOrchestrator(self.page, self.cache)
        self.sleeps: List[float] = []
        self.harvester = Harvester(
            self.orchestrator,
            self.cache,
            events=recorder,
            sleep=self.sleeps.append,
            rng=random.Random(7),
        )
        if with_filters:
            self.cache.put(editions_url(WORK_ID), ArtifactKind.DERIVED_JSON, dump_json(_filters().to_dict()))


def test_two_page_harvest_concatenates_rows(tmp_path: Path, events) -> None:
    page1 = listing_url(WORK_ID, SELECTION)
    page2 = listing_url(WORK_ID, SELECTION, 2)
    setup = _Setup(
        tmp_path,
        {
            page1: Route(html=_listing_page(["A", "B"], 2)),
            page2: Route(html=_listing_page(["C"], 2)),
        },
        events,
    )

    result = setup.harvester.harvest(WORK_ID, SELECTION)

    assert result is not None
    assert [e.title for e in result.editions] == ["A", "B", "C"]
    assert result.listing_url == page1
    report = result.report
    assert report.fetched_page_urls == [page1, page2]
    assert report.total_pages_walked == 2
    assert report.total_editions_collected == 3
    assert report.applied_filters == {"sort": "num_ratings", "format": None, "language": "spa"}
    assert report.incomplete is False
    assert setup.page.visited == [page1, page2]

    stored = json.loads(setup.cache.get(page1, ArtifactKind.EDITION_LIST))
    assert [item["title"] for item in stored] == ["A", "B", "C"]
    meta = json.loads(setup.cache.get(page1, ArtifactKind.FILTER_META))
    assert meta["subject_id"] == WORK_ID
    assert events.phases("harvest")[0] == "start"
    assert events.phases("harvest")[-1] == "end"


def test_throttle_only_before_uncached_pages(tmp_path: Path) -> None:
    page1 = listing_url(WORK_ID, SELECTION)
    page2 = listing_url(WORK_ID, SELECTION, 2)
    page3 = listing_url(WORK_ID, SELECTION, 3)
    setup = _Setup(
        tmp_path,
        {
            page1: Route(html=_listing_page(["A"], 3)),
            page3: Route(html=_listing_page(["C"], 3)),
        },
    )
    setup.cache.put(page2, ArtifactKind.RAW_HTML, _listing_page(["B"], 3))

    result = setup.harvester.harvest(WORK_ID, SELECTION)

    assert [e.title for e in result.editions] == ["A", "B", "C"]
    assert page2 not in setup.page.visited
    assert len(setup.sleeps) == 1
    assert 2.0 <= setup.sleeps[0] <= 5.0


def test_missing_filters_is_a_precondition_error(tmp_path: Path) -> None:
    setup = _Setup(tmp_path, {}, with_filters=False)

    with pytest.raises(MissingPrecondition):
        setup.harvester.harvest(WORK_ID, SELECTION)

    assert setup.page.visited == []


def test_malformed_filters_is_a_precondition_error(tmp_path: Path) -> None:
    setup = _Setup(tmp_path, {}, with_filters=False)
    setup.cache.put(editions_url(WORK_ID), ArtifactKind.DERIVED_JSON, "[1, 2]")

    with pytest.raises(MissingPrecondition):
        setup.harvester.harvest(WORK_ID, SELECTION)


def test_invalid_filter_rejected_before_navigation(tmp_path: Path) -> None:
    setup = _Setup(tmp_path, {})

    with pytest.raises(InvalidFilter):
        setup.harvester.harvest(WORK_ID, FilterSelection(language="xxx"))

    assert setup.page.visited == []


def test_failed_page_is_skipped_and_reported(tmp_path: Path, events) -> None:
    page1 = listing_url(WORK_ID, SELECTION)
    page2 = listing_url(WORK_ID, SELECTION, 2)
    page3 = listing_url(WORK_ID, SELECTION, 3)
    setup = _Setup(
        tmp_path,
        {
            page1: Route(html=_listing_page(["A"], 3)),
            page2: Route(status=500, html="<html><body>oops</body></html>"),
            page3: Route(html=_listing_page(["C"], 3)),
        },
        events,
    )

    result = setup.harvester.harvest(WORK_ID, SELECTION)

    assert [e.title for e in result.editions] == ["A", "C"]
    assert result.report.skipped_page_urls == [page2]
    assert result.report.fetched_page_urls == [page1, page3]
    assert result.report.incomplete is True
    assert "page_skipped" in events.phases("harvest")


def test_listing_not_found_returns_none(tmp_path: Path) -> None:
    setup = _Setup(tmp_path, {})

    assert setup.harvester.harvest(WORK_ID, SELECTION) is None
    assert setup.cache.get(listing_url(WORK_ID, SELECTION), ArtifactKind.EDITION_LIST) is None


def test_blocked_page_stops_the_walk(tmp_path: Path) -> None:
    page1 = listing_url(WORK_ID, SELECTION)
    page2 = listing_url(WORK_ID, SELECTION, 2)
    setup = _Setup(
        tmp_path,
        {
            page1: Route(html=_listing_page(["A"], 3)),
            page2: Route(status=429),
        },
    )

    with pytest.raises(AccessBlocked):
        setup.harvester.harvest(WORK_ID, SELECTION)

    assert listing_url(WORK_ID, SELECTION, 3) not in setup.page.visited


def test_unreadable_cached_page_is_throttled_and_refetched(tmp_path: Path) -> None:
    page1 = listing_url(WORK_ID, SELECTION)
    page2 = listing_url(WORK_ID, SELECTION, 2)
    setup = _Setup(
        tmp_path,
        {
            page1: Route(html=_listing_page(["A"], 2)),
            page2: Route(html=_listing_page(["B"], 2)),
        },
    )
    broken = setup.cache.path_for(page2, ArtifactKind.RAW_HTML)
    broken.parent.mkdir(parents=True, exist_ok=True)
    broken.write_bytes(b"\xff\xfe\xfa")

    result = setup.harvester.harvest(WORK_ID, SELECTION)

    assert [e.title for e in result.editions] == ["A", "B"]
    assert page2 in setup.page.visited
    assert len(setup.sleeps) == 1
