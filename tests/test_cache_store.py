from datetime import date, timedelta
from pathlib import Path

import pytest

from grharvest.scraper import config
from grharvest.scraper.cache_store import ArtifactKind, CacheStore, category_for_url
from grharvest.scraper.errors import InvalidInput
from grharvest.scraper.utils import content_hash

BOOK_URL = "https://www.goodreads.com/book/show/41886271-the-way-of-kings"
START = date(2024, 3, 1)


class _Clock:
    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


def _store(tmp_path: Path, clock: _Clock, recorder=None) -> CacheStore:
    return CacheStore(tmp_path / "cache", clock=clock, lookback_days=3, events=recorder)


def test_path_layout_uses_day_category_and_hash(tmp_path: Path) -> None:
    store = _store(tmp_path, _Clock(START))

    path = store.path_for(BOOK_URL, ArtifactKind.DERIVED_JSON)

    assert path == tmp_path / "cache" / "2024-03-01" / "books" / f"{content_hash(BOOK_URL)}-parsed.json"


def test_same_url_and_kind_give_the_same_key(tmp_path: Path) -> None:
    store = _store(tmp_path, _Clock(START))

    assert store.path_for(BOOK_URL, ArtifactKind.RAW_HTML) == store.path_for(BOOK_URL + "#reviews", "raw-html")
    assert store.path_for(BOOK_URL, ArtifactKind.RAW_HTML) != store.path_for(BOOK_URL, ArtifactKind.RAW_JSON)


def test_category_for_url() -> None:
    assert category_for_url(BOOK_URL) == "books"
    assert category_for_url("https://www.goodreads.com/author/show/38550") == "authors"
    assert category_for_url("https://www.goodreads.com/blog/show/2983") == "blog"
    assert category_for_url("https://www.goodreads.com/work/editions/1") == "misc"


@pytest.mark.parametrize("url", ["", "not a url", "ftp://example.com/file", "/book/show/1"])
def test_invalid_url_rejected(tmp_path: Path, url: str) -> None:
    store = _store(tmp_path, _Clock(START))

    with pytest.raises(InvalidInput):
        store.put(url, ArtifactKind.RAW_HTML, "<html></html>")
    with pytest.raises(InvalidInput):
        store.get(url, ArtifactKind.RAW_HTML)


def test_put_without_overwrite_keeps_first_payload(tmp_path: Path, events) -> None:
    store = _store(tmp_path, _Clock(START), events)

    first = store.put(BOOK_URL, ArtifactKind.RAW_HTML, "first")
    second = store.put(BOOK_URL, ArtifactKind.RAW_HTML, "second")

    assert first == second
    assert store.get(BOOK_URL, ArtifactKind.RAW_HTML) == "first"
    assert events.phases("cache").count("write") == 1
    assert "write_skipped" in events.phases("cache")


def test_put_with_overwrite_replaces_payload(tmp_path: Path) -> None:
    store = _store(tmp_path, _Clock(START))

    store.put(BOOK_URL, ArtifactKind.RAW_HTML, "first")
    store.put(BOOK_URL, ArtifactKind.RAW_HTML, "second", overwrite=True)

    assert store.get(BOOK_URL, ArtifactKind.RAW_HTML) == "second"
    assert not list((tmp_path / "cache").rglob("*.tmp"))


@pytest.mark.parametrize("days_later", [0, 1, 2])
def test_lookback_window_hits(tmp_path: Path, days_later: int) -> None:
    clock = _Clock(START)
    store = _store(tmp_path, clock)
    store.put(BOOK_URL, ArtifactKind.RAW_JSON, "{}")

    clock.today = START + timedelta(days=days_later)

    assert store.get(BOOK_URL, ArtifactKind.RAW_JSON) == "{}"
    assert store.has(BOOK_URL, ArtifactKind.RAW_JSON)


def test_lookback_window_expires(tmp_path: Path, events) -> None:
    clock = _Clock(START)
    store = _store(tmp_path, clock, events)
    store.put(BOOK_URL, ArtifactKind.RAW_JSON, "{}")

    clock.today = START + timedelta(days=3)

    assert store.get(BOOK_URL, ArtifactKind.RAW_JSON) is None
    assert events.phases("cache")[-1] == "miss"


def test_write_lands_in_today_bucket_even_with_older_copy(tmp_path: Path) -> None:
    clock = _Clock(START)
    store = _store(tmp_path, clock)
    store.put(BOOK_URL, ArtifactKind.RAW_HTML, "old")

    clock.today = START + timedelta(days=1)
    path = store.put(BOOK_URL, ArtifactKind.RAW_HTML, "new")

    assert path.parent.parent.name == "2024-03-02"
    assert path.read_text(encoding="utf-8") == "new"
    assert store.get(BOOK_URL, ArtifactKind.RAW_HTML) == "new"
    assert (tmp_path / "cache" / "2024-03-01" / "books").exists()


def test_unreadable_artifact_is_a_miss(tmp_path: Path, events) -> None:
    store = _store(tmp_path, _Clock(START), events)
    path = store.path_for(BOOK_URL, ArtifactKind.RAW_HTML)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\xff\xfe\xfa")

    assert store.get(BOOK_URL, ArtifactKind.RAW_HTML) is None
    assert "read_error" in events.phases("cache")


def test_default_root_follows_config(tmp_path: Path) -> None:
    store = CacheStore(clock=_Clock(START))

    assert store.root == config.CACHE_DIR
    assert store.lookback_days == config.CACHE_LOOKBACK_DAYS
