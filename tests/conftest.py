from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from grharvest.scraper import config, utils


@pytest.fixture(autouse=True)
def _isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "CACHE_DIR", data_dir / "cache")
    monkeypatch.setattr(config, "LOG_DIR", data_dir / "logs")
    monkeypatch.setattr(config, "LOG_FILE", data_dir / "logs" / "latest.log")
    monkeypatch.setattr(config, "REPORTS_DIR", data_dir / "reports")
    monkeypatch.setattr(config, "DB_PATH", data_dir / "library.sqlite")
    utils._configure_logger(data_dir / "logs" / "test.log")
    return data_dir


@dataclass
class Route:
    status: int = 200
    html: str = "<html><body></body></html>"
    final_url: Optional[str] = None
    script: Optional[str] = None
    error: Optional[Exception] = None


class FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status


class FakeElement:
    def __init__(self, text: str) -> None:
        self._text = text

    def text_content(self) -> str:
        return self._text


class FakePage:
    """Stands in for a Playwright page; unknown URLs answer 404."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.visited: List[str] = []
        self.url = ""
        self._current: Optional[Route] = None

    def goto(self, url: str, **_kwargs: Any) -> FakeResponse:
        self.visited.append(url)
        route = self.routes.get(url, Route(status=404, html="<html><body>Not found</body></html>"))
        if route.error is not None:
            raise route.error
        self._current = route
        self.url = route.final_url or url
        return FakeResponse(route.status)

    def wait_for_selector(self, _selector: str, **_kwargs: Any) -> None:
        return None

    def content(self) -> str:
        return self._current.html if self._current else ""

    def query_selector(self, selector: str) -> Optional[FakeElement]:
        if self._current is None or self._current.script is None:
            return None
        if not selector.startswith("script#"):
            return None
        return FakeElement(self._current.script)


class EventRecorder:
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def __call__(self, label: str = "", *, phase: Optional[str] = None, **fields: Any) -> None:
        self.events.append((label, phase, fields))

    def phases(self, label: str) -> List[Optional[str]]:
        return [phase for event_label, phase, _ in self.events if event_label == label]


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()


def book_payload(legacy_id: int, title: str, work_id: Optional[int] = None) -> Dict[str, Any]:
    """Minimal ``__NEXT_DATA__`` document for a book page."""

    book: Dict[str, Any] = {
        "legacyId": legacy_id,
        "title": title,
        "titleComplete": title,
        "details": {"numPages": 320, "format": "Paperback", "language": {"name": "English"}},
    }
    state: Dict[str, Any] = {f"Book:kca://book/{legacy_id}": book}
    if work_id is not None:
        book["work"] = {"__ref": f"Work:kca://work/{work_id}"}
        state[f"Work:kca://work/{work_id}"] = {"legacyId": work_id, "stats": {"averageRating": 4.1}}
    return {"props": {"pageProps": {"apolloState": state}}}
