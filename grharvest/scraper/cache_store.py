"""On-disk artifact cache keyed by URL, artifact kind and day bucket.

Layout::

    {root}/{YYYY-MM-DD}/{books|authors|blog|misc}/{md5(url)}{extension}

Reads look back over the last ``config.CACHE_LOOKBACK_DAYS`` day buckets so
that pages fetched just before midnight are still hits the next morning.
Writes always land in today's bucket; nothing is ever moved between buckets
and nothing is deleted here.
"""
from __future__ import annotations

from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional
from urllib.parse import urlparse

from . import config
from .errors import InvalidInput
from .logging_utils import EventSink, _scraper_event
from .utils import content_hash, is_valid_url, log_line


class ArtifactKind(str, Enum):
    RAW_HTML = "raw-html"
    RAW_JSON = "raw-json"
    DERIVED_JSON = "derived-json"
    EDITION_LIST = "edition-list"
    FILTER_META = "filter-meta"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]


_EXTENSIONS = {
    ArtifactKind.RAW_HTML: ".html",
    ArtifactKind.RAW_JSON: ".json",
    ArtifactKind.DERIVED_JSON: "-parsed.json",
    ArtifactKind.EDITION_LIST: "-editions.json",
    ArtifactKind.FILTER_META: "-filter-meta.json",
}


def category_for_url(url: str) -> str:
    """Return the browsing folder for ``url``; not part of key uniqueness."""

    path = urlparse(url).path
    if "/book/" in path:
        return "books"
    if "/author/" in path:
        return "authors"
    if "/blog/" in path:
        return "blog"
    return "misc"


def date_bucket(day: date) -> str:
    return day.strftime("%Y-%m-%d")


class CacheStore:
    """Content-addressable store for raw and derived scrape artifacts."""

    def __init__(
        self,
        root: Optional[Path] = None,
        *,
        clock: Callable[[], date] = date.today,
        lookback_days: Optional[int] = None,
        events: Optional[EventSink] = None,
    ) -> None:
        self.root = Path(root) if root is not None else config.CACHE_DIR
        self._clock = clock
        self.lookback_days = lookback_days if lookback_days is not None else config.CACHE_LOOKBACK_DAYS
        self._emit = events or _scraper_event

    # -- key derivation -----------------------------------------------------

    def _require_valid(self, url: str) -> None:
        if not is_valid_url(url):
            raise InvalidInput(f"Invalid URL provided to cache: {url!r}")

    def path_for(self, url: str, kind: ArtifactKind, *, day: Optional[date] = None) -> Path:
        """Return the storage location of ``url``/``kind`` in ``day``'s bucket."""

        self._require_valid(url)
        bucket = date_bucket(day or self._clock())
        filename = f"{content_hash(url)}{ArtifactKind(kind).extension}"
        return self.root / bucket / category_for_url(url) / filename

    def _candidate_paths(self, url: str, kind: ArtifactKind) -> Iterator[Path]:
        today = self._clock()
        for offset in range(max(1, self.lookback_days)):
            yield self.path_for(url, kind, day=today - timedelta(days=offset))

    def find(self, url: str, kind: ArtifactKind) -> Optional[Path]:
        """Return the newest existing location within the lookback window."""

        for candidate in self._candidate_paths(url, kind):
            if candidate.is_file():
                return candidate
        return None

    # -- public contract ----------------------------------------------------

    def has(self, url: str, kind: ArtifactKind) -> bool:
        return self.find(url, kind) is not None

    def get(self, url: str, kind: ArtifactKind) -> Optional[str]:
        """Return the cached payload, or ``None`` on a miss.

        Unreadable artifacts count as misses so callers always fall back to
        the network.
        """

        kind = ArtifactKind(kind)
        for candidate in self._candidate_paths(url, kind):
            if not candidate.is_file():
                continue
            try:
                content = candidate.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                log_line(f"[CACHE] Unreadable artifact {candidate}: {exc}")
                self._emit("cache", phase="read_error", kind=kind.value, path=str(candidate))
                continue
            self._emit("cache", phase="hit", kind=kind.value, url=url, bucket=candidate.parent.parent.name)
            return content

        self._emit("cache", phase="miss", kind=kind.value, url=url)
        return None

    def put(self, url: str, kind: ArtifactKind, content: str, *, overwrite: bool = False) -> Path:
        """Write ``content`` into today's bucket and return its location.

        Without ``overwrite`` an existing file at today's exact path is left
        untouched; lookback copies from earlier days are never consulted.
        """

        kind = ArtifactKind(kind)
        path = self.path_for(url, kind)
        if not overwrite and path.exists():
            log_line(f"✓ Cache hit: {url}")
            self._emit("cache", phase="write_skipped", kind=kind.value, url=url, path=str(path))
            return path

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(content, encoding="utf-8")
        tmp_path.replace(path)

        log_line(f"↓ Cache: {url} ({kind.value})")
        self._emit(
            "cache",
            phase="write",
            kind=kind.value,
            url=url,
            path=str(path),
            overwrite=overwrite,
            bytes=len(content.encode("utf-8")),
        )
        return path


__all__ = ["ArtifactKind", "CacheStore", "category_for_url", "date_bucket"]
