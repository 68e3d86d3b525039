"""Cache-first page acquisition through a single Playwright page.

One call to :meth:`FetchOrchestrator.fetch` walks::

    CHECK_CACHE -> hit  -> CacheHit
                -> miss -> NAVIGATE -> CLASSIFY_RESPONSE
                                       404           -> NotFound
                                       403 / 429     -> Blocked     (fatal)
                                       login/captcha -> Suspicious  (fatal)
                                       otherwise     -> EXTRACT_AND_PERSIST -> Ok

Every successful navigation writes the raw document once and, when the page embeds a
JSON data script, one more artifact for it. Neither write replaces a
same-day artifact unless the caller forces it.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set, Union

from playwright.sync_api import Error as PWError, Page, TimeoutError as PWTimeout

from . import config
from .cache_store import ArtifactKind, CacheStore
from .error_codes import ErrorCode
from .errors import AccessBlocked, NavigationError
from .logging_utils import EventSink, _scraper_event
from .utils import dump_json, log_line


@dataclass(frozen=True)
class CacheHit:
    content: str
    kind: ArtifactKind


@dataclass(frozen=True)
class NotFound:
    url: str


@dataclass(frozen=True)
class Blocked:
    status_code: int
    url: str


@dataclass(frozen=True)
class Suspicious:
    reason: str
    url: str


@dataclass(frozen=True)
class Ok:
    raw_html: str
    http_status: int
    final_url: str
    embedded_json: Any = None

    @property
    def is_success(self) -> bool:
        return self.http_status < 400


FetchOutcome = Union[CacheHit, NotFound, Blocked, Suspicious, Ok]


def classify_response(status: int, final_url: str) -> Optional[Union[NotFound, Blocked, Suspicious]]:
    """Return the terminal outcome for a response, or ``None`` when usable."""

    if status == 404:
        return NotFound(final_url)
    if status in (403, 429):
        return Blocked(status, final_url)
    for marker in config.SUSPICIOUS_URL_MARKERS:
        if marker in (final_url or ""):
            return Suspicious(f"redirected to {marker}", final_url)
    return None


def raise_for_access(outcome: FetchOutcome) -> None:
    """Raise :class:`AccessBlocked` for ``Blocked`` and ``Suspicious`` outcomes."""

    if isinstance(outcome, Blocked):
        raise AccessBlocked(
            ErrorCode.ACCESS_BLOCKED,
            f"Access denied or rate limited (status {outcome.status_code}) at {outcome.url}",
            http_status=outcome.status_code,
        )
    if isinstance(outcome, Suspicious):
        raise AccessBlocked(
            ErrorCode.SUSPICIOUS_REDIRECT,
            f"Redirected to a login or captcha page ({outcome.reason}): {outcome.url}",
        )


class FetchOrchestrator:
    """Decides cache read versus navigation and persists what it fetches."""

    def __init__(
        self,
        page: Page,
        cache: CacheStore,
        *,
        events: Optional[EventSink] = None,
    ) -> None:
        self.page = page
        self.cache = cache
        self._emit = events or _scraper_event
        self._not_found: Set[str] = set()

    def is_cached(self, url: str, kind: ArtifactKind) -> bool:
        """True only when ``fetch`` would be served from a readable artifact."""

        return self.cache.get(url, kind) is not None

    def fetch(
        self,
        url: str,
        *,
        cache_kind: ArtifactKind = ArtifactKind.RAW_HTML,
        embedded_script_id: Optional[str] = None,
        force_raw: bool = False,
        accept: Optional[Callable[[str], bool]] = None,
        raise_on_block: bool = True,
    ) -> FetchOutcome:
        cached = self.cache.get(url, cache_kind)
        if cached is not None:
            if accept is None or accept(cached):
                self._emit("fetch", phase="done_from_cache", url=url, kind=cache_kind.value)
                return CacheHit(cached, cache_kind)
            log_line(f"[FETCH] Cached {cache_kind.value} for {url} is invalid; refetching.")
            self._emit("fetch", phase="cache_rejected", url=url, kind=cache_kind.value)

        if url in self._not_found:
            self._emit("fetch", phase="not_found", url=url, source="session")
            return NotFound(url)

        outcome = self._navigate(url, embedded_script_id=embedded_script_id, force_raw=force_raw)
        if raise_on_block:
            raise_for_access(outcome)
        return outcome

    # -- states -------------------------------------------------------------

    def _navigate(
        self,
        url: str,
        *,
        embedded_script_id: Optional[str],
        force_raw: bool,
    ) -> FetchOutcome:
        log_line(f"🌐 Navigating to {url}")
        self._emit("fetch", phase="navigate", url=url)
        try:
            response = self.page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000,
            )
        except PWTimeout as exc:
            self._emit("error", phase="navigate", step="goto_timeout", url=url, error=str(exc))
            raise NavigationError(f"goto({url!r}) timed out: {exc}") from exc
        except PWError as exc:
            self._emit("error", phase="navigate", step="goto_error", url=url, error=str(exc))
            raise NavigationError(f"goto({url!r}) failed: {exc}") from exc

        if response is None:
            self._emit("error", phase="navigate", step="no_response", url=url)
            raise NavigationError(f"No response received from the browser for {url}")

        status = int(response.status)
        final_url = self.page.url or url
        terminal = classify_response(status, final_url)
        self._emit(
            "fetch",
            phase="classify",
            url=url,
            final_url=final_url,
            http_status=status,
            outcome=type(terminal).__name__ if terminal else "Ok",
        )
        if isinstance(terminal, NotFound):
            log_line(f"❌ Not found (404): {url}")
            self._not_found.add(url)
            return NotFound(url)
        if terminal is not None:
            log_line(f"⛔ Access problem for {url}: {terminal}")
            return terminal

        if status >= 400:
            log_line(f"! Unsuccessful HTTP response {status} for {url}")

        return self._extract_and_persist(
            url,
            status=status,
            final_url=final_url,
            embedded_script_id=embedded_script_id,
            force_raw=force_raw,
        )

    def _extract_and_persist(
        self,
        url: str,
        *,
        status: int,
        final_url: str,
        embedded_script_id: Optional[str],
        force_raw: bool,
    ) -> Ok:
        try:
            self.page.wait_for_selector(
                "body", timeout=config.PLAYWRIGHT_SELECTOR_TIMEOUT_SECONDS * 1000
            )
        except PWTimeout:
            log_line(f"[FETCH] body selector timeout for {url}; reading content anyway.")

        content = self.page.content()
        if status >= 400:
            # Error pages are returned to the caller but never cached.
            self._emit("fetch", phase="not_persisted", url=url, http_status=status)
            return Ok(content, status, final_url)

        self.cache.put(url, ArtifactKind.RAW_HTML, content, overwrite=force_raw)

        embedded = None
        if embedded_script_id:
            embedded = self._read_embedded_json(url, embedded_script_id)

        self._emit("fetch", phase="ok", url=url, http_status=status, embedded=embedded is not None)
        return Ok(content, status, final_url, embedded)

    def _read_embedded_json(self, url: str, script_id: str) -> Any:
        element = self.page.query_selector(f"script#{script_id}")
        if element is None:
            log_line(f"! No #{script_id} script found on {url}")
            return None

        text = element.text_content() or ""
        if not text.strip():
            return None
        try:
            payload = json.loads(text)
        except ValueError as exc:
            log_line(f"! Failed to decode #{script_id} on {url}: {exc}")
            self._emit("error", phase="embedded_json", url=url, error=str(exc))
            return None

        self.cache.put(url, ArtifactKind.RAW_JSON, dump_json(payload), overwrite=False)
        return payload


__all__ = [
    "CacheHit",
    "NotFound",
    "Blocked",
    "Suspicious",
    "Ok",
    "FetchOutcome",
    "FetchOrchestrator",
    "classify_response",
    "raise_for_access",
]
