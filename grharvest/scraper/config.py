"""Configuration constants for the Goodreads harvester."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("GRHARVEST_DATA_DIR", "./data"))
CACHE_DIR: Path = Path(os.getenv("GRHARVEST_CACHE_DIR", str(DATA_DIR / "cache")))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
REPORTS_DIR: Path = DATA_DIR / "reports"
DB_PATH: Path = Path(os.getenv("GRHARVEST_DB_PATH", str(DATA_DIR / "library.sqlite")))

BASE_URL: str = "https://www.goodreads.com"
BOOK_PATH: str = "/book/show/"
BLOG_PATH: str = "/blog/show/"
WORK_EDITIONS_PATH: str = "/work/editions/"

# Script tag holding the Next.js payload on book pages.
EMBEDDED_DATA_SCRIPT_ID: str = "__NEXT_DATA__"

# Final-URL fragments that mean the session was bounced to a login or
# verification page.
SUSPICIOUS_URL_MARKERS: tuple[str, ...] = ("/user/sign_in", "captcha")

# Read-path window in days, today included.
CACHE_LOOKBACK_DAYS: int = int(os.getenv("GRHARVEST_CACHE_LOOKBACK_DAYS", "3"))

DEFAULT_SORT: str = "num_ratings"
DEFAULT_LANGUAGE: str = os.getenv("GRHARVEST_DEFAULT_LANGUAGE", "spa")

# Inter-page throttling for listing walks (seconds).
PAGE_DELAY_BASE_SECONDS: float = float(os.getenv("GRHARVEST_PAGE_DELAY_BASE_SECONDS", "2.0"))
PAGE_DELAY_JITTER_SECONDS: float = float(
    os.getenv("GRHARVEST_PAGE_DELAY_JITTER_SECONDS", "3.0")
)


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Playwright timeouts (seconds)
PLAYWRIGHT_NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "GRHARVEST_NAV_TIMEOUT_SECONDS", 60
)
PLAYWRIGHT_SELECTOR_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "GRHARVEST_SELECTOR_TIMEOUT_SECONDS", 20
)

HEADLESS: bool = os.getenv("GRHARVEST_HEADLESS", "true").strip().lower() != "false"

USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

BROWSER_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
)


def book_url(book_id: str) -> str:
    return f"{BASE_URL}{BOOK_PATH}{book_id}"


def blog_url(blog_id: str) -> str:
    return f"{BASE_URL}{BLOG_PATH}{blog_id}"
