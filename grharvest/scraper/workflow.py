"""Blog-to-editions workflow.

For one blog post: collect the books it mentions, look each one up, discover
the editions filters of its work and harvest the filtered editions listing.
Problems with a single book are recorded on its report entry and the loop
moves on; a blocked session ends the run.
"""
from __future__ import annotations

import argparse
import sqlite3
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config, db
from .browser_client import open_browser
from .config_validation import validate_runtime_config
from .editions import Edition
from .entity_parser import Book
from .error_codes import ErrorCode
from .errors import AccessBlocked, ScraperError
from .filters import FilterSelection
from .logging_utils import _scraper_event
from .mentions import BookMention
from .service import GoodreadsService
from .utils import dump_json, ensure_dirs, log_line, setup_run_logger


@dataclass
class BookReport:
    mention: BookMention
    source_blog_id: str
    book: Optional[Book] = None
    editions_found: List[Edition] = field(default_factory=list)
    harvest_incomplete: bool = False
    processing_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _process_mention(
    service: GoodreadsService,
    report: BookReport,
    selection: FilterSelection,
    conn: Optional[sqlite3.Connection],
) -> None:
    mention = report.mention
    book = service.look_book(mention.external_id)
    if book is None:
        raise ScraperError(ErrorCode.NOT_FOUND, f"No details found for book {mention.external_id}")
    report.book = book
    if conn is not None:
        db.save_book(conn, book)
        db.save_blog_reference(conn, blog_id=report.source_blog_id, book_id=book.id)

    if not book.legacy_id:
        raise ScraperError(ErrorCode.PARSE_FAILURE, f"No work id found for book {book.id}")

    log_line(f"🔹 Work ID {book.legacy_id}; looking for editions ({selection.as_dict()})")
    if service.scrape_editions_filters(book.legacy_id) is None:
        raise ScraperError(ErrorCode.NOT_FOUND, f"No editions listing for work {book.legacy_id}")

    result = service.harvest_editions(book.legacy_id, selection)
    if result is None:
        return
    report.editions_found = result.editions
    report.harvest_incomplete = result.report.incomplete
    if conn is not None:
        db.delete_editions(conn, book.legacy_id, selection.language)
        db.save_editions(conn, book.legacy_id, result.editions, selection.language)


def run_blog_workflow(
    service: GoodreadsService,
    blog_id: str,
    selection: FilterSelection,
    *,
    conn: Optional[sqlite3.Connection] = None,
) -> List[BookReport]:
    blog = service.look_blog(blog_id)
    if blog is None:
        log_line(f"❌ Blog {blog_id} not found.")
        return []

    if conn is not None:
        db.save_blog(conn, blog_id=blog_id, title=blog.title, url=blog.web_url)

    log_line(f"✅ Blog {blog_id}: {len(blog.mentions)} books mentioned.")
    reports: List[BookReport] = []
    for index, mention in enumerate(blog.mentions, start=1):
        log_line(
            f"Processing book {index}/{len(blog.mentions)}: "
            f"{mention.external_id} - {mention.title or 'Unknown'!r}"
        )
        report = BookReport(mention=mention, source_blog_id=blog_id)
        try:
            _process_mention(service, report, selection, conn)
        except AccessBlocked:
            raise
        except ScraperError as exc:
            log_line(f"❌ Error processing book {mention.external_id}: {exc}")
            _scraper_event(
                "workflow",
                phase="book_failed",
                book_id=mention.external_id,
                error_code=exc.error_code,
                error=str(exc),
            )
            report.processing_error = str(exc)
        reports.append(report)

    with_editions = sum(1 for report in reports if report.editions_found)
    _scraper_event("workflow", phase="end", blog_id=blog_id, books=len(reports), with_editions=with_editions)
    return reports


def write_report(reports: List[BookReport], blog_id: str, language: Optional[str]) -> Path:
    ensure_dirs()
    path = config.REPORTS_DIR / f"report-{blog_id}-{language or 'any'}.json"
    path.write_text(dump_json([report.to_dict() for report in reports]), encoding="utf-8")
    log_line(f"🎉 Report saved to {path}")
    return path


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Harvest editions of the books a blog post mentions")
    parser.add_argument("blog", nargs="?", default=None, help="Blog id, e.g. 2983-best-books")
    parser.add_argument("--blog-id", dest="blog_id", default=None)
    parser.add_argument("--language", default=config.DEFAULT_LANGUAGE)
    parser.add_argument("--format", default="")
    parser.add_argument("--sort", default=None, help=f"Listing sort (default {config.DEFAULT_SORT})")
    parser.add_argument("--no-store", action="store_true", help="Skip the SQLite store")
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=config.HEADLESS,
    )
    args = parser.parse_args(argv)

    blog_id = args.blog_id or args.blog
    if not blog_id:
        parser.error("a blog id is required")

    ensure_dirs()
    setup_run_logger()
    validate_runtime_config("cli")

    selection = FilterSelection(
        sort=args.sort,
        format=args.format or None,
        language=args.language or None,
    )
    conn = None
    if not args.no_store:
        conn = db.get_connection()
        db.initialize_schema(conn)

    reports: List[BookReport] = []
    try:
        with open_browser(headless=args.headless) as page:
            service = GoodreadsService(page)
            reports = run_blog_workflow(service, blog_id, selection, conn=conn)
    except AccessBlocked as exc:
        log_line(f"⛔ Run stopped: {exc}")
        raise SystemExit(2) from exc
    except ScraperError as exc:
        log_line(f"❌ Run failed: {exc}")
        raise SystemExit(1) from exc
    finally:
        if reports:
            write_report(reports, blog_id, selection.language)
        if conn is not None:
            conn.close()


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = ["BookReport", "run_blog_workflow", "write_report", "_cli_entrypoint"]
