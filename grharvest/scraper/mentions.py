"""Book mentions inside blog posts, grouped by the heading above them."""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .logging_utils import _scraper_event
from .utils import absolute_url, collapse_whitespace

INTRO_SECTION = "Intro"
BOILERPLATE_LINK_TEXT = frozenset({"Read more", "View details"})

_HEADING = re.compile(r"^h[1-6]$")
_BOOK_PATH = re.compile(r"/book/show/([^?#/]+)")


@dataclass
class BookMention:
    external_id: str
    title: str
    source_url: str
    cover_image_url: Optional[str] = None
    section: str = INTRO_SECTION

    @property
    def numeric_id(self) -> str:
        return self.external_id.split("-")[0]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BookMention":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


@dataclass
class Blog:
    id: str
    title: Optional[str] = None
    web_url: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    mentions: List[BookMention] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Blog":
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title"),
            web_url=data.get("web_url"),
            description=data.get("description"),
            image_url=data.get("image_url"),
            mentions=[
                BookMention.from_dict(item)
                for item in data.get("mentions") or []
                if isinstance(item, dict)
            ],
        )


@dataclass
class MentionContext:
    """State threaded through the document walk."""

    current_section: str = INTRO_SECTION
    mentions: List[BookMention] = field(default_factory=list)


def _normalized(value: Optional[str]) -> str:
    return collapse_whitespace(value).lower()


def _meta_content(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.select_one(f'meta[property="{prop}"]')
    if tag is None:
        return None
    return (tag.get("content") or "").strip() or None


def _candidate_from_anchor(anchor: Tag, section: str) -> Optional[BookMention]:
    href = anchor.get("href") or ""
    match = _BOOK_PATH.search(href)
    if not match:
        return None

    candidate = BookMention(
        external_id=match.group(1),
        title="",
        source_url=absolute_url(href),
        section=section,
    )

    image = anchor.find("img")
    if image is not None:
        candidate.cover_image_url = image.get("src") or None
        alt = image.get("alt")
        if alt:
            candidate.title = alt
    else:
        text = anchor.get_text().strip()
        if len(text) > 1 and text not in BOILERPLATE_LINK_TEXT:
            candidate.title = collapse_whitespace(text)
    return candidate


def _record(ctx: MentionContext, candidate: BookMention) -> None:
    last = ctx.mentions[-1] if ctx.mentions else None
    if last is not None and last.numeric_id == candidate.numeric_id and last.section == candidate.section:
        if not last.title and candidate.title:
            last.title = candidate.title
        if not last.cover_image_url and candidate.cover_image_url:
            last.cover_image_url = candidate.cover_image_url
        return
    ctx.mentions.append(candidate)


def _visit(node: Tag, ctx: MentionContext) -> None:
    name = node.name or ""
    if _HEADING.match(name):
        heading = node.get_text().strip()
        if heading:
            ctx.current_section = heading
    elif name == "a":
        candidate = _candidate_from_anchor(node, ctx.current_section)
        if candidate is not None:
            _record(ctx, candidate)

    for child in node.children:
        if isinstance(child, Tag):
            _visit(child, ctx)


def extract_mentions(container: Tag, *, page_title: Optional[str] = None) -> List[BookMention]:
    """Walk ``container`` in document order and return the kept mentions."""

    ctx = MentionContext()
    _visit(container, ctx)

    clean_title = _normalized(page_title)
    return [
        mention
        for mention in ctx.mentions
        if (mention.title or mention.cover_image_url)
        and not (clean_title and _normalized(mention.section) == clean_title)
    ]


def parse_blog_html(html: str, url: Optional[str] = None, blog_id: str = "") -> Optional[Blog]:
    try:
        soup = BeautifulSoup(html, "html5lib")
    except (TypeError, ValueError) as exc:
        _scraper_event("error", phase="blog_parse", url=url, error=str(exc))
        return None

    title = _meta_content(soup, "og:title")
    container = soup.select_one(".newsShowColumn") or soup.body or soup
    for noise in container.find_all(["script", "style"]):
        noise.decompose()

    blog = Blog(
        id=blog_id,
        title=title,
        web_url=url or _meta_content(soup, "og:url"),
        description=_meta_content(soup, "og:description"),
        image_url=_meta_content(soup, "og:image"),
        mentions=extract_mentions(container, page_title=title),
    )
    _scraper_event("parse", phase="blog", url=blog.web_url, mentions=len(blog.mentions))
    return blog


__all__ = [
    "INTRO_SECTION",
    "BookMention",
    "Blog",
    "MentionContext",
    "extract_mentions",
    "parse_blog_html",
]
