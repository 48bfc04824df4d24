# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""IR builder: CleanedArticle -> IR.

Parses the cleaned article HTML once with lxml, then runs five independent
sub-extractions (headings, paragraphs, images, lists, videos).  Each runs
under its own guard: a failure is logged and that category comes back
empty while the others proceed.  Only missing title/url aborts the build.

Semantic layer:
- entity type from the ordered ENTITY_RULES table (first match wins)
- keywords by token frequency (no NLP)
- reading time at 200 chars/minute
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar
from urllib.parse import urlsplit

import lxml.html
from lxml import etree

from . import (
    IR,
    CleanedArticle,
    Heading,
    ImageItem,
    IRContent,
    IRMetadata,
    IRRaw,
    IRSemantic,
    ListBlock,
    VideoItem,
)
from .errors import BuildError
from .sanitizer import clean_text

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LANG = "zh-CN"
MIN_PARAGRAPH_LENGTH = 20
MAX_KEYWORDS = 10
CHARS_PER_MINUTE = 200
EXCERPT_MAX_LENGTH = 200
_EXCERPT_MIN_CUT = 50
_SENTENCE_ENDS = ("。", ".", "！", "？", "!", "?")
_VIDEO_HOSTS = ("youtube.com", "vimeo.com")

_HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_KEYWORD_STRIP_RE = re.compile(r"[^一-龥a-zA-Z0-9\s]")


# ---------------------------------------------------------------------------
# Entity rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EntitySignals:
    """What entity predicates see: lower-cased text + the parsed article tree."""

    text: str
    article: CleanedArticle
    tree: lxml.html.HtmlElement | None

    def has(self, xpath: str) -> bool:
        return self.tree is not None and bool(self.tree.xpath(xpath))

    def contains_any(self, *terms: str) -> bool:
        return any(t in self.text for t in terms)


@dataclass(frozen=True, slots=True)
class EntityRule:
    name: str
    predicate: Callable[[EntitySignals], bool]
    type: str


def _class_xpath(cls: str) -> str:
    return f'//*[contains(concat(" ", normalize-space(@class), " "), " {cls} ")]'


def _is_product(s: EntitySignals) -> bool:
    return (
        s.contains_any("价格", "购买", "库存", "add to cart", "buy now", "in stock", "out of stock")
        or s.has('//*[@itemprop="price"]')
        or s.has(_class_xpath("price"))
    )


def _is_news(s: EntitySignals) -> bool:
    # Readability drops <meta>; the raw document's article:published_time
    # arrives through article.published_time.
    return bool(s.article.published_time) or s.contains_any("记者", "报道", "reported by", "reporting by")


def _is_blog(s: EntitySignals) -> bool:
    return (
        bool(s.article.byline)
        or s.contains_any("作者", "written by", "posted by")
        or s.has(_class_xpath("author"))
        or s.has('//*[@rel="author"]')
    )


ENTITY_RULES: tuple[EntityRule, ...] = (
    EntityRule("product", _is_product, "Product"),
    EntityRule("news", _is_news, "NewsArticle"),
    EntityRule("blog", _is_blog, "BlogPosting"),
)
DEFAULT_ENTITY_TYPE = "Article"


def detect_entity_type(article: CleanedArticle, tree: lxml.html.HtmlElement | None) -> str:
    signals = EntitySignals(text=article.text_content.lower(), article=article, tree=tree)
    for rule in ENTITY_RULES:
        if rule.predicate(signals):
            logger.debug("Entity rule %s matched -> %s", rule.name, rule.type)
            return rule.type
    return DEFAULT_ENTITY_TYPE


# ---------------------------------------------------------------------------
# Text heuristics
# ---------------------------------------------------------------------------


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Top tokens by frequency; ties keep first-seen order."""
    cleaned = _KEYWORD_STRIP_RE.sub(" ", text or "")
    tokens = [w for w in cleaned.split() if 2 <= len(w) <= 10]
    # Counter preserves insertion order and sorted() is stable.
    counts = Counter(tokens)
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [word for word, _ in ranked[:limit]]


def generate_excerpt(text: str, max_length: int = EXCERPT_MAX_LENGTH) -> str:
    cleaned = (text or "").strip()
    if len(cleaned) <= max_length:
        return cleaned
    truncated = cleaned[:max_length]
    cut = max(truncated.rfind(mark) for mark in _SENTENCE_ENDS)
    if cut > _EXCERPT_MIN_CUT:
        return truncated[: cut + 1]
    return truncated + "..."


def reading_time(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_MINUTE)


def _parse_int(value: str | None) -> int | None:
    """Leading-digit integer parse; None when no digits lead."""
    if not value:
        return None
    m = _LEADING_INT_RE.match(value)
    return int(m.group(1)) if m else None


def resolve_image_src(src: str, page_url: str) -> str | None:
    src = src.strip()
    if src.startswith("//"):
        return "https:" + src
    if src.startswith("/"):
        parts = urlsplit(page_url)
        if not parts.scheme or not parts.netloc:
            return None
        return f"{parts.scheme}://{parts.netloc}{src}"
    if src.startswith(("http://", "https://")):
        return src
    return None


# ---------------------------------------------------------------------------
# Sub-extractions (each takes the parsed tree)
# ---------------------------------------------------------------------------


def _text(el: lxml.html.HtmlElement) -> str:
    return clean_text(el.text_content())


def extract_headings(tree: lxml.html.HtmlElement) -> list[Heading]:
    headings = []
    for el in tree.iter(*_HEADING_TAGS):
        text = _text(el)
        if text:
            headings.append(Heading(level=int(el.tag[1]), text=text, id=el.get("id") or None))
    return headings


def extract_paragraphs(tree: lxml.html.HtmlElement) -> list[str]:
    return [text for el in tree.iter("p") if len(text := _text(el)) >= MIN_PARAGRAPH_LENGTH]


def extract_images(tree: lxml.html.HtmlElement, page_url: str) -> list[ImageItem]:
    images = []
    for el in tree.iter("img"):
        raw_src = el.get("src") or el.get("data-src")
        if not raw_src:
            continue
        src = resolve_image_src(raw_src, page_url)
        if src is None:
            continue
        caption = None
        figures = el.xpath("ancestor::figure[1]")
        if figures:
            caption = clean_text(" ".join(_text(fc) for fc in figures[0].iter("figcaption"))) or None
        images.append(
            ImageItem(
                src=src,
                alt=clean_text(el.get("alt")),
                caption=caption,
                width=_parse_int(el.get("width")),
                height=_parse_int(el.get("height")),
            )
        )
    return images


def extract_lists(tree: lxml.html.HtmlElement) -> list[ListBlock]:
    blocks = []
    for el in tree.iter("ul", "ol"):
        if el.xpath("ancestor::ul or ancestor::ol"):
            continue
        items = tuple(text for li in el.iterchildren("li") if (text := _text(li)))
        if items:
            blocks.append(ListBlock(type=el.tag, items=items))
    return blocks


def extract_videos(tree: lxml.html.HtmlElement) -> list[VideoItem]:
    videos = []
    for el in tree.iter("video"):
        src = el.get("src")
        if not src:
            sources = el.xpath(".//source/@src")
            src = sources[0] if sources else None
        if src:
            videos.append(VideoItem(src=src.strip(), poster=el.get("poster") or None))
    for el in tree.iter("iframe"):
        src = el.get("src") or ""
        if any(host in src for host in _VIDEO_HOSTS):
            videos.append(VideoItem(src=src.strip()))
    return videos


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def _parse_fragment(html: str) -> lxml.html.HtmlElement | None:
    if not html or not html.strip():
        return None
    try:
        return lxml.html.document_fromstring(html)
    except (etree.ParserError, ValueError):
        logger.warning("Article HTML could not be parsed; content will be empty")
        return None


class IRBuilder:
    """Build an IR from a CleanedArticle."""

    def __init__(self, *, default_lang: str = DEFAULT_LANG, include_raw: bool = True) -> None:
        self._default_lang = default_lang
        self._include_raw = include_raw

    def build(self, article: CleanedArticle, url: str) -> IR:
        """Raises BuildError only when title or url is missing."""
        title = clean_text(article.title)
        if not title or not url:
            raise BuildError("Cannot build IR: article title and page URL are required")

        tree = _parse_fragment(article.content)
        text = clean_text(article.text_content)

        def guarded(category: str, fn: Callable[[lxml.html.HtmlElement], list[T]]) -> tuple[T, ...]:
            if tree is None:
                return ()
            try:
                return tuple(fn(tree))
            except Exception as e:
                logger.warning("IR %s extraction failed for %s: %s", category, url, e)
                return ()

        content = IRContent(
            headings=guarded("headings", extract_headings),
            paragraphs=guarded("paragraphs", extract_paragraphs),
            images=guarded("images", lambda t: extract_images(t, url)),
            lists=guarded("lists", extract_lists),
            videos=guarded("videos", extract_videos),
        )

        try:
            entity_type = detect_entity_type(article, tree)
        except Exception as e:
            logger.warning("Entity detection failed for %s: %s", url, e)
            entity_type = DEFAULT_ENTITY_TYPE

        metadata = IRMetadata(
            url=url,
            title=title,
            excerpt=clean_text(article.excerpt) or generate_excerpt(text),
            lang=clean_text(article.lang) or self._default_lang,
            author=clean_text(article.byline) or None,
            publish_date=clean_text(article.published_time) or None,
            site_name=clean_text(article.site_name) or None,
        )
        semantic = IRSemantic(
            main_entity_type=entity_type,
            keywords=tuple(extract_keywords(article.text_content)),
            reading_time=reading_time(article.text_content),
            word_count=len(article.text_content),
        )
        raw = None
        if self._include_raw:
            raw = IRRaw(text_content=article.text_content, html_content=article.content, length=article.length)

        logger.debug(
            "Built IR for %s: %d headings, %d paragraphs, %d images, type=%s",
            url,
            len(content.headings),
            len(content.paragraphs),
            len(content.images),
            entity_type,
        )
        return IR(metadata=metadata, content=content, semantic=semantic, raw=raw)
