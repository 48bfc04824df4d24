# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Article extraction: readability-lxml wrapped, validated, never partially valid.

The boilerplate-removal heuristic is the readability-lxml ``Document``.  It
yields only the title and the cleaned body, so the default primitive also
reads byline, excerpt, site name, language, direction and publish time from
the raw document's meta tags.  Whatever the primitive returns is a
``RawArticle`` (every field optional) and must pass ``to_cleaned_article``
before the pipeline touches it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import lxml.html
from lxml import etree
from readability import Document

from . import CleanedArticle
from .errors import ExtractionError
from .sanitizer import clean_text

logger = logging.getLogger(__name__)

DEFAULT_CHAR_THRESHOLD = 200
MIN_TEXT_LENGTH = 50


@dataclass(frozen=True, slots=True)
class RawArticle:
    """Unvalidated extractor output; any field may be missing."""

    title: str | None = None
    content: str | None = None
    text_content: str | None = None
    length: int | None = None
    excerpt: str | None = None
    byline: str | None = None
    dir: str | None = None
    site_name: str | None = None
    lang: str | None = None
    published_time: str | None = None

    def missing_fields(self) -> list[str]:
        missing = [name for name in ("title", "content", "text_content") if not (getattr(self, name) or "").strip()]
        # The reported length is not trusted on its own.
        text_length = len((self.text_content or "").strip())
        if min(self.length or 0, text_length) < MIN_TEXT_LENGTH:
            missing.append("length")
        return missing

    def to_cleaned_article(self) -> CleanedArticle | None:
        """Validate into a CleanedArticle, or None when content is insufficient."""
        missing = self.missing_fields()
        if missing:
            logger.warning("Extracted article rejected, missing/short fields: %s", ", ".join(missing))
            return None
        return CleanedArticle(
            title=self.title.strip(),
            content=self.content,
            text_content=self.text_content,
            length=self.length,
            excerpt=_optional(self.excerpt),
            byline=_optional(self.byline),
            dir=_optional(self.dir),
            site_name=_optional(self.site_name),
            lang=_optional(self.lang),
            published_time=_optional(self.published_time),
        )


ExtractPrimitive = Callable[[str, str, int], "RawArticle | None"]


def _optional(value: str | None) -> str | None:
    value = clean_text(value)
    return value or None


# ---------------------------------------------------------------------------
# Default primitive: readability-lxml + meta tags
# ---------------------------------------------------------------------------


def _first(doc: lxml.html.HtmlElement, *xpaths: str) -> str | None:
    """First non-empty string result across *xpaths* (attribute or text nodes)."""
    for xp in xpaths:
        for value in doc.xpath(xp):
            if isinstance(value, lxml.html.HtmlElement):
                value = value.text_content()
            text = clean_text(str(value))
            if text:
                return text
    return None


def _meta(name: str) -> str:
    return f'//meta[@name="{name}" or @property="{name}"]/@content'


def _html_to_text(html: str) -> str:
    if not html.strip():
        return ""
    try:
        node = lxml.html.fromstring(html)
    except (etree.ParserError, ValueError):
        return ""
    return clean_text(node.text_content())


def readability_extract(html: str, url: str, char_threshold: int = DEFAULT_CHAR_THRESHOLD) -> RawArticle | None:
    """Run readability-lxml over *html* and collect document metadata."""
    doc = Document(html, url=url, retry_length=char_threshold)
    content = doc.summary(html_partial=True)
    text_content = _html_to_text(content)

    try:
        root = lxml.html.document_fromstring(html)
    except (etree.ParserError, ValueError):
        root = None

    og_title = byline = excerpt = site_name = lang = direction = published = None
    if root is not None:
        og_title = _first(root, _meta("og:title"))
        excerpt = _first(root, _meta("description"), _meta("og:description"))
        byline = _first(
            root,
            _meta("author"),
            _meta("article:author"),
            '//*[@rel="author"]',
            '//*[contains(concat(" ", normalize-space(@class), " "), " byline ")]',
        )
        site_name = _first(root, _meta("og:site_name"))
        lang = _first(root, "/html/@lang")
        direction = _first(root, "/html/@dir")
        published = _first(root, _meta("article:published_time"), "//time/@datetime")

    title = og_title or clean_text(doc.short_title()) or clean_text(doc.title())
    if title == "[no-title]":
        title = None

    return RawArticle(
        title=title,
        content=content,
        text_content=text_content,
        length=len(text_content),
        excerpt=excerpt,
        byline=byline,
        dir=direction,
        site_name=site_name,
        lang=lang,
        published_time=published,
    )


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class ArticleExtractor:
    """Turn raw HTML into a validated CleanedArticle (or None)."""

    def __init__(
        self,
        primitive: ExtractPrimitive = readability_extract,
        *,
        char_threshold: int = DEFAULT_CHAR_THRESHOLD,
    ) -> None:
        self._primitive = primitive
        self._char_threshold = char_threshold

    def extract(self, html: str, url: str) -> CleanedArticle | None:
        """Extract the main article of *html*.

        Returns None when the page has no usable article.

        Raises:
            ExtractionError: empty input or the primitive crashed.
        """
        if not html or not html.strip():
            raise ExtractionError("empty HTML")
        try:
            raw = self._primitive(html, url, self._char_threshold)
        except Exception as e:
            logger.warning("Readability failed for %s: %s", url, type(e).__name__)
            raise ExtractionError(f"Article extraction failed: {type(e).__name__}") from e

        if raw is None:
            logger.warning("No article found in %s", url)
            return None
        return raw.to_cleaned_article()


def validate_article(article: CleanedArticle | None) -> bool:
    """Re-check the CleanedArticle invariant."""
    if article is None:
        return False
    return bool(
        article.title.strip()
        and article.content.strip()
        and article.text_content.strip()
        and article.length >= MIN_TEXT_LENGTH
        and len(article.text_content) >= MIN_TEXT_LENGTH
    )
