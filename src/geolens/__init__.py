# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""GeoLens: semantic re-synthesis of web pages for AI crawlers.

Turns a page into two representations:
- the human original (passed through untouched)
- a GEO variant: semantic HTML + JSON-LD built from a normalized IR

Core types live here so every pipeline stage can import them without cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SCHEMA_TYPES: tuple[str, ...] = (
    "Product",
    "Article",
    "BlogPosting",
    "NewsArticle",
    "WebPage",
    "Person",
    "Organization",
    "Event",
)


@dataclass(frozen=True, slots=True)
class CleanedArticle:
    """Validated article produced by the extractor (never partially valid)."""

    title: str
    content: str  # cleaned article HTML
    text_content: str
    length: int
    excerpt: str | None = None
    byline: str | None = None
    dir: str | None = None
    site_name: str | None = None
    lang: str | None = None
    published_time: str | None = None


@dataclass(frozen=True, slots=True)
class Heading:
    level: int  # 1-6
    text: str
    id: str | None = None


@dataclass(frozen=True, slots=True)
class ImageItem:
    src: str  # always absolute http(s)
    alt: str = ""
    caption: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True, slots=True)
class ListBlock:
    type: str  # "ul" | "ol"
    items: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class VideoItem:
    src: str
    poster: str | None = None
    caption: str | None = None


@dataclass(frozen=True, slots=True)
class IRMetadata:
    url: str
    title: str
    excerpt: str
    lang: str
    author: str | None = None
    publish_date: str | None = None
    site_name: str | None = None


@dataclass(frozen=True, slots=True)
class IRContent:
    headings: tuple[Heading, ...] = ()
    paragraphs: tuple[str, ...] = ()
    images: tuple[ImageItem, ...] = ()
    lists: tuple[ListBlock, ...] = ()
    videos: tuple[VideoItem, ...] = ()


@dataclass(frozen=True, slots=True)
class IRSemantic:
    main_entity_type: str  # one of SCHEMA_TYPES
    keywords: tuple[str, ...] = ()
    reading_time: int = 0  # minutes
    word_count: int = 0


@dataclass(frozen=True, slots=True)
class IRRaw:
    text_content: str
    html_content: str
    length: int


@dataclass(frozen=True, slots=True)
class IR:
    """Intermediate representation: a self-contained semantic snapshot of a page."""

    metadata: IRMetadata
    content: IRContent
    semantic: IRSemantic
    raw: IRRaw | None = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IR:
        """Validate a camelCase JSON IR (see geolens.schemas) and build an IR."""
        from .schemas import parse_ir_payload

        return parse_ir_payload(data)

    def to_dict(self, *, include_raw: bool = True) -> dict[str, Any]:
        """camelCase JSON form. Optional fields are omitted when empty."""
        meta: dict[str, Any] = {
            "url": self.metadata.url,
            "title": self.metadata.title,
            "excerpt": self.metadata.excerpt,
            "lang": self.metadata.lang,
        }
        if self.metadata.author:
            meta["author"] = self.metadata.author
        if self.metadata.publish_date:
            meta["publishDate"] = self.metadata.publish_date
        if self.metadata.site_name:
            meta["siteName"] = self.metadata.site_name

        content: dict[str, Any] = {
            "headings": [_drop_none({"level": h.level, "text": h.text, "id": h.id}) for h in self.content.headings],
            "paragraphs": list(self.content.paragraphs),
            "images": [
                _drop_none(
                    {
                        "src": i.src,
                        "alt": i.alt,
                        "caption": i.caption,
                        "width": i.width,
                        "height": i.height,
                    }
                )
                for i in self.content.images
            ],
        }
        if self.content.lists:
            content["lists"] = [{"type": lb.type, "items": list(lb.items)} for lb in self.content.lists]
        if self.content.videos:
            content["videos"] = [
                _drop_none({"src": v.src, "poster": v.poster, "caption": v.caption}) for v in self.content.videos
            ]

        d: dict[str, Any] = {
            "metadata": meta,
            "content": content,
            "semantic": {
                "mainEntityType": self.semantic.main_entity_type,
                "keywords": list(self.semantic.keywords),
                "readingTime": self.semantic.reading_time,
                "wordCount": self.semantic.word_count,
            },
        }
        if include_raw and self.raw is not None:
            d["raw"] = {
                "textContent": self.raw.text_content,
                "htmlContent": self.raw.html_content,
                "length": self.raw.length,
            }
        return d


def _drop_none(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}
