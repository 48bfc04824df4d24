# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pydantic models for request bodies and JSON IR payloads.

The IR models mirror ``IR.to_dict()`` (camelCase on the wire, snake_case in
Python) and enforce the structural IR invariants a client could break: heading
levels, absolute http(s) image URLs, the keyword cap, the closed entity-type
set.  The 20-character paragraph floor is an extraction rule of the builder,
not a constraint on a supplied IR.
``parse_ir_payload`` is the only way external JSON becomes an ``IR``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from . import (
    IR,
    SCHEMA_TYPES,
    Heading,
    ImageItem,
    IRContent,
    IRMetadata,
    IRRaw,
    IRSemantic,
    ListBlock,
    VideoItem,
)
from .errors import InvalidInputError

_MAX_ERRORS_IN_MESSAGE = 3


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class UrlRequest(BaseModel):
    """Body of POST /geo and POST /parse."""

    url: str = Field(..., min_length=1, description="Absolute http(s) URL of the page")


# ---------------------------------------------------------------------------
# IR payload
# ---------------------------------------------------------------------------


class MetadataModel(_CamelModel):
    url: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    excerpt: str = ""
    lang: str = "zh-CN"
    author: str | None = None
    publish_date: str | None = None
    site_name: str | None = None


class HeadingModel(_CamelModel):
    level: int = Field(..., ge=1, le=6)
    text: str = Field(..., min_length=1)
    id: str | None = None


class ImageModel(_CamelModel):
    src: str
    alt: str = ""
    caption: str | None = None
    width: int | None = Field(None, ge=0)
    height: int | None = Field(None, ge=0)

    @field_validator("src")
    @classmethod
    def _absolute_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("image src must be an absolute http(s) URL")
        return v


class ListModel(_CamelModel):
    type: Literal["ul", "ol"]
    items: list[str] = Field(default_factory=list)


class VideoModel(_CamelModel):
    src: str = Field(..., min_length=1)
    poster: str | None = None
    caption: str | None = None


class ContentModel(_CamelModel):
    headings: list[HeadingModel] = Field(default_factory=list)
    paragraphs: list[str] = Field(default_factory=list)
    images: list[ImageModel] = Field(default_factory=list)
    lists: list[ListModel] | None = None
    videos: list[VideoModel] | None = None


class SemanticModel(_CamelModel):
    main_entity_type: str
    keywords: list[str] = Field(default_factory=list, max_length=10)
    reading_time: int = Field(0, ge=0)
    word_count: int = Field(0, ge=0)

    @field_validator("main_entity_type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in SCHEMA_TYPES:
            raise ValueError(f"mainEntityType must be one of {', '.join(SCHEMA_TYPES)}")
        return v


class RawModel(_CamelModel):
    text_content: str = ""
    html_content: str = ""
    length: int = 0


class IRPayload(_CamelModel):
    metadata: MetadataModel
    content: ContentModel = Field(default_factory=ContentModel)
    semantic: SemanticModel
    raw: RawModel | None = None

    def to_ir(self) -> IR:
        m, c, s = self.metadata, self.content, self.semantic
        return IR(
            metadata=IRMetadata(
                url=m.url,
                title=m.title,
                excerpt=m.excerpt,
                lang=m.lang or "zh-CN",
                author=m.author or None,
                publish_date=m.publish_date or None,
                site_name=m.site_name or None,
            ),
            content=IRContent(
                headings=tuple(Heading(level=h.level, text=h.text, id=h.id) for h in c.headings),
                paragraphs=tuple(c.paragraphs),
                images=tuple(
                    ImageItem(src=i.src, alt=i.alt, caption=i.caption, width=i.width, height=i.height)
                    for i in c.images
                ),
                lists=tuple(ListBlock(type=lb.type, items=tuple(lb.items)) for lb in c.lists or ()),
                videos=tuple(VideoItem(src=v.src, poster=v.poster, caption=v.caption) for v in c.videos or ()),
            ),
            semantic=IRSemantic(
                main_entity_type=s.main_entity_type,
                keywords=tuple(s.keywords),
                reading_time=s.reading_time,
                word_count=s.word_count,
            ),
            raw=(
                IRRaw(text_content=self.raw.text_content, html_content=self.raw.html_content, length=self.raw.length)
                if self.raw is not None
                else None
            ),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def describe_validation_error(exc: ValidationError) -> str:
    """Short human-readable summary of the first few pydantic errors."""
    parts = []
    for err in exc.errors()[:_MAX_ERRORS_IN_MESSAGE]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    extra = len(exc.errors()) - _MAX_ERRORS_IN_MESSAGE
    if extra > 0:
        parts.append(f"(+{extra} more)")
    return "; ".join(parts)


def parse_ir_payload(data: Any) -> IR:
    """Validate a JSON IR object and convert it to an IR.

    Raises:
        InvalidInputError: *data* is not a well-formed IR (field_name="ir").
    """
    if not isinstance(data, dict):
        raise InvalidInputError("IR payload must be a JSON object", field_name="ir")
    try:
        return IRPayload.model_validate(data).to_ir()
    except ValidationError as e:
        raise InvalidInputError(f"Invalid IR: {describe_validation_error(e)}", field_name="ir") from e


def parse_url_request(data: Any) -> str:
    if not isinstance(data, dict):
        raise InvalidInputError("Request body must be a JSON object with a 'url' field", field_name="url")
    try:
        return UrlRequest.model_validate(data).url
    except ValidationError as e:
        raise InvalidInputError(f"Invalid request: {describe_validation_error(e)}", field_name="url") from e
