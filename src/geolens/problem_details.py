# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RFC 9457 Problem Details for HTTP APIs.

Maps GeoLens exceptions onto three user-visible status categories:

- invalid request (400): bad URL or IR payload, rejected before I/O
- unprocessable content (422): page fetched but not usable as an article
- upstream failure (502): the target site could not be fetched

Key public API:

- ``ProblemType``: StrEnum error taxonomy.
- ``ProblemDetail``: frozen dataclass (→ JSON dict / Starlette response / CLI text).
- ``sanitize_detail()``: scrub secrets & paths from error messages.
- ``from_exception()`` / ``from_validation()``: factories.

Type URI namespace: ``https://geolens.dev/errors/{slug}``
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import (
    BuildError,
    ExtractionError,
    FetchError,
    GeoLensError,
    InvalidInputError,
    InvalidProtocolError,
    NotFoundError,
    UnsupportedContentTypeError,
)

_ERROR_BASE = "https://geolens.dev/errors"

MAX_DETAIL_LENGTH = 300


class ProblemType(StrEnum):
    """Error taxonomy for GeoLens."""

    # invalid request
    INVALID_URL = "invalid-url"
    INVALID_PROTOCOL = "invalid-protocol"
    INVALID_IR = "invalid-ir"
    VALIDATION_ERROR = "validation-error"

    # unprocessable content
    UNSUPPORTED_CONTENT_TYPE = "unsupported-content-type"
    CONTENT_INSUFFICIENT = "content-insufficient"
    BUILD_FAILED = "build-failed"

    # upstream failure
    UPSTREAM_NOT_FOUND = "upstream-not-found"
    UPSTREAM_FAILURE = "upstream-failure"

    @property
    def uri(self) -> str:
        """Full type URI for RFC 9457 ``type`` field."""
        return f"{_ERROR_BASE}/{self.value}"


# ── Per-type metadata: (status, title, hint) ─────────────────────────

_TYPE_METADATA: dict[ProblemType, tuple[int, str, str]] = {
    ProblemType.INVALID_URL: (400, "Invalid Request", "Provide an absolute http:// or https:// URL."),
    ProblemType.INVALID_PROTOCOL: (400, "Invalid Request", "Only http and https URLs are supported."),
    ProblemType.INVALID_IR: (400, "Invalid Request", "Send the IR object returned by /parse."),
    ProblemType.VALIDATION_ERROR: (400, "Invalid Request", ""),
    ProblemType.UNSUPPORTED_CONTENT_TYPE: (422, "Unprocessable Content", "The URL must point to an HTML page."),
    ProblemType.CONTENT_INSUFFICIENT: (
        422,
        "Unprocessable Content",
        "The page has too little article text. Try a specific article URL.",
    ),
    ProblemType.BUILD_FAILED: (422, "Unprocessable Content", ""),
    ProblemType.UPSTREAM_NOT_FOUND: (502, "Upstream Failure", "Check the URL spelling."),
    ProblemType.UPSTREAM_FAILURE: (502, "Upstream Failure", "The site may be down or blocking requests. Retry later."),
}

# ── Secret sanitization patterns ─────────────────────────────────────

_SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"Bearer\s+\S+"), "Bearer <redacted>"),
    (re.compile(r"Basic\s+[A-Za-z0-9+/=]{8,}"), "Basic <redacted>"),
    (
        re.compile(
            r"(?:API_KEY|SECRET|TOKEN|PASSWORD|CREDENTIAL)\s*[=:]\s*\S+",
            re.IGNORECASE,
        ),
        "<redacted>",
    ),
    (re.compile(r"://[^@\s/]+@"), "://<redacted>@"),
]

_PATH_PATTERN = re.compile(
    r"(/(?:Users|home|tmp|var|etc|opt|root|srv|proc|sys|usr|Library"
    r"|Applications|private|snap|mnt|media|nix)/[\w./-]+"
    r"|[A-Z]:\\[\w.\\-]+)"
)


def sanitize_detail(text: str) -> str:
    """Scrub secrets and filesystem paths from *text*, then truncate."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    text = _PATH_PATTERN.sub("<path>", text)
    if len(text) > MAX_DETAIL_LENGTH:
        text = text[:MAX_DETAIL_LENGTH] + "..."
    return text


# Standard RFC 9457 fields that extensions must never shadow.
_STANDARD_FIELDS = frozenset({"type", "title", "status", "detail", "instance"})


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """RFC 9457 Problem Detail object."""

    type: str = "about:blank"
    title: str = ""
    status: int = 500
    detail: str = ""
    instance: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)
    hint: str = field(default="", repr=False)

    def to_dict(self) -> dict[str, Any]:
        """RFC 9457 JSON dict.  Empty optional fields omitted, extensions merged at top level."""
        d: dict[str, Any] = {"type": self.type, "status": self.status, "success": False}
        if self.title:
            d["title"] = self.title
        if self.detail:
            d["detail"] = self.detail
        if self.instance:
            d["instance"] = self.instance
        for k, v in self.extensions.items():
            if k not in _STANDARD_FIELDS:
                d[k] = v
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_response(self):
        """Starlette ``JSONResponse`` with ``application/problem+json``."""
        from starlette.responses import JSONResponse

        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status,
            media_type="application/problem+json",
            headers={"Cache-Control": "no-store"},
        )

    def to_cli_text(self) -> str:
        """Human-friendly CLI error message.

        Format::

            Error: <detail>
            Hint: <hint>
        """
        lines = [f"Error: {self.detail or self.title}"]
        if self.hint:
            lines.append(f"Hint: {self.hint}")
        return "\n".join(lines)


def _build(
    problem_type: ProblemType,
    detail: str,
    *,
    instance: str = "",
    extensions: dict[str, Any] | None = None,
) -> ProblemDetail:
    status, title, hint = _TYPE_METADATA[problem_type]
    ext = {k: sanitize_detail(v) if isinstance(v, str) else v for k, v in (extensions or {}).items()}
    return ProblemDetail(
        type=problem_type.uri,
        title=title,
        status=status,
        detail=sanitize_detail(detail),
        instance=instance,
        extensions=ext,
        hint=hint,
    )


def _problem_type_for(exc: GeoLensError) -> ProblemType:
    """Most specific class wins: order matters for subclasses."""
    if isinstance(exc, InvalidProtocolError):
        return ProblemType.INVALID_PROTOCOL
    if isinstance(exc, InvalidInputError):
        if exc.field_name == "ir":
            return ProblemType.INVALID_IR
        if exc.field_name == "url":
            return ProblemType.INVALID_URL
        return ProblemType.VALIDATION_ERROR
    if isinstance(exc, UnsupportedContentTypeError):
        return ProblemType.UNSUPPORTED_CONTENT_TYPE
    if isinstance(exc, NotFoundError):
        return ProblemType.UPSTREAM_NOT_FOUND
    if isinstance(exc, FetchError):
        return ProblemType.UPSTREAM_FAILURE
    if isinstance(exc, ExtractionError):
        return ProblemType.CONTENT_INSUFFICIENT
    if isinstance(exc, BuildError):
        return ProblemType.BUILD_FAILED
    return ProblemType.UPSTREAM_FAILURE


def from_exception(
    exc: Exception,
    *,
    instance: str = "",
    extensions: dict[str, Any] | None = None,
) -> ProblemDetail:
    """Build a ProblemDetail from an exception.

    GeoLens errors map onto the taxonomy above.  Anything else produces a
    generic 500 whose detail never includes the exception text.
    """
    ext = dict(extensions) if extensions else {}

    if isinstance(exc, GeoLensError):
        problem_type = _problem_type_for(exc)
        if isinstance(exc, FetchError):
            if exc.url:
                ext.setdefault("url", exc.url)
            if exc.status is not None:
                ext.setdefault("upstream_status", exc.status)
        if isinstance(exc, UnsupportedContentTypeError) and exc.content_type:
            ext.setdefault("content_type", exc.content_type)
        if isinstance(exc, InvalidInputError) and exc.field_name:
            ext.setdefault("field", exc.field_name)
        return _build(problem_type, str(exc), instance=instance, extensions=ext)

    return ProblemDetail(
        type="about:blank",
        title="Internal Server Error",
        status=500,
        detail="An unexpected error occurred.",
        instance=instance,
        extensions=ext,
    )


def from_validation(
    detail: str,
    *,
    field_name: str = "",
    instance: str = "",
) -> ProblemDetail:
    """Build a 400 ProblemDetail for request validation errors."""
    ext: dict[str, Any] = {}
    if field_name:
        ext["field"] = field_name
    problem_type = ProblemType.INVALID_IR if field_name == "ir" else ProblemType.VALIDATION_ERROR
    return _build(problem_type, detail, instance=instance, extensions=ext)
