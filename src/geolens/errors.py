# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""GeoLens exception hierarchy.

All GeoLens-specific errors inherit from GeoLensError, allowing callers
to catch the base class for any pipeline failure or specific subclasses
for targeted handling.  problem_details.py maps each class to an HTTP
status category.
"""

from __future__ import annotations


class GeoLensError(Exception):
    """Base exception for all GeoLens errors."""


class InvalidInputError(GeoLensError):
    """Malformed URL or IR payload, rejected before any I/O."""

    def __init__(self, message: str, *, field_name: str = "") -> None:
        super().__init__(message)
        self.field_name = field_name


class InvalidUrlError(InvalidInputError):
    """URL could not be parsed or has no host."""

    def __init__(self, message: str) -> None:
        super().__init__(message, field_name="url")


class InvalidProtocolError(InvalidUrlError):
    """URL scheme is not http or https."""


class FetchError(GeoLensError):
    """Network, timeout, or HTTP failure while acquiring a page."""

    def __init__(self, message: str, *, url: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class NotFoundError(FetchError):
    """Upstream returned 404 (never retried)."""


class HttpStatusError(FetchError):
    """Upstream returned a permanent 4xx (never retried)."""


class UnsupportedContentTypeError(FetchError):
    """Upstream answered 2xx with a non-HTML body."""

    def __init__(self, message: str, *, url: str = "", content_type: str = "") -> None:
        super().__init__(message, url=url)
        self.content_type = content_type


class FetchFailedError(FetchError):
    """All attempts exhausted.  ``last_error`` is the final underlying failure."""

    def __init__(self, message: str, *, url: str = "", last_error: BaseException | None = None) -> None:
        status = getattr(last_error, "status", None)
        super().__init__(message, url=url, status=status)
        self.last_error = last_error


class ExtractionError(GeoLensError):
    """Extractor produced nothing usable (content insufficient)."""


class BuildError(GeoLensError):
    """IR could not be assembled (metadata missing)."""
