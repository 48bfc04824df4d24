# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import geolens  # noqa: F401
except ImportError:
    raise ImportError("geolens is not installed. Run: pip install -e '.[dev]'") from None

from collections.abc import Callable

import httpx
import pytest

from geolens import (
    IR,
    CleanedArticle,
    Heading,
    ImageItem,
    IRContent,
    IRMetadata,
    IRSemantic,
    ListBlock,
    VideoItem,
)
from geolens.config import CacheSettings, FetchSettings, Settings
from geolens.fetcher import Fetcher
from geolens.pipeline import GeoPipeline
from tests._helpers import ARTICLE_HTML, ARTICLE_URL, RecordingSleep, html_response


# ---------------------------------------------------------------------------
# Data fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def article_html() -> str:
    return ARTICLE_HTML


@pytest.fixture
def cleaned_article() -> CleanedArticle:
    content = (
        "<div><h1>Quarterly gardening notes</h1>"
        "<p>Tomatoes planted in April are already flowering along the south fence.</p>"
        "<p>Short one.</p>"
        '<img src="https://cdn.example.com/tomato.jpg" alt="Tomato flowers">'
        "<ol><li>Water early</li><li>Mulch beds</li></ol>"
        "</div>"
    )
    text = (
        "Quarterly gardening notes Tomatoes planted in April are already flowering "
        "along the south fence. Short one. Water early Mulch beds"
    )
    return CleanedArticle(title="Quarterly gardening notes", content=content, text_content=text, length=len(text))


@pytest.fixture
def sample_ir() -> IR:
    return IR(
        metadata=IRMetadata(
            url="https://example.com/post",
            title="Rust & Python <together>",
            excerpt="Bridging two ecosystems.",
            lang="en",
            author="Ada",
            publish_date="2024-03-05T10:00:00Z",
            site_name="Example Blog",
        ),
        content=IRContent(
            headings=(Heading(level=2, text="Intro", id="intro"), Heading(level=3, text="Details")),
            paragraphs=(
                "First paragraph with enough characters.",
                "Second paragraph with enough characters.",
                "Third paragraph with enough characters.",
                "Fourth paragraph with enough characters.",
                "Fifth paragraph with enough characters.",
            ),
            images=(ImageItem(src="https://example.com/a.png", alt="Diagram", caption="Fig 1", width=640),),
            lists=(ListBlock(type="ol", items=("one", "two")),),
            videos=(VideoItem(src="https://www.youtube.com/embed/xyz"),),
        ),
        semantic=IRSemantic(main_entity_type="BlogPosting", keywords=("rust", "python"), reading_time=1, word_count=180),
    )


# ---------------------------------------------------------------------------
# Network fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_transport() -> Callable[..., httpx.MockTransport]:
    """Build a MockTransport from a handler; ``transport.requests`` records every request."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.MockTransport:
        requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        transport = httpx.MockTransport(_record)
        transport.requests = requests
        return transport

    return _make


@pytest.fixture
def settings() -> Settings:
    return Settings(
        fetch=FetchSettings(max_retries=2, base_timeout=5.0, timeout_step=1.0, backoff_base=0.5),
        cache=CacheSettings(ir_ttl=60.0, html_ttl=60.0),
    )


@pytest.fixture
def make_pipeline(settings, no_sleep, make_transport):
    """GeoPipeline whose fetcher talks to a MockTransport serving *pages* (url -> html)."""

    def _make(pages: dict[str, str] | None = None, handler=None, **overrides) -> GeoPipeline:
        pages = pages if pages is not None else {ARTICLE_URL: ARTICLE_HTML}

        def _default(request: httpx.Request) -> httpx.Response:
            body = pages.get(str(request.url))
            if body is None:
                return httpx.Response(404, text="not found")
            return html_response(body)

        transport = make_transport(handler or _default)
        fetcher = Fetcher(settings.fetch, transport=transport, sleep=no_sleep)
        pipeline = GeoPipeline.from_settings(settings, fetcher=fetcher, **overrides)
        pipeline.transport = transport
        return pipeline

    return _make
