# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for geolens.fetcher: URL validation, retry policy, identity rotation."""

from __future__ import annotations

import random

import httpx
import pytest

from geolens.config import FetchSettings
from geolens.errors import (
    FetchFailedError,
    HttpStatusError,
    InvalidProtocolError,
    InvalidUrlError,
    NotFoundError,
    UnsupportedContentTypeError,
)
from geolens.fetcher import BROWSER_USER_AGENTS, Fetcher, validate_url
from geolens.problem_details import from_exception

from tests._helpers import html_response

URL = "https://example.com/article"


def _fetcher(transport, no_sleep, **settings) -> Fetcher:
    settings.setdefault("max_retries", 3)
    return Fetcher(FetchSettings(**settings), transport=transport, sleep=no_sleep, rng=random.Random(7))


# =========================================================================
# validate_url
# =========================================================================


class TestValidateUrl:
    def test_accepts_http_and_https(self):
        assert validate_url("http://example.com") == "http://example.com"
        assert validate_url("  https://example.com/a?b=1  ") == "https://example.com/a?b=1"

    @pytest.mark.parametrize("url", ["", "   ", "example.com/page", "https://", "http:///path"])
    def test_invalid_url(self, url):
        with pytest.raises(InvalidUrlError) as exc_info:
            validate_url(url)
        assert exc_info.value.field_name == "url"

    @pytest.mark.parametrize("url", ["ftp://example.com/file", "file:///etc/passwd", "javascript:alert(1)"])
    def test_invalid_protocol(self, url):
        with pytest.raises(InvalidProtocolError):
            validate_url(url)

    def test_protocol_error_is_url_error(self):
        with pytest.raises(InvalidUrlError):
            validate_url("ftp://example.com")


# =========================================================================
# Attempt parameters
# =========================================================================


class TestAttemptParameters:
    def test_first_attempt_uses_bot_identity(self):
        f = Fetcher(FetchSettings(bot_user_agent="GEOBot/test"))
        assert f.user_agent_for(0) == "GEOBot/test"

    def test_later_attempts_use_browser_identity(self):
        f = Fetcher(rng=random.Random(1))
        for attempt in range(1, 5):
            assert f.user_agent_for(attempt) in BROWSER_USER_AGENTS

    def test_timeout_grows(self):
        f = Fetcher(FetchSettings(base_timeout=10.0, timeout_step=2.0))
        assert [f.timeout_for(i) for i in range(3)] == [10.0, 12.0, 14.0]

    def test_backoff_doubles(self):
        f = Fetcher(FetchSettings(backoff_base=1.0))
        assert [f.backoff_for(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_max_attempts(self):
        assert Fetcher(FetchSettings(max_retries=3)).max_attempts == 4
        assert Fetcher(FetchSettings(max_retries=0)).max_attempts == 1


# =========================================================================
# fetch()
# =========================================================================


class TestFetch:
    async def test_success_first_attempt(self, make_transport, no_sleep):
        transport = make_transport(lambda r: html_response("<html><body>ok</body></html>"))
        async with _fetcher(transport, no_sleep) as f:
            body = await f.fetch(URL)
        assert "ok" in body
        assert len(transport.requests) == 1
        assert no_sleep.delays == []

    async def test_request_headers(self, make_transport, no_sleep):
        transport = make_transport(lambda r: html_response("<html></html>"))
        async with _fetcher(transport, no_sleep, bot_user_agent="GEOBot/1.0") as f:
            await f.fetch(URL)
        req = transport.requests[0]
        assert req.headers["user-agent"] == "GEOBot/1.0"
        assert "text/html" in req.headers["accept"]
        assert req.headers["accept-language"].startswith("zh-CN")

    async def test_retry_then_success(self, make_transport, no_sleep):
        statuses = iter([503, 429, 200])

        def handler(request):
            status = next(statuses)
            if status == 200:
                return html_response("<html>fine</html>")
            return httpx.Response(status)

        transport = make_transport(handler)
        async with _fetcher(transport, no_sleep, backoff_base=1.0) as f:
            body = await f.fetch(URL)
        assert "fine" in body
        assert len(transport.requests) == 3
        assert no_sleep.delays == [1.0, 2.0]
        # identity rotates after the first attempt
        assert "GEOBot" in transport.requests[0].headers["user-agent"]
        assert transport.requests[1].headers["user-agent"] in BROWSER_USER_AGENTS

    async def test_403_is_retried(self, make_transport, no_sleep):
        statuses = iter([403, 200])
        transport = make_transport(
            lambda r: html_response("<p>x</p>") if next(statuses) == 200 else httpx.Response(403)
        )
        async with _fetcher(transport, no_sleep) as f:
            await f.fetch(URL)
        assert len(transport.requests) == 2

    async def test_404_not_retried(self, make_transport, no_sleep):
        transport = make_transport(lambda r: httpx.Response(404))
        async with _fetcher(transport, no_sleep) as f:
            with pytest.raises(NotFoundError) as exc_info:
                await f.fetch(URL)
        assert exc_info.value.status == 404
        assert exc_info.value.url == URL
        assert len(transport.requests) == 1

    async def test_permanent_4xx_not_retried(self, make_transport, no_sleep):
        transport = make_transport(lambda r: httpx.Response(410))
        async with _fetcher(transport, no_sleep) as f:
            with pytest.raises(HttpStatusError) as exc_info:
                await f.fetch(URL)
        assert exc_info.value.status == 410
        assert len(transport.requests) == 1

    async def test_non_html_rejected(self, make_transport, no_sleep):
        transport = make_transport(
            lambda r: httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})
        )
        async with _fetcher(transport, no_sleep) as f:
            with pytest.raises(UnsupportedContentTypeError) as exc_info:
                await f.fetch(URL)
        assert exc_info.value.content_type == "application/pdf"
        assert len(transport.requests) == 1

    async def test_exhausted_attempts(self, make_transport, no_sleep):
        transport = make_transport(lambda r: httpx.Response(500))
        async with _fetcher(transport, no_sleep, max_retries=2, backoff_base=1.0) as f:
            with pytest.raises(FetchFailedError) as exc_info:
                await f.fetch(URL)
        assert len(transport.requests) == 3
        assert no_sleep.delays == [1.0, 2.0]
        assert exc_info.value.status == 500
        assert exc_info.value.__cause__ is exc_info.value.last_error

    async def test_timeout_is_retried(self, make_transport, no_sleep):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return html_response("<html>late</html>")

        transport = make_transport(handler)
        async with _fetcher(transport, no_sleep) as f:
            assert "late" in await f.fetch(URL)
        assert calls == 2

    async def test_transport_error_exhausts(self, make_transport, no_sleep):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport = make_transport(handler)
        async with _fetcher(transport, no_sleep, max_retries=1) as f:
            with pytest.raises(FetchFailedError) as exc_info:
                await f.fetch(URL)
        assert isinstance(exc_info.value.last_error, httpx.ConnectError)
        assert exc_info.value.status is None

    async def test_redirect_loop_is_upstream_failure(self, make_transport, no_sleep):
        transport = make_transport(lambda r: httpx.Response(302, headers={"Location": URL}))
        async with _fetcher(transport, no_sleep, max_retries=1) as f:
            with pytest.raises(FetchFailedError) as exc_info:
                await f.fetch(URL)
        assert isinstance(exc_info.value.last_error, httpx.TooManyRedirects)
        assert from_exception(exc_info.value).status == 502

    async def test_undecodable_body_is_retried(self, make_transport, no_sleep):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(
                    200,
                    headers={"Content-Type": "text/html", "Content-Encoding": "gzip"},
                    content=b"definitely not gzip",
                )
            return html_response("<html>fine</html>")

        transport = make_transport(handler)
        async with _fetcher(transport, no_sleep) as f:
            assert "fine" in await f.fetch(URL)
        assert calls == 2

    async def test_undecodable_body_exhausts(self, make_transport, no_sleep):
        transport = make_transport(
            lambda r: httpx.Response(
                200,
                headers={"Content-Type": "text/html", "Content-Encoding": "gzip"},
                content=b"definitely not gzip",
            )
        )
        async with _fetcher(transport, no_sleep, max_retries=0) as f:
            with pytest.raises(FetchFailedError) as exc_info:
                await f.fetch(URL)
        assert isinstance(exc_info.value.last_error, httpx.DecodingError)

    async def test_invalid_url_makes_no_request(self, make_transport, no_sleep):
        transport = make_transport(lambda r: html_response(""))
        async with _fetcher(transport, no_sleep) as f:
            with pytest.raises(InvalidProtocolError):
                await f.fetch("ftp://example.com/x")
        assert transport.requests == []

    async def test_injected_client_not_closed(self, make_transport, no_sleep):
        client = httpx.AsyncClient(transport=make_transport(lambda r: html_response("<p>hi</p>")))
        f = Fetcher(client=client, sleep=no_sleep)
        await f.aclose()
        assert not client.is_closed
        await client.aclose()
