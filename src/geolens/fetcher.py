# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page acquisition over httpx with bounded retries and identity rotation.

Attempt 0 announces the GEO bot; later attempts pose as a desktop browser
picked at random from BROWSER_USER_AGENTS.  Each attempt gets a longer
timeout and a doubling backoff delay before it.

Retryable: 5xx, 429, 403, timeouts, and any other httpx request error
(connection failures, redirect loops, undecodable bodies).
Permanent: 404 (NotFoundError), other 4xx (HttpStatusError), non-HTML 2xx
(UnsupportedContentTypeError).
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from urllib.parse import urlsplit

import httpx

from .config import FetchSettings
from .errors import (
    FetchError,
    FetchFailedError,
    HttpStatusError,
    InvalidProtocolError,
    InvalidUrlError,
    NotFoundError,
    UnsupportedContentTypeError,
)

logger = logging.getLogger(__name__)

BROWSER_USER_AGENTS: tuple[str, ...] = (
    # Chrome macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Chrome Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/115.0",
)

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

_RETRYABLE_4XX = frozenset({403, 429})


def validate_url(url: str) -> str:
    """Return *url* stripped, or raise before any network I/O.

    Raises:
        InvalidProtocolError: scheme is not http/https.
        InvalidUrlError: unparseable or no host.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidUrlError("URL is required")
    url = url.strip()
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL: {url}") from e
    if not parts.scheme:
        raise InvalidUrlError(f"Invalid URL: {url}")
    if parts.scheme.lower() not in ("http", "https"):
        raise InvalidProtocolError(f"Unsupported protocol: {parts.scheme}: (only http/https)")
    try:
        host = parts.hostname
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL: {url}") from e
    if not host:
        raise InvalidUrlError(f"Invalid URL: {url}")
    return url


class Fetcher:
    """Fetch HTML pages.  Owns its httpx.AsyncClient unless one is injected."""

    def __init__(
        self,
        settings: FetchSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or FetchSettings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(transport=transport, follow_redirects=True)
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def max_attempts(self) -> int:
        return self._settings.max_retries + 1

    def user_agent_for(self, attempt: int) -> str:
        if attempt == 0:
            return self._settings.bot_user_agent
        return self._rng.choice(BROWSER_USER_AGENTS)

    def timeout_for(self, attempt: int) -> float:
        return self._settings.base_timeout + self._settings.timeout_step * attempt

    def backoff_for(self, attempt: int) -> float:
        """Delay after failed *attempt* before the next one."""
        return self._settings.backoff_base * (2**attempt)

    async def fetch(self, url: str) -> str:
        """Return the HTML body of *url*.

        Raises:
            InvalidUrlError / InvalidProtocolError: before any request.
            NotFoundError, HttpStatusError, UnsupportedContentTypeError: no retry.
            FetchFailedError: every attempt failed; chained to the last error.
        """
        url = validate_url(url)
        last_error: BaseException | None = None

        for attempt in range(self.max_attempts):
            if attempt > 0:
                delay = self.backoff_for(attempt - 1)
                logger.debug("Backing off %.1fs before attempt %d for %s", delay, attempt + 1, url)
                await self._sleep(delay)

            timeout = self.timeout_for(attempt)
            logger.info(
                "Fetch attempt %d/%d: %s (identity=%s, timeout=%.0fs)",
                attempt + 1,
                self.max_attempts,
                url,
                "bot" if attempt == 0 else "browser",
                timeout,
            )
            try:
                return await self._attempt(url, self.user_agent_for(attempt), timeout)
            except (NotFoundError, HttpStatusError, UnsupportedContentTypeError):
                raise
            except FetchError as e:
                last_error = e
                logger.warning("Attempt %d for %s failed: %s", attempt + 1, url, e)
            except httpx.TimeoutException as e:
                last_error = e
                logger.warning("Attempt %d for %s timed out after %.0fs", attempt + 1, url, timeout)
            except (httpx.RequestError, httpx.InvalidURL) as e:
                # Transport failures, redirect loops, undecodable bodies.
                last_error = e
                logger.warning("Attempt %d for %s network error: %s", attempt + 1, url, type(e).__name__)

        raise FetchFailedError(
            f"Failed to fetch {url} after {self.max_attempts} attempts: {last_error}",
            url=url,
            last_error=last_error,
        ) from last_error

    async def _attempt(self, url: str, user_agent: str, timeout: float) -> str:
        headers = {
            "User-Agent": user_agent,
            "Accept": ACCEPT_HEADER,
            "Accept-Language": self._settings.accept_language,
        }
        response = await self._client.get(url, headers=headers, timeout=timeout)

        status = response.status_code
        if response.is_success:
            content_type = response.headers.get("content-type", "")
            if "text/html" not in content_type.lower():
                raise UnsupportedContentTypeError(
                    f"Unsupported content type: {content_type or 'none'}",
                    url=url,
                    content_type=content_type,
                )
            return response.text
        if status == 404:
            raise NotFoundError(f"Page not found (404): {url}", url=url, status=status)
        if 400 <= status < 500 and status not in _RETRYABLE_4XX:
            raise HttpStatusError(f"HTTP {status}: {response.reason_phrase}", url=url, status=status)
        raise FetchError(f"HTTP {status}: {response.reason_phrase}", url=url, status=status)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
