# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""GEO pipeline: explicit composition of fetch → extract → build → render.

Every collaborator (fetcher, extractor, builder, detector, both caches) is
constructed once and injected; ``GeoPipeline.from_settings`` wires the
defaults.  Four entry points:

- ``serve_geo``: classify the requester; AI gets GEO HTML, humans an
  explanatory page (the fetcher is never touched for them)
- ``parse``: inspection view with IR + GEO HTML + original HTML + timings
- ``render_ir``: render a client-supplied JSON IR
- ``cache_stats`` / ``clear_caches``

The IR cache is keyed by the normalized URL.  A second cache holds raw HTML
under the same key so ``parse`` can return the original page even on an IR
cache hit.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from . import IR
from .ai_detector import AIDetector, DetectionResult, RequestSignals
from .cache import TTLCache, normalize_cache_key
from .config import Settings
from .errors import ExtractionError, GeoLensError
from .extractor import ArticleExtractor
from .fetcher import Fetcher, validate_url
from .geo_renderer import render
from .ir_builder import IRBuilder
from .pipeline_timer import PipelineTimer
from .sanitizer import escape_html
from .schemas import parse_ir_payload

logger = logging.getLogger(__name__)

AI_CACHE_CONTROL = "public, max-age=3600"
CONTENT_INSUFFICIENT = "Content insufficient: no readable article found on the page"


@dataclass(frozen=True, slots=True)
class GeoResponse:
    body: str
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    media_type: str = "text/html; charset=utf-8"
    detection: DetectionResult | None = None


@dataclass(frozen=True, slots=True)
class ParseResult:
    ir: IR
    geo_html: str
    original_html: str
    original_title: str
    cached: bool
    processing_time_ms: float
    timings: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ir": self.ir.to_dict(),
            "geoHTML": self.geo_html,
            "originalHTML": self.original_html,
            "originalTitle": self.original_title,
            "cached": self.cached,
            "processingTime": self.processing_time_ms,
            "timings": dict(self.timings),
        }


@dataclass(frozen=True, slots=True)
class _Computed:
    ir: IR
    html: str


def human_page(target_url: str) -> str:
    """Explanatory page served to non-AI requesters."""
    url = escape_html(target_url)
    return "\n".join(
        [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '  <meta charset="UTF-8">',
            '  <meta name="viewport" content="width=device-width, initial-scale=1.0">',
            "  <title>GEO endpoint</title>",
            '  <meta name="robots" content="noindex">',
            "</head>",
            "<body>",
            "  <main>",
            "    <h1>This endpoint serves AI crawlers</h1>",
            "    <p>GeoLens returns a semantic, JSON-LD enriched version of pages to AI agents.",
            "    Your request was classified as a regular browser.</p>",
            f'    <p>Original page: <a href="{url}" rel="nofollow">{url}</a></p>',
            "    <p>To preview the AI version, add <code>?format=geo</code> to this URL.</p>",
            "  </main>",
            "</body>",
            "</html>",
            "",
        ]
    )


class GeoPipeline:
    def __init__(
        self,
        settings: Settings,
        *,
        fetcher: Fetcher,
        extractor: ArticleExtractor,
        builder: IRBuilder,
        detector: AIDetector,
        ir_cache: TTLCache[IR],
        html_cache: TTLCache[str],
    ) -> None:
        self.settings = settings
        self.fetcher = fetcher
        self.extractor = extractor
        self.builder = builder
        self.detector = detector
        self.ir_cache = ir_cache
        self.html_cache = html_cache

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> GeoPipeline:
        """Wire default collaborators; keyword overrides replace individual ones."""
        cache_cfg = settings.cache
        parts: dict[str, Any] = {
            "fetcher": lambda: Fetcher(settings.fetch),
            "extractor": lambda: ArticleExtractor(char_threshold=settings.char_threshold),
            "builder": lambda: IRBuilder(default_lang=settings.default_lang),
            "detector": lambda: AIDetector(settings.detector),
            "ir_cache": lambda: TTLCache(
                name="ir-cache",
                ttl=cache_cfg.ir_ttl,
                max_size=cache_cfg.ir_max_size,
                enabled=cache_cfg.enabled,
                single_flight=cache_cfg.single_flight,
            ),
            "html_cache": lambda: TTLCache(
                name="html-cache",
                ttl=cache_cfg.html_ttl,
                max_size=cache_cfg.html_max_size,
                enabled=cache_cfg.enabled,
                single_flight=cache_cfg.single_flight,
            ),
        }
        kwargs = {name: overrides[name] if name in overrides else make() for name, make in parts.items()}
        return cls(settings, **kwargs)

    # -- Core chain --

    async def _fetch_html(self, url: str, key: str, timer: PipelineTimer) -> str:
        timer.stage("fetch")
        return await self.html_cache.get_or_compute(key, lambda: self.fetcher.fetch(url))

    async def _compute(self, url: str, key: str, timer: PipelineTimer) -> _Computed:
        html = await self._fetch_html(url, key, timer)

        timer.stage("extract")
        article = self.extractor.extract(html, url)
        if article is None:
            raise ExtractionError(CONTENT_INSUFFICIENT)

        timer.stage("build")
        ir = self.builder.build(article, url)
        return _Computed(ir=ir, html=html)

    async def _resolve(self, url: str, key: str, timer: PipelineTimer) -> tuple[IR, bool, str | None]:
        """(ir, served_from_cache, html fetched by this call or None)."""
        timer.stage("cache")
        fetched: list[str] = []

        async def factory() -> IR:
            computed = await self._compute(url, key, timer)
            fetched.append(computed.html)
            return computed.ir

        try:
            ir = await self.ir_cache.get_or_compute(key, factory)
        except GeoLensError:
            logger.warning("GEO pipeline failed for %s: %s", url, timer.failure_report())
            raise
        cached = not fetched
        if cached:
            logger.info("IR cache hit for %s", key)
        return ir, cached, (fetched[0] if fetched else None)

    async def get_ir(self, url: str, timer: PipelineTimer | None = None) -> tuple[IR, bool]:
        """IR for *url* via the IR cache.  Returns (ir, served_from_cache)."""
        url = validate_url(url)
        ir, cached, _ = await self._resolve(url, normalize_cache_key(url), timer or PipelineTimer())
        return ir, cached

    # -- Entry points --

    async def serve_geo(self, target_url: str, signals: RequestSignals) -> GeoResponse:
        """Serve *target_url* to the requester described by *signals*."""
        target_url = validate_url(target_url)
        detection = self.detector.classify(signals)
        if not detection.is_ai:
            logger.info("Human request for %s, serving explanatory page", target_url)
            return GeoResponse(
                body=human_page(target_url),
                headers={"X-GEO-Optimized": "false"},
                detection=detection,
            )

        timer = PipelineTimer()
        ir, cached = await self.get_ir(target_url, timer)
        timer.stage("render")
        body = render(ir)
        timer.finalize()

        headers = {
            "X-GEO-Optimized": "true",
            "X-Original-URL": ir.metadata.url,
            "Cache-Control": AI_CACHE_CONTROL,
            "X-Cache": "HIT" if cached else "MISS",
        }
        service = self.detector.service_of(signals)
        if service:
            headers["X-AI-Service"] = service
        logger.info(
            "Served GEO HTML for %s to %s (cached=%s, %.1fms)",
            ir.metadata.url,
            service or "AI agent",
            cached,
            timer.total_ms(),
        )
        return GeoResponse(body=body, headers=headers, detection=detection)

    async def parse(self, url: str) -> ParseResult:
        """Inspection entry: everything the pipeline knows about *url*."""
        start = time.perf_counter()
        timer = PipelineTimer()
        url = validate_url(url)
        key = normalize_cache_key(url)

        ir, cached, original_html = await self._resolve(url, key, timer)
        if original_html is None:
            # IR hit: raw HTML comes from its own cache, refetched if it expired first.
            original_html = await self._fetch_html(url, key, timer)

        timer.stage("render")
        geo_html = render(ir)
        timer.finalize()

        return ParseResult(
            ir=ir,
            geo_html=geo_html,
            original_html=original_html,
            original_title=ir.metadata.title,
            cached=cached,
            processing_time_ms=round((time.perf_counter() - start) * 1000, 1),
            timings=timer.elapsed_per_stage(),
        )

    def render_ir(self, payload: Any) -> str:
        """Validate a JSON IR payload and render it.  Raises InvalidInputError."""
        return render(parse_ir_payload(payload))

    def cache_stats(self) -> dict[str, dict[str, float | int]]:
        return {"ir": self.ir_cache.stats().to_dict(), "html": self.html_cache.stats().to_dict()}

    def clear_caches(self) -> None:
        self.ir_cache.clear()
        self.html_cache.clear()

    # -- Lifecycle --

    def start(self) -> None:
        """Start cache sweepers on the running loop."""
        interval = self.settings.cache.sweep_interval
        self.ir_cache.start_sweeper(interval)
        self.html_cache.start_sweeper(interval)

    async def aclose(self) -> None:
        await self.ir_cache.stop_sweeper()
        await self.html_cache.stop_sweeper()
        await self.fetcher.aclose()
