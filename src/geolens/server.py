# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""GeoLens HTTP server.

Thin Starlette adapter over ``GeoPipeline``:

- GET  /health                 liveness
- GET  /geo?url=… | POST /geo  GEO HTML for AI requesters, explanatory page otherwise
- GET  /geo/{target:path}      same, target rebuilt as https://{target}
- GET  /parse?url=… | POST /parse   IR + GEO HTML + original HTML (JSON)
- POST /generate               render a client-supplied IR
- GET  /cache/stats            cache counters;  DELETE clears both caches

Failures are RFC 9457 problem details (problem_details.py).  All logging goes
to stderr through the structlog bridge, with a request_id bound per request.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import re
import sys
import uuid
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .ai_detector import RequestSignals
from .config import Settings, load_settings
from .errors import InvalidInputError
from .logging_config import bind_request_context, bind_target_url, clear_request_context
from .pipeline import GeoPipeline
from .problem_details import ProblemDetail, from_exception, from_validation
from .schemas import parse_url_request

logger = logging.getLogger("geolens.server")

_SCHEME_PREFIX_RE = re.compile(r"^(https?):/+", re.IGNORECASE)
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_USAGE = "Use /geo/{domain}/{path} or ?url=https://…"


# ── Request context middleware ───────────────────────────────────────


class RequestContextMiddleware:
    """Pure ASGI middleware: bind request_id to log context, echo it as X-Request-ID."""

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = ""
        for name, value in scope.get("headers", []):
            if name == b"x-request-id":
                incoming = value.decode("latin-1")
                break
        request_id = incoming if _REQUEST_ID_RE.match(incoming) else uuid.uuid4().hex[:16]
        bind_request_context(request_id=request_id, path=scope.get("path", ""))

        async def _send(message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"x-request-id", request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, _send)
        finally:
            clear_request_context()


# ── Helpers ──────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _pipeline(request: Request) -> GeoPipeline:
    return request.app.state.pipeline


def _problem(exc: Exception, request: Request) -> Response:
    problem = from_exception(exc, instance=request.url.path)
    if problem.status >= 500:
        logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
    else:
        logger.info("Request failed on %s: %s (%d)", request.url.path, problem.type, problem.status)
    return problem.to_response()


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        raise InvalidInputError("Request body is empty")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidInputError("Request body is not valid JSON") from e


def signals_from_request(request: Request) -> RequestSignals:
    return RequestSignals.from_mapping(
        headers=dict(request.headers.items()),
        query=dict(request.query_params.items()),
        url=str(request.url),
    )


def target_from_path(target: str) -> str:
    """/geo/example.com/a → https://example.com/a; an explicit scheme is kept."""
    target = target.lstrip("/")
    m = _SCHEME_PREFIX_RE.match(target)
    if m:
        return f"{m.group(1).lower()}://{target[m.end():]}"
    return f"https://{target}"


async def _target_url(request: Request) -> str:
    if request.method == "POST":
        url = parse_url_request(await _json_body(request))
    else:
        url = request.query_params.get("url", "").strip()
        if not url:
            raise InvalidInputError(f"Missing target URL. {_USAGE}", field_name="url")
    bind_target_url(url)
    return url


def _geo_response(result) -> Response:
    return Response(
        content=result.body,
        status_code=result.status,
        media_type=result.media_type,
        headers=result.headers,
    )


# ── Handlers ─────────────────────────────────────────────────────────


async def health(request: Request) -> Response:
    return JSONResponse({"status": "ok"})


async def geo(request: Request) -> Response:
    try:
        target = await _target_url(request)
        result = await _pipeline(request).serve_geo(target, signals_from_request(request))
    except Exception as e:
        return _problem(e, request)
    return _geo_response(result)


async def geo_path(request: Request) -> Response:
    url_param = request.query_params.get("url", "").strip()
    target = url_param or target_from_path(request.path_params.get("target", ""))
    bind_target_url(target)
    try:
        result = await _pipeline(request).serve_geo(target, signals_from_request(request))
    except Exception as e:
        return _problem(e, request)
    return _geo_response(result)


async def parse(request: Request) -> Response:
    try:
        target = await _target_url(request)
        result = await _pipeline(request).parse(target)
    except Exception as e:
        return _problem(e, request)
    logger.info(
        "Parsed %s (cached=%s, %.1fms)",
        result.ir.metadata.url,
        result.cached,
        result.processing_time_ms,
    )
    return JSONResponse({"success": True, **result.to_dict()})


async def generate(request: Request) -> Response:
    try:
        body = await _json_body(request)
        if not isinstance(body, dict) or "ir" not in body:
            return from_validation("Body must be a JSON object with an 'ir' field", field_name="ir").to_response()
        html = _pipeline(request).render_ir(body["ir"])
    except Exception as e:
        return _problem(e, request)
    return JSONResponse({"success": True, "geoHTML": html})


async def cache_stats(request: Request) -> Response:
    pipeline = _pipeline(request)
    if request.method == "DELETE":
        pipeline.clear_caches()
        return JSONResponse({"success": True, "message": "Caches cleared", "timestamp": _now_iso()})
    return JSONResponse({"success": True, "stats": pipeline.cache_stats(), "timestamp": _now_iso()})


async def _not_found(request: Request, exc: Exception) -> Response:
    return ProblemDetail(
        title="Not Found",
        status=404,
        detail=f"No route for {request.url.path}",
        instance=request.url.path,
    ).to_response()


# ── App factory ──────────────────────────────────────────────────────


def create_app(pipeline: GeoPipeline | None = None, settings: Settings | None = None):
    """Build the ASGI app.  *pipeline* is created from *settings* when omitted."""
    settings = settings or load_settings()
    pipeline = pipeline or GeoPipeline.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        pipeline.start()
        logger.info("GeoLens ready (strict_mode=%s)", settings.detector.strict_mode)
        try:
            yield
        finally:
            await pipeline.aclose()
            logger.info("GeoLens shutdown complete")

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/geo", geo, methods=["GET", "POST"]),
        Route("/geo/{target:path}", geo_path, methods=["GET"]),
        Route("/parse", parse, methods=["GET", "POST"]),
        Route("/generate", generate, methods=["POST"]),
        Route("/cache/stats", cache_stats, methods=["GET", "DELETE"]),
    ]
    app = Starlette(routes=routes, lifespan=lifespan, exception_handlers={404: _not_found})
    app.state.pipeline = pipeline
    app.state.settings = settings
    return RequestContextMiddleware(app)


# ── Entry point ──────────────────────────────────────────────────────


def _parse_server_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI args; GEOLENS_* env vars fill anything not given on the command line.

    Returns:
        argparse.Namespace with attributes: host, port, lenient, log_level, json_logs.
    """
    parser = argparse.ArgumentParser(description="GeoLens GEO server")
    parser.add_argument("--host", default=None, help="Bind host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: 8000)")
    parser.add_argument(
        "--lenient",
        action="store_true",
        default=False,
        help="Disable strict mode: also treat structured-data Accept headers as AI",
    )
    parser.add_argument("--log-level", default=None, help="Root log level (default: INFO)")
    parser.add_argument(
        "--console-logs",
        action="store_true",
        default=False,
        help="Human-readable logs instead of JSON lines",
    )
    args, _ = parser.parse_known_args(argv)

    env_host = os.environ.get("GEOLENS_HOST", "").strip()
    if args.host is None:
        args.host = env_host or "127.0.0.1"

    if args.port is None:
        args.port = 8000
        env_port = os.environ.get("GEOLENS_PORT", "").strip()
        if env_port:
            with suppress(ValueError):
                args.port = int(env_port)

    if args.log_level is None:
        args.log_level = os.environ.get("GEOLENS_LOG_LEVEL", "").strip() or "INFO"

    env_json = os.environ.get("GEOLENS_JSON_LOGS", "").strip().lower()
    args.json_logs = not args.console_logs and env_json not in ("0", "false", "no", "off")
    return args


def build_settings(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    """Layer parsed CLI flags over env-derived settings."""
    base = base or load_settings()
    detector = base.detector
    if args.lenient:
        detector = dataclasses.replace(detector, strict_mode=False)
    return dataclasses.replace(
        base,
        detector=detector,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        json_logs=args.json_logs,
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point for ``python -m geolens.server`` and ``geolens serve``."""
    args = _parse_server_args(argv if argv is not None else sys.argv[1:])
    settings = build_settings(args)

    # Configure structlog BEFORE any log output
    from .logging_config import configure as configure_logging

    configure_logging(json_output=settings.json_logs, level=settings.log_level)

    import uvicorn

    logger.info("Starting GeoLens on %s:%d", settings.host, settings.port)
    uvicorn.run(
        create_app(settings=settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
