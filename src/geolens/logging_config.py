# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Log output for GeoLens: structlog rendering over stdlib logging.

Every geolens module logs through ``logging.getLogger(__name__)``; this module
decides how those records look.

With ``GEOLENS_JSON_LOGS`` set, ``geolens serve`` writes one JSON object per
line on stderr.  Every line carries a UTC ISO timestamp.  The request-id
middleware binds ``request_id`` and ``path`` for each request; the /geo,
/geo/{target} and /parse handlers add ``target_url`` once it is known.  A single
fetch -> extract -> build -> render run can then be followed from the
log stream even under concurrent load.

Otherwise, and always for the other CLI commands, output is plain uncolored
text on stderr, so stdout stays clean for GEO HTML and JSON piped to files.

httpx and httpcore log each request and readability logs its candidate
scoring.  Both are held at WARNING, otherwise they would drown the
fetch retry and extraction messages.
Leaf module: no geolens imports.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Third-party loggers that log every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "readability.readability")


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Install the structlog formatter on the root logger.

    Args:
        json_output: True for JSON lines (server), False for human-readable (CLI).
        level: Root logger level (default INFO).  Unknown names fall back to INFO.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(**values: object) -> None:
    """Attach key/values (request_id, target_url, ...) to every log line of this task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def bind_target_url(url: str) -> None:
    """Add the page being processed to the current request's log context."""
    structlog.contextvars.bind_contextvars(target_url=url)
