# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-stage latency for one GEO pipeline run (fetch → extract → build → render).

``stage(name)`` closes the running stage and opens the next; ``finalize()``
closes the last one whether the run succeeded or failed, so a failure report
still names the stage that was in progress.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

_STAGE_HINTS = {
    "cache": "IR cache lookup.",
    "fetch": "The target site may be slow, blocking bots, or unreachable.",
    "extract": "The page may not contain a readable article.",
    "build": "The article HTML could not be turned into an IR.",
    "render": "GEO HTML rendering failed.",
}


@dataclass(slots=True)
class StageSpan:
    name: str
    start_ns: int
    end_ns: int = 0

    def ms(self, now_ns: int | None = None) -> float:
        end = self.end_ns or (now_ns if now_ns is not None else self.start_ns)
        return round((end - self.start_ns) / 1e6, 1)


class PipelineTimer:
    """Record stage transitions of a single pipeline invocation."""

    __slots__ = ("_spans", "_current", "_start_ns", "_clock")

    def __init__(self, clock: Callable[[], int] = time.monotonic_ns) -> None:
        self._clock = clock
        self._spans: list[StageSpan] = []
        self._current: StageSpan | None = None
        self._start_ns = clock()

    def stage(self, name: str) -> None:
        now = self._clock()
        self._close(now)
        self._current = StageSpan(name=name, start_ns=now)

    def finalize(self) -> None:
        self._close(self._clock())

    def _close(self, now: int) -> None:
        if self._current is not None:
            self._current.end_ns = now
            self._spans.append(self._current)
            self._current = None

    @property
    def current_stage(self) -> str | None:
        return self._current.name if self._current else None

    def elapsed_per_stage(self) -> dict[str, float]:
        """{stage: ms}, including the stage still running.  Repeated names accumulate."""
        now = self._clock()
        out: dict[str, float] = {}
        spans = [*self._spans, self._current] if self._current else self._spans
        for span in spans:
            out[span.name] = round(out.get(span.name, 0.0) + span.ms(now), 1)
        return out

    def total_ms(self) -> float:
        return round((self._clock() - self._start_ns) / 1e6, 1)

    def failure_report(self, stage: str | None = None) -> dict:
        """Diagnostic dict for logs when a run fails in *stage* (default: last stage seen)."""
        failed = stage or self.current_stage or (self._spans[-1].name if self._spans else "unknown")
        return {
            "failed_stage": failed,
            "stages": self.elapsed_per_stage(),
            "total_ms": self.total_ms(),
            "hint": hint_for_stage(failed),
        }


def hint_for_stage(stage: str) -> str:
    return _STAGE_HINTS.get(stage, "")
