# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for PipelineTimer."""

from __future__ import annotations

from geolens.pipeline_timer import PipelineTimer, hint_for_stage


class FakeClock:
    """Nanosecond clock advanced by hand."""

    def __init__(self) -> None:
        self.ns = 0

    def __call__(self) -> int:
        return self.ns

    def advance_ms(self, ms: float) -> None:
        self.ns += int(ms * 1_000_000)


class TestPipelineTimer:
    def test_stage_tracking(self):
        timer = PipelineTimer()
        timer.stage("fetch")
        timer.stage("extract")
        timer.stage("build")
        timer.finalize()

        stages = timer.elapsed_per_stage()
        assert list(stages.keys()) == ["fetch", "extract", "build"]
        assert all(isinstance(v, float) for v in stages.values())

    def test_current_stage(self):
        timer = PipelineTimer()
        assert timer.current_stage is None

        timer.stage("fetch")
        assert timer.current_stage == "fetch"

        timer.stage("extract")
        assert timer.current_stage == "extract"

        timer.finalize()
        assert timer.current_stage is None

    def test_durations_with_fake_clock(self):
        clock = FakeClock()
        timer = PipelineTimer(clock=clock)
        timer.stage("fetch")
        clock.advance_ms(120)
        timer.stage("render")
        clock.advance_ms(5)
        timer.finalize()
        assert timer.elapsed_per_stage() == {"fetch": 120.0, "render": 5.0}
        assert timer.total_ms() == 125.0

    def test_repeated_stage_accumulates(self):
        clock = FakeClock()
        timer = PipelineTimer(clock=clock)
        timer.stage("fetch")
        clock.advance_ms(10)
        timer.stage("render")
        clock.advance_ms(1)
        timer.stage("fetch")
        clock.advance_ms(20)
        timer.finalize()
        assert timer.elapsed_per_stage()["fetch"] == 30.0

    def test_elapsed_includes_current_stage(self):
        clock = FakeClock()
        timer = PipelineTimer(clock=clock)
        timer.stage("running")
        clock.advance_ms(7)
        # Not finalized: still reported
        assert timer.elapsed_per_stage() == {"running": 7.0}

    def test_failure_report_names_running_stage(self):
        clock = FakeClock()
        timer = PipelineTimer(clock=clock)
        timer.stage("fetch")
        clock.advance_ms(3)
        timer.stage("extract")
        report = timer.failure_report()
        assert report["failed_stage"] == "extract"
        assert report["stages"]["fetch"] == 3.0
        assert "article" in report["hint"]

    def test_failure_report_after_finalize(self):
        timer = PipelineTimer()
        timer.stage("build")
        timer.finalize()
        assert timer.failure_report()["failed_stage"] == "build"

    def test_failure_report_no_stages(self):
        report = PipelineTimer().failure_report()
        assert report["failed_stage"] == "unknown"
        assert report["stages"] == {}
        assert report["hint"] == ""

    def test_explicit_stage(self):
        timer = PipelineTimer()
        timer.stage("extract")
        assert timer.failure_report("fetch")["failed_stage"] == "fetch"


class TestHints:
    def test_known_stages(self):
        assert "blocking bots" in hint_for_stage("fetch")
        assert "readable article" in hint_for_stage("extract")
        for stage in ("cache", "build", "render"):
            assert hint_for_stage(stage)

    def test_unknown_stage(self):
        assert hint_for_stage("custom") == ""
