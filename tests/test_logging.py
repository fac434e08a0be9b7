"""
Tests for the logging module.
"""

import time

from keystone.logging import (
    PipelineTimer,
    add_context_info,
    get_job,
    get_owner_email,
    get_run_id,
    logging_context,
)


class TestLoggingContext:
    """Test logging context management."""

    def test_logging_context_sets_values(self):
        with logging_context(run_id="run_123", job="mail", owner_email="me@keystone.test"):
            assert get_run_id() == "run_123"
            assert get_job() == "mail"
            assert get_owner_email() == "me@keystone.test"

    def test_logging_context_restores_values(self):
        with logging_context(job="sheet"):
            assert get_job() == "sheet"

            with logging_context(job="mail"):
                assert get_job() == "mail"

            assert get_job() == "sheet"

        assert get_job() is None

    def test_logging_context_partial_values(self):
        with logging_context(owner_email="me@keystone.test"):
            assert get_owner_email() == "me@keystone.test"
            assert get_run_id() is None
            assert get_job() is None

    def test_processor_adds_only_set_values(self):
        with logging_context(run_id="run_1", job="nudges"):
            event = add_context_info(None, "info", {"event": "nudges.generated"})

        assert event == {"event": "nudges.generated", "run_id": "run_1", "job": "nudges"}


class TestPipelineTimer:
    """Test pipeline timing functionality."""

    def test_timer_records_stages(self):
        timer = PipelineTimer()

        with timer.stage("fetch"):
            time.sleep(0.01)
        with timer.stage("apply"):
            pass

        assert set(timer.stages) == {"fetch", "apply"}
        assert timer.stages["fetch"] >= 10 * 0.5

    def test_stage_recorded_when_body_raises(self):
        timer = PipelineTimer()
        try:
            with timer.stage("fetch"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert "fetch" in timer.stages

    def test_summary(self):
        timer = PipelineTimer()
        with timer.stage("classify"):
            pass

        summary = timer.summary()

        assert summary["total_ms"] >= summary["stages"]["classify"]
        assert set(summary["stages"]) == {"classify"}
