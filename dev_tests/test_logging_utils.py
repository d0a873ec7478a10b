"""
Tests for logging_utils.py - phase tracking and logging setup.
"""

import logging

import pytest

from logging_utils import Phase, PhaseLogger, TimingTracker, create_phase_logger, setup_logging


class TestTimingTracker:

    def test_end_without_start_returns_zero(self):
        assert TimingTracker().end("missing") == 0.0

    def test_records_elapsed(self):
        tracker = TimingTracker()
        tracker.start("k")
        elapsed = tracker.end("k")
        assert elapsed >= 0.0
        assert tracker.get("k") == elapsed


class TestPhaseLogger:

    def test_phase_records_timing(self, caplog):
        """
        Given: A verbose phase logger
        When: A phase block completes
        Then: Its timing is recorded and a completion line is logged
        """
        phase_logger = PhaseLogger(upload_label="doc.pdf", verbose=True, logger=logging.getLogger("test.phase"))

        with caplog.at_level(logging.INFO, logger="test.phase"):
            with phase_logger.phase(Phase.RESOLVE, sub_label="data"):
                phase_logger.info("resolving")

        assert phase_logger.timing_tracker.get(Phase.RESOLVE) is not None
        assert any("COMPLETED" in record.getMessage() for record in caplog.records)

    def test_failed_phase_logs_warning_and_reraises(self, caplog):
        phase_logger = create_phase_logger("doc.pdf")
        phase_logger.logger = logging.getLogger("test.phase.fail")

        with caplog.at_level(logging.WARNING, logger="test.phase.fail"):
            with pytest.raises(RuntimeError):
                with phase_logger.phase(Phase.WRITE):
                    raise RuntimeError("boom")

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert warnings and "FAILED" in warnings[0].getMessage()


class TestSetupLogging:

    def test_silences_http_client_loggers(self):
        setup_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
