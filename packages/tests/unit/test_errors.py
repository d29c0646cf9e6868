"""Tests for ruleprobe._errors — error taxonomy and throttled logging.

Test Techniques Used:
    - Specification-based Testing: exception messages and attributes
    - Clock Injection: throttle window measured on FakeClock
    - Log Inspection: one ERROR line per category per window
"""

from __future__ import annotations

import logging

import pytest

from ruleprobe._errors import (
    ErrorThrottle,
    ExpressionError,
    RuleLoadError,
    RuleprobeError,
    StoreError,
)
from ruleprobe.testing import FakeClock

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TestExceptions:
    """Exception types.

    Technique: Specification-based Testing.
    """

    def test_hierarchy(self) -> None:
        """Every ruleprobe error derives from RuleprobeError."""
        for cls in (RuleLoadError, ExpressionError, StoreError):
            assert issubclass(cls, RuleprobeError)

    def test_rule_load_error_with_source(self) -> None:
        error = RuleLoadError("bad operator", source="rules.yaml")

        assert str(error) == "rules.yaml: bad operator"
        assert error.source == "rules.yaml"

    def test_rule_load_error_without_source(self) -> None:
        assert str(RuleLoadError("bad operator")) == "bad operator"

    def test_expression_error(self) -> None:
        error = ExpressionError("input:a +", "invalid syntax")

        assert error.expression == "input:a +"
        assert error.reason == "invalid syntax"
        assert "input:a +" in str(error)

    def test_store_error(self) -> None:
        error = StoreError("send_inputs", ConnectionError("refused"))

        assert error.operation == "send_inputs"
        assert str(error) == "Store operation 'send_inputs' failed: refused"


# ---------------------------------------------------------------------------
# Throttle
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(100.0)


@pytest.fixture
def throttle(clock: FakeClock) -> ErrorThrottle:
    return ErrorThrottle(
        window_s=60.0,
        clock=clock,
        logger=logging.getLogger("tests.throttle"),
    )


class TestErrorThrottle:
    """Per-category rate limiting.

    Technique: Clock Injection.
    """

    def test_first_error_is_logged(
        self, throttle: ErrorThrottle, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.ERROR, logger="tests.throttle"):
            logged = throttle.log_error("send_inputs", "Failed", ConnectionError("x"))

        assert logged is True
        assert len(caplog.records) == 1
        assert caplog.records[0].category == "send_inputs"  # type: ignore[attr-defined]

    def test_errors_within_window_are_suppressed(self, throttle: ErrorThrottle) -> None:
        throttle.log_error("send_inputs", "Failed", ConnectionError("x"))

        assert throttle.log_error("send_inputs", "Failed", ConnectionError("x")) is False
        assert throttle.log_error("send_inputs", "Failed", ConnectionError("x")) is False
        assert throttle.suppressed_count("send_inputs") == 2

    def test_categories_are_independent(self, throttle: ErrorThrottle) -> None:
        throttle.log_error("send_inputs", "Failed", ConnectionError("x"))

        assert throttle.should_log("clear_keys") is True

    def test_window_reopens_and_reports_suppressed(
        self,
        throttle: ErrorThrottle,
        clock: FakeClock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """After the window, the next error carries the suppressed count."""
        throttle.log_error("send_inputs", "Failed", ConnectionError("x"))
        throttle.log_error("send_inputs", "Failed", ConnectionError("x"))
        clock.advance(60.0)

        with caplog.at_level(logging.ERROR, logger="tests.throttle"):
            logged = throttle.log_error("send_inputs", "Failed", ConnectionError("x"))

        assert logged is True
        assert caplog.records[-1].suppressed == 1  # type: ignore[attr-defined]
        assert throttle.suppressed_count("send_inputs") == 0
