"""Tests for ruleprobe._adapter — typed, format-aware store access.

Test Techniques Used:
    - Decision Table: key format resolution
    - Specification-based Testing: input encoding per format
    - Clock Injection: poll loop driven by FakeClock
    - Fault Injection: store failures become StoreError, logged once
"""

from __future__ import annotations

import json
import logging

import pytest

from ruleprobe._adapter import ResolvedKey, StoreAdapter, determine_key_format
from ruleprobe._errors import ErrorThrottle, StoreError
from ruleprobe._scenario import Expectation, InputValue
from ruleprobe._store import MemoryStore
from ruleprobe.testing import FakeClock


class TestDetermineKeyFormat:
    """Key format resolution.

    Technique: Decision Table.
    """

    @pytest.mark.parametrize(
        ("key", "field", "fmt", "expected"),
        [
            ("input:temp", None, "auto", ResolvedKey("input:temp", None, "string")),
            ("device:sensor1", None, "auto", ResolvedKey("device", "sensor1", "hash")),
            ("device", "sensor1", "auto", ResolvedKey("device", "sensor1", "hash")),
            ("a:b:c", None, "auto", ResolvedKey("a:b:c", None, "string")),
            ("plain", None, "auto", ResolvedKey("plain", None, "string")),
            ("device:sensor1", None, "hash", ResolvedKey("device", "sensor1", "hash")),
            ("input:cfg", None, "json", ResolvedKey("input:cfg", None, "json")),
            ("alerts", None, "pub", ResolvedKey("alerts", None, "pub")),
            ("device", None, "hash", ResolvedKey("device", None, "hash")),
        ],
    )
    def test_resolution(
        self,
        key: str,
        field: str | None,
        fmt: str,
        expected: ResolvedKey,
    ) -> None:
        assert determine_key_format(key, field, fmt) == expected  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestSendInputs:
    """Input encoding.

    Technique: Specification-based Testing.
    """

    async def test_string_values(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """Scalars are written as text; booleans as true/false."""
        await store_adapter.send_inputs(
            [
                InputValue(key="input:temperature", value=45.0),
                InputValue(key="input:door", value=True),
            ],
        )

        assert memory_store.strings == {
            "input:temperature": "45.0",
            "input:door": "true",
        }

    async def test_hash_value(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """A two-part non-domain key is written as a hash field."""
        await store_adapter.send_inputs([InputValue(key="device:sensor1", value=3)])

        assert memory_store.hashes == {"device": {"sensor1": "3"}}

    async def test_json_value(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """JSON inputs are serialised unless already text."""
        await store_adapter.send_inputs(
            [
                InputValue(key="input:cfg", value={"mode": "eco"}, format="json"),
                InputValue(key="input:raw", value='{"a": 1}', format="json"),
            ],
        )

        assert json.loads(memory_store.strings["input:cfg"]) == {"mode": "eco"}
        assert memory_store.strings["input:raw"] == '{"a": 1}'

    async def test_pub_value(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """pub inputs are published, not stored."""
        await store_adapter.send_inputs([InputValue(key="alerts", value="hot", format="pub")])

        assert memory_store.published == [("alerts", "hot")]
        assert memory_store.strings == {}

    async def test_hash_without_field_is_skipped(
        self,
        store_adapter: StoreAdapter,
        memory_store: MemoryStore,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """An unsplittable hash key is logged and skipped."""
        with caplog.at_level(logging.WARNING):
            await store_adapter.send_inputs([InputValue(key="device", value=1, format="hash")])

        assert memory_store.writes == []
        assert "Hash input without field" in caplog.text

    async def test_pre_test_outputs_are_plain_strings(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """Pre-seeded outputs go to string keys."""
        await store_adapter.set_pre_test_outputs({"output:fan": False, "output:level": 0.0})

        assert memory_store.strings == {"output:fan": "false", "output:level": "0.0"}

    async def test_clear_keys(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """clear_keys() deletes by pattern and returns the count."""
        memory_store.strings.update({"output:a": "1", "input:a": "2"})

        assert await store_adapter.clear_keys("output:*") == 1
        assert memory_store.strings == {"input:a": "2"}


# ---------------------------------------------------------------------------
# Expectations
# ---------------------------------------------------------------------------


class TestCheckExpectation:
    """Polling expectation checks.

    Technique: Clock Injection.
    """

    async def test_immediate_match(
        self,
        store_adapter: StoreAdapter,
        memory_store: MemoryStore,
        fake_clock: FakeClock,
    ) -> None:
        """A value already present matches without sleeping."""
        memory_store.strings["output:alert"] = "true"

        result = await store_adapter.check_expectation(
            Expectation(key="output:alert", expected=True, timeout_ms=1000),
        )

        assert result.success is True
        assert result.actual is True
        assert result.details is None
        assert fake_clock.sleeps == []

    async def test_numeric_tolerance(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """Textual numbers are coerced and compared within tolerance."""
        memory_store.strings["output:level"] = "90.00001"

        result = await store_adapter.check_expectation(
            Expectation(key="output:level", expected=90.0),
        )

        assert result.success is True
        assert result.actual == pytest.approx(90.00001)

    async def test_timeout_polls_until_deadline(
        self,
        store_adapter: StoreAdapter,
        fake_clock: FakeClock,
    ) -> None:
        """A missing value is polled until the timeout elapses."""
        result = await store_adapter.check_expectation(
            Expectation(
                key="output:alert",
                expected=True,
                timeout_ms=500,
                polling_interval_ms=100,
            ),
        )

        assert result.success is False
        assert result.timed_out is True
        assert result.actual is None
        assert fake_clock.total_slept == pytest.approx(0.5)
        assert result.details == "Expected: True, Actual: None (no match within 500 ms)"

    async def test_value_arriving_mid_poll(
        self,
        store_adapter: StoreAdapter,
        memory_store: MemoryStore,
        fake_clock: FakeClock,
    ) -> None:
        """A value written after a few polls is picked up."""
        original_sleep = fake_clock.sleep

        async def sleep_then_write(seconds: float) -> None:
            await original_sleep(seconds)
            if len(fake_clock.sleeps) == 3:
                memory_store.strings["output:alert"] = "true"

        fake_clock.sleep = sleep_then_write  # type: ignore[method-assign]

        result = await store_adapter.check_expectation(
            Expectation(
                key="output:alert",
                expected=True,
                timeout_ms=1000,
                polling_interval_ms=100,
            ),
        )

        assert result.success is True
        assert result.timed_out is False
        assert len(fake_clock.sleeps) == 3

    async def test_zero_timeout_checks_once(
        self,
        store_adapter: StoreAdapter,
        fake_clock: FakeClock,
    ) -> None:
        """timeout_ms=0 reads the value exactly once."""
        result = await store_adapter.check_expectation(
            Expectation(key="output:alert", expected=True, timeout_ms=0),
        )

        assert result.success is False
        assert result.timed_out is False
        assert fake_clock.sleeps == []

    async def test_hash_expectation(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """Hash expectations read the field and report it."""
        memory_store.hashes["device"] = {"relay": "on"}

        result = await store_adapter.check_expectation(
            Expectation(key="device", field="relay", expected="ON"),
        )

        assert result.success is True
        assert result.field == "relay"

    async def test_json_expectation(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """JSON values are decoded before comparison."""
        memory_store.strings["output:count"] = "3"

        result = await store_adapter.check_expectation(
            Expectation(key="output:count", expected=3, format="json"),
        )

        assert result.success is True
        assert result.actual == 3

    async def test_pub_expectation_fails(self, store_adapter: StoreAdapter) -> None:
        """Published messages cannot be checked."""
        result = await store_adapter.check_expectation(
            Expectation(key="alerts", expected="hot", format="pub"),
        )

        assert result.success is False
        assert result.details == "Published messages cannot be read back"

    async def test_hash_expectation_without_field_fails(
        self, store_adapter: StoreAdapter
    ) -> None:
        """A hash expectation with no resolvable field fails."""
        result = await store_adapter.check_expectation(
            Expectation(key="device", expected=1, format="hash"),
        )

        assert result.success is False
        assert result.details == "Hash format requires a field"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestStoreFailures:
    """Transport failures.

    Technique: Fault Injection.
    """

    async def test_send_failure_raises_store_error(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        """A failing write surfaces as StoreError naming the operation."""
        memory_store.failure = ConnectionError("down")

        with pytest.raises(StoreError) as exc_info:
            await store_adapter.send_inputs([InputValue(key="input:a", value=1)])

        assert exc_info.value.operation == "send_inputs"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    async def test_check_failure_raises_store_error(
        self, store_adapter: StoreAdapter, memory_store: MemoryStore
    ) -> None:
        memory_store.failure = ConnectionError("down")

        with pytest.raises(StoreError):
            await store_adapter.check_expectations([Expectation(key="output:a", expected=1)])

    async def test_repeated_failures_are_throttled(
        self,
        memory_store: MemoryStore,
        fake_clock: FakeClock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Only the first of several failures in a window is logged."""
        logger = logging.getLogger("tests.adapter")
        adapter = StoreAdapter(memory_store, clock=fake_clock, logger=logger)
        memory_store.failure = ConnectionError("down")

        with caplog.at_level(logging.ERROR, logger="tests.adapter"):
            for _ in range(3):
                with pytest.raises(StoreError):
                    await adapter.set_pre_test_outputs({"output:a": 1})

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert adapter.throttle is not None
        assert adapter.throttle.suppressed_count("set_pre_test_outputs") == 2

    async def test_injected_throttle_receives_failures(
        self, memory_store: MemoryStore, fake_clock: FakeClock
    ) -> None:
        """A caller-supplied throttle is the one that records failures."""
        throttle = ErrorThrottle(clock=fake_clock)
        adapter = StoreAdapter(memory_store, clock=fake_clock, throttle=throttle)
        memory_store.failure = ConnectionError("down")

        for _ in range(2):
            with pytest.raises(StoreError):
                await adapter.clear_keys("output:*")

        assert adapter.throttle is throttle
        assert throttle.suppressed_count("clear_keys") == 1
