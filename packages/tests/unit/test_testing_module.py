"""Tests for ruleprobe.testing — public test-support utilities.

Test Techniques Used:
    - Specification-based Testing: ``__all__`` and factory defaults
    - State Verification: FakeClock virtual time
    - Integration: RunnerHarness wiring and the pytest plugin fixtures
"""

from __future__ import annotations

import ruleprobe.testing as testing_mod
from ruleprobe._adapter import StoreAdapter
from ruleprobe._clock import ClockPort
from ruleprobe._scenario import Expectation, InputValue, Scenario, Step
from ruleprobe._settings import Settings
from ruleprobe._store import MemoryStore
from ruleprobe.testing import (
    FakeClock,
    RunnerHarness,
    fast_runner_settings,
    make_settings,
)


class TestPublicAPI:
    """The testing subpackage's exports.

    Technique: Specification-based Testing.
    """

    def test_all_contains_expected_symbols(self) -> None:
        assert set(testing_mod.__all__) == {
            "FakeClock",
            "IsolatedSettings",
            "MemoryStore",
            "RunnerHarness",
            "fast_runner_settings",
            "make_settings",
        }

    def test_memory_store_is_re_exported(self) -> None:
        assert testing_mod.MemoryStore is MemoryStore


class TestFakeClock:
    """Virtual time.

    Technique: State Verification.
    """

    def test_satisfies_clock_port(self) -> None:
        assert isinstance(FakeClock(), ClockPort)

    async def test_sleep_advances_time(self) -> None:
        """sleep() advances virtual time and records the duration."""
        clock = FakeClock(42.0)

        await clock.sleep(1.5)
        await clock.sleep(0.5)

        assert clock.now() == 44.0
        assert clock.sleeps == [1.5, 0.5]
        assert clock.total_slept == 2.0

    def test_advance_does_not_record(self) -> None:
        clock = FakeClock()

        clock.advance(10.0)

        assert clock.now() == 10.0
        assert clock.sleeps == []


class TestMakeSettings:
    """Isolated settings factories.

    Technique: Specification-based Testing.
    """

    def test_defaults(self) -> None:
        settings = make_settings()

        assert isinstance(settings, Settings)
        assert settings.store.host == "localhost"
        assert settings.runner.default_timeout_ms == 500

    def test_environment_is_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("RULEPROBE_STORE__HOST", "redis.local")

        assert make_settings().store.host == "localhost"

    def test_fast_runner_settings(self) -> None:
        settings = make_settings(runner=fast_runner_settings(cycle_time_ms=20))

        assert settings.runner.cycle_time_ms == 20
        assert settings.runner.default_timeout_ms == 60
        assert settings.runner.polling_interval_ms == 10


class TestRunnerHarness:
    """Harness wiring.

    Technique: Integration.
    """

    def test_shares_store_and_clock(self) -> None:
        harness = RunnerHarness.create()

        assert harness.adapter.store is harness.store
        assert harness.adapter.clock is harness.clock

    async def test_engine_hook_drives_outputs(self) -> None:
        harness = RunnerHarness.create(runner=fast_runner_settings())

        @harness.engine
        async def mirror(key: str, field: str | None, value: str) -> None:
            if key == "input:a":
                await harness.store.set("output:a", value)

        result = await harness.run_scenario(
            Scenario(
                name="Mirror",
                steps=[
                    Step(
                        name="mirror",
                        inputs=[InputValue(key="input:a", value=7)],
                        expectations=[Expectation(key="output:a", expected=7)],
                    ),
                ],
            ),
        )

        assert result.success is True


class TestPytestPlugin:
    """Fixtures registered by ``ruleprobe.testing._plugin``.

    Technique: Integration.
    """

    def test_memory_store_fixture(self, memory_store: MemoryStore) -> None:
        assert memory_store.strings == {}

    def test_fake_clock_fixture(self, fake_clock: FakeClock) -> None:
        assert fake_clock.now() == 0.0

    def test_store_adapter_fixture(
        self,
        store_adapter: StoreAdapter,
        memory_store: MemoryStore,
        fake_clock: FakeClock,
    ) -> None:
        assert store_adapter.store is memory_store
        assert store_adapter.clock is fake_clock

    def test_runner_harness_fixture(self, runner_harness: RunnerHarness) -> None:
        assert isinstance(runner_harness, RunnerHarness)
