"""Pytest plugin providing shared ruleprobe fixtures.

Registers ``memory_store``, ``fake_clock``, ``store_adapter`` and
``runner_harness`` for any test suite that depends on ruleprobe, via
the ``pytest11`` entry point.

Imports of ruleprobe modules are deferred into the fixture bodies.
The plugin is loaded during plugin discovery, before ``pytest-cov``
starts tracing; importing the package at module level here would hide
those imports from coverage.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from ruleprobe._adapter import StoreAdapter
    from ruleprobe._store import MemoryStore
    from ruleprobe.testing._clock import FakeClock
    from ruleprobe.testing._harness import RunnerHarness


@pytest.fixture
def memory_store() -> MemoryStore:
    """Fresh, empty MemoryStore for each test."""
    from ruleprobe._store import MemoryStore

    return MemoryStore()


@pytest.fixture
def fake_clock() -> FakeClock:
    """FakeClock starting at time 0."""
    from ruleprobe.testing._clock import FakeClock

    return FakeClock()


@pytest.fixture
def store_adapter(memory_store: MemoryStore, fake_clock: FakeClock) -> StoreAdapter:
    """StoreAdapter over ``memory_store``, polling on ``fake_clock``."""
    from ruleprobe._adapter import StoreAdapter

    return StoreAdapter(memory_store, clock=fake_clock)


@pytest.fixture
def runner_harness() -> RunnerHarness:
    """RunnerHarness with default isolated settings."""
    from ruleprobe.testing._harness import RunnerHarness

    return RunnerHarness.create()
