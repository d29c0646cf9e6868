"""Public test-support utilities for ruleprobe.

Provided symbols:

- :class:`RunnerHarness`: runner wired to an in-memory store and a fake clock.
- :class:`MemoryStore`: in-memory store double with write hooks.
- :class:`FakeClock`: virtual-time clock whose sleep returns immediately.
- :class:`IsolatedSettings`: settings that ignore the environment.
- :func:`make_settings`: factory for isolated ``Settings``.
- :func:`fast_runner_settings`: short cycle timing for in-memory runs.
"""

from ruleprobe._store import MemoryStore
from ruleprobe.testing._clock import FakeClock
from ruleprobe.testing._harness import RunnerHarness
from ruleprobe.testing._settings import (
    IsolatedSettings,
    fast_runner_settings,
    make_settings,
)

__all__ = [
    "FakeClock",
    "IsolatedSettings",
    "MemoryStore",
    "RunnerHarness",
    "fast_runner_settings",
    "make_settings",
]
