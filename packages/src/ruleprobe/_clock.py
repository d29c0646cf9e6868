"""Monotonic clock port and system adapter.

Provides ClockPort (Protocol) and SystemClock.  Every wait in a test
run goes through the port: step delays, the expectation poll loop,
and the error-log throttle window.  Swapping in a fake clock therefore
makes timing-dependent behaviour deterministic and instant in tests.

**Why monotonic?** time.monotonic() is immune to NTP adjustments and
manual system-clock changes, making it suitable for deadlines.  The
epoch is arbitrary — only *differences* between now() calls are
meaningful (PEP 418).
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockPort(Protocol):
    """Monotonic clock with a cooperative sleep.

    The default implementation wraps ``time.monotonic()`` and
    ``asyncio.sleep()``.  Tests inject a fake whose ``sleep`` advances
    virtual time instead of suspending.
    """

    def now(self) -> float:
        """Return monotonic time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for *seconds*."""
        ...


class SystemClock:
    """Production clock wrapping ``time.monotonic()`` and ``asyncio.sleep()``.

    Satisfies :class:`ClockPort` via structural subtyping (PEP 544).

    Usage::

        clock = SystemClock()
        deadline = clock.now() + 1.5
        while clock.now() < deadline:
            await clock.sleep(0.1)
    """

    def now(self) -> float:
        """Return monotonic time in seconds."""
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        """Suspend the current task; non-positive values yield once."""
        await asyncio.sleep(max(seconds, 0.0))
