"""Error taxonomy and throttled error logging.

Four kinds of failure occur during a test run, and each is handled at
a different place:

- **Generation-local** (malformed rule, unresolvable sensor, expression
  evaluation error) — caught at the smallest enclosing unit (one rule,
  one dependency, one temporal case) and degraded to a placeholder.
  :class:`ExpressionError` is the only one that crosses a module
  boundary, and the generator always catches it.
- **Rule loading** — :class:`RuleLoadError`, raised to the caller; a
  rule file that cannot be read is a user error, not a test failure.
- **Transport** (store unreachable, connection reset) —
  :class:`StoreError`, logged through :class:`ErrorThrottle` and
  re-raised.  The runner turns it into a scenario-level failure.
- **Comparison** — never an exception.  Mismatches resolve to
  ``False`` with a ``details`` string on the result.

Throttling behaviour:

- One ERROR line per *category* per window (60 s by default).
- Suppressed occurrences are counted and reported with the next
  logged one, so sustained outages stay visible without flooding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ruleprobe._clock import ClockPort, SystemClock

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RuleprobeError(Exception):
    """Base class for all ruleprobe errors."""


class RuleLoadError(RuleprobeError):
    """A rule document could not be parsed into rule definitions."""

    def __init__(self, message: str, *, source: str = "") -> None:
        super().__init__(f"{source}: {message}" if source else message)
        self.source = source


class ExpressionError(RuleprobeError):
    """An expression could not be evaluated."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Failed to evaluate expression {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason


class StoreError(RuleprobeError):
    """Transport-level failure talking to the key-value store."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(f"Store operation '{operation}' failed: {cause}")
        self.operation = operation


# ---------------------------------------------------------------------------
# Throttle
# ---------------------------------------------------------------------------


@dataclass
class ErrorThrottle:
    """Rate-limits error logging per category.

    Args:
        window_s: Minimum seconds between two logged errors of the
            same category.
        clock: Monotonic clock used to measure the window.
        logger: Destination for the throttled log lines.
    """

    window_s: float = 60.0
    clock: ClockPort = field(default_factory=SystemClock)
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger(__name__),
        repr=False,
    )
    _last_logged: dict[str, float] = field(default_factory=dict, init=False, repr=False)
    _suppressed: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def should_log(self, category: str) -> bool:
        """Return ``True`` if an error in *category* may be logged now.

        Records the attempt: a ``True`` result opens a new window, a
        ``False`` result increments the suppressed counter.
        """
        now = self.clock.now()
        last = self._last_logged.get(category)
        if last is not None and now - last < self.window_s:
            self._suppressed[category] = self._suppressed.get(category, 0) + 1
            return False
        self._last_logged[category] = now
        return True

    def log_error(self, category: str, message: str, error: Exception) -> bool:
        """Log *error* under *category* unless the window is still open.

        Returns:
            Whether a line was written.
        """
        if not self.should_log(category):
            return False
        suppressed = self._suppressed.pop(category, 0)
        self.logger.error(
            message,
            exc_info=error,
            extra={"category": category, "suppressed": suppressed},
        )
        return True

    def suppressed_count(self, category: str) -> int:
        """Occurrences swallowed since the last logged error in *category*."""
        return self._suppressed.get(category, 0)
