"""Typed, format-aware access to the store.

:class:`StoreAdapter` sits between the runner and a
:class:`~ruleprobe._store.StorePort`.  It resolves each key's storage
format, writes scenario inputs, polls expectations until they match or
time out, and turns transport failures into
:class:`~ruleprobe._errors.StoreError` after logging them through an
:class:`~ruleprobe._errors.ErrorThrottle`.

Key format resolution (``format="auto"``):

- an explicit ``field`` selects a hash;
- a two-part ``a:b`` key without a domain prefix is split into hash
  key ``a`` and field ``b``;
- everything else is a plain string.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ruleprobe._clock import ClockPort, SystemClock
from ruleprobe._compare import (
    coerce_actual,
    compare_values,
    decode_json,
    format_scalar,
)
from ruleprobe._errors import ErrorThrottle, StoreError
from ruleprobe._model import is_domain_key
from ruleprobe._scenario import (
    Expectation,
    ExpectationResult,
    InputValue,
    StorageFormat,
)
from ruleprobe._store import StorePort

DEFAULT_POLLING_INTERVAL_MS = 100


@dataclass(frozen=True, slots=True)
class ResolvedKey:
    """Concrete location of a value in the store."""

    key: str
    field: str | None
    format: StorageFormat


def determine_key_format(
    key: str,
    field: str | None = None,
    format: StorageFormat = "auto",
) -> ResolvedKey:
    """Resolve *key*/*field*/*format* into a concrete location."""
    if format == "auto":
        if field is not None:
            return ResolvedKey(key, field, "hash")
        parts = key.split(":")
        if len(parts) == 2 and all(parts) and not is_domain_key(key):
            return ResolvedKey(parts[0], parts[1], "hash")
        return ResolvedKey(key, None, "string")
    if format == "hash" and field is None:
        parts = key.split(":")
        if len(parts) == 2 and all(parts):
            return ResolvedKey(parts[0], parts[1], "hash")
    return ResolvedKey(key, field, format)


@dataclass
class StoreAdapter:
    """Writes inputs to and checks expectations against a store.

    Args:
        store: The underlying key-value store.
        clock: Clock driving the expectation poll loop.
        logger: Destination for diagnostics and throttled errors.
        throttle: Error-log throttle; built from *clock* and *logger*
            when omitted.
    """

    store: StorePort
    clock: ClockPort = field(default_factory=SystemClock)
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger(__name__),
        repr=False,
    )
    throttle: ErrorThrottle | None = field(default=None, repr=False)
    default_polling_interval_ms: int = DEFAULT_POLLING_INTERVAL_MS
    _throttle: ErrorThrottle = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.throttle is None:
            self.throttle = ErrorThrottle(clock=self.clock, logger=self.logger)
        self._throttle = self.throttle

    def _fail(self, category: str, message: str, exc: Exception) -> StoreError:
        self._throttle.log_error(category, message, exc)
        return StoreError(category, exc)

    # -- writes -------------------------------------------------------------

    async def send_inputs(self, inputs: Sequence[InputValue]) -> None:
        """Write every input in order.

        Raises:
            StoreError: The store rejected a write.
        """
        try:
            for item in inputs:
                await self._write(item)
        except Exception as exc:
            raise self._fail("send_inputs", "Failed to send inputs", exc) from exc

    async def _write(self, item: InputValue) -> None:
        resolved = determine_key_format(item.key, item.field, item.format)
        match resolved.format:
            case "hash":
                if resolved.field is None:
                    self.logger.warning(
                        "Hash input without field, skipping",
                        extra={"key": item.key},
                    )
                    return
                await self.store.hset(
                    resolved.key,
                    resolved.field,
                    format_scalar(item.value),
                )
            case "json":
                payload = item.value if isinstance(item.value, str) else json.dumps(item.value)
                await self.store.set(resolved.key, payload)
            case "pub":
                await self.store.publish(resolved.key, format_scalar(item.value))
            case _:
                await self.store.set(resolved.key, format_scalar(item.value))
        self.logger.debug(
            "Wrote input",
            extra={"key": item.key, "format": resolved.format},
        )

    async def set_pre_test_outputs(self, outputs: Mapping[str, Any]) -> None:
        """Seed output keys with plain string values.

        Raises:
            StoreError: The store rejected a write.
        """
        try:
            for key, value in outputs.items():
                await self.store.set(key, format_scalar(value))
        except Exception as exc:
            raise self._fail(
                "set_pre_test_outputs",
                "Failed to set pre-test outputs",
                exc,
            ) from exc

    async def clear_keys(self, pattern: str) -> int:
        """Delete every key matching *pattern*; return the count.

        Raises:
            StoreError: The store rejected the delete.
        """
        try:
            deleted = await self.store.delete_matching(pattern)
        except Exception as exc:
            raise self._fail("clear_keys", "Failed to clear keys", exc) from exc
        self.logger.info("Cleared keys", extra={"pattern": pattern, "deleted": deleted})
        return deleted

    # -- reads --------------------------------------------------------------

    async def check_expectations(
        self,
        expectations: Sequence[Expectation],
    ) -> list[ExpectationResult]:
        """Check each expectation in order.

        Raises:
            StoreError: The store could not be read.
        """
        try:
            return [await self.check_expectation(item) for item in expectations]
        except Exception as exc:
            raise self._fail(
                "check_expectations",
                "Failed to check expectations",
                exc,
            ) from exc

    async def check_expectation(self, expectation: Expectation) -> ExpectationResult:
        """Poll until *expectation* matches or its timeout elapses.

        With no positive ``timeout_ms`` the value is read exactly once.
        The result carries the last value observed.
        """
        resolved = determine_key_format(
            expectation.key,
            expectation.field,
            expectation.format,
        )
        if resolved.format == "pub":
            return ExpectationResult(
                key=expectation.key,
                field=expectation.field,
                expected=expectation.expected,
                success=False,
                details="Published messages cannot be read back",
            )
        if resolved.format == "hash" and resolved.field is None:
            self.logger.warning(
                "Hash expectation without field",
                extra={"key": expectation.key},
            )
            return ExpectationResult(
                key=expectation.key,
                expected=expectation.expected,
                success=False,
                details="Hash format requires a field",
            )

        success, actual = await self._check_once(expectation, resolved)
        timed_out = False
        timeout_ms = expectation.timeout_ms or 0
        if timeout_ms > 0 and not success:
            interval = (
                expectation.polling_interval_ms or self.default_polling_interval_ms
            ) / 1000
            deadline = self.clock.now() + timeout_ms / 1000
            while not success:
                remaining = deadline - self.clock.now()
                if remaining <= 0:
                    timed_out = True
                    break
                await self.clock.sleep(min(interval, remaining))
                success, actual = await self._check_once(expectation, resolved)

        details = None
        if not success:
            details = f"Expected: {expectation.expected!r}, Actual: {actual!r}"
            if timed_out:
                details += f" (no match within {timeout_ms} ms)"
        return ExpectationResult(
            key=expectation.key,
            field=resolved.field if resolved.format == "hash" else None,
            expected=expectation.expected,
            actual=actual,
            success=success,
            details=details,
            timed_out=timed_out,
        )

    async def _check_once(
        self,
        expectation: Expectation,
        resolved: ResolvedKey,
    ) -> tuple[bool, Any]:
        if resolved.format == "hash":
            assert resolved.field is not None
            raw = await self.store.hget(resolved.key, resolved.field)
        else:
            raw = await self.store.get(resolved.key)

        if resolved.format == "json":
            actual = decode_json(raw)
        else:
            actual = coerce_actual(raw, expectation.expected)
        success = compare_values(
            expectation.expected,
            actual,
            expectation.validator,
            expectation.tolerance,
        )
        return success, actual
