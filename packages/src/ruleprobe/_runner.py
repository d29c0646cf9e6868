"""Scenario execution.

Lifecycle of one scenario:

1. Expand the compact input-sequence form into steps.
2. Optionally clear keys matching the output pattern.
3. Seed pre-set outputs.
4. Run steps in order.  Each step writes its inputs, waits its delay
   (scaled by the scenario's timeout multiplier), then checks its
   expectations with polling.
5. Stop at the first step that has expectations and fails.

A scenario succeeds when every step that ran succeeded and none was
halted.  Exceptions never escape :meth:`Runner.run_scenario`: they are
logged and recorded as the scenario's ``error_message``, so one broken
scenario never aborts a batch.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ruleprobe._adapter import StoreAdapter
from ruleprobe._clock import ClockPort
from ruleprobe._errors import StoreError
from ruleprobe._scenario import (
    Expectation,
    ResultsDocument,
    Scenario,
    ScenarioResult,
    Step,
    StepResult,
)
from ruleprobe._settings import RunnerSettings


@dataclass
class BatchResult:
    """Outcome of :meth:`Runner.run_batch`."""

    results: list[ScenarioResult] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.passed

    @property
    def success(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        return f"Test Summary: {self.passed} passed, {self.failed} failed"

    def failure_report(self, *, verbose: bool = False) -> str:
        """Human-readable description of each failed scenario.

        With *verbose*, every failed expectation is listed as well.
        """
        lines: list[str] = []
        for result in self.results:
            if result.success:
                continue
            lines.append(f"FAILED {result.name}")
            if result.error_message:
                lines.append(f"  Error: {result.error_message}")
            for step in result.step_results:
                if step.success:
                    continue
                lines.append(f"  Step '{step.name}' failed")
                if step.error_message:
                    lines.append(f"    Error: {step.error_message}")
                if verbose:
                    lines.extend(
                        f"    {expectation.key}: {expectation.details}"
                        for expectation in step.expectation_results
                        if not expectation.success
                    )
        return "\n".join(lines)

    def to_document(self) -> ResultsDocument:
        return ResultsDocument(results=self.results)


class Runner:
    """Executes scenarios against a store through a :class:`StoreAdapter`.

    Args:
        adapter: Store access layer.
        settings: Cycle timing, default polling interval and clearing
            pattern.  Defaults to :class:`RunnerSettings` defaults.
        clock: Clock for step delays and durations.  Defaults to the
            adapter's clock.
        logger: Destination for progress and failure logs.
    """

    def __init__(
        self,
        adapter: StoreAdapter,
        *,
        settings: RunnerSettings | None = None,
        clock: ClockPort | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._adapter = adapter
        self._settings = settings or RunnerSettings()
        self._clock = clock or adapter.clock
        self._logger = logger or logging.getLogger(__name__)

    def prepare_expectation(
        self,
        expectation: Expectation,
        multiplier: float = 1.0,
    ) -> Expectation:
        """Apply default timeout and polling interval, scaled by *multiplier*."""
        timeout_ms = expectation.timeout_ms
        if timeout_ms is None:
            timeout_ms = self._settings.default_timeout_ms
        polling_ms = expectation.polling_interval_ms or self._settings.polling_interval_ms
        return expectation.model_copy(
            update={
                "timeout_ms": round(timeout_ms * multiplier),
                "polling_interval_ms": max(round(polling_ms * multiplier), 1),
            },
        )

    async def run_batch(self, scenarios: Iterable[Scenario]) -> BatchResult:
        """Run *scenarios* sequentially and collect their results."""
        batch = BatchResult()
        for scenario in scenarios:
            batch.results.append(await self.run_scenario(scenario))
        self._logger.info(
            batch.summary(),
            extra={"passed": batch.passed, "failed": batch.failed},
        )
        return batch

    async def run_scenario(self, scenario: Scenario) -> ScenarioResult:
        """Run one scenario; never raises."""
        result = ScenarioResult(name=scenario.name, started_at=datetime.now(UTC))
        start = self._clock.now()
        self._logger.info("Running scenario", extra={"scenario": scenario.name})
        try:
            normalized = scenario.normalized()
            multiplier = normalized.timeout_multiplier
            if normalized.clear_outputs:
                await self._adapter.clear_keys(self._settings.clear_outputs_pattern)
            if normalized.pre_set_outputs:
                await self._adapter.set_pre_test_outputs(normalized.pre_set_outputs)

            halted = False
            for step in normalized.steps:
                step_result = await self.run_step(step, multiplier)
                result.step_results.append(step_result)
                if not step_result.success and step.expectations:
                    self._logger.warning(
                        "Step failed, halting scenario",
                        extra={"scenario": scenario.name, "step": step.name},
                    )
                    halted = True
                    break
            result.success = not halted and all(
                step_result.success for step_result in result.step_results
            )
        except Exception as exc:
            self._logger.exception(
                "Scenario raised an error",
                extra={"scenario": scenario.name},
            )
            result.success = False
            result.error_message = str(exc)

        result.finished_at = datetime.now(UTC)
        result.duration_ms = (self._clock.now() - start) * 1000
        self._logger.info(
            "Scenario %s",
            "passed" if result.success else "failed",
            extra={"scenario": scenario.name, "duration_ms": result.duration_ms},
        )
        return result

    async def run_step(self, step: Step, multiplier: float = 1.0) -> StepResult:
        """Send inputs, wait, and check expectations for one step."""
        result = StepResult(name=step.name)
        start = self._clock.now()

        if step.inputs:
            try:
                await self._adapter.send_inputs(step.inputs)
            except StoreError as exc:
                result.error_message = str(exc)
                if step.expectations:
                    result.success = False
                    result.duration_ms = (self._clock.now() - start) * 1000
                    return result

        delay_ms = step.delay * multiplier
        if delay_ms > 0:
            await self._clock.sleep(delay_ms / 1000)

        if step.expectations:
            prepared = [
                self.prepare_expectation(expectation, multiplier)
                for expectation in step.expectations
            ]
            try:
                result.expectation_results = await self._adapter.check_expectations(
                    prepared,
                )
            except StoreError as exc:
                result.success = False
                result.error_message = str(exc)
            else:
                result.success = all(item.success for item in result.expectation_results)
                for item in result.expectation_results:
                    if not item.success:
                        self._logger.debug(
                            "Expectation failed",
                            extra={"step": step.name, "key": item.key, "details": item.details},
                        )

        result.duration_ms = (self._clock.now() - start) * 1000
        return result
