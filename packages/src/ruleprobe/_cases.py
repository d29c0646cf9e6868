"""Per-rule test cases: input bindings plus expected outputs.

A :class:`TestCase` is the raw material for one scenario step.  Inputs
come from the value generator; expected outputs come from the rule's
actions, either a static value or the result of evaluating the value
expression against the inputs.

When an expression cannot be evaluated, the expected value is derived
heuristically, in order:

1. literal ``true``/``false``;
2. ``now()`` renders the current UTC time;
3. ``"text" + input:key`` templates are rendered piecewise;
4. other arithmetic yields ``10.0``;
5. keys naming an alert, alarm, enabled, active or detected flag
   yield ``True``;
6. anything else yields ``"test_value"``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ruleprobe._compare import format_scalar
from ruleprobe._conditions import ConditionAnalyzer, normalize_value
from ruleprobe._errors import ExpressionError
from ruleprobe._expressions import ExpressionEvaluator
from ruleprobe._model import (
    INPUT_PREFIX,
    RuleDefinition,
    Scalar,
    SetValueAction,
    ValueTarget,
    is_domain_key,
)
from ruleprobe._scenario import SequenceInput
from ruleprobe._values import ValueGenerator

ARITHMETIC_DEFAULT = 10.0
TEXT_DEFAULT = "test_value"
FLAG_WORDS = ("alert", "alarm", "enabled", "active", "detected")

TEMPORAL_STEP_MS = 500
MIN_TEMPORAL_STEPS = 3


@dataclass
class TestCase:
    """Input bindings and the outputs a rule should produce from them."""

    __test__ = False

    inputs: dict[str, Scalar] = field(default_factory=dict)
    outputs: dict[str, Scalar | None] = field(default_factory=dict)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def opposite_value(value: Any) -> Scalar | None:
    """A value different from *value*, used to pre-seed outputs.

    Booleans flip; numbers swap to the far side of 5; other non-null
    values become ``"initial_value"``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return 0.0 if value > 5 else 100.0
    return "initial_value"


class TestCaseGenerator:
    """Builds positive, negative and temporal inputs for a single rule.

    Args:
        analyzer: Shared condition analyzer.
        values: Shared value generator.
        evaluator: Expression evaluator for action expressions.
        clock: Wall-clock callable used for ``now()`` fallbacks.
        logger: Destination for diagnostics.
    """

    __test__ = False

    def __init__(
        self,
        *,
        analyzer: ConditionAnalyzer | None = None,
        values: ValueGenerator | None = None,
        evaluator: ExpressionEvaluator | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._analyzer = analyzer or ConditionAnalyzer(logger=self._logger)
        self._values = values or ValueGenerator(self._analyzer, logger=self._logger)
        self._clock = clock or _utc_now
        self._evaluator = evaluator or ExpressionEvaluator(clock=self._clock)

    # -- inputs -------------------------------------------------------------

    def rule_inputs(self, rule: RuleDefinition, target: ValueTarget) -> dict[str, Scalar]:
        """Generate a value for each input sensor *rule* reads."""
        sensors = sorted(
            sensor
            for sensor in self._analyzer.extract_sensors(rule.conditions)
            if sensor.startswith(INPUT_PREFIX)
        )
        return {
            sensor: self._values.generate_value_for_sensor(rule.conditions, sensor, target)
            for sensor in sensors
        }

    def generate_basic_test_case(self, rule: RuleDefinition) -> TestCase:
        """Inputs satisfying *rule* and the outputs its actions produce."""
        inputs = self.rule_inputs(rule, ValueTarget.POSITIVE)
        return TestCase(inputs=inputs, outputs=self.expected_outputs(rule, inputs))

    def generate_negative_test_case(
        self,
        rule: RuleDefinition,
        positive_outputs: Mapping[str, Scalar | None] | None = None,
    ) -> TestCase:
        """Inputs violating *rule*.

        Expected outputs are only asserted for boolean actions, whose
        negation is unambiguous; every other output is ``None``.
        """
        if positive_outputs is None:
            positive_outputs = self.generate_basic_test_case(rule).outputs
        outputs: dict[str, Scalar | None] = {}
        for key, value in positive_outputs.items():
            outputs[key] = (not value) if isinstance(value, bool) else None
        return TestCase(
            inputs=self.rule_inputs(rule, ValueTarget.NEGATIVE),
            outputs=outputs,
        )

    def generate_temporal_sequence(self, rule: RuleDefinition) -> list[SequenceInput]:
        """Input sequence holding *rule*'s temporal conditions long enough.

        The longest duration drives the sequence: ``max(3, d // 500)``
        steps, each followed by ``ceil(d / steps)`` milliseconds, so
        the cumulative delay is at least ``d``.  Non-temporal inputs
        keep their positive value at every step.
        """
        temporals = self._analyzer.find_temporal_conditions(rule.conditions)
        if not temporals:
            self._logger.warning(
                "Rule has no temporal condition",
                extra={"rule": rule.name},
            )
            return []

        longest = max(max(condition.duration_ms, 0) for condition in temporals)
        steps = max(MIN_TEMPORAL_STEPS, longest // TEMPORAL_STEP_MS)
        delay = math.ceil(longest / steps)
        base = self.rule_inputs(rule, ValueTarget.POSITIVE)

        sequence: list[SequenceInput] = []
        for index in range(steps):
            inputs: dict[str, Any] = dict(base)
            for condition in temporals:
                inputs[condition.sensor] = self._values.generate_value_for_temporal_condition(
                    condition,
                    index,
                    steps,
                    ValueTarget.POSITIVE,
                )
            sequence.append(SequenceInput(inputs=inputs, delay_ms=delay))
        return sequence

    # -- outputs ------------------------------------------------------------

    def expected_outputs(
        self,
        rule: RuleDefinition,
        bindings: Mapping[str, Any],
    ) -> dict[str, Scalar | None]:
        """Expected value of each ``output:`` action given *bindings*."""
        return {
            action.key: self.determine_output_value(action, bindings)
            for action in rule.output_actions
        }

    def determine_output_value(
        self,
        action: SetValueAction,
        bindings: Mapping[str, Any],
    ) -> Scalar | None:
        """Expected value written by *action*."""
        if action.value is not None:
            return normalize_value(action.value)

        expression = action.value_expression
        if expression:
            try:
                result = self._evaluator.evaluate(expression, bindings)
            except ExpressionError as exc:
                self._logger.debug(
                    "Falling back to heuristic output value",
                    extra={"key": action.key, "reason": exc.reason},
                )
            else:
                if isinstance(result, (bool, int, float, str)):
                    return normalize_value(result)
            fallback = self._fallback_for_expression(expression, bindings)
            if fallback is not None:
                return fallback

        return self._default_for_key(action.key)

    def _fallback_for_expression(
        self,
        expression: str,
        bindings: Mapping[str, Any],
    ) -> Scalar | None:
        text = expression.strip()
        lowered = text.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        if lowered == "now()":
            return self._clock().isoformat()
        if "+" in text and ('"' in text or "'" in text):
            return self._render_template(text, bindings)
        if any(operator in text for operator in "+-*/"):
            return ARITHMETIC_DEFAULT
        return None

    @staticmethod
    def _render_template(text: str, bindings: Mapping[str, Any]) -> str:
        parts: list[str] = []
        for part in text.split("+"):
            part = part.strip()
            if len(part) >= 2 and part[0] == part[-1] and part[0] in "\"'":
                parts.append(part[1:-1])
            elif is_domain_key(part):
                parts.append(format_scalar(bindings.get(part, "")))
            else:
                parts.append(part)
        return "".join(parts)

    @staticmethod
    def _default_for_key(key: str) -> Scalar:
        lowered = key.lower()
        if any(word in lowered for word in FLAG_WORDS):
            return True
        return TEXT_DEFAULT
