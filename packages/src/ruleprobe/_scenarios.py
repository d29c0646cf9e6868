"""Scenario generation from a rule set.

Four families of scenario are produced, in this order:

1. ``<rule>BasicTest`` for every rule: a positive step (skipped when
   the rule reads no inputs) and a negative step.
2. ``<target>DependencyTest`` for every rule that reads another rule's
   output: the upstream outputs are pre-seeded so the target can fire
   without running the upstream rules.
3. ``<target>MissingDependencyTest``: the same with the pre-seeded
   values inverted, so the target must stay quiet.
4. ``<rule>TemporalTest`` for every rule with a threshold-over-time
   condition: an input sequence long enough to cover the duration.

Every step writes a value for every input sensor any rule reads, so
stale inputs from an earlier scenario never leak into a later one.
Missing sensors are backfilled from whichever rule constrains them.

A failure while building one unit (one rule, one dependency target,
one temporal rule) is logged and replaced by a placeholder; the rest
of the batch is unaffected.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ruleprobe._cases import TestCaseGenerator, opposite_value
from ruleprobe._compare import get_validator_type, is_number
from ruleprobe._conditions import ConditionAnalyzer, normalize_value
from ruleprobe._model import INPUT_PREFIX, RuleDefinition, Scalar, ValueTarget
from ruleprobe._rules import Dependency, RuleAnalysis, RuleAnalyzer
from ruleprobe._scenario import Expectation, InputValue, Scenario, Step
from ruleprobe._values import ValueGenerator, neutral_value

DEFAULT_STEP_DELAY_MS = 500
DEFAULT_EXPECTATION_TIMEOUT_MS = 1000
FALLBACK_INPUT_VALUE = 1.0
STATUS_WORDS = ("enabled", "status", "active", "alarm", "alert", "normal")

type InputConditionMap = dict[str, list[RuleDefinition]]


def _expectations(
    outputs: Mapping[str, Scalar | None],
    timeout_ms: int | None = DEFAULT_EXPECTATION_TIMEOUT_MS,
) -> list[Expectation]:
    return [
        Expectation(
            key=key,
            expected=value,
            validator=get_validator_type(value),
            timeout_ms=timeout_ms,
        )
        for key, value in outputs.items()
        if value is not None
    ]


def _inputs(values: Mapping[str, Any]) -> list[InputValue]:
    return [InputValue(key=key, value=value) for key, value in values.items()]


def _error_step(exc: Exception) -> Step:
    return Step(name="Error generating test case", description=f"Error: {exc}")


class ScenarioGenerator:
    """Turns a rule set into executable scenarios.

    Args:
        rule_analyzer: Dependency and input-sensor analysis.
        cases: Per-rule test-case builder.
        logger: Destination for diagnostics.
    """

    def __init__(
        self,
        *,
        rule_analyzer: RuleAnalyzer | None = None,
        cases: TestCaseGenerator | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._analyzer = ConditionAnalyzer(logger=self._logger)
        self._values = ValueGenerator(self._analyzer, logger=self._logger)
        self._rules = rule_analyzer or RuleAnalyzer(self._analyzer, logger=self._logger)
        self._cases = cases or TestCaseGenerator(
            analyzer=self._analyzer,
            values=self._values,
            logger=self._logger,
        )

    def generate_scenarios(self, rules: list[RuleDefinition]) -> list[Scenario]:
        """Generate every scenario family for *rules*."""
        analysis = self._rules.analyze_rules(rules)
        condition_map = self.build_input_condition_map(analysis.rules)

        scenarios = [
            self.generate_basic_scenario(rule, analysis, condition_map)
            for rule in analysis.rules
        ]
        scenarios.extend(self.generate_dependency_scenarios(analysis, condition_map))
        scenarios.extend(self.generate_temporal_scenarios(analysis, condition_map))
        self._logger.info(
            "Generated scenarios",
            extra={"rules": len(rules), "scenarios": len(scenarios)},
        )
        return scenarios

    # -- input completeness -------------------------------------------------

    def build_input_condition_map(
        self,
        rules: Iterable[RuleDefinition],
    ) -> InputConditionMap:
        """Map each input sensor to the rules constraining it, in rule order."""
        condition_map: InputConditionMap = {}
        for rule in rules:
            for sensor in self._analyzer.conditions_by_sensor(rule.conditions):
                if sensor.startswith(INPUT_PREFIX):
                    condition_map.setdefault(sensor, []).append(rule)
        return condition_map

    def ensure_required_inputs(
        self,
        inputs: Mapping[str, Any],
        required: Iterable[str],
        condition_map: InputConditionMap,
        target: ValueTarget,
    ) -> dict[str, Any]:
        """Return *inputs* extended with a value for every required sensor.

        A backfilled sensor takes the *target* polarity of the first
        rule that constrains it, or the neutral value when none does.
        """
        completed = dict(inputs)
        for sensor in sorted(required):
            if sensor in completed:
                continue
            rules = condition_map.get(sensor)
            if not rules:
                completed[sensor] = neutral_value(target)
                continue
            completed[sensor] = self._values.generate_value_for_sensor(
                rules[0].conditions,
                sensor,
                target,
            )
        return completed

    def pre_set_outputs_for(
        self,
        rule: RuleDefinition,
        expected: Mapping[str, Scalar | None],
    ) -> dict[str, Scalar]:
        """Opposite of each expected output, so a stale value cannot pass."""
        presets: dict[str, Scalar] = {}
        for action in rule.output_actions:
            opposite = opposite_value(expected.get(action.key))
            if opposite is not None:
                presets[action.key] = opposite
        return presets

    # -- basic --------------------------------------------------------------

    def generate_basic_scenario(
        self,
        rule: RuleDefinition,
        analysis: RuleAnalysis,
        condition_map: InputConditionMap,
    ) -> Scenario:
        """Positive and negative steps for a single rule."""
        scenario = Scenario(
            name=f"{rule.name}BasicTest",
            description=f"Basic test for rule {rule.name}",
            clear_outputs=True,
        )
        try:
            positive = self._cases.generate_basic_test_case(rule)
            positive_inputs = self.ensure_required_inputs(
                positive.inputs,
                analysis.input_sensors,
                condition_map,
                ValueTarget.POSITIVE,
            )
            expected = self._cases.expected_outputs(rule, positive_inputs)
            presets = self.pre_set_outputs_for(rule, expected)
            if presets:
                scenario.pre_set_outputs = presets

            temporal = self._analyzer.has_temporal_condition(rule.conditions)
            if positive.inputs:
                if temporal:
                    scenario.steps.append(
                        Step(
                            name="Basic test for temporal rule",
                            inputs=_inputs(positive_inputs),
                            delay=DEFAULT_STEP_DELAY_MS,
                        ),
                    )
                else:
                    scenario.steps.append(
                        Step(
                            name="Positive test case",
                            inputs=_inputs(positive_inputs),
                            delay=DEFAULT_STEP_DELAY_MS,
                            expectations=_expectations(expected),
                        ),
                    )

            negative = self._cases.generate_negative_test_case(rule, expected)
            if negative.inputs:
                negative_inputs = self.ensure_required_inputs(
                    negative.inputs,
                    analysis.input_sensors,
                    condition_map,
                    ValueTarget.NEGATIVE,
                )
                scenario.steps.append(
                    Step(
                        name="Negative test case",
                        inputs=_inputs(negative_inputs),
                        delay=DEFAULT_STEP_DELAY_MS,
                        expectations=_expectations(negative.outputs),
                    ),
                )
        except Exception as exc:
            self._logger.exception(
                "Failed to generate basic scenario",
                extra={"rule": rule.name},
            )
            scenario.steps = [_error_step(exc)]
        return scenario

    # -- dependencies -------------------------------------------------------

    def generate_dependency_scenarios(
        self,
        analysis: RuleAnalysis,
        condition_map: InputConditionMap,
    ) -> list[Scenario]:
        """Satisfied and missing dependency scenarios for each target rule."""
        scenarios: list[Scenario] = []
        for target_name, dependencies in analysis.dependencies_by_target().items():
            try:
                scenarios.extend(
                    self._dependency_pair(dependencies, analysis, condition_map),
                )
            except Exception as exc:
                self._logger.exception(
                    "Failed to generate dependency scenario",
                    extra={"rule": target_name},
                )
                scenarios.append(
                    Scenario(
                        name=f"{target_name}DependencyTest",
                        steps=[_error_step(exc)],
                    ),
                )
        return scenarios

    def _dependency_pair(
        self,
        dependencies: list[Dependency],
        analysis: RuleAnalysis,
        condition_map: InputConditionMap,
    ) -> list[Scenario]:
        target = dependencies[0].target_rule

        dependency_values: dict[str, Scalar] = {}
        for dependency in dependencies:
            if dependency.key not in dependency_values:
                dependency_values[dependency.key] = self.dependency_value(dependency)

        inputs: dict[str, Any] = dict(self._cases.generate_basic_test_case(target).inputs)
        for expression in target.value_expressions:
            for sensor in sorted(self._analyzer.extract_sensors_from_expression(expression)):
                if sensor.startswith(INPUT_PREFIX) and sensor not in inputs:
                    inputs[sensor] = self.action_input_value(sensor, analysis.rules)

        positive_inputs = self.ensure_required_inputs(
            inputs,
            analysis.input_sensors,
            condition_map,
            ValueTarget.POSITIVE,
        )
        expected = self._cases.expected_outputs(
            target,
            {**positive_inputs, **dependency_values},
        )
        own_presets = {
            key: value
            for key, value in self.pre_set_outputs_for(target, expected).items()
            if key not in dependency_values
        }

        satisfied = Scenario(
            name=f"{target.name}DependencyTest",
            description=(
                f"Test {target.name} with dependencies: "
                + ", ".join(sorted(dependency_values))
            ),
            pre_set_outputs={**own_presets, **dependency_values},
            clear_outputs=True,
            steps=[
                Step(
                    name="Test with dependencies",
                    inputs=_inputs(positive_inputs),
                    delay=DEFAULT_STEP_DELAY_MS,
                    expectations=_expectations(expected),
                ),
            ],
        )

        inverted = {
            key: self.invert_dependency_value(target, key, value)
            for key, value in dependency_values.items()
        }
        missing_expected = {
            key: (not value) if isinstance(value, bool) else None
            for key, value in expected.items()
        }
        missing = Scenario(
            name=f"{target.name}MissingDependencyTest",
            description=f"Test {target.name} with missing dependencies",
            pre_set_outputs={**own_presets, **inverted},
            clear_outputs=True,
            steps=[
                Step(
                    name="Test with missing dependencies",
                    inputs=_inputs(
                        self.ensure_required_inputs(
                            inputs,
                            analysis.input_sensors,
                            condition_map,
                            ValueTarget.NEGATIVE,
                        ),
                    ),
                    delay=DEFAULT_STEP_DELAY_MS,
                    expectations=_expectations(missing_expected),
                ),
            ],
        )
        return [satisfied, missing]

    def dependency_value(self, dependency: Dependency) -> Scalar:
        """Value pre-seeded for *dependency*'s key.

        Tried in order: a value satisfying the target's condition on the
        key; the source action's static value; a status-flag heuristic
        on the key name; ``1.0``.
        """
        key = dependency.key
        required = self._values.requirement_for_key(dependency.target_rule.conditions, key)
        if required is not None:
            return normalize_value(required)  # type: ignore[return-value]

        for action in dependency.source_rule.output_actions:
            if action.key == key and action.value is not None:
                return normalize_value(action.value)  # type: ignore[return-value]

        lowered = key.lower()
        if any(word in lowered for word in STATUS_WORDS):
            return True
        return FALLBACK_INPUT_VALUE

    def invert_dependency_value(
        self,
        target: RuleDefinition,
        key: str,
        value: Scalar,
    ) -> Scalar:
        """A pre-seeded value that should keep *target* from firing."""
        leaf = self._analyzer.find_condition_for_sensor(target.conditions, key)
        if leaf is not None:
            return self._values.generate_value_for_sensor(
                target.conditions,
                key,
                ValueTarget.NEGATIVE,
            )
        if isinstance(value, bool):
            return not value
        if is_number(value):
            return 0.0 if value > 0 else 1.0
        return "different_value"

    def action_input_value(self, sensor: str, rules: Iterable[RuleDefinition]) -> Scalar:
        """Value for an input read only by a target's action expressions."""
        for rule in rules:
            required = self._values.requirement_for_key(rule.conditions, sensor)
            if required is not None:
                return required
        return FALLBACK_INPUT_VALUE

    # -- temporal -----------------------------------------------------------

    def generate_temporal_scenarios(
        self,
        analysis: RuleAnalysis,
        condition_map: InputConditionMap,
    ) -> list[Scenario]:
        """One input-sequence scenario per temporal rule."""
        scenarios: list[Scenario] = []
        for rule in analysis.temporal_rules:
            try:
                sequence = self._cases.generate_temporal_sequence(rule)
                if not sequence:
                    continue
                for element in sequence:
                    element.inputs = self.ensure_required_inputs(
                        element.inputs,
                        analysis.input_sensors,
                        condition_map,
                        ValueTarget.POSITIVE,
                    )
                expected = self._cases.expected_outputs(rule, sequence[-1].inputs)
                presets = self.pre_set_outputs_for(rule, expected)
                scenarios.append(
                    Scenario(
                        name=f"{rule.name}TemporalTest",
                        description=f"Temporal test for rule {rule.name}",
                        input_sequence=sequence,
                        expected_outputs={
                            key: value
                            for key, value in expected.items()
                            if value is not None
                        }
                        or None,
                        pre_set_outputs=presets or None,
                        clear_outputs=True,
                    ),
                )
            except Exception as exc:
                self._logger.exception(
                    "Failed to generate temporal scenario",
                    extra={"rule": rule.name},
                )
                scenarios.append(
                    Scenario(name=f"{rule.name}TemporalTest", steps=[_error_step(exc)]),
                )
        return scenarios
