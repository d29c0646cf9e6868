"""Static analysis of condition trees.

:class:`ConditionAnalyzer` answers structural questions about a
condition tree without evaluating it:

- which sensor keys it reads (leaf sensors plus references scanned out
  of free-form expression text),
- whether any node is temporal,
- which leaf constrains a given sensor (tie-break: depth-first,
  ``all`` before ``any``, first match wins),
- what numeric band surrounds a comparison's threshold.

All recursive walks thread an explicit accumulator through the
recursion rather than closing over outer mutable state, so each helper
is referentially transparent and testable in isolation.
"""

from __future__ import annotations

import logging
import re
from typing import assert_never

from ruleprobe._model import (
    ComparisonCondition,
    Condition,
    ConditionGroup,
    ExpressionCondition,
    Scalar,
    ThresholdOverTimeCondition,
)

_SENSOR_PATTERN = re.compile(r"\b(?:input|output|buffer):[A-Za-z0-9_]+")

# ``sensor <op> literal`` fragments inside free-form expressions.
_EXPRESSION_COMPARISON = re.compile(
    r"\b((?:input|output|state|buffer):[A-Za-z0-9_]+)\s*"
    r"(>=|<=|==|!=|>|<)\s*"
    r"(-?\d+(?:\.\d+)?|true|false|True|False|\"[^\"]*\"|'[^']*')",
)

type SensorLeaf = ComparisonCondition | ThresholdOverTimeCondition
"""Leaf node that constrains exactly one sensor."""


def normalize_value(value: Scalar | None) -> Scalar | None:
    """Coerce textual booleans and numbers to native types.

    ``"true"``/``"false"`` (any case) become ``bool``; numeric strings
    become ``float``; everything else passes through unchanged.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if text and "_" not in text:
        try:
            return float(text)
        except ValueError:
            pass
    return value


def _parse_literal(text: str) -> Scalar:
    if text[0] in "\"'":
        return text[1:-1]
    if text.lower() in ("true", "false"):
        return text.lower() == "true"
    return float(text)


class ConditionAnalyzer:
    """Extracts structural information from condition trees.

    Args:
        logger: Destination for diagnostics.  Defaults to this module's
            logger.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    # -- sensors ------------------------------------------------------------

    def extract_sensors(self, condition: Condition) -> set[str]:
        """Return every sensor key reachable from *condition*.

        Leaf sensors are taken verbatim; expression text (expression
        conditions and a comparison's value expression) is scanned for
        ``input:``/``output:``/``buffer:`` references.
        """
        sensors: set[str] = set()
        self._collect_sensors(condition, sensors)
        return sensors

    def _collect_sensors(self, condition: Condition, sensors: set[str]) -> None:
        match condition:
            case ConditionGroup():
                for child in condition.children:
                    self._collect_sensors(child, sensors)
            case ComparisonCondition():
                if condition.sensor:
                    sensors.add(condition.sensor)
                if condition.value_expression:
                    sensors |= self.extract_sensors_from_expression(
                        condition.value_expression,
                    )
            case ExpressionCondition():
                sensors |= self.extract_sensors_from_expression(condition.expression)
            case ThresholdOverTimeCondition():
                if condition.sensor:
                    sensors.add(condition.sensor)
            case _:
                assert_never(condition)

    @staticmethod
    def extract_sensors_from_expression(expression: str | None) -> set[str]:
        """Return the sensor references found in *expression*."""
        if not expression:
            return set()
        return set(_SENSOR_PATTERN.findall(expression))

    # -- temporal -----------------------------------------------------------

    def has_temporal_condition(self, condition: Condition) -> bool:
        """Return ``True`` if any reachable node is a threshold-over-time."""
        match condition:
            case ThresholdOverTimeCondition():
                return True
            case ConditionGroup():
                return any(
                    self.has_temporal_condition(child) for child in condition.children
                )
            case ComparisonCondition() | ExpressionCondition():
                return False
            case _:
                assert_never(condition)

    def find_temporal_conditions(
        self,
        condition: Condition,
    ) -> list[ThresholdOverTimeCondition]:
        """Return all threshold-over-time nodes in document order."""
        found: list[ThresholdOverTimeCondition] = []
        self._collect_temporal(condition, found)
        return found

    def _collect_temporal(
        self,
        condition: Condition,
        found: list[ThresholdOverTimeCondition],
    ) -> None:
        match condition:
            case ThresholdOverTimeCondition():
                found.append(condition)
            case ConditionGroup():
                for child in condition.children:
                    self._collect_temporal(child, found)
            case ComparisonCondition() | ExpressionCondition():
                pass
            case _:
                assert_never(condition)

    # -- per-sensor lookup --------------------------------------------------

    def conditions_for_sensor(
        self,
        condition: Condition,
        sensor: str,
    ) -> list[SensorLeaf]:
        """Return the leaves constraining *sensor*, in tie-break order.

        Direct comparison and threshold leaves come first (depth-first,
        ``all`` before ``any``).  Comparisons lifted out of expression
        text follow, so they only win when no structured leaf exists.
        """
        direct: list[SensorLeaf] = []
        lifted: list[SensorLeaf] = []
        self._collect_for_sensor(condition, sensor, direct, lifted)
        return direct + lifted

    def _collect_for_sensor(
        self,
        condition: Condition,
        sensor: str,
        direct: list[SensorLeaf],
        lifted: list[SensorLeaf],
    ) -> None:
        match condition:
            case ComparisonCondition() | ThresholdOverTimeCondition():
                if condition.sensor == sensor:
                    direct.append(condition)
            case ExpressionCondition():
                lifted.extend(
                    comparison
                    for comparison in self.comparisons_in_expression(
                        condition.expression,
                    )
                    if comparison.sensor == sensor
                )
            case ConditionGroup():
                for child in condition.children:
                    self._collect_for_sensor(child, sensor, direct, lifted)
            case _:
                assert_never(condition)

    def find_condition_for_sensor(
        self,
        condition: Condition,
        sensor: str,
    ) -> SensorLeaf | None:
        """Return the first leaf constraining *sensor*, or ``None``."""
        matches = self.conditions_for_sensor(condition, sensor)
        return matches[0] if matches else None

    def conjunctive_comparisons(
        self,
        condition: Condition,
        sensor: str,
    ) -> list[ComparisonCondition]:
        """Comparisons on *sensor* that must all hold for *condition* to hold.

        Only leaves reached exclusively through ``all`` edges qualify;
        threshold-over-time leaves contribute their instantaneous
        comparison.
        """
        found: list[ComparisonCondition] = []
        self._collect_conjunctive(condition, sensor, found)
        return found

    def _collect_conjunctive(
        self,
        condition: Condition,
        sensor: str,
        found: list[ComparisonCondition],
    ) -> None:
        match condition:
            case ComparisonCondition():
                if condition.sensor == sensor and condition.value is not None:
                    found.append(condition)
            case ThresholdOverTimeCondition():
                if condition.sensor == sensor:
                    found.append(condition.as_comparison())
            case ConditionGroup():
                for child in condition.all:
                    self._collect_conjunctive(child, sensor, found)
                # A single ``any`` branch is binding too.
                if len(condition.any) == 1:
                    self._collect_conjunctive(condition.any[0], sensor, found)
            case ExpressionCondition():
                pass
            case _:
                assert_never(condition)

    def conditions_by_sensor(self, condition: Condition) -> dict[str, list[SensorLeaf]]:
        """Index every structured leaf by the sensor it constrains."""
        index: dict[str, list[SensorLeaf]] = {}
        self._index_leaves(condition, index)
        return index

    def _index_leaves(
        self,
        condition: Condition,
        index: dict[str, list[SensorLeaf]],
    ) -> None:
        match condition:
            case ComparisonCondition() | ThresholdOverTimeCondition():
                index.setdefault(condition.sensor, []).append(condition)
            case ExpressionCondition():
                for comparison in self.comparisons_in_expression(condition.expression):
                    index.setdefault(comparison.sensor, []).append(comparison)
            case ConditionGroup():
                for child in condition.children:
                    self._index_leaves(child, index)
            case _:
                assert_never(condition)

    def find_conditions_referencing_key(
        self,
        condition: Condition,
        key: str,
    ) -> list[Condition]:
        """Return leaves that mention *key* as sensor or inside expression text."""
        found: list[Condition] = []
        self._collect_referencing(condition, key, found)
        return found

    def _collect_referencing(
        self,
        condition: Condition,
        key: str,
        found: list[Condition],
    ) -> None:
        match condition:
            case ComparisonCondition():
                if condition.sensor == key or key in self.extract_sensors_from_expression(
                    condition.value_expression,
                ):
                    found.append(condition)
            case ThresholdOverTimeCondition():
                if condition.sensor == key:
                    found.append(condition)
            case ExpressionCondition():
                if key in self.extract_sensors_from_expression(condition.expression):
                    found.append(condition)
            case ConditionGroup():
                for child in condition.children:
                    self._collect_referencing(child, key, found)
            case _:
                assert_never(condition)

    @staticmethod
    def comparisons_in_expression(expression: str) -> list[ComparisonCondition]:
        """Lift ``sensor <op> literal`` fragments out of expression text.

        Only the simple left-hand-sensor shape is recognised; anything
        else in the expression is ignored.
        """
        return [
            ComparisonCondition(
                sensor=match.group(1),
                operator=match.group(2),
                value=_parse_literal(match.group(3)),
            )
            for match in _EXPRESSION_COMPARISON.finditer(expression or "")
        ]

    # -- numeric band -------------------------------------------------------

    def get_numeric_boundaries(
        self,
        comparison: ComparisonCondition,
    ) -> tuple[float, float]:
        """Return the ``(min, max)`` band around a comparison's threshold.

        The value is coerced to a number (native numbers directly,
        strings parsed, anything else 0).  Ordering operators and
        ``!=`` give ``(v * 0.5, v * 1.5)``; ``==``/``=`` give
        ``(v, v)``; unknown operators give ``(0, 100)``.
        """
        value = comparison.value
        number = 0.0
        if isinstance(value, bool):
            number = float(value)
        elif isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                self._logger.debug(
                    "Non-numeric comparison value, using 0",
                    extra={"sensor": comparison.sensor, "value": value},
                )

        match comparison.operator:
            case ">" | ">=" | "<" | "<=" | "!=":
                return (number * 0.5, number * 1.5)
            case "==" | "=":
                return (number, number)
            case _:
                return (0.0, 100.0)
