"""Synthesis of sensor values that satisfy or violate conditions.

Margin policy for a numeric threshold ``T``:

- The analyzer's band ``(T * 0.5, T * 1.5)`` is used whenever it
  strictly brackets ``T`` (any non-zero ``T``).
- Otherwise (``T == 0``, or an ``==`` comparison whose band collapses
  onto ``T``) a unit margin ``(T - 1, T + 1)`` is used.

Either way the chosen value is strictly on the requested side of
``T``, which keeps strict and non-strict operators honest.

The generator never raises.  Any internal failure is logged with rule
and sensor context and degrades to a neutral value (``50.0`` for a
positive target, ``0.0`` for a negative one).
"""

from __future__ import annotations

import logging
import math
import operator
from collections.abc import Callable

from ruleprobe._conditions import ConditionAnalyzer, normalize_value
from ruleprobe._model import (
    COMPARISON_OPERATORS,
    ComparisonCondition,
    Condition,
    ExpressionCondition,
    Scalar,
    ThresholdOverTimeCondition,
    ValueTarget,
)

NEUTRAL_POSITIVE = 50.0
NEUTRAL_NEGATIVE = 0.0
UNIT_MARGIN = 1.0

_OPERATOR_CHECKS: dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "=": operator.eq,
    "!=": operator.ne,
}


def neutral_value(target: ValueTarget) -> float:
    """Fallback value used when nothing better can be derived."""
    return NEUTRAL_POSITIVE if target is ValueTarget.POSITIVE else NEUTRAL_NEGATIVE


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ValueGenerator:
    """Produce concrete values for a requested polarity.

    Args:
        analyzer: Condition analyzer used for boundary and lookup
            queries.  A fresh one is created when omitted.
        logger: Destination for fallback warnings.
    """

    def __init__(
        self,
        analyzer: ConditionAnalyzer | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._analyzer = analyzer or ConditionAnalyzer(logger=self._logger)

    # -- single comparison --------------------------------------------------

    def generate_value_for_condition(
        self,
        comparison: ComparisonCondition,
        target: ValueTarget,
    ) -> Scalar:
        """Return a value for ``comparison.sensor`` with the given polarity."""
        try:
            return self._value_for_comparison(comparison, target)
        except Exception:
            self._logger.warning(
                "Value generation failed, using neutral value",
                exc_info=True,
                extra={"sensor": comparison.sensor, "target": target.value},
            )
            return neutral_value(target)

    def _value_for_comparison(
        self,
        comparison: ComparisonCondition,
        target: ValueTarget,
    ) -> Scalar:
        if comparison.operator not in COMPARISON_OPERATORS:
            self._logger.warning(
                "Unknown comparison operator, using neutral value",
                extra={"sensor": comparison.sensor, "operator": comparison.operator},
            )
            return neutral_value(target)

        value = normalize_value(comparison.value)
        if value is None:
            # Right-hand side is a value expression: no static threshold.
            self._logger.debug(
                "Comparison has no static value",
                extra={"sensor": comparison.sensor},
            )
            return neutral_value(target)
        if isinstance(value, bool):
            return self._boolean_value(comparison.operator, value, target)
        if _is_number(value):
            return self._numeric_value(comparison, value, target)
        return self._string_value(comparison.operator, str(value), target)

    def _boolean_value(
        self,
        operator: str,
        value: bool,
        target: ValueTarget,
    ) -> Scalar:
        match operator:
            case "==" | "=":
                satisfying = value
            case "!=":
                satisfying = not value
            case _:
                return neutral_value(target)
        return satisfying if target is ValueTarget.POSITIVE else not satisfying

    def _numeric_value(
        self,
        comparison: ComparisonCondition,
        threshold: int | float,
        target: ValueTarget,
    ) -> Scalar:
        low, high = self._band(comparison, float(threshold))
        positive = target is ValueTarget.POSITIVE
        match comparison.operator:
            case ">" | ">=":
                return high if positive else low
            case "<" | "<=":
                return low if positive else high
            case "==" | "=":
                return threshold if positive else high
            case "!=":
                return high if positive else threshold
            case _:
                return neutral_value(target)

    def _band(
        self,
        comparison: ComparisonCondition,
        threshold: float,
    ) -> tuple[float, float]:
        low, high = sorted(self._analyzer.get_numeric_boundaries(comparison))
        if not low < threshold < high:
            return (threshold - UNIT_MARGIN, threshold + UNIT_MARGIN)
        return (low, high)

    @staticmethod
    def _string_value(operator: str, value: str, target: ValueTarget) -> Scalar:
        other = f"{value}_other" if value else "other"
        match operator:
            case "==" | "=":
                return value if target is ValueTarget.POSITIVE else other
            case "!=":
                return other if target is ValueTarget.POSITIVE else value
            case _:
                return neutral_value(target)

    # -- temporal -----------------------------------------------------------

    def generate_value_for_temporal_condition(
        self,
        condition: ThresholdOverTimeCondition,
        step_index: int,
        total_steps: int,
        target: ValueTarget,
    ) -> Scalar:
        """Return the value to send at *step_index* of a temporal sequence.

        The value is held constant across the whole sequence: a positive
        target stays on the satisfying side at every step so the
        condition holds for the full duration.  ``step_index`` and
        ``total_steps`` are accepted so a future ramping policy can be
        swapped in without changing callers.
        """
        if not 0 <= step_index < max(total_steps, 1):
            self._logger.debug(
                "Temporal step index out of range",
                extra={"step_index": step_index, "total_steps": total_steps},
            )
        return self.generate_value_for_condition(condition.as_comparison(), target)

    # -- sensor within a tree -----------------------------------------------

    def generate_value_for_sensor(
        self,
        condition: Condition,
        sensor: str,
        target: ValueTarget,
    ) -> Scalar:
        """Return a value for *sensor* derived from the tree *condition*.

        For a positive target, every comparison on *sensor* that is
        joined conjunctively is honoured at once by intersecting their
        intervals.  For a negative target, a value violating every
        comparison on *sensor* is preferred, so no ``any`` sibling can
        fire.  Otherwise the first matching leaf (depth-first, ``all``
        before ``any``) decides.
        """
        try:
            if target is ValueTarget.POSITIVE:
                constraints = self._analyzer.conjunctive_comparisons(condition, sensor)
                if len(constraints) > 1:
                    combined = self.generate_for_constraints(constraints)
                    if combined is not None:
                        return combined
            else:
                leaves = self._analyzer.conditions_for_sensor(condition, sensor)
                if len(leaves) > 1:
                    violating = self.generate_violating_value(
                        [
                            leaf.as_comparison()
                            if isinstance(leaf, ThresholdOverTimeCondition)
                            else leaf
                            for leaf in leaves
                        ],
                    )
                    if violating is not None:
                        return violating

            leaf = self._analyzer.find_condition_for_sensor(condition, sensor)
            match leaf:
                case ComparisonCondition():
                    return self.generate_value_for_condition(leaf, target)
                case ThresholdOverTimeCondition():
                    return self.generate_value_for_temporal_condition(
                        leaf,
                        0,
                        1,
                        target,
                    )
                case None:
                    self._logger.debug(
                        "No condition found for sensor",
                        extra={"sensor": sensor},
                    )
                    return neutral_value(target)
        except Exception:
            self._logger.warning(
                "Value generation failed, using neutral value",
                exc_info=True,
                extra={"sensor": sensor, "target": target.value},
            )
        return neutral_value(target)

    def generate_for_constraints(
        self,
        constraints: list[ComparisonCondition],
    ) -> Scalar | None:
        """Pick one value satisfying every numeric comparison in *constraints*.

        Returns ``None`` when a constraint is non-numeric or the
        intersection is empty, so the caller can fall back to a
        single-leaf policy.
        """
        lower = -math.inf
        upper = math.inf
        lower_strict = upper_strict = False
        lower_leaf: ComparisonCondition | None = None
        upper_leaf: ComparisonCondition | None = None
        exact: float | None = None
        excluded: list[float] = []

        for constraint in constraints:
            value = normalize_value(constraint.value)
            if not _is_number(value):
                return None
            number = float(value)
            strict = constraint.operator in (">", "<")
            match constraint.operator:
                case ">" | ">=":
                    if number > lower or (number == lower and strict):
                        lower, lower_strict, lower_leaf = number, strict, constraint
                case "<" | "<=":
                    if number < upper or (number == upper and strict):
                        upper, upper_strict, upper_leaf = number, strict, constraint
                case "==" | "=":
                    if exact is not None and exact != number:
                        return None
                    exact = number
                case "!=":
                    excluded.append(number)
                case _:
                    return None

        if exact is not None:
            above = exact > lower or (exact == lower and not lower_strict)
            below = exact < upper or (exact == upper and not upper_strict)
            if above and below and exact not in excluded:
                return exact
            return None
        if lower > upper:
            return None
        if lower == upper:
            # Only a closed interval pins a single value.
            if lower_strict or upper_strict or lower in excluded:
                return None
            return lower

        if math.isfinite(lower) and math.isfinite(upper):
            candidate: float = (lower + upper) / 2
        elif lower_leaf is not None:
            candidate = float(
                self.generate_value_for_condition(lower_leaf, ValueTarget.POSITIVE),
            )
        elif upper_leaf is not None:
            candidate = float(
                self.generate_value_for_condition(upper_leaf, ValueTarget.POSITIVE),
            )
        else:
            candidate = max(excluded) + UNIT_MARGIN

        while candidate in excluded:
            step = (upper - candidate) / 2 if math.isfinite(upper) else UNIT_MARGIN
            candidate += step
        return candidate

    def generate_violating_value(
        self,
        constraints: list[ComparisonCondition],
    ) -> Scalar | None:
        """Pick one value violating every numeric comparison in *constraints*.

        Each comparison's own violating value is tried in turn.  Returns
        ``None`` when a constraint is non-numeric or no candidate
        violates them all.
        """
        checks: list[tuple[Callable[[float, float], bool], float]] = []
        for constraint in constraints:
            value = normalize_value(constraint.value)
            check = _OPERATOR_CHECKS.get(constraint.operator)
            if not _is_number(value) or check is None:
                return None
            checks.append((check, float(value)))

        for constraint in constraints:
            candidate = self.generate_value_for_condition(constraint, ValueTarget.NEGATIVE)
            if not _is_number(candidate):
                continue
            if not any(check(float(candidate), threshold) for check, threshold in checks):
                return candidate
        return None

    # -- dependencies -------------------------------------------------------

    def requirement_for_key(self, condition: Condition, key: str) -> Scalar | None:
        """Return a value for *key* that satisfies the nodes referencing it.

        Walks the tree for leaves that mention *key*.  The first leaf
        that constrains *key* directly (a comparison on it, or a
        comparison lifted from expression text) decides; leaves that
        only mention *key* inside a right-hand-side expression cannot
        be inverted and are skipped.  Returns ``None`` when nothing
        constrains *key*.
        """
        for node in self._analyzer.find_conditions_referencing_key(condition, key):
            match node:
                case ComparisonCondition() if node.sensor == key:
                    return self.generate_value_for_sensor(
                        condition,
                        key,
                        ValueTarget.POSITIVE,
                    )
                case ThresholdOverTimeCondition():
                    return self.generate_value_for_temporal_condition(
                        node,
                        0,
                        1,
                        ValueTarget.POSITIVE,
                    )
                case ExpressionCondition():
                    for comparison in self._analyzer.comparisons_in_expression(
                        node.expression,
                    ):
                        if comparison.sensor == key:
                            return self.generate_value_for_condition(
                                comparison,
                                ValueTarget.POSITIVE,
                            )
        return None

    def analyze_condition_requirements(self, condition: Condition) -> dict[str, Scalar]:
        """Map every constrained sensor in *condition* to a satisfying value.

        Sensors that nothing constrains directly are left out.
        """
        requirements: dict[str, Scalar] = {}
        for sensor in self._analyzer.conditions_by_sensor(condition):
            value = self.requirement_for_key(condition, sensor)
            if value is not None:
                requirements[sensor] = value
        return requirements
