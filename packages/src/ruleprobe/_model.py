"""Immutable rule model consumed by analysis and generation.

Conditions and actions are closed tagged unions: each variant is a
frozen dataclass carrying a constant ``kind`` discriminant, and every
traversal dispatches with ``match`` and ends in
:func:`typing.assert_never`.  Adding a variant is therefore a change a
type checker flags everywhere it matters (condition analyzer, value
generator, scenario generator).

Condition variants::

    ComparisonCondition         sensor <op> value
    ExpressionCondition         free-form expression text
    ThresholdOverTimeCondition  sensor <op> threshold, held for duration_ms
    ConditionGroup              AND(all) AND OR(any)

Action variants::

    SetValueAction      key := value | value_expression
    SendMessageAction   channel <- message | message_expression

Key namespace: every sensor key carries one of the domain prefixes
``input:``, ``output:``, ``state:`` or ``buffer:``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

INPUT_PREFIX = "input:"
OUTPUT_PREFIX = "output:"
STATE_PREFIX = "state:"
BUFFER_PREFIX = "buffer:"

DOMAIN_PREFIXES: tuple[str, ...] = (
    INPUT_PREFIX,
    OUTPUT_PREFIX,
    STATE_PREFIX,
    BUFFER_PREFIX,
)

COMPARISON_OPERATORS: frozenset[str] = frozenset(
    {">", ">=", "<", "<=", "==", "=", "!="},
)

type Scalar = bool | int | float | str
"""A value that can be written to, or read back from, the store."""


def is_domain_key(key: str) -> bool:
    """Return ``True`` if *key* starts with a domain prefix."""
    return key.startswith(DOMAIN_PREFIXES)


class ValueTarget(Enum):
    """Polarity requested from the value generator."""

    POSITIVE = "positive"
    """Produce a value that satisfies the condition."""

    NEGATIVE = "negative"
    """Produce a value that violates the condition."""


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ComparisonCondition:
    """``sensor <operator> value`` evaluated at a single instant.

    ``value_expression`` is set instead of ``value`` when the right-hand
    side is computed from other sensors.
    """

    sensor: str
    operator: str
    value: Scalar | None = None
    value_expression: str | None = None
    kind: Literal["comparison"] = field(default="comparison", init=False)


@dataclass(frozen=True, slots=True)
class ExpressionCondition:
    """Free-form boolean expression over sensor references."""

    expression: str
    kind: Literal["expression"] = field(default="expression", init=False)


@dataclass(frozen=True, slots=True)
class ThresholdOverTimeCondition:
    """``sensor <operator> threshold`` held continuously for ``duration_ms``."""

    sensor: str
    threshold: float
    duration_ms: int
    operator: str = ">"
    kind: Literal["threshold_over_time"] = field(
        default="threshold_over_time",
        init=False,
    )

    def as_comparison(self) -> ComparisonCondition:
        """The instantaneous comparison that must hold at every step."""
        return ComparisonCondition(
            sensor=self.sensor,
            operator=self.operator,
            value=self.threshold,
        )


@dataclass(frozen=True, slots=True)
class ConditionGroup:
    """Conjunction of ``all`` and disjunction of ``any``.

    With both populated the group means ``AND(all) AND OR(any)``.  An
    empty ``all`` is vacuously true; an empty ``any`` contributes
    nothing, so a group with neither list populated is true.
    """

    all: tuple[Condition, ...] = ()
    any: tuple[Condition, ...] = ()
    kind: Literal["group"] = field(default="group", init=False)

    @property
    def children(self) -> tuple[Condition, ...]:
        """Sub-conditions in document order, ``all`` first."""
        return self.all + self.any


type Condition = (
    ComparisonCondition
    | ExpressionCondition
    | ThresholdOverTimeCondition
    | ConditionGroup
)

# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SetValueAction:
    """Write ``value`` (or the result of ``value_expression``) to ``key``."""

    key: str
    value: Scalar | None = None
    value_expression: str | None = None
    kind: Literal["set_value"] = field(default="set_value", init=False)

    @property
    def is_output(self) -> bool:
        """Whether this action writes an ``output:`` key."""
        return self.key.startswith(OUTPUT_PREFIX)


@dataclass(frozen=True, slots=True)
class SendMessageAction:
    """Publish ``message`` (or ``message_expression``) on ``channel``."""

    channel: str
    message: str | None = None
    message_expression: str | None = None
    kind: Literal["send_message"] = field(default="send_message", init=False)


type Action = SetValueAction | SendMessageAction

# ---------------------------------------------------------------------------
# Rule
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RuleDefinition:
    """A named rule: a condition tree rooted at a group, plus actions."""

    name: str
    conditions: ConditionGroup = field(default_factory=ConditionGroup)
    actions: tuple[Action, ...] = ()
    description: str = ""
    source_file: str = ""

    @property
    def output_actions(self) -> tuple[SetValueAction, ...]:
        """``SetValueAction``s targeting ``output:`` keys, in order."""
        return tuple(
            action
            for action in self.actions
            if isinstance(action, SetValueAction) and action.is_output
        )

    @property
    def value_expressions(self) -> tuple[str, ...]:
        """Non-empty value expressions across all actions."""
        expressions: list[str] = []
        for action in self.actions:
            match action:
                case SetValueAction(value_expression=expr) if expr:
                    expressions.append(expr)
                case SendMessageAction(message_expression=expr) if expr:
                    expressions.append(expr)
        return tuple(expressions)
