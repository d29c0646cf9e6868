"""Tests for ruleprobe._model — the immutable rule model.

Test Techniques Used:
    - Specification-based Testing: derived properties on rules and actions
    - State Verification: frozen dataclasses reject mutation
"""

from __future__ import annotations

import dataclasses

import pytest

from ruleprobe._model import (
    ComparisonCondition,
    ConditionGroup,
    RuleDefinition,
    SendMessageAction,
    SetValueAction,
    ThresholdOverTimeCondition,
    is_domain_key,
)


class TestDomainKeys:
    """Prefix detection.

    Technique: Equivalence Partitioning.
    """

    @pytest.mark.parametrize(
        "key",
        ["input:temp", "output:alarm", "state:mode", "buffer:window"],
    )
    def test_domain_prefixes(self, key: str) -> None:
        assert is_domain_key(key) is True

    @pytest.mark.parametrize("key", ["device:sensor1", "temp", "alerts"])
    def test_other_keys(self, key: str) -> None:
        assert is_domain_key(key) is False


class TestConditions:
    """Condition variants.

    Technique: Specification-based Testing.
    """

    def test_discriminants(self) -> None:
        assert ComparisonCondition("input:a", ">", 1).kind == "comparison"
        assert ConditionGroup().kind == "group"

    def test_temporal_as_comparison(self) -> None:
        condition = ThresholdOverTimeCondition("input:p", 1000, 1500, operator=">=")

        assert condition.as_comparison() == ComparisonCondition("input:p", ">=", 1000)

    def test_group_children_all_first(self) -> None:
        first = ComparisonCondition("input:a", ">", 1)
        second = ComparisonCondition("input:b", ">", 2)

        assert ConditionGroup(all=(first,), any=(second,)).children == (first, second)

    def test_conditions_are_frozen(self) -> None:
        condition = ComparisonCondition("input:a", ">", 1)

        with pytest.raises(dataclasses.FrozenInstanceError):
            condition.value = 2  # type: ignore[misc]


class TestRuleDefinition:
    """Derived views of a rule's actions.

    Technique: Specification-based Testing.
    """

    def _rule(self) -> RuleDefinition:
        return RuleDefinition(
            name="Mixed",
            actions=(
                SetValueAction("output:alarm", value=True),
                SetValueAction("state:latched", value_expression="input:a + 1"),
                SendMessageAction("alerts", message_expression='"hi " + input:name'),
                SetValueAction("output:level", value_expression="input:a * 2"),
            ),
        )

    def test_output_actions(self) -> None:
        assert [action.key for action in self._rule().output_actions] == [
            "output:alarm",
            "output:level",
        ]

    def test_value_expressions(self) -> None:
        assert self._rule().value_expressions == (
            "input:a + 1",
            '"hi " + input:name',
            "input:a * 2",
        )

    def test_defaults(self) -> None:
        rule = RuleDefinition(name="Empty")

        assert rule.conditions == ConditionGroup()
        assert rule.actions == ()
        assert rule.output_actions == ()
