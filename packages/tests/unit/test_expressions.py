"""Tests for ruleprobe._expressions — sandboxed expression evaluation.

Test Techniques Used:
    - Specification-based Testing: operator and reference translation
    - Equivalence Partitioning: binding coercion by value type
    - Clock Injection: deterministic ``now()``
    - Error Condition Testing: failures surface as ExpressionError
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from ruleprobe._errors import ExpressionError
from ruleprobe._expressions import (
    ExpressionEvaluator,
    reference_name,
    translate_expression,
)

FIXED_DT = datetime(2026, 3, 1, 8, 30, 0, tzinfo=UTC)


@pytest.fixture
def evaluator() -> ExpressionEvaluator:
    return ExpressionEvaluator(clock=lambda: FIXED_DT)


class TestTranslation:
    """Rule syntax to Python syntax.

    Technique: Specification-based Testing.
    """

    def test_references_become_identifiers(self) -> None:
        assert translate_expression("input:temp * 2") == "input__temp * 2"

    def test_symbolic_operators(self) -> None:
        translated = translate_expression("!input:a && (input:b || input:c != 1)")

        assert translated.split() == [
            "not",
            "input__a",
            "and",
            "(input__b",
            "or",
            "input__c",
            "!=",
            "1)",
        ]

    def test_reference_name(self) -> None:
        assert reference_name("output:alarm") == "output__alarm"

    def test_string_literals_are_untouched(self) -> None:
        translated = translate_expression("\"a && b || !c input:x\" + input:y + 'Alert!'")

        assert translated == "\"a && b || !c input:x\" + input__y + 'Alert!'"


class TestEvaluate:
    """Evaluation against bindings.

    Technique: Equivalence Partitioning.
    """

    def test_arithmetic(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate("input:humidity * 2", {"input:humidity": 45.0}) == 90.0

    def test_numeric_string_binding_is_coerced(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate("input:level + 1", {"input:level": "4"}) == 5.0

    def test_boolean_logic(self, evaluator: ExpressionEvaluator) -> None:
        bindings = {"input:door": "true", "input:armed": False}

        assert evaluator.evaluate("input:door && !input:armed", bindings) is True

    def test_boolean_literals(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate("true", {}) is True

    def test_missing_binding_defaults_to_zero(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate("input:unknown + 3", {}) == 3.0

    def test_now_uses_injected_clock(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate("now()", {}) == FIXED_DT.isoformat()

    def test_string_concatenation(self, evaluator: ExpressionEvaluator) -> None:
        result = evaluator.evaluate('"Mode: " + input:mode', {"input:mode": "eco"})

        assert result == "Mode: eco"

    def test_literal_text_survives(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate("'Alert!' + 'x'", {}) == "Alert!x"
        assert evaluator.evaluate('"see input:x && more"', {}) == "see input:x && more"


class TestErrors:
    """Failure reporting.

    Technique: Error Condition Testing.
    """

    def test_syntax_error(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(ExpressionError) as exc_info:
            evaluator.evaluate("input:a >>> 2", {})

        assert exc_info.value.expression == "input:a >>> 2"

    def test_unknown_function(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(ExpressionError):
            evaluator.evaluate("explode(1)", {})

    def test_type_error(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(ExpressionError):
            evaluator.evaluate('"Temp: " + input:t', {"input:t": 21.5})

    def test_empty_expression(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(ExpressionError):
            evaluator.evaluate("   ", {})
