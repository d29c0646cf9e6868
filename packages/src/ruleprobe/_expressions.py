"""Sandboxed evaluation of rule expressions.

Rule expressions reference sensors as ``prefix:name`` and may use the
symbolic boolean operators ``&&``, ``||`` and ``!``.  Before handing
the text to :mod:`simpleeval`, references are rewritten to plain
identifiers (``input:temp`` becomes ``input__temp``) and the symbolic
operators to ``and``/``or``/``not``.

Bindings are coerced by type: ``"true"``/``"false"`` strings become
booleans and numeric strings become floats, so a value read back from
the store compares the same way as a generated one.  A referenced
sensor with no binding evaluates as ``0.0``.

Parsed syntax trees are cached per translated source, so evaluating
the same action expression for many scenarios parses it once.
"""

from __future__ import annotations

import ast
import functools
import logging
import re
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from simpleeval import InvalidExpression, SimpleEval

from ruleprobe._conditions import normalize_value
from ruleprobe._errors import ExpressionError

logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"\b(input|output|state|buffer):([A-Za-z0-9_]+)")
_STRING_LITERAL = re.compile(r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""")
_OPERATORS = (
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
)

MISSING_BINDING = 0.0

_CONSTANTS: dict[str, Any] = {
    "True": True,
    "False": False,
    "None": None,
    "true": True,
    "false": False,
    "null": None,
}

_PARSER = SimpleEval()


def reference_name(key: str) -> str:
    """Identifier a ``prefix:name`` key is bound to inside an expression."""
    return _REFERENCE.sub(r"\1__\2", key)


def _translate_code(text: str) -> str:
    for pattern, replacement in _OPERATORS:
        text = pattern.sub(replacement, text)
    return _REFERENCE.sub(r"\1__\2", text)


def translate_expression(expression: str) -> str:
    """Rewrite rule-expression syntax into Python expression syntax.

    Quoted string literals are copied through untouched.
    """
    # split() with a capture group puts the literals at odd indices.
    pieces = _STRING_LITERAL.split(expression.strip())
    return "".join(
        piece if index % 2 else _translate_code(piece)
        for index, piece in enumerate(pieces)
    ).strip()


@functools.cache
def _parse(source: str) -> ast.AST:
    return _PARSER.parse(source)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ExpressionEvaluator:
    """Evaluates rule expressions against sensor bindings.

    Args:
        clock: Callable returning the current time; backs the ``now()``
            function available to expressions.  Defaults to UTC now.
    """

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utc_now
        self._functions: dict[str, Callable[..., Any]] = {
            "now": self._now,
            "abs": abs,
            "min": min,
            "max": max,
            "round": round,
            "int": int,
            "float": float,
            "str": str,
        }

    def _now(self) -> str:
        return self._clock().isoformat()

    def evaluate(self, expression: str, bindings: Mapping[str, Any]) -> Any:
        """Evaluate *expression* with *bindings* keyed by ``prefix:name``.

        Raises:
            ExpressionError: The expression could not be parsed or
                evaluated.
        """
        source = translate_expression(expression)
        names = dict(_CONSTANTS)
        for match in _REFERENCE.finditer(expression):
            names[reference_name(match.group(0))] = MISSING_BINDING
        for key, value in bindings.items():
            names[reference_name(key)] = normalize_value(value)

        evaluator = SimpleEval(names=names, functions=self._functions)
        try:
            return evaluator.eval(source, previously_parsed=_parse(source))
        except (
            InvalidExpression,
            SyntaxError,
            TypeError,
            ValueError,
            ArithmeticError,
            KeyError,
        ) as exc:
            logger.debug(
                "Expression evaluation failed",
                extra={"expression": expression, "error": str(exc)},
            )
            raise ExpressionError(expression, str(exc)) from exc
