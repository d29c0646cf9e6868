"""Typed comparison of expected and observed store values.

Everything the store returns is text.  :func:`coerce_actual` turns it
back into the type of the expected value before comparing, and
:func:`compare_values` dispatches on the validator kind.  None of these
functions raise: a value that cannot be parsed simply does not match.

Validator selection (``auto``) follows the expected value:

==========================  =========
expected                    validator
==========================  =========
``bool``                    boolean
``int`` / ``float``         numeric
``"true"`` / ``"false"``    boolean
numeric string              numeric
anything else               string
==========================  =========
"""

from __future__ import annotations

import json
from typing import Any, Literal

ValidatorKind = Literal["auto", "boolean", "numeric", "string"]

DEFAULT_TOLERANCE = 0.0001

_TRUE_WORDS = frozenset({"true", "1", "yes"})
_FALSE_WORDS = frozenset({"false", "0", "no"})


def is_number(value: object) -> bool:
    """``True`` for ``int``/``float`` but not ``bool``."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_bool(value: object) -> bool | None:
    """Parse a native or textual boolean; ``None`` if it is neither."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def parse_number(value: object) -> float | None:
    """Parse a native or textual number; ``None`` if it is neither.

    A decimal comma is accepted (``"3,5"`` parses as ``3.5``).
    """
    if is_number(value):
        return float(value)  # type: ignore[arg-type]
    if isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text or "_" in text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
    return None


def get_validator_type(expected: object) -> ValidatorKind:
    """Resolve the ``auto`` validator for *expected*."""
    if isinstance(expected, bool):
        return "boolean"
    if is_number(expected):
        return "numeric"
    if isinstance(expected, str):
        if expected.strip().lower() in ("true", "false"):
            return "boolean"
        if parse_number(expected) is not None:
            return "numeric"
    return "string"


def format_scalar(value: Any) -> str:
    """Render *value* the way it is written to the store."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce_actual(raw: str | None, expected: object) -> Any:
    """Convert a raw store string towards the type of *expected*.

    Unparseable text is returned unchanged so the mismatch shows up in
    the result details.
    """
    if raw is None:
        return None
    if is_number(expected):
        number = parse_number(raw)
        return raw if number is None else number
    if isinstance(expected, bool):
        flag = parse_bool(raw)
        return raw if flag is None else flag
    return raw


def decode_json(raw: str | None) -> Any:
    """Decode a JSON-format value, falling back to the raw string."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def compare_booleans(expected: object, actual: object) -> bool:
    if expected is None or actual is None:
        return expected is None and actual is None
    expected_flag = parse_bool(expected)
    actual_flag = parse_bool(actual)
    if expected_flag is None or actual_flag is None:
        return False
    return expected_flag == actual_flag


def compare_numbers(
    expected: object,
    actual: object,
    tolerance: float = DEFAULT_TOLERANCE,
) -> bool:
    if expected is None or actual is None:
        return expected is None and actual is None
    expected_number = parse_number(expected)
    actual_number = parse_number(actual)
    if expected_number is None or actual_number is None:
        return False
    return abs(expected_number - actual_number) <= tolerance


def compare_strings(expected: object, actual: object) -> bool:
    """Lenient textual comparison.

    Tried in order: both missing; both blank; boolean-looking expected
    compared as booleans; numeric equivalence; case-insensitive
    equality of trimmed text; exact equality.
    """
    if expected is None and actual is None:
        return True
    expected_text = "" if expected is None else format_scalar(expected)
    actual_text = "" if actual is None else format_scalar(actual)

    if not expected_text.strip() and not actual_text.strip():
        return True
    if expected_text.strip().lower() in ("true", "false", "1", "0"):
        return compare_booleans(expected_text, actual_text)

    expected_number = parse_number(expected_text)
    actual_number = parse_number(actual_text)
    if (
        expected_number is not None
        and actual_number is not None
        and abs(expected_number - actual_number) <= DEFAULT_TOLERANCE
    ):
        return True

    if expected_text.strip().lower() == actual_text.strip().lower():
        return True
    return expected_text == actual_text


def compare_values(
    expected: object,
    actual: object,
    validator: ValidatorKind = "auto",
    tolerance: float | None = None,
) -> bool:
    """Compare *expected* and *actual* with the given validator."""
    kind = get_validator_type(expected) if validator == "auto" else validator
    match kind:
        case "boolean":
            return compare_booleans(expected, actual)
        case "numeric":
            return compare_numbers(
                expected,
                actual,
                DEFAULT_TOLERANCE if tolerance is None else tolerance,
            )
        case _:
            return compare_strings(expected, actual)
