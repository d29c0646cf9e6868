"""YAML rule-file loading.

Rule documents look like::

    rules:
      - name: HighTemperatureAlert
        description: Raise the alert above 30 degrees
        conditions:
          all:
            - condition:
                type: comparison
                sensor: input:temperature
                operator: ">"
                value: 30
        actions:
          - set_value:
              key: output:high_temp_alert
              value: true

Keys may be snake_case or camelCase (``value_expression`` or
``valueExpression``).  A leaf may be written directly or wrapped in a
``condition:`` mapping.  When ``type`` is omitted it is inferred from
the keys present.  Actions are either ``{type: set_value, ...}`` or a
single-key mapping ``{set_value: {...}}``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from ruleprobe._errors import RuleLoadError
from ruleprobe._model import (
    COMPARISON_OPERATORS,
    Action,
    ComparisonCondition,
    Condition,
    ConditionGroup,
    ExpressionCondition,
    RuleDefinition,
    SendMessageAction,
    SetValueAction,
    ThresholdOverTimeCondition,
)

logger = logging.getLogger(__name__)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _get(data: Mapping[str, Any], name: str, default: Any = None) -> Any:
    if name in data:
        return data[name]
    return data.get(_camel(name), default)


def _kind(name: str) -> str:
    return name.replace("_", "").replace("-", "").lower()


def _require_str(data: Mapping[str, Any], name: str, what: str, source: str) -> str:
    value = _get(data, name)
    if not isinstance(value, str) or not value.strip():
        msg = f"{what} requires a non-empty '{name}'"
        raise RuleLoadError(msg, source=source)
    return value.strip()


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


def parse_condition(data: Any, source: str = "") -> Condition:
    """Parse one condition node."""
    if not isinstance(data, Mapping):
        msg = f"Condition must be a mapping, got {type(data).__name__}"
        raise RuleLoadError(msg, source=source)
    if set(data) == {"condition"}:
        return parse_condition(data["condition"], source)

    kind = _kind(str(data.get("type", "")))
    if not kind:
        if "all" in data or "any" in data:
            kind = "group"
        elif "expression" in data:
            kind = "expression"
        elif "duration" in data or "duration_ms" in data or "durationMs" in data:
            kind = "thresholdovertime"
        else:
            kind = "comparison"

    match kind:
        case "group":
            return parse_group(data, source)
        case "comparison":
            operator = str(data.get("operator", "")).strip()
            if operator not in COMPARISON_OPERATORS:
                msg = f"Unsupported comparison operator {operator!r}"
                raise RuleLoadError(msg, source=source)
            value = data.get("value")
            value_expression = _get(data, "value_expression")
            if value is None and value_expression is None:
                msg = "Comparison requires 'value' or 'value_expression'"
                raise RuleLoadError(msg, source=source)
            return ComparisonCondition(
                sensor=_require_str(data, "sensor", "Comparison", source),
                operator=operator,
                value=value,
                value_expression=value_expression,
            )
        case "expression":
            return ExpressionCondition(
                expression=_require_str(data, "expression", "Expression condition", source),
            )
        case "thresholdovertime":
            return _parse_threshold(data, source)
        case _:
            msg = f"Unknown condition type {data.get('type')!r}"
            raise RuleLoadError(msg, source=source)


def _parse_threshold(data: Mapping[str, Any], source: str) -> ThresholdOverTimeCondition:
    duration = _get(data, "duration", _get(data, "duration_ms"))
    try:
        threshold = float(data["threshold"])
        duration_ms = int(duration)
    except (KeyError, TypeError, ValueError) as exc:
        msg = "Threshold-over-time requires numeric 'threshold' and 'duration'"
        raise RuleLoadError(msg, source=source) from exc
    operator = str(data.get("operator", ">")).strip()
    if operator not in COMPARISON_OPERATORS:
        msg = f"Unsupported comparison operator {operator!r}"
        raise RuleLoadError(msg, source=source)
    return ThresholdOverTimeCondition(
        sensor=_require_str(data, "sensor", "Threshold-over-time", source),
        threshold=threshold,
        duration_ms=duration_ms,
        operator=operator,
    )


def parse_group(data: Mapping[str, Any], source: str = "") -> ConditionGroup:
    """Parse an ``all``/``any`` group."""
    branches: dict[str, tuple[Condition, ...]] = {}
    for name in ("all", "any"):
        items = data.get(name) or []
        if not isinstance(items, list):
            msg = f"Group '{name}' must be a list"
            raise RuleLoadError(msg, source=source)
        branches[name] = tuple(parse_condition(item, source) for item in items)
    return ConditionGroup(all=branches["all"], any=branches["any"])


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def parse_action(data: Any, source: str = "") -> Action:
    """Parse one action node."""
    if not isinstance(data, Mapping):
        msg = f"Action must be a mapping, got {type(data).__name__}"
        raise RuleLoadError(msg, source=source)

    if "type" in data:
        kind, body = _kind(str(data["type"])), data
    elif len(data) == 1:
        ((name, body),) = data.items()
        kind = _kind(str(name))
        if not isinstance(body, Mapping):
            msg = f"Action '{name}' must be a mapping"
            raise RuleLoadError(msg, source=source)
    else:
        msg = "Action requires a 'type'"
        raise RuleLoadError(msg, source=source)

    match kind:
        case "setvalue":
            value = body.get("value")
            value_expression = _get(body, "value_expression")
            if value is None and value_expression is None:
                msg = "set_value requires 'value' or 'value_expression'"
                raise RuleLoadError(msg, source=source)
            return SetValueAction(
                key=_require_str(body, "key", "set_value", source),
                value=value,
                value_expression=value_expression,
            )
        case "sendmessage":
            return SendMessageAction(
                channel=_require_str(body, "channel", "send_message", source),
                message=body.get("message"),
                message_expression=_get(body, "message_expression"),
            )
        case _:
            msg = f"Unknown action type {kind!r}"
            raise RuleLoadError(msg, source=source)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def parse_rule(data: Any, source: str = "") -> RuleDefinition:
    """Parse one rule mapping."""
    if not isinstance(data, Mapping):
        msg = f"Rule must be a mapping, got {type(data).__name__}"
        raise RuleLoadError(msg, source=source)
    name = _require_str(data, "name", "Rule", source)

    raw_conditions = data.get("conditions")
    if raw_conditions is None:
        logger.warning("Rule has no conditions", extra={"rule": name})
        conditions = ConditionGroup()
    else:
        parsed = parse_condition(raw_conditions, source)
        conditions = parsed if isinstance(parsed, ConditionGroup) else ConditionGroup(all=(parsed,))

    raw_actions = data.get("actions") or []
    if not isinstance(raw_actions, list):
        msg = f"Rule '{name}': 'actions' must be a list"
        raise RuleLoadError(msg, source=source)

    return RuleDefinition(
        name=name,
        conditions=conditions,
        actions=tuple(parse_action(item, source) for item in raw_actions),
        description=str(data.get("description") or ""),
        source_file=source,
    )


def load_rules(text: str, source: str = "") -> list[RuleDefinition]:
    """Parse a YAML rule document.

    Raises:
        RuleLoadError: The text is not valid YAML or a rule is malformed.
    """
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"Invalid YAML: {exc}"
        raise RuleLoadError(msg, source=source) from exc

    if document is None:
        return []
    if isinstance(document, list):
        raw_rules = document
    elif isinstance(document, Mapping) and isinstance(document.get("rules", []), list):
        raw_rules = document.get("rules") or []
    else:
        msg = "Expected a 'rules' list at the top level"
        raise RuleLoadError(msg, source=source)
    return [parse_rule(item, source) for item in raw_rules]


def load_rules_from_file(path: str | Path) -> list[RuleDefinition]:
    """Load rules from a single YAML file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read rule file: {exc}"
        raise RuleLoadError(msg, source=str(path)) from exc
    rules = load_rules(text, source=str(path))
    logger.info("Loaded rules", extra={"source_file": str(path), "rules": len(rules)})
    return rules


def load_rules_from_files(paths: Iterable[str | Path]) -> list[RuleDefinition]:
    """Load rules from several files, in order.

    Raises:
        RuleLoadError: On the first file that fails to load.
    """
    rules: list[RuleDefinition] = []
    for path in paths:
        rules.extend(load_rules_from_file(path))
    return rules
