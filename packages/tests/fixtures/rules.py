"""Shared rule definitions for tests.

Each builder returns a fresh :class:`RuleDefinition`; the rules mirror
the shapes found in real rule files (simple threshold, cross-rule
dependency, sustained threshold, expression output).
"""

from __future__ import annotations

from ruleprobe._model import (
    ComparisonCondition,
    ConditionGroup,
    ExpressionCondition,
    RuleDefinition,
    SetValueAction,
    ThresholdOverTimeCondition,
)


def high_temperature_rule() -> RuleDefinition:
    """``input:temperature > 30`` sets ``output:high_temp_alert``."""
    return RuleDefinition(
        name="HighTemperatureAlert",
        conditions=ConditionGroup(
            all=(ComparisonCondition("input:temperature", ">", 30),),
        ),
        actions=(SetValueAction("output:high_temp_alert", value=True),),
    )


def motion_rule() -> RuleDefinition:
    """``input:motion_sensor == true`` sets ``output:motion_detected``."""
    return RuleDefinition(
        name="MotionDetector",
        conditions=ConditionGroup(
            all=(ComparisonCondition("input:motion_sensor", "==", True),),
        ),
        actions=(SetValueAction("output:motion_detected", value=True),),
    )


def night_light_rule() -> RuleDefinition:
    """Reads ``output:motion_detected`` written by :func:`motion_rule`."""
    return RuleDefinition(
        name="NightLight",
        conditions=ConditionGroup(
            all=(
                ComparisonCondition("output:motion_detected", "==", True),
                ComparisonCondition("input:light_level", "<", 10),
            ),
        ),
        actions=(SetValueAction("output:night_light", value=True),),
    )


def pressure_rule() -> RuleDefinition:
    """``input:pressure > 1000`` sustained for 1500 ms."""
    return RuleDefinition(
        name="SustainedPressure",
        conditions=ConditionGroup(
            all=(ThresholdOverTimeCondition("input:pressure", 1000, 1500, ">"),),
        ),
        actions=(SetValueAction("output:pressure_alarm", value=True),),
    )


def doubled_humidity_rule() -> RuleDefinition:
    """Expression output computed from the triggering input."""
    return RuleDefinition(
        name="HumidityMirror",
        conditions=ConditionGroup(
            all=(ComparisonCondition("input:humidity", ">=", 40),),
        ),
        actions=(
            SetValueAction(
                "output:humidity_doubled",
                value_expression="input:humidity * 2",
            ),
        ),
    )


def expression_rule() -> RuleDefinition:
    """Free-form expression condition."""
    return RuleDefinition(
        name="ComfortCheck",
        conditions=ConditionGroup(
            all=(
                ExpressionCondition(
                    "input:temperature > 18 && input:humidity < 70",
                ),
            ),
        ),
        actions=(SetValueAction("output:comfortable", value=True),),
    )


RULES_YAML = """\
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
      - type: set_value
        key: output:high_temp_alert
        value: true
  - name: SustainedPressure
    conditions:
      all:
        - type: threshold_over_time
          sensor: input:pressure
          threshold: 1000
          duration: 1500
    actions:
      - set_value:
          key: output:pressure_alarm
          valueExpression: "true"
"""
