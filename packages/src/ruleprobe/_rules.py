"""Rule-set analysis: input sensors, inter-rule dependencies, temporal rules.

A *dependency* exists from rule A (source) to rule B (target) when an
``output:`` key written by one of A's ``SetValue`` actions is read by B,
either in B's condition tree (``"condition"``) or in one of B's action
expressions (``"action"``).  Self-edges are never produced, and when
several rules write the same key each writer gets its own edge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from ruleprobe._conditions import ConditionAnalyzer
from ruleprobe._model import INPUT_PREFIX, RuleDefinition

type DependencyType = Literal["condition", "action"]


@dataclass(frozen=True, slots=True)
class Dependency:
    """Directed edge ``source_rule -> target_rule`` through ``key``."""

    source_rule: RuleDefinition
    target_rule: RuleDefinition
    key: str
    dependency_type: DependencyType


@dataclass(frozen=True, slots=True)
class RuleAnalysis:
    """Result of :meth:`RuleAnalyzer.analyze_rules`."""

    rules: tuple[RuleDefinition, ...]
    input_sensors: frozenset[str]
    dependencies: tuple[Dependency, ...]
    temporal_rules: tuple[RuleDefinition, ...]

    def dependencies_by_target(self) -> dict[str, list[Dependency]]:
        """Group edges by target rule name, in first-seen order."""
        grouped: dict[str, list[Dependency]] = {}
        for dependency in self.dependencies:
            grouped.setdefault(dependency.target_rule.name, []).append(dependency)
        return grouped


class RuleAnalyzer:
    """Computes input-sensor sets, dependency edges and temporal rules."""

    def __init__(
        self,
        condition_analyzer: ConditionAnalyzer | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._conditions = condition_analyzer or ConditionAnalyzer(logger=self._logger)

    def analyze_rules(self, rules: list[RuleDefinition]) -> RuleAnalysis:
        """Analyse *rules* as a whole."""
        self._warn_duplicate_names(rules)

        input_sensors: set[str] = set()
        temporal: list[RuleDefinition] = []
        for rule in rules:
            input_sensors.update(
                sensor
                for sensor in self._conditions.extract_sensors(rule.conditions)
                if sensor.startswith(INPUT_PREFIX)
            )
            if self._conditions.has_temporal_condition(rule.conditions):
                temporal.append(rule)

        dependencies = self.find_dependencies(rules)
        self._logger.info(
            "Analysed rule set",
            extra={
                "rules": len(rules),
                "input_sensors": len(input_sensors),
                "dependencies": len(dependencies),
                "temporal_rules": len(temporal),
            },
        )
        return RuleAnalysis(
            rules=tuple(rules),
            input_sensors=frozenset(input_sensors),
            dependencies=tuple(dependencies),
            temporal_rules=tuple(temporal),
        )

    def find_dependencies(self, rules: list[RuleDefinition]) -> list[Dependency]:
        """Return every dependency edge between distinct rules."""
        dependencies: list[Dependency] = []
        for target in rules:
            condition_keys = self._conditions.extract_sensors(target.conditions)
            action_keys = self.action_input_keys(target)
            for source in rules:
                if source is target:
                    continue
                seen: set[str] = set()
                for action in source.output_actions:
                    if action.key in seen:
                        continue
                    seen.add(action.key)
                    if action.key in condition_keys:
                        kind: DependencyType = "condition"
                    elif action.key in action_keys:
                        kind = "action"
                    else:
                        continue
                    dependencies.append(
                        Dependency(
                            source_rule=source,
                            target_rule=target,
                            key=action.key,
                            dependency_type=kind,
                        ),
                    )
        return dependencies

    def action_input_keys(self, rule: RuleDefinition) -> set[str]:
        """Sensor keys referenced by *rule*'s action expressions."""
        keys: set[str] = set()
        for expression in rule.value_expressions:
            keys |= self._conditions.extract_sensors_from_expression(expression)
        return keys

    def _warn_duplicate_names(self, rules: list[RuleDefinition]) -> None:
        seen: set[str] = set()
        for rule in rules:
            if rule.name in seen:
                self._logger.warning(
                    "Duplicate rule name, generated scenario names will collide",
                    extra={"rule": rule.name, "source_file": rule.source_file},
                )
            seen.add(rule.name)
