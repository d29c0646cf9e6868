"""Scenario and result documents.

These pydantic models are the hand-off between generation and
execution: ``ruleprobe generate`` writes a :class:`ScenarioDocument`,
``ruleprobe run`` reads one and writes a :class:`ResultsDocument`.
JSON keys are camelCase (``preSetOutputs``, ``timeoutMs``); Python
attribute names are snake_case and are accepted on input as well.

A scenario is either a list of explicit :class:`Step` objects or the
compact ``inputSequence`` + ``expectedOutputs`` form used for temporal
scenarios.  :meth:`Scenario.normalized` expands the compact form into
steps so the runner only ever sees one shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ruleprobe._compare import ValidatorKind

StorageFormat = Literal["auto", "string", "hash", "json", "pub"]


class _Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Scenario
# ---------------------------------------------------------------------------


class InputValue(_Document):
    """One value written to the store."""

    key: str
    value: Any = None
    field: str | None = None
    format: StorageFormat = "auto"


class Expectation(_Document):
    """A value expected to appear in the store.

    ``timeout_ms`` of ``None`` lets the runner inject its default;
    ``0`` checks exactly once.
    """

    key: str
    expected: Any = None
    field: str | None = None
    validator: ValidatorKind = "auto"
    format: StorageFormat = "auto"
    tolerance: float | None = None
    timeout_ms: int | None = Field(default=None, ge=0)
    polling_interval_ms: int | None = Field(default=None, gt=0)


class Step(_Document):
    """Write inputs, wait ``delay`` milliseconds, then check expectations."""

    name: str = ""
    description: str = ""
    inputs: list[InputValue] = Field(default_factory=list)
    delay: int = Field(default=0, ge=0)
    expectations: list[Expectation] = Field(default_factory=list)


class SequenceInput(_Document):
    """One element of a compact input sequence."""

    inputs: dict[str, Any] = Field(default_factory=dict)
    delay_ms: int = Field(default=0, ge=0)


class Scenario(_Document):
    """Named, ordered list of steps plus pre-test store setup."""

    name: str
    description: str = ""
    steps: list[Step] = Field(default_factory=list)
    pre_set_outputs: dict[str, Any] | None = None
    input_sequence: list[SequenceInput] | None = None
    expected_outputs: dict[str, Any] | None = None
    clear_outputs: bool = False
    timeout_multiplier: float = Field(default=1.0, gt=0)

    def normalized(self) -> Scenario:
        """Return a copy whose compact sequence form is expanded into steps.

        Each sequence element becomes a step; ``expected_outputs`` are
        attached to the last one (or to a trailing check-only step when
        there is no sequence).  Scenarios that already have steps are
        returned unchanged.
        """
        if self.steps or (not self.input_sequence and not self.expected_outputs):
            return self

        steps = [
            Step(
                name=f"Sequence step {index}",
                inputs=[
                    InputValue(key=key, value=value)
                    for key, value in element.inputs.items()
                ],
                delay=element.delay_ms,
            )
            for index, element in enumerate(self.input_sequence or [], start=1)
        ]
        if self.expected_outputs:
            expectations = [
                Expectation(key=key, expected=value)
                for key, value in self.expected_outputs.items()
            ]
            if steps:
                steps[-1].expectations = expectations
            else:
                steps.append(Step(name="Check outputs", expectations=expectations))
        return self.model_copy(update={"steps": steps})


class ScenarioDocument(_Document):
    """Top-level scenario file: ``{"scenarios": [...]}``."""

    scenarios: list[Scenario] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ExpectationResult(_Document):
    key: str
    field: str | None = None
    expected: Any = None
    actual: Any = None
    success: bool = False
    details: str | None = None
    timed_out: bool = False


class StepResult(_Document):
    name: str
    success: bool = True
    duration_ms: float = 0.0
    error_message: str | None = None
    expectation_results: list[ExpectationResult] = Field(default_factory=list)


class ScenarioResult(_Document):
    name: str
    success: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: float = 0.0
    error_message: str | None = None
    step_results: list[StepResult] = Field(default_factory=list)


class ResultsDocument(_Document):
    """Top-level results file: ``{"results": [...]}``."""

    results: list[ScenarioResult] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
