"""ruleprobe.

Generate test scenarios from declarative rule definitions and run them
against a rule engine through its shared key-value store.
"""

from importlib.metadata import PackageNotFoundError, version

from ruleprobe._adapter import ResolvedKey, StoreAdapter, determine_key_format
from ruleprobe._cases import TestCase, TestCaseGenerator
from ruleprobe._clock import ClockPort, SystemClock
from ruleprobe._compare import (
    compare_booleans,
    compare_numbers,
    compare_strings,
    compare_values,
    get_validator_type,
)
from ruleprobe._conditions import ConditionAnalyzer, normalize_value
from ruleprobe._errors import (
    ErrorThrottle,
    ExpressionError,
    RuleLoadError,
    RuleprobeError,
    StoreError,
)
from ruleprobe._expressions import ExpressionEvaluator
from ruleprobe._loader import load_rules, load_rules_from_file, load_rules_from_files
from ruleprobe._logging import JsonFormatter, configure_logging
from ruleprobe._model import (
    Action,
    ComparisonCondition,
    Condition,
    ConditionGroup,
    ExpressionCondition,
    RuleDefinition,
    SendMessageAction,
    SetValueAction,
    ThresholdOverTimeCondition,
    ValueTarget,
)
from ruleprobe._rules import Dependency, RuleAnalysis, RuleAnalyzer
from ruleprobe._runner import BatchResult, Runner
from ruleprobe._scenario import (
    Expectation,
    ExpectationResult,
    InputValue,
    ResultsDocument,
    Scenario,
    ScenarioDocument,
    ScenarioResult,
    SequenceInput,
    Step,
    StepResult,
)
from ruleprobe._scenarios import ScenarioGenerator
from ruleprobe._settings import LoggingSettings, RunnerSettings, Settings, StoreSettings
from ruleprobe._store import MemoryStore, RedisStore, StorePort, open_redis_store
from ruleprobe._values import ValueGenerator

try:
    # Prefer the generated version file (setuptools_scm at build time)
    from ruleprobe._version import __version__
except ImportError:
    try:
        # Fallback to installed package metadata
        __version__ = version("ruleprobe")
    except PackageNotFoundError:
        # Last resort fallback for editable installs without metadata
        __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Rule model
    "Action",
    "ComparisonCondition",
    "Condition",
    "ConditionGroup",
    "ExpressionCondition",
    "RuleDefinition",
    "SendMessageAction",
    "SetValueAction",
    "ThresholdOverTimeCondition",
    "ValueTarget",
    # Loading
    "load_rules",
    "load_rules_from_file",
    "load_rules_from_files",
    # Analysis
    "ConditionAnalyzer",
    "Dependency",
    "RuleAnalysis",
    "RuleAnalyzer",
    "normalize_value",
    # Generation
    "ExpressionEvaluator",
    "ScenarioGenerator",
    "TestCase",
    "TestCaseGenerator",
    "ValueGenerator",
    # Documents
    "Expectation",
    "ExpectationResult",
    "InputValue",
    "ResultsDocument",
    "Scenario",
    "ScenarioDocument",
    "ScenarioResult",
    "SequenceInput",
    "Step",
    "StepResult",
    # Execution
    "BatchResult",
    "ResolvedKey",
    "Runner",
    "StoreAdapter",
    "determine_key_format",
    # Comparison
    "compare_booleans",
    "compare_numbers",
    "compare_strings",
    "compare_values",
    "get_validator_type",
    # Store
    "MemoryStore",
    "RedisStore",
    "StorePort",
    "open_redis_store",
    # Clock
    "ClockPort",
    "SystemClock",
    # Errors
    "ErrorThrottle",
    "ExpressionError",
    "RuleLoadError",
    "RuleprobeError",
    "StoreError",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # Settings
    "LoggingSettings",
    "RunnerSettings",
    "Settings",
    "StoreSettings",
]
