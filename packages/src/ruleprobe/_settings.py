"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Nested models use ``__`` as the delimiter in env var names,
e.g. ``RULEPROBE_STORE__HOST=redis.local``.

The schema covers the three infrastructure concerns of a test run:

* **Store** — connection to the shared key-value store the engine
  under test reads inputs from and writes outputs to.
* **Runner** — engine cycle timing used to derive default expectation
  timeouts, polling cadence, and the output-clearing pattern.
* **Logging** — level, format, optional file sink, rotation.

All durations are in **milliseconds** unless the field name says
otherwise, matching the units used in scenario documents.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

# -------------------------------------------------------------------
# Sub-models (plain BaseModel, nested into Settings by composition)
# -------------------------------------------------------------------


class StoreSettings(BaseModel):
    """Key-value store connection configuration.

    Environment variables (with ``__`` nesting)::

        RULEPROBE_STORE__HOST=redis.local
        RULEPROBE_STORE__PORT=6379
        RULEPROBE_STORE__DB=0
        RULEPROBE_STORE__PASSWORD=secret
    """

    host: str = Field(
        default="localhost",
        description="Store hostname or IP address.",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=6379,
        description="Store port.",
    )
    db: Annotated[int, Field(ge=0)] = Field(
        default=0,
        description="Logical database index.",
    )
    password: SecretStr | None = Field(
        default=None,
        description="Store authentication password (optional).",
    )
    ssl: bool = Field(
        default=False,
        description="Connect over TLS.",
    )
    connect_timeout: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description="Seconds to wait for the initial connection.",
    )


class RunnerSettings(BaseModel):
    """Timing configuration for scenario execution.

    When an expectation does not pin its own ``timeout_ms``, the runner
    injects ``3 * cycle_time_ms + timeout_buffer_ms`` so that at least
    three engine processing cycles fit inside the polling window.
    """

    cycle_time_ms: Annotated[int, Field(gt=0)] = Field(
        default=100,
        description="Rule-processing cycle time of the engine under test.",
    )
    timeout_buffer_ms: Annotated[int, Field(ge=0)] = Field(
        default=200,
        description="Extra slack added to the derived default timeout.",
    )
    polling_interval_ms: Annotated[int, Field(gt=0)] = Field(
        default=100,
        description="Polling interval for expectations that omit one.",
    )
    clear_outputs_pattern: str = Field(
        default="output:*",
        description="Glob pattern deleted before scenarios with clearOutputs.",
    )

    @property
    def default_timeout_ms(self) -> int:
        """Timeout injected into expectations that do not set one."""
        return 3 * self.cycle_time_ms + self.timeout_buffer_ms


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` (default) — structured JSON lines for log aggregators.
      Context tags passed through ``extra=`` appear under ``context``.
    - ``"text"`` — human-readable timestamped format for terminals.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description=(
            "Log output format. "
            "'json' emits structured JSON lines; "
            "'text' emits human-readable timestamped lines."
        ),
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description=(
            "Maximum log file size in megabytes before rotation. "
            "Only applies when ``file`` is set."
        ),
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for ruleprobe.

    Loaded from ``RULEPROBE_``-prefixed environment variables with the
    nested delimiter ``__`` and an optional ``.env`` file in the working
    directory.

    Example ``.env``::

        RULEPROBE_STORE__HOST=redis.local
        RULEPROBE_STORE__PORT=6379
        RULEPROBE_RUNNER__CYCLE_TIME_MS=250
        RULEPROBE_LOGGING__LEVEL=DEBUG
        RULEPROBE_LOGGING__FORMAT=text
    """

    model_config = SettingsConfigDict(
        env_prefix="RULEPROBE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    store: StoreSettings = Field(
        default_factory=StoreSettings,
        description="Key-value store connection settings.",
    )
    runner: RunnerSettings = Field(
        default_factory=RunnerSettings,
        description="Scenario execution timing.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
