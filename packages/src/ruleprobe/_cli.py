"""Command-line interface (Typer-based).

Provides :func:`build_cli`, which constructs a Typer app with two
commands:

- ``generate`` loads YAML rule files and writes a scenario document.
- ``run`` executes a scenario document against the store and writes a
  results document.

Global options (``--version``, ``--log-level``, ``--log-format``,
``--env-file``) are parsed by the callback, which builds
:class:`~ruleprobe._settings.Settings` and configures logging before
either command runs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Annotated, get_args

import typer
from pydantic import ValidationError

from ruleprobe._adapter import StoreAdapter
from ruleprobe._errors import RuleLoadError
from ruleprobe._loader import load_rules_from_files
from ruleprobe._logging import configure_logging
from ruleprobe._runner import BatchResult, Runner
from ruleprobe._scenario import Scenario, ScenarioDocument
from ruleprobe._scenarios import ScenarioGenerator
from ruleprobe._settings import LoggingSettings, Settings, StoreSettings
from ruleprobe._store import StorePort, open_redis_store

logger = logging.getLogger(__name__)

SERVICE_NAME = "ruleprobe"

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_TEST_FAILURE = 1
EXIT_RUNTIME_ERROR = 3

# ---------------------------------------------------------------------------
# Allowed values (extracted from LoggingSettings Literal types)
# ---------------------------------------------------------------------------

_VALID_LOG_LEVELS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["level"].annotation,
)
_VALID_LOG_FORMATS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["format"].annotation,
)

type StoreFactory = Callable[[StoreSettings], AbstractAsyncContextManager[StorePort]]


async def _run_scenarios(
    scenarios: list[Scenario],
    settings: Settings,
    store_factory: StoreFactory,
) -> BatchResult:
    async with store_factory(settings.store) as store:
        runner = Runner(StoreAdapter(store), settings=settings.runner)
        return await runner.run_batch(scenarios)


def build_cli(
    *,
    settings_class: type[Settings] = Settings,
    store_factory: StoreFactory = open_redis_store,
) -> typer.Typer:
    """Construct the ``ruleprobe`` Typer app.

    Args:
        settings_class: Settings model instantiated by the callback.
            Tests pass an isolated subclass.
        store_factory: Async context manager factory yielding a
            connected store for ``run``.

    Returns:
        A configured :class:`typer.Typer` ready to invoke.
    """
    from ruleprobe import __version__  # noqa: PLC0415

    cli = typer.Typer(
        help=f"{SERVICE_NAME} v{__version__}: generate and run rule-engine test scenarios",
        no_args_is_help=True,
    )

    # -- global options -----------------------------------------------------

    @cli.callback(invoke_without_command=True)
    def main(
        ctx: typer.Context,
        version_flag: Annotated[
            bool | None,
            typer.Option(
                "--version",
                is_eager=True,
                help="Show version and exit.",
            ),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option("--log-level", help="Override log level."),
        ] = None,
        log_format: Annotated[
            str | None,
            typer.Option("--log-format", help="Override log format."),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="Path to .env file."),
        ] = ".env",
    ) -> None:
        if version_flag:
            typer.echo(f"{SERVICE_NAME} v{__version__}")
            raise typer.Exit()

        if ctx.invoked_subcommand is None:
            typer.echo(ctx.get_help())
            raise typer.Exit()

        if log_level is not None and log_level.upper() not in _VALID_LOG_LEVELS:
            raise typer.BadParameter(
                f"Invalid log level '{log_level}'. "
                f"Choose from: {', '.join(_VALID_LOG_LEVELS)}",
                param_hint="'--log-level'",
            )

        if log_format is not None and log_format.lower() not in _VALID_LOG_FORMATS:
            raise typer.BadParameter(
                f"Invalid log format '{log_format}'. "
                f"Choose from: {', '.join(_VALID_LOG_FORMATS)}",
                param_hint="'--log-format'",
            )

        try:
            settings = settings_class(_env_file=env_file)  # type: ignore[call-arg]
        except ValidationError as exc:
            typer.echo(f"Configuration error: {exc}", err=True)
            raise typer.Exit(EXIT_CONFIG_ERROR) from exc

        if log_level is not None:
            settings.logging = settings.logging.model_copy(
                update={"level": log_level.upper()},
            )
        if log_format is not None:
            settings.logging = settings.logging.model_copy(
                update={"format": log_format.lower()},
            )

        configure_logging(settings.logging, service=SERVICE_NAME, version=__version__)
        ctx.obj = settings

    # -- generate -----------------------------------------------------------

    @cli.command()
    def generate(
        rules: Annotated[
            list[Path],
            typer.Argument(
                help="YAML rule files; the first bad file aborts the run.",
                exists=True,
                dir_okay=False,
            ),
        ],
        output: Annotated[
            Path,
            typer.Option("--output", "-o", help="Scenario document to write."),
        ] = Path("scenarios.json"),
    ) -> None:
        """Generate test scenarios from rule files.

        Loading stops at the first rule file that fails.  Nothing is
        written in that case, even if earlier files loaded cleanly.
        """
        try:
            definitions = load_rules_from_files(rules)
        except RuleLoadError as exc:
            typer.echo(f"Rule error: {exc}", err=True)
            raise typer.Exit(EXIT_CONFIG_ERROR) from exc

        if not definitions:
            typer.echo("No rules found", err=True)
            raise typer.Exit(EXIT_CONFIG_ERROR)

        scenarios = ScenarioGenerator().generate_scenarios(definitions)
        output.write_text(ScenarioDocument(scenarios=scenarios).to_json(), encoding="utf-8")
        typer.echo(
            f"Generated {len(scenarios)} scenarios from {len(definitions)} rules: {output}",
        )

    # -- run ----------------------------------------------------------------

    @cli.command()
    def run(
        ctx: typer.Context,
        scenarios: Annotated[
            Path,
            typer.Option("--scenarios", "-s", help="Scenario document to run."),
        ],
        output: Annotated[
            Path | None,
            typer.Option("--output", "-o", help="Results document to write."),
        ] = None,
        verbose: Annotated[
            bool,
            typer.Option("--verbose", "-v", help="List every failed expectation."),
        ] = False,
    ) -> None:
        """Run scenarios against the store."""
        settings: Settings = ctx.obj
        try:
            document = ScenarioDocument.model_validate_json(
                scenarios.read_text(encoding="utf-8"),
            )
        except (OSError, ValidationError) as exc:
            typer.echo(f"Cannot read scenarios: {exc}", err=True)
            raise typer.Exit(EXIT_CONFIG_ERROR) from exc

        if not document.scenarios:
            typer.echo("No scenarios found", err=True)
            raise typer.Exit(EXIT_CONFIG_ERROR)

        try:
            batch = asyncio.run(
                _run_scenarios(document.scenarios, settings, store_factory),
            )
        except Exception as exc:
            logger.error("Runtime error: %s", exc)
            typer.echo(f"Runtime error: {exc}", err=True)
            raise typer.Exit(EXIT_RUNTIME_ERROR) from exc

        if output is not None:
            output.write_text(batch.to_document().to_json(), encoding="utf-8")

        typer.echo(batch.summary())
        if not batch.success:
            typer.echo(batch.failure_report(verbose=verbose))
            raise typer.Exit(EXIT_TEST_FAILURE)

    return cli


def main() -> None:
    """Console-script entry point."""
    build_cli()()
