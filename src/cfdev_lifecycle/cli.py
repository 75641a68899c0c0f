"""Command-line interface for cfdev-lifecycle.

Usage:
    cfdev-lifecycle run                       # Full lifecycle (start → stop)
    cfdev-lifecycle run --image deps.dev      # Start from a custom image
    cfdev-lifecycle reap                      # Kill leftover hyperkit/linuxkit/vpnkit
    cfdev-lifecycle scan -p hyperkit          # List matching processes
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import NoReturn

import click

from cfdev_lifecycle import __version__
from cfdev_lifecycle._logging import configure_logging
from cfdev_lifecycle.config import EnvironmentConfig
from cfdev_lifecycle.exceptions import LifecycleError, ProcessLeakError, ProcessTableUnavailableError
from cfdev_lifecycle.harness import LifecycleHarness
from cfdev_lifecycle.models import ProcessRecord, ScenarioResult
from cfdev_lifecycle.platform_utils import supports_environment
from cfdev_lifecycle.process_table import ProcessScanner
from cfdev_lifecycle.reaper import ProcessReaper
from cfdev_lifecycle.scenarios import custom_image_scenario, reference_scenario
from cfdev_lifecycle.settings import Settings

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_LEAK = 1
EXIT_TIMEOUT = 124  # Matches `timeout` command
EXIT_HARNESS_ERROR = 125


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern."""
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def format_leak(records: list[ProcessRecord]) -> str:
    return format_error(
        "Leaked processes",
        "\n  ".join(f"{r.pid}: {r.command_line}" for r in records),
        [
            "Check whether another cf dev environment is running",
            "Processes owned by another user cannot be killed without sudo",
        ],
    )


def format_result_json(result: ScenarioResult) -> str:
    return json.dumps(result.model_dump(mode="json"), indent=2)


def format_result_text(result: ScenarioResult) -> str:
    lines = [f"  ✓ {p.name} ({p.elapsed:.1f}s)" for p in result.phases]
    if result.completed:
        lines.append(click.style(f"✓ {result.scenario} completed in {result.elapsed:.1f}s", fg="green"))
    else:
        lines.append(click.style(f"✗ {result.failed_phase}: {result.reason}", fg="red"))
    return "\n".join(lines)


def exit_code_for(result: ScenarioResult) -> int:
    if result.completed:
        return EXIT_SUCCESS
    return EXIT_TIMEOUT if result.phase_timeout is not None else EXIT_HARNESS_ERROR


async def run_scenario(config: EnvironmentConfig, image: Path | None, json_output: bool) -> int:
    """Run the reference (or custom-image) scenario inside the reaper bracket.

    Returns:
        Exit code to return from CLI
    """
    scenario = custom_image_scenario(config, image) if image else reference_scenario(config)
    try:
        async with LifecycleHarness(config) as harness:
            result = await harness.run(scenario)
    except ProcessLeakError as e:
        click.echo(format_leak(e.records), err=True)
        return EXIT_LEAK
    except LifecycleError as e:
        click.echo(format_error("Lifecycle error", e.message), err=True)
        return EXIT_HARNESS_ERROR

    click.echo(format_result_json(result) if json_output else format_result_text(result))
    return exit_code_for(result)


async def reap_processes(patterns: tuple[str, ...], config: EnvironmentConfig) -> int:
    try:
        result = await ProcessReaper(verify_policy=config.reap_verify_policy()).reap(patterns)
    except LifecycleError as e:
        click.echo(format_error("Reap failed", e.message), err=True)
        return EXIT_HARNESS_ERROR

    for record in result.killed:
        click.echo(f"killed {record.pid}: {record.command_line}")
    if not result.clean:
        click.echo(format_leak(result.survivors), err=True)
        return EXIT_LEAK
    return EXIT_SUCCESS


async def scan_processes(patterns: tuple[str, ...]) -> list[ProcessRecord]:
    return await ProcessScanner().scan(patterns)


def _config(home: Path | None) -> EnvironmentConfig:
    settings = Settings()
    if home is not None:
        settings = settings.model_copy(update={"home": home})
    return EnvironmentConfig.from_settings(settings)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.version_option(__version__, "-V", "--version", prog_name="cfdev-lifecycle")
def main(verbose: bool, quiet: bool) -> None:
    """Verify the start → ready → stop lifecycle of a cf dev environment."""
    configure_logging(level="DEBUG" if verbose else "INFO", quiet=quiet)


@main.command()
@click.option(
    "--image",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Custom environment image passed to `start -f`",
)
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    help="Environment home (default: $CFDEV_HOME or ~/.cfdev)",
)
@click.option("--json", "json_output", is_flag=True, help="Output result as JSON")
def run(image: Path | None, home: Path | None, json_output: bool) -> NoReturn:
    """Start the environment, wait for every phase, stop it, reap leftovers."""
    if not supports_environment():
        click.echo(
            click.style("Warning: hyperkit environments only run on macOS", fg="yellow"),
            err=True,
        )
    config = _config(home)
    sys.exit(asyncio.run(run_scenario(config, image, json_output)))


@main.command()
@click.option(
    "-p",
    "--pattern",
    "patterns",
    multiple=True,
    help="Command-line substring (repeatable; default: component processes)",
)
def reap(patterns: tuple[str, ...]) -> NoReturn:
    """SIGKILL matching processes and verify none remain."""
    config = _config(None)
    sys.exit(asyncio.run(reap_processes(patterns or config.process_patterns, config)))


@main.command()
@click.option("-p", "--pattern", "patterns", multiple=True, help="Command-line substring (repeatable)")
def scan(patterns: tuple[str, ...]) -> NoReturn:
    """List processes whose command line matches."""
    patterns = patterns or _config(None).process_patterns
    try:
        records = asyncio.run(scan_processes(patterns))
    except ProcessTableUnavailableError as e:
        click.echo(format_error("Process table unavailable", e.message), err=True)
        sys.exit(EXIT_HARNESS_ERROR)
    for record in records:
        click.echo(f"{record.pid}\t{record.command_line}")
    sys.exit(EXIT_SUCCESS)


if __name__ == "__main__":
    main()
