"""
plugin-detective CLI.

Usage:
    plugin-detective check [PATH] [OPTIONS]
    plugin-detective monitor [PATH] [--duration SECONDS]
    plugin-detective doctor [PATH]
"""
import asyncio
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, List, Optional

import typer

from . import __version__
from .config import DetectiveConfig
from .constants import LOCK_FILE, SUPPORTED_PLATFORMS
from .detective import Detective, validate_project
from .errors import ProjectValidationError
from .models import Issue
from .reporting import (
    SEVERITY_EMOJI,
    exit_code_for,
    render_console,
    render_json,
    render_markdown,
    write_json_report,
    write_markdown_report,
)
from .utils import run_command

app = typer.Typer(
    name="plugin-detective",
    help="Find the causes of MissingPluginException in a Flutter project",
    add_completion=False,
)


class OutputFormat(str, Enum):
    console = "console"
    json = "json"
    markdown = "markdown"


PathArgument = Annotated[
    Path,
    typer.Argument(help="Path to the Flutter project (defaults to current directory)"),
]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", help="Enable verbose output and debug logging")
]
LogDirOption = Annotated[
    Optional[Path],
    typer.Option("--log-dir", help="Read Flutter logs from this directory instead of the default"),
]


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _split_values(values: Optional[List[str]]) -> List[str]:
    """Flatten repeated and comma-separated option values."""
    items: List[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"plugin-detective {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show the version and exit",
        ),
    ] = False,
) -> None:
    """Flutter plugin diagnostics."""


@app.command()
def check(
    path: PathArgument = Path("."),
    output: Annotated[
        OutputFormat, typer.Option("--output", "-o", help="Output format")
    ] = OutputFormat.console,
    fix: Annotated[
        bool, typer.Option("--fix/--no-fix", help="Show resolution guides for detected issues")
    ] = True,
    platforms: Annotated[
        Optional[List[str]],
        typer.Option("--platforms", "-p", help="Platforms to check (repeatable or comma-separated)"),
    ] = None,
    exclude: Annotated[
        Optional[List[str]],
        typer.Option("--exclude", "-e", help="Plugins to exclude from analysis"),
    ] = None,
    performance: Annotated[
        bool, typer.Option("--performance", help="Faster but less thorough log scanning")
    ] = False,
    verbose: VerboseOption = False,
    output_dir: Annotated[
        Optional[Path],
        typer.Option("--output-dir", help="Also write JSON and Markdown reports here"),
    ] = None,
    log_dir: LogDirOption = None,
) -> None:
    """Run a diagnostic scan and print the findings."""
    configure_logging(verbose)
    selected = _split_values(platforms) or list(SUPPORTED_PLATFORMS)
    excluded = _split_values(exclude)
    try:
        config = DetectiveConfig(
            include_platforms=selected,
            exclude_plugins=excluded,
            performance_mode=performance,
            verbose_logging=verbose,
            log_directory=log_dir,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--platforms") from exc

    if verbose and output is OutputFormat.console:
        typer.echo("🔍 Starting plugin diagnostic scan...")
        typer.echo(f"Project path: {path}")
        typer.echo(f"Platforms: {', '.join(selected)}")
        if excluded:
            typer.echo(f"Excluded plugins: {', '.join(excluded)}")

    result = Detective(config).diagnose(path, include_resolutions=fix)

    if output is OutputFormat.json:
        typer.echo(render_json(result))
    elif output is OutputFormat.markdown:
        typer.echo(render_markdown(result, show_fix=fix), nl=False)
    else:
        typer.echo(render_console(result, show_fix=fix, verbose=verbose), nl=False)

    if output_dir is not None:
        json_path = write_json_report(output_dir, result)
        md_path = write_markdown_report(output_dir, result, show_fix=fix)
        typer.echo(f"Wrote {json_path}", err=True)
        typer.echo(f"Wrote {md_path}", err=True)

    raise typer.Exit(code=exit_code_for(result))


@app.command()
def monitor(
    path: PathArgument = Path("."),
    duration: Annotated[
        int,
        typer.Option("--duration", "-d", min=0, help="Seconds to monitor (0 = until Ctrl+C)"),
    ] = 0,
    verbose: VerboseOption = False,
    log_dir: LogDirOption = None,
) -> None:
    """Watch Flutter's logs and print plugin failures as they appear."""
    configure_logging(verbose)
    typer.echo("🔍 Starting runtime monitoring...")
    typer.echo(f"Project path: {path}")
    if duration > 0:
        typer.echo(f"Duration: {duration}s")
    else:
        typer.echo("Duration: Indefinite (press Ctrl+C to stop)")

    detective = Detective(DetectiveConfig(verbose_logging=verbose, log_directory=log_dir))
    try:
        asyncio.run(_monitor(detective, duration, verbose))
    except KeyboardInterrupt:
        typer.echo("Monitoring stopped")
        return
    typer.echo("✅ Monitoring completed")


async def _monitor(detective: Detective, duration: int, verbose: bool) -> None:
    broadcaster = detective.monitor_runtime()
    subscription = broadcaster.subscribe(duration=duration or None)
    follower = None
    if not broadcaster.closed:
        follower = asyncio.ensure_future(detective.runtime_detector.follow_logs())
    try:
        async for issue in subscription:
            typer.echo(_format_live_issue(issue, verbose))
    finally:
        if follower is not None:
            follower.cancel()
            await asyncio.gather(follower, return_exceptions=True)
        subscription.cancel()


def _format_live_issue(issue: Issue, verbose: bool) -> str:
    lines = [
        f"[{datetime.now().isoformat()}] {SEVERITY_EMOJI[issue.severity]} {issue.plugin_name}",
        f"  {issue.description}",
    ]
    if verbose and issue.affected_platforms:
        lines.append(f"  Platforms: {', '.join(issue.affected_platforms)}")
    return "\n".join(lines) + "\n"


@app.command()
def doctor(
    path: PathArgument = Path("."),
    verbose: VerboseOption = False,
    log_dir: LogDirOption = None,
) -> None:
    """Check the Flutter installation and the project's plugin setup."""
    configure_logging(verbose)
    typer.echo("🏥 Running Flutter Plugin Doctor...")
    typer.echo(f"Project path: {path}")

    flutter_ok = run_command(["flutter", "--version"]) is not None
    _print_check(
        "Flutter Installation",
        flutter_ok,
        "Flutter is installed and accessible" if flutter_ok else "Flutter not found in PATH",
    )

    try:
        validate_project(path)
        project_ok, project_message = True, "Valid Flutter project"
    except (ProjectValidationError, OSError) as exc:
        project_ok, project_message = False, str(exc)
    _print_check("Project Structure", project_ok, project_message)

    deps_ok = (path / LOCK_FILE).is_file()
    _print_check(
        "Dependencies",
        deps_ok,
        "Dependencies resolved" if deps_ok else f'{LOCK_FILE} missing, run "flutter pub get"',
    )

    result = Detective(DetectiveConfig(log_directory=log_dir)).diagnose(path)
    plugins_ok = not result.issues
    _print_check(
        "Plugin Configuration",
        plugins_ok,
        "All plugins properly configured" if plugins_ok else f"{len(result.issues)} issues found",
    )
    if verbose and not plugins_ok:
        typer.echo("\n📋 Issues Summary:")
        for issue in result.issues:
            typer.echo(f"  • {issue.plugin_name}: {issue.description}")

    healthy = flutter_ok and project_ok and deps_ok and plugins_ok
    typer.echo(
        f"\n{'✅' if healthy else '❌'} Overall Status: {'Healthy' if healthy else 'Issues Found'}"
    )
    raise typer.Exit(code=0 if healthy else 1)


def _print_check(name: str, success: bool, message: str) -> None:
    typer.echo(f"{'✅' if success else '❌'} {name}: {message}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
