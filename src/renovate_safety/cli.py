"""Command-line interface for renovate-safety."""

from __future__ import annotations

import asyncio
from contextlib import nullcontext
from pathlib import Path
from typing import Annotated

import typer
from pydantic import TypeAdapter
from rich.console import Console
from rich.table import Table

from renovate_safety import __version__
from renovate_safety.changelog import ChangelogCache
from renovate_safety.config import CONFIG_FILENAMES, RenovateSafetyConfig, generate_example_config, load_config
from renovate_safety.core.models import (
    ChangeSeverity,
    Ecosystem,
    PackageAnalysis,
    PackageUpdate,
    RiskLevel,
)
from renovate_safety.engine import run_analysis
from renovate_safety.errors import MalformedInputError, RenovateSafetyError, UnsupportedEcosystemError
from renovate_safety.extraction import filter_by_token_limit
from renovate_safety.git import GitHubPullRequestProvider, parse_pull_request
from renovate_safety.utils.logging import LogContext, configure_logging, get_logger

app = typer.Typer(
    name="renovate-safety",
    help="Estimate how risky a dependency update is for the project that consumes it.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
stderr_console = Console(stderr=True)
logger = get_logger(__name__)

RISK_STYLES = {
    RiskLevel.SAFE: "green",
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
    RiskLevel.UNKNOWN: "dim",
}

SEVERITY_STYLES = {
    ChangeSeverity.BREAKING: "red",
    ChangeSeverity.REMOVAL: "magenta",
    ChangeSeverity.WARNING: "yellow",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"renovate-safety version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """renovate-safety - Know what an update breaks before you merge it."""
    log_level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    configure_logging(level=log_level)

    ctx.obj = {"config_path": config}
    if config:
        logger.debug("Using configuration file: %s", config)


def _handle_cli_error(error: Exception) -> None:
    """Handle exceptions and display user-friendly error messages.

    Args:
        error: The exception to handle.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    if isinstance(error, RenovateSafetyError):
        stderr_console.print(f"[bold red]Error:[/bold red] {error.message}")
        if error.hint:
            stderr_console.print(f"[yellow]Hint:[/yellow] {error.hint}")
    else:
        stderr_console.print(f"[red]Error: {error}[/red]")
        logger.exception("Command failed")

    raise typer.Exit(code=1)


def _config_path(ctx: typer.Context) -> Path | None:
    return (ctx.obj or {}).get("config_path")


def _parse_ecosystem(value: str | None) -> Ecosystem | None:
    if value is None:
        return None
    try:
        return Ecosystem(value.lower())
    except ValueError:
        raise UnsupportedEcosystemError(value) from None


def _updates_from_pr(config: RenovateSafetyConfig, repo: str, pr_number: int) -> list[PackageUpdate]:
    provider = GitHubPullRequestProvider(config.github)
    metadata = asyncio.run(provider.get_pull_request(repo, pr_number))
    updates = parse_pull_request(metadata.title, metadata.body, metadata.head_ref)
    if not updates:
        raise MalformedInputError(
            f"No package update found in {repo}#{pr_number}: {metadata.title!r}",
            "Use --package, --from and --to to name the update explicitly.",
        )
    logger.info("Parsed %d update(s) from %s#%d", len(updates), repo, pr_number)
    return updates


def _render_analyses(analyses: list[PackageAnalysis], token_limit: int) -> None:
    table = Table(title="Dependency Update Risk")
    table.add_column("Package", style="cyan")
    table.add_column("Update")
    table.add_column("Ecosystem")
    table.add_column("Risk")
    table.add_column("Evidence")
    table.add_column("Breaking", justify="right")
    table.add_column("Usages", justify="right")

    for analysis in analyses:
        update = analysis.update
        versions = f"{update.from_version} → {update.to_version}"
        if analysis.risk is None:
            table.add_row(update.name, versions, "-", "[red]error[/red]", "-", "-", "-")
            continue
        level = analysis.risk.level
        usages = str(analysis.usage.total_usage_count) if analysis.usage else "-"
        table.add_row(
            update.name,
            versions,
            analysis.ecosystem.value if analysis.ecosystem else "-",
            f"[{RISK_STYLES[level]}]{level.value}[/{RISK_STYLES[level]}]",
            analysis.evidence_status.value,
            str(len(analysis.breaking_changes)),
            usages,
        )

    console.print(table)

    for analysis in analyses:
        console.print(f"\n[bold]{analysis.update}[/bold]")
        if analysis.error:
            console.print(f"  [red]Error:[/red] {analysis.error}")
            continue
        if analysis.risk is not None:
            for factor in analysis.risk.factors:
                console.print(f"  • {factor}")
            console.print(
                f"  Effort: {analysis.risk.estimated_effort.value}, "
                f"testing: {analysis.risk.testing_scope.value}, "
                f"confidence: {analysis.risk.confidence:.2f}"
            )

        shown = filter_by_token_limit(analysis.breaking_changes, token_limit)
        for change in shown:
            style = SEVERITY_STYLES[change.severity]
            console.print(f"  [{style}]{change.severity.value}[/{style}] {change.text}")
        hidden = len(analysis.breaking_changes) - len(shown)
        if hidden > 0:
            console.print(f"  [dim]... {hidden} more breaking change(s) not shown[/dim]")

        if analysis.usage and analysis.usage.critical_paths:
            console.print(f"  Critical paths: {', '.join(analysis.usage.critical_paths)}")


@app.command()
def analyze(
    ctx: typer.Context,
    package: Annotated[
        str | None,
        typer.Option(
            "--package",
            help="Name of the updated package.",
        ),
    ] = None,
    from_version: Annotated[
        str | None,
        typer.Option(
            "--from",
            help="Currently installed version.",
        ),
    ] = None,
    to_version: Annotated[
        str | None,
        typer.Option(
            "--to",
            help="Proposed version.",
        ),
    ] = None,
    pr: Annotated[
        int | None,
        typer.Option(
            "--pr",
            help="Pull request number to read the update from.",
        ),
    ] = None,
    repo: Annotated[
        str | None,
        typer.Option(
            "--repo",
            help="Repository of the pull request (owner/name).",
        ),
    ] = None,
    project: Annotated[
        Path,
        typer.Option(
            "--project",
            "-p",
            help="Project directory to scan for usage.",
            exists=True,
            file_okay=False,
            dir_okay=True,
        ),
    ] = Path("."),
    ecosystem: Annotated[
        str | None,
        typer.Option(
            "--ecosystem",
            "-e",
            help="Ecosystem to assume (npm or pypi) instead of detecting it.",
        ),
    ] = None,
    output_json: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Write the analyses as JSON to stdout.",
        ),
    ] = False,
    no_cache: Annotated[
        bool,
        typer.Option(
            "--no-cache",
            help="Neither read nor write the changelog cache.",
        ),
    ] = False,
    concurrency: Annotated[
        int | None,
        typer.Option(
            "--concurrency",
            min=1,
            max=32,
            help="Maximum number of concurrent evidence-gathering branches.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging for this command.",
        ),
    ] = False,
) -> None:
    """Analyze the risk of a dependency update.

    Name the update with [bold]--package/--from/--to[/bold], or point at a
    Renovate or Dependabot pull request with [bold]--pr/--repo[/bold].
    """
    if package is not None:
        if not from_version or not to_version:
            raise typer.BadParameter("--package needs both --from and --to.")
    elif pr is not None:
        if not repo:
            raise typer.BadParameter("--pr needs --repo owner/name.")
    else:
        raise typer.BadParameter("Pass --package with --from and --to, or --pr with --repo.")

    with LogContext(get_logger("renovate_safety"), "DEBUG") if verbose else nullcontext():
        try:
            ecosystem_hint = _parse_ecosystem(ecosystem)
            config = load_config(_config_path(ctx))
            if no_cache:
                config.analysis.use_cache = False
            if concurrency is not None:
                config.analysis.concurrency = concurrency

            if package is not None:
                updates = [PackageUpdate(name=package, from_version=from_version, to_version=to_version)]
            else:
                updates = _updates_from_pr(config, repo, pr)

            analyses = asyncio.run(
                run_analysis(updates, project.resolve(), config=config, ecosystem_hint=ecosystem_hint)
            )

            if output_json:
                payload = TypeAdapter(list[PackageAnalysis]).dump_json(analyses, indent=2)
                typer.echo(payload.decode("utf-8"))
            else:
                _render_analyses(analyses, config.analysis.token_limit)

        except typer.Exit:
            raise
        except Exception as e:
            _handle_cli_error(e)


@app.command()
def init(
    path: Annotated[
        Path,
        typer.Option(
            "--path",
            help="Where to write the configuration file.",
        ),
    ] = Path(CONFIG_FILENAMES[0]),
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing configuration.",
        ),
    ] = False,
) -> None:
    """Write an example configuration file."""
    if path.exists() and not force:
        stderr_console.print(f"[bold red]Error:[/bold red] {path} already exists")
        stderr_console.print("[yellow]Hint:[/yellow] Use --force to overwrite.")
        raise typer.Exit(code=1)

    try:
        path.write_text(generate_example_config(), encoding="utf-8")
    except OSError as e:
        _handle_cli_error(e)

    console.print(f"[green]Created configuration file:[/green] {path}")


@app.command("clear-cache")
def clear_cache(
    ctx: typer.Context,
    expired_only: Annotated[
        bool,
        typer.Option(
            "--expired",
            help="Only remove entries older than the configured TTL.",
        ),
    ] = False,
) -> None:
    """Remove cached changelogs."""
    try:
        config = load_config(_config_path(ctx))
        ttl_hours = config.analysis.cache_ttl_hours
        cache = ChangelogCache(
            config.analysis.cache_dir,
            ttl_seconds=ttl_hours * 3600 if ttl_hours else None,
        )
        removed = cache.clear_expired() if expired_only else cache.clear_all()
    except typer.Exit:
        raise
    except Exception as e:
        _handle_cli_error(e)

    console.print(f"Removed {removed} cache entr{'y' if removed == 1 else 'ies'} from {cache.cache_dir}")


@app.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"renovate-safety version {__version__}")


if __name__ == "__main__":
    app()
