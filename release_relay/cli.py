"""CLI entry point for release-relay."""

from __future__ import annotations

import os
from pathlib import Path

import click

from .config import load_config
from .context import ContextResolver
from .dotnet import write_nuspecs
from .errors import ReleaseError
from .logging import configure_logging, get_logger, log_error
from .pipeline import discover_projects, resolve_workspace, run_release

log = get_logger("cli")

workspace_option = click.option(
    "--workspace",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Repository checkout. Defaults to $GITHUB_WORKSPACE or the current directory.",
)
verbose_option = click.option("-v", "--verbose", is_flag=True, help="Log debug output.")


@click.group()
@click.version_option(package_name="release-relay")
def cli() -> None:
    """Build, version and publish NuGet and npm packages from CI."""


@cli.command()
@workspace_option
@verbose_option
@click.option(
    "--parallel",
    is_flag=True,
    help="Release .NET solutions and Node.js packages concurrently.",
)
def release(workspace: Path | None, verbose: bool, parallel: bool) -> None:
    """Run the release pipeline (usually called from CI)."""
    configure_logging(verbose=verbose)
    try:
        report = run_release(workspace=workspace, parallel=parallel)
    except ReleaseError as exc:
        log_error(log, "release failed", exc)
        raise click.ClickException(exc.pretty()) from exc

    if not report.ok:
        names = ", ".join(p.name for p in report.failed_projects)
        raise click.ClickException(f"Release failed for: {names}")


@cli.command()
@workspace_option
@verbose_option
def discover(workspace: Path | None, verbose: bool) -> None:
    """List the solutions, projects and packages a release would publish."""
    configure_logging(verbose=verbose)
    root = resolve_workspace(workspace, os.environ)
    try:
        discover_projects(root, load_config(root))
    except ReleaseError as exc:
        log_error(log, "discover failed", exc)
        raise click.ClickException(exc.pretty()) from exc


@cli.command()
@workspace_option
@verbose_option
def nuspec(workspace: Path | None, verbose: bool) -> None:
    """Generate or refresh nuspec files without building or pushing."""
    configure_logging(verbose=verbose)
    root = resolve_workspace(workspace, os.environ)
    try:
        config = load_config(root)
        written = write_nuspecs(root, config, ContextResolver(config))
    except ReleaseError as exc:
        log_error(log, "nuspec generation failed", exc)
        raise click.ClickException(exc.pretty()) from exc

    click.echo(f"✓ Wrote {len(written)} nuspec file(s)")

