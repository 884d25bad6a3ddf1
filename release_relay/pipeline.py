"""Release pipeline: discover → version → manifest → pack → publish.

This module orchestrates a release-relay run:
1. Load settings and prepare the (lazily fetched) GitHub repository context
2. Release every .NET solution: build, test, pack, push
3. Release every top-level Node.js package: version, build, test, publish
4. Print a summary of what was pushed where

The two ecosystems touch disjoint directories, so with parallel=True they
run on separate threads. Push failures and per-project build, test, pack
or manifest failures are recorded in the report and don't stop the run;
configuration and repository context errors raise.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path

from .config import RelayConfig, load_config
from .context import ContextResolver
from .discovery import dedupe_roots, glob_search
from .dotnet import handle_dotnet, parse_solution
from .logging import get_logger, log_info
from .models import BatchReport, DotNetProject
from .nodejs import handle_nodejs
from .shell import step

log = get_logger("pipeline")


def resolve_workspace(workspace: Path | str | None, environ: Mapping[str, str]) -> Path:
    """Explicit workspace, else $GITHUB_WORKSPACE, else the current directory."""
    return Path(workspace or environ.get("GITHUB_WORKSPACE") or Path.cwd())


def discover_projects(
    workspace: Path, config: RelayConfig
) -> tuple[dict[str, list[DotNetProject]], list[str]]:
    """List what a release would touch, without building anything.

    Returns:
        Tuple of (solution path → projects, Node.js package.json roots).
    """
    step("Discovering projects")

    solutions: dict[str, list[DotNetProject]] = {}
    if config.dotnet:
        seen_dirs: set[Path] = set()
        for solution_file in glob_search(workspace, config.solution_glob):
            solutions[solution_file] = parse_solution(Path(solution_file), seen_dirs)

    packages: list[str] = []
    if config.nodejs:
        packages = dedupe_roots(
            glob_search(workspace, config.package_glob, config.exclude)
        )

    for solution_file, projects in solutions.items():
        print(f"  {solution_file}")
        for project in projects:
            kind = " (test)" if project.is_test_project else ""
            print(f"    {project.name}{kind}")
    for package_file in packages:
        print(f"  {package_file}")

    log_info(log, "projects found", len(solutions), len(packages))
    return solutions, packages


def print_summary(report: BatchReport) -> None:
    """Print one line per project and one per push."""
    step("Summary")

    if not report.projects:
        print("  Nothing to release.")
        return

    for project in report.projects:
        version = f" {project.version}" if project.version else ""
        reason = f" ({project.skipped_reason})" if project.skipped_reason else ""
        print(f"  {project.name}{version} [{project.ecosystem}] {project.state.value}{reason}")
        if project.error:
            print(f"    ✗ {project.error_type}: {project.error}")
        for push in project.pushes:
            mark = "✓" if push.succeeded else "✗"
            detail = f": {push.error}" if push.error else ""
            print(f"    {mark} {push.target}{detail}")

    failed = report.failed_pushes
    if failed:
        print(f"\n  {len(failed)} push(es) failed; see the errors above.")
    if report.failed_projects:
        print(f"\n  {len(report.failed_projects)} project(s) failed.")


def run_release(
    *,
    workspace: Path | str | None = None,
    parallel: bool = False,
    environ: Mapping[str, str] | None = None,
) -> BatchReport:
    """Execute the full release pipeline.

    Args:
        workspace: Repository checkout to release. Defaults to
            $GITHUB_WORKSPACE, then the current directory.
        parallel: Run the .NET and Node.js batches concurrently.
        environ: Environment to read tokens from; defaults to os.environ.

    Returns:
        The batch report. Push failures and failed projects are recorded
        there; report.ok is False when any project failed.

    Raises:
        ConfigError: On bad settings or missing credentials.
        ContextError: If the repository context can't be fetched.
        ManifestError: If a solution references an unreadable csproj.
    """
    env = os.environ if environ is None else environ
    root = resolve_workspace(workspace, env)
    config = load_config(root)
    resolver = ContextResolver(config, env)

    jobs: list[Callable[[], BatchReport]] = []
    if config.dotnet:
        jobs.append(partial(handle_dotnet, root, config, resolver, env))
    if config.nodejs:
        jobs.append(partial(handle_nodejs, root, config, resolver, env))

    report = BatchReport()
    if parallel and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=len(jobs)) as pool:
            futures = [pool.submit(job) for job in jobs]
            for future in futures:
                report.extend(future.result())
    else:
        for job in jobs:
            report.extend(job())

    print_summary(report)
    print(f"\n{'=' * 60}\nDone!\n{'=' * 60}")
    return report
