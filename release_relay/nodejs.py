"""Node.js release: package.json → version, install, build, test, publish.

Nested package.json files below another package are treated as part of
the outer package and are not published on their own.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from functools import partial
from pathlib import Path

from .config import RelayConfig
from .context import ContextResolver
from .discovery import dedupe_roots, glob_search
from .errors import ManifestError
from .logging import get_logger, log_debug, log_info
from .models import BatchReport, NodePackage, ProjectReport, ProjectState, PublishTarget
from .publish import (
    PROJECT_FAILURES,
    npm_targets,
    push_to_targets,
    record_failure,
    write_npmrc,
)
from .shell import run, step
from .versions import derive_version

log = get_logger("nodejs")


def read_package(package_json: Path) -> NodePackage:
    """Parse a package.json into a NodePackage.

    Raises:
        ManifestError: If the file is not valid JSON or has no name.
    """
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ManifestError(package_json, str(exc)) from exc
    if not isinstance(data, dict) or not data.get("name"):
        raise ManifestError(package_json, 'missing "name" field')

    scripts = data.get("scripts") or {}
    return NodePackage(
        name=data["name"],
        version=data.get("version") or None,
        directory_path=package_json.parent,
        manifest_file_path=package_json,
        has_build_command=bool(scripts.get("build")),
        has_test_command=bool(scripts.get("test")),
        is_private=data.get("private") is True,
    )


def package_scope(name: str) -> str | None:
    """Return the "@scope" part of a scoped package name, or None."""
    if name.startswith("@") and "/" in name:
        return name.split("/", 1)[0]
    return None


def npm_command(package: NodePackage, *args: str) -> None:
    log_debug(log, "running command", list(args), package.name)
    run("npm", *args, cwd=package.directory_path)


def npm_publish(package: NodePackage, target: PublishTarget) -> None:
    """Publish to one registry via a project-local .npmrc."""
    write_npmrc(package.directory_path, target, package_scope(package.name))
    npm_command(package, "publish", "--access", "public")


def release_package(
    package: NodePackage,
    version: str,
    targets: list[PublishTarget] | None,
) -> ProjectReport:
    """Stamp the version, install, build, test, then push to each target.

    A failing npm step is recorded on the report and nothing is published.
    """
    report = ProjectReport(name=package.name, ecosystem="nodejs", version=version)

    try:
        npm_command(
            package, "version", version, "--no-git-tag-version", "--allow-same-version"
        )
        npm_command(package, "install")
        if package.has_build_command:
            npm_command(package, "run", "build")
        if package.has_test_command:
            npm_command(package, "run", "test")
    except PROJECT_FAILURES as exc:
        return record_failure(report, exc)
    report.state = ProjectState.BUILT

    if targets is None:
        log_info(log, "skipping publish of private package", package.name)
        report.skipped_reason = "private package"
    else:
        report.pushes = push_to_targets(package.name, targets, partial(npm_publish, package))
    report.state = ProjectState.DONE
    return report


def handle_nodejs(
    workspace: Path,
    config: RelayConfig,
    resolver: ContextResolver,
    environ: Mapping[str, str],
) -> BatchReport:
    """Release every top-level Node.js package in the workspace."""
    step("Scanning for Node.js packages")

    package_files = glob_search(workspace, config.package_glob, config.exclude)
    log_debug(log, "nodejs projects found", package_files)
    package_files = dedupe_roots(package_files)
    log_info(log, "nodejs projects found", package_files)

    report = BatchReport()
    if not package_files:
        return report

    context = resolver.get()
    targets: list[PublishTarget] | None = None
    for package_file in package_files:
        name = package_file
        try:
            package = read_package(Path(package_file))
            name = package.name
            version = derive_version(package.version, context.latest_release_name)
        except PROJECT_FAILURES as exc:
            failed = ProjectReport(name=name, ecosystem="nodejs")
            report.projects.append(record_failure(failed, exc))
            continue
        log_info(log, "publishing project", package_file, package)

        if package.is_private:
            report.projects.append(release_package(package, version, None))
            continue
        # Missing credentials abort here, before the first publish
        if targets is None:
            targets = npm_targets(context, config, environ)
        report.projects.append(release_package(package, version, targets))

    return report
