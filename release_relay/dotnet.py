""".NET release: solution → projects → build, test, pack, push.

For each solution in the workspace:
1. Parse the projects it references
2. Build and test every test project
3. Build and pack every other project (generating its nuspec)
4. Push each packed project to GitHub Packages and nuget.org

Test gating is per solution: a failing test stops every project of that
solution from being packed. Other solutions still release.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from functools import partial
from pathlib import Path

from .config import RelayConfig
from .context import ContextResolver
from .discovery import glob_search
from .errors import ManifestError
from .logging import get_logger, log_debug, log_info
from .models import (
    BatchReport,
    DotNetProject,
    PackageReference,
    ProjectReport,
    ProjectState,
    PublishTarget,
    RepositoryContext,
)
from .nuspec import generate_nuspec_for_project
from .publish import (
    PROJECT_FAILURES,
    nuget_targets,
    push_to_targets,
    record_failure,
    write_nuget_config,
)
from .shell import run, step

log = get_logger("dotnet")

# Project("{type-guid}") = "Name", "relative\path.csproj", "{project-guid}"
_SLN_PROJECT = re.compile(
    r'^Project\("\{[^}]+\}"\)\s*=\s*"(?P<name>[^"]+)"\s*,\s*"(?P<path>[^"]+)"',
    re.MULTILINE,
)
TEST_SDK = "Microsoft.NET.Test.Sdk"
PACKAGE_EXTENSION = "nupkg"


# ---------------------------------------------------------------------------
# Project discovery
# ---------------------------------------------------------------------------


def parse_solution(
    solution_file: Path, seen_dirs: set[Path] | None = None
) -> list[DotNetProject]:
    """Read the C# projects a solution references.

    Solution folders and non-csproj entries are skipped. A project whose
    directory is already in seen_dirs (listed twice, or claimed by an
    earlier solution sharing the set) is skipped too; seen_dirs is updated
    in place.
    """
    text = solution_file.read_text(encoding="utf-8-sig")
    projects: list[DotNetProject] = []
    if seen_dirs is None:
        seen_dirs = set()

    for match in _SLN_PROJECT.finditer(text):
        relative = match.group("path").replace("\\", "/")
        if not relative.endswith(".csproj"):
            continue
        csproj = (solution_file.parent / relative).resolve()
        if csproj.parent in seen_dirs:
            log.warning("Skipping %s: %s already has a project", csproj, csproj.parent)
            continue
        seen_dirs.add(csproj.parent)
        projects.append(read_project(match.group("name"), csproj))

    return projects


def read_project(name: str, csproj: Path) -> DotNetProject:
    """Build a DotNetProject from a .csproj file.

    Raises:
        ManifestError: If the csproj is not well-formed XML.
    """
    try:
        root = ET.fromstring(csproj.read_bytes())
    except ET.ParseError as exc:
        raise ManifestError(csproj, str(exc)) from exc

    # Old-style csproj files use the msbuild namespace
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]

    references: list[PackageReference] = []
    for ref in root.iter("PackageReference"):
        include = ref.get("Include")
        if not include:
            continue
        version = ref.get("Version") or (ref.findtext("Version") or "").strip()
        references.append(PackageReference(name=include, version=version))

    return DotNetProject(
        name=name,
        directory_path=csproj.parent,
        manifest_file_path=csproj.parent / f"{name}.nuspec",
        primary_file_path=csproj,
        package_references=references,
        is_test_project=_is_test_project(name, root, references),
    )


def _is_test_project(
    name: str, root: ET.Element, references: list[PackageReference]
) -> bool:
    flag = root.findtext(".//IsTestProject")
    if flag is not None:
        return flag.strip().lower() == "true"
    if any(ref.name == TEST_SDK for ref in references):
        return True
    return name.endswith((".Tests", ".Test"))


# ---------------------------------------------------------------------------
# dotnet CLI steps
# ---------------------------------------------------------------------------


def dotnet_build(project: DotNetProject) -> None:
    log_debug(log, "building", str(project.primary_file_path))
    run("dotnet", "build", str(project.primary_file_path), cwd=project.directory_path)


def dotnet_test(project: DotNetProject) -> None:
    log_debug(log, "testing", str(project.primary_file_path))
    run("dotnet", "test", str(project.primary_file_path), cwd=project.directory_path)


def dotnet_pack(project: DotNetProject, context: RepositoryContext) -> str:
    """Generate the nuspec and pack the project into its own directory.

    Returns:
        The version the package was packed with.
    """
    log_debug(log, "packing", str(project.primary_file_path))

    metadata = generate_nuspec_for_project(project, context)
    run(
        "dotnet",
        "pack",
        "--include-symbols",
        "--include-source",
        "--output",
        str(project.directory_path),
        "-p:SymbolPackageFormat=snupkg",
        f"-p:NuspecFile={project.manifest_file_path}",
        f"-p:NuspecBasePath={project.directory_path}",
        cwd=project.directory_path,
    )
    return metadata.version


def package_file(project: DotNetProject, version: str) -> Path:
    """Path of the package dotnet pack produces for a version."""
    return project.directory_path / f"{project.name}.{version}.{PACKAGE_EXTENSION}"


def dotnet_nuget_push(
    project: DotNetProject, version: str, source_name: str, target: PublishTarget
) -> None:
    """Push a packed project to one feed via a project-local nuget.config."""
    write_nuget_config(project.directory_path, target, source_name)
    run(
        "dotnet",
        "nuget",
        "push",
        str(package_file(project, version)),
        "--api-key",
        target.auth_token,
        "--source",
        source_name,
        cwd=project.directory_path,
    )


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def release_solution(
    solution_file: Path,
    config: RelayConfig,
    resolver: ContextResolver,
    environ: Mapping[str, str],
    seen_dirs: set[Path] | None = None,
) -> BatchReport:
    """Build, test, pack and push every project of one solution.

    A project whose build, pack or nuspec fails is reported as failed and
    skipped; the others still go through. If any test project fails, no
    project of the solution is packed.
    """
    projects = parse_solution(solution_file, seen_dirs)
    log_info(log, "publishing projects", str(solution_file), projects)

    report = BatchReport()
    test_projects = [p for p in projects if p.is_test_project]
    packable = [p for p in projects if not p.is_test_project]

    tests_passed = True
    for project in test_projects:
        project_report = ProjectReport(
            name=project.name, ecosystem="dotnet", skipped_reason="test project"
        )
        report.projects.append(project_report)
        try:
            dotnet_build(project)
            project_report.state = ProjectState.BUILT
            dotnet_test(project)
        except PROJECT_FAILURES as exc:
            record_failure(project_report, exc)
            tests_passed = False

    if not tests_passed:
        for project in packable:
            report.projects.append(
                ProjectReport(
                    name=project.name, ecosystem="dotnet", skipped_reason="tests failed"
                )
            )
        return report
    if not packable:
        return report

    context = resolver.get()
    packed: list[tuple[DotNetProject, ProjectReport]] = []
    for project in packable:
        project_report = ProjectReport(name=project.name, ecosystem="dotnet")
        report.projects.append(project_report)
        try:
            dotnet_build(project)
            project_report.state = ProjectState.BUILT
            project_report.version = dotnet_pack(project, context)
        except PROJECT_FAILURES as exc:
            record_failure(project_report, exc)
            continue
        project_report.state = ProjectState.PACKED
        packed.append((project, project_report))

    if not packed:
        return report

    # Missing credentials abort here, before the first push
    targets = nuget_targets(context, config, environ)
    for project, project_report in packed:
        push = partial(
            dotnet_nuget_push, project, project_report.version, config.nuget_source_name
        )
        project_report.pushes = push_to_targets(project.name, targets, push)
        project_report.state = ProjectState.DONE

    return report


def handle_dotnet(
    workspace: Path,
    config: RelayConfig,
    resolver: ContextResolver,
    environ: Mapping[str, str],
) -> BatchReport:
    """Release every solution found in the workspace.

    A project referenced by several solutions is released with the first.
    """
    step("Scanning for .NET solutions")

    solution_files = glob_search(workspace, config.solution_glob)
    log_info(log, "solutions found", solution_files)

    report = BatchReport()
    seen_dirs: set[Path] = set()
    for solution_file in solution_files:
        report.extend(
            release_solution(Path(solution_file), config, resolver, environ, seen_dirs)
        )
    return report


def write_nuspecs(
    workspace: Path, config: RelayConfig, resolver: ContextResolver
) -> list[Path]:
    """Generate nuspec files for all packable projects without building."""
    step("Generating nuspec files")

    written: list[Path] = []
    seen_dirs: set[Path] = set()
    for solution_file in glob_search(workspace, config.solution_glob):
        for project in parse_solution(Path(solution_file), seen_dirs):
            if project.is_test_project:
                continue
            generate_nuspec_for_project(project, resolver.get())
            print(f"  {project.manifest_file_path}")
            written.append(project.manifest_file_path)
    return written
