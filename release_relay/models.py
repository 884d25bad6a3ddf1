"""Data models for release-relay.

These Pydantic models represent the core data structures used throughout
the release pipeline: the projects found in the workspace, the GitHub
repository they belong to, the nuspec metadata written for them, and the
report produced after publishing.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class PackageReference(BaseModel):
    """A (name, version) dependency declared by a project."""

    name: str
    version: str


class DotNetProject(BaseModel):
    """A .NET project referenced from a solution file.

    Attributes:
        name: Project name, unique within its solution.
        directory_path: Directory holding the project file.
        manifest_file_path: Path of the nuspec; may not exist yet.
        primary_file_path: The .csproj recognized by the dotnet CLI.
        package_references: PackageReference items, in csproj order.
        is_test_project: Test projects are built and tested, never packed.
    """

    name: str
    directory_path: Path
    manifest_file_path: Path
    primary_file_path: Path
    package_references: list[PackageReference] = Field(default_factory=list)
    is_test_project: bool = False


class NodePackage(BaseModel):
    """A Node.js package rooted at a package.json file.

    Attributes:
        name: The "name" field of package.json.
        version: The "version" field, or None when the file has none.
        directory_path: Directory holding package.json.
        manifest_file_path: The package.json itself.
        has_build_command: True when scripts.build is declared.
        has_test_command: True when scripts.test is declared.
        is_private: True for "private": true packages, which npm won't publish.
    """

    name: str
    version: str | None = None
    directory_path: Path
    manifest_file_path: Path
    has_build_command: bool = False
    has_test_command: bool = False
    is_private: bool = False


class RepositoryContext(BaseModel):
    """Read-only snapshot of the GitHub repository being released."""

    repository: str
    workspace: Path
    owner_name: str | None = None
    owner_login: str
    repo_topics: list[str] | None = None
    repo_license_url: str | None = None
    repo_git_url: str
    repo_html_url: str
    repo_description: str | None = None
    latest_release_name: str | None = None
    token: str

    @property
    def owner_display(self) -> str:
        """Author string used in generated manifests."""
        if self.owner_name:
            return f"{self.owner_name} ({self.owner_login})"
        return self.owner_login


class PublishTarget(BaseModel):
    """One registry to push to, plus the credentials to do it."""

    name: str
    registry_url: str
    username: str
    auth_token: str = Field(repr=False)


class RepositoryLink(BaseModel):
    type: str = "git"
    url: str
    branch: str | None = None
    commit: str | None = None


class PackageFile(BaseModel):
    src: str
    target: str


class NuspecDependency(BaseModel):
    id: str
    version: str


class DependencyGroup(BaseModel):
    """Dependencies, optionally scoped to a target framework."""

    target_framework: str | None = None
    dependencies: list[NuspecDependency] = Field(default_factory=list)


class NuspecMetadata(BaseModel):
    """The <metadata> section of a nuspec file.

    Every field is optional so that a model parsed from an existing file
    records exactly which elements that file defines (``model_fields_set``).
    Metadata children without a field here are kept verbatim in
    ``extra_elements`` as serialized XML.
    """

    id: str | None = None
    version: str | None = None
    authors: str | None = None
    owners: str | None = None
    readme: str | None = None
    license_url: str | None = None
    repository: RepositoryLink | None = None
    project_url: str | None = None
    require_license_acceptance: bool | None = None
    description: str | None = None
    release_notes: str | None = None
    copyright: str | None = None
    tags: list[str] | None = None
    files: list[PackageFile] | None = None
    dependencies: list[DependencyGroup] | None = None
    extra_elements: list[str] = Field(default_factory=list)


class ProjectState(str, Enum):
    DISCOVERED = "discovered"
    BUILT = "built"
    PACKED = "packed"
    DONE = "done"


class PushOutcome(BaseModel):
    """Result of pushing one project to one target."""

    target: str
    succeeded: bool
    error: str | None = None


class ProjectReport(BaseModel):
    """Where a project got to in the pipeline and how its pushes went.

    error is set when the project's own build, test, version or pack step
    failed; error_type names the exception class.
    """

    name: str
    ecosystem: str
    version: str | None = None
    state: ProjectState = ProjectState.DISCOVERED
    pushes: list[PushOutcome] = Field(default_factory=list)
    skipped_reason: str | None = None
    error: str | None = None
    error_type: str | None = None


class BatchReport(BaseModel):
    """All project reports for one run."""

    projects: list[ProjectReport] = Field(default_factory=list)

    def extend(self, other: BatchReport) -> None:
        self.projects.extend(other.projects)

    @property
    def failed_pushes(self) -> list[tuple[str, PushOutcome]]:
        return [
            (project.name, push)
            for project in self.projects
            for push in project.pushes
            if not push.succeeded
        ]

    @property
    def failed_projects(self) -> list[ProjectReport]:
        return [project for project in self.projects if project.error is not None]

    @property
    def ok(self) -> bool:
        """False when any project failed. Failed pushes don't count."""
        return not self.failed_projects
