"""Shared test fixtures."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from release_relay.models import DotNetProject, PackageReference, RepositoryContext

LIBRARY_CSPROJ = """\
<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <TargetFramework>net8.0</TargetFramework>
  </PropertyGroup>
  <ItemGroup>
    <PackageReference Include="Newtonsoft.Json" Version="13.0.3" />
    <PackageReference Include="Serilog">
      <Version>3.1.1</Version>
    </PackageReference>
  </ItemGroup>
</Project>
"""

TEST_CSPROJ = """\
<Project Sdk="Microsoft.NET.Sdk">
  <ItemGroup>
    <PackageReference Include="Microsoft.NET.Test.Sdk" Version="17.8.0" />
    <PackageReference Include="xunit" Version="2.6.2" />
  </ItemGroup>
</Project>
"""

SOLUTION = """\
Microsoft Visual Studio Solution File, Format Version 12.00
Project("{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}") = "Foo", "src\\Foo\\Foo.csproj", "{11111111-1111-1111-1111-111111111111}"
EndProject
Project("{2150E333-8FDC-42A3-9474-1A3956D46DE8}") = "Solution Items", "Solution Items", "{22222222-2222-2222-2222-222222222222}"
EndProject
Project("{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}") = "Foo.Tests", "tests\\Foo.Tests\\Foo.Tests.csproj", "{33333333-3333-3333-3333-333333333333}"
EndProject
"""


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo configure_logging() so caplog sees records in every test."""
    yield
    logger = logging.getLogger("release_relay")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def repo_context(tmp_path: Path) -> RepositoryContext:
    """A repository with topics, a license and no releases."""
    return RepositoryContext(
        repository="octo/widgets",
        workspace=tmp_path,
        owner_name="Octo Cat",
        owner_login="octo",
        repo_topics=["a", "b"],
        repo_license_url="https://api.github.com/licenses/mit",
        repo_git_url="git://github.com/octo/widgets.git",
        repo_html_url="https://github.com/octo/widgets",
        repo_description=None,
        latest_release_name=None,
        token="gh-token",
    )


@pytest.fixture
def dotnet_project(tmp_path: Path) -> DotNetProject:
    """A library project directory without a nuspec."""
    directory = tmp_path / "Foo"
    directory.mkdir()
    csproj = directory / "Foo.csproj"
    csproj.write_text(LIBRARY_CSPROJ)
    return DotNetProject(
        name="Foo",
        directory_path=directory,
        manifest_file_path=directory / "Foo.nuspec",
        primary_file_path=csproj,
        package_references=[
            PackageReference(name="Newtonsoft.Json", version="13.0.3"),
        ],
    )


@pytest.fixture
def solution_workspace(tmp_path: Path) -> Path:
    """A workspace with one solution holding a library and a test project."""
    (tmp_path / "src" / "Foo").mkdir(parents=True)
    (tmp_path / "src" / "Foo" / "Foo.csproj").write_text(LIBRARY_CSPROJ)
    (tmp_path / "tests" / "Foo.Tests").mkdir(parents=True)
    (tmp_path / "tests" / "Foo.Tests" / "Foo.Tests.csproj").write_text(TEST_CSPROJ)
    (tmp_path / "Foo.sln").write_text(SOLUTION)
    return tmp_path
