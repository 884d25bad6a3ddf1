"""Configuration loading.

Settings live in an optional [tool.release-relay] table of the workspace's
pyproject.toml, or at the top level of a standalone release-relay.toml.
Both are read with tomlkit so the same parser handles either file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError

CONFIG_FILE = "release-relay.toml"
TOOL_KEY = "release-relay"


class RelayConfig(BaseModel):
    """Settings for one release run.

    Attributes:
        dotnet: Release .NET solutions.
        nodejs: Release Node.js packages.
        solution_glob: Pattern locating solution files.
        package_glob: Pattern locating package.json files.
        exclude: Globs excluded from package.json discovery.
        github_token_env: Variable(s) holding the GitHub token, first match wins.
        nuget_token_env: Variable holding the nuget.org API key.
        npm_token_env: Variable holding the npmjs auth token.
        nuget_source_name: Source key written into nuget.config.
    """

    model_config = ConfigDict(extra="forbid")

    dotnet: bool = True
    nodejs: bool = True
    solution_glob: str = "**/*.sln"
    package_glob: str = "**/package.json"
    exclude: list[str] = Field(default_factory=lambda: ["**/node_modules/**"])
    github_token_env: list[str] = Field(
        default_factory=lambda: ["GITHUB_TOKEN", "INPUT_GITHUBTOKEN"]
    )
    nuget_token_env: str = "NUGET_TOKEN"
    npm_token_env: str = "NPM_TOKEN"
    nuget_source_name: str = "CustomFeed"


def load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a TOML file."""
    return tomlkit.parse(path.read_text())


def get_tool_table(doc: tomlkit.TOMLDocument) -> dict[str, Any]:
    """Extract the [tool.release-relay] table, or {} when absent."""
    return doc.get("tool", {}).get(TOOL_KEY, {})


def load_config(workspace: Path) -> RelayConfig:
    """Read settings for the workspace, falling back to defaults.

    release-relay.toml takes precedence over pyproject.toml when both exist.

    Raises:
        ConfigError: If the file can't be parsed or holds unknown keys.
    """
    standalone = workspace / CONFIG_FILE
    pyproject = workspace / "pyproject.toml"

    if standalone.exists():
        source = standalone
        raw = _parse(standalone)
    elif pyproject.exists():
        source = pyproject
        raw = get_tool_table(_parse(pyproject))
    else:
        return RelayConfig()

    try:
        # unwrap() turns tomlkit containers into plain Python values
        return RelayConfig.model_validate(_unwrap(raw))
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid release-relay settings in {source}", hint=str(exc)
        ) from exc


def _parse(path: Path) -> tomlkit.TOMLDocument:
    try:
        return load_toml(path)
    except TOMLKitError as exc:
        raise ConfigError(f"Could not parse {path}: {exc}") from exc


def _unwrap(value: Any) -> Any:
    if hasattr(value, "unwrap"):
        return value.unwrap()
    return dict(value)
