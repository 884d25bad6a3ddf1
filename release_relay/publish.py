"""Publishing: registries, credential files, and the failure policy.

Two categories of failure are caught instead of aborting the run:

- A failed push is recorded against its target, and the next target or
  project still runs.
- A failed build, test, version or pack step ends that project only. The
  project is reported with its error and the batch moves on; the run
  exits non-zero at the end.

Configuration and repository context errors still propagate.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Callable, Mapping
from pathlib import Path

from .config import RelayConfig
from .errors import ConfigError, ManifestError, ProcessError, ReleaseError, VersionError
from .logging import get_logger, log_debug, log_error, log_info
from .models import ProjectReport, PublishTarget, PushOutcome, RepositoryContext

log = get_logger("publish")

# Failures caught at the push call site.
ISOLATED_FAILURES: tuple[type[Exception], ...] = (ProcessError, OSError)

# Failures that end one project's pipeline without stopping the batch.
PROJECT_FAILURES: tuple[type[Exception], ...] = (ProcessError, ManifestError, VersionError)

NUGET_ORG = "https://api.nuget.org/v3/index.json"
NPMJS = "https://registry.npmjs.org/"
GITHUB_NPM = "https://npm.pkg.github.com/"


def require_token(variable: str, environ: Mapping[str, str]) -> str:
    """Return the token stored in an environment variable.

    Raises:
        ConfigError: If the variable is unset or empty.
    """
    token = environ.get(variable)
    if not token:
        raise ConfigError(
            f"Could not find registry token in ${variable}.",
            hint=f"Set {variable} in the workflow environment.",
        )
    return token


def nuget_targets(
    context: RepositoryContext, config: RelayConfig, environ: Mapping[str, str]
) -> list[PublishTarget]:
    """GitHub Packages first, then nuget.org.

    Raises:
        ConfigError: If the nuget.org token is missing.
    """
    nuget_token = require_token(config.nuget_token_env, environ)
    return [
        PublishTarget(
            name="github",
            registry_url=f"https://nuget.pkg.github.com/{context.owner_login}/index.json",
            username=context.owner_login,
            auth_token=context.token,
        ),
        PublishTarget(
            name="nuget.org",
            registry_url=NUGET_ORG,
            username=context.owner_login,
            auth_token=nuget_token,
        ),
    ]


def npm_targets(
    context: RepositoryContext, config: RelayConfig, environ: Mapping[str, str]
) -> list[PublishTarget]:
    """npmjs first, then GitHub Packages.

    Raises:
        ConfigError: If the npmjs token is missing.
    """
    npm_token = require_token(config.npm_token_env, environ)
    return [
        PublishTarget(
            name="npmjs",
            registry_url=NPMJS,
            username=context.owner_login,
            auth_token=npm_token,
        ),
        PublishTarget(
            name="github",
            registry_url=GITHUB_NPM,
            username=context.owner_login,
            auth_token=context.token,
        ),
    ]


def write_nuget_config(directory: Path, target: PublishTarget, source_name: str) -> Path:
    """Write a nuget.config granting one source the target's credentials.

    The file is left in place after the push.
    """
    configuration = ET.Element("configuration")
    config = ET.SubElement(configuration, "config")
    ET.SubElement(config, "add", {"key": "DefaultPushSource", "value": source_name})
    sources = ET.SubElement(configuration, "packageSources")
    ET.SubElement(sources, "add", {"key": source_name, "value": target.registry_url})
    credentials = ET.SubElement(configuration, "packageSourceCredentials")
    source = ET.SubElement(credentials, source_name)
    ET.SubElement(source, "add", {"key": "Username", "value": target.username})
    ET.SubElement(source, "add", {"key": "ClearTextPassword", "value": target.auth_token})
    ET.indent(configuration)

    path = directory / "nuget.config"
    log_debug(log, "writing nuget.config", str(path), target.name, target.registry_url)
    path.write_text(
        '<?xml version="1.0" encoding="utf-8"?>\n'
        + ET.tostring(configuration, encoding="unicode")
        + "\n",
        encoding="utf-8",
    )
    return path


def write_npmrc(directory: Path, target: PublishTarget, scope: str | None) -> Path:
    """Write a project-level .npmrc pointing at the target registry.

    Scoped packages map their scope to the registry; unscoped packages
    change the default registry instead.
    """
    host = target.registry_url.split("://", 1)[-1]
    lines = [f"//{host}:_authToken={target.auth_token}"]
    if scope:
        lines.append(f"{scope}:registry={target.registry_url}")
    else:
        lines.append(f"registry={target.registry_url}")

    path = directory / ".npmrc"
    log_debug(log, "writing .npmrc", str(path), target.name, target.registry_url)
    path.write_text("\n".join(lines) + "\n")
    return path


def push_to_targets(
    project_name: str,
    targets: list[PublishTarget],
    push: Callable[[PublishTarget], None],
) -> list[PushOutcome]:
    """Push one project to each target, isolating failures per target.

    Args:
        project_name: Used for logging only.
        targets: Registries, in push order.
        push: Performs the push for one target; raises on failure.

    Returns:
        One PushOutcome per target, in order.
    """
    outcomes: list[PushOutcome] = []
    for target in targets:
        log_debug(log, "publishing package", project_name, target.name)
        try:
            push(target)
        except ISOLATED_FAILURES as exc:
            log_error(log, "push failed", project_name, target.name, exc)
            outcomes.append(
                PushOutcome(target=target.name, succeeded=False, error=str(exc))
            )
            continue
        log_info(log, "pushed", project_name, target.name)
        outcomes.append(PushOutcome(target=target.name, succeeded=True))
    return outcomes


def record_failure(report: ProjectReport, exc: ReleaseError) -> ProjectReport:
    """Mark a project as failed at its current state and log the details."""
    log_error(log, "project failed", report.name, report.state.value, exc)
    report.error = exc.pretty()
    report.error_type = type(exc).__name__
    return report
