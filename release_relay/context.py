"""GitHub repository context.

The context (owner, repository metadata, latest release, token) is fetched
once per run through the gh CLI and shared by everything that needs it.
ContextResolver guarantees a single fetch even when the .NET and Node.js
batches ask for it at the same time from different threads.
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import RelayConfig
from .errors import ConfigError, ContextError, ProcessError
from .logging import get_logger, log_debug
from .models import RepositoryContext
from .shell import gh

log = get_logger("context")


def read_github_token(config: RelayConfig, environ: Mapping[str, str]) -> str:
    """Return the first non-empty token among the configured variables.

    Raises:
        ConfigError: If none of them is set.
    """
    for name in config.github_token_env:
        token = environ.get(name)
        if token:
            log_debug(log, "got token with length", len(token), name)
            return token
    raise ConfigError(
        "No GitHub token provided.",
        hint=f"Set one of {', '.join(config.github_token_env)}.",
    )


def _gh_json(path: str, token: str, *, required: bool = True) -> dict[str, Any] | None:
    try:
        output = gh("api", path, token=token, check=required)
    except ProcessError as exc:
        raise ContextError(f"GitHub API request failed: {path}") from exc
    if not output:
        if required:
            raise ContextError(f"GitHub API returned nothing for {path}")
        return None
    try:
        return json.loads(output)
    except json.JSONDecodeError as exc:
        raise ContextError(f"GitHub API returned invalid JSON for {path}") from exc


def fetch_repository_context(
    config: RelayConfig, environ: Mapping[str, str] | None = None
) -> RepositoryContext:
    """Query GitHub for everything the pipeline needs about this repository.

    Reads GITHUB_REPOSITORY ("owner/name") and GITHUB_WORKSPACE from the
    environment. A repository without releases yields latest_release_name=None.
    """
    env = os.environ if environ is None else environ
    token = read_github_token(config, env)

    repository = env.get("GITHUB_REPOSITORY")
    if not repository or "/" not in repository:
        raise ConfigError(
            "GITHUB_REPOSITORY is not set.", hint="Expected the form owner/name."
        )
    owner, repo = repository.split("/", 1)
    workspace = Path(env.get("GITHUB_WORKSPACE") or Path.cwd())

    user = _gh_json(f"users/{owner}", token)
    repo_data = _gh_json(f"repos/{owner}/{repo}", token)
    release = _gh_json(f"repos/{owner}/{repo}/releases/latest", token, required=False)

    try:
        license_info = repo_data.get("license") or {}
        context = RepositoryContext(
            repository=repository,
            workspace=workspace,
            owner_name=user.get("name"),
            owner_login=user["login"],
            repo_topics=repo_data.get("topics"),
            repo_license_url=license_info.get("url"),
            repo_git_url=repo_data["git_url"],
            repo_html_url=repo_data["html_url"],
            repo_description=repo_data.get("description"),
            latest_release_name=(release or {}).get("name"),
            token=token,
        )
    except (KeyError, AttributeError, ValidationError) as exc:
        raise ContextError(
            f"GitHub API returned unexpected data for {repository}", hint=str(exc)
        ) from exc
    log_debug(log, "resolved repository context", repository, context.latest_release_name)
    return context


class ContextResolver:
    """Resolve the repository context once and hand out the same object.

    The first caller runs the fetch while holding the lock; callers that
    arrive meanwhile block on the lock and then see the stored result. A
    failed fetch is stored too and re-raised to every later caller.
    """

    def __init__(
        self,
        config: RelayConfig,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._environ = environ
        self._lock = threading.Lock()
        self._context: RepositoryContext | None = None
        self._error: Exception | None = None

    def get(self) -> RepositoryContext:
        with self._lock:
            if self._context is None and self._error is None:
                try:
                    self._context = fetch_repository_context(
                        self._config, self._environ
                    )
                except (ConfigError, ContextError) as exc:
                    self._error = exc
            if self._error is not None:
                raise self._error
            return self._context
