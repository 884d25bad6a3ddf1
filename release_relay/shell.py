"""Shell and gh utilities.

Provides simple wrappers around subprocess calls for running the external
build, pack and push tools and for querying the GitHub API through the gh
CLI, plus output formatting helpers.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

from .errors import ProcessError
from .logging import get_logger, log_debug

log = get_logger("shell")

# Flags whose following argument is a credential
SECRET_FLAGS = {"--api-key"}


def redact(args: tuple[str, ...] | list[str]) -> list[str]:
    """Copy of a command line with credential arguments masked."""
    masked: list[str] = []
    for i, arg in enumerate(args):
        masked.append("***" if i > 0 and args[i - 1] in SECRET_FLAGS else arg)
    return masked


def run(*args: str, cwd: Path | str | None = None, check: bool = True) -> int:
    """Run an external command, streaming its output to the terminal.

    Args:
        *args: Command and arguments (e.g., "dotnet", "build").
        cwd: Working directory for the command.
        check: If True (default), raise ProcessError on non-zero exit.

    Returns:
        The process exit code.
    """
    log_debug(log, "running", redact(args), str(cwd) if cwd else None)
    result = subprocess.run(args, cwd=cwd)
    if check and result.returncode != 0:
        raise ProcessError(redact(args), result.returncode, cwd)
    return result.returncode


def gh(*args: str, token: str | None = None, check: bool = True) -> str:
    """Run a gh command and return stdout.

    Args:
        *args: Arguments to pass to gh (e.g., "api", "repos/o/r").
        token: Value for GH_TOKEN; falls back to the inherited environment.
        check: If True (default), raise ProcessError on non-zero exit. Set
               to False for lookups that may legitimately fail.

    Returns:
        Stripped stdout, or "" when the command failed and check is False.
    """
    env = dict(os.environ)
    if token:
        env["GH_TOKEN"] = token
    result = subprocess.run(["gh", *args], capture_output=True, text=True, env=env)
    if result.returncode != 0:
        if check:
            raise ProcessError(["gh", *args], result.returncode)
        return ""
    return result.stdout.strip()


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of the release pipeline in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")

