"""Exception types for release-relay.

Every error the pipeline raises on purpose derives from ReleaseError, so the
CLI can turn it into a clean non-zero exit. Push failures are the only
category the pipeline catches on its own (see publish.ISOLATED_FAILURES).
"""

from __future__ import annotations

from pathlib import Path


class ReleaseError(Exception):
    """Base class for expected release failures.

    Attributes:
        message: Human-readable description.
        hint: Optional suggestion for the operator.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class ConfigError(ReleaseError):
    """Missing credentials, environment variables, or invalid settings."""


class ContextError(ReleaseError):
    """Repository metadata could not be fetched from GitHub."""


class VersionError(ReleaseError):
    """A version string cannot be bumped."""


class ManifestError(ReleaseError):
    """A manifest or project file on disk could not be parsed."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"Could not parse {path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class ProcessError(ReleaseError):
    """An external command exited with a non-zero code."""

    def __init__(
        self, command: list[str], returncode: int, cwd: Path | str | None = None
    ) -> None:
        super().__init__(
            f"Process {command[0]} exited with non-zero exit code: {returncode}"
        )
        self.command = command
        self.returncode = returncode
        self.cwd = None if cwd is None else Path(cwd)
