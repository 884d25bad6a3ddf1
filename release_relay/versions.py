"""Version derivation for packages that don't carry a version yet.

The rule is a deliberately simple major auto-bump: take the latest GitHub
release name (or "0.0.0" when there is none) and increment its first
character. It is not semver aware, so "10.0.0" becomes "20.0.0". Versions
already committed to a manifest are never recomputed.
"""

from __future__ import annotations

import semver

from .errors import VersionError
from .logging import get_logger

log = get_logger("versions")

SEED_VERSION = "0.0.0"


def seed_version(latest_release: str | None) -> str:
    """Return the version to bump from: the release name, or "0.0.0"."""
    return latest_release or SEED_VERSION


def bump_leading_digit(version_str: str) -> str:
    """Increment the first character of a version string.

    Examples:
        "1.2.3" → "2.2.3"
        "0.0.0" → "1.0.0"
        "9.1.0" → "10.1.0"
        "10.0.0" → "20.0.0"

    Raises:
        VersionError: If the string is empty or starts with a non-digit
            (e.g. "v1.2.3").
    """
    head = version_str[:1]
    if not (head.isascii() and head.isdigit()):
        raise VersionError(
            f"Cannot bump version {version_str!r}: it does not start with a digit",
            hint="Name GitHub releases like 1.2.3, without a prefix.",
        )
    return f"{int(head) + 1}{version_str[1:]}"


def derive_version(existing_version: str | None, latest_release: str | None) -> str:
    """Pick the version for a package.

    Args:
        existing_version: Version from a manifest already on disk. Returned
            verbatim when present.
        latest_release: Name of the latest GitHub release, if any.
    """
    if existing_version:
        return existing_version

    version = bump_leading_digit(seed_version(latest_release))
    if not semver.Version.is_valid(version):
        log.warning("Derived version %s is not valid semver", version)
    return version
