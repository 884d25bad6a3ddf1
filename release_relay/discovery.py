"""Locate manifest files in the workspace.

Globbing is a thin wrapper; the interesting part is dedupe_roots(), which
reduces a flat list of manifests to the top-level projects that should be
published on their own.
"""

from __future__ import annotations

import glob
from fnmatch import fnmatch
from pathlib import Path, PurePath

from .logging import get_logger, log_debug

log = get_logger("discovery")


def glob_search(
    workspace: Path, pattern: str, ignore: list[str] | None = None
) -> list[str]:
    """Find files under workspace matching pattern.

    Args:
        workspace: Directory to search from.
        pattern: Recursive glob relative to workspace (e.g. "**/*.sln").
        ignore: Globs, relative to workspace, whose matches are dropped.

    Returns:
        Sorted absolute paths.
    """
    log_debug(log, "begin-glob", pattern, ignore or [])

    root = workspace.resolve()
    matches: list[str] = []
    for match in glob.glob(str(root / pattern), recursive=True):
        relative = Path(match).relative_to(root).as_posix()
        if any(_ignored(relative, rule) for rule in ignore or []):
            continue
        matches.append(match)

    matches.sort()
    log_debug(log, "end-glob", matches)
    return matches


def _ignored(relative: str, rule: str) -> bool:
    # "**/x/**" should also match "x/..." at the workspace root
    if fnmatch(relative, rule):
        return True
    return rule.startswith("**/") and fnmatch(relative, rule[3:])


def dedupe_roots(paths: list[str]) -> list[str]:
    """Reduce manifest paths to independently publishable roots.

    A manifest is dropped when another candidate's directory is a strict
    ancestor of its own directory; nested packages are assumed to be
    consumed by the outer build. The comparison is per path segment, so
    /a/pkg2/package.json is not nested under /a/pkg/package.json.
    Duplicates collapse to a single entry.

    Returns:
        The surviving paths, deepest first.

    Example:
        ["/a/pkg/package.json", "/a/pkg/sub/package.json", "/b/package.json"]
        → ["/a/pkg/package.json", "/b/package.json"]
    """
    unique = sorted(set(paths), key=lambda p: (-len(p), p))
    directories = {p: PurePath(p).parent for p in unique}

    roots: list[str] = []
    for candidate in unique:
        own_dir = directories[candidate]
        nested = any(
            other_dir != own_dir and own_dir.is_relative_to(other_dir)
            for other, other_dir in directories.items()
            if other != candidate
        )
        if not nested:
            roots.append(candidate)
    return roots
