"""Repository discovery and path filtering for workspace scans."""

import fnmatch
import os
from collections.abc import Callable, Iterable
from pathlib import Path, PurePosixPath

ExcludePredicate = Callable[[str], bool]

ROOT_MARKERS = (".git", ".refcounter")


class RepositoryNotFoundError(Exception):
    """Raised when no repository root can be found above a directory."""


def find_repository_root(start: Path | None = None) -> Path:
    """Find the repository root by walking up from a directory.

    A directory is a root if it contains a .git entry or a .refcounter
    configuration file.

    Args:
        start: Directory to start from. Defaults to the current directory.

    Returns:
        Absolute path of the repository root.

    Raises:
        RepositoryNotFoundError: If no parent directory holds a root marker.
    """
    current = (start or Path.cwd()).resolve()

    for directory in (current, *current.parents):
        if any((directory / marker).exists() for marker in ROOT_MARKERS):
            return directory

    raise RepositoryNotFoundError(
        f"No repository found at or above {current} (looked for {', '.join(ROOT_MARKERS)})"
    )


def _normalize_pattern(pattern: str) -> str:
    # "**/node_modules/**" and "node_modules" mean the same segment match
    normalized = pattern.strip().replace("\\", "/")
    while normalized.startswith("**/"):
        normalized = normalized[3:]
    while normalized.endswith("/**"):
        normalized = normalized[:-3]
    return normalized.strip("/")


def make_exclude_predicate(patterns: Iterable[str]) -> ExcludePredicate:
    """Build a path predicate from exclude patterns.

    A path is excluded when any of its segments (or any run of consecutive
    segments, for patterns containing "/") matches a pattern. Wildcards
    follow fnmatch rules.

    Args:
        patterns: Exclude patterns such as "node_modules" or "**/dist/**".

    Returns:
        Function taking a path string and returning True if it is excluded.
    """
    normalized = [p for p in (_normalize_pattern(p) for p in patterns) if p]

    def is_excluded(path: str) -> bool:
        if not normalized:
            return False
        parts = [part for part in path.replace("\\", "/").split("/") if part]
        for pattern in normalized:
            width = pattern.count("/") + 1
            for i in range(len(parts) - width + 1):
                if fnmatch.fnmatchcase("/".join(parts[i:i + width]), pattern):
                    return True
        return False

    return is_excluded


def is_supported_file(path: str, extensions: Iterable[str]) -> bool:
    """Check whether a path has one of the allowed extensions."""
    suffix = PurePosixPath(path.replace("\\", "/")).suffix.lstrip(".").lower()
    return bool(suffix) and suffix in {ext.lstrip(".").lower() for ext in extensions}


def get_relative_path(path: Path, root: Path) -> str:
    """Return path relative to root as a POSIX string."""
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def find_source_files(
    root: Path,
    extensions: Iterable[str],
    exclude: ExcludePredicate | None = None,
) -> list[str]:
    """Enumerate supported source files under root.

    Excluded directories are pruned during the walk so large trees such as
    node_modules are never descended into.

    Args:
        root: Repository root.
        extensions: Allowed file extensions without the leading dot.
        exclude: Optional predicate over relative paths.

    Returns:
        Sorted list of workspace-relative POSIX paths.
    """
    extensions = list(extensions)
    files = []

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        kept = []
        for dirname in dirnames:
            rel = f"{rel_dir}/{dirname}" if rel_dir else dirname
            if exclude is not None and exclude(rel):
                continue
            kept.append(dirname)
        dirnames[:] = kept

        for filename in filenames:
            rel = f"{rel_dir}/{filename}" if rel_dir else filename
            if not is_supported_file(rel, extensions):
                continue
            if exclude is not None and exclude(rel):
                continue
            files.append(rel)

    return sorted(files)
