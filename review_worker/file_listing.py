"""List candidate source files for coverage collection."""

import fnmatch
from collections.abc import Sequence
from pathlib import Path


def list_source_files(
    root: Path, extensions: Sequence[str], exclude: Sequence[str] = ()
) -> Sequence[str]:
    """List files below `root` with one of the given extensions.

    Args:
        root: Directory to search
        extensions: Suffixes to keep (e.g., [".php", ".inc"])
        exclude: Glob patterns matched against the relative path

    Returns:
        Relative POSIX paths sorted alphabetically, so every shard sees the
        same ordering

    """
    suffixes = {ext if ext.startswith(".") else f".{ext}" for ext in extensions}
    paths: list[str] = []

    for path in root.rglob("*"):
        if not path.is_file() or path.suffix not in suffixes:
            continue
        relative = path.relative_to(root).as_posix()
        if any(fnmatch.fnmatch(relative, pattern) for pattern in exclude):
            continue
        paths.append(relative)

    return sorted(paths)
