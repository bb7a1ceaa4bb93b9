"""
Path helpers shared by collection, parsing and rewriting.

Lockfile paths are always relative to the working directory and use forward
slashes, so a lockfile generated on one platform can be verified on another.
"""

import os
from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, os.PathLike]


def is_within(path: PathLike, root: Optional[PathLike] = None) -> bool:
    """
    Check that path stays inside root (the working directory by default).

    Prevents traversal like "../../etc/passwd" from escaping the project.

    Args:
        path: Path to check, relative paths are taken from the working directory
        root: Directory the path must stay within

    Returns:
        True if path is root itself or below it
    """
    resolved = Path(path).resolve()
    root_resolved = Path(root if root is not None else os.getcwd()).resolve()
    return resolved == root_resolved or str(resolved).startswith(str(root_resolved) + os.sep)


def validate_path_safety(path: PathLike, root: Optional[PathLike] = None) -> None:
    """
    Ensure path is within root.

    Raises:
        ValueError: If path escapes root
    """
    if not is_within(path, root):
        raise ValueError(f"'{path}' is outside the current working directory")


def normalize_path(path: PathLike) -> str:
    """
    Convert a path to the lockfile form: relative to the working directory
    when possible, forward slashes, no leading "./".
    """
    path = os.fspath(path)
    if os.path.isabs(path):
        try:
            path = os.path.relpath(path)
        except ValueError:
            # Different drive on Windows, keep it absolute
            pass
    return Path(os.path.normpath(path)).as_posix()


def to_native(path: str) -> str:
    """Convert a lockfile path back to the platform's separator."""
    return os.path.normpath(path.replace("/", os.sep))


def suffixed_path(path: str, suffix: str) -> str:
    """
    Compute the output path for a rewrite with a suffix.

    Examples:
        Dockerfile, "new" -> Dockerfile-new
        docker-compose.yml, "new" -> docker-compose-new.yml
        pod.yaml, "new" -> pod-new.yaml
    """
    if not suffix:
        return path
    for ext in (".yml", ".yaml"):
        if path.endswith(ext):
            return f"{path[:-len(ext)]}-{suffix}{ext}"
    return f"{path}-{suffix}"
