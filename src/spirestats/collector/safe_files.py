"""Path-confined file access for run folders and data exports."""

from pathlib import Path
from typing import Iterable, Union

from spirestats.config.logging import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]


class PathTraversalError(ValueError):
    """A path resolves outside every allowed directory."""


def validate_file_path(path: PathLike, allowed_dirs: Iterable[PathLike]) -> Path:
    """
    Resolve a path and confirm it lies inside an allowed directory.

    Symlinks and ".." segments are resolved first, so a link inside the
    folder pointing elsewhere is rejected. An allowed directory itself does
    not count as being inside it.

    Returns:
        The resolved path

    Raises:
        PathTraversalError: The resolved path escapes every allowed directory
    """
    resolved = Path(path).resolve()

    for allowed in allowed_dirs:
        base = Path(allowed).resolve()
        if resolved != base and resolved.is_relative_to(base):
            return resolved

    raise PathTraversalError(f"Path escapes allowed directories: {path}")


def safe_read_file(path: PathLike, allowed_dirs: Iterable[PathLike]) -> str:
    """Read a UTF-8 text file after validating its location."""
    resolved = validate_file_path(path, allowed_dirs)
    return resolved.read_text(encoding="utf-8")


def safe_write_file(path: PathLike, content: str, allowed_dirs: Iterable[PathLike]) -> Path:
    """Write a UTF-8 text file after validating its location."""
    resolved = validate_file_path(path, allowed_dirs)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    resolved.write_text(content, encoding="utf-8")
    logger.debug(f"Wrote {len(content)} chars to {resolved}")
    return resolved


def safe_delete_file(path: PathLike, allowed_dirs: Iterable[PathLike]) -> None:
    """Delete a file after validating its location."""
    resolved = validate_file_path(path, allowed_dirs)
    resolved.unlink()
