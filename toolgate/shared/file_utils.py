"""Path helpers for tool inputs.

Read-only utilities: resolve model-supplied relative paths against the
session cwd, render them for display, and check for existing files.
"""

from __future__ import annotations

import asyncio
from pathlib import Path, PurePath


def to_posix(path: str) -> str:
    """Render a path with forward slashes regardless of platform."""
    return PurePath(path).as_posix() if path else path


def resolve_path(cwd: str | Path, rel_path: str) -> Path:
    """Resolve ``rel_path`` against ``cwd`` (absolute paths pass through)."""
    candidate = Path(rel_path).expanduser()
    if candidate.is_absolute():
        return candidate.resolve()
    return (Path(cwd) / candidate).resolve()


def get_readable_path(cwd: str | Path, rel_path: str) -> str:
    """Return a short display path.

    Paths inside ``cwd`` are shown relative to it; paths outside are
    shown absolute. ``cwd`` itself is shown as its directory name.
    """
    absolute = resolve_path(cwd, rel_path)
    root = Path(cwd).resolve()
    if absolute == root:
        return to_posix(root.name or str(root))
    try:
        return to_posix(str(absolute.relative_to(root)))
    except ValueError:
        return to_posix(str(absolute))


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


async def file_exists_at_path(path: str | Path) -> bool:
    """Check whether a regular file exists without blocking the loop."""
    return await asyncio.to_thread(_is_file, Path(path))


def format_size(size: int) -> str:
    """Format a byte count for log lines."""
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


def is_within(root: str | Path, path: str | Path) -> bool:
    """True when ``path`` is ``root`` or below it."""
    root_resolved = Path(root).resolve()
    try:
        Path(path).resolve().relative_to(root_resolved)
        return True
    except ValueError:
        return False


__all__ = [
    "file_exists_at_path",
    "format_size",
    "get_readable_path",
    "is_within",
    "resolve_path",
    "to_posix",
]
