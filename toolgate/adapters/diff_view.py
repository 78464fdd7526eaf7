"""Headless diff session over a file on disk.

The proposed content is held in memory while the operator reviews it.
Nothing touches the file until ``save_changes()``, which writes
atomically (temp file + fsync + rename). Directories created for a new
file are removed again on revert, so a rejected or aborted write leaves
the workspace exactly as it was before the preview.
"""
from __future__ import annotations

import asyncio
import difflib
import logging
import os
import tempfile
from pathlib import Path

from toolgate.engine.errors import DiffViewError
from toolgate.engine.integrations import DiffViewProvider
from toolgate.engine.models import SaveResult
from toolgate.shared.file_utils import (
    format_size,
    is_within,
    resolve_path,
    to_posix,
)

logger = logging.getLogger(__name__)


def _fsync_dir(dir_path: Path) -> None:
    """Flush a directory entry so the rename survives a crash."""
    flags = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)
    try:
        fd = os.open(str(dir_path), flags)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        # Not every filesystem supports fsync on directories.
        pass
    finally:
        os.close(fd)


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` in one rename."""
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(path.parent)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def _normalize(text: str) -> str:
    return text.replace("\r\n", "\n").rstrip("\n")


def compute_user_edits(rel_path: str, proposed: str, final: str) -> str | None:
    """Unified diff from the proposed to the saved content, or None if equal."""
    if _normalize(proposed) == _normalize(final):
        return None
    display = to_posix(rel_path)
    diff = difflib.unified_diff(
        _normalize(proposed).split("\n"),
        _normalize(final).split("\n"),
        fromfile=f"a/{display}",
        tofile=f"b/{display}",
        lineterm="",
    )
    return "\n".join(diff)


class FileDiffViewProvider(DiffViewProvider):
    """Preview and commit proposed content for one file under ``cwd``."""

    def __init__(self, cwd: str | Path) -> None:
        self._cwd = Path(cwd)
        self.is_editing = False
        self._last_save: SaveResult | None = None
        self._reset()

    def _reset(self) -> None:
        self._open = False
        self._rel_path: str | None = None
        self._abs_path: Path | None = None
        self._original_content: str | None = None
        self._proposed_content: str | None = None
        self._user_content: str | None = None
        self._created_dirs: list[Path] = []

    @property
    def rel_path(self) -> str | None:
        return self._rel_path

    @property
    def original_content(self) -> str | None:
        """File content before the preview (None for a new file)."""
        return self._original_content

    @property
    def proposed_content(self) -> str | None:
        return self._proposed_content

    def is_diff_view_open(self) -> bool:
        return self._open

    async def open(self, rel_path: str) -> None:
        if self._open:
            raise DiffViewError(f"Diff view already open for {self._rel_path}")
        abs_path = resolve_path(self._cwd, rel_path)
        if abs_path.is_dir():
            raise DiffViewError(f"Cannot write to '{rel_path}': path is a directory")
        if not is_within(self._cwd, abs_path):
            logger.warning("Diff view target is outside the workspace: %s", abs_path)

        original: str | None = None
        if abs_path.is_file():
            original = await asyncio.to_thread(abs_path.read_text, encoding="utf-8")

        created = await asyncio.to_thread(self._ensure_parent_dirs, abs_path)

        self._open = True
        self.is_editing = True
        self._last_save = None
        self._rel_path = rel_path
        self._abs_path = abs_path
        self._original_content = original
        self._created_dirs = created
        logger.info(
            "Opened diff view path=%s existing=%s size=%s",
            to_posix(rel_path),
            original is not None,
            format_size(len(original.encode("utf-8"))) if original is not None else "-",
        )

    @staticmethod
    def _ensure_parent_dirs(abs_path: Path) -> list[Path]:
        missing: list[Path] = []
        parent = abs_path.parent
        while not parent.exists():
            missing.append(parent)
            parent = parent.parent
        for directory in reversed(missing):
            directory.mkdir()
        return missing

    def _require_open(self) -> None:
        if not self._open:
            raise DiffViewError("Diff view is not open")

    async def update(self, content: str, is_final: bool) -> None:
        self._require_open()
        self._proposed_content = content
        if is_final:
            logger.debug(
                "Final preview for %s (%s)",
                self._rel_path, format_size(len(content.encode("utf-8"))),
            )

    def apply_user_edits(self, content: str) -> None:
        """Record the operator's hand edits to the proposed content."""
        self._require_open()
        self._user_content = content

    async def save_changes(self) -> SaveResult:
        if not self._open and self._last_save is not None:
            return self._last_save
        self._require_open()
        assert self._abs_path is not None and self._rel_path is not None
        proposed = self._proposed_content or ""
        final = self._user_content if self._user_content is not None else proposed
        await asyncio.to_thread(atomic_write_text, self._abs_path, final)

        user_edits = None
        if self._user_content is not None:
            user_edits = compute_user_edits(self._rel_path, proposed, final)
        logger.info(
            "Saved %s (%s, user_edits=%s)",
            to_posix(self._rel_path),
            format_size(len(final.encode("utf-8"))),
            user_edits is not None,
        )
        self.is_editing = False
        self._reset()
        self._last_save = SaveResult(user_edits=user_edits, final_content=final)
        return self._last_save

    async def revert_changes(self) -> None:
        if not self._open:
            return
        logger.info("Reverting diff view for %s", self._rel_path)
        created = list(self._created_dirs)
        self.is_editing = False
        self._reset()
        await asyncio.to_thread(self._remove_created_dirs, created)

    @staticmethod
    def _remove_created_dirs(created: list[Path]) -> None:
        # Innermost first; leave anything that gained content.
        for directory in created:
            try:
                directory.rmdir()
            except OSError:
                logger.debug("Keeping non-empty directory %s", directory)
