from __future__ import annotations

from pathlib import Path

import pytest

from toolgate.adapters.diff_view import (
    FileDiffViewProvider,
    atomic_write_text,
    compute_user_edits,
)
from toolgate.engine.errors import DiffViewError


@pytest.mark.asyncio
async def test_save_new_file_creates_directories(tmp_path: Path):
    view = FileDiffViewProvider(tmp_path)
    await view.open("a/b/c.txt")
    await view.update("hello", False)
    await view.update("hello world", True)

    result = await view.save_changes()

    assert (tmp_path / "a" / "b" / "c.txt").read_text() == "hello world"
    assert result.user_edits is None
    assert result.final_content == "hello world"
    assert not view.is_diff_view_open()
    assert list((tmp_path / "a" / "b").iterdir()) == [tmp_path / "a" / "b" / "c.txt"]
    assert await view.save_changes() is result


@pytest.mark.asyncio
async def test_open_records_original_content(tmp_path: Path):
    (tmp_path / "f.txt").write_text("before")
    view = FileDiffViewProvider(tmp_path)

    await view.open("f.txt")

    assert view.original_content == "before"
    assert view.is_editing
    assert view.rel_path == "f.txt"


@pytest.mark.asyncio
async def test_open_twice_raises(tmp_path: Path):
    view = FileDiffViewProvider(tmp_path)
    await view.open("f.txt")
    with pytest.raises(DiffViewError):
        await view.open("g.txt")


@pytest.mark.asyncio
async def test_open_directory_raises(tmp_path: Path):
    (tmp_path / "pkg").mkdir()
    view = FileDiffViewProvider(tmp_path)
    with pytest.raises(DiffViewError):
        await view.open("pkg")


@pytest.mark.asyncio
async def test_update_requires_open(tmp_path: Path):
    view = FileDiffViewProvider(tmp_path)
    with pytest.raises(DiffViewError):
        await view.update("x", True)
    with pytest.raises(DiffViewError):
        await view.save_changes()


@pytest.mark.asyncio
async def test_revert_restores_existing_file_and_is_idempotent(tmp_path: Path):
    target = tmp_path / "f.txt"
    target.write_text("keep me")
    view = FileDiffViewProvider(tmp_path)
    await view.open("f.txt")
    await view.update("replacement", True)

    await view.revert_changes()
    await view.revert_changes()

    assert target.read_text() == "keep me"
    assert not view.is_diff_view_open()
    assert not view.is_editing


@pytest.mark.asyncio
async def test_revert_keeps_directories_that_gained_files(tmp_path: Path):
    view = FileDiffViewProvider(tmp_path)
    await view.open("new/dir/f.txt")
    (tmp_path / "new" / "other.txt").write_text("someone else")

    await view.revert_changes()

    assert not (tmp_path / "new" / "dir").exists()
    assert (tmp_path / "new" / "other.txt").exists()


@pytest.mark.asyncio
async def test_user_edits_are_saved_and_diffed(tmp_path: Path):
    view = FileDiffViewProvider(tmp_path)
    await view.open("f.py")
    await view.update("a = 1\nb = 2", True)
    view.apply_user_edits("a = 1\nb = 3\n")

    result = await view.save_changes()

    assert (tmp_path / "f.py").read_text() == "a = 1\nb = 3\n"
    assert result.user_edits is not None
    assert "-b = 2" in result.user_edits
    assert "+b = 3" in result.user_edits


@pytest.mark.asyncio
async def test_identical_user_edits_are_not_reported(tmp_path: Path):
    view = FileDiffViewProvider(tmp_path)
    await view.open("f.py")
    await view.update("x = 1", True)
    view.apply_user_edits("x = 1\r\n")

    result = await view.save_changes()

    assert result.user_edits is None


def test_compute_user_edits_headers():
    diff = compute_user_edits("src/a.py", "one\ntwo", "one\n2")
    assert diff.splitlines() == [
        "--- a/src/a.py",
        "+++ b/src/a.py",
        "@@ -1,2 +1,2 @@",
        " one",
        "-two",
        "+2",
    ]
    assert compute_user_edits("a.py", "same\n", "same") is None


def test_atomic_write_leaves_no_temp_files(tmp_path: Path):
    target = tmp_path / "out.txt"
    target.write_text("old")

    atomic_write_text(target, "new")

    assert target.read_text() == "new"
    assert [p.name for p in tmp_path.iterdir()] == ["out.txt"]
