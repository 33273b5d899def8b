from __future__ import annotations

import os
import subprocess  # noqa: S404
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from repo_snapshot import file_manipulation
from repo_snapshot.config import FileRecord
from repo_snapshot.exceptions import GitCommandError, NotAGitRepositoryError, ReadError
from repo_snapshot.file_manipulation import (
    build_tree_lines,
    git_log,
    make_record,
    make_records,
    read_text_content,
    relpath,
    walk_tree,
    write_zip,
)

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def touch(root: Path, rel: str, content: str = "x") -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    return p


@pytest.mark.unit
def test_relpath_uses_posix_separators(tmp_path: Path) -> None:
    assert relpath(tmp_path / "a" / "b.py", tmp_path) == "a/b.py"
    assert relpath(Path("/elsewhere/c.py"), tmp_path) == "/elsewhere/c.py"


@pytest.mark.unit
def test_walk_tree_is_depth_first_files_before_subdirectories(tmp_path: Path) -> None:
    for rel in ["b.txt", "A.txt", "a_dir/z.txt", "a_dir/sub/y.txt", "B_dir/x.txt"]:
        touch(tmp_path, rel)

    order = [relpath(p, tmp_path) for p in walk_tree(tmp_path)]

    assert order == ["A.txt", "b.txt", "a_dir/z.txt", "a_dir/sub/y.txt", "B_dir/x.txt"]


@pytest.mark.unit
def test_walk_tree_does_not_prune_excluded_directory_names(tmp_path: Path) -> None:
    touch(tmp_path, "node_modules/pkg/package.json", "{}")

    assert [relpath(p, tmp_path) for p in walk_tree(tmp_path)] == ["node_modules/pkg/package.json"]


@pytest.mark.unit
def test_walk_tree_skips_ignored_directories(tmp_path: Path) -> None:
    touch(tmp_path, "src/app.py")
    touch(tmp_path, "snapshot/content.md")

    files = [relpath(p, tmp_path) for p in walk_tree(tmp_path, ignore=[tmp_path / "snapshot"])]

    assert files == ["src/app.py"]


@pytest.mark.unit
def test_make_records_keeps_order_and_marks_vanished_files(tmp_path: Path) -> None:
    first = touch(tmp_path, "z.py", "print(1)\n")
    second = touch(tmp_path, "a.py")

    recs = make_records([first, tmp_path / "gone.py", second], tmp_path)

    assert [r.rel for r in recs] == ["z.py", "gone.py", "a.py"]
    assert recs[0].size == len("print(1)\n")
    assert recs[0].mtime > 0
    assert recs[0].unreadable == ""
    assert recs[1].size == 0
    assert recs[1].unreadable == "No such file or directory"


@pytest.mark.unit
def test_walk_tree_yields_dangling_symlinks_as_unreadable_records(tmp_path: Path) -> None:
    touch(tmp_path, "a.py")
    (tmp_path / "link.py").symlink_to(tmp_path / "missing-target.py")

    recs = make_records(walk_tree(tmp_path), tmp_path)

    assert [r.rel for r in recs] == ["a.py", "link.py"]
    assert recs[1].unreadable == "No such file or directory"


@pytest.mark.unit
@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs POSIX named pipes")
def test_make_record_flags_special_files(tmp_path: Path) -> None:
    fifo = tmp_path / "pipe"
    os.mkfifo(fifo)

    rec = make_record(fifo, tmp_path)

    assert rec.size == 0
    assert rec.unreadable == "not a regular file"


@pytest.mark.unit
def test_read_text_content_raises_read_error_for_missing_file(tmp_path: Path) -> None:
    rec = FileRecord(path=tmp_path / "missing.py", rel="missing.py", size=0)

    with pytest.raises(ReadError) as exc_info:
        read_text_content(rec)

    assert exc_info.value.path == tmp_path / "missing.py"


@pytest.mark.unit
def test_read_text_content_decodes_utf16_and_replaces_bad_utf8(tmp_path: Path) -> None:
    utf16 = tmp_path / "notes.txt"
    utf16.write_bytes("héllo".encode("utf-16"))
    broken = tmp_path / "broken.txt"
    broken.write_bytes(b"ok \xff end")

    assert read_text_content(FileRecord(path=utf16, rel="notes.txt", size=0)) == "héllo"
    assert read_text_content(FileRecord(path=broken, rel="broken.txt", size=0)) == "ok \ufffd end"


@pytest.mark.unit
def test_build_tree_lines_lists_files_before_directories() -> None:
    lines = build_tree_lines("proj", ["src/pkg/mod.py", "README.md", "src/app.py"])

    assert lines == [
        "proj/",
        "├── README.md",
        "└── src/",
        "    ├── app.py",
        "    └── pkg/",
        "        └── mod.py",
    ]


@pytest.mark.unit
def test_git_log_requires_a_repository(tmp_path: Path) -> None:
    with pytest.raises(NotAGitRepositoryError):
        git_log(tmp_path, 5)


@pytest.mark.unit
def test_git_log_failure_raises_git_command_error(tmp_path: Path, mocker: MockerFixture) -> None:
    (tmp_path / ".git").mkdir()
    mocker.patch.object(
        file_manipulation.subprocess,
        "run",
        return_value=subprocess.CompletedProcess(args=[], returncode=128, stdout="", stderr="fatal: bad\n"),
    )

    with pytest.raises(GitCommandError) as exc_info:
        git_log(tmp_path, 5)

    assert exc_info.value.returncode == 128
    assert "fatal: bad" in str(exc_info.value)


@pytest.mark.unit
def test_git_log_returns_formatted_lines(tmp_path: Path, mocker: MockerFixture) -> None:
    (tmp_path / ".git").mkdir()
    run = mocker.patch.object(
        file_manipulation.subprocess,
        "run",
        return_value=subprocess.CompletedProcess(args=[], returncode=0, stdout="abc1234 2026-01-02 Dev init\n", stderr=""),
    )

    assert git_log(tmp_path, 3) == "abc1234 2026-01-02 Dev init"
    cmd = run.call_args.args[0]
    assert cmd[:3] == ["git", "log", "-n3"]


@pytest.mark.unit
def test_write_zip_stores_members_by_basename(tmp_path: Path) -> None:
    a = touch(tmp_path, "out/tree.txt", "tree")
    b = touch(tmp_path, "out/summary.txt", "summary")

    archive = write_zip(tmp_path / "bundle.zip", [a, b])

    with zipfile.ZipFile(archive) as zf:
        assert sorted(zf.namelist()) == ["summary.txt", "tree.txt"]
        assert zf.read("tree.txt") == b"tree"
