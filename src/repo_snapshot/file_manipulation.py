from __future__ import annotations

import hashlib
import os
import stat
import subprocess  # noqa: S404
import zipfile
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from repo_snapshot.config import FileRecord
from repo_snapshot.exceptions import GitCommandError, NotAGitRepositoryError, ReadError
from repo_snapshot.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

GIT_LOG_FORMAT = "%h %ad %an %s"


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return str(path.relative_to(root)).replace("\\", "/")
    except ValueError:
        return str(path)


def _sort_key(name: str) -> tuple[str, str]:
    return (name.lower(), name)


def walk_tree(root: Path, *, ignore: Iterable[Path] = ()) -> Iterator[Path]:
    """Yield every non-directory entry under `root` in a deterministic order.

    The order is a pre-order depth-first traversal: inside each directory its
    files come first, then its subdirectories, each group sorted
    case-insensitively (ties broken case-sensitively). Nothing is pruned by
    name here; excluded directories are decided per file by the classifier.
    Symlinked directories are not followed. Dangling symlinks and special
    files are yielded too, so that they can be reported as unreadable.

    Args:
        root (Path): the directory to walk
        ignore (Iterable[Path]): directories never descended into (e.g. the
            bundle output directory)

    Yields:
        Iterator[Path]: absolute file paths
    """
    ignored = {p.resolve() for p in ignore}
    for current, dirs, files in os.walk(root):
        here = Path(current)
        dirs[:] = sorted((d for d in dirs if (here / d).resolve() not in ignored), key=_sort_key)
        for name in sorted(files, key=_sort_key):
            yield here / name


def sha256_file(path: Path) -> str:
    """Compute and return the SHA-256 hex digest of a file.

    Reads the file in 1 MiB chunks to handle large files without excessive memory use.

    Args:
        path (Path): the file path to hash

    Returns:
        str: the SHA-256 hex digest of the file contents
    """
    h = hashlib.sha256()
    with path.open("rb") as f:
        for blk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(blk)
    return h.hexdigest()


def make_record(path: Path, root: Path) -> FileRecord:
    """Create a FileRecord for one discovered entry.

    An entry that cannot be stat'ed or is not a regular file gets a size of 0
    and an `unreadable` reason instead of an exception.

    Returns:
        FileRecord: metadata for `path` relative to `root`
    """
    rel = relpath(path, root)
    try:
        st = path.stat()
    except OSError as e:
        logger.warning("stat_failed", path=rel, error=str(e))
        return FileRecord(path=path, rel=rel, size=0, unreadable=e.strerror or str(e))
    if not stat.S_ISREG(st.st_mode):
        logger.warning("not_a_regular_file", path=rel)
        return FileRecord(path=path, rel=rel, size=0, mtime=st.st_mtime, unreadable="not a regular file")
    return FileRecord(path=path, rel=rel, size=st.st_size, mtime=st.st_mtime)


def make_records(files: Iterable[Path], root: Path) -> list[FileRecord]:
    """Create FileRecords, preserving the input order.

    Every entry gets a record, unreadable ones included.

    Args:
        files (Iterable[Path]): discovered files (absolute paths)
        root (Path): the scan root

    Returns:
        list[FileRecord]: one record per entry, in input order
    """
    return [make_record(f, root) for f in files]


def read_text_content(rec: FileRecord) -> str:
    """Read a kept file as UTF-8 text (undecodable bytes are replaced).

    A UTF-16 byte-order mark selects UTF-16 decoding instead.

    Args:
        rec (FileRecord): the file to read

    Raises:
        ReadError: if the file cannot be opened or read

    Returns:
        str: the file content
    """
    try:
        raw = rec.path.read_bytes()
    except OSError as e:
        raise ReadError(path=rec.path, reason=e.strerror or str(e)) from e
    encoding = "utf-16" if raw.startswith((b"\xff\xfe", b"\xfe\xff")) else "utf-8"
    return raw.decode(encoding, errors="replace")


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Build a visual tree representation of file paths.

    Args:
        root_name (str): the name to use for the root of the tree
        rel_paths (Sequence[str]): file paths relative to the root, using POSIX separators (e.g. "src/main.py")

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    rels = sorted(
        {p.strip("/").replace("\\", "/") for p in rel_paths if p.strip()},
        key=str.lower,
    )
    tree: dict[str, Any] = {}
    for rp in rels:
        cur = tree
        parts = rp.split("/")
        for i, part in enumerate(parts):
            if i == len(parts) - 1:
                cur.setdefault("__files__", set()).add(part)
            else:
                cur = cur.setdefault(part, {})

    lines: list[str] = [root_name + "/"]

    def walk(node: dict[str, Any], prefix: str) -> None:
        dirs = sorted([k for k in node if k != "__files__"], key=_sort_key)
        files = sorted(node.get("__files__", set()), key=_sort_key)
        entries: list[tuple[str, str, Any]] = []
        entries.extend(("file", f, None) for f in files)
        entries.extend(("dir", d, node[d]) for d in dirs)
        for idx, (kind, name, child) in enumerate(entries):
            last = idx == len(entries) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + name + ("/" if kind == "dir" else ""))
            if kind == "dir":
                ext = "    " if last else "│   "
                walk(child, prefix + ext)

    walk(tree, "")
    return lines


def now_iso() -> str:
    """Return the current date and time in ISO 8601 format with timezone.

    Returns:
        str: the current date and time in ISO 8601 format with timezone
    """
    return datetime.now(UTC).astimezone().isoformat(timespec="seconds")


def git_log(repo: Path, count: int) -> str:
    """Return the last `count` commits of `repo`, one line per commit.

    Args:
        repo (Path): the root of the git repository to query
        count (int): the number of commits to include

    Raises:
        NotAGitRepositoryError: if `.git` is missing or git is not installed
        GitCommandError: if `git log` exits with a non-zero status

    Returns:
        str: `<hash> <date> <author> <subject>` lines, newest first
    """
    if not (repo / ".git").exists():
        raise NotAGitRepositoryError(folder=repo)
    cmd = ["git", "log", f"-n{count}", "--date=short", f"--pretty=format:{GIT_LOG_FORMAT}"]
    try:
        out = subprocess.run(  # noqa: S603
            cmd,
            cwd=str(repo),
            text=True,
            capture_output=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise NotAGitRepositoryError(folder=repo, message=f"git executable not found: {e}") from e
    if out.returncode != 0:
        raise GitCommandError(
            command=" ".join(cmd),
            returncode=out.returncode,
            stdout=out.stdout,
            stderr=out.stderr,
        )
    return out.stdout.strip()


def write_zip(archive: Path, members: Sequence[Path]) -> Path:
    """Pack `members` into a deflated zip archive, flat, under their basenames.

    Args:
        archive (Path): the archive to create (overwritten if present)
        members (Sequence[Path]): the files to store

    Returns:
        Path: the archive path
    """
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for member in members:
            zf.write(member, arcname=member.name)
    return archive
