from __future__ import annotations

import io
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from repo_snapshot import __version__
from repo_snapshot.file_manipulation import build_tree_lines, now_iso

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from repo_snapshot.assembler import ScannedFile
    from repo_snapshot.classifier import SkipCounter
    from repo_snapshot.config import RuleSet

NO_EXTENSION = "(none)"


def read_error_marker(rel: str, reason: str) -> str:
    """Visible placeholder written instead of the content of an unreadable file."""
    return f"[READ ERROR: {rel}: {reason}]"


def build_tree(root: Path, kept: Sequence[ScannedFile]) -> str:
    """Render the kept files as a directory tree."""
    return "\n".join(build_tree_lines(root.name or str(root), [f.record.rel for f in kept])) + "\n"


def build_content(root: Path, kept: Sequence[ScannedFile]) -> str:
    """Concatenate the kept files into one markdown document.

    Files appear in traversal order, each under a `## <relative path>` header
    inside a fenced block. A file that could not be read gets a visible
    read-error marker instead of its content.

    Args:
        root (Path): the scan root
        kept (Sequence[ScannedFile]): kept files, already redacted, in traversal order

    Returns:
        str: the markdown document
    """
    out = io.StringIO()
    out.write("# Project Snapshot for LLM\n")
    out.write(f"root={root}\n")
    out.write(f"generated_at={now_iso()}\n")
    out.write(f"files={len(kept)}\n\n")

    for f in kept:
        out.write(f"## {f.record.rel}\n")
        if f.read_error:
            out.write(read_error_marker(f.record.rel, f.read_error) + "\n\n")
            continue
        body = (f.content or "").rstrip("\n")
        fence = "````" if "```" in body else "```"
        out.write(f"{fence}{f.record.language or 'text'}\n{body}\n{fence}\n\n")

    return out.getvalue().rstrip() + "\n"


def extension_stats(kept: Sequence[ScannedFile]) -> list[tuple[str, int, int]]:
    """Count files and lines of code per extension for the readable kept files.

    Returns:
        list[tuple[str, int, int]]: `(extension, files, lines)` sorted by lines
            descending, then extension
    """
    files: dict[str, int] = defaultdict(int)
    lines: dict[str, int] = defaultdict(int)
    for f in kept:
        if f.read_error:
            continue
        ext = f.record.extension or NO_EXTENSION
        files[ext] += 1
        lines[ext] += f.lines
    return sorted(((ext, files[ext], lines[ext]) for ext in files), key=lambda t: (-t[2], t[0]))


def build_summary(
    root: Path,
    scanned: Sequence[ScannedFile],
    counter: SkipCounter,
    *,
    redact_enabled: bool,
) -> str:
    """Render the human-readable summary of a snapshot run.

    Skip reasons are listed with their exact vocabulary (`extension`,
    `filename`, `directory`, `user-exclude`, `size`, `binary`), all six
    always present.

    Args:
        root (Path): the scan root
        scanned (Sequence[ScannedFile]): every scanned file, in traversal order
        counter (SkipCounter): the decision tally
        redact_enabled (bool): whether redaction ran

    Returns:
        str: the summary text
    """
    kept = [f for f in scanned if f.decision.keep]
    read_errors = [f for f in kept if f.read_error]
    out = io.StringIO()
    out.write("# Snapshot Summary\n")
    out.write(f"root={root}\n")
    out.write(f"generated_at={now_iso()}\n\n")

    out.write(f"files_scanned={counter.scanned}\n")
    out.write(f"files_kept={counter.kept}\n")
    out.write(f"files_skipped={counter.skipped}\n")
    out.write(f"bytes_kept={sum(f.record.size for f in kept)}\n")
    out.write(f"lines_kept={sum(f.lines for f in kept)}\n")
    out.write(f"redaction={'on' if redact_enabled else 'off'}\n")
    out.write(f"redactions={sum(f.redactions for f in kept)}\n")
    out.write(f"read_errors={len(read_errors)}\n\n")

    out.write("## Skipped by reason\n")
    for reason, n in counter.as_dict().items():
        out.write(f"{reason}: {n}\n")

    out.write("\n## Lines by extension\n")
    for ext, n_files, n_lines in extension_stats(kept):
        out.write(f"{ext}: files={n_files} lines={n_lines}\n")

    if read_errors:
        out.write("\n## Read errors\n")
        out.writelines(f"{f.record.rel}: {f.read_error}\n" for f in read_errors)

    return out.getvalue()


def build_metadata(
    root: Path,
    scanned: Sequence[ScannedFile],
    counter: SkipCounter,
    rules: RuleSet,
    *,
    redact_enabled: bool,
) -> dict[str, Any]:
    """Build the machine-readable description of a snapshot run.

    Returns:
        dict[str, Any]: JSON-serializable metadata with one entry per scanned file
    """
    return {
        "tool": "repo_snapshot",
        "version": __version__,
        "generated_at": now_iso(),
        "root": str(root),
        "rules": {
            "include": [p.pattern for p in rules.user_include],
            "exclude": [p.pattern for p in rules.user_exclude],
            "max_file_bytes": rules.max_file_bytes,
            "preserve_manifests": rules.preserve_manifests,
            "redact": redact_enabled,
        },
        "counts": {
            "scanned": counter.scanned,
            "kept": counter.kept,
            "skipped": counter.skipped,
            "skipped_by_reason": counter.as_dict(),
        },
        "files": [
            {
                "path": f.record.rel,
                "decision": "keep" if f.decision.keep else "skip",
                "reason": f.decision.reason.value if f.decision.reason else None,
                "size": f.record.size,
                "mtime": f.record.mtime,
                "language": f.record.language,
                "sha256": f.record.sha256,
                "lines": f.lines,
                "read_error": f.read_error or None,
            }
            for f in scanned
        ],
    }
