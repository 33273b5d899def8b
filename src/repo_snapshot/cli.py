"""
repo_snapshot: prepare a project directory as context for an LLM.

Overview
--------
Walks a project tree, decides for every file whether it is kept or skipped
(and why), redacts secret-like substrings from the kept files and writes a
bundle into an output directory:

- `tree.txt`     the kept files as a directory tree,
- `content.md`   the kept files concatenated, in traversal order,
- `git_log.txt`  the last commits (when the root is a git repository),
- `summary.txt`  counts per skip reason, lines per extension, redactions,
- `metadata.json` (`--json`) per-file decisions, machine readable,
- `<root>_snapshot.zip` (`--zip`) all of the above in one archive.

Usage
-----
Run `python -m repo_snapshot.cli --help` for full options. Common examples:
    - Snapshot the current directory:
        uv run repo-snapshot --output-dir snapshot

    - Force-keep generated sources, drop fixtures, 2 MB cap, JSON metadata:
        uv run repo-snapshot --include "^gen/.*\\.py$" --exclude "fixtures/" --max-file-mb 2 --json

    - Log to a file:
        uv run repo-snapshot --log-file snapshot.log
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from repo_snapshot import __version__
from repo_snapshot.assembler import assemble
from repo_snapshot.exceptions import ConfigError, OutputDirectoryError
from repo_snapshot.logging import logger, setup_logging
from repo_snapshot.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

EXIT_OK = 0
EXIT_OUTPUT_ERROR = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="repo-snapshot",
        description="Snapshot a project for LLM consumption (tree, content, git log, summary).",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--root", type=Path, default=None, help="Project root (default: cwd).")
    p.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory receiving the bundle (default: ./snapshot).",
    )
    p.add_argument("--config", dest="config_file", type=str, default=None, help="YAML rules file.")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")

    p.add_argument(
        "--include",
        action="append",
        default=[],
        help="Regex on the relative path forcing a file in (repeatable).",
    )
    p.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Regex on the relative path leaving a file out (repeatable).",
    )
    p.add_argument("--exclude-ext", action="append", default=[], help="Extra excluded extension (repeatable).")
    p.add_argument("--exclude-name", action="append", default=[], help="Extra excluded filename (repeatable).")
    p.add_argument("--exclude-dir", action="append", default=[], help="Extra excluded directory name (repeatable).")

    p.add_argument("--max-file-mb", type=float, default=None, help="Skip files larger than this (MB).")
    p.add_argument(
        "--no-preserve-manifests",
        dest="preserve_manifests",
        action="store_const",
        const=False,
        default=None,
        help="Do not force-keep build/package manifests.",
    )
    p.add_argument(
        "--no-redact",
        dest="redact",
        action="store_const",
        const=False,
        default=None,
        help="Do not redact secret-like substrings.",
    )
    p.add_argument("--git-log-count", type=int, default=None, help="Commits in the git excerpt (0 disables).")
    p.add_argument("--json", dest="json_metadata", action="store_true", help="Also write metadata.json.")
    p.add_argument("--zip", action="store_true", help="Pack the bundle into a zip archive.")
    p.add_argument("--no-sha", action="store_true", help="Do not compute sha256 digests.")
    p.add_argument("--workers", type=int, default=None, help="Worker threads for scanning.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command line arguments into Settings.

    Options left unset keep the Settings defaults (so a rules file can still
    provide them).

    Args:
        argv (Sequence[str] | None): arguments, `sys.argv[1:]` when None

    Raises:
        ConfigError: if an option (or an environment default) has an invalid value

    Returns:
        Settings: the run configuration
    """
    args = build_parser().parse_args(argv)
    try:
        return Settings(**{k: v for k, v in vars(args).items() if v is not None})
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
        raise ConfigError(pattern=problems, message="Invalid option value") from e


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
        if settings.log_file:
            setup_logging(settings.log_file)
        result = assemble(settings)
    except ConfigError as e:
        logger.error("config_error", error=str(e))
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except OutputDirectoryError as e:
        logger.error("output_error", error=str(e))
        print(f"Output error: {e}", file=sys.stderr)
        return EXIT_OUTPUT_ERROR

    counter = result.counter
    print(
        f"Wrote {result.output_dir} files={len(result.written)} "
        f"kept={counter.kept} skipped={counter.skipped} read_errors={result.read_errors}",
    )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
