from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field

from repo_snapshot.classifier import SkipCounter, decide
from repo_snapshot.config import Decision, FileRecord, RuleSet
from repo_snapshot.exceptions import (
    ConfigError,
    GitCommandError,
    NotAGitRepositoryError,
    OutputDirectoryError,
    ReadError,
)
from repo_snapshot.file_manipulation import (
    git_log,
    make_records,
    read_text_content,
    sha256_file,
    walk_tree,
    write_zip,
)
from repo_snapshot.logging import logger
from repo_snapshot.output_construction import build_content, build_metadata, build_summary, build_tree
from repo_snapshot.redaction import redact_with_count
from repo_snapshot.settings import Settings
from repo_snapshot.sniffing import FileKind, sniff_file

if TYPE_CHECKING:
    from collections.abc import Iterable

TREE_FILE = "tree.txt"
CONTENT_FILE = "content.md"
GIT_LOG_FILE = "git_log.txt"
SUMMARY_FILE = "summary.txt"
METADATA_FILE = "metadata.json"

# rules-file key -> Settings field; list values extend the command line ones
_RULES_FILE_LISTS: dict[str, str] = {
    "include": "include",
    "exclude": "exclude",
    "exclude_extensions": "exclude_ext",
    "exclude_filenames": "exclude_name",
    "exclude_dirs": "exclude_dir",
}
# scalar values apply only when not given explicitly
_RULES_FILE_SCALARS: dict[str, str] = {
    "max_file_mb": "max_file_mb",
    "preserve_manifests": "preserve_manifests",
    "redact": "redact",
}


class ScannedFile(BaseModel):
    """A classified file and, when kept, its redacted content."""

    model_config = ConfigDict(frozen=True)

    record: FileRecord
    decision: Decision
    content: str | None = None
    redactions: int = 0
    read_error: str = ""

    @computed_field
    @property
    def lines(self) -> int:
        """Number of lines in the (redacted) content; 0 when not read."""
        if not self.content:
            return 0
        return self.content.count("\n") + (0 if self.content.endswith("\n") else 1)


class SnapshotResult(BaseModel):
    """What a snapshot run produced."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    output_dir: Path
    written: list[Path] = Field(default_factory=list)
    scanned: list[ScannedFile] = Field(default_factory=list)
    counter: SkipCounter

    @property
    def kept(self) -> list[ScannedFile]:
        return [f for f in self.scanned if f.decision.keep]

    @property
    def read_errors(self) -> int:
        return sum(1 for f in self.kept if f.read_error)


def load_rules_file(path: Path) -> dict[str, Any]:
    """Load a YAML rules file.

    Args:
        path (Path): the YAML file

    Raises:
        ConfigError: if the file cannot be read, is not valid YAML, is not a
            mapping, or holds unknown keys or non-list values for list keys

    Returns:
        dict[str, Any]: the parsed mapping (empty for an empty file)
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigError(pattern=str(path), message=f"Cannot read rules file ({e.strerror or e})") from e
    except yaml.YAMLError as e:
        raise ConfigError(pattern=str(path), message=f"Invalid YAML in rules file ({e})") from e
    if not isinstance(data, dict):
        raise ConfigError(pattern=str(path), message="Rules file must contain a mapping")
    unknown = sorted(set(data) - set(_RULES_FILE_LISTS) - set(_RULES_FILE_SCALARS))
    if unknown:
        raise ConfigError(pattern=", ".join(unknown), message=f"Unknown keys in rules file {path}")
    for key in _RULES_FILE_LISTS:
        value = data.get(key, [])
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigError(pattern=key, message=f"Rules file {path} expects a list of strings for")
    return data


def apply_rules_file(settings: Settings) -> Settings:
    """Merge the optional YAML rules file into `settings`.

    Raises:
        ConfigError: if the rules file is invalid

    Returns:
        Settings: a new settings object (or `settings` itself without a rules file)
    """
    if not settings.config_file:
        return settings
    data = load_rules_file(Path(settings.config_file))
    update: dict[str, Any] = {}
    for key, field in _RULES_FILE_LISTS.items():
        if key in data:
            update[field] = [*data[key], *getattr(settings, field)]
    for key, field in _RULES_FILE_SCALARS.items():
        if key in data and field not in settings.model_fields_set:
            update[field] = data[key]
    try:
        return Settings.model_validate({**settings.model_dump(), **update})
    except ValidationError as e:
        raise ConfigError(pattern=settings.config_file, message=f"Invalid value in rules file ({e})") from e


def build_rules(settings: Settings) -> RuleSet:
    """Build the RuleSet for a run from its settings.

    Raises:
        ConfigError: if a user regex is invalid

    Returns:
        RuleSet: the frozen policy
    """
    return RuleSet.build(
        include=settings.include,
        exclude=settings.exclude,
        extra_extensions=settings.exclude_ext,
        extra_filenames=settings.exclude_name,
        extra_dir_names=settings.exclude_dir,
        preserve_manifests=settings.preserve_manifests,
        max_file_bytes=settings.max_file_bytes,
    )


def _assume_text(_path: Path) -> FileKind:
    return FileKind.TEXT


def scan_file(
    record: FileRecord,
    rules: RuleSet,
    *,
    redact_enabled: bool = True,
    compute_sha: bool = False,
) -> ScannedFile:
    """Classify one file and, if kept, read and redact its content.

    A read failure does not abort the run: it is logged and recorded on the
    returned entry so the content bundle can show a marker instead. Entries
    already known to be unreadable are classified without sampling them.

    Args:
        record (FileRecord): the file to process
        rules (RuleSet): the active policy
        redact_enabled (bool): apply secret redaction to kept content
        compute_sha (bool): attach the SHA-256 digest of kept files

    Returns:
        ScannedFile: the decision plus content (kept files only)
    """
    sniffer = _assume_text if record.unreadable else sniff_file
    decision = decide(record, rules, sniffer=sniffer)
    if not decision.keep:
        logger.debug("file_skipped", path=record.rel, reason=decision.reason.value)
        return ScannedFile(record=record, decision=decision)
    if record.unreadable:
        logger.warning("read_error", path=record.rel, reason=record.unreadable)
        return ScannedFile(record=record, decision=decision, read_error=record.unreadable)
    try:
        text = read_text_content(record)
        if compute_sha:
            record = record.model_copy(update={"sha256": sha256_file(record.path)})
    except ReadError as e:
        logger.warning("read_error", path=record.rel, reason=e.reason)
        return ScannedFile(record=record, decision=decision, read_error=e.reason)
    except OSError as e:
        logger.warning("read_error", path=record.rel, reason=str(e))
        return ScannedFile(record=record, decision=decision, read_error=str(e))
    content, hits = redact_with_count(text, enabled=redact_enabled)
    return ScannedFile(record=record, decision=decision, content=content, redactions=hits)


def scan(
    root: Path,
    rules: RuleSet,
    *,
    redact_enabled: bool = True,
    compute_sha: bool = False,
    workers: int = 1,
    ignore: Iterable[Path] = (),
) -> tuple[list[ScannedFile], SkipCounter]:
    """Walk `root`, classify every file and read the kept ones.

    Results are returned in traversal order whatever the number of workers.

    Args:
        root (Path): the directory to snapshot
        rules (RuleSet): the active policy
        redact_enabled (bool): apply secret redaction to kept content
        compute_sha (bool): attach SHA-256 digests to kept files
        workers (int): worker threads; 1 processes files sequentially
        ignore (Iterable[Path]): directories that are not walked at all

    Returns:
        tuple[list[ScannedFile], SkipCounter]: per-file results and the decision tally
    """
    records = make_records(walk_tree(root, ignore=ignore), root)
    process = partial(scan_file, rules=rules, redact_enabled=redact_enabled, compute_sha=compute_sha)
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            scanned = list(pool.map(process, records))
    else:
        scanned = [process(rec) for rec in records]
    counter = SkipCounter()
    counter.update(f.decision for f in scanned)
    return scanned, counter


def git_history(root: Path, count: int) -> str:
    """Git log excerpt for the bundle, or a one-line explanation when unavailable."""
    if count <= 0:
        return "(git history disabled)\n"
    try:
        log = git_log(root, count)
    except (NotAGitRepositoryError, GitCommandError) as e:
        logger.info("git_history_unavailable", root=str(root), error=str(e))
        return f"(git history unavailable: {e})\n"
    return (log or "(no commits)") + "\n"


def ensure_output_dir(folder: Path) -> Path:
    """Create the bundle destination.

    Raises:
        OutputDirectoryError: if the directory cannot be created

    Returns:
        Path: the directory
    """
    try:
        folder.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryError(folder=folder, reason=e.strerror or str(e)) from e
    if not folder.is_dir():
        raise OutputDirectoryError(folder=folder, reason="not a directory")
    return folder


def assemble(settings: Settings) -> SnapshotResult:
    """Run a full snapshot and write the bundle files.

    Configuration is validated before anything is scanned or written.

    Args:
        settings (Settings): the run configuration

    Raises:
        ConfigError: if the rules file, a user regex or the root is invalid
        OutputDirectoryError: if the output directory cannot be created or written to

    Returns:
        SnapshotResult: what was scanned and which files were written
    """
    settings = apply_rules_file(settings)
    rules = build_rules(settings)
    root = Path(settings.root).resolve()
    if not root.is_dir():
        raise ConfigError(pattern=str(root), message="Snapshot root is not a directory")
    out_dir = ensure_output_dir(Path(settings.output_dir).resolve())

    logger.info("scan_started", root=str(root), output_dir=str(out_dir), workers=settings.workers)
    scanned, counter = scan(
        root,
        rules,
        redact_enabled=settings.redact,
        compute_sha=not settings.no_sha,
        workers=settings.workers,
        ignore=[out_dir],
    )
    kept = [f for f in scanned if f.decision.keep]

    outputs: dict[str, str] = {
        TREE_FILE: build_tree(root, kept),
        CONTENT_FILE: build_content(root, kept),
        GIT_LOG_FILE: git_history(root, settings.git_log_count),
        SUMMARY_FILE: build_summary(root, scanned, counter, redact_enabled=settings.redact),
    }
    if settings.json_metadata:
        metadata = build_metadata(root, scanned, counter, rules, redact_enabled=settings.redact)
        outputs[METADATA_FILE] = json.dumps(metadata, ensure_ascii=False, indent=2) + "\n"

    written: list[Path] = []
    try:
        for name, text in outputs.items():
            target = out_dir / name
            target.write_text(text, encoding="utf-8")
            written.append(target)
        if settings.zip:
            written.append(write_zip(out_dir / f"{root.name or 'project'}_snapshot.zip", list(written)))
    except OSError as e:
        raise OutputDirectoryError(folder=out_dir, reason=e.strerror or str(e)) from e

    logger.info(
        "scan_finished",
        scanned=counter.scanned,
        kept=counter.kept,
        skipped=counter.as_dict(),
        read_errors=sum(1 for f in kept if f.read_error),
    )
    return SnapshotResult(output_dir=out_dir, written=written, scanned=scanned, counter=counter)
