from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from repo_snapshot.exceptions import ConfigError

ENV_FILE = find_dotenv(usecwd=True)
if ENV_FILE:
    load_dotenv(ENV_FILE, override=False)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError as e:
        raise ConfigError(pattern=raw, message=f"Invalid number in {name}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError as e:
        raise ConfigError(pattern=raw, message=f"Invalid integer in {name}") from e


class Settings(BaseModel):
    """Configuration settings for the repo_snapshot module."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    root: Path = Field(default_factory=Path.cwd, description="Project root to snapshot.")
    output_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "snapshot",
        description="Directory receiving the bundle files.",
    )
    config_file: str = Field(default="", description="Optional YAML rules file.")
    log_file: str = Field(default="", description="Log file path.")

    include: list[str] = Field(default_factory=list, description="Include regex (relative path).")
    exclude: list[str] = Field(default_factory=list, description="Exclude regex (relative path).")
    exclude_ext: list[str] = Field(default_factory=list, description="Extra excluded extensions.")
    exclude_name: list[str] = Field(default_factory=list, description="Extra excluded filenames.")
    exclude_dir: list[str] = Field(default_factory=list, description="Extra excluded directory names.")

    preserve_manifests: bool = Field(
        default=True,
        description="Always keep build/package manifest files.",
    )
    max_file_mb: float = Field(
        default_factory=lambda: _env_float("REPO_SNAPSHOT_MAX_FILE_MB", 5.0),
        gt=0,
        description="Files strictly larger are skipped.",
    )
    redact: bool = Field(default=True, description="Redact secret-like substrings.")

    git_log_count: int = Field(default=20, ge=0, description="Commits in the git excerpt (0 disables).")
    json_metadata: bool = Field(default=False, description="Write metadata.json.")
    zip: bool = Field(default=False, description="Pack the bundle into a zip archive.")
    no_sha: bool = Field(default=False, description="Do not compute sha256 digests.")
    workers: int = Field(
        default_factory=lambda: _env_int("REPO_SNAPSHOT_WORKERS", 1),
        ge=1,
        description="Worker threads for classification and reading.",
    )

    @property
    def max_file_bytes(self) -> int:
        """Size threshold in bytes derived from `max_file_mb`."""
        return int(self.max_file_mb * 1024 * 1024)
