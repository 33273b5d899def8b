from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RepoSnapshotError(Exception):
    """Base exception for errors in the repo_snapshot module."""

    def __str__(self) -> str:
        message = getattr(self, "message", "")
        return message or self.__class__.__name__


@dataclass(frozen=True)
class ConfigError(RepoSnapshotError):
    """Raised when user-supplied configuration is invalid (e.g. a bad regex)."""

    pattern: str
    message: str

    def __str__(self) -> str:
        return f"{self.message}: {self.pattern!r}"


@dataclass(frozen=True)
class ReadError(RepoSnapshotError):
    """Raised when a kept file cannot be read while extracting its content."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"cannot read {self.path}: {self.reason}"


@dataclass(frozen=True)
class OutputDirectoryError(RepoSnapshotError):
    """Raised when the bundle destination cannot be created or written to."""

    folder: Path
    reason: str

    def __str__(self) -> str:
        return f"cannot create output directory {self.folder}: {self.reason}"


@dataclass(frozen=True)
class GitCommandError(RepoSnapshotError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        return f"`{self.command}` exited with {self.returncode}: {self.stderr.strip()}"


@dataclass(frozen=True)
class NotAGitRepositoryError(RepoSnapshotError):
    """Raised when the specified directory is not a Git repository."""

    folder: Path
    message: str = "The specified directory is not a Git repository."
