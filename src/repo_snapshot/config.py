from __future__ import annotations

import re
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from repo_snapshot.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterable

_ = Path()


class SkipReason(StrEnum):
    """Why a file was left out of the snapshot.

    The string values are the public vocabulary: they appear verbatim in the
    summary and in the JSON metadata.
    """

    EXTENSION = "extension"
    FILENAME = "filename"
    DIRECTORY = "directory"
    USER_EXCLUDE = "user-exclude"
    SIZE = "size"
    BINARY = "binary"


DEFAULT_EXCLUDED_EXTENSIONS: frozenset[str] = frozenset({
    # images
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".icns", ".tif", ".tiff", ".webp", ".psd", ".heic",
    # compiled objects and binaries
    ".exe", ".dll", ".so", ".dylib", ".o", ".obj", ".a", ".lib", ".class", ".jar", ".war",
    ".pyc", ".pyo", ".pyd", ".wasm", ".bin", ".dat",
    # archives
    ".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar", ".zst", ".whl", ".egg",
    # media
    ".mp3", ".mp4", ".wav", ".flac", ".ogg", ".avi", ".mov", ".mkv", ".webm",
    # fonts
    ".ttf", ".otf", ".woff", ".woff2", ".eot",
    # documents and data stores
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".db", ".sqlite", ".sqlite3", ".parquet", ".pkl", ".npy", ".npz", ".h5",
    # minified bundles and maps
    ".map",
})

DEFAULT_EXCLUDED_FILENAMES: frozenset[str] = frozenset({
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "Pipfile.lock",
    "uv.lock",
    "Cargo.lock",
    "composer.lock",
    "Gemfile.lock",
    "go.sum",
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",
    ".env",
    ".env.local",
    ".env.development",
    ".env.production",
    ".env.test",
})

# The `.env` family: `.env.<stage>` and `<name>.env` files carry secrets too.
DEFAULT_EXCLUDED_FILENAME_GLOBS: tuple[str, ...] = (".env.*", "*.env")

DEFAULT_EXCLUDED_DIRS: frozenset[str] = frozenset({
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "env",
    "__pycache__",
    ".mypy_cache",
    ".ruff_cache",
    ".pytest_cache",
    ".tox",
    ".nox",
    ".ipynb_checkpoints",
    "node_modules",
    "bower_components",
    "dist",
    "build",
    "target",
    "out",
    ".next",
    ".nuxt",
    ".gradle",
    ".idea",
    ".vscode",
    "coverage",
    "htmlcov",
})

MANIFEST_ALLOWLIST: tuple[str, ...] = (
    "pyproject.toml",
    "setup.py",
    "setup.cfg",
    "requirements.txt",
    "requirements-dev.txt",
    "Pipfile",
    "package.json",
    "tsconfig.json",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "build.gradle",
    "build.gradle.kts",
    "settings.gradle",
    "Gemfile",
    "composer.json",
    "CMakeLists.txt",
    "Makefile",
    "Dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
)

EXT2LANG: dict[str, str] = {
    ".bash": "bash",
    ".c": "c",
    ".cc": "cpp",
    ".cfg": "ini",
    ".conf": "ini",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".css": "css",
    ".go": "go",
    ".h": "c",
    ".hpp": "cpp",
    ".html": "html",
    ".ini": "ini",
    ".java": "java",
    ".js": "javascript",
    ".json": "json",
    ".jsx": "jsx",
    ".kt": "kotlin",
    ".md": "markdown",
    ".mjs": "javascript",
    ".php": "php",
    ".py": "python",
    ".rb": "ruby",
    ".rs": "rust",
    ".sh": "bash",
    ".sql": "sql",
    ".swift": "swift",
    ".toml": "toml",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".zsh": "bash",
}

_NAME2LANG: dict[str, str] = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
}


class FileRecord(BaseModel):
    """Lightweight metadata for one file discovered under the scan root.

    Attributes:
        path: Absolute path to the file on disk.
        rel: Path relative to the scan root, with POSIX separators.
        size: File size in bytes.
        mtime: POSIX mtime (float seconds since epoch).
        sha256: SHA-256 hex digest of file contents (empty unless computed).
        unreadable: Why the entry cannot be read at all (dangling symlink,
            special file, failed stat); empty for regular files.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="File path relative to the scan root")
    size: int = Field(..., ge=0, description="File size in bytes")
    mtime: float = Field(default=0.0, description="POSIX modification time (seconds)")
    sha256: str = Field("", description="SHA-256 hex digest (optional)")
    unreadable: str = Field("", description="Reason the entry cannot be read (empty when readable)")

    @computed_field
    @property
    def name(self) -> str:
        """Basename of the file."""
        return self.path.name

    @computed_field
    @property
    def extension(self) -> str:
        """Lowercased, dot-prefixed suffix; empty for dotfiles such as `.env`."""
        return self.path.suffix.lower()

    @computed_field
    @property
    def language(self) -> str:
        """Suggested code fence language (may be empty)."""
        return _NAME2LANG.get(self.name.lower()) or EXT2LANG.get(self.extension, "")

    @property
    def parent_dirs(self) -> tuple[str, ...]:
        """Directory components between the scan root and the file."""
        return tuple(self.rel.split("/")[:-1])


class Decision(BaseModel):
    """Outcome of classifying one file: kept, or skipped for exactly one reason."""

    model_config = ConfigDict(frozen=True)

    keep: bool
    reason: SkipReason | None = None

    @model_validator(mode="after")
    def _check_reason(self) -> Self:
        if self.keep and self.reason is not None:
            msg = "a kept file cannot carry a skip reason"
            raise ValueError(msg)
        if not self.keep and self.reason is None:
            msg = "a skipped file needs a skip reason"
            raise ValueError(msg)
        return self

    @classmethod
    def kept(cls) -> Decision:
        return cls(keep=True)

    @classmethod
    def skipped(cls, reason: SkipReason) -> Decision:
        return cls(keep=False, reason=reason)


def compile_patterns(patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    """Compile user-supplied regexes, failing fast on the first invalid one.

    Args:
        patterns (Iterable[str]): raw regex strings; blank entries are ignored

    Raises:
        ConfigError: if a pattern is not a valid regular expression

    Returns:
        tuple[re.Pattern[str], ...]: the compiled patterns, in input order
    """
    compiled: list[re.Pattern[str]] = []
    for raw in patterns:
        pattern = (raw or "").strip()
        if not pattern:
            continue
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise ConfigError(pattern=pattern, message=f"Invalid regular expression ({e})") from e
    return tuple(compiled)


def normalize_extension(ext: str) -> str:
    """Lowercase an extension and make sure it is dot-prefixed."""
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


class RuleSet(BaseModel):
    """Immutable filtering policy applied to every scanned file.

    Use `RuleSet.build` to merge caller overrides with the module defaults; it
    validates user regexes before any scanning starts.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    excluded_extensions: frozenset[str] = DEFAULT_EXCLUDED_EXTENSIONS
    excluded_filenames: frozenset[str] = DEFAULT_EXCLUDED_FILENAMES
    excluded_filename_globs: tuple[str, ...] = DEFAULT_EXCLUDED_FILENAME_GLOBS
    excluded_dir_names: frozenset[str] = DEFAULT_EXCLUDED_DIRS
    manifest_allowlist: tuple[str, ...] = MANIFEST_ALLOWLIST
    preserve_manifests: bool = True
    user_include: tuple[re.Pattern[str], ...] = ()
    user_exclude: tuple[re.Pattern[str], ...] = ()
    max_file_bytes: int = Field(default=5 * 1024 * 1024, ge=0)

    @classmethod
    def build(  # noqa: PLR0913
        cls,
        *,
        include: Iterable[str] = (),
        exclude: Iterable[str] = (),
        extra_extensions: Iterable[str] = (),
        extra_filenames: Iterable[str] = (),
        extra_dir_names: Iterable[str] = (),
        preserve_manifests: bool = True,
        max_file_bytes: int = 5 * 1024 * 1024,
    ) -> RuleSet:
        """Build a rule set from the defaults plus caller overrides.

        Args:
            include (Iterable[str]): regexes that force-keep a relative path past
                the extension/filename/directory/user-exclude rules
            exclude (Iterable[str]): regexes that skip a relative path
            extra_extensions (Iterable[str]): extensions added to the default exclusions
            extra_filenames (Iterable[str]): exact basenames added to the default exclusions
            extra_dir_names (Iterable[str]): directory names added to the default exclusions
            preserve_manifests (bool): keep allowlisted manifests unconditionally
            max_file_bytes (int): files strictly larger than this are skipped

        Raises:
            ConfigError: if an include or exclude pattern is not a valid regex

        Returns:
            RuleSet: the frozen rule set
        """
        return cls(
            excluded_extensions=DEFAULT_EXCLUDED_EXTENSIONS
            | {normalize_extension(e) for e in extra_extensions if e.strip()},
            excluded_filenames=DEFAULT_EXCLUDED_FILENAMES | {n.strip() for n in extra_filenames if n.strip()},
            excluded_dir_names=DEFAULT_EXCLUDED_DIRS
            | {d.strip().strip("/\\") for d in extra_dir_names if d.strip()},
            preserve_manifests=preserve_manifests,
            user_include=compile_patterns(include),
            user_exclude=compile_patterns(exclude),
            max_file_bytes=max_file_bytes,
        )
