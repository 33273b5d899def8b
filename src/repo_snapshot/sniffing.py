from __future__ import annotations

from enum import StrEnum, auto
from typing import TYPE_CHECKING

from repo_snapshot.logging import logger

if TYPE_CHECKING:
    from pathlib import Path

SAMPLE_SIZE = 8000
CONTROL_BYTE_RATIO = 0.30

_UTF16_BOMS = (b"\xff\xfe", b"\xfe\xff")
# NUL, 1-8 and 14-31: tab, newline, vertical tab, form feed and carriage return are text.
_CONTROL_BYTES = frozenset({0, *range(1, 9), *range(14, 32)})


class FileKind(StrEnum):
    """Result of sniffing a file's leading bytes."""

    TEXT = auto()
    BINARY = auto()


def control_byte_ratio(sample: bytes) -> float:
    """Fraction of bytes in `sample` that are control bytes atypical in text.

    Args:
        sample (bytes): the bytes to inspect

    Returns:
        float: ratio in [0, 1]; 0.0 for an empty sample
    """
    if not sample:
        return 0.0
    return sum(b in _CONTROL_BYTES for b in sample) / len(sample)


def classify(sample: bytes) -> FileKind:
    """Heuristically classify a byte sample as text or binary.

    Only the first `SAMPLE_SIZE` bytes are considered. An empty sample and a
    sample starting with a UTF-16 byte-order mark are text. Otherwise the
    sample is binary when more than `CONTROL_BYTE_RATIO` of its bytes are
    control bytes. UTF-8 multibyte sequences never count since their bytes
    are all >= 0x80.

    Args:
        sample (bytes): leading bytes of a file

    Returns:
        FileKind: `FileKind.TEXT` or `FileKind.BINARY`
    """
    sample = sample[:SAMPLE_SIZE]
    if not sample or sample.startswith(_UTF16_BOMS):
        return FileKind.TEXT
    if control_byte_ratio(sample) > CONTROL_BYTE_RATIO:
        return FileKind.BINARY
    return FileKind.TEXT


def sniff_file(path: Path) -> FileKind:
    """Classify a file from its leading bytes, failing open to text.

    An unreadable file is reported as text so that it is never silently
    dropped; reading its content later surfaces the error instead.

    Args:
        path (Path): the file to sniff

    Returns:
        FileKind: the classification of the file's first `SAMPLE_SIZE` bytes
    """
    try:
        with path.open("rb") as f:
            sample = f.read(SAMPLE_SIZE)
    except OSError as e:
        logger.debug("sniff_failed", path=str(path), error=str(e))
        return FileKind.TEXT
    return classify(sample)
