from __future__ import annotations

import re
from functools import reduce
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from collections.abc import Sequence

PLACEHOLDER = "[REDACTED]"
MIN_SECRET_VALUE_LENGTH = 8
MAX_NAME_AFFIX_LENGTH = 64


class SecretPattern(BaseModel):
    """A named secret matcher; its position in a pattern list is significant."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    regex: re.Pattern[str]


# Narrow, high-confidence patterns run first. Value character classes never
# include "[" or "]", so a placeholder is not consumed again by a later pattern.
DEFAULT_SECRET_PATTERNS: tuple[SecretPattern, ...] = (
    SecretPattern(
        name="pem-private-key",
        regex=re.compile(
            r"-----BEGIN (?:[A-Z0-9]+ )*PRIVATE KEY-----[\s\S]*-----END (?:[A-Z0-9]+ )*PRIVATE KEY-----",
        ),
    ),
    SecretPattern(name="aws-access-key-id", regex=re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b")),
    SecretPattern(name="google-api-key", regex=re.compile(r"\bAIza[0-9A-Za-z_-]{35}\b")),
    SecretPattern(
        name="jwt",
        regex=re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}"),
    ),
    SecretPattern(
        name="connection-string",
        regex=re.compile(
            r"(?i)\b(?:postgres(?:ql)?|mysql|mariadb|mongodb(?:\+srv)?|rediss?|amqps?|mssql)"
            r"://[^\s:/@\[\]]+:[^\s@/\[\]]+@[^\s'\"`<>\[\]]+",
        ),
    ),
    SecretPattern(name="bearer-token", regex=re.compile(r"\bBearer\s+[A-Za-z0-9_\-.=~+/]{20,}")),
    SecretPattern(
        name="secret-assignment",
        regex=re.compile(
            rf"(?i)(?<![\w.-])[\w.-]{{0,{MAX_NAME_AFFIX_LENGTH}}}"
            r"(?:secret|passw(?:or)?d|pwd|token|api[_-]?key|access[_-]?key|private[_-]?key)"
            rf"[\w.-]{{0,{MAX_NAME_AFFIX_LENGTH}}}"
            r"['\"]?\s*[:=]\s*['\"]?"
            rf"[^\s'\"\[\]]{{{MIN_SECRET_VALUE_LENGTH},}}['\"]?",
        ),
    ),
)


def redact_with_count(
    text: str,
    patterns: Sequence[SecretPattern] = DEFAULT_SECRET_PATTERNS,
    *,
    enabled: bool = True,
) -> tuple[str, int]:
    """Redact secret-like substrings and report how many were replaced.

    Patterns are applied one after the other: pattern *i + 1* only sees the
    output of pattern *i*, so the order of `patterns` changes the result.

    Args:
        text (str): the content to redact
        patterns (Sequence[SecretPattern]): ordered matchers
        enabled (bool): when False, `text` is returned unchanged

    Returns:
        tuple[str, int]: the redacted text and the number of replacements
    """
    if not enabled or not text:
        return text, 0

    def step(acc: tuple[str, int], pattern: SecretPattern) -> tuple[str, int]:
        current, hits = acc
        current, n = pattern.regex.subn(PLACEHOLDER, current)
        return current, hits + n

    return reduce(step, patterns, (text, 0))


def redact(
    text: str,
    patterns: Sequence[SecretPattern] = DEFAULT_SECRET_PATTERNS,
    *,
    enabled: bool = True,
) -> str:
    """Replace secret-like substrings of `text` with `PLACEHOLDER`."""
    return redact_with_count(text, patterns, enabled=enabled)[0]
