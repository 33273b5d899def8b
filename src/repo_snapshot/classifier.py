"""Keep/skip decisions for scanned files.

Rules are evaluated in a fixed order and the first one that fires wins:

1. allowlisted manifest (when preservation is on): keep, nothing else is checked
2. user include match: keep past the *policy* rules (3-6) only
3. excluded extension
4. excluded filename (exact name or `.env` family glob)
5. excluded directory component
6. user exclude match
7. size above the threshold
8. binary content

Rules 7 and 8 are *content* rules: a user include does not bypass them.
"""

from __future__ import annotations

import fnmatch
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from repo_snapshot.config import Decision, FileRecord, RuleSet, SkipReason
from repo_snapshot.sniffing import FileKind, sniff_file

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    Sniffer = Callable[[Path], FileKind]


def is_preserved_manifest(record: FileRecord, rules: RuleSet) -> bool:
    return rules.preserve_manifests and record.name in rules.manifest_allowlist


def matches_user_include(record: FileRecord, rules: RuleSet) -> bool:
    return any(p.search(record.rel) for p in rules.user_include)


def has_excluded_extension(record: FileRecord, rules: RuleSet, _sniffer: Sniffer) -> bool:
    return bool(record.extension) and record.extension in rules.excluded_extensions


def has_excluded_filename(record: FileRecord, rules: RuleSet, _sniffer: Sniffer) -> bool:
    if record.name in rules.excluded_filenames:
        return True
    return any(fnmatch.fnmatchcase(record.name, g) for g in rules.excluded_filename_globs)


def is_in_excluded_dir(record: FileRecord, rules: RuleSet, _sniffer: Sniffer) -> bool:
    return any(part in rules.excluded_dir_names for part in record.parent_dirs)


def matches_user_exclude(record: FileRecord, rules: RuleSet, _sniffer: Sniffer) -> bool:
    return any(p.search(record.rel) for p in rules.user_exclude)


def is_too_big(record: FileRecord, rules: RuleSet, _sniffer: Sniffer) -> bool:
    return record.size > rules.max_file_bytes


def looks_binary(record: FileRecord, _rules: RuleSet, sniffer: Sniffer) -> bool:
    return sniffer(record.path) is FileKind.BINARY


@dataclass(frozen=True)
class ClassificationRule:
    """A skip rule: when `predicate` holds, the file is skipped for `reason`."""

    reason: SkipReason
    predicate: Callable[[FileRecord, RuleSet, Sniffer], bool]

    def applies(self, record: FileRecord, rules: RuleSet, sniffer: Sniffer) -> bool:
        return self.predicate(record, rules, sniffer)


POLICY_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(SkipReason.EXTENSION, has_excluded_extension),
    ClassificationRule(SkipReason.FILENAME, has_excluded_filename),
    ClassificationRule(SkipReason.DIRECTORY, is_in_excluded_dir),
    ClassificationRule(SkipReason.USER_EXCLUDE, matches_user_exclude),
)

CONTENT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(SkipReason.SIZE, is_too_big),
    ClassificationRule(SkipReason.BINARY, looks_binary),
)


def rule_chain(record: FileRecord, rules: RuleSet) -> tuple[ClassificationRule, ...]:
    """Return the skip rules that apply to `record`, in evaluation order.

    Args:
        record (FileRecord): the file being classified
        rules (RuleSet): the active policy

    Returns:
        tuple[ClassificationRule, ...]: empty for a preserved manifest, only the
            content rules for a user-included path, all rules otherwise
    """
    if is_preserved_manifest(record, rules):
        return ()
    if matches_user_include(record, rules):
        return CONTENT_RULES
    return POLICY_RULES + CONTENT_RULES


def decide(record: FileRecord, rules: RuleSet, *, sniffer: Sniffer = sniff_file) -> Decision:
    """Decide whether `record` is kept in the snapshot, and why not if skipped.

    Args:
        record (FileRecord): the file to classify
        rules (RuleSet): the active policy
        sniffer (Sniffer): binary sniffer, only called when every earlier rule passed

    Returns:
        Decision: keep, or skip with the reason of the first rule that fired
    """
    for rule in rule_chain(record, rules):
        if rule.applies(record, rules, sniffer):
            return Decision.skipped(rule.reason)
    return Decision.kept()


class SkipCounter:
    """Running tally of decisions, with one bucket per skip reason."""

    def __init__(self) -> None:
        self.kept = 0
        self._skipped: Counter[SkipReason] = Counter({reason: 0 for reason in SkipReason})

    def record(self, decision: Decision) -> None:
        if decision.keep:
            self.kept += 1
        else:
            self._skipped[decision.reason] += 1

    def update(self, decisions: Iterable[Decision]) -> None:
        for decision in decisions:
            self.record(decision)

    @property
    def skipped(self) -> int:
        return sum(self._skipped.values())

    @property
    def scanned(self) -> int:
        return self.kept + self.skipped

    def count(self, reason: SkipReason) -> int:
        return self._skipped[reason]

    def as_dict(self) -> dict[str, int]:
        """Skip counts keyed by the reason vocabulary, in enumeration order."""
        return {reason.value: self._skipped[reason] for reason in SkipReason}
