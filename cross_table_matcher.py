"""
cross_table_matcher.py — Resolve source rows (rolls, log, exports) against the Directory.

Fallback chain:
  1) PID present and pid|namekey found in by_id_and_name   -> match ("id_name")
  2) namekey found in by_name_only                         -> match ("name_only")
  3) otherwise                                             -> Guest

Name-only matches can join two different people who share a first word of
both names. Such collisions are not detected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from directory_resolver import DirectoryEntry, DirectoryIndex
from identity_keys import (
    is_unmatchable_key,
    match_key,
    normalized_name_key,
    normalized_personal_id,
)

MATCH_ID_NAME = "id_name"
MATCH_NAME_ONLY = "name_only"

ARCHIVED_LEVEL = "Archived"


@dataclass(frozen=True)
class MatchResult:
    record_key: str
    entry: Optional[DirectoryEntry] = None
    via: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.entry is not None

    @property
    def is_guest(self) -> bool:
        return self.entry is None


@dataclass
class MatchReport:
    results: list = field(default_factory=list)
    claimed: set = field(default_factory=set)

    @property
    def members(self) -> int:
        return sum(1 for r in self.results if r is not None and r.matched)

    @property
    def guests(self) -> int:
        return sum(1 for r in self.results if r is not None and r.is_guest)

    def classification(self) -> list[Optional[str]]:
        return [None if r is None else ("member" if r.matched else "guest") for r in self.results]


def match_record(index: DirectoryIndex, pid, last, first) -> Optional[MatchResult]:
    """None when the record has neither PID nor name (unresolvable, skip)."""
    key = match_key(pid, last, first)
    if is_unmatchable_key(key):
        return None

    if normalized_personal_id(pid):
        e = index.by_id_and_name.get(key)
        if e is not None:
            return MatchResult(record_key=key, entry=e, via=MATCH_ID_NAME)

    nk = normalized_name_key(last, first)
    if nk is not None:
        e = index.by_name_only.get(nk)
        if e is not None:
            return MatchResult(record_key=key, entry=e, via=MATCH_NAME_ONLY)

    return MatchResult(record_key=key)


def match_records(index: DirectoryIndex, records: Iterable) -> MatchReport:
    """records: objects with personal_id / last_name / first_name."""
    report = MatchReport()
    for r in records:
        res = match_record(index, r.personal_id, r.last_name, r.first_name)
        report.results.append(res)
        if res is not None and res.matched:
            report.claimed.add(res.entry.match_key)
    return report


def resolved_key(index: DirectoryIndex, pid, last, first) -> Optional[str]:
    """Identity key for aggregation: Directory entry key when matched, else the record's own key."""
    res = match_record(index, pid, last, first)
    if res is None:
        return None
    return res.entry.match_key if res.matched else res.record_key


def archival_candidates(index: DirectoryIndex, claimed: set[str]) -> list[DirectoryEntry]:
    return [
        e for e in index.entries
        if not e.is_placeholder and e.match_key not in claimed
    ]


def directory_activity_levels(
    index: DirectoryIndex,
    claimed: set[str],
    tiers: dict[str, str],
) -> list[tuple[int, str]]:
    """
    (row, ActivityLevel) for every Directory entry:
      placeholder rows -> ""          (cleared)
      never claimed    -> "Archived"
      claimed          -> tier from tiers[match_key] (blank if no events counted)
    """
    out = []
    for e in index.entries:
        if e.is_placeholder:
            out.append((e.row, ""))
        elif e.match_key not in claimed:
            out.append((e.row, ARCHIVED_LEVEL))
        else:
            out.append((e.row, tiers.get(e.match_key, "")))
    return out
