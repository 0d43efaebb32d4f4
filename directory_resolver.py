"""
directory_resolver.py — Lookup tables built from the Directory (person registry).

Built fresh every run from the current Directory rows:
  by_id_and_name : match key (pid|namekey) -> DirectoryEntry   (rows with a PID only)
  by_name_only   : name key                -> DirectoryEntry
  by_person_key  : exact "last|first"      -> PID              (ID borrowing)
  id_set         : normalized PIDs present in the Directory

First occurrence wins on every duplicate key. Rows with neither a PID nor a
usable name are placeholders: kept in `entries` (flagged) but never indexed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from identity_keys import (
    match_key,
    normalized_name_key,
    normalized_personal_id,
    person_key,
    repair_name,
)

DIRECTORY_ATTRIBUTES = (
    "gender",
    "lineage",
    "age",
    "birthdate",
    "registration_date",
    "activity_level",
)


@dataclass(frozen=True)
class DirectoryEntry:
    row: int
    personal_id: str
    last_name: str
    first_name: str
    attributes: dict = field(default_factory=dict, compare=False)

    @property
    def normalized_id(self) -> str:
        return normalized_personal_id(self.personal_id)

    @property
    def name_key(self) -> Optional[str]:
        return normalized_name_key(self.last_name, self.first_name)

    @property
    def match_key(self) -> str:
        return match_key(self.personal_id, self.last_name, self.first_name)

    @property
    def is_placeholder(self) -> bool:
        return self.name_key is None


@dataclass(frozen=True)
class DirectoryIndex:
    entries: tuple
    by_id_and_name: dict
    by_name_only: dict
    by_person_key: dict
    id_set: frozenset

    def name_key_pids(self) -> dict[str, str]:
        """name key -> Directory PID; first row carrying a PID wins."""
        out: dict[str, str] = {}
        for e in self.entries:
            if e.normalized_id and not e.is_placeholder:
                out.setdefault(e.name_key, e.personal_id)
        return out

    def __len__(self) -> int:
        return len(self.entries)


def entry_from_row(row_index: int, rec: dict) -> DirectoryEntry:
    return DirectoryEntry(
        row=row_index,
        personal_id=repair_name(rec.get("personal_id")),
        last_name=repair_name(rec.get("last_name")),
        first_name=repair_name(rec.get("first_name")),
        attributes={a: rec.get(a) for a in DIRECTORY_ATTRIBUTES if a in rec},
    )


def build_directory_index(rows: Iterable[tuple[int, dict]]) -> DirectoryIndex:
    """rows: (row_index, {role: value}) in sheet order."""
    entries = []
    by_id_and_name: dict[str, DirectoryEntry] = {}
    by_name_only: dict[str, DirectoryEntry] = {}
    by_person_key: dict[str, str] = {}
    id_set: set[str] = set()

    for row_index, rec in rows:
        e = entry_from_row(row_index, rec)
        pid = e.normalized_id
        nk = e.name_key
        entries.append(e)

        if pid:
            id_set.add(pid)
        if nk is None:
            continue

        if pid:
            by_id_and_name.setdefault(e.match_key, e)
            pk = person_key(e.last_name, e.first_name)
            if pk:
                by_person_key.setdefault(pk, e.personal_id)
        by_name_only.setdefault(nk, e)

    return DirectoryIndex(
        entries=tuple(entries),
        by_id_and_name=by_id_and_name,
        by_name_only=by_name_only,
        by_person_key=by_person_key,
        id_set=frozenset(id_set),
    )
