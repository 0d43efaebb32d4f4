"""
roster_sync.py — Keep every roll sheet's roster in line with the Directory.

Union sync:
  union = every person with a PID in the Directory or in any roll/log table,
  keyed by match key (pid|namekey). Directory rows come first so their
  spelling is what gets written. Rows without a PID never feed the union.

  Per roll sheet: union persons missing from the sheet (by match key) are
  written into the first blank rows (no PID, no name, no ticked event cell),
  then appended.

Archival deletion:
  Archived registry rows -> name-only keys, EXCEPT rows whose status flag is
  one of OVERRIDE_FLAGS. Roll rows with those name keys are deleted
  (bottom-to-top; see tabular_store.GridTable.delete_rows). Not reversible.

Duplicates: the first row holding a match key wins for lookups. Later
duplicates stay where they are (qc_roster reports them).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from directory_resolver import DirectoryIndex
from identity_keys import normalized_personal_id
from tabular_store import ROLL_SCHEMA, GridTable, TableSchema, is_blank

OVERRIDE_FLAGS = (
    "RETURNED TO DIRECTORY - ACTIVE AGAIN",
    "DUPLICATE ARCHIVED RECORD - IGNORE",
    "ALREADY IN DIRECTORY - NO ACTION",
)

_RE_DASHES = re.compile(r"\s*[-\u2010-\u2015/]+\s*")
_WS = re.compile(r"\s+")


@dataclass(frozen=True)
class UnionPerson:
    match_key: str
    personal_id: str
    last_name: str
    first_name: str
    source: str


def normalize_flag(flag) -> str:
    s = str(flag or "").strip().upper()
    s = _RE_DASHES.sub(" - ", s)
    return _WS.sub(" ", s).strip()


_OVERRIDES = {normalize_flag(f) for f in OVERRIDE_FLAGS}


def is_override_flag(flag) -> bool:
    return normalize_flag(flag) in _OVERRIDES


# ------------------------------------------------------------
# Union
# ------------------------------------------------------------
def build_union(
    directory: DirectoryIndex,
    table_rows: Iterable[Iterable],
    archived_keys: Iterable[str] = (),
) -> dict[str, UnionPerson]:
    """
    table_rows: one iterable of SourceRow per table, in table order.
    archived_keys: name keys from archived_name_keys(); never part of the union.
    """
    union: dict[str, UnionPerson] = {}
    archived = set(archived_keys)

    for e in directory.entries:
        if not e.normalized_id or e.is_placeholder or e.name_key in archived:
            continue
        union.setdefault(e.match_key, UnionPerson(
            e.match_key, e.personal_id, e.last_name, e.first_name, "Directory",
        ))

    for rows in table_rows:
        for r in rows:
            if not normalized_personal_id(r.personal_id) or r.name_key is None:
                continue
            if r.name_key in archived:
                continue
            union.setdefault(r.match_key, UnionPerson(
                r.match_key, r.personal_id, r.last_name, r.first_name, r.table,
            ))
    return union


def present_keys(rows: Iterable) -> set[str]:
    return {r.match_key for r in rows if normalized_personal_id(r.personal_id) and r.name_key is not None}


def blank_rows(rows: Iterable, table: Optional[GridTable] = None, schema: TableSchema = ROLL_SCHEMA) -> list[int]:
    """Rows with no PID and no name. With a table, any event cell still filled disqualifies the row."""
    free = [r.row for r in rows if r.is_blank and not normalized_personal_id(r.personal_id)]
    if table is None or not schema.first_event_column:
        return free
    last_col = table.last_column()
    return [
        row for row in free
        if all(is_blank(table.cell(row, c)) for c in range(schema.first_event_column, last_col + 1))
    ]


def append_missing(
    table: GridTable,
    rows: list,
    union: dict[str, UnionPerson],
    schema: TableSchema = ROLL_SCHEMA,
) -> list[UnionPerson]:
    """Write union persons absent from this table. Returns who was added."""
    have = present_keys(rows)
    missing = [p for k, p in union.items() if k not in have]
    if not missing:
        return []

    free = blank_rows(rows, table, schema)
    next_row = max(table.last_row() + 1, schema.first_data_row)
    pid_col, last_col, first_col = schema.col("personal_id"), schema.col("last_name"), schema.col("first_name")

    for p in missing:
        if free:
            row = free.pop(0)
        else:
            row = next_row
            next_row += 1
        table.set_cell(row, pid_col, p.personal_id)
        table.set_cell(row, last_col, p.last_name)
        table.set_cell(row, first_col, p.first_name)
    return missing


# ------------------------------------------------------------
# Archival deletion
# ------------------------------------------------------------
def archived_name_keys(archived_rows: Iterable) -> set[str]:
    keys = set()
    for r in archived_rows:
        if is_override_flag(r.flag):
            continue
        nk = r.name_key
        if nk:
            keys.add(nk)
    return keys


def rows_to_delete(rows: Iterable, name_keys: set[str]) -> list[int]:
    return [r.row for r in rows if r.name_key and r.name_key in name_keys]


def delete_archived(table: GridTable, rows: list, name_keys: set[str]) -> int:
    targets = rows_to_delete(rows, name_keys)
    if not targets:
        return 0
    return table.delete_rows(targets)


def duplicate_rows(rows: Iterable) -> list[tuple[str, int, int]]:
    """(match key, first row, duplicate row) for each later duplicate in one table."""
    first: dict[str, int] = {}
    dups = []
    for r in rows:
        if r.name_key is None:
            continue
        k = r.match_key
        if k in first:
            dups.append((k, first[k], r.row))
        else:
            first[k] = r.row
    return dups
