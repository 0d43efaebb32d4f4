"""
source_tables.py — Person rows and attendance events read out of schema-described tables.

Reads:
  Directory       -> (row, {role: value}) for directory_resolver
  Roll - * sheets -> SourceRow per data row + AttendanceEvent per ticked cell
  Attendance Log  -> SourceRow per data row + AttendanceEvent per check-in
  Archived        -> SourceRow + status flag

Writes back (in place):
  PersonalId cells for rows that were just given an ID
  Remarks cells for log rows whose EventDate cannot be parsed
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

import pandas as pd

from attendance_stats import AttendanceEvent
from identity_keys import match_key, normalized_name_key, person_key, repair_name
from tabular_store import (
    ATTENDANCE_LOG_SCHEMA,
    DIRECTORY_SCHEMA,
    ROLL_SCHEMA,
    ROLL_SHEET_PREFIX,
    GridTable,
    TableSchema,
    is_blank,
)

ATTENDED_MARKERS = {"true", "1", "x", "✓", "✔", "yes", "y", "present", "p"}
NOT_ATTENDED_STATUSES = {"absent", "cancelled", "canceled", "void"}
INVALID_DATE_REMARK = "Invalid event date"


@dataclass
class SourceRow:
    table: str
    row: int
    personal_id: str
    last_name: str
    first_name: str
    flag: str = ""

    @property
    def is_blank(self) -> bool:
        return not self.last_name and not self.first_name

    @property
    def match_key(self) -> str:
        return match_key(self.personal_id, self.last_name, self.first_name)

    @property
    def name_key(self) -> Optional[str]:
        return normalized_name_key(self.last_name, self.first_name)

    @property
    def person_key(self) -> str:
        return person_key(self.last_name, self.first_name)


@dataclass(frozen=True)
class EventColumn:
    col: int
    event_name: str
    event_date: Optional[date]
    raw_date: object = None


def parse_date(value) -> Optional[date]:
    if is_blank(value):
        return None
    if isinstance(value, bool):
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.date()


def is_attended(value) -> bool:
    if value is True:
        return True
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 1
    return str(value).strip().lower() in ATTENDED_MARKERS


def _text(table: GridTable, row: int, col: Optional[int]) -> str:
    if not col:
        return ""
    return repair_name(table.cell(row, col))


def read_person_rows(table: GridTable, schema: TableSchema) -> list[SourceRow]:
    out = []
    for r in range(schema.first_data_row, table.last_row() + 1):
        out.append(SourceRow(
            table=table.name,
            row=r,
            personal_id=_text(table, r, schema.col("personal_id")),
            last_name=_text(table, r, schema.col("last_name")),
            first_name=_text(table, r, schema.col("first_name")),
            flag=_text(table, r, schema.col("flag")),
        ))
    return out


def read_directory_rows(table: GridTable, schema: TableSchema = DIRECTORY_SCHEMA) -> list[tuple[int, dict]]:
    out = []
    for r in range(schema.first_data_row, table.last_row() + 1):
        out.append((r, {role: table.cell(r, c) for role, c in schema.columns.items()}))
    return out


def write_personal_id(table: GridTable, schema: TableSchema, row: int, pid: str) -> None:
    table.set_cell(row, schema.col("personal_id"), pid)


# ------------------------------------------------------------
# Roll sheets (one column per event occurrence)
# ------------------------------------------------------------
def read_event_columns(table: GridTable, schema: TableSchema = ROLL_SCHEMA) -> tuple[list[EventColumn], list[EventColumn]]:
    """-> (usable columns, columns with a name but a malformed/missing date)."""
    good, bad = [], []
    for c in range(schema.first_event_column, table.last_column() + 1):
        raw_date = table.cell(schema.dates_row, c)
        name = repair_name(table.cell(schema.event_names_row, c))
        if is_blank(raw_date) and not name:
            continue
        d = parse_date(raw_date)
        ec = EventColumn(col=c, event_name=name, event_date=d, raw_date=raw_date)
        (good if d is not None else bad).append(ec)
    return good, bad


def roll_events(
    table: GridTable,
    resolve_key: Callable[[str, str, str], Optional[str]],
    schema: TableSchema = ROLL_SCHEMA,
) -> list[AttendanceEvent]:
    columns, _bad = read_event_columns(table, schema)
    if not columns:
        return []
    events = []
    for sr in read_person_rows(table, schema):
        key = resolve_key(sr.personal_id, sr.last_name, sr.first_name)
        if not key:
            continue
        for ec in columns:
            if not is_attended(table.cell(sr.row, ec.col)):
                continue
            events.append(AttendanceEvent(
                match_key=key,
                event_name=ec.event_name or table.name[len(ROLL_SHEET_PREFIX):],
                event_date=ec.event_date,
                source_table=table.name,
                personal_id=sr.personal_id,
                last_name=sr.last_name,
                first_name=sr.first_name,
            ))
    return events


# ------------------------------------------------------------
# Attendance Log (one row per check-in)
# ------------------------------------------------------------
def log_events(
    table: GridTable,
    resolve_key: Callable[[str, str, str], Optional[str]],
    schema: TableSchema = ATTENDANCE_LOG_SCHEMA,
) -> tuple[list[AttendanceEvent], list[int]]:
    """-> (events, rows flagged with an invalid date remark)."""
    events, flagged = [], []
    remarks_col = schema.col("remarks")
    for sr in read_person_rows(table, schema):
        key = resolve_key(sr.personal_id, sr.last_name, sr.first_name)
        if not key:
            continue
        status = _text(table, sr.row, schema.col("status")).lower()
        if status in NOT_ATTENDED_STATUSES:
            continue

        raw_date = table.cell(sr.row, schema.col("event_date"))
        d = parse_date(raw_date)
        if d is None:
            if remarks_col:
                existing = _text(table, sr.row, remarks_col)
                if INVALID_DATE_REMARK not in existing:
                    table.set_cell(
                        sr.row, remarks_col,
                        f"{existing}; {INVALID_DATE_REMARK}" if existing else INVALID_DATE_REMARK,
                    )
            flagged.append(sr.row)
            continue

        event_name = _text(table, sr.row, schema.col("event_name")) or _text(table, sr.row, schema.col("event_type"))
        events.append(AttendanceEvent(
            match_key=key,
            event_name=event_name,
            event_date=d,
            source_table=table.name,
            personal_id=sr.personal_id,
            last_name=sr.last_name,
            first_name=sr.first_name,
        ))
    return events, flagged
