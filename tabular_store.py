"""
tabular_store.py — Row/column grid access to named tables, plus the table layouts.

Two backends share one interface (1-based rows/columns, like openpyxl):
  WorkbookStore / WorkbookTable  : .xlsx on disk via openpyxl
  MemoryStore / MemoryTable      : list-of-lists, for tests and dry runs

Row deletion always happens bottom-to-top here, so callers can pass the row
numbers they collected during a scan without adjusting for shifts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

# Excel/openpyxl rejects control chars: 0x00-0x08, 0x0B-0x0C, 0x0E-0x1F
_ILLEGAL_XLSX_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")


def sanitize_cell(v):
    if isinstance(v, str):
        return _ILLEGAL_XLSX_RE.sub("", v)
    if v is None or v is pd.NaT:
        return None
    if isinstance(v, pd.Timestamp):
        return v.to_pydatetime()
    if isinstance(v, (date, datetime)):
        return v
    if pd.api.types.is_scalar(v) and pd.isna(v):
        return None
    if hasattr(v, "item"):
        # numpy scalars
        return v.item()
    return v


def is_blank(v) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return v.strip() == ""
    if isinstance(v, float):
        return pd.isna(v)
    return False


# ------------------------------------------------------------
# Table layouts
# ------------------------------------------------------------
@dataclass(frozen=True)
class TableSchema:
    first_data_row: int
    columns: dict = field(default_factory=dict)   # role -> column index (1-based)
    dates_row: Optional[int] = None               # roll tables only
    event_names_row: Optional[int] = None
    first_event_column: Optional[int] = None

    def col(self, role: str) -> Optional[int]:
        return self.columns.get(role)

    def headers(self) -> list[str]:
        by_col = {c: role for role, c in self.columns.items()}
        width = max(by_col) if by_col else 0
        return [HEADER_LABELS.get(by_col.get(i, ""), "") for i in range(1, width + 1)]


HEADER_LABELS = {
    "personal_id": "PersonalId",
    "last_name": "LastName",
    "first_name": "FirstName",
    "gender": "Gender",
    "lineage": "Lineage",
    "age": "Age",
    "birthdate": "Birthdate",
    "registration_date": "RegistrationDate",
    "activity_level": "ActivityLevel",
    "event_type": "EventType",
    "event_name": "EventName",
    "event_date": "EventDate",
    "timestamp": "Timestamp",
    "status": "Status",
    "remarks": "Remarks",
    "flag": "Status Flag",
}

DIRECTORY_SHEET = "Directory"
ATTENDANCE_LOG_SHEET = "Attendance Log"
ARCHIVED_SHEET = "Archived"
STATS_SHEET = "Stats"
GUESTS_SHEET = "Guests"
CONFIG_SHEET = "Config"
DIRECTORY_REF_CELL = (1, 2)    # Config!B1
ROLL_SHEET_PREFIX = "Roll - "

DIRECTORY_SCHEMA = TableSchema(
    first_data_row=2,
    columns={
        "personal_id": 1, "last_name": 2, "first_name": 3, "gender": 4,
        "lineage": 5, "age": 6, "birthdate": 7, "registration_date": 8,
        "activity_level": 9,
    },
)

# Row 1: event dates, row 2: event names, people from row 3; events from column D.
ROLL_SCHEMA = TableSchema(
    first_data_row=3,
    columns={"personal_id": 1, "last_name": 2, "first_name": 3},
    dates_row=1,
    event_names_row=2,
    first_event_column=4,
)

ATTENDANCE_LOG_SCHEMA = TableSchema(
    first_data_row=2,
    columns={
        "personal_id": 1, "last_name": 2, "first_name": 3, "event_type": 4,
        "event_name": 5, "event_date": 6, "timestamp": 7, "status": 8,
        "remarks": 9,
    },
)

ARCHIVED_SCHEMA = TableSchema(
    first_data_row=2,
    columns={"personal_id": 1, "last_name": 2, "first_name": 3, "flag": 4},
)


# ------------------------------------------------------------
# Grid tables
# ------------------------------------------------------------
class GridTable:
    name: str = ""

    def cell(self, row: int, col: int):
        raise NotImplementedError

    def set_cell(self, row: int, col: int, value) -> None:
        raise NotImplementedError

    def _delete_row(self, row: int) -> None:
        raise NotImplementedError

    def _row_count(self) -> int:
        raise NotImplementedError

    def _col_count(self) -> int:
        raise NotImplementedError

    def last_row(self) -> int:
        """Last row holding any non-blank cell (0 for an empty table)."""
        ncols = self._col_count()
        for r in range(self._row_count(), 0, -1):
            if any(not is_blank(self.cell(r, c)) for c in range(1, ncols + 1)):
                return r
        return 0

    def last_column(self) -> int:
        nrows = self._row_count()
        for c in range(self._col_count(), 0, -1):
            if any(not is_blank(self.cell(r, c)) for r in range(1, nrows + 1)):
                return c
        return 0

    def read_range(self, first_row: int, first_col: int, last_row: int, last_col: int) -> list[list]:
        return [
            [self.cell(r, c) for c in range(first_col, last_col + 1)]
            for r in range(first_row, last_row + 1)
        ]

    def write_range(self, first_row: int, first_col: int, values: Iterable[Iterable]) -> None:
        for i, row_vals in enumerate(values):
            for j, v in enumerate(row_vals):
                self.set_cell(first_row + i, first_col + j, v)

    def append_row(self, values: Iterable) -> int:
        row = self.last_row() + 1
        self.write_range(row, 1, [list(values)])
        return row

    def delete_rows(self, rows: Iterable[int]) -> int:
        targets = sorted({int(r) for r in rows if int(r) >= 1}, reverse=True)
        for r in targets:
            self._delete_row(r)
        return len(targets)

    def clear(self, first_row: int = 1) -> None:
        last = self._row_count()
        if last >= first_row:
            self.delete_rows(range(first_row, last + 1))

    def write_frame(self, df: pd.DataFrame) -> None:
        """Replace the whole table with header + rows of df."""
        self.clear(1)
        self.write_range(1, 1, [list(df.columns)])
        self.write_range(2, 1, df.itertuples(index=False, name=None))


class MemoryTable(GridTable):
    def __init__(self, name: str, rows: Optional[list[list]] = None):
        self.name = name
        self.rows: list[list] = [list(r) for r in (rows or [])]

    def cell(self, row: int, col: int):
        if row < 1 or row > len(self.rows):
            return None
        r = self.rows[row - 1]
        return r[col - 1] if 1 <= col <= len(r) else None

    def set_cell(self, row: int, col: int, value) -> None:
        while len(self.rows) < row:
            self.rows.append([])
        r = self.rows[row - 1]
        while len(r) < col:
            r.append(None)
        r[col - 1] = sanitize_cell(value)

    def _delete_row(self, row: int) -> None:
        if 1 <= row <= len(self.rows):
            del self.rows[row - 1]

    def _row_count(self) -> int:
        return len(self.rows)

    def _col_count(self) -> int:
        return max((len(r) for r in self.rows), default=0)


class WorkbookTable(GridTable):
    def __init__(self, ws):
        self.ws = ws
        self.name = ws.title

    def cell(self, row: int, col: int):
        if row > self.ws.max_row or col > self.ws.max_column:
            return None
        return self.ws.cell(row=row, column=col).value

    def set_cell(self, row: int, col: int, value) -> None:
        self.ws.cell(row=row, column=col).value = sanitize_cell(value)

    def _delete_row(self, row: int) -> None:
        self.ws.delete_rows(row, 1)

    def _row_count(self) -> int:
        return self.ws.max_row

    def _col_count(self) -> int:
        return self.ws.max_column

    def clear(self, first_row: int = 1) -> None:
        last = self.ws.max_row
        if last >= first_row:
            self.ws.delete_rows(first_row, last - first_row + 1)

    def write_frame(self, df: pd.DataFrame) -> None:
        super().write_frame(df)
        ws = self.ws
        for cell in ws[1]:
            cell.font = Font(bold=True)
            cell.alignment = Alignment(wrap_text=True, vertical="top")
        ws.freeze_panes = "A2"
        ws.auto_filter.ref = ws.dimensions

        # Autosize columns based on header + first N rows
        max_rows_scan = min(len(df), 200)
        for col_idx, col_name in enumerate(df.columns, start=1):
            best = len(str(col_name))
            for v in df[col_name].head(max_rows_scan):
                s = "" if v is None else str(v)
                best = max(best, len(s))
            ws.column_dimensions[get_column_letter(col_idx)].width = max(10, min(best + 2, 60))


# ------------------------------------------------------------
# Stores
# ------------------------------------------------------------
class MemoryStore:
    def __init__(self, tables: Optional[dict[str, list[list]]] = None, path: Optional[Path] = None):
        self.path = path
        self.tables = {n: MemoryTable(n, rows) for n, rows in (tables or {}).items()}

    def has_table(self, name: str) -> bool:
        return name in self.tables

    def table(self, name: str) -> MemoryTable:
        if name not in self.tables:
            raise KeyError(f"Missing table: {name}")
        return self.tables[name]

    def table_names(self) -> list[str]:
        return list(self.tables)

    def ensure_table(self, name: str) -> MemoryTable:
        if name not in self.tables:
            self.tables[name] = MemoryTable(name)
        return self.tables[name]

    def save(self) -> None:
        pass


class WorkbookStore:
    def __init__(self, path: Path, wb=None):
        self.path = Path(path)
        self.wb = wb if wb is not None else openpyxl.load_workbook(self.path)

    @classmethod
    def open(cls, path: Path) -> "WorkbookStore":
        return cls(path)

    def has_table(self, name: str) -> bool:
        return name in self.wb.sheetnames

    def table(self, name: str) -> WorkbookTable:
        if name not in self.wb.sheetnames:
            raise KeyError(f"Missing table: {name}")
        return WorkbookTable(self.wb[name])

    def table_names(self) -> list[str]:
        return list(self.wb.sheetnames)

    def ensure_table(self, name: str) -> WorkbookTable:
        if name not in self.wb.sheetnames:
            self.wb.create_sheet(name)
        return WorkbookTable(self.wb[name])

    def save(self) -> None:
        self.wb.save(self.path)


def roll_table_names(store) -> list[str]:
    return [n for n in store.table_names() if n.startswith(ROLL_SHEET_PREFIX)]
