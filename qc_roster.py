# qc_roster.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path

import pandas as pd

from identity_keys import normalized_personal_id
from qc_common import qc_dir, write_json, write_jsonl
from roster_sync import duplicate_rows
from source_tables import read_event_columns, read_person_rows
from tabular_store import ATTENDANCE_LOG_SCHEMA, ATTENDANCE_LOG_SHEET, ROLL_SCHEMA, roll_table_names


@dataclass
class Issue:
    check_id: str
    severity: str   # "ERROR" | "WARN" | "INFO"
    table: str
    row: int
    message: str
    example_value: str = ""


def check_person_rows(table_name: str, rows) -> list[Issue]:
    issues: list[Issue] = []

    # 1) same pid|namekey twice in one table (first row wins for lookups)
    for key, first_row, dup_row in duplicate_rows(rows):
        issues.append(Issue(
            check_id="ROSTER_DUPLICATE_MATCH_KEY",
            severity="WARN",
            table=table_name,
            row=dup_row,
            message=f"Duplicate of row {first_row}; ignored for matching, not removed.",
            example_value=key,
        ))

    for r in rows:
        has_id = bool(normalized_personal_id(r.personal_id))
        # 2) named but still no PID (allocation skipped or not yet run)
        if not has_id and not r.is_blank:
            issues.append(Issue(
                check_id="ROSTER_MISSING_PERSONAL_ID",
                severity="INFO",
                table=table_name,
                row=r.row,
                message="Row has a name but no PersonalId.",
                example_value=f"{r.last_name}, {r.first_name}",
            ))
        # 3) PID with no usable name: cannot be matched or synced
        if has_id and r.name_key is None:
            issues.append(Issue(
                check_id="ROSTER_ID_WITHOUT_NAME",
                severity="WARN",
                table=table_name,
                row=r.row,
                message="PersonalId present but both name cells are empty.",
                example_value=r.personal_id,
            ))
    return issues


def check_roll_dates(table) -> list[Issue]:
    _good, bad = read_event_columns(table, ROLL_SCHEMA)
    return [
        Issue(
            check_id="ROLL_INVALID_EVENT_DATE",
            severity="WARN",
            table=table.name,
            row=ROLL_SCHEMA.dates_row,
            message=f"Event column {ec.col} has no usable date; its ticks are not counted.",
            example_value=f"{ec.event_name} ({ec.raw_date!r})",
        )
        for ec in bad
    ]


def run_roster_qc(store) -> tuple[dict, list[Issue]]:
    issues: list[Issue] = []
    for name in roll_table_names(store):
        t = store.table(name)
        issues += check_person_rows(name, read_person_rows(t, ROLL_SCHEMA))
        issues += check_roll_dates(t)
    if store.has_table(ATTENDANCE_LOG_SHEET):
        t = store.table(ATTENDANCE_LOG_SHEET)
        issues += [
            i for i in check_person_rows(t.name, read_person_rows(t, ATTENDANCE_LOG_SCHEMA))
            # a log holds many check-ins per person by design
            if i.check_id != "ROSTER_DUPLICATE_MATCH_KEY"
        ]

    summary = {
        "issues_total": len(issues),
        "counts_by_check_id": pd.Series([i.check_id for i in issues], dtype=object).value_counts().to_dict(),
        "counts_by_severity": pd.Series([i.severity for i in issues], dtype=object).value_counts().to_dict(),
    }
    return summary, issues


def write_roster_qc(workbook: Path, summary: dict, issues: list[Issue]) -> Path:
    d = qc_dir(workbook)
    write_json(d / "roster_qc_summary.json", summary)
    return write_jsonl(d / "roster_qc_issues.jsonl", [asdict(i) for i in issues])
