#!/usr/bin/env python3
"""
master.py — One reconciliation pass over the attendance workbook.

Reads:
  attendance.xlsx (or --workbook)
    Config!B1          path of the Directory workbook (relative to this workbook)
    Roll - <name>      per-event attendance rolls (dates row 1, event names row 2)
    Attendance Log     flat check-in log
    Archived           archived persons + status flag
  <Directory workbook>
    Directory          canonical person registry

Steps (in this order for --step all):
  assign-ids          give every named, unidentified roll/log row a PersonalId
  archive             delete archived persons from every roll (unless flagged)
  sync                append every identified, non-archived person missing from a roll
  stats               rewrite Stats and Guests from all attendance
  directory-activity  write ActivityLevel back into the Directory
  qc                  out/qc/roster_qc_{summary.json,issues.jsonl}

Writes:
  the workbook(s) above, in place, after every successful step
  out/run_summary.json

Nothing is cached between runs: every step rebuilds its lookups from the
current sheets. A configuration problem stops the run before any write.
"""

from __future__ import annotations

import argparse
import random
import sys
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from attendance_stats import (
    aggregate_attendance,
    build_guest_report,
    stats_for_output,
    tiers_by_key,
)
from cross_table_matcher import directory_activity_levels, match_records, resolved_key
from directory_resolver import DirectoryIndex, build_directory_index
from pid_allocator import PidAllocator, assign_identifiers
from qc_common import (
    DEFAULT_WORKBOOK,
    ConfigurationError,
    check_required_tables,
    open_directory_store,
    out_dir,
    write_json,
)
from qc_roster import run_roster_qc, write_roster_qc
from roster_sync import append_missing, archived_name_keys, build_union, delete_archived, is_override_flag
from source_tables import log_events, read_directory_rows, read_person_rows, roll_events, write_personal_id
from tabular_store import (
    ARCHIVED_SCHEMA,
    ARCHIVED_SHEET,
    ATTENDANCE_LOG_SCHEMA,
    ATTENDANCE_LOG_SHEET,
    DIRECTORY_SCHEMA,
    DIRECTORY_SHEET,
    GUESTS_SHEET,
    ROLL_SCHEMA,
    STATS_SHEET,
    WorkbookStore,
    roll_table_names,
)

STEPS = ["assign-ids", "archive", "sync", "stats", "directory-activity", "qc"]


@dataclass
class RunContext:
    workbook: Path
    store: object
    directory_store: object
    report_year: int
    today: date
    rng: Optional[random.Random] = None


# ------------------------------------------------------------
# Context
# ------------------------------------------------------------
def open_context(workbook: Path, report_year: Optional[int] = None, today: Optional[date] = None,
                 rng=None) -> RunContext:
    workbook = Path(workbook)
    if not workbook.exists():
        raise ConfigurationError(f"Attendance workbook not found: {workbook}")
    try:
        store = WorkbookStore.open(workbook)
    except Exception as e:
        raise ConfigurationError(f"Cannot open attendance workbook {workbook}: {e}") from e
    return context_for(store, workbook, report_year, today, rng)


def context_for(store, workbook: Path, report_year: Optional[int] = None, today: Optional[date] = None,
                rng=None) -> RunContext:
    check_required_tables(store)
    directory_store = open_directory_store(store, workbook)
    today = today or date.today()
    return RunContext(
        workbook=Path(workbook),
        store=store,
        directory_store=directory_store,
        report_year=report_year or today.year,
        today=today,
        rng=rng,
    )


def load_directory_index(ctx: RunContext) -> DirectoryIndex:
    return build_directory_index(read_directory_rows(ctx.directory_store.table(DIRECTORY_SHEET)))


def roll_tables(ctx: RunContext) -> list:
    return [ctx.store.table(n) for n in roll_table_names(ctx.store)]


def collect_events(ctx: RunContext, index: DirectoryIndex) -> tuple[list, list[int]]:
    def resolve(pid, last, first):
        return resolved_key(index, pid, last, first)

    events = []
    for t in roll_tables(ctx):
        events += roll_events(t, resolve)
    log_ev, flagged = log_events(ctx.store.table(ATTENDANCE_LOG_SHEET), resolve)
    return events + log_ev, flagged


# ------------------------------------------------------------
# Steps
# ------------------------------------------------------------
def run_assign_ids(ctx: RunContext) -> dict:
    index = load_directory_index(ctx)
    targets = [(t, ROLL_SCHEMA) for t in roll_tables(ctx)]
    targets.append((ctx.store.table(ATTENDANCE_LOG_SHEET), ATTENDANCE_LOG_SCHEMA))

    scanned = [(t, s, read_person_rows(t, s)) for t, s in targets]
    archived = read_person_rows(ctx.store.table(ARCHIVED_SHEET), ARCHIVED_SCHEMA)

    allocator = PidAllocator(
        used_ids=index.id_set,
        directory_name_map=index.by_person_key,
        directory_name_keys=index.name_key_pids(),
        rng=ctx.rng,
    )
    for _t, _s, rows in scanned:
        for r in rows:
            allocator.reserve(r.personal_id)
    for r in archived:
        allocator.reserve(r.personal_id)

    written = 0
    for t, s, rows in scanned:
        for r, pid in assign_identifiers(rows, allocator):
            write_personal_id(t, s, r.row, pid)
            written += 1

    ctx.store.save()
    return {"ids_written": written, **allocator.counts()}


def run_archive(ctx: RunContext) -> dict:
    archived = read_person_rows(ctx.store.table(ARCHIVED_SHEET), ARCHIVED_SCHEMA)
    keys = archived_name_keys(archived)
    overridden = sum(1 for r in archived if not r.is_blank and is_override_flag(r.flag))

    deleted = 0
    for t in roll_tables(ctx):
        deleted += delete_archived(t, read_person_rows(t, ROLL_SCHEMA), keys)

    ctx.store.save()
    return {"archived_keys": len(keys), "override_rows": overridden, "rows_deleted": deleted}


def run_sync(ctx: RunContext) -> dict:
    index = load_directory_index(ctx)
    rolls = [(t, read_person_rows(t, ROLL_SCHEMA)) for t in roll_tables(ctx)]
    log_rows = read_person_rows(ctx.store.table(ATTENDANCE_LOG_SHEET), ATTENDANCE_LOG_SCHEMA)
    archived = archived_name_keys(read_person_rows(ctx.store.table(ARCHIVED_SHEET), ARCHIVED_SCHEMA))

    union = build_union(index, [rows for _t, rows in rolls] + [log_rows], archived)

    added = 0
    for t, rows in rolls:
        new = append_missing(t, rows, union, ROLL_SCHEMA)
        if new:
            print(f"INFO: {t.name}: added {len(new)} persons")
        added += len(new)

    ctx.store.save()
    return {"union_size": len(union), "rolls": len(rolls), "rows_added": added}


def build_stats(ctx: RunContext, index: DirectoryIndex):
    events, flagged = collect_events(ctx, index)
    stats = aggregate_attendance(events, ctx.report_year, index, ctx.today)
    return events, stats, flagged


def run_stats(ctx: RunContext) -> dict:
    index = load_directory_index(ctx)
    events, stats, flagged = build_stats(ctx, index)

    ctx.store.ensure_table(STATS_SHEET).write_frame(stats_for_output(stats))
    guests = build_guest_report(stats)
    ctx.store.ensure_table(GUESTS_SHEET).write_frame(guests)

    ctx.store.save()
    return {
        "events": len(events),
        "persons": len(stats),
        "guests": len(guests),
        "log_rows_invalid_date": len(flagged),
        "report_year": ctx.report_year,
    }


def run_directory_activity(ctx: RunContext) -> dict:
    index = load_directory_index(ctx)
    events, stats, _flagged = build_stats(ctx, index)

    # claimed = Directory persons with at least one attendance record
    report = match_records(index, events)
    levels = directory_activity_levels(index, report.claimed, tiers_by_key(stats))

    t = ctx.directory_store.table(DIRECTORY_SHEET)
    col = DIRECTORY_SCHEMA.col("activity_level")
    for row, level in levels:
        t.set_cell(row, col, level or None)

    ctx.directory_store.save()
    archived = sum(1 for _r, lvl in levels if lvl == "Archived")
    return {"directory_rows": len(levels), "claimed": len(report.claimed), "archived": archived}


def run_qc(ctx: RunContext) -> dict:
    summary, issues = run_roster_qc(ctx.store)
    p = write_roster_qc(ctx.workbook, summary, issues)
    print(f"INFO: wrote {p}")
    return {"issues_total": summary["issues_total"]}


STEP_FUNCS = {
    "assign-ids": run_assign_ids,
    "archive": run_archive,
    "sync": run_sync,
    "stats": run_stats,
    "directory-activity": run_directory_activity,
    "qc": run_qc,
}


def run_step(name: str, ctx: RunContext) -> dict:
    """Errors stop this step only; the next step still runs."""
    try:
        counts = STEP_FUNCS[name](ctx)
    except Exception as e:
        print(f"ERROR: step {name} failed: {e}", file=sys.stderr)
        return {"step": name, "status": "failed", "error": f"{type(e).__name__}: {e}"}
    print(f"OK: {name}: " + ", ".join(f"{k}={v}" for k, v in counts.items()))
    return {"step": name, "status": "ok", **counts}


def run_pipeline(ctx: RunContext, steps: list[str]) -> list[dict]:
    results = [run_step(s, ctx) for s in steps]
    write_json(out_dir(ctx.workbook) / "run_summary.json", {
        "timestamp_utc": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "workbook": str(ctx.workbook),
        "report_year": ctx.report_year,
        "today": ctx.today.isoformat(),
        "steps": results,
    })
    return results


# ------------------------------------------------------------
# Main
# ------------------------------------------------------------
def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Reconcile attendance rolls against the Directory.")
    ap.add_argument("--workbook", type=Path, default=DEFAULT_WORKBOOK)
    ap.add_argument("--step", choices=STEPS + ["all"], default="all")
    ap.add_argument("--year", type=int, default=None, help="Report year for quarterly counts (default: this year).")
    ap.add_argument("--today", type=date.fromisoformat, default=None, help="YYYY-MM-DD; anchors activity tiers.")
    ap.add_argument("--seed", type=int, default=None, help="Seed new PersonalIds (reproducible runs).")
    args = ap.parse_args(argv)

    rng = random.Random(args.seed) if args.seed is not None else None
    try:
        ctx = open_context(args.workbook, args.year, args.today, rng)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    steps = STEPS if args.step == "all" else [args.step]
    results = run_pipeline(ctx, steps)
    failed = [r["step"] for r in results if r["status"] != "ok"]
    if failed:
        print(f"ERROR: {len(failed)} step(s) failed: {', '.join(failed)}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
