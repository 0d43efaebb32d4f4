"""
attendance_stats.py — Fold attendance events into per-person statistics.

Input:  AttendanceEvent list (already keyed by resolved identity), a report year.
Output: Stats frame
  PersonalId, LastName, FirstName, GuestFlag, ActivityTier,
  Q1, Q2, Q3, Q4, Total, LastEventDate, LastEventName
(plus FirstEventDate / Visits, used by the Guests report and not written to Stats).

Quarter counts use the REPORT YEAR. Activity tiers use wall-clock TODAY.
Both are intentional: tiers describe current recency, counts describe the year.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import date
from typing import Iterable, Optional

import pandas as pd

from directory_resolver import DirectoryIndex
from identity_keys import normalized_name_key, normalized_personal_id

# Activity thresholds (trailing window in days, event counts, staleness in months).
RECENT_WINDOW_DAYS = 91
CORE_MIN_EVENTS = 12
ACTIVE_MIN_EVENTS = 3
ARCHIVE_AFTER_MONTHS = 12

TIER_CORE = "Core"
TIER_ACTIVE = "Active"
TIER_INACTIVE = "Inactive"
TIER_ARCHIVE = "Archive"
TIER_ORDER = {TIER_CORE: 0, TIER_ACTIVE: 1, TIER_INACTIVE: 2, TIER_ARCHIVE: 3}

SUNDAY_SERVICE = "Sunday Service"
_RE_SUNDAY = re.compile(r"^\s*sunday\b|\bsunday\s+(service|worship|mass)\b", re.IGNORECASE)

STATS_COLUMNS = [
    "PersonalId", "LastName", "FirstName", "GuestFlag", "ActivityTier",
    "Q1", "Q2", "Q3", "Q4", "Total", "LastEventDate", "LastEventName",
]
GUEST_COLUMNS = [
    "PersonalId", "LastName", "FirstName", "ActivityTier",
    "FirstEventDate", "LastEventDate", "LastEventName", "Visits",
]


@dataclass(frozen=True)
class AttendanceEvent:
    match_key: str
    event_name: str
    event_date: date
    source_table: str
    personal_id: str = ""
    last_name: str = ""
    first_name: str = ""


def canonical_event_name(name) -> str:
    s = " ".join(str(name or "").split())
    if _RE_SUNDAY.search(s):
        return SUNDAY_SERVICE
    return s


def quarter_of(d) -> int:
    return (pd.Timestamp(d).month - 1) // 3 + 1


def classify_activity_tier(last_event_date, recent_event_count: int, today=None) -> str:
    """Archive (stale) beats frequency; then Core / Active / Inactive by trailing-window count."""
    today = pd.Timestamp(today or date.today()).normalize()
    if last_event_date is None or pd.isna(last_event_date):
        return TIER_ARCHIVE
    last = pd.Timestamp(last_event_date).normalize()
    if last < today - pd.DateOffset(months=ARCHIVE_AFTER_MONTHS):
        return TIER_ARCHIVE
    if recent_event_count >= CORE_MIN_EVENTS:
        return TIER_CORE
    if recent_event_count >= ACTIVE_MIN_EVENTS:
        return TIER_ACTIVE
    return TIER_INACTIVE


def is_guest(directory: Optional[DirectoryIndex], pid, last, first) -> bool:
    if directory is None:
        return True
    n = normalized_personal_id(pid)
    if n:
        return n not in directory.id_set
    nk = normalized_name_key(last, first)
    return nk is None or nk not in directory.by_name_only


def events_frame(events: Iterable[AttendanceEvent]) -> pd.DataFrame:
    rows = [asdict(e) for e in events]
    cols = list(AttendanceEvent.__dataclass_fields__)
    df = pd.DataFrame(rows, columns=cols)
    if df.empty:
        return df
    df["event_date"] = pd.to_datetime(df["event_date"], errors="coerce").dt.normalize()
    df = df[df["event_date"].notna() & df["match_key"].astype(str).ne("")].copy()
    df["event_canon"] = df["event_name"].map(canonical_event_name)
    df["_order"] = range(len(df))
    return df


def aggregate_attendance(
    events: Iterable[AttendanceEvent],
    report_year: int,
    directory: Optional[DirectoryIndex] = None,
    today=None,
) -> pd.DataFrame:
    today = pd.Timestamp(today or date.today()).normalize()
    df = events_frame(events)
    if df.empty:
        return pd.DataFrame(columns=STATS_COLUMNS + ["FirstEventDate", "Visits", "MatchKey"])

    # one attendance per person per (event, day); last input row wins the display fields
    df = df.sort_values(["match_key", "event_date", "_order"], kind="stable")
    uniq = df.drop_duplicates(["match_key", "event_canon", "event_date"], keep="last")

    window_start = today - pd.Timedelta(days=RECENT_WINDOW_DAYS)
    recent = uniq[(uniq["event_date"] > window_start) & (uniq["event_date"] <= today)]
    recent_counts = recent.groupby("match_key").size()

    rows = []
    for key, g in uniq.groupby("match_key", sort=False):
        last = g.iloc[-1]
        in_year = g[g["event_date"].dt.year == report_year]
        per_q = in_year["event_date"].dt.quarter.value_counts()
        quarters = [int(per_q.get(i, 0)) for i in (1, 2, 3, 4)]
        tier = classify_activity_tier(last["event_date"], int(recent_counts.get(key, 0)), today)
        rows.append({
            "PersonalId": last["personal_id"],
            "LastName": last["last_name"],
            "FirstName": last["first_name"],
            "GuestFlag": is_guest(directory, last["personal_id"], last["last_name"], last["first_name"]),
            "ActivityTier": tier,
            "Q1": quarters[0],
            "Q2": quarters[1],
            "Q3": quarters[2],
            "Q4": quarters[3],
            "Total": sum(quarters),
            "LastEventDate": last["event_date"].date(),
            "LastEventName": last["event_canon"],
            "FirstEventDate": g["event_date"].min().date(),
            "Visits": len(g),
            "MatchKey": key,
        })

    return sort_stats(pd.DataFrame(rows))


def sort_stats(stats: pd.DataFrame) -> pd.DataFrame:
    """Guests first, then Core < Active < Inactive < Archive, then last, first name."""
    if stats.empty:
        return stats
    out = stats.copy()
    out["_guest"] = out["GuestFlag"].map(lambda v: 0 if bool(v) else 1)
    out["_tier"] = out["ActivityTier"].map(lambda t: TIER_ORDER.get(t, len(TIER_ORDER)))
    out["_last"] = out["LastName"].astype(str).str.casefold()
    out["_first"] = out["FirstName"].astype(str).str.casefold()
    out = out.sort_values(["_guest", "_tier", "_last", "_first"], kind="stable")
    return out.drop(columns=["_guest", "_tier", "_last", "_first"]).reset_index(drop=True)


def stats_for_output(stats: pd.DataFrame) -> pd.DataFrame:
    return stats.reindex(columns=STATS_COLUMNS)


def build_guest_report(stats: pd.DataFrame) -> pd.DataFrame:
    if stats.empty:
        return pd.DataFrame(columns=GUEST_COLUMNS)
    g = stats[stats["GuestFlag"].map(bool)]
    return g.reindex(columns=GUEST_COLUMNS).reset_index(drop=True)


def tiers_by_key(stats: pd.DataFrame) -> dict[str, str]:
    if stats.empty or "MatchKey" not in stats.columns:
        return {}
    return dict(zip(stats["MatchKey"], stats["ActivityTier"]))
