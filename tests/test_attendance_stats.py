import unittest
from datetime import date, timedelta

import pandas as pd

from attendance_stats import (
    SUNDAY_SERVICE,
    TIER_ACTIVE,
    TIER_ARCHIVE,
    TIER_CORE,
    TIER_INACTIVE,
    AttendanceEvent,
    aggregate_attendance,
    build_guest_report,
    canonical_event_name,
    classify_activity_tier,
    is_guest,
    quarter_of,
    sort_stats,
    stats_for_output,
    tiers_by_key,
)
from directory_resolver import build_directory_index

TODAY = date(2026, 10, 18)


def ev(key, name, d, pid="", last="Doe", first="Jane"):
    return AttendanceEvent(
        match_key=key, event_name=name, event_date=d, source_table="Roll - Test",
        personal_id=pid, last_name=last, first_name=first,
    )


class TestQuarters(unittest.TestCase):
    def test_quarter_boundaries(self):
        self.assertEqual(quarter_of(date(2025, 1, 1)), 1)
        self.assertEqual(quarter_of(date(2025, 3, 31)), 1)
        self.assertEqual(quarter_of(date(2025, 4, 1)), 2)
        self.assertEqual(quarter_of(date(2025, 12, 31)), 4)

    def test_dec31_in_q4_not_next_year(self):
        events = [
            ev("k|janedoe", "Youth Night", date(2025, 1, 1)),
            ev("k|janedoe", "Youth Night", date(2025, 12, 31)),
            ev("k|janedoe", "Youth Night", date(2026, 1, 1)),
        ]
        stats = aggregate_attendance(events, 2025, today=date(2026, 1, 2))
        row = stats.iloc[0]
        self.assertEqual([row["Q1"], row["Q2"], row["Q3"], row["Q4"]], [1, 0, 0, 1])
        self.assertEqual(row["Total"], 2)
        self.assertEqual(row["LastEventDate"], date(2026, 1, 1))


class TestEventDedup(unittest.TestCase):
    def test_sunday_variants_canonical(self):
        self.assertEqual(canonical_event_name("Sunday Worship - 9AM"), SUNDAY_SERVICE)
        self.assertEqual(canonical_event_name("Morning Sunday Service"), SUNDAY_SERVICE)
        self.assertEqual(canonical_event_name("Youth  Night"), "Youth Night")
        self.assertEqual(canonical_event_name("Sun Valley Retreat"), "Sun Valley Retreat")

    def test_same_day_sunday_duplicates_collapse(self):
        d = date(2026, 10, 11)
        events = [
            ev("k|janedoe", "Sunday Service", d),
            ev("k|janedoe", "Sunday Worship 11AM", d),
            ev("k|janedoe", "Youth Night", d),
        ]
        stats = aggregate_attendance(events, 2026, today=TODAY)
        self.assertEqual(stats.iloc[0]["Q4"], 2)


class TestActivityTier(unittest.TestCase):
    def test_recency_overrides_frequency(self):
        thirteen_months_ago = date(2025, 9, 18)
        self.assertEqual(classify_activity_tier(thirteen_months_ago, 20, TODAY), TIER_ARCHIVE)

    def test_exactly_twelve_months_is_not_archive(self):
        self.assertEqual(classify_activity_tier(date(2025, 10, 18), 0, TODAY), TIER_INACTIVE)

    def test_thresholds(self):
        recent = date(2026, 10, 11)
        self.assertEqual(classify_activity_tier(recent, 12, TODAY), TIER_CORE)
        self.assertEqual(classify_activity_tier(recent, 11, TODAY), TIER_ACTIVE)
        self.assertEqual(classify_activity_tier(recent, 3, TODAY), TIER_ACTIVE)
        self.assertEqual(classify_activity_tier(recent, 2, TODAY), TIER_INACTIVE)

    def test_weekly_attendance_is_core(self):
        events = [ev("k|janedoe", "Sunday Service", TODAY - timedelta(days=7 * i)) for i in range(12)]
        stats = aggregate_attendance(events, 2026, today=TODAY)
        self.assertEqual(stats.iloc[0]["ActivityTier"], TIER_CORE)

    def test_window_is_91_days(self):
        # 3 events, one of them 91 days back (outside the trailing window)
        events = [
            ev("k|janedoe", "Bible Study", TODAY - timedelta(days=91)),
            ev("k|janedoe", "Bible Study", TODAY - timedelta(days=10)),
            ev("k|janedoe", "Bible Study", TODAY - timedelta(days=3)),
        ]
        stats = aggregate_attendance(events, 2026, today=TODAY)
        self.assertEqual(stats.iloc[0]["ActivityTier"], TIER_INACTIVE)


class TestGuestFlag(unittest.TestCase):
    def setUp(self):
        self.index = build_directory_index([
            (2, {"personal_id": "ABC123456", "last_name": "Smith", "first_name": "John"}),
            (3, {"personal_id": "", "last_name": "Tanaka", "first_name": "Yuki"}),
        ])

    def test_pid_in_directory(self):
        self.assertFalse(is_guest(self.index, "abc123456", "Anything", "Else"))
        self.assertTrue(is_guest(self.index, "ZZZ", "Smith", "John"))

    def test_blank_pid_uses_name(self):
        self.assertFalse(is_guest(self.index, "", "Yuki", "Tanaka"))
        self.assertTrue(is_guest(self.index, "", "Visitor", "Vera"))

    def test_most_recent_record_decides(self):
        events = [
            ev("abc123456|johnsmith", "Youth Night", date(2026, 9, 1), pid="OLDGUEST1", last="Smith", first="John"),
            ev("abc123456|johnsmith", "Youth Night", date(2026, 10, 1), pid="ABC123456", last="Smith", first="John"),
        ]
        stats = aggregate_attendance(events, 2026, self.index, TODAY)
        self.assertFalse(bool(stats.iloc[0]["GuestFlag"]))
        self.assertEqual(stats.iloc[0]["PersonalId"], "ABC123456")
        self.assertEqual(stats.iloc[0]["LastEventName"], "Youth Night")


class TestOrdering(unittest.TestCase):
    def test_guest_first_regardless_of_name_or_tier(self):
        df = pd.DataFrame([
            {"LastName": "Ada", "FirstName": "", "GuestFlag": False, "ActivityTier": "Core"},
            {"LastName": "Doe", "FirstName": "", "GuestFlag": True, "ActivityTier": "Inactive"},
        ])
        out = sort_stats(df)
        self.assertEqual(list(out["LastName"]), ["Doe", "Ada"])

    def test_tier_then_last_then_first(self):
        df = pd.DataFrame([
            {"LastName": "Zed", "FirstName": "A", "GuestFlag": False, "ActivityTier": "Archive"},
            {"LastName": "brown", "FirstName": "B", "GuestFlag": False, "ActivityTier": "Active"},
            {"LastName": "Brown", "FirstName": "A", "GuestFlag": False, "ActivityTier": "Active"},
            {"LastName": "Young", "FirstName": "C", "GuestFlag": False, "ActivityTier": "Core"},
            {"LastName": "Able", "FirstName": "D", "GuestFlag": False, "ActivityTier": "Inactive"},
        ])
        out = sort_stats(df)
        self.assertEqual(
            list(zip(out["LastName"], out["FirstName"])),
            [("Young", "C"), ("Brown", "A"), ("brown", "B"), ("Able", "D"), ("Zed", "A")],
        )


class TestReports(unittest.TestCase):
    def test_output_columns_and_guest_report(self):
        index = build_directory_index([
            (2, {"personal_id": "ABC123456", "last_name": "Smith", "first_name": "John"}),
        ])
        events = [
            ev("abc123456|johnsmith", "Sunday Service", date(2026, 10, 4), pid="ABC123456", last="Smith", first="John"),
            ev("|veravisitor", "Sunday Service", date(2026, 10, 4), last="Visitor", first="Vera"),
            ev("|veravisitor", "Youth Night", date(2026, 10, 9), last="Visitor", first="Vera"),
        ]
        stats = aggregate_attendance(events, 2026, index, TODAY)
        out = stats_for_output(stats)
        self.assertEqual(list(out.columns), [
            "PersonalId", "LastName", "FirstName", "GuestFlag", "ActivityTier",
            "Q1", "Q2", "Q3", "Q4", "Total", "LastEventDate", "LastEventName",
        ])
        self.assertEqual(list(out["LastName"]), ["Visitor", "Smith"])

        guests = build_guest_report(stats)
        self.assertEqual(len(guests), 1)
        self.assertEqual(guests.iloc[0]["Visits"], 2)
        self.assertEqual(guests.iloc[0]["FirstEventDate"], date(2026, 10, 4))

        self.assertEqual(tiers_by_key(stats)["abc123456|johnsmith"], TIER_INACTIVE)

    def test_no_events(self):
        stats = aggregate_attendance([], 2026, today=TODAY)
        self.assertTrue(stats.empty)
        self.assertTrue(build_guest_report(stats).empty)
        self.assertEqual(tiers_by_key(stats), {})


if __name__ == "__main__":
    unittest.main()
