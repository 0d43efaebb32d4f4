import json
import tempfile
import unittest
from datetime import date
from pathlib import Path

from qc_roster import run_roster_qc, write_roster_qc
from tabular_store import MemoryStore

LOG_HEADER = ["PersonalId", "LastName", "FirstName", "EventType", "EventName",
              "EventDate", "Timestamp", "Status", "Remarks"]


def store():
    return MemoryStore({
        "Roll - Youth": [
            ["PersonalId", None, None, date(2026, 10, 2), "soon"],
            [None, "LastName", "FirstName", "Youth Night", "Camp"],
            ["A1", "Smith", "John", True, None],
            ["a1", "SMITH", "John", None, None],
            [None, "Doe", "Jane", True, None],
            ["Z9", None, None, None, None],
        ],
        "Attendance Log": [
            LOG_HEADER,
            ["A1", "Smith", "John", "Service", "Youth Night", date(2026, 10, 2), None, None, None],
            ["A1", "Smith", "John", "Service", "Youth Night", date(2026, 10, 9), None, None, None],
        ],
    })


class TestRosterQc(unittest.TestCase):
    def test_checks(self):
        summary, issues = run_roster_qc(store())
        got = sorted((i.check_id, i.table, i.row) for i in issues)
        self.assertEqual(got, [
            ("ROLL_INVALID_EVENT_DATE", "Roll - Youth", 1),
            ("ROSTER_DUPLICATE_MATCH_KEY", "Roll - Youth", 4),
            ("ROSTER_ID_WITHOUT_NAME", "Roll - Youth", 6),
            ("ROSTER_MISSING_PERSONAL_ID", "Roll - Youth", 5),
        ])
        self.assertEqual(summary["issues_total"], 4)
        self.assertEqual(summary["counts_by_severity"], {"WARN": 3, "INFO": 1})

    def test_clean_store(self):
        summary, issues = run_roster_qc(MemoryStore({"Roll - Empty": [["PersonalId"], [None]]}))
        self.assertEqual(issues, [])
        self.assertEqual(summary["issues_total"], 0)

    def test_write(self):
        summary, issues = run_roster_qc(store())
        with tempfile.TemporaryDirectory() as tmpdir:
            wb = Path(tmpdir) / "attendance.xlsx"
            p = write_roster_qc(wb, summary, issues)
            self.assertEqual(p, Path(tmpdir).resolve() / "out" / "qc" / "roster_qc_issues.jsonl")
            lines = p.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 4)
            self.assertIn("check_id", json.loads(lines[0]))
            self.assertTrue((p.parent / "roster_qc_summary.json").exists())


if __name__ == "__main__":
    unittest.main()
