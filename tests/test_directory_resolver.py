import unittest

from directory_resolver import build_directory_index
from pid_allocator import PidAllocator


def directory_rows():
    return [
        (2, {"personal_id": "ABC123456", "last_name": "Smith", "first_name": "John", "gender": "M"}),
        (3, {"personal_id": None, "last_name": None, "first_name": None, "gender": "F"}),
        (4, {"personal_id": "", "last_name": "Tanaka", "first_name": "Yuki"}),
        (5, {"personal_id": "abc123456", "last_name": "SMITH", "first_name": "John", "gender": "X"}),
        (6, {"personal_id": "ZZZ000001", "last_name": "", "first_name": ""}),
    ]


class TestBuildDirectoryIndex(unittest.TestCase):
    def setUp(self):
        self.index = build_directory_index(directory_rows())

    def test_by_id_and_name_first_wins(self):
        e = self.index.by_id_and_name["abc123456|johnsmith"]
        self.assertEqual(e.row, 2)
        self.assertEqual(e.attributes["gender"], "M")

    def test_blank_pid_row_is_name_only(self):
        self.assertIn("tanakayuki", self.index.by_name_only)
        self.assertNotIn("|tanakayuki", self.index.by_id_and_name)
        self.assertEqual(self.index.by_name_only["tanakayuki"].row, 4)

    def test_id_set(self):
        self.assertEqual(self.index.id_set, frozenset({"abc123456", "zzz000001"}))

    def test_placeholders_kept_but_not_indexed(self):
        self.assertEqual(len(self.index), 5)
        placeholders = [e.row for e in self.index.entries if e.is_placeholder]
        self.assertEqual(placeholders, [3, 6])
        self.assertEqual(len(self.index.by_id_and_name), 1)

    def test_person_key_map(self):
        self.assertEqual(self.index.by_person_key, {"smith|john": "ABC123456"})

    def test_name_key_pids_skip_rows_without_pid(self):
        self.assertEqual(self.index.name_key_pids(), {"johnsmith": "ABC123456"})

    def test_name_key_pids_take_first_row_with_pid(self):
        index = build_directory_index([
            (2, {"personal_id": "", "last_name": "Tanaka", "first_name": "Yuki"}),
            (3, {"personal_id": "TAN000001", "last_name": "Yuki", "first_name": "Tanaka"}),
        ])
        self.assertEqual(index.by_name_only["tanakayuki"].row, 2)
        self.assertEqual(index.name_key_pids(), {"tanakayuki": "TAN000001"})

        allocator = PidAllocator(
            directory_name_map=index.by_person_key,
            directory_name_keys=index.name_key_pids(),
        )
        self.assertEqual(allocator.resolve_or_create("tanaka|yuki", "tanakayuki"), "TAN000001")
        self.assertEqual(allocator.generated, 0)

    def test_rebuild_is_identical(self):
        again = build_directory_index(directory_rows())
        self.assertEqual(set(again.by_id_and_name), set(self.index.by_id_and_name))
        self.assertEqual(set(again.by_name_only), set(self.index.by_name_only))


if __name__ == "__main__":
    unittest.main()
