"""
Unit tests for batch resolution.

- complete selection -> exactly one batch, or NOT_FOUND
- incomplete selection -> IncompleteSelectionError (caller bug)
- two matching batches -> DuplicateBatchError, never one of them
"""

import unittest
from dataclasses import replace
from datetime import date

from lecfeedback.errors import DuplicateBatchError, IncompleteSelectionError
from lecfeedback.index import HierarchyIndex
from lecfeedback.model import CONFIRMED, PRELIMINARY, Batch, BatchKey, SessionLabel, courses_from_payload
from lecfeedback.resolver import NOT_FOUND, resolve
from lecfeedback.selector import ExistingCourseSelection, selection_from_key
from sample_dataset import sample_courses, sample_payload

S1 = SessionLabel.ordinal(1)


class TestResolve(unittest.TestCase):
    def setUp(self) -> None:
        self.index = HierarchyIndex(sample_courses())

    def test_full_selection_resolves_to_batch(self) -> None:
        sel = ExistingCourseSelection("ML基礎", (2024, "前期"), S1, date(2024, 4, 8), CONFIRMED)
        found = resolve(self.index, sel)
        self.assertIsInstance(found, Batch)
        self.assertEqual(found.batch_id, 102)

    def test_session_without_batches_is_not_found(self) -> None:
        key = BatchKey("ML基礎", 2024, "前期", SessionLabel.ordinal(3), date(2024, 4, 22), CONFIRMED)
        self.assertIs(resolve(self.index, key), NOT_FOUND)
        self.assertFalse(resolve(self.index, key))

    def test_unknown_course_or_session_is_not_found(self) -> None:
        key = BatchKey("ML基礎", 2022, "前期", S1, date(2024, 4, 8), CONFIRMED)
        self.assertIs(resolve(self.index, key), NOT_FOUND)
        key = BatchKey("ML基礎", 2024, "前期", SessionLabel.ordinal(7), date(2024, 4, 8), CONFIRMED)
        self.assertIs(resolve(self.index, key), NOT_FOUND)

    def test_incomplete_selection_raises(self) -> None:
        sel = ExistingCourseSelection("ML基礎", (2024, "前期"), S1)
        with self.assertRaises(IncompleteSelectionError) as ctx:
            resolve(self.index, sel)
        self.assertEqual(ctx.exception.missing, ["lecture_date", "analysis_version"])

    def test_repeated_resolution_is_stable(self) -> None:
        key = BatchKey("ML基礎", 2024, "前期", S1, date(2024, 4, 8), PRELIMINARY)
        sel = selection_from_key(key)
        self.assertEqual(resolve(self.index, sel), resolve(self.index, sel))
        missing = replace(key, lecture_date=date(2024, 4, 9))
        self.assertIs(resolve(self.index, missing), resolve(self.index, missing))


class TestResolveCorruptedData(unittest.TestCase):
    def test_duplicate_batches_for_one_version(self) -> None:
        payload = sample_payload()
        lecture = payload["courses"][0]["lectures"][0]
        lecture["batches"].append({"id": 999, "batch_type": "confirmed"})
        index = HierarchyIndex(courses_from_payload(payload))

        key = BatchKey("ML基礎", 2024, "前期", S1, date(2024, 4, 8), CONFIRMED)
        with self.assertLogs("lecfeedback.resolver", level="ERROR"):
            with self.assertRaises(DuplicateBatchError) as ctx:
                resolve(index, key)
        self.assertEqual(sorted(ctx.exception.batch_ids), [102, 999])

        # the other version is still unambiguous
        other = replace(key, analysis_version=PRELIMINARY)
        self.assertEqual(resolve(index, other).batch_id, 101)

    def test_duplicate_course_records(self) -> None:
        payload = sample_payload()
        payload["courses"].append(
            {
                "name": "ML基礎",
                "academic_year": 2024,
                "term": "前期",
                "lectures": [
                    {"session": "第1回", "lecture_date": "2024-04-08", "batches": [{"id": 500, "batch_type": "confirmed"}]}
                ],
            }
        )
        index = HierarchyIndex(courses_from_payload(payload))
        key = BatchKey("ML基礎", 2024, "前期", S1, date(2024, 4, 8), CONFIRMED)
        with self.assertLogs("lecfeedback.resolver", level="ERROR"):
            with self.assertRaises(DuplicateBatchError):
                resolve(index, key)

    def test_duplicate_course_record_with_single_batch(self) -> None:
        payload = sample_payload()
        payload["courses"].append({"name": "ML基礎", "academic_year": 2024, "term": "前期", "lectures": []})
        index = HierarchyIndex(courses_from_payload(payload))

        key = BatchKey("ML基礎", 2024, "前期", S1, date(2024, 4, 8), CONFIRMED)
        self.assertEqual(len(index.batches_at(key)), 1)
        with self.assertLogs("lecfeedback.resolver", level="ERROR"):
            with self.assertRaises(DuplicateBatchError) as ctx:
                resolve(index, key)
        self.assertEqual(ctx.exception.batch_ids, [102])

        # nothing stored at this key, so the duplicate does not matter
        empty = BatchKey("ML基礎", 2024, "前期", SessionLabel.ordinal(3), date(2024, 4, 22), CONFIRMED)
        self.assertIs(resolve(index, empty), NOT_FOUND)

    def test_duplicate_session_records_with_one_batch(self) -> None:
        payload = sample_payload()
        payload["courses"][0]["lectures"].append(
            {"session": "第2回", "lecture_date": "2024-04-15", "batches": []}
        )
        index = HierarchyIndex(courses_from_payload(payload))
        key = BatchKey("ML基礎", 2024, "前期", SessionLabel.ordinal(2), date(2024, 4, 15), PRELIMINARY)
        with self.assertLogs("lecfeedback.resolver", level="ERROR"):
            with self.assertRaises(DuplicateBatchError):
                resolve(index, key)


if __name__ == "__main__":
    unittest.main()
