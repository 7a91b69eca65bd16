"""
Unit tests for upload conflict detection.

Definition used here:
- A conflict exists if a batch already occupies the exact six-part key.
- An incomplete key never conflicts.
- No fuzzy matching: a date one day off is not a conflict.
"""

import itertools
import unittest
from dataclasses import replace
from datetime import date

from lecfeedback.conflicts import conflict_message, find_conflict, has_conflict
from lecfeedback.index import HierarchyIndex
from lecfeedback.model import ANALYSIS_VERSIONS, CONFIRMED, PRELIMINARY, Batch, BatchKey, SessionLabel
from lecfeedback.resolver import resolve
from lecfeedback.selector import ExistingCourseSelection, NewCourseDraft, selection_from_key
from sample_dataset import sample_courses

S1 = SessionLabel.ordinal(1)
TAKEN = BatchKey("ML基礎", 2024, "前期", S1, date(2024, 4, 8), CONFIRMED)


class TestConflicts(unittest.TestCase):
    def setUp(self) -> None:
        self.index = HierarchyIndex(sample_courses())

    def test_existing_batch_conflicts(self) -> None:
        self.assertTrue(has_conflict(self.index, TAKEN))
        self.assertEqual(find_conflict(self.index, TAKEN).batch_id, 102)

    def test_session_without_batches_no_conflict(self) -> None:
        key = BatchKey("ML基礎", 2024, "前期", SessionLabel.ordinal(3), date(2024, 4, 22), CONFIRMED)
        self.assertFalse(has_conflict(self.index, key))

    def test_one_day_off_is_not_a_conflict(self) -> None:
        self.assertFalse(has_conflict(self.index, replace(TAKEN, lecture_date=date(2024, 4, 9))))

    def test_other_version_is_not_a_conflict(self) -> None:
        key = BatchKey("ML基礎", 2024, "前期", SessionLabel.ordinal(2), date(2024, 4, 15), CONFIRMED)
        self.assertFalse(has_conflict(self.index, key))
        self.assertTrue(has_conflict(self.index, replace(key, analysis_version=PRELIMINARY)))

    def test_incomplete_candidate_never_conflicts(self) -> None:
        partial = ExistingCourseSelection("ML基礎", (2024, "前期"), S1, date(2024, 4, 8))
        self.assertFalse(has_conflict(self.index, partial))
        self.assertFalse(has_conflict(self.index, None))

    def test_new_course_draft_matching_existing_key(self) -> None:
        draft = selection_from_key(TAKEN, new_course=True)
        self.assertIsInstance(draft, NewCourseDraft)
        self.assertTrue(has_conflict(self.index, draft))

    def test_agrees_with_resolver(self) -> None:
        names = ["ML基礎", "深層学習応用"]
        year_terms = [(2024, "前期"), (2023, "前期"), (2023, "後期")]
        labels = [S1, SessionLabel.ordinal(2), SessionLabel.ordinal(3), SessionLabel.special_session()]
        dates = [date(2024, 4, 8), date(2024, 4, 15), date(2024, 4, 22), date(2024, 7, 30), date(2023, 4, 10)]
        for name, (year, term), label, d, version in itertools.product(
            names, year_terms, labels, dates, ANALYSIS_VERSIONS
        ):
            key = BatchKey(name, year, term, label, d, version)
            resolved = resolve(self.index, selection_from_key(key))
            self.assertEqual(has_conflict(self.index, key), isinstance(resolved, Batch), key)

    def test_message_mentions_key_and_batch(self) -> None:
        msg = conflict_message(TAKEN, find_conflict(self.index, TAKEN))
        self.assertIn("ML基礎", msg)
        self.assertIn("第1回", msg)
        self.assertIn("確定版", msg)
        self.assertIn("batch 102", msg)
        self.assertIn("delete the existing batch first", msg)


if __name__ == "__main__":
    unittest.main()
