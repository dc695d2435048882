import json
import random
import tempfile
import unittest
from pathlib import Path

from intelligrade.catalog import AP_EXAMS, find_exam, find_exam_by_title, search
from intelligrade.config import SAMPLE_BANK_PATH
from intelligrade.errors import ServiceError
from intelligrade.models import APExam, PracticeQuestion, QuestionType
from intelligrade.question_bank import (
    PLAN_WEEKS,
    PLAN_WEEKLY_GOAL,
    LocalPracticeSource,
    LocalStudyPlanner,
    append_questions,
    available_exam_ids,
    get_questions,
    load_question_bank,
)
from intelligrade.ui import exam_format_line


def _row(exam_id, question="Q?", correct=0):
    return {
        "examId": exam_id,
        "question": question,
        "options": ["a", "b", "c", "d"],
        "correctAnswerIndex": correct,
        "explanation": "because",
    }


class CatalogTests(unittest.TestCase):
    def test_ids_are_unique(self):
        ids = [e.id for e in AP_EXAMS]
        self.assertEqual(len(ids), len(set(ids)))

    def test_every_exam_offers_mcq(self):
        for exam in AP_EXAMS:
            self.assertIn(QuestionType.MCQ, exam.question_types, exam.id)

    def test_history_exams_offer_document_based_questions(self):
        exam = find_exam("ap-us-history")
        self.assertEqual(
            exam.free_response_types,
            [QuestionType.SAQ, QuestionType.DBQ, QuestionType.LEQ],
        )

    def test_lookup(self):
        self.assertEqual(find_exam_by_title("ap biology").id, "ap-biology")
        self.assertIsNone(find_exam("ap-underwater-basket-weaving"))
        self.assertIsNone(find_exam_by_title("AP Nothing"))

    def test_search(self):
        self.assertEqual(len(search("")), len(AP_EXAMS))
        titles = [e.title for e in search("calculus")]
        self.assertIn("AP Calculus AB", titles)
        self.assertTrue(all("Calculus" in t for t in titles))
        self.assertEqual(search("zzz-no-match"), [])

    def test_search_matches_subject_tags(self):
        self.assertIn(find_exam("ap-biology"), search("life sciences"))

    def test_format_line(self):
        self.assertEqual(exam_format_line(find_exam("ap-us-history")), "55 MCQ · SAQ, DBQ, LEQ")
        self.assertEqual(exam_format_line(APExam(id="x", title="X", description="")), "")


class QuestionBankTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "bank.jsonl"

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, lines):
        self.path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def test_bundled_bank_loads(self):
        bank = load_question_bank(SAMPLE_BANK_PATH, force_reload=True)
        self.assertIn("ap-biology", bank)
        for exam_id in bank:
            self.assertIsNotNone(find_exam(exam_id), exam_id)

    def test_malformed_lines_are_skipped(self):
        bad_index = dict(_row("ap-biology"), correctAnswerIndex=9)
        no_exam = _row("ap-biology")
        del no_exam["examId"]
        self._write([
            json.dumps(_row("ap-biology", "Good one")),
            "{broken",
            json.dumps(bad_index),
            json.dumps(no_exam),
            "",
            json.dumps(_row("ap-psychology", "Another")),
        ])
        bank = load_question_bank(self.path, force_reload=True)
        self.assertEqual([q.question for q in bank["ap-biology"]], ["Good one"])
        self.assertEqual(available_exam_ids(self.path), ["ap-biology", "ap-psychology"])

    def test_missing_file_is_empty(self):
        self.assertEqual(load_question_bank(self.path / "nope.jsonl", force_reload=True), {})

    def test_append_invalidates_cache(self):
        self._write([json.dumps(_row("ap-biology"))])
        self.assertEqual(len(get_questions("ap-biology", self.path)), 1)
        q = PracticeQuestion("New?", ("a", "b", "c", "d"), 3, "why")
        self.assertEqual(append_questions("ap-biology", [q], self.path), 1)
        questions = get_questions("ap-biology", self.path)
        self.assertEqual(len(questions), 2)
        self.assertEqual(questions[-1], q)


class LocalPracticeSourceTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "bank.jsonl"
        rows = [_row("ap-biology", f"Q{i}") for i in range(5)]
        self.path.write_text("\n".join(json.dumps(r) for r in rows), encoding="utf-8")

    def tearDown(self):
        self._tmp.cleanup()

    def test_returns_shuffled_subset(self):
        source = LocalPracticeSource(self.path, size=3, rng=random.Random(7))
        questions = source.request_practice_set("AP Biology")
        self.assertEqual(len(questions), 3)
        self.assertTrue({q.question for q in questions} <= {f"Q{i}" for i in range(5)})

    def test_unknown_subject_is_an_error(self):
        source = LocalPracticeSource(self.path)
        with self.assertRaises(ServiceError):
            source.request_practice_set("AP Chemistry")

    def test_shuffle_does_not_touch_cached_bank(self):
        source = LocalPracticeSource(self.path, rng=random.Random(1))
        source.request_practice_set("AP Biology")
        self.assertEqual(
            [q.question for q in get_questions("ap-biology", self.path)],
            [f"Q{i}" for i in range(5)],
        )


class LocalStudyPlannerTests(unittest.TestCase):
    def test_twelve_weeks_one_unit_each(self):
        plan = LocalStudyPlanner().request_study_plan("AP Chemistry")
        self.assertEqual(PLAN_WEEKS, 12)
        for week in range(1, 13):
            self.assertIn(f"## Week {week}\n", plan)
            self.assertIn(f"AP Chemistry, Unit {week}\n", plan)
        self.assertNotIn("## Week 13", plan)
        self.assertEqual(plan.count(PLAN_WEEKLY_GOAL), 12)

    def test_weeks_stay_in_order(self):
        plan = LocalStudyPlanner().request_study_plan("AP Biology")
        positions = [plan.index(f"## Week {w}\n") for w in range(1, 13)]
        self.assertEqual(positions, sorted(positions))

    def test_blank_subject_is_an_error(self):
        with self.assertRaises(ServiceError):
            LocalStudyPlanner().request_study_plan("  ")


if __name__ == "__main__":
    unittest.main()
