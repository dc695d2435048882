import unittest

from intelligrade.errors import ServiceError, SessionStateError
from intelligrade.models import (
    ExamQuestion,
    ExamSection,
    FreeResponseQuestion,
    FullExam,
    PracticeQuestion,
    QuestionKind,
    QuestionType,
)
from intelligrade.session import (
    FreeResponseSession,
    FreeResponseStatus,
    FullExamSession,
    McqSession,
    McqStatus,
    compute_score,
    percentage,
)


def _question(correct):
    return PracticeQuestion(
        question=f"Correct answer is {correct}",
        options=("A", "B", "C", "D"),
        correct_answer_index=correct,
        explanation="...",
    )


class FakeSource:
    """Practice source / gateway stand-in with scripted results."""

    source_label = "online"

    def __init__(self, questions=None, error=None, feedback="Great work.", exam=None):
        self.questions = questions
        self.error = error
        self.feedback = feedback
        self.exam = exam
        self.calls = 0
        self.grading_calls = []
        self.session = None

    def _check(self):
        self.calls += 1
        if self.session is not None:
            assert self.session.in_flight
        if self.error is not None:
            raise self.error

    def request_practice_set(self, subject_title):
        self._check()
        return list(self.questions)

    def request_free_response_prompt(self, subject_title, question_type):
        self._check()
        return FreeResponseQuestion(type=question_type, prompt="Explain the causes of the war.")

    def request_full_exam(self, subject_title):
        self._check()
        return self.exam

    def request_grading(self, subject_title, prompt_text, answer_text, question_type):
        self.grading_calls.append((prompt_text, answer_text, question_type))
        if isinstance(self.feedback, Exception):
            raise self.feedback
        if callable(self.feedback):
            return self.feedback(prompt_text)
        return self.feedback


def _taking(correct=(2, 0)):
    session = McqSession("AP Biology")
    session.generate(FakeSource(questions=[_question(c) for c in correct]))
    return session


class ScoringTests(unittest.TestCase):
    def test_compute_score(self):
        questions = [_question(2), _question(0)]
        self.assertEqual(compute_score(questions, [2, 1]), 1)
        self.assertEqual(compute_score(questions, [None, None]), 0)
        self.assertEqual(compute_score(questions, [2, 0]), 2)

    def test_percentage_rounds_half_up(self):
        self.assertEqual(percentage(1, 2), 50)
        self.assertEqual(percentage(2, 3), 67)
        self.assertEqual(percentage(1, 8), 13)
        self.assertEqual(percentage(0, 0), 0)

    def test_score_is_stable_across_recomputes(self):
        questions = [_question(c) for c in (2, 0, 3, 1, 1)]
        answer_sets = [
            [None] * 5,
            [2, 0, 3, 1, 1],
            [0, 1, 2, 3, 0],
            [2, None, 3, None, 0],
            [1, 0, 3, 1, None],
        ]
        for answers in answer_sets:
            scores = {compute_score(questions, answers) for _ in range(5)}
            self.assertEqual(len(scores), 1)
            score = scores.pop()
            self.assertGreaterEqual(score, 0)
            self.assertLessEqual(score, len(questions))

    def test_session_score_is_stable_after_submission(self):
        for answers in ([2, 0, 3], [0, 0, 0], [1, 2, 3]):
            session = _taking(correct=(2, 0, 3))
            for choice in answers:
                session.select_answer(choice)
                session.advance()
            self.assertEqual(session.status, McqStatus.SUBMITTED)
            first = session.score
            for _ in range(5):
                self.assertEqual(session.score, first)
                self.assertEqual(session.percentage, percentage(first, session.total))
            self.assertEqual(first, compute_score(session.questions, answers))
            self.assertTrue(0 <= first <= session.total)


class McqSessionTests(unittest.TestCase):
    def test_generate_enters_taking(self):
        session = _taking()
        self.assertEqual(session.status, McqStatus.TAKING)
        self.assertEqual(session.index, 0)
        self.assertEqual(session.answers, [None, None])
        self.assertEqual(session.source_label, "online")

    def test_scenario_two_questions(self):
        session = _taking(correct=(2, 0))
        session.select_answer(2)
        self.assertTrue(session.advance())
        self.assertEqual(session.index, 1)
        session.select_answer(1)
        self.assertTrue(session.advance())
        self.assertEqual(session.status, McqStatus.SUBMITTED)
        self.assertEqual(session.score, 1)
        self.assertEqual(session.percentage, 50)
        self.assertEqual(session.score, 1)

    def test_advance_blocked_without_answer(self):
        session = _taking()
        self.assertFalse(session.can_advance)
        self.assertFalse(session.advance())
        self.assertEqual(session.index, 0)

    def test_last_write_wins(self):
        session = _taking()
        session.select_answer(1)
        session.select_answer(3)
        self.assertEqual(session.current_answer, 3)
        self.assertEqual(session.index, 0)

    def test_choice_out_of_range(self):
        session = _taking()
        with self.assertRaises(SessionStateError):
            session.select_answer(4)

    def test_answers_are_read_only_after_submit(self):
        session = _taking(correct=(1,))
        session.select_answer(1)
        session.advance()
        with self.assertRaises(SessionStateError):
            session.select_answer(0)
        self.assertEqual(session.answers, [1])

    def test_review_navigation_stays_in_bounds(self):
        session = _taking(correct=(0, 1, 2))
        for choice in (0, 1, 2):
            session.select_answer(choice)
            session.advance()
        self.assertEqual(session.index, 2)
        session.go_to(0)
        self.assertEqual(session.index, 0)
        self.assertFalse(session.previous())
        with self.assertRaises(SessionStateError):
            session.go_to(3)

    def test_go_to_while_taking_stops_at_first_unanswered(self):
        session = _taking(correct=(0, 1, 2, 3))
        self.assertEqual(session.furthest_reachable, 0)
        with self.assertRaises(SessionStateError):
            session.go_to(1)

        session.select_answer(0)
        session.advance()
        session.select_answer(1)
        session.advance()
        self.assertEqual(session.furthest_reachable, 2)

        session.go_to(0)
        self.assertEqual(session.index, 0)
        session.go_to(2)
        self.assertEqual(session.index, 2)
        with self.assertRaises(SessionStateError):
            session.go_to(3)
        self.assertEqual(session.status, McqStatus.TAKING)

    def test_go_to_reaches_every_question_once_all_answered(self):
        session = _taking(correct=(0, 1, 2))
        session.select_answer(0)
        session.advance()
        session.select_answer(1)
        session.advance()
        session.select_answer(2)
        session.go_to(0)
        self.assertEqual(session.furthest_reachable, 2)
        session.go_to(2)
        self.assertEqual(session.status, McqStatus.TAKING)

    def test_go_to_before_generation_is_rejected(self):
        with self.assertRaises(SessionStateError):
            McqSession("AP Biology").go_to(0)
        session = McqSession("AP Biology")
        session.generate(FakeSource(error=ServiceError("busy")))
        with self.assertRaises(SessionStateError):
            session.go_to(0)

    def test_previous_while_taking(self):
        session = _taking()
        session.select_answer(0)
        session.advance()
        self.assertTrue(session.previous())
        self.assertEqual(session.current_answer, 0)

    def test_service_error_enters_error(self):
        session = McqSession("AP Biology")
        session.generate(FakeSource(error=ServiceError("empty or invalid exam data")))
        self.assertEqual(session.status, McqStatus.ERROR)
        self.assertEqual(session.error, "empty or invalid exam data")
        self.assertFalse(session.in_flight)

    def test_empty_set_enters_error(self):
        session = McqSession("AP Biology")
        session.generate(FakeSource(questions=[]))
        self.assertEqual(session.status, McqStatus.ERROR)
        self.assertEqual(session.total, 0)

    def test_retry_starts_from_scratch(self):
        session = McqSession("AP Biology")
        session.generate(FakeSource(error=ServiceError("busy")))
        source = FakeSource(questions=[_question(1)])
        session.retry(source)
        self.assertEqual(session.status, McqStatus.TAKING)
        self.assertIsNone(session.error)
        self.assertEqual(source.calls, 1)

    def test_retry_only_from_error(self):
        with self.assertRaises(SessionStateError):
            _taking().retry(FakeSource(questions=[_question(0)]))

    def test_in_flight_request_is_not_duplicated(self):
        session = McqSession("AP Biology")
        source = FakeSource(questions=[_question(0)])
        session.in_flight = True
        self.assertFalse(session.generate(source))
        self.assertEqual(source.calls, 0)

    def test_flag_is_set_during_request(self):
        session = McqSession("AP Biology")
        source = FakeSource(questions=[_question(0)])
        source.session = session
        self.assertTrue(session.generate(source))
        self.assertFalse(session.in_flight)


class FreeResponseSessionTests(unittest.TestCase):
    def _answering(self, source=None):
        session = FreeResponseSession("AP US History", QuestionType.LEQ)
        session.generate(source or FakeSource())
        return session

    def test_mcq_is_not_a_free_response_type(self):
        with self.assertRaises(ValueError):
            FreeResponseSession("AP Biology", QuestionType.MCQ)

    def test_generate_enters_answering(self):
        session = self._answering()
        self.assertEqual(session.status, FreeResponseStatus.ANSWERING)
        self.assertEqual(session.question.prompt, "Explain the causes of the war.")

    def test_submit_moves_to_review_with_verbatim_feedback(self):
        feedback = "**Strengths**\n- thesis\n\n**Suggested Score**: 4/6"
        source = FakeSource(feedback=feedback)
        session = self._answering(source)
        session.set_answer("The war began because...")
        self.assertTrue(session.submit(source))
        self.assertEqual(session.status, FreeResponseStatus.REVIEW)
        self.assertEqual(session.feedback, feedback)
        self.assertEqual(source.grading_calls[0][1], "The war began because...")

    def test_blank_answer_cannot_be_submitted(self):
        source = FakeSource()
        session = self._answering(source)
        session.set_answer("   \n")
        self.assertFalse(session.can_submit)
        self.assertFalse(session.submit(source))
        self.assertEqual(session.status, FreeResponseStatus.ANSWERING)
        self.assertEqual(source.grading_calls, [])

    def test_grading_failure_enters_error(self):
        source = FakeSource(feedback=ServiceError("The AI may be busy, please try again."))
        session = self._answering(source)
        session.set_answer("An answer")
        session.submit(source)
        self.assertEqual(session.status, FreeResponseStatus.ERROR)
        self.assertEqual(session.error, "The AI may be busy, please try again.")

    def test_retry_after_generation_error(self):
        session = FreeResponseSession("AP US History", "SAQ")
        session.generate(FakeSource(error=ServiceError("Failed to generate SAQ: invalid reply")))
        self.assertEqual(session.status, FreeResponseStatus.ERROR)
        session.retry(FakeSource())
        self.assertEqual(session.status, FreeResponseStatus.ANSWERING)
        self.assertEqual(session.answer_text, "")

    def test_answer_is_read_only_in_review(self):
        source = FakeSource()
        session = self._answering(source)
        session.set_answer("Answer")
        session.submit(source)
        with self.assertRaises(SessionStateError):
            session.set_answer("Changed")


def _exam(mcq_count=5, frq_count=1, limit=60):
    mcq = tuple(
        ExamQuestion(
            id=f"q{i}",
            kind=QuestionKind.MULTIPLE_CHOICE,
            text=f"Question {i}",
            options=("a", "b", "c", "d"),
            correct_option_index=0,
        )
        for i in range(mcq_count)
    )
    frq = tuple(
        ExamQuestion(id=f"frq{i}", kind=QuestionKind.FREE_RESPONSE, text=f"Essay {i}")
        for i in range(frq_count)
    )
    return FullExam(
        title="AP Biology Practice Exam",
        time_limit_minutes=limit,
        sections=(ExamSection("Multiple Choice", mcq), ExamSection("Free Response", frq)),
    )


class FullExamSessionTests(unittest.TestCase):
    def test_pointer_mapping(self):
        session = FullExamSession("AP Biology")
        session.load(_exam(mcq_count=5, frq_count=1), now=0)
        self.assertEqual(session.total, 6)
        self.assertEqual(session.resolve(4), (QuestionKind.MULTIPLE_CHOICE, 4))
        self.assertEqual(session.resolve(5), (QuestionKind.FREE_RESPONSE, 0))
        self.assertEqual(session.question_at(5).id, "frq0")
        with self.assertRaises(IndexError):
            session.resolve(6)

    def test_full_run(self):
        source = FakeSource(exam=_exam(mcq_count=2, frq_count=1))
        session = FullExamSession("AP Biology")
        session.generate(source)
        self.assertEqual(session.status, McqStatus.TAKING)

        session.record_answer(0)
        session.advance()
        session.record_answer(3)
        session.advance()
        self.assertFalse(session.current_question.is_multiple_choice)

        session.record_answer("   ")
        self.assertFalse(session.advance())
        session.record_answer("Enzymes lower activation energy.")
        self.assertTrue(session.advance())

        self.assertEqual(session.status, McqStatus.SUBMITTED)
        self.assertEqual(session.score, 1)
        self.assertEqual(session.percentage, 50)
        with self.assertRaises(SessionStateError):
            session.record_answer("late edit")

    def test_wrong_answer_type_is_rejected(self):
        session = FullExamSession("AP Biology")
        session.load(_exam(mcq_count=1, frq_count=1), now=0)
        with self.assertRaises(SessionStateError):
            session.record_answer("B")
        with self.assertRaises(SessionStateError):
            session.record_answer(4)

    def test_grading_errors_are_per_question(self):
        def feedback(prompt):
            if prompt == "Essay 1":
                raise ServiceError("busy")
            return f"Feedback on {prompt}"

        session = FullExamSession("AP Biology")
        session.load(_exam(mcq_count=0, frq_count=2), now=0)
        session.record_answer("First")
        session.advance()
        session.record_answer("Second")
        session.advance()

        source = FakeSource(feedback=feedback)
        self.assertTrue(session.grade_free_responses(source))
        self.assertEqual(session.feedback, {"frq0": "Feedback on Essay 0"})
        self.assertEqual(session.grading_errors, {"frq1": "busy"})

        source.feedback = "Now fine"
        session.grade_free_responses(source)
        self.assertEqual(session.feedback["frq1"], "Now fine")
        self.assertEqual(session.grading_errors, {})
        self.assertEqual(len(source.grading_calls), 3)

    def test_grading_requires_submission(self):
        session = FullExamSession("AP Biology")
        session.load(_exam(), now=0)
        with self.assertRaises(SessionStateError):
            session.grade_free_responses(FakeSource())

    def test_time_remaining(self):
        session = FullExamSession("AP Biology")
        self.assertIsNone(session.time_remaining(now=0))
        session.load(_exam(limit=60), now=1000)
        self.assertEqual(session.time_remaining(now=1000), 3600)
        self.assertEqual(session.time_remaining(now=1600), 3000)
        self.assertEqual(session.time_remaining(now=99999), 0)

    def test_empty_exam_enters_error(self):
        session = FullExamSession("AP Biology")
        session.load(_exam(mcq_count=0, frq_count=0), now=0)
        self.assertEqual(session.status, McqStatus.ERROR)

    def test_go_to_while_taking_stops_at_first_unanswered(self):
        session = FullExamSession("AP Biology")
        session.load(_exam(mcq_count=3, frq_count=1), now=0)
        session.record_answer(0)
        session.advance()
        session.record_answer(1)
        session.advance()
        self.assertEqual(session.furthest_reachable, 2)

        session.go_to(0)
        self.assertEqual(session.current_question.id, "q0")
        session.go_to(2)
        with self.assertRaises(SessionStateError):
            session.go_to(3)

        session.record_answer(2)
        session.go_to(3)
        self.assertFalse(session.current_question.is_multiple_choice)
        session.record_answer("   ")
        session.go_to(1)
        self.assertEqual(session.furthest_reachable, 3)

    def test_review_go_to_covers_whole_exam(self):
        session = FullExamSession("AP Biology")
        session.load(_exam(mcq_count=2, frq_count=1), now=0)
        session.record_answer(0)
        session.advance()
        session.record_answer(0)
        session.advance()
        session.record_answer("Osmosis moves water.")
        session.advance()
        self.assertEqual(session.status, McqStatus.SUBMITTED)

        session.go_to(0)
        self.assertEqual(session.index, 0)
        session.go_to(2)
        self.assertEqual(session.current_question.id, "frq0")
        with self.assertRaises(SessionStateError):
            session.go_to(3)
        with self.assertRaises(SessionStateError):
            session.go_to(-1)

    def test_go_to_before_generation_is_rejected(self):
        with self.assertRaises(SessionStateError):
            FullExamSession("AP Biology").go_to(0)

    def test_generation_error(self):
        session = FullExamSession("AP Biology")
        session.generate(FakeSource(error=ServiceError("empty or invalid exam data")))
        self.assertEqual(session.status, McqStatus.ERROR)
        self.assertEqual(session.error, "empty or invalid exam data")
        session.retry(FakeSource(exam=_exam()))
        self.assertEqual(session.status, McqStatus.TAKING)


if __name__ == "__main__":
    unittest.main()
