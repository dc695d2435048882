"""
session.py
======================

In-memory state of one practice session, and the transitions that move it.

    McqSession            idle -> generating -> {taking | error}, taking -> submitted
    FreeResponseSession   idle -> generating -> {answering | error},
                          answering -> grading -> {review | error}
    FullExamSession       like McqSession, over mixed MCQ + free-response questions
    TutorConversation     chat transcript with a streaming model reply

Content comes from a *source*: AIGateway (online) or LocalPracticeSource
(offline). ServiceError from a source is caught here, once, and becomes the
session's ``error`` state. Nothing is retried automatically; retry() is
always a user action.

Each session has an ``in_flight`` flag. A generation or grading call made
while another one is pending is ignored.

The UI never mutates these objects directly; it calls the methods below.
"""

from __future__ import annotations

import logging
import math
import time
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import ServiceError, SessionStateError
from .models import (
    ChatMessage,
    ExamQuestion,
    FreeResponseQuestion,
    FullExam,
    PracticeQuestion,
    QuestionKind,
    QuestionType,
)

logger = logging.getLogger(__name__)

TUTOR_ERROR_MESSAGE = "Sorry, I encountered an error. Please try again."


class McqStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    TAKING = "taking"
    SUBMITTED = "submitted"
    ERROR = "error"


class FreeResponseStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    ANSWERING = "answering"
    GRADING = "grading"
    REVIEW = "review"
    ERROR = "error"


# ----------------------------------------------------------------------
#  Scoring
# ----------------------------------------------------------------------
def compute_score(questions: Sequence[PracticeQuestion], answers: Sequence[Optional[int]]) -> int:
    """Number of positions whose recorded answer equals the correct index."""
    return sum(
        1
        for q, a in zip(questions, answers)
        if a is not None and a == q.correct_answer_index
    )


def percentage(score: int, total: int) -> int:
    """score / total as a whole percent, rounded half up. 0 for an empty exam."""
    if total <= 0:
        return 0
    return int(math.floor(score * 100 / total + 0.5))


# ----------------------------------------------------------------------
#  Multiple-choice practice
# ----------------------------------------------------------------------
class McqSession:
    """
    One multiple-choice practice run.

    Invariants:
    - while taking or submitted, 0 <= index < len(questions)
    - len(answers) == len(questions)
    - answers are read-only once submitted
    """

    def __init__(self, subject: str):
        self.subject = subject
        self.status = McqStatus.IDLE
        self.questions: List[PracticeQuestion] = []
        self.answers: List[Optional[int]] = []
        self.index = 0
        self.error: Optional[str] = None
        self.in_flight = False
        self.source_label: Optional[str] = None

    # ------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------
    def generate(self, source) -> bool:
        """
        Fetch a new practice set from ``source``.

        Returns False when ignored because a request is already in flight.
        """
        if self.in_flight:
            logger.debug("Ignoring duplicate generation for %s", self.subject)
            return False

        self.in_flight = True
        self.status = McqStatus.GENERATING
        self.questions = []
        self.answers = []
        self.index = 0
        self.error = None

        try:
            questions = source.request_practice_set(self.subject)
        except ServiceError as e:
            self._fail(str(e))
            return True
        finally:
            self.in_flight = False

        if not questions:
            self._fail("The generated exam was empty.")
            return True

        self.questions = list(questions)
        self.answers = [None] * len(self.questions)
        self.index = 0
        self.source_label = getattr(source, "source_label", None)
        self.status = McqStatus.TAKING
        return True

    def retry(self, source) -> bool:
        if self.status is not McqStatus.ERROR:
            raise SessionStateError("retry is only possible after an error")
        return self.generate(source)

    def _fail(self, message: str) -> None:
        logger.warning("MCQ generation failed for %s: %s", self.subject, message)
        self.questions = []
        self.answers = []
        self.index = 0
        self.error = message or "An unknown error occurred."
        self.status = McqStatus.ERROR

    # ------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------
    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[PracticeQuestion]:
        if not self.questions:
            return None
        return self.questions[self.index]

    @property
    def current_answer(self) -> Optional[int]:
        if not self.answers:
            return None
        return self.answers[self.index]

    @property
    def is_last(self) -> bool:
        return self.total > 0 and self.index == self.total - 1

    def select_answer(self, choice: int) -> None:
        """Record ``choice`` for the current question. Last write wins."""
        if self.status is McqStatus.SUBMITTED:
            raise SessionStateError("answers are read-only after submission")
        if self.status is not McqStatus.TAKING:
            raise SessionStateError(f"cannot answer while {self.status.value}")
        options = self.questions[self.index].options
        if not 0 <= choice < len(options):
            raise SessionStateError(f"choice out of range: {choice}")
        self.answers[self.index] = choice

    # ------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------
    @property
    def can_advance(self) -> bool:
        return self.status is McqStatus.TAKING and self.current_answer is not None

    def advance(self) -> bool:
        """
        Next question, or submit on the last one.
        Returns False (and does nothing) while the current answer is empty.
        """
        if not self.can_advance:
            return False
        if self.is_last:
            self.status = McqStatus.SUBMITTED
            logger.info("MCQ session for %s submitted: %d/%d", self.subject, self.score, self.total)
        else:
            self.index += 1
        return True

    def previous(self) -> bool:
        if self.status not in (McqStatus.TAKING, McqStatus.SUBMITTED) or self.index == 0:
            return False
        self.index -= 1
        return True

    @property
    def furthest_reachable(self) -> int:
        """
        Highest position go_to() accepts: any question once submitted,
        otherwise up to the first unanswered one.
        """
        if self.status is McqStatus.SUBMITTED:
            return self.total - 1
        for i, answer in enumerate(self.answers):
            if answer is None:
                return i
        return self.total - 1

    def go_to(self, index: int) -> None:
        """Jump to a question: palette navigation while taking, review after submission."""
        if self.status not in (McqStatus.TAKING, McqStatus.SUBMITTED):
            raise SessionStateError(f"cannot navigate while {self.status.value}")
        if not 0 <= index <= self.furthest_reachable:
            raise SessionStateError(f"question {index + 1} is not reachable yet")
        self.index = index

    # ------------------------------------------------------------
    # Results
    # ------------------------------------------------------------
    @property
    def score(self) -> int:
        return compute_score(self.questions, self.answers)

    @property
    def percentage(self) -> int:
        return percentage(self.score, self.total)

    def is_correct(self, position: int) -> bool:
        answer = self.answers[position]
        return answer is not None and answer == self.questions[position].correct_answer_index


# ----------------------------------------------------------------------
#  Free-response practice
# ----------------------------------------------------------------------
class FreeResponseSession:
    """One SAQ / DBQ / LEQ / FRQ prompt, the student's answer and its grading."""

    def __init__(self, subject: str, question_type: Union[QuestionType, str]):
        question_type = QuestionType(question_type)
        if not question_type.is_free_response:
            raise ValueError(f"{question_type.value} is not a free-response type")
        self.subject = subject
        self.question_type = question_type
        self.status = FreeResponseStatus.IDLE
        self.question: Optional[FreeResponseQuestion] = None
        self.answer_text = ""
        self.feedback = ""
        self.error: Optional[str] = None
        self.in_flight = False

    def generate(self, gateway) -> bool:
        if self.in_flight:
            return False

        self.in_flight = True
        self.status = FreeResponseStatus.GENERATING
        self.question = None
        self.answer_text = ""
        self.feedback = ""
        self.error = None
        try:
            self.question = gateway.request_free_response_prompt(self.subject, self.question_type)
        except ServiceError as e:
            self._fail(str(e))
        else:
            self.status = FreeResponseStatus.ANSWERING
        finally:
            self.in_flight = False
        return True

    def retry(self, gateway) -> bool:
        if self.status is not FreeResponseStatus.ERROR:
            raise SessionStateError("retry is only possible after an error")
        return self.generate(gateway)

    def set_answer(self, text: str) -> None:
        if self.status is not FreeResponseStatus.ANSWERING:
            raise SessionStateError(f"cannot edit the answer while {self.status.value}")
        self.answer_text = text

    @property
    def can_submit(self) -> bool:
        return (
            self.status is FreeResponseStatus.ANSWERING
            and self.question is not None
            and bool(self.answer_text.strip())
        )

    def submit(self, gateway) -> bool:
        """
        answering -> grading -> review | error.
        Returns False when the answer is blank or a request is in flight.
        """
        if self.in_flight or not self.can_submit:
            return False

        self.in_flight = True
        self.status = FreeResponseStatus.GRADING
        try:
            self.feedback = gateway.request_grading(
                self.subject,
                self.question.prompt,
                self.answer_text,
                self.question_type,
            )
        except ServiceError as e:
            self._fail(str(e))
        else:
            self.status = FreeResponseStatus.REVIEW
        finally:
            self.in_flight = False
        return True

    def _fail(self, message: str) -> None:
        logger.warning("%s flow failed for %s: %s", self.question_type.value, self.subject, message)
        self.error = message or "An unknown error occurred."
        self.status = FreeResponseStatus.ERROR


# ----------------------------------------------------------------------
#  Full-length exam
# ----------------------------------------------------------------------
Answer = Union[int, str]


class FullExamSession:
    """
    A generated full-length exam taken with one linear pointer.

    Positions [0, mcq_count) are the multiple-choice questions in exam
    order, positions [mcq_count, mcq_count + frq_count) the free-response
    questions. Answers are keyed by question id.
    """

    def __init__(self, subject: str):
        self.subject = subject
        self.status = McqStatus.IDLE
        self.exam: Optional[FullExam] = None
        self.mcq: List[ExamQuestion] = []
        self.frq: List[ExamQuestion] = []
        self.answers: Dict[str, Answer] = {}
        self.index = 0
        self.error: Optional[str] = None
        self.in_flight = False
        self.started_at: Optional[float] = None
        self.feedback: Dict[str, str] = {}
        self.grading_errors: Dict[str, str] = {}

    # ------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------
    def generate(self, gateway) -> bool:
        if self.in_flight:
            return False

        self.in_flight = True
        self.status = McqStatus.GENERATING
        self._reset()
        try:
            exam = gateway.request_full_exam(self.subject)
        except ServiceError as e:
            self.error = str(e) or "An unknown error occurred."
            self.status = McqStatus.ERROR
            logger.warning("Full exam generation failed for %s: %s", self.subject, self.error)
            return True
        finally:
            self.in_flight = False

        self.load(exam)
        return True

    def retry(self, gateway) -> bool:
        if self.status is not McqStatus.ERROR:
            raise SessionStateError("retry is only possible after an error")
        return self.generate(gateway)

    def load(self, exam: FullExam, now: Optional[float] = None) -> None:
        """Start taking ``exam`` from the first question."""
        self._reset()
        self.exam = exam
        self.mcq = exam.multiple_choice
        self.frq = exam.free_response
        if self.total == 0:
            self.error = "The generated exam was empty."
            self.status = McqStatus.ERROR
            return
        self.started_at = time.time() if now is None else now
        self.status = McqStatus.TAKING

    def _reset(self) -> None:
        self.exam = None
        self.mcq = []
        self.frq = []
        self.answers = {}
        self.index = 0
        self.error = None
        self.started_at = None
        self.feedback = {}
        self.grading_errors = {}

    # ------------------------------------------------------------
    # Pointer mapping
    # ------------------------------------------------------------
    @property
    def mcq_count(self) -> int:
        return len(self.mcq)

    @property
    def frq_count(self) -> int:
        return len(self.frq)

    @property
    def total(self) -> int:
        return self.mcq_count + self.frq_count

    def resolve(self, position: int) -> Tuple[QuestionKind, int]:
        """Linear position -> (kind, index within that kind's list)."""
        if not 0 <= position < self.total:
            raise IndexError(f"position out of range: {position}")
        if position < self.mcq_count:
            return QuestionKind.MULTIPLE_CHOICE, position
        return QuestionKind.FREE_RESPONSE, position - self.mcq_count

    def question_at(self, position: int) -> ExamQuestion:
        kind, i = self.resolve(position)
        return self.mcq[i] if kind is QuestionKind.MULTIPLE_CHOICE else self.frq[i]

    @property
    def current_question(self) -> Optional[ExamQuestion]:
        if self.total == 0:
            return None
        return self.question_at(self.index)

    @property
    def current_answer(self) -> Optional[Answer]:
        q = self.current_question
        return self.answers.get(q.id) if q is not None else None

    # ------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------
    def record_answer(self, answer: Answer) -> None:
        if self.status is McqStatus.SUBMITTED:
            raise SessionStateError("answers are read-only after submission")
        if self.status is not McqStatus.TAKING:
            raise SessionStateError(f"cannot answer while {self.status.value}")

        q = self.current_question
        if q.is_multiple_choice:
            if isinstance(answer, bool) or not isinstance(answer, int) or not 0 <= answer < len(q.options):
                raise SessionStateError(f"invalid choice for {q.id}: {answer!r}")
        elif not isinstance(answer, str):
            raise SessionStateError(f"free-response answer for {q.id} must be text")
        self.answers[q.id] = answer

    def _answered(self, q: ExamQuestion) -> bool:
        a = self.answers.get(q.id)
        if q.is_multiple_choice:
            return a is not None
        return isinstance(a, str) and bool(a.strip())

    @property
    def can_advance(self) -> bool:
        return self.status is McqStatus.TAKING and self._answered(self.current_question)

    @property
    def is_last(self) -> bool:
        return self.total > 0 and self.index == self.total - 1

    def advance(self) -> bool:
        if not self.can_advance:
            return False
        if self.is_last:
            self.status = McqStatus.SUBMITTED
            logger.info("Full exam for %s submitted: %d/%d MCQ", self.subject, self.score, self.mcq_count)
        else:
            self.index += 1
        return True

    def previous(self) -> bool:
        if self.status not in (McqStatus.TAKING, McqStatus.SUBMITTED) or self.index == 0:
            return False
        self.index -= 1
        return True

    @property
    def furthest_reachable(self) -> int:
        """Same rule as McqSession.furthest_reachable, over the linear positions."""
        if self.status is McqStatus.SUBMITTED:
            return self.total - 1
        for position in range(self.total):
            if not self._answered(self.question_at(position)):
                return position
        return self.total - 1

    def go_to(self, position: int) -> None:
        if self.status not in (McqStatus.TAKING, McqStatus.SUBMITTED):
            raise SessionStateError(f"cannot navigate while {self.status.value}")
        if not 0 <= position <= self.furthest_reachable:
            raise SessionStateError(f"question {position + 1} is not reachable yet")
        self.index = position

    # ------------------------------------------------------------
    # Results
    # ------------------------------------------------------------
    @property
    def score(self) -> int:
        return sum(1 for q in self.mcq if self.answers.get(q.id) == q.correct_option_index)

    @property
    def percentage(self) -> int:
        return percentage(self.score, self.mcq_count)

    def time_remaining(self, now: Optional[float] = None) -> Optional[float]:
        """Seconds left on the exam clock (never negative), None before start."""
        if self.exam is None or self.started_at is None:
            return None
        now = time.time() if now is None else now
        limit = self.exam.time_limit_minutes * 60
        return max(limit - (now - self.started_at), 0.0)

    def grade_free_responses(self, gateway) -> bool:
        """
        Grade every answered free-response question not graded yet.
        A failure is recorded for that question only.
        """
        if self.status is not McqStatus.SUBMITTED:
            raise SessionStateError("grading is only available after submission")
        if self.in_flight:
            return False

        self.in_flight = True
        try:
            for q in self.frq:
                if q.id in self.feedback or not self._answered(q):
                    continue
                try:
                    self.feedback[q.id] = gateway.request_grading(
                        self.subject, q.text, self.answers[q.id], QuestionType.FRQ
                    )
                    self.grading_errors.pop(q.id, None)
                except ServiceError as e:
                    self.grading_errors[q.id] = str(e)
        finally:
            self.in_flight = False
        return True


# ----------------------------------------------------------------------
#  Tutor chat
# ----------------------------------------------------------------------
class TutorConversation:
    """
    Tutor transcript. Append-only while the tutor page is open; the app
    drops the object when the user navigates away.
    """

    def __init__(self):
        self.messages: List[ChatMessage] = []
        self.in_flight = False
        self._active_stream = None

    def send(self, gateway, text: str) -> Iterator[str]:
        """
        Generator: post ``text`` and stream the reply.

        Yields each fragment as it is appended to the last (model) message.
        On ServiceError exactly one system message is appended. Blank input
        and sends during another reply yield nothing.

        Closing the generator early (the page reran mid-reply) cancels the
        upstream stream; the fragments received so far stay in the transcript.
        """
        if self.in_flight or not text.strip():
            return

        self.in_flight = True
        history = list(self.messages)
        self.messages.append(ChatMessage(role="user", content=text))
        reply: Optional[ChatMessage] = None
        stream = None
        finished = False
        try:
            stream = gateway.request_tutor_reply(history, text)
            self._active_stream = stream
            reply = ChatMessage(role="model", content="")
            self.messages.append(reply)
            for fragment in stream:
                reply.content += fragment
                yield fragment
            finished = True
            if not reply.content:
                self.messages.remove(reply)
        except ServiceError as e:
            finished = True
            logger.warning("Tutor reply failed: %s", e)
            if reply is not None and not reply.content:
                self.messages.remove(reply)
            self.messages.append(ChatMessage(role="system", content=TUTOR_ERROR_MESSAGE))
        finally:
            if stream is not None and not finished:
                logger.debug("Tutor reply abandoned, cancelling stream")
                stream.cancel()
                if reply is not None and not reply.content:
                    self.messages.remove(reply)
            self._active_stream = None
            self.in_flight = False

    def cancel(self) -> None:
        """Stop the reply currently streaming, keeping what has arrived."""
        if self._active_stream is not None:
            self._active_stream.cancel()
