"""
models.py
======================

Data types shared by the gateway, the session state machines and the UI.

The upstream model speaks camelCase JSON; every type here has
``from_dict`` (wire -> Python, validating) and ``to_dict`` (Python -> wire).
``from_dict`` raises ValueError on anything that does not match the shape,
the gateway turns that into ServiceError.

Wire shapes:

    PracticeQuestion
        {"question": str, "options": [str x4], "correctAnswerIndex": 0..3,
         "explanation": str}

    FreeResponseQuestion
        {"type": "SAQ|DBQ|LEQ|FRQ", "prompt": str,
         "documents": [{"source": str, "content": str}, ...]}   # DBQ only

    FullExam
        {"examTitle": str, "timeLimitMinutes": int,
         "sections": [{"sectionTitle": str,
                       "questions": [{"id": str, "questionText": str,
                                      "options": [...], "correctOptionIndex": int,
                                      "explanation": str}, ...]}]}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

Role = Literal["user", "model", "system"]
ROLES: Tuple[str, ...] = ("user", "model", "system")

OPTION_COUNT = 4


class QuestionType(str, Enum):
    MCQ = "MCQ"
    SAQ = "SAQ"
    DBQ = "DBQ"
    LEQ = "LEQ"
    FRQ = "FRQ"

    @property
    def is_free_response(self) -> bool:
        return self in FREE_RESPONSE_TYPES


FREE_RESPONSE_TYPES: Tuple[QuestionType, ...] = (
    QuestionType.SAQ,
    QuestionType.DBQ,
    QuestionType.LEQ,
    QuestionType.FRQ,
)

QUESTION_TYPE_DETAILS: Dict[QuestionType, Dict[str, str]] = {
    QuestionType.MCQ: {
        "name": "Multiple-Choice Questions",
        "description": "Test your knowledge with a set of practice questions.",
    },
    QuestionType.FRQ: {
        "name": "Free-Response Questions",
        "description": "Practice writing detailed answers to complex prompts.",
    },
    QuestionType.SAQ: {
        "name": "Short Answer Questions",
        "description": "Practice answering multi-part historical questions concisely.",
    },
    QuestionType.DBQ: {
        "name": "Document-Based Question",
        "description": "Analyze historical documents to construct a compelling essay.",
    },
    QuestionType.LEQ: {
        "name": "Long Essay Question",
        "description": "Write an essay arguing a historical thesis.",
    },
}


class QuestionKind(str, Enum):
    """Discriminant for questions inside a full-length exam."""

    MULTIPLE_CHOICE = "multiple_choice"
    FREE_RESPONSE = "free_response"


# ----------------------------------------------------------------------
#  Field helpers
# ----------------------------------------------------------------------
def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"missing or empty field: {key}")
    return value.strip()


def _require_index(value: Any, upper: int, key: str) -> int:
    # bool is an int subclass; True must not pass as index 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    if not 0 <= value < upper:
        raise ValueError(f"{key} out of range: {value}")
    return value


def _require_options(data: Dict[str, Any], key: str = "options") -> Tuple[str, ...]:
    options = data.get(key)
    if not isinstance(options, list) or len(options) != OPTION_COUNT:
        raise ValueError(f"{key} must be a list of {OPTION_COUNT} strings")
    if not all(isinstance(o, str) and o.strip() for o in options):
        raise ValueError(f"{key} must contain non-empty strings")
    return tuple(o.strip() for o in options)


# ----------------------------------------------------------------------
#  Chat
# ----------------------------------------------------------------------
@dataclass
class ChatMessage:
    """One transcript entry. content grows while a model reply streams in."""

    role: Role
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"unknown role: {self.role}")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


# ----------------------------------------------------------------------
#  Practice questions
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class PracticeQuestion:
    question: str
    options: Tuple[str, ...]
    correct_answer_index: int
    explanation: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PracticeQuestion":
        if not isinstance(data, dict):
            raise ValueError("question entry must be an object")
        return cls(
            question=_require_str(data, "question"),
            options=_require_options(data),
            correct_answer_index=_require_index(
                data.get("correctAnswerIndex"), OPTION_COUNT, "correctAnswerIndex"
            ),
            explanation=_require_str(data, "explanation"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options),
            "correctAnswerIndex": self.correct_answer_index,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class SourceDocument:
    source: str
    content: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceDocument":
        if not isinstance(data, dict):
            raise ValueError("document entry must be an object")
        return cls(source=_require_str(data, "source"), content=_require_str(data, "content"))

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "content": self.content}


@dataclass(frozen=True)
class FreeResponseQuestion:
    type: QuestionType
    prompt: str
    documents: Tuple[SourceDocument, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type.value, "prompt": self.prompt}
        if self.documents:
            d["documents"] = [doc.to_dict() for doc in self.documents]
        return d


# ----------------------------------------------------------------------
#  Full-length exam
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ExamQuestion:
    """
    A question inside a full exam. ``kind`` is explicit; on the wire it is
    implied by whether ``options`` is present.
    """

    id: str
    kind: QuestionKind
    text: str
    options: Tuple[str, ...] = ()
    correct_option_index: Optional[int] = None
    explanation: Optional[str] = None

    @property
    def is_multiple_choice(self) -> bool:
        return self.kind is QuestionKind.MULTIPLE_CHOICE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExamQuestion":
        if not isinstance(data, dict):
            raise ValueError("exam question must be an object")
        qid = _require_str(data, "id")
        text = _require_str(data, "questionText")

        if data.get("options") is None:
            return cls(id=qid, kind=QuestionKind.FREE_RESPONSE, text=text)

        options = _require_options(data)
        explanation = data.get("explanation")
        return cls(
            id=qid,
            kind=QuestionKind.MULTIPLE_CHOICE,
            text=text,
            options=options,
            correct_option_index=_require_index(
                data.get("correctOptionIndex"), len(options), "correctOptionIndex"
            ),
            explanation=explanation.strip() if isinstance(explanation, str) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"id": self.id, "questionText": self.text}
        if self.is_multiple_choice:
            d["options"] = list(self.options)
            d["correctOptionIndex"] = self.correct_option_index
            if self.explanation:
                d["explanation"] = self.explanation
        return d


@dataclass(frozen=True)
class ExamSection:
    title: str
    questions: Tuple[ExamQuestion, ...]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExamSection":
        if not isinstance(data, dict):
            raise ValueError("section must be an object")
        raw_questions = data.get("questions")
        if not isinstance(raw_questions, list):
            raise ValueError("section questions must be a list")
        return cls(
            title=_require_str(data, "sectionTitle"),
            questions=tuple(ExamQuestion.from_dict(q) for q in raw_questions),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"sectionTitle": self.title, "questions": [q.to_dict() for q in self.questions]}


@dataclass(frozen=True)
class FullExam:
    title: str
    time_limit_minutes: int
    sections: Tuple[ExamSection, ...]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FullExam":
        if not isinstance(data, dict):
            raise ValueError("exam must be an object")
        limit = data.get("timeLimitMinutes")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValueError("timeLimitMinutes must be a positive integer")
        raw_sections = data.get("sections")
        if not isinstance(raw_sections, list):
            raise ValueError("sections must be a list")

        exam = cls(
            title=_require_str(data, "examTitle"),
            time_limit_minutes=limit,
            sections=tuple(ExamSection.from_dict(s) for s in raw_sections),
        )
        ids = [q.id for q in exam.questions]
        if len(ids) != len(set(ids)):
            raise ValueError("question ids must be unique")
        return exam

    @property
    def questions(self) -> List[ExamQuestion]:
        return [q for s in self.sections for q in s.questions]

    @property
    def multiple_choice(self) -> List[ExamQuestion]:
        return [q for q in self.questions if q.is_multiple_choice]

    @property
    def free_response(self) -> List[ExamQuestion]:
        return [q for q in self.questions if not q.is_multiple_choice]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "examTitle": self.title,
            "timeLimitMinutes": self.time_limit_minutes,
            "sections": [s.to_dict() for s in self.sections],
        }


# ----------------------------------------------------------------------
#  Catalog entry
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class APExam:
    id: str
    title: str
    description: str
    subjects: Tuple[str, ...] = ()
    mcq_count: int = 0
    question_types: Tuple[QuestionType, ...] = field(default=(QuestionType.MCQ,))

    @property
    def free_response_types(self) -> List[QuestionType]:
        return [t for t in self.question_types if t.is_free_response]
