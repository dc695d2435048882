"""
gateway.py
======================

AI service gateway: turns study intents into Gemini requests and the
replies into validated objects.

Intents:
- request_tutor_reply()          streaming tutor turn
- request_practice_set()         MCQ practice set (JSON array)
- request_free_response_prompt() one SAQ / DBQ / LEQ / FRQ prompt (JSON object)
- request_grading()              markdown feedback on a free-response answer
- request_full_exam()            full-length exam with sections (JSON object)
- request_study_plan()           markdown weekly study schedule

Every failure, upstream or parse, surfaces as ServiceError. The caller never
receives partially valid structured data.

The parse_* functions are pure and work on the raw reply text.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import ServiceError
from .models import (
    ChatMessage,
    FreeResponseQuestion,
    FullExam,
    PracticeQuestion,
    QuestionType,
    SourceDocument,
)
from .streaming import CancelToken, FragmentStream

logger = logging.getLogger(__name__)

DBQ_MIN_DOCUMENTS = 5
DBQ_MAX_DOCUMENTS = 7

EMPTY_EXAM_MESSAGE = "empty or invalid exam data"

TUTOR_SYSTEM_INSTRUCTION = (
    "You are IntelliGrade, an expert AI tutor. Your goal is to help students learn any "
    "subject by providing clear, concise, and encouraging explanations. When a student "
    "asks a question, break down complex topics into simple, understandable parts. Use "
    "analogies and real-world examples. If a student is struggling, offer encouragement "
    "and guide them towards the answer without giving it away directly. Be patient, "
    "positive, and supportive. Your responses should be formatted with markdown for "
    "readability."
)


# ----------------------------------------------------------------------
#  Response schemas (Gemini OpenAPI subset)
# ----------------------------------------------------------------------
PRACTICE_SET_SCHEMA: Dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "question": {"type": "STRING"},
            "options": {"type": "ARRAY", "items": {"type": "STRING"}},
            "correctAnswerIndex": {"type": "INTEGER"},
            "explanation": {"type": "STRING"},
        },
        "required": ["question", "options", "correctAnswerIndex", "explanation"],
    },
}

DOCUMENT_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "source": {"type": "STRING", "description": "The source of the document."},
        "content": {"type": "STRING", "description": "The text content of the document."},
    },
    "required": ["source", "content"],
}

FULL_EXAM_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "examTitle": {"type": "STRING"},
        "timeLimitMinutes": {"type": "INTEGER"},
        "sections": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "sectionTitle": {"type": "STRING"},
                    "questions": {
                        "type": "ARRAY",
                        "items": {
                            "type": "OBJECT",
                            "properties": {
                                "id": {"type": "STRING"},
                                "questionText": {"type": "STRING"},
                                "options": {"type": "ARRAY", "items": {"type": "STRING"}},
                                "correctOptionIndex": {"type": "INTEGER"},
                                "explanation": {"type": "STRING"},
                            },
                            "required": ["id", "questionText"],
                        },
                    },
                },
                "required": ["sectionTitle", "questions"],
            },
        },
    },
    "required": ["examTitle", "timeLimitMinutes", "sections"],
}


def free_response_schema(question_type: QuestionType) -> Dict[str, Any]:
    schema: Dict[str, Any] = {
        "type": "OBJECT",
        "properties": {
            "prompt": {
                "type": "STRING",
                "description": f"The main prompt for the {question_type.value}.",
            },
        },
        "required": ["prompt"],
    }
    if question_type is QuestionType.DBQ:
        schema["properties"]["documents"] = {
            "type": "ARRAY",
            "description": f"An array of {DBQ_MIN_DOCUMENTS}-{DBQ_MAX_DOCUMENTS} historical documents.",
            "items": DOCUMENT_SCHEMA,
        }
        schema["required"].append("documents")
    return schema


# ----------------------------------------------------------------------
#  Prompts
# ----------------------------------------------------------------------
def build_practice_set_prompt(subject_title: str, count: int) -> str:
    return f"""Generate a {count}-question multiple-choice practice exam for the subject "{subject_title}". This should be a representative sample of questions from the full curriculum, in the style of the official College Board AP exams. For each question, provide:
1. "question": The question text.
2. "options": An array of four distinct string options.
3. "correctAnswerIndex": The 0-based index of the correct answer in the "options" array.
4. "explanation": A detailed explanation for why the correct answer is right and why the other options are incorrect.
Return the result as a single JSON array of objects, with no surrounding text or markdown."""


_FREE_RESPONSE_PROMPTS: Dict[QuestionType, str] = {
    QuestionType.DBQ: (
        "Generate a Document-Based Question (DBQ) for AP {subject}, in the style of the official "
        "College Board exam. Provide a compelling historical prompt and "
        f"{DBQ_MIN_DOCUMENTS}-{DBQ_MAX_DOCUMENTS} relevant primary or secondary source documents. "
        "Each document must include a source."
    ),
    QuestionType.SAQ: (
        "Generate a Short Answer Question (SAQ) for AP {subject}, in the style of the official "
        "College Board exam. It should have parts (a), (b), and (c)."
    ),
    QuestionType.LEQ: (
        "Generate a Long Essay Question (LEQ) for AP {subject}, in the style of the official "
        "College Board exam. Provide a choice of two or three prompts if appropriate for the subject."
    ),
    QuestionType.FRQ: (
        "Generate a Free-Response Question (FRQ) for AP {subject}, in the style of the official "
        "College Board exam. The question should be multi-part if typical for the subject."
    ),
}


def build_free_response_prompt(subject_title: str, question_type: QuestionType) -> str:
    return _FREE_RESPONSE_PROMPTS[question_type].format(subject=subject_title)


def build_grading_prompt(
    subject_title: str,
    prompt_text: str,
    answer_text: str,
    question_type: QuestionType,
) -> str:
    return f"""You are an expert AP exam grader for {subject_title}. A student has answered the following {question_type.value} prompt:
---
PROMPT: "{prompt_text}"
---
STUDENT'S ANSWER: "{answer_text}"
---
Please provide constructive, detailed feedback on the student's answer. Analyze it based on the official AP rubric for this question type. Address the following in your feedback:
1.  **Strengths**: What did the student do well? (e.g., thesis statement, use of evidence, analysis).
2.  **Areas for Improvement**: Where could the student improve? Be specific.
3.  **Suggested Score**: Provide a plausible score (e.g., for a DBQ, a score out of 7 points) and briefly justify why you are suggesting that score by referencing the rubric points they earned.
Format your entire response using markdown for clear readability."""


def build_full_exam_prompt(subject_title: str) -> str:
    return f"""Generate a full-length {subject_title} exam.
Use College Board exam format with multiple sections: a multiple-choice section followed by a free-response section.
Multiple-choice questions have an "options" array of four strings, a 0-based "correctOptionIndex" and an "explanation".
Free-response questions have only "id" and "questionText".
Every question "id" must be unique.
Respond ONLY with valid JSON in this exact shape:

{{
  "examTitle": "{subject_title} Practice Exam",
  "timeLimitMinutes": 180,
  "sections": [
    {{
      "sectionTitle": "Multiple Choice",
      "questions": [
        {{"id": "q1", "questionText": "...", "options": ["...", "...", "...", "..."], "correctOptionIndex": 2, "explanation": "..."}}
      ]
    }},
    {{
      "sectionTitle": "Free Response",
      "questions": [
        {{"id": "frq1", "questionText": "..."}}
      ]
    }}
  ]
}}"""


def build_study_plan_prompt(subject_title: str) -> str:
    return f"""Create a weekly study plan for a student preparing for the {subject_title} exam.
Cover the full course curriculum over eight weeks. For each week give:
- the units or topics to study,
- two or three concrete study activities,
- one self-check question.
Finish with a short checklist for the week before the exam.
Format the plan in markdown with one heading per week."""


# ----------------------------------------------------------------------
#  Parsing
# ----------------------------------------------------------------------
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _load_json(text: str) -> Any:
    """json.loads, accepting a surrounding ```json fence."""
    if not isinstance(text, str):
        raise ValueError("reply is not text")
    stripped = text.strip()
    m = _FENCE_RE.match(stripped)
    if m:
        stripped = m.group(1)
    return json.loads(stripped)


def parse_practice_set(text: str) -> List[PracticeQuestion]:
    """JSON array of PracticeQuestion; empty or malformed -> ServiceError."""
    try:
        data = _load_json(text)
        if not isinstance(data, list) or not data:
            raise ValueError("expected a non-empty array")
        return [PracticeQuestion.from_dict(item) for item in data]
    except ValueError as e:
        logger.warning("Rejected practice set reply: %s", e)
        raise ServiceError(EMPTY_EXAM_MESSAGE) from e


def parse_free_response(text: str, question_type: Union[QuestionType, str]) -> FreeResponseQuestion:
    """
    JSON object {"prompt", "documents"?}.

    DBQ must have DBQ_MIN_DOCUMENTS..DBQ_MAX_DOCUMENTS documents; other
    types must have none.
    """
    question_type = QuestionType(question_type)
    try:
        if not question_type.is_free_response:
            raise ValueError(f"{question_type.value} is not a free-response type")
        data = _load_json(text)
        if not isinstance(data, dict):
            raise ValueError("expected an object")

        prompt = data.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("missing prompt")

        raw_docs = data.get("documents")
        if question_type is QuestionType.DBQ:
            if not isinstance(raw_docs, list):
                raise ValueError("DBQ reply has no documents")
            if not DBQ_MIN_DOCUMENTS <= len(raw_docs) <= DBQ_MAX_DOCUMENTS:
                raise ValueError(f"DBQ needs {DBQ_MIN_DOCUMENTS}-{DBQ_MAX_DOCUMENTS} documents, got {len(raw_docs)}")
            documents = tuple(SourceDocument.from_dict(d) for d in raw_docs)
        else:
            if raw_docs:
                raise ValueError(f"{question_type.value} reply must not carry documents")
            documents = ()
    except ValueError as e:
        logger.warning("Rejected %s reply: %s", question_type.value, e)
        raise ServiceError(f"Failed to generate {question_type.value}: invalid reply") from e

    return FreeResponseQuestion(type=question_type, prompt=prompt.strip(), documents=documents)


def parse_full_exam(text: str) -> FullExam:
    """FullExam JSON; an exam without any question is rejected."""
    try:
        exam = FullExam.from_dict(_load_json(text))
        if not exam.questions:
            raise ValueError("exam has no questions")
    except ValueError as e:
        logger.warning("Rejected full exam reply: %s", e)
        raise ServiceError(EMPTY_EXAM_MESSAGE) from e
    return exam


def history_to_contents(history: Iterable[ChatMessage]) -> List[Dict[str, Any]]:
    """
    Transcript -> Gemini chat history, alternating user / model turns.

    - system entries are local notices (error messages) and are not sent
    - a user turn that never got a reply is dropped, so is a trailing one
      (the new message follows it)
    - consecutive model entries are merged into one turn
    """
    contents: List[Dict[str, Any]] = []
    for msg in history:
        if msg.role not in ("user", "model") or not msg.content:
            continue
        last = contents[-1] if contents else None
        if last is not None and last["role"] == msg.role:
            if msg.role == "user":
                contents.pop()
            else:
                last["parts"].append(msg.content)
                continue
        contents.append({"role": msg.role, "parts": [msg.content]})
    if contents and contents[-1]["role"] == "user":
        contents.pop()
    return contents


# ----------------------------------------------------------------------
#  Gateway
# ----------------------------------------------------------------------
class AIGateway:
    """
    Adapter between study intents and the model manager.

    ``manager`` needs generate(prompt, response_schema=None) -> str and
    stream_chat(history, message, system_instruction) -> iterable of str.
    """

    source_label = "online"

    def __init__(self, manager, practice_set_size: int = 15):
        self.manager = manager
        self.practice_set_size = practice_set_size

    # ------------------------------------------------------------
    # Tutor
    # ------------------------------------------------------------
    def request_tutor_reply(
        self,
        history: Iterable[ChatMessage],
        new_message: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> FragmentStream:
        contents = history_to_contents(history)
        try:
            chunks = self.manager.stream_chat(contents, new_message, system_instruction=TUTOR_SYSTEM_INSTRUCTION)
        except ServiceError:
            raise
        except Exception as e:
            logger.exception("Tutor request failed")
            raise ServiceError("Failed to get response from AI tutor.") from e
        return FragmentStream(lambda: chunks, cancel_token=cancel_token)

    # ------------------------------------------------------------
    # Exams
    # ------------------------------------------------------------
    def request_practice_set(self, subject_title: str) -> List[PracticeQuestion]:
        prompt = build_practice_set_prompt(subject_title, self.practice_set_size)
        text = self._generate(prompt, PRACTICE_SET_SCHEMA)
        questions = parse_practice_set(text)
        logger.info("Generated %d practice questions for %s", len(questions), subject_title)
        return questions

    def request_free_response_prompt(
        self,
        subject_title: str,
        question_type: Union[QuestionType, str],
    ) -> FreeResponseQuestion:
        question_type = QuestionType(question_type)
        if not question_type.is_free_response:
            raise ServiceError(f"{question_type.value} is not a free-response type")
        prompt = build_free_response_prompt(subject_title, question_type)
        text = self._generate(prompt, free_response_schema(question_type))
        return parse_free_response(text, question_type)

    def request_grading(
        self,
        subject_title: str,
        prompt_text: str,
        answer_text: str,
        question_type: Union[QuestionType, str],
    ) -> str:
        question_type = QuestionType(question_type)
        prompt = build_grading_prompt(subject_title, prompt_text, answer_text, question_type)
        feedback = self._generate(prompt)
        if not feedback:
            raise ServiceError("Failed to grade the response: empty feedback.")
        return feedback

    def request_full_exam(self, subject_title: str) -> FullExam:
        text = self._generate(build_full_exam_prompt(subject_title), FULL_EXAM_SCHEMA)
        exam = parse_full_exam(text)
        logger.info(
            "Generated full exam for %s: %d MCQ, %d free-response",
            subject_title, len(exam.multiple_choice), len(exam.free_response),
        )
        return exam

    def request_study_plan(self, subject_title: str) -> str:
        plan = self._generate(build_study_plan_prompt(subject_title))
        if not plan:
            raise ServiceError("Failed to create a study plan: empty reply.")
        return plan

    # ------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------
    def _generate(self, prompt: str, schema: Optional[Dict[str, Any]] = None) -> str:
        try:
            return self.manager.generate(prompt, response_schema=schema)
        except ServiceError:
            raise
        except Exception as e:
            logger.exception("Upstream request failed")
            raise ServiceError("The AI may be busy, please try again.") from e
