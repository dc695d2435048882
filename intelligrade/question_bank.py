"""
question_bank.py
===========================

Local (offline) practice bank in JSONL format.

Each line is one PracticeQuestion in wire format plus the catalog id of the
exam it belongs to:

    {"examId": "ap-biology", "question": "...", "options": [...],
     "correctAnswerIndex": 2, "explanation": "..."}

Used when no API key is configured, so MCQ practice still works offline.
LocalStudyPlanner covers the study planner the same way.
tools/build_sample_bank.py appends to the same file.

- broken lines are skipped
- the parsed bank is cached per path for the life of the process
"""

from __future__ import annotations

import json
import logging
import random
from pathlib import Path
from typing import Dict, List, Optional

from .catalog import find_exam_by_title
from .config import SAMPLE_BANK_PATH
from .errors import ServiceError
from .models import PracticeQuestion

logger = logging.getLogger(__name__)

# ----------------------------------------------------------------------
#  Process-wide cache
# ----------------------------------------------------------------------
_BANK_CACHE: Dict[Path, Dict[str, List[PracticeQuestion]]] = {}


# ----------------------------------------------------------------------
#  JSONL loading
# ----------------------------------------------------------------------
def load_question_bank(
    path: Optional[Path] = None,
    force_reload: bool = False,
) -> Dict[str, List[PracticeQuestion]]:
    """
    Read the bank and return {exam_id: [PracticeQuestion, ...]}.

    A missing file is an empty bank.
    """
    path = Path(path) if path is not None else SAMPLE_BANK_PATH

    if path in _BANK_CACHE and not force_reload:
        return _BANK_CACHE[path]

    bank: Dict[str, List[PracticeQuestion]] = {}
    if not path.exists():
        logger.info("No local question bank at %s", path)
        _BANK_CACHE[path] = bank
        return bank

    skipped = 0
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                exam_id = data["examId"]
                q = PracticeQuestion.from_dict(data)
            except (ValueError, KeyError, TypeError):
                skipped += 1
                continue
            bank.setdefault(exam_id, []).append(q)

    if skipped:
        logger.warning("Skipped %d malformed lines in %s", skipped, path)

    _BANK_CACHE[path] = bank
    return bank


def append_questions(exam_id: str, questions: List[PracticeQuestion], path: Optional[Path] = None) -> int:
    """Append questions for one exam and drop the cached copy. Returns the count written."""
    path = Path(path) if path is not None else SAMPLE_BANK_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        for q in questions:
            row = {"examId": exam_id, **q.to_dict()}
            f.write(json.dumps(row, ensure_ascii=False))
            f.write("\n")
    _BANK_CACHE.pop(path, None)
    return len(questions)


# ----------------------------------------------------------------------
#  Helpers
# ----------------------------------------------------------------------
def available_exam_ids(path: Optional[Path] = None) -> List[str]:
    return sorted(load_question_bank(path).keys())


def get_questions(exam_id: str, path: Optional[Path] = None) -> List[PracticeQuestion]:
    return list(load_question_bank(path).get(exam_id, []))


# ----------------------------------------------------------------------
#  Offline practice source
# ----------------------------------------------------------------------
class LocalPracticeSource:
    """
    Offline stand-in for the gateway's practice-set operation.

    Same contract as AIGateway.request_practice_set: a non-empty list or
    ServiceError.
    """

    source_label = "offline"

    def __init__(self, path: Optional[Path] = None, size: Optional[int] = None, rng: Optional[random.Random] = None):
        self.path = path
        self.size = size
        self._rng = rng or random.Random()

    def request_practice_set(self, subject_title: str) -> List[PracticeQuestion]:
        exam = find_exam_by_title(subject_title)
        exam_id = exam.id if exam is not None else subject_title
        items = get_questions(exam_id, self.path)
        if not items:
            raise ServiceError(f"No offline questions available for {subject_title}.")

        self._rng.shuffle(items)
        if self.size is not None:
            items = items[: self.size]
        return items


# ----------------------------------------------------------------------
#  Offline study planner
# ----------------------------------------------------------------------
PLAN_WEEKS = 12
PLAN_WEEKLY_GOAL = "Practice problems, timed section, and review."


class LocalStudyPlanner:
    """
    Offline stand-in for AIGateway.request_study_plan: a fixed 12-week
    schedule, one unit per week, in the same markdown shape.
    """

    source_label = "offline"

    def __init__(self, weeks: int = PLAN_WEEKS):
        self.weeks = weeks

    def request_study_plan(self, subject_title: str) -> str:
        subject = subject_title.strip()
        if not subject:
            raise ServiceError("Pick a course to plan for.")
        lines = [f"# {subject}: {self.weeks}-Week Study Plan", ""]
        for week in range(1, self.weeks + 1):
            lines += [
                f"## Week {week}",
                f"- **Focus:** {subject}, Unit {week}",
                f"- **Goal:** {PLAN_WEEKLY_GOAL}",
                "",
            ]
        return "\n".join(lines).rstrip() + "\n"
