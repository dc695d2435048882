"""
tools/build_sample_bank.py
===========================

Generate multiple-choice questions with Gemini and append them to the
offline practice bank (intelligrade/data/sample_questions.jsonl).

What it does:
- picks the exams to fill (--exam, repeatable; default: every exam that offers MCQ)
- asks AIGateway for a practice set per exam
- appends the questions in JSONL format, or prints them with --dry-run

Requirements:
- GEMINI_API_KEY (or API_KEY) is set
- `google-generativeai` is installed

Usage:
    python tools/build_sample_bank.py --exam ap-biology --count 10
    python tools/build_sample_bank.py --dry-run
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from intelligrade.catalog import AP_EXAMS, find_exam
from intelligrade.config import AppConfig, configure_logging
from intelligrade.errors import ServiceError
from intelligrade.gateway import AIGateway
from intelligrade.model_manager import ModelManager
from intelligrade.models import APExam, QuestionType
from intelligrade.question_bank import append_questions

logger = logging.getLogger("intelligrade.tools.build_sample_bank")


# -------------------------------------------------------------
#  Target exams
# -------------------------------------------------------------
def select_exams(exam_ids: Optional[List[str]]) -> List[APExam]:
    """
    Exams to fill. Unknown ids and exams without an MCQ section are an error,
    so a typo on the command line does not silently do nothing.
    """
    if not exam_ids:
        return [e for e in AP_EXAMS if QuestionType.MCQ in e.question_types]

    exams: List[APExam] = []
    for exam_id in exam_ids:
        exam = find_exam(exam_id)
        if exam is None:
            raise ValueError(f"unknown exam id: {exam_id}")
        if QuestionType.MCQ not in exam.question_types:
            raise ValueError(f"{exam_id} has no multiple-choice section")
        exams.append(exam)
    return exams


# -------------------------------------------------------------
#  Main work
# -------------------------------------------------------------
def build_bank(
    gateway: AIGateway,
    exams: List[APExam],
    dry_run: bool = False,
    bank_path: Optional[Path] = None,
) -> int:
    """
    Generate one practice set per exam. Returns the number of questions
    written (or printed, for a dry run). A failed exam is logged and skipped.
    """
    total = 0
    for exam in exams:
        try:
            questions = gateway.request_practice_set(exam.title)
        except ServiceError as e:
            logger.error("Skipping %s: %s", exam.id, e)
            continue

        if dry_run:
            print(f"[DRY RUN] {exam.id}: {len(questions)} questions")
            for q in questions:
                print(json.dumps({"examId": exam.id, **q.to_dict()}, ensure_ascii=False))
            total += len(questions)
        else:
            written = append_questions(exam.id, questions, bank_path)
            logger.info("Appended %d questions for %s", written, exam.id)
            total += written

    return total


# -------------------------------------------------------------
#  CLI entry point
# -------------------------------------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Fill the IntelliGrade offline question bank using Gemini",
    )
    parser.add_argument(
        "--exam",
        action="append",
        dest="exams",
        metavar="EXAM_ID",
        help="catalog id to fill, e.g. ap-biology (repeatable; default: all MCQ exams)",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=5,
        help="questions per exam (default: 5)",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Gemini model name, or 'latest' for the newest available",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="print the generated questions instead of writing the bank",
    )
    args = parser.parse_args(argv)

    config = AppConfig.load()
    configure_logging(config.log_level)

    if args.count <= 0:
        parser.error("--count must be positive")
    try:
        exams = select_exams(args.exams)
    except ValueError as e:
        parser.error(str(e))

    try:
        manager = ModelManager(config.gemini_api_key, args.model or config.model_name)
    except ServiceError as e:
        logger.error("%s", e)
        return 1

    gateway = AIGateway(manager, practice_set_size=args.count)
    total = build_bank(gateway, exams, dry_run=args.dry_run, bank_path=config.sample_bank_path)
    if total == 0:
        print("No questions were generated.")
        return 1
    if not args.dry_run:
        print(f"Appended {total} questions to {config.sample_bank_path}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
