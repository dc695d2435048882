"""
catalog.py
======================

The AP exam catalog shown on the browse page, plus lookup and search.

Each entry lists the practice modes the exam offers (MCQ plus the
free-response formats the real exam uses).
"""

from __future__ import annotations

from typing import List, Optional

from .models import APExam, QuestionType

MCQ = QuestionType.MCQ
SAQ = QuestionType.SAQ
DBQ = QuestionType.DBQ
LEQ = QuestionType.LEQ
FRQ = QuestionType.FRQ

AP_EXAMS: List[APExam] = [
    APExam(
        id="ap-biology",
        title="AP Biology",
        description="Evolution, cellular processes, energy, genetics and ecological interactions.",
        subjects=("Science", "Life Sciences"),
        mcq_count=60,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-chemistry",
        title="AP Chemistry",
        description="Atomic structure, bonding, reactions, kinetics, thermodynamics and equilibrium.",
        subjects=("Science", "Physical Sciences"),
        mcq_count=60,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-physics-1",
        title="AP Physics 1",
        description="Algebra-based mechanics: kinematics, dynamics, energy, momentum and rotation.",
        subjects=("Science", "Physics"),
        mcq_count=40,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-environmental-science",
        title="AP Environmental Science",
        description="Ecosystems, biodiversity, populations, pollution and sustainability.",
        subjects=("Science", "Environment"),
        mcq_count=80,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-calculus-ab",
        title="AP Calculus AB",
        description="Limits, derivatives, integrals and the Fundamental Theorem of Calculus.",
        subjects=("Math",),
        mcq_count=45,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-calculus-bc",
        title="AP Calculus BC",
        description="All of Calculus AB plus parametric, polar and vector functions and series.",
        subjects=("Math",),
        mcq_count=45,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-statistics",
        title="AP Statistics",
        description="Exploring data, sampling and experimentation, probability and inference.",
        subjects=("Math", "Statistics"),
        mcq_count=40,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-computer-science-a",
        title="AP Computer Science A",
        description="Object-oriented programming in Java: classes, arrays, ArrayLists and recursion.",
        subjects=("Computer Science",),
        mcq_count=40,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-us-history",
        title="AP United States History",
        description="American history from 1491 to the present, built on historical thinking skills.",
        subjects=("History", "Social Studies"),
        mcq_count=55,
        question_types=(MCQ, SAQ, DBQ, LEQ),
    ),
    APExam(
        id="ap-world-history",
        title="AP World History: Modern",
        description="Global history from 1200 CE to the present across six themes.",
        subjects=("History", "Social Studies"),
        mcq_count=55,
        question_types=(MCQ, SAQ, DBQ, LEQ),
    ),
    APExam(
        id="ap-european-history",
        title="AP European History",
        description="European history from 1450 to the present: culture, politics and society.",
        subjects=("History", "Social Studies"),
        mcq_count=55,
        question_types=(MCQ, SAQ, DBQ, LEQ),
    ),
    APExam(
        id="ap-us-government",
        title="AP United States Government and Politics",
        description="Constitutional foundations, civil liberties, institutions and political participation.",
        subjects=("Government", "Social Studies"),
        mcq_count=55,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-psychology",
        title="AP Psychology",
        description="Biological bases of behavior, cognition, development, learning and mental health.",
        subjects=("Psychology", "Social Studies"),
        mcq_count=75,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-macroeconomics",
        title="AP Macroeconomics",
        description="National income, price determination, financial sector and stabilization policy.",
        subjects=("Economics", "Social Studies"),
        mcq_count=60,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-microeconomics",
        title="AP Microeconomics",
        description="Supply and demand, production costs, market structures and factor markets.",
        subjects=("Economics", "Social Studies"),
        mcq_count=60,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-english-language",
        title="AP English Language and Composition",
        description="Rhetorical analysis, argument and synthesis of nonfiction texts.",
        subjects=("English",),
        mcq_count=45,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-english-literature",
        title="AP English Literature and Composition",
        description="Close reading and analysis of fiction, poetry and drama.",
        subjects=("English",),
        mcq_count=55,
        question_types=(MCQ, FRQ),
    ),
    APExam(
        id="ap-human-geography",
        title="AP Human Geography",
        description="Population, culture, political organization, agriculture and urban land use.",
        subjects=("Geography", "Social Studies"),
        mcq_count=60,
        question_types=(MCQ, FRQ),
    ),
]


# ----------------------------------------------------------------------
#  Lookup
# ----------------------------------------------------------------------
def find_exam(exam_id: str) -> Optional[APExam]:
    """Catalog entry by id, or None."""
    for exam in AP_EXAMS:
        if exam.id == exam_id:
            return exam
    return None


def find_exam_by_title(title: str) -> Optional[APExam]:
    title_lower = title.strip().lower()
    for exam in AP_EXAMS:
        if exam.title.lower() == title_lower:
            return exam
    return None


# ----------------------------------------------------------------------
#  Search
# ----------------------------------------------------------------------
def search(keyword: str) -> List[APExam]:
    """
    Case-insensitive match on title, description and subject tags.
    A blank keyword returns the whole catalog.
    """
    keyword = keyword.strip().lower()
    if not keyword:
        return list(AP_EXAMS)

    results = []
    for exam in AP_EXAMS:
        parts = (exam.title.lower(), exam.description.lower(), *(s.lower() for s in exam.subjects))
        if any(keyword in part for part in parts):
            results.append(exam)
    return results
