"""
ui.py
======================

Streamlit components.

Responsibilities:
- light / dark theme CSS
- header navigation
- MCQ question, results and answer review
- free-response prompt, answer box and grader feedback
- full-exam question and results
- tutor chat bubbles

Components only draw the current session snapshot and report what the user
did. Each render_* function returns a dict of intents ("selected_choice",
"clicked_next", ...); app.py applies them to the session objects.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from .models import APExam, ChatMessage, QUESTION_TYPE_DETAILS, QuestionType
from .session import FreeResponseSession, FullExamSession, McqSession

# ----------------------------------------------------------------------
#  Themes
# ----------------------------------------------------------------------
THEMES: Dict[str, Dict[str, str]] = {
    "light": {
        "bg": "#f8fafc",
        "text": "#1e293b",
        "surface": "#f1f5f9",
        "surface_alt": "#ffffff",
        "border": "#e2e8f0",
        "primary": "#2563eb",
        "correct": "#16a34a",
        "incorrect": "#dc2626",
    },
    "dark": {
        "bg": "#0f172a",
        "text": "#e2e8f0",
        "surface": "#1e293b",
        "surface_alt": "#1e293b",
        "border": "#334155",
        "primary": "#60a5fa",
        "correct": "#4ade80",
        "incorrect": "#f87171",
    },
}

NAV_ITEMS = [
    ("home", "🏠 Home"),
    ("tutor", "✨ AI Tutor"),
    ("browse-exams", "📚 AP Exams"),
    ("planner", "🗓️ Study Planner"),
]


def _generate_css(theme: Dict[str, str]) -> str:
    """Global CSS for the given theme."""

    return f"""
    <style>
    .stApp {{
        background: {theme['bg']};
        color: {theme['text']};
    }}

    .ig-brand {{
        font-weight: 700;
        font-size: 1.3rem;
        color: {theme['primary']};
    }}

    .ig-mode-badge {{
        padding: 0.1rem 0.5rem;
        border-radius: 999px;
        border: 1px solid {theme['border']};
        font-size: 0.75rem;
        white-space: nowrap;
    }}

    .ig-card {{
        background: {theme['surface_alt']};
        padding: 1rem;
        border-radius: 12px;
        border: 1px solid {theme['border']};
        margin-bottom: 0.5rem;
    }}

    .ig-tag {{
        display: inline-block;
        padding: 0.1rem 0.5rem;
        margin-right: 0.3rem;
        border-radius: 999px;
        background: {theme['surface']};
        border: 1px solid {theme['border']};
        font-size: 0.75rem;
    }}

    .ig-question-box {{
        background: {theme['surface_alt']};
        padding: 1rem;
        border-radius: 12px;
        border: 1px solid {theme['border']};
        font-size: 1.1rem;
        line-height: 1.6;
        margin: 0.5rem 0 0.75rem 0;
    }}

    .ig-document {{
        padding: 0.75rem;
        border-radius: 10px;
        border: 1px solid {theme['border']};
        background: {theme['surface']};
        margin-bottom: 0.5rem;
        white-space: pre-wrap;
    }}

    .ig-correct {{
        color: {theme['correct']};
        font-weight: 600;
    }}

    .ig-incorrect {{
        color: {theme['incorrect']};
        font-weight: 600;
    }}

    .ig-score {{
        font-size: 2.5rem;
        font-weight: 800;
        color: {theme['primary']};
        text-align: center;
    }}
    </style>
    """


def inject_theme(theme_key: str) -> Dict[str, str]:
    theme = THEMES.get(theme_key, THEMES["light"])
    st.markdown(_generate_css(theme), unsafe_allow_html=True)
    return theme


def option_label(index: int) -> str:
    return chr(ord("A") + index)


# ----------------------------------------------------------------------
#  Header
# ----------------------------------------------------------------------
def render_header(theme_key: str, current_page: str, online: bool) -> Dict[str, Any]:
    """
    Brand, navigation and theme toggle.

    Returns {"navigate": Optional[str], "toggle_theme": bool}.
    """
    navigate: Optional[str] = None
    toggle = False

    col_brand, col_mode, col_theme = st.columns([3, 1, 1])
    with col_brand:
        st.markdown("<div class='ig-brand'>📖 IntelliGrade</div>", unsafe_allow_html=True)
    with col_mode:
        label = "ONLINE" if online else "OFFLINE"
        st.markdown(f"<span class='ig-mode-badge'>{label}</span>", unsafe_allow_html=True)
    with col_theme:
        icon = "🌙" if theme_key == "light" else "☀️"
        if st.button(icon, key="ig_theme_toggle", help="Toggle theme"):
            toggle = True

    nav_cols = st.columns(len(NAV_ITEMS))
    for col, (page, label) in zip(nav_cols, NAV_ITEMS):
        with col:
            kind = "primary" if page == current_page else "secondary"
            if st.button(label, key=f"ig_nav_{page}", type=kind):
                navigate = page

    st.divider()
    return {"navigate": navigate, "toggle_theme": toggle}


# ----------------------------------------------------------------------
#  Catalog
# ----------------------------------------------------------------------
def exam_format_line(exam: APExam) -> str:
    """'60 MCQ · SAQ, DBQ, LEQ' style summary of the real exam."""
    parts = []
    if exam.mcq_count:
        parts.append(f"{exam.mcq_count} MCQ")
    free_response = exam.free_response_types
    if free_response:
        parts.append(", ".join(t.value for t in free_response))
    return " · ".join(parts)


def render_exam_card(exam: APExam, offline_available: Optional[bool] = None) -> bool:
    """
    Exam card; True when its "Practice" button was pressed.

    offline_available: None when online, otherwise whether the local bank
    has questions for this exam.
    """
    tags = "".join(f"<span class='ig-tag'>{s}</span>" for s in exam.subjects)
    if offline_available is not None:
        label = "Offline MCQ ✓" if offline_available else "Needs API key"
        tags += f"<span class='ig-tag'>{label}</span>"
    st.markdown(
        "<div class='ig-card'>"
        f"<strong>{exam.title}</strong><br/>"
        f"<small>{exam.description}</small><br/>"
        f"<small>{exam_format_line(exam)}</small><br/>{tags}"
        "</div>",
        unsafe_allow_html=True,
    )
    return st.button("Practice ▶", key=f"ig_exam_{exam.id}")


def render_mode_menu(exam: APExam) -> Optional[QuestionType]:
    """Practice mode chooser for one exam; returns the chosen type or None."""
    st.write(exam.description)
    st.markdown("### Choose a Practice Mode")

    if not exam.question_types:
        st.info("No practice modules available for this subject.")
        return None

    chosen: Optional[QuestionType] = None
    cols = st.columns(2)
    for i, qtype in enumerate(exam.question_types):
        details = QUESTION_TYPE_DETAILS[qtype]
        with cols[i % 2]:
            if st.button(details["name"], key=f"ig_mode_{qtype.value}", help=details["description"]):
                chosen = qtype
            st.caption(details["description"])
    return chosen


# ----------------------------------------------------------------------
#  Shared states
# ----------------------------------------------------------------------
def render_error(title: str, message: Optional[str], *, allow_retry: bool = True) -> Dict[str, bool]:
    st.error(f"**{title}**\n\n{message or 'An unknown error occurred.'}")
    clicked_retry = False
    col_retry, col_exit = st.columns(2)
    if allow_retry:
        with col_retry:
            clicked_retry = st.button("Try Again", key="ig_retry", type="primary")
    with col_exit:
        clicked_exit = st.button("Back to Menu", key="ig_error_exit")
    return {"clicked_retry": clicked_retry, "clicked_exit": clicked_exit}


_PALETTE_COLUMNS = 10


def render_question_palette(
    total: int,
    current: int,
    furthest_reachable: int,
    key_prefix: str,
) -> Optional[int]:
    """
    Numbered question buttons. Positions past ``furthest_reachable`` are
    disabled. Returns the clicked position, or None.
    """
    clicked: Optional[int] = None
    for row_start in range(0, total, _PALETTE_COLUMNS):
        cols = st.columns(_PALETTE_COLUMNS)
        for offset, col in enumerate(cols):
            pos = row_start + offset
            if pos >= total:
                break
            with col:
                if st.button(
                    str(pos + 1),
                    key=f"{key_prefix}_palette_{pos}",
                    type="primary" if pos == current else "secondary",
                    disabled=pos > furthest_reachable,
                ):
                    clicked = pos
    return clicked


# ----------------------------------------------------------------------
#  MCQ
# ----------------------------------------------------------------------
def render_mcq_question(session: McqSession) -> Dict[str, Any]:
    """
    Current question with its four options.

    Returns:
        {
          "selected_choice": Optional[int],
          "clicked_next": bool,
          "clicked_prev": bool,
          "jump_to": Optional[int],
        }
    """
    q = session.current_question
    if q is None:
        st.error("No question loaded.")
        return {"selected_choice": None, "clicked_next": False, "clicked_prev": False, "jump_to": None}

    selected_choice: Optional[int] = None

    caption = f"Question {session.index + 1} of {session.total}"
    if session.source_label == "offline":
        caption += " · offline question bank"
    st.caption(caption)
    st.progress((session.index + 1) / session.total)
    st.markdown(f"<div class='ig-question-box'>{q.question}</div>", unsafe_allow_html=True)

    for idx, text in enumerate(q.options):
        kind = "primary" if session.current_answer == idx else "secondary"
        if st.button(
            f"{option_label(idx)}. {text}",
            key=f"ig_choice_{session.index}_{idx}",
            type=kind,
        ):
            selected_choice = idx

    col_prev, col_next = st.columns(2)
    with col_prev:
        clicked_prev = st.button("◀ Previous", key="ig_prev", disabled=session.index == 0)
    with col_next:
        label = "Submit Exam" if session.is_last else "Next Question ▶"
        clicked_next = st.button(label, key="ig_next", type="primary", disabled=not session.can_advance)

    jump_to = render_question_palette(session.total, session.index, session.furthest_reachable, "ig_mcq")

    return {
        "selected_choice": selected_choice,
        "clicked_next": clicked_next,
        "clicked_prev": clicked_prev,
        "jump_to": jump_to,
    }


def mcq_results_frame(session: McqSession) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []
    for i, q in enumerate(session.questions):
        answer = session.answers[i]
        rows.append(
            {
                "#": i + 1,
                "Your answer": option_label(answer) if answer is not None else "-",
                "Correct answer": option_label(q.correct_answer_index),
                "Result": "✅" if session.is_correct(i) else "❌",
            }
        )
    return pd.DataFrame(rows)


def _render_marked_options(options, correct: Optional[int], chosen: Optional[int]) -> None:
    for opt_idx, opt in enumerate(options):
        line = f"{option_label(opt_idx)}. {opt}"
        if opt_idx == correct:
            st.markdown(f"<span class='ig-correct'>{line}</span>", unsafe_allow_html=True)
        elif opt_idx == chosen:
            st.markdown(f"<span class='ig-incorrect'>{line}</span>", unsafe_allow_html=True)
        else:
            st.write(line)


def render_mcq_results(session: McqSession) -> Dict[str, Any]:
    """
    Score, summary table and one-question-at-a-time review.

    Returns {"clicked_exit": bool, "jump_to": Optional[int]}.
    """
    st.markdown("### MCQ Results")
    st.markdown(f"<div class='ig-score'>{session.percentage}%</div>", unsafe_allow_html=True)
    st.write(f"You answered {session.score} out of {session.total} questions correctly.")
    clicked_exit = st.button("Back to Menu", key="ig_results_exit", type="primary")

    st.dataframe(mcq_results_frame(session), hide_index=True)

    st.markdown("#### Review Your Answers")
    jump_to = render_question_palette(session.total, session.index, session.furthest_reachable, "ig_review")

    i = session.index
    q = session.questions[i]
    mark = "✅" if session.is_correct(i) else "❌"
    st.markdown(f"<div class='ig-question-box'>{mark} {i + 1}. {q.question}</div>", unsafe_allow_html=True)
    _render_marked_options(q.options, q.correct_answer_index, session.answers[i])
    st.markdown("**Explanation**")
    st.write(q.explanation)

    return {"clicked_exit": clicked_exit, "jump_to": jump_to}


# ----------------------------------------------------------------------
#  Free response
# ----------------------------------------------------------------------
def render_free_response(session: FreeResponseSession) -> Dict[str, Any]:
    """
    Prompt, optional documents and the answer box.

    Returns {"answer_text": str, "clicked_submit": bool}.
    """
    q = session.question
    details = QUESTION_TYPE_DETAILS[session.question_type]
    st.markdown(f"### {details['name']} Prompt")
    st.markdown(q.prompt)

    if q.documents:
        st.markdown("#### Documents")
        for i, doc in enumerate(q.documents, 1):
            st.markdown(
                f"<div class='ig-document'><small><strong>Document {i}. Source: {doc.source}</strong></small>"
                f"<br/>{doc.content}</div>",
                unsafe_allow_html=True,
            )

    answer_text = st.text_area(
        "Your response",
        value=session.answer_text,
        height=320,
        placeholder="Type your response here...",
        key="ig_frq_answer",
    )
    clicked_submit = st.button(
        "Submit for AI Grading",
        key="ig_frq_submit",
        type="primary",
        disabled=not answer_text.strip(),
    )
    return {"answer_text": answer_text, "clicked_submit": clicked_submit}


def render_feedback(session: FreeResponseSession) -> Dict[str, bool]:
    st.markdown("### AI Grader Feedback")
    st.markdown(session.feedback)
    st.divider()
    st.markdown("#### Your Answer")
    st.text(session.answer_text)
    return {"clicked_exit": st.button("Back to Menu", key="ig_feedback_exit", type="primary")}


# ----------------------------------------------------------------------
#  Full exam
# ----------------------------------------------------------------------
def render_full_exam_question(session: FullExamSession, now: Optional[float] = None) -> Dict[str, Any]:
    """
    Returns {"answer": Optional[int | str], "clicked_next": bool,
             "clicked_prev": bool, "jump_to": Optional[int]}.
    """
    q = session.current_question
    answer: Any = None

    remaining = session.time_remaining(now)
    header = f"Question {session.index + 1} of {session.total}"
    if remaining is not None:
        minutes, seconds = divmod(int(remaining), 60)
        header += f" · ⏱ {minutes}:{seconds:02d} left"
    st.caption(header)
    st.progress((session.index + 1) / session.total)

    section = "Multiple Choice" if q.is_multiple_choice else "Free Response"
    st.markdown(f"<span class='ig-tag'>{section}</span>", unsafe_allow_html=True)
    st.markdown(f"<div class='ig-question-box'>{q.text}</div>", unsafe_allow_html=True)

    current = session.current_answer
    if q.is_multiple_choice:
        for idx, text in enumerate(q.options):
            kind = "primary" if current == idx else "secondary"
            if st.button(f"{option_label(idx)}. {text}", key=f"ig_fx_{q.id}_{idx}", type=kind):
                answer = idx
    else:
        text = st.text_area(
            "Your response",
            value=current if isinstance(current, str) else "",
            height=260,
            key=f"ig_fx_text_{q.id}",
        )
        if text != (current or ""):
            answer = text

    col_prev, col_next = st.columns(2)
    with col_prev:
        clicked_prev = st.button("◀ Previous", key="ig_fx_prev", disabled=session.index == 0)
    with col_next:
        label = "Submit Exam" if session.is_last else "Next Question ▶"
        clicked_next = st.button(label, key="ig_fx_next", type="primary")

    jump_to = render_question_palette(session.total, session.index, session.furthest_reachable, "ig_fx")

    return {
        "answer": answer,
        "clicked_next": clicked_next,
        "clicked_prev": clicked_prev,
        "jump_to": jump_to,
    }


def render_full_exam_results(session: FullExamSession) -> Dict[str, Any]:
    """
    Returns {"clicked_grade": bool, "clicked_exit": bool, "jump_to": Optional[int]}.
    """
    st.markdown(f"### {session.exam.title}: Results")
    st.markdown(f"<div class='ig-score'>{session.percentage}%</div>", unsafe_allow_html=True)
    st.write(f"Multiple choice: {session.score} out of {session.mcq_count} correct.")
    if session.frq:
        st.write(f"Free response: {len(session.feedback)} of {session.frq_count} graded.")

    st.markdown("#### Review")
    jump_to = render_question_palette(session.total, session.index, session.furthest_reachable, "ig_fx_review")

    q = session.current_question
    answer = session.answers.get(q.id)
    if q.is_multiple_choice:
        mark = "✅" if answer == q.correct_option_index else "❌"
        st.markdown(f"<div class='ig-question-box'>{mark} {q.text}</div>", unsafe_allow_html=True)
        _render_marked_options(q.options, q.correct_option_index, answer)
        if q.explanation:
            st.markdown("**Explanation**")
            st.write(q.explanation)
    else:
        st.markdown(f"<div class='ig-question-box'>{q.text}</div>", unsafe_allow_html=True)
        st.text(answer or "")
        if q.id in session.feedback:
            st.markdown(session.feedback[q.id])
        elif q.id in session.grading_errors:
            st.error(session.grading_errors[q.id])

    clicked_grade = False
    if any(q.id not in session.feedback for q in session.frq):
        clicked_grade = st.button("Grade Free Responses with AI", key="ig_fx_grade", type="primary")

    clicked_exit = st.button("Back to Menu", key="ig_fx_exit")
    return {"clicked_grade": clicked_grade, "clicked_exit": clicked_exit, "jump_to": jump_to}



# ----------------------------------------------------------------------
#  Tutor
# ----------------------------------------------------------------------
_AVATARS = {"user": "🧑‍🎓", "model": "✨", "system": "⚠️"}


def render_chat_message(message: ChatMessage) -> None:
    role = "assistant" if message.role == "model" else message.role
    if role == "system":
        st.warning(message.content)
        return
    with st.chat_message(role, avatar=_AVATARS[message.role]):
        st.markdown(message.content)
