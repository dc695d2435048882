"""
app.py
======================

IntelliGrade (Streamlit) entry point.

Pages:
- home          landing page
- browse-exams  AP exam catalog with search
- exam-detail   practice mode menu, MCQ practice, free-response practice
- tutor         AI tutor chat
- session       full-length AP exam
- planner       weekly study plans (AI, or a fixed 12-week schedule offline), saved locally

Everything stateful lives in intelligrade.session; this file wires user
intents from intelligrade.ui into those objects.

Run with:
    streamlit run app.py
"""

from __future__ import annotations

import logging
from typing import Optional

import streamlit as st

from intelligrade.catalog import AP_EXAMS, find_exam, search
from intelligrade.config import AppConfig, configure_logging
from intelligrade.context import AppContext
from intelligrade.errors import ServiceError, SessionStateError
from intelligrade.models import APExam, ChatMessage, QuestionType
from intelligrade.question_bank import available_exam_ids
from intelligrade.session import (
    FreeResponseSession,
    FreeResponseStatus,
    FullExamSession,
    McqSession,
    McqStatus,
    TutorConversation,
)
from intelligrade.ui import (
    inject_theme,
    render_chat_message,
    render_error,
    render_exam_card,
    render_feedback,
    render_free_response,
    render_full_exam_question,
    render_full_exam_results,
    render_header,
    render_mcq_question,
    render_mcq_results,
    render_mode_menu,
)

logger = logging.getLogger("intelligrade.app")

OFFLINE_NOTICE = "This feature needs the Gemini API. Set GEMINI_API_KEY and restart the app."


# ----------------------------------------------------------------------
#  Session-state wrappers
# ----------------------------------------------------------------------
def get_context() -> AppContext:
    """AppContext, built once per browser session."""
    if "app_context" not in st.session_state:
        config = AppConfig.load()
        configure_logging(config.log_level)
        st.session_state["app_context"] = AppContext.load(config)
    return st.session_state["app_context"]  # type: ignore[return-value]


def set_page(page: str, **params) -> None:
    """Switch page. Leaving a page drops the sessions that belong to it."""
    previous = st.session_state.get("page")
    if previous == "tutor" and page != "tutor":
        st.session_state.pop("tutor", None)
    if previous == "exam-detail" and page != "exam-detail":
        st.session_state.pop("practice", None)
        st.session_state.pop("practice_mode", None)
    if previous == "session" and page != "session":
        st.session_state.pop("full_exam", None)
    st.session_state["page"] = page
    for key, value in params.items():
        st.session_state[key] = value


def get_page() -> str:
    return st.session_state.get("page", "home")


def goto(page: str, **params) -> None:
    set_page(page, **params)
    st.rerun()


def current_exam() -> Optional[APExam]:
    exam_id = st.session_state.get("exam_id")
    return find_exam(exam_id) if exam_id else None


# ----------------------------------------------------------------------
#  Page: home
# ----------------------------------------------------------------------
def render_home_page(ctx: AppContext) -> None:
    st.markdown("## Elevate Your Learning with **IntelliGrade**")
    st.write(
        "Your all-in-one platform for mastering any subject. Get instant AI-powered help "
        "and practice exams in the style of the College Board AP exams."
    )

    col1, col2 = st.columns(2)
    with col1:
        if st.button("✨ Start with AI Tutor", type="primary"):
            goto("tutor")
    with col2:
        if st.button("📚 Browse AP Exams"):
            goto("browse-exams")

    st.divider()
    col3, col4 = st.columns(2)
    with col3:
        st.markdown("#### Instant AI Support")
        st.write(
            "Stuck on a problem? The Gemini-powered tutor gives step-by-step explanations "
            "and helps you understand any subject."
        )
    with col4:
        st.markdown("#### Comprehensive AP Prep")
        st.write(
            f"Multiple-choice sets, short-answer, document-based and essay prompts for "
            f"{len(AP_EXAMS)} AP subjects, with AI grading of your written answers."
        )

    if not ctx.online:
        st.info("Running offline: MCQ practice uses the built-in sample bank.")


# ----------------------------------------------------------------------
#  Page: browse exams
# ----------------------------------------------------------------------
def render_browse_page(ctx: AppContext) -> None:
    st.markdown("## AP Practice Exams")
    keyword = st.text_input(
        "Search",
        placeholder="Search for an exam (e.g., Calculus, History...)",
        label_visibility="collapsed",
    )
    exams = search(keyword)
    if not exams:
        st.info(f'No exams found for "{keyword}". Try another search.')
        return

    offline_ids = None if ctx.online else set(available_exam_ids(ctx.config.sample_bank_path))
    cols = st.columns(2)
    for i, exam in enumerate(exams):
        with cols[i % 2]:
            offline_available = None if offline_ids is None else exam.id in offline_ids
            if render_exam_card(exam, offline_available):
                goto("exam-detail", exam_id=exam.id)


# ----------------------------------------------------------------------
#  Page: exam detail (practice modes)
# ----------------------------------------------------------------------
def render_exam_detail_page(ctx: AppContext) -> None:
    exam = current_exam()
    if exam is None:
        st.markdown("## Exam not found")
        if st.button("← Back to all exams"):
            goto("browse-exams")
        return

    if st.button("← Back to all exams", key="ig_back_exams"):
        goto("browse-exams")
    st.markdown(f"## {exam.title}")

    mode: Optional[QuestionType] = st.session_state.get("practice_mode")
    if mode is None:
        chosen = render_mode_menu(exam)
        st.divider()
        if st.button("📝 Take a Full-Length Exam", key="ig_full_exam"):
            goto("session", exam_id=exam.id)
        if chosen is not None:
            start_practice(ctx, exam, chosen)
            st.rerun()
        return

    if st.button("← Change practice mode", key="ig_change_mode"):
        exit_practice()
        st.rerun()

    if mode is QuestionType.MCQ:
        run_mcq(ctx)
    else:
        run_free_response(ctx)


def start_practice(ctx: AppContext, exam: APExam, mode: QuestionType) -> None:
    st.session_state["practice_mode"] = mode
    if mode is QuestionType.MCQ:
        session = McqSession(exam.title)
        st.session_state["practice"] = session
        with st.spinner("Generating Your MCQ Set..."):
            session.generate(ctx.practice_source)
        return

    session = FreeResponseSession(exam.title, mode)
    st.session_state["practice"] = session
    if ctx.gateway is None:
        session.status = FreeResponseStatus.ERROR
        session.error = OFFLINE_NOTICE
        return
    with st.spinner(f"Generating Your {mode.value} Prompt..."):
        session.generate(ctx.gateway)


def exit_practice() -> None:
    st.session_state.pop("practice", None)
    st.session_state.pop("practice_mode", None)
    st.session_state.pop("ig_frq_answer", None)


def run_mcq(ctx: AppContext) -> None:
    session: McqSession = st.session_state["practice"]

    if session.status is McqStatus.ERROR:
        result = render_error("Generation Failed", session.error)
        if result["clicked_retry"]:
            with st.spinner("Generating Your MCQ Set..."):
                session.retry(ctx.practice_source)
            st.rerun()
        if result["clicked_exit"]:
            exit_practice()
            st.rerun()
        return

    if session.status is McqStatus.TAKING:
        result = render_mcq_question(session)
        if result["selected_choice"] is not None:
            session.select_answer(result["selected_choice"])
            st.rerun()
        if result["clicked_next"] and session.advance():
            st.rerun()
        if result["clicked_prev"] and session.previous():
            st.rerun()
        jump(session, result["jump_to"])
        return

    if session.status is McqStatus.SUBMITTED:
        result = render_mcq_results(session)
        if result["clicked_exit"]:
            exit_practice()
            st.rerun()
        jump(session, result["jump_to"])


def jump(session, position: Optional[int]) -> None:
    """Apply a palette click; the palette only offers reachable positions."""
    if position is None or position == session.index:
        return
    try:
        session.go_to(position)
    except SessionStateError as e:
        st.warning(str(e))
        return
    st.rerun()


def run_free_response(ctx: AppContext) -> None:
    session: FreeResponseSession = st.session_state["practice"]

    if session.status is FreeResponseStatus.ERROR:
        result = render_error("An Error Occurred", session.error, allow_retry=ctx.gateway is not None)
        if result["clicked_retry"]:
            st.session_state.pop("ig_frq_answer", None)
            with st.spinner(f"Generating Your {session.question_type.value} Prompt..."):
                session.retry(ctx.gateway)
            st.rerun()
        if result["clicked_exit"]:
            exit_practice()
            st.rerun()
        return

    if session.status is FreeResponseStatus.ANSWERING:
        result = render_free_response(session)
        session.set_answer(result["answer_text"])
        if result["clicked_submit"]:
            with st.spinner("AI Grader is Reviewing Your Answer..."):
                session.submit(ctx.gateway)
            st.rerun()
        return

    if session.status is FreeResponseStatus.REVIEW:
        if render_feedback(session)["clicked_exit"]:
            exit_practice()
            st.rerun()


# ----------------------------------------------------------------------
#  Page: tutor
# ----------------------------------------------------------------------
def render_tutor_page(ctx: AppContext) -> None:
    st.markdown("## AI Tutor")
    st.caption("Ask me anything about your studies!")

    if ctx.gateway is None:
        st.info(OFFLINE_NOTICE)
        return

    if "tutor" not in st.session_state:
        st.session_state["tutor"] = TutorConversation()
    convo: TutorConversation = st.session_state["tutor"]

    # Stop pressed: this rerun interrupted the previous one mid-reply
    if st.session_state.get("ig_tutor_stop"):
        convo.cancel()

    for message in convo.messages:
        render_chat_message(message)

    prompt = st.chat_input("Type your question here...", disabled=convo.in_flight)
    if not prompt:
        return

    render_chat_message(ChatMessage(role="user", content=prompt))
    st.button("■ Stop", key="ig_tutor_stop")
    reply = convo.send(ctx.gateway, prompt)
    try:
        with st.chat_message("assistant", avatar="✨"):
            st.write_stream(reply)
    finally:
        reply.close()
    st.rerun()


# ----------------------------------------------------------------------
#  Page: full-length exam
# ----------------------------------------------------------------------
def render_full_exam_page(ctx: AppContext) -> None:
    exam = current_exam()
    if exam is None:
        goto("browse-exams")
        return

    if st.button("← Back to exam", key="ig_fx_back"):
        goto("exam-detail", exam_id=exam.id)
    st.markdown(f"## Full-Length {exam.title} Exam")

    if ctx.gateway is None:
        st.info(OFFLINE_NOTICE)
        return

    session: Optional[FullExamSession] = st.session_state.get("full_exam")
    if session is None:
        st.write(
            "A complete exam with a multiple-choice section and a free-response section. "
            "Multiple choice is scored instantly; written answers can be graded by the AI afterwards."
        )
        if st.button("Start Full-Length Exam", type="primary"):
            session = FullExamSession(exam.title)
            st.session_state["full_exam"] = session
            with st.spinner("Generating your exam..."):
                session.generate(ctx.gateway)
            st.rerun()
        return

    if session.status is McqStatus.ERROR:
        result = render_error("Could not generate exam", session.error)
        if result["clicked_retry"]:
            with st.spinner("Generating your exam..."):
                session.retry(ctx.gateway)
            st.rerun()
        if result["clicked_exit"]:
            goto("exam-detail", exam_id=exam.id)
        return

    if session.status is McqStatus.TAKING:
        result = render_full_exam_question(session)
        if result["answer"] is not None:
            session.record_answer(result["answer"])
            if isinstance(result["answer"], int):
                st.rerun()
        if result["clicked_next"]:
            if session.advance():
                st.rerun()
            else:
                st.warning("Answer this question before moving on.")
        if result["clicked_prev"] and session.previous():
            st.rerun()
        jump(session, result["jump_to"])
        return

    if session.status is McqStatus.SUBMITTED:
        result = render_full_exam_results(session)
        if result["clicked_grade"]:
            with st.spinner("AI Grader is Reviewing Your Answers..."):
                session.grade_free_responses(ctx.gateway)
            st.rerun()
        if result["clicked_exit"]:
            goto("exam-detail", exam_id=exam.id)
        jump(session, result["jump_to"])


# ----------------------------------------------------------------------
#  Page: study planner
# ----------------------------------------------------------------------
def render_planner_page(ctx: AppContext) -> None:
    st.markdown("## 🗓️ Study Planner")

    titles = [e.title for e in AP_EXAMS]
    subject = st.selectbox("AP course", titles)

    if not ctx.online:
        st.caption("Offline: plans use a fixed 12-week unit schedule.")

    existing = ctx.store.get_plan(subject)
    if existing is None:
        if st.button("Generate Weekly Plan", type="primary"):
            build_plan(ctx, subject, replace=False)
    else:
        st.info(f"You already have a plan for {subject}. It is kept unless you replace it.")
        if st.button("Replace plan", key="ig_plan_replace"):
            build_plan(ctx, subject, replace=True)

    plans = ctx.store.list_plans()
    if not plans:
        st.caption("No saved plans yet.")
        return

    st.divider()
    for plan in plans:
        with st.expander(f"{plan['subject']} · created {plan.get('createdAt', '')}", expanded=plan["subject"] == subject):
            st.markdown(plan["schedule"])
            if st.button("Delete plan", key=f"ig_plan_del_{plan['subject']}"):
                ctx.store.delete_plan(plan["subject"])
                st.rerun()


def build_plan(ctx: AppContext, subject: str, replace: bool) -> None:
    with st.spinner("Building your study plan..."):
        try:
            schedule = ctx.study_plan_source.request_study_plan(subject)
        except ServiceError as e:
            st.error(str(e))
            return
    ctx.store.save_plan(subject, schedule, replace=replace)
    st.rerun()


# ----------------------------------------------------------------------
#  Main
# ----------------------------------------------------------------------
PAGES = {
    "home": render_home_page,
    "browse-exams": render_browse_page,
    "exam-detail": render_exam_detail_page,
    "tutor": render_tutor_page,
    "session": render_full_exam_page,
    "planner": render_planner_page,
}


def main() -> None:
    st.set_page_config(
        page_title="IntelliGrade",
        page_icon="📖",
        layout="centered",
    )

    ctx = get_context()
    inject_theme(ctx.theme)

    page = get_page()
    header = render_header(ctx.theme, page, ctx.online)
    if header["toggle_theme"]:
        ctx.toggle_theme()
        st.rerun()
    if header["navigate"] and header["navigate"] != page:
        goto(header["navigate"])

    render = PAGES.get(page)
    if render is None:
        set_page("home")
        render = render_home_page
    render(ctx)


if __name__ == "__main__":
    main()
