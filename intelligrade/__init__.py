"""
intelligrade package
======================

Internal logic of the IntelliGrade study app (AI tutor and AP exam practice).

Main parts:
- settings and logging (config)
- exam content types (models) and the AP exam catalog (catalog)
- offline practice bank (question_bank)
- Gemini access (model_manager) and the request/response gateway (gateway)
- cancellable tutor reply streams (streaming)
- practice session state machines (session)
- saved theme and study plans (storage), bundled in AppContext (context)
- Streamlit components (ui)

app.py only draws pages; every decision is made through this package.
"""

from .config import AppConfig, configure_logging
from .context import AppContext
from .errors import ServiceError, SessionStateError
from .gateway import AIGateway
from .model_manager import ModelManager
from .models import (
    APExam,
    ChatMessage,
    ExamQuestion,
    FreeResponseQuestion,
    FullExam,
    PracticeQuestion,
    QuestionKind,
    QuestionType,
)
from .session import FreeResponseSession, FullExamSession, McqSession, TutorConversation
from .storage import PreferenceStore
from .streaming import CancelToken, FragmentStream

__all__ = [
    "AppConfig",
    "configure_logging",
    "AppContext",
    "ServiceError",
    "SessionStateError",
    "AIGateway",
    "ModelManager",
    "APExam",
    "ChatMessage",
    "ExamQuestion",
    "FreeResponseQuestion",
    "FullExam",
    "PracticeQuestion",
    "QuestionKind",
    "QuestionType",
    "FreeResponseSession",
    "FullExamSession",
    "McqSession",
    "TutorConversation",
    "PreferenceStore",
    "CancelToken",
    "FragmentStream",
]
