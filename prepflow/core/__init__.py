"""
Core business logic modules for prepflow

Contains:
- Assessment Session: State machine for a candidate's attempt
- Question Generator: Unique question sets with deterministic fallback
- Session Timer: Per-question and per-session clocks
- Answer Store / Navigation: Answers, skips and drafts across navigation
- Evaluation Engine: Scoring and feedback
- Completion Client: Calls to the external completion service
"""

from prepflow.core.assessment_session import AssessmentSession, ResultSink
from prepflow.core.question_generator import QuestionGenerator
from prepflow.core.session_timer import SessionTimer
from prepflow.core.answer_store import AnswerStore
from prepflow.core.navigation import QuestionNavigator
from prepflow.core.evaluation_engine import EvaluationEngine
from prepflow.core.completion_client import CompletionClient

__all__ = [
    "AssessmentSession",
    "ResultSink",
    "QuestionGenerator",
    "SessionTimer",
    "AnswerStore",
    "QuestionNavigator",
    "EvaluationEngine",
    "CompletionClient",
]
