"""
Data models and schemas for prepflow

Contains Pydantic models for:
- Questions and question types
- Session configuration and answers
- Evaluation results
- Diagnostic events
"""

from prepflow.models.question import (
    Question,
    QuestionType,
    ProficiencyLevel,
    normalize_question_text,
)
from prepflow.models.session import (
    SessionConfig,
    SessionState,
    QuestionStatus,
    UserAnswer,
)
from prepflow.models.evaluation import (
    EvaluationResult,
    QuestionResult,
    AnswerBucket,
)
from prepflow.models.diagnostics import DiagnosticEvent

__all__ = [
    # Question
    "Question",
    "QuestionType",
    "ProficiencyLevel",
    "normalize_question_text",
    # Session
    "SessionConfig",
    "SessionState",
    "QuestionStatus",
    "UserAnswer",
    # Evaluation
    "EvaluationResult",
    "QuestionResult",
    "AnswerBucket",
    # Diagnostics
    "DiagnosticEvent",
]
