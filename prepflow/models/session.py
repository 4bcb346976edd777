"""
Session configuration, answer and state models for prepflow
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from prepflow.models.question import ProficiencyLevel, QuestionType


class SessionState(str, Enum):
    """Assessment session state machine states."""

    CREATED = "created"  # Configuration accepted
    GENERATING = "generating"  # Waiting for questions

    IN_PROGRESS = "in_progress"  # Candidate is answering
    FINISHING = "finishing"  # Evaluating answers

    COMPLETE = "complete"  # Result produced
    CANCELLED = "cancelled"  # Abandoned before completion


class QuestionStatus(str, Enum):
    """Progress indicator for a single question position."""

    CURRENT = "current"
    ANSWERED = "answered"
    SKIPPED = "skipped"
    UNVISITED = "unvisited"
    VISITED = "visited"  # Seen, neither answered nor skipped


class SessionConfig(BaseModel):
    """Immutable configuration a session is generated from."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    role: str = Field(..., min_length=1, max_length=200)
    company: str = Field(..., min_length=1, max_length=200)
    skills: list[str] = Field(..., min_length=1, max_length=20)
    proficiency_level: ProficiencyLevel = ProficiencyLevel.INTERMEDIATE
    number_of_questions: int = Field(default=10, ge=1, le=30)
    question_types: list[QuestionType] = Field(..., min_length=1, max_length=8)

    @field_validator("skills")
    @classmethod
    def _check_skills(cls, skills: list[str]) -> list[str]:
        cleaned = [skill.strip() for skill in skills]
        for skill in cleaned:
            if not skill:
                raise ValueError("Each skill must be a non-empty string")
            if len(skill) > 50:
                raise ValueError("Each skill must be at most 50 characters")
        return cleaned

    @field_validator("question_types")
    @classmethod
    def _dedupe_types(cls, types: list[QuestionType]) -> list[QuestionType]:
        return list(dict.fromkeys(types))


class UserAnswer(BaseModel):
    """The latest submitted answer for one question."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    question_id: str
    answer_text: str
    time_spent_seconds: int = Field(default=0, ge=0)
