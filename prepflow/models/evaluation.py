"""
Evaluation models for prepflow

Defines the terminal result of a session and the per-question breakdown
produced by heuristic scoring.
"""

import math
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from prepflow.models.question import ProficiencyLevel, QuestionType


class AnswerBucket(str, Enum):
    """Qualitative outcome of a single answer."""

    CORRECT = "correct"  # 80-100
    PARTIALLY_CORRECT = "partially-correct"  # 50-79
    INCORRECT = "incorrect"  # 1-49
    UNANSWERED = "unanswered"  # Missing or blank

    @classmethod
    def from_score(cls, score: int) -> "AnswerBucket":
        if score >= 80:
            return cls.CORRECT
        elif score >= 50:
            return cls.PARTIALLY_CORRECT
        else:
            return cls.INCORRECT


class QuestionResult(BaseModel):
    """Score for one question."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question_id: str
    question_type: QuestionType
    category: str
    score: int = Field(..., ge=0, le=100)
    bucket: AnswerBucket


class EvaluationResult(BaseModel):
    """Complete evaluation of a finished session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Overall
    score: int = Field(..., ge=0, le=100)
    total_questions: int = Field(..., ge=0)
    assessed_proficiency: ProficiencyLevel

    # Breakdowns, keyed by exactly the categories/types present in the session
    category_scores: dict[str, int] = Field(default_factory=dict)
    type_scores: dict[str, int] = Field(default_factory=dict)

    # Summary
    feedback: str = Field(..., min_length=1)
    recommendations: list[str] = Field(..., min_length=1)

    # Per-question detail (heuristic path only)
    question_results: list[QuestionResult] = Field(default_factory=list)

    source: Literal["model", "heuristic"] = "heuristic"

    @field_validator("category_scores", "type_scores")
    @classmethod
    def _check_bounds(cls, scores: dict[str, int]) -> dict[str, int]:
        for key, value in scores.items():
            if not math.isfinite(value) or not 0 <= value <= 100:
                raise ValueError(f"Score for {key!r} out of range: {value}")
        return scores

    @property
    def answered_count(self) -> int:
        return sum(
            1 for r in self.question_results
            if r.bucket != AnswerBucket.UNANSWERED
        )
