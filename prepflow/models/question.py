"""
Question models for prepflow
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProficiencyLevel(str, Enum):
    """Difficulty tier of a session and assessed level of a candidate."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @classmethod
    def from_score(cls, score: float) -> "ProficiencyLevel":
        """Map an overall 0-100 score to an assessed level."""
        if score >= 85:
            return cls.EXPERT
        elif score >= 70:
            return cls.ADVANCED
        elif score >= 55:
            return cls.INTERMEDIATE
        else:
            return cls.BEGINNER


class QuestionType(str, Enum):
    """Types of interview questions."""

    TECHNICAL_CODING = "technical-coding"
    TECHNICAL_CONCEPTS = "technical-concepts"
    SYSTEM_DESIGN = "system-design"
    BEHAVIORAL = "behavioral"
    PROBLEM_SOLVING = "problem-solving"
    CASE_STUDY = "case-study"
    ARCHITECTURE = "architecture"
    DEBUGGING = "debugging"

    @property
    def description(self) -> str:
        return QUESTION_TYPE_DESCRIPTIONS[self]

    @property
    def label(self) -> str:
        return self.value.replace("-", " ").title()

    @property
    def is_technical(self) -> bool:
        """Whether answers to this type are expected to contain code."""
        return "technical" in self.value or "coding" in self.value


QUESTION_TYPE_DESCRIPTIONS: dict[QuestionType, str] = {
    QuestionType.TECHNICAL_CODING: "coding problems, algorithms, and data structures",
    QuestionType.TECHNICAL_CONCEPTS: "theoretical concepts and fundamental principles",
    QuestionType.SYSTEM_DESIGN: "system architecture, scalability, and design patterns",
    QuestionType.BEHAVIORAL: "soft skills, teamwork, and past experiences",
    QuestionType.PROBLEM_SOLVING: "logical reasoning and analytical thinking",
    QuestionType.CASE_STUDY: "real-world scenarios and business problems",
    QuestionType.ARCHITECTURE: "software design patterns and architectural decisions",
    QuestionType.DEBUGGING: "code review, troubleshooting, and error analysis",
}


class Question(BaseModel):
    """A single generated interview question. Immutable once created."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    # Identification
    id: str = Field(..., description="Unique question ID within the session")

    # Content
    text: str = Field(..., min_length=1, description="The question text")

    # Classification
    type: QuestionType = Field(..., description="Question type")
    category: str = Field(..., description="Skill category the question targets")
    difficulty: ProficiencyLevel = Field(..., description="Difficulty tier")

    # Learning material
    sample_answer: str = Field(default="", description="Reference answer")
    explanation: str = Field(default="", description="What the question tests")
    links: list[str] = Field(default_factory=list, description="Further reading")

    # Metadata
    is_generated: bool = Field(
        default=True,
        description="False when the deterministic fallback synthesized it"
    )

    @property
    def normalized_text(self) -> str:
        return normalize_question_text(self.text)


def normalize_question_text(text: str) -> str:
    """Normalize question text for duplicate detection."""
    return text.strip().lower()
