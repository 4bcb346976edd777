"""
Evaluation Engine for prepflow

Turns a finished session into a bounded EvaluationResult:
- Primary path: one completion request, defensively parsed and reconciled
  into the result contract
- Heuristic path: a pure, deterministic scoring used whenever the primary
  path fails for any reason

evaluate() never raises.
"""

import asyncio
import logging
import math
import re
from typing import Any, Awaitable, Callable, Iterable

from prepflow.config.settings import Settings, get_settings
from prepflow.core.completion_client import CompletionClient
from prepflow.core.errors import ErrorCategory, ResponseValidationError, categorize_error
from prepflow.core.llm_json import extract_object
from prepflow.core.retry import RetryPolicy, with_retry
from prepflow.models.diagnostics import DiagnosticEvent
from prepflow.models.evaluation import AnswerBucket, EvaluationResult, QuestionResult
from prepflow.models.question import ProficiencyLevel, Question
from prepflow.models.session import SessionConfig, UserAnswer
from prepflow.prompts.evaluator import EvaluatorPrompts

logger = logging.getLogger(__name__)

FallbackCallback = Callable[[DiagnosticEvent], Awaitable[None]]

CODE_TOKENS = re.compile(
    r"\b(function|class|def|const|let|var|if|else|for|while|return)\b"
)


# =============================================================================
# SCORING HELPERS
# =============================================================================

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def index_answers(answers: Iterable[UserAnswer] | dict[str, UserAnswer]) -> dict[str, UserAnswer]:
    """Answers keyed by question id; the last one wins for repeated ids."""
    if isinstance(answers, dict):
        return dict(answers)
    indexed: dict[str, UserAnswer] = {}
    for answer in answers:
        indexed[answer.question_id] = answer
    return indexed


def score_answer(question: Question, answer: UserAnswer | None) -> QuestionResult:
    """Heuristic score for one question."""
    text = answer.answer_text.strip() if answer else ""
    if not text:
        return QuestionResult(
            question_id=question.id,
            question_type=question.type,
            category=question.category,
            score=0,
            bucket=AnswerBucket.UNANSWERED,
        )

    # Length of the answer
    length = len(text)
    if length < 10:
        score = 10
    elif length < 50:
        score = 25
    elif length < 100:
        score = 45
    elif length < 200:
        score = 65
    else:
        score = 80

    # Time spent
    time_spent = answer.time_spent_seconds
    if 30 < time_spent < 300:
        score += 10
    elif time_spent >= 300:
        score += 5

    # Code structure in technical answers
    if question.type.is_technical and CODE_TOKENS.search(text):
        score += 15

    score = clamp_score(score)
    return QuestionResult(
        question_id=question.id,
        question_type=question.type,
        category=question.category,
        score=score,
        bucket=AnswerBucket.from_score(score),
    )


def _mean_by(results: list[QuestionResult], key: Callable[[QuestionResult], str]) -> dict[str, int]:
    grouped: dict[str, list[int]] = {}
    for result in results:
        grouped.setdefault(key(result), []).append(result.score)
    return {
        name: clamp_score(sum(scores) / len(scores))
        for name, scores in grouped.items()
    }


def heuristic_feedback(score: int, answered: int, total: int) -> str:
    if score >= 70:
        summary = "Your answers showed good understanding of the topics."
    elif score >= 40:
        summary = "Your answers showed basic understanding but could be more comprehensive."
    else:
        summary = "Your answers were quite brief and could benefit from more detailed explanations."
    return (
        f"Based on your responses, you scored {score}%. "
        f"You answered {answered} out of {total} questions. {summary}"
    )


def heuristic_recommendations(score: int, answered: int, total: int) -> list[str]:
    return [
        "Try to answer all questions completely" if answered < total
        else "Good job answering all questions",
        "Focus on providing more detailed and comprehensive answers" if score < 50
        else "Continue building on your technical knowledge",
        "Practice explaining technical concepts with examples",
        "Review the expected answers to understand what was missing",
        "Consider the time spent on each question for better pacing",
    ]


def heuristic_evaluation(
    questions: list[Question],
    answers: Iterable[UserAnswer] | dict[str, UserAnswer],
) -> EvaluationResult:
    """
    Deterministic evaluation of a session. Pure; cannot fail on valid models.

    Category and type breakdowns carry exactly the categories and types
    present in `questions`.
    """
    by_id = index_answers(answers)
    results = [score_answer(q, by_id.get(q.id)) for q in questions]

    total = len(questions)
    score = clamp_score(sum(r.score for r in results) / total) if total else 0
    answered = sum(1 for r in results if r.bucket != AnswerBucket.UNANSWERED)

    return EvaluationResult(
        score=score,
        total_questions=total,
        assessed_proficiency=ProficiencyLevel.from_score(score),
        category_scores=_mean_by(results, lambda r: r.category),
        type_scores=_mean_by(results, lambda r: r.question_type.value),
        feedback=heuristic_feedback(score, answered, total),
        recommendations=heuristic_recommendations(score, answered, total),
        question_results=results,
        source="heuristic",
    )


# =============================================================================
# RECONCILIATION
# =============================================================================

def _coerce_score(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ResponseValidationError(f"Non-numeric {field}: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ResponseValidationError(f"Non-numeric {field}: {value!r}") from None
    if not math.isfinite(number):
        raise ResponseValidationError(f"Non-finite {field}: {value!r}")
    return clamp_score(number)


def _reconcile_scores(raw: Any, expected: dict[str, int], field: str) -> dict[str, int]:
    """Force a breakdown onto exactly the expected keys."""
    raw = raw if isinstance(raw, dict) else {}
    reconciled = {}
    for key, fallback in expected.items():
        if key in raw:
            try:
                reconciled[key] = _coerce_score(raw[key], f"{field}[{key}]")
                continue
            except ResponseValidationError as e:
                logger.warning(f"{e}; using heuristic value")
        reconciled[key] = fallback
    dropped = set(raw) - set(expected)
    if dropped:
        logger.warning(f"Dropping unexpected {field} keys: {sorted(dropped)}")
    return reconciled


def reconcile_evaluation(
    data: dict[str, Any],
    baseline: EvaluationResult,
) -> EvaluationResult:
    """
    Fit a model-produced object to the result contract.

    Args:
        data: Parsed model output
        baseline: Heuristic evaluation of the same session, used to fill gaps

    Raises:
        ResponseValidationError: missing or non-numeric overall score
    """
    if "score" not in data:
        raise ResponseValidationError("Evaluation is missing 'score'")
    score = _coerce_score(data["score"], "score")

    proficiency_raw = data.get("assessedProficiency", data.get("assessed_proficiency"))
    try:
        proficiency = ProficiencyLevel(str(proficiency_raw).strip().lower())
    except ValueError:
        proficiency = ProficiencyLevel.from_score(score)

    feedback = data.get("feedback")
    if not isinstance(feedback, str) or not feedback.strip():
        feedback = baseline.feedback

    recommendations = data.get("recommendations")
    if isinstance(recommendations, list):
        recommendations = [r.strip() for r in recommendations if isinstance(r, str) and r.strip()]
    if not recommendations:
        recommendations = baseline.recommendations

    return EvaluationResult(
        score=score,
        total_questions=baseline.total_questions,
        assessed_proficiency=proficiency,
        category_scores=_reconcile_scores(
            data.get("categoryScores", data.get("category_scores")),
            baseline.category_scores,
            "categoryScores",
        ),
        type_scores=_reconcile_scores(
            data.get("typeScores", data.get("type_scores")),
            baseline.type_scores,
            "typeScores",
        ),
        feedback=feedback.strip(),
        recommendations=recommendations,
        source="model",
    )


# =============================================================================
# ENGINE
# =============================================================================

class EvaluationEngine:
    """
    Central evaluation component for finished sessions.

    Responsibilities:
    - Request a model evaluation and reconcile it
    - Fall back to heuristic scoring on any failure
    - Report masked failures to fallback callbacks
    """

    def __init__(
        self,
        client: CompletionClient | None = None,
        settings: Settings | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize evaluation engine.

        Args:
            client: Completion client (None means heuristic-only evaluation)
            settings: Settings override
            retry_policy: Backoff policy for transient failures
            sleep: Sleep used between retries
        """
        self.settings = settings or get_settings()
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.prompts = EvaluatorPrompts()
        self._sleep = sleep
        self._fallback_callbacks: list[FallbackCallback] = []

    def on_fallback(self, callback: FallbackCallback) -> None:
        """Register a callback for masked upstream failures."""
        self._fallback_callbacks.append(callback)

    async def evaluate(
        self,
        questions: list[Question],
        answers: Iterable[UserAnswer] | dict[str, UserAnswer],
        config: SessionConfig,
    ) -> EvaluationResult:
        """
        Evaluate a finished session.

        Args:
            questions: The session's questions
            answers: Current answers (list or keyed by question id)
            config: Session configuration

        Returns:
            EvaluationResult; never raises
        """
        by_id = index_answers(answers)
        baseline = heuristic_evaluation(questions, by_id)
        logger.info(
            f"Evaluating session: {len(questions)} questions, "
            f"{baseline.answered_count} answered"
        )

        if not questions:
            return baseline

        if self.client is None:
            await self._report_fallback(ErrorCategory.UNKNOWN_ERROR, "No completion client configured")
            return baseline

        try:
            data = await with_retry(
                lambda: self._request_evaluation(questions, by_id, config, baseline.answered_count),
                self.retry_policy,
                context="evaluation",
                sleep=self._sleep,
            )
            result = reconcile_evaluation(data, baseline)
        except Exception as e:
            error = categorize_error(e)
            logger.error(f"Evaluation failed, using heuristic scoring: {error.category.value}: {error}")
            await self._report_fallback(error.category, str(error))
            return baseline

        logger.info(
            f"Evaluation complete | Score: {result.score} | "
            f"Proficiency: {result.assessed_proficiency.value}"
        )
        return result

    async def _request_evaluation(
        self,
        questions: list[Question],
        answers: dict[str, UserAnswer],
        config: SessionConfig,
        answered: int,
    ) -> dict[str, Any]:
        response = await self.client.complete(
            self.prompts.SYSTEM_CONTEXT,
            self.prompts.generate_evaluation_prompt(questions, answers, config),
            temperature=self.settings.evaluation_temperature,
            max_tokens=self.settings.evaluation_max_tokens,
            trace_name="session_evaluation_llm",
            trace_metadata={
                "total_questions": len(questions),
                "answered": answered,
            },
        )
        return extract_object(response)

    async def _report_fallback(self, category: ErrorCategory, message: str) -> None:
        event = DiagnosticEvent(
            component="evaluation_engine",
            category=category.value,
            message=message,
        )
        for callback in self._fallback_callbacks:
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"Fallback callback error: {e}")
