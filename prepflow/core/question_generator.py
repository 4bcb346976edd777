"""
Question Generator for prepflow

Produces exactly N unique questions for a session configuration:
- One completion request for the whole set, with an exact per-type distribution
- Defensive parsing and per-record normalization
- Functional de-duplication on normalized text
- Deterministic local synthesis for whatever the model did not deliver

Every upstream failure is absorbed here. The only externally observable
behaviour is "always exactly N unique questions"; masked failures are
reported to registered fallback callbacks.
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import reduce
from typing import Any, Awaitable, Callable, Iterable
from uuid import uuid4

from prepflow.config.settings import Settings, get_settings
from prepflow.core.completion_client import CompletionClient
from prepflow.core.errors import ErrorCategory, categorize_error
from prepflow.core.llm_json import extract_record_list
from prepflow.core.retry import RetryPolicy, with_retry
from prepflow.models.diagnostics import DiagnosticEvent
from prepflow.models.question import Question, QuestionType, normalize_question_text
from prepflow.models.session import SessionConfig
from prepflow.prompts.generator import QuestionPrompts

logger = logging.getLogger(__name__)

FallbackCallback = Callable[[DiagnosticEvent], Awaitable[None]]


# =============================================================================
# DISTRIBUTION
# =============================================================================

def distribute_questions(
    n: int, types: list[QuestionType]
) -> list[tuple[QuestionType, int]]:
    """Split n questions across types: floor(n/T), earlier types take the remainder."""
    per_type, remainder = divmod(n, len(types))
    return [
        (qtype, per_type + (1 if i < remainder else 0))
        for i, qtype in enumerate(types)
    ]


def expand_slots(distribution: list[tuple[QuestionType, int]]) -> list[QuestionType]:
    """Interleave the distribution into one type per position (round-robin)."""
    remaining = dict(distribution)
    slots: list[QuestionType] = []
    while any(remaining.values()):
        for qtype, _ in distribution:
            if remaining[qtype] > 0:
                slots.append(qtype)
                remaining[qtype] -= 1
    return slots


def fallback_slots(
    distribution: list[tuple[QuestionType, int]],
    accepted: Iterable[Question],
    needed: int,
) -> list[QuestionType]:
    """Types for the questions still missing, filling each type's deficit first."""
    have: dict[QuestionType, int] = {}
    for question in accepted:
        have[question.type] = have.get(question.type, 0) + 1
    deficits = [
        (qtype, max(0, count - have.get(qtype, 0)))
        for qtype, count in distribution
    ]
    slots = expand_slots(deficits)
    types = [qtype for qtype, _ in distribution]
    # Model returned off-distribution types: top up round-robin
    while len(slots) < needed:
        slots.append(types[len(slots) % len(types)])
    return slots[:needed]


# =============================================================================
# NORMALIZATION & DE-DUPLICATION
# =============================================================================

def _new_question_id(prefix: str, index: int) -> str:
    return f"{prefix}_{uuid4().hex[:8]}_{index}"


def normalize_record(
    raw: Any,
    index: int,
    config: SessionConfig,
    slot_type: QuestionType,
) -> Question | None:
    """
    Turn one model record into a Question, or None if it is unusable.

    Unknown or unrequested types are coerced to the slot's type; difficulty
    is always the configured proficiency.
    """
    if not isinstance(raw, dict):
        return None

    text = raw.get("question") or raw.get("text")
    if not isinstance(text, str) or not text.strip():
        return None

    try:
        qtype = QuestionType(str(raw.get("type", "")).strip().lower())
    except ValueError:
        qtype = slot_type
    if qtype not in config.question_types:
        qtype = slot_type

    category = raw.get("category")
    if not isinstance(category, str) or not category.strip():
        category = config.skills[index % len(config.skills)]

    sample_answer = raw.get("answer") or raw.get("sampleAnswer") or ""
    explanation = raw.get("explanation") or ""
    links = raw.get("links")
    if not isinstance(links, list):
        links = []

    return Question(
        id=_new_question_id("q", index),
        text=text.strip(),
        type=qtype,
        category=category.strip(),
        difficulty=config.proficiency_level,
        sample_answer=sample_answer if isinstance(sample_answer, str) else "",
        explanation=explanation if isinstance(explanation, str) else "",
        links=[link for link in links if isinstance(link, str) and link.strip()],
        is_generated=True,
    )


def accept_unique(
    candidates: Iterable[Question | None],
    seen: frozenset[str],
    limit: int,
) -> tuple[tuple[Question, ...], frozenset[str]]:
    """
    Keep candidates whose normalized text is new, up to `limit`.

    Returns:
        (accepted questions, seen-set including the accepted texts)
    """
    def step(acc, candidate):
        accepted, seen_texts = acc
        if candidate is None or len(accepted) >= limit:
            return acc
        key = candidate.normalized_text
        if key in seen_texts:
            logger.warning(f"Skipping duplicate question: '{candidate.text[:50]}...'")
            return acc
        return accepted + (candidate,), seen_texts | {key}

    return reduce(step, candidates, ((), seen))


# =============================================================================
# DETERMINISTIC FALLBACK
# =============================================================================

@dataclass(frozen=True)
class _Template:
    verbs: tuple[str, ...]
    topics: tuple[str, ...]
    question: str
    answer: str
    explanation: str


FALLBACK_TEMPLATES: dict[QuestionType, _Template] = {
    QuestionType.TECHNICAL_CODING: _Template(
        verbs=("implement", "design", "optimize", "write", "build", "refactor", "code", "develop"),
        topics=(
            "find the maximum element in an array",
            "reverse a linked list",
            "implement binary search",
            "sort an array using merge sort",
            "find the first non-repeating character",
            "implement a stack using arrays",
            "check if a string is a palindrome",
            "find the intersection of two arrays",
        ),
        question="Using {skill}, {verb} a solution to {topic}. Provide time and space complexity analysis.",
        answer=(
            "**Approach:**\n"
            "• Clarify inputs, outputs and edge cases (empty input, duplicates)\n"
            "• Choose a data structure that keeps the core loop linear where possible\n\n"
            "**Implementation outline:**\n"
            "```\n"
            "function solve(input) {{\n"
            "  if (!input || input.length === 0) return null;\n"
            "  // single pass over the input for: {topic}\n"
            "}}\n"
            "```\n\n"
            "**Time Complexity:** O(n) for a single pass, O(n log n) if sorting is required\n"
            "**Space Complexity:** O(1) extra unless an auxiliary structure is used"
        ),
        explanation="This question tests your ability to write efficient algorithms and understand complexity analysis.",
    ),
    QuestionType.TECHNICAL_CONCEPTS: _Template(
        verbs=("explain", "describe", "compare", "analyze", "summarize", "illustrate", "evaluate", "clarify"),
        topics=(
            "inheritance and polymorphism",
            "asynchronous programming",
            "memory management",
            "design patterns",
            "data binding",
            "state management",
            "error handling",
            "performance optimization",
        ),
        question="{Verb} the concept of {topic} in {skill}. How does it apply to {role} responsibilities?",
        answer=(
            "**{Topic} in {skill}:**\n\n"
            "**Core Principles:**\n"
            "• Definition and the problem it solves\n"
            "• Key benefits: organization, maintainability, testability\n\n"
            "**Application as a {role}:**\n"
            "• Where it shows up in day-to-day work\n"
            "• A concrete example and its trade-offs\n\n"
            "**Best Practices:**\n"
            "• Follow established patterns\n"
            "• Handle failure cases explicitly"
        ),
        explanation="This question evaluates your theoretical understanding of core concepts and ability to explain technical topics clearly.",
    ),
    QuestionType.SYSTEM_DESIGN: _Template(
        verbs=("design", "architect", "plan", "outline", "propose", "model", "sketch", "scale"),
        topics=(
            "chat application",
            "e-commerce platform",
            "social media feed",
            "video streaming service",
            "file storage system",
            "notification service",
            "search engine",
            "payment processing system",
        ),
        question="{Verb} a scalable {topic} that handles {skill}. Consider performance, scalability, and reliability.",
        answer=(
            "**Architecture Overview for a {topic}:**\n"
            "• API gateway for routing and authentication\n"
            "• Stateless services behind a load balancer\n"
            "• Primary datastore with read replicas, cache in front of hot reads\n"
            "• Message queue for asynchronous work\n\n"
            "**Scalability:** horizontal scaling, sharding, CDN for static assets\n"
            "**Reliability:** health checks, circuit breakers, backups, monitoring and alerting"
        ),
        explanation="This tests your ability to design large-scale systems and consider trade-offs between different architectural decisions.",
    ),
    QuestionType.BEHAVIORAL: _Template(
        verbs=(
            "Tell me about a time when you had to",
            "Describe a situation where you had to",
            "Share an experience where you needed to",
            "Walk me through a time you had to",
        ),
        topics=(
            "overcome a technical challenge",
            "work with a difficult team member",
            "meet a tight deadline",
            "learn a new technology quickly",
            "handle conflicting requirements",
            "lead a project initiative",
            "resolve a production issue",
            "mentor a junior developer",
        ),
        question="{verb} {topic} while working with {skill}. What was your approach?",
        answer=(
            "Use the STAR method:\n\n"
            "**Situation:** the context where you had to {topic}\n"
            "**Task:** the goal, your role, the constraints\n"
            "**Action:** the specific steps you took and why\n"
            "**Result:** the measurable outcome and what you learned about {skill}"
        ),
        explanation="This evaluates your soft skills, problem-solving approach, and ability to work effectively in team environments.",
    ),
    QuestionType.PROBLEM_SOLVING: _Template(
        verbs=("Explain", "Walk through", "Describe", "Outline", "Reason about", "Lay out", "Detail", "Break down"),
        topics=(
            "estimate the capacity needed for a new feature",
            "break down an ambiguous requirement",
            "prioritize a backlog of competing bug reports",
            "choose between two viable technical approaches",
            "reduce the cost of an expensive workflow",
            "find the root cause of inconsistent results",
            "plan a migration with zero downtime",
            "validate an assumption before building",
        ),
        question="{verb} how you would {topic} as a {role} using {skill}.",
        answer=(
            "**1. Understand:** restate the problem, list assumptions and unknowns\n"
            "**2. Decompose:** split into smaller, verifiable steps\n"
            "**3. Evaluate options:** compare approaches on cost, risk and effort\n"
            "**4. Decide and verify:** pick one, define how success is measured"
        ),
        explanation="This tests logical reasoning and how you structure an unfamiliar problem.",
    ),
    QuestionType.CASE_STUDY: _Template(
        verbs=("Analyze", "Assess", "Review", "Evaluate", "Examine", "Consider", "Study", "Investigate"),
        topics=(
            "launch a product in a new market",
            "recover from a failed release",
            "consolidate two legacy systems",
            "cut infrastructure spend by a third",
            "improve a declining user retention metric",
            "onboard a large enterprise customer",
            "respond to a security incident",
            "replace a critical third-party vendor",
        ),
        question="{verb} this scenario: a team at {company} must {topic} using {skill}. What would you recommend and why?",
        answer=(
            "**Context:** summarize the business goal and constraints\n"
            "**Options:** two or three realistic paths with their trade-offs\n"
            "**Recommendation:** the chosen path, rollout plan and risks\n"
            "**Success metrics:** how the outcome will be measured"
        ),
        explanation="This evaluates how you connect technical decisions with real business outcomes.",
    ),
    QuestionType.ARCHITECTURE: _Template(
        verbs=("Discuss", "Compare", "Justify", "Critique", "Explain", "Defend", "Weigh", "Contrast"),
        topics=(
            "a layered architecture",
            "event-driven messaging",
            "microservices versus a modular monolith",
            "the repository pattern",
            "CQRS",
            "dependency injection",
            "hexagonal architecture",
            "a plugin-based design",
        ),
        question="{verb} the trade-offs of {topic} for a {role} building with {skill}.",
        answer=(
            "**What it is:** a short definition of {topic}\n"
            "**Benefits:** separation of concerns, testability, independent evolution\n"
            "**Costs:** added indirection, operational overhead, learning curve\n"
            "**When to choose it:** the team size, scale and change rate that justify it"
        ),
        explanation="This tests your grasp of software design patterns and architectural decisions.",
    ),
    QuestionType.DEBUGGING: _Template(
        verbs=("diagnose", "investigate", "trace", "isolate", "troubleshoot", "reproduce", "fix", "resolve"),
        topics=(
            "a memory leak",
            "an intermittent test failure",
            "a slow database query",
            "a race condition",
            "a production outage",
            "a failing deployment",
            "stale cached data",
            "unexpected null values",
        ),
        question="How would you {verb} {topic} in a {role} application that uses {skill}?",
        answer=(
            "**1. Problem Identification:** reproduce consistently, gather logs and metrics\n"
            "**2. Analysis:** use debuggers and profilers, review recent changes\n"
            "**3. Fix:** smallest testable change addressing the root cause\n"
            "**4. Verification:** run the test suite, monitor for side effects, document"
        ),
        explanation="This tests your problem-solving methodology and practical experience with debugging and optimization techniques.",
    ),
}


def _slug(text: str) -> str:
    return "-".join(text.lower().split())


def synthesize_question(
    index: int,
    config: SessionConfig,
    qtype: QuestionType,
    seen: frozenset[str],
) -> Question:
    """Build the fallback question for one position, unique against `seen`."""
    skill = config.skills[index % len(config.skills)]
    template = FALLBACK_TEMPLATES[qtype]
    verb = template.verbs[index % len(template.verbs)]
    topic = template.topics[index % len(template.topics)]

    fields = {
        "verb": verb,
        "Verb": verb[:1].upper() + verb[1:],
        "topic": topic,
        "Topic": topic[:1].upper() + topic[1:],
        "skill": skill,
        "role": config.role,
        "company": config.company,
    }
    base_text = template.question.format(**fields)

    text = base_text
    variation = 1
    while normalize_question_text(text) in seen:
        text = f"{base_text} (Variation {variation})"
        variation += 1

    return Question(
        id=_new_question_id("fallback_q", index),
        text=text,
        type=qtype,
        category=skill,
        difficulty=config.proficiency_level,
        sample_answer=template.answer.format(**fields),
        explanation=template.explanation,
        links=[
            f"https://github.com/topics/{_slug(skill)}",
            f"https://stackoverflow.com/questions/tagged/{_slug(skill)}",
        ],
        is_generated=False,
    )


def synthesize_remaining(
    accepted: tuple[Question, ...],
    seen: frozenset[str],
    config: SessionConfig,
    distribution: list[tuple[QuestionType, int]],
) -> tuple[Question, ...]:
    """Top `accepted` up to N questions with deterministic fallbacks."""
    needed = config.number_of_questions - len(accepted)
    if needed <= 0:
        return accepted

    slots = fallback_slots(distribution, accepted, needed)

    def step(acc, slot):
        questions, seen_texts = acc
        question = synthesize_question(len(questions), config, slot, seen_texts)
        return questions + (question,), seen_texts | {question.normalized_text}

    questions, _ = reduce(step, slots, (accepted, seen))
    return questions


# =============================================================================
# GENERATOR
# =============================================================================

class QuestionGenerator:
    """
    Generates a session's question set.

    Contract: generate(config) returns exactly config.number_of_questions
    questions with case-insensitively unique text, and never raises.
    """

    def __init__(
        self,
        client: CompletionClient | None = None,
        settings: Settings | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the generator.

        Args:
            client: Completion client (None means fallback-only generation)
            settings: Settings override
            retry_policy: Backoff policy for transient failures
            sleep: Sleep used between retries
        """
        self.settings = settings or get_settings()
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.prompts = QuestionPrompts()
        self._sleep = sleep
        self._fallback_callbacks: list[FallbackCallback] = []

    def on_fallback(self, callback: FallbackCallback) -> None:
        """Register a callback for masked upstream failures."""
        self._fallback_callbacks.append(callback)

    async def generate(self, config: SessionConfig) -> list[Question]:
        """
        Generate exactly N unique questions.

        Args:
            config: Session configuration

        Returns:
            Ordered question list of length config.number_of_questions
        """
        n = config.number_of_questions
        distribution = distribute_questions(n, config.question_types)
        logger.info(
            f"Generating {n} questions for {config.role} at {config.company} | "
            f"Distribution: {', '.join(f'{t.value}={c}' for t, c in distribution)}"
        )

        records: list[Any] = []
        failure: tuple[ErrorCategory, str] | None = None
        if self.client is None:
            failure = (ErrorCategory.UNKNOWN_ERROR, "No completion client configured")
        else:
            try:
                records = await with_retry(
                    lambda: self._request_records(config, distribution),
                    self.retry_policy,
                    context="question-generation",
                    sleep=self._sleep,
                )
            except Exception as e:
                error = categorize_error(e)
                logger.error(f"Question generation failed, using fallback: {error.category.value}: {error}")
                failure = (error.category, str(error))

        slots = expand_slots(distribution)
        candidates = (
            normalize_record(raw, i, config, slots[i % len(slots)])
            for i, raw in enumerate(records)
        )
        accepted, seen = accept_unique(candidates, frozenset(), n)
        if records and len(accepted) < n:
            logger.warning(
                f"Model returned {len(records)} records, {len(accepted)} usable and unique; "
                f"synthesizing {n - len(accepted)}"
            )

        questions = synthesize_remaining(accepted, seen, config, distribution)
        synthesized = len(questions) - len(accepted)

        if synthesized:
            category, message = failure or (
                ErrorCategory.VALIDATION_ERROR,
                "Model returned too few usable unique questions",
            )
            await self._emit_fallback(DiagnosticEvent(
                component="question_generator",
                category=category.value,
                message=message,
                fallback_count=synthesized,
            ))

        logger.info(f"Generated {len(questions)} questions ({synthesized} from fallback)")
        return list(questions)

    async def _request_records(
        self,
        config: SessionConfig,
        distribution: list[tuple[QuestionType, int]],
    ) -> list[Any]:
        """One completion round-trip, parsed into raw records."""
        response = await self.client.complete(
            self.prompts.SYSTEM_CONTEXT,
            self.prompts.generate_questions_prompt(config, distribution),
            temperature=self.settings.generation_temperature,
            max_tokens=self.settings.generation_max_tokens,
            trace_name="question_generation_llm",
            trace_metadata={
                "number_of_questions": config.number_of_questions,
                "question_types": [t.value for t in config.question_types],
            },
        )
        return extract_record_list(response)

    async def _emit_fallback(self, event: DiagnosticEvent) -> None:
        for callback in self._fallback_callbacks:
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"Fallback callback error: {e}")
