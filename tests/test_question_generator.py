"""Tests for question generation and its deterministic fallback."""
import json
from collections import Counter
from unittest.mock import AsyncMock

import httpx
import pytest

from prepflow.core.question_generator import (
    QuestionGenerator,
    accept_unique,
    distribute_questions,
    expand_slots,
    fallback_slots,
    normalize_record,
    synthesize_question,
)
from prepflow.models import ProficiencyLevel, QuestionType, SessionConfig
from prepflow.prompts import QuestionPrompts

CODING = QuestionType.TECHNICAL_CODING
BEHAVIORAL = QuestionType.BEHAVIORAL


def record(text, qtype="technical-coding", category="Python"):
    return {
        "question": text,
        "type": qtype,
        "category": category,
        "difficulty": "expert",
        "answer": "An answer",
        "explanation": "Tests things",
        "links": ["https://example.test", 42],
    }


def assert_unique(questions):
    texts = [q.text.strip().lower() for q in questions]
    assert len(texts) == len(set(texts))
    assert len({q.id for q in questions}) == len(questions)


# ============================================================================
# PURE HELPERS
# ============================================================================


class TestDistribution:
    """floor(N/T) per type, remainder to the earliest types."""

    def test_uneven_split(self):
        assert distribute_questions(5, [CODING, BEHAVIORAL]) == [(CODING, 3), (BEHAVIORAL, 2)]

    def test_three_types(self):
        types = [CODING, BEHAVIORAL, QuestionType.DEBUGGING]
        assert [c for _, c in distribute_questions(7, types)] == [3, 2, 2]

    def test_fewer_questions_than_types(self):
        types = [CODING, BEHAVIORAL, QuestionType.DEBUGGING]
        assert [c for _, c in distribute_questions(2, types)] == [1, 1, 0]

    def test_expand_slots_interleaves(self):
        slots = expand_slots([(CODING, 3), (BEHAVIORAL, 2)])
        assert slots == [CODING, BEHAVIORAL, CODING, BEHAVIORAL, CODING]

    def test_fallback_slots_fill_deficits(self, config):
        distribution = distribute_questions(5, [CODING, BEHAVIORAL])
        accepted = [
            normalize_record(record("A"), 0, config, CODING),
            normalize_record(record("B"), 1, config, CODING),
            normalize_record(record("C"), 2, config, CODING),
        ]
        assert fallback_slots(distribution, accepted, 2) == [BEHAVIORAL, BEHAVIORAL]


class TestGenerationPrompt:
    """Distribution lines in the generation prompt."""

    def test_lists_readable_type_names(self, config):
        prompt = QuestionPrompts().generate_questions_prompt(
            config, distribute_questions(5, [CODING, BEHAVIORAL])
        )

        assert "- technical-coding (Technical Coding): 3 questions" in prompt
        assert "- behavioral (Behavioral): 2 questions" in prompt


class TestNormalizeRecord:
    """Per-record cleanup."""

    def test_full_record(self, config):
        question = normalize_record(record("  Reverse a list  "), 0, config, BEHAVIORAL)

        assert question.text == "Reverse a list"
        assert question.type == CODING
        assert question.category == "Python"
        assert question.difficulty == ProficiencyLevel.INTERMEDIATE
        assert question.sample_answer == "An answer"
        assert question.links == ["https://example.test"]
        assert question.is_generated

    def test_unknown_type_coerced_to_slot(self, config):
        question = normalize_record(record("Q", qtype="trivia"), 0, config, BEHAVIORAL)
        assert question.type == BEHAVIORAL

    def test_unrequested_type_coerced_to_slot(self, config):
        question = normalize_record(record("Q", qtype="system-design"), 0, config, CODING)
        assert question.type == CODING

    def test_missing_category_uses_skill(self, config):
        raw = record("Q")
        del raw["category"]
        assert normalize_record(raw, 3, config, CODING).category == "Python"

    @pytest.mark.parametrize("raw", [None, "text", 42, {"question": ""}, {"type": "behavioral"}])
    def test_unusable_records(self, config, raw):
        assert normalize_record(raw, 0, config, CODING) is None


class TestAcceptUnique:
    """Functional de-duplication."""

    def test_case_insensitive_duplicates_dropped(self, config):
        candidates = [
            normalize_record(record("What is a closure?"), 0, config, CODING),
            normalize_record(record("  WHAT IS A CLOSURE?"), 1, config, CODING),
            None,
            normalize_record(record("What is a generator?"), 3, config, CODING),
        ]
        accepted, seen = accept_unique(candidates, frozenset(), limit=10)

        assert [q.text for q in accepted] == ["What is a closure?", "What is a generator?"]
        assert seen == {"what is a closure?", "what is a generator?"}

    def test_limit(self, config):
        candidates = [normalize_record(record(f"Q{i}"), i, config, CODING) for i in range(5)]
        accepted, _ = accept_unique(candidates, frozenset(), limit=2)
        assert len(accepted) == 2

    def test_respects_existing_seen(self, config):
        candidates = [normalize_record(record("Known"), 0, config, CODING)]
        accepted, _ = accept_unique(candidates, frozenset({"known"}), limit=5)
        assert accepted == ()


class TestSynthesizeQuestion:
    """Deterministic fallback questions."""

    @pytest.mark.parametrize("qtype", list(QuestionType))
    def test_every_type_has_a_template(self, config, qtype):
        question = synthesize_question(0, config, qtype, frozenset())

        assert question.type == qtype
        assert question.category == "Python"
        assert question.text
        assert question.sample_answer
        assert question.explanation
        assert question.links
        assert not question.is_generated
        assert "{" not in question.text

    def test_deterministic_text(self, config):
        a = synthesize_question(2, config, CODING, frozenset())
        b = synthesize_question(2, config, CODING, frozenset())
        assert a.text == b.text
        assert a.id != b.id

    def test_collision_gets_variation_suffix(self, config):
        base = synthesize_question(0, config, CODING, frozenset())
        seen = frozenset({base.normalized_text})

        again = synthesize_question(0, config, CODING, seen)
        assert again.text == f"{base.text} (Variation 1)"

        seen = seen | {again.normalized_text}
        third = synthesize_question(0, config, CODING, seen)
        assert third.text.endswith("(Variation 2)")

    def test_skill_cycles_by_index(self):
        config = SessionConfig(
            role="Dev", company="Co", skills=["Go", "Rust"],
            number_of_questions=2, question_types=[CODING],
        )
        assert synthesize_question(0, config, CODING, frozenset()).category == "Go"
        assert synthesize_question(1, config, CODING, frozenset()).category == "Rust"


# ============================================================================
# GENERATOR
# ============================================================================


class TestGeneratorFallback:
    """Upstream failures never escape generate()."""

    async def test_forced_failure_yields_full_distribution(
        self, config, settings, make_client, failing_handler, fast_retry, no_sleep
    ):
        generator = QuestionGenerator(
            client=make_client(failing_handler), settings=settings,
            retry_policy=fast_retry, sleep=no_sleep,
        )
        events = []
        generator.on_fallback(AsyncMock(side_effect=events.append))

        questions = await generator.generate(config)

        assert len(questions) == 5
        assert_unique(questions)
        assert Counter(q.type for q in questions) == {CODING: 3, BEHAVIORAL: 2}
        assert all(not q.is_generated for q in questions)
        assert len(failing_handler.calls) == 3
        assert len(events) == 1
        assert events[0].component == "question_generator"
        assert events[0].category == "SERVER_ERROR"
        assert events[0].fallback_count == 5

    async def test_malformed_body_reported_as_validation(
        self, config, settings, make_client, fast_retry, no_sleep
    ):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"choices": [{"message": None}]})

        generator = QuestionGenerator(
            client=make_client(handler), settings=settings,
            retry_policy=fast_retry, sleep=no_sleep,
        )
        events = []
        generator.on_fallback(AsyncMock(side_effect=events.append))

        questions = await generator.generate(config)

        assert len(questions) == 5
        assert len(calls) == 1
        assert events[0].category == "VALIDATION_ERROR"

    async def test_auth_failure_not_retried(self, config, settings, make_client, fast_retry, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={})

        generator = QuestionGenerator(
            client=make_client(handler), settings=settings,
            retry_policy=fast_retry, sleep=no_sleep,
        )
        questions = await generator.generate(config)

        assert len(questions) == 5
        assert len(calls) == 1

    async def test_without_client(self, config, settings):
        questions = await QuestionGenerator(settings=settings).generate(config)
        assert len(questions) == 5
        assert_unique(questions)

    async def test_callback_error_does_not_escape(self, config, settings):
        generator = QuestionGenerator(settings=settings)
        generator.on_fallback(AsyncMock(side_effect=RuntimeError("observer broke")))

        assert len(await generator.generate(config)) == 5

    async def test_many_questions_single_type_stay_unique(self, settings):
        config = SessionConfig(
            role="Dev", company="Co", skills=["Python"],
            number_of_questions=30, question_types=[BEHAVIORAL],
        )
        questions = await QuestionGenerator(settings=settings).generate(config)

        assert len(questions) == 30
        assert_unique(questions)


class TestGeneratorModelPath:
    """Parsing and topping-up model output."""

    def _generator(self, settings, make_client, completion_body, payload, fast_retry, no_sleep):
        def handler(request):
            return httpx.Response(200, json=completion_body(json.dumps(payload)))

        return QuestionGenerator(
            client=make_client(handler), settings=settings,
            retry_policy=fast_retry, sleep=no_sleep,
        )

    async def test_model_questions_used(self, config, settings, make_client, completion_body, fast_retry, no_sleep):
        payload = {"questions": [
            record("Implement an LRU cache"),
            record("Tell me about a conflict", "behavioral", "Teamwork"),
            record("Merge two sorted lists"),
            record("Describe a missed deadline", "behavioral", "Teamwork"),
            record("Detect a cycle in a graph"),
        ]}
        generator = self._generator(settings, make_client, completion_body, payload, fast_retry, no_sleep)
        events = []
        generator.on_fallback(AsyncMock(side_effect=events.append))

        questions = await generator.generate(config)

        assert [q.text for q in questions][0] == "Implement an LRU cache"
        assert all(q.is_generated for q in questions)
        assert all(q.difficulty == ProficiencyLevel.INTERMEDIATE for q in questions)
        assert events == []

    async def test_bare_array_and_extra_records(self, config, settings, make_client, completion_body, fast_retry, no_sleep):
        payload = [record(f"Distinct question {i}") for i in range(8)]
        generator = self._generator(settings, make_client, completion_body, payload, fast_retry, no_sleep)

        questions = await generator.generate(config)

        assert len(questions) == 5
        assert [q.text for q in questions] == [f"Distinct question {i}" for i in range(5)]

    async def test_duplicates_topped_up(self, config, settings, make_client, completion_body, fast_retry, no_sleep):
        payload = {"data": [
            record("What is a closure?"),
            record("what is a closure?  "),
            record("Explain recursion", "behavioral"),
            record("EXPLAIN RECURSION", "behavioral"),
            "not a record",
        ]}
        generator = self._generator(settings, make_client, completion_body, payload, fast_retry, no_sleep)
        events = []
        generator.on_fallback(AsyncMock(side_effect=events.append))

        questions = await generator.generate(config)

        assert len(questions) == 5
        assert_unique(questions)
        assert sum(q.is_generated for q in questions) == 2
        assert Counter(q.type for q in questions) == {CODING: 3, BEHAVIORAL: 2}
        assert events[0].category == "VALIDATION_ERROR"
        assert events[0].fallback_count == 3

    async def test_wrong_shape_falls_back(self, config, settings, make_client, completion_body, fast_retry, no_sleep):
        payload = {"items": [record("Q")]}
        generator = self._generator(settings, make_client, completion_body, payload, fast_retry, no_sleep)

        questions = await generator.generate(config)

        assert len(questions) == 5
        assert all(not q.is_generated for q in questions)
