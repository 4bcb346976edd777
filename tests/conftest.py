"""Shared fixtures for prepflow tests."""
import json

import httpx
import pytest

from prepflow.config.settings import Settings
from prepflow.core.completion_client import CompletionClient
from prepflow.core.retry import RetryPolicy
from prepflow.models import ProficiencyLevel, Question, QuestionType, SessionConfig


@pytest.fixture
def settings():
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        llm_api_key="test-key",
        langfuse_enabled=False,
        question_time_limit_seconds=300,
        session_time_limit_seconds=3600,
    )


@pytest.fixture
def fast_retry():
    """Retry policy without real delays."""
    return RetryPolicy(max_retries=2, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def config():
    """Five questions over two types, one skill."""
    return SessionConfig(
        role="Backend Engineer",
        company="Acme",
        skills=["Python"],
        proficiency_level=ProficiencyLevel.INTERMEDIATE,
        number_of_questions=5,
        question_types=[QuestionType.TECHNICAL_CODING, QuestionType.BEHAVIORAL],
    )


@pytest.fixture
def questions():
    """Five fixed questions: three coding (Python), two behavioral (Teamwork)."""
    specs = [
        ("q1", QuestionType.TECHNICAL_CODING, "Python"),
        ("q2", QuestionType.BEHAVIORAL, "Teamwork"),
        ("q3", QuestionType.TECHNICAL_CODING, "Python"),
        ("q4", QuestionType.BEHAVIORAL, "Teamwork"),
        ("q5", QuestionType.TECHNICAL_CODING, "Python"),
    ]
    return [
        Question(
            id=qid,
            text=f"Question {qid}",
            type=qtype,
            category=category,
            difficulty=ProficiencyLevel.INTERMEDIATE,
            sample_answer="Reference answer",
        )
        for qid, qtype, category in specs
    ]


def _completion_body(content):
    if not isinstance(content, str):
        content = json.dumps(content)
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def completion_body():
    """Builder for OpenAI-style chat completion response bodies."""
    return _completion_body


@pytest.fixture
def make_client(settings):
    """Build a CompletionClient whose HTTP calls go to `handler`."""
    def factory(handler):
        http_client = httpx.AsyncClient(
            base_url=settings.llm_base_url,
            transport=httpx.MockTransport(handler),
        )
        client = CompletionClient(settings=settings, http_client=http_client)
        return client

    return factory


@pytest.fixture
def failing_handler():
    """Handler that always answers 503 and counts calls."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, json={"error": "unavailable"})

    handler.calls = calls
    return handler
