"""
Assessment Session - state machine for one candidate's attempt.

Wires one generator, timer, answer store, navigator and evaluator per
session; nothing mutable is shared between sessions.

States:
    CREATED → GENERATING → IN_PROGRESS → FINISHING → COMPLETE
    (CANCELLED from any non-terminal state)
"""

import asyncio
import logging
from typing import Awaitable, Callable, Protocol
from uuid import uuid4

from prepflow.config.settings import Settings, get_settings
from prepflow.core.answer_store import AnswerStore
from prepflow.core.completion_client import CompletionClient
from prepflow.core.errors import NavigationError, StateTransitionError
from prepflow.core.evaluation_engine import EvaluationEngine
from prepflow.core.navigation import QuestionNavigator
from prepflow.core.question_generator import QuestionGenerator
from prepflow.core.session_timer import SessionTimer
from prepflow.models.diagnostics import DiagnosticEvent
from prepflow.models.evaluation import EvaluationResult
from prepflow.models.question import Question
from prepflow.models.session import QuestionStatus, SessionConfig, SessionState, UserAnswer

logger = logging.getLogger(__name__)

StateChangeCallback = Callable[[str, SessionState, SessionState], Awaitable[None]]


class ResultSink(Protocol):
    """Receives the finished result for durable storage."""

    async def save(self, result: EvaluationResult, answers: list[UserAnswer]) -> None:
        ...


class AssessmentSession:
    """
    Drives a session from configuration to evaluation result.

    Usage:
        session = AssessmentSession(config, client=client, sink=sink)
        question = await session.start()
        session.submit_answer("...")
        session.next()
        ...
        result = await session.finish()
    """

    VALID_TRANSITIONS: dict[SessionState, list[SessionState]] = {
        SessionState.CREATED: [SessionState.GENERATING, SessionState.CANCELLED],
        SessionState.GENERATING: [SessionState.IN_PROGRESS, SessionState.CANCELLED],
        SessionState.IN_PROGRESS: [SessionState.FINISHING, SessionState.CANCELLED],
        SessionState.FINISHING: [SessionState.COMPLETE, SessionState.CANCELLED],
        SessionState.COMPLETE: [],  # Terminal state
        SessionState.CANCELLED: [],  # Terminal state
    }

    def __init__(
        self,
        config: SessionConfig,
        client: CompletionClient | None = None,
        generator: QuestionGenerator | None = None,
        evaluator: EvaluationEngine | None = None,
        timer: SessionTimer | None = None,
        sink: ResultSink | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the session with its collaborators.

        Args:
            config: Validated session configuration
            client: Completion client shared by default generator/evaluator
            generator: Question generator override
            evaluator: Evaluation engine override
            timer: Session timer override
            sink: Destination for the finished result
            settings: Settings override
        """
        settings = settings or get_settings()
        self.session_id = f"session_{uuid4().hex[:12]}"
        self.config = config
        self.generator = generator or QuestionGenerator(client=client, settings=settings)
        self.evaluator = evaluator or EvaluationEngine(client=client, settings=settings)
        self.timer = timer or SessionTimer(settings=settings)
        self.sink = sink

        self.state = SessionState.CREATED
        self.questions: list[Question] = []
        self.store: AnswerStore | None = None
        self.navigator: QuestionNavigator | None = None
        self.result: EvaluationResult | None = None
        self.finish_reason: str | None = None

        self._finish_lock = asyncio.Lock()
        self._state_change_callbacks: list[StateChangeCallback] = []

        self.timer.on_auto_skip(self._handle_auto_skip)
        self.timer.on_auto_finish(self._handle_auto_finish)

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def on_state_change(self, callback: StateChangeCallback) -> None:
        self._state_change_callbacks.append(callback)

    def on_fallback(self, callback: Callable[[DiagnosticEvent], Awaitable[None]]) -> None:
        """Observe masked upstream failures from generation and evaluation."""
        self.generator.on_fallback(callback)
        self.evaluator.on_fallback(callback)

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    async def _transition(self, new_state: SessionState) -> None:
        """
        Move to a new state.

        Raises:
            StateTransitionError: If transition is invalid
        """
        old_state = self.state
        valid_next_states = self.VALID_TRANSITIONS.get(old_state, [])
        if new_state not in valid_next_states:
            raise StateTransitionError(
                f"Invalid transition from {old_state.value} to {new_state.value}. "
                f"Valid transitions: {[s.value for s in valid_next_states]}"
            )

        self.state = new_state

        for callback in self._state_change_callbacks:
            try:
                await callback(self.session_id, old_state, new_state)
            except Exception as e:
                logger.error(f"State change callback error: {e}")

        logger.info(f"Session {self.session_id}: {old_state.value} → {new_state.value}")

    def _require_in_progress(self) -> None:
        if self.state != SessionState.IN_PROGRESS:
            raise StateTransitionError(
                f"Session {self.session_id} is {self.state.value}, not in progress"
            )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self, background_timers: bool = True) -> Question | None:
        """
        Generate questions, start both timers and open the first question.

        Returns:
            The first question, or None if the session was cancelled while
            questions were being generated
        """
        await self._transition(SessionState.GENERATING)

        questions = await self.generator.generate(self.config)
        if self.state == SessionState.CANCELLED:
            logger.info(f"Session {self.session_id} cancelled during generation")
            return None

        self.questions = questions
        self.store = AnswerStore([q.id for q in questions])
        self.navigator = QuestionNavigator(len(questions))
        await self._transition(SessionState.IN_PROGRESS)

        self.timer.start(background=background_timers)
        return self._open_current()

    async def finish(self) -> EvaluationResult | None:
        """
        Finish manually. Submits the current question's pending draft first.

        Returns:
            The evaluation, or None when the session was cancelled while
            its answers were being evaluated

        Raises:
            NavigationError: the initial pass has not reached the last question
        """
        self._require_in_progress()
        if not self.navigator.can_finish:
            raise NavigationError("Finish is available after reaching the last question")
        return await self._finish("manual")

    async def cancel(self) -> None:
        """Abandon the session. No result is produced."""
        await self._transition(SessionState.CANCELLED)
        await self.timer.dispose()

    async def dispose(self) -> None:
        """Tear down timers; no callback fires afterwards."""
        await self.timer.dispose()

    async def _finish(self, reason: str) -> EvaluationResult | None:
        async with self._finish_lock:
            if self.state != SessionState.IN_PROGRESS:
                return self.result

            self._submit_pending_draft()
            self.finish_reason = reason
            await self.timer.dispose()
            await self._transition(SessionState.FINISHING)

            answers = self.store.list_answers()
            result = await self.evaluator.evaluate(self.questions, answers, self.config)
            if self.state == SessionState.CANCELLED:
                return None

            self.result = result
            await self._transition(SessionState.COMPLETE)
            logger.info(
                f"Session {self.session_id} finished ({reason}) | "
                f"Score: {result.score} | {len(answers)}/{len(self.questions)} answered"
            )

        if self.sink is not None:
            try:
                await self.sink.save(result, answers)
            except Exception as e:
                logger.error(f"Result sink failed for session {self.session_id}: {e}")
        return result

    def _submit_pending_draft(self) -> None:
        question = self.current_question
        draft = self.store.draft_for(question.id)
        if draft and draft.strip():
            self.store.submit(question.id, draft, self.timer.submit_question())
            logger.debug(f"Submitted pending draft for {question.id} before finishing")

    # =========================================================================
    # QUESTIONS & ANSWERS
    # =========================================================================

    @property
    def current_question(self) -> Question | None:
        if self.navigator is None:
            return None
        return self.questions[self.navigator.current_index]

    @property
    def current_answer(self) -> UserAnswer | None:
        question = self.current_question
        return self.store.get(question.id) if question else None

    def save_draft(self, text: str) -> None:
        self._require_in_progress()
        self.store.save_draft(self.current_question.id, text)

    def submit_answer(self, text: str) -> UserAnswer:
        """Submit (or replace) the current question's answer and stop its clock."""
        self._require_in_progress()
        question = self.current_question
        if not text.strip():
            raise ValueError("Answer text must not be empty")
        time_spent = self.timer.submit_question()
        return self.store.submit(question.id, text, time_spent)

    def skip_current(self) -> Question:
        """Mark the current question skipped and move on when possible."""
        self._require_in_progress()
        self.store.skip(self.navigator.current_index)
        if self.navigator.is_last:
            return self.current_question
        self.navigator.next()
        return self._open_current()

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def next(self) -> Question:
        self._require_in_progress()
        self.navigator.next()
        return self._open_current()

    def previous(self) -> Question:
        self._require_in_progress()
        self.navigator.previous()
        return self._open_current()

    def jump_to(self, index: int) -> Question:
        self._require_in_progress()
        self.navigator.jump(index)
        return self._open_current()

    @property
    def can_review_skipped(self) -> bool:
        return (
            self.state == SessionState.IN_PROGRESS
            and self.navigator.can_review_skipped(self.store)
        )

    @property
    def can_finish(self) -> bool:
        return self.state == SessionState.IN_PROGRESS and self.navigator.can_finish

    def review_skipped(self) -> Question:
        """Jump to the next skipped question."""
        self._require_in_progress()
        if not self.navigator.can_review_skipped(self.store):
            raise NavigationError("No skipped questions to review yet")
        self.navigator.jump(self.navigator.next_skipped_index(self.store))
        return self._open_current()

    def progress(self) -> list[QuestionStatus]:
        if self.navigator is None:
            return []
        return self.navigator.progress(self.store)

    def _open_current(self) -> Question:
        question = self.current_question
        self.timer.start_question(question.id)
        return question

    # =========================================================================
    # TIMER EVENTS
    # =========================================================================

    async def _handle_auto_skip(self, question_id: str) -> None:
        if self.state != SessionState.IN_PROGRESS:
            return
        question = self.current_question
        if question is None or question.id != question_id:
            return
        # Answered questions can be revised but never auto-skipped
        if self.store.get(question_id) is not None:
            return

        logger.info(f"Auto-skipping question {self.navigator.current_index} ({question_id})")
        self.store.skip(self.navigator.current_index)
        if not self.navigator.is_last:
            self.navigator.next()
            self._open_current()

    async def _handle_auto_finish(self) -> None:
        if self.state != SessionState.IN_PROGRESS:
            return
        logger.info(f"Session {self.session_id} reached its time limit")
        await self._finish("time_limit")
