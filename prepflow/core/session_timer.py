"""
Session Timer - dual independent clocks for a running session.

Two layers:
- Pure clocks (QuestionClock, SessionClock) with transition functions
  `(clock, now) -> clock'`. Elapsed time is always recomputed from the
  captured start timestamp, never accumulated, so late or throttled ticks
  still read correctly.
- SessionTimer, which drives both clocks from two asyncio tasks and fires
  the auto-skip / auto-finish callbacks on the Running -> Expired and
  unfinished -> finished edges.

Question clock states:
    RUNNING → SUBMITTED   (manual submit, terminal)
    RUNNING → EXPIRED     (limit reached, fires auto-skip once, terminal)
    RUNNING → CANCELLED   (replaced or disposed, terminal)
"""

import asyncio
import logging
import math
import time
from enum import Enum
from typing import Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from prepflow.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

AutoSkipCallback = Callable[[str], Awaitable[None]]
AutoFinishCallback = Callable[[], Awaitable[None]]


class ClockPhase(str, Enum):
    RUNNING = "running"
    SUBMITTED = "submitted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class QuestionClock(BaseModel):
    """Per-question countdown."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    started_at: float
    limit_seconds: int
    elapsed_seconds: int = 0
    phase: ClockPhase = ClockPhase.RUNNING

    @property
    def remaining_seconds(self) -> int | None:
        """Seconds left, or None when the question has no limit."""
        if self.limit_seconds <= 0:
            return None
        return max(0, self.limit_seconds - self.elapsed_seconds)


class SessionClock(BaseModel):
    """Whole-session clock."""

    model_config = ConfigDict(frozen=True)

    started_at: float
    limit_seconds: int
    elapsed_seconds: int = 0
    finished: bool = False
    cancelled: bool = False

    @property
    def remaining_seconds(self) -> int:
        return max(0, self.limit_seconds - self.elapsed_seconds)


def elapsed_between(started_at: float, now: float) -> int:
    """Whole seconds between two timestamps, never negative."""
    return max(0, math.floor(now - started_at))


# =============================================================================
# PURE TRANSITIONS
# =============================================================================

def start_question_clock(question_id: str, now: float, limit_seconds: int) -> QuestionClock:
    return QuestionClock(question_id=question_id, started_at=now, limit_seconds=limit_seconds)


def tick_question(clock: QuestionClock, now: float) -> QuestionClock:
    """Recompute elapsed time; expire once the limit is reached. A limit <= 0 never expires."""
    if clock.phase != ClockPhase.RUNNING:
        return clock

    elapsed = elapsed_between(clock.started_at, now)
    if clock.limit_seconds > 0 and elapsed >= clock.limit_seconds:
        return clock.model_copy(update={"elapsed_seconds": elapsed, "phase": ClockPhase.EXPIRED})
    return clock.model_copy(update={"elapsed_seconds": elapsed})


def submit_question(clock: QuestionClock, now: float) -> QuestionClock:
    """Stop the clock on manual submission. No effect once terminal."""
    if clock.phase != ClockPhase.RUNNING:
        return clock
    return clock.model_copy(update={
        "elapsed_seconds": elapsed_between(clock.started_at, now),
        "phase": ClockPhase.SUBMITTED,
    })


def cancel_question(clock: QuestionClock) -> QuestionClock:
    if clock.phase != ClockPhase.RUNNING:
        return clock
    return clock.model_copy(update={"phase": ClockPhase.CANCELLED})


def start_session_clock(now: float, limit_seconds: int) -> SessionClock:
    return SessionClock(started_at=now, limit_seconds=limit_seconds)


def tick_session(clock: SessionClock, now: float) -> SessionClock:
    """Recompute elapsed time; mark finished once the limit is reached."""
    if clock.finished or clock.cancelled:
        return clock

    elapsed = elapsed_between(clock.started_at, now)
    return clock.model_copy(update={
        "elapsed_seconds": elapsed,
        "finished": elapsed >= clock.limit_seconds,
    })


def cancel_session(clock: SessionClock) -> SessionClock:
    if clock.finished or clock.cancelled:
        return clock
    return clock.model_copy(update={"cancelled": True})


# =============================================================================
# DRIVER
# =============================================================================

class SessionTimer:
    """
    Drives the question and session clocks.

    The session clock is independent of navigation: starting, submitting
    or replacing question clocks never touches it.

    Usage:
        timer = SessionTimer()
        timer.on_auto_skip(handle_skip)
        timer.on_auto_finish(handle_finish)
        timer.start()
        timer.start_question(question.id)
        ...
        await timer.dispose()
    """

    def __init__(
        self,
        question_limit_seconds: int | None = None,
        session_limit_seconds: int | None = None,
        tick_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.question_limit_seconds = (
            settings.question_time_limit_seconds
            if question_limit_seconds is None else question_limit_seconds
        )
        self.session_limit_seconds = (
            settings.session_time_limit_seconds
            if session_limit_seconds is None else session_limit_seconds
        )
        self.tick_seconds = settings.timer_tick_seconds if tick_seconds is None else tick_seconds
        self._clock = clock

        self._question: QuestionClock | None = None
        self._session: SessionClock | None = None
        self._tasks: list[asyncio.Task] = []
        self._disposed = False

        self._auto_skip_callbacks: list[AutoSkipCallback] = []
        self._auto_finish_callbacks: list[AutoFinishCallback] = []

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def on_auto_skip(self, callback: AutoSkipCallback) -> None:
        """Register a callback fired with the question id when its clock expires."""
        self._auto_skip_callbacks.append(callback)

    def on_auto_finish(self, callback: AutoFinishCallback) -> None:
        """Register a callback fired once when the session limit is reached."""
        self._auto_finish_callbacks.append(callback)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def question_clock(self) -> QuestionClock | None:
        return self._question

    @property
    def session_clock(self) -> SessionClock | None:
        return self._session

    @property
    def disposed(self) -> bool:
        return self._disposed

    # =========================================================================
    # CONTROL
    # =========================================================================

    def start(self, now: float | None = None, background: bool = True) -> None:
        """
        Start the session clock.

        Args:
            now: Start timestamp (defaults to the injected clock)
            background: Spawn the two ticking tasks; tests pass False and
                drive time through poll()
        """
        if self._disposed:
            raise RuntimeError("SessionTimer has been disposed")
        if self._session is not None:
            return

        self._session = start_session_clock(
            self._now(now), self.session_limit_seconds
        )
        logger.info(
            f"Session timer started | limit={self.session_limit_seconds}s, "
            f"question_limit={self.question_limit_seconds}s"
        )

        if background:
            self._tasks = [
                asyncio.create_task(self._run(self.poll_question), name="question-timer"),
                asyncio.create_task(self._run(self.poll_session), name="session-timer"),
            ]

    def start_question(self, question_id: str, now: float | None = None) -> QuestionClock | None:
        """Start a fresh clock for a question, cancelling the previous one."""
        if self._disposed:
            return None
        if self._question is not None:
            self._question = cancel_question(self._question)
        self._question = start_question_clock(
            question_id, self._now(now), self.question_limit_seconds
        )
        return self._question

    def submit_question(self, now: float | None = None) -> int:
        """
        Stop the current question clock.

        Returns:
            Whole seconds spent on the current question
        """
        if self._question is None:
            return 0
        self._question = submit_question(self._question, self._now(now))
        return self._question.elapsed_seconds

    # =========================================================================
    # TICKS
    # =========================================================================

    async def poll(self, now: float | None = None) -> None:
        """Advance both clocks once."""
        now = self._now(now)
        await self.poll_question(now)
        await self.poll_session(now)

    async def poll_question(self, now: float | None = None) -> None:
        if self._disposed or self._question is None:
            return
        before = self._question
        after = tick_question(before, self._now(now))
        self._question = after

        if before.phase == ClockPhase.RUNNING and after.phase == ClockPhase.EXPIRED:
            logger.info(f"Question {after.question_id} expired after {after.elapsed_seconds}s")
            for callback in self._auto_skip_callbacks:
                try:
                    await callback(after.question_id)
                except Exception as e:
                    logger.error(f"Auto-skip callback error: {e}")

    async def poll_session(self, now: float | None = None) -> None:
        if self._disposed or self._session is None:
            return
        before = self._session
        after = tick_session(before, self._now(now))
        self._session = after

        if not before.finished and after.finished:
            logger.info(f"Session time limit reached after {after.elapsed_seconds}s")
            for callback in self._auto_finish_callbacks:
                try:
                    await callback()
                except Exception as e:
                    logger.error(f"Auto-finish callback error: {e}")

    async def _run(self, poll: Callable[[float], Awaitable[None]]) -> None:
        while not self._disposed:
            await asyncio.sleep(self.tick_seconds)
            await poll(self._clock())

    # =========================================================================
    # DISPOSAL
    # =========================================================================

    async def dispose(self) -> None:
        """Cancel both clocks. No callback fires after this returns."""
        if self._disposed:
            return
        self._disposed = True

        if self._question is not None:
            self._question = cancel_question(self._question)
        if self._session is not None:
            self._session = cancel_session(self._session)

        # A callback may dispose from inside a timer task; let that task unwind on its own
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        logger.debug("Session timer disposed")

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now
