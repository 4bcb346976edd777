"""Tests for the pure clocks and the SessionTimer driver."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from prepflow.core.session_timer import (
    ClockPhase,
    SessionTimer,
    cancel_question,
    start_question_clock,
    start_session_clock,
    submit_question,
    tick_question,
    tick_session,
)


# ============================================================================
# PURE CLOCKS (no timers, no event loop)
# ============================================================================


class TestQuestionClock:
    """Running → Submitted | Expired | Cancelled."""

    def test_runs_until_limit(self):
        clock = start_question_clock("q1", now=100.0, limit_seconds=300)
        clock = tick_question(clock, 399.9)

        assert clock.phase == ClockPhase.RUNNING
        assert clock.elapsed_seconds == 299
        assert clock.remaining_seconds == 1

    def test_expires_at_limit(self):
        clock = start_question_clock("q1", now=100.0, limit_seconds=300)
        clock = tick_question(clock, 400.0)

        assert clock.phase == ClockPhase.EXPIRED
        assert clock.remaining_seconds == 0

    def test_delayed_tick_reads_correctly(self):
        clock = start_question_clock("q1", now=0.0, limit_seconds=300)
        clock = tick_question(clock, 5.0)
        # A throttled tick long after the previous one
        clock = tick_question(clock, 120.4)
        assert clock.elapsed_seconds == 120

    def test_submitted_is_terminal(self):
        clock = start_question_clock("q1", now=0.0, limit_seconds=300)
        clock = submit_question(clock, 42.7)

        assert clock.phase == ClockPhase.SUBMITTED
        assert clock.elapsed_seconds == 42
        assert tick_question(clock, 1000.0) == clock

    def test_expired_is_terminal(self):
        clock = tick_question(start_question_clock("q1", 0.0, 10), 10.0)
        assert submit_question(clock, 11.0).phase == ClockPhase.EXPIRED
        assert cancel_question(clock).phase == ClockPhase.EXPIRED

    @pytest.mark.parametrize("limit", [0, -5])
    def test_non_positive_limit_never_expires(self, limit):
        clock = start_question_clock("q1", now=0.0, limit_seconds=limit)
        clock = tick_question(clock, 10_000.0)

        assert clock.phase == ClockPhase.RUNNING
        assert clock.remaining_seconds is None

    def test_clock_going_backwards_reads_zero(self):
        clock = tick_question(start_question_clock("q1", 50.0, 300), 40.0)
        assert clock.elapsed_seconds == 0


class TestSessionClock:
    """Finishes once at the limit."""

    def test_finishes_at_limit(self):
        clock = start_session_clock(now=0.0, limit_seconds=3600)
        assert not tick_session(clock, 3599.9).finished
        assert tick_session(clock, 3600.0).finished

    def test_finished_is_sticky(self):
        clock = tick_session(start_session_clock(0.0, 3600), 3600.0)
        assert tick_session(clock, 9999.0) == clock


# ============================================================================
# DRIVER (deterministic polling)
# ============================================================================


@pytest.fixture
def timer(settings):
    return SessionTimer(settings=settings, clock=lambda: 0.0)


class TestAutoSkip:
    """Auto-skip fires exactly once and only for an unanswered running question."""

    async def test_fires_exactly_once(self, timer):
        skipped = AsyncMock()
        timer.on_auto_skip(skipped)
        timer.start(now=0.0, background=False)
        timer.start_question("q1", now=0.0)

        await timer.poll(299.0)
        skipped.assert_not_awaited()

        await timer.poll(300.0)
        await timer.poll(301.0)
        await timer.poll(900.0)
        skipped.assert_awaited_once_with("q1")

    async def test_submit_before_limit_suppresses(self, timer):
        skipped = AsyncMock()
        timer.on_auto_skip(skipped)
        timer.start(now=0.0, background=False)
        timer.start_question("q1", now=0.0)

        assert timer.submit_question(now=299.5) == 299
        await timer.poll(300.0)
        await timer.poll(5000.0)
        skipped.assert_not_awaited()

    async def test_new_question_replaces_old_clock(self, timer):
        skipped = AsyncMock()
        timer.on_auto_skip(skipped)
        timer.start(now=0.0, background=False)
        timer.start_question("q1", now=0.0)
        timer.start_question("q2", now=200.0)

        await timer.poll(300.0)
        skipped.assert_not_awaited()

        await timer.poll(500.0)
        skipped.assert_awaited_once_with("q2")

    async def test_callback_error_is_contained(self, timer):
        timer.on_auto_skip(AsyncMock(side_effect=RuntimeError("boom")))
        after = AsyncMock()
        timer.on_auto_skip(after)
        timer.start(now=0.0, background=False)
        timer.start_question("q1", now=0.0)

        await timer.poll(300.0)
        after.assert_awaited_once_with("q1")


class TestAutoFinish:
    """The session clock ignores navigation."""

    async def test_fires_once_regardless_of_navigation(self, timer):
        finished = AsyncMock()
        timer.on_auto_finish(finished)
        timer.start(now=0.0, background=False)

        for i in range(36):
            timer.start_question(f"q{i}", now=i * 100.0)
            timer.submit_question(now=i * 100.0 + 50.0)
            await timer.poll(i * 100.0 + 60.0)
        finished.assert_not_awaited()

        await timer.poll(3600.0)
        await timer.poll(3601.0)
        await timer.poll(7200.0)
        finished.assert_awaited_once_with()

    async def test_start_is_idempotent(self, timer):
        timer.start(now=0.0, background=False)
        timer.start(now=1000.0, background=False)
        assert timer.session_clock.started_at == 0.0


class TestDispose:
    """Nothing fires after disposal."""

    async def test_no_callbacks_after_dispose(self, timer):
        skipped, finished = AsyncMock(), AsyncMock()
        timer.on_auto_skip(skipped)
        timer.on_auto_finish(finished)
        timer.start(now=0.0, background=False)
        timer.start_question("q1", now=0.0)

        await timer.dispose()
        await timer.poll(10_000.0)

        skipped.assert_not_awaited()
        finished.assert_not_awaited()
        assert timer.disposed
        assert timer.question_clock.phase == ClockPhase.CANCELLED
        assert timer.session_clock.cancelled

    async def test_start_after_dispose_rejected(self, timer):
        await timer.dispose()
        with pytest.raises(RuntimeError):
            timer.start()
        assert timer.start_question("q1") is None


# ============================================================================
# DRIVER (background tasks)
# ============================================================================


class TestBackgroundTasks:
    """Ticking tasks read the injected clock."""

    async def test_tasks_fire_and_dispose_cleanly(self, settings):
        now = [0.0]
        timer = SessionTimer(settings=settings, tick_seconds=0.001, clock=lambda: now[0])
        skipped, finished = AsyncMock(), AsyncMock()
        timer.on_auto_skip(skipped)
        timer.on_auto_finish(finished)

        timer.start()
        timer.start_question("q1")
        now[0] = 3600.0
        await asyncio.sleep(0.05)

        skipped.assert_awaited_once_with("q1")
        finished.assert_awaited_once_with()

        await timer.dispose()
        now[0] = 10_000.0
        timer.start_question("q2")
        await asyncio.sleep(0.01)
        assert skipped.await_count == 1

    async def test_dispose_from_inside_callback(self, settings):
        now = [0.0]
        timer = SessionTimer(settings=settings, tick_seconds=0.001, clock=lambda: now[0])
        done = asyncio.Event()

        async def on_finish():
            await timer.dispose()
            done.set()

        timer.on_auto_finish(on_finish)
        timer.start()
        now[0] = 3600.0

        await asyncio.wait_for(done.wait(), timeout=1.0)
        assert timer.disposed
