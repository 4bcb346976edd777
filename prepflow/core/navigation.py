"""
Question navigation for a running session.

Tracks the current position and whether the initial forward pass has
reached the last question. Navigation never touches stored answers.
"""

from prepflow.core.answer_store import AnswerStore
from prepflow.core.errors import NavigationError
from prepflow.models.session import QuestionStatus


class QuestionNavigator:
    """Position, visited set and pass tracking over N questions."""

    def __init__(self, total: int):
        if total < 1:
            raise ValueError("A session needs at least one question")
        self.total = total
        self._index = 0
        self._visited: set[int] = set()
        self._initial_pass_complete = False
        self._move_to(0)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def is_first(self) -> bool:
        return self._index == 0

    @property
    def is_last(self) -> bool:
        return self._index == self.total - 1

    @property
    def has_completed_initial_pass(self) -> bool:
        """True once the last question has been reached at least once."""
        return self._initial_pass_complete

    @property
    def can_finish(self) -> bool:
        return self._initial_pass_complete

    def next(self) -> int:
        if self.is_last:
            raise NavigationError("Already at the last question")
        return self._move_to(self._index + 1)

    def previous(self) -> int:
        if self.is_first:
            raise NavigationError("Already at the first question")
        return self._move_to(self._index - 1)

    def jump(self, index: int) -> int:
        if not 0 <= index < self.total:
            raise NavigationError(f"Question index {index} out of range (0-{self.total - 1})")
        return self._move_to(index)

    def can_review_skipped(self, store: AnswerStore) -> bool:
        return self._initial_pass_complete and bool(store.skipped_indices)

    def next_skipped_index(self, store: AnswerStore) -> int | None:
        """First skipped position after the current one, wrapping around."""
        skipped = store.skipped_indices
        if not skipped:
            return None
        after = [i for i in skipped if i > self._index]
        return after[0] if after else skipped[0]

    def question_status(self, index: int, store: AnswerStore) -> QuestionStatus:
        """Progress indicator for one position."""
        if index == self._index:
            return QuestionStatus.CURRENT
        if store.is_answered(index):
            return QuestionStatus.ANSWERED
        if store.is_skipped(index):
            return QuestionStatus.SKIPPED
        if index in self._visited:
            return QuestionStatus.VISITED
        return QuestionStatus.UNVISITED

    def progress(self, store: AnswerStore) -> list[QuestionStatus]:
        return [self.question_status(i, store) for i in range(self.total)]

    def _move_to(self, index: int) -> int:
        self._index = index
        self._visited.add(index)
        if index == self.total - 1:
            self._initial_pass_complete = True
        return index
