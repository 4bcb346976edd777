"""
Answer Store - latest answer per question, independent of navigation.

Holds three kinds of per-question state:
- Submitted answers (at most one per question id; resubmission replaces)
- Skip flags, keyed by question position
- Unsaved drafts for the question being edited
"""

import logging

from prepflow.core.errors import NavigationError
from prepflow.models.session import UserAnswer

logger = logging.getLogger(__name__)


class AnswerStore:
    """Answers for one session's ordered question list."""

    def __init__(self, question_ids: list[str]):
        if len(set(question_ids)) != len(question_ids):
            raise ValueError("Question ids must be unique")
        self._question_ids = list(question_ids)
        self._positions = {qid: i for i, qid in enumerate(self._question_ids)}
        self._answers: dict[str, UserAnswer] = {}
        self._drafts: dict[str, str] = {}
        self._skipped: set[int] = set()

    def __len__(self) -> int:
        return len(self._question_ids)

    @property
    def question_ids(self) -> list[str]:
        return list(self._question_ids)

    def question_id_at(self, index: int) -> str:
        self._check_index(index)
        return self._question_ids[index]

    def position_of(self, question_id: str) -> int:
        try:
            return self._positions[question_id]
        except KeyError:
            raise NavigationError(f"Unknown question: {question_id}") from None

    # =========================================================================
    # ANSWERS
    # =========================================================================

    def submit(self, question_id: str, text: str, time_spent_seconds: int = 0) -> UserAnswer:
        """
        Store the answer for a question, replacing any previous one.

        Clears the question's draft and skip flag.

        Raises:
            NavigationError: unknown question id
            ValueError: blank answer text
        """
        index = self.position_of(question_id)
        if not text.strip():
            raise ValueError("Answer text must not be empty")

        answer = UserAnswer(
            question_id=question_id,
            answer_text=text,
            time_spent_seconds=max(0, int(time_spent_seconds)),
        )
        replaced = question_id in self._answers
        self._answers[question_id] = answer
        self._drafts.pop(question_id, None)
        self._skipped.discard(index)

        logger.debug(
            f"{'Replaced' if replaced else 'Stored'} answer for {question_id} "
            f"({len(text)} chars, {answer.time_spent_seconds}s)"
        )
        return answer

    def get(self, question_id: str) -> UserAnswer | None:
        return self._answers.get(question_id)

    def list_answers(self) -> list[UserAnswer]:
        """All current answers, in question order."""
        return [self._answers[qid] for qid in self._question_ids if qid in self._answers]

    def is_answered(self, index: int) -> bool:
        return self.question_id_at(index) in self._answers

    @property
    def answered_count(self) -> int:
        return len(self._answers)

    # =========================================================================
    # SKIPS
    # =========================================================================

    def skip(self, index: int) -> bool:
        """
        Mark a position as skipped. Does not create an answer or move.

        Returns:
            False when the position already has an answer (nothing to skip)
        """
        question_id = self.question_id_at(index)
        if question_id in self._answers:
            return False
        self._skipped.add(index)
        logger.debug(f"Question {index} ({question_id}) marked skipped")
        return True

    def is_skipped(self, index: int) -> bool:
        return index in self._skipped

    @property
    def skipped_indices(self) -> list[int]:
        return sorted(self._skipped)

    # =========================================================================
    # DRAFTS
    # =========================================================================

    def save_draft(self, question_id: str, text: str) -> None:
        """Hold unsaved text for a question."""
        self.position_of(question_id)
        self._drafts[question_id] = text

    def draft_for(self, question_id: str) -> str | None:
        return self._drafts.get(question_id)

    def discard_draft(self, question_id: str) -> None:
        self._drafts.pop(question_id, None)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._question_ids):
            raise NavigationError(
                f"Question index {index} out of range (0-{len(self._question_ids) - 1})"
            )
