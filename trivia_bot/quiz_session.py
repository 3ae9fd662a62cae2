"""
Quiz session state machine.

A QuizSession holds one round's questions, selections, countdown and score.
Every transition is a total function: invalid calls are logged and ignored,
never raised. The session knows nothing about tasks or timers; QuizRound
drives it from a single mutation context.
"""
import logging
import time
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

from .models import Question, QuestionReview, SessionSnapshot, SessionState

logger = logging.getLogger(__name__)


class TickResult(Enum):
    """Outcome of a single countdown tick."""
    TICKED = "ticked"
    EXPIRED = "expired"
    IGNORED = "ignored"


def grade_quiz(questions: Sequence[Question], selections: Mapping[str, str]) -> int:
    """
    Count the questions whose selected answer matches the correct answer.

    Pure function; never mutates its arguments.
    """
    return sum(1 for question in questions if selections.get(question.id) == question.correct_answer)


def review_answers(snapshot: SessionSnapshot) -> List[QuestionReview]:
    """Build the per-question breakdown shown once a round is graded."""
    reviews = []
    for question in snapshot.questions:
        chosen = snapshot.selections.get(question.id)
        reviews.append(QuestionReview(
            question=question,
            chosen_answer=chosen,
            is_correct=chosen == question.correct_answer,
        ))
    return reviews


class QuizSession:
    """The mutable aggregate for one round: Empty -> Loading -> Active -> Submitted."""

    def __init__(self, round_id: Optional[str] = None):
        self.round_id = round_id
        self._state = SessionState.EMPTY
        self._questions: tuple = ()
        self._question_ids: frozenset = frozenset()
        self._selections: Dict[str, str] = {}
        self._time_remaining = 0
        self._expired = False
        self._score = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def submitted(self) -> bool:
        return self._state is SessionState.SUBMITTED

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def time_remaining(self) -> int:
        return self._time_remaining

    @property
    def questions(self) -> tuple:
        return self._questions

    def _log_ignored(self, transition: str, reason: str, level: int = logging.WARNING) -> None:
        logger.log(
            level,
            f"Session {self.round_id}: {transition} ignored ({reason})",
            extra={
                'event_type': 'session_transition_ignored',
                'round_id': self.round_id,
                'transition': transition,
                'state': self._state.value,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    def _log_transition(self, from_state: SessionState, to_state: SessionState) -> None:
        logger.info(
            f"Session {self.round_id}: {from_state.value} -> {to_state.value}",
            extra={
                'event_type': 'session_state_transition',
                'round_id': self.round_id,
                'from_state': from_state.value,
                'to_state': to_state.value,
                'timestamp': time.time()
            }
        )

    def begin_loading(self) -> bool:
        """Move an empty session into the loading state."""
        if self._state is not SessionState.EMPTY:
            self._log_ignored("begin_loading", f"session is {self._state.value}")
            return False
        self._state = SessionState.LOADING
        self._log_transition(SessionState.EMPTY, SessionState.LOADING)
        return True

    def apply(self, questions: Sequence[Question], time_limit: int) -> bool:
        """
        Populate the session with fetched questions and arm the countdown.

        Only valid once, from the loading state.

        Args:
            questions: Decoded questions for the round
            time_limit: Countdown length in seconds

        Returns:
            True if the session became active, False if the call was ignored
        """
        if self._state is not SessionState.LOADING:
            self._log_ignored("apply", f"session is {self._state.value}, expected loading")
            return False

        self._questions = tuple(questions)
        self._question_ids = frozenset(question.id for question in self._questions)
        self._selections = {}
        self._score = 0
        self._expired = False
        self._time_remaining = max(0, int(time_limit))
        self._state = SessionState.ACTIVE
        self._log_transition(SessionState.LOADING, SessionState.ACTIVE)
        logger.info(
            f"Session {self.round_id}: applied {len(self._questions)} questions, timer={self._time_remaining}s",
            extra={
                'event_type': 'session_applied',
                'round_id': self.round_id,
                'question_count': len(self._questions),
                'time_limit': self._time_remaining,
                'timestamp': time.time()
            }
        )
        return True

    def select(self, question_id: str, answer: str) -> bool:
        """
        Record or overwrite the answer chosen for a question.

        Returns:
            True if the selection was stored, False if ignored
        """
        if self._state is not SessionState.ACTIVE:
            self._log_ignored("select", f"session is {self._state.value}", logging.DEBUG)
            return False
        if question_id not in self._question_ids:
            self._log_ignored("select", f"unknown question id {question_id}")
            return False
        self._selections[question_id] = answer
        return True

    def tick(self) -> TickResult:
        """
        Advance the countdown by one second.

        The tick that would take the countdown from 1 to 0 reports EXPIRED
        instead of TICKED, exactly once per session.
        """
        if self._state is not SessionState.ACTIVE or self._expired:
            return TickResult.IGNORED

        if self._time_remaining > 1:
            self._time_remaining -= 1
            return TickResult.TICKED

        self._time_remaining = 0
        self._expired = True
        logger.info(
            f"Session {self.round_id}: countdown expired",
            extra={
                'event_type': 'session_expired',
                'round_id': self.round_id,
                'timestamp': time.time()
            }
        )
        return TickResult.EXPIRED

    def submit(self, score: int) -> bool:
        """
        Freeze the session with a score computed by the caller.

        Returns:
            True on the first submission, False for every later call
        """
        if self._state is SessionState.SUBMITTED:
            self._log_ignored("submit", "already submitted", logging.INFO)
            return False
        if self._state is not SessionState.ACTIVE:
            self._log_ignored("submit", f"session is {self._state.value}")
            return False

        self._score = score
        self._state = SessionState.SUBMITTED
        self._log_transition(SessionState.ACTIVE, SessionState.SUBMITTED)
        return True

    def snapshot(self) -> SessionSnapshot:
        """Copy the current state for readers outside the mutation context."""
        return SessionSnapshot(
            state=self._state,
            questions=self._questions,
            selections=dict(self._selections),
            time_remaining=self._time_remaining,
            submitted=self.submitted,
            score=self._score,
            expired=self._expired,
        )
