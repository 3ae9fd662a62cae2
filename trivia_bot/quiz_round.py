"""
Round orchestration for the Trivia Quiz Bot.

A QuizRound sequences one round: fetch -> apply -> start timer -> await
submission. Every session mutation runs on a single worker task that drains an
event queue. The fetch task and the countdown only post events to that queue,
so apply, select, tick and submit never interleave.
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Optional, Tuple
from uuid import uuid4

from .entity_decoder import decode_questions
from .exceptions import FetchFailure
from .models import Question, QuizConfig, RoundResult, SessionSnapshot, SessionState, SubmitTrigger
from .quiz_session import QuizSession, TickResult, grade_quiz, review_answers
from .quiz_timer import CountdownTimer
from .trivia_api import TriviaAPI


@dataclass(frozen=True)
class QuestionsLoaded:
    questions: Tuple[Question, ...]
    time_limit: int


@dataclass(frozen=True)
class FetchFailed:
    error: FetchFailure


@dataclass(frozen=True)
class AnswerSelected:
    question_id: str
    answer: str


@dataclass(frozen=True)
class TimerTicked:
    pass


@dataclass(frozen=True)
class SubmitRequested:
    trigger: SubmitTrigger


class RoundListener:
    """
    Receives round events for rendering. All methods run on the round's
    mutation context, between state transitions.
    """

    async def on_questions_applied(self, quiz_round: "QuizRound", snapshot: SessionSnapshot) -> None:
        pass

    async def on_session_updated(self, quiz_round: "QuizRound", snapshot: SessionSnapshot, reason: str) -> None:
        pass

    async def on_submitted(self, quiz_round: "QuizRound", result: RoundResult) -> None:
        pass

    async def on_fetch_failed(self, quiz_round: "QuizRound", error: FetchFailure) -> None:
        pass


class QuizRound:
    """
    Owns one QuizSession for the duration of a round.

    Inbound events (select, submit) and asynchronous completions (fetch
    result, timer ticks) are queued and applied one at a time by a single
    worker task.
    """

    def __init__(
        self,
        config: QuizConfig,
        trivia_api: TriviaAPI,
        listener: Optional[RoundListener] = None,
        tick_period: float = 1.0,
        rng: Optional[random.Random] = None,
        round_id: Optional[str] = None
    ):
        """
        Initialize the round.

        Args:
            config: Options for this round
            trivia_api: Fetch collaborator returning raw question records
            listener: Optional render collaborator
            tick_period: Seconds between countdown ticks
            rng: Random source for answer shuffling
            round_id: Identifier used in logs
        """
        self.logger = logging.getLogger(__name__)
        self.round_id = round_id or uuid4().hex[:12]
        self.config = config
        self.trivia_api = trivia_api
        self.listener = listener or RoundListener()
        self.tick_period = tick_period
        self._rng = rng

        self.session: Optional[QuizSession] = QuizSession(self.round_id)
        self.timer = CountdownTimer(self.round_id)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._fetch_task: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()
        self._snapshot = self.session.snapshot()

        self._started = False
        self._applied_this_round = False
        self._timer_started = False
        self._abandoned = False

        self.result: Optional[RoundResult] = None
        self.error: Optional[FetchFailure] = None
        self.started_at: Optional[float] = None

    @property
    def state(self) -> SessionState:
        return self._snapshot.state

    @property
    def is_finished(self) -> bool:
        return self._finished.is_set()

    @property
    def is_abandoned(self) -> bool:
        return self._abandoned

    def snapshot(self) -> SessionSnapshot:
        """Return the state as of the last completed transition."""
        return self._snapshot

    async def start(self) -> bool:
        """
        Begin the round: enter loading and fetch questions in the background.

        Returns:
            True if the round started, False if it was already started
        """
        if self._started or self._abandoned:
            self.logger.warning(f"Round {self.round_id}: start ignored, config already consumed")
            return False
        self._started = True
        self.started_at = time.time()

        self.session.begin_loading()
        self._snapshot = self.session.snapshot()

        self._worker = asyncio.create_task(self._process_events())
        self._fetch_task = asyncio.create_task(self._fetch())

        self.logger.info(
            f"Round {self.round_id} started: {self.config.question_count} questions, "
            f"timer={self.config.time_limit_seconds}s",
            extra={
                'event_type': 'round_started',
                'round_id': self.round_id,
                'question_count': self.config.question_count,
                'category_id': self.config.category_id,
                'time_limit': self.config.time_limit_seconds,
                'timestamp': time.time()
            }
        )
        return True

    # Inbound events from the render collaborator

    def select(self, question_id: str, answer: str) -> None:
        """Queue an answer selection."""
        self._post(AnswerSelected(question_id, answer))

    def submit(self) -> None:
        """Queue a manual submission."""
        self._post(SubmitRequested(SubmitTrigger.MANUAL))

    def _post(self, event) -> None:
        if self._abandoned:
            self.logger.debug(f"Round {self.round_id}: dropping {type(event).__name__}, round abandoned")
            return
        self._queue.put_nowait(event)

    async def flush(self) -> None:
        """Wait until every queued event has been processed."""
        if self._abandoned or self._worker is None:
            return
        await self._queue.join()

    async def wait_finished(self, timeout: Optional[float] = None) -> SessionSnapshot:
        """
        Wait for submission, fetch failure or abandonment.

        Raises:
            asyncio.TimeoutError: If the round does not finish in time
        """
        await asyncio.wait_for(self._finished.wait(), timeout=timeout)
        return self._snapshot

    async def abandon(self) -> None:
        """Stop the timer, cancel background work and discard the session."""
        if self._abandoned:
            return
        self._abandoned = True
        self.timer.stop()

        current = asyncio.current_task()
        for task in (self._fetch_task, self._worker):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._drop_pending_events()
        self.session = None
        self._finished.set()
        self.logger.info(
            f"Round {self.round_id} abandoned",
            extra={
                'event_type': 'round_abandoned',
                'round_id': self.round_id,
                'timestamp': time.time()
            }
        )

    def _drop_pending_events(self) -> None:
        """Mark queued events as handled so pending flush() calls return."""
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            dropped += 1
        if dropped:
            self.logger.debug(f"Round {self.round_id}: dropped {dropped} queued events")

    # Background fetch; never touches the session

    async def _fetch(self) -> None:
        try:
            records = await self.trivia_api.fetch_questions(
                self.config.question_count,
                self.config.category_id,
                self.config.difficulty,
                self.config.question_type
            )
            questions = decode_questions(records, self._rng)
        except FetchFailure as e:
            self._post(FetchFailed(e))
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Round {self.round_id}: unexpected fetch error: {e}", exc_info=True)
            failure = FetchFailure(f"Unexpected error while loading questions: {e}")
            failure.__cause__ = e
            self._post(FetchFailed(failure))
            return

        self._post(QuestionsLoaded(tuple(questions), self.config.time_limit_seconds))

    def _on_timer_tick(self) -> None:
        self._post(TimerTicked())

    # Single mutation context

    async def _process_events(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(
                    f"Round {self.round_id}: error handling {type(event).__name__}: {e}",
                    exc_info=True
                )
            finally:
                if self.session is not None:
                    self._snapshot = self.session.snapshot()
                self._queue.task_done()
            if self._abandoned:
                return

    async def _dispatch(self, event) -> None:
        if isinstance(event, QuestionsLoaded):
            await self._apply(event)
        elif isinstance(event, FetchFailed):
            await self._handle_fetch_failure(event.error)
        elif isinstance(event, AnswerSelected):
            if self.session.select(event.question_id, event.answer):
                await self._notify('on_session_updated', self.session.snapshot(), "select")
        elif isinstance(event, TimerTicked):
            await self._tick()
        elif isinstance(event, SubmitRequested):
            await self._submit(event.trigger)
        else:
            self.logger.warning(f"Round {self.round_id}: unknown event {event!r}")

    async def _apply(self, event: QuestionsLoaded) -> None:
        if self._applied_this_round:
            self.logger.warning(
                f"Round {self.round_id}: duplicate apply ignored",
                extra={
                    'event_type': 'round_duplicate_apply',
                    'round_id': self.round_id,
                    'timestamp': time.time()
                }
            )
            return
        if not self.session.apply(event.questions, event.time_limit):
            return
        self._applied_this_round = True

        snapshot = self.session.snapshot()
        self._snapshot = snapshot
        await self._notify('on_questions_applied', snapshot)
        self._start_timer_once()

    def _start_timer_once(self) -> None:
        if self._abandoned:
            return
        if self._timer_started:
            self.logger.warning(f"Round {self.round_id}: timer already started this round")
            return
        self._timer_started = True
        self.timer.start(self._on_timer_tick, self.tick_period)

    async def _handle_fetch_failure(self, error: FetchFailure) -> None:
        self.error = error
        self.logger.error(
            f"Round {self.round_id}: failed to load questions: {error}",
            extra={
                'event_type': 'round_fetch_failed',
                'round_id': self.round_id,
                'error_type': type(error).__name__,
                'error_message': str(error),
                'timestamp': time.time()
            }
        )
        await self._notify('on_fetch_failed', error)
        self._finished.set()

    async def _tick(self) -> None:
        result = self.session.tick()
        if result is TickResult.IGNORED:
            if self.session.submitted:
                self.timer.stop()
            return

        snapshot = self.session.snapshot()
        if result is TickResult.EXPIRED:
            self.timer.stop()
            await self._notify('on_session_updated', snapshot, "expired")
            self._post(SubmitRequested(SubmitTrigger.EXPIRED))
        else:
            await self._notify('on_session_updated', snapshot, "tick")

    async def _submit(self, trigger: SubmitTrigger) -> None:
        """Shared submit routine for manual and expiry triggers. First one wins."""
        if self.session.state is not SessionState.ACTIVE:
            self.logger.info(
                f"Round {self.round_id}: {trigger.value} submit ignored, session is {self.session.state.value}",
                extra={
                    'event_type': 'round_submit_ignored',
                    'round_id': self.round_id,
                    'trigger': trigger.value,
                    'state': self.session.state.value,
                    'timestamp': time.time()
                }
            )
            return

        # Grade from a snapshot, then freeze
        graded = self.session.snapshot()
        score = grade_quiz(graded.questions, graded.selections)

        self.timer.stop()
        self.session.submit(score)

        final = self.session.snapshot()
        self._snapshot = final
        self.result = RoundResult(snapshot=final, trigger=trigger, reviews=review_answers(final))
        self.logger.info(
            f"Round {self.round_id} submitted ({trigger.value}): score {score}/{final.total_questions}",
            extra={
                'event_type': 'round_submitted',
                'round_id': self.round_id,
                'trigger': trigger.value,
                'score': score,
                'total_questions': final.total_questions,
                'time_remaining': final.time_remaining,
                'timestamp': time.time()
            }
        )
        self._finished.set()
        await self._notify('on_submitted', self.result)

    async def _notify(self, method: str, *args) -> None:
        try:
            await getattr(self.listener, method)(self, *args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Round {self.round_id}: listener {method} failed: {e}", exc_info=True)
