"""
Quiz round controller for the Trivia Quiz Bot.
Keeps at most one round per Discord channel and routes player events to it.
"""
import logging
import random
import time
from typing import Any, Dict, Optional

from .exceptions import NotRoundOwnerError, RoundConflictError, RoundNotFoundError
from .models import QuizConfig, SessionState
from .quiz_round import QuizRound, RoundListener
from .trivia_api import TriviaAPI


class QuizController:
    """
    Orchestrates trivia rounds across Discord channels.

    Each channel can have at most one loading or active round. A finished
    round stays available for status queries until the channel starts a new
    one or the owner quits.
    """

    def __init__(self, trivia_api: TriviaAPI, tick_period: float = 1.0, rng: Optional[random.Random] = None):
        """
        Initialize the quiz controller.

        Args:
            trivia_api: Client used by every round to fetch questions
            tick_period: Seconds between countdown ticks
            rng: Random source for answer shuffling, shared by all rounds
        """
        self.logger = logging.getLogger(__name__)
        self.trivia_api = trivia_api
        self.tick_period = tick_period
        self._rng = rng

        # Rounds and their owners mapped by channel ID
        self._rounds: Dict[int, QuizRound] = {}
        self._owners: Dict[int, int] = {}

        self.logger.info("QuizController initialized")

    def get_round(self, channel_id: int) -> Optional[QuizRound]:
        """Get the round for a channel, finished or not."""
        return self._rounds.get(channel_id)

    def get_owner(self, channel_id: int) -> Optional[int]:
        return self._owners.get(channel_id)

    def has_active_round(self, channel_id: int) -> bool:
        """
        Check if a channel has a round that is still loading or running.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if the round is neither finished nor abandoned
        """
        quiz_round = self._rounds.get(channel_id)
        return quiz_round is not None and not quiz_round.is_finished

    def _require_round(self, channel_id: int, user_id: int) -> QuizRound:
        quiz_round = self._rounds.get(channel_id)
        if quiz_round is None:
            raise RoundNotFoundError(f"No trivia round in channel {channel_id}")
        if self._owners.get(channel_id) != user_id:
            raise NotRoundOwnerError(f"User {user_id} does not own the round in channel {channel_id}")
        return quiz_round

    async def _discard_round(self, channel_id: int) -> None:
        quiz_round = self._rounds.pop(channel_id, None)
        self._owners.pop(channel_id, None)
        if quiz_round is not None:
            await quiz_round.abandon()

    async def start_round(
        self,
        channel_id: int,
        user_id: int,
        config: QuizConfig,
        listener: Optional[RoundListener] = None
    ) -> Dict[str, Any]:
        """
        Start a new trivia round in a channel.

        Args:
            channel_id: Discord channel identifier
            user_id: Player who owns the round
            config: Options for the round
            listener: Render collaborator for round events

        Returns:
            Dictionary with success status, message and user-friendly message
        """
        try:
            await self.cleanup_finished_rounds()

            if self.has_active_round(channel_id):
                raise RoundConflictError(f"Channel {channel_id} already has a round in progress")

            # A finished round is discarded when a new one begins
            await self._discard_round(channel_id)

            quiz_round = QuizRound(
                config,
                self.trivia_api,
                listener=listener,
                tick_period=self.tick_period,
                rng=self._rng
            )
            self._rounds[channel_id] = quiz_round
            self._owners[channel_id] = user_id
            await quiz_round.start()

            self.logger.info(
                f"Started round {quiz_round.round_id} in channel {channel_id} for user {user_id}",
                extra={
                    'event_type': 'round_created',
                    'channel_id': channel_id,
                    'user_id': user_id,
                    'round_id': quiz_round.round_id,
                    'timestamp': time.time()
                }
            )
            return {
                'success': True,
                'message': f"Round {quiz_round.round_id} started",
                'user_message': "⏳ Loading questions...",
                'round_id': quiz_round.round_id
            }

        except RoundConflictError as e:
            self.logger.warning(str(e))
            return {
                'success': False,
                'error': str(e),
                'message': str(e),
                'user_message': "A trivia round is already running in this channel. Use /quit to end it first."
            }
        except Exception as e:
            self.logger.error(f"Failed to start round for channel {channel_id}: {e}", exc_info=True)
            await self._discard_round(channel_id)
            return {
                'success': False,
                'error': str(e),
                'message': f"Failed to start round: {e}",
                'user_message': "❌ Could not start the trivia round. Please try again."
            }

    def select_answer(self, channel_id: int, user_id: int, question_id: str, answer: str) -> Dict[str, Any]:
        """Route an answer selection to the channel's round."""
        try:
            quiz_round = self._require_round(channel_id, user_id)
        except RoundNotFoundError as e:
            return {'success': False, 'error': str(e), 'user_message': "There is no trivia round here."}
        except NotRoundOwnerError as e:
            return {'success': False, 'error': str(e), 'user_message': "Only the player who started this round can answer."}

        quiz_round.select(question_id, answer)
        return {'success': True, 'message': "Selection queued"}

    def submit_round(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        """
        Submit the channel's round on behalf of its owner.

        Returns:
            Dictionary with success status and user-friendly message
        """
        try:
            quiz_round = self._require_round(channel_id, user_id)
        except RoundNotFoundError as e:
            return {'success': False, 'error': str(e), 'user_message': "There is no trivia round to submit."}
        except NotRoundOwnerError as e:
            return {'success': False, 'error': str(e), 'user_message': "Only the player who started this round can submit it."}

        state = quiz_round.state
        if state is SessionState.SUBMITTED:
            return {'success': False, 'error': "Round already submitted", 'user_message': "This round has already been graded."}
        if state is not SessionState.ACTIVE:
            return {'success': False, 'error': f"Round is {state.value}", 'user_message': "Questions are still loading."}

        quiz_round.submit()
        self.logger.info(f"Manual submit queued for channel {channel_id}")
        return {'success': True, 'message': "Submit queued", 'user_message': "📝 Grading your answers..."}

    async def abandon_round(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        """
        Stop and discard the channel's round.

        Returns:
            Dictionary with success status and user-friendly message
        """
        try:
            quiz_round = self._require_round(channel_id, user_id)
        except RoundNotFoundError as e:
            return {'success': False, 'error': str(e), 'user_message': "There is no trivia round to quit."}
        except NotRoundOwnerError as e:
            return {'success': False, 'error': str(e), 'user_message': "Only the player who started this round can quit it."}

        was_active = not quiz_round.is_finished
        await self._discard_round(channel_id)
        self.logger.info(f"Round {quiz_round.round_id} discarded for channel {channel_id}")
        return {
            'success': True,
            'message': f"Round {quiz_round.round_id} discarded",
            'user_message': "🛑 Trivia round stopped." if was_active else "🧹 Previous round cleared."
        }

    def get_round_status_summary(self, channel_id: int) -> str:
        """
        Get a human-readable summary of the channel's round.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Status text
        """
        quiz_round = self._rounds.get(channel_id)
        if quiz_round is None:
            return "No trivia round in this channel. Use /trivia to start one."

        if quiz_round.error is not None:
            return f"Last round failed to load: {quiz_round.error}"

        snapshot = quiz_round.snapshot()
        if snapshot.state is SessionState.LOADING:
            return "Loading questions..."
        if snapshot.state is SessionState.ACTIVE:
            return (
                f"Round in progress: {snapshot.answered_count}/{snapshot.total_questions} answered, "
                f"{snapshot.time_remaining}s remaining"
            )
        if snapshot.state is SessionState.SUBMITTED:
            return f"Round complete: scored {snapshot.score}/{snapshot.total_questions}"
        return f"Round state: {snapshot.state.value}"

    async def cleanup_finished_rounds(self, max_age_seconds: float = 3600) -> int:
        """
        Abandon and forget finished rounds older than ``max_age_seconds``.

        Returns:
            Number of rounds removed
        """
        now = time.time()
        stale = [
            channel_id for channel_id, quiz_round in self._rounds.items()
            if quiz_round.is_finished and (now - (quiz_round.started_at or now)) > max_age_seconds
        ]
        for channel_id in stale:
            await self._discard_round(channel_id)

        if stale:
            self.logger.info(f"Cleaned up {len(stale)} finished rounds")
        return len(stale)

    async def shutdown(self) -> None:
        """Abandon every round; used when the bot closes."""
        for channel_id in list(self._rounds):
            await self._discard_round(channel_id)
        self.logger.info("QuizController shut down")
