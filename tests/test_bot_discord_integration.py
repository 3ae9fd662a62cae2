"""
Unit tests for Discord bot integration: command handlers, embeds and the
round presenter, with the Discord API mocked.
"""
import asyncio
import unittest
from unittest.mock import AsyncMock, Mock, patch

import discord
from discord.ext import commands

from trivia_bot.bot import TriviaBot
from trivia_bot.config_manager import ConfigManager
from trivia_bot.exceptions import NetworkError, NoResultsError
from trivia_bot.models import (
    Category,
    Question,
    QuestionReview,
    RoundResult,
    SessionSnapshot,
    SessionState,
    SubmitTrigger,
)
from trivia_bot.quiz_controller import QuizController
from trivia_bot.quiz_round import QuizRound
from trivia_bot.views import (
    QuizView,
    RoundPresenter,
    build_fetch_error_embed,
    build_question_embed,
    build_results_embed,
    should_refresh_timer,
    truncate,
)
from tests.test_fixtures import FakeTriviaAPI, IdentityRandom, MockDiscordObjects, TestFixtures


async def wait_for_state(quiz_round: QuizRound, state: SessionState, timeout: float = 2.0):
    async def poll():
        while quiz_round.state is not state:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout)


class TestViewHelpers(unittest.TestCase):
    """Test cases for embed builders and small helpers."""

    def test_truncate(self):
        self.assertEqual(truncate("short", 10), "short")
        self.assertEqual(truncate("a" * 20, 10), "a" * 9 + "…")

    def test_should_refresh_timer(self):
        self.assertTrue(should_refresh_timer(60))
        self.assertTrue(should_refresh_timer(5))
        self.assertTrue(should_refresh_timer(1))
        self.assertFalse(should_refresh_timer(59))
        self.assertFalse(should_refresh_timer(7))

    def test_results_embed_fits_discord_total_limit(self):
        """Test twenty long questions still produce an embed Discord accepts."""
        questions = tuple(
            Question(
                id=f"q{index}",
                category="General Knowledge",
                difficulty="hard",
                type="multiple",
                prompt=f"Question {index} " + "x" * 300,
                correct_answer="c" * 200,
                incorrect_answers=("w" * 200, "y", "z"),
                answer_options=("w" * 200, "y", "z", "c" * 200)
            )
            for index in range(20)
        )
        reviews = []
        for index, question in enumerate(questions):
            if index % 3 == 0:
                reviews.append(QuestionReview(question, question.correct_answer, True))
            elif index % 3 == 1:
                reviews.append(QuestionReview(question, "w" * 200, False))
            else:
                reviews.append(QuestionReview(question, None, False))
        snapshot = SessionSnapshot(
            state=SessionState.SUBMITTED,
            questions=questions,
            selections={review.question.id: review.chosen_answer for review in reviews if review.chosen_answer},
            submitted=True,
            score=7,
            expired=True
        )

        embed = build_results_embed(RoundResult(snapshot, SubmitTrigger.EXPIRED, reviews))

        self.assertLessEqual(len(embed), 6000)
        self.assertEqual(len(embed.fields), 20)
        self.assertIn("Score: 7/20", embed.description)
        self.assertTrue(embed.fields[1].value.startswith("❌ "))
        self.assertIn("\n✅ ", embed.fields[1].value)

    def test_fetch_error_embed_uses_user_message(self):
        embed = build_fetch_error_embed(NoResultsError("none"))
        self.assertEqual(embed.description, NoResultsError.user_message)


class TestQuizView(unittest.IsolatedAsyncioTestCase):
    """Test cases for the interactive question view and its embeds."""

    async def asyncSetUp(self):
        self.api = FakeTriviaAPI()
        self.quiz_round = QuizRound(
            TestFixtures.create_quiz_config(),
            self.api,
            tick_period=10.0,
            rng=IdentityRandom()
        )
        await self.quiz_round.start()
        await wait_for_state(self.quiz_round, SessionState.ACTIVE)
        self.owner_id = 67890

    async def asyncTearDown(self):
        await self.quiz_round.abandon()

    async def test_view_buttons(self):
        """Test the first page shows four answers, navigation and submit."""
        view = QuizView(self.quiz_round, self.owner_id)
        labels = [item.label for item in view.children]

        self.assertEqual(labels[:4], ["London", "Berlin", "Madrid", "Paris"])
        self.assertEqual(labels[4:], ["◀ Previous", "Next ▶", "Submit"])
        self.assertTrue(view.children[4].disabled)
        self.assertFalse(view.children[5].disabled)

    async def test_question_embed(self):
        snapshot = self.quiz_round.snapshot()
        embed = build_question_embed(snapshot, 1)

        self.assertEqual(embed.title, "🎯 Question 2/3")
        self.assertEqual(embed.description, 'What is the "Answer to the Ultimate Question"?')
        self.assertIn("Answered 0/3", embed.footer.text)

    async def test_turn_page(self):
        view = QuizView(self.quiz_round, self.owner_id)
        interaction = MockDiscordObjects.create_mock_interaction(user_id=self.owner_id)

        await view.turn_page(interaction, 1)

        self.assertEqual(view.page, 1)
        interaction.response.edit_message.assert_awaited_once()
        embed = interaction.response.edit_message.call_args.kwargs['embed']
        self.assertEqual(embed.title, "🎯 Question 2/3")

    async def test_page_is_clamped(self):
        view = QuizView(self.quiz_round, self.owner_id)
        view.page = 10
        view.render()
        self.assertEqual(view.page, 2)

    async def test_choose_queues_selection(self):
        view = QuizView(self.quiz_round, self.owner_id)
        interaction = MockDiscordObjects.create_mock_interaction(user_id=self.owner_id)
        question = self.quiz_round.snapshot().questions[0]

        await view.choose(interaction, question.id, "Paris")
        await self.quiz_round.flush()

        interaction.response.defer.assert_awaited_once()
        self.assertEqual(self.quiz_round.snapshot().selections, {question.id: "Paris"})

    async def test_submit_button_submits(self):
        view = QuizView(self.quiz_round, self.owner_id)
        interaction = MockDiscordObjects.create_mock_interaction(user_id=self.owner_id)

        await view.submit(interaction)
        snapshot = await self.quiz_round.wait_finished(timeout=2.0)

        self.assertEqual(snapshot.state, SessionState.SUBMITTED)

    async def test_interaction_check_owner_only(self):
        """Test other users get an ephemeral refusal."""
        view = QuizView(self.quiz_round, self.owner_id)
        owner = MockDiscordObjects.create_mock_interaction(user_id=self.owner_id)
        stranger = MockDiscordObjects.create_mock_interaction(user_id=1)

        self.assertTrue(await view.interaction_check(owner))
        self.assertFalse(await view.interaction_check(stranger))
        self.assertTrue(stranger.response.send_message.call_args.kwargs['ephemeral'])

    async def test_results_embed(self):
        """Test the breakdown marks right, wrong and unanswered questions."""
        q1, q2, q3 = self.quiz_round.snapshot().questions
        self.quiz_round.select(q1.id, "Paris")
        self.quiz_round.select(q3.id, "Green")
        self.quiz_round.submit()
        await self.quiz_round.wait_finished(timeout=2.0)

        embed = build_results_embed(self.quiz_round.result)

        self.assertIn("Score: 1/3", embed.description)
        self.assertNotIn("Time's up", embed.description)
        self.assertTrue(embed.fields[0].value.startswith("✅ Paris"))
        self.assertTrue(embed.fields[1].value.startswith("➖ No answer"))
        self.assertTrue(embed.fields[2].value.startswith("❌ Green"))
        self.assertIn("✅ Blue", embed.fields[2].value)


class TestRoundPresenter(unittest.IsolatedAsyncioTestCase):
    """Test cases for keeping the round message in sync."""

    async def asyncSetUp(self):
        self.channel = MockDiscordObjects.create_mock_channel()
        self.message = self.channel.send.return_value
        self.presenter = RoundPresenter(self.channel, 67890)
        self.api = FakeTriviaAPI()
        self.rounds = []

    async def asyncTearDown(self):
        for quiz_round in self.rounds:
            await quiz_round.abandon()

    def make_round(self, time_limit: int = 60, tick_period: float = 10.0) -> QuizRound:
        quiz_round = QuizRound(
            TestFixtures.create_quiz_config(time_limit_seconds=time_limit),
            self.api,
            listener=self.presenter,
            tick_period=tick_period,
            rng=IdentityRandom()
        )
        self.rounds.append(quiz_round)
        return quiz_round

    async def test_questions_message_sent(self):
        quiz_round = self.make_round()
        await quiz_round.start()
        await wait_for_state(quiz_round, SessionState.ACTIVE)
        await quiz_round.flush()

        self.channel.send.assert_awaited_once()
        kwargs = self.channel.send.call_args.kwargs
        self.assertEqual(kwargs['embed'].title, "🎯 Question 1/3")
        self.assertIsInstance(kwargs['view'], QuizView)
        self.assertIs(self.presenter.message, self.message)

    async def test_selection_edits_message(self):
        quiz_round = self.make_round()
        await quiz_round.start()
        await wait_for_state(quiz_round, SessionState.ACTIVE)
        question = quiz_round.snapshot().questions[0]

        quiz_round.select(question.id, "Paris")
        await quiz_round.flush()

        self.message.edit.assert_awaited()
        embed = self.message.edit.call_args.kwargs['embed']
        self.assertEqual(embed.fields[3].value, "Paris")

    async def test_submission_replaces_view_with_results(self):
        quiz_round = self.make_round()
        await quiz_round.start()
        await wait_for_state(quiz_round, SessionState.ACTIVE)

        quiz_round.submit()
        await quiz_round.wait_finished(timeout=2.0)

        kwargs = self.message.edit.call_args.kwargs
        self.assertIsNone(kwargs['view'])
        self.assertEqual(kwargs['embed'].title, "🎉 Quiz Complete!")
        self.assertTrue(self.presenter.view.is_finished())

    async def test_expiry_results_mention_timeout(self):
        quiz_round = self.make_round(time_limit=2, tick_period=0.01)
        await quiz_round.start()
        await quiz_round.wait_finished(timeout=2.0)

        self.assertEqual(quiz_round.result.trigger, SubmitTrigger.EXPIRED)
        embed = self.message.edit.call_args.kwargs['embed']
        self.assertIn("Time's up", embed.description)

    async def test_fetch_failure_message(self):
        self.api.error = NetworkError("offline")
        quiz_round = self.make_round()
        await quiz_round.start()
        await quiz_round.wait_finished(timeout=2.0)

        embed = self.channel.send.call_args.kwargs['embed']
        self.assertEqual(embed.title, "❌ Could Not Load Questions")
        self.assertEqual(embed.description, NetworkError.user_message)

    async def test_discord_errors_are_logged_not_raised(self):
        """Test a failed message edit does not break the round."""
        self.message.edit.side_effect = discord.HTTPException(Mock(status=500, reason="err"), "boom")
        quiz_round = self.make_round()
        await quiz_round.start()
        await wait_for_state(quiz_round, SessionState.ACTIVE)

        quiz_round.submit()
        snapshot = await quiz_round.wait_finished(timeout=2.0)
        self.assertEqual(snapshot.state, SessionState.SUBMITTED)


class TestDiscordBotIntegration(unittest.IsolatedAsyncioTestCase):
    """Test Discord bot command handlers with mocked Discord API."""

    async def asyncSetUp(self):
        self.bot = TriviaBot({'bot': {'command_prefix': '?'}})
        self.bot.config_manager = ConfigManager()
        self.api = FakeTriviaAPI()
        self.api.fetch_categories = AsyncMock(return_value=[Category(9, "General Knowledge")])
        self.bot.trivia_api = self.api
        self.bot.quiz_controller = QuizController(self.api, tick_period=10.0, rng=IdentityRandom())
        self.interaction = MockDiscordObjects.create_mock_interaction()

    async def asyncTearDown(self):
        await self.bot.quiz_controller.shutdown()

    def sent_embed(self, interaction=None) -> discord.Embed:
        interaction = interaction or self.interaction
        return interaction.response.send_message.call_args.kwargs['embed']

    async def test_bot_initialization(self):
        self.assertIsInstance(self.bot, commands.Bot)
        self.assertEqual(self.bot.command_prefix, '?')

    async def test_setup_hook_registers_commands(self):
        """Test startup builds the components and slash commands."""
        bot = TriviaBot({'quiz': {'default_question_count': 7}, 'timer': {'tick_period': 0.5}})
        await bot.setup_hook()
        try:
            names = {command.name for command in bot.tree.get_commands()}
            self.assertTrue({"help", "trivia", "submit", "quit", "status", "settings", "categories"} <= names)
            self.assertTrue({"set_questions", "set_timer", "set_category", "set_difficulty", "set_type"} <= names)
            self.assertEqual(bot.config_manager.get_quiz_settings().question_count, 7)
            self.assertEqual(bot.quiz_controller.tick_period, 0.5)
        finally:
            await bot.trivia_api.close()

    async def test_help_command(self):
        await self.bot.handle_help(self.interaction)
        self.assertEqual(self.sent_embed().title, "🧠 Trivia Bot Help")

    async def test_trivia_command_starts_round(self):
        """Test /trivia acknowledges with a loading embed and starts the round."""
        await self.bot.handle_trivia(self.interaction, question_count=3, timer_duration=30)

        embed = self.sent_embed()
        self.assertEqual(embed.title, "⏳ Loading questions...")
        self.assertIn("Timer: 30 seconds", embed.fields[0].value)

        quiz_round = self.bot.quiz_controller.get_round(self.interaction.channel_id)
        self.assertIsNotNone(quiz_round)
        self.assertIsInstance(quiz_round.listener, RoundPresenter)
        await wait_for_state(quiz_round, SessionState.ACTIVE)
        self.assertEqual(quiz_round.snapshot().time_remaining, 30)

    async def test_trivia_command_invalid_options(self):
        await self.bot.handle_trivia(self.interaction, timer_duration=5)

        embed = self.sent_embed()
        self.assertEqual(embed.title, "❌ Invalid Options")
        self.assertIsNone(self.bot.quiz_controller.get_round(self.interaction.channel_id))

    async def test_trivia_command_conflict(self):
        await self.bot.handle_trivia(self.interaction)
        second = MockDiscordObjects.create_mock_interaction(user_id=2)

        await self.bot.handle_trivia(second)

        self.assertEqual(self.sent_embed(second).title, "❌ Round Not Started")

    async def test_submit_command(self):
        await self.bot.handle_trivia(self.interaction)
        quiz_round = self.bot.quiz_controller.get_round(self.interaction.channel_id)
        await wait_for_state(quiz_round, SessionState.ACTIVE)

        submit = MockDiscordObjects.create_mock_interaction()
        await self.bot.handle_submit(submit)
        await quiz_round.wait_finished(timeout=2.0)

        self.assertEqual(self.sent_embed(submit).title, "📝 Submitted")
        self.assertEqual(quiz_round.state, SessionState.SUBMITTED)

    async def test_submit_without_round(self):
        await self.bot.handle_submit(self.interaction)
        self.assertEqual(self.sent_embed().title, "⚠️ Cannot Submit")

    async def test_quit_command(self):
        await self.bot.handle_trivia(self.interaction)
        quit_interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_quit(quit_interaction)

        quit_interaction.response.send_message.assert_awaited_once_with("🛑 Trivia round stopped.")
        self.assertIsNone(self.bot.quiz_controller.get_round(self.interaction.channel_id))

    async def test_status_command(self):
        await self.bot.handle_status(self.interaction)
        self.assertIn("No trivia round", self.sent_embed().description)

    async def test_settings_command(self):
        await self.bot.handle_settings(self.interaction)
        self.assertIn("Questions: 5", self.sent_embed().description)

    async def test_categories_command(self):
        self.interaction.response.is_done.return_value = True

        await self.bot.handle_categories(self.interaction)

        self.interaction.response.defer.assert_awaited_once_with(ephemeral=True)
        embed = self.interaction.followup.send.call_args.kwargs['embed']
        self.assertIn("`9` General Knowledge", embed.description)

    async def test_categories_fall_back_to_defaults(self):
        self.api.fetch_categories = AsyncMock(side_effect=NetworkError("offline"))
        self.interaction.response.is_done.return_value = True

        await self.bot.handle_categories(self.interaction)

        embed = self.interaction.followup.send.call_args.kwargs['embed']
        self.assertIn("`21` Sports", embed.description)

    async def test_setting_result_responses(self):
        await self.bot.send_setting_result(self.interaction, self.bot.config_manager.set_timer_duration(90))
        self.assertEqual(self.sent_embed().title, "✅ Settings Updated")

        failing = MockDiscordObjects.create_mock_interaction()
        await self.bot.send_setting_result(failing, self.bot.config_manager.set_timer_duration(1))
        self.assertEqual(self.sent_embed(failing).title, "❌ Invalid Setting")

    async def test_error_response_after_defer_uses_followup(self):
        self.interaction.response.is_done.return_value = True
        await self.bot.send_error_response(self.interaction, "boom")
        self.interaction.followup.send.assert_awaited_once()
        self.interaction.response.send_message.assert_not_awaited()

    async def test_close_cleans_up(self):
        """Test closing the bot abandons rounds and closes the HTTP client."""
        await self.bot.handle_trivia(self.interaction)
        quiz_round = self.bot.quiz_controller.get_round(self.interaction.channel_id)
        self.api.close = AsyncMock()

        with patch.object(commands.Bot, 'close', new_callable=AsyncMock) as parent_close:
            await self.bot.close()

        self.assertTrue(quiz_round.is_abandoned)
        self.api.close.assert_awaited_once()
        parent_close.assert_awaited_once()


if __name__ == '__main__':
    unittest.main()
