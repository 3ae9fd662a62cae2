"""
Discord presentation for trivia rounds: embeds, the interactive question
view, and the presenter that keeps a round's message up to date.
"""
import logging
from typing import Optional

import discord

from .exceptions import FetchFailure
from .models import QuizConfig, RoundResult, SessionSnapshot, SubmitTrigger
from .quiz_round import QuizRound, RoundListener

logger = logging.getLogger(__name__)

COLOR_ACTIVE = 0x00ff00
COLOR_LOADING = 0x6699ff
COLOR_WARNING = 0xffaa00
COLOR_ERROR = 0xff0000

BUTTON_LABEL_LIMIT = 80
FIELD_NAME_LIMIT = 256
FIELD_VALUE_LIMIT = 1024
EMBED_TOTAL_LIMIT = 6000


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def should_refresh_timer(remaining: int) -> bool:
    """Timer edits are throttled to every 10 seconds and the final 5."""
    return remaining % 10 == 0 or remaining <= 5


def build_loading_embed(config: QuizConfig, category_name: str) -> discord.Embed:
    """Embed shown while questions are being fetched."""
    embed = discord.Embed(
        title="⏳ Loading questions...",
        description="Fetching a fresh batch of trivia.",
        color=COLOR_LOADING
    )
    embed.add_field(
        name="📊 Round Details",
        value=(
            f"Questions: {config.question_count}\n"
            f"Category: {category_name}\n"
            f"Difficulty: {config.difficulty.value if config.difficulty else 'any'}\n"
            f"Type: {config.question_type.value if config.question_type else 'any'}\n"
            f"Timer: {config.time_limit_seconds} seconds"
        ),
        inline=False
    )
    return embed


def build_question_embed(snapshot: SessionSnapshot, page: int) -> discord.Embed:
    """Embed for the question on ``page`` of an active round."""
    question = snapshot.questions[page]
    embed = discord.Embed(
        title=f"🎯 Question {page + 1}/{snapshot.total_questions}",
        description=question.prompt,
        color=COLOR_ACTIVE if snapshot.time_remaining > 10 else COLOR_WARNING
    )
    embed.add_field(name="📚 Category", value=question.category, inline=True)
    embed.add_field(name="📈 Difficulty", value=question.difficulty.capitalize(), inline=True)
    embed.add_field(name="⏱️ Time Remaining", value=f"{snapshot.time_remaining} seconds", inline=True)

    chosen = snapshot.selections.get(question.id)
    embed.add_field(
        name="Your Answer",
        value=truncate(chosen, FIELD_VALUE_LIMIT) if chosen is not None else "Not answered yet",
        inline=False
    )
    embed.set_footer(
        text=f"Answered {snapshot.answered_count}/{snapshot.total_questions} • Submit when you're done"
    )
    return embed


def build_results_embed(result: RoundResult) -> discord.Embed:
    """Embed with the final score and a per-question breakdown."""
    description = f"**Score: {result.score}/{result.total}**"
    if result.trigger is SubmitTrigger.EXPIRED:
        description = "⏰ Time's up! Your answers were submitted automatically.\n" + description

    title = "🎉 Quiz Complete!"
    footer = "Use /trivia to play again"
    embed = discord.Embed(title=title, description=description, color=COLOR_ACTIVE)

    # Fields share what is left of the embed total
    remaining = EMBED_TOTAL_LIMIT - len(title) - len(description) - len(footer)
    per_field = remaining // max(1, len(result.reviews))
    name_limit = max(1, min(FIELD_NAME_LIMIT, per_field // 2))
    value_limit = max(1, min(FIELD_VALUE_LIMIT, per_field - name_limit))
    answer_limit = max(1, (value_limit - 5) // 2)

    for index, review in enumerate(result.reviews, start=1):
        correct = f"✅ {truncate(review.question.correct_answer, answer_limit)}"
        if review.is_correct:
            value = correct
        elif review.chosen_answer is None:
            value = f"➖ No answer\n{correct}"
        else:
            value = f"❌ {truncate(review.chosen_answer, answer_limit)}\n{correct}"
        embed.add_field(
            name=truncate(f"{index}. {review.question.prompt}", name_limit),
            value=truncate(value, value_limit),
            inline=False
        )
    embed.set_footer(text=footer)
    return embed


def build_fetch_error_embed(error: FetchFailure) -> discord.Embed:
    """Embed shown when questions could not be loaded."""
    embed = discord.Embed(
        title="❌ Could Not Load Questions",
        description=getattr(error, 'user_message', FetchFailure.user_message),
        color=COLOR_ERROR
    )
    embed.add_field(name="Details", value=truncate(str(error) or type(error).__name__, FIELD_VALUE_LIMIT), inline=False)
    embed.set_footer(text="Use /trivia to try again")
    return embed


class AnswerButton(discord.ui.Button):
    """Button choosing one answer for the question on the current page."""

    def __init__(self, question_id: str, answer: str, selected: bool, row: int):
        super().__init__(
            label=truncate(answer, BUTTON_LABEL_LIMIT),
            style=discord.ButtonStyle.primary if selected else discord.ButtonStyle.secondary,
            row=row
        )
        self.question_id = question_id
        self.answer = answer

    async def callback(self, interaction: discord.Interaction):
        await self.view.choose(interaction, self.question_id, self.answer)


class NavigationButton(discord.ui.Button):
    """Previous / next page button."""

    def __init__(self, label: str, step: int, disabled: bool):
        super().__init__(label=label, style=discord.ButtonStyle.secondary, row=2, disabled=disabled)
        self.step = step

    async def callback(self, interaction: discord.Interaction):
        await self.view.turn_page(interaction, self.step)


class SubmitButton(discord.ui.Button):
    """Submits the round."""

    def __init__(self):
        super().__init__(label="Submit", style=discord.ButtonStyle.success, row=2)

    async def callback(self, interaction: discord.Interaction):
        await self.view.submit(interaction)


class QuizView(discord.ui.View):
    """Paged question view usable only by the round owner."""

    def __init__(self, quiz_round: QuizRound, owner_id: int):
        super().__init__(timeout=None)
        self.quiz_round = quiz_round
        self.owner_id = owner_id
        self.page = 0
        self.rebuild(quiz_round.snapshot())

    def rebuild(self, snapshot: SessionSnapshot) -> None:
        """Recreate the buttons for the current page."""
        self.clear_items()
        if not snapshot.questions:
            return
        self.page = max(0, min(self.page, snapshot.total_questions - 1))
        question = snapshot.questions[self.page]
        chosen = snapshot.selections.get(question.id)
        for index, answer in enumerate(question.answer_options):
            self.add_item(AnswerButton(question.id, answer, answer == chosen, row=index // 4))
        self.add_item(NavigationButton("◀ Previous", -1, disabled=self.page == 0))
        self.add_item(NavigationButton("Next ▶", 1, disabled=self.page >= snapshot.total_questions - 1))
        self.add_item(SubmitButton())

    def render(self, snapshot: Optional[SessionSnapshot] = None) -> discord.Embed:
        snapshot = snapshot or self.quiz_round.snapshot()
        self.rebuild(snapshot)
        return build_question_embed(snapshot, self.page)

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == self.owner_id:
            return True
        await interaction.response.send_message("This isn't your trivia round. Start your own with /trivia.", ephemeral=True)
        return False

    async def choose(self, interaction: discord.Interaction, question_id: str, answer: str) -> None:
        # The presenter re-renders once the selection is applied
        await interaction.response.defer()
        self.quiz_round.select(question_id, answer)

    async def turn_page(self, interaction: discord.Interaction, step: int) -> None:
        self.page += step
        await interaction.response.edit_message(embed=self.render(), view=self)

    async def submit(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer()
        self.quiz_round.submit()


class RoundPresenter(RoundListener):
    """Keeps one Discord message in sync with a round."""

    def __init__(self, channel: discord.abc.Messageable, owner_id: int):
        self.channel = channel
        self.owner_id = owner_id
        self.view: Optional[QuizView] = None
        self.message: Optional[discord.Message] = None

    async def _edit(self, **kwargs) -> None:
        if self.message is None:
            return
        try:
            await self.message.edit(**kwargs)
        except discord.HTTPException as e:
            logger.error(f"Failed to update trivia message: {e}")

    async def on_questions_applied(self, quiz_round: QuizRound, snapshot: SessionSnapshot) -> None:
        self.view = QuizView(quiz_round, self.owner_id)
        try:
            self.message = await self.channel.send(embed=self.view.render(snapshot), view=self.view)
        except discord.HTTPException as e:
            logger.error(f"Failed to send trivia question message: {e}")

    async def on_session_updated(self, quiz_round: QuizRound, snapshot: SessionSnapshot, reason: str) -> None:
        if self.view is None:
            return
        if reason == "tick" and not should_refresh_timer(snapshot.time_remaining):
            return
        await self._edit(embed=self.view.render(snapshot), view=self.view)

    async def on_submitted(self, quiz_round: QuizRound, result: RoundResult) -> None:
        if self.view is not None:
            self.view.stop()
        embed = build_results_embed(result)
        if self.message is not None:
            await self._edit(embed=embed, view=None)
            return
        try:
            await self.channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send trivia results: {e}")

    async def on_fetch_failed(self, quiz_round: QuizRound, error: FetchFailure) -> None:
        try:
            await self.channel.send(embed=build_fetch_error_embed(error))
        except discord.HTTPException as e:
            logger.error(f"Failed to send fetch error message: {e}")
