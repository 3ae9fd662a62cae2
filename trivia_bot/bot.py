import discord
from discord import app_commands
from discord.ext import commands
import logging
import asyncio
from typing import Optional
import os

from .config_manager import ConfigManager
from .exceptions import FetchFailure
from .quiz_controller import QuizController
from .trivia_api import DEFAULT_CATEGORIES, TriviaAPI
from .views import RoundPresenter, build_loading_embed

logger = logging.getLogger(__name__)

CATEGORY_CHOICES = [app_commands.Choice(name=category.name, value=category.id) for category in DEFAULT_CATEGORIES]
DIFFICULTY_CHOICES = [
    app_commands.Choice(name="Easy", value="easy"),
    app_commands.Choice(name="Medium", value="medium"),
    app_commands.Choice(name="Hard", value="hard"),
]
TYPE_CHOICES = [
    app_commands.Choice(name="Multiple Choice", value="multiple"),
    app_commands.Choice(name="True / False", value="boolean"),
]
TIMER_CHOICES = [
    app_commands.Choice(name="30 seconds", value=30),
    app_commands.Choice(name="60 seconds", value=60),
    app_commands.Choice(name="90 seconds", value=90),
]


def _choice_value(choice):
    return choice.value if choice is not None else None


class TriviaBot(commands.Bot):
    """Discord bot for single-player trivia rounds"""

    def __init__(self, config=None):
        # Set up intents - minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        # Store configuration
        self.app_config = config or {}

        # Initialize core components
        self.config_manager: Optional[ConfigManager] = None
        self.trivia_api: Optional[TriviaAPI] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.apply_configuration()

            self.trivia_api = TriviaAPI(
                base_url=self.config_manager.api_base_url,
                request_timeout=self.config_manager.request_timeout
            )
            self.quiz_controller = QuizController(
                self.trivia_api,
                tick_period=self.config_manager.tick_period
            )

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def apply_configuration(self):
        """Apply settings from configuration file to the config manager."""
        try:
            errors = self.config_manager.apply_config_dict(self.app_config)
            for error in errors:
                logger.warning(f"Ignoring invalid configuration entry: {error}")
        except Exception as e:
            logger.error(f"Error applying configuration: {e}")
            # Don't raise - use defaults if config fails

    async def setup_commands(self):
        """Register all slash commands"""
        try:
            @self.tree.command(name="help", description="Display available commands and their descriptions")
            async def help_command(interaction: discord.Interaction):
                await self.handle_help(interaction)

            @self.tree.command(name="trivia", description="Start a trivia round")
            @app_commands.describe(
                questions="Number of questions (1-20)",
                category="Question category",
                difficulty="Question difficulty",
                question_type="Multiple choice or true/false",
                timer="Time limit for the whole round"
            )
            @app_commands.choices(
                category=CATEGORY_CHOICES,
                difficulty=DIFFICULTY_CHOICES,
                question_type=TYPE_CHOICES,
                timer=TIMER_CHOICES
            )
            async def trivia_command(
                interaction: discord.Interaction,
                questions: Optional[app_commands.Range[int, 1, 20]] = None,
                category: Optional[app_commands.Choice[int]] = None,
                difficulty: Optional[app_commands.Choice[str]] = None,
                question_type: Optional[app_commands.Choice[str]] = None,
                timer: Optional[app_commands.Choice[int]] = None
            ):
                await self.handle_trivia(
                    interaction,
                    question_count=questions,
                    category_id=_choice_value(category),
                    difficulty=_choice_value(difficulty),
                    question_type=_choice_value(question_type),
                    timer_duration=_choice_value(timer)
                )

            @self.tree.command(name="submit", description="Submit your answers for grading")
            async def submit_command(interaction: discord.Interaction):
                await self.handle_submit(interaction)

            @self.tree.command(name="quit", description="Stop your trivia round and discard it")
            async def quit_command(interaction: discord.Interaction):
                await self.handle_quit(interaction)

            @self.tree.command(name="status", description="Show the trivia round status in this channel")
            async def status_command(interaction: discord.Interaction):
                await self.handle_status(interaction)

            @self.tree.command(name="settings", description="Show the default trivia settings")
            async def settings_command(interaction: discord.Interaction):
                await self.handle_settings(interaction)

            @self.tree.command(name="categories", description="List trivia categories")
            async def categories_command(interaction: discord.Interaction):
                await self.handle_categories(interaction)

            @self.tree.command(name="set_questions", description="Set the default number of questions (1-20)")
            async def set_questions_command(interaction: discord.Interaction, number: int):
                await self.send_setting_result(interaction, self.config_manager.set_question_count(number))

            @self.tree.command(name="set_timer", description="Set the default round time limit (10-300 seconds)")
            async def set_timer_command(interaction: discord.Interaction, seconds: int):
                await self.send_setting_result(interaction, self.config_manager.set_timer_duration(seconds))

            @self.tree.command(name="set_category", description="Set the default category id (omit for any)")
            async def set_category_command(interaction: discord.Interaction, category_id: Optional[int] = None):
                await self.send_setting_result(interaction, self.config_manager.set_category(category_id))

            @self.tree.command(name="set_difficulty", description="Set the default difficulty (omit for any)")
            @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
            async def set_difficulty_command(
                interaction: discord.Interaction,
                difficulty: Optional[app_commands.Choice[str]] = None
            ):
                await self.send_setting_result(
                    interaction, self.config_manager.set_difficulty(_choice_value(difficulty))
                )

            @self.tree.command(name="set_type", description="Set the default question type (omit for any)")
            @app_commands.choices(question_type=TYPE_CHOICES)
            async def set_type_command(
                interaction: discord.Interaction,
                question_type: Optional[app_commands.Choice[str]] = None
            ):
                await self.send_setting_result(
                    interaction, self.config_manager.set_question_type(_choice_value(question_type))
                )

            logger.info("Slash commands registered successfully")

        except Exception as e:
            logger.error(f"Error setting up commands: {e}")
            raise

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        try:
            logger.info(f"Bot is ready! Logged in as {self.user}")
            logger.info(f"Bot is in {len(self.guilds)} guilds")

            try:
                synced = await self.tree.sync()
                logger.info(f"Synced {len(synced)} slash commands")
            except Exception as e:
                logger.error(f"Failed to sync slash commands: {e}")

        except Exception as e:
            logger.error(f"Error in on_ready event: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        """Abandon running rounds and close the HTTP session before disconnecting."""
        try:
            if self.quiz_controller:
                await self.quiz_controller.shutdown()
            if self.trivia_api:
                await self.trivia_api.close()
        except Exception as e:
            logger.error(f"Error during shutdown cleanup: {e}")
        await super().close()

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            embed = discord.Embed(
                title="🧠 Trivia Bot Help",
                description="Answer a batch of trivia questions before the clock runs out.",
                color=0x6699ff
            )
            embed.add_field(
                name="🎮 Playing",
                value=(
                    "`/trivia` - Start a round (options override the defaults)\n"
                    "`/submit` - Grade your answers now\n"
                    "`/quit` - Stop and discard your round\n"
                    "`/status` - Show the round in this channel"
                ),
                inline=False
            )
            embed.add_field(
                name="⚙️ Defaults",
                value=(
                    "`/settings` - Show the defaults\n"
                    "`/set_questions` `/set_timer` `/set_category` `/set_difficulty` `/set_type`\n"
                    "`/categories` - List category ids"
                ),
                inline=False
            )
            embed.set_footer(text="When time runs out your answers are submitted automatically")
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            logger.error(f"Failed to send help message: {e}")
        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help information", "❌ Help Error")

    async def handle_trivia(
        self,
        interaction: discord.Interaction,
        question_count: Optional[int] = None,
        category_id: Optional[int] = None,
        difficulty: Optional[str] = None,
        question_type: Optional[str] = None,
        timer_duration: Optional[int] = None
    ):
        """Handle /trivia command: produce the round options and start the round"""
        try:
            options = self.config_manager.build_quiz_config(
                question_count=question_count,
                category_id=category_id,
                difficulty=difficulty,
                question_type=question_type,
                timer_duration=timer_duration
            )
            if not options['success']:
                await self.send_error_response(interaction, options['user_message'], "❌ Invalid Options")
                return

            config = options['config']
            presenter = RoundPresenter(interaction.channel, interaction.user.id)
            result = await self.quiz_controller.start_round(
                interaction.channel_id,
                interaction.user.id,
                config,
                presenter
            )
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Round Not Started")
                return

            category_name = self.config_manager.get_category_name(config.category_id)
            await interaction.response.send_message(embed=build_loading_embed(config, category_name))

        except discord.HTTPException as e:
            logger.error(f"Discord error in trivia command: {e}")
        except Exception as e:
            logger.error(f"Error in trivia command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to start a trivia round", "❌ Trivia Error")

    async def handle_submit(self, interaction: discord.Interaction):
        """Handle /submit command"""
        try:
            result = self.quiz_controller.submit_round(interaction.channel_id, interaction.user.id)
            if result['success']:
                await self.send_info_response(interaction, result['user_message'], "📝 Submitted")
            else:
                await self.send_warning_response(interaction, result['user_message'], "⚠️ Cannot Submit")
        except Exception as e:
            logger.error(f"Error in submit command: {e}")
            await self.send_error_response(interaction, "Failed to submit the round", "❌ Submit Error")

    async def handle_quit(self, interaction: discord.Interaction):
        """Handle /quit command"""
        try:
            result = await self.quiz_controller.abandon_round(interaction.channel_id, interaction.user.id)
            if result['success']:
                await interaction.response.send_message(result['user_message'])
            else:
                await self.send_warning_response(interaction, result['user_message'], "⚠️ Cannot Quit")
        except Exception as e:
            logger.error(f"Error in quit command: {e}")
            await self.send_error_response(interaction, "Failed to stop the round", "❌ Quit Error")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            summary = self.quiz_controller.get_round_status_summary(interaction.channel_id)
            await self.send_info_response(interaction, summary, "📊 Trivia Status")
        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get round status", "❌ Status Error")

    async def handle_settings(self, interaction: discord.Interaction):
        """Handle /settings command"""
        try:
            await self.send_info_response(interaction, self.config_manager.get_settings_summary(), "⚙️ Settings")
        except Exception as e:
            logger.error(f"Error in settings command: {e}")
            await self.send_error_response(interaction, "Failed to show settings", "❌ Settings Error")

    async def handle_categories(self, interaction: discord.Interaction):
        """Handle /categories command, falling back to the built-in list"""
        try:
            await interaction.response.defer(ephemeral=True)
            try:
                categories = await self.trivia_api.fetch_categories()
            except FetchFailure as e:
                logger.warning(f"Category fetch failed, using defaults: {e}")
                categories = []
            categories = categories or DEFAULT_CATEGORIES

            lines = [f"`{category.id}` {category.name}" for category in categories]
            await self.send_info_response(interaction, "\n".join(lines)[:4000], "📚 Categories")
        except Exception as e:
            logger.error(f"Error in categories command: {e}")
            await self.send_error_response(interaction, "Failed to list categories", "❌ Categories Error")

    async def send_setting_result(self, interaction: discord.Interaction, result: dict):
        """Report the outcome of a settings change"""
        if result.get('success'):
            await self.send_info_response(interaction, result['user_message'], "✅ Settings Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )
            embed.set_footer(text="If this error persists, try using /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0x6699ff
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xffaa00
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    # Fall back to environment variable if no token provided
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = TriviaBot(config)

    try:
        logger.info("Starting Trivia Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()


if __name__ == "__main__":
    asyncio.run(run_bot())
