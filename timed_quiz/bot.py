import asyncio
import logging
import os
from typing import Dict, List, Optional

import discord
from discord.ext import commands

from .config_manager import ConfigManager
from .data_manager import DataManager
from .history_store import HistoryStore, HistoryStoreError, JsonHistoryStore
from .models import AttemptRecord, SessionState
from .quiz_controller import QuizController

logger = logging.getLogger(__name__)

MAX_HISTORY_LINES = 10


def _timer_color(remaining: int) -> int:
    return 0x00ff00 if remaining > 10 else 0xff6600 if remaining > 5 else 0xff0000


def _format_attempts(attempts: List[AttemptRecord]) -> str:
    if not attempts:
        return "No past attempts yet."
    newest_first = sorted(attempts, key=lambda record: record.timestamp, reverse=True)
    lines = [
        f"{record.timestamp:%Y-%m-%d %H:%M} - Score: {record.final_score}/{record.max_score}"
        for record in newest_first[:MAX_HISTORY_LINES]
    ]
    if len(newest_first) > MAX_HISTORY_LINES:
        lines.append(f"... and {len(newest_first) - MAX_HISTORY_LINES} more")
    return "\n".join(lines)


def build_question_embed(controller: QuizController) -> discord.Embed:
    """Render the current question, countdown and lock-in feedback."""
    state = controller.state
    question = controller.current_question
    progress = controller.get_progress()

    embed = discord.Embed(
        title=f"🎯 Question {progress['current_question']}/{progress['total_questions']}",
        description=question.prompt,
        color=_timer_color(state.remaining_seconds)
    )

    if question.is_multiple_choice:
        embed.add_field(
            name="📋 Options",
            value="\n".join(f"{i + 1}. {option}" for i, option in enumerate(question.options)),
            inline=False
        )

    timer_emoji = "⏱️" if state.remaining_seconds > 5 else "🚨"
    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=f"{state.remaining_seconds} second{'s' if state.remaining_seconds != 1 else ''}",
        inline=True
    )
    embed.add_field(name="🏆 Score", value=str(state.total_score), inline=True)

    feedback = controller.answer_feedback()
    if feedback is not None:
        answer_text = ""
        if not question.is_multiple_choice:
            answer_text = f" (you answered `{state.typed_answer}`)"
        embed.add_field(
            name="Result",
            value=("✅ Correct!" if feedback else "❌ Wrong Answer") + answer_text,
            inline=False
        )
        embed.set_footer(text="Press Next to continue")
    elif question.is_multiple_choice:
        embed.set_footer(text="Pick an option before time runs out")
    else:
        embed.set_footer(text="Press 'Enter answer' to type a whole number")

    return embed


def build_result_embed(controller: QuizController) -> discord.Embed:
    """Render the final score together with past attempts."""
    summary = controller.summary()

    embed = discord.Embed(
        title="🎉 Quiz Complete!",
        description=summary.message,
        color=0x00ff00
    )
    embed.add_field(
        name="📊 Your Score",
        value=f"Your Score: {summary.score}\nTotal Score: {summary.max_score}\n({summary.percentage:.0f}%)",
        inline=False
    )
    embed.add_field(
        name="📜 Past Quiz Attempts",
        value=f"```\n{_format_attempts(controller.history)}\n```",
        inline=False
    )
    embed.set_footer(text="Press Try Again or use /reset to play again")
    return embed


class AnswerModal(discord.ui.Modal, title="Your answer"):
    """Text prompt for integer-answer questions."""

    answer = discord.ui.TextInput(label="Answer", placeholder="Enter your answer", max_length=20)

    def __init__(self, controller: QuizController, question_index: int):
        super().__init__()
        self.controller = controller
        self.question_index = question_index

    async def on_submit(self, interaction: discord.Interaction):
        # The countdown may have moved on while the modal was open
        if self.controller.state.current_index == self.question_index:
            self.controller.submit_typed_answer(self.answer.value)
        await interaction.response.defer()


class QuizView(discord.ui.View):
    """Buttons for the current question, built fresh after every transition."""

    def __init__(self, controller: QuizController):
        super().__init__(timeout=None)
        self.controller = controller
        state = controller.state
        self.question_index = state.current_index

        if state.is_complete:
            self._add_button("🔄 Try Again", discord.ButtonStyle.primary, self._on_reset)
            self._add_button(
                "🧹 Clear History",
                discord.ButtonStyle.danger,
                self._on_clear_history,
                disabled=not controller.history
            )
            return

        question = controller.current_question
        if question.is_multiple_choice:
            for index, option in enumerate(question.options):
                self._add_button(
                    option[:80],
                    self._option_style(state, index, question.correct_answer),
                    self._make_option_callback(index),
                    disabled=state.is_answer_locked,
                    row=min(index // 5, 3)
                )
        else:
            self._add_button(
                "✏️ Enter answer",
                discord.ButtonStyle.secondary,
                self._on_enter_answer,
                disabled=state.is_answer_locked,
                row=0
            )

        self._add_button(
            "Next ➡️",
            discord.ButtonStyle.primary,
            self._on_next,
            disabled=not state.is_answer_locked,
            row=4
        )

    @staticmethod
    def _option_style(state: SessionState, index: int, correct_answer: int) -> discord.ButtonStyle:
        if state.selected_option is None:
            return discord.ButtonStyle.secondary
        if index == correct_answer:
            return discord.ButtonStyle.success
        if index == state.selected_option:
            return discord.ButtonStyle.danger
        return discord.ButtonStyle.secondary

    def _add_button(self, label, style, callback, disabled=False, row=None) -> discord.ui.Button:
        button = discord.ui.Button(label=label, style=style, disabled=disabled, row=row)
        button.callback = callback
        self.add_item(button)
        return button

    def _make_option_callback(self, index: int):
        async def callback(interaction: discord.Interaction):
            if self._is_current():
                self.controller.select_option(index)
            await interaction.response.defer()
        return callback

    async def _on_enter_answer(self, interaction: discord.Interaction):
        await interaction.response.send_modal(AnswerModal(self.controller, self.question_index))

    def _is_current(self) -> bool:
        state = self.controller.state
        return not state.is_complete and state.current_index == self.question_index

    async def _on_next(self, interaction: discord.Interaction):
        if self._is_current():
            self.controller.advance()
        await interaction.response.defer()

    async def _on_reset(self, interaction: discord.Interaction):
        self.controller.reset()
        await interaction.response.defer()

    async def _on_clear_history(self, interaction: discord.Interaction):
        self.controller.clear_history()
        await interaction.response.defer()


class ChannelQuiz:
    """
    Keeps one channel's quiz message in sync with its controller.

    Renders are scheduled from controller listeners and coalesced so a burst
    of transitions produces a single message edit.
    """

    def __init__(self, controller: QuizController, channel: discord.abc.Messageable):
        self.controller = controller
        self.channel = channel
        self.message: Optional[discord.Message] = None
        self._render_task: Optional[asyncio.Task] = None
        self._rerender = False
        self._last_rendered: Optional[SessionState] = None

        controller.add_listener(self._on_state)
        controller.add_notice_listener(self._on_notice)

    def _on_state(self, state: SessionState) -> None:
        if self._is_countdown_only(state) and not self._worth_rendering(state.remaining_seconds):
            return
        self.schedule_render()

    def _is_countdown_only(self, state: SessionState) -> bool:
        previous = self._last_rendered
        return (
            previous is not None
            and previous is not state
            and previous.current_index == state.current_index
            and previous.is_answer_locked == state.is_answer_locked
            and previous.is_complete == state.is_complete
            and previous.total_score == state.total_score
        )

    @staticmethod
    def _worth_rendering(remaining: int) -> bool:
        # Same throttling as the timer tick log
        return remaining % 5 == 0 or remaining <= 5

    def schedule_render(self) -> None:
        if self._render_task is not None and not self._render_task.done():
            self._rerender = True
            return
        self._render_task = asyncio.get_running_loop().create_task(self._render_loop())

    async def _render_loop(self) -> None:
        while True:
            self._rerender = False
            await self.render()
            if not self._rerender:
                break

    async def render(self) -> None:
        """Send or edit the quiz message for the current state."""
        state = self.controller.state
        if state.is_complete:
            embed = build_result_embed(self.controller)
        else:
            embed = build_question_embed(self.controller)
        view = QuizView(self.controller)

        try:
            if self.message is None:
                self.message = await self.channel.send(embed=embed, view=view)
            else:
                await self.message.edit(embed=embed, view=view)
            self._last_rendered = state
        except discord.HTTPException as e:
            logger.error(f"Failed to render quiz '{self.controller.name}': {e}")

    def _on_notice(self, message: str) -> None:
        asyncio.get_running_loop().create_task(self._send_notice(message))

    async def _send_notice(self, message: str) -> None:
        embed = discord.Embed(title="⚠️ Notice", description=message, color=0xffaa00)
        try:
            await self.channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send notice for quiz '{self.controller.name}': {e}")

    def restart(self) -> None:
        """Reset the quiz and present it as a new message."""
        # A render still in flight would otherwise edit or send the old message
        if self._render_task is not None and not self._render_task.done():
            self._render_task.cancel()
        self._render_task = None
        self._rerender = False
        self._last_rendered = None
        self.message = None
        self.controller.reset()

    def close(self) -> None:
        self.controller.stop()
        if self._render_task is not None and not self._render_task.done():
            self._render_task.cancel()


class QuizBot(commands.Bot):
    """Discord bot presenting the timed quiz"""

    def __init__(self, config=None):
        # Minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.history_store: Optional[HistoryStore] = None
        self.sessions: Dict[int, ChannelQuiz] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = self._configure()

            self.data_manager = DataManager(self.config_manager.get_quiz_directory())
            self.data_manager.load_quiz_files()
            self.history_store = JsonHistoryStore(self.config_manager.get_history_file())

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def _configure(self) -> ConfigManager:
        """Build settings from config.json, falling back to defaults when they do not validate."""
        config_manager = ConfigManager()
        if self.app_config:
            for error in config_manager.apply_config(self.app_config):
                logger.warning(f"Ignored config entry: {error}")

        validation = config_manager.validate_settings()
        if not validation["valid"]:
            logger.error(f"Invalid quiz settings, using defaults: {'; '.join(validation['issues'])}")
            config_manager.reset_to_defaults()
        return config_manager

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="start", description="Start the quiz in this channel")
        async def start_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @self.tree.command(name="reset", description="Restart the quiz from the first question")
        async def reset_command(interaction: discord.Interaction):
            await self.handle_reset(interaction)

        @self.tree.command(name="history", description="Show past quiz attempts")
        async def history_command(interaction: discord.Interaction):
            await self.handle_history(interaction)

        @self.tree.command(name="clear_history", description="Delete all past quiz attempts")
        async def clear_history_command(interaction: discord.Interaction):
            await self.handle_clear_history(interaction)

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        for session in self.sessions.values():
            session.close()
        self.sessions.clear()
        await super().close()

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send error response to user with fallback handling"""
        try:
            embed = discord.Embed(title=title, description=message, color=0xff0000)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send error embed: {e}")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎯 Quiz Bot Commands",
                description="Answer each question before the timer runs out",
                color=0x00ff00
            )
            help_embed.add_field(
                name="🎮 Quiz Commands",
                value=(
                    "`/start` - Start the quiz in this channel\n"
                    "`/reset` - Restart the quiz from the first question\n"
                    "`/history` - Show past quiz attempts\n"
                    "`/clear_history` - Delete all past quiz attempts"
                ),
                inline=False
            )
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            await interaction.response.send_message(embed=help_embed)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help")

    def _pick_quiz(self) -> Optional[str]:
        available = self.data_manager.get_available_quizzes()
        if not available:
            return None
        preferred = self.config_manager.get_quiz_settings().quiz_name
        if preferred and self.data_manager.quiz_exists(preferred):
            return preferred
        return available[0]

    async def handle_start(self, interaction: discord.Interaction):
        """Handle /start command"""
        channel_id = interaction.channel_id
        quiz_name = self._pick_quiz()

        if quiz_name is None:
            summary = self.data_manager.get_loading_summary()
            details = "\n".join(summary['errors'][:3]) or "No quiz files found."
            await self.send_error_response(interaction, f"No quizzes available.\n```\n{details}\n```", "❌ No Quizzes Available")
            return

        previous = self.sessions.pop(channel_id, None)
        if previous is not None:
            previous.close()

        try:
            controller = QuizController(
                self.data_manager.get_quiz_questions(quiz_name),
                self.history_store,
                settings=self.config_manager.get_quiz_settings(),
                name=quiz_name
            )
        except ValueError as e:
            logger.error(f"Failed to create quiz for channel {channel_id}: {e}")
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Quiz Start Error")
            return

        session = ChannelQuiz(controller, interaction.channel)
        self.sessions[channel_id] = session

        embed = discord.Embed(title="🎯 Quiz Started!", description=f"**{quiz_name}**", color=0x00ff00)
        embed.add_field(
            name="📊 Quiz Details",
            value=(
                f"Questions: {controller.engine.question_count}\n"
                f"Timer: {controller.settings.timer_duration} seconds per question"
            ),
            inline=False
        )
        if self.data_manager.is_fallback_quiz_active():
            embed.add_field(
                name="⚠️ Using Fallback Quiz",
                value="This is a basic fallback quiz due to loading errors.",
                inline=False
            )

        try:
            await interaction.response.send_message(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to announce quiz start: {e}")

        controller.start()
        logger.info(f"Started quiz '{quiz_name}' in channel {channel_id}")

    async def handle_reset(self, interaction: discord.Interaction):
        """Handle /reset command"""
        session = self.sessions.get(interaction.channel_id)
        if session is None:
            await self.handle_start(interaction)
            return

        session.restart()
        try:
            await interaction.response.send_message("🔄 Quiz restarted from the first question.")
        except discord.HTTPException as e:
            logger.error(f"Failed to confirm reset: {e}")

    async def handle_history(self, interaction: discord.Interaction):
        """Handle /history command"""
        session = self.sessions.get(interaction.channel_id)
        try:
            attempts = self.history_store.list_all()
        except HistoryStoreError as e:
            logger.error(f"Failed to read history: {e}")
            await self.send_error_response(interaction, "Past attempts could not be loaded.", "⚠️ History Unavailable")
            return

        embed = discord.Embed(
            title="📜 Past Quiz Attempts",
            description=f"```\n{_format_attempts(attempts)}\n```",
            color=0x0099ff
        )
        if session is not None and not session.controller.state.is_complete:
            progress = session.controller.get_progress()
            embed.set_footer(text=f"Current quiz: question {progress['current_question']}/{progress['total_questions']}")

        try:
            await interaction.response.send_message(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send history: {e}")

    async def handle_clear_history(self, interaction: discord.Interaction):
        """Handle /clear_history command"""
        session = self.sessions.get(interaction.channel_id)
        if session is not None:
            session.controller.clear_history()
            if session.controller.history_error:
                await self.send_error_response(interaction, "Past attempts could not be cleared.", "⚠️ History Unavailable")
                return
        else:
            try:
                self.history_store.clear_all()
            except HistoryStoreError as e:
                logger.error(f"Failed to clear history: {e}")
                await self.send_error_response(interaction, "Past attempts could not be cleared.", "⚠️ History Unavailable")
                return

        try:
            await interaction.response.send_message("🧹 Past quiz attempts cleared.")
        except discord.HTTPException as e:
            logger.error(f"Failed to confirm history clear: {e}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Discord Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
