"""Telegram message router: access gate, commands and message handlers."""

import asyncio
import logging

from telegram import Bot, Update
from telegram.constants import ChatAction, ChatType, ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    ApplicationHandlerStop,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    TypeHandler,
    filters,
)

from cursor_bot.bot.delivery import build_keyboard, safe_send_message
from cursor_bot.core.config import Settings, settings as default_settings
from cursor_bot.services.agent import Agent
from cursor_bot.services.image_cache import ImageCache
from cursor_bot.services.integrations.cursor import CursorAPIError, CursorService
from cursor_bot.services.llm.base import BaseLLMProvider
from cursor_bot.services.media import convert_image
from cursor_bot.services.store import Store
from cursor_bot.services.tools.base import ToolContext
from cursor_bot.services.tools.message_tools import Button, ButtonMessage
from cursor_bot.services.tools.registry import create_default_registry
from cursor_bot.services.voice.base import BaseSTTProvider

logger = logging.getLogger(__name__)

TYPING_INTERVAL = 5  # seconds; Telegram drops the indicator after ~5s

ACCESS_DENIED = "❌ You don't have access to this bot. Contact the administrator."

START_TEXT = """🤖 *Cursor AI Task Bot*

I can help you manage Cursor background agents:

• Start AI coding tasks in allowed repositories
• Monitor task status and get notifications
• Send follow-up instructions and stop running tasks
• Attach screenshots: send photos first, then describe the task

Just send me a message describing what you want to do!

*Commands:*
/tasks - Show active tasks
/models - List available models
/clear - Clear conversation history
/help - Show this help

Let's start! 🚀"""

HELP_TEXT = """🤖 *Cursor AI Task Bot Help*

*Available Commands:*
/start - Start the bot
/tasks - Show your active tasks
/models - List available models
/clear - Clear conversation history
/help - Show this help

*Usage Examples:*
• "Start a task to add README to my-repo"
• "Check status of task bc-123-456"
• "Stop task bc-123-456"
• "Show me available repositories"

*Images and voice:*
Photos you send are kept for 3 minutes and attached to the next task you start. Voice messages are transcribed and handled like text.

*Task Management:*
Repository access is configured via environment variables. Tasks are monitored automatically and you'll get notifications when they complete or fail."""


class CursorBot:
    """Wires Telegram updates to the agent and the shared services."""

    def __init__(
        self,
        store: Store,
        cursor: CursorService,
        image_cache: ImageCache,
        provider: BaseLLMProvider,
        stt: BaseSTTProvider | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.cursor = cursor
        self.image_cache = image_cache
        self.provider = provider
        self.stt = stt
        self.settings = settings or default_settings
        self.application: Application | None = None

    # ── Access control ──────────────────────────────────────────────

    def is_allowed(self, user_id: int, chat_id: int) -> bool:
        allowed = self.settings.allowed_user_list
        if not allowed:
            return True
        return str(user_id) in allowed or str(chat_id) in allowed

    async def gate(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Runs before every other handler. Stops the update when access is denied."""
        user, chat = update.effective_user, update.effective_chat
        if user is None or chat is None:
            raise ApplicationHandlerStop

        if not self.is_allowed(user.id, chat.id):
            logger.warning(f"Access denied for user {user.id} in chat {chat.id}")
            if update.effective_message:
                await update.effective_message.reply_text(ACCESS_DENIED)
            raise ApplicationHandlerStop

        try:
            self.store.upsert_user(user.id, user.username, user.first_name)
            self.store.upsert_chat(chat.id, chat.title or chat.first_name, chat.type)
        except Exception:
            logger.exception("Error saving user/chat info")

    # ── Commands ────────────────────────────────────────────────────

    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await safe_send_message(context.bot, update.effective_chat.id, START_TEXT)

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await safe_send_message(context.bot, update.effective_chat.id, HELP_TEXT)

    async def cmd_tasks(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = update.effective_chat.id
        tasks = self.store.get_active_tasks(update.effective_user.id, chat_id)
        if not tasks:
            await safe_send_message(context.bot, chat_id, "No active tasks found.")
            return

        task_list = "\n\n".join(
            f"• *{t.task_description}*\n  Status: `{t.status}`\n  Repo: {t.repo_url}\n  ID: `{t.composer_id}`"
            for t in tasks
        )
        await safe_send_message(context.bot, chat_id, f"*Active Tasks:*\n\n{task_list}")

    async def cmd_clear(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = update.effective_chat.id
        try:
            self.store.clear_history(update.effective_user.id, chat_id)
        except Exception:
            logger.exception("Error clearing history")
            await update.effective_message.reply_text("Failed to clear history")
            return
        await update.effective_message.reply_text("History cleared successfully")

    async def cmd_models(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = update.effective_chat.id
        try:
            models = await self.cursor.list_models()
        except CursorAPIError as e:
            await update.effective_message.reply_text(f"❌ Failed to list models: {e}")
            return

        if not models:
            await safe_send_message(context.bot, chat_id, "No models available.")
            return
        await safe_send_message(
            context.bot, chat_id,
            "*Available models:*\n" + "\n".join(f"• `{m}`" for m in models),
        )

    # ── Messages ────────────────────────────────────────────────────

    def should_respond(self, update: Update, context: ContextTypes.DEFAULT_TYPE, text: str) -> bool:
        """In groups with mention-only on, the bot answers mentions and replies to itself."""
        if not self.settings.mention_only or update.effective_chat.type == ChatType.PRIVATE:
            return True

        username = self.settings.bot_username or context.bot.username
        if username and f"@{username.lower()}" in text.lower():
            return True

        reply_to = update.effective_message.reply_to_message
        return bool(reply_to and reply_to.from_user and reply_to.from_user.id == context.bot.id)

    def strip_mention(self, text: str, bot_username: str | None) -> str:
        username = self.settings.bot_username or bot_username
        if not username:
            return text.strip()
        mention = f"@{username}"
        idx = text.lower().find(mention.lower())
        if idx == -1:
            return text.strip()
        return (text[:idx] + text[idx + len(mention):]).strip()

    def make_agent(self, user_id: int, chat_id: int) -> Agent:
        context = ToolContext(
            user_id=user_id,
            chat_id=chat_id,
            store=self.store,
            cursor=self.cursor,
            image_cache=self.image_cache,
            allowed_repos=self.settings.allowed_repo_list,
        )
        return Agent(
            user_id=user_id,
            chat_id=chat_id,
            store=self.store,
            provider=self.provider,
            registry=create_default_registry(context),
            settings=self.settings,
        )

    async def _keep_typing(self, bot: Bot, chat_id: int) -> None:
        while True:
            try:
                await bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)
            except TelegramError as e:
                logger.debug(f"Typing indicator failed: {e}")
            await asyncio.sleep(TYPING_INTERVAL)

    async def process_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE, text: str) -> None:
        """Run the agent on ``text`` and deliver its reply."""
        user_id = update.effective_user.id
        chat_id = update.effective_chat.id

        try:
            agent = self.make_agent(user_id, chat_id)
            typing_task = asyncio.create_task(self._keep_typing(context.bot, chat_id))
            try:
                response = await agent.process_message(text)
            finally:
                typing_task.cancel()

            logged = response.model_dump_json() if isinstance(response, ButtonMessage) else response
            try:
                self.store.save_message(user_id, chat_id, text, logged)
            except Exception:
                logger.exception("Error saving message")

            if isinstance(response, ButtonMessage):
                await safe_send_message(
                    context.bot, chat_id, response.text,
                    reply_markup=build_keyboard(response.buttons),
                )
            else:
                await safe_send_message(context.bot, chat_id, response or "🤷 No response")
        except Exception as e:
            logger.exception("Error processing message")
            await update.effective_message.reply_text(f"❌ Error: {e}")

    async def on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        text = update.effective_message.text or ""
        if not self.should_respond(update, context, text):
            return
        text = self.strip_mention(text, context.bot.username)
        if not text:
            return
        await self.process_text(update, context, text)

    async def on_photo(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        caption = message.caption or ""
        if not self.should_respond(update, context, caption):
            return

        user_id = update.effective_user.id
        chat_id = update.effective_chat.id

        try:
            # Largest size is last; image documents arrive uncompressed
            attachment = message.photo[-1] if message.photo else message.document
            file = await attachment.get_file()
            data = await file.download_as_bytearray()
            image = await convert_image(bytes(data))
            count = self.image_cache.append(user_id, chat_id, image)
        except Exception as e:
            logger.exception("Error handling photo")
            await message.reply_text(f"❌ Failed to process image: {e}")
            return

        logger.info(f"Cached image {image.width}x{image.height} for user {user_id} in chat {chat_id} ({count} total)")

        caption = self.strip_mention(caption, context.bot.username)
        if caption:
            await self.process_text(update, context, caption)
            return

        await message.reply_text(
            f"📸 Image received ({count} cached). Describe the task within "
            f"{int(self.image_cache.ttl // 60)} minutes and the images will be attached to it."
        )

    async def on_voice(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if self.settings.mention_only and update.effective_chat.type != ChatType.PRIVATE:
            reply_to = message.reply_to_message
            if not (reply_to and reply_to.from_user and reply_to.from_user.id == context.bot.id):
                return

        if self.stt is None:
            await message.reply_text("🎤 Voice transcription is not available: no transcription API key configured.")
            return

        audio = message.voice or message.audio
        try:
            await context.bot.send_chat_action(chat_id=update.effective_chat.id, action=ChatAction.TYPING)
            file = await audio.get_file()
            data = await file.download_as_bytearray()
            transcription = await self.stt.transcribe(bytes(data), audio.mime_type or "audio/ogg")
        except Exception as e:
            logger.exception("Error transcribing voice message")
            await message.reply_text(f"❌ Failed to transcribe voice message: {e}")
            return

        if not transcription.text.strip():
            await message.reply_text("🎤 Could not recognize any speech.")
            return

        reply = f"🎤 _{transcription.text}_"
        if transcription.tldr:
            reply += f"\n\n*TL;DR:* {transcription.tldr}"
        await safe_send_message(context.bot, update.effective_chat.id, reply)

        await self.process_text(update, context, transcription.text)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(f"Bot error: {context.error}", exc_info=context.error)

    # ── Outbound ────────────────────────────────────────────────────

    async def notify(self, chat_id: int, text: str, buttons: list[Button]) -> None:
        """Push a message to a chat, used by the task monitor."""
        if self.application is None:
            raise RuntimeError("Bot application is not built")
        await safe_send_message(
            self.application.bot, chat_id, text,
            reply_markup=build_keyboard(buttons), parse_mode=ParseMode.MARKDOWN,
        )

    def build_application(self) -> Application:
        app = ApplicationBuilder().token(self.settings.bot_token).concurrent_updates(True).build()

        app.add_handler(TypeHandler(Update, self.gate), group=-1)

        app.add_handler(CommandHandler("start", self.cmd_start))
        app.add_handler(CommandHandler("help", self.cmd_help))
        app.add_handler(CommandHandler("tasks", self.cmd_tasks))
        app.add_handler(CommandHandler("clear", self.cmd_clear))
        app.add_handler(CommandHandler("models", self.cmd_models))

        app.add_handler(MessageHandler(filters.PHOTO | filters.Document.IMAGE, self.on_photo))
        app.add_handler(MessageHandler(filters.VOICE | filters.AUDIO, self.on_voice))
        app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_text))

        app.add_error_handler(self.on_error)

        self.application = app
        return app
