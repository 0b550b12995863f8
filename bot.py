import asyncio
import logging
from typing import Optional

from telegram import Message, Update
from telegram.ext import Application, CallbackContext, CallbackQueryHandler, MessageHandler, filters

from config import BOT_TOKEN, DATABASE_URL, MAIN_ADMIN_ID, MESSAGES, RUN_DAILY_TASKS, WEBHOOK_URL
from conversation import Conversation, Event, Media
from core import BotCore
from database import Database
from maintenance import run_daily_tasks
from transport import TelegramTransport
from utils import DAY_MS, now_ms
from web import run_webhook

logger = logging.getLogger(__name__)


def media_from_message(message: Message) -> Optional[Media]:
    if message.document:
        doc = message.document
        return Media('document', doc.file_id, doc.file_name or 'document', doc.file_size or 0)
    if message.photo:
        photo = message.photo[-1]
        return Media('photo', photo.file_id, 'photo', photo.file_size or 0)
    if message.video:
        video = message.video
        return Media('video', video.file_id, video.file_name or 'video', video.file_size or 0)
    if message.audio:
        audio = message.audio
        return Media('audio', audio.file_id, audio.file_name or audio.title or 'audio', audio.file_size or 0)
    if message.voice:
        return Media('voice', message.voice.file_id, 'voice', message.voice.file_size or 0)
    return None


def event_from_update(update: Update) -> Optional[Event]:
    """Flatten a Telegram update into the fields the conversation needs"""
    user = update.effective_user
    chat = update.effective_chat
    if user is None or chat is None:
        return None
    query = update.callback_query
    if query is not None:
        return Event(
            user_id=user.id,
            chat_id=chat.id,
            username=user.username,
            first_name=user.first_name or '',
            callback_data=query.data or '',
            callback_id=query.id,
        )
    message = update.effective_message
    if message is None:
        return None
    return Event(
        user_id=user.id,
        chat_id=chat.id,
        username=user.username,
        first_name=user.first_name or '',
        text=message.text or message.caption or '',
        media=media_from_message(message),
    )


class ErrorHandler:
    def __init__(self, bot):
        self.bot = bot

    async def handle_error(self, update: object, context: CallbackContext):
        logger.error(f"Unhandled error: {context.error}", exc_info=context.error)
        try:
            if MAIN_ADMIN_ID:
                await context.bot.send_message(MAIN_ADMIN_ID, f"❌ خطای سیستم:\n{str(context.error)[:3000]}")
            if isinstance(update, Update) and update.effective_user and update.effective_user.id != MAIN_ADMIN_ID:
                await context.bot.send_message(update.effective_user.id, MESSAGES['generic_error'])
        except Exception as e:
            logger.error(f"Error in error handler: {e}")


class FileBot:
    def __init__(self, db: Database = None, token: str = BOT_TOKEN):
        self.db = db or Database(DATABASE_URL)
        self.application = Application.builder().token(token).post_init(self.initialize).post_shutdown(self.shutdown).build()
        self.transport = TelegramTransport(self.application.bot)
        self.core = BotCore(self.db, self.transport)
        self.conversation = Conversation(self.core)
        self.error_handler = ErrorHandler(self)
        self._tasks = []

        self.application.add_handler(CallbackQueryHandler(self.handle_update))
        self.application.add_handler(MessageHandler(filters.ALL & ~filters.UpdateType.EDITED, self.handle_update))
        self.application.add_error_handler(self.error_handler.handle_error)

    async def initialize(self, application: Application = None):
        """Start background tasks"""
        if RUN_DAILY_TASKS and not self._tasks:
            self._tasks.append(asyncio.create_task(self._daily_tasks()))

    async def shutdown(self, application: Application = None):
        for task in self._tasks:
            task.cancel()
        self._tasks = []

    async def handle_update(self, update: Update, context: CallbackContext):
        event = event_from_update(update)
        if event is None:
            return
        await self.conversation.handle(event)

    async def _daily_tasks(self):
        """Run the lottery draw and the backup shortly after every UTC midnight"""
        while True:
            try:
                now = now_ms()
                wait_ms = DAY_MS - now % DAY_MS + 60 * 1000
                await asyncio.sleep(wait_ms / 1000)
                await run_daily_tasks(self.core)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in daily tasks: {e}")
                await asyncio.sleep(3600)


def main():
    """Start the bot"""
    file_bot = FileBot()
    if WEBHOOK_URL:
        logger.info(f"Starting webhook server for {WEBHOOK_URL}")
        run_webhook(file_bot)
    else:
        logger.info("Bot started in polling mode")
        file_bot.application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == '__main__':
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.INFO
    )
    main()
