from typing import Optional
import io
import logging

from telegram import Bot
from telegram.constants import ChatMemberStatus
from telegram.error import TelegramError

from models import ContentType

logger = logging.getLogger(__name__)


class Transport:
    """What the bot needs from the chat platform.

    Send methods return True on success and False on failure; they never raise.
    """

    async def send_message(self, chat_id: int, text: str, reply_markup=None, parse_mode: str = None) -> bool:
        raise NotImplementedError

    async def send_content(self, chat_id: int, content_type: str, file_id: str = None, text: str = None,
                           caption: str = None, reply_markup=None) -> bool:
        raise NotImplementedError

    async def upload_document(self, chat_id: int, data: bytes, filename: str, caption: str = None) -> bool:
        raise NotImplementedError

    async def is_member(self, channel: str, user_id: int) -> bool:
        raise NotImplementedError

    async def answer_callback(self, callback_id: str, text: str = None) -> bool:
        return True

    async def get_username(self) -> Optional[str]:
        return None


class TelegramTransport(Transport):
    def __init__(self, bot: Bot):
        self.bot = bot
        self._username = None

    async def send_message(self, chat_id, text, reply_markup=None, parse_mode=None):
        try:
            await self.bot.send_message(chat_id, text, reply_markup=reply_markup, parse_mode=parse_mode)
            return True
        except TelegramError as e:
            logger.warning(f"Failed to send message to {chat_id}: {e}")
            return False

    async def send_content(self, chat_id, content_type, file_id=None, text=None, caption=None, reply_markup=None):
        try:
            if content_type == ContentType.TEXT.value:
                await self.bot.send_message(chat_id, text or '', reply_markup=reply_markup)
            elif content_type == ContentType.PHOTO.value:
                await self.bot.send_photo(chat_id, file_id, caption=caption, reply_markup=reply_markup)
            elif content_type == ContentType.VIDEO.value:
                await self.bot.send_video(chat_id, file_id, caption=caption, reply_markup=reply_markup)
            elif content_type == ContentType.AUDIO.value:
                await self.bot.send_audio(chat_id, file_id, caption=caption, reply_markup=reply_markup)
            elif content_type == ContentType.VOICE.value:
                await self.bot.send_voice(chat_id, file_id, caption=caption, reply_markup=reply_markup)
            else:
                await self.bot.send_document(chat_id, file_id, caption=caption, reply_markup=reply_markup)
            return True
        except TelegramError as e:
            logger.warning(f"Failed to deliver {content_type} to {chat_id}: {e}")
            return False

    async def upload_document(self, chat_id, data, filename, caption=None):
        try:
            await self.bot.send_document(chat_id, io.BytesIO(data), filename=filename, caption=caption)
            return True
        except TelegramError as e:
            logger.warning(f"Failed to upload {filename} to {chat_id}: {e}")
            return False

    async def is_member(self, channel, user_id):
        # Fail closed: any error means not a member
        try:
            member = await self.bot.get_chat_member(channel, user_id)
            return member.status in (ChatMemberStatus.MEMBER, ChatMemberStatus.ADMINISTRATOR, ChatMemberStatus.OWNER)
        except TelegramError as e:
            logger.warning(f"Membership check failed for {user_id} in {channel}: {e}")
            return False

    async def answer_callback(self, callback_id, text=None):
        try:
            await self.bot.answer_callback_query(callback_id, text=text)
            return True
        except TelegramError as e:
            logger.warning(f"Failed to answer callback {callback_id}: {e}")
            return False

    async def get_username(self):
        if self._username is None:
            try:
                me = await self.bot.get_me()
                self._username = me.username
            except TelegramError as e:
                logger.warning(f"Failed to fetch bot username: {e}")
        return self._username
