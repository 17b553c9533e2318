# telegram_bot/messaging.py
import asyncio
import logging
from typing import Dict, List, Optional

from django.conf import settings
from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import TelegramError

from reminders.exceptions import UpstreamError

logger = logging.getLogger(__name__)

Keyboard = List[List[Dict[str, str]]]


def build_keyboard(keyboard: Optional[Keyboard]) -> Optional[InlineKeyboardMarkup]:
    """Turn rows of ``{"text", "callback_data"}`` dicts into Telegram markup."""
    if not keyboard:
        return None
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton(button["text"], callback_data=button["callback_data"]) for button in row]
            for row in keyboard
        ]
    )


async def send_message_async(chat_id, text, keyboard: Optional[Keyboard] = None):
    async with Bot(settings.TELEGRAM_BOT_TOKEN) as bot:
        message = await bot.send_message(chat_id=chat_id, text=text, reply_markup=build_keyboard(keyboard))
        logger.info(f"✅ Message sent to chat {chat_id}, message_id: {message.message_id}")
        return message.message_id


async def edit_message_async(chat_id, message_id, text, keyboard: Optional[Keyboard] = None):
    async with Bot(settings.TELEGRAM_BOT_TOKEN) as bot:
        await bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=message_id,
            reply_markup=build_keyboard(keyboard),
        )
        logger.info(f"✏️ Message {message_id} edited in chat {chat_id}")


async def answer_callback_async(callback_query_id, text: Optional[str] = None):
    async with Bot(settings.TELEGRAM_BOT_TOKEN) as bot:
        await bot.answer_callback_query(callback_query_id=callback_query_id, text=text)


def send_message_sync(chat_id, text, keyboard: Optional[Keyboard] = None):
    """Send a message, optionally with an inline keyboard. Raises UpstreamError."""
    logger.debug(f"Attempting to send message to chat {chat_id}: '{text[:50]}{'...' if len(text) > 50 else ''}'")
    try:
        return asyncio.run(send_message_async(chat_id, text, keyboard))
    except TelegramError as e:
        logger.error(f"❌ Failed to send message to chat {chat_id}: {e}")
        raise UpstreamError(f"Failed to send message: {e}") from e


def edit_message_sync(chat_id, message_id, text, keyboard: Optional[Keyboard] = None):
    try:
        asyncio.run(edit_message_async(chat_id, message_id, text, keyboard))
    except TelegramError as e:
        logger.error(f"❌ Failed to edit message {message_id} in chat {chat_id}: {e}")
        raise UpstreamError(f"Failed to edit message: {e}") from e


def answer_callback_sync(callback_query_id, text: Optional[str] = None):
    # A missed callback answer only leaves a spinner on the button
    try:
        asyncio.run(answer_callback_async(callback_query_id, text))
    except TelegramError as e:
        logger.warning(f"Failed to answer callback {callback_query_id}: {e}")
