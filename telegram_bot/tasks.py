# telegram_bot/tasks.py
import logging

from celery import shared_task

from reminders.agent import RemindMeAgent
from reminders.interaction import handle_callback
from telegram_bot.messaging import answer_callback_sync, edit_message_sync, send_message_sync

logger = logging.getLogger(__name__)

START_MESSAGE = (
    "Hello {name}! I am RemindMeBot.\n"
    "I can help you manage your reminders.\n"
    "You can create, view, update, and delete reminders easily."
)
ERROR_MESSAGE = "Sorry — error processing your request."


def handle_message(message):
    chat_id = message.get("chat", {}).get("id")
    text = (message.get("text") or "").strip()
    user_name = message.get("from", {}).get("first_name") or ""

    if chat_id is None or not text:
        logger.info("Message without chat or text, skipping")
        return {"ok": True, "note": "no text"}

    logger.info(f"Processing message in chat {chat_id}")

    if text.split()[0].split("@")[0] == "/start":
        send_message_sync(chat_id, START_MESSAGE.format(name=user_name or "there"))
        return {"ok": True, "processed": True}

    agent = RemindMeAgent(chat_id=chat_id, user_name=user_name)
    results = agent.chat(text)

    logger.info(f"Sending {len(results)} reply(s) to chat {chat_id}")
    for result in results:
        send_message_sync(chat_id, result.text, result.keyboard)
    return {"ok": True, "processed": True}


def handle_callback_query(callback_query):
    message = callback_query.get("message") or {}
    chat_id = message.get("chat", {}).get("id")
    message_id = message.get("message_id")
    data = callback_query.get("data") or ""

    if chat_id is None:
        answer_callback_sync(callback_query.get("id"))
        return {"ok": True, "note": "no chat"}

    logger.info(f"Processing callback '{data}' in chat {chat_id}")
    toast = None
    try:
        outcome = handle_callback(chat_id, data)
        toast = outcome.toast
        edit_message_sync(chat_id, message_id, outcome.text, outcome.keyboard)
    finally:
        # stop the button spinner even when the edit is rejected
        answer_callback_sync(callback_query.get("id"), toast)
    return {"ok": True, "processed": True}


def _chat_id_of(update):
    message = update.get("message") or update.get("edited_message")
    if message:
        return message.get("chat", {}).get("id")
    callback_message = (update.get("callback_query") or {}).get("message") or {}
    return callback_message.get("chat", {}).get("id")


def handle_update(update_payload):
    """Route one Telegram update; any failure ends in an apology to the chat."""
    try:
        if update_payload.get("callback_query"):
            return handle_callback_query(update_payload["callback_query"])

        message = update_payload.get("message") or update_payload.get("edited_message")
        if message:
            return handle_message(message)

        logger.info("No message or callback in update, skipping")
        return {"ok": True, "note": "unsupported update"}

    except Exception as e:
        logger.exception("Error processing Telegram update")
        chat_id = _chat_id_of(update_payload)
        if chat_id is not None:
            try:
                send_message_sync(chat_id, ERROR_MESSAGE)
            except Exception:
                logger.exception("Failed to send error message to user")
        return {"ok": False, "error": str(e)}


@shared_task(bind=True, name="process_telegram_update")
def process_telegram_update(self, update_payload):
    """Celery task that processes a Telegram update and sends replies."""
    logger.info(f"Task {self.request.id} processing update {update_payload.get('update_id')}")
    return handle_update(update_payload)


def process_telegram_update_sync(update_payload):
    """Synchronous fallback for processing Telegram updates when Celery is not available."""
    logger.info("Processing Telegram update synchronously (Celery fallback)")
    return handle_update(update_payload)
