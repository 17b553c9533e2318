# reminders/interaction.py
"""
Button-driven flows for deleting and updating reminders.

Callback data is ``<action>:<id>``. The chat's ``ChatSession`` records the
flow explicitly (``awaiting_delete_confirm`` / ``awaiting_edit_field``) so the
next text turn can be routed to ``update_reminder_by_id`` without relying on
the model to notice a note in the transcript.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from django.db import transaction

from reminders.exceptions import NotFound, SchedulingError, StoreError
from reminders.models import ChatSession
from reminders.scheduler import get_scheduler
from reminders.store import store

logger = logging.getLogger(__name__)

EDIT_FIELDS = {
    "editTitle": (["title"], "Okay! What is the new title?"),
    "editTime": (["time"], "Okay! What is the new time?"),
    "editBoth": (["title", "time"], "Okay! Tell me the new title and time."),
}

MISSING_REMINDER = "⚠️ That reminder no longer exists. It may have already fired or been deleted."


@dataclass
class CallbackOutcome:
    text: str
    keyboard: Optional[List[List[Dict[str, str]]]] = None
    toast: Optional[str] = None


def parse_callback_data(data: str):
    action, _, reminder_id = (data or "").partition(":")
    return action, reminder_id


def _button(text, callback_data):
    return {"text": text, "callback_data": callback_data}


def handle_callback(chat_id, data: str) -> CallbackOutcome:
    action, reminder_id = parse_callback_data(data)
    session = ChatSession.for_chat(chat_id)
    logger.info(f"Callback '{action}' for reminder '{reminder_id}' in chat {chat_id} (state={session.state})")

    if action == "select":
        return _select_for_delete(session, reminder_id)
    if action == "confirmDelete":
        return _confirm_delete(session, reminder_id)
    if action == "cancelDelete":
        session.reset_state()
        return CallbackOutcome("❌ Deletion cancelled.", toast="Cancelled")
    if action == "editSelect":
        return _select_for_edit(session, reminder_id)
    if action in EDIT_FIELDS:
        return _await_edit(session, action, reminder_id)
    if action == "editCancel":
        session.reset_state()
        return CallbackOutcome("❌ Updating cancelled.", toast="Cancelled")

    logger.warning(f"Unknown callback data '{data}' in chat {chat_id}")
    return CallbackOutcome("This button is no longer valid.", toast="Unknown action")


def _select_for_delete(session, reminder_id):
    try:
        store.get(reminder_id, chat_id=session.chat_id)
    except NotFound:
        return CallbackOutcome(MISSING_REMINDER)
    except StoreError:
        return CallbackOutcome("⚠️ I couldn't reach your reminders right now. Please try again.")

    session.transition(ChatSession.STATE_AWAITING_DELETE_CONFIRM, reminder_id)
    return CallbackOutcome(
        "Are you sure you want to delete this reminder?",
        keyboard=[
            [_button("Yes, delete", f"confirmDelete:{reminder_id}")],
            [_button("Cancel", f"cancelDelete:{reminder_id}")],
        ],
    )


def _confirm_delete(session, reminder_id):
    scheduler = get_scheduler()
    try:
        with transaction.atomic():
            store.get(reminder_id, chat_id=session.chat_id, for_update=True)
            scheduler.cancel(reminder_id)
            store.delete_by_id(reminder_id, chat_id=session.chat_id)
    except NotFound:
        session.reset_state()
        return CallbackOutcome(MISSING_REMINDER, toast="Not found")
    except (StoreError, SchedulingError) as e:
        logger.error(f"Failed to delete reminder {reminder_id} for chat {session.chat_id}: {e}")
        scheduler.restore(reminder_id)
        return CallbackOutcome("❌ Failed to delete the reminder. Please try again.", toast="Failed")

    session.reset_state()
    return CallbackOutcome("✅ Reminder deleted successfully!", toast="Deleted")


def _select_for_edit(session, reminder_id):
    try:
        store.get(reminder_id, chat_id=session.chat_id)
    except NotFound:
        return CallbackOutcome(MISSING_REMINDER)
    except StoreError:
        return CallbackOutcome("⚠️ I couldn't reach your reminders right now. Please try again.")

    return CallbackOutcome(
        "What do you want to update?",
        keyboard=[
            [_button("Title", f"editTitle:{reminder_id}")],
            [_button("Time", f"editTime:{reminder_id}")],
            [_button("Title + Time", f"editBoth:{reminder_id}")],
            [_button("Cancel", f"editCancel:{reminder_id}")],
        ],
    )


def _await_edit(session, action, reminder_id):
    try:
        store.get(reminder_id, chat_id=session.chat_id)
    except NotFound:
        session.reset_state()
        return CallbackOutcome(MISSING_REMINDER)
    except StoreError:
        return CallbackOutcome("⚠️ I couldn't reach your reminders right now. Please try again.")

    fields, prompt = EDIT_FIELDS[action]
    session.transition(ChatSession.STATE_AWAITING_EDIT_FIELD, reminder_id, fields)
    return CallbackOutcome(prompt)
