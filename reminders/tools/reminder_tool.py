# reminders/tools/reminder_tool.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pytz
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from reminders.exceptions import NotFound, SchedulingError, StoreError
from reminders.scheduler import get_scheduler
from reminders.store import store

logger = logging.getLogger(__name__)

BUTTONS_PER_ROW = 2
STORE_UNAVAILABLE = "⚠️ I couldn't reach your reminders right now. Please try again in a moment."


@dataclass
class ToolResult:
    text: str
    keyboard: Optional[List[List[Dict[str, str]]]] = None
    success: bool = True


def parse_reminder_time(value) -> Any:
    """Parse an ISO-8601 string; naive values are taken in the default timezone."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("missing time")
    parsed = parse_datetime(value.strip().replace("Z", "+00:00"))
    if parsed is None:
        raise ValueError(f"unrecognised time '{value}'")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, timezone.get_default_timezone())
    return parsed


def format_display_time(dt) -> str:
    local_tz = pytz.timezone(settings.REMINDER_DISPLAY_TIMEZONE)
    return timezone.localtime(dt, local_tz).strftime('%b %d, %Y, %I:%M %p')


def reminder_lines(reminders) -> List[str]:
    return [f"{i}. {r.title} — {format_display_time(r.time)}" for i, r in enumerate(reminders, start=1)]


def chunk(items, size):
    return [items[i:i + size] for i in range(0, len(items), size)]


def selection_keyboard(reminders, action: str):
    buttons = [
        {"text": f"{i}", "callback_data": f"{action}:{r.id}"}
        for i, r in enumerate(reminders, start=1)
    ]
    return chunk(buttons, BUTTONS_PER_ROW)


class ReminderTool:
    def __init__(self, chat_id):
        self.chat_id = str(chat_id)
        self.scheduler = get_scheduler()

    @staticmethod
    def json_schema_create_reminders() -> Dict[str, Any]:
        return {
            "name": "create_reminders",
            "description": "Schedule one or multiple reminders for the user.",
            "parameters": {
                "type": "object",
                "properties": {
                    "reminders": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "title": {"type": "string", "description": "Title of the reminder"},
                                "time": {
                                    "type": "string",
                                    "description": "ISO 8601 date-time, e.g. 2025-11-19T14:00:00",
                                },
                            },
                            "required": ["title", "time"],
                        },
                    },
                    "message": {"type": "string", "description": "Confirmation message to the user"},
                },
                "required": ["reminders", "message"],
            },
        }

    @staticmethod
    def json_schema_list_reminders() -> Dict[str, Any]:
        return {
            "name": "list_reminders",
            "description": "List all pending reminders for the user.",
            "parameters": {"type": "object", "properties": {}},
        }

    @staticmethod
    def json_schema_delete_reminder() -> Dict[str, Any]:
        return {
            "name": "delete_reminder",
            "description": "Show the user's reminders as buttons so they can pick one to delete.",
            "parameters": {"type": "object", "properties": {}},
        }

    @staticmethod
    def json_schema_update_reminder() -> Dict[str, Any]:
        return {
            "name": "update_reminder",
            "description": "Show the user's reminders as buttons so they can pick one to update.",
            "parameters": {"type": "object", "properties": {}},
        }

    @staticmethod
    def json_schema_update_reminder_by_id() -> Dict[str, Any]:
        return {
            "name": "update_reminder_by_id",
            "description": "Update the selected reminder by id.",
            "parameters": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "The ID of the reminder to update"},
                    "params": {
                        "type": "object",
                        "description": "Fields to update (provide one or both)",
                        "properties": {
                            "title": {"type": "string", "description": "New title for the reminder"},
                            "time": {"type": "string", "description": "New ISO 8601 date-time"},
                        },
                        "additionalProperties": False,
                    },
                },
                "required": ["id", "params"],
            },
        }

    @classmethod
    def function_schemas(cls) -> List[Dict[str, Any]]:
        schemas = []
        for attr in dir(cls):
            if attr.startswith("json_schema_"):
                schemas.append({"type": "function", "function": getattr(cls, attr)()})
        return schemas

    def create_reminders(self, reminders: List[Dict[str, Any]] = None, message: str = "") -> ToolResult:
        logger.info(f"create_reminders for chat {self.chat_id}: {reminders}")
        created, failures = [], []
        now = timezone.now()

        for item in reminders or []:
            item = item if isinstance(item, dict) else {}
            title = str(item.get("title") or "").strip()
            if not title:
                failures.append("⚠️ A reminder needs a title.")
                continue
            try:
                time = parse_reminder_time(item.get("time"))
            except ValueError as e:
                logger.warning(f"Rejected reminder '{title}' for chat {self.chat_id}: {e}")
                failures.append(f"⚠️ I couldn't understand the time for '{title}'.")
                continue
            if time <= now:
                failures.append(f"⚠️ The time for '{title}' has already passed.")
                continue

            try:
                reminder = store.create(self.chat_id, title, time)
            except StoreError:
                failures.append(f"⚠️ I couldn't save '{title}'. Please try again.")
                continue
            try:
                self.scheduler.arm(reminder.id, reminder.time)
            except SchedulingError as e:
                logger.error(f"Rolling back reminder {reminder.id}: {e}")
                try:
                    store.delete_by_id(reminder.id)
                except (NotFound, StoreError):
                    logger.exception(f"Could not roll back unscheduled reminder {reminder.id}")
                failures.append(f"⚠️ I couldn't schedule '{title}'. Please try again.")
                continue
            created.append(reminder)

        if not created and not failures:
            return ToolResult("I didn't get any reminders to set. What should I remind you about?", success=False)

        lines = []
        if created:
            lines.append(message.strip() if message and message.strip() else "\n".join(
                f"⏰ Reminder '{r.title}' set for {format_display_time(r.time)}" for r in created
            ))
        lines.extend(failures)
        logger.info(f"Created {len(created)} reminder(s) for chat {self.chat_id}, {len(failures)} failure(s)")
        return ToolResult("\n".join(lines), success=not failures)

    def list_reminders(self) -> ToolResult:
        logger.info(f"list_reminders for chat {self.chat_id}")
        try:
            reminders = store.list_by_chat(self.chat_id)
        except StoreError:
            return ToolResult(STORE_UNAVAILABLE, success=False)
        if not reminders:
            return ToolResult("You have no reminders!")
        return ToolResult("Your reminders:\n\n" + "\n".join(reminder_lines(reminders)))

    def delete_reminder(self) -> ToolResult:
        return self._selection("select", "Which reminder do you want to delete?",
                               "You have no reminders to delete!")

    def update_reminder(self) -> ToolResult:
        return self._selection("editSelect", "Which reminder do you want to update?",
                               "You have no reminders to update!")

    def _selection(self, action, header, empty_text) -> ToolResult:
        logger.info(f"Building '{action}' selection for chat {self.chat_id}")
        try:
            reminders = store.list_by_chat(self.chat_id)
        except StoreError:
            return ToolResult(STORE_UNAVAILABLE, success=False)
        if not reminders:
            return ToolResult(empty_text)
        text = f"{header}\n\n" + "\n".join(reminder_lines(reminders))
        return ToolResult(text, keyboard=selection_keyboard(reminders, action))

    def update_reminder_by_id(self, id=None, params: Dict[str, Any] = None) -> ToolResult:
        logger.info(f"update_reminder_by_id for chat {self.chat_id}: id={id}, params={params}")
        if id in (None, ""):
            return ToolResult("⚠️ I don't know which reminder to update.", success=False)

        params = params if isinstance(params, dict) else {}
        changes = {}
        if params.get("title") is not None:
            title = str(params["title"]).strip()
            if not title:
                return ToolResult("⚠️ The new title can't be empty.", success=False)
            changes["title"] = title
        if params.get("time"):
            try:
                time = parse_reminder_time(params["time"])
            except ValueError:
                return ToolResult("⚠️ I couldn't understand the new time.", success=False)
            if time <= timezone.now():
                return ToolResult("⚠️ That time has already passed.", success=False)
            changes["time"] = time
        if not changes:
            return ToolResult("⚠️ Tell me the new title or time for the reminder.", success=False)

        try:
            with transaction.atomic():
                store.get(id, chat_id=self.chat_id, for_update=True)
                self.scheduler.cancel(id)
                reminder = store.update_fields(id, changes, chat_id=self.chat_id)
                self.scheduler.arm(reminder.id, reminder.time)
        except NotFound:
            logger.warning(f"Reminder {id} not found for chat {self.chat_id}")
            return ToolResult(
                "⚠️ I couldn't find that reminder. It may have already fired or been deleted.",
                success=False,
            )
        except (StoreError, SchedulingError) as e:
            logger.error(f"Failed to update reminder {id} for chat {self.chat_id}: {e}")
            self.scheduler.restore(id)
            return ToolResult("❌ Failed to update reminder", success=False)

        return ToolResult(
            f"📝 Reminder updated successfully: {reminder.title} — {format_display_time(reminder.time)}"
        )
