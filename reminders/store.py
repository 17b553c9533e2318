# reminders/store.py
import logging
from typing import Any, Dict, List, Optional

from django.db import DatabaseError

from reminders.exceptions import NotFound, StoreError
from reminders.models import Reminder

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "time")


class ReminderStore:
    """Thin persistence facade over the Reminder model."""

    def create(self, chat_id, title: str, time) -> Reminder:
        try:
            reminder = Reminder.objects.create(chat_id=str(chat_id), title=title, time=time)
        except DatabaseError as e:
            logger.error(f"Failed to create reminder for chat {chat_id}: {e}")
            raise StoreError("Could not save reminder") from e
        logger.info(f"Created reminder {reminder.id} for chat {chat_id}: '{title}' at {time}")
        return reminder

    def list_all(self) -> List[Reminder]:
        try:
            return list(Reminder.objects.all())
        except DatabaseError as e:
            logger.error(f"Failed to load reminders: {e}")
            raise StoreError("Could not load reminders") from e

    def list_by_chat(self, chat_id) -> List[Reminder]:
        try:
            reminders = list(Reminder.objects.filter(chat_id=str(chat_id)))
        except DatabaseError as e:
            logger.error(f"Failed to load reminders for chat {chat_id}: {e}")
            raise StoreError("Could not load reminders") from e
        logger.debug(f"Retrieved {len(reminders)} reminders for chat {chat_id}")
        return reminders

    def get(self, reminder_id, chat_id=None, for_update: bool = False) -> Reminder:
        """Fetch one reminder, optionally scoped to a chat.

        With ``for_update`` the row is locked until the surrounding
        ``transaction.atomic()`` block ends.
        """
        queryset = Reminder.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        if chat_id is not None:
            queryset = queryset.filter(chat_id=str(chat_id))
        try:
            return queryset.get(pk=reminder_id)
        except (Reminder.DoesNotExist, ValueError, TypeError):
            raise NotFound(reminder_id)
        except DatabaseError as e:
            logger.error(f"Failed to load reminder {reminder_id}: {e}")
            raise StoreError("Could not load reminder") from e

    def update_fields(self, reminder_id, fields: Dict[str, Any], chat_id=None) -> Reminder:
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
        reminder = self.get(reminder_id, chat_id=chat_id)
        if not changes:
            return reminder
        for name, value in changes.items():
            setattr(reminder, name, value)
        try:
            reminder.save(update_fields=list(changes) + ["updated_at"])
        except DatabaseError as e:
            logger.error(f"Failed to update reminder {reminder_id}: {e}")
            raise StoreError("Could not update reminder") from e
        logger.info(f"Updated reminder {reminder_id}: {sorted(changes)}")
        return reminder

    def delete_by_id(self, reminder_id, chat_id: Optional[str] = None) -> None:
        reminder = self.get(reminder_id, chat_id=chat_id)
        try:
            reminder.delete()
        except DatabaseError as e:
            logger.error(f"Failed to delete reminder {reminder_id}: {e}")
            raise StoreError("Could not delete reminder") from e
        logger.info(f"Deleted reminder {reminder_id}")


store = ReminderStore()
