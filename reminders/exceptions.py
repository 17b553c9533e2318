# reminders/exceptions.py


class ReminderError(Exception):
    """Base class for reminder engine failures."""


class StoreError(ReminderError):
    """The reminder store could not be reached or the query failed."""


class NotFound(ReminderError):
    """The targeted reminder does not exist (or belongs to another chat)."""

    def __init__(self, reminder_id):
        self.reminder_id = reminder_id
        super().__init__(f"Reminder {reminder_id} not found")


class SchedulingError(ReminderError):
    """A timer could not be armed for a reminder."""


class UpstreamError(ReminderError):
    """The language model or the chat transport failed."""
