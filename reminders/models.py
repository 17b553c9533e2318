# reminders/models.py
from django.db import models


class Reminder(models.Model):
    chat_id = models.CharField(max_length=50, db_index=True)
    title = models.CharField(max_length=255)
    time = models.DateTimeField()
    job_id = models.CharField(max_length=64, blank=True, default="")  # currently armed task
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.title} @ {self.time.strftime('%Y-%m-%d %H:%M')}"


class ChatSession(models.Model):
    """Per-chat conversation context and interaction flow state."""

    STATE_IDLE = "idle"
    STATE_AWAITING_DELETE_CONFIRM = "awaiting_delete_confirm"
    STATE_AWAITING_EDIT_FIELD = "awaiting_edit_field"
    STATE_CHOICES = [
        (STATE_IDLE, "Idle"),
        (STATE_AWAITING_DELETE_CONFIRM, "Awaiting delete confirmation"),
        (STATE_AWAITING_EDIT_FIELD, "Awaiting new field values"),
    ]

    chat_id = models.CharField(max_length=50, unique=True)
    user_name = models.CharField(max_length=255, blank=True, default="")
    conversation_history = models.JSONField(default=list, blank=True)  # rolling short-term chat
    state = models.CharField(max_length=32, choices=STATE_CHOICES, default=STATE_IDLE)
    state_reminder_id = models.CharField(max_length=50, blank=True, default="")
    state_fields = models.JSONField(default=list, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    @classmethod
    def for_chat(cls, chat_id, user_name=None):
        session, _ = cls.objects.get_or_create(chat_id=str(chat_id))
        if user_name and session.user_name != user_name:
            session.user_name = user_name
            session.save(update_fields=["user_name", "updated_at"])
        return session

    @property
    def awaiting_edit(self):
        return self.state == self.STATE_AWAITING_EDIT_FIELD and bool(self.state_reminder_id)

    def transition(self, state, reminder_id="", fields=None):
        self.state = state
        self.state_reminder_id = str(reminder_id or "")
        self.state_fields = list(fields or [])
        self.save(update_fields=["state", "state_reminder_id", "state_fields", "updated_at"])

    def reset_state(self):
        self.transition(self.STATE_IDLE)

    def append_turn(self, role, content, limit):
        history = list(self.conversation_history or [])
        history.append({"role": role, "content": content})
        if len(history) > limit:
            history = history[-limit:]
        self.conversation_history = history
        self.save(update_fields=["conversation_history", "updated_at"])

    def clear_history(self):
        self.conversation_history = []
        self.save(update_fields=["conversation_history", "updated_at"])

    def __str__(self):
        return f"ChatSession({self.chat_id}, {self.state})"
