import json
import logging
from typing import Any, Dict, List, Optional

import openai
from django.conf import settings
from django.utils import timezone
from openai import OpenAI

from reminders.exceptions import NotFound, StoreError, UpstreamError
from reminders.models import ChatSession
from reminders.store import store
from reminders.tools.reminder_tool import ReminderTool, ToolResult, format_display_time

logger = logging.getLogger(__name__)

client = OpenAI(
    api_key=settings.LLM_API_KEY,
    base_url=settings.LLM_BASE_URL,
    timeout=settings.LLM_TIMEOUT_SECONDS,
)


SYSTEM_PROMPT = """
    You are RemindMeBot — an intelligent reminder assistant for Telegram.
    Your job is to help the user create, view, update, and delete reminders.

    CONTEXT:
    - USER NAME: {user_name}
    - CHAT ID: {chat_id}
    - CURRENT TIME: {current_time} (timezone: {timezone_name})

    CORE BEHAVIOR RULES

    1) TOOL USAGE RULES
    Use tools ONLY when you have enough information to perform the action.

    • Use create_reminders(...) ONLY when BOTH a clear title AND a specific time are provided.
      Examples of valid triggers:
        - "remind me to drink water at 5pm"
        - "set a reminder tomorrow at 10am to call mom"
      Several reminders in one message go into one create_reminders call.

    • Use list_reminders when the user asks:
        - "show my reminders"
        - "list my reminders"
        - "what reminders do I have?"

    • Use delete_reminder when the user wants to delete a reminder.
      (This tool only SHOWS selectable reminders — deletion happens through buttons.)

    • Use update_reminder when the user wants to modify a reminder.
      (Actual editing is handled by update_reminder_by_id after the user picks a reminder and gives new data.)

    • Use update_reminder_by_id(id, params) ONLY when:
        - you already know which reminder is selected (from an UPDATE IN PROGRESS note), AND
        - the user has provided the new title, time, or both.

    2) WHEN NOT TO USE TOOLS (respond with normal text)
    Respond normally when:
    - the user greets you ("hi", "hello", etc.)
    - the user gives incomplete reminder info (missing title or missing time)
    - the user types anything NOT related to reminders

    EXAMPLES:
    User: "remind me to call mom"
    → Ask: "What time should I remind you?"

    User: "set at 5pm"
    → Ask: "What should I remind you about at 5pm?"

    3) DATE / TIME HANDLING
    Always convert times into an ISO 8601 string such as "2025-11-19T14:00:00".
    Interpret natural language times ("tomorrow morning", "in 2 hours") using CURRENT TIME.
    Never schedule a time in the past.

    4) ONGOING UPDATE FLOWS
    If a system note says an UPDATE IN PROGRESS, the user's next message MUST be interpreted
    as the new value(s) for that reminder, even if it looks like general conversation.
    Call update_reminder_by_id with that id and only the fields named in the note.

    5) SMART TITLE INTERPRETATION
    If the user sends a task or action (e.g. "buy soap", "go gym", "pay bills", "take medicine")
    without a time:
    → Treat the message as a REMINDER TITLE, do NOT reject it.
    → Ask: "What time should I remind you to <task>?"
    Only do this when the message is not a question and not unrelated chat.
    If a time is included ("go gym tonight"), interpret it and schedule directly.

    6) STRICT NON-REMINDER BEHAVIOR
    For non-reminder queries, reply politely that you only handle reminders, without using tools.

    Keep answers short, friendly, and helpful. Ask clarifying questions ONLY when required.
"""

EDIT_FLOW_NOTE = (
    "UPDATE IN PROGRESS: the user picked reminder id {reminder_id} ({current}). "
    "Their next message gives the new {fields}. Call update_reminder_by_id with id "
    "\"{reminder_id}\" and params containing only {field_keys}. Do not ask for anything else."
)

FALLBACK_REPLY = "Sorry, I didn't catch that. Could you rephrase?"


class RemindMeAgent:
    """Per-chat conversation orchestrator: prompt, LLM call, tool routing."""

    def __init__(self, chat_id, user_name: str = ""):
        self.chat_id = str(chat_id)
        self.model = settings.LLM_MODEL

        self.reminder = ReminderTool(chat_id=self.chat_id)
        self.tools = {
            "create_reminders": self.reminder.create_reminders,
            "list_reminders": self.reminder.list_reminders,
            "delete_reminder": self.reminder.delete_reminder,
            "update_reminder": self.reminder.update_reminder,
            "update_reminder_by_id": self.reminder.update_reminder_by_id,
        }

        self.session = ChatSession.for_chat(self.chat_id, user_name)
        self.user_name = self.session.user_name or "there"

    def _system_prompt(self) -> str:
        now = timezone.localtime()
        return SYSTEM_PROMPT.format(
            user_name=self.user_name,
            chat_id=self.chat_id,
            current_time=now.strftime('%A, %B %d, %Y %H:%M:%S'),
            timezone_name=timezone.get_current_timezone_name(),
        )

    def _flow_note(self) -> Optional[str]:
        if not self.session.awaiting_edit:
            return None
        reminder_id = self.session.state_reminder_id
        fields = [f for f in self.session.state_fields if f in ("title", "time")] or ["title", "time"]
        try:
            reminder = store.get(reminder_id, chat_id=self.chat_id)
            current = f"currently '{reminder.title}' at {format_display_time(reminder.time)}"
        except (NotFound, StoreError):
            current = "details unavailable"
        return EDIT_FLOW_NOTE.format(
            reminder_id=reminder_id,
            current=current,
            fields=" and ".join(fields),
            field_keys=", ".join(fields),
        )

    def _build_messages(self, message: str) -> List[Dict[str, Any]]:
        messages = [{"role": "system", "content": self._system_prompt()}]
        messages += list(self.session.conversation_history or [])
        note = self._flow_note()
        if note:
            messages.append({"role": "system", "content": note})
        messages.append({"role": "user", "content": message})
        return messages

    def _complete(self, messages):
        try:
            return client.chat.completions.create(
                model=self.model,
                messages=messages,
                tools=ReminderTool.function_schemas(),
                tool_choice="auto",
                temperature=settings.LLM_TEMPERATURE,
            )
        except openai.OpenAIError as e:
            logger.error(f"LLM request failed for chat {self.chat_id}: {e}")
            raise UpstreamError("Language model request failed") from e

    def _scoped_args(self, fn_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """Pin update_reminder_by_id to the reminder and fields the user picked."""
        if fn_name != "update_reminder_by_id" or not self.session.awaiting_edit:
            return args
        params = args.get("params") if isinstance(args.get("params"), dict) else {}
        allowed = set(self.session.state_fields or ["title", "time"])
        if str(args.get("id")) != self.session.state_reminder_id:
            logger.info(
                f"Overriding update id {args.get('id')} with selected reminder {self.session.state_reminder_id}"
            )
        return {
            "id": self.session.state_reminder_id,
            "params": {k: v for k, v in params.items() if k in allowed},
        }

    def _run_tool(self, tool_call) -> ToolResult:
        fn_name = tool_call.function.name
        fn = self.tools.get(fn_name)
        if not fn:
            logger.error(f"Tool '{fn_name}' not found for chat {self.chat_id}")
            return ToolResult("Sorry, I can't do that yet.", success=False)

        try:
            args = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError:
            logger.error(f"Undecodable arguments for {fn_name}: {tool_call.function.arguments!r}")
            return ToolResult("Sorry, I couldn't process that request.", success=False)
        if not isinstance(args, dict):
            return ToolResult("Sorry, I couldn't process that request.", success=False)

        args = self._scoped_args(fn_name, args)
        logger.info(f"EXECUTING {fn_name} for chat {self.chat_id} with args: {args}")
        try:
            result = fn(**args)
        except TypeError as e:
            logger.error(f"Bad arguments for {fn_name}: {e}")
            return ToolResult("Sorry, I couldn't process that request.", success=False)
        logger.info(f"RESULT {fn_name} for chat {self.chat_id}: success={result.success}")
        return result

    def chat(self, message: str) -> List[ToolResult]:
        """Main entrypoint: one conversational turn, returns the replies to send."""
        logger.info(f"Received message from chat {self.chat_id}: '{message}'")

        messages = self._build_messages(message)
        logger.debug(f"Decision context for chat {self.chat_id}: {len(messages)} messages, state={self.session.state}")

        response = self._complete(messages)
        msg = response.choices[0].message

        if msg.tool_calls:
            logger.info(f"DECISION: {len(msg.tool_calls)} tool call(s) for chat {self.chat_id}")
            results = []
            try:
                for tool_call in msg.tool_calls:
                    results.append(self._run_tool(tool_call))
            finally:
                # A tool-driven turn closes the conversation and any pending flow
                self.session.clear_history()
                self.session.reset_state()
            return results

        reply = msg.content or FALLBACK_REPLY
        logger.info(f"DECISION: chat reply for chat {self.chat_id}: '{reply[:100]}{'...' if len(reply) > 100 else ''}'")

        limit = settings.MAX_MEMORY_MESSAGES
        self.session.append_turn("user", message, limit)
        self.session.append_turn("assistant", reply, limit)
        return [ToolResult(reply)]
