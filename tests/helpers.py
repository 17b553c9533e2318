import json
from types import SimpleNamespace

from reminders.tasks import fire_reminder


def run_job(reminder_id, job_id):
    """Run the fire task the way the worker would when its ETA arrives."""
    return fire_reminder.apply(args=(reminder_id,), task_id=job_id, throw=True).result


def completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def tool_call(name, arguments=None, call_id="call_1"):
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments or {})
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=arguments),
    )
