# Shared fixtures for the reminder engine and bot tests.

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from django.utils import timezone

from reminders.models import Reminder
from reminders.scheduler import get_scheduler
from reminders.tasks import fire_reminder


@pytest.fixture(autouse=True)
def scheduler():
    sched = get_scheduler()
    sched.clear()
    yield sched
    sched.clear()


@pytest.fixture(autouse=True)
def celery_jobs():
    """Keep ETA tasks and revokes away from the broker; expose the mocks."""
    with patch.object(fire_reminder, "apply_async") as apply_async, \
            patch("reminders.scheduler.revoke_job") as revoke:
        yield SimpleNamespace(apply_async=apply_async, revoke=revoke)


@pytest.fixture
def delivered():
    with patch("reminders.tasks.send_message_sync") as send:
        yield send


@pytest.fixture
def now():
    return timezone.now()


@pytest.fixture
def make_reminder(db, now):
    def _make(title="drink water", chat_id="42", time=None):
        return Reminder.objects.create(
            chat_id=chat_id,
            title=title,
            time=time or now + timedelta(hours=1),
        )
    return _make


