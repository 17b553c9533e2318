# Tests for re-arming persisted reminders after a restart.

from datetime import timedelta
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import call_command

from reminders.exceptions import StoreError
from reminders.models import Reminder
from reminders.recovery import restore_reminders


@pytest.mark.django_db
class TestRestoreReminders:
    def test_future_reminders_are_armed_at_their_time(self, scheduler, celery_jobs, make_reminder, now):
        first = make_reminder("a")
        second = make_reminder("b", chat_id="7", time=now + timedelta(days=2))

        report = restore_reminders(now=now)

        assert sorted(report.armed) == sorted([first.id, second.id])
        assert scheduler.is_armed(first.id) and scheduler.is_armed(second.id)
        etas = {call.args[0][0]: call.kwargs["eta"] for call in celery_jobs.apply_async.call_args_list}
        assert etas[first.id] == first.time
        assert etas[second.id] == second.time

    def test_recently_missed_reminder_fires_immediately(self, scheduler, celery_jobs, make_reminder, now, settings):
        settings.REMINDER_MISSED_GRACE_MINUTES = 60
        missed = make_reminder(time=now - timedelta(minutes=10))

        report = restore_reminders(now=now)

        assert report.overdue == [missed.id]
        celery_jobs.apply_async.assert_called_once()
        assert celery_jobs.apply_async.call_args.kwargs["eta"] == now

    def test_long_missed_reminder_is_purged(self, scheduler, celery_jobs, make_reminder, now, settings):
        settings.REMINDER_MISSED_GRACE_MINUTES = 60
        stale = make_reminder(time=now - timedelta(hours=3))

        report = restore_reminders(now=now)

        assert report.purged == [stale.id]
        assert not Reminder.objects.filter(pk=stale.id).exists()
        celery_jobs.apply_async.assert_not_called()

    def test_restart_replaces_existing_jobs(self, scheduler, celery_jobs, make_reminder, now):
        reminder = make_reminder()
        Reminder.objects.filter(pk=reminder.id).update(job_id="job-before-restart")

        restore_reminders(now=now)

        celery_jobs.revoke.assert_called_once_with("job-before-restart")
        reminder.refresh_from_db()
        assert reminder.job_id == scheduler.job_for(reminder.id)

    def test_scheduling_failure_is_reported(self, celery_jobs, make_reminder, now):
        reminder = make_reminder()
        celery_jobs.apply_async.side_effect = ConnectionError("broker down")

        report = restore_reminders(now=now)

        assert report.failed == [reminder.id]
        assert Reminder.objects.filter(pk=reminder.id).exists()

    def test_purge_failure_does_not_stop_restore(self, scheduler, celery_jobs, make_reminder, now, settings):
        settings.REMINDER_MISSED_GRACE_MINUTES = 60
        stale = make_reminder("stale", time=now - timedelta(hours=3))
        future = make_reminder("future")

        with patch("reminders.recovery.store.delete_by_id", side_effect=StoreError("down")):
            report = restore_reminders(now=now)

        assert report.failed == [stale.id]
        assert report.armed == [future.id]
        assert scheduler.is_armed(future.id)

    def test_management_command(self, celery_jobs, make_reminder):
        make_reminder()
        out = StringIO()

        call_command("restore_reminders", stdout=out)

        assert "armed=1" in out.getvalue()
