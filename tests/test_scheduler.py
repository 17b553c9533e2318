# Tests for the job scheduler and the reminder firing task.

from datetime import timedelta

import pytest

from reminders.exceptions import SchedulingError, UpstreamError
from reminders.models import Reminder
from tests.helpers import run_job


@pytest.mark.django_db
class TestArm:
    def test_arm_registers_one_job(self, scheduler, celery_jobs, make_reminder):
        reminder = make_reminder()

        job_id = scheduler.arm(reminder.id, reminder.time)

        reminder.refresh_from_db()
        assert reminder.job_id == job_id
        assert scheduler.job_for(reminder.id) == job_id
        celery_jobs.apply_async.assert_called_once_with((reminder.id,), eta=reminder.time, task_id=job_id)

    def test_rearm_cancels_previous_job(self, scheduler, celery_jobs, make_reminder, now):
        reminder = make_reminder()
        old_job = scheduler.arm(reminder.id, reminder.time)

        new_job = scheduler.arm(reminder.id, now + timedelta(hours=2))

        assert new_job != old_job
        celery_jobs.revoke.assert_called_once_with(old_job)
        assert scheduler.armed_ids() == [str(reminder.id)]
        reminder.refresh_from_db()
        assert reminder.job_id == new_job

    def test_arm_missing_reminder(self, scheduler, now):
        with pytest.raises(SchedulingError):
            scheduler.arm(424242, now)
        assert not scheduler.is_armed(424242)

    def test_enqueue_failure_leaves_nothing_armed(self, scheduler, celery_jobs, make_reminder):
        reminder = make_reminder()
        celery_jobs.apply_async.side_effect = ConnectionError("broker down")

        with pytest.raises(SchedulingError):
            scheduler.arm(reminder.id, reminder.time)

        reminder.refresh_from_db()
        assert reminder.job_id == ""
        assert not scheduler.is_armed(reminder.id)


@pytest.mark.django_db
class TestCancel:
    def test_cancel_revokes_and_clears(self, scheduler, celery_jobs, make_reminder):
        reminder = make_reminder()
        job_id = scheduler.arm(reminder.id, reminder.time)

        assert scheduler.cancel(reminder.id) is True

        celery_jobs.revoke.assert_called_once_with(job_id)
        assert not scheduler.is_armed(reminder.id)
        reminder.refresh_from_db()
        assert reminder.job_id == ""

    @pytest.mark.parametrize("reminder_id", [99999, "not-an-id"])
    def test_cancel_unknown_is_noop(self, scheduler, celery_jobs, reminder_id):
        assert scheduler.cancel(reminder_id) is False
        celery_jobs.revoke.assert_not_called()

    def test_cancel_after_fire_is_noop(self, scheduler, celery_jobs, delivered, make_reminder):
        reminder = make_reminder()
        job_id = scheduler.arm(reminder.id, reminder.time)
        run_job(reminder.id, job_id)

        assert scheduler.cancel(reminder.id) is False

    def test_revoke_failure_is_not_fatal(self, scheduler, celery_jobs, make_reminder):
        reminder = make_reminder()
        scheduler.arm(reminder.id, reminder.time)
        celery_jobs.revoke.side_effect = RuntimeError("no broker")

        assert scheduler.cancel(reminder.id) is True
        reminder.refresh_from_db()
        assert reminder.job_id == ""

    def test_cancel_uses_persisted_job_from_other_process(self, scheduler, celery_jobs, make_reminder):
        reminder = make_reminder()
        Reminder.objects.filter(pk=reminder.id).update(job_id="job-from-web-worker")

        assert scheduler.cancel(reminder.id) is True
        celery_jobs.revoke.assert_called_once_with("job-from-web-worker")


@pytest.mark.django_db
class TestRegistry:
    def test_arm_prunes_jobs_fired_by_another_process(self, scheduler, make_reminder):
        fired_elsewhere = make_reminder("a")
        rearmed_elsewhere = make_reminder("b")
        other = make_reminder("c")
        scheduler.arm(fired_elsewhere.id, fired_elsewhere.time)
        scheduler.arm(rearmed_elsewhere.id, rearmed_elsewhere.time)
        Reminder.objects.filter(pk=fired_elsewhere.id).delete()
        Reminder.objects.filter(pk=rearmed_elsewhere.id).update(job_id="job-from-another-child")

        scheduler.arm(other.id, other.time)

        assert scheduler.armed_ids() == [str(other.id)]

    def test_restore_rearms_at_stored_time(self, scheduler, celery_jobs, make_reminder):
        reminder = make_reminder()
        Reminder.objects.filter(pk=reminder.id).update(job_id="revoked-job")

        job_id = scheduler.restore(reminder.id)

        celery_jobs.revoke.assert_called_once_with("revoked-job")
        assert celery_jobs.apply_async.call_args.kwargs == {"eta": reminder.time, "task_id": job_id}
        reminder.refresh_from_db()
        assert reminder.job_id == job_id

    def test_restore_missing_reminder(self, scheduler, celery_jobs):
        assert scheduler.restore(424242) is None
        celery_jobs.apply_async.assert_not_called()

    def test_restore_reports_scheduling_failure(self, scheduler, celery_jobs, make_reminder):
        reminder = make_reminder()
        celery_jobs.apply_async.side_effect = ConnectionError("broker down")

        assert scheduler.restore(reminder.id) is None
        assert not scheduler.is_armed(reminder.id)


@pytest.mark.django_db
class TestFire:
    def test_fire_notifies_once_and_deletes(self, scheduler, delivered, make_reminder):
        reminder = make_reminder("drink water")
        job_id = scheduler.arm(reminder.id, reminder.time)

        result = run_job(reminder.id, job_id)

        assert result["status"] == "fired"
        delivered.assert_called_once_with("42", "⏰ Hi, this is your REMINDER: drink water")
        assert not Reminder.objects.filter(pk=reminder.id).exists()
        assert not scheduler.is_armed(reminder.id)

        # the same ETA delivered again finds nothing to do
        assert run_job(reminder.id, job_id)["status"] == "skipped"
        assert delivered.call_count == 1

    def test_stale_job_does_not_fire(self, scheduler, delivered, make_reminder, now):
        reminder = make_reminder()
        old_job = scheduler.arm(reminder.id, reminder.time)
        scheduler.arm(reminder.id, now + timedelta(hours=5))

        result = run_job(reminder.id, old_job)

        assert result == {"status": "skipped", "reason": "stale"}
        delivered.assert_not_called()
        assert Reminder.objects.filter(pk=reminder.id).exists()

    def test_cancelled_job_does_not_fire(self, scheduler, delivered, make_reminder):
        reminder = make_reminder()
        job_id = scheduler.arm(reminder.id, reminder.time)
        scheduler.cancel(reminder.id)

        assert run_job(reminder.id, job_id)["status"] == "skipped"
        delivered.assert_not_called()

    def test_failed_delivery_still_removes_reminder(self, scheduler, delivered, make_reminder):
        reminder = make_reminder()
        job_id = scheduler.arm(reminder.id, reminder.time)
        delivered.side_effect = UpstreamError("telegram down")

        result = run_job(reminder.id, job_id)

        assert result == {"status": "fired", "delivered": False}
        assert delivered.call_count == 1
        assert not Reminder.objects.filter(pk=reminder.id).exists()
