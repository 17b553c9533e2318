# reminders/scheduler.py
"""
Job scheduler for reminders.

Each reminder gets exactly one armed Celery ETA task. The task id is also
written to ``Reminder.job_id``; the firing task compares its own id against
that column, so a task that was replaced (re-armed) or cancelled turns into a
no-op even if the broker still delivers it.

The in-process registry only mirrors jobs armed or fired by this process;
``Reminder.job_id`` is the source of truth. Under a prefork worker each child
keeps its own registry, so entries for jobs fired elsewhere are pruned
against the persisted ``job_id`` whenever a job is armed.
"""
import logging
import threading
import uuid
from typing import Dict, List, Optional

from celery import current_app
from django.db import DatabaseError

from reminders.exceptions import SchedulingError
from reminders.models import Reminder

logger = logging.getLogger(__name__)


def revoke_job(job_id: str) -> None:
    current_app.control.revoke(job_id)


class JobScheduler:
    def __init__(self):
        self._jobs: Dict[str, str] = {}
        self._lock = threading.Lock()

    def arm(self, reminder_id, fires_at, on_fire=None) -> str:
        """Schedule ``on_fire`` for ``fires_at``, replacing any existing job."""
        if on_fire is None:
            from reminders.tasks import fire_reminder
            on_fire = fire_reminder

        key = str(reminder_id)
        self.cancel(reminder_id)

        job_id = uuid.uuid4().hex
        try:
            updated = Reminder.objects.filter(pk=reminder_id).update(job_id=job_id)
        except (DatabaseError, ValueError, TypeError) as e:
            raise SchedulingError(f"Could not arm reminder {reminder_id}: {e}") from e
        if not updated:
            raise SchedulingError(f"Could not arm reminder {reminder_id}: it does not exist")

        self.prune()
        with self._lock:
            self._jobs[key] = job_id
        try:
            on_fire.apply_async((reminder_id,), eta=fires_at, task_id=job_id)
        except Exception as e:
            self.forget(reminder_id, job_id)
            Reminder.objects.filter(pk=reminder_id, job_id=job_id).update(job_id="")
            logger.error(f"Failed to enqueue job for reminder {reminder_id}: {e}")
            raise SchedulingError(f"Could not arm reminder {reminder_id}") from e

        logger.info(f"Armed reminder {reminder_id} for {fires_at} (job {job_id})")
        return job_id

    def cancel(self, reminder_id) -> bool:
        """Cancel the job for ``reminder_id``. Returns False when none was armed."""
        key = str(reminder_id)
        with self._lock:
            job_ids = {self._jobs.pop(key, None)}

        try:
            persisted = (
                Reminder.objects.filter(pk=reminder_id)
                .values_list("job_id", flat=True)
                .first()
            )
            if persisted:
                Reminder.objects.filter(pk=reminder_id).update(job_id="")
        except (ValueError, TypeError):
            persisted = None
        except DatabaseError as e:
            raise SchedulingError(f"Could not cancel reminder {reminder_id}: {e}") from e

        job_ids.add(persisted)
        job_ids.discard(None)
        job_ids.discard("")
        if not job_ids:
            logger.debug(f"No job armed for reminder {reminder_id}; nothing to cancel")
            return False

        for job_id in job_ids:
            try:
                revoke_job(job_id)
            except Exception as e:
                # the cleared job_id already turns the task into a no-op
                logger.warning(f"Failed to revoke job {job_id} for reminder {reminder_id}: {e}")
        logger.info(f"Cancelled job(s) {sorted(job_ids)} for reminder {reminder_id}")
        return True

    def restore(self, reminder_id) -> Optional[str]:
        """
        Re-arm a reminder at its stored time after a failed mutation.

        ``cancel`` revokes at the broker immediately, but a rolled-back
        transaction puts the revoked job id back on the row, which would
        leave the reminder stored and never firing.

        Returns:
            The new job id, or None when the reminder is gone or arming fails.
        """
        try:
            reminder = Reminder.objects.filter(pk=reminder_id).first()
        except (DatabaseError, ValueError, TypeError) as e:
            logger.error(f"Could not reload reminder {reminder_id} to restore its job: {e}")
            return None
        if reminder is None:
            return None

        try:
            return self.arm(reminder.id, reminder.time)
        except SchedulingError as e:
            logger.error(f"Reminder {reminder_id} is left without a job until the next restore: {e}")
            return None

    def prune(self) -> None:
        """Drop registry entries whose job is no longer the one on the row."""
        with self._lock:
            snapshot = dict(self._jobs)
        if not snapshot:
            return
        try:
            persisted = {
                str(pk): job_id
                for pk, job_id in Reminder.objects.filter(pk__in=list(snapshot)).values_list("pk", "job_id")
            }
        except (DatabaseError, ValueError, TypeError) as e:
            logger.warning(f"Skipping job registry prune: {e}")
            return
        with self._lock:
            for key, job_id in snapshot.items():
                if persisted.get(key) != job_id and self._jobs.get(key) == job_id:
                    self._jobs.pop(key, None)

    def forget(self, reminder_id, job_id: Optional[str] = None) -> None:
        """Drop the registry entry, only if it still points at ``job_id`` when given."""
        key = str(reminder_id)
        with self._lock:
            if job_id is None or self._jobs.get(key) == job_id:
                self._jobs.pop(key, None)

    def job_for(self, reminder_id) -> Optional[str]:
        with self._lock:
            return self._jobs.get(str(reminder_id))

    def is_armed(self, reminder_id) -> bool:
        return self.job_for(reminder_id) is not None

    def armed_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()


_scheduler: Optional[JobScheduler] = None


def get_scheduler() -> JobScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = JobScheduler()
    return _scheduler
