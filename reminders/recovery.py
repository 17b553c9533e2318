# reminders/recovery.py
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from django.conf import settings
from django.utils import timezone

from reminders.exceptions import NotFound, SchedulingError, StoreError
from reminders.scheduler import get_scheduler
from reminders.store import store

logger = logging.getLogger(__name__)


@dataclass
class RecoveryReport:
    armed: List[int] = field(default_factory=list)
    overdue: List[int] = field(default_factory=list)  # fired immediately
    purged: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def __str__(self):
        return (
            f"armed={len(self.armed)} overdue={len(self.overdue)} "
            f"purged={len(self.purged)} failed={len(self.failed)}"
        )


def restore_reminders(now=None) -> RecoveryReport:
    """Re-arm every persisted reminder after a restart.

    Reminders whose time passed less than ``REMINDER_MISSED_GRACE_MINUTES``
    ago fire right away; older ones are purged without a notification.
    """
    now = now or timezone.now()
    grace = timedelta(minutes=settings.REMINDER_MISSED_GRACE_MINUTES)
    scheduler = get_scheduler()
    report = RecoveryReport()

    reminders = store.list_all()
    logger.info(f"Restoring {len(reminders)} persisted reminder(s)")

    for reminder in reminders:
        if reminder.time < now - grace:
            logger.warning(
                f"Purging reminder {reminder.id} for chat {reminder.chat_id}: "
                f"missed at {reminder.time}, beyond the {grace} grace window"
            )
            try:
                store.delete_by_id(reminder.id)
            except NotFound:
                pass
            except StoreError as e:
                logger.error(f"Could not purge reminder {reminder.id}: {e}")
                report.failed.append(reminder.id)
                continue
            report.purged.append(reminder.id)
            continue

        overdue = reminder.time <= now
        try:
            scheduler.arm(reminder.id, now if overdue else reminder.time)
        except SchedulingError as e:
            logger.error(f"Could not restore reminder {reminder.id}: {e}")
            report.failed.append(reminder.id)
            continue

        if overdue:
            report.overdue.append(reminder.id)
        else:
            report.armed.append(reminder.id)

    logger.info(f"Reminder restore finished: {report}")
    return report
