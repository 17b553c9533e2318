# reminders/tasks.py
import logging

from celery import shared_task
from django.db import transaction

from reminders.models import Reminder
from reminders.scheduler import get_scheduler
from telegram_bot.messaging import send_message_sync

logger = logging.getLogger(__name__)

REMINDER_MESSAGE = "⏰ Hi, this is your REMINDER: {title}"


@shared_task(bind=True, name="reminders.fire_reminder", ignore_result=True)
def fire_reminder(self, reminder_id):
    """
    Notify the reminder's chat and remove the reminder.

    Delivery is at-most-once: a failed send is logged and the reminder is
    still deleted; there are no retries.

    Args:
        reminder_id: primary key of the reminder this job was armed for.
    """
    job_id = self.request.id
    logger.info(f"Firing reminder {reminder_id} (job {job_id})")

    # Lock the row so an update/delete on the same reminder waits for us
    with transaction.atomic():
        reminder = Reminder.objects.select_for_update().filter(pk=reminder_id).first()

        if reminder is None:
            logger.info(f"Reminder {reminder_id} no longer exists; skipping job {job_id}")
            get_scheduler().forget(reminder_id, job_id)
            return {"status": "skipped", "reason": "missing"}

        if reminder.job_id != job_id:
            logger.info(
                f"Job {job_id} is stale for reminder {reminder_id} (armed: {reminder.job_id or 'none'}); skipping"
            )
            return {"status": "skipped", "reason": "stale"}

        delivered = True
        try:
            send_message_sync(reminder.chat_id, REMINDER_MESSAGE.format(title=reminder.title))
        except Exception as e:
            delivered = False
            logger.error(f"Failed to deliver reminder {reminder_id} to chat {reminder.chat_id}: {e}")

        reminder.delete()

    get_scheduler().forget(reminder_id, job_id)
    logger.info(f"Reminder {reminder_id} fired (delivered={delivered}) and removed")
    return {"status": "fired", "delivered": delivered}
