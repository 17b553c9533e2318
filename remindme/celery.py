# remindme/celery.py
import logging
import os

from celery import Celery
from celery.signals import setup_logging, worker_ready

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'remindme.settings')

logger = logging.getLogger(__name__)

app = Celery('remindme')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()


@setup_logging.connect
def config_loggers(*args, **kwargs):
    """Configure Django logging for Celery workers"""
    from django.conf import settings
    import logging.config

    if hasattr(settings, 'LOGGING'):
        logging.config.dictConfig(settings.LOGGING)


@worker_ready.connect
def restore_reminders_on_startup(sender=None, **kwargs):
    """Re-arm every persisted reminder once the worker is accepting tasks."""
    from django.conf import settings

    if not getattr(settings, 'REMINDER_RESTORE_ON_STARTUP', True):
        logger.info("Reminder restore on startup disabled")
        return

    from reminders.recovery import restore_reminders

    try:
        report = restore_reminders()
        logger.info(f"Restored reminders on worker start: {report}")
    except Exception:
        logger.exception("Failed to restore reminders on worker start")
