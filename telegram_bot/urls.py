# telegram_bot/urls.py
from django.conf import settings
from django.urls import path

from .webhook import telegram_webhook

urlpatterns = [
    path(settings.TELEGRAM_WEBHOOK_PATH.lstrip('/'), telegram_webhook, name='telegram_webhook'),
]
