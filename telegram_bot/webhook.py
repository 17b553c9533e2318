# telegram_bot/webhook.py
import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

logger = logging.getLogger(__name__)


@csrf_exempt
def telegram_webhook(request):
    """
    Receives Telegram updates from Telegram webhook.
    - Verifies X-Telegram-Bot-Api-Secret-Token header (if WEBHOOK_SECRET_TOKEN set)
    - Returns 200 quickly after enqueuing the update for background processing
    """
    logger.debug(f"Webhook called with method: {request.method}")

    if request.method != "POST":
        return JsonResponse({"ok": False, "error": "POST required"}, status=405)

    secret_token = settings.WEBHOOK_SECRET_TOKEN
    if secret_token:
        header = request.headers.get("X-Telegram-Bot-Api-Secret-Token")
        if header != secret_token:
            logger.warning("Invalid Telegram secret token on webhook")
            return JsonResponse({"ok": False, "error": "invalid token"}, status=403)

    try:
        update = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.exception("Invalid JSON on webhook")
        return JsonResponse({"ok": False, "error": "invalid json"}, status=400)
    if not isinstance(update, dict):
        return JsonResponse({"ok": False, "error": "invalid update"}, status=400)

    logger.debug(f"Update type: {list(update.keys())}")

    # Enqueue for processing by background worker
    from telegram_bot.tasks import process_telegram_update, process_telegram_update_sync

    try:
        result = process_telegram_update.delay(update)
        logger.debug(f"Update enqueued to Celery with task ID: {result.id}")
    except Exception:
        logger.exception("Failed to enqueue update to Celery, processing synchronously as fallback")
        try:
            process_telegram_update_sync(update)
        except Exception:
            logger.exception("Synchronous fallback also failed")

    # Acknowledge quickly
    return JsonResponse({"ok": True})
