import asyncio

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from telegram import Bot


class Command(BaseCommand):
    help = 'Sets up Telegram webhook'

    def add_arguments(self, parser):
        parser.add_argument('--delete', action='store_true', help='Only remove the current webhook')

    def handle(self, *args, **kwargs):
        if not kwargs['delete'] and not settings.TELEGRAM_WEBHOOK_URL:
            raise CommandError('TELEGRAM_WEBHOOK_URL is not configured')

        async def setup():
            async with Bot(token=settings.TELEGRAM_BOT_TOKEN) as bot:
                # Remove any existing webhook
                await bot.delete_webhook()
                if kwargs['delete']:
                    return None

                webhook_url = f"{settings.TELEGRAM_WEBHOOK_URL.rstrip('/')}/{settings.TELEGRAM_WEBHOOK_PATH.lstrip('/')}"
                success = await bot.set_webhook(
                    url=webhook_url,
                    secret_token=settings.WEBHOOK_SECRET_TOKEN or None,
                    allowed_updates=['message', 'edited_message', 'callback_query'],
                )
                return webhook_url if success else False

        result = asyncio.run(setup())
        if result is None:
            self.stdout.write(self.style.SUCCESS('Webhook removed'))
        elif result:
            self.stdout.write(self.style.SUCCESS(f'Successfully set webhook to {result}'))
        else:
            self.stdout.write(self.style.ERROR('Failed to set webhook'))
