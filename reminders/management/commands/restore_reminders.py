from django.core.management.base import BaseCommand

from reminders.recovery import restore_reminders


class Command(BaseCommand):
    help = 'Re-arms timers for every persisted reminder'

    def handle(self, *args, **kwargs):
        report = restore_reminders()
        self.stdout.write(self.style.SUCCESS(f'Restored reminders: {report}'))
        if report.failed:
            self.stdout.write(
                self.style.ERROR(f'Failed to arm reminders: {", ".join(map(str, report.failed))}')
            )
