from datetime import timedelta

from django.core.management.base import BaseCommand

from payments.services import PaymentReconciliationService


class Command(BaseCommand):
    help = 'Complete pending payments whose processor intent has already succeeded'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report which payments would be completed without changing anything',
        )
        parser.add_argument(
            '--max-age-hours',
            type=int,
            default=None,
            help='Only check payments created within this many hours',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        max_age_hours = options['max_age_hours']

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No changes will be made'))

        report = PaymentReconciliationService.reconcile_pending_intents(
            max_age=timedelta(hours=max_age_hours) if max_age_hours else None,
            dry_run=dry_run,
        )

        self.stdout.write(f'Checked {report.checked} pending payment(s) with a processor intent')

        for payment_id in report.would_complete:
            self.stdout.write(f'  - would complete {payment_id}')
        for payment_id in report.completed:
            self.stdout.write(f'  - completed {payment_id}')
        for payment_id in report.errors:
            self.stdout.write(self.style.ERROR(f'  - failed {payment_id}'))

        if report.errors:
            self.stdout.write(
                self.style.WARNING(f'{len(report.errors)} payment(s) need manual attention')
            )
        elif dry_run:
            self.stdout.write(
                self.style.WARNING(f'DRY RUN: {len(report.would_complete)} payment(s) would be completed.')
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(f'Reconciled {len(report.completed)} payment(s).')
            )
