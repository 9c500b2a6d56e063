from django.core.management.base import BaseCommand

from maintenance.services import reconcile_caches


class Command(BaseCommand):
    help = "Rebuild order completion and material stock caches from their entries."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report drift; do not rewrite any cache.",
        )

    def handle(self, *args, **options):
        report = reconcile_caches(fix=not options["dry_run"])
        for line in report.drift:
            self.stdout.write(self.style.WARNING(line))
        summary = (
            f"Checked {report.orders_checked} orders and {report.materials_checked} materials; "
            f"{len(report.drift)} drifted."
        )
        if report.drift and not report.fixed:
            self.stdout.write(self.style.ERROR(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))
