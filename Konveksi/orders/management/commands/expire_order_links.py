from django.core.management.base import BaseCommand

from orders.links import deactivate_expired_links


class Command(BaseCommand):
    help = "Deactivate order links whose expiry time has passed."

    def handle(self, *args, **options):
        count = deactivate_expired_links()
        if count:
            self.stdout.write(self.style.SUCCESS(f"Deactivated {count} expired order links."))
        else:
            self.stdout.write("No order links required deactivation.")
