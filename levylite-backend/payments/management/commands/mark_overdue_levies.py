from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from payments.services import mark_overdue_items


class Command(BaseCommand):
    help = "Mark pending and sent levy items past their due date as overdue."

    def add_arguments(self, parser):
        parser.add_argument("--as-of", dest="as_of", help="Reference date (YYYY-MM-DD); defaults to today")

    def handle(self, *args, **options):
        today = None
        if options.get("as_of"):
            try:
                today = parse_date(options["as_of"])
            except ValueError:
                today = None
            if today is None:
                raise CommandError(f"Invalid date: {options['as_of']}")
        updated = mark_overdue_items(today=today)
        self.stdout.write(self.style.SUCCESS(f"Marked {updated} levy items overdue"))
