from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError, transaction

from common.errors import LevyLiteError
from schemes.portal import reset_owner_portal
from schemes.services import find_owners_by_email


class Command(BaseCommand):
    help = "Reset owner portal access (status, timestamps and linked user) for every owner with the given email."

    def add_arguments(self, parser):
        parser.add_argument("email", help="Owner email address (case-insensitive)")

    def handle(self, *args, **options):
        email = options["email"]
        try:
            # all matches are reset together or not at all
            with transaction.atomic():
                owners = list(find_owners_by_email(email))
                for owner in owners:
                    reset_owner_portal(owner)
        except LevyLiteError as exc:
            raise CommandError(f"Failed to reset owner portal for {email}: {exc.message}")
        except DatabaseError as exc:
            raise CommandError(f"Database error resetting owner portal for {email}: {exc}")

        if not owners:
            self.stdout.write(f"No owner found with email: {email}")
            return
        for owner in owners:
            self.stdout.write(
                self.style.SUCCESS(f"Reset portal fields for: {owner.first_name} {owner.last_name} ({owner.email})")
            )
