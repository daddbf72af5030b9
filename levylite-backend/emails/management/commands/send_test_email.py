from django.core.management.base import BaseCommand, CommandError

from emails.models import EmailStatus
from emails.services import email_enabled, send_templated_email
from organisations.models import Organisation


class Command(BaseCommand):
    help = "Send one templated email to check mail delivery (template defaults to test_message)."

    def add_arguments(self, parser):
        parser.add_argument("--to", dest="to_address", required=True, help="Recipient address")
        parser.add_argument("--template", default="test_message", help="Template name")
        parser.add_argument("--organisation", help="Organisation code to record on the log row")
        parser.add_argument(
            "--context",
            nargs="*",
            default=[],
            help="Template variables as key=value, e.g. owner_name=Jane period_name='Q1 FY2027'",
        )

    def handle(self, *args, **options):
        context = {}
        for pair in options["context"] or []:
            key, sep, value = pair.partition("=")
            if not sep or not key:
                raise CommandError(f"Invalid context entry '{pair}'. Use key=value.")
            context[key] = value

        organisation = None
        if options["organisation"]:
            organisation = Organisation.objects.filter(code=options["organisation"]).first()
            if organisation is None:
                raise CommandError(f"Unknown organisation code: {options['organisation']}")

        if not email_enabled():
            self.stdout.write(self.style.WARNING("Email is not configured; the attempt will be logged as skipped"))

        to_address = options["to_address"]
        log = send_templated_email(options["template"], to_address, context, organisation=organisation)
        if log.status == EmailStatus.FAILED:
            raise CommandError(f"Send failed to={to_address} (log id={log.id}): {log.error_message}")
        self.stdout.write(self.style.SUCCESS(f"{log.status} to={to_address} (log id={log.id})"))
