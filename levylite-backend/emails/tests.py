from io import StringIO
from unittest.mock import patch

from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings

from emails.models import EmailLog, EmailStatus, EmailTemplate
from emails.services import send_templated_email
from organisations.models import Organisation

LOCMEM = "django.core.mail.backends.locmem.EmailBackend"


class SendTemplatedEmailTests(TestCase):
    def test_templates_are_seeded(self):
        names = set(EmailTemplate.objects.values_list("name", flat=True))
        self.assertTrue({"owner_portal_invite", "levy_notice", "test_message"} <= names)

    def test_missing_template_logs_failure(self):
        log = send_templated_email("no_such_template", "jane@example.com", {})
        self.assertEqual(log.status, EmailStatus.FAILED)
        self.assertEqual(log.error_message, "template not found")

    @override_settings(EMAIL_ENABLED=False)
    def test_skipped_when_not_configured(self):
        log = send_templated_email("test_message", "jane@example.com", {"note": "hi"})
        self.assertEqual(log.status, EmailStatus.SKIPPED)
        self.assertEqual(len(mail.outbox), 0)

    @override_settings(EMAIL_ENABLED=True, EMAIL_BACKEND=LOCMEM)
    def test_sent_with_attachment(self):
        log = send_templated_email(
            "test_message",
            "jane@example.com",
            {"note": "Hello there"},
            attachments=[("notice.pdf", b"%PDF-1.4", "application/pdf")],
        )
        self.assertEqual(log.status, EmailStatus.SENT)
        self.assertIsNotNone(log.sent_at)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["jane@example.com"])
        self.assertEqual(message.subject, "LevyLite test email")
        self.assertIn("Hello there", message.body)
        self.assertEqual(message.attachments[0][0], "notice.pdf")

    @override_settings(EMAIL_ENABLED=True, EMAIL_BACKEND=LOCMEM)
    def test_send_error_is_logged(self):
        with patch("emails.services.EmailMultiAlternatives.send", side_effect=OSError("smtp down")):
            log = send_templated_email("test_message", "jane@example.com", {})
        self.assertEqual(log.status, EmailStatus.FAILED)
        self.assertIn("smtp down", log.error_message)


class SendTestEmailCommandTests(TestCase):
    @override_settings(EMAIL_ENABLED=True, EMAIL_BACKEND=LOCMEM)
    def test_sends(self):
        out = StringIO()
        call_command("send_test_email", "--to", "ops@example.com", "--context", "note=ping", stdout=out)
        self.assertIn("sent to=ops@example.com", out.getvalue())
        self.assertIn("ping", mail.outbox[0].body)

    @override_settings(EMAIL_ENABLED=False)
    def test_records_organisation_and_warns_when_unconfigured(self):
        org = Organisation.objects.create(name="Harbour Strata", code="harbour")
        out = StringIO()
        call_command("send_test_email", "--to", "ops@example.com", "--organisation", "harbour", stdout=out)
        self.assertIn("not configured", out.getvalue())
        log = EmailLog.objects.get()
        self.assertEqual(log.status, EmailStatus.SKIPPED)
        self.assertEqual(log.organisation, org)

    def test_unknown_organisation(self):
        with self.assertRaises(CommandError):
            call_command("send_test_email", "--to", "ops@example.com", "--organisation", "nope")

    def test_bad_context(self):
        with self.assertRaises(CommandError):
            call_command("send_test_email", "--to", "ops@example.com", "--context", "broken")

    def test_missing_template(self):
        with self.assertRaises(CommandError):
            call_command("send_test_email", "--to", "ops@example.com", "--template", "nope")
        self.assertEqual(EmailLog.objects.get().status, EmailStatus.FAILED)
