from django.apps import AppConfig
from django.db.models.signals import post_migrate


class EmailsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "emails"
    verbose_name = "Emails"

    def ready(self):
        def seed_templates(sender, **kwargs):
            from emails.models import EmailTemplate

            EmailTemplate.objects.update_or_create(
                name="owner_portal_invite",
                defaults={
                    "subject": "Your owner portal invitation from {{ organisation_name }}",
                    "html_body": """
                        <div style="font-family: Arial, sans-serif; color: #111; padding: 16px;">
                          <p>Hello {{ owner_name }},</p>
                          <p>{{ organisation_name }} has invited you to the LevyLite owner portal,
                             where you can view your levy notices and scheme documents.</p>
                          <p>
                            <a href="{{ activation_url }}" style="background:#0f766e;color:#fff;padding:10px 16px;border-radius:8px;text-decoration:none;">Set up your account</a>
                          </p>
                          <p style="color:#555;">This link expires in {{ expires_days }} days.</p>
                        </div>
                    """,
                    "locale": "en",
                    "version": 1,
                    "is_active": True,
                },
            )

            EmailTemplate.objects.update_or_create(
                name="levy_notice",
                defaults={
                    "subject": "Levy notice {{ period_name }}: {{ scheme_name }} lot {{ lot_number }}",
                    "html_body": """
                        <div style="font-family: Arial, sans-serif; color: #111; padding: 16px;">
                          <p>Dear {{ owner_name }},</p>
                          <p>Please find attached the levy notice for lot {{ lot_number }} at
                             {{ scheme_name }} for {{ period_name }}.</p>
                          <p>Amount due: <strong>${{ total_amount }}</strong> by {{ due_date }}.</p>
                          <p>Payment reference: <strong>{{ payment_reference }}</strong></p>
                          <p style="color:#555;">{{ organisation_name }}</p>
                        </div>
                    """,
                    "locale": "en",
                    "version": 1,
                    "is_active": True,
                },
            )

            EmailTemplate.objects.update_or_create(
                name="test_message",
                defaults={
                    "subject": "LevyLite test email",
                    "html_body": "<p>This is a test email from LevyLite. {{ note }}</p>",
                    "locale": "en",
                    "version": 1,
                    "is_active": True,
                },
            )

        post_migrate.connect(seed_templates, sender=self)
