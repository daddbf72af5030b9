from django.db import models
from django.utils import timezone


class EmailTemplate(models.Model):
    """
    Logical email templates (e.g., 'owner_portal_invite', 'levy_notice').
    Each can have multiple locale versions if needed.
    """
    name = models.CharField(max_length=100, unique=True)  # e.g. owner_portal_invite
    subject = models.CharField(max_length=200)
    html_body = models.TextField()
    locale = models.CharField(max_length=8, default="en")
    version = models.IntegerField(default=1)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "-version"]

    def __str__(self):
        return f"{self.name} (v{self.version}, {self.locale})"


class EmailStatus(models.TextChoices):
    QUEUED = "queued", "Queued"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"


class EmailLog(models.Model):
    """
    One row per attempt to send a transactional email, including attempts
    skipped because mail is not configured.
    """
    organisation = models.ForeignKey(
        "organisations.Organisation", null=True, blank=True, on_delete=models.SET_NULL, related_name="email_logs"
    )
    to_address = models.EmailField()
    subject = models.CharField(max_length=200)
    template = models.ForeignKey(EmailTemplate, null=True, blank=True, on_delete=models.SET_NULL)
    payload = models.JSONField(default=dict, blank=True)  # rendered context, etc.
    status = models.CharField(max_length=20, choices=EmailStatus.choices, default=EmailStatus.QUEUED)
    error_message = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["to_address"], name="emails_emai_to_addr_4b1e2a_idx"),
            models.Index(fields=["status"], name="emails_emai_status_9c3d7f_idx"),
        ]

    def __str__(self):
        return f"{self.to_address} [{self.subject}] ({self.status})"
