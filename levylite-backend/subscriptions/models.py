from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone


class Plan(models.Model):
    code = models.CharField(max_length=50, unique=True)  # e.g. LEVYLITE_STANDARD
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    trial_days = models.PositiveIntegerField(default=14)

    max_lots = models.PositiveIntegerField(null=True, blank=True)  # null = unlimited

    # {"levy_notices": true, "owner_portal": false, ...}; keys come from gating.FEATURES
    features = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return self.code


class Subscription(models.Model):
    STATUS_TRIALING = "trialing"
    STATUS_ACTIVE = "active"
    STATUS_PAST_DUE = "past_due"
    STATUS_CANCELED = "canceled"
    STATUS_PAUSED = "paused"

    STATUS_CHOICES = [
        (STATUS_TRIALING, "Trialing"),
        (STATUS_ACTIVE, "Active"),
        (STATUS_PAST_DUE, "Past due"),
        (STATUS_CANCELED, "Canceled"),
        (STATUS_PAUSED, "Paused"),
    ]

    # statuses that grant the plan's features
    ENTITLED_STATUSES = (STATUS_ACTIVE, STATUS_TRIALING)

    organisation = models.ForeignKey(
        "organisations.Organisation", on_delete=models.CASCADE, related_name="subscriptions"
    )
    plan = models.ForeignKey(Plan, on_delete=models.PROTECT)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES)

    trial_end_at = models.DateTimeField(null=True, blank=True)
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)
    cancel_at_period_end = models.BooleanField(default=False)
    canceled_at = models.DateTimeField(null=True, blank=True)

    stripe_customer_id = models.CharField(max_length=128, blank=True, db_index=True)
    stripe_subscription_id = models.CharField(max_length=128, blank=True)
    billed_lots_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["organisation", "status"], name="subscriptio_organis_8e0b51_idx"),
        ]

    def __str__(self):
        return f"{self.organisation_id}-{self.plan.code}-{self.status}"

    @property
    def is_entitled(self) -> bool:
        return self.status in self.ENTITLED_STATUSES


class SubscriptionAudit(models.Model):
    ACTION_CHOICES = [
        ("created", "Created"),
        ("status_changed", "Status changed"),
        ("plan_changed", "Plan changed"),
        ("cancel_at_period_end_changed", "Cancel at period end changed"),
    ]

    organisation = models.ForeignKey(
        "organisations.Organisation", on_delete=models.CASCADE, related_name="subscription_audits"
    )
    subscription = models.ForeignKey(Subscription, on_delete=models.CASCADE, related_name="audits")
    action = models.CharField(max_length=32, choices=ACTION_CHOICES)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="subscription_audits"
    )
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["subscription", "action"], name="subscriptio_subscri_2f7a90_idx"),
        ]

    def __str__(self):
        return f"{self.subscription_id}:{self.action}"


class PaymentEvent(models.Model):
    """
    One row per Stripe webhook event, keyed by the Stripe event id so
    redeliveries are recognised.
    """
    stripe_event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100)
    organisation = models.ForeignKey(
        "organisations.Organisation", null=True, blank=True, on_delete=models.SET_NULL, related_name="payment_events"
    )
    payload = models.JSONField(default=dict, blank=True)
    processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.event_type} {self.stripe_event_id}"


class PlatformInvoice(models.Model):
    """
    A paid Stripe invoice for the organisation's own subscription, kept as
    billing history. Keyed by the Stripe invoice id so redelivered events
    update the same row.
    """
    INTERVAL_MONTHLY = "monthly"
    INTERVAL_ANNUAL = "annual"
    INTERVAL_CHOICES = [
        (INTERVAL_MONTHLY, "Monthly"),
        (INTERVAL_ANNUAL, "Annual"),
    ]

    organisation = models.ForeignKey(
        "organisations.Organisation", on_delete=models.CASCADE, related_name="platform_invoices"
    )
    subscription = models.ForeignKey(
        Subscription, null=True, blank=True, on_delete=models.SET_NULL, related_name="invoices"
    )
    stripe_invoice_id = models.CharField(max_length=255, unique=True)
    invoice_number = models.CharField(max_length=100, blank=True)
    subtotal_ex_gst = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    gst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_inc_gst = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    lots_billed = models.PositiveIntegerField(default=0)
    billing_interval = models.CharField(max_length=16, choices=INTERVAL_CHOICES, default=INTERVAL_MONTHLY)
    invoice_date = models.DateTimeField(null=True, blank=True)
    due_date = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=32, default="paid")
    stripe_invoice_url = models.URLField(max_length=500, blank=True)
    stripe_pdf_url = models.URLField(max_length=500, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-invoice_date", "-id"]

    def __str__(self):
        return self.invoice_number or self.stripe_invoice_id
