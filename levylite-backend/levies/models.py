from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from common.models import TimeStampedModel


class Frequency(models.TextChoices):
    ANNUAL = "annual", "Annual"
    HALF_YEARLY = "half-yearly", "Half-yearly"
    QUARTERLY = "quarterly", "Quarterly"
    MONTHLY = "monthly", "Monthly"


PERIODS_PER_YEAR = {
    Frequency.ANNUAL: 1,
    Frequency.HALF_YEARLY: 2,
    Frequency.QUARTERLY: 4,
    Frequency.MONTHLY: 12,
}


class LevySchedule(TimeStampedModel):
    """
    A budget year's admin and capital works fund totals for one scheme,
    split into periods. Levy items are generated from it.
    """
    scheme = models.ForeignKey("schemes.Scheme", on_delete=models.CASCADE, related_name="levy_schedules")
    budget_year_start = models.DateField()
    budget_year_end = models.DateField()
    admin_fund_total = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))]
    )
    capital_works_fund_total = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"), validators=[MinValueValidator(Decimal("0"))]
    )
    frequency = models.CharField(max_length=16, choices=Frequency.choices, default=Frequency.QUARTERLY)
    periods_per_year = models.PositiveSmallIntegerField(
        choices=[(1, "1"), (2, "2"), (4, "4"), (12, "12")], default=4
    )
    active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        ordering = ["scheme", "-budget_year_start", "id"]
        indexes = [
            models.Index(fields=["scheme", "active"], name="levies_levy_scheme__1d6f3c_idx"),
        ]

    def __str__(self):
        return f"{self.scheme.scheme_number} {self.budget_year_start:%Y}-{self.budget_year_end:%Y} ({self.frequency})"

    @property
    def total_budget(self) -> Decimal:
        return (self.admin_fund_total or Decimal("0")) + (self.capital_works_fund_total or Decimal("0"))

    def clean(self):
        if self.budget_year_start and self.budget_year_end and self.budget_year_end <= self.budget_year_start:
            raise ValidationError("Budget year end must be after start")
        expected = PERIODS_PER_YEAR.get(self.frequency)
        if expected and self.periods_per_year != expected:
            raise ValidationError(f"A {self.frequency} schedule has {expected} periods per year")


class PeriodStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ISSUED = "issued", "Issued"
    CLOSED = "closed", "Closed"


class LevyPeriod(models.Model):
    schedule = models.ForeignKey(LevySchedule, on_delete=models.CASCADE, related_name="periods")
    period_number = models.PositiveSmallIntegerField()
    period_name = models.CharField(max_length=32)  # e.g. "Q1 FY2027"
    period_start = models.DateField()
    period_end = models.DateField()
    due_date = models.DateField()
    status = models.CharField(max_length=16, choices=PeriodStatus.choices, default=PeriodStatus.PENDING)

    class Meta:
        ordering = ["schedule", "period_number"]
        constraints = [
            models.UniqueConstraint(fields=["schedule", "period_number"], name="uniq_period_number_per_schedule"),
        ]

    def __str__(self):
        return self.period_name


class LevyItemStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    PAID = "paid", "Paid"
    PARTIAL = "partial", "Partial"
    OVERDUE = "overdue", "Overdue"


class LevyItem(TimeStampedModel):
    """
    What one lot owes for one period. Amounts are exact cents; the items of
    a schedule always sum to the schedule's total budget.
    """
    period = models.ForeignKey(LevyPeriod, on_delete=models.CASCADE, related_name="items")
    lot = models.ForeignKey("schemes.Lot", on_delete=models.CASCADE, related_name="levy_items")
    scheme = models.ForeignKey("schemes.Scheme", on_delete=models.CASCADE, related_name="levy_items")
    admin_levy_amount = models.DecimalField(max_digits=12, decimal_places=2)
    capital_levy_amount = models.DecimalField(max_digits=12, decimal_places=2)
    total_levy_amount = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    due_date = models.DateField()
    status = models.CharField(max_length=16, choices=LevyItemStatus.choices, default=LevyItemStatus.PENDING)
    notice_generated_at = models.DateTimeField(null=True, blank=True)
    notice_sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["period", "lot_id"]
        constraints = [
            models.UniqueConstraint(fields=["period", "lot"], name="uniq_levy_item_per_period_lot"),
        ]
        indexes = [
            models.Index(fields=["scheme", "status"], name="levies_levy_scheme__7a2e94_idx"),
        ]

    def __str__(self):
        return f"{self.period} lot {self.lot_id}: {self.total_levy_amount}"

    @property
    def balance(self) -> Decimal:
        return self.total_levy_amount - (self.amount_paid or Decimal("0"))
