from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from common.models import TimeStampedModel


class PaymentMethod(models.TextChoices):
    BANK_TRANSFER = "bank_transfer", "Bank transfer"
    CHEQUE = "cheque", "Cheque"
    CASH = "cash", "Cash"
    DIRECT_DEBIT = "direct_debit", "Direct debit"
    BPAY = "bpay", "BPAY"


class Payment(TimeStampedModel):
    """
    Money received from a lot owner. Allocated to the lot's outstanding
    levy items oldest first; any remainder stays unallocated as credit.
    """
    scheme = models.ForeignKey("schemes.Scheme", on_delete=models.CASCADE, related_name="payments")
    lot = models.ForeignKey("schemes.Lot", on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))])
    payment_date = models.DateField()
    payment_method = models.CharField(max_length=24, choices=PaymentMethod.choices)
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        ordering = ["-payment_date", "-id"]
        indexes = [
            models.Index(fields=["scheme", "payment_date"], name="payments_pa_scheme__4c1e7b_idx"),
        ]

    def __str__(self):
        return f"{self.get_payment_method_display()} ${self.amount} (lot #{self.lot_id})"

    @property
    def allocated_amount(self) -> Decimal:
        total = self.allocations.aggregate(total=models.Sum("allocated_amount"))["total"]
        return total or Decimal("0.00")


class PaymentAllocation(models.Model):
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name="allocations")
    levy_item = models.ForeignKey("levies.LevyItem", on_delete=models.CASCADE, related_name="allocations")
    allocated_amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["payment", "id"]

    def __str__(self):
        return f"${self.allocated_amount} of payment #{self.payment_id} to item #{self.levy_item_id}"
