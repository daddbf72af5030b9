# payments/services.py
import logging
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple

from django.db import transaction
from django.utils import timezone

from common.errors import ValidationError
from levies.apportion import from_cents, to_cents
from levies.models import LevyItem, LevyItemStatus
from levies.notices import primary_owner
from .models import Payment, PaymentAllocation, PaymentMethod

logger = logging.getLogger(__name__)

OUTSTANDING_STATUSES = (
    LevyItemStatus.PENDING,
    LevyItemStatus.SENT,
    LevyItemStatus.PARTIAL,
    LevyItemStatus.OVERDUE,
)

# (key, first day, last day); None means open-ended
AGING_BUCKETS = (
    ("under_30", 1, 30),
    ("days_31_to_60", 31, 60),
    ("days_61_to_90", 61, 90),
    ("over_90", 91, None),
)


class PaymentResult(NamedTuple):
    payment: Payment
    allocations: List[PaymentAllocation]
    total_allocated: Decimal
    unallocated_amount: Decimal
    note: str


def outstanding_items(lot):
    """The lot's unpaid levy items, oldest due date first."""
    return (
        LevyItem.objects.select_related("period")
        .filter(lot=lot, status__in=OUTSTANDING_STATUSES)
        .order_by("due_date", "id")
    )


def _allocation_note(allocated: int, unallocated: int, items_paid: int) -> str:
    if not allocated:
        return f"No outstanding levies; {from_cents(unallocated)} recorded as unallocated credit"
    unit = "item" if items_paid == 1 else "items"
    note = f"{from_cents(allocated)} allocated across {items_paid} levy {unit}"
    if unallocated:
        note += f"; {from_cents(unallocated)} recorded as unallocated credit"
    return note


@transaction.atomic
def record_payment(lot, data: Dict[str, Any], user=None) -> PaymentResult:
    """
    Record a payment against `lot` and allocate it to the lot's outstanding
    levy items in due-date order. Each item is paid down in full before the
    next one is touched; an item left with a balance becomes partial.
    """
    amount = data.get("amount")
    if amount is None or to_cents(amount) <= 0:
        raise ValidationError("Payment amount must be greater than zero")
    method = data.get("payment_method")
    if method not in PaymentMethod.values:
        raise ValidationError(f"Unknown payment method '{method}'")

    payment = Payment.objects.create(
        scheme_id=lot.scheme_id,
        lot=lot,
        amount=from_cents(to_cents(amount)),
        payment_date=data.get("payment_date") or timezone.localdate(),
        payment_method=method,
        reference=data.get("reference") or "",
        notes=data.get("notes") or "",
        created_by=user,
    )

    remaining = to_cents(payment.amount)
    allocations = []
    locked = (
        LevyItem.objects.select_for_update()
        .filter(lot=lot, status__in=OUTSTANDING_STATUSES)
        .order_by("due_date", "id")
    )
    for item in locked:
        if remaining <= 0:
            break
        balance = to_cents(item.balance)
        if balance <= 0:
            continue
        share = min(balance, remaining)
        remaining -= share
        item.amount_paid = from_cents(to_cents(item.amount_paid) + share)
        item.status = LevyItemStatus.PAID if share == balance else LevyItemStatus.PARTIAL
        item.save(update_fields=["amount_paid", "status", "updated_at"])
        allocations.append(PaymentAllocation(payment=payment, levy_item=item, allocated_amount=from_cents(share)))

    PaymentAllocation.objects.bulk_create(allocations)
    allocated = to_cents(payment.amount) - remaining
    logger.info(
        "Payment %s of %s recorded for lot %s: %s allocated to %s items",
        payment.id, payment.amount, lot.id, from_cents(allocated), len(allocations),
    )
    return PaymentResult(
        payment=payment,
        allocations=allocations,
        total_allocated=from_cents(allocated),
        unallocated_amount=from_cents(remaining),
        note=_allocation_note(allocated, remaining, len(allocations)),
    )


def mark_overdue_items(today=None, scheme=None) -> int:
    """Move unpaid pending/sent items past their due date to overdue."""
    today = today or timezone.localdate()
    qs = LevyItem.objects.filter(
        status__in=(LevyItemStatus.PENDING, LevyItemStatus.SENT),
        due_date__lt=today,
    )
    if scheme is not None:
        qs = qs.filter(scheme=scheme)
    updated = qs.update(status=LevyItemStatus.OVERDUE, updated_at=timezone.now())
    if updated:
        logger.info("Marked %s levy items overdue as of %s", updated, today)
    return updated


def outstanding_items_for_scheme(scheme):
    return LevyItem.objects.filter(scheme=scheme, status__in=OUTSTANDING_STATUSES).order_by("due_date", "lot_id")


def _bucket_for(days_overdue: int) -> str:
    for key, first, last in AGING_BUCKETS:
        if days_overdue >= first and (last is None or days_overdue <= last):
            return key
    return AGING_BUCKETS[0][0]


def arrears_report(scheme, today=None) -> Dict[str, Any]:
    """Unpaid levy items of `scheme` past their due date, with aging buckets."""
    today = today or timezone.localdate()
    items = (
        outstanding_items_for_scheme(scheme)
        .filter(due_date__lt=today)
        .select_related("lot", "period")
    )
    aging = {key: {"count": 0, "amount": 0} for key, _, _ in AGING_BUCKETS}
    rows = []
    total = 0
    lots = set()
    for item in items:
        balance = to_cents(item.balance)
        if balance <= 0:
            continue
        days = (today - item.due_date).days
        bucket = _bucket_for(days)
        aging[bucket]["count"] += 1
        aging[bucket]["amount"] += balance
        total += balance
        lots.add(item.lot_id)
        owner = primary_owner(item.lot)
        rows.append({
            "levy_item": item.id,
            "lot": item.lot_id,
            "lot_number": item.lot.lot_number,
            "owner_name": f"{owner.first_name} {owner.last_name}".strip() if owner else "",
            "period_name": item.period.period_name,
            "due_date": item.due_date,
            "days_overdue": days,
            "aging_bucket": bucket,
            "total_levy_amount": item.total_levy_amount,
            "amount_paid": item.amount_paid,
            "balance": from_cents(balance),
            "status": item.status,
        })

    for bucket in aging.values():
        bucket["amount"] = from_cents(bucket["amount"])
    return {
        "scheme": scheme.id,
        "as_of": today,
        "items": rows,
        "total_overdue": from_cents(total),
        "lots_in_arrears": len(lots),
        "aging": aging,
    }
