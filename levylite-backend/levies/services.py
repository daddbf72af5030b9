# levies/services.py
import logging
from collections import Counter
from typing import NamedTuple

from django.db import IntegrityError, transaction

from common.errors import NotFound, ValidationError, parse_id
from schemes.models import Lot, LotStatus, Scheme, SchemeStatus
from .apportion import apportion, from_cents, to_cents
from .models import (
    Frequency,
    LevyItem,
    LevyItemStatus,
    LevyPeriod,
    LevySchedule,
    PERIODS_PER_YEAR,
)
from .periods import generate_periods

logger = logging.getLogger(__name__)

ITEMS_EXIST_MESSAGE = (
    "levy items have already been generated for this schedule; "
    "regenerate with replace=true to discard them"
)


class LevyCalculationResult(NamedTuple):
    items_created: int
    rounding_note: str


def rounding_note(cents_by_lot: Counter) -> str:
    total = sum(cents_by_lot.values())
    if not total:
        return ""
    unit = "cent" if total == 1 else "cents"
    lots = sorted(cents_by_lot, key=lambda n: (len(n), n))
    if len(lots) == 1:
        return f"{total} {unit} allocated to lot {lots[0]} with the largest remainder"
    return f"{total} {unit} allocated to lots {', '.join(lots)} with the largest remainders"


# ----------------------------------------------------------------------------
# Schedules
# ----------------------------------------------------------------------------

def _validate_schedule_input(data: dict):
    start, end = data.get("budget_year_start"), data.get("budget_year_end")
    if start and end and end <= start:
        raise ValidationError("Budget year end must be after start")
    frequency = data.setdefault("frequency", Frequency.QUARTERLY)
    expected = PERIODS_PER_YEAR.get(frequency)
    if expected is None:
        raise ValidationError(f"Unknown levy frequency '{frequency}'")
    periods = data.get("periods_per_year") or expected
    if periods != expected:
        raise ValidationError(f"A {frequency} schedule has {expected} periods per year")
    data["periods_per_year"] = expected


def _schedule_has_items(schedule: LevySchedule) -> bool:
    return LevyItem.objects.filter(period__schedule=schedule).exists()


def _create_periods(schedule: LevySchedule):
    specs = generate_periods(schedule.budget_year_start, schedule.frequency, schedule.scheme.levy_due_day)
    LevyPeriod.objects.bulk_create(
        [
            LevyPeriod(
                schedule=schedule,
                period_number=s.period_number,
                period_name=s.period_name,
                period_start=s.period_start,
                period_end=s.period_end,
                due_date=s.due_date,
            )
            for s in specs
        ]
    )


@transaction.atomic
def create_schedule(scheme: Scheme, data: dict, user=None) -> LevySchedule:
    if scheme.status == SchemeStatus.ARCHIVED:
        raise ValidationError("Cannot add a levy schedule to an archived scheme")
    _validate_schedule_input(data)
    schedule = LevySchedule.objects.create(scheme=scheme, created_by=user, **data)
    _create_periods(schedule)
    logger.info("Levy schedule %s created for scheme %s", schedule.id, scheme.id)
    return schedule


@transaction.atomic
def update_schedule(schedule: LevySchedule, data: dict) -> LevySchedule:
    schedule = LevySchedule.objects.select_for_update().select_related("scheme").get(pk=schedule.pk)
    if _schedule_has_items(schedule):
        raise ValidationError(
            "Cannot update schedule: levy items have already been generated for one or more periods"
        )
    merged = {f: getattr(schedule, f) for f in ("budget_year_start", "budget_year_end", "frequency")}
    merged.update(data)
    merged.setdefault("periods_per_year", None)  # derived from frequency
    _validate_schedule_input(merged)

    for field, value in merged.items():
        setattr(schedule, field, value)
    schedule.save()

    # periods are derived from start + frequency; rebuild them
    schedule.periods.all().delete()
    _create_periods(schedule)
    return schedule


@transaction.atomic
def delete_schedule(schedule: LevySchedule) -> str:
    """Hard delete when nothing was generated, otherwise deactivate. Returns 'deleted' or 'deactivated'."""
    schedule = LevySchedule.objects.select_for_update().get(pk=schedule.pk)
    if _schedule_has_items(schedule):
        schedule.active = False
        schedule.save(update_fields=["active", "updated_at"])
        return "deactivated"
    schedule.delete()
    return "deleted"


# ----------------------------------------------------------------------------
# Calculation
# ----------------------------------------------------------------------------

def _lock_schedule(schedule_id, organisation) -> LevySchedule:
    schedule_id = parse_id(schedule_id, NotFound("Levy schedule not found"))
    schedule = (
        LevySchedule.objects.select_for_update()
        .select_related("scheme")
        .filter(id=schedule_id, scheme__organisation=organisation)
        .first()
    )
    if schedule is None:
        raise NotFound("Levy schedule not found")
    if not schedule.active:
        raise ValidationError("Levy schedule is inactive")
    return schedule


def _entitlement_weights(scheme: Scheme):
    lots = list(Lot.objects.filter(scheme=scheme, status=LotStatus.ACTIVE).order_by("id"))
    if not lots:
        raise ValidationError("No active lots found for this scheme")
    weights = {lot.id: lot.unit_entitlement for lot in lots}
    if sum(weights.values()) <= 0:
        raise ValidationError("Total unit entitlement must be greater than zero")
    return lots, weights


def _generate_items(schedule: LevySchedule, targets, replace: bool) -> LevyCalculationResult:
    periods = list(schedule.periods.order_by("period_number"))
    if not periods:
        raise ValidationError("Levy schedule has no periods")
    lots, weights = _entitlement_weights(schedule.scheme)
    lot_numbers = {lot.id: lot.lot_number for lot in lots}

    existing = LevyItem.objects.filter(period__in=targets)
    if existing.exists():
        if not replace:
            raise ValidationError(ITEMS_EXIST_MESSAGE)
        if existing.filter(amount_paid__gt=0).exists():
            raise ValidationError("Cannot regenerate levy items that have payments allocated")
        deleted, _ = existing.delete()
        logger.info("Replacing %s levy items on schedule %s", deleted, schedule.id)

    # funds split across every period of the schedule, so per-period runs agree with full runs
    equal = [1] * len(periods)
    admin_by_period = apportion(to_cents(schedule.admin_fund_total), equal).shares
    capital_by_period = apportion(to_cents(schedule.capital_works_fund_total), equal).shares
    index_of = {p.id: i for i, p in enumerate(periods)}

    reconciled = Counter()
    items = []
    for period in targets:
        i = index_of[period.id]
        admin = apportion(admin_by_period[i], weights)
        capital = apportion(capital_by_period[i], weights)
        for lot_id in admin.reconciled + capital.reconciled:
            reconciled[lot_numbers[lot_id]] += 1
        admin_shares, capital_shares = admin.as_dict(), capital.as_dict()
        for lot in lots:
            a, c = admin_shares[lot.id], capital_shares[lot.id]
            items.append(
                LevyItem(
                    period=period,
                    lot=lot,
                    scheme=schedule.scheme,
                    admin_levy_amount=from_cents(a),
                    capital_levy_amount=from_cents(c),
                    total_levy_amount=from_cents(a + c),
                    due_date=period.due_date,
                    status=LevyItemStatus.PENDING,
                )
            )

    try:
        with transaction.atomic():
            LevyItem.objects.bulk_create(items)
    except IntegrityError:
        logger.warning("Concurrent levy generation detected on schedule %s", schedule.id)
        raise ValidationError(ITEMS_EXIST_MESSAGE)

    return LevyCalculationResult(items_created=len(items), rounding_note=rounding_note(reconciled))


def calculate_levies(schedule_id, organisation, replace: bool = False) -> LevyCalculationResult:
    """
    Generate a LevyItem per active lot per period of the schedule. All or
    nothing: any failure leaves previously stored items untouched.
    """
    with transaction.atomic():
        schedule = _lock_schedule(schedule_id, organisation)
        periods = list(schedule.periods.order_by("period_number"))
        result = _generate_items(schedule, periods, replace)
    logger.info("Generated %s levy items for schedule %s", result.items_created, schedule_id)
    return result


def calculate_levies_for_period(period_id, organisation, replace: bool = False) -> LevyCalculationResult:
    period_id = parse_id(period_id, NotFound("Levy period not found"))
    with transaction.atomic():
        schedule_id = (
            LevyPeriod.objects.filter(id=period_id, schedule__scheme__organisation=organisation)
            .values_list("schedule_id", flat=True)
            .first()
        )
        if schedule_id is None:
            raise NotFound("Levy period not found")
        schedule = _lock_schedule(schedule_id, organisation)
        target = schedule.periods.get(id=period_id)
        result = _generate_items(schedule, [target], replace)
    logger.info("Generated %s levy items for period %s", result.items_created, period_id)
    return result
