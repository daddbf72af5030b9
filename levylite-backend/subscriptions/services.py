import math
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.utils import timezone

from common.errors import NotFound, ValidationError
from .gating import current_subscription
from .models import Plan, Subscription


def _resolve_trial_days(plan: Plan, trial_days: Optional[int]) -> int:
    if trial_days is not None:
        return trial_days
    if getattr(plan, "trial_days", None):
        return plan.trial_days
    return int(getattr(settings, "DEFAULT_SIGNUP_TRIAL_DAYS", 14))


def default_plan() -> Plan:
    code = getattr(settings, "DEFAULT_SIGNUP_PLAN_CODE", "LEVYLITE_STANDARD")
    plan = Plan.objects.filter(code=code, is_active=True).first()
    if plan is None:
        raise NotFound(f"Plan {code} not found")
    return plan


def create_trial_subscription(organisation, plan: Optional[Plan] = None, trial_days: Optional[int] = None) -> Subscription:
    plan = plan or default_plan()
    now = timezone.now()
    trial_end = now + timedelta(days=_resolve_trial_days(plan, trial_days))
    return Subscription.objects.create(
        organisation=organisation,
        plan=plan,
        status=Subscription.STATUS_TRIALING,
        trial_end_at=trial_end,
        current_period_start=now,
        current_period_end=trial_end,
    )


def count_billable_lots(organisation) -> int:
    from schemes.models import Lot, LotStatus, SchemeStatus

    return (
        Lot.objects.filter(scheme__organisation=organisation, status=LotStatus.ACTIVE)
        .exclude(scheme__status=SchemeStatus.ARCHIVED)
        .count()
    )


def check_plan_limits(organisation, adding: int = 0) -> dict:
    """
    Lot usage against the plan's max_lots. `adding` previews the result of
    creating that many more lots. No subscription means no allowance.
    """
    current = count_billable_lots(organisation)
    sub = current_subscription(organisation)
    if sub is None:
        max_lots = 0
    else:
        max_lots = sub.plan.max_lots
    within = max_lots is None or current + adding <= max_lots
    return {"current_lots": current, "max_lots": max_lots, "within_limits": within}


def ensure_lot_capacity(organisation, adding: int = 1) -> None:
    limits = check_plan_limits(organisation, adding=adding)
    if not limits["within_limits"]:
        raise ValidationError(
            f"Your plan allows {limits['max_lots']} lots and {limits['current_lots']} are in use. "
            "Upgrade to add more lots."
        )


def get_trial_info(organisation) -> dict:
    sub = current_subscription(organisation)
    if sub is None or sub.status != Subscription.STATUS_TRIALING or not sub.trial_end_at:
        return {"is_trialing": False, "trial_days_remaining": 0, "trial_end_at": None}
    seconds_left = (sub.trial_end_at - timezone.now()).total_seconds()
    return {
        "is_trialing": True,
        "trial_days_remaining": max(0, math.ceil(seconds_left / 86400)),
        "trial_end_at": sub.trial_end_at,
    }
