# subscriptions/gating.py
"""
Plan feature gating.

A plan's `features` JSON maps feature keys to booleans. Only keys listed in
FEATURES are honoured, so a typo or a stale key in a plan row never grants
anything.
"""
from typing import Mapping, Optional

from common.errors import Unauthorized
from .models import Subscription

FEATURES = {
    "levy_notices": "Levy notice generation",
    "email_notices": "Email delivery of levy notices",
    "owner_portal": "Owner portal",
    "document_storage": "Document storage",
    "bulk_lot_import": "Bulk lot import",
    "reports": "Financial reports",
}


class FeatureNotAvailable(Unauthorized):
    default_message = "This feature is not available on your current plan"

    def __init__(self, feature_key: str, message: str = None):
        self.feature_key = feature_key
        label = FEATURES.get(feature_key, feature_key)
        super().__init__(message or f"{label} is not available on your current plan")


def is_feature_enabled(feature_key: str, tier_features: Optional[Mapping]) -> bool:
    if feature_key not in FEATURES:
        return False
    if not tier_features:
        return False
    return tier_features.get(feature_key) is True


def current_subscription(organisation) -> Optional[Subscription]:
    if organisation is None:
        return None
    return (
        Subscription.objects.select_related("plan")
        .filter(organisation=organisation)
        .order_by("-created_at", "-id")
        .first()
    )


def organisation_can_access(organisation, feature_key: str) -> bool:
    sub = current_subscription(organisation)
    if sub is None or not sub.is_entitled:
        return False
    return is_feature_enabled(feature_key, sub.plan.features)


def require_feature(organisation, feature_key: str) -> None:
    if not organisation_can_access(organisation, feature_key):
        raise FeatureNotAvailable(feature_key)
