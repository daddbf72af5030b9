from rest_framework.permissions import BasePermission, SAFE_METHODS

from .gating import FEATURES, organisation_can_access


class HasFeature(BasePermission):
    """
    Views set `required_feature = "levy_notices"`. Set
    `feature_gate_safe_methods = False` to leave reads ungated.
    """
    message = "This feature is not available on your current plan"

    def has_permission(self, request, view):
        feature = getattr(view, "required_feature", None)
        if not feature:
            return True
        if request.method in SAFE_METHODS and not getattr(view, "feature_gate_safe_methods", True):
            return True
        allowed = organisation_can_access(getattr(request, "organisation", None), feature)
        if not allowed:
            self.message = f"{FEATURES.get(feature, feature)} is not available on your current plan"
        return allowed
