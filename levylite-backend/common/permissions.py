# common/permissions.py
from rest_framework import permissions
from common.roles import OrgRole
from organisations.models import OrganisationUser

def user_role_for_organisation(user, organisation):
    if not (user and organisation):
        return None
    return (
        OrganisationUser.objects.filter(user=user, organisation=organisation, is_active=True)
        .values_list("role", flat=True)
        .first()
    )

class IsManager(permissions.BasePermission):
    """
    Allows access only to MANAGER members of request.organisation.
    Billing is restricted to managers.
    """
    message = "Only managers can manage billing"

    def has_permission(self, request, view):
        organisation = getattr(request, "organisation", None)
        if not (request.user and request.user.is_authenticated and organisation):
            return False
        if request.user.is_superuser:
            return True
        return user_role_for_organisation(request.user, organisation) == OrgRole.MANAGER


class IsPortalOwner(permissions.BasePermission):
    """Owner self-service endpoints; middleware resolves request.owner."""

    def has_permission(self, request, view):
        owner = getattr(request, "owner", None)
        return bool(request.user and request.user.is_authenticated and owner is not None)
