from rest_framework.permissions import BasePermission
from common.roles import OrgRole


class IsInOrganisation(BasePermission):
    def has_permission(self, request, view):
        u = getattr(request, "user", None)
        org = getattr(request, "organisation", None)
        if not (u and u.is_authenticated):
            return False
        if org is None:
            return False
        if u.is_superuser:
            return True
        return u.organisation_memberships.filter(organisation=org, is_active=True).exists()


class RoleRequired(BasePermission):
    """
    Viewset can define:
      permission_roles = { "POST": [OrgRole.MANAGER, ...], "DELETE": [OrgRole.MANAGER] }
    If method not in dict → allowed (subject to IsInOrganisation).
    """
    def has_permission(self, request, view):
        if request.user.is_superuser:
            return True
        roles_map = getattr(view, "permission_roles", {})
        needed = roles_map.get(request.method, [])
        if not needed:
            return True
        membership = request.user.organisation_memberships.filter(
            organisation=request.organisation, is_active=True
        ).first()
        return bool(membership and membership.role in needed)


WRITE_ROLES = [OrgRole.MANAGER, OrgRole.ADMIN]

DEFAULT_PERMISSION_ROLES = {
    "POST": WRITE_ROLES,
    "PUT": WRITE_ROLES,
    "PATCH": WRITE_ROLES,
    "DELETE": WRITE_ROLES,
}


class OrganisationScopedViewSetMixin:
    """
    Auto-filters by organisation and sets it on create.
    For models with a direct FK: organisation_field = "organisation"
    For models linked via scheme: organisation_field=None, organisation_path="scheme__organisation"
    """
    organisation_field = "organisation"
    organisation_path = None

    def get_queryset(self):
        qs = super().get_queryset()
        org = self.request.organisation
        if self.organisation_field:
            return qs.filter(**{self.organisation_field: org})
        elif self.organisation_path:
            return qs.filter(**{self.organisation_path: org})
        return qs.none()

    def perform_create(self, serializer):
        if self.organisation_field:
            serializer.save(**{self.organisation_field: self.request.organisation})
        else:
            serializer.save()
